from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Iterable, Optional, TypeVar

from config import CacheOptions

T = TypeVar("T")

COMPOSITE_KEY_DELIMITER: str = "::"


@dataclass
class CacheEntry(Generic[T]):
    value: T
    expires_at: float  # time.time() 기준 만료 시각


class TTLCache(Generic[T]):
    """API 응답 메모리 캐시 (항목별 TTL + 최대 크기 제한)

    - 만료 검사는 get 시점에만 수행 (lazy expiry)
    - 조회(hit)는 만료시간을 연장하지 않음
    - 최대 크기 초과 시 가장 먼저 추가된 키 1개를 제거 (FIFO, LRU 아님)
    - 기존 키를 다시 set 해도 순서는 최초 추가 위치 그대로 유지
    """

    def __init__(self, ttl: float, max_size: int):
        self.ttl = ttl
        self.max_size = max_size
        self._store: Dict[str, CacheEntry[T]] = {}

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: str) -> bool:
        entry = self._store.get(key)
        return entry is not None and time.time() < entry.expires_at

    def get(self, key: str) -> Optional[T]:
        entry = self._store.get(key)
        if entry is None:
            return None
        if time.time() >= entry.expires_at:
            del self._store[key]
            return None
        return entry.value

    def set(self, key: str, value: T, ttl: Optional[float] = None) -> None:
        lifetime = ttl if ttl is not None else self.ttl
        if key not in self._store and len(self._store) >= self.max_size:
            oldest_key = next(iter(self._store), None)
            if oldest_key is not None:
                del self._store[oldest_key]
        self._store[key] = CacheEntry(value=value, expires_at=time.time() + lifetime)

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()

    async def wrap(self, key: str, producer: Callable[[], Awaitable[T]], ttl: Optional[float] = None) -> T:
        """캐시 조회 후 없으면 producer 1회 실행 + 결과 저장 (실패는 저장하지 않음)"""
        cached = self.get(key)
        if cached is not None:
            return cached
        value = await producer()
        self.set(key, value, ttl)
        return value


def create_composite_key(parts: Iterable[Any]) -> str:
    """여러 값을 하나의 캐시 키 문자열로 변환

    Example:
        ```python
        create_composite_key(["kms", 1, None, "abc"])  # "kms::1::::abc"
        ```
    """
    return COMPOSITE_KEY_DELIMITER.join("" if part is None else str(part) for part in parts)


class RequestMemoizer:
    """TTLCache + 비동기 producer 조합 (read-through 캐싱)

    Args:
        cache (TTLCache | None): None이면 캐시를 사용하지 않고 매번 producer 호출
        single_flight (bool): True면 같은 키의 동시 요청이 하나의 producer 결과를 공유
    """

    def __init__(self, cache: Optional[TTLCache] = None, *, single_flight: bool = False):
        self.cache = cache
        self.single_flight = single_flight
        self._inflight: Dict[str, asyncio.Future] = {}

    @classmethod
    def from_options(cls, options: CacheOptions, *, single_flight: bool = False) -> "RequestMemoizer":
        if not options.enabled:
            return cls(None, single_flight=single_flight)
        return cls(TTLCache(ttl=options.ttl, max_size=options.max_size), single_flight=single_flight)

    @property
    def enabled(self) -> bool:
        return self.cache is not None

    def clear(self) -> None:
        if self.cache is not None:
            self.cache.clear()

    async def request(self, key: str, producer: Callable[[], Awaitable[T]], ttl: Optional[float] = None) -> T:
        if self.cache is None:
            return await producer()

        cached = self.cache.get(key)
        if cached is not None:
            return cached

        if not self.single_flight:
            value = await producer()
            self.cache.set(key, value, ttl)
            return value

        # 동일키 조회 확인
        inflight = self._inflight.get(key)
        if inflight is not None:
            # wait()는 대기자 자신의 취소만 전파
            await asyncio.wait({inflight})
            if inflight.cancelled():
                # 먼저 조회한 호출이 취소됨, 직접 다시 조회
                return await self.request(key, producer, ttl)
            return inflight.result()

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            value = await producer()
        except Exception as e:
            future.set_exception(e)
            # 대기자가 없는 경우 "exception was never retrieved" 경고 방지
            future.exception()
            raise
        else:
            self.cache.set(key, value, ttl)
            future.set_result(value)
            return value
        finally:
            if not future.done():
                future.cancel()
            self._inflight.pop(key, None)
