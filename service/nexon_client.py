from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Any, Dict, List, Optional

import httpx

from bot_logger import logger
from config import ServiceOptions
from exceptions.client_exceptions import (
    NexonAPIBadRequest,
    NexonAPICharacterNotFound,
    NexonAPIDataNotReady,
    NexonAPIError,
    nexon_api_error_handler,
)
from service.cache import RequestMemoizer, create_composite_key
from service.entities import (
    ArtifactSummary,
    BasicSnapshot,
    CharacterEquipment,
    CharacterInfo,
    CharacterRanking,
    CharacterSummary,
    RaiderSummary,
    RankingRecord,
    RankingSummary,
    UnionOverview,
    UnionReport,
)
from service.maplestory_utils import (
    build_experience_series,
    build_ranking_summary,
    map_character_basic,
    map_equipment_item,
    map_equipment_title,
    map_ranking_record,
    map_union,
    map_union_artifact,
    map_union_raider,
)
from utils.time import format_date, recent_date_params


# 지역별 Nexon Open API 경로 prefix
REGION_PATH_PREFIX: Dict[str, str] = {
    "kms": "/maplestory/v1",
    "tms": "/maplestorytw/v1",
    "msea": "/maplestorysea/v1",
}

# 종합 랭킹 API를 제공하는 지역
RANKING_REGIONS = frozenset({"kms", "tms"})
# 종합 랭킹 1페이지당 인원
RANKING_PAGE_SIZE: int = 200
# 429 응답 재시도 횟수
MAX_RETRY_TOO_MANY_REQUESTS: int = 5


class maplestory_service_url:
    ocid: str = "/id"
    basic_info: str = "/character/basic"
    item_equipment: str = "/character/item-equipment"
    union: str = "/user/union"
    union_raider: str = "/user/union-raider"
    union_artifact: str = "/user/union-artifact"
    ranking_overall: str = "/ranking/overall"


class APIRateLimiter:
    """초당 요청 수 제한 (sliding window)"""
    def __init__(self, max_calls: int, period: float = 1.0):
        self.max_calls = max_calls
        self.period = period
        self.calls = deque()
        self._lock = asyncio.Lock()

    async def acquire(self):
        while True:
            async with self._lock:
                now = time.monotonic()
                while self.calls and (now - self.calls[0]) >= self.period:
                    self.calls.popleft()

                if len(self.calls) < self.max_calls:
                    self.calls.append(now)
                    return

                wait = self.period - (now - self.calls[0])
            await asyncio.sleep(wait)


def _retry_after_seconds(response: httpx.Response) -> float:
    retry_after = response.headers.get("Retry-After")
    try:
        return float(retry_after) if retry_after else 1.0
    except ValueError:
        return 1.0


class MapleClient:
    """Nexon Open API (메이플스토리) 비동기 클라이언트

    Args:
        options (ServiceOptions): 지역, API 키, 타임아웃 등 설정값
        memoizer (RequestMemoizer): 모든 GET 요청 결과를 캐싱하는 래퍼
        http_client (httpx.AsyncClient, optional): 외부에서 주입하는 클라이언트 (테스트용)

    Notes:
        - 모든 조회는 (지역, 경로, 파라미터) 조합 키로 캐싱됨
        - 실패한 요청은 캐싱되지 않음
    """

    def __init__(
            self,
            options: ServiceOptions,
            memoizer: RequestMemoizer,
            http_client: Optional[httpx.AsyncClient] = None,
        ):
        if options.region not in REGION_PATH_PREFIX:
            raise ValueError(f"unsupported region: {options.region}")
        self.options = options
        self.region = options.region
        self.memoizer = memoizer
        self.rate_limiter = APIRateLimiter(max_calls=max(1, options.rps_limit), period=1.0)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=options.base_url,
            timeout=httpx.Timeout(options.timeout, connect=min(5.0, options.timeout)),
            event_hooks={"request": [self._rate_limit_request]},
            headers={"x-nxopen-api-key": options.api_key},
        )

    @property
    def supports_ranking(self) -> bool:
        return self.region in RANKING_REGIONS

    async def _rate_limit_request(self, request: httpx.Request):
        await self.rate_limiter.acquire()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _path(self, service_url: str) -> str:
        return f"{REGION_PATH_PREFIX[self.region]}{service_url}"

    async def _request(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"x-nxopen-api-key": self.options.api_key}
        response = await self._client.get(path, params=params, headers=headers)

        retry = 0
        while response.status_code == 429 and retry < MAX_RETRY_TOO_MANY_REQUESTS:
            retry += 1
            wait_time = _retry_after_seconds(response)
            logger.warning(f"Nexon API 429 ({path}), retry {retry}/{MAX_RETRY_TOO_MANY_REQUESTS} after {wait_time}s")
            await asyncio.sleep(wait_time)
            response = await self._client.get(path, params=params, headers=headers)

        if response.status_code == 200:
            try:
                payload = response.json()
            except ValueError as e:
                raise NexonAPIError(f"200 : invalid json response ({path})") from e
            if not isinstance(payload, dict):
                raise NexonAPIError(f"200 : unexpected response type ({path})")
            return payload

        nexon_api_error_handler(response)

    async def _get(self, service_url: str, **params: Any) -> Dict[str, Any]:
        """캐싱된 GET 요청 (None 파라미터는 제외)"""
        path = self._path(service_url)
        query = {key: value for key, value in params.items() if value is not None}
        key = create_composite_key(
            [self.region, path, *[f"{name}={query[name]}" for name in sorted(query)]]
        )
        return await self.memoizer.request(key, lambda: self._request(path, query))

    async def get_ocid(self, character_name: str) -> str:
        """캐릭터 이름으로 OCID 조회

        Raises:
            NexonAPICharacterNotFound: 존재하지 않는 캐릭터 (400 응답 또는 OCID 누락)
        """
        name = character_name.strip()
        if not name:
            raise NexonAPICharacterNotFound("캐릭터 이름이 비어있어양")
        try:
            payload = await self._get(maplestory_service_url.ocid, character_name=name)
        except NexonAPIBadRequest as e:
            raise NexonAPICharacterNotFound(f"Character not found: {name}", code=e.code) from e

        ocid = payload.get("ocid")
        if not ocid:
            raise NexonAPICharacterNotFound("OCID not found in response")
        return str(ocid)

    async def get_character_basic(self, ocid: str, date: Optional[str] = None) -> CharacterSummary:
        payload = await self._get(maplestory_service_url.basic_info, ocid=ocid, date=date)
        return map_character_basic(payload)

    async def get_union(self, ocid: str) -> UnionOverview:
        payload = await self._get(maplestory_service_url.union, ocid=ocid)
        return map_union(payload)

    async def get_union_raider(self, ocid: str) -> RaiderSummary:
        payload = await self._get(maplestory_service_url.union_raider, ocid=ocid)
        return map_union_raider(payload)

    async def get_union_artifact(self, ocid: str) -> ArtifactSummary:
        payload = await self._get(maplestory_service_url.union_artifact, ocid=ocid)
        return map_union_artifact(payload)

    async def get_item_equipment(self, ocid: str) -> CharacterEquipment:
        payload = await self._get(maplestory_service_url.item_equipment, ocid=ocid)
        items = [
            map_equipment_item(item)
            for item in (payload.get("item_equipment") or [])
            if isinstance(item, dict)
        ]
        return CharacterEquipment(ocid=ocid, items=items, title=map_equipment_title(payload.get("title")))

    async def get_overall_ranking(
            self,
            ocid: Optional[str] = None,
            world: Optional[str] = None,
            page: Optional[int] = None,
            date: Optional[str] = None,
        ) -> List[RankingRecord]:
        """종합 랭킹 조회 (date 미지정 시 지역 기준 어제 날짜)

        Raises:
            NexonAPIError: 랭킹 API를 제공하지 않는 지역
        """
        if not self.supports_ranking:
            raise NexonAPIError(f"ranking is not provided in region {self.region}")
        if date is None:
            date = recent_date_params(self.region, 1)[0]
        payload = await self._get(
            maplestory_service_url.ranking_overall,
            date=date,
            ocid=ocid,
            world_name=world,
            page=page,
        )
        return [
            map_ranking_record(entry)
            for entry in (payload.get("ranking") or [])
            if isinstance(entry, dict)
        ]

    async def get_recent_basic_history(self, ocid: str, days: int) -> List[BasicSnapshot]:
        """최근 N일 일자별 레벨/경험치 (오래된 날짜 -> 최신 날짜 순)

        데이터 준비중(OPENAPI00009)인 날짜는 경고 로그 후 건너뜀
        """
        snapshots: List[BasicSnapshot] = []
        for date in recent_date_params(self.region, days):
            try:
                payload = await self._get(maplestory_service_url.basic_info, ocid=ocid, date=date)
            except NexonAPIDataNotReady:
                logger.warning(f"Nexon API 데이터 준비중 ({date})")
                continue
            level = payload.get("character_level")
            exp = payload.get("character_exp")
            snapshot_date = format_date(payload.get("date"))
            snapshots.append(
                BasicSnapshot(
                    date=snapshot_date if snapshot_date != "--" else date,
                    level=int(level) if level is not None else 0,
                    exp=int(exp) if exp is not None else None,
                )
            )
        return snapshots

    async def _experience_series(self, ocid: str):
        try:
            history = await self.get_recent_basic_history(ocid, self.options.experience_days)
        except NexonAPIError as e:
            logger.warning(f"경험치 히스토리 조회 실패, 생략 (ocid={ocid}): {e}")
            return []
        return build_experience_series(history)

    async def fetch_character_info(self, character_name: str, *, with_experience: bool = True) -> CharacterInfo:
        """캐릭터 기본정보 + 유니온 + 경험치 추이

        유니온/경험치 조회 실패는 무시하고 기본정보만 반환
        """
        ocid = await self.get_ocid(character_name)
        summary = await self.get_character_basic(ocid)

        union: Optional[UnionOverview] = None
        try:
            union = await self.get_union(ocid)
        except NexonAPIError as e:
            if self.options.debug:
                logger.warning(f"유니온 정보 조회 실패, 기본정보만 반환 (ocid={ocid}): {e}")

        experience = await self._experience_series(ocid) if with_experience else []
        return CharacterInfo(ocid=ocid, summary=summary, union=union, experience=experience)

    async def fetch_equipments(self, character_name: str) -> CharacterEquipment:
        ocid = await self.get_ocid(character_name)
        return await self.get_item_equipment(ocid)

    async def fetch_ranking(self, character_name: str, days: int = 3) -> CharacterRanking:
        """최근 N일 종합 랭킹 기록 (최신순)

        랭킹 조회 실패는 예외 대신 available=False + 안내 메시지로 반환
        """
        ocid = await self.get_ocid(character_name)

        if not self.supports_ranking:
            return CharacterRanking(
                ocid=ocid,
                records=[],
                available=False,
                message="현재 지역은 공식 랭킹 조회를 지원하지 않아양",
            )

        records: List[RankingRecord] = []
        try:
            for date in reversed(recent_date_params(self.region, days)):
                try:
                    ranking = await self.get_overall_ranking(ocid=ocid, date=date)
                except NexonAPIDataNotReady:
                    logger.warning(f"랭킹 데이터 준비중 ({date})")
                    continue
                records.extend(ranking[:1])
        except NexonAPIError as e:
            if self.options.debug:
                logger.warning(f"랭킹 조회 실패 (ocid={ocid}): {e}")
            code = f" ({e.code})" if e.code else ""
            return CharacterRanking(
                ocid=ocid,
                records=[],
                available=False,
                message=f"랭킹 정보를 가져오지 못했어양{code}",
            )

        if not records:
            return CharacterRanking(
                ocid=ocid,
                records=[],
                available=False,
                message="해당 날짜의 랭킹 기록을 찾지 못했어양",
            )

        records.sort(key=lambda r: r.date, reverse=True)
        return CharacterRanking(ocid=ocid, records=records, available=True)

    async def fetch_ranking_neighbors(self, ocid: str, character_name: str) -> RankingSummary:
        """캐릭터가 포함된 랭킹 페이지에서 앞뒤 순위 요약 (리포트용)"""
        if not self.supports_ranking:
            return build_ranking_summary(
                character_name, [], available=False,
                message="현재 지역은 공식 랭킹 조회를 지원하지 않아양",
            )
        try:
            own = await self.get_overall_ranking(ocid=ocid)
            if not own:
                return build_ranking_summary(character_name, [], available=False)
            page = (own[0].ranking - 1) // RANKING_PAGE_SIZE + 1
            records = await self.get_overall_ranking(page=page)
        except NexonAPIError as e:
            logger.warning(f"주변 랭킹 조회 실패 (ocid={ocid}): {e}")
            return build_ranking_summary(
                character_name, [], available=False, message="랭킹 정보를 가져오지 못했어양",
            )
        return build_ranking_summary(character_name, records or own)

    async def fetch_union_report(self, character_name: str) -> UnionReport:
        """유니온 / 공격대 / 아티팩트 / 경험치 추이 종합"""
        ocid = await self.get_ocid(character_name)
        summary = await self.get_character_basic(ocid)
        union, raider, artifact = await asyncio.gather(
            self.get_union(ocid),
            self.get_union_raider(ocid),
            self.get_union_artifact(ocid),
        )
        experience = await self._experience_series(ocid)
        return UnionReport(
            ocid=ocid,
            summary=summary,
            union=union,
            raider=raider,
            artifact=artifact,
            experience=experience,
        )
