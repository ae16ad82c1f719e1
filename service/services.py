from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from discord.ext import commands

from config import ScouterOptions, ServiceOptions, get_region_label
from service.cache import RequestMemoizer
from service.maplescouter_client import ScouterClient
from service.nexon_client import MapleClient
from service.renderer import HtmlRenderer
from service.user_history import UserHistoryStore
from utils.dbconnector import AsyncDBConnector


@dataclass
class MapleServices:
    """명령어 핸들러가 공유하는 서비스 묶음 (main.py에서 1회 생성)"""
    options: ServiceOptions
    memoizer: RequestMemoizer
    client: MapleClient
    history: UserHistoryStore
    renderer: Optional[HtmlRenderer] = None
    scouter: Optional[ScouterClient] = None
    db: Optional[AsyncDBConnector] = None
    bot: Optional[commands.Bot] = None

    @classmethod
    def build(
            cls,
            options: ServiceOptions,
            *,
            scouter_options: Optional[ScouterOptions] = None,
            render_url: str = "",
            render_timeout: float = 20,
            dsn: str = "",
            bot: Optional[commands.Bot] = None,
        ) -> "MapleServices":
        memoizer = RequestMemoizer.from_options(options.cache)
        db = AsyncDBConnector(dsn) if dsn and options.allow_binding else None
        return cls(
            options=options,
            memoizer=memoizer,
            client=MapleClient(options, memoizer),
            history=UserHistoryStore(db, options.allow_binding),
            renderer=HtmlRenderer(render_url, timeout=render_timeout) if render_url else None,
            scouter=ScouterClient(scouter_options, memoizer, region=options.region) if scouter_options else None,
            db=db,
            bot=bot,
        )

    @property
    def region(self) -> str:
        return self.options.region

    @property
    def region_label(self) -> str:
        return get_region_label(self.options.region)

    def clear_cache(self) -> int:
        """메모리 캐시 초기화, 삭제된 항목 수 반환"""
        if self.memoizer.cache is None:
            return 0
        size = len(self.memoizer.cache)
        self.memoizer.clear()
        return size

    async def aclose(self) -> None:
        await self.client.aclose()
        if self.scouter is not None:
            await self.scouter.aclose()
        if self.renderer is not None:
            await self.renderer.aclose()
        if self.db is not None:
            await self.db.disconnect()
