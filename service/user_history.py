"""
service/user_history.py

사용자 - 캐릭터 바인딩 저장소 및 캐릭터 이름 결정 로직

바인딩은 편의 기능이므로 DB 오류는 로그만 남기고 무시
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional

import asyncpg
from discord.ext import commands

from bot_logger import logger
from config import BOT_COMMAND_PREFIX, NAME_PROMPT_TIMEOUT
from utils.dbconnector import AsyncDBConnector

PLATFORM: str = "discord"

ResolveFailureReason = Literal["missing-name", "timeout", "empty-name"]

# 바인딩 조회/저장 중 무시하는 오류
_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


@dataclass
class UserHistoryRecord:
    user_id: str
    platform: str
    region: str
    character: str
    updated_at: Optional[datetime] = None


@dataclass
class ResolveResult:
    ok: bool
    name: Optional[str] = None
    should_persist: bool = False
    reason: Optional[ResolveFailureReason] = None
    user_id: Optional[str] = None
    platform: Optional[str] = None


class UserHistoryStore:
    def __init__(self, connector: Optional[AsyncDBConnector], allow_binding: bool):
        self.connector = connector
        self.allow_binding = allow_binding

    def can_persist(self) -> bool:
        return self.allow_binding and self.connector is not None

    async def remember(self, user_id: str, platform: str, region: str, character: str) -> None:
        if not self.can_persist():
            return
        try:
            await self.connector.upsert_binding(user_id, platform, region, character)
        except _DB_ERRORS as e:
            logger.warning(f"캐릭터 바인딩 저장 실패 (user={user_id}): {e}")

    async def lookup(self, user_id: str, platform: str, region: str) -> Optional[UserHistoryRecord]:
        if not self.can_persist():
            return None
        try:
            row = await self.connector.get_binding(user_id, platform, region)
        except _DB_ERRORS as e:
            logger.warning(f"캐릭터 바인딩 조회 실패 (user={user_id}): {e}")
            return None
        if not row:
            return None
        return UserHistoryRecord(
            user_id=user_id,
            platform=platform,
            region=region,
            character=row["character_name"],
            updated_at=row["update_at"],
        )


async def resolve_character_name(
        ctx: commands.Context,
        bot: Optional[commands.Bot],
        region: str,
        store: UserHistoryStore,
        explicit_name: Optional[str] = None,
        use_binding: bool = True,
    ) -> ResolveResult:
    """조회할 캐릭터 이름 결정

    1. 명령어에 이름이 있으면 그대로 사용 (바인딩 가능하면 저장 대상)
    2. 없으면 바인딩된 캐릭터 사용 (use_binding=False면 건너뜀)
    3. 바인딩도 없으면 이름 입력을 요청하고 NAME_PROMPT_TIMEOUT초 대기

    Returns:
        ResolveResult: 실패 시 reason = missing-name / timeout / empty-name
    """
    author = getattr(ctx, "author", None)
    user_id = str(author.id) if author is not None else None
    platform = PLATFORM if user_id else None

    normalized = explicit_name.strip() if explicit_name else ""
    if normalized:
        return ResolveResult(
            ok=True,
            name=normalized,
            should_persist=bool(user_id) and store.can_persist(),
            user_id=user_id,
            platform=platform,
        )

    if not user_id:
        return ResolveResult(ok=False, reason="missing-name")

    binding = await store.lookup(user_id, platform, region) if use_binding else None
    if binding is not None:
        return ResolveResult(ok=True, name=binding.character, user_id=user_id, platform=platform)

    if bot is None:
        return ResolveResult(ok=False, reason="missing-name")

    await ctx.send(f"조회할 캐릭터 이름을 입력해주세양 (예: {BOT_COMMAND_PREFIX}정보 캐릭터명)")

    def check(message) -> bool:
        return message.author == author and message.channel == ctx.channel

    try:
        answer = await bot.wait_for("message", check=check, timeout=NAME_PROMPT_TIMEOUT)
    except asyncio.TimeoutError:
        return ResolveResult(ok=False, reason="timeout", user_id=user_id, platform=platform)

    candidate = (answer.content or "").strip()
    if not candidate:
        return ResolveResult(ok=False, reason="empty-name", user_id=user_id, platform=platform)

    return ResolveResult(
        ok=True,
        name=candidate,
        should_persist=store.can_persist(),
        user_id=user_id,
        platform=platform,
    )
