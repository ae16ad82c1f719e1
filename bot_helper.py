import os
import gc
import random
import discord
import psutil
import difflib

from datetime import time as dt_time, timedelta, timezone
from discord.ext import commands
from discord.ext import tasks

from bot_logger import logger
from config import BOT_COMMAND_PREFIX
from config import CACHE_CLEAR_HOUR
from config import PRESENCE_UPDATE_INTERVAL
from typing import List

KST = timezone(timedelta(hours=9))

games: List[str] = [
    "MapleStory",
    "MapleStory M",
    "MapleStory Worlds",
    "메이플스토리 (테스트 서버)",
]


def _memory_usage_mb() -> float:
    process = psutil.Process(os.getpid())
    return process.memory_info().rss / 1024**2


# 매일 CACHE_CLEAR_HOUR시(KST) API 캐시 초기화 + 메모리 정리
@tasks.loop(time=dt_time(hour=CACHE_CLEAR_HOUR, tzinfo=KST))
async def daily_cache_flush(services):
    cleared: int = services.clear_cache()
    gc.collect()
    logger.info(f"Daily cache flush: {cleared} entries cleared")
    logger.info(f"Current memory usage: {_memory_usage_mb():.2f} MB")


# 봇 현재상태 주기적 갱신
@tasks.loop(minutes=PRESENCE_UPDATE_INTERVAL)
async def update_bot_presence(bot: commands.Bot):
    random_game = random.choice(games)
    await bot.change_presence(
        status=discord.Status.online,
        activity=discord.Game(name=f"{BOT_COMMAND_PREFIX.strip()} 명령어 | {random_game}")
    )


def build_command_help(prefix: str, attempt: str, command: commands.Command) -> str:
    """단일 커맨드의 사용법 (help, usage) 문자열 생성

    Args:
        prefix (str): 명령어 접두사
        attempt (str): 사용자가 입력한 명령어
        command (commands.Command): 명령어 객체

    Returns:
        str: 명령어의 help 문자열
    """
    desc = command.help or "설명이 없어양"

    if command.usage:
        usage = f"`{prefix}{attempt} {command.usage}`"
    else:
        usage = f"`{prefix}{attempt}`"
    return (
        f"**{attempt} 명령어 사용법**\n"
        f"- 사용법: {usage}\n"
        f"- 설명: {desc}\n"
    )


def build_help_embed(bot: commands.Bot, prefix: str, region_label: str) -> discord.Embed:
    """등록된 명령어 목록 Embed (숨김 명령어 제외)"""
    embed = discord.Embed(
        title=f"메이플스토리 명령어 목록 ({region_label})",
        description=f"캐릭터명을 생략하면 바인딩된 캐릭터로 조회해양! (`{prefix}바인딩 캐릭터명`)",
        color=discord.Color.blue(),
    )
    for command in sorted(bot.commands, key=lambda c: c.name):
        if command.hidden:
            continue
        usage = f" {command.usage}" if command.usage else ""
        embed.add_field(
            name=f"{prefix}{command.name}{usage}",
            value=command.help or "설명이 없어양",
            inline=False,
        )
    embed.set_footer(text="Data Based on Nexon Open API")
    return embed


def resolve_command(bot: commands.Bot, attempt: str):
    norm = attempt.strip()
    if not norm:
        return None, ""

    invoke = norm.split()[0]
    cmd = bot.get_command(invoke)
    return cmd, invoke


def build_command_hint(bot: commands.Bot, attempt: str) -> str:
    """없는 명령어 입력시 유사한 명령어를 찾아 힌트 문자열 생성

    Args:
        bot (commands.Bot): discord 봇 인스턴스
        attempt (str): 사용자가 입력한 명령어

    Returns:
        str: 유사한 명령어 힌트 문자열
    """
    all_names = []
    for c in bot.commands:
        if c.hidden:
            continue
        all_names.append(c.name)
        all_names.extend(c.aliases)
    matches = difflib.get_close_matches(attempt, all_names, n=3, cutoff=0.6)
    return f"혹시 '{', '.join(matches)}' 명령어를 말하시는 거에양?" if matches else ""
