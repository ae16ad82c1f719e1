from typing import Optional

import asyncpg
import discord
from discord.ext import commands

# bot logging 추가
from bot_logger import logger

# bot 유틸리티 함수
from bot_helper import build_command_help, resolve_command, build_command_hint, build_help_embed #도움말 예외처리
from bot_helper import daily_cache_flush, update_bot_presence # 캐시 초기화, 봇 상태 갱신

# 봇 설정값 불러오기
from config import BOT_TOKEN, BOT_COMMAND_PREFIX, NEXON_API_KEY
from config import POSTGRES_DSN, RENDER_SERVICE_URL, RENDER_TIMEOUT, CACHE_CLEAR_HOUR
from config import BOT_VERSION, BOT_START_TIME_STR
from config import load_service_options, load_scouter_options

# 디스코드 API 처리 관련 명령어
import service.maplestory_command as map_command
from service.services import MapleServices

# 봇 시작시 발생하는 예외 처리
from exceptions.base import BotInitializationError


class MapleBot(commands.Bot):
    """종료 시 메이플스토리 서비스 (httpx 클라이언트, DB pool)도 함께 정리"""

    services: Optional[MapleServices] = None

    async def close(self) -> None:
        logger.info("Bot is shutting down...")
        try:
            await super().close()
        finally:
            if self.services is not None:
                await self.services.aclose()
        logger.info("Bot has been shut down.")


def create_bot() -> MapleBot:
    """봇 인스턴스 + 메이플스토리 서비스 생성 및 명령어 등록"""
    if not NEXON_API_KEY:
        raise BotInitializationError("NEXON_API_KEY is not set")

    intents = discord.Intents.default()
    intents.message_content = True
    bot_command_prefix = BOT_COMMAND_PREFIX

    bot = MapleBot(command_prefix=bot_command_prefix, intents=intents, help_command=None)
    options = load_service_options()
    services = MapleServices.build(
        options,
        scouter_options=load_scouter_options(),
        render_url=RENDER_SERVICE_URL,
        render_timeout=RENDER_TIMEOUT,
        dsn=POSTGRES_DSN,
        bot=bot,
    )
    bot.services = services

    # 메이플스토리 명령어 등록 from service.maplestory_command as map_command
    @bot.command(name="정보", usage="[캐릭터명]", help="캐릭터 기본정보 / 유니온 / 경험치 추이 / 주변 랭킹을 보여줘양. 예: `븜 정보 마법사악`")
    async def run_maple_info(ctx: commands.Context, *, character_name: str = None):
        await map_command.maple_info(ctx, services, character_name)

    @bot.command(name="랭킹", usage="[캐릭터명]", help="캐릭터의 종합 랭킹을 조회해양. 예: `븜 랭킹 마법사악`")
    async def run_maple_rank(ctx: commands.Context, *, character_name: str = None):
        await map_command.maple_rank(ctx, services, character_name)

    @bot.command(name="장비", usage="[캐릭터명]", help="캐릭터의 장착 장비를 조회해양. 예: `븜 장비 마법사악`")
    async def run_maple_equip(ctx: commands.Context, *, character_name: str = None):
        await map_command.maple_equip(ctx, services, character_name)

    @bot.command(name="바인딩", usage="캐릭터명", help="내 캐릭터를 등록해서 이름 없이 조회할 수 있어양. 예: `븜 바인딩 마법사악`")
    async def run_maple_bind(ctx: commands.Context, *, character_name: str = None):
        await map_command.maple_bind(ctx, services, character_name)

    @bot.command(name="유니온", usage="[캐릭터명]", help="유니온 / 공격대 / 아티팩트 정보를 조회해양. 예: `븜 유니온 마법사악`")
    async def run_maple_union(ctx: commands.Context, *, character_name: str = None):
        await map_command.maple_union(ctx, services, character_name)

    @bot.command(name="환산", usage="[캐릭터명]", help="환산 사이트 기준 전투력 / 보스 환산을 조회해양. 예: `븜 환산 마법사악`", hidden=services.scouter is None)
    async def run_maple_scouter(ctx: commands.Context, *, character_name: str = None):
        await map_command.maple_scouter(ctx, services, character_name)

    @bot.command(name="명령어", aliases=["도움말", "help"])
    async def run_help(ctx: commands.Context):
        await ctx.send(embed=build_help_embed(bot, bot_command_prefix, services.region_label))


    # 봇 실행 + 캐시 초기화 반복 작업 시작
    @bot.event
    async def on_ready():
        logger.info(f"Initializing bot... {bot.user}")

        if services.db is not None and services.db.pool is None:
            try:
                await services.db.connect()
                await services.db.ensure_binding_table()
            except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
                # 바인딩 없이 계속 동작 (조회/저장은 UserHistoryStore에서 무시)
                logger.error(f"Database connection failed, binding disabled: {e}")

        await bot.change_presence(
            status=discord.Status.online,
            activity=discord.Game(name=f"{bot_command_prefix.strip()} 명령어 | 메이플스토리")
        )

        if not daily_cache_flush.is_running():
            daily_cache_flush.start(services)
        if not update_bot_presence.is_running():
            update_bot_presence.start(bot)

        if options.cache.enabled:
            cache_status = f"ON (ttl {options.cache.ttl}s, max {options.cache.max_size}, flush {CACHE_CLEAR_HOUR}시)"
        else:
            cache_status = "OFF"
        logger.info(f"MapleStory service ready: region={options.region}, cache={cache_status}")
        logger.info(f"Bot version: {BOT_VERSION} (started at {BOT_START_TIME_STR} KST)")
        logger.info(f'Logged in as... {bot.user}!!')


    @bot.event
    async def on_command_error(ctx: commands.Context, error: commands.CommandError):
        if hasattr(ctx.command, 'on_error'):
            return

        prefix = bot_command_prefix

        # 없는 명령어 처리
        if isinstance(error, commands.CommandNotFound):
            raw = ctx.message.content
            attempt_command = raw[len(prefix):].split(" ", 1)[0] if raw.startswith(prefix) else raw
            hint = build_command_hint(bot, attempt_command)
            await ctx.send(f"'{attempt_command}' 명령어는 없어양! {hint}", reference=ctx.message)
            return

        # 인자누락 처리
        if isinstance(error, commands.MissingRequiredArgument):
            attempt_command = ctx.invoked_with or (ctx.command.name if ctx.command else "")
            cmd, invoke = resolve_command(bot, attempt_command)

            if cmd:
                help_msg = build_command_help(bot_command_prefix, invoke, cmd)
                await ctx.send(f"뒤에 인자가 부족해양!\n{help_msg}", reference=ctx.message)
            else:
                await ctx.send(f"'{attempt_command}' 명령어는 없어양! `{prefix}명령어`로 사용법을 확인해보세양!", reference=ctx.message)
            return

        if isinstance(error, commands.BadArgument):
            await ctx.send(f"인자를 잘못 입력 했어양! `{prefix}명령어`로 사용법을 확인해보세양!", reference=ctx.message)
            return

        # 명령어 내부 예외는 log_command에서 이미 기록됨
        if isinstance(error, commands.CommandInvokeError):
            return

        logger.error(f"Unhandled command error: {error}")

    return bot


if __name__ == "__main__":
    if not BOT_TOKEN:
        raise BotInitializationError("Discord bot token is not set (bot_token_<PYTHON_RUN_ENV>)")
    # 봇 실행!
    create_bot().run(str(BOT_TOKEN))
