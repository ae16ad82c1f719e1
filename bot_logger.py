import asyncio
import logging
import time
import traceback

from discord.ext import commands
from typing import Optional

from logging import Logger
from functools import wraps
import inspect

import config as config
from utils.time import KstFormatter
from utils.text import SENSITIVE_KEYS
from exceptions.base import BotWarning
from exceptions.command_exceptions import CommandFailure


# Logger configuration
logger: Logger = logging.getLogger('discord_bot_logger')
logger.setLevel(logging.INFO)
formatter = KstFormatter('[%(asctime)s] %(levelname)s : %(message)s', datefmt='%Y-%m-%d %H:%M:%S')

if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _short_str(s: str, max_len: int = 80) -> str:
    s = repr(s)
    return s if len(s) <= max_len else s[:max_len-3] + "..."


def _is_discord_context(x) -> bool:
    return x.__class__.__module__.startswith("discord") and "Context" in x.__class__.__name__


def _command_user(args) -> Optional[int]:
    """명령어 인자 중 Context의 사용자 ID"""
    for arg in args:
        author = getattr(arg, "author", None)
        if author is not None:
            return getattr(author, "id", None)
    return None


def _format_arg(x, max_len: int = 80) -> str:
    if isinstance(x, (int, float, bool, type(None))):
        return repr(x)
    if isinstance(x, str):
        return _short_str(x, max_len)

    # Discord Context 요약
    if _is_discord_context(x):
        guild_id = getattr(getattr(x, "guild", None), "id", None)
        chan_id = getattr(getattr(x, "channel", None), "id", None)
        return f"<Context guild={guild_id} channel={chan_id} user={_command_user([x])}>"

    # MapleServices: 지역과 캐시 상태만
    options = getattr(x, "options", None)
    memoizer = getattr(x, "memoizer", None)
    if options is not None and memoizer is not None:
        cache_size = len(memoizer.cache) if memoizer.cache is not None else "off"
        return f"<{type(x).__name__} region={options.region} cache={cache_size}>"

    return f"<{type(x).__name__}>"


def _format_bound_args(func, args, kwargs) -> str:
    bound = inspect.signature(func).bind_partial(*args, **kwargs)
    parts = []
    for k, v in bound.arguments.items():
        # 민감 키 마스킹
        if any(s in k.lower() for s in SENSITIVE_KEYS):
            parts.append(f"{k}=<redacted>")
        else:
            parts.append(f"{k}={_format_arg(v)}")
    return ", ".join(parts)


def _safe_arg_info(func, args, kwargs) -> str:
    try:
        return _format_bound_args(func, args, kwargs)
    except TypeError:
        return "<arg-format-error>"


def log_command(func: callable = None, *, alt_func_name: Optional[str] = None):
    """봇 명령어 실행을 기록하고, 소요시간 및 예외를 로깅

    Args:
        func (callable, optional): 로깅할 비동기 함수. Defaults to None.
        alt_func_name (str, optional): 로그에 함께 남길 명령어 표시 이름 (예: "븜 정보")

    Example:
        ```python
        @log_command(alt_func_name="븜 정보")
        async def maple_info(ctx, services, character_name):
            ...
        ```
          - [2025-07-21 17:30:00] INFO : maple_info(븜 정보) user=42 success (0.123s)
    Raises:
        BotWarning: 경고로 로깅 후 정상 종료
          - [2025-07-21 17:30:00] WARNING : maple_info(븜 정보) user=42 warning (0.123s) 경고 메세지

        CommandFailure: 사용자 안내가 끝난 실패, traceback 없이 ERROR 로깅 후 재발생
        Exception: ERROR 로깅 후 재발생 (DEBUG_MODE면 인자 + traceback 포함)
    """
    def decorator(inner_func):
        name = f"{inner_func.__name__}({alt_func_name})" if alt_func_name else inner_func.__name__

        @wraps(inner_func)
        async def wrapper(*args, **kwargs):
            label = f"{name} user={_command_user(args)}"
            start_time = time.time()
            try:
                result = await inner_func(*args, **kwargs)
            except BotWarning as w:
                logger.warning(f"{label} warning ({time.time() - start_time:.3f}s) {w}")
                return None
            except CommandFailure as e:
                elapsed = time.time() - start_time
                if config.DEBUG_MODE:
                    logger.error(f"{label} failed ({elapsed:.3f}s) {e}\n[{_safe_arg_info(inner_func, args, kwargs)}]")
                else:
                    logger.error(f"{label} failed ({elapsed:.3f}s) {e}")
                raise
            except Exception as e:
                elapsed = time.time() - start_time
                if config.DEBUG_MODE:
                    arg_info = _safe_arg_info(inner_func, args, kwargs)
                    logger.error(f"{label} error ({elapsed:.3f}s) {e}\n[{arg_info}]\n{traceback.format_exc()}")
                else:
                    logger.error(f"{label} error ({elapsed:.3f}s) {e}")
                raise

            elapsed = time.time() - start_time
            if config.DEBUG_MODE:
                logger.info(f"{label} success ({elapsed:.3f}s)\n[{_safe_arg_info(inner_func, args, kwargs)}]")
            else:
                logger.info(f"{label} success ({elapsed:.3f}s)")
            return result
        return wrapper

    if func is not None and callable(func):
        return decorator(func)

    return decorator


def with_timeout(timeout_seconds: int = config.COMMAND_TIMEOUT):
    """비동기 명령어에 타임아웃을 적용하는 데코레이터

    Args:
        timeout_seconds (int): 타임아웃 시간(초)

    Returns:
        callable: 타임아웃이 적용된 비동기 함수
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(ctx: commands.Context, *args, **kwargs):
            try:
                return await asyncio.wait_for(func(ctx, *args, **kwargs), timeout=timeout_seconds)
            except asyncio.TimeoutError:
                logger.warning(f"{func.__name__} timeout ({timeout_seconds} seconds)")
                await ctx.send(f"⏰ 명령어 최대 시간({timeout_seconds}초) 초과로 취소되었어양")
        return wrapper
    return decorator
