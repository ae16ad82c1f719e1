import os
from dataclasses import dataclass
from typing import Dict, Literal, Optional

from dotenv import load_dotenv

from datetime import datetime
from pytz import timezone

from exceptions.base import BotConfigFailed

MapleRegion = Literal["kms", "tms", "msea"]

# env 파일 loading (없으면 OS 환경변수만 사용)
load_dotenv('./env/token.env')
load_dotenv('./env/nexon.env')
load_dotenv('./env/service.env')


def _env_str(name: str, default: str = "") -> str:
    value = os.getenv(name)
    return value.strip() if value is not None else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip())
    except ValueError as e:
        raise BotConfigFailed(f"{name} must be an integer (got {raw!r})") from e


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


# Discord Bot Token (실제 검사는 main.py 시작 시점)
BOT_TOKEN_RUN: str = _env_str('PYTHON_RUN_ENV', 'dev')
BOT_TOKEN: Optional[str] = os.getenv(f'bot_token_{BOT_TOKEN_RUN}', None)
BOT_COMMAND_PREFIX: str = os.getenv('BOT_COMMAND_PREFIX', '븜 ')

# Nexon Open API
NEXON_API_KEY: str = _env_str('NEXON_API_KEY')
NEXON_API_HOME: str = _env_str('NEXON_API_HOME', 'https://open.api.nexon.com').rstrip('/')
MAPLE_REGION: str = _env_str('MAPLE_REGION', 'kms').lower()
NEXON_API_TIMEOUT: int = _clamp(_env_int('NEXON_API_TIMEOUT', 8), 2, 20)  # seconds
if BOT_TOKEN_RUN == 'dev':
    NEXON_API_RPS_LIMIT: int = _env_int('NEXON_API_RPS_LIMIT', 5)  # 개발 환경에서는 낮은 제한
else:
    NEXON_API_RPS_LIMIT: int = _env_int('NEXON_API_RPS_LIMIT', 500)  # 운영 환경에서는 높은 제한

# 경험치 히스토리 조회 일수
EXPERIENCE_DAYS: int = _clamp(_env_int('EXPERIENCE_DAYS', 7), 3, 14)

# API 응답 메모리 캐시
CACHE_ENABLED: bool = _env_bool('CACHE_ENABLED', True)
CACHE_TTL: int = _env_int('CACHE_TTL', 300)  # seconds
CACHE_MAX_SIZE: int = _env_int('CACHE_MAX_SIZE', 512)
CACHE_CLEAR_HOUR: int = _clamp(_env_int('CACHE_CLEAR_HOUR', 6), 0, 23)  # KST, 매일 캐시 초기화 시각

# 사용자 - 캐릭터 바인딩
ALLOW_BINDING: bool = _env_bool('ALLOW_BINDING', True)
POSTGRES_DSN: str = _env_str('POSTGRES_DSN')

# MapleScouter (비공식 환산 API)
SCOUTER_API_HOME: str = _env_str('SCOUTER_API_HOME', 'https://api.maplescouter.com/api').rstrip('/')
SCOUTER_API_KEY: str = _env_str('SCOUTER_API_KEY')
SCOUTER_PRESET: str = _env_str('SCOUTER_PRESET', '0')

# HTML -> 이미지 렌더링 서비스 (headless browser)
RENDER_SERVICE_URL: str = _env_str('RENDER_SERVICE_URL')
RENDER_TIMEOUT: int = _env_int('RENDER_TIMEOUT', 20)  # seconds

# 봇 명령어 timeout 설정 (초)
COMMAND_TIMEOUT: int = _env_int('COMMAND_TIMEOUT', 30)  # seconds
# 이름 입력 대기시간 (초)
NAME_PROMPT_TIMEOUT: int = 60  # seconds

# configuration variables
PRESENCE_UPDATE_INTERVAL: int = 30  # minutes

# Bot 시작 시간 기록
BOT_START_DT: datetime = datetime.now(timezone('Asia/Seoul'))
BOT_START_TIME_STR: str = BOT_START_DT.strftime('%Y-%m-%d %H:%M:%S')
BOT_VERSION: str = f"v20251019-{BOT_TOKEN_RUN}"

# 디버그 모드 설정
if BOT_TOKEN_RUN == 'dev':
    DEBUG_MODE: bool = True
else:
    # 운영 환경에서는 디버그 모드 OFF
    # (디버그 모드가 켜져있으면, 봇 명령어 실행 시 로깅이 더 자세하게 기록됨)
    DEBUG_MODE: bool = _env_bool('DEBUG_MODE', False)


REGION_LABELS: Dict[str, str] = {
    "kms": "한국 서버",
    "tms": "대만 서버",
    "msea": "동남아 서버",
}


def get_region_label(region: str) -> str:
    return REGION_LABELS.get(region, region)


@dataclass(frozen=True)
class CacheOptions:
    enabled: bool = True
    ttl: float = 300  # seconds
    max_size: int = 512


@dataclass(frozen=True)
class ServiceOptions:
    api_key: str
    region: MapleRegion = "kms"
    base_url: str = "https://open.api.nexon.com"
    timeout: float = 8  # seconds
    rps_limit: int = 5
    experience_days: int = 7
    cache: CacheOptions = CacheOptions()
    allow_binding: bool = True
    debug: bool = False


@dataclass(frozen=True)
class ScouterOptions:
    api_key: str
    base_url: str = "https://api.maplescouter.com/api"
    preset: str = "0"
    timeout: float = 8  # seconds


def validate_cache_options(options: CacheOptions) -> CacheOptions:
    """캐시 설정값 검증 (설정 로딩 시점에만 검사, 캐시 내부에서는 검사하지 않음)

    Raises:
        BotConfigFailed: ttl 또는 max_size가 0 이하인 경우
    """
    if options.ttl <= 0:
        raise BotConfigFailed(f"cache ttl must be positive (got {options.ttl})")
    if options.max_size <= 0:
        raise BotConfigFailed(f"cache max_size must be positive (got {options.max_size})")
    return options


def validate_service_options(options: ServiceOptions) -> ServiceOptions:
    """서비스 설정값 검증

    Raises:
        BotConfigFailed: 지원하지 않는 지역이거나 캐시 설정이 잘못된 경우
    """
    if options.region not in REGION_LABELS:
        raise BotConfigFailed(f"unsupported region: {options.region}")
    validate_cache_options(options.cache)
    return options


def load_service_options() -> ServiceOptions:
    """env 설정값으로 ServiceOptions 생성 + 검증"""
    options = ServiceOptions(
        api_key=NEXON_API_KEY,
        region=MAPLE_REGION,
        base_url=NEXON_API_HOME,
        timeout=NEXON_API_TIMEOUT,
        rps_limit=NEXON_API_RPS_LIMIT,
        experience_days=EXPERIENCE_DAYS,
        cache=CacheOptions(enabled=CACHE_ENABLED, ttl=CACHE_TTL, max_size=CACHE_MAX_SIZE),
        allow_binding=ALLOW_BINDING,
        debug=DEBUG_MODE,
    )
    return validate_service_options(options)


def load_scouter_options() -> Optional[ScouterOptions]:
    """MapleScouter 설정값 (API 키가 없으면 None -> 환산 명령어 비활성화)"""
    if not SCOUTER_API_KEY:
        return None
    return ScouterOptions(
        api_key=SCOUTER_API_KEY,
        base_url=SCOUTER_API_HOME,
        preset=SCOUTER_PRESET,
        timeout=NEXON_API_TIMEOUT,
    )
