import logging
from dateutil import parser

from pytz import timezone
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional


# 지역별 Nexon Open API 기준 시간대
REGION_TIMEZONES: Dict[str, str] = {
    "kms": "Asia/Seoul",
    "tms": "Asia/Taipei",
    "msea": "Asia/Singapore",
}


class KstFormatter(logging.Formatter):
    """logging.Formatter이 KST 포맷을 사용하도록 커스텀

    Args:
        logging (Formatter): 기본 logging.Formatter 클래스
        datefmt (str): 날짜 포맷 문자열, 기본값은 '%Y-%m-%d %H:%M:%S'

    Returns:
        str: KST로 포맷된 날짜 문자열
    """
    def formatTime(self, record, datefmt=None):
        kst = timezone('Asia/Seoul')
        dt = datetime.fromtimestamp(record.created, tz=kst)
        if datefmt:
            return dt.strftime(datefmt)
        else:
            return dt.strftime('%Y-%m-%d %H:%M:%S')


def region_today(region: str, now: Optional[datetime] = None) -> date:
    """지역 시간대 기준 오늘 날짜"""
    tz = timezone(REGION_TIMEZONES.get(region, "Asia/Seoul"))
    if now is None:
        return datetime.now(tz=tz).date()
    if now.tzinfo is None:
        now = tz.localize(now)
    return now.astimezone(tz).date()


def recent_date_params(region: str, days: int, now: Optional[datetime] = None) -> List[str]:
    """최근 N일의 조회용 날짜 문자열 (오래된 날짜 -> 최신 날짜 순)

    Nexon Open API 일자별 데이터는 다음날 제공되므로 어제부터 계산

    Example:
        ```python
        recent_date_params("kms", 3, now=datetime(2025, 7, 21, 12))
        # ["2025-07-18", "2025-07-19", "2025-07-20"]
        ```
    """
    yesterday = region_today(region, now) - timedelta(days=1)
    return [
        (yesterday - timedelta(days=offset)).strftime("%Y-%m-%d")
        for offset in range(days - 1, -1, -1)
    ]


def format_date(value: Optional[str | date | datetime]) -> str:
    """날짜를 YYYY-MM-DD 형태로 변환 (변환 불가시 '--')"""
    if not value:
        return "--"
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y-%m-%d")
    try:
        return parser.isoparse(str(value).strip()).strftime("%Y-%m-%d")
    except (ValueError, OverflowError):
        return "--"
