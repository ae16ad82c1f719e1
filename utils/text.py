import math
from typing import Optional


SENSITIVE_KEYS = {"token", "password", "passwd", "secret", "key", "apikey", "authorization", "cookie", "session", "bearer"}


def _to_number(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    try:
        numeric = float(str(value).replace(",", "").strip())
    except ValueError:
        return None
    return numeric if math.isfinite(numeric) else None


def format_number(value) -> str:
    """천 단위 콤마 (변환 불가시 '--')"""
    numeric = _to_number(value)
    if numeric is None:
        return "--"
    if numeric.is_integer():
        return f"{int(numeric):,}"
    return f"{numeric:,.2f}".rstrip("0").rstrip(".")


def format_percent(value) -> str:
    """경험치 퍼센트 표기 ("75.321" / "75.321%" -> "75.321%")"""
    if value is None:
        return "--"
    text = str(value).strip().rstrip("%")
    if _to_number(text) is None:
        return "--"
    return f"{text}%"


def format_exp_value(value) -> str:
    """경험치 증가량을 영어권 단위로 변환

    Example:
        ```python
        format_exp_value(1_234_567_890)  # "1.23B"
        ```
    """
    numeric = _to_number(value)
    if not numeric:
        return "0"
    for threshold, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K")):
        if numeric >= threshold:
            return f"{numeric / threshold:.2f}{suffix}"
    return f"{numeric:.0f}"


def format_number_compact(value) -> str:
    """큰 숫자를 한글 단위로 축약 (예: 2억 9558만 -> "2.96 억")"""
    numeric = _to_number(value)
    if numeric is None:
        return "--"
    if numeric >= 100_000_000:
        return f"{numeric / 100_000_000:.2f} 억"
    if numeric >= 10_000:
        return f"{numeric / 10_000:.2f} 만"
    return format_number(numeric)


def preprocess_int_with_korean(input_val: str | int) -> str:
    """숫자로된 문자열을 한글 단위로 변환

    Args:
        input_val (str): 숫자로된 문자열, 예: "209558569"

    Returns:
        str: 한글 단위로 변환된 문자열, 예: "2억 955만 8569"
    """
    number: int = int(str(input_val).replace(',', '').replace(' ', ''))
    if number < 10_000:
        return str(number)

    # 조, 억, 만, 그 이하 단위 분리
    parts = []
    rest = number
    for unit_size, unit_name in ((1_000_000_000_000, "조"), (100_000_000, "억"), (10_000, "만")):
        quotient, rest = divmod(rest, unit_size)
        if quotient:
            parts.append(f"{quotient}{unit_name}")
    if rest:
        parts.append(str(rest))
    return " ".join(parts)


def format_access_flag(flag: Optional[str]) -> str:
    if flag == "true":
        return "최근 7일 이내 접속함"
    if flag == "false":
        return "최근 7일 이내 접속하지 않음"
    return "접속 여부 알 수 없음"


def rank_to_emoji(rank: int) -> str:
    """순위를 이모지로 변환

    Note:
        4위 이상은 그냥 "4", "5" 형태로 반환
    """
    rank_emojis = {
        1 : "🥇",
        2 : "🥈",
        3 : "🥉",
    }
    return rank_emojis.get(rank, str(rank))
