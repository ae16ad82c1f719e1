import logging
from datetime import datetime

import pytz

from utils.text import (
    format_access_flag,
    format_exp_value,
    format_number,
    format_number_compact,
    format_percent,
    preprocess_int_with_korean,
    rank_to_emoji,
)
from utils.time import KstFormatter, format_date, recent_date_params


def test_format_number():
    assert format_number(1234567) == "1,234,567"
    assert format_number("1,000") == "1,000"
    assert format_number(12.5) == "12.5"
    assert format_number(None) == "--"
    assert format_number("abc") == "--"
    assert format_number(float("nan")) == "--"


def test_format_percent():
    assert format_percent("75.321") == "75.321%"
    assert format_percent("75.321%") == "75.321%"
    assert format_percent(None) == "--"
    assert format_percent("n/a") == "--"


def test_format_exp_value_units():
    assert format_exp_value(0) == "0"
    assert format_exp_value(None) == "0"
    assert format_exp_value(999) == "999"
    assert format_exp_value(1_500) == "1.50K"
    assert format_exp_value(1_234_567_890) == "1.23B"
    assert format_exp_value(2_000_000_000_000) == "2.00T"


def test_format_number_compact():
    assert format_number_compact(295_580_000) == "2.96 억"
    assert format_number_compact(12_345) == "1.23 만"
    assert format_number_compact(999) == "999"
    assert format_number_compact(None) == "--"


def test_preprocess_int_with_korean():
    assert preprocess_int_with_korean("209558569") == "2억 955만 8569"
    assert preprocess_int_with_korean(100_000_000) == "1억"
    assert preprocess_int_with_korean("1,234") == "1234"
    assert preprocess_int_with_korean(1_0000_0000_0005) == "1조 5"


def test_format_access_flag_and_rank_emoji():
    assert format_access_flag("true") == "최근 7일 이내 접속함"
    assert format_access_flag("false") == "최근 7일 이내 접속하지 않음"
    assert format_access_flag(None) == "접속 여부 알 수 없음"
    assert rank_to_emoji(1) == "🥇"
    assert rank_to_emoji(4) == "4"


def test_recent_date_params_ends_yesterday():
    dates = recent_date_params("kms", 3, now=datetime(2025, 7, 21, 12))
    assert dates == ["2025-07-18", "2025-07-19", "2025-07-20"]


def test_recent_date_params_uses_region_timezone():
    now = pytz.utc.localize(datetime(2025, 7, 20, 15, 30))
    assert recent_date_params("kms", 1, now=now) == ["2025-07-20"]
    assert recent_date_params("tms", 1, now=now) == ["2025-07-19"]


def test_format_date():
    assert format_date("2023-12-21T00:00+09:00") == "2023-12-21"
    assert format_date(datetime(2024, 1, 2, 3, 4)) == "2024-01-02"
    assert format_date(None) == "--"
    assert format_date("garbage") == "--"


def test_kst_formatter_uses_seoul_time():
    formatter = KstFormatter('%(asctime)s', datefmt='%Y-%m-%d %H:%M:%S')
    record = logging.LogRecord("t", logging.INFO, __file__, 1, "msg", None, None)
    record.created = 0
    assert formatter.formatTime(record, formatter.datefmt) == "1970-01-01 09:00:00"
