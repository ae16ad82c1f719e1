import httpx
import pytest

import service.nexon_client as nexon_mod
from exceptions.client_exceptions import NexonAPICharacterNotFound, NexonAPIDataNotReady, NexonAPIForbidden

from conftest import make_client

DATES = ["2025-07-16", "2025-07-17", "2025-07-18", "2025-07-19", "2025-07-20"]


@pytest.fixture(autouse=True)
def fixed_dates(monkeypatch):
    monkeypatch.setattr(nexon_mod, "recent_date_params", lambda region, days, now=None: DATES[-days:])


def _error(status: int, name: str, message: str = "error") -> httpx.Response:
    return httpx.Response(status, json={"error": {"name": name, "message": message}})


def _basic(level: int = 285, exp: int = 1_000, date=None) -> dict:
    return {
        "date": date,
        "character_name": "마법사악",
        "world_name": "크로아",
        "character_class": "아크메이지(불,독)",
        "character_level": level,
        "character_exp": exp,
        "character_exp_rate": "12.345",
        "access_flag": "true",
    }


@pytest.mark.asyncio
async def test_get_ocid_sends_key_and_is_memoized():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        assert request.url.path == "/maplestory/v1/id"
        assert request.url.params["character_name"] == "마법사악"
        assert request.headers["x-nxopen-api-key"] == "test-key"
        return httpx.Response(200, json={"ocid": "abc123"})

    client = make_client(handler)
    assert await client.get_ocid(" 마법사악 ") == "abc123"
    assert await client.get_ocid("마법사악") == "abc123"
    assert len(seen) == 1


@pytest.mark.asyncio
async def test_region_prefix_for_tms():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/maplestorytw/v1/id"
        return httpx.Response(200, json={"ocid": "tw"})

    client = make_client(handler, region="tms")
    assert await client.get_ocid("name") == "tw"


@pytest.mark.asyncio
async def test_unknown_character_raises_not_found_and_is_not_cached():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return _error(400, "OPENAPI00004", "Please input valid parameter")

    client = make_client(handler)
    with pytest.raises(NexonAPICharacterNotFound):
        await client.get_ocid("없는캐릭")
    with pytest.raises(NexonAPICharacterNotFound):
        await client.get_ocid("없는캐릭")
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_forbidden_maps_to_exception_with_code():
    def handler(request: httpx.Request) -> httpx.Response:
        return _error(403, "OPENAPI00003", "Invalid identifier")

    client = make_client(handler)
    with pytest.raises(NexonAPIForbidden) as exc_info:
        await client.get_character_basic("abc")
    assert exc_info.value.code == "OPENAPI00003"
    assert "403" in str(exc_info.value)


@pytest.mark.asyncio
async def test_too_many_requests_is_retried():
    responses = [
        httpx.Response(429, headers={"Retry-After": "0"}, json={"error": {"name": "OPENAPI00007", "message": "slow"}}),
        httpx.Response(200, json={"ocid": "after-retry"}),
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    client = make_client(handler)
    assert await client.get_ocid("name") == "after-retry"
    assert responses == []


@pytest.mark.asyncio
async def test_recent_basic_history_skips_data_not_ready():
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        date = request.url.params["date"]
        requested.append(date)
        if date == "2025-07-19":
            return _error(400, "OPENAPI00009", "Data being prepared")
        exp = {"2025-07-18": 100, "2025-07-20": 400}[date]
        return httpx.Response(200, json=_basic(exp=exp, date=f"{date}T00:00+09:00"))

    client = make_client(handler)
    history = await client.get_recent_basic_history("abc", 3)
    assert requested == ["2025-07-18", "2025-07-19", "2025-07-20"]
    assert [(s.date, s.exp) for s in history] == [("2025-07-18", 100), ("2025-07-20", 400)]


@pytest.mark.asyncio
async def test_fetch_character_info_tolerates_union_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/id"):
            return httpx.Response(200, json={"ocid": "abc"})
        if path.endswith("/user/union"):
            return _error(500, "OPENAPI00001", "server error")
        if path.endswith("/character/basic"):
            date = request.url.params.get("date")
            if date is None:
                return httpx.Response(200, json=_basic())
            exp = {"2025-07-18": 100, "2025-07-19": 300, "2025-07-20": 600}[date]
            return httpx.Response(200, json=_basic(exp=exp))
        raise AssertionError(f"unexpected path {path}")

    client = make_client(handler)
    info = await client.fetch_character_info("마법사악")
    assert info.ocid == "abc"
    assert info.summary.name == "마법사악"
    assert info.union is None
    assert [p.gain for p in info.experience] == [200, 300]


@pytest.mark.asyncio
async def test_fetch_ranking_unsupported_region():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/maplestorysea/v1/id"
        return httpx.Response(200, json={"ocid": "sea"})

    client = make_client(handler, region="msea")
    result = await client.fetch_ranking("name")
    assert result.available is False
    assert result.records == []
    assert "지원하지 않아양" in result.message


@pytest.mark.asyncio
async def test_fetch_ranking_returns_latest_first():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/id"):
            return httpx.Response(200, json={"ocid": "abc"})
        assert request.url.path == "/maplestory/v1/ranking/overall"
        date = request.url.params["date"]
        if date == "2025-07-18":
            return _error(400, "OPENAPI00009", "Data being prepared")
        rank = {"2025-07-19": 120, "2025-07-20": 100}[date]
        return httpx.Response(200, json={"ranking": [{
            "date": date,
            "ranking": rank,
            "character_name": "마법사악",
            "character_level": 285,
            "class_name": "마법사",
            "sub_class_name": "아크메이지(불,독)",
            "world_name": "크로아",
        }]})

    client = make_client(handler)
    result = await client.fetch_ranking("마법사악")
    assert result.available is True
    assert [(r.date, r.ranking) for r in result.records] == [("2025-07-20", 100), ("2025-07-19", 120)]


@pytest.mark.asyncio
async def test_fetch_ranking_failure_is_reported_not_raised():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/id"):
            return httpx.Response(200, json={"ocid": "abc"})
        return _error(403, "OPENAPI00002", "forbidden")

    client = make_client(handler)
    result = await client.fetch_ranking("마법사악")
    assert result.available is False
    assert "OPENAPI00002" in result.message


@pytest.mark.asyncio
async def test_fetch_ranking_neighbors_reads_character_page():
    pages = []

    def handler(request: httpx.Request) -> httpx.Response:
        params = request.url.params
        if "ocid" in params:
            return httpx.Response(200, json={"ranking": [{"date": "2025-07-20", "ranking": 203, "character_name": "me"}]})
        pages.append(params["page"])
        return httpx.Response(200, json={"ranking": [
            {"date": "2025-07-20", "ranking": rank, "character_name": "me" if rank == 203 else f"c{rank}"}
            for rank in range(201, 211)
        ]})

    client = make_client(handler)
    summary = await client.fetch_ranking_neighbors("abc", "me")
    assert pages == ["2"]
    assert [r.ranking for r in summary.neighbors] == [201, 202, 203, 204, 205]


@pytest.mark.asyncio
async def test_fetch_union_report_collects_all_sections():
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/id"):
            return httpx.Response(200, json={"ocid": "abc"})
        if path.endswith("/character/basic"):
            return httpx.Response(200, json=_basic(exp=100 if "date" not in request.url.params else 0))
        if path.endswith("/user/union"):
            return httpx.Response(200, json={"union_level": 9000, "union_grade": "그랜드 마스터 유니온 1"})
        if path.endswith("/user/union-raider"):
            return httpx.Response(200, json={"use_preset_no": 1, "union_raider_stat": ["INT 80 증가"]})
        if path.endswith("/user/union-artifact"):
            return httpx.Response(200, json={"union_artifact_remain_ap": 0})
        raise AssertionError(f"unexpected path {path}")

    client = make_client(handler)
    report = await client.fetch_union_report("마법사악")
    assert report.union.level == 9000
    assert report.raider.stat_effects == ["INT 80 증가"]
    assert report.artifact.remain_ap == 0
    assert report.experience and all(point.gain == 0 for point in report.experience)


@pytest.mark.asyncio
async def test_data_not_ready_error_type():
    def handler(request: httpx.Request) -> httpx.Response:
        return _error(400, "OPENAPI00009", "Data being prepared")

    client = make_client(handler)
    with pytest.raises(NexonAPIDataNotReady):
        await client.get_union("abc")
