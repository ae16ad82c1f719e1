import httpx
import pytest

from config import ScouterOptions
from exceptions.client_exceptions import ScouterAPIError
from service.cache import RequestMemoizer, TTLCache
from service.maplescouter_client import (
    ScouterClient,
    build_flame_summary,
    build_stat_lines,
    collect_options,
    format_stat_number,
    pick_boss_stat,
    to_finite_number,
    transform_payload,
)

PAYLOAD = {
    "calculatedData": {
        "combatPower": "123456789",
        "boss300_stat": "55.5",
        "boss380_stat": None,
        "boss300_hexaStat": 60,
        "boss380_hexaStat": "",
        "maple_scouter_const": {"stat_score": 98765},
    },
    "userApiData": {
        "info": {
            "character_name": "마법사악",
            "character_level": 285,
            "character_class": "아크메이지(불,독)",
            "world_name": "크로아",
            "character_image": "https://example/avatar.png",
            "union_level": "9,000",
            "preset_used": 1,
        },
        "settings": {"now_ability": [{"grade": "레전드리", "option": "보스 데미지 20%"}, {"grade": "에픽"}]},
        "hexaSkill": {"skillCore1": 30, "masteryCore1": "10"},
        "hexaSkill_general": {"generalCore1": 5},
        "hexaSkill_used": {"sole_Erda": 500, "sole_ErdaPrice": 12000},
        "symbol": {
            "a": {"title": "어센틱심볼 : 세르니움", "type": "AUT", "level": 11},
            "b": {"title": "아케인심볼 : 소멸의 여로", "type": "ARC", "level": 20},
            "c": {"type": "ARC"},
        },
    },
    "userEquipData": {
        "1": {"slot": "모자", "name": "에테르넬 모자"},
        "2": {
            "slot": "무기",
            "name": "제네시스 스태프",
            "starforce": "22",
            "addOption": {"magic_power": "80", "boss_damage": "12", "int": "0", "damage": "6"},
            "totalOption": {"magic_power": "700", "boss_damage": "30", "damage": "0", "ignore_monster_armor": "20"},
            "potential_option_1": ["마력 +12%", " ", None],
            "potential_option_2": "not-a-list",
        },
        "3": {"slot": "반지1", "name": "리스트레인트 링"},
        "4": {"slot": "", "name": "빈 슬롯"},
    },
}


def test_to_finite_number():
    assert to_finite_number("1,234.5") == 1234.5
    assert to_finite_number(3) == 3.0
    assert to_finite_number("") is None
    assert to_finite_number("abc") is None
    assert to_finite_number(float("inf")) is None
    assert to_finite_number(True) is None


def test_format_stat_number():
    assert format_stat_number(3.0) == "3"
    assert format_stat_number(12.5) == "12.5"
    assert format_stat_number(1.239) == "1.24"


def test_pick_boss_stat_fallback_chain():
    data = PAYLOAD["calculatedData"]
    assert pick_boss_stat(data, 300, hexa=False) == 55.5
    # 380 general missing -> 380 hexa missing -> 300 general
    assert pick_boss_stat(data, 380, hexa=False) == 55.5
    assert pick_boss_stat(data, 380, hexa=True) == 60
    assert pick_boss_stat({}, 300, hexa=True) is None


def test_stat_lines_and_flame_summary():
    lines = build_stat_lines({"magic_power": "700", "boss_damage": "30", "damage": "0", "critical_rate": "-5"})
    assert [(line.label, line.value) for line in lines] == [
        ("마력", "+700"),
        ("보스 데미지", "+30%"),
        ("크리티컬 확률", "-5%"),
    ]
    assert build_flame_summary({"int": "0", "magic_power": "80", "boss_damage": "12", "damage": "6"}) == "마력+80 / 보스 데미지+12%"
    assert build_flame_summary({"max_hp": "300"}) == "HP+300"
    assert build_flame_summary({}) is None


def test_collect_options_merges_lists():
    item = {"potential_option_1": ["a", " b ", ""], "potential_option_2": ["c"], "other": ["x"]}
    assert collect_options(item, "potential_option") == ["a", "b", "c"]
    assert collect_options({}, "potential_option") is None


def test_transform_payload():
    profile = transform_payload(PAYLOAD, "2")
    assert profile.basic.name == "마법사악"
    assert profile.basic.union_level == 9000
    assert profile.combat.combat_power == 123456789
    assert profile.combat.general_damage_300 == 55.5
    assert profile.combat.hexa_damage_300 == 60
    assert profile.combat.stat_score == 98765
    assert [e.slot for e in profile.equipments] == ["무기", "반지1", "모자"]
    assert profile.equipments[0].slot_label == "무기"
    assert profile.equipments[1].slot_label == "반지 1"
    assert profile.equipments[0].starforce == 22
    assert profile.equipments[0].potentials == ["마력 +12%"]
    assert profile.equipments[0].flame_summary == "마력+80 / 보스 데미지+12%"
    assert [p.option for p in profile.potentials] == ["보스 데미지 20%"]
    assert [s.type for s in profile.symbols] == ["ARC", "AUT"]
    levels = {node.key: node.level for node in profile.hexa.nodes}
    assert levels["skillCore1"] == 30
    assert levels["masteryCore1"] == 10
    assert levels["generalCore1"] == 5
    assert levels["reinCore4"] == 0
    assert profile.hexa.used_erda == 500
    assert profile.preset == "2"
    assert profile.preset_used is True
    assert profile.avatar == "https://example/avatar.png"


def _scouter(handler) -> ScouterClient:
    options = ScouterOptions(api_key="scouter-key", base_url="https://scouter.test/api/", preset="1")
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ScouterClient(options, RequestMemoizer(TTLCache(ttl=300, max_size=16)), region="kms", http_client=http_client)


@pytest.mark.asyncio
async def test_fetch_profile_requests_and_memoizes_by_lowercase_name():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        assert request.url.path == "/api/id"
        assert request.url.params["name"] == "Maple"
        assert request.url.params["preset"] == "1"
        assert request.url.params["region"] == "kms"
        assert request.headers["api-key"] == "scouter-key"
        assert request.headers["origin"] == "https://maplescouter.com"
        return httpx.Response(200, json=PAYLOAD)

    client = _scouter(handler)
    first = await client.fetch_profile(" Maple ")
    second = await client.fetch_profile("maple")
    assert first is second
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_fetch_profile_http_error():
    client = _scouter(lambda request: httpx.Response(502, text="bad gateway"))
    with pytest.raises(ScouterAPIError, match="502"):
        await client.fetch_profile("maple")


@pytest.mark.asyncio
async def test_fetch_profile_invalid_json():
    client = _scouter(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(ScouterAPIError):
        await client.fetch_profile("maple")
