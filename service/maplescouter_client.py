from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

import httpx

from bot_logger import logger
from config import ScouterOptions
from exceptions.client_exceptions import ScouterAPIError
from service.cache import RequestMemoizer, create_composite_key
from service.entities import (
    ScouterBasicInfo,
    ScouterCombatStats,
    ScouterEquipment,
    ScouterEquipmentStat,
    ScouterHexaNode,
    ScouterHexaSummary,
    ScouterPotentialLine,
    ScouterProfile,
    ScouterSymbol,
)


SLOT_LABELS: Dict[str, str] = {
    "무기": "무기",
    "보조무기": "보조무기",
    "엠블렘": "엠블렘",
    "모자": "모자",
    "상의": "상의",
    "하의": "하의",
    "신발": "신발",
    "장갑": "장갑",
    "망토": "망토",
    "어깨장식": "어깨",
    "얼굴장식": "얼굴",
    "눈장식": "눈",
    "귀고리": "귀고리",
    "벨트": "벨트",
    "펜던트": "펜던트 1",
    "펜던트2": "펜던트 2",
    "반지1": "반지 1",
    "반지2": "반지 2",
    "반지3": "반지 3",
    "반지4": "반지 4",
    "포켓 아이템": "포켓",
    "기계 심장": "기계 심장",
    "뱃지": "뱃지",
    "훈장": "훈장",
}

# 환산 요약에 먼저 보여줄 슬롯 순서 (나머지는 원래 순서 유지)
EQUIP_PRIORITY: List[str] = [
    "무기",
    "보조무기",
    "엠블렘",
    "기계 심장",
    "훈장",
    "뱃지",
    "어깨장식",
    "반지1",
    "반지2",
    "반지3",
    "반지4",
]

STAT_LABELS: Dict[str, str] = {
    "attack_power": "공격력",
    "magic_power": "마력",
    "boss_damage": "보스 데미지",
    "damage": "데미지",
    "ignore_monster_armor": "방어율 무시",
    "critical_rate": "크리티컬 확률",
    "critical_damage": "크리티컬 데미지",
    "attack_power_rate": "공격력%",
    "magic_power_rate": "마력%",
}

PERCENT_STAT_KEYS = frozenset({
    "boss_damage",
    "damage",
    "ignore_monster_armor",
    "critical_rate",
    "critical_damage",
    "attack_power_rate",
    "magic_power_rate",
})

HEXA_LABELS: Dict[str, str] = {
    "skillCore1": "스킬 코어 I",
    "skillCore2": "스킬 코어 II",
    "masteryCore1": "마스터리 코어 I",
    "masteryCore2": "마스터리 코어 II",
    "masteryCore3": "마스터리 코어 III",
    "masteryCore4": "마스터리 코어 IV",
    "reinCore1": "강화 코어 I",
    "reinCore2": "강화 코어 II",
    "reinCore3": "강화 코어 III",
    "reinCore4": "강화 코어 IV",
    "generalCore1": "공용 코어",
}

DEFAULT_HEADERS: Dict[str, str] = {
    "Accept": "application/json, text/plain, */*",
    "Origin": "https://maplescouter.com",
    "Referer": "https://maplescouter.com/",
    "User-Agent": "msbot-nexon/1.0",
}


def to_finite_number(value: Any) -> Optional[float]:
    """숫자 / 콤마 포함 숫자 문자열 -> float (NaN, inf, 변환불가는 None)"""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        normalized = value.replace(",", "").strip()
        if not normalized:
            return None
        try:
            numeric = float(normalized)
        except ValueError:
            return None
        return numeric if math.isfinite(numeric) else None
    return None


def format_stat_number(value: float) -> str:
    """소수점 둘째자리 반올림, 불필요한 0 제거 (12.50 -> "12.5", 3.0 -> "3")"""
    rounded = round(value * 100) / 100
    if float(rounded).is_integer():
        return str(int(rounded))
    return f"{rounded:.2f}".rstrip("0").rstrip(".")


def _boss_key(scene: int, hexa: bool) -> str:
    return f"boss{scene}_hexaStat" if hexa else f"boss{scene}_stat"


def pick_boss_stat(data: Optional[Dict[str, Any]], scene: int, hexa: bool) -> Optional[float]:
    """보스 환산 수치 조회

    요청한 값이 없으면 같은 보스의 반대 모드 -> 다른 보스의 같은 모드 순으로 대체
    """
    if not data:
        return None
    other_scene = 300 if scene == 380 else 380
    for key in (_boss_key(scene, hexa), _boss_key(scene, not hexa), _boss_key(other_scene, hexa)):
        numeric = to_finite_number(data.get(key))
        if numeric is not None:
            return numeric
    return None


def build_stat_lines(option_block: Optional[Dict[str, Any]]) -> List[ScouterEquipmentStat]:
    if not option_block:
        return []
    lines = []
    for key, label in STAT_LABELS.items():
        numeric = to_finite_number(option_block.get(key))
        if numeric is None or numeric == 0:
            continue
        sign = "+" if numeric >= 0 else "-"
        value_text = format_stat_number(abs(numeric))
        if key in PERCENT_STAT_KEYS:
            value_text = f"{value_text}%"
        lines.append(ScouterEquipmentStat(label=label, value=f"{sign}{value_text}"))
    return lines


def build_flame_summary(option_block: Optional[Dict[str, Any]]) -> Optional[str]:
    """추가옵션(환생의 불꽃) 중 양수 옵션 앞의 2개 요약 (예: "공격력+12 / 보스 데미지+4%")"""
    if not option_block:
        return None
    entries = []
    for key, value in option_block.items():
        numeric = to_finite_number(value)
        if numeric is None or numeric <= 0:
            continue
        if key in STAT_LABELS:
            label = STAT_LABELS[key]
        elif key == "max_hp":
            label = "HP"
        elif key == "max_mp":
            label = "MP"
        else:
            label = key.replace("_", " ").upper()
        amount = format_stat_number(numeric)
        entries.append(f"{label}+{amount}%" if key in PERCENT_STAT_KEYS else f"{label}+{amount}")
    return " / ".join(entries[:2]) if entries else None


def collect_options(item: Dict[str, Any], prefix: str) -> Optional[List[str]]:
    """prefix로 시작하는 키의 잠재옵션 리스트를 합쳐서 정리 (빈 줄 제거)"""
    merged = []
    for key, raw in item.items():
        if not key.startswith(prefix) or not isinstance(raw, list):
            continue
        for entry in raw:
            if isinstance(entry, str) and entry.strip():
                merged.append(entry.strip())
    return merged or None


def _slot_order(slot: str) -> int:
    try:
        return EQUIP_PRIORITY.index(slot)
    except ValueError:
        return len(EQUIP_PRIORITY)


def pick_equip_highlights(source: Dict[str, Any]) -> List[ScouterEquipment]:
    entries = [
        item for item in source.values()
        if isinstance(item, dict) and item.get("slot") and item.get("name")
    ]
    # sorted는 stable -> 우선순위에 없는 슬롯은 원래 순서 유지
    entries = sorted(entries, key=lambda item: _slot_order(item["slot"]))
    return [
        ScouterEquipment(
            slot=item["slot"],
            slot_label=SLOT_LABELS.get(item["slot"], item["slot"]),
            name=item.get("name") or "알수없는 장비",
            icon=item.get("iconUrl"),
            starforce=to_finite_number(item.get("starforce")),
            scrolls=to_finite_number(item.get("scroll_upgrade")),
            flame_summary=build_flame_summary(item.get("addOption")),
            potentials=collect_options(item, "potential_option"),
            additional_potentials=collect_options(item, "additional_potential_option"),
            stats=build_stat_lines(item.get("totalOption")),
        )
        for item in entries
    ]


def build_hexa_nodes(skill_block: Dict[str, Any], general_block: Dict[str, Any]) -> List[ScouterHexaNode]:
    nodes = []
    for key, label in HEXA_LABELS.items():
        raw = skill_block.get(key, general_block.get(key, 0))
        level = to_finite_number(raw)
        nodes.append(ScouterHexaNode(key=key, label=label, level=int(level) if level else 0))
    return nodes


def build_symbols(symbols: Dict[str, Any]) -> List[ScouterSymbol]:
    result = [
        ScouterSymbol(
            title=str(item.get("title")),
            level=int(to_finite_number(item.get("level")) or 0),
            type=str(item.get("type") or ""),
            icon=item.get("icon"),
        )
        for item in (symbols or {}).values()
        if isinstance(item, dict) and item.get("title")
    ]
    return sorted(result, key=lambda symbol: symbol.type)


def _optional_int(value: Any) -> Optional[int]:
    numeric = to_finite_number(value)
    return int(numeric) if numeric is not None else None


def transform_payload(payload: Dict[str, Any], preset: str) -> ScouterProfile:
    """MapleScouter 응답 -> ScouterProfile"""
    user_data = payload.get("userApiData") or {}
    info = user_data.get("info") or {}
    combat = payload.get("calculatedData") or {}
    stat_const = combat.get("maple_scouter_const") or {}
    hexa_used = user_data.get("hexaSkill_used") or {}

    potential_source = (
        (user_data.get("settings") or {}).get("now_ability")
        or (user_data.get("special") or {}).get("now_ability")
        or []
    )
    potentials = [
        ScouterPotentialLine(option=str(line["option"]), grade=line.get("grade"))
        for line in potential_source
        if isinstance(line, dict) and line.get("option")
    ]

    basic = ScouterBasicInfo(
        name=info.get("character_name") or "--",
        level=_optional_int(info.get("character_level")),
        exp_rate=info.get("character_exp_rate"),
        job=info.get("character_class"),
        world=info.get("world_name"),
        guild=info.get("character_guild_name"),
        creation_date=info.get("character_date_create"),
        popularity=_optional_int(info.get("popularity")),
        arcane_force=_optional_int(info.get("arcaneForce")),
        authentic_force=_optional_int(info.get("authenticForce")),
        starforce=_optional_int(info.get("starforce")),
        union_level=_optional_int(info.get("union_level")),
        artifact_level=_optional_int(info.get("artifact_level")),
        power=to_finite_number(info.get("power")),
        dojang_floor=_optional_int(info.get("dojang_best_floor")),
        dojang_time=_optional_int(info.get("dojang_best_time")),
        character_ranking=to_finite_number(info.get("character_ranking")),
        world_ranking=to_finite_number(info.get("world_ranking")),
        class_ranking=to_finite_number(info.get("class_ranking")),
    )

    combat_stats = ScouterCombatStats(
        combat_power=to_finite_number(combat.get("combatPower")),
        general_damage_380=pick_boss_stat(combat, 380, hexa=False),
        general_damage_300=pick_boss_stat(combat, 300, hexa=False),
        hexa_damage_380=pick_boss_stat(combat, 380, hexa=True),
        hexa_damage_300=pick_boss_stat(combat, 300, hexa=True),
        stat_score=to_finite_number(stat_const.get("stat_score")),
    )

    return ScouterProfile(
        basic=basic,
        combat=combat_stats,
        equipments=pick_equip_highlights(payload.get("userEquipData") or {}),
        hexa=ScouterHexaSummary(
            nodes=build_hexa_nodes(user_data.get("hexaSkill") or {}, user_data.get("hexaSkill_general") or {}),
            used_erda=_optional_int(hexa_used.get("sole_Erda")),
            used_meso=_optional_int(hexa_used.get("sole_ErdaPrice")),
        ),
        potentials=potentials,
        symbols=build_symbols(user_data.get("symbol") or {}),
        avatar=info.get("character_image"),
        preset=preset,
        preset_used=bool(info.get("preset_used")),
    )


class ScouterClient:
    """MapleScouter (비공식 환산) API 클라이언트

    Args:
        options (ScouterOptions): API 키 / 주소 / 프리셋
        memoizer (RequestMemoizer): (지역, 소문자 이름) 키로 결과 캐싱
        region (str): 조회 지역 (kms / tms / msea)
    """

    def __init__(
            self,
            options: ScouterOptions,
            memoizer: RequestMemoizer,
            region: str = "kms",
            http_client: Optional[httpx.AsyncClient] = None,
        ):
        self.options = options
        self.memoizer = memoizer
        self.region = region
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(options.timeout))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_profile(self, name: str) -> ScouterProfile:
        normalized = name.strip()
        key = create_composite_key([self.region, normalized.lower()])
        return await self.memoizer.request(key, lambda: self._request_profile(normalized))

    async def _request_profile(self, name: str) -> ScouterProfile:
        endpoint = f"{self.options.base_url.rstrip('/')}/id"
        params = {"name": name, "preset": self.options.preset, "region": self.region}
        headers = {**DEFAULT_HEADERS, "api-key": self.options.api_key}
        try:
            response = await self._client.get(endpoint, params=params, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"MapleScouter 요청 실패 (name={name}): {e}")
            raise ScouterAPIError(f"환산 사이트에 연결하지 못했어양 ({type(e).__name__})") from e

        if response.status_code >= 400:
            logger.warning(f"MapleScouter 오류 응답 (name={name}, status={response.status_code})")
            raise ScouterAPIError(f"환산 사이트 API 오류 (HTTP {response.status_code})")
        try:
            payload = response.json()
        except ValueError as e:
            logger.warning(f"MapleScouter 응답 파싱 실패 (name={name})")
            raise ScouterAPIError("환산 사이트 응답을 해석하지 못했어양") from e
        if not isinstance(payload, dict):
            raise ScouterAPIError("환산 사이트 응답을 해석하지 못했어양")
        return transform_payload(payload, self.options.preset)
