from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from service.entities import (
    ArtifactCrystal,
    ArtifactEffect,
    ArtifactSummary,
    BasicSnapshot,
    CharacterSummary,
    EquipmentItemSummary,
    EquipmentTitle,
    ExperiencePoint,
    ExperienceStats,
    RaiderSummary,
    RankingRecord,
    RankingSummary,
    UnionInnerStat,
    UnionOverview,
)
from utils.time import format_date


# 장비 스탯 화이트리스트 (Nexon Open API 옵션 키 -> 표시 이름)
STAT_LABELS: Dict[str, str] = {
    "str": "STR",
    "dex": "DEX",
    "int": "INT",
    "luk": "LUK",
    "max_hp": "최대 HP",
    "max_mp": "최대 MP",
    "attack_power": "공격력",
    "magic_power": "마력",
    "armor": "방어력",
    "speed": "이동속도",
    "jump": "점프력",
    "boss_damage": "보스 데미지",
    "damage": "데미지",
    "all_stat": "올스탯",
    "critical_rate": "크리티컬 확률",
}


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def _int_or_none(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).replace(",", "").strip())
    except ValueError:
        return None


def map_character_basic(payload: Dict[str, Any]) -> CharacterSummary:
    """/character/basic 응답을 CharacterSummary로 가공

    Args:
        payload (dict): Nexon Open API 응답

    Returns:
        CharacterSummary: 가공된 캐릭터 기본 정보

    Notes:
        access_flag는 "true"/"false" 문자열일 때만 유지 (그 외 None)
    """
    access_flag = _str_or_none(payload.get("access_flag"))
    if access_flag is not None:
        access_flag = access_flag.lower()
        if access_flag not in ("true", "false"):
            access_flag = None

    character_level = _int_or_none(payload.get("character_level"))
    character_exp = _int_or_none(payload.get("character_exp"))

    return CharacterSummary(
        name=_str_or_none(payload.get("character_name")) or "--",
        world=_str_or_none(payload.get("world_name")) or "알수없음",
        job=_str_or_none(payload.get("character_class")) or "알수없음",
        job_detail=_str_or_none(payload.get("character_class_level")),
        level=character_level if character_level is not None else 0,
        exp=character_exp if character_exp is not None else 0,
        exp_rate=_str_or_none(payload.get("character_exp_rate")),
        guild=_str_or_none(payload.get("character_guild_name")),
        image=_str_or_none(payload.get("character_image")),
        gender=_str_or_none(payload.get("character_gender")),
        create_date=_str_or_none(payload.get("character_date_create")),
        access_flag=access_flag,
        liberation_quest_clear=_str_or_none(
            payload.get("liberation_quest_clear", payload.get("liberation_quest_clear_flag"))
        ),
    )


def map_union(payload: Dict[str, Any]) -> UnionOverview:
    return UnionOverview(
        level=_int_or_none(payload.get("union_level")),
        grade=_str_or_none(payload.get("union_grade")),
        artifact_level=_int_or_none(payload.get("union_artifact_level")),
        artifact_exp=_int_or_none(payload.get("union_artifact_exp")),
        artifact_point=_int_or_none(payload.get("union_artifact_point")),
    )


def map_union_raider(payload: Dict[str, Any]) -> RaiderSummary:
    inner_stats = [
        UnionInnerStat(
            field_id=str(stat.get("stat_field_id", "")),
            effect=str(stat.get("stat_field_effect", "")),
        )
        for stat in (payload.get("union_inner_stat") or [])
        if isinstance(stat, dict)
    ]
    return RaiderSummary(
        preset=_int_or_none(payload.get("use_preset_no")),
        stat_effects=[str(s) for s in (payload.get("union_raider_stat") or []) if s],
        occupied_effects=[str(s) for s in (payload.get("union_occupied_stat") or []) if s],
        inner_stats=inner_stats,
    )


def map_union_artifact(payload: Dict[str, Any]) -> ArtifactSummary:
    effects = [
        ArtifactEffect(name=str(effect.get("name", "")), level=_int_or_none(effect.get("level")) or 0)
        for effect in (payload.get("union_artifact_effect") or [])
        if isinstance(effect, dict)
    ]
    crystals = []
    for crystal in payload.get("union_artifact_crystal") or []:
        if not isinstance(crystal, dict):
            continue
        options = [
            str(crystal.get(key)).strip()
            for key in ("crystal_option_name_1", "crystal_option_name_2", "crystal_option_name_3")
            if crystal.get(key)
        ]
        crystals.append(
            ArtifactCrystal(
                name=str(crystal.get("name", "")),
                level=_int_or_none(crystal.get("level")) or 0,
                options=options,
                validity="유효" if str(crystal.get("validity_flag", "0")) == "0" else "만료",
            )
        )
    return ArtifactSummary(
        remain_ap=_int_or_none(payload.get("union_artifact_remain_ap")),
        effects=effects,
        crystals=crystals,
    )


def map_ranking_record(entry: Dict[str, Any]) -> RankingRecord:
    return RankingRecord(
        date=format_date(entry.get("date")),
        ranking=_int_or_none(entry.get("ranking")) or 0,
        character_name=_str_or_none(entry.get("character_name")) or "--",
        character_level=_int_or_none(entry.get("character_level")) or 0,
        world_name=_str_or_none(entry.get("world_name")) or "알수없음",
        class_name=_str_or_none(entry.get("class_name")) or _str_or_none(entry.get("sub_class_name")) or "",
        exp_rate=_str_or_none(entry.get("character_exp_rate")),
    )


def pick_stat_block(source: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """장비 옵션 블록에서 화이트리스트 스탯만 추출 (0, 0%, 빈값 제외)"""
    if not source:
        return {}
    result: Dict[str, str] = {}
    for key, value in source.items():
        if key not in STAT_LABELS:
            continue
        if value is None or value in ("", "0", "0%", 0):
            continue
        result[key] = str(value)
    return result


def _option_lines(item: Dict[str, Any], prefix: str) -> List[str]:
    lines = []
    for idx in (1, 2, 3):
        option = item.get(f"{prefix}_{idx}")
        if option:
            lines.append(str(option).strip())
    return lines


def map_equipment_item(item: Dict[str, Any]) -> EquipmentItemSummary:
    """/character/item-equipment 의 장비 1개를 요약"""
    additional = pick_stat_block(item.get("item_add_option"))
    starforce = pick_stat_block(item.get("item_starforce_option"))
    potential = _option_lines(item, "potential_option")
    additional_potential = _option_lines(item, "additional_potential_option")

    return EquipmentItemSummary(
        item_name=_str_or_none(item.get("item_name")) or "알수없음",
        slot=_str_or_none(item.get("item_equipment_slot")) or _str_or_none(item.get("item_equipment_part")) or "",
        base=pick_stat_block(item.get("item_base_option")),
        icon=_str_or_none(item.get("item_icon")),
        additional=additional or None,
        starforce=starforce or None,
        starforce_count=_int_or_none(item.get("starforce")),
        potential=potential or None,
        additional_potential=additional_potential or None,
        potential_grade=_str_or_none(item.get("potential_option_grade")),
        scroll_count=_str_or_none(item.get("scroll_upgrade")),
    )


def map_equipment_title(payload: Optional[Dict[str, Any]]) -> Optional[EquipmentTitle]:
    if not payload or not payload.get("title_name"):
        return None
    return EquipmentTitle(
        name=str(payload.get("title_name")).strip(),
        icon=_str_or_none(payload.get("title_icon")),
        description=_str_or_none(payload.get("title_description")),
    )


def format_stat_block(block: Optional[Dict[str, str]]) -> str:
    """{"str": "10", "attack_power": "3"} -> "STR+10, 공격력+3" """
    if not block:
        return "--"
    entries = [f"{STAT_LABELS[key]}+{value}" for key, value in block.items() if value and key in STAT_LABELS]
    return ", ".join(entries) if entries else "--"


def build_equipment_line(item: EquipmentItemSummary) -> str:
    """장비 1개를 명령어 응답용 여러 줄 텍스트로 변환"""
    starforce = f" ★{item.starforce_count}" if item.starforce_count else ""
    lines = [f"· [{item.slot}] {item.item_name}{starforce}", f"기본: {format_stat_block(item.base)}"]
    if item.additional:
        lines.append(f"추가옵션: {format_stat_block(item.additional)}")
    if item.starforce:
        lines.append(f"스타포스: {format_stat_block(item.starforce)}")
    if item.potential:
        lines.append(f"잠재: {' / '.join(item.potential)}")
    if item.additional_potential:
        lines.append(f"에디셔널: {' / '.join(item.additional_potential)}")
    return "\n  ".join(lines)


def build_experience_series(snapshots: Iterable[BasicSnapshot]) -> List[ExperiencePoint]:
    """일자별 기본정보 스냅샷으로 일일 경험치 획득량 계산

    - 날짜 오름차순 정렬 후 두번째 날부터 (당일 exp - 전날 exp) 계산
    - 음수(레벨업으로 경험치 초기화)는 0으로 처리
    - exp를 알 수 없는 날짜는 건너뜀
    """
    ordered = sorted(snapshots, key=lambda s: s.date)
    if len(ordered) <= 1:
        return []

    series: List[ExperiencePoint] = []
    for previous, current in zip(ordered, ordered[1:]):
        if previous.exp is None or current.exp is None:
            continue
        gain = current.exp - previous.exp
        series.append(
            ExperiencePoint(
                date=current.date,
                label=current.date[5:],
                level=current.level,
                exp=current.exp,
                gain=gain if gain > 0 else 0,
            )
        )
    return series


def summarize_experience(series: List[ExperiencePoint]) -> ExperienceStats:
    """최근 7일 / 14일 경험치 합계 및 일평균"""
    recent7 = series[-7:]
    recent14 = series[-14:]
    total7 = sum(point.gain for point in recent7)
    total14 = sum(point.gain for point in recent14)
    return ExperienceStats(
        total7=total7,
        avg7=total7 / len(recent7) if recent7 else 0,
        total14=total14,
        avg14=total14 / len(recent14) if recent14 else 0,
    )


def build_ranking_summary(
        character_name: str,
        records: List[RankingRecord],
        *,
        available: bool = True,
        message: Optional[str] = None,
        window: int = 2,
    ) -> RankingSummary:
    """캐릭터 주변 순위 (위/아래 window명) 요약

    Args:
        character_name (str): 강조할 캐릭터 이름
        records (List[RankingRecord]): 랭킹 페이지 레코드
        window (int): 위/아래로 포함할 인원 수
    """
    if not available or not records:
        return RankingSummary(
            character_name=character_name,
            available=False,
            message=message or "주변 랭킹 데이터가 없어양",
        )

    ordered = sorted(records, key=lambda r: r.ranking)
    target = normalize_name(character_name)
    index = next(
        (i for i, record in enumerate(ordered) if normalize_name(record.character_name) == target),
        None,
    )
    if index is None:
        neighbors = ordered[: window * 2 + 1]
    else:
        neighbors = ordered[max(0, index - window): index + window + 1]

    return RankingSummary(
        character_name=character_name,
        available=True,
        neighbors=neighbors,
        date=neighbors[0].date if neighbors else None,
    )


def normalize_name(text: str) -> str:
    return text.strip().lower()
