"""
service/entities.py

Nexon Open API / MapleScouter 응답을 가공한 표시용 데이터 클래스
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class CharacterSummary:
    name: str
    world: str
    job: str
    level: int
    exp: int
    job_detail: Optional[str] = None
    exp_rate: Optional[str] = None
    guild: Optional[str] = None
    image: Optional[str] = None
    gender: Optional[str] = None
    create_date: Optional[str] = None
    access_flag: Optional[str] = None  # "true" / "false" / None
    liberation_quest_clear: Optional[str] = None


@dataclass
class UnionOverview:
    level: Optional[int] = None
    grade: Optional[str] = None
    artifact_level: Optional[int] = None
    artifact_exp: Optional[int] = None
    artifact_point: Optional[int] = None


@dataclass
class UnionInnerStat:
    field_id: str
    effect: str


@dataclass
class RaiderSummary:
    preset: Optional[int] = None
    stat_effects: List[str] = field(default_factory=list)
    occupied_effects: List[str] = field(default_factory=list)
    inner_stats: List[UnionInnerStat] = field(default_factory=list)


@dataclass
class ArtifactEffect:
    name: str
    level: int


@dataclass
class ArtifactCrystal:
    name: str
    level: int
    options: List[str]
    validity: str


@dataclass
class ArtifactSummary:
    remain_ap: Optional[int] = None
    effects: List[ArtifactEffect] = field(default_factory=list)
    crystals: List[ArtifactCrystal] = field(default_factory=list)


@dataclass
class BasicSnapshot:
    date: str
    level: int
    exp: Optional[int]


@dataclass
class ExperiencePoint:
    date: str
    label: str
    level: int
    exp: int
    gain: int


@dataclass
class ExperienceStats:
    total7: int = 0
    avg7: float = 0
    total14: int = 0
    avg14: float = 0


@dataclass
class RankingRecord:
    date: str
    ranking: int
    character_name: str
    character_level: int
    world_name: str
    class_name: str
    exp_rate: Optional[str] = None


@dataclass
class CharacterRanking:
    ocid: str
    records: List[RankingRecord]
    available: bool
    message: Optional[str] = None


@dataclass
class RankingSummary:
    """HTML 리포트용 주변 순위 요약"""
    character_name: str
    available: bool
    neighbors: List[RankingRecord] = field(default_factory=list)
    date: Optional[str] = None
    message: Optional[str] = None


@dataclass
class EquipmentItemSummary:
    item_name: str
    slot: str
    base: Dict[str, str]
    icon: Optional[str] = None
    additional: Optional[Dict[str, str]] = None
    starforce: Optional[Dict[str, str]] = None
    starforce_count: Optional[int] = None
    potential: Optional[List[str]] = None
    additional_potential: Optional[List[str]] = None
    potential_grade: Optional[str] = None
    scroll_count: Optional[str] = None


@dataclass
class EquipmentTitle:
    name: str
    icon: Optional[str] = None
    description: Optional[str] = None


@dataclass
class CharacterEquipment:
    ocid: str
    items: List[EquipmentItemSummary]
    title: Optional[EquipmentTitle] = None


@dataclass
class CharacterInfo:
    ocid: str
    summary: CharacterSummary
    union: Optional[UnionOverview] = None
    experience: List[ExperiencePoint] = field(default_factory=list)


@dataclass
class UnionReport:
    ocid: str
    summary: CharacterSummary
    union: UnionOverview
    raider: RaiderSummary
    artifact: ArtifactSummary
    experience: List[ExperiencePoint] = field(default_factory=list)


# MapleScouter 환산 데이터
@dataclass
class ScouterBasicInfo:
    name: str
    level: Optional[int] = None
    exp_rate: Optional[str] = None
    job: Optional[str] = None
    world: Optional[str] = None
    guild: Optional[str] = None
    creation_date: Optional[str] = None
    popularity: Optional[int] = None
    arcane_force: Optional[int] = None
    authentic_force: Optional[int] = None
    starforce: Optional[int] = None
    union_level: Optional[int] = None
    artifact_level: Optional[int] = None
    power: Optional[float] = None
    dojang_floor: Optional[int] = None
    dojang_time: Optional[int] = None
    character_ranking: Optional[float] = None
    world_ranking: Optional[float] = None
    class_ranking: Optional[float] = None


@dataclass
class ScouterCombatStats:
    combat_power: Optional[float] = None
    general_damage_380: Optional[float] = None
    hexa_damage_380: Optional[float] = None
    general_damage_300: Optional[float] = None
    hexa_damage_300: Optional[float] = None
    stat_score: Optional[float] = None


@dataclass
class ScouterHexaNode:
    key: str
    label: str
    level: int


@dataclass
class ScouterHexaSummary:
    nodes: List[ScouterHexaNode] = field(default_factory=list)
    used_erda: Optional[int] = None
    used_meso: Optional[int] = None


@dataclass
class ScouterPotentialLine:
    option: str
    grade: Optional[str] = None


@dataclass
class ScouterSymbol:
    title: str
    level: int
    type: str
    icon: Optional[str] = None


@dataclass
class ScouterEquipmentStat:
    label: str
    value: str


@dataclass
class ScouterEquipment:
    slot: str
    slot_label: str
    name: str
    icon: Optional[str] = None
    starforce: Optional[float] = None
    scrolls: Optional[float] = None
    flame_summary: Optional[str] = None
    potentials: Optional[List[str]] = None
    additional_potentials: Optional[List[str]] = None
    stats: List[ScouterEquipmentStat] = field(default_factory=list)


@dataclass
class ScouterProfile:
    basic: ScouterBasicInfo
    combat: ScouterCombatStats
    equipments: List[ScouterEquipment] = field(default_factory=list)
    hexa: ScouterHexaSummary = field(default_factory=ScouterHexaSummary)
    potentials: List[ScouterPotentialLine] = field(default_factory=list)
    symbols: List[ScouterSymbol] = field(default_factory=list)
    avatar: Optional[str] = None
    preset: Optional[str] = None
    preset_used: bool = False
