"""
service/templates.py

캐릭터 / 유니온 리포트 HTML 생성 (렌더링 서비스에서 이미지로 변환)

모든 동적 값은 html.escape 처리 후 삽입
"""

from __future__ import annotations

import html
from typing import List, Optional

from service.entities import (
    ArtifactSummary,
    CharacterSummary,
    ExperiencePoint,
    ExperienceStats,
    RaiderSummary,
    RankingSummary,
    UnionOverview,
)
from service.maplestory_utils import normalize_name
from utils.text import format_access_flag, format_exp_value, format_number, format_number_compact, format_percent
from utils.time import format_date

# 경험치 막대 최소 높이 (%)
MIN_BAR_HEIGHT: int = 6


def _e(value) -> str:
    return html.escape("--" if value is None else str(value), quote=True)


_BASE_STYLE = """
  * { box-sizing: border-box; }
  body { margin: 0; padding: 24px; font-family: "Pretendard", "Noto Sans KR", sans-serif; background: #0d141f; color: #f2f4f8; }
  .report { display: grid; grid-template-columns: 320px 1fr 280px; gap: 20px; }
  .card { background: #131b2a; border-radius: 18px; padding: 20px; border: 1px solid rgba(69, 109, 206, 0.24); }
  .avatar-box { display: flex; align-items: center; gap: 18px; }
  .avatar-box img, .avatar-placeholder { width: 120px; height: 120px; border-radius: 26px; background: rgba(255, 255, 255, 0.08); }
  .avatar-placeholder { display: flex; align-items: center; justify-content: center; font-size: 14px; opacity: 0.6; }
  .summary-title { font-size: 22px; font-weight: 600; }
  .summary-sub { font-size: 14px; opacity: 0.75; }
  .stat-grid { display: grid; grid-template-columns: repeat(2, minmax(0, 1fr)); gap: 12px; font-size: 13px; }
  .stat-item { background: rgba(40, 60, 110, 0.18); border-radius: 12px; padding: 10px 12px; }
  .stat-label { font-size: 12px; opacity: 0.7; }
  .stat-value { font-size: 16px; font-weight: 600; margin-top: 4px; }
  .empty { background: rgba(40, 60, 110, 0.12); border-radius: 12px; padding: 16px; text-align: center; opacity: 0.7; }
  .chart { display: flex; align-items: flex-end; gap: 10px; height: 220px; }
  .bar { flex: 1; background: linear-gradient(180deg, #5b8cff, #2b4aa8); border-radius: 8px 8px 0 0; position: relative; }
  .bar-value { position: absolute; top: -20px; width: 100%; text-align: center; font-size: 11px; }
  .bar-label { position: absolute; bottom: -20px; width: 100%; text-align: center; font-size: 11px; opacity: 0.7; }
  .rank-row { display: flex; justify-content: space-between; padding: 8px 10px; border-radius: 10px; font-size: 13px; }
  .rank-row.highlight { background: rgba(91, 140, 255, 0.25); }
  .meta { font-size: 12px; opacity: 0.7; margin: 6px 0; }
  .details-grid { display: grid; grid-template-columns: repeat(4, minmax(0, 1fr)); gap: 8px; font-size: 12px; }
  .details-item { background: rgba(40, 60, 110, 0.12); border-radius: 10px; padding: 8px; }
  ul { margin: 0; padding-left: 18px; font-size: 13px; }
"""


def render_stat(label: str, value) -> str:
    return (
        f'<div class="stat-item"><div class="stat-label">{_e(label)}</div>'
        f'<div class="stat-value">{_e(value)}</div></div>'
    )


def build_chart_bars(series: List[ExperiencePoint]) -> str:
    """일일 경험치 막대그래프 (최대 획득량 기준 비율, 최소 높이 보장)"""
    if not series:
        return '<div class="empty" style="width:100%">경험치 데이터가 없어양</div>'
    max_gain = max([point.gain or 0 for point in series] + [1])
    bars = []
    for point in series:
        height = max(MIN_BAR_HEIGHT, round((point.gain or 0) / max_gain * 100))
        bars.append(
            f'<div class="bar" style="height:{height}%">'
            f'<div class="bar-value">{_e(format_exp_value(point.gain))}</div>'
            f'<div class="bar-label">{_e(point.date[5:])}</div></div>'
        )
    return "".join(bars)


def build_experience_details(series: List[ExperiencePoint]) -> str:
    if not series:
        return '<div class="details-item">기록이 없어양</div>'
    return "".join(
        f'<div class="details-item"><strong>{_e(point.date)}</strong><br>+{_e(format_exp_value(point.gain))}</div>'
        for point in reversed(series)
    )


def build_ranking_list(ranking: RankingSummary) -> str:
    if not ranking.available or not ranking.neighbors:
        return '<div class="meta">주변 랭킹 데이터가 없어양</div>'
    target = normalize_name(ranking.character_name)
    rows = []
    for record in ranking.neighbors:
        css = "rank-row highlight" if normalize_name(record.character_name) == target else "rank-row"
        exp_rate = f" ({_e(format_percent(record.exp_rate))})" if record.exp_rate else ""
        rows.append(
            f'<div class="{css}"><div><strong>{_e(f"#{record.ranking} {record.character_name}")}</strong> '
            f'<span>Lv.{_e(record.character_level)}{exp_rate}</span></div>'
            f'<div>{_e(record.class_name)}</div></div>'
        )
    return "".join(rows)


def _avatar(summary: CharacterSummary) -> str:
    if summary.image:
        return f'<img src="{_e(summary.image)}" alt="avatar" />'
    return '<div class="avatar-placeholder">이미지 없음</div>'


def _document(title: str, body: str) -> str:
    return (
        '<!DOCTYPE html>\n<html lang="ko">\n<head>\n<meta charset="utf-8" />\n'
        f"<title>{_e(title)}</title>\n<style>{_BASE_STYLE}</style>\n</head>\n"
        f"<body>\n{body}\n</body>\n</html>"
    )


def render_character_report(
        summary: CharacterSummary,
        union: Optional[UnionOverview],
        experience: List[ExperiencePoint],
        stats: ExperienceStats,
        ranking: RankingSummary,
        region_label: str,
    ) -> str:
    """캐릭터 정보 리포트 HTML

    Args:
        summary (CharacterSummary): 캐릭터 기본정보
        union (UnionOverview, optional): 유니온 정보 (없으면 안내 문구)
        experience (List[ExperiencePoint]): 일일 경험치 추이
        stats (ExperienceStats): 7일 / 14일 합계 및 평균
        ranking (RankingSummary): 주변 순위
        region_label (str): 지역 표시 이름

    Returns:
        str: 완성된 HTML 문서
    """
    if union is not None:
        union_block = (
            '<div class="stat-grid">'
            + render_stat("유니온 레벨", union.level)
            + render_stat("유니온 등급", union.grade)
            + render_stat("아티팩트 레벨", union.artifact_level)
            + render_stat("아티팩트 포인트", format_number(union.artifact_point or 0))
            + "</div>"
        )
    else:
        union_block = '<div class="empty">유니온 데이터가 없어양</div>'

    job = summary.job + (f" {summary.job_detail}차" if summary.job_detail else "")
    ranking_date = f"{ranking.date} 기준" if ranking.date else "최신 데이터"
    ranking_message = "" if ranking.available else f'<div class="meta">{_e(ranking.message or "랭킹 조회를 지원하지 않는 지역이에양")}</div>'

    body = f"""
<div class="report">
  <section class="card">
    <div class="avatar-box">{_avatar(summary)}
      <div>
        <div class="summary-title">{_e(summary.name)}</div>
        <div class="summary-sub">{_e(summary.world)} · {_e(region_label)}</div>
        <div class="summary-sub">Lv.{_e(summary.level)} ({_e(format_percent(summary.exp_rate))}) · {_e(job)}</div>
        <div class="summary-sub">길드: {_e(summary.guild or "길드 없음")}</div>
        <div class="summary-sub">{_e(format_access_flag(summary.access_flag))}</div>
        <div class="summary-sub">생성일: {_e(format_date(summary.create_date))}</div>
      </div>
    </div>
    <h3>유니온</h3>
    {union_block}
  </section>
  <section class="card">
    <h3>일일 경험치 추이</h3>
    <div class="stat-grid">
      {render_stat("7일 합계", format_exp_value(stats.total7))}
      {render_stat("7일 평균", format_exp_value(stats.avg7))}
      {render_stat("14일 합계", format_exp_value(stats.total14))}
      {render_stat("14일 평균", format_exp_value(stats.avg14))}
    </div>
    <div class="chart" style="margin-top:36px">{build_chart_bars(experience)}</div>
  </section>
  <section class="card">
    <h3>종합 랭킹</h3>
    <div class="meta">{_e(ranking_date)}</div>
    {build_ranking_list(ranking)}
    {ranking_message}
  </section>
</div>
<section class="card" style="margin-top:20px">
  <h3>일자별 경험치 획득량</h3>
  <div class="details-grid">{build_experience_details(experience)}</div>
</section>"""
    return _document(f"{summary.name} 캐릭터 정보", body)


def _list_block(lines: List[str], empty_text: str) -> str:
    if not lines:
        return f'<div class="empty">{_e(empty_text)}</div>'
    return "<ul>" + "".join(f"<li>{_e(line)}</li>" for line in lines) + "</ul>"


def render_union_report(
        summary: CharacterSummary,
        union: UnionOverview,
        raider: RaiderSummary,
        artifact: ArtifactSummary,
        series: List[ExperiencePoint],
        days: int,
    ) -> str:
    """유니온 / 공격대 / 아티팩트 리포트 HTML"""
    inner_stats = [f"{stat.effect}" for stat in raider.inner_stats if stat.effect]
    effects = [f"{effect.name} Lv.{effect.level}" for effect in artifact.effects]
    crystals = [
        f"{crystal.name} Lv.{crystal.level} [{crystal.validity}] {' / '.join(crystal.options)}".rstrip()
        for crystal in artifact.crystals
    ]
    total_gain = sum(point.gain for point in series)

    body = f"""
<div class="report">
  <section class="card">
    <div class="avatar-box">{_avatar(summary)}
      <div>
        <div class="summary-title">{_e(summary.name)}</div>
        <div class="summary-sub">{_e(summary.world)} · Lv.{_e(summary.level)} · {_e(summary.job)}</div>
      </div>
    </div>
    <div class="stat-grid" style="margin-top:16px">
      {render_stat("유니온 레벨", union.level)}
      {render_stat("유니온 등급", union.grade)}
      {render_stat("아티팩트 레벨", union.artifact_level)}
      {render_stat("아티팩트 경험치", format_number_compact(union.artifact_exp))}
      {render_stat("아티팩트 포인트", format_number(union.artifact_point))}
      {render_stat("남은 AP", format_number(artifact.remain_ap))}
    </div>
  </section>
  <section class="card">
    <h3>공격대 효과 (프리셋 {_e(raider.preset)})</h3>
    {_list_block(raider.stat_effects, "공격대원 효과가 없어양")}
    <h3>점령 효과</h3>
    {_list_block(raider.occupied_effects, "점령 효과가 없어양")}
    <h3>내부 스탯</h3>
    {_list_block(inner_stats, "내부 스탯이 없어양")}
  </section>
  <section class="card">
    <h3>아티팩트 효과</h3>
    {_list_block(effects, "아티팩트 효과가 없어양")}
    <h3>크리스탈</h3>
    {_list_block(crystals, "크리스탈이 없어양")}
  </section>
</div>
<section class="card" style="margin-top:20px">
  <h3>최근 {_e(days)}일 경험치 (합계 {_e(format_exp_value(total_gain))})</h3>
  <div class="chart" style="margin-top:36px">{build_chart_bars(series)}</div>
</section>"""
    return _document(f"{summary.name} 유니온 정보", body)
