from typing import List, Optional
from urllib.parse import quote

import discord
from discord.ext import commands

from bot_logger import log_command, logger, with_timeout
from config import BOT_COMMAND_PREFIX, COMMAND_TIMEOUT
from service.entities import CharacterSummary
from service.maplestory_utils import build_equipment_line, summarize_experience
from service.services import MapleServices
from service.templates import render_character_report, render_union_report
from service.user_history import ResolveResult, resolve_character_name
from utils.text import (
    format_access_flag,
    format_exp_value,
    format_number,
    format_percent,
    preprocess_int_with_korean,
    rank_to_emoji,
)
from utils.time import format_date

from exceptions.client_exceptions import (
    NexonAPICharacterNotFound,
    NexonAPIDataNotReady,
    NexonAPIError,
    NexonAPIForbidden,
    NexonAPIServiceUnavailable,
    NexonAPITooManyRequests,
    RenderServiceError,
    ScouterAPIError,
)
from exceptions.command_exceptions import CommandFailure

# 장비 명령어 최대 표시 개수
EQUIPMENT_DISPLAY_LIMIT: int = 12


async def send_nexon_error(ctx: commands.Context, error: NexonAPIError, character_name: str) -> None:
    """Nexon API 예외를 사용자 안내 메세지로 변환

    캐릭터 없음은 안내만 하고 종료, 나머지는 CommandFailure 발생 (log_command에서 ERROR 기록)
    """
    if isinstance(error, NexonAPICharacterNotFound):
        await ctx.send(f"캐릭터 '{character_name}'을 찾을 수 없어양!")
        return
    if isinstance(error, NexonAPIForbidden):
        await ctx.send("Nexon Open API 접근 권한이 없어양!")
        raise CommandFailure("Forbidden access to API")
    if isinstance(error, NexonAPITooManyRequests):
        await ctx.send("API 요청이 너무 많아양! 잠시 후 다시 시도해보세양")
        raise CommandFailure("Too many requests to API")
    if isinstance(error, NexonAPIServiceUnavailable):
        await ctx.send("Nexon Open API 서버에 오류가 발생했거나 점검중이에양")
        raise CommandFailure("Nexon Open API Internal server error")
    if isinstance(error, NexonAPIDataNotReady):
        await ctx.send("아직 데이터가 준비되지 않았어양! 잠시 후 다시 시도해보세양")
        raise CommandFailure("Nexon Open API data not ready")
    code = f" ({error.code})" if error.code else ""
    await ctx.send(f"캐릭터 '{character_name}'의 정보를 가져오지 못했어양{code}")
    raise CommandFailure(f"Nexon Open API error: {error}")


async def _resolve(
        ctx: commands.Context,
        services: MapleServices,
        character_name: Optional[str],
        command_name: str,
        use_binding: bool = True,
    ) -> Optional[ResolveResult]:
    resolved = await resolve_character_name(
        ctx, services.bot, services.region, services.history, character_name, use_binding=use_binding
    )
    if resolved.ok:
        return resolved
    if resolved.reason == "missing-name":
        await ctx.send(f"캐릭터 이름을 같이 입력해주세양! (예: {BOT_COMMAND_PREFIX}{command_name} 캐릭터명)")
    elif resolved.reason == "timeout":
        await ctx.send("입력 대기 시간이 지났어양. 다시 시도해주세양")
    else:
        await ctx.send("캐릭터 이름이 비어있어양. 다시 입력해주세양")
    return None


async def _remember(services: MapleServices, resolved: ResolveResult, character_name: str) -> None:
    if resolved.should_persist and resolved.user_id:
        await services.history.remember(resolved.user_id, resolved.platform, services.region, character_name)


async def _send_report_image(ctx: commands.Context, services: MapleServices, html: str, filename: str) -> bool:
    """렌더링 서비스로 이미지 전송, 실패 시 False (텍스트로 대체)"""
    if services.renderer is None:
        return False
    try:
        image = await services.renderer.render(html)
    except RenderServiceError as e:
        logger.warning(f"리포트 이미지 생성 실패, 텍스트로 대체: {e}")
        return False
    await ctx.send(file=discord.File(image, filename=filename))
    return True


def _summary_colour(summary: CharacterSummary) -> discord.Colour:
    if summary.gender in ("남", "남성"):
        return discord.Colour.from_rgb(0, 128, 255)
    if summary.gender in ("여", "여성"):
        return discord.Colour.from_rgb(239, 111, 148)
    return discord.Colour.from_rgb(128, 128, 128)


def _liberation_label(flag: Optional[str]) -> str:
    if flag == "0":
        return "제네시스 해방 퀘스트 미완료"
    if flag == "1":
        return "제네시스 해방 퀘스트 완료"
    if flag == "2":
        return "데스티니 1차 해방 퀘스트 완료"
    return "해방 퀘스트 진행 여부 알 수 없음"


@with_timeout(COMMAND_TIMEOUT)
@log_command(alt_func_name="븜 정보")
async def maple_info(ctx: commands.Context, services: MapleServices, character_name: Optional[str] = None) -> None:
    """캐릭터 기본정보 + 유니온 + 경험치 추이 + 주변 랭킹 리포트

    렌더링 서비스가 있으면 이미지, 없거나 실패하면 Embed 텍스트로 응답

    Args:
        ctx (commands.Context): Discord 명령어 컨텍스트
        services (MapleServices): 공유 서비스
        character_name (str, optional): 캐릭터 이름 (없으면 바인딩 / 입력 요청)
    """
    resolved = await _resolve(ctx, services, character_name, "정보")
    if resolved is None:
        return

    try:
        info = await services.client.fetch_character_info(resolved.name)
    except NexonAPIError as e:
        await send_nexon_error(ctx, e, resolved.name)
        return
    await _remember(services, resolved, info.summary.name)

    summary = info.summary
    stats = summarize_experience(info.experience)

    if services.renderer is not None:
        ranking = await services.client.fetch_ranking_neighbors(info.ocid, summary.name)
        html = render_character_report(summary, info.union, info.experience, stats, ranking, services.region_label)
        if await _send_report_image(ctx, services, html, f"{info.ocid}_info.png"):
            return

    job_detail = f" ({summary.job_detail}차)" if summary.job_detail else ""
    if info.union is not None:
        union_line = (
            f"**유니온:** Lv.{info.union.level or '--'} | {info.union.grade or '--'}"
            f" | 아티팩트 포인트 {format_number(info.union.artifact_point or 0)}"
        )
    else:
        union_line = "**유니온:** 기록 없음"

    description = [
        f"[🔗 환산 사이트 이동](https://maplescouter.com/info?name={quote(summary.name)})",
        f"**월드:** {summary.world} ({services.region_label})",
        f"**레벨:** {summary.level} ({format_percent(summary.exp_rate)})",
        f"**직업:** {summary.job}{job_detail}",
        f"**길드:** {summary.guild or '길드가 없어양!'}",
        f"**경험치:** {format_number(summary.exp)}",
        union_line,
    ]
    if info.experience:
        recent = info.experience[-5:]
        description.append(f"\n**경험치 추이 (최근 {len(recent)}일)**")
        description.extend(
            f"· {point.date} | Lv.{point.level} | +{format_exp_value(point.gain)}" for point in recent
        )
        description.append(f"7일 합계 {format_exp_value(stats.total7)} / 일평균 {format_exp_value(stats.avg7)}")

    embed = discord.Embed(
        title=f"{summary.world}월드 '{summary.name}' 용사님의 정보에양!!",
        description="\n".join(description),
        colour=_summary_colour(summary),
    )
    if summary.image:
        embed.set_thumbnail(url=summary.image)
    embed.set_footer(
        text=(
            f"생성일: {format_date(summary.create_date)}\n"
            f"{_liberation_label(summary.liberation_quest_clear)}\n"
            f"({format_access_flag(summary.access_flag)})\n"
            f"Data Based on Nexon Open API"
        )
    )
    await ctx.send(embed=embed)


@with_timeout(COMMAND_TIMEOUT)
@log_command(alt_func_name="븜 랭킹")
async def maple_rank(ctx: commands.Context, services: MapleServices, character_name: Optional[str] = None) -> None:
    """종합 랭킹 (최신 기록 + 이전 기록 최대 2개)"""
    resolved = await _resolve(ctx, services, character_name, "랭킹")
    if resolved is None:
        return

    try:
        result = await services.client.fetch_ranking(resolved.name)
    except NexonAPIError as e:
        await send_nexon_error(ctx, e, resolved.name)
        return

    if not result.available:
        await ctx.send(result.message or "현재 지역은 랭킹 조회를 지원하지 않아양")
        return
    await _remember(services, resolved, resolved.name)

    latest, previous = result.records[0], result.records[1:3]
    lines = [
        f"**캐릭터:** {resolved.name} ({services.region_label})",
        f"**최신 순위:** {rank_to_emoji(latest.ranking)}위 ({format_number(latest.ranking)}) | 기준일 {format_date(latest.date)}",
        f"**레벨:** {latest.character_level} | **직업:** {latest.class_name} | **월드:** {latest.world_name}",
    ]
    if previous:
        lines.append("\n**이전 기록**")
        lines.extend(
            f"· {format_date(record.date)} | {format_number(record.ranking)}위 | Lv.{record.character_level}"
            for record in previous
        )
    embed = discord.Embed(
        title=f"'{resolved.name}' 용사님의 종합 랭킹이에양",
        description="\n".join(lines),
        colour=discord.Colour.gold(),
    )
    embed.set_footer(text="Data Based on Nexon Open API")
    await ctx.send(embed=embed)


@with_timeout(COMMAND_TIMEOUT)
@log_command(alt_func_name="븜 장비")
async def maple_equip(ctx: commands.Context, services: MapleServices, character_name: Optional[str] = None) -> None:
    """장착 장비 요약 (칭호 + 최대 12개)"""
    resolved = await _resolve(ctx, services, character_name, "장비")
    if resolved is None:
        return

    try:
        equipment = await services.client.fetch_equipments(resolved.name)
    except NexonAPIError as e:
        await send_nexon_error(ctx, e, resolved.name)
        return
    await _remember(services, resolved, resolved.name)

    if not equipment.items:
        await ctx.send(f"'{resolved.name}' 용사님은 장착한 장비가 없어양!")
        return

    lines: List[str] = []
    if equipment.title is not None:
        lines.append(f"**칭호:** {equipment.title.name}")
    lines.extend(build_equipment_line(item) for item in equipment.items[:EQUIPMENT_DISPLAY_LIMIT])
    remain = len(equipment.items) - EQUIPMENT_DISPLAY_LIMIT
    if remain > 0:
        lines.append(f"... 외 {remain}개 장비")

    embed = discord.Embed(
        title=f"'{resolved.name}' 용사님의 장비 정보에양",
        description="\n".join(lines)[:4000],
        colour=discord.Colour.from_rgb(91, 140, 255),
    )
    embed.set_footer(text="Data Based on Nexon Open API")
    await ctx.send(embed=embed)


@with_timeout(COMMAND_TIMEOUT)
@log_command(alt_func_name="븜 바인딩")
async def maple_bind(ctx: commands.Context, services: MapleServices, character_name: Optional[str] = None) -> None:
    """사용자 - 캐릭터 바인딩

    이름이 없으면 입력을 요청하고, 조회된 캐릭터의 실제 이름(대소문자 등 API 기준)으로 저장
    """
    if not services.history.can_persist():
        await ctx.send("캐릭터 바인딩 기능이 꺼져있어양")
        return

    resolved = await _resolve(ctx, services, character_name, "바인딩", use_binding=False)
    if resolved is None:
        return

    try:
        ocid = await services.client.get_ocid(resolved.name)
        summary = await services.client.get_character_basic(ocid)
    except NexonAPIError as e:
        await send_nexon_error(ctx, e, resolved.name)
        return

    await _remember(services, resolved, summary.name)
    await ctx.send(f"'{summary.name}' 캐릭터를 바인딩했어양! 이제 이름 없이 명령어를 사용할 수 있어양")


@with_timeout(COMMAND_TIMEOUT)
@log_command(alt_func_name="븜 유니온")
async def maple_union(ctx: commands.Context, services: MapleServices, character_name: Optional[str] = None) -> None:
    """유니온 / 공격대 / 아티팩트 / 경험치 추이 리포트"""
    resolved = await _resolve(ctx, services, character_name, "유니온")
    if resolved is None:
        return

    try:
        report = await services.client.fetch_union_report(resolved.name)
    except NexonAPIError as e:
        await send_nexon_error(ctx, e, resolved.name)
        return
    await _remember(services, resolved, report.summary.name)

    days = services.options.experience_days
    html = render_union_report(report.summary, report.union, report.raider, report.artifact, report.experience, days)
    if await _send_report_image(ctx, services, html, f"{report.ocid}_union.png"):
        return

    union, raider, artifact = report.union, report.raider, report.artifact
    lines = [
        f"**유니온:** Lv.{union.level or '--'} | {union.grade or '--'}",
        f"**아티팩트:** Lv.{union.artifact_level or '--'} | 포인트 {format_number(union.artifact_point)}"
        f" | 남은 AP {format_number(artifact.remain_ap)}",
    ]
    if raider.stat_effects:
        lines.append(f"\n**공격대 효과 (프리셋 {raider.preset or '--'})**")
        lines.extend(f"· {effect}" for effect in raider.stat_effects[:10])
    if artifact.effects:
        lines.append("\n**아티팩트 효과**")
        lines.extend(f"· {effect.name} Lv.{effect.level}" for effect in artifact.effects)
    if report.experience:
        total = sum(point.gain for point in report.experience)
        lines.append(f"\n**최근 {days}일 경험치:** {format_exp_value(total)}")

    embed = discord.Embed(
        title=f"'{report.summary.name}' 용사님의 유니온 정보에양",
        description="\n".join(lines)[:4000],
        colour=discord.Colour.from_rgb(91, 140, 255),
    )
    embed.set_footer(text="Data Based on Nexon Open API")
    await ctx.send(embed=embed)


@with_timeout(COMMAND_TIMEOUT)
@log_command(alt_func_name="븜 환산")
async def maple_scouter(ctx: commands.Context, services: MapleServices, character_name: Optional[str] = None) -> None:
    """MapleScouter 환산 요약 (전투력, 보스 환산, 주요 장비, 헥사)"""
    if services.scouter is None:
        await ctx.send("환산 기능이 설정되지 않았어양")
        return

    resolved = await _resolve(ctx, services, character_name, "환산")
    if resolved is None:
        return

    try:
        profile = await services.scouter.fetch_profile(resolved.name)
    except ScouterAPIError as e:
        await ctx.send(f"환산 정보를 가져오지 못했어양 ({e.message})")
        raise CommandFailure("MapleScouter API error") from e
    await _remember(services, resolved, resolved.name)

    basic, combat = profile.basic, profile.combat

    def _amount(value) -> str:
        return preprocess_int_with_korean(int(value)) if value is not None else "--"

    lines = [
        f"**레벨:** {basic.level or '--'} | **직업:** {basic.job or '--'} | **월드:** {basic.world or '--'}",
        f"**전투력:** {_amount(combat.combat_power)}",
        f"**스탯 점수:** {format_number(combat.stat_score)}",
        f"**보스 환산 (300/380):** {format_number(combat.general_damage_300)}% / {format_number(combat.general_damage_380)}%",
        f"**헥사 포함 (300/380):** {format_number(combat.hexa_damage_300)}% / {format_number(combat.hexa_damage_380)}%",
    ]
    if profile.equipments:
        lines.append("\n**주요 장비**")
        for equipment in profile.equipments[:5]:
            star = f" ★{int(equipment.starforce)}" if equipment.starforce else ""
            flame = f" | {equipment.flame_summary}" if equipment.flame_summary else ""
            lines.append(f"· [{equipment.slot_label}] {equipment.name}{star}{flame}")
    hexa_nodes = [node for node in profile.hexa.nodes if node.level > 0]
    if hexa_nodes:
        lines.append("\n**HEXA 코어**")
        lines.append(" / ".join(f"{node.label} {node.level}" for node in hexa_nodes))

    embed = discord.Embed(
        title=f"'{basic.name}' 용사님의 환산 정보에양",
        description="\n".join(lines)[:4000],
        colour=discord.Colour.from_rgb(255, 170, 0),
    )
    if profile.avatar:
        embed.set_thumbnail(url=profile.avatar)
    embed.set_footer(text=f"프리셋 {profile.preset} | Data Based on MapleScouter")
    await ctx.send(embed=embed)
