"""
Tournament Service

Tournament creation and the read models behind the admin and public views.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.config import settings
from ladder.errors import ErrorCode
from ladder.exceptions import ValidationFailedError
from ladder.orm.tournament import COURTS, RegistrationMode, Tournament, TournamentStatus
from ladder.services.bucket_sorter import rank_players
from ladder.services.ladder_service import stage_is_complete
from ladder.services.points_service import POINT_FIELDS, validate_override_rows, validate_point_value
from ladder.services.roster_store import RosterStore

logger = logging.getLogger(__name__)


async def create_tournament(
    db: AsyncSession,
    name: str,
    registration_mode: str = RegistrationMode.SOLO.value,
    date: Optional[str] = None,
    start_time: Optional[str] = None,
    points: Optional[Dict[str, int]] = None,
    overrides: Optional[Iterable[Any]] = None
) -> Dict[str, Any]:
    """
    Create a draft tournament.

    points maps points_c1..points_c4 to values; missing courts use the
    configured defaults (5/4/3/2 unless overridden by DEFAULT_POINTS_C*).
    """
    name = (name or "").strip()
    if not name:
        raise ValidationFailedError("name cannot be empty", ErrorCode.MISSING_FIELD, {"field": "name"})

    try:
        mode = RegistrationMode(registration_mode)
    except ValueError:
        raise ValidationFailedError(
            f"Invalid registration_mode. Must be one of: {', '.join(m.value for m in RegistrationMode)}",
            ErrorCode.INVALID_INPUT,
            {"field": "registration_mode", "value": registration_mode}
        )

    points = points or {}
    values = {}
    for court, field_name in zip(COURTS, POINT_FIELDS):
        value = points.get(field_name)
        values[field_name] = settings.DEFAULT_POINTS[court] if value is None else validate_point_value(value, field_name)

    override_rows = validate_override_rows(overrides or [])

    tournament = Tournament(
        name=name,
        date=date,
        start_time=start_time,
        registration_mode=mode.value,
        status=TournamentStatus.DRAFT.value,
        **values
    )
    db.add(tournament)
    try:
        await db.flush()
        if override_rows:
            await RosterStore(db).replace_points_overrides(tournament.id, override_rows)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"[TOURNAMENT CREATED] id={tournament.id} mode={tournament.registration_mode}")
    return {**tournament.to_dict(), "points_overrides": override_rows}


async def list_tournaments(db: AsyncSession) -> List[Dict[str, Any]]:
    """Newest date first."""
    result = await db.execute(
        select(Tournament)
        .order_by(Tournament.date.desc(), Tournament.id.desc())
        .execution_options(populate_existing=True)
    )
    return [t.to_dict() for t in result.scalars().all()]


async def list_solo_players(db: AsyncSession, tournament_id: int) -> Dict[str, Any]:
    """
    Players in bucket order with rank and bucket, plus team placement once
    teams exist. Uses the same ordering as team formation.
    """
    store = RosterStore(db)
    tournament = await store.get_tournament(tournament_id)
    players = await store.list_accepted_players(tournament_id)

    placement = {}
    for member in await store.list_team_members(tournament_id):
        placement[member.player_id] = member

    teams = {t.id: t for t in await store.list_teams(tournament_id)}

    rows = []
    for player, rank, bucket in rank_players(players, tournament_id):
        member = placement.get(player.id)
        team = teams.get(member.team_id) if member else None
        rows.append({
            **player.to_dict(),
            "rank": rank,
            "bucket": bucket,
            "team_index": team.team_index if team else None,
            "team_slot": member.slot if member else None,
        })

    return {
        "tournament_id": tournament.id,
        "registration_mode": tournament.registration_mode,
        "teams_formed": bool(teams),
        "players": rows,
    }


async def _teams_with_members(store: RosterStore, tournament_id: int) -> List[Dict[str, Any]]:
    courts = await store.read_team_state(tournament_id)
    members: Dict[int, List[Dict[str, Any]]] = {}
    for member in await store.list_team_members(tournament_id):
        members.setdefault(member.team_id, []).append({
            "slot": member.slot,
            "player_id": member.player_id,
            "full_name": member.player.full_name if member.player else None,
        })

    teams = await store.list_teams(tournament_id)
    teams.sort(key=lambda t: (-t.points, t.team_index))
    return [
        {
            **team.to_dict(),
            "current_court": courts.get(team.id),
            "members": members.get(team.id, []),
        }
        for team in teams
    ]


async def _stage_view(store: RosterStore, tournament_id: int, stage_number: Optional[int]) -> Dict[str, Any]:
    if stage_number is None:
        stage = await store.latest_stage(tournament_id)
    else:
        stage = await store.get_stage_by_number(tournament_id, stage_number)

    if stage is None:
        return {"stage": None, "games": [], "stage_complete": False, "has_next_stage": False}

    games = await store.read_games_by_stage(stage.id)
    has_next = await store.get_stage_by_number(tournament_id, stage.number + 1) is not None
    return {
        "stage": stage.to_dict(),
        "games": [g.to_dict() for g in games],
        "stage_complete": stage_is_complete(games),
        "has_next_stage": has_next,
    }


async def get_tournament_state(db: AsyncSession, tournament_id: int) -> Dict[str, Any]:
    """Admin view: tournament, standings, latest stage and its games."""
    store = RosterStore(db)
    tournament = await store.get_tournament(tournament_id)
    view = await _stage_view(store, tournament_id, None)
    return {
        "tournament": tournament.to_dict(),
        "teams": await _teams_with_members(store, tournament_id),
        "points_overrides": [o.to_dict() for o in await store.read_points_overrides(tournament_id)],
        "stage_count": await store.count_stages(tournament_id),
        "all_accepted_paid": await store.all_accepted_paid(tournament_id),
        **view,
    }


async def get_public_view(db: AsyncSession, tournament_id: int, stage_number: Optional[int] = None) -> Dict[str, Any]:
    """Public view of one stage (latest by default) and the standings."""
    store = RosterStore(db)
    tournament = await store.get_tournament(tournament_id)
    view = await _stage_view(store, tournament_id, stage_number)
    public = tournament.to_dict()
    return {
        "tournament": {
            key: public[key]
            for key in ("id", "name", "date", "start_time", "registration_mode", "status")
        },
        "teams": await _teams_with_members(store, tournament_id),
        **view,
    }
