"""
Admin tournament routes.

Every mutating endpoint delegates to one service operation; service errors
propagate as LadderError and are rendered by the handler in ladder.main.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.database import get_db
from ladder.exceptions import NotFoundError
from ladder.schemas.ladder import (
    GameResultCreate, GameResultResponse, PaymentUpdate, PointsOverridesUpdate,
    RegistrationCreate, RegistrationReview, SeedUpdate, StageResponse, StrengthUpdate,
    TournamentCreate, TournamentResponse
)
from ladder.services import (
    ladder_service, points_service, registration_service, team_formation_service, tournament_service
)
from ladder.services.roster_store import RosterStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/tournaments", tags=["Admin"])


async def _check_player(db: AsyncSession, tournament_id: int, player_id: int) -> None:
    """404 unless the player belongs to the tournament in the path."""
    if await RosterStore(db).tournament_id_for_player(player_id) != tournament_id:
        raise NotFoundError("Player", player_id)


async def _check_registration(db: AsyncSession, tournament_id: int, registration_id: int) -> None:
    if await RosterStore(db).tournament_id_for_registration(registration_id) != tournament_id:
        raise NotFoundError("Registration", registration_id)


# ================= TOURNAMENTS =================

@router.get("", response_model=List[TournamentResponse])
async def list_tournaments(db: AsyncSession = Depends(get_db)):
    return await tournament_service.list_tournaments(db)


@router.post("", status_code=201)
async def create_tournament(data: TournamentCreate, db: AsyncSession = Depends(get_db)):
    points = {
        key: getattr(data, key)
        for key in ("points_c1", "points_c2", "points_c3", "points_c4")
    }
    tournament = await tournament_service.create_tournament(
        db,
        name=data.name,
        registration_mode=data.registration_mode,
        date=data.date,
        start_time=data.start_time,
        points=points,
        overrides=[row.model_dump() for row in data.overrides],
    )
    return {"success": True, "tournament": tournament}


@router.get("/{tournament_id}/state")
async def tournament_state(tournament_id: int, db: AsyncSession = Depends(get_db)):
    return {"success": True, **await tournament_service.get_tournament_state(db, tournament_id)}


# ================= REGISTRATIONS =================

@router.get("/{tournament_id}/registrations")
async def list_registrations(tournament_id: int, db: AsyncSession = Depends(get_db)):
    return {"success": True, **await registration_service.list_registrations(db, tournament_id)}


@router.post("/{tournament_id}/registrations", status_code=201)
async def create_registration(
    tournament_id: int,
    data: RegistrationCreate,
    db: AsyncSession = Depends(get_db)
):
    result = await registration_service.create_registration(db, tournament_id, data.model_dump())
    return {"success": True, **result}


@router.post("/{tournament_id}/registrations/{registration_id}/review")
async def review_registration(
    tournament_id: int,
    registration_id: int,
    data: RegistrationReview,
    db: AsyncSession = Depends(get_db)
):
    await _check_registration(db, tournament_id, registration_id)
    registration = await registration_service.review_registration(db, registration_id, data.action)
    return {"success": True, "registration": registration}


@router.post("/{tournament_id}/registrations/{registration_id}/strength")
async def set_registration_strength(
    tournament_id: int,
    registration_id: int,
    data: StrengthUpdate,
    db: AsyncSession = Depends(get_db)
):
    await _check_registration(db, tournament_id, registration_id)
    registration = await registration_service.set_registration_strength(db, registration_id, data.strength)
    return {"success": True, "registration": registration}


@router.post("/{tournament_id}/registrations/{registration_id}/payment")
async def set_payment(
    tournament_id: int,
    registration_id: int,
    data: PaymentUpdate,
    db: AsyncSession = Depends(get_db)
):
    await _check_registration(db, tournament_id, registration_id)
    payment = await registration_service.set_payment(db, registration_id, data.slot, data.paid)
    return {"success": True, "payment": payment}


# ================= PLAYERS & TEAMS =================

@router.get("/{tournament_id}/players")
async def list_players(tournament_id: int, db: AsyncSession = Depends(get_db)):
    return {"success": True, **await tournament_service.list_solo_players(db, tournament_id)}


@router.post("/{tournament_id}/players/{player_id}/strength")
async def set_player_strength(
    tournament_id: int,
    player_id: int,
    data: StrengthUpdate,
    db: AsyncSession = Depends(get_db)
):
    await _check_player(db, tournament_id, player_id)
    player = await team_formation_service.set_strength(db, player_id, data.strength)
    return {"success": True, "player": player}


@router.post("/{tournament_id}/players/{player_id}/seed")
async def set_player_seed(
    tournament_id: int,
    player_id: int,
    data: SeedUpdate,
    db: AsyncSession = Depends(get_db)
):
    await _check_player(db, tournament_id, player_id)
    player = await team_formation_service.set_seed(db, player_id, data.seed_team_index, data.seed_slot)
    return {"success": True, "player": player}


@router.post("/{tournament_id}/teams/build")
async def build_teams(tournament_id: int, db: AsyncSession = Depends(get_db)):
    result = await team_formation_service.form_teams(db, tournament_id)
    return {"success": True, **result}


@router.post("/{tournament_id}/teams/reset")
async def reset_teams(tournament_id: int, db: AsyncSession = Depends(get_db)):
    result = await team_formation_service.reset_teams(db, tournament_id)
    return {"success": True, **result}


# ================= LADDER =================

@router.post("/{tournament_id}/stages", response_model=StageResponse, status_code=201)
async def start_next_stage(tournament_id: int, db: AsyncSession = Depends(get_db)):
    return await ladder_service.start_next_stage(db, tournament_id)


@router.post("/{tournament_id}/games/{game_id}/result", response_model=GameResultResponse)
async def record_result(
    tournament_id: int,
    game_id: int,
    data: GameResultCreate,
    db: AsyncSession = Depends(get_db)
):
    return await ladder_service.record_result(
        db,
        game_id,
        data.winner_team_id,
        data.score_text,
        tournament_id=tournament_id,
    )


@router.get("/{tournament_id}/points-overrides")
async def list_points_overrides(tournament_id: int, db: AsyncSession = Depends(get_db)):
    return {"success": True, "rows": await points_service.list_overrides(db, tournament_id)}


@router.put("/{tournament_id}/points-overrides")
async def save_points_overrides(
    tournament_id: int,
    data: PointsOverridesUpdate,
    db: AsyncSession = Depends(get_db)
):
    rows = await points_service.save_overrides(db, tournament_id, [row.model_dump() for row in data.rows])
    return {"success": True, "rows": rows}


@router.post("/{tournament_id}/finish")
async def finish(tournament_id: int, db: AsyncSession = Depends(get_db)):
    return {"success": True, **await ladder_service.finish(db, tournament_id)}


@router.post("/{tournament_id}/cancel")
async def cancel(tournament_id: int, db: AsyncSession = Depends(get_db)):
    return {"success": True, **await ladder_service.cancel(db, tournament_id)}
