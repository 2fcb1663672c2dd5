"""
Ladder Service

Stage-by-stage ladder progression across 4 courts.

Core Principles:
- One game per court per stage; a stage is complete when all 4 have a winner
- A stage is created only after the previous one is complete
- Results are write-once
- Winners move one court down (toward 1), losers one court up (toward 4)
- Every operation runs under the tournament lock and commits all-or-nothing

State Flow: draft → live (first stage) → finished; canceled from draft/live
"""
import logging
import random
from itertools import groupby
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from ladder.errors import ErrorCode
from ladder.exceptions import (
    InvariantViolationError, NotFoundError, PreconditionError, ValidationFailedError
)
from ladder.orm.stage import Game
from ladder.orm.tournament import COURTS, TournamentStatus
from ladder.services.points_service import resolve_points
from ladder.services.roster_store import RosterStore
from ladder.services.tournament_locks import locked_transaction
from ladder.state_machines.tournament_lifecycle import TournamentLifecycleStateMachine

logger = logging.getLogger(__name__)

TEAM_COUNT = 8
TOP_COURT = min(COURTS)
BOTTOM_COURT = max(COURTS)

# Strongest pair first
FIRST_STAGE_COURT_ORDER = (4, 3, 2, 1)


# ============================================================================
# Pure rules
# ============================================================================

def move_after_result(court: int) -> Tuple[int, int]:
    """(winner_court, loser_court) after a game on ``court``; courts 1 and 4 absorb."""
    return max(TOP_COURT, court - 1), min(BOTTOM_COURT, court + 1)


def order_by_strength(
    team_ids: Sequence[int],
    strengths: Dict[int, int],
    rng: Optional[random.Random] = None
) -> List[int]:
    """Strength descending; ties broken uniformly at random, only among equals."""
    rng = rng or random.Random()
    ranked = sorted(team_ids, key=lambda t: -strengths.get(t, 0))
    ordered: List[int] = []
    for _, group in groupby(ranked, key=lambda t: strengths.get(t, 0)):
        tied = list(group)
        rng.shuffle(tied)
        ordered.extend(tied)
    return ordered


def pair_first_stage(
    team_ids: Sequence[int],
    strengths: Dict[int, int],
    rng: Optional[random.Random] = None
) -> Dict[int, Tuple[int, int]]:
    """Consecutive ranked teams pair up; the strongest pair plays on court 4."""
    ordered = order_by_strength(team_ids, strengths, rng)
    return {
        court: (ordered[2 * i], ordered[2 * i + 1])
        for i, court in enumerate(FIRST_STAGE_COURT_ORDER)
    }


def pair_from_team_state(team_ids: Sequence[int], courts: Dict[int, int]) -> Dict[int, Tuple[int, int]]:
    """
    Pair the two teams standing on each court.

    Raises:
        InvariantViolationError: any court without exactly two teams, or a
            team missing from the ladder state
    """
    by_court: Dict[int, List[int]] = {court: [] for court in COURTS}
    missing = []
    for team_id in team_ids:
        court = courts.get(team_id)
        if court not in by_court:
            missing.append(team_id)
            continue
        by_court[court].append(team_id)

    imbalanced = {court: ids for court, ids in by_court.items() if len(ids) != 2}
    if missing or imbalanced:
        logger.error(f"[LADDER ANOMALY] court imbalance: courts={by_court} missing={missing}")
        raise InvariantViolationError(
            "Ladder state does not place exactly two teams on every court",
            ErrorCode.COURT_IMBALANCE,
            {
                "courts": {str(court): ids for court, ids in by_court.items()},
                "teams_without_court": missing,
            }
        )
    return {court: (ids[0], ids[1]) for court, ids in by_court.items()}


def stage_is_complete(games: Sequence[Game]) -> bool:
    return len(games) == len(COURTS) and all(g.is_scored for g in games)


# ============================================================================
# Operations
# ============================================================================

async def _ensure_previous_stage_complete(store: RosterStore, tournament_id: int):
    latest = await store.latest_stage(tournament_id)
    if latest is None:
        return None, []
    games = await store.read_games_by_stage(latest.id)
    if not stage_is_complete(games):
        unscored = [g.court for g in games if not g.is_scored]
        raise PreconditionError(
            f"Stage {latest.number} still has unscored games",
            ErrorCode.PREVIOUS_STAGE_INCOMPLETE,
            {"stage_number": latest.number, "unscored_courts": unscored}
        )
    return latest, games


async def start_next_stage(
    db: AsyncSession,
    tournament_id: int,
    rng: Optional[random.Random] = None
) -> Dict[str, Any]:
    """
    Create stage N+1 with one game per court.

    Returns:
        {"stage_number", "stage_id", "games"}
    """
    logger.info(f"[STAGE START] tournament={tournament_id}")

    async with locked_transaction(db, tournament_id):
        store = RosterStore(db)
        tournament = await store.get_tournament(tournament_id, lock=True)
        TournamentLifecycleStateMachine.ensure_active(tournament)

        if not await store.all_accepted_paid(tournament_id):
            raise PreconditionError(
                "All accepted entrants must be paid before the ladder starts",
                ErrorCode.PAYMENT_INCOMPLETE
            )

        teams = await store.list_teams(tournament_id)
        if len(teams) != TEAM_COUNT:
            raise PreconditionError(
                f"Exactly {TEAM_COUNT} teams are required, found {len(teams)}",
                ErrorCode.TEAM_COUNT_INVALID,
                {"count": len(teams), "required": TEAM_COUNT}
            )
        team_ids = [t.id for t in teams]

        previous, _ = await _ensure_previous_stage_complete(store, tournament_id)

        if previous is None:
            strengths = await store.team_strengths(tournament)
            pairings = pair_first_stage(team_ids, strengths, rng)
            number = 1
        else:
            courts = await store.read_team_state(tournament_id)
            pairings = pair_from_team_state(team_ids, courts)
            number = previous.number + 1

        stage = await store.create_stage(tournament_id, number)
        games = await store.create_games(tournament_id, stage.id, pairings)
        await store.write_team_state(
            tournament_id,
            {team_id: court for court, pair in pairings.items() for team_id in pair}
        )

        if TournamentLifecycleStateMachine.check_transition(tournament.lifecycle, TournamentStatus.LIVE):
            await store.update_lifecycle(tournament, TournamentStatus.LIVE)

        result = {
            "stage_number": stage.number,
            "stage_id": stage.id,
            "games": [g.to_dict() for g in games],
        }

    logger.info(f"[STAGE CREATED] tournament={tournament_id} stage={result['stage_number']}")
    return result


async def record_result(
    db: AsyncSession,
    game_id: int,
    winner_team_id: int,
    score_text: Optional[str] = None,
    tournament_id: Optional[int] = None
) -> Dict[str, Any]:
    """
    Record the winner of a game, award points and move both teams.

    Args:
        game_id: Game to score
        winner_team_id: One of the game's two teams
        score_text: Free-form score, stored verbatim
        tournament_id: When given, the game must belong to this tournament

    Returns:
        {"stage_complete", "points_awarded", "winner_court", "loser_court", "game"}
    """
    owner_id = await RosterStore(db).tournament_id_for_game(game_id)
    if tournament_id is not None and owner_id != tournament_id:
        raise NotFoundError("Game", game_id)

    async with locked_transaction(db, owner_id):
        store = RosterStore(db)
        tournament = await store.get_tournament(owner_id, lock=True)
        TournamentLifecycleStateMachine.ensure_active(tournament)

        game = await store.get_game(game_id)
        if game.is_scored:
            logger.warning(f"[RESULT REFUSED] game={game_id} already scored")
            raise PreconditionError(
                f"Game {game_id} already has a result",
                ErrorCode.ALREADY_SCORED,
                {"game_id": game_id, "winner_team_id": game.winner_team_id}
            )

        loser_team_id = game.loser_of(winner_team_id)
        if loser_team_id is None:
            raise ValidationFailedError(
                f"Team {winner_team_id} does not play in game {game_id}",
                ErrorCode.INVALID_WINNER,
                {"game_id": game_id, "team_ids": [game.team_a_id, game.team_b_id]}
            )

        stage = await store.get_stage(game.stage_id)
        points = await resolve_points(store, tournament, stage.number, game.court)

        await store.update_game(game, winner_team_id, score_text, points)
        await store.increment_team_points(winner_team_id, points)

        winner_court, loser_court = move_after_result(game.court)
        await store.write_team_state(owner_id, {winner_team_id: winner_court, loser_team_id: loser_court})

        complete = stage_is_complete(await store.read_games_by_stage(stage.id))
        result = {
            "stage_complete": complete,
            "points_awarded": points,
            "winner_court": winner_court,
            "loser_court": loser_court,
            "game": game.to_dict(),
        }

    logger.info(
        f"[RESULT] tournament={owner_id} stage={stage.number} court={game.court} "
        f"winner={winner_team_id} points={points} stage_complete={complete}"
    )
    return result


async def finish(db: AsyncSession, tournament_id: int) -> Dict[str, Any]:
    """Freeze the latest completed stage and mark the tournament finished."""
    async with locked_transaction(db, tournament_id):
        store = RosterStore(db)
        tournament = await store.get_tournament(tournament_id, lock=True)
        TournamentLifecycleStateMachine.ensure_active(tournament)

        if await store.latest_stage(tournament_id) is None:
            raise PreconditionError(
                "A tournament without stages cannot be finished",
                ErrorCode.NO_STAGES
            )
        latest, _ = await _ensure_previous_stage_complete(store, tournament_id)

        await store.mark_games_final(latest.id)
        TournamentLifecycleStateMachine.check_transition(tournament.lifecycle, TournamentStatus.FINISHED)
        await store.update_lifecycle(tournament, TournamentStatus.FINISHED)
        result = {"status": tournament.status, "final_stage_number": latest.number}

    logger.info(f"[TOURNAMENT FINISHED] tournament={tournament_id} final_stage={result['final_stage_number']}")
    return result


async def cancel(db: AsyncSession, tournament_id: int) -> Dict[str, Any]:
    """Cancel before finish; open registrations are canceled with it. Idempotent."""
    async with locked_transaction(db, tournament_id):
        store = RosterStore(db)
        tournament = await store.get_tournament(tournament_id, lock=True)

        if tournament.lifecycle == TournamentStatus.CANCELED:
            return {"status": tournament.status, "changed": False, "registrations_canceled": 0}

        TournamentLifecycleStateMachine.check_transition(tournament.lifecycle, TournamentStatus.CANCELED)
        await store.update_lifecycle(tournament, TournamentStatus.CANCELED)
        canceled = await store.cancel_open_registrations(tournament_id)
        result = {"status": tournament.status, "changed": True, "registrations_canceled": canceled}

    logger.info(f"[TOURNAMENT CANCELED] tournament={tournament_id} registrations={canceled}")
    return result
