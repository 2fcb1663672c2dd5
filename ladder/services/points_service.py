"""
Points Service

Per-stage point overrides and point resolution at scoring time.

An override row replaces the tournament's default points_c1..c4 for one
stage number. Overrides are resolved when a game is scored, never copied
into games at stage creation.
"""
import logging
from typing import Any, Dict, Iterable, List, Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from ladder.errors import ErrorCode
from ladder.exceptions import PreconditionError, ValidationFailedError
from ladder.orm.tournament import COURTS, Tournament
from ladder.services.roster_store import RosterStore
from ladder.services.tournament_locks import locked_transaction
from ladder.state_machines.tournament_lifecycle import TournamentLifecycleStateMachine

logger = logging.getLogger(__name__)

POINT_FIELDS = tuple(f"points_c{court}" for court in COURTS)


def _row_value(row: Any, key: str) -> Any:
    if isinstance(row, Mapping):
        return row.get(key)
    return getattr(row, key, None)


def validate_point_value(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationFailedError(
            f"{field_name} must be a non-negative integer",
            ErrorCode.INVALID_POINTS,
            {"field": field_name, "value": value}
        )
    return value


def validate_override_rows(rows: Iterable[Any]) -> List[Dict[str, int]]:
    """
    Normalize an overrides submission.

    Accepts mappings or objects with stage_number and points_c1..c4.

    Raises:
        ValidationFailedError: stage_number < 1, duplicate stage_number,
            negative or non-integer points
    """
    normalized: List[Dict[str, int]] = []
    seen = set()
    for row in rows:
        stage_number = _row_value(row, "stage_number")
        if isinstance(stage_number, bool) or not isinstance(stage_number, int) or stage_number < 1:
            raise ValidationFailedError(
                "stage_number must be an integer >= 1",
                ErrorCode.INVALID_STAGE_NUMBER,
                {"stage_number": stage_number}
            )
        if stage_number in seen:
            raise ValidationFailedError(
                f"stage_number {stage_number} appears more than once",
                ErrorCode.DUPLICATE_STAGE_NUMBER,
                {"stage_number": stage_number}
            )
        seen.add(stage_number)

        item = {"stage_number": stage_number}
        for field_name in POINT_FIELDS:
            item[field_name] = validate_point_value(_row_value(row, field_name), field_name)
        normalized.append(item)

    return sorted(normalized, key=lambda r: r["stage_number"])


async def resolve_points(store: RosterStore, tournament: Tournament, stage_number: int, court: int) -> int:
    """Points for a win on this court in this stage: override if present, else default."""
    override = await store.get_points_override(tournament.id, stage_number)
    if override is not None:
        return override.points()[court]
    return tournament.default_points()[court]


async def save_overrides(db: AsyncSession, tournament_id: int, rows: Iterable[Any]) -> List[Dict[str, int]]:
    """
    Replace every override of the tournament with rows.

    Allowed only until the first stage exists; a partial submission clears
    every stage number it does not mention.
    """
    normalized = validate_override_rows(rows)

    async with locked_transaction(db, tournament_id):
        store = RosterStore(db)
        tournament = await store.get_tournament(tournament_id, lock=True)
        TournamentLifecycleStateMachine.ensure_active(tournament)

        stages = await store.count_stages(tournament_id)
        if stages:
            logger.warning(f"[OVERRIDES REFUSED] tournament={tournament_id} stages={stages}")
            raise PreconditionError(
                "Point overrides are locked once the first stage has been created",
                ErrorCode.OVERRIDES_LOCKED_AFTER_START,
                {"stage_count": stages}
            )

        saved = await store.replace_points_overrides(tournament_id, normalized)
        result = [o.to_dict() for o in saved]

    logger.info(f"[OVERRIDES SAVED] tournament={tournament_id} rows={len(result)}")
    return result


async def list_overrides(db: AsyncSession, tournament_id: int) -> List[Dict[str, int]]:
    store = RosterStore(db)
    await store.get_tournament(tournament_id)
    return [o.to_dict() for o in await store.read_points_overrides(tournament_id)]
