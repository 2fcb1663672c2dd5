"""
Tournament Lifecycle State Machine

State Flow: draft → live → finished
            draft/live → canceled

finished and canceled are terminal. Re-entering the current state is a no-op,
which is how stage N+1 keeps a live tournament live.
"""
import logging
from typing import Dict, List

from ladder.errors import ErrorCode
from ladder.exceptions import InvalidTransitionError, PreconditionError
from ladder.orm.tournament import Tournament, TournamentStatus

logger = logging.getLogger(__name__)


class TournamentLifecycleStateMachine:
    """Explicit transition table for the tournament lifecycle."""

    TRANSITIONS: Dict[TournamentStatus, List[TournamentStatus]] = {
        TournamentStatus.DRAFT: [TournamentStatus.LIVE, TournamentStatus.CANCELED],
        TournamentStatus.LIVE: [TournamentStatus.FINISHED, TournamentStatus.CANCELED],
        TournamentStatus.FINISHED: [],
        TournamentStatus.CANCELED: [],
    }

    TERMINAL_STATES = {TournamentStatus.FINISHED, TournamentStatus.CANCELED}

    @classmethod
    def can_transition(cls, current: TournamentStatus, new: TournamentStatus) -> bool:
        if current == new:
            return True
        return new in cls.TRANSITIONS.get(current, [])

    @classmethod
    def check_transition(cls, current: TournamentStatus, new: TournamentStatus) -> bool:
        """
        Validate a transition.

        Returns:
            True if the status changes, False for a same-state no-op

        Raises:
            InvalidTransitionError: transition not in the table
        """
        if current == new:
            return False
        if not cls.can_transition(current, new):
            if current == TournamentStatus.CANCELED:
                code = ErrorCode.TOURNAMENT_CANCELED
            elif current == TournamentStatus.FINISHED:
                code = ErrorCode.TOURNAMENT_FINISHED
            else:
                code = ErrorCode.STATE_TRANSITION_INVALID
            raise InvalidTransitionError(
                f"Invalid transition: {current.value} → {new.value}",
                code,
                {"current_status": current.value, "requested_status": new.value}
            )
        return True

    @classmethod
    def ensure_active(cls, tournament: Tournament) -> None:
        """Refuse operations on a canceled or finished tournament."""
        status = tournament.lifecycle
        if status == TournamentStatus.CANCELED:
            raise PreconditionError(
                f"Tournament {tournament.id} is canceled",
                ErrorCode.TOURNAMENT_CANCELED
            )
        if status == TournamentStatus.FINISHED:
            raise PreconditionError(
                f"Tournament {tournament.id} is finished",
                ErrorCode.TOURNAMENT_FINISHED
            )

    @classmethod
    def ensure_draft(cls, tournament: Tournament, action: str = "This operation") -> None:
        cls.ensure_active(tournament)
        if tournament.lifecycle != TournamentStatus.DRAFT:
            raise PreconditionError(
                f"{action} is only allowed before the first stage",
                ErrorCode.TOURNAMENT_NOT_DRAFT,
                {"status": tournament.status}
            )
