"""
Tournament lifecycle state machine tests

Transition table:
    draft → live, canceled
    live → finished, canceled
    finished, canceled → (terminal)
"""
from types import SimpleNamespace

import pytest

from ladder.errors import ErrorCode
from ladder.exceptions import InvalidTransitionError, PreconditionError
from ladder.orm import TournamentStatus
from ladder.state_machines.tournament_lifecycle import TournamentLifecycleStateMachine

DRAFT = TournamentStatus.DRAFT
LIVE = TournamentStatus.LIVE
FINISHED = TournamentStatus.FINISHED
CANCELED = TournamentStatus.CANCELED


def tournament(status: TournamentStatus):
    return SimpleNamespace(id=1, status=status.value, lifecycle=status)


class TestTransitionTable:
    @pytest.mark.parametrize("current,new", [
        (DRAFT, LIVE), (DRAFT, CANCELED), (LIVE, FINISHED), (LIVE, CANCELED),
    ])
    def test_allowed(self, current, new):
        assert TournamentLifecycleStateMachine.can_transition(current, new)
        assert TournamentLifecycleStateMachine.check_transition(current, new) is True

    @pytest.mark.parametrize("current,new,code", [
        (DRAFT, FINISHED, ErrorCode.STATE_TRANSITION_INVALID),
        (LIVE, DRAFT, ErrorCode.STATE_TRANSITION_INVALID),
        (FINISHED, LIVE, ErrorCode.TOURNAMENT_FINISHED),
        (FINISHED, CANCELED, ErrorCode.TOURNAMENT_FINISHED),
        (CANCELED, LIVE, ErrorCode.TOURNAMENT_CANCELED),
        (CANCELED, DRAFT, ErrorCode.TOURNAMENT_CANCELED),
    ])
    def test_rejected(self, current, new, code):
        assert not TournamentLifecycleStateMachine.can_transition(current, new)
        with pytest.raises(InvalidTransitionError) as exc_info:
            TournamentLifecycleStateMachine.check_transition(current, new)
        assert exc_info.value.code == code
        assert exc_info.value.status_code == 409

    @pytest.mark.parametrize("status", list(TournamentStatus))
    def test_same_state_is_noop(self, status):
        assert TournamentLifecycleStateMachine.can_transition(status, status)
        assert TournamentLifecycleStateMachine.check_transition(status, status) is False

    def test_terminal_states_have_no_exits(self):
        for status in TournamentLifecycleStateMachine.TERMINAL_STATES:
            assert TournamentLifecycleStateMachine.TRANSITIONS[status] == []


class TestGuards:
    @pytest.mark.parametrize("status", [DRAFT, LIVE])
    def test_active_states_pass(self, status):
        TournamentLifecycleStateMachine.ensure_active(tournament(status))

    @pytest.mark.parametrize("status,code", [
        (FINISHED, ErrorCode.TOURNAMENT_FINISHED),
        (CANCELED, ErrorCode.TOURNAMENT_CANCELED),
    ])
    def test_terminal_states_refused(self, status, code):
        with pytest.raises(PreconditionError) as exc_info:
            TournamentLifecycleStateMachine.ensure_active(tournament(status))
        assert exc_info.value.code == code

    def test_draft_guard(self):
        TournamentLifecycleStateMachine.ensure_draft(tournament(DRAFT))
        with pytest.raises(PreconditionError) as exc_info:
            TournamentLifecycleStateMachine.ensure_draft(tournament(LIVE), "Seeding")
        assert exc_info.value.code == ErrorCode.TOURNAMENT_NOT_DRAFT
        assert exc_info.value.message.startswith("Seeding")

    def test_draft_guard_reports_cancel_first(self):
        with pytest.raises(PreconditionError) as exc_info:
            TournamentLifecycleStateMachine.ensure_draft(tournament(CANCELED))
        assert exc_info.value.code == ErrorCode.TOURNAMENT_CANCELED
