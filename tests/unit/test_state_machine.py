"""
Unit tests for MatchStateMachine.
Tests transitions, the winner index guard, and state parsing.
"""
import pytest
from shared.state_machine import (
    MatchStateMachine,
    MatchState,
    TransitionError,
    winner_index_guard
)


class TestMatchStateEnum:
    """Tests for MatchState enum."""

    def test_all_states_exist(self):
        assert MatchState.ACTIVE.value == "active"
        assert MatchState.COMPLETED.value == "completed"
        assert MatchState.ARCHIVED.value == "archived"


class TestTransitionError:
    """Tests for TransitionError exception."""

    def test_error_attributes(self):
        error = TransitionError("completed", "active")
        assert error.from_state == "completed"
        assert error.to_state == "active"

    def test_custom_reason(self):
        error = TransitionError("active", "completed", "Custom error message")
        assert str(error) == "Custom error message"


class TestWinnerIndexGuard:

    def test_accepts_zero_and_one(self):
        assert winner_index_guard({'winner_team_index': 0})
        assert winner_index_guard({'winner_team_index': 1})

    def test_rejects_other_values(self):
        assert not winner_index_guard({'winner_team_index': 2})
        assert not winner_index_guard({'winner_team_index': None})
        assert not winner_index_guard({})


class TestTransitions:
    """Tests for state transitions."""

    def test_initial_state_is_active(self):
        assert MatchStateMachine().state == MatchState.ACTIVE

    def test_score_update_keeps_active(self):
        sm = MatchStateMachine()
        sm.transition('update_score')
        assert sm.state == MatchState.ACTIVE

    def test_end_completes_match(self):
        sm = MatchStateMachine()
        sm.transition('end', {'winner_team_index': 1})
        assert sm.state == MatchState.COMPLETED

    def test_end_with_bad_winner_fails_guard(self):
        sm = MatchStateMachine()
        with pytest.raises(TransitionError):
            sm.transition('end', {'winner_team_index': 5})
        assert sm.state == MatchState.ACTIVE

    def test_cannot_end_twice(self):
        sm = MatchStateMachine()
        sm.transition('end', {'winner_team_index': 0})
        with pytest.raises(TransitionError):
            sm.transition('end', {'winner_team_index': 0})

    def test_cannot_update_score_after_completion(self):
        sm = MatchStateMachine(MatchState.COMPLETED)
        with pytest.raises(TransitionError):
            sm.transition('update_score')

    def test_archive_from_active_and_completed(self):
        for state in (MatchState.ACTIVE, MatchState.COMPLETED):
            sm = MatchStateMachine(state)
            sm.transition('archive')
            assert sm.state == MatchState.ARCHIVED

    def test_archived_is_terminal(self):
        sm = MatchStateMachine(MatchState.ARCHIVED)
        assert not sm.can_transition('archive')
        assert not sm.can_transition('end')
        assert sm.allowed_actions == ['view']

    def test_history_records_transitions(self):
        sm = MatchStateMachine()
        sm.transition('update_score')
        sm.transition('end', {'winner_team_index': 0})
        assert len(sm.get_history()) == 2


class TestFromStateString:

    def test_known_state(self):
        sm = MatchStateMachine.from_state_string('completed')
        assert sm.state == MatchState.COMPLETED

    def test_unknown_state_defaults_to_active(self):
        sm = MatchStateMachine.from_state_string('bogus')
        assert sm.state == MatchState.ACTIVE
