"""
Unit tests for the data models.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from bracket.models import Participant, Group, Pool, MatchResult, KnockoutMatch, SummaryResult


class TestParticipant:
    """Tests for the Participant model."""

    def test_from_row_defaults_association(self):
        """Rows without an association fall back to 'Unknown'."""
        player = Participant.from_row({'id': 'p1', 'name': 'Ana', 'association': None})
        assert player.association == 'Unknown'
        assert player.weight is None

    def test_equality_by_id(self):
        """Participants compare equal when their ids match."""
        assert Participant('p1', 'Ana', 'X') == Participant('p1', 'Ana (renamed)', 'Y')
        assert Participant('p1', 'Ana') != Participant('p2', 'Ana')

    def test_repr(self):
        """Test participant string representation."""
        assert 'Ana' in repr(Participant('p1', 'Ana', 'X'))


class TestGroupAndPool:
    """Tests for Group and Pool."""

    def test_single_player_group_is_bye(self):
        """Test a one-player group is a bye."""
        assert Group('1.1', [Participant('p1', 'Ana')]).is_bye
        assert not Group('1.1', [Participant('p1', 'Ana'), Participant('p2', 'Bo')]).is_bye

    def test_pool_participants_in_group_order(self):
        """Test pool participants are listed group by group."""
        pool = Pool('Pool A', 1, [
            Group('1.1', [Participant('p1', 'Ana'), Participant('p2', 'Bo')]),
            Group('1.2', [Participant('p3', 'Cy')]),
        ])
        assert [p.id for p in pool.participants] == ['p1', 'p2', 'p3']


class TestKnockoutMatch:
    """Tests for the derived KnockoutMatch."""

    def test_undecided_match_has_no_winner_or_loser(self):
        """Test an undecided match has neither winner nor loser."""
        match = KnockoutMatch('knockout-1.1-match0', Participant('p1', 'Ana'), Participant('p2', 'Bo'))
        assert not match.is_decided
        assert match.winner is None
        assert match.loser is None

    def test_winner_and_loser(self):
        """Test winner and loser follow the recorded winner id."""
        match = KnockoutMatch('knockout-1.1-match0', Participant('p1', 'Ana'), Participant('p2', 'Bo'),
                              winner_id='p2')
        assert match.winner.id == 'p2'
        assert match.loser.id == 'p1'

    def test_to_dict_handles_missing_player(self):
        match = KnockoutMatch('final', Participant('p1', 'Ana'), None)
        data = match.to_dict()
        assert data['player2'] is None
        assert data['player1']['id'] == 'p1'


class TestResultRows:
    """Tests for row conversion of stored results."""

    def test_match_result_from_row(self):
        """Test building a MatchResult from a stored row."""
        result = MatchResult.from_row({
            'id': 'r1', 'scope_id': 's', 'match_stage': 'final',
            'player1_id': 'p1', 'player2_id': 'p2', 'winner_id': 'p1',
        })
        assert result.match_stage == 'final'
        assert result.winner_id == 'p1'
        assert 'id' not in result.to_row()

    def test_summary_result_to_dict_includes_id(self):
        summary = SummaryResult('Final', 'p1', 'final', 'winner', scope_id='s', id='row-1')
        assert summary.to_dict() == {
            'id': 'row-1', 'scope_id': 's', 'group_name': 'Final',
            'player_id': 'p1', 'result_type': 'final', 'position': 'winner',
        }
