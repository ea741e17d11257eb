"""
Data models for the bracket engine.

Participants, groups and pools describe the draw; MatchResult rows are the
only progression state that gets persisted. KnockoutMatch is always derived.
"""

SUMMARY_RESULT_TYPES = ('pool', 'final')
SUMMARY_POSITIONS = ('winner', 'runner_up', 'bronze', 'semi_finalist', 'participant')


class Participant:
    def __init__(self, id, name, association='Unknown', weight=None):
        self.id = id
        self.name = name
        self.association = association
        self.weight = weight

    @classmethod
    def from_row(cls, row):
        return cls(
            id=row['id'],
            name=row.get('name', ''),
            association=row.get('association') or 'Unknown',
            weight=row.get('weight'),
        )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'association': self.association,
            'weight': self.weight,
        }

    def __eq__(self, other):
        return isinstance(other, Participant) and self.id == other.id

    def __hash__(self):
        return hash(self.id)

    def __repr__(self):
        return f"Participant(id={self.id}, name={self.name}, association={self.association})"


class Group:
    def __init__(self, name, players=None):
        self.name = name
        self.players = players if players else []

    @property
    def is_bye(self):
        return len(self.players) == 1

    def to_dict(self):
        return {
            'name': self.name,
            'players': [p.to_dict() for p in self.players],
            'is_bye': self.is_bye,
        }

    def __repr__(self):
        return f"Group(name={self.name}, players={[p.id for p in self.players]})"


class Pool:
    def __init__(self, name, number, groups=None):
        self.name = name
        self.number = number
        self.groups = groups if groups else []

    @property
    def participants(self):
        return [p for group in self.groups for p in group.players]

    def to_dict(self):
        return {
            'name': self.name,
            'number': self.number,
            'groups': [g.to_dict() for g in self.groups],
        }

    def __repr__(self):
        return f"Pool(name={self.name}, groups={self.groups})"


class MatchResult:
    def __init__(self, match_stage, player1_id, player2_id, winner_id, scope_id=None, id=None):
        self.id = id
        self.scope_id = scope_id
        self.match_stage = match_stage
        self.player1_id = player1_id
        self.player2_id = player2_id
        self.winner_id = winner_id

    @classmethod
    def from_row(cls, row):
        return cls(
            id=row.get('id'),
            scope_id=row.get('scope_id'),
            match_stage=row['match_stage'],
            player1_id=row.get('player1_id'),
            player2_id=row.get('player2_id'),
            winner_id=row.get('winner_id'),
        )

    def to_row(self):
        return {
            'scope_id': self.scope_id,
            'match_stage': self.match_stage,
            'player1_id': self.player1_id,
            'player2_id': self.player2_id,
            'winner_id': self.winner_id,
        }

    def __repr__(self):
        return f"MatchResult(match_stage={self.match_stage}, winner_id={self.winner_id})"


class KnockoutMatch:
    """A derived match: two optional contestants and the recorded winner, if any.

    round_depth counts rounds from 1 inside a pool's knockout and is what
    progression logic relies on. stage is the display label only.
    """

    def __init__(self, id, player1=None, player2=None, winner_id=None, stage='', round_depth=1,
                 is_pool_final=False):
        self.id = id
        self.player1 = player1
        self.player2 = player2
        self.winner_id = winner_id
        self.stage = stage
        self.round_depth = round_depth
        self.is_pool_final = is_pool_final

    @property
    def contestant_ids(self):
        return [p.id for p in (self.player1, self.player2) if p is not None]

    @property
    def is_decided(self):
        return self.winner_id is not None

    @property
    def winner(self):
        for player in (self.player1, self.player2):
            if player is not None and player.id == self.winner_id:
                return player
        return None

    @property
    def loser(self):
        if not self.is_decided:
            return None
        for player in (self.player1, self.player2):
            if player is not None and player.id != self.winner_id:
                return player
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'player1': self.player1.to_dict() if self.player1 else None,
            'player2': self.player2.to_dict() if self.player2 else None,
            'winner_id': self.winner_id,
            'stage': self.stage,
            'round_depth': self.round_depth,
            'is_pool_final': self.is_pool_final,
        }

    def __repr__(self):
        return f"KnockoutMatch(id={self.id}, players={self.contestant_ids}, winner_id={self.winner_id})"


class SummaryResult:
    def __init__(self, group_name, player_id, result_type, position, scope_id=None, id=None):
        self.id = id
        self.scope_id = scope_id
        self.group_name = group_name
        self.player_id = player_id
        self.result_type = result_type
        self.position = position

    @classmethod
    def from_row(cls, row):
        return cls(
            id=row.get('id'),
            scope_id=row.get('scope_id'),
            group_name=row.get('group_name'),
            player_id=row.get('player_id'),
            result_type=row.get('result_type'),
            position=row.get('position'),
        )

    def to_row(self):
        return {
            'scope_id': self.scope_id,
            'group_name': self.group_name,
            'player_id': self.player_id,
            'result_type': self.result_type,
            'position': self.position,
        }

    def to_dict(self):
        return {'id': self.id, **self.to_row()}

    def __repr__(self):
        return f"SummaryResult(group_name={self.group_name}, player_id={self.player_id}, position={self.position})"


class ClubbedResult:
    def __init__(self, player_id, rank, remarks, scope_id=None, id=None):
        self.id = id
        self.scope_id = scope_id
        self.player_id = player_id
        self.rank = rank
        self.remarks = remarks

    @classmethod
    def from_row(cls, row):
        return cls(
            id=row.get('id'),
            scope_id=row.get('scope_id'),
            player_id=row.get('player_id'),
            rank=row.get('rank'),
            remarks=row.get('remarks'),
        )

    def to_row(self):
        return {
            'scope_id': self.scope_id,
            'player_id': self.player_id,
            'rank': self.rank,
            'remarks': self.remarks,
        }

    def to_dict(self):
        return {'id': self.id, **self.to_row()}

    def __repr__(self):
        return f"ClubbedResult(player_id={self.player_id}, rank={self.rank})"
