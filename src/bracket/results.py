"""
Recording results and deriving placements for one scope (an event or sub-event).

All bracket state is rebuilt from the store on each read: the frozen pool
draw, the participants and the match_results rows. Recording a result is an
upsert on (scope_id, match_stage); summary and clubbed rows derived from it
are written one by one, and a failed derived write is logged and skipped.
"""
import logging
import random
from typing import Dict, List, Optional

from bracket.knockout import (
    FINAL_STAGE,
    build_final_match,
    find_knockout_match,
    generate_knockout_matches,
    get_third_place,
    resolve_pool_finalist,
    third_place_candidates,
    third_place_stage,
)
from bracket.models import (
    SUMMARY_POSITIONS,
    SUMMARY_RESULT_TYPES,
    ClubbedResult,
    MatchResult,
    Participant,
    SummaryResult,
)
from bracket.pools import (
    find_group,
    get_group_winner,
    get_pool_winners,
    group_stage_id,
    is_pool_stage_complete,
    partition_participants,
    pool_group_rows,
    pools_from_rows,
)
from store import RowStore, StoreError

logger = logging.getLogger(__name__)

DEFAULT_SCOPE_TITLE = 'Sub Event'

PARTICIPANTS = 'participants'
SCOPES = 'scopes'
POOL_GROUPS = 'pool_groups'
MATCH_RESULTS = 'match_results'
SUMMARY_RESULTS = 'summary_results'
CLUBBED_RESULTS = 'clubbed_results'


class ValidationError(ValueError):
    """Operator input was rejected before anything was written."""


class RecordNotFound(LookupError):
    """A row addressed by id does not exist in the scope."""


class BracketState:
    """Everything derivable for a scope at one point in time."""

    def __init__(self, scope_id, participants: List[Participant], pools, results_by_stage: Dict[str, MatchResult]):
        self.scope_id = scope_id
        self.participants = participants
        self.pools = pools
        self.results_by_stage = results_by_stage

        self.pool_winners = {}
        self.pool_complete = {}
        self.knockout = {}
        self.finalists = {}
        self.third_place_candidates = {}
        self.third_places = {}

        for pool in pools:
            winners = get_pool_winners(pool, results_by_stage)
            complete = is_pool_stage_complete(pool, results_by_stage)
            # Knockout pairings depend on the full, ordered list of qualifiers
            matches = generate_knockout_matches(winners, pool.name, results_by_stage) if complete else []
            finalist = resolve_pool_finalist(winners, matches) if complete else None

            self.pool_winners[pool.name] = winners
            self.pool_complete[pool.name] = complete
            self.knockout[pool.name] = matches
            self.finalists[pool.name] = finalist
            candidates = third_place_candidates(winners, finalist)
            third = get_third_place(pool.name, participants, results_by_stage)
            self.third_place_candidates[pool.name] = candidates
            # A pick left over from an earlier draw no longer counts
            self.third_places[pool.name] = third if third in candidates else None

        finalists = [self.finalists.get(pool.name) for pool in pools]
        if len(finalists) == 2:
            self.final_match = build_final_match(finalists[0], finalists[1], results_by_stage.get(FINAL_STAGE))
        else:
            self.final_match = None

    def get_pool(self, pool_name):
        for pool in self.pools:
            if pool.name == pool_name:
                return pool
        return None

    def participant(self, player_id) -> Optional[Participant]:
        for player in self.participants:
            if player.id == player_id:
                return player
        return None

    @property
    def champion(self) -> Optional[Participant]:
        if self.final_match is None:
            return None
        return self.final_match.winner

    def to_dict(self) -> Dict:
        pools = []
        for pool in self.pools:
            pool_data = pool.to_dict()
            for group, group_data in zip(pool.groups, pool_data['groups']):
                winner = get_group_winner(pool, group, self.results_by_stage)
                group_data['match_stage'] = group_stage_id(pool.name, group.name)
                group_data['winner_id'] = winner.id if winner else None
            finalist = self.finalists[pool.name]
            third = self.third_places[pool.name]
            pool_data.update({
                'pool_stage_complete': self.pool_complete[pool.name],
                'qualifiers': [p.to_dict() for p in self.pool_winners[pool.name]],
                'knockout_matches': [m.to_dict() for m in self.knockout[pool.name]],
                'finalist': finalist.to_dict() if finalist else None,
                'third_place_candidates': [p.to_dict() for p in self.third_place_candidates[pool.name]],
                'third_place': third.to_dict() if third else None,
            })
            pools.append(pool_data)
        champion = self.champion
        return {
            'scope_id': self.scope_id,
            'participants': [p.to_dict() for p in self.participants],
            'pools': pools,
            'final_match': self.final_match.to_dict() if self.final_match else None,
            'champion': champion.to_dict() if champion else None,
        }


class BracketManager:
    """Operator actions for one scope, run against a row store."""

    def __init__(self, store: RowStore, scope_id, rng: Optional[random.Random] = None):
        self.store = store
        self.scope_id = scope_id
        self.rng = rng

    def _scoped(self, **filters):
        return {'scope_id': self.scope_id, **filters}

    # -- loading -----------------------------------------------------------

    def scope_title(self) -> str:
        rows = self.store.select(SCOPES, {'id': self.scope_id})
        if rows and rows[0].get('title'):
            return rows[0]['title']
        return DEFAULT_SCOPE_TITLE

    def load_participants(self) -> List[Participant]:
        rows = self.store.select(PARTICIPANTS, self._scoped(), order_by='name')
        return [Participant.from_row(row) for row in rows]

    def load_results(self) -> Dict[str, MatchResult]:
        results = {}
        for row in self.store.select(MATCH_RESULTS, self._scoped()):
            result = MatchResult.from_row(row)
            results[result.match_stage] = result
        return results

    def load_pools(self, participants: Optional[List[Participant]] = None):
        if participants is None:
            participants = self.load_participants()
        rows = self.store.select(POOL_GROUPS, self._scoped())
        return pools_from_rows(rows, participants)

    def snapshot(self) -> BracketState:
        participants = self.load_participants()
        return BracketState(self.scope_id, participants, self.load_pools(participants), self.load_results())

    # -- participants and draw ----------------------------------------------

    def add_participant(self, name, association=None, weight=None) -> Participant:
        name = (name or '').strip()
        if not name:
            raise ValidationError('Participant name is required')
        if weight is not None and weight != '':
            try:
                weight = float(weight)
            except (TypeError, ValueError):
                raise ValidationError('Weight must be a number')
        else:
            weight = None
        row = {
            'scope_id': self.scope_id,
            'name': name,
            'association': (association or '').strip() or 'Unknown',
            'weight': weight,
        }
        inserted = self.store.insert(PARTICIPANTS, [row])
        return Participant.from_row(inserted[0])

    def regenerate_pools(self):
        """
        Draw new pools and replace the stored draw.

        Recorded match results are left in place; results that no longer
        match a group or pairing of the new draw are ignored on read.
        """
        participants = self.load_participants()
        pools = list(partition_participants(participants, self.rng))
        self.store.delete(POOL_GROUPS, self._scoped())
        self.store.insert(POOL_GROUPS, pool_group_rows(pools, self.scope_id))
        logger.info(f'Regenerated pools for scope {self.scope_id}: '
                    f'{[len(p.participants) for p in pools]} participants')
        return pools

    # -- recording results -------------------------------------------------

    def _upsert_result(self, state: BracketState, match_stage, player1_id, player2_id, winner_id) -> Optional[str]:
        """
        Write a match result.

        Returns 'inserted' for a new row, 'updated' when the stored pairing
        or winner changed, and None when the row already matched.
        """
        existing = state.results_by_stage.get(match_stage)
        if existing is not None:
            if (existing.winner_id, existing.player1_id, existing.player2_id) == (winner_id, player1_id, player2_id):
                return None
            self.store.update(
                MATCH_RESULTS,
                {'winner_id': winner_id, 'player1_id': player1_id, 'player2_id': player2_id},
                self._scoped(match_stage=match_stage),
            )
            logger.info(f'Updated result {match_stage} in scope {self.scope_id}: winner {winner_id}')
            return 'updated'
        result = MatchResult(match_stage, player1_id, player2_id, winner_id, scope_id=self.scope_id)
        self.store.insert(MATCH_RESULTS, [result.to_row()])
        logger.info(f'Recorded result {match_stage} in scope {self.scope_id}: winner {winner_id}')
        return 'inserted'

    def _insert_quietly(self, table, row) -> bool:
        try:
            self.store.insert(table, [row])
        except StoreError as e:
            logger.warning(f'Skipped {table} write for scope {self.scope_id}: {e}')
            return False
        return True

    def _update_quietly(self, table, patch, filters):
        try:
            self.store.update(table, patch, filters)
        except StoreError as e:
            logger.warning(f'Skipped {table} update for scope {self.scope_id}: {e}')

    def _save_summary(self, group_name, player_id, result_type, position) -> bool:
        summary = SummaryResult(group_name, player_id, result_type, position, scope_id=self.scope_id)
        return self._insert_quietly(SUMMARY_RESULTS, summary.to_row())

    def _save_clubbed(self, player_id, rank, remarks) -> bool:
        clubbed = ClubbedResult(player_id, rank, remarks, scope_id=self.scope_id)
        return self._insert_quietly(CLUBBED_RESULTS, clubbed.to_row())

    def _final_summary_exists(self) -> bool:
        return self.store.exists(SUMMARY_RESULTS, self._scoped(result_type='final'))

    def record_group_winner(self, pool_name, group_name, winner_id) -> MatchResult:
        if not winner_id:
            raise ValidationError('Select a winner first')
        state = self.snapshot()
        pool = state.get_pool(pool_name)
        group = find_group(pool, group_name) if pool else None
        if group is None:
            raise ValidationError(f'Unknown group {pool_name} {group_name}')
        if group.is_bye:
            raise ValidationError(f'Group {group_name} is a bye and needs no result')
        player1, player2 = group.players
        if winner_id not in (player1.id, player2.id):
            raise ValidationError('Winner must be one of the group players')

        stage = group_stage_id(pool_name, group_name)
        change = self._upsert_result(state, stage, player1.id, player2.id, winner_id)
        if change == 'inserted':
            if not self.store.exists(SUMMARY_RESULTS, self._scoped(group_name=stage)):
                self._save_summary(stage, winner_id, 'pool', 'winner')
        elif change == 'updated':
            self._update_quietly(SUMMARY_RESULTS, {'player_id': winner_id},
                                 self._scoped(group_name=stage, position='winner'))
        return MatchResult(stage, player1.id, player2.id, winner_id, scope_id=self.scope_id)

    def record_knockout_winner(self, pool_name, match_id, winner_id) -> MatchResult:
        if not winner_id:
            raise ValidationError('Select a winner first')
        state = self.snapshot()
        if state.get_pool(pool_name) is None:
            raise ValidationError(f'Unknown pool {pool_name}')
        match = find_knockout_match(state.knockout[pool_name], match_id)
        if match is None:
            raise ValidationError(f'Knockout match {match_id} is not part of {pool_name}')
        if winner_id not in match.contestant_ids:
            raise ValidationError('Winner must be one of the match players')

        change = self._upsert_result(state, match.id, match.player1.id, match.player2.id, winner_id)
        if change and match.is_pool_final:
            loser_id = match.player2.id if winner_id == match.player1.id else match.player1.id
            semi_filters = self._scoped(group_name=match.id, position='semi_finalist')
            if self.store.exists(SUMMARY_RESULTS, semi_filters):
                self._update_quietly(SUMMARY_RESULTS, {'player_id': loser_id}, semi_filters)
            elif not self.store.exists(SUMMARY_RESULTS, self._scoped(player_id=loser_id, position='semi_finalist')):
                self._save_summary(match.id, loser_id, 'pool', 'semi_finalist')
        return MatchResult(match.id, match.player1.id, match.player2.id, winner_id, scope_id=self.scope_id)

    def record_third_place(self, pool_name, player_id) -> MatchResult:
        if not player_id:
            raise ValidationError('Select a 3rd place player first')
        state = self.snapshot()
        if state.get_pool(pool_name) is None:
            raise ValidationError(f'Unknown pool {pool_name}')
        if state.third_places[pool_name] is not None:
            raise ValidationError(f'3rd place for {pool_name} is already recorded')
        if player_id not in [p.id for p in state.third_place_candidates[pool_name]]:
            raise ValidationError(f'Player is not eligible for 3rd place in {pool_name}')

        stage = third_place_stage(pool_name)
        # Manual pick: both contestant slots hold the chosen player
        change = self._upsert_result(state, stage, player_id, player_id, player_id)

        bronze_filters = self._scoped(group_name=pool_name, position='bronze')
        if change == 'updated' and self.store.exists(SUMMARY_RESULTS, bronze_filters):
            # Replaces a pick that no longer fits the current draw
            self._update_quietly(SUMMARY_RESULTS, {'player_id': player_id}, bronze_filters)
            self._update_quietly(CLUBBED_RESULTS, {'player_id': player_id},
                                 self._scoped(rank='3rd', remarks=f'Bronze medal - {pool_name}'))
        elif not self.store.exists(SUMMARY_RESULTS, self._scoped(player_id=player_id, position='bronze')):
            self._save_summary(pool_name, player_id, 'pool', 'bronze')
            if self._final_summary_exists():
                self._save_clubbed(player_id, '3rd', f'Bronze medal - {pool_name}')
        return MatchResult(stage, player_id, player_id, player_id, scope_id=self.scope_id)

    def record_final_winner(self, winner_id) -> int:
        """
        Record the championship winner and cascade placements.

        Returns the number of summary and clubbed rows written. The cascade
        runs only while no final summary exists for the scope, so calling
        this again writes nothing further.
        """
        if not winner_id:
            raise ValidationError('Select a champion first')
        state = self.snapshot()
        final = state.final_match
        if final is None:
            raise ValidationError('The final is available once both pools have a finalist')
        if winner_id not in final.contestant_ids:
            raise ValidationError('Winner must be one of the finalists')

        self._upsert_result(state, FINAL_STAGE, final.player1.id, final.player2.id, winner_id)
        return self._cascade_final(state, winner_id)

    def _cascade_final(self, state: BracketState, winner_id) -> int:
        if self._final_summary_exists():
            logger.info(f'Final placements already recorded for scope {self.scope_id}')
            return 0

        final = state.final_match
        runner_up_id = final.player2.id if winner_id == final.player1.id else final.player1.id
        title = self.scope_title()
        written = 0

        written += self._save_summary('Final', winner_id, 'final', 'winner')
        written += self._save_summary('Final', runner_up_id, 'final', 'runner_up')

        third_places = [(pool.name, state.third_places[pool.name]) for pool in state.pools
                        if state.third_places[pool.name] is not None]
        for pool_name, player in third_places:
            if not self.store.exists(SUMMARY_RESULTS, self._scoped(player_id=player.id, position='bronze')):
                written += self._save_summary(pool_name, player.id, 'pool', 'bronze')

        written += self._save_clubbed(winner_id, '1st', f'Champion - {title}')
        written += self._save_clubbed(runner_up_id, '2nd', f'Runner-up - {title}')
        for pool_name, player in third_places:
            written += self._save_clubbed(player.id, '3rd', f'Bronze medal - {pool_name}')

        logger.info(f'Final cascade for scope {self.scope_id} wrote {written} rows')
        return written

    # -- manual placement maintenance ---------------------------------------

    def list_summary_results(self) -> List[SummaryResult]:
        return [SummaryResult.from_row(r) for r in self.store.select(SUMMARY_RESULTS, self._scoped())]

    def list_clubbed_results(self) -> List[ClubbedResult]:
        return [ClubbedResult.from_row(r) for r in self.store.select(CLUBBED_RESULTS, self._scoped())]

    @staticmethod
    def _validate_summary(data) -> Dict:
        fields = {key: data.get(key) for key in ('group_name', 'player_id', 'result_type', 'position')}
        missing = [key for key, value in fields.items() if not value]
        if missing:
            raise ValidationError(f'Missing fields: {", ".join(missing)}')
        if fields['result_type'] not in SUMMARY_RESULT_TYPES:
            raise ValidationError(f'result_type must be one of {", ".join(SUMMARY_RESULT_TYPES)}')
        if fields['position'] not in SUMMARY_POSITIONS:
            raise ValidationError(f'position must be one of {", ".join(SUMMARY_POSITIONS)}')
        return fields

    @staticmethod
    def _validate_clubbed(data) -> Dict:
        fields = {key: (data.get(key) or '').strip() for key in ('player_id', 'rank', 'remarks')}
        missing = [key for key, value in fields.items() if not value]
        if missing:
            raise ValidationError(f'Missing fields: {", ".join(missing)}')
        return fields

    def _require_row(self, table, row_id):
        if not self.store.exists(table, self._scoped(id=row_id)):
            raise RecordNotFound(f'No {table} row {row_id} in scope {self.scope_id}')

    def add_summary_result(self, data) -> SummaryResult:
        fields = self._validate_summary(data)
        row = self.store.insert(SUMMARY_RESULTS, [{'scope_id': self.scope_id, **fields}])[0]
        return SummaryResult.from_row(row)

    def update_summary_result(self, row_id, data):
        fields = self._validate_summary(data)
        self._require_row(SUMMARY_RESULTS, row_id)
        self.store.update(SUMMARY_RESULTS, fields, self._scoped(id=row_id))

    def delete_summary_result(self, row_id):
        self._require_row(SUMMARY_RESULTS, row_id)
        self.store.delete(SUMMARY_RESULTS, self._scoped(id=row_id))

    def add_clubbed_result(self, data) -> ClubbedResult:
        fields = self._validate_clubbed(data)
        row = self.store.insert(CLUBBED_RESULTS, [{'scope_id': self.scope_id, **fields}])[0]
        return ClubbedResult.from_row(row)

    def update_clubbed_result(self, row_id, data):
        fields = self._validate_clubbed(data)
        self._require_row(CLUBBED_RESULTS, row_id)
        self.store.update(CLUBBED_RESULTS, fields, self._scoped(id=row_id))

    def delete_clubbed_result(self, row_id):
        self._require_row(CLUBBED_RESULTS, row_id)
        self.store.delete(CLUBBED_RESULTS, self._scoped(id=row_id))
