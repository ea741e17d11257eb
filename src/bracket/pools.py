"""
Pool partitioning and the pool (group) stage.

Participants are shuffled, split into two pools, and each pool is cut into
head-to-head groups that prefer opponents from a different association.
"""
import math
import random
from typing import Dict, List, Optional, Tuple

from bracket.models import Group, MatchResult, Participant, Pool

POOL_NAMES = ('Pool A', 'Pool B')


def pool_number(pool_name: str) -> int:
    """Get the numeric prefix used in group and match ids (Pool A -> 1, Pool B -> 2)."""
    suffix = pool_name.replace('Pool', '').strip()
    if suffix.isdigit():
        return int(suffix)
    if len(suffix) == 1 and suffix.isalpha():
        return ord(suffix.upper()) - ord('A') + 1
    raise ValueError(f"Unrecognised pool name: {pool_name!r}")


def group_stage_id(pool_name: str, group_name: str) -> str:
    """Match stage under which a group's result is stored, e.g. 'Pool A-1.2'."""
    return f"{pool_name}-{group_name}"


def create_pool_groups(players: List[Participant], pool_name: str) -> Pool:
    """
    Cut an ordered list of players into groups of one or two.

    The first remaining player opens a group and is paired with the first
    remaining player of a different association. When nobody from another
    association is left the group stays solo (a bye).
    """
    number = pool_number(pool_name)
    remaining = list(players)
    groups = []

    while remaining:
        group = Group(name=f"{number}.{len(groups) + 1}", players=[remaining.pop(0)])
        opener = group.players[0]
        for i, candidate in enumerate(remaining):
            if candidate.association != opener.association:
                group.players.append(remaining.pop(i))
                break
        groups.append(group)

    return Pool(name=pool_name, number=number, groups=groups)


def partition_participants(participants: List[Participant],
                           rng: Optional[random.Random] = None) -> Tuple[Pool, Pool]:
    """
    Shuffle participants and split them into Pool A and Pool B.

    Pool A receives the ceiling of half the field. Pass a seeded
    random.Random to get a reproducible draw.
    """
    rng = rng or random.Random()
    shuffled = list(participants)
    rng.shuffle(shuffled)

    midpoint = math.ceil(len(shuffled) / 2)
    pool_a = create_pool_groups(shuffled[:midpoint], POOL_NAMES[0])
    pool_b = create_pool_groups(shuffled[midpoint:], POOL_NAMES[1])
    return pool_a, pool_b


def pool_group_rows(pools: List[Pool], scope_id) -> List[Dict]:
    """Serialize a draw into pool_groups rows so it stays frozen between reads."""
    rows = []
    for pool in pools:
        for sequence, group in enumerate(pool.groups, start=1):
            rows.append({
                'scope_id': scope_id,
                'pool_name': pool.name,
                'group_name': group.name,
                'sequence': sequence,
                'player_ids': [p.id for p in group.players],
            })
    return rows


def pools_from_rows(rows: List[Dict], participants: List[Participant]) -> List[Pool]:
    """
    Rebuild both pools from stored pool_groups rows.

    Players that are no longer registered in the scope are dropped from
    their group; a group left empty is skipped.
    """
    by_id = {p.id: p for p in participants}
    pools = {name: Pool(name=name, number=pool_number(name)) for name in POOL_NAMES}

    for row in sorted(rows, key=lambda r: (r['pool_name'], r.get('sequence', 0))):
        pool = pools.get(row['pool_name'])
        if pool is None:
            pool = pools[row['pool_name']] = Pool(name=row['pool_name'], number=pool_number(row['pool_name']))
        players = [by_id[pid] for pid in row.get('player_ids') or [] if pid in by_id]
        if players:
            pool.groups.append(Group(name=row['group_name'], players=players))

    return [pools[name] for name in sorted(pools, key=pool_number)]


def get_group_winner(pool: Pool, group: Group,
                     results_by_stage: Dict[str, MatchResult]) -> Optional[Participant]:
    """
    Get the player a group sends to the knockout stage.

    A solo group qualifies its player. A pair qualifies the recorded
    winner, but only if that winner is actually in the group; results
    left over from an earlier draw are ignored.
    """
    if group.is_bye:
        return group.players[0]
    result = results_by_stage.get(group_stage_id(pool.name, group.name))
    if result is None or result.winner_id is None:
        return None
    for player in group.players:
        if player.id == result.winner_id:
            return player
    return None


def get_pool_winners(pool: Pool, results_by_stage: Dict[str, MatchResult]) -> List[Participant]:
    """Group winners and byes of a pool, in group order."""
    winners = []
    for group in pool.groups:
        winner = get_group_winner(pool, group, results_by_stage)
        if winner is not None:
            winners.append(winner)
    return winners


def is_pool_stage_complete(pool: Pool, results_by_stage: Dict[str, MatchResult]) -> bool:
    """True when every group of the pool has a qualifier."""
    return all(get_group_winner(pool, g, results_by_stage) is not None for g in pool.groups)


def find_group(pool: Pool, group_name: str) -> Optional[Group]:
    for group in pool.groups:
        if group.name == group_name:
            return group
    return None
