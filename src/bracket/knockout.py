"""
Knockout stage generation, pool finalists and the championship final.

Nothing here is stored: every call rebuilds the matches from the pool
winners and the recorded MatchResult rows, so the same inputs always give
the same match ids, pairings and winners.
"""
import math
from typing import Dict, List, Optional, Tuple

from bracket.models import KnockoutMatch, MatchResult, Participant
from bracket.pools import pool_number

FINAL_STAGE = 'final'
FINAL_LABEL = 'Championship Final'


def pair_round(survivors: List[Participant]) -> Tuple[Optional[Participant], List[Tuple[Participant, Participant]]]:
    """
    Split one round's survivors into an optional bye and sequential pairs.

    With an odd count the first survivor sits the round out. The rest are
    paired in list order: 1st vs 2nd, 3rd vs 4th, and so on.
    """
    remaining = list(survivors)
    bye = remaining.pop(0) if len(remaining) % 2 else None
    pairs = [(remaining[i], remaining[i + 1]) for i in range(0, len(remaining), 2)]
    return bye, pairs


def round_label_index(matches_so_far: int, qualifier_count: int) -> int:
    """Coarse round number shown in labels and embedded in match ids.

    Can repeat across real rounds; use KnockoutMatch.round_depth for logic.
    """
    if matches_so_far == 0 or qualifier_count <= 0:
        return 1
    return matches_so_far // math.ceil(qualifier_count / 2) + 1


def knockout_match_id(pool_num: int, label_index: int, running_index: int) -> str:
    return f"knockout-{pool_num}.{label_index}-match{running_index}"


def recorded_winner_id(result: Optional[MatchResult], player1: Participant,
                       player2: Participant) -> Optional[str]:
    """
    Winner id of a stored result, if it belongs to this exact pairing.

    A row recorded for a different pair under the same match stage (after a
    redraw, or after an earlier round changed) is ignored.
    """
    if result is None or result.winner_id is None:
        return None
    contestants = {player1.id, player2.id}
    if result.player1_id is not None and result.player2_id is not None:
        if {result.player1_id, result.player2_id} != contestants:
            return None
    if result.winner_id not in contestants:
        return None
    return result.winner_id


def generate_knockout_matches(pool_winners: List[Participant], pool_name: str,
                              results_by_stage: Dict[str, MatchResult]) -> List[KnockoutMatch]:
    """
    Build a pool's knockout matches round by round until one entrant is left.

    Decided matches push their winner into the next round; undecided ones
    stay pending and hold back only their own branch. Match ids use the
    position in the pool's running match list, so they are stable as long
    as pool_winners keeps its order.
    """
    number = pool_number(pool_name)
    matches = []
    survivors = list(pool_winners)
    depth = 1
    # Set once any match is left pending; later rounds are then partial
    blocked = False

    while len(survivors) > 1:
        label_index = round_label_index(len(matches), len(pool_winners))
        bye, pairs = pair_round(survivors)
        next_round = [bye] if bye is not None else []

        for player1, player2 in pairs:
            running_index = len(matches)
            match_id = knockout_match_id(number, label_index, running_index)
            match = KnockoutMatch(
                id=match_id,
                player1=player1,
                player2=player2,
                winner_id=recorded_winner_id(results_by_stage.get(match_id), player1, player2),
                stage=f"Round {label_index} Match {running_index + 1}",
                round_depth=depth,
                is_pool_final=not blocked and len(survivors) == 2,
            )
            matches.append(match)
            if match.is_decided:
                next_round.append(match.winner)
            else:
                blocked = True

        survivors = next_round
        depth += 1

    return matches


def resolve_pool_finalist(pool_winners: List[Participant],
                          matches: List[KnockoutMatch]) -> Optional[Participant]:
    """
    The player a pool sends to the championship final, or None if undecided.

    A lone qualifier is the finalist outright. Otherwise every knockout match
    must be decided and the finalist is the winner of the deepest round.
    """
    if len(pool_winners) == 1 and not matches:
        return pool_winners[0]
    if not matches or any(not m.is_decided for m in matches):
        return None
    deepest = max(m.round_depth for m in matches)
    last_round = [m for m in matches if m.round_depth == deepest]
    if len(last_round) != 1:
        return None
    return last_round[0].winner


def find_knockout_match(matches: List[KnockoutMatch], match_id: str) -> Optional[KnockoutMatch]:
    for match in matches:
        if match.id == match_id:
            return match
    return None


def build_final_match(finalist_a: Optional[Participant], finalist_b: Optional[Participant],
                      final_result: Optional[MatchResult]) -> Optional[KnockoutMatch]:
    """Pair the two pool finalists under the 'final' stage once both exist."""
    if finalist_a is None or finalist_b is None:
        return None
    return KnockoutMatch(
        id=FINAL_STAGE,
        player1=finalist_a,
        player2=finalist_b,
        winner_id=recorded_winner_id(final_result, finalist_a, finalist_b),
        stage=FINAL_LABEL,
        round_depth=0,
    )


def third_place_stage(pool_name: str) -> str:
    return f"third-place-{pool_name}"


def third_place_candidates(pool_winners: List[Participant],
                           finalist: Optional[Participant]) -> List[Participant]:
    """Pool-stage qualifiers an operator may pick as 3rd place: all but the finalist."""
    if finalist is None:
        return list(pool_winners)
    return [p for p in pool_winners if p.id != finalist.id]


def get_third_place(pool_name: str, participants: List[Participant],
                    results_by_stage: Dict[str, MatchResult]) -> Optional[Participant]:
    result = results_by_stage.get(third_place_stage(pool_name))
    if result is None:
        return None
    for player in participants:
        if player.id == result.winner_id:
            return player
    return None
