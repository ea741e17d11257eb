# Command line view of a scope's bracket, read from the YAML store

import argparse
import logging
import os
import random
from bracket.results import BracketManager
from store import YamlRowStore


def player_label(player):
    if player is None:
        return 'TBD'
    return f"{player.name} ({player.association})"


def print_bracket(manager):
    state = manager.snapshot()
    print(f"=== {manager.scope_title()} ({len(state.participants)} participants) ===")

    for pool in state.pools:
        print(f"\n# {pool.name}")
        for group in pool.groups:
            if group.is_bye:
                print(f"  {group.name}: {player_label(group.players[0])} - bye")
                continue
            winner = next((p for p in state.pool_winners[pool.name] if p in group.players), None)
            players = ' vs '.join(player_label(p) for p in group.players)
            print(f"  {group.name}: {players} -> {player_label(winner)}")

        matches = state.knockout[pool.name]
        if matches:
            print("  Knockout:")
        for match in matches:
            winner = match.winner.name if match.winner else 'pending'
            print(f"    [{match.id}] {match.stage}: "
                  f"{player_label(match.player1)} vs {player_label(match.player2)} -> {winner}")
        print(f"  Finalist: {player_label(state.finalists[pool.name])}")
        third = state.third_places[pool.name]
        if third:
            print(f"  3rd place: {player_label(third)}")

    final = state.final_match
    print("\n# Championship Final")
    if final is None:
        print("  Waiting for both pool finalists")
    else:
        print(f"  {player_label(final.player1)} vs {player_label(final.player2)}")
        print(f"  Champion: {player_label(final.winner) if final.is_decided else 'pending'}")

    clubbed = manager.list_clubbed_results()
    if clubbed:
        names = {p.id: p.name for p in state.participants}
        print("\n# Medal table")
        for row in clubbed:
            print(f"  {row.rank}: {names.get(row.player_id, 'Unknown')} - {row.remarks}")


def main():
    script_dir = os.path.dirname(__file__)
    base_dir = os.path.dirname(script_dir)

    parser = argparse.ArgumentParser(description="Show the pools and knockout bracket of a scope.")
    parser.add_argument('--data-dir', default=os.environ.get('TOURNAMENT_DATA_DIR', os.path.join(base_dir, 'data')))
    parser.add_argument('--scope', required=True, help="Event or sub-event id")
    parser.add_argument('--regenerate', action='store_true', help="Draw new pools before printing")
    parser.add_argument('--seed', type=int, help="Seed for a reproducible draw")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING)

    rng = random.Random(args.seed) if args.seed is not None else None
    manager = BracketManager(YamlRowStore(args.data_dir), args.scope, rng=rng)
    if args.regenerate:
        manager.regenerate_pools()

    if not manager.load_participants():
        print(f"No participants registered for scope {args.scope}.")
        return

    print_bracket(manager)


if __name__ == '__main__':
    main()
