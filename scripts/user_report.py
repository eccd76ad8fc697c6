#!/usr/bin/env python3
"""
Print behavioral profiles from the ChessMirror database.

Without a user id, lists every user with their aggregates and segment.
With a user id, prints that user's stats, segment insight, recent moves and
current intervention toggles. Toggles can be changed with --confirm-moves /
--nudges.

Usage:
    python scripts/user_report.py [USER_ID] [--db PATH] [--csv FILE]
    python scripts/user_report.py USER_ID --nudges off
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from chess_mirror import InterventionFlags, ProfileStore, TelemetryService
from chess_mirror.config import DB_PATH, configure_logging


def print_users(service: TelemetryService, output_csv: str | None = None):
    """Print the user table (optionally exporting it)."""
    df = service.users_frame()
    if df.empty:
        print("No users yet")
        return
    print(df.to_string(index=False))
    if output_csv:
        df.to_csv(output_csv, index=False)
        print(f"\nSaved {len(df)} users to {output_csv}")


def print_user(service: TelemetryService, user_id: str):
    """Print one user's profile snapshot."""
    snapshot = service.profile_snapshot(user_id)
    stats = snapshot['stats']
    profile = snapshot['profile']

    print(f"User: {user_id}")
    print(f"Segment: {snapshot['segment']}")
    print(f"  {snapshot['insight']}")
    print()
    print(f"Moves: {stats['move_count']}  Blunders: {profile['blunder_count']} ({stats['blunder_rate_pct']}%)")
    print(f"Avg think time: {stats['avg_think_time_sec']}s")
    print(f"Hovers: {stats['hover_count']} ({stats['hovers_per_move']}/move)  Hints: {snapshot['hint_count']}")
    print(f"Interventions: {snapshot['interventions']}")

    moves = snapshot['moves'][-20:]
    if moves:
        print(f"\nLast {len(moves)} moves:")
        for m in moves:
            print(f"  {m['game_id'][:8]} ply {m['ply']:>3}  {m['think_time_ms']:>6}ms  {m['quality']}")


def parse_toggle(value: str) -> bool:
    if value.lower() in ("on", "true", "1", "yes"):
        return True
    if value.lower() in ("off", "false", "0", "no"):
        return False
    raise argparse.ArgumentTypeError(f"Expected on/off, got {value!r}")


def main():
    parser = argparse.ArgumentParser(
        description="Print behavioral profiles from the ChessMirror database"
    )
    parser.add_argument(
        "user", nargs="?", default=None,
        help="User id to show in detail (default: list all users)",
    )
    parser.add_argument(
        "--db", type=str, default=None,
        help="SQLite database path (default: CHESSMIRROR_DB_PATH or data/chessmirror.db)",
    )
    parser.add_argument(
        "--csv", type=str, default=None,
        help="Export the user table to a CSV file",
    )
    parser.add_argument(
        "--confirm-moves", type=parse_toggle, default=None,
        help="Set the confirm-moves toggle for USER (on/off)",
    )
    parser.add_argument(
        "--nudges", type=parse_toggle, default=None,
        help="Set the nudges toggle for USER (on/off)",
    )

    args = parser.parse_args()
    configure_logging()

    store = ProfileStore(args.db or DB_PATH)
    service = TelemetryService(store)

    if args.user is None:
        print_users(service, args.csv)
    else:
        if args.confirm_moves is not None or args.nudges is not None:
            current = service.get_intervention_flags(args.user)
            flags = InterventionFlags(
                confirm_moves_enabled=current.confirm_moves_enabled if args.confirm_moves is None else args.confirm_moves,
                nudges_enabled=current.nudges_enabled if args.nudges is None else args.nudges,
            )
            service.set_intervention_flags(args.user, flags)
        print_user(service, args.user)

    store.close()


if __name__ == "__main__":
    main()
