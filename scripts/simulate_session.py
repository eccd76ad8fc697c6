#!/usr/bin/env python3
"""
Simulate a player against the adaptive opponent.

Plays random legal human moves with think times and hover activity drawn from
a chosen play style, and prints per ply the move quality, the player's
segment, the opponent's mode and any nudge shown.

Usage:
    python scripts/simulate_session.py [--style STYLE] [--moves N] [--seed N] [--db PATH]

Example:
    python scripts/simulate_session.py --style impulsive --moves 30 --seed 7
"""

import argparse
import random
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import chess

from chess_mirror import (
    GameSession,
    InterventionScheduler,
    OpponentEngine,
    ProfileStore,
    TelemetryService,
)
from chess_mirror.config import configure_logging

# (min_ms, max_ms, hovers per move) for each simulated style
STYLES = {
    "impulsive": (300, 1800, (0, 2)),
    "reflective": (6000, 12000, (1, 4)),
    "hesitant": (4000, 9000, (5, 12)),
    "explorer": (1500, 4000, (6, 14)),
    "mixed": (500, 8000, (0, 8)),
}


def run_simulation(style: str, moves: int, seed: int, db_path: str, user_id: str):
    """Play up to `moves` human moves and print what the engine did."""
    rng = random.Random(seed)
    min_ms, max_ms, (min_hovers, max_hovers) = STYLES[style]

    store = ProfileStore(db_path)
    service = TelemetryService(store)
    session = GameSession(
        service,
        user_id=user_id,
        engine=OpponentEngine(random.Random(seed + 1)),
        scheduler=InterventionScheduler(random.Random(seed + 2)),
    )

    now = 0.0
    session.new_game(now)
    print(f"User: {user_id}  Game: {session.game_id}  Style: {style}")
    print(f"{'ply':>4}  {'move':<6} {'ms':>6}  {'quality':<8} {'segment':<11} {'mode':<9} reply")
    print("-" * 70)

    for _ in range(moves):
        for _ in range(rng.randint(min_hovers, max_hovers)):
            now += rng.uniform(0.1, 0.6)
            session.record_hover(now)

        think_ms = rng.randint(min_ms, max_ms)
        now += think_ms / 1000
        session.tick(now)
        move = rng.choice(list(session.board.legal_moves))
        ply = len(session.board.move_stack) + 1
        outcome = session.play_move(
            chess.square_name(move.from_square),
            chess.square_name(move.to_square),
            think_time_ms=think_ms,
            now=now,
            promotion=chess.piece_symbol(move.promotion) if move.promotion else None,
        )

        reply = ""
        if outcome.reply_due_at is not None:
            now = outcome.reply_due_at
            result = session.tick(now)
            if result.opponent_move:
                reply = result.opponent_move.move.uci()
            if result.game_over:
                reply += " (game over)"

        quality = outcome.quality.value if outcome.quality else "-"
        print(
            f"{ply:>4}  {move.uci():<6} {think_ms:>6}  {quality:<8} "
            f"{outcome.segment.value:<11} {outcome.mode.value:<9} {reply}"
        )
        if outcome.nudge:
            print(f"      nudge [{outcome.nudge.reason.value}]: {outcome.nudge.message}")

        if outcome.game_over or session.board.is_game_over():
            print(f"\nGame over: {session.board.result()}")
            break

    profile = service.load_profile(user_id)
    print("\n" + "=" * 70)
    print(f"Moves: {profile.move_count}  Blunders: {profile.blunder_count}  "
          f"Avg think: {profile.avg_think_time_ms / 1000:.1f}s  Segment: {profile.segment}")
    store.close()


def main():
    parser = argparse.ArgumentParser(
        description="Simulate a player against the adaptive opponent"
    )
    parser.add_argument(
        "--style", choices=sorted(STYLES), default="mixed",
        help="Simulated play style (default: mixed)",
    )
    parser.add_argument(
        "--moves", type=int, default=40,
        help="Maximum number of human moves (default: 40)",
    )
    parser.add_argument(
        "--seed", type=int, default=0,
        help="Random seed (default: 0)",
    )
    parser.add_argument(
        "--db", type=str, default=":memory:",
        help="SQLite database path (default: in-memory)",
    )
    parser.add_argument(
        "--user", type=str, default="sim-user",
        help="User id to simulate (default: sim-user)",
    )
    parser.add_argument(
        "--log-level", type=str, default=None,
        help="Logging level (default: CHESSMIRROR_LOG_LEVEL or INFO)",
    )

    args = parser.parse_args()
    configure_logging(args.log_level)

    run_simulation(
        style=args.style,
        moves=args.moves,
        seed=args.seed,
        db_path=args.db,
        user_id=args.user,
    )


if __name__ == "__main__":
    main()
