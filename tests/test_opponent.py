"""
Tests for the adaptive opponent.

Tests verify that:
1. Mode follows behavior memory with hysteresis
2. Each mode samples from the right candidate pool
3. Terminal positions yield no move instead of an error

Run with: pytest tests/test_opponent.py -v
"""

import random

import chess
import pytest

from chess_mirror.opponent import (
    BehaviorMemory,
    OpponentEngine,
    OpponentMode,
    rank_moves,
    select_mode,
    update_memory,
)
from chess_mirror.profile_stats import MoveQuality
from chess_mirror.segments import Segment


# =============================================================================
# Test positions (black to move)
# =============================================================================

# Black rook can check along the first rank (Ra1+) or the e-file (Re2+)
ROOK_CHECKS_FEN = "4k3/8/8/8/8/8/r7/4K3 b - - 0 1"

# Black's dark-squared bishop can win a knight; no black move gives check
FREE_KNIGHT_FEN = "k7/8/1b6/8/3N4/8/8/7K b - - 0 1"

# White has been mated (fool's mate)
FOOLS_MATE_FEN = "rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3"


class TestSelectMode:
    """Mode derivation from memory."""

    def test_empty_memory_is_baseline(self):
        assert select_mode(BehaviorMemory()) is OpponentMode.BASELINE

    def test_fast_moves_bait(self):
        assert select_mode(BehaviorMemory(recent_fast_moves=2)) is OpponentMode.BAIT

    def test_blunders_trap(self):
        assert select_mode(BehaviorMemory(recent_blunders=2)) is OpponentMode.TRAP

    def test_trap_beats_bait(self):
        assert select_mode(BehaviorMemory(recent_fast_moves=5, recent_blunders=2)) is OpponentMode.TRAP


class TestUpdateMemory:
    """Hysteresis of the behavior memory."""

    def test_single_fast_move_does_not_flip(self):
        memory = update_memory(BehaviorMemory(), 500, MoveQuality.GOOD)
        assert memory.recent_fast_moves == 1
        assert select_mode(memory) is OpponentMode.BASELINE

    def test_sustained_fast_moves_bait(self):
        memory = BehaviorMemory()
        for _ in range(2):
            update_memory(memory, 500, MoveQuality.GOOD)
        assert select_mode(memory) is OpponentMode.BAIT

    def test_slow_move_decays(self):
        memory = BehaviorMemory(recent_fast_moves=2)
        update_memory(memory, 5000, MoveQuality.GOOD)
        assert memory.recent_fast_moves == 1
        assert select_mode(memory) is OpponentMode.BASELINE

    def test_isolated_blunders_do_not_trap(self):
        memory = BehaviorMemory()
        for quality in [MoveQuality.BLUNDER, MoveQuality.GOOD, MoveQuality.BLUNDER, MoveQuality.GOOD]:
            update_memory(memory, 5000, quality)
            assert select_mode(memory) is OpponentMode.BASELINE

    def test_consecutive_blunders_trap(self):
        memory = BehaviorMemory()
        update_memory(memory, 5000, MoveQuality.BLUNDER)
        update_memory(memory, 5000, MoveQuality.BLUNDER)
        assert select_mode(memory) is OpponentMode.TRAP

    def test_counters_floor_at_zero(self):
        memory = BehaviorMemory()
        for _ in range(5):
            update_memory(memory, 9000, MoveQuality.GOOD)
        assert memory.recent_fast_moves == 0
        assert memory.recent_blunders == 0


class TestRankMoves:
    """Material scoring of candidate moves."""

    def test_capture_ranked_first(self):
        ranked = rank_moves(chess.Board(FREE_KNIGHT_FEN))
        best_move, best_score = ranked[0]
        assert best_move.uci() == "b6d4"
        assert best_score == 3

    def test_sorted_descending(self):
        scores = [score for _, score in rank_moves(chess.Board(FREE_KNIGHT_FEN))]
        assert scores == sorted(scores, reverse=True)

    def test_board_untouched(self):
        board = chess.Board(FREE_KNIGHT_FEN)
        rank_moves(board)
        assert board.fen() == FREE_KNIGHT_FEN


class TestChooseMove:
    """Move selection per mode."""

    def test_trap_always_checks_when_possible(self):
        board = chess.Board(ROOK_CHECKS_FEN)
        checking = {m for m in board.legal_moves if board.gives_check(m)}
        assert checking == {chess.Move.from_uci("a2a1"), chess.Move.from_uci("a2e2")}

        engine = OpponentEngine(random.Random(1))
        memory = BehaviorMemory(recent_blunders=3)
        chosen = set()
        for _ in range(100):
            decision = engine.choose_move(board, memory)
            assert decision.mode is OpponentMode.TRAP
            assert decision.move in checking
            chosen.add(decision.move)
        assert chosen == checking

    def test_trap_without_checks_plays_best(self):
        engine = OpponentEngine(random.Random(2))
        decision = engine.choose_move(chess.Board(FREE_KNIGHT_FEN), BehaviorMemory(recent_blunders=2))
        assert decision.move.uci() == "b6d4"
        assert decision.pool_size == 1

    def test_baseline_picks_from_top_three(self):
        board = chess.Board(FREE_KNIGHT_FEN)
        top_three = [move for move, _ in rank_moves(board)[:3]]
        engine = OpponentEngine(random.Random(3))
        picks = [engine.choose_move(board, BehaviorMemory()).move for _ in range(300)]
        assert all(move in top_three for move in picks)
        # Weighted 3:2:1, the best move should be the most frequent pick
        assert picks.count(top_three[0]) > picks.count(top_three[2])

    def test_bait_avoids_best_move(self):
        board = chess.Board(FREE_KNIGHT_FEN)
        engine = OpponentEngine(random.Random(4))
        memory = BehaviorMemory(recent_fast_moves=2)
        for _ in range(100):
            decision = engine.choose_move(board, memory)
            assert decision.mode is OpponentMode.BAIT
            assert decision.move.uci() != "b6d4"
            assert decision.pool_size == 2

    def test_bait_pool_scales_with_move_count(self):
        board = chess.Board()  # 20 legal moves
        decision = OpponentEngine(random.Random(5)).choose_move(board, BehaviorMemory(recent_fast_moves=2))
        assert decision.pool_size == 4

    def test_board_untouched(self):
        board = chess.Board(ROOK_CHECKS_FEN)
        OpponentEngine(random.Random(6)).choose_move(board, BehaviorMemory())
        assert board.fen() == ROOK_CHECKS_FEN

    @pytest.mark.parametrize("memory", [
        BehaviorMemory(),
        BehaviorMemory(recent_fast_moves=2),
        BehaviorMemory(recent_blunders=2),
    ])
    def test_no_legal_moves_returns_none(self, memory):
        board = chess.Board(FOOLS_MATE_FEN)
        assert board.is_checkmate()
        assert OpponentEngine(random.Random(7)).choose_move(board, memory) is None


class TestThinkingDelay:
    """Artificial reply delay."""

    def test_delay_in_range(self):
        engine = OpponentEngine(random.Random(8))
        for _ in range(50):
            assert 0.35 <= engine.thinking_delay(Segment.BALANCED) <= 0.9

    def test_rushed_players_wait_longer(self):
        calm = OpponentEngine(random.Random(9)).thinking_delay(Segment.BALANCED)
        rushed = OpponentEngine(random.Random(9)).thinking_delay(Segment.IMPULSIVE)
        assert rushed == pytest.approx(calm * 1.5)
