"""
Tests for a live game session.

Tests verify that:
1. Human moves are recorded and answered after the thinking delay
2. Moves out of turn are rejected
3. Starting a new game drops pending timers
4. Behavior memory drives the opponent mode between moves
5. Terminal positions end the game instead of scheduling a reply

Run with: pytest tests/test_session.py -v
"""

import random

import chess
import pytest

from chess_mirror.errors import InvalidMoveError
from chess_mirror.interventions import InterventionScheduler
from chess_mirror.opponent import OpponentEngine, OpponentMode
from chess_mirror.profile_stats import UserProfile
from chess_mirror.session import GameSession


# White to move, Ra8 is mate
BACK_RANK_MATE_FEN = "6k1/5ppp/8/8/8/8/8/R5K1 w - - 0 1"

# White has been mated (fool's mate)
FOOLS_MATE_FEN = "rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3"


@pytest.fixture
def session(service, never_fire) -> GameSession:
    s = GameSession(
        service,
        user_id="u1",
        session_id="s1",
        engine=OpponentEngine(random.Random(0)),
        scheduler=InterventionScheduler(never_fire),
    )
    s.new_game(now=0.0)
    return s


# =============================================================================
# Move flow
# =============================================================================

class TestMoveFlow:
    """Human move -> delayed opponent reply."""

    def test_new_game(self, session: GameSession):
        assert session.game_id is not None
        assert session.board.fen() == chess.STARTING_FEN
        assert session.pending_reply_at is None

    def test_move_schedules_reply(self, session: GameSession):
        outcome = session.play_move("e2", "e4", think_time_ms=1800, now=1.8)
        assert outcome.deduped is False
        assert outcome.game_over is False
        assert 1.8 + 0.35 <= outcome.reply_due_at <= 1.8 + 0.9
        assert session.board.move_stack[-1].uci() == "e2e4"

    def test_reply_waits_for_delay(self, session: GameSession):
        outcome = session.play_move("e2", "e4", think_time_ms=1800, now=1.8)
        early = session.tick(outcome.reply_due_at - 0.01)
        assert early.opponent_move is None
        assert len(session.board.move_stack) == 1

    def test_reply_is_played_and_stored(self, session: GameSession, store):
        outcome = session.play_move("e2", "e4", think_time_ms=1800, now=1.8)
        result = session.tick(outcome.reply_due_at)

        assert result.opponent_move is not None
        assert session.board.move_stack[-1] == result.opponent_move.move
        assert session.board.turn == chess.WHITE
        assert session.pending_reply_at is None

        bot_move = store.get_move(session.game_id, 2)
        assert bot_move.is_bot is True
        assert 350 <= bot_move.think_time_ms <= 900

    def test_bot_move_not_counted(self, session: GameSession, service):
        outcome = session.play_move("e2", "e4", think_time_ms=1800, now=1.8)
        session.tick(outcome.reply_due_at)
        assert service.load_profile("u1").move_count == 1

    def test_move_out_of_turn(self, session: GameSession):
        session.play_move("e2", "e4", think_time_ms=1800, now=1.8)
        with pytest.raises(InvalidMoveError):
            session.play_move("d2", "d4", think_time_ms=500, now=2.0)

    def test_illegal_move_leaves_board(self, session: GameSession, store):
        with pytest.raises(InvalidMoveError):
            session.play_move("e2", "e5", think_time_ms=500, now=1.0)
        assert session.board.move_stack == []
        assert store.get_move(session.game_id, 1) is None

    def test_human_as_black_waits_for_opening_move(self, service):
        session = GameSession(service, "u1", engine=OpponentEngine(random.Random(1)), human_color=chess.BLACK)
        session.new_game(now=0.0)
        assert session.pending_reply_at is not None
        with pytest.raises(InvalidMoveError):
            session.play_move("e7", "e5", think_time_ms=1000, now=0.1)

        result = session.tick(1.0)
        assert result.opponent_move is not None
        assert session.board.turn == chess.BLACK

    def test_hover_and_hint(self, session: GameSession, service):
        session.record_hover(now=0.5)
        session.use_hint(now=0.6)
        assert service.load_profile("u1").hint_count == 1
        assert [e['type'] for e in service.recent_events("u1")] == ["hint_used", "hover"]


# =============================================================================
# Opponent mode
# =============================================================================

class TestModeFlow:
    """Behavior memory carried across moves."""

    def test_fast_moves_switch_to_bait(self, session: GameSession):
        first = session.play_move("e2", "e4", think_time_ms=500, now=0.5)
        assert first.mode is OpponentMode.BASELINE
        session.tick(first.reply_due_at)

        second = session.play_move("g1", "f3", think_time_ms=500, now=first.reply_due_at + 0.5)
        assert second.mode is OpponentMode.BAIT

    def test_new_game_resets_memory(self, session: GameSession):
        first = session.play_move("e2", "e4", think_time_ms=500, now=0.5)
        session.tick(first.reply_due_at)
        session.play_move("g1", "f3", think_time_ms=500, now=first.reply_due_at + 0.5)
        assert session.mode is OpponentMode.BAIT

        session.new_game(now=10.0)
        assert session.mode is OpponentMode.BASELINE


# =============================================================================
# Restart & game over
# =============================================================================

class TestRestart:
    """Timers do not survive a new game."""

    def test_new_game_drops_pending_reply(self, session: GameSession):
        old_game = session.game_id
        outcome = session.play_move("e2", "e4", think_time_ms=1800, now=1.8)
        session.new_game(now=2.0)

        assert session.game_id != old_game
        assert session.pending_reply_at is None
        assert session.tick(outcome.reply_due_at + 5).opponent_move is None
        assert session.board.move_stack == []

    def test_new_game_hides_nudge(self, service, store, always_fire):
        store.save_profile(UserProfile("u1", move_count=10, avg_think_time_ms=3000.0, segment="Balanced"))
        session = GameSession(
            service, "u1",
            engine=OpponentEngine(random.Random(2)),
            scheduler=InterventionScheduler(always_fire),
        )
        session.new_game(now=0.0)

        outcome = session.play_move("e2", "e4", think_time_ms=500, now=100.0)
        assert outcome.nudge is not None
        assert session.nudge_state.currently_visible

        session.new_game(now=101.0)
        assert not session.nudge_state.currently_visible
        assert session.tick(120.0).nudge_hidden is False


class TestNudgeFlow:
    """Nudges across consecutive moves."""

    def test_expired_nudge_allows_next_after_cooldown(self, service, store, always_fire):
        store.save_profile(UserProfile("u1", move_count=10, avg_think_time_ms=3000.0, segment="Balanced"))
        session = GameSession(
            service, "u1",
            engine=OpponentEngine(random.Random(4)),
            scheduler=InterventionScheduler(always_fire),
        )
        session.new_game(now=0.0)

        first = session.play_move("e2", "e4", think_time_ms=500, now=100.0)
        assert first.nudge is not None
        session.tick(first.reply_due_at)  # reply lands before the 110s hard hide
        assert session.nudge_state.currently_visible

        # No tick between the reply and the next move
        second = session.play_move("g1", "f3", think_time_ms=500, now=130.0)
        assert second.nudge is not None
        assert second.nudge.shown_at == 130.0


class TestHoverThrottle:
    """Rapid hover streams are thinned per session."""

    def test_rapid_hovers_thinned(self, session: GameSession, store):
        recorded = [session.record_hover(100.0 + i * 0.1) for i in range(20)]
        assert sum(recorded) == 10
        assert recorded[:4] == [True, False, True, False]
        assert store.count_recent_hovers("u1") == 10
        assert session.hover_window.count_at(102.0) == 10

    def test_spaced_hovers_all_kept(self, session: GameSession, store):
        for i in range(8):
            assert session.record_hover(100.0 + i * 0.5)
        assert store.count_recent_hovers("u1") == 8


class TestGameOver:
    """Terminal positions."""

    def test_mating_move_ends_game(self, session: GameSession):
        session.board = chess.Board(BACK_RANK_MATE_FEN)
        outcome = session.play_move("a1", "a8", think_time_ms=2000, now=2.0)
        assert outcome.game_over is True
        assert outcome.reply_due_at is None
        assert session.tick(10.0).opponent_move is None

    def test_no_reply_from_mated_position(self, service):
        session = GameSession(service, "u1", engine=OpponentEngine(random.Random(3)), human_color=chess.BLACK)
        session.new_game(now=0.0)
        session.board = chess.Board(FOOLS_MATE_FEN)

        result = session.tick(1.0)
        assert result.opponent_move is None
        assert result.game_over is True
