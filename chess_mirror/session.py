"""
One player's live session against the adaptive opponent.

All ephemeral state is owned here, not in module globals: the board,
behavior memory, hover window, nudge state and the pending opponent reply.
Nothing runs in the background. Callers pass the current time to every
method and call `tick(now)` to fire timers that have come due, which keeps
the whole session deterministic under test.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

import chess

from .errors import InvalidMoveError
from .interventions import HoverBurstWindow, InterventionScheduler, Nudge, NudgeState, cancel
from .interventions import tick as nudge_tick
from .move_quality import parse_move
from .opponent import BehaviorMemory, OpponentDecision, OpponentEngine, OpponentMode, select_mode, update_memory
from .profile_stats import MoveQuality
from .segments import Segment
from .service import TelemetryService

logger = logging.getLogger(__name__)


@dataclass
class MoveOutcome:
    """What happened after a human move."""
    quality: Optional[MoveQuality]
    deduped: bool
    segment: Segment
    mode: OpponentMode  # Mode the opponent will reply in
    nudge: Optional[Nudge]
    reply_due_at: Optional[float]
    game_over: bool


@dataclass
class TickResult:
    """Timers that fired during a tick."""
    opponent_move: Optional[OpponentDecision] = None
    nudge_hidden: bool = False
    game_over: bool = False


class GameSession:
    """
    Drives one game: human moves in, opponent replies and nudges out.

    Usage:
        session = GameSession(service, user_id="u1")
        session.new_game(now=0.0)
        outcome = session.play_move("e2", "e4", think_time_ms=1800, now=1.8)
        result = session.tick(now=outcome.reply_due_at)
    """

    def __init__(
        self,
        service: TelemetryService,
        user_id: str,
        session_id: Optional[str] = None,
        engine: Optional[OpponentEngine] = None,
        scheduler: Optional[InterventionScheduler] = None,
        human_color: chess.Color = chess.WHITE,
    ):
        self.service = service
        self.user_id = user_id
        self.session_id = session_id or uuid.uuid4().hex
        self.engine = engine or OpponentEngine()
        self.scheduler = scheduler or InterventionScheduler()
        self.human_color = human_color

        self.game_id: Optional[str] = None
        self.board = chess.Board()
        self.memory = BehaviorMemory()
        self.hover_window = HoverBurstWindow()
        self.nudge_state = NudgeState()
        self.pending_reply_at: Optional[float] = None
        self._reply_delay_ms = 0

        self.flags = service.get_intervention_flags(user_id)
        self.segment = Segment(service.load_profile(user_id).segment)

    @property
    def confirm_moves(self) -> bool:
        """Whether the UI should ask for confirmation before each move."""
        return self.flags.confirm_moves_enabled

    @property
    def mode(self) -> OpponentMode:
        return select_mode(self.memory)

    def new_game(self, now: float) -> str:
        """
        Start a fresh game.

        Any pending opponent reply and nudge timers from the previous game are
        dropped so nothing fires against the discarded position.
        """
        self.pending_reply_at = None
        cancel(self.nudge_state)
        self.hover_window.reset()
        self.memory = BehaviorMemory()
        self.board = chess.Board()
        self.flags = self.service.get_intervention_flags(self.user_id)
        self.game_id = self.service.store.start_game(self.user_id)

        if self.board.turn != self.human_color:
            self._schedule_reply(now)

        logger.info("Game %s started for %s", self.game_id, self.user_id)
        return self.game_id

    def _schedule_reply(self, now: float):
        delay = self.engine.thinking_delay(self.segment)
        self._reply_delay_ms = int(delay * 1000)
        self.pending_reply_at = now + delay

    def record_hover(self, now: float) -> bool:
        """Record a hover; throttled hovers reach neither the store nor the burst window."""
        if not self.service.record_hover_event(self.user_id, self.session_id, now):
            return False
        self.hover_window.record(now)
        return True

    def use_hint(self, now: float):
        profile = self.service.record_hint_event(self.user_id, self.session_id, now)
        self.segment = Segment(profile.segment)

    def play_move(
        self,
        move_from: str,
        move_to: str,
        think_time_ms: int,
        now: float,
        promotion: Optional[str] = None,
    ) -> MoveOutcome:
        """
        Submit a human move.

        Raises:
            InvalidMoveError: Illegal move, or it is not the player's turn.
        """
        if self.game_id is None:
            self.new_game(now)

        if self.board.turn != self.human_color or self.pending_reply_at is not None:
            raise InvalidMoveError(self.board.fen(), f"{move_from}{move_to}", "not the player's turn")

        fen_before = self.board.fen()
        move = parse_move(self.board, move_from, move_to, promotion)
        result = self.service.submit_observation(
            user_id=self.user_id,
            game_id=self.game_id,
            ply=len(self.board.move_stack) + 1,
            is_bot=False,
            think_time_ms=think_time_ms,
            move_from=move_from,
            move_to=move_to,
            fen_before=fen_before,
            promotion=promotion,
        )
        self.board.push(move)

        nudge = None
        if not result.deduped:
            self.segment = Segment(result.profile.segment)
            update_memory(self.memory, think_time_ms, result.quality)
            nudge = self.scheduler.on_move(
                self.nudge_state,
                now,
                result.profile.move_count,
                think_time_ms,
                self.hover_window,
                self.segment,
                self.flags,
            )

        game_over = self.board.is_game_over()
        if not game_over:
            self._schedule_reply(now)

        return MoveOutcome(
            quality=result.quality,
            deduped=result.deduped,
            segment=self.segment,
            mode=self.mode,
            nudge=nudge,
            reply_due_at=self.pending_reply_at,
            game_over=game_over,
        )

    def tick(self, now: float) -> TickResult:
        """Fire the nudge hide timers and the opponent reply if they are due."""
        result = TickResult(nudge_hidden=nudge_tick(self.nudge_state, now))

        if self.pending_reply_at is None or now < self.pending_reply_at:
            return result

        self.pending_reply_at = None
        decision = self.engine.choose_move(self.board, self.memory)
        if decision is None:
            result.game_over = True
            return result

        move = decision.move
        self.service.submit_observation(
            user_id=self.user_id,
            game_id=self.game_id,
            ply=len(self.board.move_stack) + 1,
            is_bot=True,
            think_time_ms=self._reply_delay_ms,
            move_from=chess.square_name(move.from_square),
            move_to=chess.square_name(move.to_square),
            fen_before=self.board.fen(),
            promotion=chess.piece_symbol(move.promotion) if move.promotion else None,
        )
        self.board.push(move)

        result.opponent_move = decision
        result.game_over = self.board.is_game_over()
        return result
