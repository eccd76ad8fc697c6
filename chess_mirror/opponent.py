"""
Adaptive, deliberately beatable opponent.

The opponent's strategy ("mode") is derived every turn from a short-term
memory of the human's recent behavior:

- Trap:     the human blundered repeatedly -> apply pressure with checks
- Bait:     the human is moving too fast   -> offer a weak move to punish haste
- Baseline: otherwise                      -> a weighted pick among the top moves

Memory counters rise on confirming moves and decay (floor 0) on contradicting
ones, so a single fast move or a single blunder never flips the mode.
"""

import logging
import math
import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import chess

from .config import (
    BAIT_FAST_MOVE_THRESHOLD,
    BAIT_MIN_POOL,
    BAIT_POOL_FRACTION,
    BASELINE_WEIGHTS,
    FAST_MOVE_THRESHOLD_MS,
    OPPONENT_DELAY_MAX_S,
    OPPONENT_DELAY_MIN_S,
    OPPONENT_DELAY_RUSHED_FACTOR,
    TRAP_BLUNDER_THRESHOLD,
)
from .move_quality import material_eval
from .profile_stats import MoveQuality
from .segments import Segment

logger = logging.getLogger(__name__)

# Segments whose players are given a longer pause before the reply
RUSHED_SEGMENTS = {Segment.IMPULSIVE, Segment.UNSTABLE}


class OpponentMode(Enum):
    """Strategy used to pick the opponent's next move."""
    BASELINE = "baseline"
    BAIT = "bait"
    TRAP = "trap"


@dataclass
class BehaviorMemory:
    """Short-term memory of the human's play in the current game."""
    recent_fast_moves: int = 0
    recent_blunders: int = 0


@dataclass(frozen=True)
class OpponentDecision:
    """The chosen reply and how it was chosen."""
    move: chess.Move
    mode: OpponentMode
    score: int  # Material balance after the move, mover's perspective
    pool_size: int  # Number of candidates the move was sampled from


def select_mode(memory: BehaviorMemory) -> OpponentMode:
    """Derive the opponent mode from behavior memory (Trap beats Bait)."""
    if memory.recent_blunders >= TRAP_BLUNDER_THRESHOLD:
        return OpponentMode.TRAP
    if memory.recent_fast_moves >= BAIT_FAST_MOVE_THRESHOLD:
        return OpponentMode.BAIT
    return OpponentMode.BASELINE


def update_memory(
    memory: BehaviorMemory,
    think_time_ms: int,
    quality: Optional[MoveQuality],
) -> BehaviorMemory:
    """
    Fold a human move into behavior memory (in place).

    A fast move increments recent_fast_moves, a slower one decrements it.
    A blunder increments recent_blunders, any other move decrements it.
    Neither counter goes below zero.
    """
    if think_time_ms < FAST_MOVE_THRESHOLD_MS:
        memory.recent_fast_moves += 1
    else:
        memory.recent_fast_moves = max(0, memory.recent_fast_moves - 1)

    if quality is MoveQuality.BLUNDER:
        memory.recent_blunders += 1
    else:
        memory.recent_blunders = max(0, memory.recent_blunders - 1)

    return memory


def score_move(board: chess.Board, move: chess.Move) -> int:
    """Material balance after `move`, from the perspective of the side playing it."""
    mover = board.turn
    board.push(move)
    try:
        return material_eval(board, mover)
    finally:
        board.pop()


def rank_moves(board: chess.Board) -> list[tuple[chess.Move, int]]:
    """
    Score every legal move and sort best first.

    The sort is stable, so equally scored moves keep python-chess's
    legal move generation order.
    """
    work = board.copy(stack=False)
    scored = [(move, score_move(work, move)) for move in board.legal_moves]
    scored.sort(key=lambda item: item[1], reverse=True)
    return scored


class OpponentEngine:
    """
    Chooses the opponent's reply given the human's behavior memory.

    Usage:
        engine = OpponentEngine(random.Random(7))
        decision = engine.choose_move(board, memory)
        if decision is None:
            ...  # game over
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def choose_move(self, board: chess.Board, memory: BehaviorMemory) -> Optional[OpponentDecision]:
        """
        Pick a reply for the side to move.

        Returns:
            OpponentDecision, or None when there is no legal move (game over).
        """
        ranked = rank_moves(board)
        if not ranked:
            logger.debug("No legal moves in %s", board.fen())
            return None

        mode = select_mode(memory)
        if mode is OpponentMode.TRAP:
            decision = self._trap(board, ranked)
        elif mode is OpponentMode.BAIT:
            decision = self._bait(ranked)
        else:
            decision = self._baseline(ranked)

        logger.debug(
            "Opponent %s: %s (score %d, pool %d)",
            decision.mode.value, decision.move.uci(), decision.score, decision.pool_size,
        )
        return decision

    def _baseline(self, ranked: list[tuple[chess.Move, int]]) -> OpponentDecision:
        pool = ranked[:len(BASELINE_WEIGHTS)]
        weights = BASELINE_WEIGHTS[:len(pool)]
        move, score = self.rng.choices(pool, weights=weights, k=1)[0]
        return OpponentDecision(move, OpponentMode.BASELINE, score, len(pool))

    def _bait(self, ranked: list[tuple[chess.Move, int]]) -> OpponentDecision:
        worst_first = sorted(ranked, key=lambda item: item[1])
        pool_size = max(BAIT_MIN_POOL, math.floor(BAIT_POOL_FRACTION * len(ranked)))
        pool = worst_first[:pool_size]
        move, score = self.rng.choice(pool)
        return OpponentDecision(move, OpponentMode.BAIT, score, len(pool))

    def _trap(self, board: chess.Board, ranked: list[tuple[chess.Move, int]]) -> OpponentDecision:
        checking = [(move, score) for move, score in ranked if board.gives_check(move)]
        if checking:
            move, score = self.rng.choice(checking)
            return OpponentDecision(move, OpponentMode.TRAP, score, len(checking))
        move, score = ranked[0]
        return OpponentDecision(move, OpponentMode.TRAP, score, 1)

    def thinking_delay(self, segment: Segment = Segment.BALANCED) -> float:
        """Seconds to wait before replying; longer for players who rush."""
        delay = self.rng.uniform(OPPONENT_DELAY_MIN_S, OPPONENT_DELAY_MAX_S)
        if segment in RUSHED_SEGMENTS:
            delay *= OPPONENT_DELAY_RUSHED_FACTOR
        return delay
