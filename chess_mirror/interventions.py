"""
Nudge scheduling.

Decides when a short behavioral message ("nudge") may appear after a human
move, and when it disappears again. A session's nudge cycles Idle -> Visible
-> Idle with no terminal state.

A nudge is considered once per completed human move and is suppressed when:
- nudges are switched off for the user
- the user is still warming up (fewer than 6 moves)
- a nudge is already visible
- the previous nudge appeared less than 20s ago

Otherwise the first matching reason (hover burst, too slow, too fast) fires
with probability 0.45. A visible nudge hides on whichever comes first:
- hard hide: 10s after it appeared
- soft hide: after the next move, once it has been visible for 4.5s, plus a
  0.9s grace period after that move

Timers are plain deadlines on NudgeState; `tick(state, now)` applies them.
"""

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .config import (
    CONFIRM_MOVES_DEFAULT,
    HOVER_BURST_THRESHOLD,
    HOVER_BURST_WINDOW_S,
    NUDGE_COOLDOWN_S,
    NUDGE_HIDE_GRACE_S,
    NUDGE_MAX_VISIBLE_S,
    NUDGE_MIN_VISIBLE_S,
    NUDGE_PROBABILITY,
    NUDGES_ENABLED_DEFAULT,
    TOO_FAST_MS,
    TOO_SLOW_MS,
    WARMING_UP_MOVES,
)
from .segments import Segment

logger = logging.getLogger(__name__)


class NudgeReason(Enum):
    """Signal that made a nudge eligible."""
    HOVER_BURST = "hoverBurst"
    TOO_SLOW = "tooSlow"
    TOO_FAST = "tooFast"


@dataclass
class InterventionFlags:
    """Externally configured toggles for one user."""
    confirm_moves_enabled: bool = CONFIRM_MOVES_DEFAULT
    nudges_enabled: bool = NUDGES_ENABLED_DEFAULT

    def to_dict(self) -> dict:
        return {
            'confirmMoves': self.confirm_moves_enabled,
            'nudges': self.nudges_enabled,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "InterventionFlags":
        """Parse a stored decision; missing keys fall back to the defaults."""
        data = data or {}
        nudges = data.get('nudges', data.get('nudgeTakeASecond', NUDGES_ENABLED_DEFAULT))
        return cls(
            confirm_moves_enabled=bool(data.get('confirmMoves', CONFIRM_MOVES_DEFAULT)),
            nudges_enabled=bool(nudges),
        )


@dataclass
class HoverBurstWindow:
    """Hover count within a fixed window that restarts after a quiet gap."""
    window_start: Optional[float] = None
    count: int = 0

    def record(self, ts: float) -> int:
        """Count a hover at `ts`; returns the count in the current window."""
        if self.window_start is None or ts - self.window_start > HOVER_BURST_WINDOW_S:
            self.window_start = ts
            self.count = 0
        self.count += 1
        return self.count

    def count_at(self, now: float) -> int:
        """Hovers in the window that is still open at `now` (0 if expired)."""
        if self.window_start is None or now - self.window_start > HOVER_BURST_WINDOW_S:
            return 0
        return self.count

    def reset(self) -> None:
        self.window_start = None
        self.count = 0


@dataclass
class NudgeState:
    """Visibility and timer state of one session's nudge."""
    last_shown_at: Optional[float] = None
    currently_visible: bool = False
    shown_at: Optional[float] = None
    hard_hide_at: Optional[float] = None
    soft_hide_at: Optional[float] = None
    message: Optional[str] = None
    reason: Optional[NudgeReason] = None


@dataclass(frozen=True)
class Nudge:
    """A nudge that just became visible."""
    reason: NudgeReason
    message: str
    shown_at: float


# =============================================================================
# Messages
# =============================================================================

SEGMENT_MESSAGES = {
    Segment.IMPULSIVE: "Quick hands! Before you commit, check which pieces your move leaves undefended.",
    Segment.UNSTABLE: "A few pieces slipped away recently. Scan captures and checks first.",
    Segment.HESITANT: "You've found good candidates already. Pick the one you trust most and play it.",
    Segment.EXPLORER: "Lots of ideas on the board. Shortlist one or two candidate moves.",
    Segment.REFLECTIVE: "Steady and careful. Keep trusting your calculation.",
}

REASON_MESSAGES = {
    NudgeReason.HOVER_BURST: "You're scanning a lot of squares. Narrow it down to your best two moves.",
    NudgeReason.TOO_SLOW: "Take your time, but don't overthink it. Your first idea is often good.",
    NudgeReason.TOO_FAST: "Take a second before committing your move.",
}


def detect_reason(think_time_ms: int, hover_burst: int) -> Optional[NudgeReason]:
    """First matching nudge reason, or None."""
    if hover_burst >= HOVER_BURST_THRESHOLD:
        return NudgeReason.HOVER_BURST
    if think_time_ms >= TOO_SLOW_MS:
        return NudgeReason.TOO_SLOW
    if think_time_ms <= TOO_FAST_MS:
        return NudgeReason.TOO_FAST
    return None


def choose_message(segment: Segment, think_time_ms: int, hover_burst: int) -> str:
    """
    Pick the nudge text.

    Segment-specific text wins; otherwise the text for the detected signal.
    Segments without their own text and no signal get the generic pause text.
    """
    if segment in SEGMENT_MESSAGES:
        return SEGMENT_MESSAGES[segment]
    reason = detect_reason(think_time_ms, hover_burst) or NudgeReason.TOO_FAST
    return REASON_MESSAGES[reason]


# =============================================================================
# Scheduler
# =============================================================================

class InterventionScheduler:
    """Probability and timing gate for nudges."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def on_move(
        self,
        state: NudgeState,
        now: float,
        move_count: int,
        think_time_ms: int,
        hover_window: HoverBurstWindow,
        segment: Segment = Segment.BALANCED,
        flags: Optional[InterventionFlags] = None,
    ) -> Optional[Nudge]:
        """
        Evaluate a completed human move.

        Args:
            state: Session nudge state (mutated).
            now: Time the move was committed (seconds).
            move_count: The user's human move count including this move.
            think_time_ms: Think time of the move.
            hover_window: Session hover window (reset after a hover-burst nudge).
            segment: The user's current segment.
            flags: External toggles; defaults when None.

        Returns:
            The Nudge that became visible, or None.
        """
        flags = flags or InterventionFlags()

        # Hide timers that came due since the last tick
        tick(state, now)
        if state.currently_visible:
            self._arm_soft_hide(state, now)
            return None
        if not flags.nudges_enabled or move_count < WARMING_UP_MOVES:
            return None
        if state.last_shown_at is not None and now - state.last_shown_at < NUDGE_COOLDOWN_S:
            return None

        hover_burst = hover_window.count_at(now)
        reason = detect_reason(think_time_ms, hover_burst)
        if reason is None:
            return None
        if self.rng.random() >= NUDGE_PROBABILITY:
            return None

        message = choose_message(segment, think_time_ms, hover_burst)
        state.currently_visible = True
        state.shown_at = now
        state.last_shown_at = now
        state.hard_hide_at = now + NUDGE_MAX_VISIBLE_S
        state.soft_hide_at = None
        state.message = message
        state.reason = reason
        if reason is NudgeReason.HOVER_BURST:
            hover_window.reset()

        logger.info("Nudge shown (%s, segment %s)", reason.value, segment.value)
        return Nudge(reason, message, now)

    @staticmethod
    def _arm_soft_hide(state: NudgeState, now: float) -> None:
        soft_hide_at = max(now + NUDGE_HIDE_GRACE_S, state.shown_at + NUDGE_MIN_VISIBLE_S)
        if state.soft_hide_at is None or soft_hide_at < state.soft_hide_at:
            state.soft_hide_at = soft_hide_at


def _hide(state: NudgeState) -> None:
    state.currently_visible = False
    state.shown_at = None
    state.hard_hide_at = None
    state.soft_hide_at = None
    state.message = None
    state.reason = None


def tick(state: NudgeState, now: float) -> bool:
    """
    Apply due hide timers.

    Returns:
        True if the nudge went from Visible to Idle.
    """
    if not state.currently_visible:
        return False
    deadlines = [t for t in (state.hard_hide_at, state.soft_hide_at) if t is not None]
    if deadlines and now >= min(deadlines):
        _hide(state)
        return True
    return False


def cancel(state: NudgeState) -> None:
    """Drop a visible nudge and its timers (cooldown is kept)."""
    _hide(state)
