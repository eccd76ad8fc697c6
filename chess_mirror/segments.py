"""
Behavioral segment classification.

Maps a user's aggregates (plus hover telemetry) to a single segment label.
Rules are evaluated top-down and the first match wins:

1. WarmingUp  - fewer than 6 moves, nothing else is trusted yet
2. Unstable   - blunder rate >= 35%
3. Impulsive  - fast (<= 2.2s) and error-prone (>= 25%)
4. Reflective - slow (>= 6s) and accurate (<= 20%)
5. Hesitant   - slow (>= 4s) with heavy exploration (>= 4 hovers/move)
6. Explorer   - very heavy exploration (>= 5 hovers/move)
7. Balanced   - everything else

"Not enough data" and "dangerously high error rate" are checked before any
style label, so early mistakes are never reported as a reflective style.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .config import (
    EXPLORER_MIN_HOVERS_PER_MOVE,
    HESITANT_MIN_HOVERS_PER_MOVE,
    HESITANT_MIN_THINK_SEC,
    IMPULSIVE_MAX_THINK_SEC,
    IMPULSIVE_MIN_BLUNDER_PCT,
    REFLECTIVE_MAX_BLUNDER_PCT,
    REFLECTIVE_MIN_THINK_SEC,
    UNSTABLE_BLUNDER_PCT,
    WARMING_UP_MOVES,
)
from .profile_stats import UserProfile


class Segment(Enum):
    """Behavioral segments, in classification priority order."""
    WARMING_UP = "WarmingUp"
    UNSTABLE = "Unstable"
    IMPULSIVE = "Impulsive"
    REFLECTIVE = "Reflective"
    HESITANT = "Hesitant"
    EXPLORER = "Explorer"
    BALANCED = "Balanced"


@dataclass(frozen=True)
class BehaviorStats:
    """Classifier inputs derived from a profile and hover telemetry."""
    move_count: int
    avg_think_time_sec: float
    blunder_rate_pct: int
    hover_count: int = 0
    hovers_per_move: float = 0.0  # Unrounded, used for thresholds

    def to_dict(self) -> dict:
        """Convert to dictionary for display (hovers/move rounded to 0.1)."""
        return {
            'move_count': self.move_count,
            'avg_think_time_sec': self.avg_think_time_sec,
            'blunder_rate_pct': self.blunder_rate_pct,
            'hover_count': self.hover_count,
            'hovers_per_move': round(self.hovers_per_move, 1),
        }


@dataclass(frozen=True)
class SegmentInsight:
    """Classifier output: the label plus the explanation shown to admins."""
    label: Segment
    rationale: str


# =============================================================================
# Rule table
# =============================================================================

Rule = tuple[Callable[[BehaviorStats], bool], Segment, str]

SEGMENT_RULES: list[Rule] = [
    (
        lambda s: s.move_count < WARMING_UP_MOVES,
        Segment.WARMING_UP,
        "Not enough data yet to detect a stable play style. Play a few more moves.",
    ),
    (
        lambda s: s.blunder_rate_pct >= UNSTABLE_BLUNDER_PCT,
        Segment.UNSTABLE,
        "High error rate suggests inconsistent execution or focus.",
    ),
    (
        lambda s: s.avg_think_time_sec <= IMPULSIVE_MAX_THINK_SEC
        and s.blunder_rate_pct >= IMPULSIVE_MIN_BLUNDER_PCT,
        Segment.IMPULSIVE,
        "Very fast decisions combined with frequent mistakes suggests impulsive play.",
    ),
    (
        lambda s: s.avg_think_time_sec >= REFLECTIVE_MIN_THINK_SEC
        and s.blunder_rate_pct <= REFLECTIVE_MAX_BLUNDER_PCT,
        Segment.REFLECTIVE,
        "Longer thinking times with fewer mistakes indicate a reflective decision-making style.",
    ),
    (
        lambda s: s.avg_think_time_sec >= HESITANT_MIN_THINK_SEC
        and s.hovers_per_move >= HESITANT_MIN_HOVERS_PER_MOVE,
        Segment.HESITANT,
        "Extended thinking combined with heavy exploration suggests hesitation before committing.",
    ),
    (
        lambda s: s.hovers_per_move >= EXPLORER_MIN_HOVERS_PER_MOVE,
        Segment.EXPLORER,
        "You scan many squares and lines. This can be strong, but try to shortlist 1-2 candidates.",
    ),
]

DEFAULT_INSIGHT = SegmentInsight(
    Segment.BALANCED,
    "A generally steady pace and error rate. Your play looks fairly consistent overall.",
)


def classify(stats: BehaviorStats) -> SegmentInsight:
    """
    Classify behavior stats into a segment.

    Pure and total: every input yields exactly one label.

    Args:
        stats: Derived behavior statistics.

    Returns:
        SegmentInsight for the first matching rule, or Balanced.
    """
    for predicate, label, rationale in SEGMENT_RULES:
        if predicate(stats):
            return SegmentInsight(label, rationale)
    return DEFAULT_INSIGHT


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero for positive values (12.5 -> 13)."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def build_stats(profile: UserProfile, hover_count: int = 0) -> BehaviorStats:
    """
    Derive classifier inputs from a profile.

    - avg_think_time_sec: mean think time in seconds, rounded to 0.1s
    - blunder_rate_pct: whole-number percentage (0 with no moves)
    - hovers_per_move: hover_count / move_count (0 with no moves)
    """
    moves = profile.move_count
    if moves > 0:
        blunder_rate_pct = int(round_half_up(profile.blunder_count / moves * 100))
        hovers_per_move = hover_count / moves
    else:
        blunder_rate_pct = 0
        hovers_per_move = 0.0

    return BehaviorStats(
        move_count=moves,
        avg_think_time_sec=round_half_up(profile.avg_think_time_ms / 1000, 1),
        blunder_rate_pct=blunder_rate_pct,
        hover_count=hover_count,
        hovers_per_move=hovers_per_move,
    )


def classify_profile(profile: UserProfile, hover_count: int = 0) -> SegmentInsight:
    """Classify a profile directly."""
    return classify(build_stats(profile, hover_count))
