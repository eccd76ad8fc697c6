"""
Running per-user behavioral statistics.

A profile is folded forward one observation at a time; no move history is
needed to keep it current:
- moves and blunders are counted for human moves only
- think time is an incremental mean over human moves
- hint usage is counted independently of moves

Bot moves never touch a profile.
"""

from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class MoveQuality(Enum):
    """Quality label assigned to a human move."""
    GOOD = "good"
    BLUNDER = "blunder"


@dataclass
class UserProfile:
    """Rolling aggregates for one user."""
    user_id: str
    move_count: int = 0
    blunder_count: int = 0
    avg_think_time_ms: float = 0.0  # Unrounded running mean over human moves
    hint_count: int = 0
    segment: str = "WarmingUp"  # Cached classifier output, recomputed on update
    updated_at: str = ""  # ISO timestamp

    @property
    def blunder_rate(self) -> float:
        """Fraction of human moves labelled as blunders (0 with no moves)."""
        if self.move_count == 0:
            return 0.0
        return self.blunder_count / self.move_count

    def to_dict(self) -> dict:
        """Convert to dictionary for display/DataFrame export."""
        data = asdict(self)
        data['avg_think_time_ms'] = round(self.avg_think_time_ms)
        return data


@dataclass(frozen=True)
class MoveObservation:
    """A single submitted move, as seen by the aggregator."""
    is_bot: bool
    think_time_ms: int
    quality: Optional[MoveQuality]  # Always None for bot moves

    @classmethod
    def human(cls, think_time_ms: int, quality: MoveQuality) -> "MoveObservation":
        return cls(is_bot=False, think_time_ms=think_time_ms, quality=quality)

    @classmethod
    def bot(cls, think_time_ms: int = 0) -> "MoveObservation":
        return cls(is_bot=True, think_time_ms=think_time_ms, quality=None)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def update_profile(profile: UserProfile, observation: MoveObservation) -> UserProfile:
    """
    Fold one move observation into a profile.

    Bot observations return the profile unchanged. For human moves the think
    time mean is updated with the exact incremental recurrence

        avg' = (avg * n + t) / (n + 1)

    and kept unrounded, so it always equals the true mean of every human
    think time seen so far (up to float precision).

    Args:
        profile: Current aggregates.
        observation: The move to fold in.

    Returns:
        A new UserProfile; the input is not modified.
    """
    if observation.is_bot:
        return profile

    move_count = profile.move_count + 1
    is_blunder = observation.quality is MoveQuality.BLUNDER
    think_time_ms = max(0, observation.think_time_ms)

    return replace(
        profile,
        move_count=move_count,
        blunder_count=profile.blunder_count + (1 if is_blunder else 0),
        avg_think_time_ms=(profile.avg_think_time_ms * profile.move_count + think_time_ms) / move_count,
        updated_at=_now_iso(),
    )


def record_hint(profile: UserProfile) -> UserProfile:
    """Count one hint use."""
    return replace(profile, hint_count=profile.hint_count + 1, updated_at=_now_iso())
