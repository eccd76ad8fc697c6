"""
ChessMirror behavioral engine.

Turns per-user chess telemetry into rolling statistics and a behavioral
segment, and uses both to steer an adaptive opponent and timed nudges.
"""

from .errors import InvalidMoveError

# Aggregation
from .profile_stats import (
    MoveObservation,
    MoveQuality,
    UserProfile,
    record_hint,
    update_profile,
)

# Classification
from .segments import (
    BehaviorStats,
    Segment,
    SegmentInsight,
    build_stats,
    classify,
    classify_profile,
)

# Move quality
from .move_quality import (
    PIECE_VALUES,
    label_move_quality,
    material_eval,
    parse_move,
)

# Opponent
from .opponent import (
    BehaviorMemory,
    OpponentDecision,
    OpponentEngine,
    OpponentMode,
    rank_moves,
    select_mode,
    update_memory,
)

# Nudges
from .interventions import (
    HoverBurstWindow,
    InterventionFlags,
    InterventionScheduler,
    Nudge,
    NudgeReason,
    NudgeState,
    choose_message,
    detect_reason,
)

# Storage, service & sessions
from .storage import MoveRecord, ProfileStore
from .service import SubmitResult, TelemetryService
from .session import GameSession, MoveOutcome, TickResult

__version__ = "0.1.0"
