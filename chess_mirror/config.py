"""
Runtime configuration for the behavioral engine.

Settings come from the environment (optionally a project-level .env file).
Tuning constants for the classifier, the adaptive opponent and the nudge
scheduler live here so they can be read in one place.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Project root (parent of chess_mirror/)
PROJECT_ROOT = Path(__file__).resolve().parent.parent

load_dotenv(PROJECT_ROOT / ".env")


def _env_flag(name: str, default: str) -> bool:
    """Read a boolean flag such as "1", "true" or "off" from the environment."""
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# Storage & logging
# =============================================================================

DB_PATH = Path(os.environ.get("CHESSMIRROR_DB_PATH", str(PROJECT_ROOT / "data" / "chessmirror.db")))

LOG_LEVEL = os.environ.get("CHESSMIRROR_LOG_LEVEL", "INFO")

# Defaults used when no admin decision has been recorded for a user
NUDGES_ENABLED_DEFAULT = _env_flag("CHESSMIRROR_NUDGES_DEFAULT", "true")
CONFIRM_MOVES_DEFAULT = _env_flag("CHESSMIRROR_CONFIRM_DEFAULT", "false")


# =============================================================================
# Aggregation
# =============================================================================

# Think times are clamped to [0, 10 minutes] before they reach a profile
MAX_THINK_TIME_MS = 600_000

# The dashboard counts hovers among this many of a user's most recent events
HOVER_SAMPLE_EVENTS = 200

# Hovers closer together than this (per session) are dropped
HOVER_MIN_INTERVAL_S = 0.12

# Bounds for event listings
MAX_EVENTS_TAKE = 500
RECENT_MOVES_LIMIT = 200


# =============================================================================
# Segment classification thresholds
# =============================================================================

WARMING_UP_MOVES = 6

UNSTABLE_BLUNDER_PCT = 35

IMPULSIVE_MAX_THINK_SEC = 2.2
IMPULSIVE_MIN_BLUNDER_PCT = 25

REFLECTIVE_MIN_THINK_SEC = 6.0
REFLECTIVE_MAX_BLUNDER_PCT = 20

HESITANT_MIN_THINK_SEC = 4.0
HESITANT_MIN_HOVERS_PER_MOVE = 4.0

EXPLORER_MIN_HOVERS_PER_MOVE = 5.0


# =============================================================================
# Adaptive opponent
# =============================================================================

# A human move faster than this counts towards the "fast moves" memory
FAST_MOVE_THRESHOLD_MS = 2200

# Memory levels that switch the opponent's mode
TRAP_BLUNDER_THRESHOLD = 2
BAIT_FAST_MOVE_THRESHOLD = 2

# Baseline samples among the top moves with these weights (best first)
BASELINE_WEIGHTS = (3, 2, 1)

# Bait samples among the worst max(BAIT_MIN_POOL, BAIT_POOL_FRACTION * n) moves
BAIT_MIN_POOL = 2
BAIT_POOL_FRACTION = 0.2

# Artificial "thinking" pause before the opponent replies (seconds)
OPPONENT_DELAY_MIN_S = 0.35
OPPONENT_DELAY_MAX_S = 0.9
OPPONENT_DELAY_RUSHED_FACTOR = 1.5


# =============================================================================
# Nudge scheduling
# =============================================================================

HOVER_BURST_WINDOW_S = 10.0
HOVER_BURST_THRESHOLD = 8

TOO_SLOW_MS = 4200
TOO_FAST_MS = 900

NUDGE_COOLDOWN_S = 20.0
NUDGE_PROBABILITY = 0.45

NUDGE_MAX_VISIBLE_S = 10.0
NUDGE_MIN_VISIBLE_S = 4.5
NUDGE_HIDE_GRACE_S = 0.9


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for scripts (library modules only get loggers)."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
