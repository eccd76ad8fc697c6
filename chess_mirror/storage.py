"""
SQLite persistence for profiles, moves, events and intervention decisions.

This module provides:
- Lazy profile creation (unknown users get a zeroed profile)
- Move records keyed uniquely by (game_id, ply)
- Raw event log (hovers, hints, ...) with the hover sampling used by the dashboard
- Per-user locks serializing profile read-modify-write
"""

import json
import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional, Union

from .config import HOVER_SAMPLE_EVENTS, MAX_EVENTS_TAKE, RECENT_MOVES_LIMIT
from .interventions import InterventionFlags
from .profile_stats import UserProfile

logger = logging.getLogger(__name__)

IN_MEMORY = ":memory:"


# =============================================================================
# Data Structures
# =============================================================================

@dataclass
class MoveRecord:
    """A stored move submission."""
    game_id: str
    ply: int
    user_id: str
    uci: str
    san: str
    is_bot: bool
    think_time_ms: int
    quality: Optional[str]  # "good" / "blunder", None for bot moves
    created_at: str = ""


@dataclass
class EventRecord:
    """A stored telemetry event."""
    user_id: str
    session_id: Optional[str]
    ts: float  # Seconds since epoch
    type: str
    payload: dict


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Store
# =============================================================================

class ProfileStore:
    """
    SQLite-backed store.

    One connection is shared between threads behind a connection lock;
    `user_lock()` additionally serializes all read-modify-write work for a
    single user so concurrent submissions can't double count.

    Usage:
        store = ProfileStore(Path("data/chessmirror.db"))
        with store.user_lock(user_id):
            profile = store.load_profile(user_id)
            ...
            store.save_profile(profile)
    """

    def __init__(self, db_path: Union[str, Path] = IN_MEMORY):
        self.db_path = str(db_path)
        if self.db_path != IN_MEMORY:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn_lock = threading.RLock()
        self._user_locks: dict[str, threading.RLock] = {}
        self._user_locks_guard = threading.Lock()
        self._init_schema()

    def _init_schema(self):
        with self._conn_lock, self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS profiles (
                    user_id TEXT PRIMARY KEY,
                    move_count INTEGER NOT NULL DEFAULT 0,
                    blunder_count INTEGER NOT NULL DEFAULT 0,
                    avg_think_time_ms REAL NOT NULL DEFAULT 0,
                    hint_count INTEGER NOT NULL DEFAULT 0,
                    segment TEXT NOT NULL DEFAULT 'WarmingUp',
                    created_at TEXT,
                    updated_at TEXT
                )
            """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS games (
                    game_id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    created_at TEXT,
                    result TEXT
                )
            """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS moves (
                    game_id TEXT NOT NULL,
                    ply INTEGER NOT NULL,
                    user_id TEXT NOT NULL,
                    uci TEXT NOT NULL,
                    san TEXT NOT NULL,
                    is_bot INTEGER NOT NULL DEFAULT 0,
                    think_time_ms INTEGER NOT NULL,
                    quality TEXT,
                    created_at TEXT,
                    PRIMARY KEY (game_id, ply)
                )
            """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    session_id TEXT,
                    ts REAL NOT NULL,
                    type TEXT NOT NULL,
                    payload TEXT NOT NULL DEFAULT '{}'
                )
            """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS intervention_decisions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    interventions TEXT NOT NULL
                )
            """)
            self._conn.execute("CREATE INDEX IF NOT EXISTS idx_events_user_ts ON events (user_id, ts)")
            self._conn.execute("CREATE INDEX IF NOT EXISTS idx_moves_user ON moves (user_id, created_at)")

    def close(self):
        with self._conn_lock:
            self._conn.close()

    @contextmanager
    def user_lock(self, user_id: str) -> Iterator[None]:
        """Serialize read-modify-write work for one user."""
        with self._user_locks_guard:
            lock = self._user_locks.setdefault(user_id, threading.RLock())
        with lock:
            yield

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    def load_profile(self, user_id: str) -> UserProfile:
        """Load a profile, creating a zeroed one for unknown users."""
        with self._conn_lock:
            row = self._conn.execute(
                "SELECT user_id, move_count, blunder_count, avg_think_time_ms, hint_count, "
                "segment, updated_at FROM profiles WHERE user_id = ?",
                (user_id,),
            ).fetchone()
            if row is None:
                now = _now_iso()
                with self._conn:
                    self._conn.execute(
                        "INSERT OR IGNORE INTO profiles (user_id, created_at, updated_at) VALUES (?, ?, ?)",
                        (user_id, now, now),
                    )
                logger.info("Created profile for %s", user_id)
                return UserProfile(user_id=user_id, updated_at=now)

        return UserProfile(
            user_id=row[0],
            move_count=row[1],
            blunder_count=row[2],
            avg_think_time_ms=row[3],
            hint_count=row[4],
            segment=row[5],
            updated_at=row[6] or "",
        )

    def save_profile(self, profile: UserProfile):
        """Write a profile's aggregates."""
        with self._conn_lock, self._conn:
            self._conn.execute("""
                INSERT INTO profiles
                (user_id, move_count, blunder_count, avg_think_time_ms, hint_count, segment,
                 created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    move_count = excluded.move_count,
                    blunder_count = excluded.blunder_count,
                    avg_think_time_ms = excluded.avg_think_time_ms,
                    hint_count = excluded.hint_count,
                    segment = excluded.segment,
                    updated_at = excluded.updated_at
            """, (
                profile.user_id,
                profile.move_count,
                profile.blunder_count,
                profile.avg_think_time_ms,
                profile.hint_count,
                profile.segment,
                profile.updated_at or _now_iso(),
                profile.updated_at or _now_iso(),
            ))

    def list_profiles(self) -> list[UserProfile]:
        """All profiles, newest first."""
        with self._conn_lock:
            rows = self._conn.execute(
                "SELECT user_id, move_count, blunder_count, avg_think_time_ms, hint_count, "
                "segment, updated_at FROM profiles ORDER BY created_at DESC, user_id"
            ).fetchall()
        return [
            UserProfile(
                user_id=row[0],
                move_count=row[1],
                blunder_count=row[2],
                avg_think_time_ms=row[3],
                hint_count=row[4],
                segment=row[5],
                updated_at=row[6] or "",
            )
            for row in rows
        ]

    # -------------------------------------------------------------------------
    # Games & moves
    # -------------------------------------------------------------------------

    def start_game(self, user_id: str) -> str:
        """Register a new game and return its id."""
        game_id = uuid.uuid4().hex
        with self._conn_lock, self._conn:
            self._conn.execute(
                "INSERT INTO games (game_id, user_id, created_at) VALUES (?, ?, ?)",
                (game_id, user_id, _now_iso()),
            )
        return game_id

    def get_move(self, game_id: str, ply: int) -> Optional[MoveRecord]:
        """Look up a submitted move by its idempotency key."""
        with self._conn_lock:
            row = self._conn.execute(
                "SELECT game_id, ply, user_id, uci, san, is_bot, think_time_ms, quality, created_at "
                "FROM moves WHERE game_id = ? AND ply = ?",
                (game_id, ply),
            ).fetchone()
        if row is None:
            return None
        return MoveRecord(
            game_id=row[0],
            ply=row[1],
            user_id=row[2],
            uci=row[3],
            san=row[4],
            is_bot=bool(row[5]),
            think_time_ms=row[6],
            quality=row[7],
            created_at=row[8] or "",
        )

    def insert_move(self, record: MoveRecord):
        """Store a move; the caller has already checked the key is free."""
        with self._conn_lock, self._conn:
            self._conn.execute("""
                INSERT INTO moves
                (game_id, ply, user_id, uci, san, is_bot, think_time_ms, quality, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                record.game_id,
                record.ply,
                record.user_id,
                record.uci,
                record.san,
                int(record.is_bot),
                record.think_time_ms,
                record.quality,
                record.created_at or _now_iso(),
            ))

    def recent_moves(self, user_id: str, limit: int = RECENT_MOVES_LIMIT) -> list[MoveRecord]:
        """A user's most recent moves in chronological order."""
        with self._conn_lock:
            rows = self._conn.execute(
                "SELECT game_id, ply, user_id, uci, san, is_bot, think_time_ms, quality, created_at "
                "FROM moves WHERE user_id = ? ORDER BY created_at DESC, ply DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        return [
            MoveRecord(
                game_id=row[0],
                ply=row[1],
                user_id=row[2],
                uci=row[3],
                san=row[4],
                is_bot=bool(row[5]),
                think_time_ms=row[6],
                quality=row[7],
                created_at=row[8] or "",
            )
            for row in reversed(rows)
        ]

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def record_event(
        self,
        user_id: str,
        session_id: Optional[str],
        ts: float,
        type: str,
        payload: Optional[dict] = None,
    ):
        """Append a telemetry event."""
        with self._conn_lock, self._conn:
            self._conn.execute(
                "INSERT INTO events (user_id, session_id, ts, type, payload) VALUES (?, ?, ?, ?, ?)",
                (user_id, session_id, ts, type, json.dumps(payload or {})),
            )

    def recent_events(self, user_id: str, take: int = 200) -> list[EventRecord]:
        """Most recent events first; `take` is clamped to 1..500."""
        take = min(MAX_EVENTS_TAKE, max(1, take))
        with self._conn_lock:
            rows = self._conn.execute(
                "SELECT user_id, session_id, ts, type, payload FROM events "
                "WHERE user_id = ? ORDER BY ts DESC, id DESC LIMIT ?",
                (user_id, take),
            ).fetchall()
        return [
            EventRecord(user_id=row[0], session_id=row[1], ts=row[2], type=row[3], payload=json.loads(row[4]))
            for row in rows
        ]

    def count_recent_hovers(self, user_id: str, sample: int = HOVER_SAMPLE_EVENTS) -> int:
        """Number of hover events among the user's `sample` most recent events."""
        with self._conn_lock:
            row = self._conn.execute("""
                SELECT COUNT(*) FROM (
                    SELECT type FROM events WHERE user_id = ?
                    ORDER BY ts DESC, id DESC LIMIT ?
                ) WHERE type = 'hover'
            """, (user_id, sample)).fetchone()
        return row[0]

    # -------------------------------------------------------------------------
    # Intervention decisions
    # -------------------------------------------------------------------------

    def save_interventions(self, user_id: str, flags: InterventionFlags) -> int:
        """Record an admin decision; returns its id."""
        with self._conn_lock, self._conn:
            cursor = self._conn.execute(
                "INSERT INTO intervention_decisions (user_id, created_at, interventions) VALUES (?, ?, ?)",
                (user_id, _now_iso(), json.dumps(flags.to_dict())),
            )
        return cursor.lastrowid

    def latest_interventions(self, user_id: str) -> Optional[dict]:
        """The most recent decision for a user, or None."""
        with self._conn_lock:
            row = self._conn.execute(
                "SELECT interventions FROM intervention_decisions WHERE user_id = ? "
                "ORDER BY id DESC LIMIT 1",
                (user_id,),
            ).fetchone()
        return json.loads(row[0]) if row else None
