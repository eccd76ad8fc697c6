"""
Telemetry service: the operations exposed to the transport layer.

Move submissions are aggregated at most once per (game_id, ply). The key is
checked against the store before anything is written, all under the user's
lock, so a retried or duplicated submission returns the stored result
instead of counting twice.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

import chess
import pandas as pd

from .config import HOVER_MIN_INTERVAL_S, MAX_THINK_TIME_MS
from .errors import InvalidMoveError
from .interventions import InterventionFlags
from .move_quality import label_move_quality, parse_move
from .profile_stats import MoveObservation, MoveQuality, UserProfile, record_hint, update_profile
from .segments import SegmentInsight, build_stats, classify, classify_profile
from .storage import MoveRecord, ProfileStore

logger = logging.getLogger(__name__)


@dataclass
class SubmitResult:
    """Outcome of a move submission."""
    quality: Optional[MoveQuality]
    deduped: bool
    profile: UserProfile
    insight: SegmentInsight
    uci: str
    san: str


def clamp_think_time(think_time_ms) -> int:
    """Clamp a reported think time into [0, MAX_THINK_TIME_MS] milliseconds."""
    return int(max(0, min(MAX_THINK_TIME_MS, think_time_ms or 0)))


class TelemetryService:
    """Aggregation, classification and admin views over a ProfileStore."""

    def __init__(self, store: ProfileStore):
        self.store = store
        self._last_hover_at: dict[tuple[str, Optional[str]], float] = {}

    # -------------------------------------------------------------------------
    # Moves
    # -------------------------------------------------------------------------

    def submit_observation(
        self,
        user_id: str,
        game_id: str,
        ply: int,
        is_bot: bool,
        think_time_ms: int,
        move_from: str,
        move_to: str,
        fen_before: str,
        promotion: Optional[str] = None,
    ) -> SubmitResult:
        """
        Validate, label, store and aggregate one move.

        Args:
            user_id: The human player the game belongs to.
            game_id: Game the move was played in.
            ply: Half-move number of this move (1-based).
            is_bot: True for opponent moves (stored, never aggregated).
            think_time_ms: Time the player spent on the move.
            move_from / move_to: Squares of the move.
            fen_before: Position the move was played from.
            promotion: Optional promotion piece.

        Returns:
            SubmitResult; `deduped` is True when (game_id, ply) was already stored.

        Raises:
            InvalidMoveError: The move is illegal in `fen_before`, or
                (game_id, ply) is already stored for another user. Nothing is stored.
        """
        with self.store.user_lock(user_id):
            existing = self.store.get_move(game_id, ply)
            if existing is not None:
                if existing.user_id != user_id:
                    raise InvalidMoveError(fen_before, f"{move_from}{move_to}", "game belongs to another user")
                logger.info("Duplicate submission %s/%d ignored", game_id, ply)
                profile = self.store.load_profile(user_id)
                return SubmitResult(
                    quality=MoveQuality(existing.quality) if existing.quality else None,
                    deduped=True,
                    profile=profile,
                    insight=self._insight(profile),
                    uci=existing.uci,
                    san=existing.san,
                )

            try:
                board = chess.Board(fen_before)
            except ValueError:
                raise InvalidMoveError(fen_before, f"{move_from}{move_to}", "invalid position")
            move = parse_move(board, move_from, move_to, promotion)
            san = board.san(move)
            think_time_ms = clamp_think_time(think_time_ms)

            if is_bot:
                quality = None
                observation = MoveObservation.bot(think_time_ms)
            else:
                quality = label_move_quality(board, move)
                observation = MoveObservation.human(think_time_ms, quality)

            self.store.insert_move(MoveRecord(
                game_id=game_id,
                ply=ply,
                user_id=user_id,
                uci=move.uci(),
                san=san,
                is_bot=is_bot,
                think_time_ms=think_time_ms,
                quality=quality.value if quality else None,
            ))

            profile = self.store.load_profile(user_id)
            profile = update_profile(profile, observation)
            insight = self._insight(profile)
            if not is_bot:
                profile.segment = insight.label.value
                self.store.save_profile(profile)

        return SubmitResult(quality, False, profile, insight, move.uci(), san)

    def _insight(self, profile: UserProfile) -> SegmentInsight:
        return classify_profile(profile, self.store.count_recent_hovers(profile.user_id))

    # -------------------------------------------------------------------------
    # Profiles & events
    # -------------------------------------------------------------------------

    def load_profile(self, user_id: str) -> UserProfile:
        return self.store.load_profile(user_id)

    def save_profile(self, profile: UserProfile):
        with self.store.user_lock(profile.user_id):
            self.store.save_profile(profile)

    def record_hover_event(self, user_id: str, session_id: Optional[str], ts: Optional[float] = None) -> bool:
        """
        Log a hover; feeds hovers-per-move in classification.

        Hovers arriving less than HOVER_MIN_INTERVAL_S after the last stored
        hover of the same session are dropped.

        Returns:
            True if the hover was stored.
        """
        ts = ts if ts is not None else time.time()
        key = (user_id, session_id)
        with self.store.user_lock(user_id):
            last = self._last_hover_at.get(key)
            if last is not None and ts - last < HOVER_MIN_INTERVAL_S:
                return False
            self._last_hover_at[key] = ts
            self.store.record_event(user_id, session_id, ts, "hover")
        return True

    def record_hint_event(
        self,
        user_id: str,
        session_id: Optional[str] = None,
        ts: Optional[float] = None,
    ) -> UserProfile:
        """Log a hint use and count it on the profile."""
        with self.store.user_lock(user_id):
            self.store.record_event(user_id, session_id, ts if ts is not None else time.time(), "hint_used")
            profile = record_hint(self.store.load_profile(user_id))
            profile.segment = self._insight(profile).label.value
            self.store.save_profile(profile)
        return profile

    # -------------------------------------------------------------------------
    # Interventions
    # -------------------------------------------------------------------------

    def get_intervention_flags(self, user_id: str) -> InterventionFlags:
        """Latest admin decision for a user, or the configured defaults."""
        return InterventionFlags.from_dict(self.store.latest_interventions(user_id))

    def set_intervention_flags(self, user_id: str, flags: InterventionFlags) -> int:
        decision_id = self.store.save_interventions(user_id, flags)
        logger.info("Interventions for %s set to %s", user_id, flags.to_dict())
        return decision_id

    # -------------------------------------------------------------------------
    # Admin views
    # -------------------------------------------------------------------------

    def profile_snapshot(self, user_id: str) -> dict:
        """
        Everything the admin dashboard shows for one user.

        Recomputes the segment from current stats and refreshes the cached
        label when it is stale.
        """
        with self.store.user_lock(user_id):
            profile = self.store.load_profile(user_id)
            stats = build_stats(profile, self.store.count_recent_hovers(user_id))
            insight = classify(stats)
            if profile.segment != insight.label.value:
                profile.segment = insight.label.value
                self.store.save_profile(profile)

        events = self.store.recent_events(user_id, take=25)
        return {
            'user_id': user_id,
            'profile': profile.to_dict(),
            'segment': insight.label.value,
            'insight': insight.rationale,
            'stats': stats.to_dict(),
            'hint_count': profile.hint_count,
            'moves': [
                {
                    'game_id': m.game_id,
                    'ply': m.ply,
                    'think_time_ms': m.think_time_ms,
                    'quality': m.quality,
                    'created_at': m.created_at,
                }
                for m in self.store.recent_moves(user_id)
                if not m.is_bot
            ],
            'recent_events': [
                {'ts': e.ts, 'type': e.type, 'payload': e.payload}
                for e in events
            ],
            'interventions': self.get_intervention_flags(user_id).to_dict(),
        }

    def recent_events(self, user_id: str, take: int = 200) -> list[dict]:
        return [
            {'session_id': e.session_id, 'ts': e.ts, 'type': e.type, 'payload': e.payload}
            for e in self.store.recent_events(user_id, take)
        ]

    def users_frame(self) -> pd.DataFrame:
        """One row per user with their aggregates, newest first."""
        rows = [p.to_dict() for p in self.store.list_profiles()]
        columns = [
            'user_id', 'segment', 'move_count', 'blunder_count',
            'avg_think_time_ms', 'hint_count', 'updated_at',
        ]
        df = pd.DataFrame(rows, columns=columns)
        if not df.empty:
            df['blunder_rate_pct'] = (
                (df['blunder_count'] / df['move_count'].where(df['move_count'] > 0)) * 100
            ).fillna(0).round().astype(int)
        return df
