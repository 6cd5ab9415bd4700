"""
Persistence Adapters

Profile and submission history storage used by the orchestrator.

- LocalPersistence: key-value JSON store, in memory or backed by a file
- SupabasePersistence: `profiles` and `submissions` tables for one user

Both keep only the most recent submissions (50 by default) and can
summarise recent same-subject work as extra context for reasoning.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, MutableMapping, Optional, Union

from pydantic import ValidationError

from eduvane_orchestrator.models import (
    AnalysisResult,
    HistoryItem,
    Submission,
    SubmissionStatus,
    UserProfile,
)

logger = logging.getLogger(__name__)

HISTORY_KEY = "eduvane_history_v1"
SUBMISSIONS_KEY = "eduvane_submissions_v1"
PROFILE_KEY = "eduvane_profile_v1"

DEFAULT_HISTORY_LIMIT = 50
DEFAULT_INSIGHT_WINDOW = 5


def summarize_submission(submission: Submission) -> str:
    """One line of longitudinal context, or "" if there's nothing to say."""
    result = submission.result
    if result is None:
        return ""

    gaps = "; ".join(result.gaps())
    strengths = "; ".join(result.strengths())
    insights = "; ".join(insight.title for insight in result.insights)
    stability = result.concept_stability
    stability_note = (
        f"Stability: {stability.status} ({stability.evidence})"
        if stability and stability.status != "unknown" else ""
    )
    handwriting = result.handwriting.feedback if result.handwriting else ""

    if not (gaps or strengths or insights or stability_note or handwriting):
        return ""

    date = submission.timestamp.strftime("%Y-%m-%d")
    return (
        f"[{date}] Topic: {result.topic}. Gaps: {gaps}. Strengths: {strengths}. "
        f"Handwriting: {handwriting}. Previous Signals: {insights}. {stability_note}"
    ).rstrip()


def build_insight_context(submissions: Iterable[Submission]) -> str:
    lines = [summarize_submission(submission) for submission in submissions]
    return "\n".join(line for line in lines if line)


class PersistenceAdapter(ABC):
    """Profile and history store."""

    @abstractmethod
    async def get_user_profile(self) -> Optional[UserProfile]:
        ...

    @abstractmethod
    async def save_user_profile(self, profile: UserProfile):
        ...

    @abstractmethod
    async def save_submission(self, submission: Submission):
        """Upsert a completed submission and prune history."""

    @abstractmethod
    async def get_history(self) -> List[HistoryItem]:
        """Most recent first."""

    @abstractmethod
    async def get_submission(self, submission_id: str) -> Optional[Submission]:
        ...

    @abstractmethod
    async def get_recent_insights(self, subject: str) -> str:
        ...

    @abstractmethod
    async def clear_history(self):
        ...

    async def get_result(self, submission_id: str) -> Optional[AnalysisResult]:
        submission = await self.get_submission(submission_id)
        return submission.result if submission else None


class LocalPersistence(PersistenceAdapter):
    """
    Key-value persistence.

    Values are JSON strings under fixed keys. With a path the store is
    loaded from and flushed to a JSON file on every write; otherwise it
    lives in memory.
    """

    def __init__(
        self,
        store: Optional[MutableMapping[str, str]] = None,
        path: Optional[Union[str, Path]] = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        insight_window: int = DEFAULT_INSIGHT_WINDOW
    ):
        self.path = Path(path) if path else None
        self.store: MutableMapping[str, str] = store if store is not None else {}
        self.history_limit = history_limit
        self.insight_window = insight_window

        if self.path and self.path.exists():
            try:
                self.store.update(json.loads(self.path.read_text(encoding="utf-8")))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"⚠️ [Persistence] Could not load {self.path}, starting empty: {e}")

    def _flush(self):
        if self.path:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(dict(self.store)), encoding="utf-8")

    def _read(self, key: str, default):
        raw = self.store.get(key)
        if not raw:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"⚠️ [Persistence] Corrupt value under {key}, ignoring")
            return default

    def _write(self, key: str, value):
        self.store[key] = json.dumps(value)
        self._flush()

    def _submissions_map(self) -> Dict[str, dict]:
        data = self._read(SUBMISSIONS_KEY, {})
        return data if isinstance(data, dict) else {}

    def _load_submission(self, raw: dict) -> Optional[Submission]:
        try:
            return Submission.model_validate(raw)
        except ValidationError:
            logger.warning("⚠️ [Persistence] Skipping unreadable stored submission")
            return None

    async def get_user_profile(self) -> Optional[UserProfile]:
        data = self._read(PROFILE_KEY, None)
        if not isinstance(data, dict):
            return None
        try:
            return UserProfile.model_validate(data)
        except ValidationError:
            return None

    async def save_user_profile(self, profile: UserProfile):
        self._write(PROFILE_KEY, profile.model_dump(mode="json"))

    async def save_submission(self, submission: Submission):
        if submission.result is None:
            return

        item = HistoryItem.from_submission(submission)
        existing = [h for h in self._read(HISTORY_KEY, []) if h.get("id") != submission.id]
        history = ([item.model_dump(mode="json")] + existing)[:self.history_limit]

        submissions = self._submissions_map()
        submissions[submission.id] = submission.model_dump(mode="json", by_alias=True)
        active_ids = {h["id"] for h in history}
        pruned = {sid: data for sid, data in submissions.items() if sid in active_ids}

        self.store[HISTORY_KEY] = json.dumps(history)
        self.store[SUBMISSIONS_KEY] = json.dumps(pruned)
        self._flush()
        logger.info(f"💾 [Persistence] Saved submission {submission.id[:8]} ({len(history)} in history)")

    async def get_history(self) -> List[HistoryItem]:
        items = []
        for raw in self._read(HISTORY_KEY, []):
            try:
                items.append(HistoryItem.model_validate(raw))
            except ValidationError:
                continue
        return items

    async def get_submission(self, submission_id: str) -> Optional[Submission]:
        raw = self._submissions_map().get(submission_id)
        return self._load_submission(raw) if raw else None

    async def get_recent_insights(self, subject: str) -> str:
        if not subject:
            return ""
        wanted = subject.lower()
        history = await self.get_history()
        relevant_ids = [h.id for h in history if h.subject and h.subject.lower() == wanted][:self.insight_window]
        if not relevant_ids:
            return ""

        submissions = self._submissions_map()
        loaded = [self._load_submission(submissions[sid]) for sid in relevant_ids if sid in submissions]
        return build_insight_context(s for s in loaded if s)

    async def clear_history(self):
        for key in (HISTORY_KEY, SUBMISSIONS_KEY, PROFILE_KEY):
            self.store.pop(key, None)
        self._flush()


class SupabasePersistence(PersistenceAdapter):
    """
    Supabase-backed persistence for one signed-in user.

    Tables:
    - profiles(id, full_name, role, email)
    - submissions(id, user_id, timestamp, status, file_name, subject, topic,
      score_label, result, error)
    """

    def __init__(
        self,
        supabase_client,
        user_id: str,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        insight_window: int = DEFAULT_INSIGHT_WINDOW
    ):
        self.supabase = supabase_client
        self.user_id = user_id
        self.history_limit = history_limit
        self.insight_window = insight_window

    def _row_to_submission(self, row: dict) -> Optional[Submission]:
        try:
            return Submission(
                id=row["id"],
                timestamp=row.get("timestamp") or datetime.now(),
                status=row.get("status") or SubmissionStatus.COMPLETED,
                file_name=row.get("file_name") or "Text Submission",
                result=row.get("result"),
                error=row.get("error"),
            )
        except (KeyError, ValidationError) as e:
            logger.warning(f"⚠️ [Persistence] Skipping unreadable submission row: {e}")
            return None

    async def get_user_profile(self) -> Optional[UserProfile]:
        result = self.supabase.table('profiles') \
            .select('*') \
            .eq('id', self.user_id) \
            .limit(1) \
            .execute()

        if not result.data:
            return None
        row = result.data[0]
        return UserProfile(
            name=row.get("full_name") or "",
            role=row.get("role"),
            email=row.get("email"),
        )

    async def save_user_profile(self, profile: UserProfile):
        update_data = {
            "id": self.user_id,
            "full_name": profile.name,
            "role": profile.role.value.lower() if profile.role else None,
        }
        if profile.email:
            update_data["email"] = profile.email
        self.supabase.table('profiles').upsert(update_data).execute()
        logger.info(f"✅ [Persistence] Updated profile for user {self.user_id[:20]}...")

    async def save_submission(self, submission: Submission):
        if submission.result is None:
            return

        result = submission.result
        row = {
            "id": submission.id,
            "user_id": self.user_id,
            "timestamp": submission.timestamp.isoformat(),
            "status": submission.status.value,
            "file_name": submission.file_name,
            "subject": result.subject,
            "topic": result.topic,
            "score_label": result.score.label,
            "result": result.model_dump(mode="json", by_alias=True),
            "error": submission.error,
        }
        self.supabase.table('submissions').upsert(row).execute()

        # Keep only the most recent window
        stale = self.supabase.table('submissions') \
            .select('id') \
            .eq('user_id', self.user_id) \
            .order('timestamp', desc=True) \
            .range(self.history_limit, self.history_limit + 999) \
            .execute()
        stale_ids = [r["id"] for r in (stale.data or [])]
        if stale_ids:
            self.supabase.table('submissions').delete().in_('id', stale_ids).execute()
            logger.info(f"🧹 [Persistence] Pruned {len(stale_ids)} old submissions")

        logger.info(f"💾 [Persistence] Saved submission {submission.id[:8]} for user {self.user_id[:20]}...")

    async def get_history(self) -> List[HistoryItem]:
        result = self.supabase.table('submissions') \
            .select('id, timestamp, subject, topic, score_label') \
            .eq('user_id', self.user_id) \
            .order('timestamp', desc=True) \
            .limit(self.history_limit) \
            .execute()

        return [
            HistoryItem(
                id=row["id"],
                date=row.get("timestamp") or "",
                subject=row.get("subject") or "General",
                topic=row.get("topic") or "Unknown",
                score_label=row.get("score_label") or "Pending",
            )
            for row in (result.data or [])
        ]

    async def get_submission(self, submission_id: str) -> Optional[Submission]:
        result = self.supabase.table('submissions') \
            .select('*') \
            .eq('user_id', self.user_id) \
            .eq('id', submission_id) \
            .limit(1) \
            .execute()

        if not result.data:
            return None
        return self._row_to_submission(result.data[0])

    async def get_recent_insights(self, subject: str) -> str:
        if not subject:
            return ""
        result = self.supabase.table('submissions') \
            .select('*') \
            .eq('user_id', self.user_id) \
            .ilike('subject', subject) \
            .order('timestamp', desc=True) \
            .limit(self.insight_window) \
            .execute()

        loaded = [self._row_to_submission(row) for row in (result.data or [])]
        return build_insight_context(s for s in loaded if s)

    async def clear_history(self):
        self.supabase.table('submissions').delete().eq('user_id', self.user_id).execute()
        logger.info(f"🧹 [Persistence] Cleared history for user {self.user_id[:20]}...")
