"""
Version Store

Append-only history of essay drafts per activity. Each activity's
versions are one JSON document under `essay_versions:<activity_id>` in the
injected key-value store.

Reads never raise: unreadable history is logged and treated as empty.
Saves raise VersionPersistenceError so the caller can tell the version
was not recorded; deletes and notes report failure as False.
"""

import json
import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Union

from pydantic import ValidationError

from shared.repositories.kv_store import KeyValueStore
from shared.utils.exceptions import NarrativeWorkshopException
from workshop.exceptions import VersionPersistenceError
from workshop.models.analysis import AnalysisResult
from workshop.models.versions import (
    CategoryDelta,
    CategorySnapshot,
    EssayVersion,
    ImprovementTrends,
    TextDelta,
    TimelinePoint,
    VersionComparison,
    VersionHistoryExport,
    VersionHistorySummary,
    VersionImprovement,
    VersionMetadata,
)

logger = logging.getLogger("workshop.version_store")

KEY_PREFIX = "essay_versions:"

# Category deltas within this band are reported as "same".
CATEGORY_DELTA_TOLERANCE = 0.1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _storage_key(activity_id: str) -> str:
    return f"{KEY_PREFIX}{activity_id}"


def count_words(text: str) -> int:
    return len(text.split())


class VersionStore:
    """Per-activity essay version history over a KeyValueStore."""

    def __init__(self, kv_store: KeyValueStore, clock: Optional[Callable[[], datetime]] = None):
        self._kv = kv_store
        self._clock = clock or _utcnow
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, activity_id: str) -> threading.Lock:
        with self._locks_guard:
            if activity_id not in self._locks:
                self._locks[activity_id] = threading.Lock()
            return self._locks[activity_id]

    # ── Storage ─────────────────────────────────────────────────────────

    def _load(self, activity_id: str) -> list[EssayVersion]:
        """Stored order is oldest first."""
        key = _storage_key(activity_id)
        try:
            raw = self._kv.get(key)
        except NarrativeWorkshopException as e:
            logger.error(f"Failed to read versions for {activity_id}: {e}")
            return []
        if not raw:
            return []
        try:
            return [EssayVersion.model_validate(item) for item in json.loads(raw)]
        except (json.JSONDecodeError, TypeError, ValidationError) as e:
            logger.error(f"Stored versions for {activity_id} are unreadable: {e}")
            return []

    def _write(self, activity_id: str, versions: list[EssayVersion]) -> None:
        """Raises NarrativeWorkshopException on storage failure."""
        ordered = sorted(versions, key=lambda v: v.timestamp)
        payload = json.dumps([v.model_dump(mode="json") for v in ordered])
        self._kv.set(_storage_key(activity_id), payload)

    # ── Public API ──────────────────────────────────────────────────────

    def save_version(
        self,
        activity_id: str,
        draft_text: str,
        analysis: AnalysisResult,
        metadata: Union[VersionMetadata, dict, None] = None,
    ) -> EssayVersion:
        """
        Append a new version. Never deduplicates: saving identical text
        twice creates two versions.

        Args:
            activity_id: Activity the draft belongs to
            draft_text: Full draft text
            analysis: Analysis the draft received
            metadata: Engine/depth/description for the version

        Returns:
            The saved EssayVersion

        Raises:
            VersionPersistenceError: If the history could not be written
        """
        if isinstance(metadata, dict):
            metadata = VersionMetadata.model_validate(metadata)
        metadata = metadata or VersionMetadata(depth=analysis.analysis_depth)

        with self._lock_for(activity_id):
            versions = self._load(activity_id)

            timestamp = self._clock()
            if versions:
                latest = max(v.timestamp for v in versions)
                if timestamp <= latest:
                    timestamp = latest + timedelta(microseconds=1)

            version = EssayVersion(
                id=f"ver_{uuid.uuid4().hex[:12]}",
                activity_id=activity_id,
                text=draft_text,
                timestamp=timestamp,
                nqi=analysis.nqi,
                reader_impression_label=analysis.reader_impression_label,
                category_scores=[
                    CategorySnapshot(category=c.category, score=c.score, max_score=c.max_score)
                    for c in analysis.categories
                ],
                flags=list(analysis.flags),
                word_count=count_words(draft_text),
                char_count=len(draft_text),
                engine=metadata.engine,
                depth=metadata.depth,
                description=metadata.description,
            )

            try:
                self._write(activity_id, versions + [version])
            except NarrativeWorkshopException as e:
                logger.error(json.dumps({
                    "step": "VERSION_SAVE",
                    "status": "failed",
                    "activity_id": activity_id,
                    "error": str(e),
                }))
                raise VersionPersistenceError(activity_id, "save", str(e)) from e

        logger.info(json.dumps({
            "step": "VERSION_SAVE",
            "status": "complete",
            "activity_id": activity_id,
            "version_id": version.id,
            "nqi": version.nqi,
            "total_versions": len(versions) + 1,
        }))
        return version

    def get_versions(self, activity_id: str) -> list[EssayVersion]:
        """All versions, most recent first. Empty when none exist or storage is unreadable."""
        return sorted(self._load(activity_id), key=lambda v: v.timestamp, reverse=True)

    def get_latest_version(self, activity_id: str) -> Optional[EssayVersion]:
        versions = self.get_versions(activity_id)
        return versions[0] if versions else None

    def get_version_by_id(self, activity_id: str, version_id: str) -> Optional[EssayVersion]:
        for version in self._load(activity_id):
            if version.id == version_id:
                return version
        return None

    def get_version_history_summary(self, activity_id: str) -> Optional[VersionHistorySummary]:
        """
        Summarize improvement from the earliest to the latest version.

        Returns:
            VersionHistorySummary, or None if the activity has no versions
        """
        versions = self.get_versions(activity_id)
        if not versions:
            return None

        latest, earliest = versions[0], versions[-1]
        delta = round(latest.nqi - earliest.nqi, 2)
        percent = round(delta / earliest.nqi * 100, 2) if earliest.nqi else 0.0
        if delta > 0:
            direction = "improved"
        elif delta < 0:
            direction = "declined"
        else:
            direction = "same"

        return VersionHistorySummary(
            total_versions=len(versions),
            latest_version=latest,
            first_version=earliest,
            improvement=VersionImprovement(nqi_delta=delta, percent_change=percent, direction=direction),
            timeline=[
                TimelinePoint(version_id=v.id, timestamp=v.timestamp, nqi=v.nqi, note=v.note)
                for v in reversed(versions)
            ],
        )

    def compare_versions(
        self,
        activity_id: str,
        from_version_id: str,
        to_version_id: str,
    ) -> Optional[VersionComparison]:
        """
        Compare two versions of one activity.

        Text changes are length-based (characters added/removed overall),
        not a line diff. Returns None if either id is unknown.
        """
        from_version = self.get_version_by_id(activity_id, from_version_id)
        to_version = self.get_version_by_id(activity_id, to_version_id)
        if from_version is None or to_version is None:
            return None

        categories = [s.category for s in to_version.category_scores]
        categories += [s.category for s in from_version.category_scores if s.category not in categories]

        category_deltas = []
        for category in categories:
            before = from_version.category_score(category) or 0.0
            after = to_version.category_score(category) or 0.0
            delta = round(after - before, 2)
            if delta > CATEGORY_DELTA_TOLERANCE:
                direction = "up"
            elif delta < -CATEGORY_DELTA_TOLERANCE:
                direction = "down"
            else:
                direction = "same"
            category_deltas.append(CategoryDelta(
                category=category, from_score=before, to_score=after, delta=delta, direction=direction,
            ))

        net = to_version.char_count - from_version.char_count
        return VersionComparison(
            from_version=from_version,
            to_version=to_version,
            nqi_delta=round(to_version.nqi - from_version.nqi, 2),
            category_deltas=category_deltas,
            text_changes=TextDelta(added=max(0, net), removed=max(0, -net), net=net),
            time_delta_seconds=(to_version.timestamp - from_version.timestamp).total_seconds(),
        )

    def delete_version(self, activity_id: str, version_id: str) -> bool:
        """Remove one version. False if it does not exist or storage fails."""
        with self._lock_for(activity_id):
            versions = self._load(activity_id)
            remaining = [v for v in versions if v.id != version_id]
            if len(remaining) == len(versions):
                return False
            try:
                self._write(activity_id, remaining)
            except NarrativeWorkshopException as e:
                logger.error(f"Failed to delete version {version_id} for {activity_id}: {e}")
                return False
        logger.info(f"Deleted version {version_id} for {activity_id}")
        return True

    def delete_all_versions(self, activity_id: str) -> bool:
        with self._lock_for(activity_id):
            try:
                self._kv.delete(_storage_key(activity_id))
            except NarrativeWorkshopException as e:
                logger.error(f"Failed to delete versions for {activity_id}: {e}")
                return False
        logger.info(f"Deleted all versions for {activity_id}")
        return True

    def add_version_note(self, activity_id: str, version_id: str, note: str) -> bool:
        """Attach or replace a version's note. Never creates a version."""
        with self._lock_for(activity_id):
            versions = self._load(activity_id)
            found = False
            updated = []
            for version in versions:
                if version.id == version_id:
                    version = version.model_copy(update={"note": note})
                    found = True
                updated.append(version)
            if not found:
                return False
            try:
                self._write(activity_id, updated)
            except NarrativeWorkshopException as e:
                logger.error(f"Failed to save note on {version_id} for {activity_id}: {e}")
                return False
        return True

    def get_improvement_trends(self, activity_id: str) -> ImprovementTrends:
        """NQI and per-category score series, oldest first."""
        versions = list(reversed(self.get_versions(activity_id)))
        categories: dict[str, list[float]] = {}
        for version in versions:
            for snapshot in version.category_scores:
                categories.setdefault(snapshot.category, []).append(snapshot.score)
        return ImprovementTrends(
            timestamps=[v.timestamp for v in versions],
            nqi=[v.nqi for v in versions],
            categories=categories,
        )

    def list_activities(self) -> list[str]:
        try:
            keys = self._kv.list_by_prefix(KEY_PREFIX)
        except NarrativeWorkshopException as e:
            logger.error(f"Failed to list activities: {e}")
            return []
        return [key[len(KEY_PREFIX):] for key in keys]

    # ── Export / import ─────────────────────────────────────────────────

    def export_version_history(self, activity_id: str) -> str:
        """Human-readable JSON document with every version, score and note."""
        document = VersionHistoryExport(
            activity_id=activity_id,
            exported_at=self._clock(),
            versions=self.get_versions(activity_id),
        )
        return json.dumps(document.model_dump(mode="json"), indent=2)

    def import_version_history(self, activity_id: str, json_data: str) -> bool:
        """
        Merge an exported document into the activity's history.

        Versions are de-duplicated by id (existing versions win). Invalid
        documents change nothing and return False.
        """
        try:
            document = VersionHistoryExport.model_validate_json(json_data)
        except ValidationError as e:
            logger.warning(f"Rejected version import for {activity_id}: {e.error_count()} validation errors")
            return False

        with self._lock_for(activity_id):
            versions = self._load(activity_id)
            known = {v.id for v in versions}
            imported = [
                v.model_copy(update={"activity_id": activity_id})
                for v in document.versions
                if v.id not in known
            ]
            try:
                self._write(activity_id, versions + imported)
            except NarrativeWorkshopException as e:
                logger.error(f"Failed to import versions for {activity_id}: {e}")
                return False

        logger.info(f"Imported {len(imported)} versions into {activity_id}")
        return True
