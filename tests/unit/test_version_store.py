"""
Unit tests for VersionStore.

Uses a fixed clock so timestamps are deterministic. Storage failures are
simulated with a MagicMock key-value store.
"""

import json
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from shared.utils.exceptions import DatabaseException
from workshop.exceptions import VersionPersistenceError
from workshop.models.analysis import AnalysisResult
from workshop.models.versions import VersionMetadata
from workshop.services.version_store import KEY_PREFIX, VersionStore, count_words


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_analysis(nqi, **category_scores):
    return AnalysisResult(
        nqi=nqi,
        reader_impression_label="solid_needs_polish",
        categories=[{"category": name, "score": score} for name, score in category_scores.items()],
        flags=["no_metrics"],
    )


class TickingClock:
    """Returns a fixed start time advanced by one minute per call."""

    def __init__(self, start=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc), step=timedelta(minutes=1)):
        self.current = start
        self.step = step

    def __call__(self):
        value = self.current
        self.current += self.step
        return value


@pytest.fixture
def store(kv_store):
    return VersionStore(kv_store, clock=TickingClock())


# ---------------------------------------------------------------------------
# Saving
# ---------------------------------------------------------------------------

class TestSaveVersion:
    def test_snapshot_fields(self, store):
        version = store.save_version(
            "act-1", "I built a robot arm.", make_analysis(65, voice_integrity=6),
            VersionMetadata(engine="workshop", depth="comprehensive", description="first"),
        )

        assert version.id.startswith("ver_")
        assert version.activity_id == "act-1"
        assert version.nqi == 65
        assert version.word_count == 5
        assert version.char_count == len("I built a robot arm.")
        assert version.flags == ["no_metrics"]
        assert version.category_score("voice_integrity") == 6
        assert version.description == "first"

    def test_unchanged_text_appends(self, store):
        draft = "Same words every time."
        store.save_version("act-1", draft, make_analysis(65))
        store.save_version("act-1", draft, make_analysis(72))

        versions = store.get_versions("act-1")
        assert len(versions) == 2
        assert store.get_version_history_summary("act-1").improvement.nqi_delta == 7

    def test_metadata_dict_accepted(self, store):
        version = store.save_version("act-1", "text", make_analysis(50), {"engine": "manual"})
        assert version.engine == "manual"

    def test_n_saves_grow_history(self, store):
        for index in range(5):
            store.save_version("act-1", f"draft {index}", make_analysis(50 + index))
        assert len(store.get_versions("act-1")) == 5

    def test_timestamps_strictly_increase_with_frozen_clock(self, kv_store):
        frozen = datetime(2026, 3, 1, tzinfo=timezone.utc)
        store = VersionStore(kv_store, clock=lambda: frozen)

        first = store.save_version("act-1", "a", make_analysis(50))
        second = store.save_version("act-1", "b", make_analysis(51))

        assert second.timestamp > first.timestamp
        assert store.get_latest_version("act-1").id == second.id

    def test_concurrent_saves_are_serialized(self, kv_store):
        frozen = datetime(2026, 3, 1, tzinfo=timezone.utc)
        store = VersionStore(kv_store, clock=lambda: frozen)

        with ThreadPoolExecutor(max_workers=8) as pool:
            saved = list(pool.map(
                lambda index: store.save_version("act-1", f"draft {index}", make_analysis(50 + index)),
                range(20),
            ))

        versions = store.get_versions("act-1")
        assert len(versions) == 20
        assert len({v.id for v in versions}) == 20
        assert {v.id for v in versions} == {v.id for v in saved}
        assert all(newer.timestamp > older.timestamp for newer, older in zip(versions, versions[1:]))

    def test_persistence_failure_raises(self):
        kv = MagicMock()
        kv.get.return_value = None
        kv.set.side_effect = DatabaseException("set", RuntimeError("disk full"))
        store = VersionStore(kv)

        with pytest.raises(VersionPersistenceError) as exc_info:
            store.save_version("act-1", "text", make_analysis(50))
        assert exc_info.value.operation == "save"

    def test_sql_backed_store(self, sql_kv_store):
        store = VersionStore(sql_kv_store, clock=TickingClock())
        store.save_version("act-1", "text", make_analysis(50))

        assert len(store.get_versions("act-1")) == 1
        assert store.list_activities() == ["act-1"]


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------

class TestReading:
    def test_newest_first(self, store):
        for nqi in (50, 60, 70):
            store.save_version("act-1", "text", make_analysis(nqi))

        versions = store.get_versions("act-1")
        assert [v.nqi for v in versions] == [70, 60, 50]
        timestamps = [v.timestamp for v in versions]
        assert timestamps == sorted(timestamps, reverse=True)

    def test_empty_activity(self, store):
        assert store.get_versions("missing") == []
        assert store.get_latest_version("missing") is None
        assert store.get_version_history_summary("missing") is None

    def test_activities_are_isolated(self, store):
        store.save_version("act-1", "text", make_analysis(50))
        store.save_version("act-2", "text", make_analysis(60))

        assert len(store.get_versions("act-1")) == 1
        assert store.list_activities() == ["act-1", "act-2"]

    def test_get_version_by_id(self, store):
        version = store.save_version("act-1", "text", make_analysis(50))
        assert store.get_version_by_id("act-1", version.id) == version
        assert store.get_version_by_id("act-2", version.id) is None

    def test_unreadable_history_is_empty(self, kv_store, store):
        kv_store.set(f"{KEY_PREFIX}act-1", "not json")
        assert store.get_versions("act-1") == []

    def test_read_failure_is_empty(self):
        kv = MagicMock()
        kv.get.side_effect = DatabaseException("get", RuntimeError("gone"))
        assert VersionStore(kv).get_versions("act-1") == []


# ---------------------------------------------------------------------------
# Summary & trends
# ---------------------------------------------------------------------------

class TestSummary:
    def test_improvement(self, store):
        store.save_version("act-1", "a", make_analysis(50))
        store.save_version("act-1", "b", make_analysis(45))
        store.save_version("act-1", "c", make_analysis(60))

        summary = store.get_version_history_summary("act-1")

        assert summary.total_versions == 3
        assert summary.first_version.nqi == 50
        assert summary.latest_version.nqi == 60
        assert summary.improvement.nqi_delta == 10
        assert summary.improvement.percent_change == 20
        assert summary.improvement.direction == "improved"
        assert [p.nqi for p in summary.timeline] == [50, 45, 60]

    def test_zero_start_has_zero_percent(self, store):
        store.save_version("act-1", "a", make_analysis(0))
        store.save_version("act-1", "b", make_analysis(30))

        assert store.get_version_history_summary("act-1").improvement.percent_change == 0

    def test_single_version(self, store):
        store.save_version("act-1", "a", make_analysis(50))
        summary = store.get_version_history_summary("act-1")

        assert summary.improvement.direction == "same"
        assert summary.first_version == summary.latest_version

    def test_trends_oldest_first(self, store):
        store.save_version("act-1", "a", make_analysis(50, voice_integrity=4))
        store.save_version("act-1", "b", make_analysis(60, voice_integrity=6, fit_trajectory=7))

        trends = store.get_improvement_trends("act-1")

        assert trends.nqi == [50, 60]
        assert trends.categories == {"voice_integrity": [4, 6], "fit_trajectory": [7]}


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------

class TestCompareVersions:
    def test_deltas(self, store):
        first = store.save_version("act-1", "short", make_analysis(50, voice_integrity=4, fit_trajectory=7))
        second = store.save_version(
            "act-1", "a much longer draft", make_analysis(58, voice_integrity=6, fit_trajectory=7.05)
        )

        comparison = store.compare_versions("act-1", first.id, second.id)

        assert comparison.nqi_delta == 8
        deltas = {d.category: d for d in comparison.category_deltas}
        assert deltas["voice_integrity"].direction == "up"
        assert deltas["fit_trajectory"].direction == "same"
        assert comparison.text_changes.net == len("a much longer draft") - len("short")
        assert comparison.text_changes.removed == 0
        assert comparison.time_delta_seconds == 60

    def test_symmetry(self, store):
        first = store.save_version("act-1", "a", make_analysis(50, voice_integrity=4))
        second = store.save_version("act-1", "b", make_analysis(63, reflection_meaning=5))

        forward = store.compare_versions("act-1", first.id, second.id)
        backward = store.compare_versions("act-1", second.id, first.id)

        assert forward.nqi_delta == -backward.nqi_delta
        assert {d.category for d in forward.category_deltas} == {"voice_integrity", "reflection_meaning"}

    def test_unknown_id(self, store):
        version = store.save_version("act-1", "a", make_analysis(50))
        assert store.compare_versions("act-1", version.id, "ver_missing") is None


# ---------------------------------------------------------------------------
# Mutation
# ---------------------------------------------------------------------------

class TestMutation:
    def test_add_note(self, store):
        version = store.save_version("act-1", "a", make_analysis(50))

        assert store.add_version_note("act-1", version.id, "After adding dialogue") is True
        updated = store.get_version_by_id("act-1", version.id)
        assert updated.note == "After adding dialogue"
        assert updated.text == version.text

    def test_note_on_unknown_version(self, store):
        assert store.add_version_note("act-1", "ver_missing", "note") is False
        assert store.get_versions("act-1") == []

    def test_delete_version(self, store):
        keep = store.save_version("act-1", "a", make_analysis(50))
        drop = store.save_version("act-1", "b", make_analysis(55))

        assert store.delete_version("act-1", drop.id) is True
        assert [v.id for v in store.get_versions("act-1")] == [keep.id]
        assert store.delete_version("act-1", drop.id) is False

    def test_delete_all(self, store):
        store.save_version("act-1", "a", make_analysis(50))

        assert store.delete_all_versions("act-1") is True
        assert store.get_versions("act-1") == []
        assert store.list_activities() == []

    def test_delete_failure_returns_false(self):
        kv = MagicMock()
        kv.delete.side_effect = DatabaseException("delete", RuntimeError("locked"))
        assert VersionStore(kv).delete_all_versions("act-1") is False


# ---------------------------------------------------------------------------
# Export / import
# ---------------------------------------------------------------------------

class TestExportImport:
    def test_export_document(self, store):
        version = store.save_version("act-1", "a", make_analysis(50))
        store.add_version_note("act-1", version.id, "baseline")

        document = json.loads(store.export_version_history("act-1"))

        assert document["activity_id"] == "act-1"
        assert document["versions"][0]["note"] == "baseline"
        assert document["versions"][0]["nqi"] == 50

    def test_import_into_other_activity(self, store):
        store.save_version("act-1", "a", make_analysis(50))
        store.save_version("act-1", "b", make_analysis(60))
        exported = store.export_version_history("act-1")

        assert store.import_version_history("act-2", exported) is True

        imported = store.get_versions("act-2")
        assert [v.nqi for v in imported] == [60, 50]
        assert all(v.activity_id == "act-2" for v in imported)

    def test_import_is_deduplicated(self, store):
        store.save_version("act-1", "a", make_analysis(50))
        exported = store.export_version_history("act-1")

        assert store.import_version_history("act-1", exported) is True
        assert len(store.get_versions("act-1")) == 1

    def test_import_without_offsets_is_read_as_utc(self, store):
        document = {
            "activity_id": "act-old",
            "exported_at": "2024-01-02T08:00:00",
            "versions": [{
                "id": "ver_legacy",
                "activity_id": "act-old",
                "text": "An older draft.",
                "timestamp": "2024-01-01T00:00:00",
                "nqi": 48,
            }],
        }
        assert store.import_version_history("act-1", json.dumps(document)) is True

        saved = store.save_version("act-1", "new", make_analysis(55))

        legacy = store.get_version_by_id("act-1", "ver_legacy")
        assert legacy.timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert [v.id for v in store.get_versions("act-1")] == [saved.id, "ver_legacy"]

    def test_invalid_import(self, store):
        assert store.import_version_history("act-1", "{not json") is False
        assert store.import_version_history("act-1", json.dumps({"versions": []})) is False
        assert store.get_versions("act-1") == []


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestCountWords:
    def test_whitespace(self):
        assert count_words("  one\ttwo\n three ") == 3
        assert count_words("") == 0
