"""
Tests for the SQLAlchemy repositories.
"""
from datetime import timedelta

import pytest

from conftest import days_ago, make_clip, make_downloaded

from clip_pipeline.exceptions import StorageError
from clip_pipeline.models import AnalysisResult, ClipStatus, RunState, RunStatus, WorkflowRun, utc_now
from clip_pipeline.workflow import WorkflowStateMachine


class TestClipRepository:
    """Downloaded clip persistence."""

    def test_add_and_get(self, clip_repo):
        stored = clip_repo.add(make_downloaded("a"))
        assert stored.id is not None

        loaded = clip_repo.get("a")
        assert loaded.clip_id == "a"
        assert loaded.processing_status == ClipStatus.DOWNLOADED.value
        assert loaded.processed is False
        assert loaded.download_date.tzinfo is not None
        assert clip_repo.exists("a")
        assert not clip_repo.exists("b")

    def test_duplicate_insert_returns_none(self, clip_repo):
        assert clip_repo.add(make_downloaded("a")) is not None
        assert clip_repo.add(make_downloaded("a")) is None
        assert clip_repo.count() == 1

    def test_save_updates_processing_fields(self, clip_repo):
        clip = clip_repo.add(make_downloaded("a"))
        clip.processed = True
        clip.processing_status = ClipStatus.READY_FOR_UPLOAD.value
        clip.processed_at = utc_now()
        clip.analysis = AnalysisResult(optimized_title="Better title", viral_score=7.5)
        clip_repo.save(clip)

        loaded = clip_repo.get("a")
        assert loaded.processed is True
        assert loaded.analysis.optimized_title == "Better title"
        assert loaded.analysis.viral_score == 7.5

    def test_save_missing_clip_raises(self, clip_repo):
        with pytest.raises(StorageError):
            clip_repo.save(make_downloaded("missing"))

    def test_existing_identifiers(self, clip_repo):
        clip_repo.add(make_downloaded("a"))
        found = clip_repo.existing_identifiers([make_clip("a"), make_clip("b")])
        assert found == {"a", "https://clips.twitch.tv/a"}
        assert clip_repo.existing_identifiers([]) == set()

    def test_queries_by_status_and_age(self, clip_repo):
        clip_repo.add(make_downloaded("old", download_date=days_ago(40)))
        clip_repo.add(make_downloaded("recent"))
        failed = make_downloaded(
            "failed",
            download_date=days_ago(1),
            processed=True,
            processing_status=ClipStatus.FAILED.value,
        )
        clip_repo.add(failed)

        assert [c.clip_id for c in clip_repo.list_by_status(ClipStatus.FAILED.value)] == ["failed"]
        assert [c.clip_id for c in clip_repo.list_downloaded_before(days_ago(30))] == ["old"]
        unprocessed = clip_repo.list_unprocessed(utc_now() - timedelta(minutes=1))
        assert [c.clip_id for c in unprocessed] == ["old"]

        assert clip_repo.count() == 3
        assert clip_repo.count(processed=True) == 1
        assert clip_repo.count(processed=False) == 2
        assert clip_repo.count_by_status() == {"DOWNLOADED": 2, "FAILED": 1}

    def test_delete_many(self, clip_repo):
        for clip_id in ("a", "b", "c"):
            clip_repo.add(make_downloaded(clip_id))
        assert clip_repo.delete_many(["a", "b", "zzz"]) == 2
        assert clip_repo.delete_many([]) == 0
        assert clip_repo.count() == 1

    def test_last_processed_at(self, clip_repo):
        assert clip_repo.last_processed_at() is None
        processed_at = utc_now()
        clip_repo.add(make_downloaded("a", processed=True, processed_at=processed_at))
        assert abs((clip_repo.last_processed_at() - processed_at).total_seconds()) < 1


class TestRunRepository:
    """Workflow run persistence."""

    def test_round_trip(self, run_repo):
        run = WorkflowRun(channel_name="streamer", clips_downloaded=2)
        machine = WorkflowStateMachine(run)
        machine.transition(RunState.FETCHING)
        run.record_outcome(ClipStatus.READY_FOR_UPLOAD, AnalysisResult(optimized_title="t", viral_score=8.0), "t")
        run_repo.save(run)

        machine.transition(RunState.DOWNLOADING)
        machine.transition(RunState.ANALYZING)
        machine.transition(RunState.READY)
        run_repo.save(run)

        loaded = run_repo.get(run.run_id)
        assert loaded.state == RunState.READY
        assert loaded.status == RunStatus.COMPLETED
        assert loaded.clips_ready == 1
        assert loaded.ready_clip_titles == ["t"]
        assert loaded.average_viral_score == 8.0
        assert [t.to_state for t in loaded.transitions] == [
            RunState.FETCHING, RunState.DOWNLOADING, RunState.ANALYZING, RunState.READY,
        ]

    def test_list_recent_and_count_active(self, run_repo):
        older = WorkflowRun(channel_name="a", started_at=utc_now() - timedelta(hours=1))
        newer = WorkflowRun(channel_name="b", started_at=utc_now())
        run_repo.save(older)
        run_repo.save(newer)

        assert [r.channel_name for r in run_repo.list_recent(10)] == ["b", "a"]
        assert run_repo.count_active() == 2
        assert run_repo.get("missing") is None
