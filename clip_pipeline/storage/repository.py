"""
Clip and run repositories.

Each public method opens its own session and commits before returning, so
every record write is atomic. The unique constraint on ``clip_id`` is the
final word on duplicates: an insert that violates it means the clip was
already downloaded.
"""
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Set

from loguru import logger
from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from clip_pipeline.exceptions import StorageError
from clip_pipeline.models import (
    AnalysisResult,
    Clip,
    DownloadedClip,
    RunState,
    RunStatus,
    StateTransition,
    WorkflowRun,
)
from clip_pipeline.storage.database import Database
from clip_pipeline.storage.models import DownloadedClipRecord, WorkflowRunRecord


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands datetimes back naive; everything is stored as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _clip_from_record(record: DownloadedClipRecord) -> DownloadedClip:
    return DownloadedClip(
        id=record.id,
        clip_id=record.clip_id,
        title=record.title,
        original_url=record.original_url,
        file_path=record.file_path,
        creator_name=record.creator_name or "",
        broadcaster_name=record.broadcaster_name or "",
        game_name=record.game_name or "",
        view_count=record.view_count,
        duration=record.duration or 0.0,
        download_date=_aware(record.download_date),
        processed=bool(record.processed),
        processing_status=record.processing_status,
        processed_at=_aware(record.processed_at),
        analysis=AnalysisResult.model_validate(record.analysis) if record.analysis else None,
        error_message=record.error_message,
        run_id=record.run_id,
    )


class ClipRepository:
    """Persistence for DownloadedClip."""

    def __init__(self, db: Database):
        self.db = db

    def add(self, clip: DownloadedClip) -> Optional[DownloadedClip]:
        """
        Insert a new downloaded clip.

        Returns:
            The stored clip with its id, or None when ``clip_id`` already exists
        """
        record = DownloadedClipRecord(
            clip_id=clip.clip_id,
            title=clip.title,
            original_url=clip.original_url,
            file_path=clip.file_path,
            creator_name=clip.creator_name,
            broadcaster_name=clip.broadcaster_name,
            game_name=clip.game_name,
            view_count=clip.view_count,
            duration=clip.duration,
            download_date=clip.download_date,
            processed=clip.processed,
            processing_status=clip.processing_status,
            processed_at=clip.processed_at,
            analysis=clip.analysis.model_dump() if clip.analysis else None,
            error_message=clip.error_message,
            run_id=clip.run_id,
        )
        with self.db.session() as session:
            session.add(record)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.info(f"Clip {clip.clip_id} already stored, insert skipped")
                return None
            clip.id = record.id
        return clip

    def save(self, clip: DownloadedClip) -> DownloadedClip:
        """Persist the mutable processing fields of an existing clip."""
        with self.db.session() as session:
            record = session.scalar(
                select(DownloadedClipRecord).where(DownloadedClipRecord.clip_id == clip.clip_id)
            )
            if record is None:
                raise StorageError(f"Clip {clip.clip_id} not found", {"clip_id": clip.clip_id})
            record.processed = clip.processed
            record.processing_status = clip.processing_status
            record.processed_at = clip.processed_at
            record.analysis = clip.analysis.model_dump() if clip.analysis else None
            record.error_message = clip.error_message
            try:
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise StorageError(f"Failed to save clip {clip.clip_id}: {e}") from e
        return clip

    def get(self, clip_id: str) -> Optional[DownloadedClip]:
        with self.db.session() as session:
            record = session.scalar(
                select(DownloadedClipRecord).where(DownloadedClipRecord.clip_id == clip_id)
            )
            return _clip_from_record(record) if record else None

    def exists(self, clip_id: str) -> bool:
        with self.db.session() as session:
            found = session.scalar(
                select(DownloadedClipRecord.id).where(DownloadedClipRecord.clip_id == clip_id)
            )
            return found is not None

    def existing_identifiers(self, clips: Iterable[Clip]) -> Set[str]:
        """Ids and URLs among ``clips`` that are already stored."""
        clips = list(clips)
        if not clips:
            return set()
        ids = [c.clip_id for c in clips]
        urls = [c.url for c in clips]
        with self.db.session() as session:
            rows = session.execute(
                select(DownloadedClipRecord.clip_id, DownloadedClipRecord.original_url).where(
                    or_(
                        DownloadedClipRecord.clip_id.in_(ids),
                        DownloadedClipRecord.original_url.in_(urls),
                    )
                )
            ).all()
        found: Set[str] = set()
        for clip_id, url in rows:
            found.add(clip_id)
            found.add(url)
        return found

    def list_by_status(self, status: str, limit: Optional[int] = None) -> List[DownloadedClip]:
        stmt = (
            select(DownloadedClipRecord)
            .where(DownloadedClipRecord.processing_status == status)
            .order_by(DownloadedClipRecord.download_date)
        )
        if limit:
            stmt = stmt.limit(limit)
        with self.db.session() as session:
            return [_clip_from_record(r) for r in session.scalars(stmt)]

    def list_unprocessed(self, downloaded_before: datetime) -> List[DownloadedClip]:
        """Unprocessed clips downloaded before the given time, oldest first."""
        stmt = (
            select(DownloadedClipRecord)
            .where(DownloadedClipRecord.processed.is_(False))
            .where(DownloadedClipRecord.download_date < downloaded_before)
            .order_by(DownloadedClipRecord.download_date)
        )
        with self.db.session() as session:
            return [_clip_from_record(r) for r in session.scalars(stmt)]

    def list_downloaded_before(self, cutoff: datetime) -> List[DownloadedClip]:
        stmt = select(DownloadedClipRecord).where(DownloadedClipRecord.download_date < cutoff)
        with self.db.session() as session:
            return [_clip_from_record(r) for r in session.scalars(stmt)]

    def delete_many(self, clip_ids: Iterable[str]) -> int:
        clip_ids = list(clip_ids)
        if not clip_ids:
            return 0
        with self.db.session() as session:
            result = session.execute(
                delete(DownloadedClipRecord).where(DownloadedClipRecord.clip_id.in_(clip_ids))
            )
            session.commit()
            return result.rowcount or 0

    def count_by_status(self) -> Dict[str, int]:
        with self.db.session() as session:
            rows = session.execute(
                select(DownloadedClipRecord.processing_status, func.count())
                .group_by(DownloadedClipRecord.processing_status)
            ).all()
        return {status: count for status, count in rows}

    def count(self, processed: Optional[bool] = None) -> int:
        stmt = select(func.count()).select_from(DownloadedClipRecord)
        if processed is not None:
            stmt = stmt.where(DownloadedClipRecord.processed.is_(processed))
        with self.db.session() as session:
            return session.scalar(stmt) or 0

    def last_processed_at(self) -> Optional[datetime]:
        with self.db.session() as session:
            return _aware(session.scalar(select(func.max(DownloadedClipRecord.processed_at))))


def _run_from_record(record: WorkflowRunRecord) -> WorkflowRun:
    return WorkflowRun(
        run_id=record.run_id,
        channel_name=record.channel_name,
        channel_id=record.channel_id,
        state=RunState(record.state),
        status=RunStatus(record.status),
        clips_discovered=record.clips_discovered,
        clips_downloaded=record.clips_downloaded,
        clips_processed=record.clips_processed,
        clips_ready=record.clips_ready,
        clips_skipped=record.clips_skipped,
        clips_failed=record.clips_failed,
        started_at=_aware(record.started_at),
        completed_at=_aware(record.completed_at),
        error_message=record.error_message,
        ready_clip_titles=list(record.ready_clip_titles or []),
        total_estimated_views=record.total_estimated_views,
        transitions=[
            StateTransition(
                from_state=RunState(t["from"]),
                to_state=RunState(t["to"]),
                at=datetime.fromisoformat(t["at"]),
            )
            for t in (record.transitions or [])
        ],
        score_sum=record.score_sum,
        scored_count=record.scored_count,
    )


class RunRepository:
    """Persistence for WorkflowRun."""

    def __init__(self, db: Database):
        self.db = db

    def save(self, run: WorkflowRun) -> WorkflowRun:
        record = WorkflowRunRecord(
            run_id=run.run_id,
            channel_name=run.channel_name,
            channel_id=run.channel_id,
            state=run.state.value,
            status=run.status.value,
            clips_discovered=run.clips_discovered,
            clips_downloaded=run.clips_downloaded,
            clips_processed=run.clips_processed,
            clips_ready=run.clips_ready,
            clips_skipped=run.clips_skipped,
            clips_failed=run.clips_failed,
            score_sum=run.score_sum,
            scored_count=run.scored_count,
            total_estimated_views=run.total_estimated_views,
            ready_clip_titles=list(run.ready_clip_titles),
            transitions=[t.to_dict() for t in run.transitions],
            error_message=run.error_message,
            started_at=run.started_at,
            completed_at=run.completed_at,
        )
        with self.db.session() as session:
            session.merge(record)
            try:
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise StorageError(f"Failed to save run {run.run_id}: {e}") from e
        return run

    def get(self, run_id: str) -> Optional[WorkflowRun]:
        with self.db.session() as session:
            record = session.get(WorkflowRunRecord, run_id)
            return _run_from_record(record) if record else None

    def list_recent(self, limit: int = 50) -> List[WorkflowRun]:
        stmt = (
            select(WorkflowRunRecord)
            .order_by(WorkflowRunRecord.started_at.desc())
            .limit(limit)
        )
        with self.db.session() as session:
            return [_run_from_record(r) for r in session.scalars(stmt)]

    def count_active(self) -> int:
        with self.db.session() as session:
            return session.scalar(
                select(func.count())
                .select_from(WorkflowRunRecord)
                .where(WorkflowRunRecord.status == RunStatus.IN_PROGRESS.value)
            ) or 0
