"""
Clip Pipeline Models
====================
Domain data for clips, downloads, analysis results and workflow runs.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

# Viral scores are on a 0-10 scale everywhere in the pipeline.
MIN_VIRAL_SCORE = 0.0
MAX_VIRAL_SCORE = 10.0
HASHTAG_LIMIT = 5


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ClipStatus(str, Enum):
    """Per-clip processing status persisted on DownloadedClip."""
    DOWNLOADED = "DOWNLOADED"
    ANALYZING = "ANALYZING"
    READY_FOR_UPLOAD = "READY_FOR_UPLOAD"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"
    RETRY = "RETRY"


class DownloadSource(str, Enum):
    """Who triggered a download."""
    AUTOMATED = "AUTOMATED"  # inside a workflow run
    MANUAL = "MANUAL"


class RunState(str, Enum):
    """Workflow state machine states."""
    CREATED = "CREATED"
    FETCHING = "FETCHING"
    DOWNLOADING = "DOWNLOADING"
    ANALYZING = "ANALYZING"
    READY = "READY"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.READY, RunState.SKIPPED, RunState.FAILED)


class RunStatus(str, Enum):
    """Caller-visible run status."""
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ChannelRef:
    """A resolved source channel."""
    channel_id: str
    name: str
    display_name: Optional[str] = None


@dataclass(frozen=True)
class TimeWindow:
    """Discovery window for a fetch."""
    started_at: datetime
    ended_at: datetime

    @classmethod
    def last_days(cls, days: int, now: Optional[datetime] = None) -> "TimeWindow":
        end = now or utc_now()
        return cls(started_at=end - timedelta(days=days), ended_at=end)


@dataclass(frozen=True)
class Clip:
    """A discovered clip. Immutable once fetched."""
    clip_id: str
    title: str
    url: str
    creator_name: str = ""
    broadcaster_name: str = ""
    game_name: str = ""
    view_count: Optional[int] = None
    duration: float = 0.0
    created_at: datetime = field(default_factory=utc_now)
    thumbnail_url: Optional[str] = None


def build_hashtags(tags: List[str], limit: int = HASHTAG_LIMIT) -> List[str]:
    """Social hashtags from the first ``limit`` tags."""
    hashtags = []
    for tag in tags[:limit]:
        cleaned = tag.lstrip("#").replace(" ", "")
        if cleaned:
            hashtags.append(f"#{cleaned}")
    return hashtags


class AnalysisResult(BaseModel):
    """
    AI analysis of one downloaded clip.

    ``viral_score`` is clamped into [0, 10] on construction, so every merge
    or heuristic path that builds a result stays in range.
    """
    optimized_title: str
    optimized_description: str = ""
    tags: List[str] = Field(default_factory=list)
    category: str = "GENERAL"
    viral_score: float = Field(default=5.0, ge=MIN_VIRAL_SCORE, le=MAX_VIRAL_SCORE)
    sentiment: str = "NEUTRAL"
    estimated_views: int = Field(default=0, ge=0)
    best_upload_time: str = "18:00"
    social_hashtags: List[str] = Field(default_factory=list)
    thumbnail_suggestion: Optional[str] = None
    source: str = Field(default="structured", description="structured | heuristic | merged | fallback")

    @field_validator("viral_score", mode="before")
    @classmethod
    def clamp_viral_score(cls, value: Any) -> float:
        if value is None:
            return 5.0
        return max(MIN_VIRAL_SCORE, min(MAX_VIRAL_SCORE, float(value)))

    @field_validator("estimated_views", mode="before")
    @classmethod
    def non_negative_views(cls, value: Any) -> int:
        if value is None:
            return 0
        return max(0, int(value))


@dataclass
class DownloadedClip:
    """A clip persisted after a successful download."""
    clip_id: str
    title: str
    original_url: str
    file_path: str
    creator_name: str = ""
    broadcaster_name: str = ""
    game_name: str = ""
    view_count: Optional[int] = None
    duration: float = 0.0
    download_date: datetime = field(default_factory=utc_now)
    processed: bool = False
    processing_status: str = ClipStatus.DOWNLOADED.value
    processed_at: Optional[datetime] = None
    analysis: Optional[AnalysisResult] = None
    error_message: Optional[str] = None
    run_id: Optional[str] = None
    id: Optional[int] = None

    @classmethod
    def from_clip(cls, clip: Clip, file_path: str, run_id: Optional[str] = None) -> "DownloadedClip":
        return cls(
            clip_id=clip.clip_id,
            title=clip.title,
            original_url=clip.url,
            file_path=file_path,
            creator_name=clip.creator_name,
            broadcaster_name=clip.broadcaster_name,
            game_name=clip.game_name,
            view_count=clip.view_count,
            duration=clip.duration,
            run_id=run_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "clip_id": self.clip_id,
            "title": self.title,
            "original_url": self.original_url,
            "file_path": self.file_path,
            "creator_name": self.creator_name,
            "broadcaster_name": self.broadcaster_name,
            "game_name": self.game_name,
            "view_count": self.view_count,
            "duration": self.duration,
            "download_date": self.download_date.isoformat() if self.download_date else None,
            "processed": self.processed,
            "processing_status": self.processing_status,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "analysis": self.analysis.model_dump() if self.analysis else None,
            "error_message": self.error_message,
            "run_id": self.run_id,
        }


@dataclass
class StateTransition:
    """One recorded state change."""
    from_state: RunState
    to_state: RunState
    at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_state.value,
            "to": self.to_state.value,
            "at": self.at.isoformat(),
        }


@dataclass
class WorkflowRun:
    """One execution of the pipeline for one channel."""
    channel_name: str
    run_id: str = field(default_factory=lambda: str(uuid4()))
    channel_id: Optional[str] = None
    state: RunState = RunState.CREATED
    status: RunStatus = RunStatus.IN_PROGRESS
    clips_discovered: int = 0
    clips_downloaded: int = 0
    clips_processed: int = 0
    clips_ready: int = 0
    clips_skipped: int = 0
    clips_failed: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    ready_clip_titles: List[str] = field(default_factory=list)
    total_estimated_views: int = 0
    transitions: List[StateTransition] = field(default_factory=list)
    score_sum: float = field(default=0.0, repr=False)
    scored_count: int = field(default=0, repr=False)

    @property
    def average_viral_score(self) -> Optional[float]:
        if not self.scored_count:
            return None
        return round(self.score_sum / self.scored_count, 2)

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def record_outcome(
        self,
        outcome: ClipStatus,
        analysis: Optional[AnalysisResult] = None,
        title: Optional[str] = None,
    ) -> None:
        """Count one clip reaching a terminal per-clip status."""
        if self.clips_processed + 1 > self.clips_downloaded:
            raise ValueError(
                f"Run {self.run_id[:8]}: processed would exceed downloaded "
                f"({self.clips_processed + 1} > {self.clips_downloaded})"
            )
        self.clips_processed += 1
        if outcome == ClipStatus.READY_FOR_UPLOAD:
            self.clips_ready += 1
            if title:
                self.ready_clip_titles.append(title)
        elif outcome == ClipStatus.SKIPPED:
            self.clips_skipped += 1
        else:
            self.clips_failed += 1

        if analysis is not None:
            self.score_sum += analysis.viral_score
            self.scored_count += 1
            self.total_estimated_views += analysis.estimated_views

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "channel_name": self.channel_name,
            "channel_id": self.channel_id,
            "state": self.state.value,
            "status": self.status.value,
            "clips_discovered": self.clips_discovered,
            "clips_downloaded": self.clips_downloaded,
            "clips_processed": self.clips_processed,
            "clips_ready": self.clips_ready,
            "clips_skipped": self.clips_skipped,
            "clips_failed": self.clips_failed,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_message": self.error_message,
            "ready_clip_titles": list(self.ready_clip_titles),
            "average_viral_score": self.average_viral_score,
            "total_estimated_views": self.total_estimated_views,
            "transitions": [t.to_dict() for t in self.transitions],
        }


@dataclass
class AutomationStatus:
    """System-wide processing overview."""
    total_clips_downloaded: int
    total_clips_processed: int
    total_clips_pending: int
    total_clips_failed: int
    total_clips_skipped: int
    total_clips_ready: int
    active_runs: int
    last_processed_at: Optional[datetime] = None
    system_started_at: Optional[datetime] = None

    @property
    def current_workflow_status(self) -> str:
        if self.active_runs > 0 or self.total_clips_pending > 0:
            return RunStatus.IN_PROGRESS.value
        return RunStatus.COMPLETED.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_clips_downloaded": self.total_clips_downloaded,
            "total_clips_processed": self.total_clips_processed,
            "total_clips_pending": self.total_clips_pending,
            "total_clips_failed": self.total_clips_failed,
            "total_clips_skipped": self.total_clips_skipped,
            "total_clips_ready": self.total_clips_ready,
            "active_runs": self.active_runs,
            "current_workflow_status": self.current_workflow_status,
            "last_processed_at": self.last_processed_at.isoformat() if self.last_processed_at else None,
            "system_started_at": self.system_started_at.isoformat() if self.system_started_at else None,
        }
