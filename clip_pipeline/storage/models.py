"""SQLAlchemy ORM models."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class DownloadedClipRecord(Base):
    """A downloaded clip and its processing state."""

    __tablename__ = "downloaded_clips"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    clip_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    original_url: Mapped[str] = mapped_column(String(1024), nullable=False, index=True)
    file_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    creator_name: Mapped[str] = mapped_column(String(255), default="")
    broadcaster_name: Mapped[str] = mapped_column(String(255), default="", index=True)
    game_name: Mapped[str] = mapped_column(String(255), default="")
    view_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    duration: Mapped[float] = mapped_column(Float, default=0.0)
    download_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    processed: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    processing_status: Mapped[str] = mapped_column(String(50), default="DOWNLOADED", index=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    analysis: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    run_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)


class WorkflowRunRecord(Base):
    """One pipeline run for one channel."""

    __tablename__ = "workflow_runs"

    run_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    channel_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    channel_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    state: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    clips_discovered: Mapped[int] = mapped_column(Integer, default=0)
    clips_downloaded: Mapped[int] = mapped_column(Integer, default=0)
    clips_processed: Mapped[int] = mapped_column(Integer, default=0)
    clips_ready: Mapped[int] = mapped_column(Integer, default=0)
    clips_skipped: Mapped[int] = mapped_column(Integer, default=0)
    clips_failed: Mapped[int] = mapped_column(Integer, default=0)
    score_sum: Mapped[float] = mapped_column(Float, default=0.0)
    scored_count: Mapped[int] = mapped_column(Integer, default=0)
    total_estimated_views: Mapped[int] = mapped_column(Integer, default=0)
    ready_clip_titles: Mapped[List[str]] = mapped_column(JSON, default=list)
    transitions: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
