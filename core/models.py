"""SQLAlchemy models for pipeline entities."""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

UPLOAD_STATUSES = ("pending", "uploaded", "failed", "quota_exceeded")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all models."""


class PipelineExecution(Base):
    """One pipeline run."""

    __tablename__ = "pipeline_executions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="running", index=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)


class ChannelGroup(Base):
    """Channels sharing one generated topic."""

    __tablename__ = "channel_groups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


class Channel(Base):
    """Configured output target."""

    __tablename__ = "channels"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    language: Mapped[str] = mapped_column(String(10))
    voice: Mapped[str] = mapped_column(String(100))
    voice_rate: Mapped[str] = mapped_column(String(10), default="+0%")
    voice_pitch: Mapped[str] = mapped_column(String(10), default="+0Hz")
    group_id: Mapped[str | None] = mapped_column(
        ForeignKey("channel_groups.id"), nullable=True, index=True
    )
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    cron_schedule: Mapped[str] = mapped_column(String(100), default="0 10 * * *")
    video_width: Mapped[int] = mapped_column(Integer, default=1080)
    video_height: Mapped[int] = mapped_column(Integer, default=1920)
    upload_as_short: Mapped[bool] = mapped_column(Boolean, default=True)
    youtube_client_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    youtube_client_secret: Mapped[str | None] = mapped_column(String(255), nullable=True)
    youtube_redirect_uri: Mapped[str | None] = mapped_column(String(500), nullable=True)
    youtube_access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    youtube_refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    youtube_token_expiry: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    youtube_token_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    youtube_scope: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


class Prompt(Base):
    """Per-channel LLM prompt template."""

    __tablename__ = "prompts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    channel_id: Mapped[str] = mapped_column(ForeignKey("channels.id"), index=True)
    type: Mapped[str] = mapped_column(String(20))
    name: Mapped[str] = mapped_column(String(255))
    prompt_text: Mapped[str] = mapped_column(Text)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class TopicRecord(Base):
    """Generated topic, keyed by its title slug."""

    __tablename__ = "topics"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text)
    image_keywords: Mapped[str | None] = mapped_column(String(255), nullable=True)
    video_keywords: Mapped[str | None] = mapped_column(String(255), nullable=True)
    execution_id: Mapped[str | None] = mapped_column(
        ForeignKey("pipeline_executions.id"), nullable=True, index=True
    )
    tokens_used: Mapped[int | None] = mapped_column(Integer, nullable=True)
    generated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class ScriptRecord(Base):
    """Narration script for one topic in one language."""

    __tablename__ = "scripts"
    __table_args__ = (UniqueConstraint("topic_id", "language", name="uq_scripts_topic_language"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    topic_id: Mapped[str] = mapped_column(ForeignKey("topics.id"), index=True)
    language: Mapped[str] = mapped_column(String(10))
    title: Mapped[str] = mapped_column(String(200))
    narrative: Mapped[str] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list)
    estimated_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    word_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tokens_used: Mapped[int | None] = mapped_column(Integer, nullable=True)
    generated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class VideoRecord(Base):
    """Rendered video and its upload lifecycle."""

    __tablename__ = "videos"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    script_id: Mapped[str] = mapped_column(ForeignKey("scripts.id"), index=True)
    channel_id: Mapped[str | None] = mapped_column(
        ForeignKey("channels.id"), nullable=True, index=True
    )
    language: Mapped[str] = mapped_column(String(10))
    file_path: Mapped[str] = mapped_column(String(500))
    duration_seconds: Mapped[int] = mapped_column(Integer)
    width: Mapped[int] = mapped_column(Integer)
    height: Mapped[int] = mapped_column(Integer)
    file_size_mb: Mapped[float | None] = mapped_column(Float, nullable=True)
    audio_voice: Mapped[str | None] = mapped_column(String(100), nullable=True)
    audio_file_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    subtitles_file_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    processing_time_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    upload_status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    upload_attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_upload_attempt_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    upload_error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    generated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class YouTubeUpload(Base):
    """Successful remote publication."""

    __tablename__ = "youtube_uploads"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    video_id: Mapped[str] = mapped_column(ForeignKey("videos.id"), index=True)
    youtube_video_id: Mapped[str] = mapped_column(String(50), unique=True)
    youtube_url: Mapped[str] = mapped_column(String(200))
    channel: Mapped[str] = mapped_column(String(10))
    title: Mapped[str] = mapped_column(String(200))
    privacy_status: Mapped[str] = mapped_column(String(20), default="public")
    upload_duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class ResourceUsage(Base):
    """Per-group resource telemetry."""

    __tablename__ = "resource_usage"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    execution_id: Mapped[str] = mapped_column(ForeignKey("pipeline_executions.id"), index=True)
    llm_tokens_total: Mapped[int] = mapped_column(Integer, default=0)
    storage_used_mb: Mapped[float] = mapped_column(Float, default=0.0)
    processing_time_seconds: Mapped[int] = mapped_column(Integer, default=0)
    recorded_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class ErrorLog(Base):
    """Pipeline error record."""

    __tablename__ = "error_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    execution_id: Mapped[str | None] = mapped_column(
        ForeignKey("pipeline_executions.id"), nullable=True, index=True
    )
    error_type: Mapped[str] = mapped_column(String(100), index=True)
    error_message: Mapped[str] = mapped_column(Text)
    stack_trace: Mapped[str | None] = mapped_column(Text, nullable=True)
    context: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


@dataclass(frozen=True, slots=True)
class RetryCandidate:
    """Video eligible for another upload attempt, with its script metadata."""

    video_id: str
    channel_id: str | None
    language: str
    file_path: str
    upload_status: str
    upload_attempts: int
    last_upload_attempt_at: datetime | None
    script_title: str
    script_description: str
    script_tags: tuple[str, ...]
