"""SQLAlchemy database client."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, create_engine, func, not_, or_, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from core.config import settings
from core.models import (
    Base,
    Channel,
    ErrorLog,
    PipelineExecution,
    Prompt,
    ResourceUsage,
    RetryCandidate,
    ScriptRecord,
    TopicRecord,
    VideoRecord,
    YouTubeUpload,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

AUTH_REQUIRED_PREFIX = "AUTH_REQUIRED:"

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _utcnow() -> datetime:
    return datetime.now(UTC)


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        url = settings.database_url
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        _engine = create_engine(url, echo=False, connect_args=connect_args)
    return _engine


def get_session() -> Session:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine())
    return _session_factory()


def init_db() -> None:
    Base.metadata.create_all(get_engine())


def dispose_engine() -> None:
    """Drop the cached engine so the next call reconnects with current settings."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


def check_health() -> bool:
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        logger.exception("Database health check failed")
        return False


@dataclass(frozen=True)
class Patch:
    """
    Partial update of a single row.

    Only the columns present in ``values`` are written; an explicit ``None``
    clears the column. Values may be SQL expressions (e.g. a counter increment).
    """

    values: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def of(cls, **values: Any) -> Patch:
        return cls(dict(values))

    def unknown_fields(self, model: type[Base]) -> set[str]:
        return set(self.values) - set(model.__table__.columns.keys())

    def __bool__(self) -> bool:
        return bool(self.values)


def update_row(model: type[Base], row_id: str, patch: Patch) -> bool:
    """Apply a patch to the row with the given id. Returns False if no row matched."""
    unknown = patch.unknown_fields(model)
    if unknown:
        raise ValueError(f"Unknown fields for {model.__tablename__}: {sorted(unknown)}")
    if not patch:
        return False

    with get_session() as session:
        result = session.execute(
            update(model).where(model.id == row_id).values(**patch.values)  # type: ignore[attr-defined]
        )
        session.commit()
        return result.rowcount > 0


# Executions


def start_execution() -> str:
    with get_session() as session:
        execution = PipelineExecution(id=str(uuid.uuid4()), status="running")
        session.add(execution)
        session.commit()
        logger.info("Pipeline execution started: %s", execution.id)
        return execution.id


def complete_execution(execution_id: str, duration_seconds: int) -> None:
    update_row(
        PipelineExecution,
        execution_id,
        Patch.of(status="completed", completed_at=_utcnow(), duration_seconds=duration_seconds),
    )
    logger.info("Pipeline execution completed: %s (%ds)", execution_id, duration_seconds)


def fail_execution(execution_id: str, error_message: str) -> None:
    update_row(
        PipelineExecution,
        execution_id,
        Patch.of(status="failed", completed_at=_utcnow(), error_message=error_message),
    )
    logger.error("Pipeline execution failed: %s", execution_id)


def get_execution(execution_id: str) -> PipelineExecution | None:
    with get_session() as session:
        return session.get(PipelineExecution, execution_id)


def list_executions(limit: int = 20) -> list[PipelineExecution]:
    with get_session() as session:
        stmt = select(PipelineExecution).order_by(PipelineExecution.started_at.desc()).limit(limit)
        return list(session.scalars(stmt))


# Topics and scripts


def save_topic(
    *,
    topic_id: str,
    title: str,
    description: str,
    image_keywords: str | None,
    video_keywords: str | None,
    execution_id: str | None,
    tokens_used: int | None = None,
) -> str:
    with get_session() as session:
        record = session.get(TopicRecord, topic_id)
        if record is None:
            record = TopicRecord(id=topic_id)
            session.add(record)
        record.title = title
        record.description = description
        record.image_keywords = image_keywords
        record.video_keywords = video_keywords
        record.execution_id = execution_id
        record.tokens_used = tokens_used
        session.commit()
    logger.info("Topic saved: %s", topic_id)
    return topic_id


def topic_title_exists(title: str) -> bool:
    with get_session() as session:
        stmt = select(TopicRecord.id).where(func.lower(TopicRecord.title) == title.lower())
        return session.scalar(stmt.limit(1)) is not None


def save_script(
    *,
    topic_id: str,
    language: str,
    title: str,
    narrative: str,
    description: str | None,
    tags: list[str],
    estimated_duration: int | None,
    tokens_used: int | None = None,
) -> str:
    with get_session() as session:
        record = session.scalar(
            select(ScriptRecord).where(
                ScriptRecord.topic_id == topic_id, ScriptRecord.language == language
            )
        )
        if record is None:
            record = ScriptRecord(id=str(uuid.uuid4()), topic_id=topic_id, language=language)
            session.add(record)
        record.title = title
        record.narrative = narrative
        record.description = description
        record.tags = list(tags)
        record.estimated_duration = estimated_duration
        record.word_count = len(narrative.split())
        record.tokens_used = tokens_used
        session.commit()
        script_id = record.id
    logger.info("Script saved: %s (%s)", script_id, language)
    return script_id


def get_script(script_id: str) -> ScriptRecord | None:
    with get_session() as session:
        return session.get(ScriptRecord, script_id)


# Videos and uploads


def save_video(
    *,
    script_id: str,
    channel_id: str | None,
    language: str,
    file_path: str,
    duration_seconds: int,
    width: int,
    height: int,
    file_size_mb: float | None = None,
    audio_voice: str | None = None,
    audio_file_path: str | None = None,
    subtitles_file_path: str | None = None,
    processing_time_seconds: int | None = None,
) -> str:
    with get_session() as session:
        video = VideoRecord(
            id=str(uuid.uuid4()),
            script_id=script_id,
            channel_id=channel_id,
            language=language,
            file_path=file_path,
            duration_seconds=duration_seconds,
            width=width,
            height=height,
            file_size_mb=file_size_mb,
            audio_voice=audio_voice,
            audio_file_path=audio_file_path,
            subtitles_file_path=subtitles_file_path,
            processing_time_seconds=processing_time_seconds,
            upload_status="pending",
            upload_attempts=0,
        )
        session.add(video)
        session.commit()
        logger.info("Video saved: %s", video.id)
        return video.id


def get_video(video_id: str) -> VideoRecord | None:
    with get_session() as session:
        return session.get(VideoRecord, video_id)


def list_videos(upload_status: str | None = None, limit: int = 50) -> list[VideoRecord]:
    with get_session() as session:
        stmt = select(VideoRecord)
        if upload_status:
            stmt = stmt.where(VideoRecord.upload_status == upload_status)
        stmt = stmt.order_by(VideoRecord.generated_at.desc()).limit(limit)
        return list(session.scalars(stmt))


def save_youtube_upload(
    *,
    video_id: str,
    youtube_video_id: str,
    youtube_url: str,
    channel: str,
    title: str,
    privacy_status: str = "public",
    upload_duration_seconds: int | None = None,
) -> str:
    with get_session() as session:
        record = session.scalar(
            select(YouTubeUpload).where(YouTubeUpload.youtube_video_id == youtube_video_id)
        )
        if record is None:
            record = YouTubeUpload(
                id=str(uuid.uuid4()),
                video_id=video_id,
                youtube_video_id=youtube_video_id,
                channel=channel,
                privacy_status=privacy_status,
                upload_duration_seconds=upload_duration_seconds,
            )
            session.add(record)
        record.youtube_url = youtube_url
        record.title = title
        session.commit()
        upload_id = record.id
    logger.info("YouTube upload saved: %s -> %s", video_id, youtube_video_id)
    return upload_id


def mark_upload_success(video_id: str) -> None:
    update_row(
        VideoRecord,
        video_id,
        Patch.of(
            upload_status="uploaded",
            last_upload_attempt_at=_utcnow(),
            upload_error_message=None,
        ),
    )


def mark_upload_failed(
    video_id: str,
    error_message: str,
    is_quota: bool = False,
    permanent: bool = False,
) -> None:
    """
    Record a failed upload attempt.

    A permanent failure pins the attempt counter at the ceiling so the video
    never re-enters the retry candidate set.
    """
    attempts = (
        settings.max_upload_attempts
        if permanent
        else func.coalesce(VideoRecord.upload_attempts, 0) + 1
    )
    update_row(
        VideoRecord,
        video_id,
        Patch.of(
            upload_status="quota_exceeded" if is_quota else "failed",
            upload_attempts=attempts,
            last_upload_attempt_at=_utcnow(),
            upload_error_message=error_message,
        ),
    )


def get_retry_candidates(
    *,
    now: datetime | None = None,
    limit: int | None = None,
    require_access_token: bool = True,
) -> list[RetryCandidate]:
    """
    Videos eligible for another upload attempt.

    ``failed`` rows are eligible immediately, ``quota_exceeded`` rows only after
    the cool-down. Rows at the attempt ceiling or waiting for re-authorization
    are never returned. Oldest attempt first, never-attempted rows before all.
    """
    now = now or _utcnow()
    cutoff = now - timedelta(hours=settings.quota_cooldown_hours)
    limit = limit or settings.retry_batch_size

    stmt = (
        select(VideoRecord, ScriptRecord.title, ScriptRecord.description, ScriptRecord.tags)
        .join(ScriptRecord, VideoRecord.script_id == ScriptRecord.id)
        .where(
            or_(
                VideoRecord.upload_status == "failed",
                and_(
                    VideoRecord.upload_status == "quota_exceeded",
                    or_(
                        VideoRecord.last_upload_attempt_at.is_(None),
                        VideoRecord.last_upload_attempt_at < cutoff,
                    ),
                ),
            ),
            func.coalesce(VideoRecord.upload_attempts, 0) < settings.max_upload_attempts,
            or_(
                VideoRecord.upload_error_message.is_(None),
                not_(VideoRecord.upload_error_message.startswith(AUTH_REQUIRED_PREFIX)),
            ),
        )
    )
    if require_access_token:
        stmt = stmt.join(Channel, VideoRecord.channel_id == Channel.id).where(
            Channel.youtube_access_token.is_not(None)
        )
    stmt = stmt.order_by(VideoRecord.last_upload_attempt_at.asc().nulls_first()).limit(limit)

    with get_session() as session:
        return [
            RetryCandidate(
                video_id=video.id,
                channel_id=video.channel_id,
                language=video.language,
                file_path=video.file_path,
                upload_status=video.upload_status,
                upload_attempts=video.upload_attempts or 0,
                last_upload_attempt_at=video.last_upload_attempt_at,
                script_title=title,
                script_description=description or "",
                script_tags=tuple(tags or ()),
            )
            for video, title, description, tags in session.execute(stmt)
        ]


def release_auth_blocked_videos(channel_id: str) -> int:
    """Return a channel's videos waiting for re-authorization to the retry pool."""
    with get_session() as session:
        result = session.execute(
            update(VideoRecord)
            .where(
                VideoRecord.channel_id == channel_id,
                VideoRecord.upload_status == "failed",
                VideoRecord.upload_error_message.startswith(AUTH_REQUIRED_PREFIX),
            )
            .values(upload_error_message=None)
        )
        session.commit()
        released = result.rowcount
    if released:
        logger.info("Released %d auth-blocked videos for channel %s", released, channel_id)
    return released


# Telemetry


def save_resource_usage(
    execution_id: str,
    *,
    llm_tokens_total: int = 0,
    storage_used_mb: float = 0.0,
    processing_time_seconds: int = 0,
) -> None:
    with get_session() as session:
        session.add(
            ResourceUsage(
                id=str(uuid.uuid4()),
                execution_id=execution_id,
                llm_tokens_total=llm_tokens_total,
                storage_used_mb=storage_used_mb,
                processing_time_seconds=processing_time_seconds,
            )
        )
        session.commit()


def log_error(
    error_type: str,
    error_message: str,
    *,
    execution_id: str | None = None,
    stack_trace: str | None = None,
    context: dict[str, Any] | None = None,
) -> ErrorLog:
    with get_session() as session:
        entry = ErrorLog(
            id=str(uuid.uuid4()),
            execution_id=execution_id,
            error_type=error_type,
            error_message=error_message,
            stack_trace=stack_trace,
            context=context,
        )
        session.add(entry)
        session.commit()
        session.refresh(entry)
        return entry


def get_execution_errors(execution_id: str) -> list[ErrorLog]:
    with get_session() as session:
        stmt = (
            select(ErrorLog)
            .where(ErrorLog.execution_id == execution_id)
            .order_by(ErrorLog.occurred_at)
        )
        return list(session.scalars(stmt))


# Channels


def get_active_channels() -> list[Channel]:
    with get_session() as session:
        stmt = (
            select(Channel)
            .where(Channel.enabled.is_(True))
            .order_by(Channel.group_id, Channel.language)
        )
        return list(session.scalars(stmt))


def get_channel(channel_id: str) -> Channel | None:
    with get_session() as session:
        return session.get(Channel, channel_id)


def get_channels_by_group(group_id: str) -> list[Channel]:
    with get_session() as session:
        stmt = select(Channel).where(Channel.group_id == group_id, Channel.enabled.is_(True))
        return list(session.scalars(stmt))


def get_channel_prompts(channel_id: str, prompt_type: str | None = None) -> list[Prompt]:
    with get_session() as session:
        stmt = select(Prompt).where(Prompt.channel_id == channel_id, Prompt.enabled.is_(True))
        if prompt_type:
            stmt = stmt.where(Prompt.type == prompt_type)
        stmt = stmt.order_by(Prompt.created_at.desc())
        return list(session.scalars(stmt))


def update_channel_tokens(
    channel_id: str,
    *,
    access_token: str,
    refresh_token: str | None = None,
    expiry: int | None = None,
    token_type: str | None = None,
    scope: str | None = None,
) -> None:
    """
    Store a channel's OAuth tokens.

    The refresh token is kept unless a new one is given. A new refresh token
    means the channel was re-authorized, so its auth-blocked videos are released.
    """
    values: dict[str, Any] = {
        "youtube_access_token": access_token,
        "youtube_token_expiry": expiry,
        "youtube_token_type": token_type or "Bearer",
        "youtube_scope": scope,
    }
    if refresh_token:
        values["youtube_refresh_token"] = refresh_token
    update_row(Channel, channel_id, Patch(values))
    logger.info("YouTube tokens updated for channel %s", channel_id)

    if refresh_token:
        release_auth_blocked_videos(channel_id)
