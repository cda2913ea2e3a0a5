"""Upload a rendered video and record the outcome.

Shared by the pipeline (first attempt) and the retry sweep, so both apply the
same status transitions for success, quota, auth and generic failures.
"""

from __future__ import annotations

import asyncio
import logging
import time
import traceback
from pathlib import Path
from typing import Any

from core import db
from core.config import settings
from core.models import Channel
from core.utils import cleanup_video_directory
from shorts.credentials import CredentialSource
from shorts.errors import UploadFailureKind, auth_required_message, classify_upload_error
from shorts.models import ChannelCredentials, Script, UploadResult
from shorts.stages import StageAdapters

logger = logging.getLogger(__name__)


def safe_log_error(error_type: str, error_message: str, **kwargs: Any) -> None:
    """Persist an ErrorLog row without letting a storage failure propagate."""
    try:
        db.log_error(error_type, error_message, **kwargs)
    except Exception:
        logger.exception("Failed to persist %s error log", error_type)


async def publish_video(
    stages: StageAdapters,
    credential_source: CredentialSource,
    channel: Channel,
    video_id: str,
    video_path: Path,
    script: Script,
    credentials: ChannelCredentials,
) -> UploadResult:
    """
    Upload one video and persist the success.

    Raises whatever the upload stage raises; callers classify it with
    :func:`record_upload_failure`.
    """
    started = time.monotonic()
    result = await stages.upload_to_platform(
        video_path, script, credentials, channel.upload_as_short
    )

    if result.refreshed_tokens is not None:
        try:
            await asyncio.to_thread(credential_source.store, channel, result.refreshed_tokens)
        except Exception:
            logger.exception("Failed to store refreshed tokens for channel %s", channel.id)

    await asyncio.to_thread(
        db.save_youtube_upload,
        video_id=video_id,
        youtube_video_id=result.remote_id,
        youtube_url=result.url,
        channel=channel.language,
        title=result.title,
        privacy_status=settings.upload_privacy_status,
        upload_duration_seconds=round(time.monotonic() - started),
    )
    await asyncio.to_thread(db.mark_upload_success, video_id)
    logger.info("Video %s published on channel %s: %s", video_id, channel.id, result.url)

    cleanup_video_directory(video_path)
    return result


def record_upload_failure(
    video_id: str,
    error: BaseException,
    context: dict[str, Any],
    *,
    execution_id: str | None = None,
    error_type: str = "upload_failed",
) -> UploadFailureKind:
    """
    Classify a failed upload and apply the matching status transition.

    Quota failures wait out the cool-down. Auth failures are parked behind the
    AUTH_REQUIRED sentinel until the channel is re-authorized. Anything else
    is retried on the next sweep.
    """
    kind = classify_upload_error(error)

    if kind is UploadFailureKind.QUOTA:
        logger.warning("Upload quota exceeded for video %s: %s", video_id, error)
        db.mark_upload_failed(video_id, str(error), is_quota=True)
    elif kind is UploadFailureKind.AUTH:
        logger.error("Upload auth failed for video %s, re-authorization required: %s", video_id, error)
        db.mark_upload_failed(video_id, auth_required_message(error))
        safe_log_error(
            "auth_token_invalid",
            str(error),
            execution_id=execution_id,
            context={**context, "video_id": video_id, "requires_reauth": True},
        )
    else:
        logger.error("Upload failed for video %s: %s", video_id, error)
        db.mark_upload_failed(video_id, str(error))
        safe_log_error(
            error_type,
            str(error),
            execution_id=execution_id,
            stack_trace="".join(traceback.format_exception(error)),
            context={**context, "video_id": video_id},
        )
    return kind
