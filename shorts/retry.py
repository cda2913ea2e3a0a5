"""Retry sweep for videos whose upload failed earlier."""

from __future__ import annotations

import asyncio
import logging
import traceback
from dataclasses import dataclass
from pathlib import Path

from core import db
from core.models import Channel, RetryCandidate
from shorts.credentials import CredentialSource, create_credential_source
from shorts.errors import UploadFailureKind
from shorts.models import Script, Topic
from shorts.publish import publish_video, record_upload_failure, safe_log_error
from shorts.stages import StageAdapters, default_stages

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RetryReport:
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def attempted(self) -> int:
        return self.succeeded + self.failed


def script_from_candidate(candidate: RetryCandidate) -> Script:
    """Upload metadata rebuilt from the persisted script. Nothing is regenerated."""
    return Script(
        topic=Topic(id="", title="", description="", image_keywords="", video_keywords=""),
        language=candidate.language,
        title=candidate.script_title,
        narrative="",
        description=candidate.script_description,
        tags=candidate.script_tags,
    )


def _unusable_reason(channel: Channel | None) -> str | None:
    if channel is None:
        return "Channel not found"
    if not channel.enabled:
        return "Channel disabled"
    return None


async def retry_pending_uploads(
    stages: StageAdapters | None = None,
    credentials: CredentialSource | None = None,
) -> RetryReport:
    """
    Attempt every eligible video once, oldest attempt first.

    A quota failure ends the batch: the remaining candidates are skipped and
    keep their status.
    """
    stages = stages or default_stages()
    credentials = credentials or create_credential_source()

    try:
        candidates = await asyncio.to_thread(
            db.get_retry_candidates, require_access_token=credentials.stored_in_database
        )
    except Exception as e:
        logger.exception("Retry sweep failed while selecting candidates")
        await asyncio.to_thread(
            safe_log_error, "retry_job_fatal", str(e), stack_trace=traceback.format_exc()
        )
        raise

    report = RetryReport()
    if not candidates:
        logger.info("No uploads to retry")
        return report

    logger.info("Retrying %d uploads", len(candidates))
    quota_hit = False
    for candidate in candidates:
        if quota_hit:
            logger.warning("Skipping %s, quota exhausted in this batch", candidate.script_title)
            report.skipped += 1
            continue

        attempt = candidate.upload_attempts + 1
        logger.info(
            "Retrying %s [%s], attempt %d", candidate.script_title, candidate.language, attempt
        )

        channel = None
        if candidate.channel_id:
            channel = await asyncio.to_thread(db.get_channel, candidate.channel_id)
        reason = _unusable_reason(channel)
        channel_credentials = None
        if reason is None:
            channel_credentials = await asyncio.to_thread(credentials.load, channel)
            if channel_credentials is None:
                reason = "Channel has no YouTube credentials"
        if reason is not None:
            logger.error("Giving up on video %s: %s", candidate.video_id, reason)
            await asyncio.to_thread(
                db.mark_upload_failed, candidate.video_id, reason, permanent=True
            )
            report.failed += 1
            continue

        try:
            await publish_video(
                stages,
                credentials,
                channel,
                candidate.video_id,
                Path(candidate.file_path),
                script_from_candidate(candidate),
                channel_credentials,
            )
        except Exception as e:
            kind = await asyncio.to_thread(
                record_upload_failure,
                candidate.video_id,
                e,
                {"channel_id": candidate.channel_id, "channel": channel.name, "attempt": attempt},
                error_type="retry_upload_failed",
            )
            report.failed += 1
            if kind is UploadFailureKind.QUOTA:
                logger.warning("Upload quota reached, stopping retries for this batch")
                quota_hit = True
        else:
            report.succeeded += 1

    logger.info(
        "Retry sweep done: %d succeeded, %d failed, %d skipped",
        report.succeeded,
        report.failed,
        report.skipped,
    )
    return report
