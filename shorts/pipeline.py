"""Pipeline orchestrator: one execution over a set of channels."""

from __future__ import annotations

import asyncio
import logging
import time
import traceback
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from core import db
from core.config import settings
from core.models import Channel
from core.utils import directory_size_mb, ensure_dir, file_size_mb, slugify, timestamp_slug
from shorts.credentials import CredentialSource, create_credential_source
from shorts.errors import StageError, StorageUnavailable
from shorts.grouping import partition
from shorts.models import Dimensions, GroupUsage, Script, Topic, VoiceConfig
from shorts.publish import publish_video, record_upload_failure, safe_log_error
from shorts.stages import StageAdapters, default_stages

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChannelPrompts:
    topic: str
    script: str


def working_directory(channel: Channel, script: Script) -> Path:
    """Fresh per-channel directory: ``<output>/<language>/<timestamp>-<slug>-<channel>``."""
    name = f"{timestamp_slug()}-{slugify(script.title)}-{channel.id[:8]}"
    return Path(settings.output_dir) / channel.language / name


class PipelineOrchestrator:
    """
    Runs the content pipeline for a set of channels.

    Channels sharing a group get one topic, one script per language and one
    video per channel. A failing group is logged and skipped; the remaining
    groups still run.
    """

    def __init__(
        self,
        stages: StageAdapters | None = None,
        credentials: CredentialSource | None = None,
    ) -> None:
        self.stages = stages or default_stages()
        self.credentials = credentials or create_credential_source()
        self._prompts: dict[str, ChannelPrompts] = {}

    async def execute(self, channels: Sequence[Channel]) -> str:
        """Run one execution and return its id."""
        if not await asyncio.to_thread(db.check_health):
            raise StorageUnavailable()

        execution_id = await asyncio.to_thread(db.start_execution)
        started = time.monotonic()
        try:
            valid = await asyncio.to_thread(self._validate, channels)
            if not valid:
                logger.warning("No valid channels to process")
                await asyncio.to_thread(db.complete_execution, execution_id, 0)
                return execution_id

            logger.info("Processing %d channels", len(valid))
            for unit_id, members in partition(valid).units():
                try:
                    await self.process_group(members, execution_id)
                except Exception as e:
                    logger.exception("Group %s failed", unit_id)
                    await asyncio.to_thread(
                        safe_log_error,
                        "group_failed",
                        str(e),
                        execution_id=execution_id,
                        stack_trace=traceback.format_exc(),
                        context={
                            "group_id": unit_id,
                            "channel_ids": [c.id for c in members],
                            "error_code": getattr(e, "error_code", None),
                        },
                    )

            duration = round(time.monotonic() - started)
            await asyncio.to_thread(db.complete_execution, execution_id, duration)
        except Exception as e:
            await asyncio.to_thread(db.fail_execution, execution_id, str(e))
            raise
        return execution_id

    def _validate(self, channels: Iterable[Channel]) -> list[Channel]:
        valid = []
        for channel in channels:
            topic_prompts = db.get_channel_prompts(channel.id, "topic")
            script_prompts = db.get_channel_prompts(channel.id, "script")
            if not topic_prompts or not script_prompts:
                logger.warning(
                    "Skipping channel %s (%s): missing %s prompt",
                    channel.id,
                    channel.name,
                    "topic" if not topic_prompts else "script",
                )
                continue
            self._prompts[channel.id] = ChannelPrompts(
                topic=topic_prompts[0].prompt_text, script=script_prompts[0].prompt_text
            )
            valid.append(channel)
        return valid

    def _prompts_for(self, channel: Channel) -> ChannelPrompts:
        try:
            return self._prompts[channel.id]
        except KeyError:
            raise StageError(f"Channel {channel.id} has no prompts", "MISSING_PROMPTS") from None

    async def process_group(self, channels: Sequence[Channel], execution_id: str) -> None:
        """Produce and publish content for one group (or one independent channel)."""
        started = time.monotonic()
        usage = GroupUsage()

        if not await self.stages.check_prerequisites():
            raise StageError("ffmpeg and ffprobe are required", "MISSING_DEPENDENCIES")

        unloaded = [c for c in channels if c.id not in self._prompts]
        if unloaded:
            await asyncio.to_thread(self._validate, unloaded)

        lead = channels[0]
        topic = await self.stages.generate_topic(
            lead.language, lead.id, self._prompts_for(lead).topic
        )
        usage.tokens += topic.tokens_used
        await asyncio.to_thread(self._save_topic, topic, execution_id)

        scripts: dict[str, tuple[str, Script]] = {}
        for channel in channels:
            if channel.language in scripts:
                continue
            script = await self.stages.generate_script(
                topic, channel.language, self._prompts_for(channel).script
            )
            usage.tokens += script.tokens_used
            script_id = await asyncio.to_thread(
                db.save_script,
                topic_id=topic.id,
                language=script.language,
                title=script.title,
                narrative=script.narrative,
                description=script.description,
                tags=list(script.tags),
                estimated_duration=script.estimated_duration,
                tokens_used=script.tokens_used,
            )
            scripts[channel.language] = (script_id, script)

        for channel in channels:
            script_id, script = scripts[channel.language]
            await self._produce(channel, script_id, script, execution_id, usage)

        await asyncio.to_thread(self._save_usage, execution_id, usage, started)
        logger.info(
            "Group done: %d videos, %d tokens, %.2f MB",
            usage.videos,
            usage.tokens,
            usage.storage_mb,
        )

    def _save_topic(self, topic: Topic, execution_id: str) -> None:
        if db.topic_title_exists(topic.title):
            logger.warning("Topic title already used before: %s", topic.title)
        db.save_topic(
            topic_id=topic.id,
            title=topic.title,
            description=topic.description,
            image_keywords=topic.image_keywords,
            video_keywords=topic.video_keywords,
            execution_id=execution_id,
            tokens_used=topic.tokens_used,
        )

    async def _produce(
        self,
        channel: Channel,
        script_id: str,
        script: Script,
        execution_id: str,
        usage: GroupUsage,
    ) -> None:
        started = time.monotonic()
        output_dir = ensure_dir(working_directory(channel, script))
        dims = Dimensions(channel.video_width, channel.video_height)
        voice = VoiceConfig(channel.voice, channel.voice_rate or "+0%", channel.voice_pitch or "+0Hz")

        audio = await self.stages.generate_tts(script, output_dir, voice)
        srt_path = await self.stages.generate_subtitles(script, audio, output_dir, dims)
        footage = await self.stages.fetch_media(script.topic, output_dir, dims)
        rendered = await self.stages.generate_video(
            script, audio.audio_path, srt_path, output_dir, dims, footage
        )
        usage.storage_mb += directory_size_mb(output_dir)
        usage.videos += 1

        video_id = await asyncio.to_thread(
            db.save_video,
            script_id=script_id,
            channel_id=channel.id,
            language=channel.language,
            file_path=str(rendered.video_path),
            duration_seconds=round(rendered.duration),
            width=rendered.width,
            height=rendered.height,
            file_size_mb=file_size_mb(rendered.video_path),
            audio_voice=voice.voice,
            audio_file_path=str(audio.audio_path),
            subtitles_file_path=str(srt_path),
            processing_time_seconds=round(time.monotonic() - started),
        )

        if settings.content_only:
            logger.info("Content-only mode, video %s left pending", video_id)
            return

        credentials = await asyncio.to_thread(self.credentials.load, channel)
        if credentials is None:
            logger.info("No credentials for channel %s, video %s left pending", channel.id, video_id)
            return

        try:
            await publish_video(
                self.stages,
                self.credentials,
                channel,
                video_id,
                rendered.video_path,
                script,
                credentials,
            )
        except Exception as e:
            await asyncio.to_thread(
                record_upload_failure,
                video_id,
                e,
                {"channel_id": channel.id, "language": channel.language},
                execution_id=execution_id,
            )

    def _save_usage(self, execution_id: str, usage: GroupUsage, started: float) -> None:
        try:
            db.save_resource_usage(
                execution_id,
                llm_tokens_total=usage.tokens,
                storage_used_mb=round(usage.storage_mb, 2),
                processing_time_seconds=round(time.monotonic() - started),
            )
        except Exception:
            logger.exception("Failed to save resource usage for execution %s", execution_id)


async def run_once(
    channel_ids: Iterable[str] | None = None,
    *,
    stages: StageAdapters | None = None,
    credentials: CredentialSource | None = None,
) -> str:
    """One pass over every enabled channel, or only the given ids."""
    try:
        channels = await asyncio.to_thread(db.get_active_channels)
    except SQLAlchemyError as e:
        raise StorageUnavailable(f"Database unavailable: {e}") from e

    if channel_ids is not None:
        wanted = set(channel_ids)
        channels = [c for c in channels if c.id in wanted]
    return await PipelineOrchestrator(stages, credentials).execute(channels)
