"""Shared test fixtures."""

import uuid
from collections import defaultdict
from datetime import datetime
from pathlib import Path

import pytest
from sqlalchemy import func, select

from core import db
from core.config import settings
from core.models import Channel, ChannelGroup, Prompt, VideoRecord
from shorts.errors import StageError
from shorts.models import Script, StockMedia, Topic, TTSResult, UploadResult, VideoResult
from shorts.stages import StageAdapters
from shorts.topic import topic_id_for


@pytest.fixture
def override_settings():
    """Set settings for one test and restore them afterwards."""
    original = {}

    def _set(**values):
        for key, value in values.items():
            original.setdefault(key, settings.get(key))
            settings.set(key, value)

    yield _set
    for key, value in original.items():
        settings.set(key, value)


@pytest.fixture
def database(tmp_path, override_settings):
    override_settings(
        database_url=f"sqlite:///{tmp_path / 'shorts.db'}",
        output_dir=str(tmp_path / "output"),
        content_only=False,
    )
    db.dispose_engine()
    db.init_db()
    yield
    db.dispose_engine()


def _count_rows(model, *criteria) -> int:
    with db.get_session() as session:
        stmt = select(func.count()).select_from(model)
        if criteria:
            stmt = stmt.where(*criteria)
        return session.scalar(stmt)


def _all_rows(model, *criteria) -> list:
    with db.get_session() as session:
        stmt = select(model)
        if criteria:
            stmt = stmt.where(*criteria)
        return list(session.scalars(stmt))


def _make_group(name: str = "Curiosities") -> str:
    group_id = str(uuid.uuid4())
    with db.get_session() as session:
        session.add(ChannelGroup(id=group_id, name=name))
        session.commit()
    return group_id


def _make_channel(
    language: str = "es",
    *,
    group_id: str | None = None,
    with_prompts: bool = True,
    with_token: bool = True,
    **fields,
) -> Channel:
    channel_id = str(uuid.uuid4())
    values = {
        "name": f"Channel {language} {channel_id[:4]}",
        "language": language,
        "voice": "es-ES-AlvaroNeural" if language == "es" else "en-US-GuyNeural",
        "group_id": group_id,
        "enabled": True,
        "cron_schedule": "0 10 * * *",
        "youtube_client_id": "client-id",
        "youtube_client_secret": "client-secret",
        "youtube_redirect_uri": "http://localhost/callback",
    }
    if with_token:
        values["youtube_access_token"] = f"token-{channel_id[:8]}"
        values["youtube_refresh_token"] = "refresh"
    values.update(fields)

    with db.get_session() as session:
        session.add(Channel(id=channel_id, **values))
        if with_prompts:
            _add_prompt(session, channel_id, "topic", "Pick a surprising fact.")
            _add_prompt(session, channel_id, "script", "Write about ${topic.title}.")
        session.commit()
    return db.get_channel(channel_id)


def _add_prompt(session, channel_id: str, prompt_type: str, text: str) -> None:
    session.add(
        Prompt(
            id=str(uuid.uuid4()),
            channel_id=channel_id,
            type=prompt_type,
            name=f"{prompt_type} prompt",
            prompt_text=text,
        )
    )


def _make_video(
    channel: Channel,
    directory: Path,
    *,
    upload_status: str = "failed",
    upload_attempts: int = 1,
    last_upload_attempt_at: datetime | None = None,
    upload_error_message: str | None = "Network error",
    title: str | None = None,
) -> str:
    """Persist topic, script and video rows plus a file on disk."""
    title = title or f"Octopus hearts {uuid.uuid4().hex[:6]}"
    topic_id = db.save_topic(
        topic_id=topic_id_for(title),
        title=title,
        description="Why octopuses have three hearts",
        image_keywords="octopus",
        video_keywords="octopus",
        execution_id=None,
    )
    script_id = db.save_script(
        topic_id=topic_id,
        language=channel.language,
        title=title,
        narrative="Octopuses have three hearts.",
        description="A short fact.",
        tags=["octopus", "ocean"],
        estimated_duration=2,
    )

    video_dir = directory / uuid.uuid4().hex
    video_dir.mkdir(parents=True)
    video_path = video_dir / "video.mp4"
    video_path.write_bytes(b"video")

    video_id = db.save_video(
        script_id=script_id,
        channel_id=channel.id,
        language=channel.language,
        file_path=str(video_path),
        duration_seconds=30,
        width=1080,
        height=1920,
    )
    db.update_row(
        VideoRecord,
        video_id,
        db.Patch.of(
            upload_status=upload_status,
            upload_attempts=upload_attempts,
            last_upload_attempt_at=last_upload_attempt_at,
            upload_error_message=upload_error_message,
        ),
    )
    return video_id


class FakeStages:
    """In-memory stage adapters that write small files instead of rendering."""

    def __init__(self) -> None:
        self.calls: dict[str, list] = defaultdict(list)
        self.failing_topic_channels: set[str] = set()
        self.failing_video_channels: set[str] = set()
        self.upload_error: Exception | None = None
        self.upload_errors: dict[str, Exception] = {}
        self.prerequisites_ok = True

    def adapters(self) -> StageAdapters:
        return StageAdapters(
            generate_topic=self.generate_topic,
            generate_script=self.generate_script,
            generate_tts=self.generate_tts,
            generate_subtitles=self.generate_subtitles,
            fetch_media=self.fetch_media,
            generate_video=self.generate_video,
            upload_to_platform=self.upload_to_platform,
            check_prerequisites=self.check_prerequisites,
        )

    async def check_prerequisites(self) -> bool:
        return self.prerequisites_ok

    async def generate_topic(self, language, channel_id, prompt) -> Topic:
        self.calls["topic"].append(channel_id)
        if channel_id in self.failing_topic_channels:
            raise StageError("LLM unavailable", "LLM_FAILED")
        title = f"Topic number {len(self.calls['topic'])}"
        return Topic(
            id=topic_id_for(title),
            title=title,
            description="A topic",
            image_keywords="nature",
            video_keywords="nature",
            tokens_used=10,
        )

    async def generate_script(self, topic, language, prompt) -> Script:
        self.calls["script"].append(language)
        return Script(
            topic=topic,
            language=language,
            title=f"{topic.title} ({language})",
            narrative="one two three four five six seven",
            description="desc",
            tags=("a", "b"),
            estimated_duration=3,
            tokens_used=20,
        )

    async def generate_tts(self, script, output_dir, voice) -> TTSResult:
        self.calls["tts"].append(voice.voice)
        audio_path = output_dir / "audio.mp3"
        audio_path.write_bytes(b"audio")
        return TTSResult(audio_path=audio_path, duration=3.0)

    async def generate_subtitles(self, script, audio, output_dir, dims) -> Path:
        srt_path = output_dir / "subtitles.srt"
        srt_path.write_text("1\n00:00:00,000 --> 00:00:03,000\nhello\n")
        return srt_path

    async def fetch_media(self, topic, output_dir, dims) -> StockMedia:
        self.calls["media"].append(topic.id)
        return StockMedia()

    async def generate_video(self, script, audio_path, srt_path, output_dir, dims, media) -> VideoResult:
        self.calls["video"].append(dims)
        # working directories end with the first 8 chars of the channel id
        if any(output_dir.name.endswith(c[:8]) for c in self.failing_video_channels):
            raise StageError("ffmpeg exited with 1: invalid filter", "VIDEO_FAILED")
        video_path = output_dir / "video.mp4"
        video_path.write_bytes(b"video")
        return VideoResult(video_path=video_path, width=dims.width, height=dims.height, duration=3.0)

    async def upload_to_platform(self, video_path, script, credentials, as_short) -> UploadResult:
        self.calls["upload"].append((credentials.channel_id, script.title))
        error = self.upload_errors.get(credentials.channel_id) or self.upload_error
        if error is not None:
            raise error
        remote_id = f"yt{len(self.calls['upload'])}"
        return UploadResult(
            remote_id=remote_id,
            url=f"https://www.youtube.com/shorts/{remote_id}",
            title=script.title,
        )


@pytest.fixture
def fake_stages() -> FakeStages:
    return FakeStages()


@pytest.fixture
def count_rows(database):
    return _count_rows


@pytest.fixture
def all_rows(database):
    return _all_rows


@pytest.fixture
def make_group(database):
    return _make_group


@pytest.fixture
def make_channel(database):
    return _make_channel


@pytest.fixture
def make_video(database):
    return _make_video
