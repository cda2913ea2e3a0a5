"""Bundle of stage adapters the orchestrator and retry sweep call into."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import partial
from pathlib import Path

from shorts import media, script, subtitles, topic, tts, upload, video
from shorts.llm import LLMClient
from shorts.models import (
    ChannelCredentials,
    Dimensions,
    Script,
    StockMedia,
    Topic,
    TTSResult,
    UploadResult,
    VideoResult,
    VoiceConfig,
)
from shorts.stock import StockMediaClient


@dataclass(frozen=True)
class StageAdapters:
    generate_topic: Callable[[str, str, str], Awaitable[Topic]]
    generate_script: Callable[[Topic, str, str], Awaitable[Script]]
    generate_tts: Callable[[Script, Path, VoiceConfig], Awaitable[TTSResult]]
    generate_subtitles: Callable[[Script, TTSResult, Path, Dimensions], Awaitable[Path]]
    fetch_media: Callable[[Topic, Path, Dimensions], Awaitable[StockMedia]]
    generate_video: Callable[
        [Script, Path, Path, Path, Dimensions, StockMedia], Awaitable[VideoResult]
    ]
    upload_to_platform: Callable[[Path, Script, ChannelCredentials, bool], Awaitable[UploadResult]]
    check_prerequisites: Callable[[], Awaitable[bool]]


def default_stages(
    llm: LLMClient | None = None, stock: StockMediaClient | None = None
) -> StageAdapters:
    """Production adapters sharing one LLM client."""
    llm = llm or LLMClient()
    stock = stock or StockMediaClient()
    return StageAdapters(
        generate_topic=partial(topic.generate_topic, llm),
        generate_script=partial(script.generate_script, llm),
        generate_tts=tts.generate_tts,
        generate_subtitles=subtitles.generate_subtitles,
        fetch_media=stock.fetch,
        generate_video=video.generate_video,
        upload_to_platform=upload.upload_to_platform,
        check_prerequisites=media.check_prerequisites,
    )
