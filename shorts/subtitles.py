"""Subtitle timing: split narration into short SRT cues spread over the audio."""

import logging
from pathlib import Path

from core.config import settings
from shorts.models import Dimensions, Script, TTSResult

logger = logging.getLogger(__name__)


def format_srt_time(seconds: float) -> str:
    millis = int(round(seconds * 1000))
    hours, millis = divmod(millis, 3_600_000)
    minutes, millis = divmod(millis, 60_000)
    secs, millis = divmod(millis, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def build_srt(narrative: str, duration: float, words_per_segment: int) -> str:
    words = narrative.split()
    if not words:
        return ""

    cues = []
    for index, start in enumerate(range(0, len(words), words_per_segment), start=1):
        chunk = words[start : start + words_per_segment]
        start_s = start / len(words) * duration
        end_s = min((start + len(chunk)) / len(words) * duration, duration)
        cues.append(
            f"{index}\n{format_srt_time(start_s)} --> {format_srt_time(end_s)}\n{' '.join(chunk)}\n"
        )
    return "\n".join(cues)


async def generate_subtitles(
    script: Script,
    audio: TTSResult,
    output_dir: Path,
    dims: Dimensions,
) -> Path:
    # Portrait frames fit fewer words per line.
    words = settings.subtitle_words_per_segment
    if not dims.is_portrait:
        words += 2

    srt_path = output_dir / "subtitles.srt"
    srt_path.write_text(build_srt(script.narrative, audio.duration, words), encoding="utf-8")
    logger.info("Subtitles written: %s", srt_path)
    return srt_path
