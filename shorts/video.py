"""Video composition stage: narration over stock clips, a Ken Burns slideshow or a plain frame."""

import logging
import math
from pathlib import Path

from core.config import settings
from shorts.media import probe_duration, run_command
from shorts.models import Dimensions, Script, StockMedia, VideoResult

logger = logging.getLogger(__name__)

KEN_BURNS = "zoompan=z='min(zoom+0.0008,1.15)':x='iw/2-(iw/zoom/2)':y='ih/2-(ih/zoom/2)':d=1"


def _escape_filter_path(path: Path) -> str:
    return str(path).replace("\\", "/").replace(":", r"\:").replace("'", r"\'")


def segment_seconds(duration: float, count: int) -> int:
    """Seconds each clip or image stays on screen."""
    return max(1, math.ceil(duration / max(count, 1)))


def _fill(dims: Dimensions) -> str:
    return (
        f"scale={dims.width}:{dims.height}:force_original_aspect_ratio=increase,"
        f"crop={dims.width}:{dims.height},setsar=1"
    )


def build_ffmpeg_args(
    media: StockMedia,
    audio_path: Path,
    srt_path: Path,
    video_path: Path,
    dims: Dimensions,
    duration: float,
) -> list[str]:
    fps = settings.video_fps
    subtitles = f"subtitles='{_escape_filter_path(srt_path)}'"
    inputs: list[str] = []
    chains: list[str] = []

    if media.clips:
        seg = segment_seconds(duration, len(media.clips))
        for i, clip in enumerate(media.clips):
            inputs += ["-stream_loop", "-1", "-t", str(seg), "-i", str(clip)]
            chains.append(f"[{i}:v]{_fill(dims)},fps={fps}[v{i}]")
    elif media.images:
        seg = segment_seconds(duration, len(media.images))
        for i, image in enumerate(media.images):
            inputs += ["-loop", "1", "-t", str(seg), "-i", str(image)]
            chains.append(
                f"[{i}:v]{_fill(dims)},fps={fps},{KEN_BURNS}:s={dims.width}x{dims.height}:fps={fps}[v{i}]"
            )
    else:
        inputs += ["-f", "lavfi", "-i", f"color=c=black:s={dims.width}x{dims.height}:r={fps}"]
        chains.append("[0:v]null[v0]")

    count = len(chains)
    labels = "".join(f"[v{i}]" for i in range(count))
    chains.append(f"{labels}concat=n={count}:v=1:a=0[bg]")
    chains.append(f"[bg]{subtitles}[outv]")

    return [
        "ffmpeg",
        "-y",
        *inputs,
        "-i",
        str(audio_path),
        "-filter_complex",
        ";".join(chains),
        "-map",
        "[outv]",
        "-map",
        f"{count}:a",
        "-c:v",
        "libx264",
        "-pix_fmt",
        "yuv420p",
        "-c:a",
        "aac",
        "-shortest",
        "-t",
        f"{duration:.3f}",
        str(video_path),
    ]


async def generate_video(
    script: Script,
    audio_path: Path,
    srt_path: Path,
    output_dir: Path,
    dims: Dimensions,
    media: StockMedia,
) -> VideoResult:
    video_path = output_dir / "video.mp4"
    audio_duration = await probe_duration(audio_path)
    if media.clips:
        mode = f"{len(media.clips)} clips"
    elif media.images:
        mode = f"{len(media.images)} images"
    else:
        mode = "plain frame"
    logger.info("Composing %dx%d video for %s (%s)", dims.width, dims.height, script.title, mode)

    await run_command(
        *build_ffmpeg_args(media, audio_path, srt_path, video_path, dims, audio_duration),
        error_code="VIDEO_FAILED",
    )

    duration = await probe_duration(video_path)
    logger.info("Video generated: %s (%.1fs)", video_path, duration)
    return VideoResult(video_path=video_path, width=dims.width, height=dims.height, duration=duration)
