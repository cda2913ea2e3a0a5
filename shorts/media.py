"""Subprocess helpers for ffmpeg/ffprobe."""

import asyncio
import logging
import shutil
from pathlib import Path

from shorts.errors import StageError

logger = logging.getLogger(__name__)

REQUIRED_BINARIES = ("ffmpeg", "ffprobe")


async def run_command(*args: str, error_code: str = "COMMAND_FAILED") -> str:
    """Run a command, returning stdout. Raises StageError on non-zero exit."""
    logger.debug("Running %s", " ".join(args))
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise StageError(f"{args[0]} not found", "MISSING_DEPENDENCIES") from e

    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        tail = stderr.decode(errors="replace").strip()[-500:]
        raise StageError(f"{args[0]} exited with {process.returncode}: {tail}", error_code)
    return stdout.decode(errors="replace")


async def probe_duration(path: Path) -> float:
    output = await run_command(
        "ffprobe",
        "-v",
        "error",
        "-show_entries",
        "format=duration",
        "-of",
        "default=noprint_wrappers=1:nokey=1",
        str(path),
        error_code="PROBE_FAILED",
    )
    try:
        return float(output.strip())
    except ValueError as e:
        raise StageError(f"Unreadable duration for {path}: {output!r}", "PROBE_FAILED") from e


async def check_prerequisites() -> bool:
    missing = [name for name in REQUIRED_BINARIES if shutil.which(name) is None]
    if missing:
        logger.error("Missing binaries: %s", ", ".join(missing))
        return False
    return True
