"""Shared utilities."""

import json
import logging
import re
import shutil
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from flask import Response

logger = logging.getLogger(__name__)


def json_response(data: Any, status: int = 200) -> Response:
    """Create a Flask JSON response."""
    return Response(json.dumps(data), status=status, mimetype="application/json")


def to_dict(obj: Any) -> dict[str, Any]:
    """Serialize SQLAlchemy model to dictionary."""
    result: dict[str, Any] = {}
    for c in obj.__table__.columns:
        value = getattr(obj, c.name)
        if isinstance(value, datetime):
            value = value.isoformat()
        result[c.name] = value
    return result


def slugify(text: str, max_length: int = 50) -> str:
    """Lowercase, hyphen-separated ASCII slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:max_length].rstrip("-")


def timestamp_slug(now: datetime | None = None) -> str:
    return (now or datetime.now(UTC)).strftime("%Y-%m-%dT%H-%M-%S")


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def file_size_mb(path: str | Path) -> float:
    return round(Path(path).stat().st_size / (1024 * 1024), 2)


def directory_size_mb(path: str | Path) -> float:
    total = sum(f.stat().st_size for f in Path(path).rglob("*") if f.is_file())
    return round(total / (1024 * 1024), 2)


def cleanup_video_directory(video_path: str | Path) -> bool:
    """
    Remove the working directory holding a rendered video.

    Best effort: failures are logged and reported as False.
    """
    video_dir = Path(video_path).parent
    if not video_dir.exists():
        return False
    try:
        shutil.rmtree(video_dir)
    except OSError:
        logger.exception("Failed to remove video directory %s", video_dir)
        return False
    logger.info("Removed video directory %s", video_dir)
    return True
