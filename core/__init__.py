"""Core utilities shared across all modules."""

from core.cache import RedisCache, create_cache
from core.config import settings
from core.db import (
    Patch,
    check_health,
    get_active_channels,
    get_channel,
    get_retry_candidates,
    init_db,
    log_error,
    mark_upload_failed,
    mark_upload_success,
    update_row,
)
from core.models import (
    Base,
    Channel,
    ChannelGroup,
    ErrorLog,
    PipelineExecution,
    Prompt,
    RetryCandidate,
    ScriptRecord,
    TopicRecord,
    VideoRecord,
    YouTubeUpload,
)

__all__ = [
    "Base",
    "Channel",
    "ChannelGroup",
    "ErrorLog",
    "Patch",
    "PipelineExecution",
    "Prompt",
    "RedisCache",
    "RetryCandidate",
    "ScriptRecord",
    "TopicRecord",
    "VideoRecord",
    "YouTubeUpload",
    "check_health",
    "create_cache",
    "get_active_channels",
    "get_channel",
    "get_retry_candidates",
    "init_db",
    "log_error",
    "mark_upload_failed",
    "mark_upload_success",
    "settings",
    "update_row",
]
