"""Short video pipeline: shared topics per channel group, durable upload retry."""

from shorts.errors import (
    PipelineError,
    StageError,
    StorageUnavailable,
    UploadError,
    UploadFailureKind,
    classify_upload_error,
)
from shorts.grouping import Partition, partition
from shorts.pipeline import PipelineOrchestrator, run_once
from shorts.retry import RetryReport, retry_pending_uploads
from shorts.stages import StageAdapters, default_stages

__all__ = [
    "Partition",
    "PipelineError",
    "PipelineOrchestrator",
    "RetryReport",
    "StageAdapters",
    "StageError",
    "StorageUnavailable",
    "UploadError",
    "UploadFailureKind",
    "classify_upload_error",
    "default_stages",
    "partition",
    "retry_pending_uploads",
    "run_once",
]
