"""Pipeline error taxonomy and upload failure classification."""

from collections.abc import Iterable
from enum import StrEnum

from core.config import settings
from core.db import AUTH_REQUIRED_PREFIX

AUTH_FAILED = "AUTH_FAILED"


class PipelineError(Exception):
    """Pipeline error with error code for categorization."""

    def __init__(self, message: str, error_code: str = "PIPELINE_FAILED") -> None:
        super().__init__(message)
        self.error_code = error_code


class StorageUnavailable(PipelineError):
    """Database unreachable. Aborts the whole execution."""

    def __init__(self, message: str = "Database unavailable") -> None:
        super().__init__(message, "STORAGE_UNAVAILABLE")


class StageError(PipelineError):
    """A production stage failed. Aborts the current group."""

    def __init__(self, message: str, error_code: str = "STAGE_FAILED") -> None:
        super().__init__(message, error_code)


class UploadError(PipelineError):
    """Platform upload failed. The message carries the platform's own text."""

    def __init__(self, message: str, error_code: str = "UPLOAD_FAILED") -> None:
        super().__init__(message, error_code)


class UploadFailureKind(StrEnum):
    QUOTA = "quota"
    AUTH = "auth"
    GENERIC = "generic"


def _matches(message: str, markers: Iterable[str]) -> bool:
    return any(marker.lower() in message for marker in markers)


def classify_upload_error(error: BaseException) -> UploadFailureKind:
    """
    Map an upload exception to its failure kind.

    An ``AUTH_FAILED`` error code wins outright. Otherwise auth markers are
    checked before quota markers. Marker strings come from settings so they
    can follow platform wording changes.
    """
    if getattr(error, "error_code", None) == AUTH_FAILED:
        return UploadFailureKind.AUTH
    message = str(error).lower()
    if _matches(message, settings.upload_auth_markers):
        return UploadFailureKind.AUTH
    if _matches(message, settings.upload_quota_markers):
        return UploadFailureKind.QUOTA
    return UploadFailureKind.GENERIC


def auth_required_message(error: BaseException) -> str:
    return f"{AUTH_REQUIRED_PREFIX} {error}"


__all__ = [
    "AUTH_FAILED",
    "AUTH_REQUIRED_PREFIX",
    "PipelineError",
    "StageError",
    "StorageUnavailable",
    "UploadError",
    "UploadFailureKind",
    "auth_required_message",
    "classify_upload_error",
]
