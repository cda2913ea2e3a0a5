"""YouTube upload stage."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload

from core.config import settings
from shorts.errors import AUTH_FAILED, UploadError
from shorts.models import ChannelCredentials, OAuthTokens, Script, UploadResult

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"
SHORTS_HASHTAG = "#Shorts"
AUTH_FAILURE_REASONS = {"insufficientPermissions", "authError"}


def build_metadata(script: Script, as_short: bool) -> dict[str, Any]:
    description = script.description
    if as_short:
        description = f"{description}\n\n{SHORTS_HASHTAG}"
    return {
        "snippet": {
            "title": script.title[:100],
            "description": description,
            "tags": list(script.tags),
            "categoryId": settings.upload_category_id,
            "defaultLanguage": script.language,
        },
        "status": {
            "privacyStatus": settings.upload_privacy_status,
            "selfDeclaredMadeForKids": False,
        },
    }


def video_url(remote_id: str, as_short: bool) -> str:
    if as_short:
        return f"https://www.youtube.com/shorts/{remote_id}"
    return f"https://www.youtube.com/watch?v={remote_id}"


def _google_credentials(creds: ChannelCredentials) -> Credentials:
    # google-auth expects a naive UTC expiry
    expiry = None
    if creds.tokens.expiry:
        expiry = datetime.fromtimestamp(creds.tokens.expiry / 1000, UTC).replace(tzinfo=None)
    return Credentials(
        token=creds.tokens.access_token,
        expiry=expiry,
        refresh_token=creds.tokens.refresh_token,
        token_uri=TOKEN_URI,
        client_id=creds.client_id,
        client_secret=creds.client_secret,
    )


def _refreshed_tokens(google_creds: Credentials, original: OAuthTokens) -> OAuthTokens | None:
    if google_creds.token == original.access_token:
        return None
    expiry = None
    if google_creds.expiry is not None:
        expiry = int(google_creds.expiry.replace(tzinfo=UTC).timestamp() * 1000)
    return OAuthTokens(
        access_token=google_creds.token,
        refresh_token=google_creds.refresh_token or original.refresh_token,
        expiry=expiry,
        token_type=original.token_type,
        scope=original.scope,
    )


def _is_auth_failure(error: HttpError) -> bool:
    """401, or a 403 whose reason says the token lacks access."""
    status = getattr(error.resp, "status", None)
    if status == 401:
        return True
    if status != 403:
        return False
    details = error.error_details if isinstance(error.error_details, list) else []
    reasons = {str(d.get("reason", "")) for d in details if isinstance(d, dict)}
    return bool(reasons & AUTH_FAILURE_REASONS) or "insufficientpermissions" in str(error).lower()


def _upload_blocking(
    video_path: Path,
    script: Script,
    creds: ChannelCredentials,
    as_short: bool,
) -> UploadResult:
    google_creds = _google_credentials(creds)
    try:
        if not google_creds.valid and google_creds.refresh_token:
            google_creds.refresh(Request())

        youtube = build("youtube", "v3", credentials=google_creds, cache_discovery=False)
        media = MediaFileUpload(str(video_path), chunksize=-1, resumable=True)
        request = youtube.videos().insert(
            part="snippet,status",
            body=build_metadata(script, as_short),
            media_body=media,
        )
        response = None
        while response is None:
            _, response = request.next_chunk()
    except RefreshError as e:
        raise UploadError(f"Token refresh failed: {e}", AUTH_FAILED) from e
    except HttpError as e:
        if _is_auth_failure(e):
            raise UploadError(f"YouTube rejected credentials: {e}", AUTH_FAILED) from e
        raise UploadError(f"YouTube API error: {e}") from e

    remote_id = str(response.get("id") or "")
    if not remote_id:
        raise UploadError(f"No video id in upload response: {response}")

    return UploadResult(
        remote_id=remote_id,
        url=video_url(remote_id, as_short),
        title=script.title[:100],
        refreshed_tokens=_refreshed_tokens(google_creds, creds.tokens),
    )


async def upload_to_platform(
    video_path: Path,
    script: Script,
    credentials: ChannelCredentials,
    as_short: bool,
) -> UploadResult:
    logger.info("Uploading %s to YouTube (%s)", script.title, script.language)
    result = await asyncio.to_thread(_upload_blocking, video_path, script, credentials, as_short)
    logger.info("Upload complete: %s", result.url)
    return result
