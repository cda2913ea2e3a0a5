"""Where a channel's OAuth credentials come from and where refreshed tokens go."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from core import db
from core.config import settings
from core.models import Channel
from shorts.models import ChannelCredentials, OAuthTokens

logger = logging.getLogger(__name__)


class CredentialSource(Protocol):
    #: Whether tokens live on the channel row, so the retry query can filter on them.
    stored_in_database: bool

    def load(self, channel: Channel) -> ChannelCredentials | None: ...

    def store(self, channel: Channel, tokens: OAuthTokens) -> None: ...


class DatabaseCredentialSource:
    """Tokens stored on the channel row, written back after refresh."""

    stored_in_database = True

    def load(self, channel: Channel) -> ChannelCredentials | None:
        if not channel.youtube_access_token:
            return None
        return ChannelCredentials(
            channel_id=channel.id,
            client_id=channel.youtube_client_id or "",
            client_secret=channel.youtube_client_secret or "",
            redirect_uri=channel.youtube_redirect_uri or "",
            tokens=OAuthTokens(
                access_token=channel.youtube_access_token,
                refresh_token=channel.youtube_refresh_token,
                expiry=channel.youtube_token_expiry,
                token_type=channel.youtube_token_type or "Bearer",
                scope=channel.youtube_scope,
            ),
        )

    def store(self, channel: Channel, tokens: OAuthTokens) -> None:
        # Refresh does not re-authorize: keep the refresh token out so
        # auth-blocked videos stay blocked until a real re-consent.
        db.update_channel_tokens(
            channel.id,
            access_token=tokens.access_token,
            expiry=tokens.expiry,
            token_type=tokens.token_type,
            scope=tokens.scope,
        )


class FileCredentialSource:
    """
    Token files on disk, one per language (``credentials-<language>.json``).

    The OAuth client id/secret still come from the channel row.
    """

    stored_in_database = False

    def __init__(self, directory: str | Path | None = None) -> None:
        self.directory = Path(directory or settings.credentials_dir)

    def path_for(self, channel: Channel) -> Path:
        return self.directory / f"credentials-{channel.language}.json"

    def load(self, channel: Channel) -> ChannelCredentials | None:
        path = self.path_for(channel)
        if not path.exists():
            logger.warning("Credentials file not found: %s", path)
            return None

        data = json.loads(path.read_text(encoding="utf-8"))
        if not data.get("access_token"):
            logger.warning("Credentials file has no access token: %s", path)
            return None
        return ChannelCredentials(
            channel_id=channel.id,
            client_id=data.get("client_id") or channel.youtube_client_id or "",
            client_secret=data.get("client_secret") or channel.youtube_client_secret or "",
            redirect_uri=data.get("redirect_uri") or channel.youtube_redirect_uri or "",
            tokens=OAuthTokens(
                access_token=data["access_token"],
                refresh_token=data.get("refresh_token"),
                expiry=data.get("expiry_date"),
                token_type=data.get("token_type") or "Bearer",
                scope=data.get("scope"),
            ),
        )

    def store(self, channel: Channel, tokens: OAuthTokens) -> None:
        path = self.path_for(channel)
        data = json.loads(path.read_text(encoding="utf-8")) if path.exists() else {}
        data.update(
            access_token=tokens.access_token,
            expiry_date=tokens.expiry,
            token_type=tokens.token_type,
            scope=tokens.scope,
        )
        if tokens.refresh_token:
            data["refresh_token"] = tokens.refresh_token
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        logger.info("Credentials updated: %s", path)


def create_credential_source(kind: str | None = None) -> CredentialSource:
    kind = (kind or settings.credential_source).lower()
    if kind == "database":
        return DatabaseCredentialSource()
    if kind == "file":
        return FileCredentialSource()
    raise ValueError(f"Unknown credential source: {kind}")
