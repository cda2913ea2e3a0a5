"""Tests for credential sources."""

import json

import pytest

from core import db
from shorts.credentials import (
    DatabaseCredentialSource,
    FileCredentialSource,
    create_credential_source,
)
from shorts.models import OAuthTokens


class TestDatabaseCredentialSource:
    def test_load(self, make_channel):
        channel = make_channel(youtube_token_expiry=1_700_000_000_000)

        creds = DatabaseCredentialSource().load(channel)

        assert creds.channel_id == channel.id
        assert creds.client_id == "client-id"
        assert creds.tokens.access_token == channel.youtube_access_token
        assert creds.tokens.expiry == 1_700_000_000_000

    def test_no_token(self, make_channel):
        assert DatabaseCredentialSource().load(make_channel(with_token=False)) is None

    def test_store_keeps_refresh_token(self, make_channel):
        channel = make_channel()

        DatabaseCredentialSource().store(
            channel, OAuthTokens(access_token="new", refresh_token="rotated", expiry=5)
        )

        stored = db.get_channel(channel.id)
        assert stored.youtube_access_token == "new"
        assert stored.youtube_token_expiry == 5
        assert stored.youtube_refresh_token == "refresh"


class TestFileCredentialSource:
    def test_load_and_store(self, make_channel, tmp_path):
        channel = make_channel("en")
        path = tmp_path / "credentials-en.json"
        path.write_text(json.dumps({"access_token": "file-token", "refresh_token": "r", "expiry_date": 10}))
        source = FileCredentialSource(tmp_path)

        creds = source.load(channel)
        assert creds.tokens.access_token == "file-token"
        assert creds.client_secret == "client-secret"

        source.store(channel, OAuthTokens(access_token="refreshed", expiry=20))
        data = json.loads(path.read_text())
        assert data["access_token"] == "refreshed"
        assert data["expiry_date"] == 20
        assert data["refresh_token"] == "r"

    def test_missing_file(self, make_channel, tmp_path):
        assert FileCredentialSource(tmp_path).load(make_channel()) is None


def test_create_credential_source():
    assert isinstance(create_credential_source("database"), DatabaseCredentialSource)
    assert isinstance(create_credential_source("FILE"), FileCredentialSource)
    with pytest.raises(ValueError):
        create_credential_source("vault")
