"""Flask API for inspecting executions and videos and editing channels."""

import logging

from flask import Flask, Response, request

from core.config import settings
from core.db import (
    Patch,
    check_health,
    get_channel,
    get_execution,
    get_execution_errors,
    init_db,
    list_executions,
    list_videos,
    update_channel_tokens,
    update_row,
)
from core.models import UPLOAD_STATUSES, Channel
from core.utils import json_response, to_dict

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = Flask(__name__)

CHANNEL_FIELDS = frozenset(
    {
        "name",
        "voice",
        "voice_rate",
        "voice_pitch",
        "group_id",
        "enabled",
        "cron_schedule",
        "video_width",
        "video_height",
        "upload_as_short",
        "youtube_client_id",
        "youtube_client_secret",
        "youtube_redirect_uri",
    }
)
TOKEN_FIELDS = {
    "youtube_access_token": "access_token",
    "youtube_refresh_token": "refresh_token",
    "youtube_token_expiry": "expiry",
    "youtube_token_type": "token_type",
    "youtube_scope": "scope",
}
SECRET_FIELDS = ("youtube_client_secret", "youtube_access_token", "youtube_refresh_token")


@app.before_request
def ensure_db() -> None:
    if not getattr(app, "_db_initialized", False):
        init_db()
        app._db_initialized = True  # type: ignore[attr-defined]


def channel_dict(channel: Channel) -> dict:
    """Channel row without OAuth secrets."""
    data = to_dict(channel)
    for field in SECRET_FIELDS:
        data[field] = bool(data[field])
    return data


@app.route("/health", methods=["GET"])
def health() -> Response:
    if not check_health():
        return json_response({"status": "error", "database": "unreachable"}, 503)
    return json_response({"status": "ok"})


@app.route("/executions", methods=["GET"])
def executions_endpoint() -> Response:
    limit = request.args.get("limit", 20, type=int)
    return json_response([to_dict(e) for e in list_executions(limit)])


@app.route("/executions/<execution_id>", methods=["GET"])
def execution_endpoint(execution_id: str) -> Response:
    execution = get_execution(execution_id)
    if not execution:
        return json_response({"error": "Execution not found"}, 404)

    errors = get_execution_errors(execution_id)
    return json_response({**to_dict(execution), "errors": [to_dict(e) for e in errors]})


@app.route("/videos", methods=["GET"])
def videos_endpoint() -> Response:
    upload_status = request.args.get("upload_status")
    if upload_status and upload_status not in UPLOAD_STATUSES:
        return json_response({"error": f"upload_status must be one of {list(UPLOAD_STATUSES)}"}, 400)
    limit = request.args.get("limit", 50, type=int)
    return json_response([to_dict(v) for v in list_videos(upload_status, limit)])


@app.route("/channels/<channel_id>", methods=["PATCH"])
def patch_channel_endpoint(channel_id: str) -> Response:
    """
    Update channel settings.

    Token fields go through the token update path, so sending a new refresh
    token re-enables uploads parked for re-authorization.
    """
    data = request.get_json(silent=True)
    if not data or not isinstance(data, dict):
        return json_response({"error": "Request body required"}, 400)

    unknown = set(data) - CHANNEL_FIELDS - set(TOKEN_FIELDS)
    if unknown:
        return json_response({"error": f"Fields not editable: {sorted(unknown)}"}, 400)

    if not get_channel(channel_id):
        return json_response({"error": "Channel not found"}, 404)

    tokens = {TOKEN_FIELDS[k]: v for k, v in data.items() if k in TOKEN_FIELDS}
    if tokens and not tokens.get("access_token"):
        return json_response({"error": "youtube_access_token is required with token fields"}, 400)

    patch = Patch({k: v for k, v in data.items() if k in CHANNEL_FIELDS})
    if patch:
        update_row(Channel, channel_id, patch)
    if tokens:
        update_channel_tokens(channel_id, **tokens)

    logger.info("Channel %s updated: %s", channel_id, sorted(data))
    return json_response(channel_dict(get_channel(channel_id)))


def run() -> None:
    app.run(host="0.0.0.0", port=settings.api_port, debug=True)


if __name__ == "__main__":
    run()
