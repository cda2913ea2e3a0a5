"""HTTP trigger server for pipeline runs and retry sweeps (local development)."""

import asyncio
import logging

from flask import Flask, Response, request
from sqlalchemy.exc import SQLAlchemyError

from core.config import settings
from core.db import init_db
from core.utils import json_response
from shorts.errors import PipelineError, StorageUnavailable
from shorts.pipeline import run_once
from shorts.retry import retry_pending_uploads

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = Flask(__name__)


@app.before_request
def ensure_db() -> None:
    if not getattr(app, "_db_initialized", False):
        init_db()
        app._db_initialized = True  # type: ignore[attr-defined]


@app.route("/run", methods=["POST"])
def run_pipeline() -> Response:
    """Run one pipeline pass, optionally limited to ``channel_ids``."""
    data = request.get_json(silent=True) or {}
    channel_ids = data.get("channel_ids")
    if channel_ids is not None and not isinstance(channel_ids, list):
        return json_response({"error": "channel_ids must be a list"}, 400)

    try:
        execution_id = asyncio.run(run_once(channel_ids))
    except StorageUnavailable as e:
        return json_response({"error": e.error_code, "message": str(e)}, 503)
    except PipelineError as e:
        logger.exception("Pipeline run failed")
        return json_response({"error": e.error_code, "message": str(e)}, 500)

    return json_response({"execution_id": execution_id})


@app.route("/retry", methods=["POST"])
def retry_uploads() -> Response:
    try:
        report = asyncio.run(retry_pending_uploads())
    except SQLAlchemyError as e:
        logger.exception("Retry sweep failed")
        error = StorageUnavailable(f"Database unavailable: {e}")
        return json_response({"error": error.error_code, "message": str(error)}, 503)

    return json_response(
        {"succeeded": report.succeeded, "failed": report.failed, "skipped": report.skipped}
    )


def run() -> None:
    app.run(host="0.0.0.0", port=settings.server_port, debug=True)


if __name__ == "__main__":
    run()
