"""Process entrypoint: ``run``, ``retry``, ``cron`` and ``serve`` modes."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from core.config import settings
from core.db import check_health, init_db
from shorts.errors import StorageUnavailable
from shorts.pipeline import run_once
from shorts.retry import retry_pending_uploads
from shorts.scheduler import run_cron

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="shorts", description="Multi-channel short video pipeline")
    sub = parser.add_subparsers(dest="mode", required=True)

    run = sub.add_parser("run", help="one pipeline pass over enabled channels")
    run.add_argument(
        "--channel",
        action="append",
        dest="channels",
        metavar="ID",
        help="limit the run to this channel id (repeatable)",
    )
    run.add_argument(
        "--content-only",
        action="store_true",
        help="render videos but leave them pending for upload",
    )

    sub.add_parser("retry", help="one sweep over failed uploads")
    sub.add_parser("cron", help="resident scheduler: cron checks and periodic retry")
    sub.add_parser("serve", help="HTTP trigger server")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not check_health():
        logger.error("Database unreachable at startup")
        return 1
    init_db()

    try:
        if args.mode == "run":
            if args.content_only:
                settings.set("content_only", True)
            execution_id = asyncio.run(run_once(args.channels))
            logger.info("Execution finished: %s", execution_id)
        elif args.mode == "retry":
            asyncio.run(retry_pending_uploads())
        elif args.mode == "cron":
            asyncio.run(run_cron())
        elif args.mode == "serve":
            from shorts.server import run

            run()
    except (StorageUnavailable, SQLAlchemyError) as e:
        logger.error("Fatal: %s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
