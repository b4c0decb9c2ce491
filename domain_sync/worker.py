"""
Dedicated worker process entrypoint.

Run with:
    RUN_MODE=worker python -m domain_sync.worker batch

Commands (one pass each, then exit):
    batch           reconcile one batch of queued domain update jobs
    dispatch        deliver unsent notifications
    cleanup         retention sweep: re-send unsent, delete old notifications
    enqueue-all     queue an update job for every monitored domain
    release-leases  re-queue in_progress jobs whose lease has expired
    reminders       queue renewal reminders for domains expiring in 90/30/7/2 days

Schedule these from cron or the platform's job scheduler.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Awaitable, Callable, Dict, List, Optional

from domain_sync import config
from domain_sync.core.logging import configure_logging
from domain_sync.database import init_db
from domain_sync.orchestrator import ReconcileContext
from domain_sync.tasks import (
    close_context,
    run_batch,
    run_cleanup,
    run_dispatch,
    run_enqueue_all,
    run_expiry_reminders,
    run_release_leases,
)

logger = logging.getLogger(__name__)


async def _cmd_batch() -> int:
    ctx = ReconcileContext()
    try:
        report = await run_batch(ctx)
    finally:
        await close_context(ctx)
    logger.info("batch: %s", report.summary())
    return 0


async def _cmd_dispatch() -> int:
    report = await run_dispatch()
    logger.info(
        "dispatch: %d attempted, %d delivered, %d channel failures",
        report.attempted, report.delivered, report.channel_failures,
    )
    return 0


async def _cmd_cleanup() -> int:
    report = await run_cleanup()
    logger.info("cleanup: %d re-sent, %d deleted", report.resent, report.deleted)
    return 0


async def _cmd_enqueue_all() -> int:
    count = await run_enqueue_all()
    logger.info("enqueue-all: %d domains queued", count)
    return 0


async def _cmd_release_leases() -> int:
    count = await run_release_leases()
    logger.info("release-leases: %d jobs re-queued", count)
    return 0


async def _cmd_reminders() -> int:
    count = await run_expiry_reminders()
    logger.info("reminders: %d created", count)
    return 0


COMMANDS: Dict[str, Callable[[], Awaitable[int]]] = {
    "batch": _cmd_batch,
    "dispatch": _cmd_dispatch,
    "cleanup": _cmd_cleanup,
    "enqueue-all": _cmd_enqueue_all,
    "release-leases": _cmd_release_leases,
    "reminders": _cmd_reminders,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="domain_sync.worker", description="domain-sync one-shot worker")
    parser.add_argument("command", choices=sorted(COMMANDS))
    return parser


async def main_async(command: str) -> int:
    if config.RUN_MODE != "worker":
        logger.warning(
            "domain_sync.worker invoked with RUN_MODE=%s. Exiting without running %s.",
            config.RUN_MODE, command,
        )
        return 0

    init_db()
    try:
        return await COMMANDS[command]()
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception("Worker command %s crashed", command)
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()
    return asyncio.run(main_async(args.command))


if __name__ == "__main__":
    sys.exit(main())
