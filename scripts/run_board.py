#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import logging
import signal

import httpx

from auction_board.config.loader import (
    get_board_settings,
    get_flag_outbox_settings,
    get_status_feed_settings,
)
from auction_board.services.board_runtime import (
    BoardOrchestrator,
    BoardPoller,
    LoggingRenderer,
)
from auction_board.services.display_scheduler import SchedulerSettings
from auction_board.services.flag_outbox import FlagOutbox
from auction_board.services.status_feed import (
    ConfigStoreClient,
    SnapshotAssembler,
    StatusFeed,
)
from auction_board.utils.clock import AsyncioTimers
from auction_board.utils.logging_config import setup_board_logging

logger = logging.getLogger("auction_board.board")


def _parse_args() -> argparse.Namespace:
    feed = get_status_feed_settings()
    board = get_board_settings()
    parser = argparse.ArgumentParser(
        description="Poll the auction feeds and drive the incentive display board."
    )
    parser.add_argument("--status-url", default=feed["status_url"], help="Auction status JSON URL")
    parser.add_argument("--api-base", default=feed["api_base"], help="ConfigStore base URL")
    parser.add_argument("--timeout", type=float, default=feed["timeout_seconds"])
    parser.add_argument(
        "--poll-interval", type=float, default=board["poll_interval_seconds"]
    )
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Refresh a single time and exit (useful for smoke checks)",
    )
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> int:
    board_settings = get_board_settings()
    outbox = FlagOutbox.from_settings(get_flag_outbox_settings())
    orchestrator = BoardOrchestrator(
        AsyncioTimers(),
        outbox,
        renderer=LoggingRenderer(),
        settings=SchedulerSettings.from_settings(board_settings),
    )
    async with httpx.AsyncClient(
        base_url=args.api_base, timeout=args.timeout, follow_redirects=True
    ) as client:
        store = ConfigStoreClient(client)
        assembler = SnapshotAssembler(StatusFeed(client, args.status_url), store)
        poller = BoardPoller(
            assembler,
            orchestrator,
            store,
            poll_interval=args.poll_interval,
            scroller_cycle_seconds=board_settings["scroller_cycle_seconds"],
        )
        if args.once:
            view = await poller.poll_once()
            await poller.aclose()
            return 0 if view is not None else 1

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
            except NotImplementedError:
                # Windows event loops have no signal handlers.
                continue
        await poller.run_forever(stop)
    return 0


def main() -> int:
    args = _parse_args()
    setup_board_logging(args.log_level)
    logger.info("Polling %s and %s", args.status_url, args.api_base)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
