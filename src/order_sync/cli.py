"""Order watcher CLI: poll the order API and render the live snapshot."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence

from rich.console import Console

from .api_client import OrderApiClient
from .config import Settings, load_settings
from .engine.session import EngineEvent, OrderSyncEngine
from .engine.status import ADMIN_FILTERS, CANONICAL_STATUSES
from .exceptions import ConfigError, OrderApiError, OrderSyncError
from .log_setup import setup_logger
from .models import MutationOutcome, NewOrderSignal, TransitionEvent
from .ui.order_board import OrderBoard


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(description="Watch order statuses for one restaurant.")
    parser.add_argument(
        "--cycles",
        type=int,
        default=0,
        help="Number of render cycles before exiting (0 = until interrupted).",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Override the polling interval in seconds.",
    )
    parser.add_argument(
        "--filter",
        dest="status_filter",
        choices=sorted(ADMIN_FILTERS),
        default=None,
        help="Administrator view filter.",
    )
    parser.add_argument(
        "--set-status",
        nargs=2,
        metavar=("ORDER_ID", "STATUS"),
        default=None,
        help="Administrator only: request a status change after the first sync.",
    )
    parser.add_argument(
        "--minutes",
        default=None,
        help="Estimated preparation minutes sent with --set-status preparing.",
    )
    args = parser.parse_args(argv)
    if args.set_status and args.set_status[1] not in CANONICAL_STATUSES:
        parser.error(f"STATUS must be one of: {', '.join(sorted(CANONICAL_STATUSES))}")
    return args


def _log_event(logger: logging.Logger, event: EngineEvent) -> None:
    if isinstance(event, NewOrderSignal):
        logger.info("New order received: %s", event.order_number)
    elif isinstance(event, TransitionEvent) and not event.legal:
        logger.warning(
            "Unexpected status change observed: order=%s %s -> %s",
            event.order_number,
            event.from_status,
            event.to_status,
        )
    elif isinstance(event, MutationOutcome) and not event.ok:
        logger.error(
            "Status change for order %s was not applied: %s",
            event.order_id,
            event.message or event.reason,
        )


async def _watch(
    settings: Settings,
    args: argparse.Namespace,
    logger: logging.Logger,
    console: Console,
) -> int:
    interval = args.interval or settings.poll_interval_seconds
    async with OrderApiClient(settings=settings, logger=logger) as client:
        engine = OrderSyncEngine.from_settings(client, settings, logger=logger)
        if args.status_filter:
            engine.set_status_filter(args.status_filter)
        engine.subscribe(lambda event: _log_event(logger, event))
        board = OrderBoard(
            console=console,
            role=settings.sync_role,
            tenant_id=settings.sync_restaurant_id,
        )

        first = await engine.refresh_now()
        if first.status == "failed":
            logger.error("Initial order fetch failed: %s", first.error)
            return 5

        if args.set_status:
            order_id, status = args.set_status
            outcome = await engine.request_transition(order_id, status, args.minutes)
            if not outcome.ok:
                return 5

        engine.start(interval)
        cycle = 0
        try:
            while args.cycles <= 0 or cycle < args.cycles:
                cycle += 1
                board.render(
                    orders=engine.get_snapshot(),
                    countdowns=engine.countdowns(),
                    banner=engine.banner,
                    notifications=engine.grouped_notifications(),
                    last_sync_failed=engine.last_sync_failed,
                    cycle_index=cycle,
                )
                engine.dismiss_banner()
                await asyncio.sleep(interval)
        finally:
            engine.stop()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Run the order watcher."""
    args = parse_args(argv)
    logger = setup_logger()
    console = Console()

    try:
        settings = load_settings()
    except ConfigError as exc:
        logger.error("Configuration failure: %s", exc)
        return 2

    logger = setup_logger(level=settings.log_level)
    logger.info("Order watcher starting.", extra={"config": settings.safe_summary()})
    try:
        return asyncio.run(_watch(settings, args, logger, console))
    except OrderSyncError as exc:
        logger.error("Rejected action: %s", exc)
        return 3
    except OrderApiError as exc:
        logger.error("Run failed: %s", exc)
        return 5
    except KeyboardInterrupt:
        logger.info("Order watcher interrupted.")
        return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
