#!/usr/bin/env python3
"""Dev entrypoint for running the task-event consumer.

Usage:
    # Consume task events until Ctrl+C / SIGTERM
    python scripts/run_workers.py --consume

    # Validate configuration and broker reachability, then exit
    python scripts/run_workers.py --check

Several --consume processes may run side by side; they compete for the
queue with prefetch 1.

Environment variables:
    RABBITMQ_URL: Broker URL (required)
    RABBITMQ_QUEUE: Task-event queue (required)
    RABBITMQ_NOTIFICATIONS_QUEUE: Realtime queue (required)
    RABBITMQ_PREFETCH_COUNT: Unacked messages per consumer (default: 1)
    DATABASE_URL: Notifications database (required)
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.workers import (
    check_broker,
    configure_worker_logging,
    run_event_consumer,
)


def main() -> int:
    """Main entrypoint for the worker process."""
    parser = argparse.ArgumentParser(
        description="Run the notifications task-event consumer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    # Mode selection
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        "--consume",
        action="store_true",
        help="Consume task events until interrupted",
    )
    mode.add_argument(
        "--check",
        action="store_true",
        help="Check configuration and broker connectivity, then exit",
    )

    # Logging
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Reduce logging to warnings only",
    )

    args = parser.parse_args()

    # Configure logging
    if args.verbose:
        configure_worker_logging(logging.DEBUG)
    elif args.quiet:
        configure_worker_logging(logging.WARNING)
    else:
        configure_worker_logging(logging.INFO)

    logger = logging.getLogger(__name__)

    try:
        if args.check:
            return 0 if check_broker() else 1

        logger.info("Starting task-event consumer (Ctrl+C to stop)...")
        run_event_consumer()
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Worker failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
