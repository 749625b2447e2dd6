"""CLI command for following a generation until it finishes.

Usage:
    python -m headshot.cli.poll_generation --generation-id ID --base-url URL [OPTIONS]

Examples:
    # Follow generation 42 with default interval and budget
    python -m headshot.cli.poll_generation --generation-id 42 --base-url http://localhost:8000

    # Owner token lets the poller mark the generation failed on timeout
    python -m headshot.cli.poll_generation --generation-id 42 \\
        --base-url http://localhost:8000 --token "$ACCESS_TOKEN"

    # Faster polling with a smaller budget
    python -m headshot.cli.poll_generation --generation-id 42 \\
        --base-url http://localhost:8000 --interval 2 --max-polls 10
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace

import structlog

from headshot.client.poller import (
    DEFAULT_MAX_POLLS,
    DEFAULT_POLL_INTERVAL,
    GenerationStatusPoller,
    PollResult,
    PollState,
)
from headshot.services.exceptions import PollingConnectionError

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Poll a headshot generation until it completes, fails or times out",
        epilog="On timeout the generation is reported as failed (requires --token)",
    )

    parser.add_argument("--generation-id", type=int, required=True, help="Generation to follow")
    parser.add_argument("--base-url", required=True, help="API base URL")
    parser.add_argument("--token", help="Bearer access token of the generation owner")
    parser.add_argument(
        "--interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL,
        help=f"Seconds between status queries (default: {DEFAULT_POLL_INTERVAL})",
    )
    parser.add_argument(
        "--max-polls",
        type=int,
        default=DEFAULT_MAX_POLLS,
        help=f"Status queries before giving up (default: {DEFAULT_MAX_POLLS})",
    )

    return parser.parse_args(argv)


def print_result(result: PollResult) -> None:
    print("\n" + "=" * 60)
    print(f"Generation {result.generation_id}: {result.state.value}")
    print(f"Status queries: {result.polls}")
    if result.image_url:
        print(f"Image URL: {result.image_url}")
    if result.error:
        print(f"Error: {result.error}")
    print("=" * 60 + "\n")


async def async_main(argv: list[str] | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (completed), 1 (failed, timed out or error), 130 (interrupted)
    """
    args = parse_args(argv)

    poller = GenerationStatusPoller(
        args.base_url,
        token=args.token,
        poll_interval=args.interval,
        max_polls=args.max_polls,
        on_finish=print_result,
    )

    logger.info("cli.started", generation_id=args.generation_id, base_url=args.base_url)

    try:
        status, image_url = await poller.fetch_status(args.generation_id)
    except PollingConnectionError as e:
        logger.error("cli.status_query_failed", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1

    result = await poller.run(args.generation_id, status)

    if result.state == PollState.IDLE:
        print(f"Generation {args.generation_id} is {status.value}; nothing to poll")
        if image_url:
            print(f"Image URL: {image_url}")
        return 0 if status.value == "COMPLETED" else 1

    return 0 if result.state == PollState.COMPLETED else 1


def main() -> None:
    """Synchronous entry point for CLI."""
    try:
        sys.exit(asyncio.run(async_main()))
    except KeyboardInterrupt:
        print("\nPolling interrupted by user", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
