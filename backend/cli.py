"""
Command-line access to the sync engine.

Operates on the configured local database and backend (see Settings).

Usage:
    python -m backend.cli status
    python -m backend.cli flush
    python -m backend.cli failed
    python -m backend.cli retry 42
    python -m backend.cli discard 42
    python -m backend.cli migrate
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Optional, Sequence

from application.exceptions import SyncError
from backend.settings import Settings, get_settings
from backend.sync.outbound_queue import InvalidQueueTransition
from backend.sync.service import SyncService
from infrastructure.connectivity_probe import ConnectivityProbe

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Workout sync engine tools")
    parser.add_argument("--db", help="Local database path (overrides LOCAL_DB_PATH)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("status", help="Show sync status")
    commands.add_parser("flush", help="Run one flush cycle")
    commands.add_parser("failed", help="List queue entries that failed for good")
    retry = commands.add_parser("retry", help="Put a failed entry back in the queue")
    retry.add_argument("sequence", type=int)
    discard = commands.add_parser("discard", help="Discard a failed entry")
    discard.add_argument("sequence", type=int)
    commands.add_parser("migrate", help="Queue pre-existing local data for upload")
    return parser


async def _is_online(settings: Settings, service: SyncService) -> bool:
    if not service.remote.is_configured or not settings.probe_url:
        return False
    probe = ConnectivityProbe(settings.probe_url, service.set_online)
    return await probe.check()


async def run(args: argparse.Namespace, settings: Settings) -> Any:
    service = SyncService.from_settings(settings)
    online = await _is_online(settings, service)
    await service.start(online=online, trigger=False)
    try:
        if args.command == "status":
            return await service.status()
        if args.command == "flush":
            return (await service.flush()).to_dict()
        if args.command == "failed":
            return [e.model_dump(mode="json") for e in await service.failed_entries()]
        if args.command == "retry":
            return (await service.retry_failed(args.sequence)).model_dump(mode="json")
        if args.command == "discard":
            return (await service.discard_failed(args.sequence)).model_dump(mode="json")
        if args.command == "migrate":
            # The upload itself runs as the triggered flush; stop() waits for it
            return (await service.migrate()).to_dict()
        raise ValueError(f"Unknown command: {args.command}")
    finally:
        await service.stop()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = get_settings()
    if args.db:
        settings = settings.model_copy(update={"local_db_path": args.db})

    try:
        output = asyncio.run(run(args, settings))
    except (SyncError, InvalidQueueTransition) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(output, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
