"""CLI entry point for sandboxdav-admin: sandbox management tool."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from sandboxdav.config import SandboxDavConfig, load_config
from sandboxdav.errors import DavError
from sandboxdav.metadata import create_metadata_store
from sandboxdav.server import create_storage_backend
from sandboxdav.writes import reap_stranded_writes


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="sandboxdav-admin",
        description="SandboxDAV sandbox management tool",
    )
    parser.add_argument(
        "--config", type=Path, default=Path("sandboxdav.yaml"),
        help="Config file path (default: sandboxdav.yaml)",
    )
    parser.add_argument(
        "--db", type=str, default=None,
        help="SQLite database path (overrides config)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    create_parser = subparsers.add_parser("create", help="Create a sandbox")
    create_parser.add_argument("slug", help="URL slug (3-50 chars, lowercase, digits, hyphens)")
    create_parser.add_argument("--name", type=str, default=None, help="Display name (default: slug)")

    subparsers.add_parser("list", help="List sandboxes, newest first")

    remove_parser = subparsers.add_parser("remove", help="Remove a sandbox and tombstone its files")
    remove_parser.add_argument("slug")

    reap_parser = subparsers.add_parser("reap", help="Reap stranded pending writes")
    reap_parser.add_argument(
        "--older-than", type=int, default=None,
        help="Minimum age in seconds (default: dav.pending_timeout_seconds)",
    )

    return parser.parse_args(argv)


async def _run(args: argparse.Namespace, config: SandboxDavConfig) -> int:
    metadata = create_metadata_store(config.metadata)
    await metadata.init_db()
    try:
        if args.command == "create":
            sandbox = await metadata.create_sandbox(args.name or args.slug, args.slug)
            print(f"Created sandbox {sandbox.slug}")

        elif args.command == "list":
            for sandbox in await metadata.list_sandboxes():
                print(f"{sandbox.slug}\t{sandbox.name}\t{sandbox.created_at}")

        elif args.command == "remove":
            count = await metadata.remove_sandbox(args.slug)
            print(f"Removed sandbox {args.slug} ({count} entries tombstoned)")

        elif args.command == "reap":
            older_than = args.older_than
            if older_than is None:
                older_than = config.dav.pending_timeout_seconds
            storage = create_storage_backend(config)
            await storage.init()
            try:
                reaped = await reap_stranded_writes(metadata, storage, older_than)
            finally:
                await storage.close()
            print(f"Reaped {reaped} stranded writes")
    finally:
        await metadata.close()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except FileNotFoundError:
        if args.db is None:
            print(f"Error: config file not found: {args.config}", file=sys.stderr)
            return 1
        config = SandboxDavConfig()
    except Exception as e:
        print(f"Error reading config: {e}", file=sys.stderr)
        return 1

    if args.db:
        config.metadata.engine = "sqlite"
        config.metadata.sqlite_path = args.db

    try:
        return asyncio.run(_run(args, config))
    except DavError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


def entry_point() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    entry_point()
