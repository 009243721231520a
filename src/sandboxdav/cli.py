"""CLI entry point for SandboxDAV."""

import argparse
import logging
import sys
from pathlib import Path

import uvicorn

from sandboxdav.config import SandboxDavConfig, load_config
from sandboxdav.logging_config import configure_logging
from sandboxdav.server import create_app

# Flags whose argparse dest matches a ServerConfig field of the same name.
_SERVER_FLAGS = ("host", "port", "log_level", "log_format", "shutdown_timeout")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="sandboxdav",
        description="SandboxDAV - multi-tenant WebDAV file server",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("sandboxdav.yaml"),
        help="Path to YAML configuration file (default: sandboxdav.yaml)",
    )
    parser.add_argument("--host", type=str, default=None, help="Host address to bind to (overrides config)")
    parser.add_argument("--port", type=int, default=None, help="Port to listen on (overrides config)")
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config, default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )
    parser.add_argument(
        "--shutdown-timeout",
        type=int,
        default=None,
        help="Graceful shutdown timeout in seconds (default: 30)",
    )
    return parser.parse_args(argv)


def apply_overrides(config: SandboxDavConfig, args: argparse.Namespace) -> list[str]:
    """Copy flags given on the command line onto ``config.server``.

    Returns:
        The names of the fields that were overridden.
    """
    applied = []
    for field in _SERVER_FLAGS:
        value = getattr(args, field, None)
        if value is not None:
            setattr(config.server, field, value)
            applied.append(field)
    return applied


def main(argv: list[str] | None = None) -> None:
    """Load configuration, apply CLI overrides and serve with uvicorn."""
    args = parse_args(argv)

    configure_logging()
    logger = logging.getLogger("sandboxdav")

    try:
        config = load_config(args.config)
    except FileNotFoundError:
        logger.error("Config file not found: %s", args.config)
        sys.exit(1)
    except Exception as exc:
        logger.error("Failed to load config: %s", exc)
        sys.exit(1)

    overridden = apply_overrides(config, args)
    configure_logging(level=config.server.log_level, fmt=config.server.log_format)
    if overridden:
        logger.debug("Command-line overrides: %s", ", ".join(overridden))

    logger.info(
        "Starting SandboxDAV on %s:%d (metadata=%s, storage=%s)",
        config.server.host,
        config.server.port,
        config.metadata.engine,
        config.storage.backend,
    )

    app = create_app(config)

    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.server.log_level.lower(),
        timeout_graceful_shutdown=config.server.shutdown_timeout,
        timeout_keep_alive=5,
    )


if __name__ == "__main__":
    main()
