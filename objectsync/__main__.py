"""CLI entry point for objectsync."""

import argparse
import asyncio
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from .client import ObjectSyncClient
from .config import load_config
from .errors import CommandCancelledError, ObjectSyncError

LOGGER_NAMESPACE = "objectsync"

logger = logging.getLogger(f"{LOGGER_NAMESPACE}.cli")


class NamespaceFilter(logging.Filter):
    """Let every objectsync record through, but only louder ones from libraries.

    httpx logs each request at INFO, which would repeat the runner's own
    request logging line for line.
    """

    def __init__(self, namespace: str = LOGGER_NAMESPACE, library_level: int = logging.WARNING):
        super().__init__()
        self.namespace = namespace
        self.library_level = library_level

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == self.namespace or record.name.startswith(self.namespace + "."):
            return True
        return record.levelno >= self.library_level


class JSONFormatter(logging.Formatter):
    """JSON-lines formatter; failures carry their error code and HTTP status."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            error = record.exc_info[1]
            if isinstance(error, ObjectSyncError):
                log_data["error_code"] = error.code.name
                if error.status_code is not None:
                    log_data["status_code"] = error.status_code
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(log_data, default=str)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging for the CLI.

    The chosen level applies to objectsync's own loggers. Third-party
    libraries only get through at WARNING and above, unless debug
    logging is on.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    levels = {
        "warning": logging.WARNING,
        "info": logging.INFO,
        "debug": logging.DEBUG,
    }
    if log_level:
        level = levels.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    if level > logging.DEBUG:
        handler.addFilter(NamespaceFilter())

    logging.basicConfig(level=level, handlers=[handler])


def _mask(value: str | None) -> str | None:
    if not value:
        return value
    return value[:4] + "..." if len(value) > 4 else "..."


async def cmd_request(args: argparse.Namespace) -> int:
    """Run a single REST call and print the response."""
    config = load_config(args.config)

    data = None
    if args.data:
        try:
            data = json.loads(args.data)
        except json.JSONDecodeError as e:
            print(f"Invalid --data JSON: {e}", file=sys.stderr)
            return 1

    async with ObjectSyncClient(config) as client:
        try:
            result = await client.run(
                args.endpoint,
                args.method,
                session_token=args.session_token,
                data=data,
                use_master_key=args.master_key,
            )
        except ObjectSyncError as e:
            logger.debug(f"{args.method} {args.endpoint} failed", exc_info=True)
            print(f"Error {e.code.value} ({e.code.name}): {e.message}", file=sys.stderr)
            return 1
        except CommandCancelledError:
            print("Cancelled", file=sys.stderr)
            return 1
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    print(json.dumps(result, indent=2))
    return 0


async def cmd_installation_id(args: argparse.Namespace) -> int:
    """Show or reset the installation id."""
    config = load_config(args.config)

    async with ObjectSyncClient(config) as client:
        if args.clear:
            await client.installation_ids.clear()
            print("Installation id cleared")
            return 0
        installation_id = await client.installation_ids.get()

    print(installation_id)
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Print the effective configuration."""
    config = load_config(args.config)

    output = {
        "server": {
            "url": config.server.url,
            "application_id": config.server.application_id,
            "client_key": _mask(config.server.client_key),
            "master_key": _mask(config.server.master_key),
            "auxiliary_headers": config.server.auxiliary_headers,
        },
        "version": {
            "build_version": config.version.build_version,
            "display_version": config.version.display_version,
            "os_version": config.version.os_version,
        },
        "retry": {
            "max_attempts": config.retry.max_attempts,
            "initial_delay_seconds": config.retry.initial_delay_seconds,
            "backoff_factor": config.retry.backoff_factor,
            "max_delay_seconds": config.retry.max_delay_seconds,
        },
        "storage": {"db_path": config.storage.db_path},
        "http": {"timeout_seconds": config.http.timeout_seconds},
    }
    print(json.dumps(output, indent=2))
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="objectsync",
        description="Client for Parse-Server-compatible object storage backends",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (YAML)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # request command
    request_parser = subparsers.add_parser("request", help="Run a REST call")
    request_parser.add_argument(
        "method",
        choices=["GET", "POST", "PUT", "DELETE"],
        type=str.upper,
        help="HTTP method",
    )
    request_parser.add_argument(
        "endpoint",
        help="Endpoint under the API root, e.g. classes/GameScore",
    )
    request_parser.add_argument("-d", "--data", default=None, help="JSON request body")
    request_parser.add_argument("--session-token", default=None, help="Session token to send")
    request_parser.add_argument(
        "--master-key",
        action="store_true",
        help="Authenticate with the configured master key",
    )
    request_parser.set_defaults(func=cmd_request)

    # installation-id command
    id_parser = subparsers.add_parser("installation-id", help="Show the installation id")
    id_parser.add_argument(
        "--clear",
        action="store_true",
        help="Forget the stored id so a new one is created",
    )
    id_parser.set_defaults(func=cmd_installation_id)

    # config command
    config_parser = subparsers.add_parser("config", help="Show effective configuration")
    config_parser.set_defaults(func=cmd_config)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.json)

    if not args.command:
        parser.print_help()
        return 1

    func = args.func
    if asyncio.iscoroutinefunction(func):
        return asyncio.run(func(args))
    return func(args)


if __name__ == "__main__":
    sys.exit(main())
