"""mcp2websocket launcher.

Provides the CLI entry point: ``mcp2websocket <url> [options]``.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import signal
import sys
from typing import Any

import structlog
from dotenv import load_dotenv
from pydantic import ValidationError

from mcp2websocket.bridge.facade import WebSocketBridge
from mcp2websocket.config.settings import BridgeSettings
from mcp2websocket.observability.logging_config import (
    LogFormat,
    LoggingConfig,
    configure_bridge_logging,
)

logger = structlog.get_logger()

_IS_WINDOWS = sys.platform == "win32"

EXIT_USAGE = 1

_EPILOG = """\
Environment variables:
  MCP2WS_URL           WebSocket server URL
  AUTH_TOKEN           Authentication token (also MCP2WS_TOKEN)
  DEBUG                Enable debug logging (set to "true")

Examples:
  mcp2websocket ws://example.com:8080/mcp
  mcp2websocket wss://secure.example.com/mcp --token mytoken
  mcp2websocket ws://localhost:8080/mcp --debug
"""


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments.

    Args:
        argv: Argument list (defaults to sys.argv[1:]).

    Returns:
        Parsed arguments namespace.
    """
    try:
        from importlib.metadata import version as _pkg_version

        _version = _pkg_version("mcp2websocket")
    except Exception:
        _version = "0.0.0-dev"

    parser = argparse.ArgumentParser(
        prog="mcp2websocket",
        description="Bridge JSON-RPC over stdio to a WebSocket server",
        epilog=_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_version}",
    )
    parser.add_argument(
        "url",
        nargs="?",
        default=None,
        help="WebSocket server URL (ws:// or wss://)",
    )
    parser.add_argument(
        "--token",
        "-t",
        type=str,
        default=None,
        help="Authentication token sent as a bearer Authorization header",
    )
    parser.add_argument(
        "--debug",
        "-d",
        action="store_true",
        default=None,
        help="Enable debug logging on stderr",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=[f.value for f in LogFormat],
        help="Log output format (default: console)",
    )
    parser.add_argument(
        "--reconnect-interval",
        type=float,
        default=None,
        metavar="MS",
        help="Delay before the first reconnect attempt (default: 1000)",
    )
    parser.add_argument(
        "--max-reconnect-interval",
        type=float,
        default=None,
        metavar="MS",
        help="Upper bound for reconnect delays (default: 30000)",
    )
    parser.add_argument(
        "--reconnect-decay",
        type=float,
        default=None,
        help="Backoff growth factor (default: 1.5)",
    )
    parser.add_argument(
        "--heartbeat-interval",
        type=float,
        default=None,
        metavar="MS",
        help="Interval between pings while connected (default: 30000)",
    )
    parser.add_argument(
        "--env-file",
        type=str,
        default=None,
        help="Path to a .env file to load before reading settings",
    )
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> BridgeSettings:
    """Merge CLI flags over environment settings.

    Raises:
        pydantic.ValidationError: If the resulting settings are invalid.
    """
    load_dotenv(args.env_file or ".env", override=False)

    overrides: dict[str, Any] = {}
    if args.url is not None:
        overrides["url"] = args.url
    if args.token is not None:
        overrides["token"] = args.token
    if args.debug:
        overrides["debug"] = True
    if args.reconnect_interval is not None:
        overrides["reconnect_interval_ms"] = args.reconnect_interval
    if args.max_reconnect_interval is not None:
        overrides["max_reconnect_interval_ms"] = args.max_reconnect_interval
    if args.reconnect_decay is not None:
        overrides["reconnect_decay"] = args.reconnect_decay
    if args.heartbeat_interval is not None:
        overrides["heartbeat_interval_ms"] = args.heartbeat_interval
    if args.env_file:
        overrides["_env_file"] = args.env_file
    return BridgeSettings(**overrides)


def _configure_logging(settings: BridgeSettings, log_format: str | None = None) -> None:
    """Configure structlog on stderr from *settings*."""
    config = LoggingConfig(
        level=settings.log_level,
        format=LogFormat(log_format or settings.log.format),
    )
    configure_bridge_logging(config)


def _install_shutdown_handler(bridge: WebSocketBridge) -> None:
    """Route SIGINT/SIGTERM to ``bridge.shutdown()``.

    On Windows, ``loop.add_signal_handler`` is not supported, so we fall back
    to ``signal.signal`` with a thread-safe ``call_soon_threadsafe``.
    """
    loop = asyncio.get_running_loop()

    def _on_signal(signame: str) -> None:
        logger.info("shutdown_signal_received", signal=signame)
        bridge.shutdown()

    if _IS_WINDOWS:

        def _win_handler(signum: int, _frame: object) -> None:
            loop.call_soon_threadsafe(_on_signal, signal.Signals(signum).name)

        signal.signal(signal.SIGINT, _win_handler)
        with contextlib.suppress(OSError):
            signal.signal(signal.SIGTERM, _win_handler)
    else:
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal, sig.name)


def _format_validation_error(exc: ValidationError) -> str:
    lines = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ())) or "settings"
        lines.append(f"  {field}: {err.get('msg', 'invalid value')}")
    return "\n".join(lines)


async def run(args: argparse.Namespace) -> int:
    """Run the bridge until shutdown.

    Args:
        args: Parsed CLI arguments.

    Returns:
        Process exit code.
    """
    try:
        settings = build_settings(args)
    except ValidationError as exc:
        if args.url is None and any(err.get("loc") == ("url",) for err in exc.errors()):
            print("Error: WebSocket URL is required", file=sys.stderr)
        else:
            print(f"Error: invalid configuration\n{_format_validation_error(exc)}", file=sys.stderr)
        print("Usage: mcp2websocket <url> [options]", file=sys.stderr)
        print("Try: mcp2websocket --help", file=sys.stderr)
        return EXIT_USAGE

    _configure_logging(settings, args.log_format)

    bridge = WebSocketBridge(settings)
    _install_shutdown_handler(bridge)
    return await bridge.run()


def cli() -> None:
    """CLI entry point for ``mcp2websocket`` command."""
    args = parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    cli()
