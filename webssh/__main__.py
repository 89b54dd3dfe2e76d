"""CLI entry point: python -m webssh"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="webssh",
        description="Serve an interactive terminal over a WebSocket",
    )
    parser.add_argument("--host", default=None, help="Address to listen on")
    parser.add_argument("--port", type=int, default=None, help="Port to listen on")
    parser.add_argument(
        "--command", default=None,
        help="Command to run in the terminal (default: $WEBSSH_COMMAND or /bin/bash)",
    )
    parser.add_argument(
        "--record", action="store_true",
        help="Record sessions as asciicast files",
    )
    parser.add_argument(
        "--recordings-dir", default=None,
        help="Directory for session recordings",
    )
    parser.add_argument(
        "--connect", default=None, metavar="URL",
        help="Dial out to a relay WebSocket instead of serving HTTP",
    )
    return parser.parse_args(argv)


def apply_args(args: argparse.Namespace) -> None:
    """Override the settings object with values given on the command line."""
    from .config import config

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.command is not None:
        config.command = args.command
    if args.record:
        config.record = True
    if args.recordings_dir is not None:
        config.recordings_dir = args.recordings_dir
    if args.connect is not None:
        config.dial_url = args.connect


def _run_dialer() -> None:
    from .config import config
    from .dial import Dialer

    dialer = Dialer(config)
    loop = asyncio.new_event_loop()

    def _shutdown(sig: int) -> None:
        logging.info("Received signal %s, shutting down...", sig)
        dialer.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _shutdown, sig)

    try:
        loop.run_until_complete(dialer.run())
    finally:
        loop.close()


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    apply_args(parse_args(argv))

    from .config import config

    if config.dial_url:
        _run_dialer()
        return

    import uvicorn

    from .main import app

    uvicorn.run(app, host=config.host, port=config.port, log_config=None)


if __name__ == "__main__":
    main()
