# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Main entry point for readcue.
Starts the web server that follows a reader through a script.
"""

import argparse
import asyncio
import contextlib
import logging
import signal
from pathlib import Path

from . import debug_log
from .config import (
    Config,
    InvalidTrackingSettings,
    get_config_path,
    get_session_settings,
    get_tracking_settings,
    load_config,
    save_config,
    update_config_tracking,
)
from .server import WebServer
from .tracker import ScriptTracker, TrackerSettings

logger = logging.getLogger(__name__)


class ReadcueApp:
    """
    Holds the tracker and web server and keeps them running until shutdown.
    """

    def __init__(
        self,
        config: Config,
        host: str = "127.0.0.1",
        port: int = 8000,
        script_text: str = ""
    ) -> None:
        self.host: str = host
        self.port: int = port
        self.running: bool = False
        self.shutdown_event: asyncio.Event | None = None

        settings = TrackerSettings.from_config(dict(get_tracking_settings(config)))
        self.tracker: ScriptTracker = ScriptTracker(script_text, settings)
        self.server: WebServer = WebServer(
            self.tracker,
            host=host,
            port=port,
            session_settings=get_session_settings(config),
        )

    async def start(self) -> None:
        """Start the server and wait until asked to stop."""
        self.shutdown_event = asyncio.Event()
        self.running = True
        debug_log.clear_logs()
        logger.info("Starting with %d script words", len(self.tracker.words))
        await self.server.start()
        print(f"Tracking mode: {self.tracker.mode.value}")
        print("Press Ctrl+C to stop")
        await self.shutdown_event.wait()

    def request_stop(self) -> None:
        """Ask the main loop to exit."""
        self.running = False
        if self.shutdown_event is not None:
            self.shutdown_event.set()

    async def stop(self) -> None:
        """Stop the server."""
        self.running = False
        await self.server.stop()
        print("Stopped.")


def build_parser(config: Config) -> argparse.ArgumentParser:
    """Command-line parser, with defaults taken from the config file."""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="readcue - speech-following script highlighter"
    )

    parser.add_argument(
        "--host",
        default=config.get("host", "127.0.0.1"),
        help="Web server host (default: from config or 127.0.0.1)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=config.get("port", 8000),
        help="Web server port (default: from config or 8000)"
    )

    parser.add_argument(
        "--mode",
        choices=["precise", "speed"],
        default=None,
        help="Tracking mode (default: from config or precise)"
    )

    parser.add_argument(
        "--script", "-s",
        type=Path,
        default=config.get("script_path"),
        help="Reference text file to load on startup"
    )

    parser.add_argument(
        "--save-config",
        action="store_true",
        help="Save current CLI options to config file and exit"
    )

    parser.add_argument(
        "--debug-log",
        action="store_true",
        help="Enable debug logging to ./logs/"
    )

    return parser


def main() -> None:
    """Main entry point."""
    # Warnings and errors only on the console
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )

    # The config file supplies the CLI defaults
    config: Config = load_config()
    args: argparse.Namespace = build_parser(config).parse_args()

    try:
        if args.mode:
            config = update_config_tracking(config, {"mode": args.mode})
        TrackerSettings.from_config(dict(get_tracking_settings(config)))
    except InvalidTrackingSettings as e:
        print(f"Error: invalid tracking settings in {get_config_path()}: {e}")
        raise SystemExit(1) from e

    if args.save_config:
        config["host"] = args.host
        config["port"] = args.port
        config["script_path"] = str(args.script) if args.script else None
        if save_config(config):
            print(f"Configuration saved to {get_config_path()}")
        return

    if args.debug_log:
        debug_log.enable()
        print("Debug logging enabled (logs will be saved to ./logs/)")

    script_text: str = ""
    if args.script:
        try:
            script_text = Path(args.script).read_text(encoding="utf-8")
        except OSError as e:
            print(f"Warning: Could not read script {args.script}: {e}")

    app: ReadcueApp = ReadcueApp(
        config,
        host=args.host,
        port=args.port,
        script_text=script_text
    )

    # SIGINT/SIGTERM end the wait in ReadcueApp.start()
    loop: asyncio.AbstractEventLoop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def shutdown(sig: int, frame: object) -> None:
        """Ask the app to stop from the signal handler."""
        print("\nReceived shutdown signal...")
        loop.call_soon_threadsafe(app.request_stop)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        app.running = False
    finally:
        with contextlib.suppress(Exception):
            loop.run_until_complete(app.stop())
        pending: set[asyncio.Task[object]] = asyncio.all_tasks(loop)
        for task in pending:
            task.cancel()
        if pending:
            loop.run_until_complete(asyncio.gather(
                *pending, return_exceptions=True))
        loop.close()


if __name__ == "__main__":
    main()
