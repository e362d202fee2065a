#!/usr/bin/env python3

import argparse
import logging
import signal
import sys
import threading
import time
from typing import Optional

from clipboard import ClipboardAdapter, get_clipboard
from services.event_bus import EventChannel
from services.gateway import CommandGateway
from services.optimizer_service import OptimizationPipeline
from utils.autostart import get_autostart_manager
from utils.config import OptimizerConfig

logger = logging.getLogger(__name__)


class ClipSqueezeApp:

    def __init__(
        self,
        config: OptimizerConfig,
        serve_api: bool = True,
        clipboard: Optional[ClipboardAdapter] = None,
        quiet: bool = False,
    ):
        self.config = config
        self.serve_api = serve_api
        self.quiet = quiet
        self.clipboard = clipboard
        self.events = EventChannel()
        self.pipeline: Optional[OptimizationPipeline] = None
        self.gateway: Optional[CommandGateway] = None
        self._api_server = None
        self._api_thread: Optional[threading.Thread] = None
        self.running = False

    def start(self):
        if self.running:
            return

        self.running = True

        try:
            if self.clipboard is None:
                self.clipboard = get_clipboard(poll_interval=self.config.poll_interval)

            self.pipeline = OptimizationPipeline(
                self.clipboard, events=self.events, config=self.config)
            self.gateway = CommandGateway(self.pipeline, get_autostart_manager())
            self.pipeline.start()

            if self.serve_api:
                self._start_api()

            if not self.quiet:
                print("ClipSqueeze running. Press Ctrl+C to stop")

        except Exception as e:
            logger.error(f"Error starting: {e}")
            self.stop()
            raise

    def _start_api(self):
        import uvicorn
        from api import create_app

        app = create_app(self.gateway)
        server_config = uvicorn.Config(
            app, host=self.config.api_host, port=self.config.api_port, log_level="warning")
        self._api_server = uvicorn.Server(server_config)
        self._api_thread = threading.Thread(
            target=self._api_server.run, name="gateway-api", daemon=True)
        self._api_thread.start()
        logger.info(f"Gateway listening on http://{self.config.api_host}:{self.config.api_port}")

    def stop(self):
        if not self.running:
            return

        self.running = False

        if self._api_server is not None:
            self._api_server.should_exit = True
            if self._api_thread is not None:
                self._api_thread.join(timeout=5.0)
            self._api_server = None
            self._api_thread = None

        if self.pipeline:
            self.pipeline.stop()

        if self.clipboard:
            self.clipboard.close()

        if not self.quiet:
            print("ClipSqueeze stopped")

    def run_forever(self):
        self.start()

        try:
            while self.running:
                time.sleep(1.0)
        except KeyboardInterrupt:
            print("\nStopping...")
        finally:
            self.stop()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="ClipSqueeze - shrink images on the clipboard by re-encoding them as JPEG"
    )

    parser.add_argument(
        "-q", "--quality",
        type=int,
        default=None,
        help="JPEG quality for re-encoded images (default: 60)"
    )

    parser.add_argument(
        "--min-bytes",
        type=int,
        default=None,
        help="Ignore images smaller than this many bytes (default: 10240)"
    )

    parser.add_argument(
        "-i", "--poll-interval",
        type=float,
        default=None,
        help="Clipboard polling interval in seconds (default: 0.25)"
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Gateway bind address (default: 127.0.0.1)"
    )

    parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help="Gateway port (default: 3001)"
    )

    parser.add_argument(
        "--no-api",
        action="store_true",
        help="Run without the HTTP/websocket gateway"
    )

    parser.add_argument(
        "--hidden",
        action="store_true",
        help="Started by the login item; suppresses console banners"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose debug logging"
    )

    return parser.parse_args(argv)


def build_config(args) -> OptimizerConfig:
    return OptimizerConfig.from_env().with_overrides(
        jpeg_quality=args.quality,
        min_bytes=args.min_bytes,
        poll_interval=args.poll_interval,
        api_host=args.host,
        api_port=args.port,
    )


def main(argv=None):
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    try:
        config = build_config(args)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    app = ClipSqueezeApp(config, serve_api=not args.no_api, quiet=args.hidden)

    def signal_handler(signum, frame):
        app.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        app.run_forever()
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
