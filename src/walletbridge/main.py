"""Main entry point - runs the bridge and its control API.

Usage:
    python -m walletbridge --queue-url http://127.0.0.1:9545 --rpc-url http://127.0.0.1:8545

Environment variables (see walletbridge.config):
    QUEUE_URL, SESSION_TOKEN, POLL_INTERVAL, RPC_URLS, DRY_RUN, API_HOST, API_PORT
"""

import argparse
import asyncio
import logging
import signal
from typing import Optional

import uvicorn

from walletbridge.api.app import create_app
from walletbridge.bridge import WalletBridge
from walletbridge.config import Settings, get_settings
from walletbridge.providers.discovery import AnnouncementBus
from walletbridge.providers.jsonrpc import JsonRpcProvider, jsonrpc_detail
from walletbridge.providers.registry import LazyHandle
from walletbridge.providers.simulated import SimulatedProvider, simulated_detail

logger = logging.getLogger(__name__)


class Application:
    """Runs the wallet bridge and the control API in one event loop."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.bus = AnnouncementBus()
        self.bridge: Optional[WalletBridge] = None
        self._rpc_providers: list[JsonRpcProvider] = []
        self._shutdown_event = asyncio.Event()

    def _serve_providers(self) -> None:
        for rpc_url in self.settings.rpc_url_list:
            detail = jsonrpc_detail(rpc_url, timeout=self.settings.http_timeout)
            self._rpc_providers.append(detail.provider)
            self.bus.serve(detail)

    def _embedded_wallet(self) -> Optional[LazyHandle]:
        if not self.settings.dry_run:
            return None

        def create() -> SimulatedProvider:
            detail = simulated_detail()
            self.bus.serve(detail)
            return detail.provider

        return LazyHandle(create)

    async def start(self) -> None:
        """Start all services and wait for a shutdown signal."""
        log_level = logging.DEBUG if self.settings.debug else logging.INFO
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

        logger.info("Starting walletbridge...")
        logger.info(f"Queue: {self.settings.queue_base}")

        self._serve_providers()
        self.bridge = WalletBridge(
            settings=self.settings,
            bus=self.bus,
            embedded=self._embedded_wallet(),
        )
        if not self.bridge.registry.list():
            logger.warning("No wallet providers configured (use --rpc-url or --dry-run)")

        api_task = asyncio.create_task(self._run_api())
        await self._shutdown_event.wait()

        api_task.cancel()
        await asyncio.gather(api_task, return_exceptions=True)
        await self._cleanup()

    async def _run_api(self) -> None:
        """Run the control API; the app lifespan starts and stops the bridge."""
        try:
            app = create_app(self.bridge)
            config = uvicorn.Config(
                app,
                host=self.settings.api_host,
                port=self.settings.api_port,
                log_level="debug" if self.settings.debug else "info",
            )
            server = uvicorn.Server(config)
            logger.info(f"Starting control API on {self.settings.api_host}:{self.settings.api_port}")
            await server.serve()
        except asyncio.CancelledError:
            logger.info("Control API cancelled")
        except Exception as e:
            logger.error(f"Control API error: {e}")
            raise
        finally:
            self._shutdown_event.set()

    async def _cleanup(self) -> None:
        logger.info("Cleaning up...")
        if self.bridge is not None and self.bridge.loop.running:
            await self.bridge.close()
        for provider in self._rpc_providers:
            await provider.close()
        logger.info("Shutdown complete")

    def shutdown(self) -> None:
        logger.info("Shutdown requested")
        self._shutdown_event.set()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bridge a wallet provider to a signing request queue")
    parser.add_argument("--queue-url", help="Request queue base URL")
    parser.add_argument("--session-token", help="Session token for the request queue")
    parser.add_argument("--interval", type=float, help="Seconds between reconciliation ticks")
    parser.add_argument(
        "--rpc-url",
        action="append",
        default=[],
        help="JSON-RPC wallet endpoint to announce (repeatable)",
    )
    parser.add_argument("--dry-run", action="store_true", help="Announce a simulated wallet")
    parser.add_argument("--host", help="Control API host")
    parser.add_argument("--port", type=int, help="Control API port")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    """Overlay command line arguments on environment settings."""
    overrides = {}
    if args.queue_url:
        overrides["queue_url"] = args.queue_url
    if args.session_token:
        overrides["session_token"] = args.session_token
    if args.interval is not None:
        overrides["poll_interval"] = args.interval
    if args.rpc_url:
        overrides["rpc_urls"] = ",".join(args.rpc_url)
    if args.dry_run:
        overrides["dry_run"] = True
    if args.host:
        overrides["api_host"] = args.host
    if args.port is not None:
        overrides["api_port"] = args.port
    if args.debug:
        overrides["debug"] = True
    return get_settings().model_copy(update=overrides)


async def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point."""
    app = Application(build_settings(parse_args(argv)))

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, app.shutdown)
        except NotImplementedError:
            # Windows
            pass

    await app.start()


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
