"""Main entry point for Felicity Collector."""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from .config import Config, load_config, setup_logging
from .mqtt_client import MQTTClient, PrintPublisher, Publisher
from .poller import FleetPoller, PollSummary

logger = logging.getLogger(__name__)


class Application:
    """Main application class with graceful shutdown handling."""

    def __init__(self, config: Config, once: bool = False, dry_run: bool = False):
        """Initialize the application.

        Args:
            config: Loaded configuration.
            once: Run a single poll cycle even if poll_interval is set.
            dry_run: Print messages to stdout instead of publishing.
        """
        self.config = config
        self.once = once or config.felicity.poll_interval <= 0
        self.dry_run = dry_run
        self.mqtt: Optional[MQTTClient] = None
        self.poller: Optional[FleetPoller] = None
        self._shutdown_event: Optional[asyncio.Event] = None

    async def start(self) -> None:
        """Start all components."""
        publisher: Publisher
        if self.dry_run or not self.config.mqtt.enabled:
            publisher = PrintPublisher()
        else:
            self.mqtt = MQTTClient(self.config.mqtt)
            await self.mqtt.start()
            publisher = self.mqtt

        felicity = self.config.felicity
        self.poller = FleetPoller(
            targets=felicity.devices,
            publisher=publisher,
            payload=felicity.payload,
            options=felicity.query_options,
            brace_repair_attempts=felicity.brace_repair_attempts,
        )
        logger.info(
            f"Felicity collector started ({len(felicity.devices)} devices, "
            f"{'single cycle' if self.once else f'every {felicity.poll_interval}s'})"
        )

    async def stop(self) -> None:
        """Stop all components gracefully."""
        if self.mqtt:
            await self.mqtt.stop()
            self.mqtt = None
        logger.info("Felicity collector stopped")

    async def run(self) -> Optional[PollSummary]:
        """Run poll cycles until done or a shutdown signal arrives.

        Returns:
            Summary of the last completed cycle.
        """
        self._shutdown_event = asyncio.Event()
        await self.start()

        summary = None
        try:
            while True:
                summary = await self.poller.poll()
                if self.once:
                    break
                try:
                    await asyncio.wait_for(
                        self._shutdown_event.wait(),
                        timeout=self.config.felicity.poll_interval,
                    )
                    break
                except asyncio.TimeoutError:
                    pass
        finally:
            await self.stop()
        return summary

    def shutdown(self) -> None:
        """Signal the application to shutdown."""
        logger.info("Shutdown signal received")
        if self._shutdown_event:
            self._shutdown_event.set()


def setup_signal_handlers(app: Application, loop: asyncio.AbstractEventLoop) -> None:
    """Setup signal handlers for graceful shutdown."""
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.shutdown)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Felicity Collector - Poll Felicity batteries and publish to MQTT"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=str,
        default=None,
        help="Path to configuration file (default: config.yaml or FELICITY_CONFIG env)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single poll cycle and exit, even if poll_interval is set",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print topics and values instead of publishing to MQTT",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        logging.basicConfig()
        logger.error(f"Configuration error: {e}")
        return 1
    except ValueError as e:
        logging.basicConfig()
        logger.error(f"Invalid configuration: {e}")
        return 1

    setup_logging(config.logging, verbose=args.verbose)

    app = Application(config, once=args.once, dry_run=args.dry_run)
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    # Setup signal handlers (Unix only)
    if sys.platform != "win32":
        setup_signal_handlers(app, loop)

    try:
        loop.run_until_complete(app.run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        loop.run_until_complete(app.stop())
    finally:
        loop.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
