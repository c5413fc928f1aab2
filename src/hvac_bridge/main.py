from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

import dotenv
import uvloop

from hvac_bridge.bridge import HvacBridge
from hvac_bridge.const import HVAC_DEBUG, HVAC_ENABLE_METRICS, HVAC_METRICS_PORT, HVAC_VERSION
from hvac_bridge.logging_abstraction import correlation_scope, get_logger, set_package_level
from hvac_bridge.metrics import start_metrics_server
from hvac_bridge.mqtt.client import MQTTClient
from hvac_bridge.registry import load_registry
from hvac_bridge.structs import BridgeSettings

logger = get_logger(__name__)

# Suppress verbose MQTT library warnings
mqtt_logger = logging.getLogger("mqtt")
mqtt_logger.setLevel(logging.ERROR)
mqtt_logger.propagate = False


class BridgeController:
    """Runs the bridge core and the MQTT client until a stop signal arrives."""

    lp: str = "BridgeController:"

    def __init__(self, settings: BridgeSettings) -> None:
        self.settings = settings
        self.bridge: HvacBridge | None = None
        self.mqtt_client: MQTTClient | None = None
        self._stop_event: asyncio.Event | None = None

    def request_stop(self, sig: signal.Signals | None = None) -> None:
        if sig is not None:
            logger.info("%s Caught %s, shutting down...", self.lp, sig.name)
        if self._stop_event is not None:
            self._stop_event.set()

    async def run(self) -> None:
        lp = f"{self.lp}run:"
        env = self.settings.env
        registry = load_registry(env.registry_file)
        self._stop_event = asyncio.Event()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.request_stop, sig)
        logger.debug("%s Signal handlers configured for SIGINT & SIGTERM", lp)

        if HVAC_ENABLE_METRICS:
            start_metrics_server(HVAC_METRICS_PORT)
            logger.info("%s Prometheus metrics on :%s", lp, HVAC_METRICS_PORT)

        self.bridge = HvacBridge(env, registry)
        self.mqtt_client = MQTTClient(self.bridge)
        await self.bridge.start()
        self.mqtt_client.start_task = asyncio.create_task(self.mqtt_client.start(), name="hvac_mqtt_start")
        logger.info("%s Bridge and MQTT client started", lp)

        try:
            await self._stop_event.wait()
        finally:
            await self.stop()

    async def stop(self) -> None:
        logger.info("%s Shutting down HVAC bridge...", self.lp)
        if self.mqtt_client is not None:
            await self.mqtt_client.stop()
        if self.bridge is not None:
            await self.bridge.stop()


def parse_cli(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bridge a split-system AC unit to MQTT")
    parser.add_argument("--hvac-host", help="Broadcast (or unit) address for discovery")
    parser.add_argument("--discovery-port", type=int, help="UDP discovery port")
    parser.add_argument("--status-port", type=int, help="TCP status/command port")
    parser.add_argument("--interval", type=float, help="Status poll interval in seconds")
    parser.add_argument("--registry", help="YAML file overriding the field layout")
    parser.add_argument("--mqtt-broker-url", help="e.g. mqtt://localhost:1883")
    parser.add_argument("--mqtt-topic-prefix", help="Prefix for every MQTT topic")
    parser.add_argument("--mqtt-username")
    parser.add_argument("--mqtt-password")
    parser.add_argument("-D", "--debug", action="store_true", help="Enable debug mode")
    parser.add_argument("--env", help="Path to the environment file", default=None, type=Path)
    return parser.parse_args(argv)


def load_env_file(env_file: Path, settings: BridgeSettings) -> bool:
    env_path = env_file.expanduser().resolve()
    if not env_path.exists():
        logger.error("Environment file not found", extra={"path": str(env_path)})
        return False
    if not dotenv.load_dotenv(env_path, override=True):
        logger.warning("No environment variables loaded from file", extra={"path": str(env_path)})
        return False
    logger.info(" Environment variables loaded", extra={"source": str(env_path)})
    settings.reload_env()
    return True


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the HVAC bridge."""
    with correlation_scope():
        logger.info("Starting HVAC bridge", extra={"version": HVAC_VERSION})
        args = parse_cli(argv)

        if args.debug or HVAC_DEBUG:
            set_package_level(logging.DEBUG)
            logger.info("Debug logging enabled")

        settings = BridgeSettings()
        if args.env:
            load_env_file(args.env, settings)
        settings.apply_cli_args(args)

        controller = BridgeController(settings)
        asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
        try:
            asyncio.run(controller.run())
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, shutting down...")
        except (OSError, ValueError) as e:
            logger.error(" Fatal error: %s", e, extra={"error": type(e).__name__})
            return 1
        else:
            logger.info(" HVAC bridge stopped gracefully")
        return 0


if __name__ == "__main__":
    sys.exit(main())
