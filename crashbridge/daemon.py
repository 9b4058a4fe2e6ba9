#!/usr/bin/env python3
"""Entry point for the crash bridge.

Each run is short-lived: load configuration, optionally send a
smoke-test notification, simulate the intrusion sensor crash, report it and
exit non-zero. A crash that has been reported is still a crash.

Flow:
    main() -> load_runtime_config -> configure_logging -> CrashReporter.run
        ├── smoke test (optional)
        ├── simulate_garage_crash -> SensorCrash
        └── DeliveryClient.submit -> DeliveryOutcome
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from typing import NoReturn

import uvloop

from crashbridge import __version__
from crashbridge.config.logging import configure_logging
from crashbridge.config.settings import ConfigurationError, RuntimeConfig, load_runtime_config
from crashbridge.protocol.structures import DeliveryOutcome, Fault
from crashbridge.services import DeliveryClient, FaultTransport, TelemetrySource
from crashbridge.simulation import SensorCrash, simulate_garage_crash
from crashbridge.transport import MqttFaultTransport, RecordingTransport

logger = logging.getLogger("crashbridge")

SMOKE_TEST_MESSAGE = "Test error"
SMOKE_TEST_LABEL = "smoke-test"
EXIT_CRASH_REPORTED = 1


class CrashReporter:
    """Drive one reporting run against a fault transport."""

    def __init__(
        self,
        config: RuntimeConfig,
        transport: FaultTransport,
        *,
        telemetry: TelemetrySource | None = None,
    ) -> None:
        self.config = config
        self.client = DeliveryClient(config, transport, telemetry=telemetry)

    async def smoke_test(self) -> DeliveryOutcome:
        logger.info("Sending smoke test notification...")
        return await self.client.submit(Fault(message=SMOKE_TEST_MESSAGE), SMOKE_TEST_LABEL)

    async def run(self, *, smoke_test: bool = False) -> DeliveryOutcome | None:
        """Return the crash delivery outcome, or None if nothing crashed."""
        try:
            if smoke_test:
                await self.smoke_test()
            logger.info("Simulating STM32WB55 intrusion sensor crash...")
            await simulate_garage_crash(self.config)
        except SensorCrash as exc:
            logger.error("Crash captured locally. Uploading to crash backend...")
            return await self.client.submit(Fault.from_exception(exc), self.config.context_name)
        finally:
            await self.client.aclose()
        return None


def build_transport(config: RuntimeConfig, *, dry_run: bool = False) -> FaultTransport:
    if dry_run:
        logger.info("Dry run: crash reports are recorded locally, not published.")
        return RecordingTransport(config)
    return MqttFaultTransport(config)


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="crashbridge",
        description="Report STM32WB55 intrusion sensor crashes to the crash backend.",
    )
    parser.add_argument(
        "--smoke-test",
        action="store_true",
        help="send a plain test notification before the simulated crash",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="record the report in memory instead of publishing it",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


async def run_reporter(config: RuntimeConfig, *, smoke_test: bool = False, dry_run: bool = False) -> int:
    """Run one reporting cycle and return the process exit status."""
    transport = build_transport(config, dry_run=dry_run)
    reporter = CrashReporter(config, transport)
    outcome = await reporter.run(smoke_test=smoke_test)
    if outcome is None:
        return 0
    if dry_run and isinstance(transport, RecordingTransport) and transport.published:
        logger.info("Dry run report size: %d bytes", len(transport.published[-1].payload))
    return EXIT_CRASH_REPORTED


def main(argv: Sequence[str] | None = None) -> NoReturn:
    args = _parse_args(argv)

    try:
        config = load_runtime_config()
    except ConfigurationError as exc:
        configure_logging()
        logger.critical("%s", exc)
        sys.exit(1)
    configure_logging(config)

    logger.info(
        "Starting crash bridge %s. Backend: %s:%d (topic prefix %s)",
        __version__,
        config.mqtt_host,
        config.mqtt_port,
        config.mqtt_topic,
    )

    try:
        status = asyncio.run(
            run_reporter(config, smoke_test=args.smoke_test, dry_run=args.dry_run),
            loop_factory=uvloop.new_event_loop,
        )
    except KeyboardInterrupt:
        logger.info("Crash bridge interrupted by user.")
        sys.exit(1)
    except RuntimeError as exc:
        logger.critical("Startup aborted due to runtime error: %s", exc)
        sys.exit(1)
    sys.exit(status)


if __name__ == "__main__":
    main()
