"""Synthetic fault generator standing in for a real device crash feed."""

from __future__ import annotations

from typing import NoReturn

from .config.const import DEFAULT_SENSOR_ID
from .config.settings import RuntimeConfig

WATCHDOG_CRASH_MESSAGE = "Garage intrusion MCU watchdog reset"
WATCHDOG_CRASH_CODE = "GARAGE_SENSOR_WATCHDOG"
WATCHDOG_CRASH_DETAIL = "BLE link lost and watchdog fired while processing intrusion alert."


class SensorCrash(Exception):
    """A crash reported by an intrusion sensor node."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        sensor_id: str | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.sensor_id = sensor_id
        self.detail = detail


async def simulate_garage_crash(config: RuntimeConfig) -> NoReturn:
    raise SensorCrash(
        WATCHDOG_CRASH_MESSAGE,
        code=WATCHDOG_CRASH_CODE,
        sensor_id=config.sensor_id or DEFAULT_SENSOR_ID,
        detail=WATCHDOG_CRASH_DETAIL,
    )


__all__ = ["SensorCrash", "simulate_garage_crash"]
