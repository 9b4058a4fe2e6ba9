"""Configuration helpers for the crash bridge."""

from .const import *  # noqa: F401, F403
from .common import *  # noqa: F401, F403
from . import logging, settings  # noqa: F401  # pyright: ignore[reportUnusedImport]
