"""Utility helpers for reading crash bridge configuration."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import (
    Any,
    Final,
)

from dotenv import find_dotenv, load_dotenv

from .const import ENV_LOG_STREAM, ENV_PREFIX

logger = logging.getLogger(__name__)

# Variables sharing the prefix that are consumed outside RuntimeConfig.
_NON_CONFIG_VARIABLES: Final[frozenset[str]] = frozenset({ENV_LOG_STREAM})


def env_name(key: str) -> str:
    """Return the environment variable carrying configuration *key*."""
    return f"{ENV_PREFIX}{key.upper()}"


def get_env_config(
    environ: Mapping[str, str] | None = None,
    *,
    dotenv_path: str | None = None,
) -> dict[str, Any]:
    """Collect ``CRASHBRIDGE_*`` variables into a raw configuration mapping.

    When *environ* is omitted the process environment is used, after seeding it
    from a ``.env`` file (searched from the working directory unless
    *dotenv_path* is given). Values already present in the environment win over
    the file.
    """
    if environ is None:
        path = dotenv_path if dotenv_path is not None else find_dotenv(usecwd=True)
        if path and load_dotenv(path, override=False):
            logger.debug("Loaded configuration overrides from %s", path)
        environ = os.environ

    raw: dict[str, Any] = {}
    for name, value in environ.items():
        if not name.startswith(ENV_PREFIX) or name in _NON_CONFIG_VARIABLES:
            continue
        key = name[len(ENV_PREFIX) :].lower()
        if key:
            raw[key] = value
    return raw


__all__: Final[tuple[str, ...]] = (
    "env_name",
    "get_env_config",
)
