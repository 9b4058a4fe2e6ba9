"""Crash Bridge Package Initialisation."""

__version__ = "1.0.0"

import logging
import sys

logger = logging.getLogger(__name__)


def _check_dependencies():
    """Verify the MQTT client library is recent enough for the transport."""
    try:
        import paho.mqtt.client as mqtt

        # aiomqtt 2.x drives paho through CallbackAPIVersion.VERSION2; paho 1.x
        # lacks it and fails later with attribute errors.
        if not hasattr(mqtt, "CallbackAPIVersion"):
            logger.critical(
                "FATAL: Incompatible paho-mqtt version detected. "
                "The crash bridge requires paho-mqtt 2.x with CallbackAPIVersion support. "
                "Install paho-mqtt >= 2.0.0."
            )
            sys.exit(1)

    except ImportError:
        # If imports are missing entirely, Python will raise ImportError naturally later.
        pass


# Run checks on import to ensure fail-fast behavior
_check_dependencies()
