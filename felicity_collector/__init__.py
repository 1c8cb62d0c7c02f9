"""Felicity Collector - Poll Felicity batteries and publish their status to MQTT."""

from .config import Config, load_config, setup_logging
from .mqtt_client import MQTTClient, PrintPublisher, Publisher
from .poller import FleetPoller, PollSummary, TargetResult

__version__ = "1.0.0"
__all__ = [
    "__version__",
    "Config",
    "load_config",
    "setup_logging",
    "MQTTClient",
    "PrintPublisher",
    "Publisher",
    "FleetPoller",
    "PollSummary",
    "TargetResult",
]
