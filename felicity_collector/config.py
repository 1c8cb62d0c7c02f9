"""Configuration loader for Felicity Collector."""

import logging
import os
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

import yaml

from pyfelicity import (
    DEFAULT_PORT,
    DEFAULT_TIMEOUT_MS,
    QUERY_REAL_INFO,
    DeviceTarget,
    QueryOptions,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class FelicityConfig:
    """Battery fleet configuration."""

    devices: list[DeviceTarget]
    query: str = QUERY_REAL_INFO.decode("ascii")
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    delimiter: Optional[str] = "}"
    # How many closing braces to try appending before giving up on a reply
    brace_repair_attempts: int = 1
    poll_interval: int = 0  # 0 = single cycle, then exit

    @property
    def payload(self) -> bytes:
        return self.query.encode("utf-8")

    @property
    def query_options(self) -> QueryOptions:
        delimiter = self.delimiter.encode("utf-8") if self.delimiter else None
        return QueryOptions(timeout_ms=self.timeout_ms, delimiter=delimiter)


@dataclass
class MQTTConfig:
    """MQTT broker configuration."""

    enabled: bool = True
    host: str = "localhost"
    port: int = 1883
    username: str = ""
    password: str = ""
    base_topic: str = ""  # empty = topics are "<host-with-dashes>/<field>"
    retain: bool = False
    qos: int = 0
    client_id: str = ""
    reconnect_delay: int = 5


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    file: str = ""
    max_bytes: int = 5 * 1024 * 1024
    backup_count: int = 3


@dataclass
class Config:
    """Main configuration container."""

    felicity: FelicityConfig
    mqtt: MQTTConfig = field(default_factory=MQTTConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _parse_devices(raw: Any) -> list[DeviceTarget]:
    if not raw or not isinstance(raw, list):
        raise ValueError("felicity.devices must be a non-empty list")

    devices = []
    for idx, entry in enumerate(raw):
        if isinstance(entry, str):
            entry = {"host": entry}
        if not isinstance(entry, dict) or not entry.get("host"):
            raise ValueError(f"felicity.devices[{idx}].host is required")

        port = entry.get("port", DEFAULT_PORT)
        if not _is_int(port) or not 0 < port < 65536:
            raise ValueError(f"felicity.devices[{idx}].port is invalid: {port!r}")

        devices.append(DeviceTarget(host=str(entry["host"]), port=port))
    return devices


def parse_config(data: dict[str, Any]) -> Config:
    """Build a Config from already-loaded YAML data.

    Raises:
        ValueError: If a required value is missing or invalid.
    """
    # Parse felicity section
    felicity_data = data.get("felicity") or {}
    felicity = FelicityConfig(
        devices=_parse_devices(felicity_data.get("devices")),
        query=felicity_data.get("query", QUERY_REAL_INFO.decode("ascii")),
        timeout_ms=felicity_data.get("timeout_ms", DEFAULT_TIMEOUT_MS),
        delimiter=felicity_data.get("delimiter", "}"),
        brace_repair_attempts=felicity_data.get("brace_repair_attempts", 1),
        poll_interval=felicity_data.get("poll_interval", 0),
    )
    if not _is_int(felicity.timeout_ms) or felicity.timeout_ms <= 0:
        raise ValueError("felicity.timeout_ms must be a positive integer")
    if not felicity.query:
        raise ValueError("felicity.query must not be empty")
    if not _is_int(felicity.brace_repair_attempts) or felicity.brace_repair_attempts < 0:
        raise ValueError("felicity.brace_repair_attempts must not be negative")
    if not _is_int(felicity.poll_interval) or felicity.poll_interval < 0:
        raise ValueError("felicity.poll_interval must not be negative")

    # Parse mqtt section
    mqtt_data = data.get("mqtt") or {}
    mqtt = MQTTConfig(
        enabled=mqtt_data.get("enabled", True),
        host=mqtt_data.get("host", "localhost"),
        port=mqtt_data.get("port", 1883),
        username=mqtt_data.get("username", ""),
        password=mqtt_data.get("password", ""),
        base_topic=(mqtt_data.get("base_topic") or "").strip("/"),
        retain=mqtt_data.get("retain", False),
        qos=mqtt_data.get("qos", 0),
        client_id=mqtt_data.get("client_id", ""),
        reconnect_delay=mqtt_data.get("reconnect_delay", 5),
    )
    if mqtt.qos not in (0, 1, 2):
        raise ValueError(f"mqtt.qos must be 0, 1 or 2, got {mqtt.qos!r}")

    # Parse logging section
    log_data = data.get("logging") or {}
    logging_config = LoggingConfig(
        level=log_data.get("level", "INFO"),
        file=log_data.get("file", ""),
        max_bytes=log_data.get("max_bytes", 5 * 1024 * 1024),
        backup_count=log_data.get("backup_count", 3),
    )

    return Config(felicity=felicity, mqtt=mqtt, logging=logging_config)


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses the FELICITY_CONFIG
                     env var or config.yaml in the current directory.

    Returns:
        Config object with all settings.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ValueError: If config file is invalid.
    """
    if config_path is None:
        config_path = os.environ.get("FELICITY_CONFIG", "config.yaml")

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Config file is not valid YAML: {e}") from e

    if not data:
        raise ValueError("Config file is empty")
    if not isinstance(data, dict):
        raise ValueError("Config file must contain a mapping")

    return parse_config(data)


def setup_logging(config: LoggingConfig, verbose: bool = False) -> None:
    """Configure logging based on config."""
    level = logging.DEBUG if verbose else getattr(logging, config.level.upper(), logging.INFO)

    handlers: list[logging.Handler] = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handlers.append(console_handler)

    # Rotating file handler (if configured)
    if config.file:
        log_dir = os.path.dirname(config.file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            config.file,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)
