"""
Configuration constants for Tether.

Link constants, service variant identifiers, paths, and tunable parameters
are centralized here.
"""

from __future__ import annotations

import os
import uuid
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import yaml

from .exceptions import ConfigError, UnknownVariantError


# ---------------- Link Constants ----------------

READ_CAP = 2048  # Max bytes taken from a single read call
LINE_TERMINATOR = 10  # b"\n"
PACING_DELAY = 0.1  # Seconds slept between reads (0 disables)
MAX_FRAME_SIZE = 64 * 1024  # Accumulated inbound bytes before overflow drop
EVENT_QUEUE_SIZE = 1024  # Max undelivered events in a QueueEventSink


# ---------------- Service Variants ----------------

VARIANT_SECURE = "secure"
VARIANT_INSECURE = "insecure"

SERVICE_NAME_SECURE = "TetherSecure"
SERVICE_NAME_INSECURE = "TetherInsecure"

# Serial Port Profile UUID for the secure variant; the insecure variant gets
# its own identifier so the two service records never collide.
SERVICE_ID_SECURE = "00001101-0000-1000-8000-00805F9B34FB"
SERVICE_ID_INSECURE = "8CE255C0-200A-11E0-AC64-0800200C9A66"


# ---------------- TCP Transport ----------------

TCP_HOST = "127.0.0.1"
TCP_PORT_SECURE = 7301
TCP_PORT_INSECURE = 7302
TCP_CONNECT_TIMEOUT = 10.0
TCP_ACCEPT_POLL = 0.5  # Accept timeout used to notice a closed listener


# ---------------- File Paths ----------------

CONFIG_DIR = os.path.join(os.path.expanduser("~"), ".tether")
LOG_DIR = os.path.join(CONFIG_DIR, "logs")
CONFIG_FILE = os.path.join(CONFIG_DIR, "config.yaml")


# ---------------- Logging Configuration ----------------

LOG_FILE = os.path.join(LOG_DIR, "tether.log")
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB per log file
LOG_BACKUP_COUNT = 5  # Keep 5 rotated log files


@dataclass(frozen=True)
class ServiceVariant:
    """A named transport configuration with its own identifier."""

    name: str
    service_name: str
    service_id: str
    secure: bool = True
    port: int = 0  # Used by the TCP transport only

    @property
    def label(self) -> str:
        """Display label, e.g. ``Secure``."""
        return self.name.capitalize()


def _validate_service_id(key: str, value: str) -> str:
    try:
        return str(uuid.UUID(str(value))).upper()
    except ValueError:
        raise ConfigError(key, f"'{value}' is not a UUID") from None


def _validate_port(key: str, value: int) -> int:
    if not isinstance(value, int) or not 0 <= value <= 65535:
        raise ConfigError(key, f"port {value!r} out of range 0-65535")
    return value


@dataclass
class LinkConfig:
    """Tunable parameters for a ConnectionManager and its transports."""

    secure_name: str = SERVICE_NAME_SECURE
    secure_id: str = SERVICE_ID_SECURE
    secure_port: int = TCP_PORT_SECURE
    insecure_name: str = SERVICE_NAME_INSECURE
    insecure_id: str = SERVICE_ID_INSECURE
    insecure_port: int = TCP_PORT_INSECURE
    enabled_variants: Tuple[str, ...] = (VARIANT_SECURE, VARIANT_INSECURE)
    pacing_delay: float = PACING_DELAY
    read_cap: int = READ_CAP
    max_frame_size: int = MAX_FRAME_SIZE
    event_queue_size: int = EVENT_QUEUE_SIZE
    tcp_host: str = TCP_HOST
    connect_timeout: float = TCP_CONNECT_TIMEOUT

    def __post_init__(self):
        """Validate and normalize values."""
        self.secure_id = _validate_service_id("secure_id", self.secure_id)
        self.insecure_id = _validate_service_id("insecure_id", self.insecure_id)
        self.secure_port = _validate_port("secure_port", self.secure_port)
        self.insecure_port = _validate_port("insecure_port", self.insecure_port)

        self.enabled_variants = tuple(self.enabled_variants)
        for name in self.enabled_variants:
            if name not in (VARIANT_SECURE, VARIANT_INSECURE):
                raise UnknownVariantError(name)

        if self.pacing_delay < 0:
            raise ConfigError("pacing_delay", "must be >= 0")
        if self.read_cap <= 0:
            raise ConfigError("read_cap", "must be positive")
        if self.max_frame_size < self.read_cap:
            raise ConfigError("max_frame_size", f"must be >= read_cap ({self.read_cap})")
        if self.event_queue_size <= 0:
            raise ConfigError("event_queue_size", "must be positive")
        if self.connect_timeout <= 0:
            raise ConfigError("connect_timeout", "must be positive")

    def variant(self, name: str) -> ServiceVariant:
        """Build the ServiceVariant for ``name``."""
        if name == VARIANT_SECURE:
            return ServiceVariant(
                name=VARIANT_SECURE,
                service_name=self.secure_name,
                service_id=self.secure_id,
                secure=True,
                port=self.secure_port,
            )
        if name == VARIANT_INSECURE:
            return ServiceVariant(
                name=VARIANT_INSECURE,
                service_name=self.insecure_name,
                service_id=self.insecure_id,
                secure=False,
                port=self.insecure_port,
            )
        raise UnknownVariantError(name)

    def variants(self) -> List[ServiceVariant]:
        """Variants that get a listener on start()."""
        return [self.variant(name) for name in self.enabled_variants]

    @classmethod
    def from_dict(cls, data: dict) -> "LinkConfig":
        """
        Build a LinkConfig from the parsed YAML layout.

        Unknown keys are ignored; missing keys keep their defaults.
        """
        kwargs: Dict[str, object] = {}

        services = data.get("services", {}) or {}
        for name in (VARIANT_SECURE, VARIANT_INSECURE):
            section = services.get(name, {}) or {}
            if "name" in section:
                kwargs[f"{name}_name"] = str(section["name"])
            if "uuid" in section:
                kwargs[f"{name}_id"] = str(section["uuid"])
            if "port" in section:
                kwargs[f"{name}_port"] = section["port"]
        if "enabled" in services:
            kwargs["enabled_variants"] = tuple(services["enabled"])

        link = data.get("link", {}) or {}
        for key in ("pacing_delay", "connect_timeout"):
            if key in link:
                kwargs[key] = float(link[key])
        for key in ("read_cap", "max_frame_size", "event_queue_size"):
            if key in link:
                kwargs[key] = int(link[key])

        tcp = data.get("tcp", {}) or {}
        if "host" in tcp:
            kwargs["tcp_host"] = str(tcp["host"])

        return cls(**kwargs)


@dataclass
class RuntimeConfig:
    """Runtime configuration for the command-line chat client."""

    mode: str = "listen"
    peer: str = ""
    variant: str = VARIANT_SECURE
    log_to_file: bool = True
    log_level: str = "INFO"
    link: LinkConfig = field(default_factory=LinkConfig)

    def __post_init__(self):
        """Ensure the log directory exists."""
        if self.log_to_file:
            Path(LOG_DIR).mkdir(parents=True, exist_ok=True)


def ensure_config_dir() -> None:
    """Create the config directory if it doesn't exist."""
    Path(CONFIG_DIR).mkdir(parents=True, exist_ok=True)


def load_config_file(path: Optional[str] = None) -> dict:
    """
    Load configuration from YAML file.

    Args:
        path: Path to config file (defaults to CONFIG_FILE)

    Returns:
        Configuration dict (empty if file doesn't exist)

    Raises:
        ConfigError: If the file is not valid YAML
    """
    config_path = path or CONFIG_FILE

    if not os.path.exists(config_path):
        return {}

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(config_path, f"malformed YAML: {e}") from e
    return data if isinstance(data, dict) else {}


DEFAULT_CONFIG = """\
# Tether Configuration

# Service variants; each enabled variant gets its own listener
services:
  enabled: [secure, insecure]
  secure:
    name: TetherSecure
    uuid: 00001101-0000-1000-8000-00805F9B34FB
    port: 7301
  insecure:
    name: TetherInsecure
    uuid: 8CE255C0-200A-11E0-AC64-0800200C9A66
    port: 7302

# Data pump settings
link:
  # Seconds between reads (0 disables pacing)
  pacing_delay: 0.1
  # Max bytes taken from a single read
  read_cap: 2048
  # Max accumulated bytes of one inbound line
  max_frame_size: 65536
  connect_timeout: 10.0

# TCP transport
tcp:
  host: 127.0.0.1

# Logging settings
logging:
  # Enable file logging
  to_file: true
  # Log level: DEBUG, INFO, WARNING, ERROR
  level: INFO
"""


def save_default_config(path: Optional[str] = None) -> bool:
    """
    Save default configuration file.

    Args:
        path: Path to config file (defaults to CONFIG_FILE)

    Returns:
        True if saved successfully
    """
    config_path = path or CONFIG_FILE

    try:
        Path(config_path).parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            f.write(DEFAULT_CONFIG)
        return True
    except OSError:
        return False


def apply_config_file(runtime_config: RuntimeConfig, file_config: dict) -> None:
    """
    Apply file configuration to runtime config.

    File values replace the link settings; logging values apply only where
    the CLI left its defaults.
    """
    runtime_config.link = LinkConfig.from_dict(file_config)

    logging_config = file_config.get("logging", {}) or {}
    if "to_file" in logging_config and runtime_config.log_to_file:
        runtime_config.log_to_file = bool(logging_config["to_file"])
    if "level" in logging_config and runtime_config.log_level == "INFO":
        runtime_config.log_level = str(logging_config["level"])
