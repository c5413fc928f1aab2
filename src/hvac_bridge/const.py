import os

from hvac_bridge import __version__

__all__ = [
    "DEFAULT_DISCOVERY_PORT",
    "DEFAULT_STATUS_PORT",
    "HVAC_BIRTH_MSG",
    "HVAC_CONNECT_TIMEOUT",
    "HVAC_DEBUG",
    "HVAC_DEVICE_NAME",
    "HVAC_DISCOVERY_PORT",
    "HVAC_DISCOVERY_RETRY_DELAY",
    "HVAC_ENABLE_METRICS",
    "HVAC_HOST",
    "HVAC_LOG_FORMAT",
    "HVAC_LOG_HUMAN_OUTPUT",
    "HVAC_LOG_JSON_FILE",
    "HVAC_MANUFACTURER",
    "HVAC_MAX_POLL_FAILURES",
    "HVAC_METRICS_PORT",
    "HVAC_MODEL",
    "HVAC_MQTT_BROKER_URL",
    "HVAC_MQTT_CONN_DELAY",
    "HVAC_MQTT_PASSWORD",
    "HVAC_MQTT_TOPIC_PREFIX",
    "HVAC_MQTT_USERNAME",
    "HVAC_POLL_INTERVAL",
    "HVAC_RAW",
    "HVAC_READ_CHUNK_SIZE",
    "HVAC_REGISTRY_FILE",
    "HVAC_STATUS_PORT",
    "HVAC_VERSION",
    "HVAC_WILL_MSG",
    "RAW_MSG",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")
HVAC_VERSION: str = __version__
HVAC_MANUFACTURER: str = "Cooper&Hunter"
HVAC_MODEL: str = "Nordic Evo 2"
HVAC_BIRTH_MSG: bytes = b"online"
HVAC_WILL_MSG: bytes = b"offline"

DEFAULT_DISCOVERY_PORT = 12414
DEFAULT_STATUS_PORT = 12416
HVAC_READ_CHUNK_SIZE = 1024


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# 192.168.111.255 is the subnet broadcast address the unit ships configured for
HVAC_HOST: str = os.environ.get("HVAC_HOST", "192.168.111.255")
HVAC_DISCOVERY_PORT: int = _env_int("HVAC_DISCOVERY_PORT", DEFAULT_DISCOVERY_PORT)
HVAC_STATUS_PORT: int = _env_int("HVAC_STATUS_PORT", DEFAULT_STATUS_PORT)
HVAC_POLL_INTERVAL: float = _env_float("HVAC_POLL_INTERVAL", 60.0)
HVAC_DISCOVERY_RETRY_DELAY: float = _env_float("HVAC_DISCOVERY_RETRY_DELAY", 60.0)
HVAC_MAX_POLL_FAILURES: int = _env_int("HVAC_MAX_POLL_FAILURES", 5)
HVAC_CONNECT_TIMEOUT: float = _env_float("HVAC_CONNECT_TIMEOUT", 5.0)
_registry_file = os.environ.get("HVAC_REGISTRY_FILE")
HVAC_REGISTRY_FILE: str | None = _registry_file if _registry_file else None
HVAC_DEVICE_NAME: str = os.environ.get("HVAC_DEVICE_NAME", "AC Livingroom")

HVAC_MQTT_BROKER_URL: str = os.environ.get("HVAC_MQTT_BROKER_URL", "mqtt://localhost:1883")
HVAC_MQTT_TOPIC_PREFIX: str = os.environ.get("HVAC_MQTT_TOPIC_PREFIX", "hvac")
HVAC_MQTT_USERNAME: str | None = os.environ.get("HVAC_MQTT_USERNAME") or None
HVAC_MQTT_PASSWORD: str | None = os.environ.get("HVAC_MQTT_PASSWORD") or None
HVAC_MQTT_CONN_DELAY: int = _env_int("HVAC_MQTT_CONN_DELAY", 10)

HVAC_RAW = os.environ.get("HVAC_RAW_DEBUG", "0").casefold() in YES_ANSWER
HVAC_DEBUG = os.environ.get("HVAC_DEBUG", "0").casefold() in YES_ANSWER
RAW_MSG = " Set the HVAC_RAW_DEBUG env var to 1 to see the data" if HVAC_RAW is False else ""

# Logging Configuration
HVAC_LOG_FORMAT: str = os.environ.get("HVAC_LOG_FORMAT", "human")  # "json", "human", or "both"
HVAC_LOG_JSON_FILE: str | None = os.environ.get("HVAC_LOG_JSON_FILE") or None
HVAC_LOG_HUMAN_OUTPUT: str = os.environ.get("HVAC_LOG_HUMAN_OUTPUT", "stdout")  # "stdout", "stderr", or file path

# Prometheus exporter
HVAC_ENABLE_METRICS: bool = os.environ.get("HVAC_ENABLE_METRICS", "0").casefold() in YES_ANSWER
HVAC_METRICS_PORT: int = _env_int("HVAC_METRICS_PORT", 9105)
