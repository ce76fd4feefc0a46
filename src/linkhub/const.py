import datetime
import logging
import os
import zoneinfo

import tzlocal

from linkhub import __version__

__all__ = [
    "DEFAULT_FAST_POLL_INTERVAL",
    "DEFAULT_SLOW_POLL_INTERVAL",
    "ENABLE_EXPORTER",
    "EXPORTER_PORT",
    "FOREIGN_LOG_FORMATTER",
    "LINKHUB_DEBUG",
    "LINKHUB_LOG_FORMAT",
    "LINKHUB_LOG_HUMAN_OUTPUT",
    "LINKHUB_LOG_JSON_FILE",
    "LINKHUB_PERF_THRESHOLD_MS",
    "LINKHUB_PERF_TRACKING",
    "LINKHUB_VERSION",
    "LINKPLAY_COMMAND_PATH",
    "LINKPLAY_REQUEST_TIMEOUT",
    "LOCAL_TZ",
    "METADATA_CACHE_TTL",
    "METADATA_COVERART_URL",
    "METADATA_LOOKUP",
    "METADATA_MUSICBRAINZ_URL",
    "METADATA_RATE_LIMIT",
    "METADATA_REQUEST_TIMEOUT",
    "POLL_INITIAL_DELAY",
    "PUSH_RENEWAL_CHECK_INTERVAL",
    "PUSH_RENEWAL_PERIOD",
    "PUSH_RETRY_DELAY",
    "PUSH_SUBSCRIPTION_DURATION",
    "PUSH_SUBSCRIPTION_EXPIRY",
    "RATE_LIMIT_BACKOFF",
    "SERVICE_AVTRANSPORT",
    "SERVICE_RENDERING_CONTROL",
    "SRC_REPO_URL",
    "TCC_BASE_URL",
    "TCC_FAILURE_MARKER",
    "TCC_KEEPALIVE_INTERVAL",
    "TCC_PASSWORD",
    "TCC_REQUEST_TIMEOUT",
    "TCC_SESSION_TIMEOUT",
    "TCC_TIME_OFFSET",
    "TCC_USERNAME",
    "FAILURE_THRESHOLD",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")
LOCAL_TZ = zoneinfo.ZoneInfo(str(tzlocal.get_localzone()))

# adds logger name
FOREIGN_LOG_FORMATTER = logging.Formatter(
    "%(asctime)s.%(msecs)d %(levelname)s <%(name)s> [%(module)s:%(lineno)d] > %(message)s",
    "%m/%d/%y %H:%M:%S",
)
LINKHUB_VERSION: str = __version__
SRC_REPO_URL: str = "https://github.com/linkhub/linkhub"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw or raw.lower() == "null":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw or raw.lower() == "null":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


LINKHUB_DEBUG = os.environ.get("LINKHUB_DEBUG", "0").casefold() in YES_ANSWER

# Logging Configuration
LINKHUB_LOG_FORMAT: str = os.environ.get("LINKHUB_LOG_FORMAT", "human")  # "json", "human", or "both"
LINKHUB_LOG_JSON_FILE: str = os.environ.get("LINKHUB_LOG_JSON_FILE", "/var/log/linkhub.json")
LINKHUB_LOG_HUMAN_OUTPUT: str = os.environ.get("LINKHUB_LOG_HUMAN_OUTPUT", "stdout")  # "stdout", "stderr", or file path

# Performance Instrumentation
LINKHUB_PERF_TRACKING: bool = os.environ.get("LINKHUB_PERF_TRACKING", "true").casefold() in YES_ANSWER
LINKHUB_PERF_THRESHOLD_MS: int = _env_int("LINKHUB_PERF_THRESHOLD_MS", 500)

# Prometheus exporter
ENABLE_EXPORTER: bool = os.environ.get("LINKHUB_ENABLE_EXPORTER", "0").casefold() in YES_ANSWER
EXPORTER_PORT: int = _env_int("LINKHUB_EXPORTER_PORT", 9400)

# Honeywell Total Connect Comfort portal
TCC_BASE_URL: str = os.environ.get("LINKHUB_TCC_BASE_URL", "https://www.mytotalconnectcomfort.com/portal").rstrip("/")
_username = os.environ.get("LINKHUB_TCC_USERNAME")
TCC_USERNAME: str | None = _username if _username else None
_password = os.environ.get("LINKHUB_TCC_PASSWORD")
TCC_PASSWORD: str | None = _password if _password else None
TCC_SESSION_TIMEOUT: float = _env_float("LINKHUB_SESSION_TIMEOUT", 3600.0)
TCC_KEEPALIVE_INTERVAL: float = _env_float("LINKHUB_KEEPALIVE_INTERVAL", 30.0)
TCC_REQUEST_TIMEOUT: float = _env_float("LINKHUB_REQUEST_TIMEOUT", 30.0)
TCC_FAILURE_MARKER: str = "Invalid username or password"
# Minutes behind UTC, the way the portal's login page computes it in the browser
_utc_offset = datetime.datetime.now(LOCAL_TZ).utcoffset() or datetime.timedelta(0)
TCC_TIME_OFFSET: int = _env_int("LINKHUB_TCC_TIME_OFFSET", int(-_utc_offset.total_seconds() // 60))
RATE_LIMIT_BACKOFF: float = _env_float("LINKHUB_RATE_LIMIT_BACKOFF", 300.0)

# Connectivity
FAILURE_THRESHOLD: int = _env_int("LINKHUB_FAILURE_THRESHOLD", 3)

# Polling
DEFAULT_FAST_POLL_INTERVAL: float = _env_float("LINKHUB_FAST_POLL_INTERVAL", 5.0)
DEFAULT_SLOW_POLL_INTERVAL: float = _env_float("LINKHUB_SLOW_POLL_INTERVAL", 60.0)
POLL_INITIAL_DELAY: float = 1.0

# LinkPlay HTTP API
LINKPLAY_COMMAND_PATH: str = "/httpapi.asp"
LINKPLAY_REQUEST_TIMEOUT: float = _env_float("LINKHUB_LINKPLAY_REQUEST_TIMEOUT", 5.0)

# UPnP eventing
SERVICE_AVTRANSPORT: str = "urn:schemas-upnp-org:service:AVTransport:1"
SERVICE_RENDERING_CONTROL: str = "urn:schemas-upnp-org:service:RenderingControl:1"
PUSH_SUBSCRIPTION_DURATION: int = 1800
PUSH_SUBSCRIPTION_EXPIRY: float = 30 * 60.0
PUSH_RENEWAL_PERIOD: float = 25 * 60.0
# Subscriptions are checked this often so each is renewed within this long of becoming due
PUSH_RENEWAL_CHECK_INTERVAL: float = 60.0
PUSH_RETRY_DELAY: float = 10.0

# Album art lookup (MusicBrainz + Cover Art Archive)
METADATA_LOOKUP: bool = os.environ.get("LINKHUB_METADATA_LOOKUP", "0").casefold() in YES_ANSWER
METADATA_MUSICBRAINZ_URL: str = "https://musicbrainz.org/ws/2/recording"
METADATA_COVERART_URL: str = "https://coverartarchive.org/release"
METADATA_RATE_LIMIT: float = 2.0
METADATA_CACHE_TTL: float = 24 * 3600.0
METADATA_REQUEST_TIMEOUT: float = 5.0
