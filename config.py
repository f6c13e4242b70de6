"""Configuration constants and loader for the Gemini capsule server."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

SERVER_VERSION: str = "0.1.0"

HOSTNAME: str = "localhost"
BIND_ADDR: str = "127.0.0.1:1965"
CONTENT_ROOT: str = "."
DEADLINE_SECS: int = 5
WORKER_COUNT: int = 0
REQUEST_QUEUE_SIZE: int = 128
LOG_FORMAT: str = "plain"
LOG_FORMATS: tuple[str, ...] = ("plain", "json")

GEMINI_SCHEME: str = "gemini"
MAX_URL_LENGTH: int = 1024
MAX_REQUEST_LINE_BYTES: int = MAX_URL_LENGTH + 2
READ_BUFFER_SIZE: int = 2048
SNIFF_LENGTH: int = 512

DEFAULT_DOCUMENT: str = "index.gmi"
GEMTEXT_EXTENSION: str = ".gmi"
GEMTEXT_META: str = "text/gemini; lang=en; charset=utf-8"

ENV_PREFIX: str = "GEMINI_"


class ConfigError(ValueError):
    """Raised when startup configuration is missing or malformed."""


@dataclass(frozen=True, slots=True)
class ServerConfig:
    hostname: str = HOSTNAME
    bind_host: str = "127.0.0.1"
    bind_port: str = "1965"
    content_root: str = CONTENT_ROOT
    deadline_secs: int = DEADLINE_SECS
    tls_cert_file: str | None = None
    tls_key_file: str | None = None
    worker_count: int = WORKER_COUNT
    request_queue_size: int = REQUEST_QUEUE_SIZE
    log_format: str = LOG_FORMAT

    def __post_init__(self) -> None:
        if not self.hostname:
            raise ConfigError("hostname must not be empty")
        if not self.content_root:
            raise ConfigError("content_root must not be empty")
        if self.deadline_secs <= 0:
            raise ConfigError("deadline_secs must be positive")
        if self.worker_count < 0:
            raise ConfigError("worker_count must not be negative")
        if self.request_queue_size <= 0:
            raise ConfigError("request_queue_size must be positive")
        if self.log_format not in LOG_FORMATS:
            raise ConfigError(f"Unsupported log format: {self.log_format}")

    @property
    def bind_addr(self) -> str:
        if ":" in self.bind_host:
            return f"[{self.bind_host}]:{self.bind_port}"
        return f"{self.bind_host}:{self.bind_port}"


def split_bind_addr(bind_addr: str) -> tuple[str, str]:
    """Split ``host:port`` (or ``[v6]:port``) into its host and port strings."""
    if bind_addr.startswith("["):
        host, sep, rest = bind_addr[1:].partition("]")
        if not sep or not rest.startswith(":"):
            raise ConfigError(f"Malformed bind address: {bind_addr}")
        port = rest[1:]
    else:
        host, sep, port = bind_addr.rpartition(":")
        if not sep or ":" in host:
            raise ConfigError(f"Malformed bind address: {bind_addr}")
    if not (port.isascii() and port.isdigit()):
        raise ConfigError(f"Malformed bind port in address: {bind_addr}")
    return host, port


def _env(environ: Mapping[str, str], name: str) -> str:
    return environ.get(f"{ENV_PREFIX}{name}", "").strip()


def _parse_positive_int(raw: str, name: str, default: int) -> int:
    try:
        value = int(raw)
    except ValueError:
        value = 0
    if value <= 0:
        logger.warning("Unable to use %s%s=%r; keeping %s", ENV_PREFIX, name, raw, default)
        return default
    return value


def load_config(environ: Mapping[str, str], **overrides: object) -> ServerConfig:
    """Build the immutable server configuration from the environment.

    Keyword overrides (typically command line flags) win over environment
    values; ``None`` overrides are ignored.
    """
    values: dict[str, object] = {
        "tls_cert_file": _env(environ, "TLS_CERT") or None,
        "tls_key_file": _env(environ, "TLS_KEY") or None,
        "hostname": _env(environ, "HOSTNAME") or HOSTNAME,
        "bind_addr": _env(environ, "BIND_ADDR") or BIND_ADDR,
        "content_root": _env(environ, "ROOT_DIR") or CONTENT_ROOT,
        "deadline_secs": DEADLINE_SECS,
        "worker_count": WORKER_COUNT,
        "log_format": _env(environ, "LOG_FORMAT") or LOG_FORMAT,
    }

    raw_deadline = _env(environ, "DEADLINE")
    if raw_deadline:
        values["deadline_secs"] = _parse_positive_int(raw_deadline, "DEADLINE", DEADLINE_SECS)

    raw_workers = _env(environ, "WORKERS")
    if raw_workers:
        try:
            values["worker_count"] = int(raw_workers)
        except ValueError as exc:
            raise ConfigError(f"Invalid {ENV_PREFIX}WORKERS value: {raw_workers}") from exc

    values.update({key: value for key, value in overrides.items() if value is not None})

    if not values["tls_cert_file"] or not values["tls_key_file"]:
        raise ConfigError(
            f"{ENV_PREFIX}TLS_CERT and {ENV_PREFIX}TLS_KEY must both be provided"
        )

    bind_host, bind_port = split_bind_addr(str(values.pop("bind_addr")))
    return ServerConfig(bind_host=bind_host, bind_port=bind_port, **values)  # type: ignore[arg-type]


def log_config(config: ServerConfig) -> None:
    logger.info("tls_cert_file=%s", config.tls_cert_file)
    logger.info("tls_key_file=%s", config.tls_key_file)
    logger.info("hostname=%s", config.hostname)
    logger.info("bind_addr=%s", config.bind_addr)
    logger.info("content_root=%s", config.content_root)
    logger.info("deadline_secs=%s", config.deadline_secs)
    logger.info("worker_count=%s", config.worker_count)
