"""Configuration loading utilities for the ConfigMap reloader."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import SplitResult, unquote, urlsplit, urlunsplit

import yaml # type: ignore


logger = logging.getLogger(__name__)

_HTTP_TOKEN = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")


class ConfigError(Exception):
    """Raised when the configuration is missing or invalid."""


@dataclass(frozen=True)
class Credentials:
    """Basic-auth credentials split off a webhook URL."""

    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


@dataclass(frozen=True)
class WebhookTarget:
    """A parsed webhook URL with its userinfo held separately."""

    scheme: str
    host: str
    port: Optional[int]
    path: str
    query: str
    credentials: Optional[Credentials] = None

    @property
    def url(self) -> str:
        """Request URL without any userinfo."""

        netloc = f"[{self.host}]" if ":" in self.host else self.host
        if self.port is not None:
            netloc = f"{netloc}:{self.port}"
        return urlunsplit(SplitResult(self.scheme, netloc, self.path, self.query, ""))

    @property
    def label(self) -> str:
        """Canonical form used in metric labels and log lines."""

        return self.url

    def __str__(self) -> str:
        return self.label


@dataclass
class WatchConfig:
    """Which directories to observe and how often the loop ticks."""

    directories: List[Path] = field(default_factory=list)
    recursive: bool = False
    poll_interval: float = 1.0


@dataclass
class WebhookConfig:
    """How reload notifications are delivered."""

    targets: List[WebhookTarget] = field(default_factory=list)
    method: str = "POST"
    status_code: int = 200
    retries: int = 1
    backoff: float = 10.0
    timeout: float = 5.0


@dataclass
class WebConfig:
    """Where the metrics endpoint listens."""

    listen_address: str = ":9533"
    telemetry_path: str = "/metrics"


@dataclass
class TransportConfig:
    """Optional identity-authenticated overlay transport."""

    identity_file: Optional[Path] = None
    service: str = "configmap-reload"
    target_identity: Optional[str] = None
    dialer: Optional[str] = None


@dataclass
class AppConfig:
    """Top-level configuration structure."""

    watch: WatchConfig
    webhook: WebhookConfig
    web: WebConfig = field(default_factory=WebConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)


def load_config(path: Optional[Path] = None, overrides: Optional[Dict[str, Any]] = None) -> AppConfig:
    """Load the optional YAML file, apply command-line overrides and validate.

    *overrides* uses the same nested layout as the YAML document; ``None``
    values are ignored so unset flags leave file values untouched.
    """

    data: Dict[str, Any] = {}
    if path is not None:
        data = _read_yaml(path)

    for section, values in (overrides or {}).items():
        merged = dict(data.get(section) or {})
        merged.update({key: value for key, value in values.items() if value is not None})
        data[section] = merged

    config_dir = path.parent if path is not None else None
    return AppConfig(
        watch=_parse_watch_config(data.get("watch"), config_dir=config_dir),
        webhook=_parse_webhook_config(data.get("webhook")),
        web=_parse_web_config(data.get("web")),
        transport=_parse_transport_config(data.get("transport"), config_dir=config_dir),
    )


def parse_webhook_url(raw: str) -> WebhookTarget:
    """Parse a webhook URL, splitting embedded credentials off."""

    try:
        parts = urlsplit(raw.strip())
        port = parts.port
    except ValueError as exc:
        raise ConfigError(f"invalid webhook URL: {exc}") from exc

    if parts.scheme not in ("http", "https"):
        raise ConfigError("webhook URL scheme must be http or https")
    if not parts.hostname:
        raise ConfigError("webhook URL must include a host")

    credentials: Optional[Credentials] = None
    if parts.password is not None:
        credentials = Credentials(
            username=unquote(parts.username or ""),
            password=unquote(parts.password),
        )

    return WebhookTarget(
        scheme=parts.scheme,
        host=parts.hostname,
        port=port,
        path=parts.path or "/",
        query=parts.query,
        credentials=credentials,
    )


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML configuration: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")
    return data


def _parse_watch_config(raw: Any, *, config_dir: Optional[Path]) -> WatchConfig:
    raw = _ensure_mapping(raw, "watch")

    directories = [
        _resolve_path(item, config_dir)
        for item in _ensure_str_list(raw.get("directories"), "watch.directories")
    ]
    if not directories:
        raise ConfigError("Missing volume directory: watch.directories must not be empty")

    recursive_flag = raw.get("recursive", False)
    if not isinstance(recursive_flag, bool):
        raise ConfigError("watch.recursive must be a boolean")

    poll_interval = _ensure_float(raw.get("poll_interval", 1.0), "watch.poll_interval")
    if poll_interval <= 0:
        raise ConfigError("watch.poll_interval must be positive")

    for directory in directories:
        logger.debug("Configured watch directory %s", directory)

    return WatchConfig(directories=directories, recursive=recursive_flag, poll_interval=poll_interval)


def _parse_webhook_config(raw: Any) -> WebhookConfig:
    raw = _ensure_mapping(raw, "webhook")

    urls = _ensure_str_list(raw.get("urls"), "webhook.urls")
    if not urls:
        raise ConfigError("Missing webhook URL: webhook.urls must not be empty")
    targets: List[WebhookTarget] = []
    for index, url in enumerate(urls):
        try:
            targets.append(parse_webhook_url(url))
        except ConfigError as exc:
            raise ConfigError(f"webhook.urls[{index}]: {exc}") from exc

    method = raw.get("method", "POST")
    if not isinstance(method, str) or not _HTTP_TOKEN.match(method):
        raise ConfigError("webhook.method must be an HTTP method name")

    status_code = _ensure_int(raw.get("status_code", 200), "webhook.status_code")
    if not 100 <= status_code <= 599:
        raise ConfigError("webhook.status_code must be between 100 and 599")

    retries = _ensure_int(raw.get("retries", 1), "webhook.retries")
    if retries < 1:
        raise ConfigError("webhook.retries must be at least 1")

    backoff = _ensure_float(raw.get("backoff", 10.0), "webhook.backoff")
    if backoff < 0:
        raise ConfigError("webhook.backoff must not be negative")

    timeout = _ensure_float(raw.get("timeout", 5.0), "webhook.timeout")
    if timeout <= 0:
        raise ConfigError("webhook.timeout must be positive")

    return WebhookConfig(
        targets=targets,
        method=method.upper(),
        status_code=status_code,
        retries=retries,
        backoff=backoff,
        timeout=timeout,
    )


def _parse_web_config(raw: Any) -> WebConfig:
    raw = _ensure_mapping(raw, "web")

    listen_address = raw.get("listen_address", ":9533")
    if not isinstance(listen_address, str) or ":" not in listen_address:
        raise ConfigError("web.listen_address must look like 'host:port'")

    telemetry_path = raw.get("telemetry_path", "/metrics")
    if not isinstance(telemetry_path, str) or not telemetry_path.startswith("/"):
        raise ConfigError("web.telemetry_path must start with '/'")

    return WebConfig(listen_address=listen_address, telemetry_path=telemetry_path)


def _parse_transport_config(raw: Any, *, config_dir: Optional[Path]) -> TransportConfig:
    raw = _ensure_mapping(raw, "transport")

    identity_raw = raw.get("identity_file")
    identity_file: Optional[Path] = None
    if identity_raw is not None:
        if not isinstance(identity_raw, str):
            raise ConfigError("transport.identity_file must be a string")
        identity_file = _resolve_path(identity_raw, config_dir)

    service = raw.get("service", "configmap-reload")
    if not isinstance(service, str) or not service:
        raise ConfigError("transport.service must be a non-empty string")

    target_identity = raw.get("target_identity")
    if target_identity is not None and not isinstance(target_identity, str):
        raise ConfigError("transport.target_identity must be a string")

    dialer = raw.get("dialer")
    if dialer is not None and (not isinstance(dialer, str) or ":" not in dialer):
        raise ConfigError("transport.dialer must look like 'package.module:callable'")

    return TransportConfig(
        identity_file=identity_file,
        service=service,
        target_identity=target_identity or None,
        dialer=dialer,
    )


def _resolve_path(raw: str, config_dir: Optional[Path]) -> Path:
    path = Path(raw)
    if not path.is_absolute() and config_dir is not None:
        path = (config_dir / path).resolve()
    return path


def _ensure_mapping(value: Any, field_name: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{field_name}' section must be a mapping")
    return value


def _ensure_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{field_name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{field_name} must be an integer") from exc


def _ensure_float(value: Any, field_name: str) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{field_name} must be numeric")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{field_name} must be numeric") from exc


def _ensure_str_list(value: Any, field_name: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ConfigError(f"{field_name} must be a list of strings")
    items: List[str] = []
    for elem in value:
        if not isinstance(elem, str):
            raise ConfigError(f"{field_name} must contain only strings")
        items.append(elem)
    return items
