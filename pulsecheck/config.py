"""Configuration loader with type-safe dataclasses."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .models import CHECK_HTTP, CHECK_TYPES, DEFAULT_MAX_REDIRECTS, DEFAULT_STATUS_CODES, MonitorCheckConfig
from .status_codes import StatusRangeError, parse_status_range
from .transport import REQUEST_TIMEOUT_SECONDS, ProxySettings


class ConfigError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


HTTP_METHODS = ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")


@dataclass(frozen=True)
class ChecksConfig:
    """Limits and options shared by all checks."""

    request_timeout: int = REQUEST_TIMEOUT_SECONDS  # upper bound for a whole HTTP request
    certificate_timeout: int = 10  # socket timeout while reading certificates
    keyword_cert_precheck: bool = False  # run the certificate pre-check on keyword monitors

    def __post_init__(self) -> None:
        if self.request_timeout < 1:
            raise ConfigError(f"Request timeout must be at least 1 second (got {self.request_timeout})")
        if self.certificate_timeout < 1:
            raise ConfigError(f"Certificate timeout must be at least 1 second (got {self.certificate_timeout})")


@dataclass(frozen=True)
class RemindersConfig:
    """Daily certificate reminder window (local time)."""

    hour: int = 12
    window_minutes: int = 5

    def __post_init__(self) -> None:
        if not (0 <= self.hour <= 23):
            raise ConfigError(f"Reminder hour must be between 0 and 23 (got {self.hour})")
        if not (1 <= self.window_minutes <= 60):
            raise ConfigError(f"Reminder window must be between 1 and 60 minutes (got {self.window_minutes})")


def _get_default_db_path() -> str:
    """Get the default database path using XDG-compliant directory."""
    home = Path.home()
    return str(home / ".local" / "share" / "pulsecheck" / "status.db")


DEFAULT_DB_PATH = _get_default_db_path()


@dataclass(frozen=True)
class DatabaseConfig:
    """Configuration for SQLite database."""

    path: str = DEFAULT_DB_PATH


@dataclass(frozen=True)
class WebhookConfig:
    """Configuration for a single webhook alert."""

    url: str
    enabled: bool = True
    on_failure: bool = True  # Send when a monitor goes DOWN
    on_recovery: bool = True  # Send when a monitor comes back UP

    def __post_init__(self) -> None:
        if not self.url:
            raise ConfigError("Webhook URL cannot be empty")
        if not self.url.startswith(("http://", "https://")):
            raise ConfigError(f"Webhook URL must start with http:// or https://, got '{self.url}'")
        if not self.on_failure and not self.on_recovery:
            raise ConfigError("Webhook must have at least one of 'on_failure' or 'on_recovery' enabled")


@dataclass(frozen=True)
class AlertsConfig:
    """Configuration for alert mechanisms."""

    webhooks: list[WebhookConfig] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not isinstance(self.webhooks, list):
            raise ConfigError("Webhooks must be a list")


@dataclass(frozen=True)
class Config:
    """Main configuration container."""

    monitors: list[MonitorCheckConfig]
    proxy: ProxySettings = field(default_factory=ProxySettings)
    checks: ChecksConfig = field(default_factory=ChecksConfig)
    reminders: RemindersConfig = field(default_factory=RemindersConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    alerts: AlertsConfig = field(default_factory=AlertsConfig)

    def __post_init__(self) -> None:
        if not self.monitors:
            raise ConfigError("At least one monitor must be configured")
        ids = [monitor.monitor_id for monitor in self.monitors]
        duplicates = [monitor_id for monitor_id in ids if ids.count(monitor_id) > 1]
        if duplicates:
            raise ConfigError(f"Duplicate monitor ids found: {set(duplicates)}")


def _parse_headers(raw: object, index: int) -> str:
    """Accept headers as a YAML mapping or a raw JSON string."""
    if raw is None:
        return ""
    if isinstance(raw, dict):
        return json.dumps({str(key): str(value) for key, value in raw.items()})
    if isinstance(raw, str):
        return raw
    raise ConfigError(f"Monitor entry {index} 'headers' must be a mapping or a JSON string")


def _parse_monitor_config(data: dict, index: int) -> MonitorCheckConfig:
    """Parse a single monitor configuration entry."""
    if not isinstance(data, dict):
        raise ConfigError(f"Monitor entry {index} must be a dictionary")

    monitor_id = data.get("id")
    url = data.get("url")

    if monitor_id is None or not str(monitor_id):
        raise ConfigError(f"Monitor entry {index} is missing 'id' field")
    if url is None:
        raise ConfigError(f"Monitor entry {index} is missing 'url' field")

    check_type = str(data.get("type", CHECK_HTTP))
    if check_type not in CHECK_TYPES:
        raise ConfigError(f"Invalid monitor type '{check_type}' for '{monitor_id}'. Must be one of: {CHECK_TYPES}")

    method = str(data.get("method", "GET")).upper()
    if method not in HTTP_METHODS:
        raise ConfigError(f"Invalid HTTP method '{method}' for '{monitor_id}'")

    status_codes = str(data.get("accepted_status_codes", DEFAULT_STATUS_CODES))
    try:
        parse_status_range(status_codes)
    except StatusRangeError as e:
        raise ConfigError(f"Invalid accepted_status_codes for '{monitor_id}': {e}")

    max_redirects = int(data.get("max_redirects", DEFAULT_MAX_REDIRECTS))
    if max_redirects < 0:
        raise ConfigError(f"max_redirects must be non-negative for '{monitor_id}'")

    keyword = data.get("keyword")
    body = data.get("body")

    return MonitorCheckConfig(
        url=str(url),
        http_method=method,
        accepted_status_codes=status_codes,
        max_redirects=max_redirects,
        request_body=str(body) if body is not None else "",
        request_headers=_parse_headers(data.get("headers"), index),
        notify_cert_expiry=bool(data.get("notify_cert_expiry", False)),
        ignore_tls=bool(data.get("ignore_tls", False)),
        monitor_id=str(monitor_id),
        monitor_name=str(data.get("name", monitor_id)),
        keyword=str(keyword) if keyword is not None else "",
        check_type=check_type,
    )


def _parse_proxy_config(data: dict | None) -> ProxySettings:
    """Parse proxy configuration section."""
    if data is None:
        return ProxySettings()
    if not isinstance(data, dict):
        raise ConfigError("'proxy' section must be a dictionary")

    enabled = bool(data.get("enabled", False))
    url = data.get("url")
    if enabled and not url:
        raise ConfigError("Proxy URL is required when proxy is enabled")

    return ProxySettings(enabled=enabled, url=str(url) if url else None)


def _parse_checks_config(data: dict | None) -> ChecksConfig:
    """Parse checks configuration section."""
    if data is None:
        return ChecksConfig()
    if not isinstance(data, dict):
        raise ConfigError("'checks' section must be a dictionary")

    return ChecksConfig(
        request_timeout=int(data.get("request_timeout", REQUEST_TIMEOUT_SECONDS)),
        certificate_timeout=int(data.get("certificate_timeout", 10)),
        keyword_cert_precheck=bool(data.get("keyword_cert_precheck", False)),
    )


def _parse_reminders_config(data: dict | None) -> RemindersConfig:
    """Parse reminders configuration section."""
    if data is None:
        return RemindersConfig()
    if not isinstance(data, dict):
        raise ConfigError("'reminders' section must be a dictionary")

    return RemindersConfig(
        hour=int(data.get("hour", 12)),
        window_minutes=int(data.get("window_minutes", 5)),
    )


def _parse_database_config(data: dict | None) -> DatabaseConfig:
    """Parse database configuration section."""
    if data is None:
        return DatabaseConfig()
    if not isinstance(data, dict):
        raise ConfigError("'database' section must be a dictionary")

    return DatabaseConfig(path=os.path.expanduser(str(data.get("path", DEFAULT_DB_PATH))))


def _parse_webhook_config(data: dict, index: int) -> WebhookConfig:
    """Parse a single webhook configuration entry."""
    if not isinstance(data, dict):
        raise ConfigError(f"Webhook entry {index} must be a dictionary")

    url = data.get("url")
    if url is None:
        raise ConfigError(f"Webhook entry {index} is missing 'url' field")

    return WebhookConfig(
        url=str(url),
        enabled=bool(data.get("enabled", True)),
        on_failure=bool(data.get("on_failure", True)),
        on_recovery=bool(data.get("on_recovery", True)),
    )


def _parse_alerts_config(data: dict | None) -> AlertsConfig:
    """Parse alerts configuration section."""
    if data is None:
        return AlertsConfig()
    if not isinstance(data, dict):
        raise ConfigError("'alerts' section must be a dictionary")

    webhooks_data = data.get("webhooks", [])
    if not isinstance(webhooks_data, list):
        raise ConfigError("'alerts.webhooks' must be a list")

    webhooks = [_parse_webhook_config(webhook_data, i) for i, webhook_data in enumerate(webhooks_data)]

    return AlertsConfig(webhooks=webhooks)


def _apply_env_overrides(config_data: dict) -> dict:
    """Apply environment variable overrides to configuration.

    Supported overrides:
    - PULSECHECK_PROXY_ENABLED: Override proxy.enabled (true/false)
    - PULSECHECK_PROXY_URL: Override proxy.url
    - PULSECHECK_DB_PATH: Override database.path
    """
    if not isinstance(config_data.get("proxy"), dict):
        config_data["proxy"] = {}
    if not isinstance(config_data.get("database"), dict):
        config_data["database"] = {}

    proxy_enabled = os.environ.get("PULSECHECK_PROXY_ENABLED")
    if proxy_enabled is not None:
        config_data["proxy"]["enabled"] = proxy_enabled.lower() in ("true", "1", "yes")

    proxy_url = os.environ.get("PULSECHECK_PROXY_URL")
    if proxy_url is not None:
        config_data["proxy"]["url"] = proxy_url

    db_path = os.environ.get("PULSECHECK_DB_PATH")
    if db_path is not None:
        config_data["database"]["path"] = db_path

    return config_data


def load_config(config_path: str) -> Config:
    """Load and validate configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Validated Config object.

    Raises:
        ConfigError: If the file cannot be read or configuration is invalid.
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML configuration: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read configuration file: {e}")

    if data is None:
        raise ConfigError("Configuration file is empty")

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a YAML dictionary")

    data = _apply_env_overrides(data)

    monitors_data = data.get("monitors")
    if monitors_data is None:
        raise ConfigError("Configuration must contain a 'monitors' section")
    if not isinstance(monitors_data, list):
        raise ConfigError("'monitors' must be a list")

    try:
        monitors = [_parse_monitor_config(monitor_data, i) for i, monitor_data in enumerate(monitors_data)]
        return Config(
            monitors=monitors,
            proxy=_parse_proxy_config(data.get("proxy")),
            checks=_parse_checks_config(data.get("checks")),
            reminders=_parse_reminders_config(data.get("reminders")),
            database=_parse_database_config(data.get("database")),
            alerts=_parse_alerts_config(data.get("alerts")),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration value: {e}")
