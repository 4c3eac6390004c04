"""
Configuration management for the health monitor.

Loads the monitored service set and notification settings from a YAML file,
validates it and writes it back when the configuration is replaced at runtime.
"""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

import yaml


CONFIG_ENV = "HEALTHCHECK_CONFIG"
DEFAULT_CONFIG_FILE = Path("healthcheck.yaml")

DEFAULT_INTERVAL_SUCCESS_MS = 60_000
DEFAULT_INTERVAL_FAIL_MS = 10_000
DEFAULT_NOTIFY_FAILURES = 3
DEFAULT_REREPORT = 10
DEFAULT_WEB_PORT = 8080


class ConfigError(ValueError):
    """Configuration is missing, unparsable or invalid."""


class ConfigPersistError(OSError):
    """Configuration could not be written to durable storage."""


@dataclass(frozen=True)
class HttpCheck:
    """HTTP GET check expecting a specific status code."""

    url: str
    expected_status: int = 200
    timeout_ms: int = 10_000

    @property
    def target(self) -> str:
        return self.url


@dataclass(frozen=True)
class CertificateCheck:
    """TLS certificate expiry check."""

    host: str
    port: int = 443
    days_before_expiry: int = 30
    timeout_ms: int = 10_000

    @property
    def target(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class TcpPingCheck:
    """Plain TCP connect check."""

    host: str
    port: int
    timeout_ms: int = 1000

    @property
    def target(self) -> str:
        return f"{self.host}:{self.port}"


CheckSpec = Union[HttpCheck, CertificateCheck, TcpPingCheck]

# YAML key for each check variant
CHECK_TYPES: dict[str, type] = {
    "http": HttpCheck,
    "certificate": CertificateCheck,
    "tcpPing": TcpPingCheck,
}


def check_type_name(check: CheckSpec) -> str:
    """Return the YAML key used for a check variant."""
    for name, cls in CHECK_TYPES.items():
        if isinstance(check, cls):
            return name
    raise TypeError(f"Unsupported check type: {type(check).__name__}")


@dataclass(frozen=True)
class ServiceDefinition:
    """A monitored service as declared in the configuration."""

    name: str
    check: CheckSpec
    description: str = ""
    enabled: bool = True
    check_interval_success: Optional[int] = None
    check_interval_fail: Optional[int] = None
    notify_failures: Optional[int] = None
    rereport: Optional[int] = None

    @classmethod
    def from_dict(cls, service_id: str, data: Any) -> "ServiceDefinition":
        """Create ServiceDefinition from dictionary."""
        where = f"services.{service_id}"
        if not isinstance(data, dict):
            raise ConfigError(f"{where}: expected a mapping")

        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ConfigError(f"{where}.name: a non-empty name is required")

        enabled = data.get("enabled", True)
        if not isinstance(enabled, bool):
            raise ConfigError(f"{where}.enabled: expected true or false")

        return cls(
            name=name,
            description=str(data.get("description") or ""),
            enabled=enabled,
            check=_parse_check(where, data.get("check")),
            check_interval_success=_opt_int(data, "check_interval_success", where, 1),
            check_interval_fail=_opt_int(data, "check_interval_fail", where, 1),
            notify_failures=_opt_int(data, "notify_failures", where, 1),
            rereport=_opt_int(data, "rereport", where, 1),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert ServiceDefinition to dictionary."""
        data: dict[str, Any] = {
            "enabled": self.enabled,
            "name": self.name,
            "description": self.description,
        }
        for key in ("check_interval_success", "check_interval_fail", "notify_failures", "rereport"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        data["check"] = {check_type_name(self.check): _check_to_dict(self.check)}
        return data


@dataclass
class Config:
    """Main configuration for the health monitor.

    A Config is treated as immutable once adopted: runtime changes replace the
    whole object.
    """

    telegram_token: str = ""
    telegram_chat_id: Optional[Union[int, str]] = None
    check_interval_success: int = DEFAULT_INTERVAL_SUCCESS_MS
    check_interval_fail: int = DEFAULT_INTERVAL_FAIL_MS
    notify_failures: int = DEFAULT_NOTIFY_FAILURES
    rereport: int = DEFAULT_REREPORT
    services: dict[str, ServiceDefinition] = field(default_factory=dict)
    web_port: Optional[int] = None
    api_bearer_token: Optional[str] = None
    log_level: str = "INFO"
    alert_log: Optional[Path] = None
    # File values of fields replaced by environment overrides
    file_values: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: Any) -> "Config":
        """Create Config from dictionary, validating every field."""
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("configuration root must be a mapping")

        services_data = data.get("services") or {}
        if not isinstance(services_data, dict):
            raise ConfigError("services: expected a mapping of id to service")

        services = {
            str(service_id): ServiceDefinition.from_dict(str(service_id), service)
            for service_id, service in services_data.items()
        }

        chat_id = data.get("telegram_chat_id")
        if chat_id is not None and (isinstance(chat_id, bool) or not isinstance(chat_id, (int, str))):
            raise ConfigError("telegram_chat_id: expected an integer or a string")

        web_port = _opt_int(data, "web_port", "config", 1)
        if web_port is not None and web_port > 65535:
            raise ConfigError(f"config.web_port: {web_port} is not a valid port")

        alert_log = data.get("alert_log")
        if alert_log:
            _check_alert_log(Path(alert_log))
        token = data.get("api_bearer_token")

        return cls(
            telegram_token=str(data.get("telegram_token") or ""),
            telegram_chat_id=chat_id,
            check_interval_success=_int(
                data, "check_interval_success", "config", DEFAULT_INTERVAL_SUCCESS_MS, 1
            ),
            check_interval_fail=_int(
                data, "check_interval_fail", "config", DEFAULT_INTERVAL_FAIL_MS, 1
            ),
            notify_failures=_int(data, "notify_failures", "config", DEFAULT_NOTIFY_FAILURES, 1),
            rereport=_int(data, "rereport", "config", DEFAULT_REREPORT, 1),
            services=services,
            web_port=web_port,
            api_bearer_token=str(token) if token else None,
            log_level=str(data.get("log_level", "INFO")).upper(),
            alert_log=Path(alert_log) if alert_log else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert Config to dictionary.

        Fields set from environment overrides are written with their file
        values, so secrets given through the environment are never persisted.
        """
        data: dict[str, Any] = {
            "telegram_token": self.telegram_token,
            "telegram_chat_id": self.telegram_chat_id,
            "check_interval_success": self.check_interval_success,
            "check_interval_fail": self.check_interval_fail,
            "notify_failures": self.notify_failures,
            "rereport": self.rereport,
        }
        if self.web_port is not None:
            data["web_port"] = self.web_port
        if self.api_bearer_token:
            data["api_bearer_token"] = self.api_bearer_token
        data["log_level"] = self.log_level
        if self.alert_log:
            data["alert_log"] = str(self.alert_log)
        for key, value in self.file_values.items():
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value
        data["services"] = {
            service_id: service.to_dict() for service_id, service in self.services.items()
        }
        return data

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_token) and self.telegram_chat_id is not None

    def enabled_services(self) -> dict[str, ServiceDefinition]:
        """Return the enabled services keyed by identifier."""
        return {sid: s for sid, s in self.services.items() if s.enabled}

    def is_enabled(self, service_id: str) -> bool:
        service = self.services.get(service_id)
        return service is not None and service.enabled

    # Per-service overrides take precedence over the global defaults

    def success_interval_for(self, service_id: str) -> int:
        service = self.services.get(service_id)
        if service and service.check_interval_success is not None:
            return service.check_interval_success
        return self.check_interval_success

    def fail_interval_for(self, service_id: str) -> int:
        service = self.services.get(service_id)
        if service and service.check_interval_fail is not None:
            return service.check_interval_fail
        return self.check_interval_fail

    def notify_failures_for(self, service_id: str) -> int:
        service = self.services.get(service_id)
        if service and service.notify_failures is not None:
            return service.notify_failures
        return self.notify_failures

    def rereport_for(self, service_id: str) -> int:
        service = self.services.get(service_id)
        if service and service.rereport is not None:
            return service.rereport
        return self.rereport


def _int(data: dict, key: str, where: str, default: int, minimum: int) -> int:
    value = _opt_int(data, key, where, minimum)
    return default if value is None else value


def _opt_int(data: dict, key: str, where: str, minimum: int) -> Optional[int]:
    """Read an optional integer field, enforcing a lower bound."""
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{where}.{key}: expected an integer, got {value!r}")
    if value < minimum:
        raise ConfigError(f"{where}.{key}: must be at least {minimum}, got {value}")
    return value


def _check_alert_log(path: Path) -> None:
    """Reject alert log paths whose file or parent directory cannot exist."""
    if path.is_dir():
        raise ConfigError(f"config.alert_log: {path} is a directory")
    for parent in path.parents:
        if parent.exists():
            if not parent.is_dir():
                raise ConfigError(f"config.alert_log: {parent} is not a directory")
            return


def _require_str(data: dict, key: str, where: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{where}.{key}: a non-empty string is required")
    return value


def _port(data: dict, where: str, default: Optional[int] = None) -> int:
    port = _opt_int(data, "port", where, 1)
    if port is None:
        if default is None:
            raise ConfigError(f"{where}.port: a port is required")
        return default
    if port > 65535:
        raise ConfigError(f"{where}.port: {port} is not a valid port")
    return port


def _parse_check(where: str, data: Any) -> CheckSpec:
    """Parse the single-key check mapping of a service."""
    where = f"{where}.check"
    if not isinstance(data, dict) or len(data) != 1:
        known = ", ".join(CHECK_TYPES)
        raise ConfigError(f"{where}: expected exactly one check of: {known}")

    kind, params = next(iter(data.items()))
    if kind not in CHECK_TYPES:
        raise ConfigError(f"{where}: unknown check type '{kind}'")
    if not isinstance(params, dict):
        raise ConfigError(f"{where}.{kind}: expected a mapping of parameters")

    where = f"{where}.{kind}"
    if kind == "http":
        return HttpCheck(
            url=_require_str(params, "url", where),
            expected_status=_int(params, "expected_status", where, 200, 100),
            timeout_ms=_int(params, "timeout_ms", where, 10_000, 1),
        )
    if kind == "certificate":
        return CertificateCheck(
            host=_require_str(params, "host", where),
            port=_port(params, where, default=443),
            days_before_expiry=_int(params, "days_before_expiry", where, 30, 0),
            timeout_ms=_int(params, "timeout_ms", where, 10_000, 1),
        )
    return TcpPingCheck(
        host=_require_str(params, "host", where),
        port=_port(params, where),
        timeout_ms=_int(params, "timeout_ms", where, 1000, 1),
    )


def _check_to_dict(check: CheckSpec) -> dict[str, Any]:
    if isinstance(check, HttpCheck):
        return {
            "url": check.url,
            "expected_status": check.expected_status,
            "timeout_ms": check.timeout_ms,
        }
    if isinstance(check, CertificateCheck):
        return {
            "host": check.host,
            "port": check.port,
            "days_before_expiry": check.days_before_expiry,
            "timeout_ms": check.timeout_ms,
        }
    return {"host": check.host, "port": check.port, "timeout_ms": check.timeout_ms}


def resolve_config_path(config_path: Optional[Path] = None) -> Path:
    """
    Determine which configuration file to use.

    Search order:
    1. Explicit path if provided
    2. HEALTHCHECK_CONFIG environment variable
    3. ./healthcheck.yaml
    """
    if config_path:
        return Path(config_path)
    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_FILE


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from YAML file.

    Environment variable overrides:
    - HEALTHCHECK_TELEGRAM_TOKEN: Override telegram_token
    - HEALTHCHECK_WEB_PORT: Override web_port
    - HEALTHCHECK_LOG_LEVEL: Override log_level

    Args:
        config_path: Optional explicit path to config file

    Returns:
        Loaded configuration

    Raises:
        ConfigError: If the file is missing, unparsable or invalid
    """
    path = resolve_config_path(config_path)

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"Configuration file not found: {path}")
    except OSError as e:
        raise ConfigError(f"Cannot read configuration file {path}: {e}")
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse configuration file {path}: {e}")

    config = Config.from_dict(data)
    return apply_env_overrides(config)


def apply_env_overrides(config: Config) -> Config:
    """
    Apply environment variable overrides to config.

    The replaced file values are kept in ``config.file_values`` so that
    ``to_dict`` and ``save_config`` never write the overriding values.
    Applying the overrides twice keeps the original file values.
    """
    def override(key: str, value: Any) -> None:
        config.file_values.setdefault(key, getattr(config, key))
        setattr(config, key, value)

    if "HEALTHCHECK_TELEGRAM_TOKEN" in os.environ:
        override("telegram_token", os.environ["HEALTHCHECK_TELEGRAM_TOKEN"])

    if "HEALTHCHECK_WEB_PORT" in os.environ:
        try:
            web_port = int(os.environ["HEALTHCHECK_WEB_PORT"])
        except ValueError:
            raise ConfigError(
                f"HEALTHCHECK_WEB_PORT: expected an integer, got {os.environ['HEALTHCHECK_WEB_PORT']!r}"
            )
        override("web_port", web_port)

    if "HEALTHCHECK_LOG_LEVEL" in os.environ:
        override("log_level", os.environ["HEALTHCHECK_LOG_LEVEL"].upper())

    return config


def save_config(config: Config, path: Path) -> None:
    """
    Save configuration to YAML file.

    The file is written to a temporary sibling first and then moved into
    place, so a failed write leaves the previous file intact.

    Args:
        config: Configuration to save
        path: Path to save to

    Raises:
        ConfigPersistError: If the file cannot be written
    """
    path = Path(path)
    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
        )
        with os.fdopen(fd, "w") as f:
            f.write("# Service health monitor configuration\n")
            f.write("# Intervals are in milliseconds\n\n")
            yaml.safe_dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise ConfigPersistError(f"Failed to write configuration to {path}: {e}") from e
