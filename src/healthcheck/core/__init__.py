"""
Core components for the health monitor.

Provides configuration, data models, the notification policy and the shared
health state store.
"""

from healthcheck.core.config import (
    CertificateCheck,
    Config,
    ConfigError,
    ConfigPersistError,
    HttpCheck,
    ServiceDefinition,
    TcpPingCheck,
    load_config,
    save_config,
)
from healthcheck.core.models import (
    Notification,
    NotificationKind,
    Outcome,
    OutcomeKind,
    ServiceRecord,
)
from healthcheck.core.policy import decide_notification
from healthcheck.core.store import HealthStateStore, ReconcileResult

__all__ = [
    "Config",
    "ConfigError",
    "ConfigPersistError",
    "ServiceDefinition",
    "HttpCheck",
    "CertificateCheck",
    "TcpPingCheck",
    "load_config",
    "save_config",
    "Outcome",
    "OutcomeKind",
    "Notification",
    "NotificationKind",
    "ServiceRecord",
    "decide_notification",
    "HealthStateStore",
    "ReconcileResult",
]
