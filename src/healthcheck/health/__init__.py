"""
Health monitoring module for the service monitor.

Provides health checks, notifications, the per-service monitor loop and the
task supervisor that owns those loops.
"""

from healthcheck.health.alerts import (
    LogNotifier,
    NotificationDispatcher,
    NotificationHandler,
    TelegramNotifier,
    build_dispatcher,
)
from healthcheck.health.checks import HealthChecker, evaluate_expiry
from healthcheck.health.daemon import MonitorDaemon
from healthcheck.health.monitor import monitor_service, next_interval
from healthcheck.health.supervisor import TaskSupervisor

__all__ = [
    # Checks
    "HealthChecker",
    "evaluate_expiry",
    # Notifications
    "NotificationHandler",
    "NotificationDispatcher",
    "TelegramNotifier",
    "LogNotifier",
    "build_dispatcher",
    # Monitoring
    "monitor_service",
    "next_interval",
    "TaskSupervisor",
    "MonitorDaemon",
]
