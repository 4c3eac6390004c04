"""
Data models for the health monitor.

Defines check outcomes, per-service health records and notifications.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class OutcomeKind(Enum):
    """Possible results of one health check."""

    SUCCESS = "success"
    FAILURE = "failure"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Outcome:
    """Result of a single health check.

    Failures carry a human readable reason; success and unknown do not.
    """

    kind: OutcomeKind
    reason: Optional[str] = None

    @classmethod
    def success(cls) -> "Outcome":
        return cls(OutcomeKind.SUCCESS)

    @classmethod
    def failure(cls, reason: str) -> "Outcome":
        return cls(OutcomeKind.FAILURE, reason)

    @classmethod
    def unknown(cls) -> "Outcome":
        return cls(OutcomeKind.UNKNOWN)

    @property
    def is_success(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS

    @property
    def is_failure(self) -> bool:
        return self.kind == OutcomeKind.FAILURE

    @property
    def is_unknown(self) -> bool:
        return self.kind == OutcomeKind.UNKNOWN

    def __str__(self) -> str:
        if self.is_failure:
            return f"FAILURE ({self.reason})"
        return self.kind.value.upper()


class NotificationKind(Enum):
    """Kinds of messages sent to the notification channel."""

    ALERT = "alert"
    RECOVERY = "recovery"


@dataclass
class Notification:
    """An alert or recovery message for one service."""

    kind: NotificationKind
    service_name: str
    message: str
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def is_recovery(self) -> bool:
        return self.kind == NotificationKind.RECOVERY

    def format(self) -> str:
        """Format notification as a single log line."""
        ts = self.timestamp.strftime("%Y-%m-%d %H:%M:%S")
        kind = self.kind.value.upper()
        return f"[{ts}] [{kind}] {self.service_name}: {self.message}"


@dataclass
class ServiceRecord:
    """Live health ledger for one enabled service."""

    service_id: str
    name: str
    description: str = ""
    outcome: Outcome = field(default_factory=Outcome.unknown)
    last_check: datetime = field(default_factory=utcnow)
    consecutive_failures: int = 0
    total_checks: int = 0
    successful_checks: int = 0
    failed_checks: int = 0
    uptime_start: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert record to a JSON-serializable dict."""
        return {
            "id": self.service_id,
            "name": self.name,
            "description": self.description,
            "state": self.outcome.kind.value,
            "reason": self.outcome.reason,
            "last_check": self.last_check.isoformat(),
            "consecutive_failures": self.consecutive_failures,
            "total_checks": self.total_checks,
            "successful_checks": self.successful_checks,
            "failed_checks": self.failed_checks,
            "uptime_start": (
                self.uptime_start.isoformat() if self.uptime_start else None
            ),
        }
