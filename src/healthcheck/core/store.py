"""
Shared health state for all monitored services.

Holds the live ServiceRecord of every enabled service and the current
configuration, each behind its own lock.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from healthcheck.core.config import Config, ServiceDefinition
from healthcheck.core.models import Notification, Outcome, ServiceRecord, utcnow
from healthcheck.core.policy import decide_notification

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Service identifiers affected by a configuration replacement."""

    added: set[str] = field(default_factory=set)
    removed: set[str] = field(default_factory=set)
    kept: set[str] = field(default_factory=set)


def _new_record(service_id: str, service: ServiceDefinition, now: datetime) -> ServiceRecord:
    return ServiceRecord(
        service_id=service_id,
        name=service.name,
        description=service.description,
        last_check=now,
    )


class HealthStateStore:
    """
    Single source of truth for service health.

    Record updates and config access use separate locks. Locks are only held
    for in-memory bookkeeping, never while a check or notification runs. When
    both are needed the record lock is taken first.
    """

    def __init__(self, config: Config):
        """
        Initialize the store with a record for every enabled service.

        Args:
            config: Initial configuration
        """
        self._records_lock = threading.Lock()
        self._config_lock = threading.Lock()
        self._config = config

        now = utcnow()
        self._records: dict[str, ServiceRecord] = {
            service_id: _new_record(service_id, service, now)
            for service_id, service in config.enabled_services().items()
        }

    def record_outcome(
        self,
        service_id: str,
        outcome: Outcome,
        now: Optional[datetime] = None,
    ) -> Optional[Notification]:
        """
        Apply one check outcome to a service's record.

        The returned notification must be sent by the caller; nothing is sent
        from inside the store.

        Args:
            service_id: Identifier of the checked service
            outcome: Result of the check
            now: Check time (defaults to the current time)

        Returns:
            Notification to send, or None. Also None when the service is no
            longer tracked (removed by a concurrent reload).
        """
        now = now or utcnow()

        with self._records_lock:
            record = self._records.get(service_id)
            if record is None:
                logger.debug(f"Ignoring outcome for untracked service {service_id}")
                return None

            with self._config_lock:
                notify_failures = self._config.notify_failures_for(service_id)
                rereport = self._config.rereport_for(service_id)

            previous_failures = record.consecutive_failures
            decision = decide_notification(
                record.name, previous_failures, outcome, notify_failures, rereport
            )

            record.last_check = now
            record.total_checks += 1

            if outcome.is_success:
                if not record.outcome.is_success:
                    record.uptime_start = now
                record.consecutive_failures = 0
                record.successful_checks += 1
            elif outcome.is_failure:
                record.consecutive_failures = previous_failures + 1
                record.failed_checks += 1
                record.uptime_start = None
            else:
                # Unknown only counts toward total_checks
                record.uptime_start = None

            record.outcome = outcome

        return decision

    def snapshot_all(self) -> list[ServiceRecord]:
        """
        Return copies of all records.

        Sorted by display name (case-insensitive), then identifier.
        """
        with self._records_lock:
            records = [replace(record) for record in self._records.values()]
        records.sort(key=lambda r: (r.name.lower(), r.service_id))
        return records

    def get_record(self, service_id: str) -> Optional[ServiceRecord]:
        """Return a copy of one record, or None if not tracked."""
        with self._records_lock:
            record = self._records.get(service_id)
            return replace(record) if record else None

    def read_config(self) -> Config:
        """Return the current configuration."""
        with self._config_lock:
            return self._config

    def replace_config(self, new_config: Config) -> ReconcileResult:
        """
        Adopt a new configuration and reconcile the record set.

        Records of services missing or disabled in the new configuration are
        dropped, newly enabled services get a fresh record, and surviving
        services keep their counters with name and description refreshed.

        Args:
            new_config: Configuration to adopt

        Returns:
            ReconcileResult describing the changes
        """
        with self._config_lock:
            self._config = new_config

        enabled = new_config.enabled_services()
        result = ReconcileResult()
        now = utcnow()

        with self._records_lock:
            for service_id in list(self._records):
                if service_id not in enabled:
                    del self._records[service_id]
                    result.removed.add(service_id)

            for service_id, service in enabled.items():
                record = self._records.get(service_id)
                if record is None:
                    self._records[service_id] = _new_record(service_id, service, now)
                    result.added.add(service_id)
                else:
                    record.name = service.name
                    record.description = service.description
                    result.kept.add(service_id)

        return result
