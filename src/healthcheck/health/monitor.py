"""
Per-service monitoring loop.

Each enabled service gets one loop that checks it, records the outcome,
sends any resulting notification and sleeps for a state-dependent interval.
"""

import asyncio
import logging

from healthcheck.core.config import Config, ServiceDefinition
from healthcheck.core.models import Outcome
from healthcheck.core.store import HealthStateStore
from healthcheck.health.alerts import NotificationDispatcher
from healthcheck.health.checks import HealthChecker

logger = logging.getLogger(__name__)


def next_interval(config: Config, service_id: str, outcome: Outcome) -> int:
    """
    Milliseconds to wait before the next check.

    Failures use the failure interval; success and unknown use the success
    interval. Per-service overrides win over global defaults.
    """
    if outcome.is_failure:
        return config.fail_interval_for(service_id)
    return config.success_interval_for(service_id)


async def run_check(checker: HealthChecker, service: ServiceDefinition) -> Outcome:
    """Run a service's check, turning unexpected errors into failures."""
    try:
        return await checker.check(service.check)
    except Exception as e:
        logger.exception(f"Check for service '{service.name}' raised")
        return Outcome.failure(f"Check error: {e}")


async def monitor_service(
    service_id: str,
    service: ServiceDefinition,
    store: HealthStateStore,
    checker: HealthChecker,
    dispatcher: NotificationDispatcher,
) -> None:
    """
    Monitor one service until cancelled.

    The store is only touched synchronously between awaits, so cancellation
    can never interrupt a record update. A notification that has been decided
    is shielded from cancellation and still delivered.

    Args:
        service_id: Identifier of the service in the configuration
        service: Service definition of the current configuration
        store: Shared health state store
        checker: Check runner
        dispatcher: Notification dispatcher
    """
    while True:
        logger.info(f"Running health check for service: {service.name}")
        outcome = await run_check(checker, service)

        if outcome.is_success:
            logger.info(f"Service '{service.name}' check succeeded")
        elif outcome.is_failure:
            logger.warning(f"Service '{service.name}' check failed: {outcome.reason}")
        else:
            logger.info(f"Service '{service.name}' check returned unknown state")

        notification = store.record_outcome(service_id, outcome)
        if notification is not None:
            try:
                await asyncio.shield(dispatcher.notify(notification))
            except Exception as e:
                logger.error(f"Failed to send notification for '{service.name}': {e}")

        interval = next_interval(store.read_config(), service_id, outcome)
        logger.debug(f"Service '{service.name}' next check in {interval}ms")
        await asyncio.sleep(interval / 1000)
