"""
Lifecycle management for the per-service monitoring tasks.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

from healthcheck.core.config import (
    Config,
    ConfigError,
    ConfigPersistError,
    apply_env_overrides,
    save_config,
)
from healthcheck.core.store import HealthStateStore, ReconcileResult
from healthcheck.health.alerts import NotificationDispatcher, build_dispatcher
from healthcheck.health.checks import HealthChecker
from healthcheck.health.monitor import monitor_service

logger = logging.getLogger(__name__)


def _notifier_settings(config: Config) -> tuple:
    return (config.telegram_token, config.telegram_chat_id, config.alert_log)


class TaskSupervisor:
    """
    Owns the running monitor tasks.

    There is at most one task per service identifier. A configuration reload
    stops every task, reconciles the store and starts fresh tasks.
    """

    def __init__(
        self,
        store: HealthStateStore,
        config_path: Path,
        checker: Optional[HealthChecker] = None,
        dispatcher_factory: Callable[[Config], NotificationDispatcher] = build_dispatcher,
    ):
        """
        Initialize task supervisor.

        Args:
            store: Shared health state store
            config_path: File the configuration is persisted to on reload
            checker: Check runner shared by all tasks
            dispatcher_factory: Builds the notification dispatcher for a config
        """
        self.store = store
        self.config_path = Path(config_path)
        self.checker = checker or HealthChecker()
        self._dispatcher_factory = dispatcher_factory
        self.dispatcher = dispatcher_factory(store.read_config())
        self._tasks: dict[str, asyncio.Task] = {}
        self._reload_lock = asyncio.Lock()

    @property
    def tasks(self) -> dict[str, asyncio.Task]:
        """Running tasks keyed by service identifier."""
        return dict(self._tasks)

    async def start_monitoring(self) -> int:
        """
        Spawn one monitor task per enabled service.

        Must only be called when no tasks are running; reload always stops
        the old tasks first.

        Returns:
            Number of tasks started
        """
        config = self.store.read_config()

        for service_id, service in config.services.items():
            if not service.enabled:
                logger.info(f"Service '{service.name}' is disabled, skipping")
                continue

            logger.info(f"Starting monitor for service '{service.name}'")
            self._tasks[service_id] = asyncio.create_task(
                monitor_service(service_id, service, self.store, self.checker, self.dispatcher),
                name=f"monitor-{service_id}",
            )

        return len(self._tasks)

    async def stop_all(self) -> None:
        """Cancel every monitor task and wait until they have finished."""
        if not self._tasks:
            return

        logger.info(f"Stopping {len(self._tasks)} monitoring tasks")
        tasks = list(self._tasks.items())
        self._tasks.clear()

        for service_id, task in tasks:
            logger.debug(f"Cancelling task for service ID: {service_id}")
            task.cancel()

        results = await asyncio.gather(*(task for _, task in tasks), return_exceptions=True)
        for (service_id, _), result in zip(tasks, results):
            if isinstance(result, Exception):
                logger.error(f"Monitor task for {service_id} ended with error: {result}")

    async def reload(self, new_config: Config) -> ReconcileResult:
        """
        Replace the configuration and restart monitoring.

        Environment overrides are applied to the new configuration and its
        notification handlers are built before anything is written. The
        configuration is then persisted; if either step fails nothing in
        memory changes and the running tasks keep going. Once persisted, the
        tasks are always restarted, even if adopting the configuration fails.

        Args:
            new_config: Validated configuration to adopt

        Returns:
            ReconcileResult describing added, removed and kept services

        Raises:
            ConfigError: If the notification handlers cannot be set up
            ConfigPersistError: If the configuration file cannot be written
        """
        async with self._reload_lock:
            logger.info("Updating configuration and restarting tasks")
            apply_env_overrides(new_config)

            old_config = self.store.read_config()
            new_dispatcher = None
            if _notifier_settings(old_config) != _notifier_settings(new_config):
                logger.info("Notification settings changed, rebuilding notifier")
                try:
                    new_dispatcher = self._dispatcher_factory(new_config)
                except OSError as e:
                    raise ConfigError(f"Cannot set up notifications: {e}") from e

            logger.info(f"Writing configuration to {self.config_path}")
            try:
                await asyncio.to_thread(save_config, new_config, self.config_path)
            except ConfigPersistError:
                if new_dispatcher is not None:
                    await new_dispatcher.close()
                raise

            await self.stop_all()
            try:
                result = self.store.replace_config(new_config)
                if new_dispatcher is not None:
                    old_dispatcher, self.dispatcher = self.dispatcher, new_dispatcher
                    await old_dispatcher.close()
            finally:
                started = await self.start_monitoring()

            logger.info(
                f"Configuration updated: {len(result.added)} added, "
                f"{len(result.removed)} removed, {len(result.kept)} kept, "
                f"{started} tasks running"
            )
            return result

    async def shutdown(self) -> None:
        """Stop all tasks and release notifier resources."""
        await self.stop_all()
        await self.dispatcher.close()
