"""
Monitoring daemon for the health monitor.

Hosts the asyncio event loop that runs the monitor tasks on a background
thread, so the synchronous web server and CLI can drive it.
"""

import asyncio
import logging
import signal
import threading
from pathlib import Path
from typing import Any, Callable, Coroutine, Optional

from healthcheck.core.config import Config
from healthcheck.core.store import HealthStateStore, ReconcileResult
from healthcheck.health.alerts import NotificationDispatcher, build_dispatcher
from healthcheck.health.checks import HealthChecker
from healthcheck.health.supervisor import TaskSupervisor

logger = logging.getLogger(__name__)


class MonitorDaemon:
    """
    Monitoring daemon that runs the per-service monitor tasks.

    The health state store is created up front and can be read from any
    thread; everything touching tasks runs on the daemon's event loop.
    """

    def __init__(
        self,
        config: Config,
        config_path: Path,
        checker: Optional[HealthChecker] = None,
        dispatcher_factory: Callable[[Config], NotificationDispatcher] = build_dispatcher,
    ):
        """
        Initialize monitoring daemon.

        Args:
            config: Initial configuration
            config_path: File the configuration is persisted to on reload
            checker: Check runner (default: HealthChecker())
            dispatcher_factory: Builds the notification dispatcher for a config
        """
        self.store = HealthStateStore(config)
        self.config_path = Path(config_path)
        self.supervisor: Optional[TaskSupervisor] = None

        self._checker = checker
        self._dispatcher_factory = dispatcher_factory
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._stop_event = threading.Event()

    @property
    def is_running(self) -> bool:
        """Check if daemon is running."""
        return self._running

    def start(self) -> None:
        """Start the event loop thread and all monitor tasks."""
        if self._running:
            raise RuntimeError("Monitor daemon already running")

        self._stop_event.clear()
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._run_loop, name="healthcheck-monitor", daemon=True
        )
        self._thread.start()
        self._running = True

        started = self.call(self._start_supervisor())
        logger.info(f"Monitor daemon started, monitoring {started} services")

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    async def _start_supervisor(self) -> int:
        self.supervisor = TaskSupervisor(
            self.store,
            self.config_path,
            checker=self._checker,
            dispatcher_factory=self._dispatcher_factory,
        )
        return await self.supervisor.start_monitoring()

    def call(self, coro: Coroutine[Any, Any, Any], timeout: Optional[float] = None) -> Any:
        """
        Run a coroutine on the daemon's event loop and wait for its result.

        Args:
            coro: Coroutine to run
            timeout: Seconds to wait (None waits indefinitely)

        Returns:
            The coroutine's result; its exceptions propagate to the caller
        """
        if not self._running or self._loop is None:
            coro.close()
            raise RuntimeError("Monitor daemon is not running")

        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout)

    def reload(self, new_config: Config, timeout: Optional[float] = 60.0) -> ReconcileResult:
        """
        Replace the configuration from another thread.

        Raises:
            ConfigPersistError: If the configuration file cannot be written
            ConfigError: If the notification channels cannot be set up
            RuntimeError: If the daemon is not running
        """
        if not self._running or self.supervisor is None:
            raise RuntimeError("Monitor daemon is not running")
        return self.call(self.supervisor.reload(new_config), timeout)

    def stop(self) -> None:
        """Stop all monitor tasks and the event loop thread."""
        if not self._running:
            return

        logger.info("Stopping monitor daemon")
        try:
            self.call(self.supervisor.shutdown(), timeout=30)
        except Exception as e:
            logger.error(f"Error while stopping monitor tasks: {e}")

        self._running = False
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)
        self._loop.close()
        self._loop = None
        self._thread = None
        self._stop_event.set()

        logger.info("Monitor daemon stopped")

    def run_forever(self) -> None:
        """
        Start the daemon and block until SIGTERM/SIGINT is received.
        """

        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, stopping daemon...")
            self._stop_event.set()

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)

        self.start()
        try:
            while not self._stop_event.wait(timeout=1.0):
                pass
        finally:
            self.stop()
