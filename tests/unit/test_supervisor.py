"""Unit tests for the monitor task supervisor."""

import asyncio
from unittest.mock import patch

import pytest

from healthcheck.core.config import Config, ConfigError, ConfigPersistError, load_config
from healthcheck.core.models import Outcome
from healthcheck.core.store import HealthStateStore
from healthcheck.health.alerts import NotificationDispatcher
from healthcheck.health.supervisor import TaskSupervisor


class CountingChecker:
    """Checker that always succeeds and counts calls per target."""

    def __init__(self):
        self.calls = {}

    async def check(self, check):
        self.calls[check.target] = self.calls.get(check.target, 0) + 1
        return Outcome.success()


def make_config(services: dict, **extra) -> Config:
    """Config with long intervals so each task checks once per start."""
    data = {"check_interval_success": 60000, "check_interval_fail": 60000, "services": {}}
    data.update(extra)
    for service_id, (port, enabled) in services.items():
        data["services"][service_id] = {
            "name": service_id.upper(),
            "enabled": enabled,
            "check": {"tcpPing": {"host": "localhost", "port": port}},
        }
    return Config.from_dict(data)


async def wait_for_checks(store, service_ids, minimum=1):
    """Wait until every listed service has been checked."""
    for _ in range(500):
        records = [store.get_record(sid) for sid in service_ids]
        if all(r is not None and r.total_checks >= minimum for r in records):
            return
        await asyncio.sleep(0.01)
    raise AssertionError("services were not checked in time")


@pytest.fixture
def factory_calls():
    """Configs passed to the dispatcher factory."""
    return []


@pytest.fixture
def supervisor(tmp_path, factory_calls):
    """Supervisor over two enabled services and one disabled."""
    config = make_config({"api": (1001, True), "db": (1002, True), "off": (1003, False)})

    def factory(cfg):
        factory_calls.append(cfg)
        return NotificationDispatcher()

    return TaskSupervisor(
        HealthStateStore(config),
        tmp_path / "healthcheck.yaml",
        checker=CountingChecker(),
        dispatcher_factory=factory,
    )


class TestStartStop:
    """Tests for spawning and stopping tasks."""

    @pytest.mark.asyncio
    async def test_spawns_enabled_services_only(self, supervisor):
        """One named task per enabled service."""
        started = await supervisor.start_monitoring()
        try:
            assert started == 2
            assert set(supervisor.tasks) == {"api", "db"}
            assert supervisor.tasks["api"].get_name() == "monitor-api"
        finally:
            await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_stop_all_cancels_and_waits(self, supervisor):
        """No task is left running after stop_all."""
        await supervisor.start_monitoring()
        tasks = list(supervisor.tasks.values())

        await supervisor.stop_all()

        assert supervisor.tasks == {}
        assert all(task.done() for task in tasks)

    @pytest.mark.asyncio
    async def test_stop_all_without_tasks(self, supervisor):
        """Stopping with nothing running is a no-op."""
        await supervisor.stop_all()
        assert supervisor.tasks == {}


class TestReload:
    """Tests for configuration reload."""

    @pytest.mark.asyncio
    async def test_reload_persists_and_restarts(self, supervisor, tmp_path):
        """The new config is written and tasks follow it."""
        await supervisor.start_monitoring()
        await wait_for_checks(supervisor.store, ["api", "db"])

        new_config = make_config({"api": (1001, True), "web": (1004, True)})
        try:
            result = await supervisor.reload(new_config)

            assert result.added == {"web"}
            assert result.removed == {"db"}
            assert result.kept == {"api"}
            assert set(supervisor.tasks) == {"api", "web"}
            assert load_config(tmp_path / "healthcheck.yaml") == new_config
            assert supervisor.store.read_config() is new_config
        finally:
            await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_reload_preserves_kept_counters(self, supervisor):
        """Surviving services keep their history across the restart."""
        await supervisor.start_monitoring()
        await wait_for_checks(supervisor.store, ["api"])

        try:
            await supervisor.reload(make_config({"api": (1001, True)}))
            await wait_for_checks(supervisor.store, ["api"], minimum=2)
            assert supervisor.store.get_record("api").successful_checks >= 2
            assert supervisor.store.get_record("db") is None
        finally:
            await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_persist_failure_changes_nothing(self, supervisor):
        """If the file cannot be written the old tasks and config stay."""
        await supervisor.start_monitoring()
        old_config = supervisor.store.read_config()
        old_tasks = supervisor.tasks

        try:
            with patch(
                "healthcheck.health.supervisor.save_config",
                side_effect=ConfigPersistError("read-only filesystem"),
            ):
                with pytest.raises(ConfigPersistError):
                    await supervisor.reload(make_config({"web": (1004, True)}))

            assert supervisor.store.read_config() is old_config
            assert supervisor.tasks == old_tasks
            assert not any(task.done() for task in old_tasks.values())
            assert supervisor.store.get_record("db") is not None
        finally:
            await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_dispatcher_rebuilt_on_notifier_change(self, supervisor, factory_calls):
        """Changing Telegram settings builds a new dispatcher."""
        await supervisor.start_monitoring()
        first = supervisor.dispatcher

        try:
            await supervisor.reload(make_config({"api": (1001, True)}))
            assert supervisor.dispatcher is first

            await supervisor.reload(
                make_config({"api": (1001, True)}, telegram_token="t", telegram_chat_id=1)
            )
            assert supervisor.dispatcher is not first
            assert len(factory_calls) == 2
        finally:
            await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_concurrent_reloads_serialised(self, supervisor):
        """Overlapping reloads leave exactly one task per enabled service."""
        await supervisor.start_monitoring()
        try:
            await asyncio.gather(
                supervisor.reload(make_config({"api": (1001, True)})),
                supervisor.reload(make_config({"api": (1001, True), "db": (1002, True)})),
            )
            assert set(supervisor.tasks) == {"api", "db"}
            assert all(not task.done() for task in supervisor.tasks.values())
        finally:
            await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_notifier_setup_failure_changes_nothing(self, tmp_path):
        """If the new notifiers cannot be built the old tasks and config stay."""

        def factory(cfg):
            if cfg.alert_log:
                raise FileExistsError(f"cannot create {cfg.alert_log.parent}")
            return NotificationDispatcher()

        supervisor = TaskSupervisor(
            HealthStateStore(make_config({"api": (1001, True)})),
            tmp_path / "healthcheck.yaml",
            checker=CountingChecker(),
            dispatcher_factory=factory,
        )
        await supervisor.start_monitoring()
        old_config = supervisor.store.read_config()
        old_tasks = supervisor.tasks

        try:
            with pytest.raises(ConfigError, match="Cannot set up notifications"):
                await supervisor.reload(
                    make_config({"web": (1004, True)}, alert_log=str(tmp_path / "logs" / "a.log"))
                )

            assert supervisor.store.read_config() is old_config
            assert supervisor.tasks == old_tasks
            assert not any(task.done() for task in old_tasks.values())
            assert not (tmp_path / "healthcheck.yaml").exists()
        finally:
            await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_tasks_restarted_when_adoption_fails(self, supervisor):
        """Monitoring is restarted even if replacing the config raises."""
        await supervisor.start_monitoring()
        old_tasks = supervisor.tasks

        try:
            with patch.object(
                supervisor.store, "replace_config", side_effect=RuntimeError("boom")
            ):
                with pytest.raises(RuntimeError):
                    await supervisor.reload(make_config({"api": (1001, True)}))

            assert set(supervisor.tasks) == {"api", "db"}
            assert all(not task.done() for task in supervisor.tasks.values())
            assert all(task.done() for task in old_tasks.values())
        finally:
            await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_env_token_not_persisted(self, supervisor, tmp_path, monkeypatch):
        """Environment overrides apply to the new config but not to the file."""
        monkeypatch.setenv("HEALTHCHECK_TELEGRAM_TOKEN", "env-secret")
        await supervisor.start_monitoring()

        try:
            await supervisor.reload(
                make_config({"api": (1001, True)}, telegram_token="file-token", telegram_chat_id=1)
            )

            assert supervisor.store.read_config().telegram_token == "env-secret"
            saved = (tmp_path / "healthcheck.yaml").read_text()
            assert "env-secret" not in saved
            assert "file-token" in saved
        finally:
            await supervisor.shutdown()
