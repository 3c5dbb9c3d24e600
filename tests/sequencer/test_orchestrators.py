"""Tests for orchestration strategies.

Covers resolution safety (dry run, repeat, from filter, configuration errors),
the sequential and scheduled strategies, and every wave variant.
"""

from pathlib import Path

import pytest

from sequencer.errors import (
    CircularDependencyError,
    ConfigurationError,
    LockAcquisitionTimeoutError,
    MissingDependencyError,
    MissingExecutionHistoryError,
    UnknownStrategyError,
    WaveExecutionError,
)
from sequencer.models import ExecutionMethod, OperationState
from sequencer.orchestrators import create_orchestrator
from sequencer.services import SequencerServices, build_services
from sequencer.settings import SequencerConfig
from sequencer.store import InMemoryStateStore

from .test_helpers import RecordingMigrationSource, migration, read_log, write_operation

T1 = "2024_01_01_000000_t1"
T2 = "2024_01_02_000000_t2"
T3 = "2024_01_03_000000_t3"
T4 = "2024_01_04_000000_t4"
T5 = "2024_01_05_000000_t5"


async def _states(store: InMemoryStateStore, identity: str) -> list[OperationState]:
    return [r.state for r in await store.list_records(identity)]


def _serial_services(config: SequencerConfig, store: InMemoryStateStore) -> SequencerServices:
    """Services running one wave member at a time, so cancellation is observable."""
    return build_services(config.model_copy(update={"max_concurrency": 1}), store=store)


# =============================================================================
# Resolution Safety Tests
# =============================================================================


class TestResolution:
    """Behaviour that holds before anything executes."""

    async def test_dry_run_previews_without_side_effects(
        self,
        services: SequencerServices,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        write_operation(operations_dir, T1, log=log_path, depends_on=[T2])
        write_operation(operations_dir, T2, log=log_path)
        orchestrator = services.orchestrator()

        first = await orchestrator.process(dry_run=True)
        second = await orchestrator.process(dry_run=True)

        assert first is not None
        assert [p.name for p in first] == [T2, T1]
        assert first == second
        assert await store.list_records() == []
        assert read_log(log_path) == []

    async def test_completed_operations_do_not_run_again(
        self,
        services: SequencerServices,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        write_operation(operations_dir, T1, log=log_path)

        await services.orchestrator().process()
        await services.orchestrator().process()

        assert read_log(log_path) == [f"handle:{T1}"]
        assert await _states(store, T1) == [OperationState.COMPLETED]

    async def test_repeat_reruns_completed_operations(
        self,
        services: SequencerServices,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        write_operation(operations_dir, T1, log=log_path)
        await services.orchestrator().process()

        await services.orchestrator().process(repeat=True)

        assert read_log(log_path) == [f"handle:{T1}", f"handle:{T1}"]
        assert await _states(store, T1) == [OperationState.COMPLETED] * 2

    async def test_repeat_without_history_fails_before_running(
        self,
        services: SequencerServices,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        write_operation(operations_dir, T1, log=log_path)
        write_operation(operations_dir, T2, log=log_path)
        await services.runner.run(services.discovery.discover()[0])

        with pytest.raises(MissingExecutionHistoryError) as exc_info:
            await services.orchestrator().process(repeat=True)

        assert exc_info.value.identities == [T2]
        assert read_log(log_path) == [f"handle:{T1}"]
        assert await _states(store, T2) == []

    async def test_repeat_check_can_be_disabled(
        self,
        config: SequencerConfig,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        write_operation(operations_dir, T1, log=log_path)
        services = build_services(
            config.model_copy(update={"require_history_for_repeat": False}), store=store
        )

        await services.orchestrator().process(repeat=True)

        assert read_log(log_path) == [f"handle:{T1}"]

    async def test_from_filter_skips_earlier_tasks(
        self,
        services: SequencerServices,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        for identity in (T1, T2, T3):
            write_operation(operations_dir, identity, log=log_path)

        await services.orchestrator().process(from_timestamp="2024_01_02_000000")

        assert read_log(log_path) == [f"handle:{T2}", f"handle:{T3}"]
        assert await _states(store, T1) == []

    async def test_cycle_fails_before_any_record(
        self,
        services: SequencerServices,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        write_operation(operations_dir, T1, log=log_path)
        write_operation(operations_dir, T2, log=log_path, depends_on=[T3])
        write_operation(operations_dir, T3, log=log_path, depends_on=[T2])

        with pytest.raises(CircularDependencyError):
            await services.orchestrator().process()

        assert await store.list_records() == []
        assert read_log(log_path) == []

    async def test_missing_dependency_fails_before_any_record(
        self,
        services: SequencerServices,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        write_operation(operations_dir, T1, log=log_path)
        write_operation(operations_dir, T2, log=log_path, depends_on=["2020_01_01_000000_gone"])

        with pytest.raises(MissingDependencyError):
            await services.orchestrator("graph").process()

        assert await store.list_records() == []

    async def test_dependency_on_completed_operation_is_satisfied(
        self,
        services: SequencerServices,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        write_operation(operations_dir, T1, log=log_path)
        await services.orchestrator().process()
        write_operation(operations_dir, T2, log=log_path, depends_on=[f"{T1}.py"])

        await services.orchestrator().process()

        assert read_log(log_path) == [f"handle:{T1}", f"handle:{T2}"]

    def test_unknown_strategy_is_rejected(self, services: SequencerServices) -> None:
        with pytest.raises(UnknownStrategyError, match="Available"):
            services.orchestrator("parallel-universe")

    async def test_no_pending_operations_is_a_no_op(self, services: SequencerServices) -> None:
        assert await services.orchestrator().process() is None


# =============================================================================
# Isolation Tests
# =============================================================================


class TestIsolation:
    """Tests for the process lock around a run."""

    async def test_isolated_run_releases_lock(
        self, services: SequencerServices, operations_dir: Path, log_path: Path
    ) -> None:
        write_operation(operations_dir, T1, log=log_path)
        lock_config = services.config.lock

        await services.orchestrator().process(isolate=True)

        handle = await services.lock.acquire(lock_config.name, timeout=0.1, ttl=5)
        services.lock.release(handle)
        assert read_log(log_path) == [f"handle:{T1}"]

    async def test_isolated_run_times_out_while_another_holds_lock(
        self,
        services: SequencerServices,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        write_operation(operations_dir, T1, log=log_path)
        lock_config = services.config.lock
        await services.lock.acquire(lock_config.name, timeout=1, ttl=30)

        with pytest.raises(LockAcquisitionTimeoutError):
            await services.orchestrator().process(isolate=True)

        assert await store.list_records() == []

    async def test_isolate_without_lock_is_a_configuration_error(
        self, services: SequencerServices, operations_dir: Path, log_path: Path
    ) -> None:
        write_operation(operations_dir, T1, log=log_path)
        orchestrator = create_orchestrator(
            "sequential",
            services.discovery,
            services.runner,
            services.rollback,
            services.config,
        )

        with pytest.raises(ConfigurationError, match="DistributedLock"):
            await orchestrator.process(isolate=True)


# =============================================================================
# Sequential Strategy Tests
# =============================================================================


class TestSequentialOrchestrator:
    """Tests for one-at-a-time execution with rollback."""

    async def test_runs_in_dependency_then_timestamp_order(
        self, services: SequencerServices, operations_dir: Path, log_path: Path
    ) -> None:
        write_operation(operations_dir, T1, log=log_path, depends_on=[T3])
        write_operation(operations_dir, T2, log=log_path)
        write_operation(operations_dir, T3, log=log_path)

        await services.orchestrator("sequential").process()

        assert read_log(log_path) == [f"handle:{T3}", f"handle:{T1}", f"handle:{T2}"]

    async def test_failure_rolls_back_earlier_operations_and_reraises(
        self,
        services: SequencerServices,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        """T1 then T2 (depends on T1); T2 fails → only T1 is compensated."""
        write_operation(operations_dir, T1, log=log_path, capabilities=["Rollbackable"])
        write_operation(
            operations_dir,
            T2,
            log=log_path,
            capabilities=["Rollbackable", "HasDependencies"],
            depends_on=[T1],
            fail=True,
        )
        write_operation(operations_dir, T3, log=log_path)

        with pytest.raises(RuntimeError, match=f"boom {T2}"):
            await services.orchestrator("sequential").process()

        assert read_log(log_path) == [f"handle:{T1}", f"handle:{T2}", f"rollback:{T1}"]
        assert await _states(store, T1) == [OperationState.ROLLED_BACK]
        assert await _states(store, T2) == [OperationState.FAILED]
        assert await _states(store, T3) == []

    async def test_rollback_runs_in_reverse_execution_order(
        self, services: SequencerServices, operations_dir: Path, log_path: Path
    ) -> None:
        write_operation(operations_dir, T1, log=log_path, capabilities=["Rollbackable"])
        write_operation(operations_dir, T2, log=log_path, capabilities=["Rollbackable"])
        write_operation(operations_dir, T3, log=log_path, fail=True)

        with pytest.raises(RuntimeError):
            await services.orchestrator("sequential").process()

        assert read_log(log_path)[-2:] == [f"rollback:{T2}", f"rollback:{T1}"]

    async def test_failed_operation_is_pending_on_next_run(
        self,
        services: SequencerServices,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        path = write_operation(operations_dir, T1, log=log_path, fail=True)
        with pytest.raises(RuntimeError):
            await services.orchestrator().process()

        path.write_text(path.read_text().replace(f"raise RuntimeError('boom {T1}')", "pass"))
        fresh = build_services(services.config, store=store)
        await fresh.orchestrator().process()

        assert await _states(store, T1) == [OperationState.FAILED, OperationState.COMPLETED]

    async def test_asynchronous_operation_is_dispatched_and_worker_completes_it(
        self,
        services: SequencerServices,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        write_operation(operations_dir, T1, log=log_path, capabilities=["Asynchronous"])
        write_operation(operations_dir, T2, log=log_path)

        await services.orchestrator().process()

        assert await _states(store, T1) == [OperationState.PENDING]
        assert read_log(log_path) == [f"handle:{T2}"]

        await services.worker().drain()

        assert await _states(store, T1) == [OperationState.COMPLETED]

    async def test_worker_discards_payloads_of_rolled_back_records(
        self,
        services: SequencerServices,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        write_operation(
            operations_dir, T1, log=log_path, capabilities=["Asynchronous", "Rollbackable"]
        )
        write_operation(operations_dir, T2, log=log_path, capabilities=["Asynchronous"])
        write_operation(operations_dir, T3, log=log_path, fail=True)

        with pytest.raises(RuntimeError, match=f"boom {T3}"):
            await services.orchestrator().process()

        assert await _states(store, T1) == [OperationState.ROLLED_BACK]
        assert read_log(log_path) == [f"handle:{T3}", f"rollback:{T1}"]

        drained = await services.worker().drain()

        assert [outcome.identity for outcome in drained] == [T2]
        assert await _states(store, T1) == [OperationState.ROLLED_BACK]
        assert await _states(store, T2) == [OperationState.COMPLETED]
        assert read_log(log_path) == [f"handle:{T3}", f"rollback:{T1}", f"handle:{T2}"]

    async def test_migrations_are_interleaved_by_timestamp(
        self,
        config: SequencerConfig,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        write_operation(operations_dir, T1, log=log_path)
        write_operation(operations_dir, T3, log=log_path)
        migrations = RecordingMigrationSource(
            [migration("2024_01_02_000000_add_column")], log_path
        )
        services = build_services(config, store=store, migrations=migrations)

        previews = await services.orchestrator().process(dry_run=True)
        await services.orchestrator().process()

        assert previews is not None
        assert [p.type for p in previews] == ["operation", "migration", "operation"]
        assert read_log(log_path) == [
            f"handle:{T1}",
            "migrate:2024_01_02_000000_add_column",
            f"handle:{T3}",
        ]
        assert migrations.pending() == []
        assert await _states(store, "2024_01_02_000000_add_column") == []

    async def test_failed_migration_rolls_back_and_reraises(
        self,
        config: SequencerConfig,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        write_operation(operations_dir, T1, log=log_path, capabilities=["Rollbackable"])
        write_operation(operations_dir, T3, log=log_path)
        migrations = RecordingMigrationSource(
            [migration("2024_01_02_000000_add_column")],
            log_path,
            fail=["2024_01_02_000000_add_column"],
        )
        services = build_services(config, store=store, migrations=migrations)

        with pytest.raises(RuntimeError, match="migration boom"):
            await services.orchestrator().process()

        assert read_log(log_path) == [f"handle:{T1}", f"rollback:{T1}"]
        assert await _states(store, T3) == []


# =============================================================================
# Scheduled Strategy Tests
# =============================================================================


class TestScheduledOrchestrator:
    """Tests for deferring operations that are not due yet."""

    async def test_future_operations_and_dependents_are_deferred(
        self,
        services: SequencerServices,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        write_operation(
            operations_dir,
            T1,
            log=log_path,
            capabilities=["Scheduled"],
            execute_at="2000-01-01T00:00:00",
        )
        write_operation(
            operations_dir,
            T2,
            log=log_path,
            capabilities=["Scheduled"],
            execute_at="2999-01-01T00:00:00+00:00",
        )
        write_operation(operations_dir, T3, log=log_path, depends_on=[T2])
        write_operation(operations_dir, T4, log=log_path)

        await services.orchestrator("scheduled").process()

        assert read_log(log_path) == [f"handle:{T1}", f"handle:{T4}"]
        assert await _states(store, T2) == []
        assert await _states(store, T3) == []
        records = await store.list_records(T1)
        assert records[0].method == ExecutionMethod.SCHEDULED

    async def test_deferred_operations_stay_pending(
        self, services: SequencerServices, operations_dir: Path, log_path: Path
    ) -> None:
        write_operation(
            operations_dir,
            T1,
            log=log_path,
            capabilities=["Scheduled"],
            execute_at="2999-01-01T00:00:00+00:00",
        )

        await services.orchestrator("scheduled").process()

        pending = await services.discovery.list_pending()
        assert [d.identity for d in pending] == [T1]


# =============================================================================
# Wave Strategy Tests
# =============================================================================


class TestDependencyGraphOrchestrator:
    """Tests for the 'graph' strategy."""

    async def test_waves_run_dependencies_first(
        self,
        services: SequencerServices,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        write_operation(operations_dir, T1, log=log_path)
        write_operation(operations_dir, T2, log=log_path)
        write_operation(operations_dir, T3, log=log_path, depends_on=[T1, T2])

        await services.orchestrator("graph").process()

        events = read_log(log_path)
        assert set(events[:2]) == {f"handle:{T1}", f"handle:{T2}"}
        assert events[2] == f"handle:{T3}"
        records = await store.list_records(T3)
        assert records[0].method == ExecutionMethod.GRAPH

    async def test_failure_lets_wave_finish_but_stops_later_waves(
        self,
        services: SequencerServices,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        """T1, T2 independent; T3 needs both. T1 fails → T2 completes, T3 never starts."""
        write_operation(operations_dir, T1, log=log_path, fail=True)
        write_operation(operations_dir, T2, log=log_path, capabilities=["Rollbackable"])
        write_operation(operations_dir, T3, log=log_path, depends_on=[T1, T2])

        with pytest.raises(WaveExecutionError) as exc_info:
            await services.orchestrator("graph").process()

        assert exc_info.value.wave_index == 0
        assert list(exc_info.value.failures) == [T1]
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert f"handle:{T2}" in read_log(log_path)
        assert await _states(store, T3) == []
        assert await _states(store, T1) == [OperationState.FAILED]
        assert await _states(store, T2) == [OperationState.ROLLED_BACK]

    async def test_rollback_covers_prior_waves_in_reverse(
        self,
        services: SequencerServices,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        write_operation(operations_dir, T1, log=log_path, capabilities=["Rollbackable"])
        write_operation(
            operations_dir,
            T2,
            log=log_path,
            capabilities=["Rollbackable"],
            depends_on=[T1],
        )
        write_operation(operations_dir, T3, log=log_path, depends_on=[T2], fail=True)

        with pytest.raises(WaveExecutionError):
            await services.orchestrator("graph").process()

        assert read_log(log_path)[-2:] == [f"rollback:{T2}", f"rollback:{T1}"]

    async def test_rollback_skips_members_that_were_allowed_to_fail(
        self,
        services: SequencerServices,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        write_operation(
            operations_dir,
            T1,
            log=log_path,
            capabilities=["AllowedToFail", "Rollbackable"],
            fail=True,
        )
        write_operation(operations_dir, T2, log=log_path, capabilities=["Rollbackable"])
        write_operation(operations_dir, T3, log=log_path, fail=True)

        with pytest.raises(WaveExecutionError) as exc_info:
            await services.orchestrator("graph").process()

        assert list(exc_info.value.failures) == [T3]
        events = read_log(log_path)
        assert f"rollback:{T2}" in events
        assert f"rollback:{T1}" not in events
        assert await _states(store, T1) == [OperationState.FAILED]
        assert await _states(store, T2) == [OperationState.ROLLED_BACK]

    async def test_allowed_to_fail_skips_dependents_and_continues(
        self,
        services: SequencerServices,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        write_operation(
            operations_dir, T1, log=log_path, capabilities=["AllowedToFail"], fail=True
        )
        write_operation(operations_dir, T2, log=log_path)
        write_operation(operations_dir, T3, log=log_path, depends_on=[T1])
        write_operation(operations_dir, T4, log=log_path, depends_on=[T3])
        write_operation(operations_dir, T5, log=log_path, depends_on=[T2])

        await services.orchestrator("graph").process()

        assert await _states(store, T1) == [OperationState.FAILED]
        assert await _states(store, T3) == [OperationState.SKIPPED]
        assert await _states(store, T4) == [OperationState.SKIPPED]
        assert await _states(store, T5) == [OperationState.COMPLETED]
        t3 = (await store.list_records(T3))[0]
        assert t3.skip_reason == f"Dependency {T1} failed"
        assert f"handle:{T3}" not in read_log(log_path)

    async def test_asynchronous_members_run_inline(
        self,
        services: SequencerServices,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        write_operation(operations_dir, T1, log=log_path, capabilities=["Asynchronous"])

        await services.orchestrator("graph").process()

        assert await _states(store, T1) == [OperationState.COMPLETED]
        assert services.queue.queue_names() == []

    async def test_migrations_run_before_first_wave(
        self,
        config: SequencerConfig,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        write_operation(operations_dir, T1, log=log_path)
        migrations = RecordingMigrationSource(
            [migration("2024_01_02_000000_add_column")], log_path
        )
        services = build_services(config, store=store, migrations=migrations)

        await services.orchestrator("graph").process()

        assert read_log(log_path) == ["migrate:2024_01_02_000000_add_column", f"handle:{T1}"]


class TestBatchOrchestrators:
    """Tests for 'batch', 'transactional-batch' and 'allowed-to-fail'."""

    @staticmethod
    def _two_wave_setup(operations_dir: Path, log_path: Path) -> None:
        """Wave 1: T1, T2. Wave 2: T3 (needs T1) ok, T4 (needs T2) fails, T5 (needs T2)."""
        write_operation(operations_dir, T1, log=log_path, capabilities=["Rollbackable"])
        write_operation(operations_dir, T2, log=log_path, capabilities=["Rollbackable"])
        write_operation(
            operations_dir, T3, log=log_path, capabilities=["Rollbackable"], depends_on=[T1]
        )
        write_operation(operations_dir, T4, log=log_path, depends_on=[T2], fail=True)
        write_operation(
            operations_dir, T5, log=log_path, capabilities=["Rollbackable"], depends_on=[T2]
        )

    async def test_batch_cancels_unstarted_members_without_rollback(
        self,
        config: SequencerConfig,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        self._two_wave_setup(operations_dir, log_path)
        services = _serial_services(config, store)

        with pytest.raises(WaveExecutionError) as exc_info:
            await services.orchestrator("batch").process()

        assert exc_info.value.wave_index == 1
        assert await _states(store, T3) == [OperationState.COMPLETED]
        assert await _states(store, T5) == []
        assert not any(e.startswith("rollback:") for e in read_log(log_path))
        assert (await store.list_records(T1))[0].method == ExecutionMethod.BATCH

    async def test_transactional_batch_rolls_back_only_failing_wave(
        self,
        config: SequencerConfig,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        self._two_wave_setup(operations_dir, log_path)
        services = _serial_services(config, store)

        with pytest.raises(WaveExecutionError):
            await services.orchestrator("transactional-batch").process()

        rollbacks = [e for e in read_log(log_path) if e.startswith("rollback:")]
        assert rollbacks == [f"rollback:{T3}"]
        assert await _states(store, T1) == [OperationState.COMPLETED]
        assert await _states(store, T3) == [OperationState.ROLLED_BACK]
        assert await _states(store, T5) == []

    async def test_graph_strategy_runs_whole_wave_and_rolls_back_everything(
        self,
        config: SequencerConfig,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        self._two_wave_setup(operations_dir, log_path)
        services = _serial_services(config, store)

        with pytest.raises(WaveExecutionError):
            await services.orchestrator("graph").process()

        rollbacks = [e for e in read_log(log_path) if e.startswith("rollback:")]
        assert rollbacks == [
            f"rollback:{T5}",
            f"rollback:{T3}",
            f"rollback:{T2}",
            f"rollback:{T1}",
        ]

    async def test_allowed_to_fail_strategy_runs_every_member_and_keeps_work(
        self,
        config: SequencerConfig,
        store: InMemoryStateStore,
        operations_dir: Path,
        log_path: Path,
    ) -> None:
        self._two_wave_setup(operations_dir, log_path)
        services = _serial_services(config, store)

        with pytest.raises(WaveExecutionError):
            await services.orchestrator("allowed-to-fail").process()

        assert await _states(store, T5) == [OperationState.COMPLETED]
        assert await _states(store, T3) == [OperationState.COMPLETED]
        assert not any(e.startswith("rollback:") for e in read_log(log_path))
