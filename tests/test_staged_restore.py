"""
Tests for the staged backup restore.

Validates that restore progress advances one fixed step per tick, that the
restored cluster is materialized exactly once on the final tick, and that
reset cancels a restore in flight.
"""

import pytest

from drsim.config import EngineSettings
from drsim.simulation import (
    EventType,
    RecoveryActionId,
    RestoreTask,
    SimulationPhase,
    fail_region,
    invoke_recovery_action,
    new_simulation,
    reset,
    run_restore_to_completion,
    tick_restore,
    toggle_node,
)
from drsim.simulation.recovery import RESTORED_REGION_ID
from drsim.simulation.region import find_region


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _restoring(settings=None):
    """Cold standby with the DC cluster lost and a restore just started."""
    state = new_simulation("cold_standby", settings=settings)
    state = fail_region(state, "dc-cluster")
    return invoke_recovery_action(state, RecoveryActionId.RESTORE_FROM_BACKUP)


def _restored_nodes(state):
    return [n for n in state.nodes if n.region == RESTORED_REGION_ID]


# ===========================================================================
# RestoreTask
# ===========================================================================


class TestRestoreTask:
    """The resumable tick object on its own."""

    def test_progress_steps(self):
        task = RestoreTask()
        seen = [task.progress_percent]
        while task.running:
            task = task.advance()
            seen.append(task.progress_percent)
        assert seen == [0, 25, 50, 75, 100]
        assert task.finished

    def test_finished_task_does_not_advance(self):
        task = RestoreTask(total_ticks=2, completed_ticks=2)
        assert task.advance() is task

    def test_cancelled_task_does_not_advance(self):
        task = RestoreTask().advance().cancel()
        assert not task.running
        assert task.advance() is task
        assert task.progress_percent == 25

    def test_advance_returns_new_instance(self):
        task = RestoreTask()
        task.advance()
        assert task.completed_ticks == 0

    @pytest.mark.parametrize("total,done", [(0, 0), (4, 5), (4, -1)])
    def test_invalid_task_rejected(self, total, done):
        with pytest.raises(ValueError):
            RestoreTask(total_ticks=total, completed_ticks=done)


# ===========================================================================
# Engine-driven restore
# ===========================================================================


class TestEngineRestore:
    """Ticking the restore through the engine."""

    def test_restore_starts_at_zero(self):
        state = _restoring()
        assert state.phase == SimulationPhase.RESTORING
        assert state.progress_percent == 0
        assert state.restore_task.source_region == "dr-backup-storage"
        assert state.available_actions == ()

    def test_progress_is_monotonic_and_cluster_appears_once(self):
        state = _restoring()
        progress = [state.progress_percent]
        restored_counts = [len(_restored_nodes(state))]

        for _ in range(4):
            state = tick_restore(state)
            progress.append(state.progress_percent)
            restored_counts.append(len(_restored_nodes(state)))

        assert progress == [0, 25, 50, 75, 100]
        assert restored_counts == [0, 0, 0, 0, 3]
        assert find_region(state.regions, RESTORED_REGION_ID) is not None
        assert state.phase == SimulationPhase.FAILURE_OCCURRED
        assert state.available_actions == (RecoveryActionId.POINT_TO_RESTORED,)

    def test_each_tick_logs_progress(self):
        state = _restoring()
        before = len(state.logs)
        state = tick_restore(state)
        assert len(state.logs) == before + 1
        assert state.logs.last.event_type == EventType.STATUS_CHANGE
        assert state.logs.last.message == "Restore progress: 25%"

    def test_tick_after_completion_is_silent_noop(self):
        done = run_restore_to_completion(_restoring())
        assert tick_restore(done) is done
        assert len(_restored_nodes(done)) == 3

    def test_tick_without_restore_is_silent_noop(self):
        state = new_simulation("cold_standby")
        assert tick_restore(state) is state

    def test_reset_cancels_restore_in_flight(self):
        state = tick_restore(tick_restore(_restoring()))
        assert state.progress_percent == 50

        fresh = reset(state)
        assert fresh.restore_task.cancelled
        assert fresh.restore_task.completed_ticks == 2
        assert not fresh.is_restoring
        assert fresh.progress_percent == 0
        assert fresh.phase == SimulationPhase.INITIAL
        assert fresh.logs.last.message == "Restore cancelled at 50%"
        assert tick_restore(fresh) is fresh
        assert _restored_nodes(fresh) == []

    def test_new_restore_after_cancelled_one(self):
        fresh = reset(tick_restore(_restoring()))
        state = fail_region(fresh, "dc-cluster")
        assert state.available_actions == (RecoveryActionId.RESTORE_FROM_BACKUP,)

        state = invoke_recovery_action(state, RecoveryActionId.RESTORE_FROM_BACKUP)
        assert not state.restore_task.cancelled
        assert state.progress_percent == 0
        state = run_restore_to_completion(state)
        assert len(_restored_nodes(state)) == 3

    def test_restore_keeps_its_source_backup(self):
        """
        Setup: DC majority lost with one DC node still up, so the restore
        starts from the DC backup storage; the last DC node fails mid-restore.
        Validates: the restored cluster is placed where the restore began.
        """
        state = new_simulation("cold_standby")
        for node_id in ("dc-primary", "dc-secondary1"):
            state = toggle_node(state, node_id)
        state = invoke_recovery_action(state, RecoveryActionId.RESTORE_FROM_BACKUP)
        assert state.restore_task.source_region == "dc-backup-storage"

        state = toggle_node(tick_restore(state), "dc-secondary2")
        assert state.phase == SimulationPhase.RESTORING

        state = run_restore_to_completion(state)
        restored = find_region(state.regions, RESTORED_REGION_ID)
        assert restored.name == "Restored Cluster (Region-A)"
        assert {n.datacenter for n in _restored_nodes(state)} == {"Region-A"}

    def test_configured_tick_count(self):
        state = _restoring(EngineSettings(restore_ticks=2))
        state = tick_restore(state)
        assert state.progress_percent == 50
        state = tick_restore(state)
        assert state.progress_percent == 100
        assert len(_restored_nodes(state)) == 3
