"""
Tests for the recovery action library.

Each action is exercised directly (without the phase state machine) on a
failed topology. Validates the resulting nodes and regions, the emitted
events, idempotence guards, and the warning no-op when a target is missing.
"""

import pytest

from drsim.simulation import (
    ClusterState,
    DeploymentMode,
    EventType,
    NodeRole,
    NodeStatus,
    RECOVERY_ACTIONS,
    RecoveryActionId,
    RecoveryContext,
    ScenarioKind,
    VotingRights,
    apply_region_failure,
    compute_status,
    find_node,
    get_scenario,
    update_node,
)
from drsim.simulation.recovery import (
    RESTORED_REGION_ID,
    add_new_voting_nodes,
    add_single_voting_node,
    begin_restore_from_backup,
    complete_restore,
    grant_single_vote,
    grant_voting_rights,
    point_to_restored_cluster,
    reconfigure_as_standalone,
    repoint_to_secondary_cluster,
    resolve_action_id,
)
from drsim.simulation.failures import toggle_node
from drsim.simulation.region import find_region, update_region


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _failed(kind, region_id):
    """Nodes and effective regions after failing ``region_id``."""
    scenario = get_scenario(kind)
    result = apply_region_failure(scenario.nodes, region_id, kind)
    regions = result.regions if result.regions is not None else scenario.regions
    return result.nodes, regions


def _ctx(kind, regions=None, new_node_count=2):
    return RecoveryContext(
        kind=kind,
        regions=regions if regions is not None else get_scenario(kind).regions,
        mode=DeploymentMode.ATLAS,
        new_node_count=new_node_count,
    )


def _types(result):
    return [e.event_type for e in result.events]


# ===========================================================================
# Basic DR
# ===========================================================================


class TestBasicDR:
    """Reconfigure-as-standalone and add-new-voting-nodes."""

    KIND = ScenarioKind.BASIC_DR

    def test_reconfigure_as_standalone(self):
        nodes, regions = _failed(self.KIND, "primary-dc")
        result = reconfigure_as_standalone(nodes, _ctx(self.KIND, regions))

        assert result.applied
        assert find_node(result.nodes, "node-3").role == NodeRole.STANDALONE
        assert _types(result) == [EventType.RECOVERY_ACTION, EventType.STATUS_CHANGE, EventType.SUCCESS]

        status = compute_status(result.nodes, self.KIND, regions)
        assert status.is_operational
        assert status.can_write
        assert not status.has_majority

    def test_standalone_cannot_be_reapplied(self):
        nodes, regions = _failed(self.KIND, "primary-dc")
        once = reconfigure_as_standalone(nodes, _ctx(self.KIND, regions))
        twice = reconfigure_as_standalone(once.nodes, _ctx(self.KIND, regions))

        assert not twice.applied
        assert twice.nodes == once.nodes
        assert _types(twice) == [EventType.WARNING]

    def test_add_new_nodes_restores_majority(self):
        """Both primary-DC nodes down, then two new DR nodes.

        Validates:
        - Down members lose their vote in the forced reconfiguration
        - 3 of 3 voting members online
        - The surviving DR node becomes primary
        """
        nodes, regions = _failed(self.KIND, "primary-dc")
        result = add_new_voting_nodes(nodes, _ctx(self.KIND, regions))

        assert [n.node_id for n in result.nodes][-2:] == ["dr-region-new-1", "dr-region-new-2"]
        assert find_node(result.nodes, "node-1").voting == VotingRights.NON_VOTING
        assert find_node(result.nodes, "node-2").voting == VotingRights.NON_VOTING

        status = compute_status(result.nodes, self.KIND, regions)
        assert (status.voting_online, status.voting_total) == (3, 3)
        assert status.primary_id == "node-3"
        assert status.is_operational

        types = _types(result)
        assert types[0] == EventType.RECOVERY_ACTION
        assert types[1] == EventType.QUORUM
        assert EventType.ELECTION in types
        assert types[-1] == EventType.SUCCESS

    def test_add_new_nodes_is_idempotent(self):
        nodes, regions = _failed(self.KIND, "primary-dc")
        once = add_new_voting_nodes(nodes, _ctx(self.KIND, regions))
        twice = add_new_voting_nodes(once.nodes, _ctx(self.KIND, regions))

        assert not twice.applied
        assert twice.nodes == once.nodes
        assert len({n.node_id for n in twice.nodes}) == len(twice.nodes)

    def test_add_new_nodes_without_survivor_is_noop(self):
        nodes = update_node(get_scenario(self.KIND).nodes, "node-3", status=NodeStatus.DOWN)
        result = add_new_voting_nodes(nodes, _ctx(self.KIND))

        assert not result.applied
        assert result.nodes == nodes
        assert _types(result) == [EventType.WARNING]


# ===========================================================================
# Voting rights
# ===========================================================================


class TestVotingRights:
    """Enhanced DR and the two-step variant."""

    def test_grant_voting_rights(self):
        kind = ScenarioKind.ENHANCED_DR
        nodes, regions = _failed(kind, "primary-dc")
        result = grant_voting_rights(nodes, _ctx(kind, regions))

        for node_id in ("node-4", "node-5"):
            node = find_node(result.nodes, node_id)
            assert node.is_voting
            assert node.role == NodeRole.SECONDARY

        status = compute_status(result.nodes, kind, regions)
        assert (status.voting_online, status.voting_total) == (3, 5)
        assert status.primary_id == "node-3"
        assert status.is_operational

    def test_grant_without_read_only_survivors_is_noop(self):
        kind = ScenarioKind.BASIC_DR
        nodes, regions = _failed(kind, "primary-dc")
        result = grant_voting_rights(nodes, _ctx(kind, regions))
        assert not result.applied
        assert _types(result) == [EventType.WARNING]

    def test_step_one_leaves_majority_unmet(self):
        kind = ScenarioKind.ENHANCED_2_STEP
        nodes, regions = _failed(kind, "primary-dc")
        result = grant_single_vote(nodes, _ctx(kind, regions))

        assert find_node(result.nodes, "node-4").is_voting
        status = compute_status(result.nodes, kind, regions)
        assert (status.voting_online, status.voting_total) == (2, 4)
        assert not status.has_majority
        assert not status.can_write

        warnings = [e for e in result.events if e.event_type == EventType.WARNING]
        assert warnings[0].message == "Majority still not met: 2 of 4 voting members online"
        assert EventType.SUCCESS not in _types(result)

    def test_step_two_completes_recovery(self):
        kind = ScenarioKind.ENHANCED_2_STEP
        nodes, regions = _failed(kind, "primary-dc")
        step_one = grant_single_vote(nodes, _ctx(kind, regions))
        result = add_single_voting_node(step_one.nodes, _ctx(kind, regions))

        assert find_node(result.nodes, "dr-region-new-1") is not None
        assert find_node(result.nodes, "dr-region-new-2") is None

        status = compute_status(result.nodes, kind, regions)
        assert (status.voting_online, status.voting_total) == (3, 5)
        assert status.primary_id == "node-3"
        assert status.can_write


# ===========================================================================
# Hot standby
# ===========================================================================


class TestRepoint:
    """Repointing applications to the standby cluster."""

    KIND = ScenarioKind.HOT_STANDBY

    def _dc_majority_lost(self):
        nodes = get_scenario(self.KIND).nodes
        for node_id in ("dc-primary", "dc-secondary1"):
            nodes = toggle_node(nodes, node_id, self.KIND).nodes
        return nodes

    def test_repoint_switches_serving_cluster(self):
        nodes = self._dc_majority_lost()
        regions = get_scenario(self.KIND).regions
        assert not compute_status(nodes, self.KIND, regions).serves_production

        result = repoint_to_secondary_cluster(nodes, _ctx(self.KIND, regions))

        assert result.nodes == nodes
        dr = find_region(result.regions, "dr-cluster")
        dc = find_region(result.regions, "dc-cluster")
        assert dr.visible_to_apps and dr.cluster_state == ClusterState.ACTIVE
        assert dc.sync_broken and not dc.visible_to_apps

        status = compute_status(result.nodes, self.KIND, result.regions)
        assert status.serves_production
        assert status.serving_cluster == "dr-cluster"
        assert status.sync_broken
        assert _types(result)[-1] == EventType.SUCCESS

    def test_repoint_requires_writable_standby(self):
        nodes = get_scenario(self.KIND).nodes
        for node_id in ("dr-primary", "dr-secondary1"):
            nodes = update_node(nodes, node_id, status=NodeStatus.DOWN)
        result = repoint_to_secondary_cluster(nodes, _ctx(self.KIND))

        assert not result.applied
        assert result.regions is None
        assert _types(result) == [EventType.WARNING]

    def test_repoint_from_cluster_without_sync(self):
        nodes = self._dc_majority_lost()
        regions = update_region(get_scenario(self.KIND).regions, "dc-cluster", has_sync=False)

        result = repoint_to_secondary_cluster(nodes, _ctx(self.KIND, regions))

        dc = find_region(result.regions, "dc-cluster")
        assert not dc.sync_broken and not dc.visible_to_apps
        assert not any("Sync" in e.message for e in result.events)
        assert not compute_status(result.nodes, self.KIND, result.regions).sync_broken
        assert _types(result) == [EventType.RECOVERY_ACTION, EventType.SUCCESS]

    def test_repoint_only_once(self):
        nodes = self._dc_majority_lost()
        once = repoint_to_secondary_cluster(nodes, _ctx(self.KIND))
        twice = repoint_to_secondary_cluster(nodes, _ctx(self.KIND, once.regions))
        assert not twice.applied


# ===========================================================================
# Cold standby
# ===========================================================================


class TestRestore:
    """Restore from backup and pointing applications at the result."""

    KIND = ScenarioKind.COLD_STANDBY

    def test_begin_restore_uses_available_backup(self):
        nodes, regions = _failed(self.KIND, "dc-cluster")
        result = begin_restore_from_backup(nodes, _ctx(self.KIND, regions))

        assert result.applied
        assert result.nodes == nodes
        assert result.regions is None
        assert result.events[0].message == "Restoring from DR Backup Storage (Region-B)"

    def test_begin_restore_without_backup_is_noop(self):
        nodes, regions = _failed(self.KIND, "dc-cluster")
        regions = update_region(regions, "dr-backup-storage", cluster_state=ClusterState.DOWN)
        result = begin_restore_from_backup(nodes, _ctx(self.KIND, regions))

        assert not result.applied
        assert _types(result) == [EventType.WARNING]

    def test_complete_restore_materializes_cluster_once(self):
        nodes, regions = _failed(self.KIND, "dc-cluster")
        result = complete_restore(nodes, _ctx(self.KIND, regions))

        restored = find_region(result.regions, RESTORED_REGION_ID)
        assert restored is not None
        assert not restored.visible_to_apps
        assert len(restored.node_ids) == 3

        new_nodes = [n for n in result.nodes if n.region == RESTORED_REGION_ID]
        assert len(new_nodes) == 3
        assert all(n.is_up and n.is_voting for n in new_nodes)
        assert [n.node_id for n in new_nodes if n.is_primary] == ["restored-node-1"]

        again = complete_restore(result.nodes, _ctx(self.KIND, result.regions))
        assert not again.applied
        assert again.nodes == result.nodes

    def test_complete_restore_follows_recorded_source(self):
        nodes, regions = _failed(self.KIND, "dc-cluster")
        ctx = RecoveryContext(self.KIND, regions, DeploymentMode.ATLAS, restore_source="dc-backup-storage")

        result = complete_restore(nodes, ctx)

        assert find_region(result.regions, RESTORED_REGION_ID).name == "Restored Cluster (Region-A)"
        default = complete_restore(nodes, _ctx(self.KIND, regions))
        assert find_region(default.regions, RESTORED_REGION_ID).name == "Restored Cluster (Region-B)"

    def test_restored_cluster_is_independent(self):
        nodes, regions = _failed(self.KIND, "dc-cluster")
        result = complete_restore(nodes, _ctx(self.KIND, regions))
        status = compute_status(result.nodes, self.KIND, result.regions)

        restored = status.replica_set(RESTORED_REGION_ID)
        assert (restored.voting_online, restored.voting_total) == (3, 3)
        assert restored.can_write
        assert not status.serves_production

    def test_point_to_restored_cluster(self):
        nodes, regions = _failed(self.KIND, "dc-cluster")
        restored = complete_restore(nodes, _ctx(self.KIND, regions))
        result = point_to_restored_cluster(restored.nodes, _ctx(self.KIND, restored.regions))

        assert result.nodes == restored.nodes
        assert result.regions[0].region_id == RESTORED_REGION_ID
        assert find_region(result.regions, RESTORED_REGION_ID).visible_to_apps
        assert find_region(result.regions, "dc-cluster") == find_region(restored.regions, "dc-cluster")

        status = compute_status(result.nodes, self.KIND, result.regions)
        assert status.serves_production
        assert status.serving_cluster == RESTORED_REGION_ID

    def test_point_without_restored_cluster_is_noop(self):
        nodes, regions = _failed(self.KIND, "dc-cluster")
        result = point_to_restored_cluster(nodes, _ctx(self.KIND, regions))
        assert not result.applied
        assert _types(result) == [EventType.WARNING]


# ===========================================================================
# Registry
# ===========================================================================


class TestRegistry:
    """Every action id maps to a registered action."""

    def test_registry_covers_all_ids(self):
        assert set(RECOVERY_ACTIONS) == set(RecoveryActionId)
        for action_id, action in RECOVERY_ACTIONS.items():
            assert action.action_id == action_id
            assert action.label

    @pytest.mark.parametrize("action_id", list(RecoveryActionId))
    def test_resolve_by_string(self, action_id):
        assert resolve_action_id(action_id.value) == action_id

    def test_resolve_unknown(self):
        assert resolve_action_id("summon-more-servers") is None
