"""
Tests for the election engine.

Validates step-down on lost majority, promotion when a majority exists
without a primary, deterministic candidate choice, region-priority takeover
for managed multi-datacenter deployments, and dual-primary repair.
"""

from drsim.simulation import (
    DeploymentMode,
    EventType,
    NodeRole,
    NodeStatus,
    ScenarioKind,
    VotingRights,
    elect_in_region,
    elect_new_primary,
    find_node,
    get_scenario,
    update_node,
)
from drsim.simulation.election import choose_candidate


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _nodes(kind):
    return get_scenario(kind).nodes


def _down(nodes, *node_ids):
    for node_id in node_ids:
        nodes = update_node(nodes, node_id, status=NodeStatus.DOWN)
    return nodes


# ===========================================================================
# Step-down and promotion
# ===========================================================================


class TestStepDownAndPromotion:
    """Basic election rules in a single replica set."""

    def test_healthy_cluster_is_noop(self):
        nodes = _nodes(ScenarioKind.SINGLE_REGION_NO_DR)
        result = elect_new_primary(nodes, ScenarioKind.SINGLE_REGION_NO_DR)

        assert result.nodes == nodes
        assert result.events == ()

    def test_down_primary_replaced(self):
        """Primary fails with 2 of 3 voting online.

        Validates:
        - Warning step-down event first
        - Election event promoting the first qualifying secondary
        """
        nodes = _down(_nodes(ScenarioKind.SINGLE_REGION_NO_DR), "node-1")
        result = elect_new_primary(nodes, ScenarioKind.SINGLE_REGION_NO_DR)

        assert result.primary_ids == ["node-2"]
        assert [e.event_type for e in result.events] == [EventType.WARNING, EventType.ELECTION]
        assert "stepped down" in result.events[0].message
        assert "Node 2 promoted to Primary" in result.events[1].message

    def test_majority_lost_demotes_primary(self):
        nodes = _down(_nodes(ScenarioKind.SINGLE_REGION_NO_DR), "node-2", "node-3")
        result = elect_new_primary(nodes, ScenarioKind.SINGLE_REGION_NO_DR)

        assert result.primary_ids == []
        assert find_node(result.nodes, "node-1").role == NodeRole.SECONDARY
        types = [e.event_type for e in result.events]
        assert types == [EventType.WARNING, EventType.STATUS_CHANGE]
        assert "majority lost" in result.events[0].message
        assert "can no longer accept writes" in result.events[1].message

    def test_no_promotion_without_majority(self):
        nodes = _down(_nodes(ScenarioKind.BASIC_DR), "node-1", "node-2")
        nodes = update_node(nodes, "node-1", role=NodeRole.SECONDARY)
        result = elect_new_primary(nodes, ScenarioKind.BASIC_DR)
        assert result.primary_ids == []
        assert result.events == ()

    def test_read_only_node_never_elected(self):
        nodes = _nodes(ScenarioKind.ENHANCED_DR)
        nodes = update_node(nodes, "node-1", role=NodeRole.SECONDARY)
        nodes = _down(nodes, "node-2", "node-3")
        nodes = update_node(nodes, "node-2", status=NodeStatus.UP)
        result = elect_new_primary(nodes, ScenarioKind.ENHANCED_DR)

        assert result.primary_ids == ["node-1"]
        assert find_node(result.nodes, "node-4").role == NodeRole.READ_ONLY

    def test_recently_granted_node_is_least_preferred(self):
        nodes = _nodes(ScenarioKind.ENHANCED_DR)
        nodes = update_node(nodes, "node-1", role=NodeRole.SECONDARY)
        nodes = update_node(nodes, "node-4", role=NodeRole.SECONDARY, voting=VotingRights.VOTING)
        nodes = _down(nodes, "node-1", "node-2")

        assert choose_candidate(nodes, recently_granted=frozenset({"node-3"})).node_id == "node-4"
        assert choose_candidate(nodes, recently_granted=frozenset({"node-4"})).node_id == "node-3"


# ===========================================================================
# Determinism
# ===========================================================================


class TestDeterminism:
    """Same input, same primary."""

    def test_repeated_elections_pick_same_node(self):
        nodes = _down(_nodes(ScenarioKind.MULTI_DC), "node-1")
        chosen = {
            tuple(elect_new_primary(nodes, ScenarioKind.MULTI_DC, DeploymentMode.ENTERPRISE).primary_ids)
            for _ in range(10)
        }
        assert chosen == {("node-2",)}

    def test_list_order_breaks_ties(self):
        nodes = _down(_nodes(ScenarioKind.MULTI_DC), "node-1", "node-2")
        result = elect_new_primary(nodes, ScenarioKind.MULTI_DC, DeploymentMode.ENTERPRISE)
        assert result.primary_ids == ["node-3"]


# ===========================================================================
# Region priority
# ===========================================================================


class TestPriorityTakeover:
    """Managed multi-DC deployments prefer primary DC > secondary DC > DR."""

    def test_managed_mode_prefers_primary_region(self):
        nodes = _nodes(ScenarioKind.MULTI_DC)
        nodes = update_node(nodes, "node-1", role=NodeRole.SECONDARY)
        nodes = update_node(nodes, "node-5", role=NodeRole.PRIMARY)
        result = elect_new_primary(nodes, ScenarioKind.MULTI_DC, DeploymentMode.ATLAS)

        assert result.primary_ids == ["node-1"]
        assert len(result.events) == 1
        assert result.events[0].event_type == EventType.ELECTION
        assert "Priority-based takeover" in result.events[0].message

    def test_enterprise_mode_keeps_existing_primary(self):
        nodes = _nodes(ScenarioKind.MULTI_DC)
        nodes = update_node(nodes, "node-1", role=NodeRole.SECONDARY)
        nodes = update_node(nodes, "node-5", role=NodeRole.PRIMARY)
        result = elect_new_primary(nodes, ScenarioKind.MULTI_DC, DeploymentMode.ENTERPRISE)

        assert result.primary_ids == ["node-5"]
        assert result.events == ()

    def test_primary_already_in_best_region_is_noop(self):
        nodes = _nodes(ScenarioKind.MULTI_DC)
        result = elect_new_primary(nodes, ScenarioKind.MULTI_DC, DeploymentMode.ATLAS)
        assert result.events == ()
        assert result.primary_ids == ["node-1"]

    def test_secondary_dc_wins_when_primary_dc_down(self):
        nodes = _down(_nodes(ScenarioKind.MULTI_DC), "node-1", "node-2")
        result = elect_new_primary(nodes, ScenarioKind.MULTI_DC, DeploymentMode.ATLAS)
        assert result.primary_ids == ["node-3"]


# ===========================================================================
# Repair and per-region elections
# ===========================================================================


class TestRepairAndRegions:
    """Dual-primary repair and independent cluster elections."""

    def test_dual_primaries_repaired(self):
        nodes = update_node(_nodes(ScenarioKind.SINGLE_REGION_NO_DR), "node-3", role=NodeRole.PRIMARY)
        result = elect_new_primary(nodes, ScenarioKind.SINGLE_REGION_NO_DR)

        assert result.primary_ids == ["node-1"]
        assert result.events[0].event_type == EventType.WARNING
        assert "Multiple primaries" in result.events[0].message

    def test_hot_standby_clusters_elect_separately(self):
        nodes = _down(_nodes(ScenarioKind.HOT_STANDBY), "dc-primary")
        result = elect_new_primary(nodes, ScenarioKind.HOT_STANDBY)
        assert result.primary_ids == ["dc-secondary1", "dr-primary"]

    def test_elect_in_region(self):
        nodes = update_node(_nodes(ScenarioKind.HOT_STANDBY), "dr-primary", role=NodeRole.SECONDARY)
        result = elect_in_region(nodes, "dr-cluster", get_scenario(ScenarioKind.HOT_STANDBY).regions)

        assert find_node(result.nodes, "dr-primary").is_primary
        assert find_node(result.nodes, "dc-primary").is_primary
        assert "DR Primary (Invisible) promoted" in result.events[0].message

    def test_standalone_scope_skips_election(self):
        nodes = _down(_nodes(ScenarioKind.BASIC_DR), "node-1", "node-2")
        nodes = update_node(nodes, "node-3", role=NodeRole.STANDALONE)
        result = elect_new_primary(nodes, ScenarioKind.BASIC_DR)
        assert result.nodes == nodes
        assert result.events == ()
