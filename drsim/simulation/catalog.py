"""
Topology catalog for the replica-set disaster-recovery simulator.

Static, read-only scenario definitions: the regions and initial node list
of each topology, the whole-region failures it supports, and informational
recovery objectives. The engine copies from the catalog and never writes
back to it.
"""

from dataclasses import dataclass, field
from enum import Enum

from .node import Node, NodeList, NodeRole, NodeStatus, VotingRights
from .region import ClusterState, Region, RegionList, RegionType


class ScenarioKind(Enum):
    """Closed set of simulated topologies."""

    SINGLE_REGION_NO_DR = "single_region_no_dr"
    BASIC_DR = "basic_dr"
    ENHANCED_DR = "enhanced_dr"
    MULTI_DC = "multi_dc"
    ENHANCED_2_STEP = "enhanced_2_step"
    HOT_STANDBY = "hot_standby"
    COLD_STANDBY = "cold_standby"

    @property
    def is_multi_cluster(self) -> bool:
        """Whether the scenario holds several independent replica sets."""
        return self in (ScenarioKind.HOT_STANDBY, ScenarioKind.COLD_STANDBY)


class DeploymentMode(Enum):
    ATLAS = "atlas"  # Cloud-managed; enforces region election priority
    ENTERPRISE = "enterprise"  # Self-managed

    @property
    def is_managed(self) -> bool:
        return self == DeploymentMode.ATLAS


class UnknownScenarioError(KeyError):
    """Raised when a scenario id is not in the catalog."""


@dataclass(frozen=True)
class FailureDrill:
    """A whole-region failure the operator can trigger."""

    drill_id: str
    label: str
    region_id: str


@dataclass(frozen=True)
class RecoveryProfile:
    """Informational recovery objectives. Not computed by the engine."""

    name: str
    rto: str
    rpo: str
    cost: str
    complexity: str
    pros: tuple[str, ...] = ()
    cons: tuple[str, ...] = ()


@dataclass(frozen=True)
class Scenario:
    kind: ScenarioKind
    name: str
    description: str
    regions: RegionList
    nodes: NodeList
    failure_drills: tuple[FailureDrill, ...] = field(default_factory=tuple)
    recovery_profile: RecoveryProfile | None = None


def _node(
    node_id: str,
    name: str,
    region: str,
    datacenter: str,
    role: NodeRole = NodeRole.SECONDARY,
    voting: VotingRights = VotingRights.VOTING,
) -> Node:
    return Node(
        node_id=node_id,
        name=name,
        role=role,
        status=NodeStatus.UP,
        voting=voting,
        region=region,
        datacenter=datacenter,
    )


def _read_only(node_id: str, name: str, region: str, datacenter: str) -> Node:
    return _node(
        node_id, name, region, datacenter,
        role=NodeRole.READ_ONLY, voting=VotingRights.NON_VOTING,
    )


_PRIMARY_DC = Region("primary-dc", "Primary DC (Region-A)", RegionType.PRIMARY, ("node-1", "node-2"))
_FAIL_DC = FailureDrill("fail-dc", "Fail DC Region", "primary-dc")
_FAIL_DR = FailureDrill("fail-dr", "Fail DR Region", "dr-region")


SINGLE_REGION_NO_DR = Scenario(
    kind=ScenarioKind.SINGLE_REGION_NO_DR,
    name="1 Region No DR",
    description=(
        "3-node replica set in a single region: writable with a majority (2+ nodes), "
        "read-only without one, down when all nodes fail"
    ),
    regions=(
        Region("single-region", "Production Region", RegionType.PRIMARY, ("node-1", "node-2", "node-3")),
    ),
    nodes=(
        _node("node-1", "Node 1", "single-region", "Region-A", role=NodeRole.PRIMARY),
        _node("node-2", "Node 2", "single-region", "Region-A"),
        _node("node-3", "Node 3", "single-region", "Region-A"),
    ),
)

BASIC_DR = Scenario(
    kind=ScenarioKind.BASIC_DR,
    name="Basic DR with Manual Recovery",
    description="Primary DC with 2 electable nodes, DR region with 1 electable node",
    regions=(
        _PRIMARY_DC,
        Region("dr-region", "DR Region (Region-B)", RegionType.DR, ("node-3",)),
    ),
    nodes=(
        _node("node-1", "Node 1", "primary-dc", "Region-A", role=NodeRole.PRIMARY),
        _node("node-2", "Node 2", "primary-dc", "Region-A"),
        _node("node-3", "Node 3", "dr-region", "Region-B"),
    ),
    failure_drills=(_FAIL_DR, _FAIL_DC),
    recovery_profile=RecoveryProfile(
        name="Basic DR with Manual Recovery",
        rto="15-60 minutes",
        rpo="0-5 minutes",
        cost="Low",
        complexity="Medium",
        pros=(
            "Simple architecture with minimal infrastructure",
            "Lower ongoing operational costs",
        ),
        cons=(
            "Manual intervention required during disasters",
            "No automatic failover capabilities",
            "Risk of human error during recovery procedures",
        ),
    ),
)

ENHANCED_DR = Scenario(
    kind=ScenarioKind.ENHANCED_DR,
    name="Enhanced DR with Voting Rights Change",
    description="Primary DC with 2 electable nodes, DR region with 1 electable + 2 read-only nodes",
    regions=(
        _PRIMARY_DC,
        Region("dr-region", "DR Region (Region-B)", RegionType.DR, ("node-3", "node-4", "node-5")),
    ),
    nodes=(
        _node("node-1", "Node 1", "primary-dc", "Region-A", role=NodeRole.PRIMARY),
        _node("node-2", "Node 2", "primary-dc", "Region-A"),
        _node("node-3", "Node 3", "dr-region", "Region-B"),
        _read_only("node-4", "Node 4", "dr-region", "Region-B"),
        _read_only("node-5", "Node 5", "dr-region", "Region-B"),
    ),
    failure_drills=(_FAIL_DR, _FAIL_DC),
    recovery_profile=RecoveryProfile(
        name="Enhanced DR with Voting Rights Management",
        rto="10-30 minutes",
        rpo="0-2 minutes",
        cost="Medium",
        complexity="Medium",
        pros=(
            "More nodes available for disaster scenarios",
            "Read-only nodes provide better read scaling during normal operations",
            "Flexible voting rights reconfiguration",
        ),
        cons=(
            "Higher infrastructure costs with more nodes",
            "Manual voting rights changes required during disasters",
        ),
    ),
)

MULTI_DC = Scenario(
    kind=ScenarioKind.MULTI_DC,
    name="Multi-Datacenter Resilience",
    description="Primary DC1 with 2 nodes, Secondary DC2 with 2 nodes, DR region with 1 node",
    regions=(
        Region("primary-dc1", "Primary DC1 (Region-A)", RegionType.PRIMARY, ("node-1", "node-2")),
        Region("secondary-dc2", "Secondary DC2 (Region-C)", RegionType.SECONDARY, ("node-3", "node-4")),
        Region("dr-region", "DR Region (Region-B)", RegionType.DR, ("node-5",)),
    ),
    nodes=(
        _node("node-1", "Node 1", "primary-dc1", "Region-A", role=NodeRole.PRIMARY),
        _node("node-2", "Node 2", "primary-dc1", "Region-A"),
        _node("node-3", "Node 3", "secondary-dc2", "Region-C"),
        _node("node-4", "Node 4", "secondary-dc2", "Region-C"),
        _node("node-5", "Node 5", "dr-region", "Region-B"),
    ),
    failure_drills=(
        FailureDrill("fail-dc1", "Fail DC1 (Primary's DC)", "primary-dc1"),
        FailureDrill("fail-dc2", "Fail DC2", "secondary-dc2"),
        _FAIL_DR,
    ),
    recovery_profile=RecoveryProfile(
        name="Multi-Datacenter High Availability",
        rto="30 seconds - 5 minutes",
        rpo="0-1 minutes",
        cost="High",
        complexity="High",
        pros=(
            "Automatic failover with no manual intervention",
            "Continuous availability during single datacenter failures",
        ),
        cons=(
            "Highest infrastructure and network costs",
            "Requires sophisticated monitoring and alerting",
        ),
    ),
)

ENHANCED_2_STEP = Scenario(
    kind=ScenarioKind.ENHANCED_2_STEP,
    name="Enhanced DR with 2-Step Recovery",
    description="Primary DC with 2 electable nodes, DR region with 1 electable + 1 read-only node",
    regions=(
        _PRIMARY_DC,
        Region("dr-region", "DR Region (Region-B)", RegionType.DR, ("node-3", "node-4")),
    ),
    nodes=(
        _node("node-1", "Node 1", "primary-dc", "Region-A", role=NodeRole.PRIMARY),
        _node("node-2", "Node 2", "primary-dc", "Region-A"),
        _node("node-3", "Node 3", "dr-region", "Region-B"),
        _read_only("node-4", "Read-Only Node 4", "dr-region", "Region-B"),
    ),
    failure_drills=(_FAIL_DR, _FAIL_DC),
    recovery_profile=RecoveryProfile(
        name="2-Step Recovery",
        rto="20-60 minutes",
        rpo="0-3 minutes",
        cost="Medium",
        complexity="High",
        pros=(
            "Gradual recovery allows validation between steps",
            "Lower risk of configuration errors with a staged approach",
        ),
        cons=(
            "Longer total recovery time due to manual steps",
            "Risk of incomplete recovery if steps are skipped",
        ),
    ),
)

HOT_STANDBY = Scenario(
    kind=ScenarioKind.HOT_STANDBY,
    name="Hot Standby Cluster-to-Cluster",
    description=(
        "Two independent replica sets: the DC cluster serves applications, the DR cluster "
        "is operational but invisible to applications until failover"
    ),
    regions=(
        Region(
            "dc-cluster", "DC Cluster (Region-A)", RegionType.CLUSTER,
            ("dc-primary", "dc-secondary1", "dc-secondary2"),
            cluster_state=ClusterState.ACTIVE, has_sync=True, visible_to_apps=True,
        ),
        Region(
            "dr-cluster", "DR Cluster (Region-B)", RegionType.CLUSTER,
            ("dr-primary", "dr-secondary1", "dr-secondary2"),
            cluster_state=ClusterState.STANDBY, has_sync=False, visible_to_apps=False,
        ),
    ),
    nodes=(
        _node("dc-primary", "DC Primary (Active)", "dc-cluster", "Region-A", role=NodeRole.PRIMARY),
        _node("dc-secondary1", "DC Secondary 1 (Active)", "dc-cluster", "Region-A"),
        _node("dc-secondary2", "DC Secondary 2 (Active)", "dc-cluster", "Region-A"),
        _node("dr-primary", "DR Primary (Invisible)", "dr-cluster", "Region-B", role=NodeRole.PRIMARY),
        _node("dr-secondary1", "DR Secondary 1 (Invisible)", "dr-cluster", "Region-B"),
        _node("dr-secondary2", "DR Secondary 2 (Invisible)", "dr-cluster", "Region-B"),
    ),
    recovery_profile=RecoveryProfile(
        name="Hot Standby with Cluster-to-Cluster Sync",
        rto="1-10 minutes",
        rpo="0-30 seconds",
        cost="High",
        complexity="High",
        pros=(
            "Very fast failover with minimal data loss",
            "Complete cluster isolation prevents cascading failures",
        ),
        cons=(
            "Duplicate infrastructure costs",
            "Potential for sync lag during high write volumes",
        ),
    ),
)

COLD_STANDBY = Scenario(
    kind=ScenarioKind.COLD_STANDBY,
    name="Cold Standby with Backup Restore",
    description="DC cluster with backup storage in both the DC and DR regions",
    regions=(
        Region(
            "dc-cluster", "DC Cluster (Region-A)", RegionType.CLUSTER,
            ("dc-primary", "dc-secondary1", "dc-secondary2"),
            cluster_state=ClusterState.ACTIVE, visible_to_apps=True,
        ),
        Region(
            "dc-backup-storage", "DC Backup Storage (Region-A)", RegionType.BACKUP,
            cluster_state=ClusterState.ACTIVE, visible_to_apps=False,
            backs_region="dc-cluster",
        ),
        Region(
            "dr-backup-storage", "DR Backup Storage (Region-B)", RegionType.BACKUP,
            cluster_state=ClusterState.ACTIVE, visible_to_apps=False,
        ),
    ),
    nodes=(
        _node("dc-primary", "DC Primary", "dc-cluster", "Region-A", role=NodeRole.PRIMARY),
        _node("dc-secondary1", "DC Secondary 1", "dc-cluster", "Region-A"),
        _node("dc-secondary2", "DC Secondary 2", "dc-cluster", "Region-A"),
    ),
    recovery_profile=RecoveryProfile(
        name="Cold Standby with Backup and Restore",
        rto="2-8 hours",
        rpo="1-24 hours",
        cost="Low",
        complexity="Low",
        pros=(
            "Lowest ongoing operational costs",
            "Simple backup-based approach",
        ),
        cons=(
            "Longest recovery time objective",
            "Potential for significant data loss",
            "No real-time failover capabilities",
        ),
    ),
)


SCENARIOS: dict[ScenarioKind, Scenario] = {
    s.kind: s
    for s in (
        SINGLE_REGION_NO_DR,
        BASIC_DR,
        ENHANCED_DR,
        MULTI_DC,
        ENHANCED_2_STEP,
        HOT_STANDBY,
        COLD_STANDBY,
    )
}


def resolve_kind(scenario_id: "ScenarioKind | str") -> ScenarioKind:
    """Turn a scenario id (enum or its string value) into a ScenarioKind.

    Raises:
        UnknownScenarioError: If the id is not in the catalog.
    """
    if isinstance(scenario_id, ScenarioKind):
        return scenario_id
    try:
        return ScenarioKind(scenario_id)
    except ValueError:
        raise UnknownScenarioError(scenario_id) from None


def get_scenario(scenario_id: "ScenarioKind | str") -> Scenario:
    """Look up a scenario definition.

    Args:
        scenario_id: A ScenarioKind or its string value (e.g. "basic_dr").

    Returns:
        The immutable scenario definition.

    Raises:
        UnknownScenarioError: If the id is not in the catalog.
    """
    return SCENARIOS[resolve_kind(scenario_id)]
