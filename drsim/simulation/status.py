"""
Status calculator for the replica-set disaster-recovery simulator.

Turns a node list (plus the scenario kind and region overlay) into an
aggregate verdict: does the replica set hold a majority, is there a primary,
can it accept writes, is it serving production traffic.

Each scenario kind maps to one ``StatusStrategy`` through a dispatch table.
Single-replica-set scenarios treat every node as one majority scope.
Multi-cluster scenarios (hot/cold standby) compute each independent cluster
on its own denominator and then aggregate.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from .catalog import ScenarioKind, get_scenario
from .node import Node, NodeList, NodeRole, voting_counts
from .region import ClusterState, Region, RegionList, find_region


class Topology(Enum):
    SINGLE = "single"
    MULTI = "multi"
    BACKUP = "backup"


def has_majority(online: int, total: int) -> bool:
    """Majority rule: more than half of configured voting members are up.

    ``online > total / 2`` in integer arithmetic. A configuration with no
    voting members never holds a majority.
    """
    return 2 * online > total


def majority_threshold(total: int) -> int:
    """Smallest number of online voting members that holds a majority."""
    return total // 2 + 1


@dataclass(frozen=True)
class Scope:
    """One independent majority scope (a replica set).

    Attributes:
        name: Display name.
        region_id: Cluster region backing the scope, or None when the
            scope spans the whole scenario.
        nodes: Nodes of the replica set, in list order.
    """

    name: str
    region_id: str | None
    nodes: NodeList


def replica_set_scopes(
    nodes: Sequence[Node],
    kind: ScenarioKind,
    regions: Sequence[Region],
) -> list[Scope]:
    """Split a node list into independent majority scopes.

    Single-replica-set scenarios yield one scope over every replica-set
    node. Multi-cluster scenarios yield one scope per cluster region, in
    region order.
    """
    members = tuple(n for n in nodes if n.role != NodeRole.BACKUP_STORAGE)
    if not kind.is_multi_cluster:
        return [Scope("Replica set", None, members)]
    return [
        Scope(region.name, region.region_id, tuple(n for n in members if n.region == region.region_id))
        for region in regions
        if region.is_cluster
    ]


@dataclass(frozen=True)
class ReplicaSetStatus:
    """Derived status of one independent replica set."""

    name: str
    region_id: str | None
    is_operational: bool
    has_majority: bool
    can_write: bool
    voting_online: int
    voting_total: int
    total_nodes: int
    primary_id: str | None
    is_degraded: bool
    cluster_state: ClusterState | None = None
    visible_to_apps: bool = True


@dataclass(frozen=True)
class BackupStorageStatus:
    region_id: str
    name: str
    available: bool
    backs_region: str | None = None


@dataclass(frozen=True)
class ClusterStatus:
    """Derived status of the whole scenario.

    For single-replica-set scenarios the top-level fields describe that
    replica set. For multi-cluster scenarios they aggregate over
    ``replica_sets``.

    Attributes:
        is_operational: Single: majority and a primary (or an up standalone).
            Multi: some cluster holds a majority with no voting member down.
        has_majority: Majority held (in at least one cluster for multi).
        can_write: Some replica set can accept writes.
        voting_online: Up voting members (summed over clusters).
        voting_total: Configured voting members, including down ones.
        total_nodes: Number of database nodes.
        primary_id: Primary of the serving replica set, if any.
        is_degraded: Majority held but some voting member is down.
        topology: Single, multi-cluster, or backup/restore.
        replica_sets: Per-cluster status (one entry for single topologies).
        serves_production: A replica set reachable by applications can write.
        serving_cluster: Region id of the cluster serving applications.
        sync_broken: A cluster-to-cluster sync channel has been cut.
        backup_storage: Availability of backup-storage regions.
    """

    is_operational: bool
    has_majority: bool
    can_write: bool
    voting_online: int
    voting_total: int
    total_nodes: int
    primary_id: str | None
    is_degraded: bool
    topology: Topology
    replica_sets: tuple[ReplicaSetStatus, ...] = ()
    serves_production: bool = False
    serving_cluster: str | None = None
    sync_broken: bool = False
    backup_storage: tuple[BackupStorageStatus, ...] = ()

    def replica_set(self, region_id: str) -> ReplicaSetStatus | None:
        for rs in self.replica_sets:
            if rs.region_id == region_id:
                return rs
        return None

    @property
    def any_backup_available(self) -> bool:
        return any(b.available for b in self.backup_storage)


def replica_set_status(scope: Scope, region: Region | None = None) -> ReplicaSetStatus:
    """Compute the status of a single majority scope."""
    online, total = voting_counts(scope.nodes)
    majority = has_majority(online, total)

    standalone = next((n for n in scope.nodes if n.is_standalone and n.is_up), None)
    primary = next((n for n in scope.nodes if n.is_primary and n.is_up), None)

    if standalone is not None:
        # Deliberately broken replica set: serves writes alone
        operational = True
        primary_id = standalone.node_id
    else:
        operational = majority and primary is not None
        primary_id = primary.node_id if primary else None

    cluster_state = None
    visible = True
    if region is not None:
        visible = region.visible_to_apps
        if not any(n.is_up for n in scope.nodes):
            cluster_state = ClusterState.DOWN
        else:
            cluster_state = region.cluster_state or ClusterState.ACTIVE

    return ReplicaSetStatus(
        name=scope.name,
        region_id=scope.region_id,
        is_operational=operational,
        has_majority=majority,
        can_write=operational,
        voting_online=online,
        voting_total=total,
        total_nodes=len(scope.nodes),
        primary_id=primary_id,
        is_degraded=majority and online < total,
        cluster_state=cluster_state,
        visible_to_apps=visible,
    )


class StatusStrategy(ABC):
    """Computes a ClusterStatus for one family of scenario kinds."""

    topology: Topology

    @abstractmethod
    def compute(
        self,
        nodes: Sequence[Node],
        kind: ScenarioKind,
        regions: Sequence[Region],
    ) -> ClusterStatus:
        """Derive the aggregate status.

        Args:
            nodes: Current node list.
            kind: Scenario kind (selects the scope split).
            regions: Effective regions (overlay or catalog).

        Returns:
            The derived ClusterStatus.
        """


class SingleReplicaSetStrategy(StatusStrategy):
    """Every node belongs to one replica set spread over regions."""

    topology = Topology.SINGLE

    def compute(self, nodes, kind, regions) -> ClusterStatus:
        (scope,) = replica_set_scopes(nodes, kind, regions)
        rs = replica_set_status(scope)
        return ClusterStatus(
            is_operational=rs.is_operational,
            has_majority=rs.has_majority,
            can_write=rs.can_write,
            voting_online=rs.voting_online,
            voting_total=rs.voting_total,
            total_nodes=len(nodes),
            primary_id=rs.primary_id,
            is_degraded=rs.is_degraded,
            topology=self.topology,
            replica_sets=(rs,),
            serves_production=rs.can_write,
            serving_cluster=None,
        )


class IndependentClustersStrategy(StatusStrategy):
    """Several independent replica sets, only visible ones serve applications."""

    topology = Topology.MULTI

    def compute(self, nodes, kind, regions) -> ClusterStatus:
        replica_sets = tuple(
            replica_set_status(scope, find_region(regions, scope.region_id))
            for scope in replica_set_scopes(nodes, kind, regions)
        )
        serving = next(
            (rs for rs in replica_sets if rs.visible_to_apps and rs.can_write), None
        )
        return ClusterStatus(
            is_operational=any(rs.has_majority and not rs.is_degraded for rs in replica_sets),
            has_majority=any(rs.has_majority for rs in replica_sets),
            can_write=any(rs.can_write for rs in replica_sets),
            voting_online=sum(rs.voting_online for rs in replica_sets),
            voting_total=sum(rs.voting_total for rs in replica_sets),
            total_nodes=len(nodes),
            primary_id=serving.primary_id if serving else None,
            is_degraded=any(rs.is_degraded for rs in replica_sets),
            topology=self.topology,
            replica_sets=replica_sets,
            serves_production=serving is not None,
            serving_cluster=serving.region_id if serving else None,
            sync_broken=any(r.sync_broken for r in regions),
            backup_storage=self._backup_storage(nodes, regions),
        )

    def _backup_storage(self, nodes, regions) -> tuple[BackupStorageStatus, ...]:
        return ()


class BackupRestoreStrategy(IndependentClustersStrategy):
    """A cluster backed by snapshot storage, optionally plus a restored cluster."""

    topology = Topology.BACKUP

    def _backup_storage(self, nodes, regions) -> tuple[BackupStorageStatus, ...]:
        return tuple(
            BackupStorageStatus(
                region_id=r.region_id,
                name=r.name,
                available=backup_available(r, nodes),
                backs_region=r.backs_region,
            )
            for r in regions
            if r.is_backup
        )


def backup_available(region: Region, nodes: Sequence[Node]) -> bool:
    """Availability of a backup-storage region.

    Storage co-located with a cluster goes down in lockstep with that
    cluster going fully down. Off-site storage keeps its declared state.
    """
    if region.backs_region is None:
        return region.is_available
    return any(n.is_up for n in nodes if n.region == region.backs_region)


_SINGLE = SingleReplicaSetStrategy()

STATUS_STRATEGIES: dict[ScenarioKind, StatusStrategy] = {
    ScenarioKind.SINGLE_REGION_NO_DR: _SINGLE,
    ScenarioKind.BASIC_DR: _SINGLE,
    ScenarioKind.ENHANCED_DR: _SINGLE,
    ScenarioKind.MULTI_DC: _SINGLE,
    ScenarioKind.ENHANCED_2_STEP: _SINGLE,
    ScenarioKind.HOT_STANDBY: IndependentClustersStrategy(),
    ScenarioKind.COLD_STANDBY: BackupRestoreStrategy(),
}


def compute_status(
    nodes: Sequence[Node],
    kind: ScenarioKind,
    regions: Sequence[Region] | None = None,
) -> ClusterStatus:
    """Compute the aggregate status of a scenario.

    Args:
        nodes: Current node list.
        kind: Scenario kind; selects the status strategy.
        regions: Region overlay. Defaults to the catalog's regions.

    Returns:
        ClusterStatus for the scenario.
    """
    effective: RegionList = tuple(regions) if regions is not None else get_scenario(kind).regions
    return STATUS_STRATEGIES[kind].compute(nodes, kind, effective)
