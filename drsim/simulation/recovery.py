"""
Recovery action library for the replica-set disaster-recovery simulator.

Each action is a pure transformation of the node list (and, where the
procedure touches cluster routing, the region overlay). Actions do not
decide whether they are currently offered; the phase state machine does.
When an action's target is missing it returns the inputs unchanged with a
single warning event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence

from .catalog import DeploymentMode, ScenarioKind
from .election import elect_in_region, elect_new_primary
from .events import EventType, LogEvent, warning
from .node import Node, NodeList, NodeRole, NodeStatus, VotingRights, find_node, update_nodes
from .region import (
    ClusterState,
    Region,
    RegionList,
    RegionType,
    add_region,
    find_region,
    move_region_first,
    regions_of_type,
    update_region,
)
from .status import backup_available, compute_status, replica_set_scopes, replica_set_status

logger = logging.getLogger("drsim.recovery")

RESTORED_REGION_ID = "restored-cluster"
RESTORED_CLUSTER_SIZE = 3


class RecoveryActionId(Enum):
    """Named recovery procedures."""

    RECONFIGURE_STANDALONE = "reconfigure-standalone"
    ADD_NEW_NODES = "add-new-nodes-to-dr"
    GRANT_VOTING_RIGHTS = "grant-voting-rights"
    STEP_ONE_GRANT_VOTE = "step-1-grant-voting-rights"
    STEP_TWO_ADD_NODE = "step-2-add-voting-node"
    REPOINT_TO_SECONDARY_CLUSTER = "repoint-to-secondary-cluster"
    RESTORE_FROM_BACKUP = "restore-from-backup"
    POINT_TO_RESTORED = "point-application-to-restored"


@dataclass(frozen=True)
class RecoveryContext:
    """What an action needs to know besides the node list.

    Attributes:
        kind: Scenario kind.
        regions: Effective regions (overlay or catalog).
        mode: Deployment mode, forwarded to elections.
        new_node_count: Nodes provisioned by the add-new-nodes action.
        restore_source: Backup-storage region a running restore started from.
    """

    kind: ScenarioKind
    regions: RegionList
    mode: DeploymentMode | None = None
    new_node_count: int = 2
    restore_source: str | None = None


@dataclass(frozen=True)
class RecoveryResult:
    """Outcome of a recovery action.

    Attributes:
        nodes: Updated node list.
        events: Log events in emission order.
        regions: Updated region overlay, or None when regions are untouched.
        applied: False when a precondition failed and nothing changed.
    """

    nodes: NodeList
    events: tuple[LogEvent, ...]
    regions: RegionList | None = None
    applied: bool = True


def _skipped(nodes: Sequence[Node], message: str, details: str | None = None) -> RecoveryResult:
    logger.warning(f"Recovery action skipped: {message}")
    return RecoveryResult(tuple(nodes), (warning(message, details),), applied=False)


# ---------------------------------------------------------------------------
# Target lookups (shared with the phase state machine)
# ---------------------------------------------------------------------------

def dr_region(regions: Sequence[Region]) -> Region | None:
    found = regions_of_type(regions, RegionType.DR)
    return found[0] if found else None


def primary_regions(regions: Sequence[Region]) -> tuple[Region, ...]:
    return regions_of_type(regions, RegionType.PRIMARY)


def surviving_dr_node(nodes: Sequence[Node], regions: Sequence[Region]) -> Node | None:
    """First up replica-set member of the DR region."""
    region = dr_region(regions)
    if region is None:
        return None
    return next(
        (n for n in nodes if n.region == region.region_id and n.is_up and n.in_majority_scope),
        None,
    )


def read_only_survivors(nodes: Sequence[Node], regions: Sequence[Region]) -> list[Node]:
    """Up, non-voting read-only members of the DR region."""
    region = dr_region(regions)
    if region is None:
        return []
    return [
        n for n in nodes
        if n.region == region.region_id
        and n.is_up
        and (n.role == NodeRole.READ_ONLY or not n.is_voting)
        and n.in_majority_scope
    ]


def new_node_ids(region_id: str, count: int) -> list[str]:
    """Fixed synthetic ids for nodes provisioned into ``region_id``."""
    return [f"{region_id}-new-{i}" for i in range(1, count + 1)]


def standby_cluster(regions: Sequence[Region]) -> Region | None:
    """Invisible standby cluster that has not been cut off by a repoint."""
    return next(
        (
            r for r in regions
            if r.is_cluster
            and r.cluster_state == ClusterState.STANDBY
            and not r.visible_to_apps
            and not r.sync_broken
        ),
        None,
    )


def serving_cluster_region(regions: Sequence[Region]) -> Region | None:
    return next((r for r in regions if r.is_cluster and r.visible_to_apps), None)


def available_backup(nodes: Sequence[Node], regions: Sequence[Region]) -> Region | None:
    return next((r for r in regions if r.is_backup and backup_available(r, nodes)), None)


def restored_region(regions: Sequence[Region]) -> Region | None:
    return find_region(regions, RESTORED_REGION_ID)


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

def reconfigure_as_standalone(nodes: Sequence[Node], ctx: RecoveryContext) -> RecoveryResult:
    """Turn the surviving DR node into a standalone instance.

    Last resort: the node leaves the replica set and serves writes alone.
    Only a reset undoes it.
    """
    if any(n.is_standalone for n in nodes):
        return _skipped(nodes, "A standalone instance is already configured")
    target = surviving_dr_node(nodes, ctx.regions)
    if target is None:
        return _skipped(nodes, "No DR node available for standalone reconfiguration")

    changed = [target.replace(role=NodeRole.STANDALONE)]
    changed.extend(
        n.replace(role=NodeRole.SECONDARY)
        for n in nodes
        if n.is_primary and n.node_id != target.node_id
    )
    events = (
        LogEvent.create(
            EventType.RECOVERY_ACTION,
            f"Reconfiguring {target.name} as standalone",
            "Last-resort action: breaks the replica set but restores write capability",
        ),
        LogEvent.create(
            EventType.STATUS_CHANGE,
            f"{target.name} is now operating as a standalone instance",
            "The node accepts writes but is no longer part of a replica set",
        ),
        LogEvent.create(EventType.SUCCESS, f"Write capability restored on {target.name}"),
    )
    return RecoveryResult(update_nodes(nodes, changed), events)


def _majority_event(nodes: Sequence[Node], ctx: RecoveryContext) -> LogEvent:
    """Quorum summary for the scope holding the DR region."""
    scopes = replica_set_scopes(nodes, ctx.kind, ctx.regions)
    rs = replica_set_status(scopes[0])
    counts = f"{rs.voting_online} of {rs.voting_total} voting members online"
    if rs.has_majority:
        return LogEvent.create(EventType.QUORUM, f"Majority re-established: {counts}")
    return warning(
        f"Majority still not met: {counts}",
        "The replica set stays read-only until another voting member is added",
    )


def _finish(
    nodes: NodeList,
    events: list[LogEvent],
    ctx: RecoveryContext,
    recently_granted: frozenset[str] = frozenset(),
) -> RecoveryResult:
    """Quorum summary, election, then a success event if writes are back."""
    events.append(_majority_event(nodes, ctx))
    election = elect_new_primary(nodes, ctx.kind, ctx.mode, ctx.regions, recently_granted)
    events.extend(election.events)
    status = compute_status(election.nodes, ctx.kind, ctx.regions)
    if status.can_write:
        events.append(
            LogEvent.create(EventType.SUCCESS, "Cluster is operational with write capability restored")
        )
    return RecoveryResult(election.nodes, tuple(events))


def add_new_voting_nodes(
    nodes: Sequence[Node],
    ctx: RecoveryContext,
    count: int | None = None,
    force_reconfig: bool = True,
) -> RecoveryResult:
    """Provision new voting secondaries in the surviving DR region.

    With ``force_reconfig`` the replica set is reconfigured first: voting
    members that are down lose their vote, so the new configuration counts
    only reachable members. New nodes get fixed ids; ids already present
    are never added twice.

    Args:
        nodes: Current node list.
        ctx: Recovery context.
        count: Nodes to add. Defaults to ``ctx.new_node_count``.
        force_reconfig: Strip votes from down members before adding.
    """
    count = ctx.new_node_count if count is None else count
    survivor = surviving_dr_node(nodes, ctx.regions)
    if survivor is None:
        return _skipped(nodes, "No DR node available to add new nodes to")
    region = dr_region(ctx.regions)
    ids = [i for i in new_node_ids(region.region_id, count) if find_node(nodes, i) is None]
    if not ids:
        return _skipped(nodes, f"New nodes were already provisioned in {region.name}")

    current = tuple(nodes)
    stripped: list[Node] = []
    if force_reconfig:
        stripped = [
            n.replace(voting=VotingRights.NON_VOTING)
            for n in current
            if n.in_majority_scope and n.is_voting and not n.is_up
        ]
        current = update_nodes(current, stripped)

    added = tuple(
        Node(
            node_id=node_id,
            name=f"DR Node New {node_id.rsplit('-', 1)[-1]}",
            role=NodeRole.SECONDARY,
            status=NodeStatus.UP,
            voting=VotingRights.VOTING,
            region=region.region_id,
            datacenter=survivor.datacenter,
        )
        for node_id in ids
    )
    details = "Adding new voting members to re-establish a majority"
    if stripped:
        details += f"; forced reconfiguration removed {len(stripped)} unreachable voting member(s)"
    events = [
        LogEvent.create(
            EventType.RECOVERY_ACTION,
            f"Provisioning {len(added)} new node(s) in {region.name}",
            details,
        )
    ]
    logger.info(f"Adding {[n.node_id for n in added]} to {region.region_id}")
    return _finish(current + added, events, ctx)


def grant_voting_rights(
    nodes: Sequence[Node],
    ctx: RecoveryContext,
    limit: int | None = None,
) -> RecoveryResult:
    """Turn read-only DR survivors into voting secondaries.

    Args:
        nodes: Current node list.
        ctx: Recovery context.
        limit: Maximum number of nodes to convert (None = all).
    """
    targets = read_only_survivors(nodes, ctx.regions)
    if limit is not None:
        targets = targets[:limit]
    if not targets:
        return _skipped(nodes, "No read-only DR node available to grant voting rights to")

    promoted = [n.replace(role=NodeRole.SECONDARY, voting=VotingRights.VOTING) for n in targets]
    events = [
        LogEvent.create(
            EventType.RECOVERY_ACTION,
            f"Granting voting rights to {len(promoted)} read-only node(s) in the DR region",
            "Reconfiguring read-only members as voting secondaries",
        )
    ]
    events.extend(
        LogEvent.create(EventType.STATUS_CHANGE, f"{n.name} is now a voting Secondary")
        for n in promoted
    )
    granted = frozenset(n.node_id for n in promoted)
    return _finish(update_nodes(nodes, promoted), events, ctx, granted)


def grant_single_vote(nodes: Sequence[Node], ctx: RecoveryContext) -> RecoveryResult:
    """Step 1 of the two-step recovery: one read-only node gets a vote.

    This may leave the majority unmet; the replica set is then readable
    but not writable until step 2.
    """
    return grant_voting_rights(nodes, ctx, limit=1)


def add_single_voting_node(nodes: Sequence[Node], ctx: RecoveryContext) -> RecoveryResult:
    """Step 2 of the two-step recovery: one brand-new voting node."""
    return add_new_voting_nodes(nodes, ctx, count=1, force_reconfig=False)


def repoint_to_secondary_cluster(nodes: Sequence[Node], ctx: RecoveryContext) -> RecoveryResult:
    """Send application traffic to the standby cluster.

    The standby cluster already elects its own primary, so no node changes.
    If the failed cluster was replicating to the standby, that sync channel
    is marked broken.
    """
    target = standby_cluster(ctx.regions)
    if target is None:
        return _skipped(nodes, "No standby cluster available to repoint to")
    status = compute_status(nodes, ctx.kind, ctx.regions).replica_set(target.region_id)
    if status is None or not status.can_write:
        return _skipped(
            nodes,
            f"{target.name} cannot accept writes",
            "The standby cluster needs its own primary before applications can use it",
        )

    source = serving_cluster_region(ctx.regions)
    regions = update_region(
        ctx.regions, target.region_id,
        cluster_state=ClusterState.ACTIVE, visible_to_apps=True,
    )
    events = [
        LogEvent.create(
            EventType.RECOVERY_ACTION,
            f"Repointing applications to {target.name}",
            "Connection strings now resolve to the standby cluster",
        )
    ]
    if source is not None:
        regions = update_region(
            regions, source.region_id,
            cluster_state=ClusterState.STANDBY, visible_to_apps=False,
            sync_broken=source.has_sync,
        )
    if source is not None and source.has_sync:
        events.append(
            LogEvent.create(
                EventType.STATUS_CHANGE,
                f"Sync from {source.name} marked broken",
                "The failed cluster no longer replicates to the new active cluster",
            )
        )
    events.append(LogEvent.create(EventType.SUCCESS, f"{target.name} is now serving production traffic"))
    return RecoveryResult(tuple(nodes), tuple(events), regions)


def begin_restore_from_backup(nodes: Sequence[Node], ctx: RecoveryContext) -> RecoveryResult:
    """Start restoring a new cluster from backup storage.

    Nothing materializes yet: the restored cluster appears only when the
    staged restore task completes (see ``complete_restore``).
    """
    if restored_region(ctx.regions) is not None:
        return _skipped(nodes, "A restored cluster already exists")
    backup = available_backup(nodes, ctx.regions)
    if backup is None:
        return _skipped(nodes, "No backup storage is available to restore from")
    events = (
        LogEvent.create(
            EventType.RECOVERY_ACTION,
            f"Restoring from {backup.name}",
            f"Provisioning a new {RESTORED_CLUSTER_SIZE}-node replica set from the latest snapshot",
        ),
    )
    logger.info(f"Restore started from {backup.region_id}")
    return RecoveryResult(tuple(nodes), events)


def complete_restore(nodes: Sequence[Node], ctx: RecoveryContext) -> RecoveryResult:
    """Materialize the restored cluster.

    Creates a new cluster region with three up voting nodes and elects its
    primary. The restored cluster is independent of the failed one and is
    not visible to applications until they are pointed at it. Its
    datacenter follows ``ctx.restore_source`` when set, else the backup
    available now. Re-applying is a no-op with a warning.
    """
    ids = [f"restored-node-{i}" for i in range(1, RESTORED_CLUSTER_SIZE + 1)]
    if restored_region(ctx.regions) is not None or any(find_node(nodes, i) for i in ids):
        return _skipped(nodes, "Restored cluster already materialized")

    if ctx.restore_source is not None:
        backup = find_region(ctx.regions, ctx.restore_source)
    else:
        backup = available_backup(nodes, ctx.regions)
    datacenter = "Region-B"
    if backup is not None and backup.backs_region is not None:
        datacenter = "Region-A"
    region = Region(
        RESTORED_REGION_ID,
        f"Restored Cluster ({datacenter})",
        RegionType.CLUSTER,
        tuple(ids),
        cluster_state=ClusterState.ACTIVE,
        visible_to_apps=False,
    )
    added = tuple(
        Node(
            node_id=node_id,
            name=f"Restored Node {i}",
            role=NodeRole.SECONDARY,
            status=NodeStatus.UP,
            voting=VotingRights.VOTING,
            region=RESTORED_REGION_ID,
            datacenter=datacenter,
        )
        for i, node_id in enumerate(ids, start=1)
    )
    regions = add_region(ctx.regions, region)
    events = [
        LogEvent.create(
            EventType.STATUS_CHANGE,
            f"Restore complete: {region.name} is online",
            f"{RESTORED_CLUSTER_SIZE} new nodes restored from backup",
        )
    ]
    election = elect_in_region(tuple(nodes) + added, RESTORED_REGION_ID, regions)
    events.extend(election.events)
    events.append(
        LogEvent.create(
            EventType.STATUS_CHANGE,
            "Applications are not yet pointed at the restored cluster",
            "Point the application to the restored cluster to complete failover",
        )
    )
    return RecoveryResult(election.nodes, tuple(events), regions)


def point_to_restored_cluster(nodes: Sequence[Node], ctx: RecoveryContext) -> RecoveryResult:
    """Make the restored cluster visible to applications (no node changes)."""
    region = restored_region(ctx.regions)
    if region is None:
        return _skipped(nodes, "No restored cluster to point applications at")
    if region.visible_to_apps:
        return _skipped(nodes, f"Applications already use {region.name}")
    regions = update_region(ctx.regions, region.region_id, visible_to_apps=True)
    regions = move_region_first(regions, region.region_id)
    events = (
        LogEvent.create(
            EventType.RECOVERY_ACTION,
            f"Pointing applications to {region.name}",
            "Application connection strings updated",
        ),
        LogEvent.create(EventType.SUCCESS, "Applications are now served by the restored cluster"),
    )
    return RecoveryResult(tuple(nodes), events, regions)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RecoveryAction:
    """A named recovery procedure offered to the operator."""

    action_id: RecoveryActionId
    label: str
    description: str
    execute: Callable[[Sequence[Node], RecoveryContext], RecoveryResult]


RECOVERY_ACTIONS: dict[RecoveryActionId, RecoveryAction] = {
    a.action_id: a
    for a in (
        RecoveryAction(
            RecoveryActionId.RECONFIGURE_STANDALONE,
            "Reconfigure DR as Standalone",
            "Break the replica set and serve writes from the surviving DR node",
            reconfigure_as_standalone,
        ),
        RecoveryAction(
            RecoveryActionId.ADD_NEW_NODES,
            "Add 2 New Nodes to DR",
            "Force a reconfiguration and add new voting members in the DR region",
            add_new_voting_nodes,
        ),
        RecoveryAction(
            RecoveryActionId.GRANT_VOTING_RIGHTS,
            "Grant Voting Rights to Read-Only Nodes",
            "Convert read-only DR members into voting secondaries",
            grant_voting_rights,
        ),
        RecoveryAction(
            RecoveryActionId.STEP_ONE_GRANT_VOTE,
            "Step 1: Grant Voting Rights to Read-Only Node",
            "Give one read-only DR member a vote",
            grant_single_vote,
        ),
        RecoveryAction(
            RecoveryActionId.STEP_TWO_ADD_NODE,
            "Step 2: Add New Voting Node",
            "Add a new voting member to the DR region to reach a majority",
            add_single_voting_node,
        ),
        RecoveryAction(
            RecoveryActionId.REPOINT_TO_SECONDARY_CLUSTER,
            "Repoint Applications to DR Cluster",
            "Send application traffic to the standby cluster",
            repoint_to_secondary_cluster,
        ),
        RecoveryAction(
            RecoveryActionId.RESTORE_FROM_BACKUP,
            "Restore from Backup",
            "Restore a new replica set from backup storage",
            begin_restore_from_backup,
        ),
        RecoveryAction(
            RecoveryActionId.POINT_TO_RESTORED,
            "Point Application to Restored Cluster",
            "Make the restored cluster visible to applications",
            point_to_restored_cluster,
        ),
    )
}


def resolve_action_id(action_id: RecoveryActionId | str) -> RecoveryActionId | None:
    """Turn an action id (enum or string value) into a RecoveryActionId."""
    if isinstance(action_id, RecoveryActionId):
        return action_id
    try:
        return RecoveryActionId(action_id)
    except ValueError:
        return None
