"""
Failure and toggle handling for the replica-set disaster-recovery simulator.

Flips a node (or a whole region) between up and down, then re-evaluates
every majority scope: quorum transitions are logged, the election engine
decides step-downs and promotions, and backup storage co-located with a
cluster follows that cluster's availability.

Events for one call are emitted in a fixed order:

1. the failure / status-change event for the node(s) touched,
2. quorum transitions (majority lost / restored) and degraded warnings,
3. election events (step-down, write capability lost, election),
4. backup-storage cascade events.
"""

import logging
from dataclasses import dataclass
from typing import Sequence

from .catalog import DeploymentMode, ScenarioKind, get_scenario
from .election import elect_new_primary
from .events import EventType, LogEvent, warning
from .node import Node, NodeList, NodeStatus, find_node, update_node
from .region import ClusterState, Region, RegionList, find_region, update_region
from .status import backup_available, replica_set_scopes, replica_set_status

logger = logging.getLogger("drsim.failures")


@dataclass(frozen=True)
class ToggleResult:
    """Outcome of a toggle or region failure.

    Attributes:
        nodes: Updated node list.
        events: Log events in emission order.
        regions: Region overlay after the call. None when no overlay was
            given and nothing in it changed.
    """

    nodes: NodeList
    events: tuple[LogEvent, ...]
    regions: RegionList | None = None


def fail_region(nodes: Sequence[Node], region_id: str) -> NodeList:
    """Mark every node of a region down (bulk path, no re-evaluation)."""
    return tuple(
        n.replace(status=NodeStatus.DOWN) if n.region == region_id else n
        for n in nodes
    )


def _quorum_events(
    before: Sequence[Node],
    after: Sequence[Node],
    kind: ScenarioKind,
    regions: Sequence[Region],
) -> list[LogEvent]:
    events: list[LogEvent] = []
    # Membership does not change on a toggle, so scopes line up pairwise
    for old_scope, new_scope in zip(
        replica_set_scopes(before, kind, regions),
        replica_set_scopes(after, kind, regions),
    ):
        old = replica_set_status(old_scope)
        new = replica_set_status(new_scope)
        counts = f"{new.voting_online} of {new.voting_total} voting members online"
        if old.has_majority and not new.has_majority:
            events.append(
                LogEvent.create(
                    EventType.QUORUM,
                    f"Majority lost in {new.name}: {counts}",
                    "The replica set is read-only until a majority is restored",
                )
            )
        elif new.has_majority and not old.has_majority:
            events.append(
                LogEvent.create(EventType.QUORUM, f"Majority restored in {new.name}: {counts}")
            )
        if new.is_degraded and new.voting_online != old.voting_online:
            events.append(
                warning(
                    f"{new.name} is degraded but operational: {counts}",
                    "Writes continue; consider recovery actions to restore resilience",
                )
            )
    return events


def cascade_backup_storage(
    nodes: Sequence[Node],
    regions: Sequence[Region],
) -> tuple[RegionList, list[LogEvent]]:
    """Bring co-located backup storage in line with the cluster it backs.

    Returns:
        The (possibly) updated regions and one status-change event per
        backup region whose state flipped.
    """
    updated = tuple(regions)
    events: list[LogEvent] = []
    for region in regions:
        if not region.is_backup or region.backs_region is None:
            continue
        available = backup_available(region, nodes)
        state = ClusterState.ACTIVE if available else ClusterState.DOWN
        if region.cluster_state == state:
            continue
        updated = update_region(updated, region.region_id, cluster_state=state)
        if available:
            events.append(
                LogEvent.create(EventType.STATUS_CHANGE, f"{region.name} is available again")
            )
        else:
            backed = find_region(regions, region.backs_region)
            events.append(
                LogEvent.create(
                    EventType.STATUS_CHANGE,
                    f"{region.name} is unavailable",
                    f"Co-located with {backed.name if backed else region.backs_region}, which is fully down",
                )
            )
    return updated, events


def _reevaluate(
    before: NodeList,
    after: NodeList,
    lead_events: list[LogEvent],
    kind: ScenarioKind,
    mode: DeploymentMode | None,
    regions: Sequence[Region] | None,
) -> ToggleResult:
    effective = tuple(regions) if regions is not None else get_scenario(kind).regions
    events = list(lead_events)
    events.extend(_quorum_events(before, after, kind, effective))

    election = elect_new_primary(after, kind, mode, effective)
    events.extend(election.events)

    cascaded, cascade_events = cascade_backup_storage(election.nodes, effective)
    events.extend(cascade_events)
    overlay = cascaded if cascade_events else (tuple(regions) if regions is not None else None)
    return ToggleResult(election.nodes, tuple(events), overlay)


def toggle_node(
    nodes: Sequence[Node],
    node_id: str,
    kind: ScenarioKind,
    mode: DeploymentMode | None = None,
    regions: Sequence[Region] | None = None,
) -> ToggleResult:
    """Flip one node between up and down and re-evaluate the scenario.

    Unknown ids and nodes in a transitional status (provisioning,
    restoring, recovering) are a no-op with a single warning event.

    Args:
        nodes: Current node list.
        node_id: Node to flip.
        kind: Scenario kind.
        mode: Deployment mode (election priority rules).
        regions: Region overlay, or None for the catalog's regions.

    Returns:
        ToggleResult with the new nodes, events and overlay.
    """
    current = tuple(nodes)
    overlay = tuple(regions) if regions is not None else None
    node = find_node(current, node_id)
    if node is None:
        logger.warning(f"Toggle ignored: unknown node {node_id!r}")
        return ToggleResult(current, (warning(f"Unknown node '{node_id}'", "No node was changed"),), overlay)
    if node.status not in (NodeStatus.UP, NodeStatus.DOWN):
        return ToggleResult(
            current,
            (warning(f"{node.name} is {node.status.value} and cannot be toggled"),),
            overlay,
        )

    if node.is_up:
        after = update_node(current, node_id, status=NodeStatus.DOWN)
        lead = LogEvent.create(
            EventType.FAILURE,
            f"{node.name} failed",
            f"{node.name} ({node.datacenter}) is now offline",
        )
    else:
        after = update_node(current, node_id, status=NodeStatus.UP)
        lead = LogEvent.create(
            EventType.STATUS_CHANGE,
            f"{node.name} is back online",
            f"{node.name} ({node.datacenter}) rejoined as {node.role.value}",
        )
    logger.info(f"Toggled {node_id}: {node.status.value} -> {'down' if node.is_up else 'up'}")
    return _reevaluate(current, after, [lead], kind, mode, regions)


def apply_region_failure(
    nodes: Sequence[Node],
    region_id: str,
    kind: ScenarioKind,
    mode: DeploymentMode | None = None,
    regions: Sequence[Region] | None = None,
) -> ToggleResult:
    """Fail a whole region and re-evaluate the scenario.

    Unknown regions and regions with no node left up are a no-op with a
    single warning event.
    """
    current = tuple(nodes)
    effective = tuple(regions) if regions is not None else get_scenario(kind).regions
    overlay = tuple(regions) if regions is not None else None
    region = find_region(effective, region_id)
    if region is None:
        logger.warning(f"Region failure ignored: unknown region {region_id!r}")
        return ToggleResult(current, (warning(f"Unknown region '{region_id}'"),), overlay)
    if not any(n.is_up for n in current if n.region == region_id):
        return ToggleResult(current, (warning(f"{region.name} has no running nodes to fail"),), overlay)

    after = fail_region(current, region_id)
    lead = LogEvent.create(
        EventType.FAILURE,
        f"Failed {region.name}",
        f"All nodes in {region.name} are now offline",
    )
    logger.info(f"Failed region {region_id}")
    return _reevaluate(current, after, [lead], kind, mode, regions)
