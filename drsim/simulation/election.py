"""
Primary election for the replica-set disaster-recovery simulator.

Decides, per majority scope, whether the current primary must step down,
whether a new primary must be elected and which candidate wins. Candidate
choice is deterministic: within a priority tier the first qualifying node
in list order wins, so the same input always elects the same primary.

Under a managed deployment of the multi-datacenter scenario, candidates
are additionally ranked by region (primary DC > secondary DC > DR). A
higher-ranked region with an electable member takes over from a primary
elsewhere.
"""

import logging
from dataclasses import dataclass
from typing import Sequence

from .catalog import DeploymentMode, ScenarioKind, get_scenario
from .events import EventType, LogEvent, warning
from .node import Node, NodeList, NodeRole, nodes_in_region, update_nodes, voting_counts
from .region import REGION_PRIORITY, Region, find_region
from .status import Scope, has_majority, replica_set_scopes

logger = logging.getLogger("drsim.election")


@dataclass(frozen=True)
class ElectionResult:
    """Outcome of running the election engine.

    Attributes:
        nodes: Node list after step-downs and promotions.
        events: Log events in emission order.
    """

    nodes: NodeList
    events: tuple[LogEvent, ...] = ()

    @property
    def primary_ids(self) -> list[str]:
        return [n.node_id for n in self.nodes if n.is_primary]


def region_priorities(regions: Sequence[Region]) -> dict[str, int]:
    """Map region ids to election rank (lower wins)."""
    return {
        r.region_id: REGION_PRIORITY.index(r.region_type)
        for r in regions
        if r.region_type in REGION_PRIORITY
    }


def _rank(node: Node, priorities: dict[str, int]) -> int:
    return priorities.get(node.region, len(REGION_PRIORITY))


def choose_candidate(
    nodes: Sequence[Node],
    priorities: dict[str, int] | None = None,
    recently_granted: frozenset[str] = frozenset(),
) -> Node | None:
    """Pick the node to promote, or None when nobody qualifies.

    Only up, voting secondaries qualify. Nodes whose vote was granted in the
    current action are used only when no other secondary qualifies. With
    ``priorities``, only the best-ranked region's candidates are considered.
    First in list order wins.
    """
    pool = [n for n in nodes if n.is_electable and not n.is_primary]
    if not pool:
        return None
    settled = [n for n in pool if n.node_id not in recently_granted]
    pool = settled or pool
    if priorities:
        best = min(_rank(n, priorities) for n in pool)
        pool = [n for n in pool if _rank(n, priorities) == best]
    return pool[0]


def _elect_in_scope(
    nodes: NodeList,
    scope: Scope,
    priorities: dict[str, int] | None,
    recently_granted: frozenset[str],
) -> ElectionResult:
    members = {n.node_id: n for n in scope.nodes}
    order = [n.node_id for n in scope.nodes]
    events: list[LogEvent] = []

    def current() -> list[Node]:
        return [members[node_id] for node_id in order]

    def set_role(node: Node, role: NodeRole) -> None:
        members[node.node_id] = node.replace(role=role)

    if any(n.is_standalone and n.is_up for n in scope.nodes):
        # Replica set was deliberately broken; the standalone serves alone
        return ElectionResult(nodes)

    primaries = [n for n in current() if n.is_primary]
    if len(primaries) > 1:
        for extra in primaries[1:]:
            set_role(extra, NodeRole.SECONDARY)
        events.append(
            warning(
                f"Multiple primaries detected in {scope.name}; keeping {primaries[0].name}",
                ", ".join(p.name for p in primaries[1:]) + " demoted to Secondary",
            )
        )
        logger.warning(f"Repaired {len(primaries)} primaries in scope {scope.name}")

    primary = next((n for n in current() if n.is_primary), None)
    stepped_down: Node | None = None

    if primary is not None and not primary.is_up:
        set_role(primary, NodeRole.SECONDARY)
        events.append(
            warning(
                f"Primary {primary.name} is unavailable and has stepped down",
                f"{scope.name} must elect a new primary",
            )
        )
        stepped_down, primary = primary, None

    online, total = voting_counts(current())
    majority = has_majority(online, total)

    if primary is not None and not majority:
        set_role(primary, NodeRole.SECONDARY)
        events.append(
            warning(
                f"Primary {primary.name} stepped down: majority lost",
                f"Only {online} of {total} voting members online",
            )
        )
        stepped_down, primary = primary, None

    if majority:
        candidate = choose_candidate(current(), priorities, recently_granted)
        if primary is None:
            if candidate is not None:
                set_role(candidate, NodeRole.PRIMARY)
                events.append(
                    LogEvent.create(
                        EventType.ELECTION,
                        f"Election completed: {candidate.name} promoted to Primary",
                        f"{online} of {total} voting members online",
                    )
                )
                primary = members[candidate.node_id]
            else:
                events.append(
                    warning(
                        f"Majority held in {scope.name} but no electable member is available",
                        "Only up, voting secondaries can become primary",
                    )
                )
        elif (
            priorities
            and candidate is not None
            and _rank(candidate, priorities) < _rank(primary, priorities)
        ):
            set_role(primary, NodeRole.SECONDARY)
            set_role(candidate, NodeRole.PRIMARY)
            events.append(
                LogEvent.create(
                    EventType.ELECTION,
                    f"Priority-based takeover: {candidate.name} elected Primary",
                    f"{primary.name} stepped down in favour of the higher-priority region",
                )
            )
            primary = members[candidate.node_id]

    if stepped_down is not None and primary is None:
        events.append(
            LogEvent.create(
                EventType.STATUS_CHANGE,
                f"{scope.name} can no longer accept writes",
                "No primary until a majority of voting members is online",
            )
        )

    if events:
        logger.debug(f"Election in {scope.name}: {[e.message for e in events]}")
    return ElectionResult(update_nodes(nodes, members.values()), tuple(events))


def elect_new_primary(
    nodes: Sequence[Node],
    kind: ScenarioKind,
    mode: DeploymentMode | None = None,
    regions: Sequence[Region] | None = None,
    recently_granted: frozenset[str] = frozenset(),
) -> ElectionResult:
    """Run the election engine over every majority scope of a scenario.

    Args:
        nodes: Current node list.
        kind: Scenario kind (selects scopes and priority rules).
        mode: Deployment mode; a managed mode enables region priority for
            the multi-datacenter scenario.
        regions: Effective regions. Defaults to the catalog's regions.
        recently_granted: Ids of nodes that gained a vote in this action.

    Returns:
        ElectionResult with the updated nodes and emitted events.
    """
    effective = tuple(regions) if regions is not None else get_scenario(kind).regions
    priorities = None
    if kind == ScenarioKind.MULTI_DC and mode is not None and mode.is_managed:
        priorities = region_priorities(effective)

    current = tuple(nodes)
    events: list[LogEvent] = []
    # Scopes are disjoint, so each election only touches its own members
    for scope in replica_set_scopes(current, kind, effective):
        result = _elect_in_scope(current, scope, priorities, recently_granted)
        current = result.nodes
        events.extend(result.events)
    return ElectionResult(current, tuple(events))


def elect_in_region(
    nodes: Sequence[Node],
    region_id: str,
    regions: Sequence[Region] = (),
) -> ElectionResult:
    """Run the election engine for one independent cluster.

    Args:
        nodes: Current node list.
        region_id: Cluster region whose nodes form the replica set.
        regions: Optional regions used to look up a display name.
    """
    region = find_region(regions, region_id)
    scope = Scope(
        region.name if region else region_id,
        region_id,
        nodes_in_region(nodes, region_id),
    )
    return _elect_in_scope(tuple(nodes), scope, None, frozenset())
