"""
Node model for the replica-set disaster-recovery simulator.

Nodes are immutable records. A replica set is an ordered tuple of nodes;
every transformation returns a new tuple so earlier simulation snapshots
stay valid.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Sequence


class NodeRole(Enum):
    """Role a database process plays in its replica set."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    READ_ONLY = "read_only"
    STANDALONE = "standalone"  # Reconfigured out of the replica set
    BACKUP_STORAGE = "backup_storage"


class NodeStatus(Enum):
    """Process status. Only UP nodes vote or serve."""

    UP = "up"
    DOWN = "down"
    RECOVERING = "recovering"
    PROVISIONING = "provisioning"
    RESTORING = "restoring"


class VotingRights(Enum):
    VOTING = "voting"
    NON_VOTING = "non_voting"


# Roles that never take part in majority calculations or elections.
OUT_OF_SCOPE_ROLES = frozenset({NodeRole.STANDALONE, NodeRole.BACKUP_STORAGE})


@dataclass(frozen=True)
class Node:
    """One simulated database process.

    Attributes:
        node_id: Unique, stable identifier.
        name: Display label.
        role: Current replica-set role.
        status: Current process status.
        voting: Whether the node is a voting member.
        region: Id of the region (or independent cluster) the node belongs to.
        datacenter: Free-form location label, display only.
    """

    node_id: str
    name: str
    role: NodeRole
    status: NodeStatus
    voting: VotingRights
    region: str
    datacenter: str

    @property
    def is_up(self) -> bool:
        return self.status == NodeStatus.UP

    @property
    def is_voting(self) -> bool:
        return self.voting == VotingRights.VOTING

    @property
    def is_primary(self) -> bool:
        return self.role == NodeRole.PRIMARY

    @property
    def is_standalone(self) -> bool:
        return self.role == NodeRole.STANDALONE

    @property
    def in_majority_scope(self) -> bool:
        """Whether the node is a replica-set member subject to majority rules."""
        return self.role not in OUT_OF_SCOPE_ROLES

    @property
    def counts_toward_majority(self) -> bool:
        """Up voting members are the numerator of the majority check."""
        return self.in_majority_scope and self.is_voting and self.is_up

    @property
    def is_electable(self) -> bool:
        """Whether the node may become primary right now."""
        return (
            self.is_up
            and self.is_voting
            and self.role in (NodeRole.SECONDARY, NodeRole.PRIMARY)
        )

    def replace(self, **changes) -> "Node":
        """Return a copy of this node with the given fields changed."""
        return replace(self, **changes)

    def __repr__(self) -> str:
        vote = "" if self.is_voting else ", non-voting"
        return f"Node({self.node_id}, {self.role.value}, {self.status.value}{vote}, region={self.region})"


NodeList = tuple[Node, ...]


def find_node(nodes: Sequence[Node], node_id: str) -> Node | None:
    """Return the node with ``node_id`` or None."""
    for node in nodes:
        if node.node_id == node_id:
            return node
    return None


def update_node(nodes: Sequence[Node], node_id: str, **changes) -> NodeList:
    """Return a new node tuple with one node's fields changed.

    Unknown ids leave the collection unchanged.
    """
    return tuple(
        node.replace(**changes) if node.node_id == node_id else node
        for node in nodes
    )


def update_nodes(nodes: Sequence[Node], updated: Iterable[Node]) -> NodeList:
    """Swap in updated records by id, keeping the original order."""
    by_id = {node.node_id: node for node in updated}
    return tuple(by_id.get(node.node_id, node) for node in nodes)


def nodes_in_region(nodes: Sequence[Node], region_id: str) -> NodeList:
    return tuple(node for node in nodes if node.region == region_id)


def voting_counts(nodes: Iterable[Node]) -> tuple[int, int]:
    """Count (online, total) voting members among replica-set nodes.

    Total includes voting members that are down; nodes outside majority
    scope (standalone, backup storage) are ignored.
    """
    online = 0
    total = 0
    for node in nodes:
        if not node.in_majority_scope or not node.is_voting:
            continue
        total += 1
        if node.is_up:
            online += 1
    return online, total
