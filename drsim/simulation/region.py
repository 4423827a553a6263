"""
Region model for the replica-set disaster-recovery simulator.

A region groups nodes either as a sub-group of one replica set (primary DC,
DR region, ...) or as a whole independent cluster. Regions are immutable;
the simulation keeps an optional overlay tuple that replaces the catalog's
static regions once a recovery action or cascade changes one.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Sequence


class RegionType(Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    DR = "dr"
    BACKUP = "backup"
    CLUSTER = "cluster"


class ClusterState(Enum):
    """Availability label for cluster and backup-storage regions."""

    ACTIVE = "active"
    STANDBY = "standby"
    DOWN = "down"
    PROVISIONING = "provisioning"


# Election preference for managed multi-datacenter deployments.
REGION_PRIORITY = (RegionType.PRIMARY, RegionType.SECONDARY, RegionType.DR)


@dataclass(frozen=True)
class Region:
    """A named grouping of nodes.

    Attributes:
        region_id: Unique identifier referenced by ``Node.region``.
        name: Display label.
        region_type: What the region represents.
        node_ids: Ids of the nodes declared in this region (display order).
        cluster_state: Declared state for cluster/backup regions.
        has_sync: Whether this cluster continuously replicates to another cluster.
        sync_broken: Whether that replication channel has been cut.
        visible_to_apps: Whether application traffic reaches this cluster.
        backs_region: For backup storage co-located with a cluster, the id of
            that cluster. None for off-site copies with independent availability.
    """

    region_id: str
    name: str
    region_type: RegionType
    node_ids: tuple[str, ...] = ()
    cluster_state: ClusterState | None = None
    has_sync: bool = False
    sync_broken: bool = False
    visible_to_apps: bool = True
    backs_region: str | None = None

    @property
    def is_cluster(self) -> bool:
        return self.region_type == RegionType.CLUSTER

    @property
    def is_backup(self) -> bool:
        return self.region_type == RegionType.BACKUP

    @property
    def is_available(self) -> bool:
        """Backup storage (or cluster) that is not marked down or provisioning."""
        return self.cluster_state in (None, ClusterState.ACTIVE, ClusterState.STANDBY)

    def replace(self, **changes) -> "Region":
        return replace(self, **changes)


RegionList = tuple[Region, ...]


def find_region(regions: Sequence[Region], region_id: str) -> Region | None:
    for region in regions:
        if region.region_id == region_id:
            return region
    return None


def regions_of_type(regions: Sequence[Region], region_type: RegionType) -> RegionList:
    return tuple(r for r in regions if r.region_type == region_type)


def update_region(regions: Sequence[Region], region_id: str, **changes) -> RegionList:
    return tuple(
        r.replace(**changes) if r.region_id == region_id else r for r in regions
    )


def add_region(regions: Sequence[Region], region: Region) -> RegionList:
    """Append a region unless one with the same id already exists."""
    if find_region(regions, region.region_id) is not None:
        return tuple(regions)
    return tuple(regions) + (region,)


def move_region_first(regions: Sequence[Region], region_id: str) -> RegionList:
    """Move a region to the front of the display order."""
    first = [r for r in regions if r.region_id == region_id]
    rest = [r for r in regions if r.region_id != region_id]
    return tuple(first + rest)
