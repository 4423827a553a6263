"""
Replica-set disaster-recovery simulation package.

This package models replica sets spread over regions (or several
independent clusters), derives majority and write capability from node
states, elects primaries, and walks an operator through scenario-specific
recovery procedures.
"""

from .node import (
    Node,
    NodeList,
    NodeRole,
    NodeStatus,
    VotingRights,
    find_node,
    update_node,
    update_nodes,
    nodes_in_region,
    voting_counts,
)
from .region import ClusterState, Region, RegionList, RegionType
from .events import EventType, LogEvent, EventLog
from .catalog import (
    ScenarioKind,
    DeploymentMode,
    Scenario,
    FailureDrill,
    RecoveryProfile,
    UnknownScenarioError,
    SCENARIOS,
    get_scenario,
)
from .status import (
    Topology,
    ReplicaSetStatus,
    BackupStorageStatus,
    ClusterStatus,
    StatusStrategy,
    has_majority,
    compute_status,
)
from .election import ElectionResult, elect_new_primary, elect_in_region
from .failures import ToggleResult, apply_region_failure, cascade_backup_storage
from .recovery import (
    RecoveryActionId,
    RecoveryAction,
    RecoveryContext,
    RecoveryResult,
    RECOVERY_ACTIONS,
)
from .staged import RestoreTask
from .engine import (
    SimulationPhase,
    SimulationState,
    new_simulation,
    select_scenario,
    toggle_node,
    fail_region,
    invoke_recovery_action,
    tick_restore,
    run_restore_to_completion,
    reset,
    set_deployment_mode,
    legal_recovery_actions,
    effective_regions,
)

__all__ = [
    # Node
    "Node",
    "NodeList",
    "NodeRole",
    "NodeStatus",
    "VotingRights",
    "find_node",
    "update_node",
    "update_nodes",
    "nodes_in_region",
    "voting_counts",
    # Region
    "ClusterState",
    "Region",
    "RegionList",
    "RegionType",
    # Events
    "EventType",
    "LogEvent",
    "EventLog",
    # Catalog
    "ScenarioKind",
    "DeploymentMode",
    "Scenario",
    "FailureDrill",
    "RecoveryProfile",
    "UnknownScenarioError",
    "SCENARIOS",
    "get_scenario",
    # Status
    "Topology",
    "ReplicaSetStatus",
    "BackupStorageStatus",
    "ClusterStatus",
    "StatusStrategy",
    "has_majority",
    "compute_status",
    # Election
    "ElectionResult",
    "elect_new_primary",
    "elect_in_region",
    # Failures
    "ToggleResult",
    "cascade_backup_storage",
    "apply_region_failure",
    # Recovery
    "RecoveryActionId",
    "RecoveryAction",
    "RecoveryContext",
    "RecoveryResult",
    "RECOVERY_ACTIONS",
    # Staged tasks
    "RestoreTask",
    # Engine
    "SimulationPhase",
    "SimulationState",
    "new_simulation",
    "select_scenario",
    "toggle_node",
    "fail_region",
    "invoke_recovery_action",
    "tick_restore",
    "run_restore_to_completion",
    "reset",
    "set_deployment_mode",
    "legal_recovery_actions",
    "effective_regions",
]
