"""
Simulation engine: phase state machine and the public action surface.

Every function takes the current ``SimulationState`` and returns the next
one; nothing is mutated in place and no module-level state is kept. The
host (UI, CLI, test) owns the single current state and replaces it with
whatever the engine returns.

User-level mistakes never raise across this boundary. Unknown ids and
actions that are not currently offered produce a warning event and leave
the rest of the state unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, Sequence

from ..config import EngineSettings
from .catalog import (
    DeploymentMode,
    Scenario,
    ScenarioKind,
    UnknownScenarioError,
    get_scenario,
    resolve_kind,
)
from .events import EventLog, EventType, LogEvent, warning
from .failures import ToggleResult, apply_region_failure
from .failures import toggle_node as toggle_node_in
from .node import Node, NodeList, NodeRole, find_node
from .recovery import (
    RECOVERY_ACTIONS,
    RecoveryActionId,
    RecoveryContext,
    available_backup,
    complete_restore,
    dr_region,
    new_node_ids,
    primary_regions,
    read_only_survivors,
    restored_region,
    resolve_action_id,
    serving_cluster_region,
    standby_cluster,
    surviving_dr_node,
)
from .region import Region, RegionList, find_region
from .staged import RestoreTask
from .status import ClusterStatus, compute_status

logger = logging.getLogger("drsim.engine")


class SimulationPhase(Enum):
    """Where the operator is in a failure/recovery exercise."""

    INITIAL = "initial"
    FAILURE_OCCURRED = "failure_occurred"
    STEP_ONE_COMPLETE = "step_one_complete"
    RESTORING = "restoring"
    RECOVERED = "recovered"


@dataclass(frozen=True)
class SimulationState:
    """One immutable snapshot of a running simulation.

    Attributes:
        scenario: Selected scenario kind.
        mode: Deployment mode.
        phase: Current phase of the exercise.
        nodes: Current node list.
        regions: Region overlay, or None while the catalog's regions apply.
        logs: User-facing event log.
        available_actions: Recovery actions currently offered.
        cluster_status: Status derived from ``nodes`` and the regions.
        recovery_step: Steps completed in a multi-step recovery.
        progress_percent: Progress of the staged restore (0-100).
        restore_task: Staged restore, if one was started.
        recovery_action: Last recovery action applied.
        settings: Engine settings.
    """

    scenario: ScenarioKind
    mode: DeploymentMode
    phase: SimulationPhase
    nodes: NodeList
    regions: RegionList | None
    logs: EventLog
    available_actions: tuple[RecoveryActionId, ...]
    cluster_status: ClusterStatus
    recovery_step: int = 0
    progress_percent: int = 0
    restore_task: RestoreTask | None = None
    recovery_action: RecoveryActionId | None = None
    settings: EngineSettings = field(default_factory=EngineSettings)

    @property
    def definition(self) -> Scenario:
        return get_scenario(self.scenario)

    @property
    def effective_regions(self) -> RegionList:
        return effective_regions(self.scenario, self.regions)

    @property
    def is_restoring(self) -> bool:
        return self.restore_task is not None and self.restore_task.running


def effective_regions(kind: ScenarioKind, overlay: Sequence[Region] | None) -> RegionList:
    """The region overlay if one exists, else the catalog's regions."""
    if overlay is not None:
        return tuple(overlay)
    return get_scenario(kind).regions


# ---------------------------------------------------------------------------
# Legal recovery actions
# ---------------------------------------------------------------------------

def _primary_region_down(nodes: Sequence[Node], regions: Sequence[Region]) -> bool:
    primary_ids = {r.region_id for r in primary_regions(regions)}
    return any(not n.is_up for n in nodes if n.region in primary_ids)


def _step_one_promoted(nodes: Sequence[Node], kind: ScenarioKind) -> bool:
    """Whether a catalog read-only node has already been given a vote."""
    for original in get_scenario(kind).nodes:
        if original.role != NodeRole.READ_ONLY:
            continue
        current = find_node(nodes, original.node_id)
        if current is not None and current.is_voting:
            return True
    return False


def _legal_actions(
    kind: ScenarioKind,
    phase: SimulationPhase,
    nodes: Sequence[Node],
    regions: Sequence[Region],
    restore_task: RestoreTask | None,
    settings: EngineSettings,
) -> tuple[RecoveryActionId, ...]:
    if phase == SimulationPhase.RESTORING or (restore_task is not None and restore_task.running):
        return ()

    status = compute_status(nodes, kind, regions)
    actions: list[RecoveryActionId] = []

    if kind in (ScenarioKind.BASIC_DR, ScenarioKind.ENHANCED_DR, ScenarioKind.ENHANCED_2_STEP):
        if status.is_operational or not _primary_region_down(nodes, regions):
            return ()
        if surviving_dr_node(nodes, regions) is None:
            return ()
        region = dr_region(regions)

        if kind == ScenarioKind.BASIC_DR:
            actions.append(RecoveryActionId.RECONFIGURE_STANDALONE)
            ids = new_node_ids(region.region_id, settings.new_dr_nodes)
            if any(find_node(nodes, i) is None for i in ids):
                actions.append(RecoveryActionId.ADD_NEW_NODES)

        elif kind == ScenarioKind.ENHANCED_DR:
            if read_only_survivors(nodes, regions):
                actions.append(RecoveryActionId.GRANT_VOTING_RIGHTS)

        elif _step_one_promoted(nodes, kind):
            if find_node(nodes, new_node_ids(region.region_id, 1)[0]) is None:
                actions.append(RecoveryActionId.STEP_TWO_ADD_NODE)
        elif read_only_survivors(nodes, regions):
            actions.append(RecoveryActionId.STEP_ONE_GRANT_VOTE)

    elif kind == ScenarioKind.HOT_STANDBY:
        target = standby_cluster(regions)
        source = serving_cluster_region(regions)
        if target is not None and source is not None:
            target_status = status.replica_set(target.region_id)
            source_status = status.replica_set(source.region_id)
            # Offered as soon as any voting member of the serving cluster is down
            if (
                target_status is not None
                and target_status.can_write
                and source_status is not None
                and source_status.voting_online < source_status.voting_total
            ):
                actions.append(RecoveryActionId.REPOINT_TO_SECONDARY_CLUSTER)

    elif kind == ScenarioKind.COLD_STANDBY:
        restored = restored_region(regions)
        if restored is not None:
            if not restored.visible_to_apps:
                actions.append(RecoveryActionId.POINT_TO_RESTORED)
        elif not status.serves_production and available_backup(nodes, regions) is not None:
            actions.append(RecoveryActionId.RESTORE_FROM_BACKUP)

    return tuple(actions)


def legal_recovery_actions(state: SimulationState) -> tuple[RecoveryActionId, ...]:
    """Recompute, from scratch, the recovery actions legal in ``state``."""
    return _legal_actions(
        state.scenario,
        state.phase,
        state.nodes,
        state.effective_regions,
        state.restore_task,
        state.settings,
    )


# ---------------------------------------------------------------------------
# State construction
# ---------------------------------------------------------------------------

def _commit(
    state: SimulationState,
    events: Iterable[LogEvent],
    nodes: NodeList | None = None,
    regions: RegionList | None = None,
    phase: SimulationPhase | None = None,
    **changes,
) -> SimulationState:
    """Build the next snapshot with status and legal actions recomputed."""
    nodes = state.nodes if nodes is None else nodes
    regions = state.regions if regions is None else regions
    phase = state.phase if phase is None else phase
    events = list(events)

    if phase != state.phase:
        logger.info(f"Phase {state.phase.value} -> {phase.value}")
        if phase == SimulationPhase.RECOVERED:
            events.append(
                LogEvent.create(
                    EventType.SUCCESS,
                    "Recovery complete: production traffic is being served",
                )
            )

    effective = effective_regions(state.scenario, regions)
    task = changes.get("restore_task", state.restore_task)
    return replace(
        state,
        nodes=nodes,
        regions=regions,
        phase=phase,
        logs=state.logs.extend(events),
        cluster_status=compute_status(nodes, state.scenario, effective),
        available_actions=_legal_actions(
            state.scenario, phase, nodes, effective, task, state.settings
        ),
        **changes,
    )


def _warn(state: SimulationState, message: str, details: str | None = None) -> SimulationState:
    logger.warning(message)
    return replace(state, logs=state.logs.extend([warning(message, details)]))


def _resolve_mode(mode: DeploymentMode | str) -> DeploymentMode | None:
    if isinstance(mode, DeploymentMode):
        return mode
    try:
        return DeploymentMode(mode)
    except ValueError:
        return None


def _fresh_state(
    kind: ScenarioKind,
    mode: DeploymentMode,
    settings: EngineSettings,
    message: str,
    extra_events: Sequence[LogEvent] = (),
    restore_task: RestoreTask | None = None,
) -> SimulationState:
    scenario = get_scenario(kind)
    nodes = tuple(scenario.nodes)
    log = EventLog().extend(
        [LogEvent.create(EventType.INITIALIZATION, message, scenario.description), *extra_events]
    )
    phase = SimulationPhase.INITIAL
    return SimulationState(
        scenario=kind,
        mode=mode,
        phase=phase,
        nodes=nodes,
        regions=None,
        logs=log,
        available_actions=_legal_actions(kind, phase, nodes, scenario.regions, restore_task, settings),
        cluster_status=compute_status(nodes, kind, scenario.regions),
        restore_task=restore_task,
        settings=settings,
    )


def new_simulation(
    scenario: ScenarioKind | str | None = None,
    mode: DeploymentMode | str | None = None,
    settings: EngineSettings | None = None,
) -> SimulationState:
    """Start a simulation.

    Args:
        scenario: Scenario kind or id. Defaults to ``settings.default_scenario``;
            an unknown id falls back to it with a warning event.
        mode: Deployment mode or id. Defaults to ``settings.default_mode``.
        settings: Engine settings. Defaults to ``EngineSettings()``.

    Returns:
        A fresh SimulationState in the initial phase.
    """
    settings = settings or EngineSettings()
    extra: list[LogEvent] = []

    try:
        kind = resolve_kind(scenario if scenario is not None else settings.default_scenario)
    except UnknownScenarioError:
        logger.warning(f"Unknown scenario {scenario!r}; using {settings.default_scenario}")
        extra.append(warning(f"Unknown scenario '{scenario}'", f"Using {settings.default_scenario}"))
        kind = resolve_kind(settings.default_scenario)

    resolved_mode = _resolve_mode(mode if mode is not None else settings.default_mode)
    if resolved_mode is None:
        extra.append(warning(f"Unknown deployment mode '{mode}'", f"Using {settings.default_mode}"))
        resolved_mode = DeploymentMode(settings.default_mode)

    logger.info(f"New simulation: {kind.value} ({resolved_mode.value})")
    return _fresh_state(
        kind, resolved_mode, settings,
        f"Simulation initialized: {get_scenario(kind).name}", extra,
    )


def select_scenario(state: SimulationState, scenario_id: ScenarioKind | str) -> SimulationState:
    """Switch to another scenario, keeping the deployment mode."""
    try:
        kind = resolve_kind(scenario_id)
    except UnknownScenarioError:
        return _warn(state, f"Unknown scenario '{scenario_id}'", "The current scenario is unchanged")
    logger.info(f"Selected scenario {kind.value}")
    return _fresh_state(
        kind, state.mode, state.settings,
        f"Simulation initialized: {get_scenario(kind).name}",
    )


def reset(state: SimulationState) -> SimulationState:
    """Return to the initial phase of the selected scenario.

    Node changes, region overlay and recovery progress are discarded.
    An in-flight restore is cancelled; the fresh state keeps the cancelled
    task, which further ticks leave untouched. Scenario, deployment mode and
    settings stay.
    """
    cancelled = None
    extra: list[LogEvent] = []
    if state.is_restoring:
        cancelled = state.restore_task.cancel()
        logger.info(f"Reset cancelled restore at {cancelled.progress_percent}%")
        extra.append(
            LogEvent.create(
                EventType.STATUS_CHANGE,
                f"Restore cancelled at {cancelled.progress_percent}%",
            )
        )
    return _fresh_state(
        state.scenario, state.mode, state.settings,
        f"Simulation reset: {state.definition.name}", extra, cancelled,
    )


def set_deployment_mode(state: SimulationState, mode: DeploymentMode | str) -> SimulationState:
    """Switch deployment mode. The scenario restarts from its initial state."""
    resolved = _resolve_mode(mode)
    if resolved is None:
        return _warn(state, f"Unknown deployment mode '{mode}'")
    logger.info(f"Deployment mode set to {resolved.value}")
    return _fresh_state(
        state.scenario, resolved, state.settings,
        f"Deployment mode set to {resolved.value}: {state.definition.name}",
    )


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

def _phase_after_failure(
    phase: SimulationPhase,
    status: ClusterStatus,
    actions: Sequence[RecoveryActionId],
) -> SimulationPhase:
    if phase in (SimulationPhase.INITIAL, SimulationPhase.FAILURE_OCCURRED):
        if not status.serves_production or actions:
            return SimulationPhase.FAILURE_OCCURRED
        return SimulationPhase.INITIAL
    if phase == SimulationPhase.RECOVERED and not status.serves_production:
        return SimulationPhase.FAILURE_OCCURRED
    if phase == SimulationPhase.STEP_ONE_COMPLETE and not actions:
        # Step 2 is no longer on offer
        if status.serves_production:
            return SimulationPhase.RECOVERED
        return SimulationPhase.FAILURE_OCCURRED
    return phase


def _apply_failure_result(state: SimulationState, result: ToggleResult) -> SimulationState:
    if result.nodes == state.nodes and result.regions == state.regions:
        # Rejected toggle: only warnings to record
        return replace(state, logs=state.logs.extend(result.events))

    effective = effective_regions(state.scenario, result.regions)
    status = compute_status(result.nodes, state.scenario, effective)
    actions = _legal_actions(
        state.scenario, state.phase, result.nodes, effective, state.restore_task, state.settings
    )
    phase = _phase_after_failure(state.phase, status, actions)
    return _commit(state, result.events, result.nodes, result.regions, phase)


def toggle_node(state: SimulationState, node_id: str) -> SimulationState:
    """Flip one node between up and down."""
    result = toggle_node_in(
        state.nodes, node_id, state.scenario, state.mode, state.effective_regions
    )
    if result.regions == state.effective_regions and state.regions is None:
        result = replace(result, regions=None)
    return _apply_failure_result(state, result)


def fail_region(state: SimulationState, target: str) -> SimulationState:
    """Fail every node of a region.

    Args:
        state: Current state.
        target: A failure drill id of the scenario (e.g. "fail-dc") or a
            region id.
    """
    drill = next((d for d in state.definition.failure_drills if d.drill_id == target), None)
    region_id = drill.region_id if drill else target
    if find_region(state.effective_regions, region_id) is None:
        return _warn(state, f"Unknown region or failure drill '{target}'")
    result = apply_region_failure(
        state.nodes, region_id, state.scenario, state.mode, state.effective_regions
    )
    if result.regions == state.effective_regions and state.regions is None:
        result = replace(result, regions=None)
    return _apply_failure_result(state, result)


# ---------------------------------------------------------------------------
# Recovery
# ---------------------------------------------------------------------------

def _context(state: SimulationState) -> RecoveryContext:
    return RecoveryContext(
        kind=state.scenario,
        regions=state.effective_regions,
        mode=state.mode,
        new_node_count=state.settings.new_dr_nodes,
        restore_source=state.restore_task.source_region if state.is_restoring else None,
    )


def invoke_recovery_action(
    state: SimulationState,
    action_id: RecoveryActionId | str,
) -> SimulationState:
    """Apply a recovery action if it is currently legal.

    Args:
        state: Current state.
        action_id: A RecoveryActionId or its string value.

    Returns:
        The next state. Unknown or currently illegal actions yield the same
        state plus a warning event.
    """
    resolved = resolve_action_id(action_id)
    if resolved is None:
        return _warn(state, f"Unknown recovery action '{action_id}'")
    action = RECOVERY_ACTIONS[resolved]
    if resolved not in legal_recovery_actions(state):
        return _warn(
            state,
            f"{action.label} is not available right now",
            f"Available actions: {', '.join(a.value for a in state.available_actions) or 'none'}",
        )

    logger.info(f"Invoking recovery action {resolved.value}")
    result = action.execute(state.nodes, _context(state))
    if not result.applied:
        return _commit(state, result.events)

    regions = result.regions if result.regions is not None else state.regions
    effective = effective_regions(state.scenario, regions)
    status = compute_status(result.nodes, state.scenario, effective)
    serving = SimulationPhase.RECOVERED if status.serves_production else SimulationPhase.FAILURE_OCCURRED

    if resolved == RecoveryActionId.RESTORE_FROM_BACKUP:
        backup = available_backup(state.nodes, state.effective_regions)
        task = RestoreTask(
            total_ticks=state.settings.restore_ticks,
            source_region=backup.region_id if backup else None,
        )
        return _commit(
            state, result.events, result.nodes, regions, SimulationPhase.RESTORING,
            restore_task=task, progress_percent=0, recovery_action=resolved,
        )

    if resolved == RecoveryActionId.STEP_ONE_GRANT_VOTE:
        phase = SimulationPhase.RECOVERED if status.serves_production else SimulationPhase.STEP_ONE_COMPLETE
        return _commit(
            state, result.events, result.nodes, regions, phase,
            recovery_step=1, recovery_action=resolved,
        )

    step = 2 if resolved == RecoveryActionId.STEP_TWO_ADD_NODE else state.recovery_step
    return _commit(
        state, result.events, result.nodes, regions, serving,
        recovery_step=step, recovery_action=resolved,
    )


def tick_restore(state: SimulationState) -> SimulationState:
    """Advance the staged restore by one tick.

    Each tick adds ``100 / restore_ticks`` percent. The restored cluster
    is materialized exactly once, on the tick that reaches 100%, after
    which the phase returns to ``FAILURE_OCCURRED`` with the
    point-to-restored action on offer. Without a running restore the call
    is a silent no-op.
    """
    task = state.restore_task
    if task is None or not task.running:
        logger.debug("Restore tick ignored: no restore in progress")
        return state

    task = task.advance()
    progress = task.progress_percent
    events = [
        LogEvent.create(
            EventType.STATUS_CHANGE,
            f"Restore progress: {progress}%",
            f"Tick {task.completed_ticks} of {task.total_ticks}",
        )
    ]
    logger.debug(f"Restore tick {task.completed_ticks}/{task.total_ticks}")
    if not task.finished:
        return _commit(state, events, restore_task=task, progress_percent=progress)

    result = complete_restore(state.nodes, _context(state))
    events.extend(result.events)
    return _commit(
        state, events, result.nodes, result.regions, SimulationPhase.FAILURE_OCCURRED,
        restore_task=task, progress_percent=progress,
    )


def run_restore_to_completion(state: SimulationState) -> SimulationState:
    """Apply restore ticks until the running restore finishes."""
    while state.is_restoring:
        state = tick_restore(state)
    return state
