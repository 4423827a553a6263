"""
Randomized failure drills for DR scenarios.

A drill starts a fresh simulation and applies a sequence of random
operator moves: toggle a node, fail a whole region, or take one of the
currently offered recovery actions (a running restore is ticked to
completion). After every move the engine's invariants are checked and
whether production traffic is being served is sampled.

Running many drills gives a rough picture of how forgiving each topology
is: how often writes remain available while things break, and how often
the operator reaches a recovered state.
"""

import logging
import math
from dataclasses import dataclass, field

import numpy as np
from scipy import stats as scipy_stats

from .config import EngineSettings
from .simulation.catalog import DeploymentMode, ScenarioKind
from .simulation.engine import (
    SimulationPhase,
    SimulationState,
    fail_region,
    invoke_recovery_action,
    legal_recovery_actions,
    new_simulation,
    tick_restore,
    toggle_node,
)
from .simulation.status import compute_status, replica_set_scopes

logger = logging.getLogger("drsim.drills")

# Probability of taking an offered recovery action / failing a region.
RECOVERY_PROBABILITY = 0.4
REGION_FAILURE_PROBABILITY = 0.15


def check_invariants(state: SimulationState) -> list[str]:
    """Return a description of every engine invariant ``state`` breaks.

    Checked:
      - node ids are unique,
      - each majority scope holds at most one primary,
      - the offered actions equal a fresh recomputation,
      - the stored status equals a fresh computation,
      - restore progress stays within 0-100%.
    """
    violations = []
    ids = [n.node_id for n in state.nodes]
    if len(ids) != len(set(ids)):
        violations.append(f"duplicate node ids: {sorted(ids)}")

    for scope in replica_set_scopes(state.nodes, state.scenario, state.effective_regions):
        primaries = [n.node_id for n in scope.nodes if n.is_primary]
        if len(primaries) > 1:
            violations.append(f"{scope.name} has {len(primaries)} primaries: {primaries}")

    expected_actions = legal_recovery_actions(state)
    if expected_actions != state.available_actions:
        violations.append(
            f"stale actions: stored {[a.value for a in state.available_actions]}, "
            f"expected {[a.value for a in expected_actions]}"
        )

    if state.cluster_status != compute_status(state.nodes, state.scenario, state.effective_regions):
        violations.append("stored cluster status does not match the node list")

    if not 0 <= state.progress_percent <= 100:
        violations.append(f"progress out of range: {state.progress_percent}")
    return violations


@dataclass
class DrillResult:
    """Outcome of a single drill.

    Attributes:
        scenario: Scenario the drill ran against.
        final_state: State after the last move.
        write_availability: Per-move samples of whether production was served.
        violations: Invariant violations seen, prefixed with the move index.
        actions: Moves taken, e.g. "toggle node-1" or "recover grant-voting-rights".
        reached_recovered: Whether the recovered phase was reached at least once.
    """

    scenario: ScenarioKind
    final_state: SimulationState
    write_availability: list[bool] = field(default_factory=list)
    violations: list[str] = field(default_factory=list)
    actions: list[str] = field(default_factory=list)
    reached_recovered: bool = False

    @property
    def availability(self) -> float:
        """Fraction of moves after which production was served."""
        if not self.write_availability:
            return 0.0
        return float(np.mean(self.write_availability))


def _random_move(
    state: SimulationState,
    rng: np.random.Generator,
) -> tuple[SimulationState, str]:
    if state.is_restoring:
        return tick_restore(state), "tick restore"

    roll = rng.random()
    if state.available_actions and roll < RECOVERY_PROBABILITY:
        action = state.available_actions[int(rng.integers(len(state.available_actions)))]
        return invoke_recovery_action(state, action), f"recover {action.value}"

    drills = state.definition.failure_drills
    if drills and roll < RECOVERY_PROBABILITY + REGION_FAILURE_PROBABILITY:
        drill = drills[int(rng.integers(len(drills)))]
        return fail_region(state, drill.drill_id), f"fail {drill.drill_id}"

    node = state.nodes[int(rng.integers(len(state.nodes)))]
    return toggle_node(state, node.node_id), f"toggle {node.node_id}"


def run_drill(
    scenario: ScenarioKind | str,
    steps: int = 20,
    rng: np.random.Generator | None = None,
    mode: DeploymentMode | str | None = None,
    settings: EngineSettings | None = None,
) -> DrillResult:
    """Run one randomized drill.

    Args:
        scenario: Scenario kind or id.
        steps: Number of operator moves.
        rng: Random generator. A fresh unseeded one is used if omitted.
        mode: Deployment mode.
        settings: Engine settings.

    Returns:
        DrillResult for the drill.
    """
    if steps < 0:
        raise ValueError(f"steps must be >= 0, got {steps}")
    rng = rng if rng is not None else np.random.default_rng()

    state = new_simulation(scenario, mode, settings)
    result = DrillResult(scenario=state.scenario, final_state=state)
    for step in range(steps):
        state, label = _random_move(state, rng)
        result.actions.append(label)
        result.write_availability.append(state.cluster_status.serves_production)
        result.violations.extend(f"step {step}: {v}" for v in check_invariants(state))
        if state.phase == SimulationPhase.RECOVERED:
            result.reached_recovered = True

    result.final_state = state
    if result.violations:
        logger.warning(f"Drill on {state.scenario.value} broke {len(result.violations)} invariant(s)")
    return result


@dataclass
class DrillResults:
    """Aggregated results over many drills of one scenario."""

    scenario: ScenarioKind
    drill_results: list[DrillResult] = field(default_factory=list)

    @property
    def availability_samples(self) -> list[float]:
        return [r.availability for r in self.drill_results]

    def write_availability_mean(self) -> float:
        samples = self.availability_samples
        if not samples:
            return 0.0
        return float(np.mean(samples))

    def write_availability_std(self) -> float:
        samples = self.availability_samples
        if len(samples) < 2:
            return 0.0
        return float(np.std(samples, ddof=1))

    def ci_write_availability(
        self, confidence_level: float = 0.95
    ) -> tuple[float, float] | None:
        """Confidence interval for mean write availability.

        Uses the t-distribution.

        Args:
            confidence_level: Desired confidence level (e.g., 0.95 for 95% CI).

        Returns:
            Tuple of (lower_bound, upper_bound), or None with fewer than 2 drills.
        """
        samples = self.availability_samples
        n = len(samples)
        if n < 2:
            return None
        sample_mean = float(np.mean(samples))
        sample_std = float(np.std(samples, ddof=1))
        alpha = 1.0 - confidence_level
        t_crit = scipy_stats.t.ppf(1 - alpha / 2, df=n - 1)
        margin = t_crit * sample_std / math.sqrt(n)
        return (sample_mean - margin, sample_mean + margin)

    def recovered_fraction(self) -> float:
        if not self.drill_results:
            return 0.0
        return sum(r.reached_recovered for r in self.drill_results) / len(self.drill_results)

    def violation_count(self) -> int:
        return sum(len(r.violations) for r in self.drill_results)

    def summary(self) -> str:
        """Generate a text summary of results."""
        lines = [
            f"Drill Results: {self.scenario.value} ({len(self.drill_results)} drills)",
            f"  Write availability: {self.write_availability_mean()*100:.2f}% "
            f"(std: {self.write_availability_std()*100:.2f}%)",
        ]
        ci = self.ci_write_availability()
        if ci is not None:
            lines.append(f"  95% CI: [{ci[0]*100:.2f}%, {ci[1]*100:.2f}%]")
        lines.append(f"  Reached recovered: {self.recovered_fraction()*100:.1f}%")
        lines.append(f"  Invariant violations: {self.violation_count()}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"DrillResults({self.scenario.value}, n={len(self.drill_results)}, "
            f"availability={self.write_availability_mean()*100:.2f}%)"
        )


def run_drills(
    scenario: ScenarioKind | str,
    num_drills: int = 100,
    steps: int = 20,
    seed: int | None = None,
    mode: DeploymentMode | str | None = None,
    settings: EngineSettings | None = None,
) -> DrillResults:
    """Run many randomized drills and aggregate them.

    Args:
        scenario: Scenario kind or id.
        num_drills: Number of drills.
        steps: Moves per drill.
        seed: Base seed; drill ``i`` uses ``seed + i``.
        mode: Deployment mode.
        settings: Engine settings.

    Returns:
        DrillResults with aggregated statistics.
    """
    if num_drills < 1:
        raise ValueError(f"num_drills must be >= 1, got {num_drills}")

    results: DrillResults | None = None
    for i in range(num_drills):
        drill_seed = (seed + i) if seed is not None else None
        drill = run_drill(scenario, steps, np.random.default_rng(drill_seed), mode, settings)
        if results is None:
            results = DrillResults(scenario=drill.scenario)
        results.drill_results.append(drill)

    logger.info(f"{results!r}")
    return results
