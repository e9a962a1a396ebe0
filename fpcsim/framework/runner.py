"""
Simulation Runner

Builds a runnable engine from a SimulationConfig and runs it, once or as a
batch of seeded trials. This is the main integration point that ties
together:
- Node population and behaviors
- Conflict graph construction
- Initial opinion seeding
- RNG substream layout
- Round engine and finalization tracking
"""

import logging
import random
import statistics
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..consensus.behavior import (
    FaultyBehavior, HonestBehavior, MaliciousBehavior, NodeBehavior,
    create_strategy,
)
from ..consensus.conflicts import ConflictGraph, Topology
from ..consensus.errors import InvalidConfiguration
from ..consensus.opinions import Balanced, Concentrated, Distribution, Uniform, initialize_opinions
from ..consensus.types import NodeKind, Outcome
from .config.schema import ConflictSpec, DistributionSpec, SimulationConfig
from .engine import RoundEngine
from .state import Node, SimulationState
from .tracker import FinalizationTracker, RunResult


logger = logging.getLogger(__name__)


# =============================================================================
# Builders
# =============================================================================

def build_graph(spec: ConflictSpec) -> ConflictGraph:
    """Create the conflict graph described by a ConflictSpec."""
    if spec.topology == Topology.STAR.value:
        return ConflictGraph.star(spec.transaction_count, center=spec.center if spec.center is not None else 0)
    if spec.topology == Topology.COMPLETE.value:
        if spec.center is not None:
            raise InvalidConfiguration("conflicts.center only applies to the star topology")
        return ConflictGraph.complete(spec.transaction_count, spec.conflict_set_count)
    raise InvalidConfiguration(f"Invalid conflicts.topology: {spec.topology}")


def build_distribution(spec: DistributionSpec) -> Distribution:
    """Create the initial opinion policy described by a DistributionSpec."""
    if spec.kind == Uniform.name:
        return Uniform()
    if spec.kind == Concentrated.name:
        if spec.k is None:
            raise InvalidConfiguration("distribution.k is required for the concentrated distribution")
        return Concentrated(k=spec.k, value=spec.value, selection=spec.selection)
    if spec.kind == Balanced.name:
        if spec.liked is None:
            raise InvalidConfiguration("distribution.liked is required for the balanced distribution")
        return Balanced(liked=spec.liked)
    raise InvalidConfiguration(f"Invalid distribution.kind: {spec.kind}")


def assign_kinds(config: SimulationConfig) -> Dict[int, NodeKind]:
    """Node ids 0..N-1: honest first, then faulty, then malicious."""
    honest, faulty, malicious = config.network.counts()
    kinds = [NodeKind.HONEST] * honest + [NodeKind.FAULTY] * faulty + [NodeKind.MALICIOUS] * malicious
    return dict(enumerate(kinds))


def build_behaviors(config: SimulationConfig, kinds: Dict[int, NodeKind]) -> Dict[int, NodeBehavior]:
    network = config.network
    finalized_respond = config.protocol.finalized_respond

    honest = HonestBehavior(finalized_respond=finalized_respond)
    faulty = FaultyBehavior(network.silence_probability, finalized_respond=finalized_respond)
    malicious = None
    if NodeKind.MALICIOUS in kinds.values():
        malicious = MaliciousBehavior(create_strategy(network.adversary_strategy, **network.adversary_params))

    behaviors = {}
    for node_id, kind in kinds.items():
        if kind == NodeKind.HONEST:
            behaviors[node_id] = honest
        elif kind == NodeKind.FAULTY:
            behaviors[node_id] = faulty
        else:
            behaviors[node_id] = malicious
    return behaviors


def build_engine(config: SimulationConfig, seed: Optional[int] = None) -> RoundEngine:
    """
    Build the full simulation stack for one run.

    Args:
        config: The simulation description
        seed: Overrides config.seed when given

    Returns:
        A RoundEngine positioned at round 0
    """
    seed = config.seed if seed is None else seed
    rng = random.Random(seed)

    kinds = assign_kinds(config)
    graph = build_graph(config.conflicts)
    distribution = build_distribution(config.distribution)
    behaviors = build_behaviors(config, kinds)

    node_ids = sorted(kinds)
    opinions = initialize_opinions(graph, distribution, node_ids, rng)

    # One substream per node, derived in id order
    nodes = {}
    for node_id in node_ids:
        nodes[node_id] = Node(
            node_id=node_id,
            behavior=behaviors[node_id],
            opinions=opinions[node_id],
            rng=random.Random(rng.getrandbits(64)),
        )

    state = SimulationState(graph=graph, nodes=nodes)
    tracker = FinalizationTracker(record_history=config.record_history, seed=seed)

    logger.debug(
        "Built '%s' (seed=%d): %s, %r, %s distribution",
        config.name, seed, state.count_by_kind(), graph, distribution.name,
    )
    return RoundEngine(state, config.protocol, rng, tracker=tracker)


# =============================================================================
# Running
# =============================================================================

def run_simulation(config: SimulationConfig, seed: Optional[int] = None) -> RunResult:
    """Build and run a single simulation."""
    engine = build_engine(config, seed)
    return engine.run()


@dataclass
class TrialSummary:
    """Aggregate over a batch of seeded runs."""
    config_name: str
    trials: int
    base_seed: int
    outcome_counts: Dict[str, int]
    mean_rounds: float
    median_rounds: float
    max_rounds: int
    mean_finalization_round: Optional[float]
    results: List[RunResult] = field(default_factory=list, repr=False)

    def rate(self, outcome: Outcome) -> float:
        return self.outcome_counts.get(outcome.value, 0) / self.trials if self.trials else 0.0

    @property
    def outcome_rates(self) -> Dict[str, float]:
        return {name: count / self.trials for name, count in self.outcome_counts.items()}

    @property
    def convergence_rate(self) -> float:
        return self.rate(Outcome.CONVERGED)

    def to_dict(self) -> dict:
        return {
            "config": self.config_name,
            "trials": self.trials,
            "base_seed": self.base_seed,
            "outcome_counts": dict(self.outcome_counts),
            "outcome_rates": self.outcome_rates,
            "mean_rounds": self.mean_rounds,
            "median_rounds": self.median_rounds,
            "max_rounds": self.max_rounds,
            "mean_finalization_round": self.mean_finalization_round,
        }

    def __str__(self) -> str:
        rates = ", ".join(f"{name}={rate:.1%}" for name, rate in self.outcome_rates.items())
        mean_final = (
            f"{self.mean_finalization_round:.2f}"
            if self.mean_finalization_round is not None else "n/a"
        )
        return (
            f"Trials '{self.config_name}': {self.trials} runs from seed {self.base_seed}\n"
            f"  Outcomes: {rates}\n"
            f"  Rounds: mean={self.mean_rounds:.2f}, median={self.median_rounds:.1f}, max={self.max_rounds}\n"
            f"  Mean node finalization round: {mean_final}"
        )


def run_trials(
    config: SimulationConfig,
    trials: int,
    base_seed: Optional[int] = None,
    keep_results: bool = False,
) -> TrialSummary:
    """
    Run `trials` simulations with seeds base_seed, base_seed + 1, ...

    Args:
        config: The simulation description
        trials: Number of runs
        base_seed: First seed (defaults to config.seed)
        keep_results: Attach every RunResult to the summary

    Returns:
        TrialSummary with outcome rates and round statistics
    """
    if trials < 1:
        raise InvalidConfiguration(f"trials must be at least 1, got {trials}")
    base_seed = config.seed if base_seed is None else base_seed

    counts = {outcome.value: 0 for outcome in Outcome if outcome.is_terminal}
    rounds: List[int] = []
    finalization_rounds: List[float] = []
    results: List[RunResult] = []

    for i in range(trials):
        result = run_simulation(config, seed=base_seed + i)
        counts[result.outcome.value] += 1
        rounds.append(result.rounds)
        if result.mean_finalization_round is not None:
            finalization_rounds.append(result.mean_finalization_round)
        if keep_results:
            results.append(result)

    summary = TrialSummary(
        config_name=config.name,
        trials=trials,
        base_seed=base_seed,
        outcome_counts=counts,
        mean_rounds=statistics.mean(rounds),
        median_rounds=statistics.median(rounds),
        max_rounds=max(rounds),
        mean_finalization_round=statistics.mean(finalization_rounds) if finalization_rounds else None,
        results=results,
    )
    logger.info(
        "%s: %d trials, convergence rate %.3f",
        config.name, trials, summary.convergence_rate,
    )
    return summary
