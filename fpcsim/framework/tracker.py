"""
Finalization tracking and run results.

The tracker observes the simulation state after setup and after every
round. It never mutates the state; everything it reports is derived from
the opinion vectors and the outcome the engine wrote.
"""

import logging
import statistics
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from ..consensus.threshold import ThresholdDraw
from ..consensus.types import LIKE, NodeKind, Outcome
from .state import SimulationState


logger = logging.getLogger(__name__)


@dataclass
class RoundRecord:
    """Opinions of every updating node at the end of a round."""
    round_number: int
    threshold: Optional[float]
    opinions: Dict[int, Dict[int, int]]
    finalized_pairs: int

    def to_dict(self) -> dict:
        return {
            "round": self.round_number,
            "threshold": self.threshold,
            "opinions": {str(n): {str(t): v for t, v in ops.items()} for n, ops in self.opinions.items()},
            "finalized_pairs": self.finalized_pairs,
        }


@dataclass
class RunResult:
    """Read-only summary of a finished (or interrupted) run."""
    outcome: Outcome
    rounds: int
    node_kinds: Dict[int, NodeKind]
    node_finalization_rounds: Dict[int, Optional[int]]
    pair_finalization_rounds: Dict[int, Dict[int, Optional[int]]]
    transaction_finalization_rounds: Dict[int, Optional[int]]
    final_opinions: Dict[int, Optional[Dict[int, int]]]
    agreement_rates: Dict[int, float]
    history: List[RoundRecord] = field(default_factory=list)
    seed: Optional[int] = None

    @property
    def converged(self) -> bool:
        return self.outcome == Outcome.CONVERGED

    def honest_finalization_rounds(self) -> List[int]:
        return [
            r for node_id, r in self.node_finalization_rounds.items()
            if r is not None and self.node_kinds[node_id] == NodeKind.HONEST
        ]

    @property
    def mean_finalization_round(self) -> Optional[float]:
        rounds = self.honest_finalization_rounds()
        return statistics.mean(rounds) if rounds else None

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "rounds": self.rounds,
            "seed": self.seed,
            "node_kinds": {str(n): k.value for n, k in self.node_kinds.items()},
            "node_finalization_rounds": {str(n): r for n, r in self.node_finalization_rounds.items()},
            "transaction_finalization_rounds": {
                str(t): r for t, r in self.transaction_finalization_rounds.items()
            },
            "final_opinions": {
                str(s): ({str(t): v for t, v in ops.items()} if ops is not None else None)
                for s, ops in self.final_opinions.items()
            },
            "agreement_rates": {str(t): r for t, r in self.agreement_rates.items()},
            "mean_finalization_round": self.mean_finalization_round,
            "history": [record.to_dict() for record in self.history],
        }

    def __str__(self) -> str:
        finalized = len(self.honest_finalization_rounds())
        honest = sum(1 for kind in self.node_kinds.values() if kind == NodeKind.HONEST)
        mean = self.mean_finalization_round
        mean_str = f"{mean:.2f}" if mean is not None else "n/a"
        return (
            f"Run: {self.outcome.value.upper()} after {self.rounds} rounds\n"
            f"  Honest nodes finalized: {finalized}/{honest}\n"
            f"  Mean finalization round: {mean_str}\n"
            f"  Final opinions: {self.final_opinions}"
        )


class FinalizationTracker:
    """Aggregates per-node finalization into run-level statistics."""

    def __init__(self, record_history: bool = False, seed: Optional[int] = None):
        self.record_history = record_history
        self.seed = seed
        self.history: List[RoundRecord] = []
        self._state: Optional[SimulationState] = None
        self._announced: Set[int] = set()

    def observe(self, state: SimulationState, draw: Optional[ThresholdDraw] = None):
        """Record the state at a round boundary."""
        self._state = state

        for tx_id, at in self._transaction_rounds(state).items():
            if at is not None and tx_id not in self._announced:
                self._announced.add(tx_id)
                logger.info(
                    "tx%d finalized in all honest nodes at round %d (agreement %.2f)",
                    tx_id, at, self._agreement_rate(state, tx_id),
                )

        if not self.record_history:
            return
        if self.history and self.history[-1].round_number == state.round:
            return
        self.history.append(RoundRecord(
            round_number=state.round,
            threshold=draw.value if draw is not None else None,
            opinions={node.node_id: dict(node.opinions.opinions) for node in state.updating_nodes()},
            finalized_pairs=sum(
                len(node.opinions.tx_ids) - len(node.opinions.active_transactions())
                for node in state.updating_nodes()
            ),
        ))

    # -------------------------------------------------------------------------
    # Derived statistics
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SimulationState:
        if self._state is None:
            raise RuntimeError("Tracker has not observed any state yet")
        return self._state

    @property
    def outcome(self) -> Outcome:
        return self.state.outcome

    def node_finalization_rounds(self) -> Dict[int, Optional[int]]:
        """Round each node finalized all its transactions (None if it never did)."""
        rounds = {}
        for node_id in self.state.node_ids:
            node = self.state.nodes[node_id]
            rounds[node_id] = node.opinions.finalization_round if node.updates_opinions else None
        return rounds

    def pair_finalization_rounds(self) -> Dict[int, Dict[int, Optional[int]]]:
        return {
            node.node_id: dict(node.opinions.finalized_at)
            for node in self.state.updating_nodes()
        }

    def transaction_finalization_rounds(self) -> Dict[int, Optional[int]]:
        return self._transaction_rounds(self.state)

    def final_opinions(self) -> Dict[int, Optional[Dict[int, int]]]:
        """
        Opinion on each conflict set shared by all honest nodes, or None
        where they disagree.
        """
        state = self.state
        honest = state.honest_nodes()
        results = {}
        for set_id in state.graph.conflict_set_ids:
            members = state.graph.members(set_id)
            views = [{tx_id: node.opinions.opinion(tx_id) for tx_id in members} for node in honest]
            if views and all(view == views[0] for view in views[1:]):
                results[set_id] = views[0]
            else:
                results[set_id] = None
        return results

    def agreement_rates(self) -> Dict[int, float]:
        return {tx_id: self._agreement_rate(self.state, tx_id) for tx_id in self.state.graph.tx_ids}

    def result(self) -> RunResult:
        state = self.state
        return RunResult(
            outcome=state.outcome,
            rounds=state.round,
            node_kinds={node_id: state.nodes[node_id].kind for node_id in state.node_ids},
            node_finalization_rounds=self.node_finalization_rounds(),
            pair_finalization_rounds=self.pair_finalization_rounds(),
            transaction_finalization_rounds=self.transaction_finalization_rounds(),
            final_opinions=self.final_opinions(),
            agreement_rates=self.agreement_rates(),
            history=list(self.history),
            seed=self.seed,
        )

    @staticmethod
    def _transaction_rounds(state: SimulationState) -> Dict[int, Optional[int]]:
        honest = state.honest_nodes()
        rounds = {}
        for tx_id in state.graph.tx_ids:
            finalized_at = [node.opinions.finalized_at[tx_id] for node in honest]
            if finalized_at and all(at is not None for at in finalized_at):
                rounds[tx_id] = max(finalized_at)
            else:
                rounds[tx_id] = None
        return rounds

    @staticmethod
    def _agreement_rate(state: SimulationState, tx_id: int) -> float:
        honest = state.honest_nodes()
        if not honest:
            return 1.0
        likes = sum(1 for node in honest if node.opinions.opinion(tx_id) == LIKE)
        return max(likes, len(honest) - likes) / len(honest)
