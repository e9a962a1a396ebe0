"""
FPCS round engine.

Each call to `run_round` performs one synchronous global step:

1. Draw (or reuse) the round's common threshold.
2. Every honest or faulty node with active pairs samples peers, tallies
   their answers from the frozen snapshot and applies the threshold rule.
3. Barrier: buffers are swapped, the round counter moves on and a new
   snapshot is captured.
4. Termination is checked over the honest nodes.

Node updates within a round read only the snapshot, write only their own
slot and draw only from their own RNG substream, so they can run on a
thread pool without locks and still reproduce the sequential result.
"""

import logging
import random
import threading
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional

from ..consensus.behavior import QueryView
from ..consensus.errors import InvalidConfiguration
from ..consensus.opinions import OpinionSnapshot
from ..consensus.resolution import resolve_liked_set
from ..consensus.sampling import QuerySampler
from ..consensus.threshold import ThresholdDraw, ThresholdSource, threshold_rule
from ..consensus.types import DISLIKE, LIKE, Outcome
from .config.schema import ProtocolSpec
from .state import Node, SimulationState
from .tracker import FinalizationTracker, RunResult


logger = logging.getLogger(__name__)

StopCondition = Callable[[SimulationState], bool]


class RoundEngine:
    """Drives a SimulationState round by round until it terminates."""

    def __init__(
        self,
        state: SimulationState,
        protocol: ProtocolSpec,
        rng: random.Random,
        tracker: Optional[FinalizationTracker] = None,
    ):
        if not state.nodes:
            raise InvalidConfiguration("Cannot run FPCS on an empty node set")
        if not state.honest_nodes():
            raise InvalidConfiguration("At least one honest node is required")
        if protocol.finalization_threshold < 1:
            raise InvalidConfiguration(
                f"finalization_threshold (L) must be at least 1, got {protocol.finalization_threshold}"
            )
        if protocol.max_rounds < 1:
            raise InvalidConfiguration(f"max_rounds must be at least 1, got {protocol.max_rounds}")
        if protocol.workers < 1:
            raise InvalidConfiguration(f"workers must be at least 1, got {protocol.workers}")
        if protocol.wall_clock_budget is not None and protocol.wall_clock_budget <= 0:
            raise InvalidConfiguration(
                f"wall_clock_budget must be positive, got {protocol.wall_clock_budget}"
            )

        self.state = state
        self.protocol = protocol
        self.rng = rng
        self.sampler = QuerySampler(protocol.sample_size, degrade=protocol.degrade_sample)
        # Fails fast with InsufficientPeers when degradation is disabled
        self.sampler.effective_size(len(state.nodes) - 1)
        self.thresholds = ThresholdSource(protocol.threshold_low, protocol.threshold_high)
        self.tracker = tracker or FinalizationTracker()

        self._node_ids: List[int] = state.node_ids
        self._stop = threading.Event()

        self.tracker.observe(state)

    # -------------------------------------------------------------------------
    # Control
    # -------------------------------------------------------------------------

    def request_stop(self):
        """Ask the engine to stop at the next round boundary."""
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def run(self, stop: Optional[StopCondition] = None) -> RunResult:
        """
        Run rounds until the outcome is terminal.

        `stop`, `request_stop()` and the wall-clock budget are only consulted
        at round boundaries; any of them ends the run as TIMED_OUT.
        """
        started = time.monotonic()
        executor = None
        if self.protocol.workers > 1:
            executor = ThreadPoolExecutor(
                max_workers=self.protocol.workers,
                thread_name_prefix="fpcs-round",
            )

        try:
            while not self.state.finished:
                reason = self._stop_reason(stop, started)
                if reason:
                    logger.info("Stopping at round %d: %s", self.state.round, reason)
                    self.state.outcome = Outcome.TIMED_OUT
                    self.tracker.observe(self.state)
                    break
                self.run_round(executor)
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        logger.info("Run finished at round %d: %s", self.state.round, self.state.outcome.value)
        return self.tracker.result()

    def _stop_reason(self, stop: Optional[StopCondition], started: float) -> Optional[str]:
        if self._stop.is_set():
            return "stop requested"
        if stop is not None and stop(self.state):
            return "stop condition met"
        budget = self.protocol.wall_clock_budget
        if budget is not None and time.monotonic() - started >= budget:
            return f"wall-clock budget of {budget}s exhausted"
        return None

    # -------------------------------------------------------------------------
    # Rounds
    # -------------------------------------------------------------------------

    def run_round(self, executor: Optional[Executor] = None) -> Outcome:
        """Execute one global round and return the resulting outcome."""
        state = self.state
        if state.finished:
            return state.outcome

        draw = self.thresholds.draw(state.round, self.rng)
        snapshot = state.snapshot
        next_round = state.round + 1
        pending = [node for node in state.updating_nodes() if not node.finalized]

        if executor is not None and len(pending) > 1:
            list(executor.map(
                lambda node: self._update_node(node, snapshot, draw, next_round),
                pending,
            ))
        else:
            for node in pending:
                self._update_node(node, snapshot, draw, next_round)

        # Barrier: publish every write buffer at once
        for node in state.nodes.values():
            node.opinions.swap()
        state.round = next_round
        state.snapshot = state.capture()
        state.outcome = self._check_termination()

        logger.debug(
            "Round %d: threshold=%.3f, %d/%d updating nodes finalized",
            next_round, draw.value,
            sum(1 for node in state.updating_nodes() if node.finalized),
            len(state.updating_nodes()),
        )

        self.tracker.observe(state, draw)
        return state.outcome

    def _update_node(
        self,
        node: Node,
        snapshot: OpinionSnapshot,
        draw: ThresholdDraw,
        round_number: int,
    ) -> List[int]:
        """Query peers and commit one node's decisions. Returns newly finalized txs."""
        active = node.opinions.active_transactions()
        peers = self.sampler.sample(node.node_id, self._node_ids, node.rng)
        view = QueryView(
            querier=node.node_id,
            round_number=snapshot.round_number,
            snapshot=snapshot,
            rng=node.rng,
        )

        decisions: Dict[int, Optional[int]] = {}
        for tx_id in active:
            likes = 0
            responses = 0
            for peer_id in peers:
                answer = self.state.nodes[peer_id].respond(tx_id, view)
                if answer is None:
                    continue
                responses += 1
                likes += answer

            if responses == 0:
                decisions[tx_id] = None
            else:
                decisions[tx_id] = threshold_rule(
                    likes / responses, draw.value, node.opinions.last(tx_id)
                )

        if self.protocol.resolve_conflicts:
            decisions = self._resolve(node, decisions, draw)

        finalized = node.opinions.commit(
            decisions, self.protocol.finalization_threshold, round_number
        )

        if self.protocol.resolve_conflicts:
            graph = self.state.graph
            for tx_id in finalized:
                if node.opinions.opinion(tx_id) == LIKE:
                    for rival in graph.conflict_set(tx_id) - {tx_id}:
                        node.opinions.finalize(rival, DISLIKE, round_number)
        return finalized

    def _resolve(
        self,
        node: Node,
        decisions: Dict[int, Optional[int]],
        draw: ThresholdDraw,
    ) -> Dict[int, Optional[int]]:
        """Turn the node's auxiliary opinions into a maximal independent liked set."""
        aux = {}
        for tx_id in self.state.graph.tx_ids:
            decision = decisions.get(tx_id)
            aux[tx_id] = node.opinions.last(tx_id) if decision is None else decision

        fixed = [tx_id for tx_id in aux if node.opinions.is_finalized(tx_id)]
        resolved = resolve_liked_set(aux, self.state.graph, draw.nonce, fixed=fixed)
        return {tx_id: resolved[tx_id] for tx_id in decisions}

    def _check_termination(self) -> Outcome:
        state = self.state
        if all(node.finalized for node in state.honest_nodes()):
            return Outcome.CONVERGED if state.honest_agreement() else Outcome.DISAGREED
        if state.round >= self.protocol.max_rounds:
            return Outcome.TIMED_OUT
        return Outcome.RUNNING
