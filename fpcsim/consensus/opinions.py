"""
Opinion state: per-node opinion vectors, frozen global snapshots and the
initial opinion distributions.

Each OpinionVector is double-buffered. During round r every reader sees
`last_opinions` (frozen at the end of round r-1) while the owning node
writes into `opinions`. The engine swaps the buffers only after every node
finished the round.
"""

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

from .conflicts import ConflictGraph
from .errors import InvalidDistribution
from .types import DISLIKE, LIKE, OPINION_VALUES, PairStatus


# =============================================================================
# Opinion Vector
# =============================================================================

@dataclass
class OpinionVector:
    """
    One node's opinions, last-round snapshot, cooling-off counters and
    finalization rounds, keyed by transaction id.
    """
    opinions: Dict[int, int]
    last_opinions: Dict[int, int]
    counters: Dict[int, int]
    finalized_at: Dict[int, Optional[int]] = field(default_factory=dict)

    @classmethod
    def seeded(cls, initial: Mapping[int, int]) -> 'OpinionVector':
        """Fresh vector: counters at 0 and last opinion equal to the initial one."""
        for tx_id, value in initial.items():
            if value not in OPINION_VALUES:
                raise InvalidDistribution(f"Opinion for tx {tx_id} must be 0 or 1, got {value}")
        return cls(
            opinions=dict(initial),
            last_opinions=dict(initial),
            counters={tx_id: 0 for tx_id in initial},
            finalized_at={tx_id: None for tx_id in initial},
        )

    @property
    def tx_ids(self) -> List[int]:
        return list(self.opinions)

    def opinion(self, tx_id: int) -> int:
        return self.opinions[tx_id]

    def last(self, tx_id: int) -> int:
        return self.last_opinions[tx_id]

    def counter(self, tx_id: int) -> int:
        return self.counters[tx_id]

    def is_finalized(self, tx_id: int) -> bool:
        return self.finalized_at[tx_id] is not None

    def status(self, tx_id: int) -> PairStatus:
        return PairStatus.FINALIZED if self.is_finalized(tx_id) else PairStatus.ACTIVE

    def active_transactions(self) -> List[int]:
        return [tx_id for tx_id, at in self.finalized_at.items() if at is None]

    @property
    def all_finalized(self) -> bool:
        return all(at is not None for at in self.finalized_at.values())

    @property
    def finalization_round(self) -> Optional[int]:
        """Round at which the last pair finalized, or None while any is active."""
        if not self.all_finalized:
            return None
        return max(self.finalized_at.values(), default=0)

    def liked(self) -> List[int]:
        return [tx_id for tx_id, value in self.opinions.items() if value == LIKE]

    def commit(
        self,
        decisions: Mapping[int, Optional[int]],
        finalization_threshold: int,
        round_number: int,
    ) -> List[int]:
        """
        Apply one round of decisions to the write buffer.

        A decision of None means no peer answered: opinion and counter are
        left untouched. Finalized pairs are never written. Returns the
        transactions that finalized in this round.
        """
        newly_finalized = []
        for tx_id, new_opinion in decisions.items():
            if new_opinion is None or self.is_finalized(tx_id):
                continue

            if new_opinion == self.last_opinions[tx_id]:
                self.counters[tx_id] += 1
            else:
                self.opinions[tx_id] = new_opinion
                self.counters[tx_id] = 0

            if self.counters[tx_id] >= finalization_threshold:
                self.finalized_at[tx_id] = round_number
                newly_finalized.append(tx_id)
        return newly_finalized

    def finalize(self, tx_id: int, value: int, round_number: int):
        """Force a pair into the finalized state with the given opinion."""
        if self.is_finalized(tx_id):
            return
        if self.opinions[tx_id] != value:
            self.opinions[tx_id] = value
            self.counters[tx_id] = 0
        self.finalized_at[tx_id] = round_number

    def swap(self):
        """Publish the write buffer as the snapshot read next round."""
        self.last_opinions = dict(self.opinions)

    def copy(self) -> 'OpinionVector':
        return OpinionVector(
            opinions=dict(self.opinions),
            last_opinions=dict(self.last_opinions),
            counters=dict(self.counters),
            finalized_at=dict(self.finalized_at),
        )


# =============================================================================
# Global Snapshot
# =============================================================================

@dataclass(frozen=True)
class OpinionSnapshot:
    """
    Frozen view of every node's opinions at a round barrier.

    `participants` lists the nodes whose opinions count towards the global
    distribution (everyone except malicious nodes).
    """
    round_number: int
    opinions: Mapping[int, Mapping[int, int]]
    finalized: Mapping[int, FrozenSet[int]]
    participants: Tuple[int, ...]

    @classmethod
    def capture(
        cls,
        round_number: int,
        vectors: Mapping[int, OpinionVector],
        participants: Iterable[int],
    ) -> 'OpinionSnapshot':
        return cls(
            round_number=round_number,
            opinions={node_id: dict(v.last_opinions) for node_id, v in vectors.items()},
            finalized={
                node_id: frozenset(tx for tx, at in v.finalized_at.items() if at is not None)
                for node_id, v in vectors.items()
            },
            participants=tuple(sorted(participants)),
        )

    def opinion(self, node_id: int, tx_id: int) -> int:
        return self.opinions[node_id][tx_id]

    def is_finalized(self, node_id: int, tx_id: int) -> bool:
        return tx_id in self.finalized[node_id]

    def tally(self, tx_id: int) -> Tuple[int, int]:
        """(dislikes, likes) for a transaction across participants."""
        likes = sum(self.opinions[node_id][tx_id] for node_id in self.participants)
        return len(self.participants) - likes, likes

    def like_fraction(self, tx_id: int) -> float:
        dislikes, likes = self.tally(tx_id)
        total = dislikes + likes
        return likes / total if total else 0.0


# =============================================================================
# Initial Distributions
# =============================================================================

class Distribution(ABC):
    """Policy that seeds every node's initial opinions."""

    name = "distribution"

    @abstractmethod
    def assign(
        self,
        graph: ConflictGraph,
        node_ids: Sequence[int],
        rng: random.Random,
    ) -> Dict[int, Dict[int, int]]:
        """Return node_id -> {tx_id: opinion}."""
        pass


def _uniform_opinions(graph: ConflictGraph, rng: random.Random) -> Dict[int, int]:
    return {tx_id: rng.randint(DISLIKE, LIKE) for tx_id in graph.tx_ids}


@dataclass
class Uniform(Distribution):
    """Every opinion drawn independently and uniformly from {0, 1}."""

    name = "uniform"

    def assign(self, graph, node_ids, rng):
        return {node_id: _uniform_opinions(graph, rng) for node_id in sorted(node_ids)}


@dataclass
class Concentrated(Distribution):
    """
    Exactly k nodes start with `value` on every transaction; the rest are
    drawn uniformly. Without an explicit selection the k lowest ids are used.
    """
    k: int
    value: int = LIKE
    selection: Optional[Sequence[int]] = None

    name = "concentrated"

    def chosen(self, node_ids: Sequence[int]) -> List[int]:
        ordered = sorted(node_ids)
        if self.k < 0 or self.k > len(ordered):
            raise InvalidDistribution(
                f"Concentrated k={self.k} must be in 0..{len(ordered)} (node count)"
            )
        if self.value not in OPINION_VALUES:
            raise InvalidDistribution(f"Concentrated value must be 0 or 1, got {self.value}")
        if self.selection is None:
            return ordered[:self.k]

        selection = list(self.selection)
        if len(set(selection)) != len(selection) or len(selection) != self.k:
            raise InvalidDistribution(
                f"Selection must list exactly k={self.k} distinct nodes, got {selection}"
            )
        unknown = set(selection) - set(ordered)
        if unknown:
            raise InvalidDistribution(f"Selection names unknown nodes: {sorted(unknown)}")
        return selection

    def assign(self, graph, node_ids, rng):
        forced = set(self.chosen(node_ids))
        assignment = {}
        for node_id in sorted(node_ids):
            if node_id in forced:
                assignment[node_id] = {tx_id: self.value for tx_id in graph.tx_ids}
            else:
                assignment[node_id] = _uniform_opinions(graph, rng)
        return assignment


@dataclass
class Balanced(Distribution):
    """
    Likes shared round-robin over the first `liked` transactions, each node's
    liked set then completed to a maximal independent set in graph order.
    """
    liked: int

    name = "balanced"

    def assign(self, graph, node_ids, rng):
        tx_ids = graph.tx_ids
        if not 1 <= self.liked <= len(tx_ids):
            raise InvalidDistribution(
                f"Balanced liked={self.liked} must be in 1..{len(tx_ids)} (transaction count)"
            )

        assignment = {}
        for index, node_id in enumerate(sorted(node_ids)):
            favourite = tx_ids[index % self.liked]
            liked_set = {favourite}
            opinions = {}
            for tx_id in tx_ids:
                if tx_id == favourite:
                    opinions[tx_id] = LIKE
                elif not (graph.conflict_set(tx_id) & liked_set):
                    opinions[tx_id] = LIKE
                    liked_set.add(tx_id)
                else:
                    opinions[tx_id] = DISLIKE
            assignment[node_id] = opinions
        return assignment


DISTRIBUTIONS = {
    Uniform.name: Uniform,
    Concentrated.name: Concentrated,
    Balanced.name: Balanced,
}


def initialize_opinions(
    graph: ConflictGraph,
    distribution: Distribution,
    node_ids: Sequence[int],
    rng: random.Random,
) -> Dict[int, OpinionVector]:
    """Seed an OpinionVector for every node from a distribution policy."""
    if not node_ids:
        raise InvalidDistribution("Cannot initialize opinions for an empty node set")
    assignment = distribution.assign(graph, node_ids, rng)
    return {node_id: OpinionVector.seeded(assignment[node_id]) for node_id in sorted(node_ids)}
