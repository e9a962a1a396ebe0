"""
Simulation state: nodes and the round-barriered global view.
"""

import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..consensus.behavior import NodeBehavior, QueryView
from ..consensus.conflicts import ConflictGraph
from ..consensus.opinions import OpinionSnapshot, OpinionVector
from ..consensus.types import NodeKind, Outcome


@dataclass
class Node:
    """A participant: identity, behavior, opinions and its own RNG substream."""
    node_id: int
    behavior: NodeBehavior
    opinions: OpinionVector
    rng: random.Random = field(default_factory=random.Random, repr=False)

    @property
    def kind(self) -> NodeKind:
        return self.behavior.kind

    @property
    def is_honest(self) -> bool:
        return self.kind == NodeKind.HONEST

    @property
    def updates_opinions(self) -> bool:
        return self.behavior.updates_opinions

    @property
    def finalized(self) -> bool:
        return self.opinions.all_finalized

    def respond(self, tx_id: int, view: QueryView) -> Optional[int]:
        """Answer a peer's query for `tx_id`."""
        return self.behavior.respond(self.node_id, tx_id, view)


@dataclass
class SimulationState:
    """
    Everything a run owns.

    The round engine is the single writer. Readers (behaviors, the tracker,
    reporting code) should go through `snapshot`, which only changes at
    round barriers.
    """
    graph: ConflictGraph
    nodes: Dict[int, Node]
    round: int = 0
    outcome: Outcome = Outcome.RUNNING
    snapshot: Optional[OpinionSnapshot] = None

    def __post_init__(self):
        if self.snapshot is None:
            self.snapshot = self.capture()

    @property
    def node_ids(self) -> List[int]:
        return sorted(self.nodes)

    def nodes_of_kind(self, kind: NodeKind) -> List[Node]:
        return [self.nodes[node_id] for node_id in self.node_ids if self.nodes[node_id].kind == kind]

    def honest_nodes(self) -> List[Node]:
        return self.nodes_of_kind(NodeKind.HONEST)

    def updating_nodes(self) -> List[Node]:
        """Nodes that run the update rule (honest and faulty)."""
        return [self.nodes[node_id] for node_id in self.node_ids if self.nodes[node_id].updates_opinions]

    @property
    def finished(self) -> bool:
        return self.outcome.is_terminal

    def capture(self) -> OpinionSnapshot:
        """Freeze every node's published opinions."""
        return OpinionSnapshot.capture(
            round_number=self.round,
            vectors={node_id: node.opinions for node_id, node in self.nodes.items()},
            participants=[node.node_id for node in self.updating_nodes()],
        )

    def honest_agreement(self) -> bool:
        """True if every honest node holds the same opinion on every transaction."""
        honest = self.honest_nodes()
        if not honest:
            return True
        reference = honest[0].opinions.opinions
        return all(node.opinions.opinions == reference for node in honest[1:])

    def count_by_kind(self) -> Dict[str, int]:
        counts = {kind.value: 0 for kind in NodeKind}
        for node in self.nodes.values():
            counts[node.kind.value] += 1
        return counts
