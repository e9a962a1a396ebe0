"""
Query sampling over the complete node network.
"""

import random
from typing import List, Optional, Sequence

from .errors import InsufficientPeers, InvalidConfiguration


class QuerySampler:
    """
    Picks the peers a node queries in a round.

    Sampling is without replacement and never includes the querying node.
    When fewer peers exist than requested, the sample degrades to every
    available peer unless `degrade` is off.
    """

    def __init__(self, sample_size: int, degrade: bool = True):
        if sample_size < 1:
            raise InvalidConfiguration(f"sample_size must be at least 1, got {sample_size}")
        self.sample_size = sample_size
        self.degrade = degrade

    def effective_size(self, available: int, sample_size: Optional[int] = None) -> int:
        """Sample size actually used when `available` peers exist."""
        requested = self.sample_size if sample_size is None else sample_size
        if requested > available and not self.degrade:
            raise InsufficientPeers(requested, available)
        return min(requested, available)

    def peers_of(self, querying_node: int, all_nodes: Sequence[int]) -> List[int]:
        return [node_id for node_id in all_nodes if node_id != querying_node]

    def sample(
        self,
        querying_node: int,
        all_nodes: Sequence[int],
        rng: random.Random,
        sample_size: Optional[int] = None,
    ) -> List[int]:
        """Ordered sample of peer ids for `querying_node`."""
        peers = self.peers_of(querying_node, all_nodes)
        size = self.effective_size(len(peers), sample_size)
        return rng.sample(peers, size)
