"""
Liked-set resolution for FPC on a set.

After the threshold rule each node holds an auxiliary opinion per
transaction. Two passes turn the liked transactions into a maximal
independent set of the conflict graph:

- eliminate: walk liked transactions in descending key order and drop every
  one that still conflicts with something liked.
- complete: walk unliked transactions in ascending key order and like every
  one that conflicts with nothing liked.

The order comes from hashing each transaction with the round's common
nonce, so all honest nodes apply the same order within a round. Transactions
listed in `fixed` (already finalized) are never flipped.
"""

import hashlib
from typing import Collection, Dict, List, Mapping

from .conflicts import ConflictGraph
from .types import DISLIKE, LIKE


def order_key(tx_id: int, nonce: int) -> int:
    """Deterministic pseudo-random rank of a transaction for a round."""
    data = f"{tx_id}:{nonce}".encode()
    return int.from_bytes(hashlib.blake2b(data, digest_size=8).digest(), "big")


def _ordered(tx_ids, nonce: int, descending: bool) -> List[int]:
    return sorted(tx_ids, key=lambda tx_id: (order_key(tx_id, nonce), tx_id), reverse=descending)


def eliminate(
    opinions: Mapping[int, int],
    graph: ConflictGraph,
    nonce: int,
    fixed: Collection[int] = (),
) -> Dict[int, int]:
    """Unlike transactions until the liked set is independent."""
    result = dict(opinions)
    fixed = set(fixed)
    liked = {tx_id for tx_id, value in result.items() if value == LIKE}
    candidates = [tx_id for tx_id in liked if tx_id not in fixed]

    for tx_id in _ordered(candidates, nonce, descending=True):
        rivals = graph.conflict_set(tx_id) - {tx_id}
        if rivals & liked:
            result[tx_id] = DISLIKE
            liked.discard(tx_id)
    return result


def complete(
    opinions: Mapping[int, int],
    graph: ConflictGraph,
    nonce: int,
    fixed: Collection[int] = (),
) -> Dict[int, int]:
    """Like transactions until the independent liked set is maximal."""
    result = dict(opinions)
    fixed = set(fixed)
    liked = {tx_id for tx_id, value in result.items() if value == LIKE}
    unliked = [tx_id for tx_id, value in result.items() if value != LIKE and tx_id not in fixed]

    for tx_id in _ordered(unliked, nonce, descending=False):
        rivals = graph.conflict_set(tx_id) - {tx_id}
        if not rivals & liked:
            result[tx_id] = LIKE
            liked.add(tx_id)
    return result


def resolve_liked_set(
    opinions: Mapping[int, int],
    graph: ConflictGraph,
    nonce: int,
    fixed: Collection[int] = (),
) -> Dict[int, int]:
    """Eliminate then complete: the liked set becomes a maximal independent set."""
    return complete(eliminate(opinions, graph, nonce, fixed), graph, nonce, fixed)
