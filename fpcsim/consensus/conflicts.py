"""
Conflict graph: which transactions mutually exclude one another.

Two topologies are supported:
- COMPLETE: transactions are split into conflict sets, each one a clique.
- STAR: a single conflict set where one designated center conflicts with
  every other transaction and the leaves do not conflict with each other.

All relations are precomputed at construction and stored as frozensets, so a
graph can be shared freely between concurrent readers.
"""

from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from .errors import InvalidTopology
from .types import Transaction


class Topology(Enum):
    """Shape of the conflict relation."""
    COMPLETE = "complete"
    STAR = "star"


def split_evenly(total: int, parts: int) -> List[int]:
    """Split `total` into `parts` contiguous sizes differing by at most one."""
    base, remainder = divmod(total, parts)
    return [base + 1 if i < remainder else base for i in range(parts)]


class ConflictGraph:
    """Immutable set of transactions and their conflict relation."""

    def __init__(
        self,
        transactions: Sequence[Transaction],
        topology: Topology = Topology.COMPLETE,
        center: Optional[int] = None,
    ):
        if not transactions:
            raise InvalidTopology("A conflict graph needs at least one transaction")

        ids = [tx.tx_id for tx in transactions]
        if len(set(ids)) != len(ids):
            raise InvalidTopology(f"Duplicate transaction ids: {sorted(ids)}")

        self.topology = topology
        self._transactions: Tuple[Transaction, ...] = tuple(transactions)
        self._by_id: Dict[int, Transaction] = {tx.tx_id: tx for tx in transactions}

        if topology == Topology.STAR:
            if len(transactions) < 2:
                raise InvalidTopology(
                    f"Star topology requires at least 2 transactions, got {len(transactions)}"
                )
            if center is None:
                center = ids[0]
            if center not in self._by_id:
                raise InvalidTopology(f"Star center {center} is not a known transaction")
            markers = {tx.conflict_set for tx in transactions}
            if len(markers) != 1:
                raise InvalidTopology(
                    f"Star topology holds a single conflict set, got markers {sorted(markers)}"
                )
        elif center is not None:
            raise InvalidTopology("Only the star topology has a center")

        self.center = center

        # Group members by conflict-set marker, keeping graph order
        members: Dict[int, List[int]] = {}
        for tx in self._transactions:
            members.setdefault(tx.conflict_set, []).append(tx.tx_id)
        self._members: Dict[int, Tuple[int, ...]] = {
            set_id: tuple(tx_ids) for set_id, tx_ids in members.items()
        }

        self._conflicts: Dict[int, FrozenSet[int]] = {}
        for tx in self._transactions:
            if topology == Topology.STAR:
                if tx.tx_id == center:
                    related = frozenset(ids)
                else:
                    related = frozenset((tx.tx_id, center))
            else:
                related = frozenset(self._members[tx.conflict_set])
            self._conflicts[tx.tx_id] = related

    # -------------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------------

    @classmethod
    def complete(cls, transaction_count: int, conflict_set_count: int = 1) -> 'ConflictGraph':
        """
        Build a complete topology.

        Transactions 0..transaction_count-1 are split into contiguous,
        near-equal conflict sets; every set is a clique.
        """
        if transaction_count < 1:
            raise InvalidTopology(f"transaction_count must be positive, got {transaction_count}")
        if not 1 <= conflict_set_count <= transaction_count:
            raise InvalidTopology(
                f"conflict_set_count must be in 1..{transaction_count}, got {conflict_set_count}"
            )

        transactions = []
        tx_id = 0
        for set_id, size in enumerate(split_evenly(transaction_count, conflict_set_count)):
            for _ in range(size):
                transactions.append(Transaction(tx_id=tx_id, conflict_set=set_id))
                tx_id += 1
        return cls(transactions, Topology.COMPLETE)

    @classmethod
    def star(cls, transaction_count: int, center: int = 0) -> 'ConflictGraph':
        """Build a star topology over transactions 0..transaction_count-1."""
        transactions = [Transaction(tx_id=i, conflict_set=0) for i in range(max(transaction_count, 0))]
        if len(transactions) < 2:
            raise InvalidTopology(
                f"Star topology requires at least 2 transactions, got {transaction_count}"
            )
        return cls(transactions, Topology.STAR, center=center)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def transactions(self) -> Tuple[Transaction, ...]:
        return self._transactions

    @property
    def tx_ids(self) -> List[int]:
        """Transaction ids in graph order."""
        return [tx.tx_id for tx in self._transactions]

    @property
    def conflict_set_ids(self) -> List[int]:
        return sorted(self._members)

    def __len__(self) -> int:
        return len(self._transactions)

    def __contains__(self, tx_id: int) -> bool:
        return tx_id in self._by_id

    def transaction(self, tx_id: int) -> Transaction:
        try:
            return self._by_id[tx_id]
        except KeyError:
            raise KeyError(f"Unknown transaction: {tx_id}") from None

    def conflict_set(self, tx_id: int) -> FrozenSet[int]:
        """All transactions mutually exclusive with `tx_id`, itself included."""
        try:
            return self._conflicts[tx_id]
        except KeyError:
            raise KeyError(f"Unknown transaction: {tx_id}") from None

    def conflicts(self, a: int, b: int) -> bool:
        """True if two distinct transactions exclude each other."""
        return a != b and b in self.conflict_set(a)

    def set_of(self, tx_id: int) -> int:
        """Conflict-set marker of a transaction."""
        return self.transaction(tx_id).conflict_set

    def members(self, set_id: int) -> Tuple[int, ...]:
        """Transactions belonging to a conflict set, in graph order."""
        try:
            return self._members[set_id]
        except KeyError:
            raise KeyError(f"Unknown conflict set: {set_id}") from None

    def is_independent(self, liked: Iterable[int]) -> bool:
        """True if no two transactions in `liked` conflict."""
        liked = list(liked)
        liked_set = set(liked)
        for tx_id in liked:
            if (self.conflict_set(tx_id) - {tx_id}) & liked_set:
                return False
        return True

    def __repr__(self) -> str:
        if self.topology == Topology.STAR:
            return f"ConflictGraph(star, {len(self)} txs, center={self.center})"
        return f"ConflictGraph(complete, {len(self)} txs, {len(self._members)} sets)"
