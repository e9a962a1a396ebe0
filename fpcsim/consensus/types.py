"""
Core value types shared by the consensus primitives and the round engine.
"""

from dataclasses import dataclass
from enum import Enum


DISLIKE = 0
LIKE = 1
OPINION_VALUES = (DISLIKE, LIKE)


# =============================================================================
# Enums
# =============================================================================

class NodeKind(Enum):
    """Behavior tag of a node. Immutable for the run."""
    HONEST = "honest"
    FAULTY = "faulty"
    MALICIOUS = "malicious"


class PairStatus(Enum):
    """State of a single node-transaction pair."""
    ACTIVE = "active"
    FINALIZED = "finalized"


class Outcome(Enum):
    """Global state of a run."""
    RUNNING = "running"
    CONVERGED = "converged"
    DISAGREED = "disagreed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self is not Outcome.RUNNING


# =============================================================================
# Transactions
# =============================================================================

@dataclass(frozen=True)
class Transaction:
    """An opaque transaction id plus its conflict-set marker."""
    tx_id: int
    conflict_set: int = 0

    def __str__(self) -> str:
        return f"tx{self.tx_id}"
