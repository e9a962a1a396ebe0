"""
FPCS consensus primitives.

This package provides:
- conflicts: the conflict graph over transactions
- opinions: double-buffered opinion vectors, snapshots, initial distributions
- threshold: the per-round common-coin threshold
- sampling: peer selection for queries
- behavior: honest, faulty and malicious response policies
- resolution: eliminate/complete passes for the liked set
- errors: the configuration and runtime error taxonomy
"""

from .errors import (
    SimulationError,
    InvalidConfiguration,
    InvalidTopology,
    InvalidDistribution,
    InsufficientPeers,
)

from .types import (
    DISLIKE,
    LIKE,
    NodeKind,
    PairStatus,
    Outcome,
    Transaction,
)

from .conflicts import Topology, ConflictGraph

from .opinions import (
    OpinionVector,
    OpinionSnapshot,
    Distribution,
    Uniform,
    Concentrated,
    Balanced,
    DISTRIBUTIONS,
    initialize_opinions,
)

from .threshold import ThresholdDraw, ThresholdSource, threshold_rule

from .sampling import QuerySampler

from .behavior import (
    QueryView,
    NodeBehavior,
    HonestBehavior,
    FaultyBehavior,
    MaliciousBehavior,
    AdversaryStrategy,
    ADVERSARY_STRATEGIES,
    register_strategy,
    create_strategy,
)

from .resolution import order_key, eliminate, complete, resolve_liked_set

__all__ = [
    # Errors
    "SimulationError",
    "InvalidConfiguration",
    "InvalidTopology",
    "InvalidDistribution",
    "InsufficientPeers",
    # Types
    "DISLIKE",
    "LIKE",
    "NodeKind",
    "PairStatus",
    "Outcome",
    "Transaction",
    # Conflicts
    "Topology",
    "ConflictGraph",
    # Opinions
    "OpinionVector",
    "OpinionSnapshot",
    "Distribution",
    "Uniform",
    "Concentrated",
    "Balanced",
    "DISTRIBUTIONS",
    "initialize_opinions",
    # Threshold
    "ThresholdDraw",
    "ThresholdSource",
    "threshold_rule",
    # Sampling
    "QuerySampler",
    # Behavior
    "QueryView",
    "NodeBehavior",
    "HonestBehavior",
    "FaultyBehavior",
    "MaliciousBehavior",
    "AdversaryStrategy",
    "ADVERSARY_STRATEGIES",
    "register_strategy",
    "create_strategy",
    # Resolution
    "order_key",
    "eliminate",
    "complete",
    "resolve_liked_set",
]
