"""
FPCS Simulator

A synchronous round-based simulator for Fast Probabilistic Consensus on a
set of conflicting transactions.
"""

from .state import Node, SimulationState
from .tracker import RoundRecord, RunResult, FinalizationTracker
from .engine import RoundEngine, StopCondition
from .config import (
    SimulationConfig,
    NetworkSpec,
    ConflictSpec,
    DistributionSpec,
    ProtocolSpec,
    parse_config,
    load_config,
    config_from_dict,
)
from .runner import (
    build_graph,
    build_distribution,
    build_engine,
    run_simulation,
    run_trials,
    TrialSummary,
)

__all__ = [
    # State
    "Node",
    "SimulationState",
    # Tracking
    "RoundRecord",
    "RunResult",
    "FinalizationTracker",
    # Engine
    "RoundEngine",
    "StopCondition",
    # Config
    "SimulationConfig",
    "NetworkSpec",
    "ConflictSpec",
    "DistributionSpec",
    "ProtocolSpec",
    "parse_config",
    "load_config",
    "config_from_dict",
    # Runner
    "build_graph",
    "build_distribution",
    "build_engine",
    "run_simulation",
    "run_trials",
    "TrialSummary",
]
