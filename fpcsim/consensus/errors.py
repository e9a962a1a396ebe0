"""
Error taxonomy for the FPCS simulator.

Configuration problems are raised at construction time, before any round
executes. Abstentions and adversarial answers are protocol inputs and never
surface as exceptions.
"""


class SimulationError(Exception):
    """Base class for all simulator errors."""
    pass


class InvalidConfiguration(SimulationError):
    """Malformed parameters: bad sample size, L, bounds, counts, names."""
    pass


class InvalidTopology(InvalidConfiguration):
    """Conflict graph cannot be built as requested."""
    pass


class InvalidDistribution(InvalidConfiguration):
    """Initial opinion distribution parameters are out of range."""
    pass


class InsufficientPeers(SimulationError):
    """Requested sample size exceeds the available peers and degradation is off."""

    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Sample size {requested} exceeds available peers ({available}) "
            f"and sample degradation is disabled"
        )
