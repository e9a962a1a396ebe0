"""
Simulation configuration schema definitions.
"""

from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, List, Optional, Tuple

from ...consensus.errors import InvalidConfiguration


@dataclass
class NetworkSpec:
    """Node population and adversary setup."""
    node_count: int = 20
    faulty_count: int = 0
    malicious_count: int = 0
    faulty_fraction: Optional[float] = None
    malicious_fraction: Optional[float] = None
    silence_probability: float = 0.5
    adversary_strategy: str = "opposite_majority"
    adversary_params: Dict[str, Any] = field(default_factory=dict)

    def counts(self) -> Tuple[int, int, int]:
        """Resolve (honest, faulty, malicious) counts, fractions taking precedence."""
        faulty = self._resolve("faulty", self.faulty_count, self.faulty_fraction)
        malicious = self._resolve("malicious", self.malicious_count, self.malicious_fraction)
        if faulty + malicious > self.node_count:
            raise InvalidConfiguration(
                f"network: faulty ({faulty}) + malicious ({malicious}) exceeds node_count ({self.node_count})"
            )
        return self.node_count - faulty - malicious, faulty, malicious

    def _resolve(self, label: str, count: int, fraction: Optional[float]) -> int:
        if fraction is not None:
            if not 0.0 <= fraction <= 1.0:
                raise InvalidConfiguration(f"network.{label}_fraction must be in [0, 1], got {fraction}")
            return int(round(fraction * self.node_count))
        if count < 0:
            raise InvalidConfiguration(f"network.{label}_count must be non-negative, got {count}")
        return count


@dataclass
class ConflictSpec:
    """Transactions and how they conflict."""
    topology: str = "complete"
    transaction_count: int = 2
    conflict_set_count: int = 1
    center: Optional[int] = None


@dataclass
class DistributionSpec:
    """Initial opinion distribution."""
    kind: str = "uniform"
    k: Optional[int] = None
    value: int = 1
    selection: Optional[List[int]] = None
    liked: Optional[int] = None


@dataclass
class ProtocolSpec:
    """FPCS protocol parameters and engine switches."""
    sample_size: int = 5
    threshold_low: float = 0.3
    threshold_high: float = 0.7
    finalization_threshold: int = 3
    max_rounds: int = 50
    degrade_sample: bool = True
    finalized_respond: bool = True
    resolve_conflicts: bool = False
    workers: int = 1
    wall_clock_budget: Optional[float] = None


SECTIONS = {
    "network": NetworkSpec,
    "conflicts": ConflictSpec,
    "distribution": DistributionSpec,
    "protocol": ProtocolSpec,
}


@dataclass
class SimulationConfig:
    """A complete, runnable simulation description."""
    name: str = "fpcs"
    description: str = ""
    network: NetworkSpec = field(default_factory=NetworkSpec)
    conflicts: ConflictSpec = field(default_factory=ConflictSpec)
    distribution: DistributionSpec = field(default_factory=DistributionSpec)
    protocol: ProtocolSpec = field(default_factory=ProtocolSpec)
    seed: int = 42
    record_history: bool = False

    def with_overrides(self, **overrides: Any) -> 'SimulationConfig':
        """
        Copy with some values replaced.

        Section names take a dict of field overrides, anything else replaces
        a top-level field:

            config.with_overrides(network={"malicious_fraction": 0.2}, seed=7)
        """
        changes = {}
        for key, value in overrides.items():
            if key in SECTIONS:
                section = getattr(self, key)
                valid = {f.name for f in fields(section)}
                unknown = set(value) - valid
                if unknown:
                    raise InvalidConfiguration(f"Unknown {key} field(s): {sorted(unknown)}")
                changes[key] = replace(section, **value)
            elif key in {f.name for f in fields(self)}:
                changes[key] = value
            else:
                raise InvalidConfiguration(f"Unknown configuration field: {key}")
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return asdict(self)
