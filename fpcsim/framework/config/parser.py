"""
YAML configuration parser.
"""

from typing import Any, Dict, List, Optional

import yaml

from ...consensus.behavior import ADVERSARY_STRATEGIES
from ...consensus.conflicts import Topology
from ...consensus.errors import InvalidConfiguration
from ...consensus.opinions import DISTRIBUTIONS
from .schema import (
    ConflictSpec, DistributionSpec, NetworkSpec, ProtocolSpec,
    SimulationConfig,
)


def parse_config(yaml_content: str) -> SimulationConfig:
    """Parse a simulation config from YAML content."""
    try:
        data = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise InvalidConfiguration(f"Malformed YAML: {e}") from e
    return config_from_dict(data if data is not None else {})


def load_config(file_path: str) -> SimulationConfig:
    """Load a simulation config from a YAML file."""
    with open(file_path, 'r') as f:
        return parse_config(f.read())


def config_from_dict(data: Dict[str, Any]) -> SimulationConfig:
    """Parse a simulation config from a dictionary."""
    if not isinstance(data, dict):
        raise InvalidConfiguration(f"Configuration must be a mapping, got {type(data).__name__}")

    _reject_unknown("config", data, [
        "name", "description", "seed", "record_history",
        "network", "conflicts", "distribution", "protocol",
    ])

    config = SimulationConfig(
        name=str(data.get("name", "fpcs")),
        description=str(data.get("description", "")),
        network=_parse_network(_section(data, "network")),
        conflicts=_parse_conflicts(_section(data, "conflicts")),
        distribution=_parse_distribution(_section(data, "distribution")),
        protocol=_parse_protocol(_section(data, "protocol")),
        seed=_int(data, "seed", 42, "seed"),
        record_history=_bool(data, "record_history", False, "record_history"),
    )

    # Counts must fit the population before anything is built
    config.network.counts()
    return config


def _parse_network(data: Dict[str, Any]) -> NetworkSpec:
    """Parse network specification."""
    _reject_unknown("network", data, [
        "node_count", "faulty_count", "faulty_fraction",
        "malicious_count", "malicious_fraction",
        "silence_probability", "adversary",
    ])

    node_count = _int(data, "node_count", 20, "network.node_count")
    if node_count < 1:
        raise InvalidConfiguration(f"network.node_count must be at least 1, got {node_count}")

    adversary = data.get("adversary") or {}
    if not isinstance(adversary, dict):
        raise InvalidConfiguration("network.adversary must be a mapping")
    _reject_unknown("network.adversary", adversary, ["strategy", "params"])

    strategy = adversary.get("strategy", "opposite_majority")
    if strategy not in ADVERSARY_STRATEGIES:
        raise InvalidConfiguration(
            f"Invalid network.adversary.strategy: {strategy}. Valid strategies: {sorted(ADVERSARY_STRATEGIES)}"
        )
    params = adversary.get("params") or {}
    if not isinstance(params, dict):
        raise InvalidConfiguration("network.adversary.params must be a mapping")

    return NetworkSpec(
        node_count=node_count,
        faulty_count=_int(data, "faulty_count", 0, "network.faulty_count"),
        malicious_count=_int(data, "malicious_count", 0, "network.malicious_count"),
        faulty_fraction=_optional_float(data, "faulty_fraction", "network.faulty_fraction"),
        malicious_fraction=_optional_float(data, "malicious_fraction", "network.malicious_fraction"),
        silence_probability=_float(data, "silence_probability", 0.5, "network.silence_probability"),
        adversary_strategy=strategy,
        adversary_params=dict(params),
    )


def _parse_conflicts(data: Dict[str, Any]) -> ConflictSpec:
    """Parse conflict topology specification."""
    _reject_unknown("conflicts", data, ["topology", "transaction_count", "conflict_set_count", "center"])

    topology = str(data.get("topology", Topology.COMPLETE.value)).lower()
    valid = [t.value for t in Topology]
    if topology not in valid:
        raise InvalidConfiguration(f"Invalid conflicts.topology: {topology}. Valid topologies: {valid}")

    center = data.get("center")
    if center is not None:
        center = _int(data, "center", None, "conflicts.center")

    return ConflictSpec(
        topology=topology,
        transaction_count=_int(data, "transaction_count", 2, "conflicts.transaction_count"),
        conflict_set_count=_int(data, "conflict_set_count", 1, "conflicts.conflict_set_count"),
        center=center,
    )


def _parse_distribution(data: Dict[str, Any]) -> DistributionSpec:
    """Parse initial opinion distribution."""
    _reject_unknown("distribution", data, ["kind", "k", "value", "selection", "liked"])

    kind = str(data.get("kind", "uniform")).lower()
    if kind not in DISTRIBUTIONS:
        raise InvalidConfiguration(
            f"Invalid distribution.kind: {kind}. Valid kinds: {sorted(DISTRIBUTIONS)}"
        )

    selection = data.get("selection")
    if selection is not None:
        if not isinstance(selection, list) or not all(_is_int(x) for x in selection):
            raise InvalidConfiguration("distribution.selection must be a list of node ids")
        selection = list(selection)

    k = _int(data, "k", None, "distribution.k") if data.get("k") is not None else None
    liked = _int(data, "liked", None, "distribution.liked") if data.get("liked") is not None else None

    if kind == "concentrated" and k is None:
        raise InvalidConfiguration("distribution.k is required for the concentrated distribution")
    if kind == "balanced" and liked is None:
        raise InvalidConfiguration("distribution.liked is required for the balanced distribution")

    return DistributionSpec(
        kind=kind,
        k=k,
        value=_int(data, "value", 1, "distribution.value"),
        selection=selection,
        liked=liked,
    )


def _parse_protocol(data: Dict[str, Any]) -> ProtocolSpec:
    """Parse protocol parameters."""
    _reject_unknown("protocol", data, [
        "sample_size", "threshold_low", "threshold_high", "finalization_threshold",
        "max_rounds", "degrade_sample", "finalized_respond", "resolve_conflicts",
        "workers", "wall_clock_budget",
    ])

    return ProtocolSpec(
        sample_size=_int(data, "sample_size", 5, "protocol.sample_size"),
        threshold_low=_float(data, "threshold_low", 0.3, "protocol.threshold_low"),
        threshold_high=_float(data, "threshold_high", 0.7, "protocol.threshold_high"),
        finalization_threshold=_int(data, "finalization_threshold", 3, "protocol.finalization_threshold"),
        max_rounds=_int(data, "max_rounds", 50, "protocol.max_rounds"),
        degrade_sample=_bool(data, "degrade_sample", True, "protocol.degrade_sample"),
        finalized_respond=_bool(data, "finalized_respond", True, "protocol.finalized_respond"),
        resolve_conflicts=_bool(data, "resolve_conflicts", False, "protocol.resolve_conflicts"),
        workers=_int(data, "workers", 1, "protocol.workers"),
        wall_clock_budget=_optional_float(data, "wall_clock_budget", "protocol.wall_clock_budget"),
    )


# =============================================================================
# Field helpers
# =============================================================================

def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise InvalidConfiguration(f"Section {name} must be a mapping, got {type(section).__name__}")
    return section


def _reject_unknown(where: str, data: Dict[str, Any], allowed: List[str]):
    unknown = set(data) - set(allowed)
    if unknown:
        raise InvalidConfiguration(f"Unknown field(s) in {where}: {sorted(unknown)}")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _int(data: Dict[str, Any], key: str, default: Optional[int], path: str) -> Optional[int]:
    value = data.get(key, default)
    if not _is_int(value):
        raise InvalidConfiguration(f"{path} must be an integer, got {value!r}")
    return value


def _float(data: Dict[str, Any], key: str, default: float, path: str) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidConfiguration(f"{path} must be a number, got {value!r}")
    return float(value)


def _optional_float(data: Dict[str, Any], key: str, path: str) -> Optional[float]:
    if data.get(key) is None:
        return None
    return _float(data, key, 0.0, path)


def _bool(data: Dict[str, Any], key: str, default: bool, path: str) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise InvalidConfiguration(f"{path} must be true or false, got {value!r}")
    return value
