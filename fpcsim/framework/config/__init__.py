"""
Configuration module for describing simulation runs in YAML.
"""

from .schema import (
    SimulationConfig,
    NetworkSpec,
    ConflictSpec,
    DistributionSpec,
    ProtocolSpec,
)
from .parser import parse_config, load_config, config_from_dict

__all__ = [
    # Schema
    "SimulationConfig",
    "NetworkSpec",
    "ConflictSpec",
    "DistributionSpec",
    "ProtocolSpec",
    # Parser
    "parse_config",
    "load_config",
    "config_from_dict",
]
