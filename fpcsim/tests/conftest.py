"""
Pytest configuration for FPCS simulator tests.

Provides small, fully specified configs and hand-built states so engine
tests can reason about exact rounds.
"""

import random

import pytest

from fpcsim.consensus import (
    ConflictGraph,
    FaultyBehavior,
    HonestBehavior,
    MaliciousBehavior,
    OpinionVector,
    create_strategy,
)
from fpcsim.framework import (
    ConflictSpec,
    DistributionSpec,
    NetworkSpec,
    ProtocolSpec,
    SimulationConfig,
)
from fpcsim.framework.state import Node, SimulationState


@pytest.fixture
def scenario_a_config():
    """Three honest nodes, two txs in one set, everyone liking both."""
    return SimulationConfig(
        name="scenario_a",
        network=NetworkSpec(node_count=3),
        conflicts=ConflictSpec(topology="complete", transaction_count=2, conflict_set_count=1),
        distribution=DistributionSpec(kind="concentrated", k=3, value=1),
        protocol=ProtocolSpec(
            sample_size=2,
            threshold_low=0.3,
            threshold_high=0.7,
            finalization_threshold=1,
            max_rounds=10,
        ),
        seed=0,
    )


@pytest.fixture
def uniform_config():
    """A small uniform run that needs several rounds to settle."""
    return SimulationConfig(
        name="uniform",
        network=NetworkSpec(node_count=12),
        conflicts=ConflictSpec(topology="complete", transaction_count=3, conflict_set_count=1),
        distribution=DistributionSpec(kind="uniform"),
        protocol=ProtocolSpec(sample_size=5, finalization_threshold=3, max_rounds=40),
        seed=11,
        record_history=True,
    )


@pytest.fixture
def adversarial_config():
    """Honest, faulty and malicious nodes on a star topology."""
    return SimulationConfig(
        name="adversarial",
        network=NetworkSpec(
            node_count=20,
            faulty_count=3,
            malicious_count=3,
            silence_probability=0.5,
            adversary_strategy="opposite_majority",
        ),
        conflicts=ConflictSpec(topology="star", transaction_count=4, center=0),
        distribution=DistributionSpec(kind="uniform"),
        protocol=ProtocolSpec(sample_size=6, finalization_threshold=3, max_rounds=30),
        seed=5,
        record_history=True,
    )


def make_state(graph, opinions_by_node, kinds=None, silence_probability=0.5, strategy="fixed"):
    """
    Hand-build a SimulationState.

    Args:
        graph: ConflictGraph
        opinions_by_node: node_id -> {tx_id: opinion}
        kinds: node_id -> "honest" | "faulty" | "malicious" (default honest)
    """
    kinds = kinds or {}
    nodes = {}
    for node_id, initial in opinions_by_node.items():
        kind = kinds.get(node_id, "honest")
        if kind == "honest":
            behavior = HonestBehavior()
        elif kind == "faulty":
            behavior = FaultyBehavior(silence_probability)
        else:
            behavior = MaliciousBehavior(create_strategy(strategy))
        nodes[node_id] = Node(
            node_id=node_id,
            behavior=behavior,
            opinions=OpinionVector.seeded(initial),
            rng=random.Random(1000 + node_id),
        )
    return SimulationState(graph=graph, nodes=nodes)


@pytest.fixture
def pair_graph():
    """Two transactions in a single conflict set."""
    return ConflictGraph.complete(2, 1)


@pytest.fixture
def state_factory():
    """The make_state helper, for tests that hand-build states."""
    return make_state
