"""
Opinion State Tests

Tests for:
- OpinionVector seeding, commit and cooling-off counters
- Double buffering (swap)
- OpinionSnapshot tallies
- Uniform, Concentrated and Balanced initial distributions
"""

import random

import pytest

from fpcsim.consensus import (
    Balanced,
    Concentrated,
    ConflictGraph,
    InvalidDistribution,
    OpinionSnapshot,
    OpinionVector,
    PairStatus,
    Uniform,
    initialize_opinions,
)


# =============================================================================
# OpinionVector Tests
# =============================================================================

class TestOpinionVector:
    def test_seeded_vector(self):
        """Counters start at 0 and last opinion equals the initial one."""
        vec = OpinionVector.seeded({0: 1, 1: 0})
        assert vec.opinion(0) == 1
        assert vec.last(1) == 0
        assert vec.counter(0) == 0
        assert vec.active_transactions() == [0, 1]
        assert not vec.all_finalized
        assert vec.finalization_round is None

    def test_seeded_rejects_non_binary(self):
        with pytest.raises(InvalidDistribution):
            OpinionVector.seeded({0: 2})

    def test_unchanged_opinion_increments_counter(self):
        vec = OpinionVector.seeded({0: 1})
        vec.commit({0: 1}, finalization_threshold=5, round_number=1)
        assert vec.counter(0) == 1
        assert vec.opinion(0) == 1

    def test_flip_resets_counter(self):
        """Adopting a new opinion resets the cooling-off counter."""
        vec = OpinionVector.seeded({0: 1})
        vec.commit({0: 1}, 5, 1)
        vec.swap()
        vec.commit({0: 0}, 5, 2)
        assert vec.opinion(0) == 0
        assert vec.counter(0) == 0

    def test_no_response_holds_pair(self):
        """A None decision leaves opinion and counter untouched."""
        vec = OpinionVector.seeded({0: 0})
        vec.commit({0: 0}, 5, 1)
        vec.swap()
        vec.commit({0: None}, 5, 2)
        assert vec.opinion(0) == 0
        assert vec.counter(0) == 1

    def test_finalizes_at_threshold(self):
        vec = OpinionVector.seeded({0: 1, 1: 0})
        newly = []
        for r in range(1, 4):
            newly += vec.commit({0: 1, 1: 0}, 3, r)
            vec.swap()
        assert sorted(newly) == [0, 1]
        assert vec.status(0) == PairStatus.FINALIZED
        assert vec.finalized_at[0] == 3
        assert vec.finalization_round == 3

    def test_finalized_pairs_are_never_written(self):
        """Commits after finalization do not touch the pair."""
        vec = OpinionVector.seeded({0: 1})
        vec.commit({0: 1}, 1, 1)
        vec.swap()
        assert vec.is_finalized(0)
        vec.commit({0: 0}, 1, 2)
        assert vec.opinion(0) == 1
        assert vec.finalized_at[0] == 1

    def test_force_finalize(self):
        vec = OpinionVector.seeded({0: 1, 1: 1})
        vec.finalize(1, 0, round_number=4)
        assert vec.opinion(1) == 0
        assert vec.finalized_at[1] == 4
        assert vec.active_transactions() == [0]

    def test_swap_publishes_write_buffer(self):
        """Writes are invisible through last() until swap()."""
        vec = OpinionVector.seeded({0: 0})
        vec.commit({0: 1}, 5, 1)
        assert vec.last(0) == 0
        vec.swap()
        assert vec.last(0) == 1

    def test_copy_is_independent(self):
        vec = OpinionVector.seeded({0: 0})
        clone = vec.copy()
        clone.commit({0: 1}, 5, 1)
        assert vec.opinion(0) == 0

    def test_liked(self):
        vec = OpinionVector.seeded({0: 1, 1: 0, 2: 1})
        assert vec.liked() == [0, 2]


# =============================================================================
# Snapshot Tests
# =============================================================================

class TestOpinionSnapshot:
    def test_snapshot_reads_last_opinions(self):
        """The snapshot freezes last opinions, not the write buffer."""
        vec = OpinionVector.seeded({0: 0})
        vec.commit({0: 1}, 5, 1)
        snapshot = OpinionSnapshot.capture(1, {7: vec}, participants=[7])
        assert snapshot.opinion(7, 0) == 0

    def test_tally_counts_participants_only(self):
        vectors = {
            0: OpinionVector.seeded({0: 1}),
            1: OpinionVector.seeded({0: 1}),
            2: OpinionVector.seeded({0: 0}),
            3: OpinionVector.seeded({0: 0}),
        }
        snapshot = OpinionSnapshot.capture(0, vectors, participants=[0, 1, 2])
        assert snapshot.tally(0) == (1, 2)
        assert snapshot.like_fraction(0) == pytest.approx(2 / 3)

    def test_finalized_flags(self):
        vec = OpinionVector.seeded({0: 1, 1: 0})
        vec.finalize(0, 1, 2)
        snapshot = OpinionSnapshot.capture(2, {0: vec}, participants=[0])
        assert snapshot.is_finalized(0, 0)
        assert not snapshot.is_finalized(0, 1)


# =============================================================================
# Distribution Tests
# =============================================================================

class TestDistributions:
    def test_uniform_is_deterministic(self):
        """Same RNG seed, same assignment."""
        graph = ConflictGraph.complete(4, 2)
        a = initialize_opinions(graph, Uniform(), range(10), random.Random(3))
        b = initialize_opinions(graph, Uniform(), range(10), random.Random(3))
        assert {n: v.opinions for n, v in a.items()} == {n: v.opinions for n, v in b.items()}

    def test_uniform_values_are_binary(self):
        graph = ConflictGraph.complete(3)
        vectors = initialize_opinions(graph, Uniform(), range(20), random.Random(0))
        values = {v for vec in vectors.values() for v in vec.opinions.values()}
        assert values <= {0, 1}

    def test_concentrated_lowest_ids(self):
        """By default the k lowest ids receive the value everywhere."""
        graph = ConflictGraph.complete(2)
        vectors = initialize_opinions(graph, Concentrated(k=3, value=0), range(6), random.Random(1))
        for node_id in range(3):
            assert vectors[node_id].opinions == {0: 0, 1: 0}

    def test_concentrated_explicit_selection(self):
        graph = ConflictGraph.complete(2)
        dist = Concentrated(k=2, value=1, selection=[4, 5])
        vectors = initialize_opinions(graph, dist, range(6), random.Random(1))
        assert vectors[4].opinions == {0: 1, 1: 1}
        assert vectors[5].opinions == {0: 1, 1: 1}

    def test_concentrated_k_equals_n(self):
        graph = ConflictGraph.complete(2)
        vectors = initialize_opinions(graph, Concentrated(k=3, value=1), range(3), random.Random(0))
        assert all(v.opinions == {0: 1, 1: 1} for v in vectors.values())

    @pytest.mark.parametrize("dist", [
        Concentrated(k=7),
        Concentrated(k=-1),
        Concentrated(k=2, value=3),
        Concentrated(k=2, selection=[0, 0]),
        Concentrated(k=2, selection=[0, 9]),
    ])
    def test_concentrated_validation(self, dist):
        graph = ConflictGraph.complete(2)
        with pytest.raises(InvalidDistribution):
            initialize_opinions(graph, dist, range(6), random.Random(0))

    def test_balanced_round_robin(self):
        """Node i likes tx i mod liked and nothing conflicting with it."""
        graph = ConflictGraph.complete(3)
        vectors = initialize_opinions(graph, Balanced(liked=3), range(6), random.Random(0))
        for node_id, vec in vectors.items():
            assert vec.liked() == [node_id % 3]

    def test_balanced_completes_to_maximal_set(self):
        """On a star, a leaf-favouring node also likes the other leaves."""
        graph = ConflictGraph.star(4, center=0)
        vectors = initialize_opinions(graph, Balanced(liked=2), range(2), random.Random(0))
        assert vectors[0].liked() == [0]
        assert vectors[1].liked() == [1, 2, 3]
        for vec in vectors.values():
            assert graph.is_independent(vec.liked())

    def test_balanced_liked_out_of_range(self):
        graph = ConflictGraph.complete(2)
        with pytest.raises(InvalidDistribution):
            initialize_opinions(graph, Balanced(liked=3), range(4), random.Random(0))

    def test_empty_node_set_rejected(self):
        graph = ConflictGraph.complete(2)
        with pytest.raises(InvalidDistribution):
            initialize_opinions(graph, Uniform(), [], random.Random(0))

    def test_vectors_start_fresh(self):
        graph = ConflictGraph.complete(2)
        vectors = initialize_opinions(graph, Uniform(), range(3), random.Random(0))
        for vec in vectors.values():
            assert vec.last_opinions == vec.opinions
            assert set(vec.counters.values()) == {0}
