import pytest
import torch

from RC.rand import create_generator
from RC.topology import (
    SparseAdjacency,
    build_dtt_topology,
    build_random_topology,
    build_ring_topology,
    dtt_vertical_target,
)


def _pairs(adj):
    return [(s, t) for s, t, _ in adj.edges()]


def test_random_topology_connection_count_and_ranges():
    adj = build_random_topology(20, 0.15, 1.0, create_generator(5))
    assert adj.num_connections == round(20 * 20 * 0.15)
    pairs = _pairs(adj)
    assert len(set(pairs)) == len(pairs)
    assert all(0 <= s < 20 and 0 <= t < 20 for s, t in pairs)


def test_weights_are_drawn_within_scale():
    adj = build_random_topology(15, 0.5, 0.3, create_generator(1))
    assert all(abs(w) <= 0.3 for _, _, w in adj.edges())


def test_ring_topology_contains_ring_and_no_duplicates():
    n = 12
    adj = build_ring_topology(n, True, 0.25, 0.1, 1.0, create_generator(3))
    for i in range(n):
        assert adj.contains(i, (i - 1) % n)
        assert adj.contains(i, (i + 1) % n)
    pairs = _pairs(adj)
    assert len(set(pairs)) == len(pairs)
    assert sum(1 for s, t in pairs if s == t) == round(n * 0.25)
    assert all(0 <= s < n and 0 <= t < n for s, t in pairs)


def test_ring_topology_one_way_has_single_ring_edge_per_neuron():
    adj = build_ring_topology(8, False, 0.0, 0.0, 1.0, create_generator(0))
    assert adj.num_connections == 8
    assert all(adj.in_degree(i) == 1 for i in range(8))


@pytest.mark.parametrize(
    "source, expected",
    [(0, 3), (5, 8), (6, 2), (7, 0), (8, 1)],
)
def test_dtt_vertical_twist_wraps_within_rows(source, expected):
    assert dtt_vertical_target(source, 9) == expected


def test_dtt_topology_edges_in_range():
    n = 30
    adj = build_dtt_topology(n, 0.1, 1.0, create_generator(11))
    pairs = _pairs(adj)
    assert all(0 <= s < n and 0 <= t < n for s, t in pairs)
    # ring + vertical twist + self-loops
    assert adj.num_connections == n + n + round(n * 0.1)
    for i in range(n):
        assert adj.contains(i, (i - 1) % n)


def test_same_seed_builds_same_topology():
    a = build_ring_topology(10, False, 0.2, 0.2, 1.0, create_generator(7))
    b = build_ring_topology(10, False, 0.2, 0.2, 1.0, create_generator(7))
    assert list(a.edges()) == list(b.edges())


def test_adjacency_add_checks_duplicates_and_range():
    adj = SparseAdjacency(3)
    assert adj.add(0, 1, 0.5)
    assert not adj.add(0, 1, 0.2)
    assert adj.add(0, 1, 0.5, check=False)
    with pytest.raises(ValueError):
        adj.add(3, 0, 1.0)


def test_sparse_tensor_sums_parallel_connections():
    adj = SparseAdjacency(2)
    adj.add(0, 1, 0.5, check=False)
    adj.add(0, 1, 0.25, check=False)
    adj.add(1, 1, -1.0)
    dense = adj.to_sparse_tensor().to_dense()
    expected = torch.tensor([[0.0, 0.75], [0.0, -1.0]], dtype=torch.float64)
    assert torch.allclose(dense, expected)


def test_empty_adjacency_converts_to_zero_matrix():
    dense = SparseAdjacency(4).to_sparse_tensor().to_dense()
    assert torch.equal(dense, torch.zeros(4, 4, dtype=torch.float64))
