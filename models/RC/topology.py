"""Internal connection schemas of an analog reservoir.

Connections are stored per target neuron as ``(source, weight)`` pairs in a
:class:`SparseAdjacency`. A connection exists iff it appears in its target's
list; self-loops are allowed. Weights are drawn uniformly from
``[-scale, +scale]`` when a connection is added and never change afterwards.

Three schemas are available:

* ``random``: ``round(N^2 * density)`` distinct ``(target, source)`` pairs
  drawn without replacement from all ``N^2`` pairs.
* ``ring``: a closed (optionally bidirectional) ring, random self-loops and
  random duplicate-checked inter-connections.
* ``dtt``: doubly twisted torus, i.e. a one-way ring (horizontal twist), a
  vertical twist with step ``floor(sqrt(N))`` and random self-loops.
"""

import math
from typing import Iterator, List, Optional, Tuple

import torch

from .rand import shuffled_indices, uniform


class SparseAdjacency:
    """Directed weighted adjacency over ``size`` neurons.

    Attributes:
        size (int): Number of neurons.
    """

    def __init__(self, size: int):
        self.size = size
        self._incoming: List[List[Tuple[int, float]]] = [[] for _ in range(size)]

    def contains(self, target: int, source: int) -> bool:
        return any(s == source for s, _ in self._incoming[target])

    def add(self, target: int, source: int, weight: float, check: bool = True) -> bool:
        """Add ``source -> target``.

        Args:
            target (int): Receiving neuron index.
            source (int): Emitting neuron index.
            weight (float): Connection weight.
            check (bool): Refuse the connection if it already exists.

        Returns:
            bool: ``False`` if ``check`` found an existing connection.
        """
        if not (0 <= target < self.size and 0 <= source < self.size):
            raise ValueError(
                f"connection {source}->{target} out of range for {self.size} neurons"
            )
        if check and self.contains(target, source):
            return False
        self._incoming[target].append((source, float(weight)))
        return True

    def in_degree(self, target: int) -> int:
        return len(self._incoming[target])

    @property
    def num_connections(self) -> int:
        return sum(len(c) for c in self._incoming)

    def edges(self) -> Iterator[Tuple[int, int, float]]:
        """Yield ``(source, target, weight)`` for every connection."""
        for target, conns in enumerate(self._incoming):
            for source, weight in conns:
                yield source, target, weight

    def to_sparse_tensor(
        self, dtype: torch.dtype = torch.float64, device: Optional[torch.device] = None
    ) -> torch.Tensor:
        """Sparse ``(size, size)`` matrix ``W`` with ``W[target, source] = weight``.

        Parallel connections between the same pair (possible where duplicate
        checks are skipped) are summed, which matches accumulating them one by
        one during propagation.
        """
        targets, sources, weights = [], [], []
        for source, target, weight in self.edges():
            targets.append(target)
            sources.append(source)
            weights.append(weight)
        indices = torch.tensor([targets, sources], dtype=torch.long, device=device)
        if not weights:
            indices = indices.reshape(2, 0)
        values = torch.tensor(weights, dtype=dtype, device=device)
        return torch.sparse_coo_tensor(
            indices, values, (self.size, self.size), dtype=dtype, device=device
        ).coalesce()


class _TopologyBuilder:
    """Adds connections to an adjacency, drawing weights from one generator."""

    def __init__(self, adjacency: SparseAdjacency, gen: torch.Generator, weight_scale: float):
        self.adj = adjacency
        self.gen = gen
        self.weight_scale = weight_scale

    @property
    def n(self) -> int:
        return self.adj.size

    def _weight(self) -> float:
        return float(uniform(self.gen, 1, self.weight_scale)[0])

    def connect(self, target: int, source: int, check: bool) -> bool:
        if check and self.adj.contains(target, source):
            return False
        return self.adj.add(target, source, self._weight(), check=False)

    def connect_flat(self, connection_id: int, check: bool) -> bool:
        # flat id enumerates (target, source) pairs row by row
        return self.connect(connection_id // self.n, connection_id % self.n, check)

    def ring(self, bidirection: bool, check: bool) -> None:
        n = self.n
        for i in range(n):
            self.connect(i, n - 1 if i == 0 else i - 1, check)
            if bidirection:
                self.connect(i, 0 if i == n - 1 else i + 1, check)

    def self_connections(self, density: float, check: bool) -> None:
        count = int(round(self.n * density))
        indices = shuffled_indices(self.gen, self.n).tolist()
        for i in range(count):
            self.connect(indices[i], indices[i], check)

    def inter_connections(self, density: float, check: bool) -> None:
        n = self.n
        count = int(round((n - 1) * n * density))
        if count == 0:
            return
        ids = torch.arange(n * n)
        off_diagonal = ids[(ids // n) != (ids % n)]
        order = shuffled_indices(self.gen, off_diagonal.numel())
        for connection_id in off_diagonal[order[:count]].tolist():
            self.connect_flat(connection_id, check)


def build_random_topology(
    size: int, density: float, weight_scale: float, gen: torch.Generator
) -> SparseAdjacency:
    """Fully random schema: ``round(size^2 * density)`` distinct pairs."""
    adj = SparseAdjacency(size)
    builder = _TopologyBuilder(adj, gen, weight_scale)
    count = int(round(size * size * density))
    ids = shuffled_indices(gen, size * size)[:count]
    for connection_id in ids.tolist():
        builder.connect_flat(connection_id, check=False)
    return adj


def build_ring_topology(
    size: int,
    bidirection: bool,
    self_connections_density: float,
    inter_connections_density: float,
    weight_scale: float,
    gen: torch.Generator,
) -> SparseAdjacency:
    """Ring schema; only the inter-connection step checks for duplicates."""
    adj = SparseAdjacency(size)
    builder = _TopologyBuilder(adj, gen, weight_scale)
    builder.ring(bidirection, check=False)
    builder.self_connections(self_connections_density, check=False)
    builder.inter_connections(inter_connections_density, check=True)
    return adj


def dtt_vertical_target(source: int, size: int) -> int:
    """Target of the vertical twist leaving ``source``."""
    step = int(math.floor(math.sqrt(size)))
    target = source + step
    if target > size - 1:
        left = source % step
        target = step - 1 if left == 0 else left - 1
    return target


def build_dtt_topology(
    size: int,
    self_connections_density: float,
    weight_scale: float,
    gen: torch.Generator,
) -> SparseAdjacency:
    """Doubly twisted toroidal schema."""
    adj = SparseAdjacency(size)
    builder = _TopologyBuilder(adj, gen, weight_scale)
    # horizontal twist
    builder.ring(bidirection=False, check=True)
    # vertical twist
    for source in range(size):
        builder.connect(dtt_vertical_target(source, size), source, check=False)
    builder.self_connections(self_connections_density, check=False)
    return adj
