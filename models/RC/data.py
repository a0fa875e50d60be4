"""In-memory sample containers consumed by the network."""

from dataclasses import dataclass, field
from typing import List, Sequence

import torch


def _vector(values: Sequence[float]) -> torch.Tensor:
    return torch.as_tensor(values, dtype=torch.float64).reshape(-1)


@dataclass
class TimeSeriesBundle:
    """Consecutive time-series samples.

    ``input_vectors[t]`` is the input at step ``t`` and ``output_vectors[t]``
    the value the network should output after seeing it (usually the next
    step's value).
    """

    input_vectors: List[torch.Tensor] = field(default_factory=list)
    output_vectors: List[torch.Tensor] = field(default_factory=list)

    def __post_init__(self):
        self.input_vectors = [_vector(v) for v in self.input_vectors]
        self.output_vectors = [_vector(v) for v in self.output_vectors]
        if len(self.input_vectors) != len(self.output_vectors):
            raise ValueError(
                f"{len(self.input_vectors)} input vectors do not match "
                f"{len(self.output_vectors)} output vectors"
            )

    def __len__(self) -> int:
        return len(self.input_vectors)

    def add_pair(self, input_vector: Sequence[float], output_vector: Sequence[float]) -> None:
        self.input_vectors.append(_vector(input_vector))
        self.output_vectors.append(_vector(output_vector))

    @classmethod
    def from_series(cls, series: Sequence[Sequence[float]]) -> "TimeSeriesBundle":
        """Next-step bundle from a ``(T, F)`` series: row ``t`` predicts row ``t + 1``."""
        data = torch.as_tensor(series, dtype=torch.float64)
        if data.dim() == 1:
            data = data.unsqueeze(1)
        if data.dim() != 2 or data.shape[0] < 2:
            raise ValueError(f"series of shape {tuple(data.shape)} has no next-step pairs")
        return cls(list(data[:-1]), list(data[1:]))


@dataclass
class PatternBundle:
    """Patterns (sequences of input vectors) with one output vector each."""

    input_patterns: List[torch.Tensor] = field(default_factory=list)
    output_vectors: List[torch.Tensor] = field(default_factory=list)

    def __post_init__(self):
        self.input_patterns = [torch.as_tensor(p, dtype=torch.float64) for p in self.input_patterns]
        self.output_vectors = [_vector(v) for v in self.output_vectors]
        if len(self.input_patterns) != len(self.output_vectors):
            raise ValueError(
                f"{len(self.input_patterns)} patterns do not match "
                f"{len(self.output_vectors)} output vectors"
            )
        for p in self.input_patterns:
            if p.dim() != 2 or p.shape[0] == 0:
                raise ValueError(f"pattern must be a non-empty (T, F) matrix, got {tuple(p.shape)}")

    def __len__(self) -> int:
        return len(self.input_patterns)

    def add_pair(self, pattern: Sequence[Sequence[float]], output_vector: Sequence[float]) -> None:
        p = torch.as_tensor(pattern, dtype=torch.float64)
        if p.dim() != 2 or p.shape[0] == 0:
            raise ValueError(f"pattern must be a non-empty (T, F) matrix, got {tuple(p.shape)}")
        self.input_patterns.append(p)
        self.output_vectors.append(_vector(output_vector))
