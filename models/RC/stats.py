"""Running statistics used by neurons, normalisers and readout error tracking."""

import copy
from typing import Tuple, Union

import torch

Number = Union[float, int, torch.Tensor]


class BasicStat:
    """Running statistics over samples of a fixed element shape.

    A scalar instance (``shape=()``) behaves like a classic running statistic.
    A vector instance (e.g. ``shape=(n_neurons,)``) keeps an independent
    statistic per element, which is how a whole neuron population records its
    states in one update.

    Attributes:
        shape (Tuple[int, ...]): Element shape of a single sample.
        num_samples (int): Number of samples added so far.
    """

    def __init__(self, shape: Tuple[int, ...] = (), dtype: torch.dtype = torch.float64):
        self.shape = tuple(shape)
        self.dtype = dtype
        self.reset()

    def reset(self) -> None:
        """Forget all samples."""
        self.num_samples = 0
        self._sum = torch.zeros(self.shape, dtype=self.dtype)
        self._sum_sq = torch.zeros(self.shape, dtype=self.dtype)
        self._min = torch.full(self.shape, float("inf"), dtype=self.dtype)
        self._max = torch.full(self.shape, float("-inf"), dtype=self.dtype)

    def add_sample_value(self, value: Number) -> None:
        """Add one sample shaped like ``self.shape``."""
        v = torch.as_tensor(value, dtype=self.dtype).detach().cpu()
        if tuple(v.shape) != self.shape:
            raise ValueError(
                f"sample shape {tuple(v.shape)} does not match statistic shape {self.shape}"
            )
        self.num_samples += 1
        self._sum += v
        self._sum_sq += v * v
        self._min = torch.minimum(self._min, v)
        self._max = torch.maximum(self._max, v)

    def add_sample_values(self, values: torch.Tensor) -> None:
        """Add a batch of samples stacked along dim 0."""
        v = torch.as_tensor(values, dtype=self.dtype).detach().cpu()
        if tuple(v.shape[1:]) != self.shape:
            raise ValueError(
                f"batch element shape {tuple(v.shape[1:])} does not match statistic shape {self.shape}"
            )
        if v.shape[0] == 0:
            return
        self.num_samples += v.shape[0]
        self._sum += v.sum(dim=0)
        self._sum_sq += (v * v).sum(dim=0)
        self._min = torch.minimum(self._min, v.min(dim=0).values)
        self._max = torch.maximum(self._max, v.max(dim=0).values)

    @property
    def empty(self) -> bool:
        return self.num_samples == 0

    def _guard(self, value: torch.Tensor) -> torch.Tensor:
        if self.num_samples == 0:
            return torch.zeros(self.shape, dtype=self.dtype)
        return value

    @property
    def sum(self) -> torch.Tensor:
        return self._sum.clone()

    @property
    def sum_of_squares(self) -> torch.Tensor:
        return self._sum_sq.clone()

    @property
    def min(self) -> torch.Tensor:
        return self._guard(self._min.clone())

    @property
    def max(self) -> torch.Tensor:
        return self._guard(self._max.clone())

    @property
    def span(self) -> torch.Tensor:
        return self.max - self.min

    @property
    def arith_avg(self) -> torch.Tensor:
        return self._guard(self._sum / max(self.num_samples, 1))

    @property
    def root_mean_square(self) -> torch.Tensor:
        return self._guard(torch.sqrt(self._sum_sq / max(self.num_samples, 1)))

    @property
    def variance(self) -> torch.Tensor:
        n = max(self.num_samples, 1)
        mean = self._sum / n
        # population variance, clamped against rounding below zero
        return self._guard(torch.clamp(self._sum_sq / n - mean * mean, min=0.0))

    @property
    def std_dev(self) -> torch.Tensor:
        return torch.sqrt(self.variance)

    def clone(self) -> "BasicStat":
        return copy.deepcopy(self)

    def __repr__(self) -> str:
        return (
            f"BasicStat(shape={self.shape}, num_samples={self.num_samples}, "
            f"avg={self.arith_avg.tolist()}, min={self.min.tolist()}, max={self.max.tolist()})"
        )


class BinDistribution:
    """Counts of samples below (bin 0) and at/above (bin 1) a border value."""

    def __init__(self, bin_border: float):
        self.bin_border = float(bin_border)
        self.num_of = [0, 0]

    def bin_of(self, value: float) -> int:
        return 1 if value >= self.bin_border else 0

    def update(self, values: torch.Tensor) -> None:
        values = torch.as_tensor(values).reshape(-1)
        ones = int((values >= self.bin_border).sum().item())
        self.num_of[1] += ones
        self.num_of[0] += values.numel() - ones


class BinErrStat:
    """Binary classification error counts, split by the ideal value's bin.

    Attributes:
        bin_border (float): Values ``>= bin_border`` belong to bin 1.
        num_samples (list): Samples seen per ideal bin.
        num_errors (list): Misclassified samples per ideal bin.
    """

    def __init__(self, bin_border: float):
        self.bin_border = float(bin_border)
        self.num_samples = [0, 0]
        self.num_errors = [0, 0]

    def update(self, computed_value: float, ideal_value: float) -> None:
        ideal_bin = 1 if ideal_value >= self.bin_border else 0
        computed_bin = 1 if computed_value >= self.bin_border else 0
        self.num_samples[ideal_bin] += 1
        if computed_bin != ideal_bin:
            self.num_errors[ideal_bin] += 1

    @property
    def total_num_samples(self) -> int:
        return self.num_samples[0] + self.num_samples[1]

    @property
    def total_num_errors(self) -> int:
        return self.num_errors[0] + self.num_errors[1]

    @property
    def total_err_rate(self) -> float:
        if self.total_num_samples == 0:
            return 0.0
        return self.total_num_errors / self.total_num_samples

    def bin_err_rate(self, bin_idx: int) -> float:
        if self.num_samples[bin_idx] == 0:
            return 0.0
        return self.num_errors[bin_idx] / self.num_samples[bin_idx]

    def clone(self) -> "BinErrStat":
        return copy.deepcopy(self)
