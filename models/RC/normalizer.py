"""Normalisation of natural values into a fixed range and back."""

from typing import Tuple, Union

import torch

from .stats import BasicStat

DEFAULT_NORM_RANGE = (-1.0, 1.0)

Value = Union[float, torch.Tensor]


class Normalizer:
    """Maps natural values into ``norm_range`` and back.

    The normaliser first observes sample values through :meth:`adjust`. The
    observed range is then widened by ``reserve_ratio`` (half on each side) so
    later values slightly outside the observed range still land inside the
    normalisation range. With ``standardize`` the values are Gaussian
    standardised before the range mapping.

    Attributes:
        reserve_ratio (float): Fraction of the observed span kept in reserve.
        standardize (bool): Standardise (z-score) before range mapping.
        norm_range (Tuple[float, float]): Target range.
        samples_stat (BasicStat): Statistic of the observed samples.
    """

    def __init__(
        self,
        reserve_ratio: float,
        standardize: bool = True,
        norm_range: Tuple[float, float] = DEFAULT_NORM_RANGE,
    ):
        if reserve_ratio < 0:
            raise ValueError(f"reserve_ratio must be >= 0, got {reserve_ratio}")
        if norm_range[0] >= norm_range[1]:
            raise ValueError(f"invalid normalisation range {norm_range}")
        self.reserve_ratio = reserve_ratio
        self.standardize = standardize
        self.norm_range = (float(norm_range[0]), float(norm_range[1]))
        self.samples_stat = BasicStat()

    @property
    def initialized(self) -> bool:
        """True once at least two distinct values have been observed."""
        stat = self.samples_stat
        return not stat.empty and stat.min.item() != stat.max.item()

    def adjust(self, values: Value) -> None:
        """Observe one value or a 1-D batch of values."""
        v = torch.as_tensor(values, dtype=torch.float64)
        if v.dim() == 0:
            self.samples_stat.add_sample_value(v)
        else:
            self.samples_stat.add_sample_values(v.reshape(-1))

    def _check_initialized(self) -> None:
        if not self.initialized:
            raise RuntimeError("normalizer is not initialized, adjust it with distinct samples first")

    @property
    def _v_min(self) -> float:
        stat = self.samples_stat
        return stat.min.item() - stat.span.item() * self.reserve_ratio / 2

    @property
    def _v_max(self) -> float:
        stat = self.samples_stat
        return stat.max.item() + stat.span.item() * self.reserve_ratio / 2

    def _gauss_half_interval(self) -> float:
        avg = self.samples_stat.arith_avg.item()
        std = self.samples_stat.std_dev.item()
        return max(abs((self._v_min - avg) / std), abs((self._v_max - avg) / std))

    def _to_range(self, low: float, high: float, v: Value) -> Value:
        n_lo, n_hi = self.norm_range
        return n_lo + (n_hi - n_lo) * ((v - low) / (high - low))

    def _from_range(self, low: float, high: float, n: Value) -> Value:
        n_lo, n_hi = self.norm_range
        return low + (high - low) * ((n - n_lo) / (n_hi - n_lo))

    def normalize(self, natural_value: Value) -> Value:
        """Natural value(s) to the normalisation range."""
        self._check_initialized()
        if self.standardize:
            half = self._gauss_half_interval()
            avg = self.samples_stat.arith_avg.item()
            std = self.samples_stat.std_dev.item()
            return self._to_range(-half, half, (natural_value - avg) / std)
        return self._to_range(self._v_min, self._v_max, natural_value)

    def naturalize(self, norm_value: Value) -> Value:
        """Inverse of :meth:`normalize`."""
        self._check_initialized()
        if self.standardize:
            half = self._gauss_half_interval()
            gauss = self._from_range(-half, half, norm_value)
            return gauss * self.samples_stat.std_dev.item() + self.samples_stat.arith_avg.item()
        return self._from_range(self._v_min, self._v_max, norm_value)

    def compute_natural_span(self, norm_span: float) -> float:
        """Natural-scale width of a span measured in the normalisation range."""
        low = self.norm_range[0]
        return abs(float(self.naturalize(low + abs(norm_span))) - float(self.naturalize(low)))
