"""Activation units driving reservoir neurons.

A unit only has to expose ``compute(x)``. Units may additionally expose
``reset()`` (stateful units) and ``derivative(c, x)``; a unit that cannot be
differentiated raises ``NotImplementedError`` instead of returning zero.

All units work element-wise on tensors, so one unit instance drives a whole
neuron population in a single call.
"""

from typing import Tuple

import torch

# Magnitude bound applied to stimuli to keep exp/sin numerically sane.
_STIMULUS_BOUND = 1e6


class ActivationUnit:
    """Base class of the activation units.

    Attributes:
        output_range (Tuple[float, float]): Closed range of produced values.
        supports_derivative (bool): Whether ``derivative`` is available.
    """

    output_range: Tuple[float, float] = (float("-inf"), float("inf"))
    supports_derivative: bool = True

    def compute(self, x: torch.Tensor) -> torch.Tensor:
        raise NotImplementedError

    def reset(self) -> None:
        """Stateless units have nothing to reset."""
        return None

    def derivative(self, c: torch.Tensor, x: torch.Tensor) -> torch.Tensor:
        """Derivative at stimulus ``x`` given the computed value ``c``."""
        raise NotImplementedError(
            f"{type(self).__name__} does not support derivative computation"
        )

    def __call__(self, x: torch.Tensor) -> torch.Tensor:
        return self.compute(x)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class Identity(ActivationUnit):
    def compute(self, x: torch.Tensor) -> torch.Tensor:
        return x.clone()

    def derivative(self, c: torch.Tensor, x: torch.Tensor) -> torch.Tensor:
        return torch.ones_like(x)


class TanH(ActivationUnit):
    output_range = (-1.0, 1.0)

    def compute(self, x: torch.Tensor) -> torch.Tensor:
        return torch.tanh(x)

    def derivative(self, c: torch.Tensor, x: torch.Tensor) -> torch.Tensor:
        return 1.0 - c * c


class Elliot(ActivationUnit):
    """Elliot sigmoid ``x * slope / (1 + |x * slope|)``."""

    output_range = (-1.0, 1.0)

    def __init__(self, slope: float = 1.0):
        if slope <= 0:
            raise ValueError(f"Elliot slope must be positive, got {slope}")
        self.slope = slope

    def compute(self, x: torch.Tensor) -> torch.Tensor:
        xs = x * self.slope
        return xs / (1.0 + xs.abs())

    def derivative(self, c: torch.Tensor, x: torch.Tensor) -> torch.Tensor:
        return self.slope / (1.0 + (x * self.slope).abs()) ** 2

    def __repr__(self) -> str:
        return f"Elliot(slope={self.slope})"


class Gaussian(ActivationUnit):
    output_range = (0.0, 1.0)

    def compute(self, x: torch.Tensor) -> torch.Tensor:
        x = torch.clamp(x, -_STIMULUS_BOUND, _STIMULUS_BOUND)
        return torch.exp(-(x * x))

    def derivative(self, c: torch.Tensor, x: torch.Tensor) -> torch.Tensor:
        return -2.0 * x * c


class Sinc(ActivationUnit):
    output_range = (-0.217234, 1.0)

    def compute(self, x: torch.Tensor) -> torch.Tensor:
        x = torch.clamp(x, -_STIMULUS_BOUND, _STIMULUS_BOUND)
        safe = torch.where(x == 0, torch.ones_like(x), x)
        y = torch.where(x == 0, torch.ones_like(x), torch.sin(safe) / safe)
        return torch.clamp(y, self.output_range[0], self.output_range[1])

    def derivative(self, c: torch.Tensor, x: torch.Tensor) -> torch.Tensor:
        safe = torch.where(x == 0, torch.ones_like(x), x)
        d = torch.cos(safe) / safe - torch.sin(safe) / (safe * safe)
        return torch.where(x == 0, torch.zeros_like(x), d)


class SimpleIF(ActivationUnit):
    """Leaky integrate-and-fire spiking unit.

    The membrane potential is kept per element and allocated on the first
    ``compute`` call, so the unit adapts to the population it drives. Output is
    ``1`` on a spike and ``0`` otherwise.
    """

    output_range = (0.0, 1.0)
    supports_derivative = False

    def __init__(
        self,
        stimuli_coeff: float = 1.0,
        resistance: float = 15.0,
        decay_rate: float = 0.05,
        reset_v: float = 5.0,
        firing_threshold_v: float = 20.0,
        refractory_periods: int = 1,
    ):
        self.stimuli_coeff = stimuli_coeff
        self.resistance = resistance
        self.decay_rate = decay_rate
        self.rest_v = 0.0
        self.reset_v = abs(reset_v)
        self.firing_threshold_v = abs(firing_threshold_v)
        self.refractory_periods = int(refractory_periods)
        self._membrane_v = None
        self._in_refractory = None
        self._refractory_period = None

    def reset(self) -> None:
        if self._membrane_v is not None:
            self._membrane_v.fill_(self.rest_v)
            self._in_refractory.zero_()
            self._refractory_period.zero_()

    def _ensure_state(self, x: torch.Tensor) -> None:
        if self._membrane_v is None or self._membrane_v.shape != x.shape:
            self._membrane_v = torch.full_like(x, self.rest_v)
            self._in_refractory = torch.zeros_like(x, dtype=torch.bool)
            self._refractory_period = torch.zeros_like(x, dtype=torch.int64)

    @property
    def membrane_v(self) -> torch.Tensor:
        return self._membrane_v

    def compute(self, x: torch.Tensor) -> torch.Tensor:
        self._ensure_state(x)
        x = torch.clamp(x * self.stimuli_coeff, -_STIMULUS_BOUND, _STIMULUS_BOUND)
        v = self._membrane_v
        period = self._refractory_period
        in_ref = self._in_refractory
        # membrane reset after the spike emitted in the previous step
        fired = v >= self.firing_threshold_v
        v = torch.where(fired, torch.full_like(v, self.reset_v), v)
        period = torch.where(fired, torch.zeros_like(period), period)
        in_ref = in_ref | fired
        period = torch.where(in_ref, period + 1, period)
        finished = in_ref & (period > self.refractory_periods)
        period = torch.where(finished, torch.zeros_like(period), period)
        in_ref = in_ref & ~finished
        # stimuli are ignored while refractory
        x = torch.where(in_ref, torch.zeros_like(x), x)
        v = self.rest_v + (v - self.rest_v) * (1.0 - self.decay_rate)
        v = v + self.resistance * x
        self._membrane_v = v
        self._in_refractory = in_ref
        self._refractory_period = period
        return (v >= self.firing_threshold_v).to(x.dtype)

    def derivative(self, c: torch.Tensor, x: torch.Tensor) -> torch.Tensor:
        raise NotImplementedError(
            "derivative is unsupported for spiking activation units"
        )


def get_activation(name: str, **params) -> ActivationUnit:
    """Return a new activation unit by (case-insensitive) name.

    Supported names: ``identity``, ``tanh``, ``elliot``, ``gaussian``,
    ``sinc`` and ``simpleif``. Extra keyword arguments are passed to the unit's
    constructor.

    Raises:
        ValueError: If the name is unknown.
    """
    act = name.lower()
    if act == "identity":
        return Identity(**params)
    elif act == "tanh":
        return TanH(**params)
    elif act == "elliot":
        return Elliot(**params)
    elif act == "gaussian":
        return Gaussian(**params)
    elif act == "sinc":
        return Sinc(**params)
    elif act == "simpleif":
        return SimpleIF(**params)
    raise ValueError(
        f"activation {name} not supported, use identity, tanh, elliot, gaussian, sinc or simpleif instead"
    )


ACTIVATION_NAMES = ("identity", "tanh", "elliot", "gaussian", "sinc", "simpleif")
