"""Analog neuron population of a reservoir.

The population keeps one slot per neuron in flat tensors (retainment rate,
previous state, current state, running statistics), so a propagation step
updates every neuron in one vectorised operation instead of a loop.
"""

from typing import Optional, Union

import torch

from .activation import ActivationUnit
from .stats import BasicStat

RETAINMENT_MAX_RATE = 0.99


class AnalogNeurons:
    """Population of leaky-integrator neurons sharing one activation unit. 共享同一激活单元的泄漏积分神经元群体。

    The new state of neuron ``i`` is::

        state[i] = r[i] * state[i] + (1 - r[i]) * f(signal[i])

    where ``r`` is the neuron's retainment rate (``0`` disables the leaky
    integration) and ``f`` is the activation unit.

    Attributes:
        activation (ActivationUnit): Unit computing ``f`` element-wise.
        retainment_rates (torch.Tensor): Per-neuron rates in ``[0, 0.99]``.
        previous_state (torch.Tensor): States snapshotted by ``store_current_state``.
        current_state (torch.Tensor): Latest computed states.
        states_stat (BasicStat): Per-neuron statistics of the computed states.
    """

    def __init__(
        self,
        activation: ActivationUnit,
        size: int,
        retainment_rates: Optional[Union[float, torch.Tensor]] = None,
        dtype: torch.dtype = torch.float64,
    ):
        if size <= 0:
            raise ValueError(f"neuron population size must be positive, got {size}")
        self.activation = activation
        self.size = size
        self.dtype = dtype
        if retainment_rates is None:
            retainment_rates = 0.0
        rates = torch.as_tensor(retainment_rates, dtype=dtype)
        if rates.dim() == 0:
            rates = rates.expand(size).clone()
        if rates.shape != (size,):
            raise ValueError(
                f"expected {size} retainment rates, got shape {tuple(rates.shape)}"
            )
        # rates are fixed for the neuron's lifetime
        self.retainment_rates = torch.clamp(rates, 0.0, RETAINMENT_MAX_RATE)
        self.previous_state = torch.zeros(size, dtype=dtype)
        self.current_state = torch.zeros(size, dtype=dtype)
        self.states_stat = BasicStat((size,), dtype=dtype)

    def reset(self, reset_statistics: bool = False) -> None:
        """Zero the states; optionally forget the collected statistics."""
        self.previous_state.zero_()
        self.current_state.zero_()
        self.activation.reset()
        if reset_statistics:
            self.states_stat.reset()

    def store_current_state(self) -> None:
        """Snapshot current states as previous states before an update."""
        self.previous_state.copy_(self.current_state)

    def compute(self, signal: torch.Tensor, collect_statistics: bool) -> torch.Tensor:
        """Compute new states from the summed stimuli of every neuron.

        Args:
            signal (torch.Tensor): Total stimulus per neuron ``(size,)``.
            collect_statistics (bool): Record the new states into ``states_stat``.

        Returns:
            torch.Tensor: The new current states ``(size,)``.
        """
        activated = self.activation.compute(signal)
        r = self.retainment_rates
        self.current_state = r * self.current_state + (1.0 - r) * activated
        if collect_statistics:
            self.states_stat.add_sample_value(self.current_state)
        return self.current_state
