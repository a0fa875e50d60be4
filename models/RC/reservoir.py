"""Analog reservoir: neurons, input block, topology, context neuron and feedback.

One propagation step (:meth:`AnalogReservoir.compute`) is synchronous: every
neuron reads the *previous* states of its party neurons, so all neurons are
updated together in one vectorised step. The context neuron is updated
afterwards from the *new* states.
"""

from dataclasses import dataclass
from typing import Optional

import torch
import torch.nn as nn

from .activation import get_activation
from .config import ReservoirConfig, TopologyKind
from .input_block import InputBlock
from .neuron import AnalogNeurons
from .rand import create_generator, shuffled_indices, uniform, uniform_between
from .stats import BasicStat
from .topology import (
    build_dtt_topology,
    build_random_topology,
    build_ring_topology,
)


@dataclass
class ReservoirStat:
    """Key state statistics of a reservoir, used to spot saturated neurons.

    Attributes:
        name (str): Reservoir identifier.
        num_neurons (int): Reservoir size.
        neurons_avg_states_stat (BasicStat): Statistic of per-neuron mean states.
        neurons_max_states_stat (BasicStat): Statistic of per-neuron max states.
        neurons_min_states_stat (BasicStat): Statistic of per-neuron min states.
        neurons_states_spans_stat (BasicStat): Statistic of per-neuron state spans.
        context_neuron_states_stat (Optional[BasicStat]): States of the context
            neuron, ``None`` without the context feature.
    """

    name: str
    num_neurons: int
    neurons_avg_states_stat: BasicStat
    neurons_max_states_stat: BasicStat
    neurons_min_states_stat: BasicStat
    neurons_states_spans_stat: BasicStat
    context_neuron_states_stat: Optional[BasicStat] = None


class AnalogReservoir(nn.Module):
    """Fixed random recurrent network of analog neurons. 由模拟神经元构成的固定随机递归网络。

    Attributes:
        name (str): Reservoir identifier. 储层标识符。
        cfg (ReservoirConfig): Hyper-parameters the reservoir was built from. 构建储层所用的超参数。
        neurons (AnalogNeurons): Reservoir neuron population. 储层神经元群体。
        input_block (InputBlock): Input connections and biases. 输入连接与偏置。
        adjacency (SparseAdjacency): Internal connections. 内部连接。
        context_neuron (Optional[AnalogNeurons]): Single context neuron. 单个上下文神经元。
        augmented_states (bool): Emit squared states as extra predictors. 是否输出状态平方作为额外预测因子。
    """

    def __init__(
        self,
        name: str,
        num_inputs: int,
        cfg: ReservoirConfig,
        num_feedback_values: int = 0,
        augmented_states: bool = False,
        seed: int = -1,
        dtype: torch.dtype = torch.float64,
    ):
        """Build the reservoir structure.

        Args:
            name (str): Reservoir identifier.
            num_inputs (int): Length of the input vector.
            cfg (ReservoirConfig): Reservoir hyper-parameters.
            num_feedback_values (int): Length of the feedback vector.
            augmented_states (bool): Emit squared states as extra predictors.
            seed (int): Same non-negative seed gives the same reservoir;
                a negative seed gives a different one on every build.
            dtype (torch.dtype): Floating point dtype of states and weights.
        """
        super().__init__()
        self.name = name
        self.cfg = cfg
        self.dtype = dtype
        self.augmented_states = augmented_states
        gen = create_generator(seed)
        n = cfg.size

        neurons_per_input = max(1, int(round(n * cfg.input_connection_density)))
        self.input_block = InputBlock(
            num_inputs,
            n,
            cfg.bias_scale,
            cfg.input_weight_scale,
            neurons_per_input,
            gen,
            dtype=dtype,
        )

        # retainment rates: a random subset of neurons become leaky integrators
        rates = torch.zeros(n, dtype=dtype)
        retainment_count = int(round(n * cfg.retainment_neurons_density))
        if retainment_count > 0 and cfg.retainment_max_rate > 0:
            rates[:retainment_count] = uniform_between(
                gen, retainment_count, cfg.retainment_min_rate, cfg.retainment_max_rate, dtype
            )
            rates = rates[shuffled_indices(gen, n)]
        self.neurons = AnalogNeurons(
            get_activation(cfg.activation, **cfg.activation_params), n, rates, dtype
        )

        # context neuron
        context_count = int(round(n * cfg.context_neuron_feedback_density))
        self.context_neuron: Optional[AnalogNeurons] = None
        if context_count > 0:
            self.context_neuron = AnalogNeurons(get_activation(cfg.context_activation), 1, 0.0, dtype)
            neurons2context = uniform(gen, n, cfg.context_neuron_in_weight_scale, dtype)
            context2neurons = torch.zeros(n, dtype=dtype)
            chosen = shuffled_indices(gen, n)[:context_count]
            context2neurons[chosen] = uniform(gen, context_count, cfg.context_neuron_out_weight_scale, dtype)
            self.register_buffer("neurons2context_weights", neurons2context)
            self.register_buffer("context2neurons_weights", context2neurons)

        # feedback
        neurons_per_feedback = int(round(cfg.feedback_connection_density * n))
        self.feedback_feature = neurons_per_feedback > 0 and num_feedback_values > 0
        self.register_buffer("feedback", torch.zeros(num_feedback_values, dtype=dtype))
        if self.feedback_feature:
            fb_weights = torch.zeros(num_feedback_values, n, dtype=dtype)
            for out_idx in range(num_feedback_values):
                chosen = shuffled_indices(gen, n)[:neurons_per_feedback]
                fb_weights[out_idx, chosen] = uniform(gen, neurons_per_feedback, cfg.feedback_weight_scale, dtype)
            self.register_buffer("feedback_weights", fb_weights)

        # internal topology
        if cfg.topology == TopologyKind.RANDOM:
            self.adjacency = build_random_topology(
                n, cfg.random_topology.connections_density, cfg.internal_weight_scale, gen
            )
        elif cfg.topology == TopologyKind.RING:
            ring = cfg.ring_topology
            self.adjacency = build_ring_topology(
                n,
                ring.bidirection,
                ring.self_connections_density,
                ring.inter_connections_density,
                cfg.internal_weight_scale,
                gen,
            )
        elif cfg.topology == TopologyKind.DTT:
            self.adjacency = build_dtt_topology(
                n, cfg.dtt_topology.self_connections_density, cfg.internal_weight_scale, gen
            )
        else:
            raise ValueError(f"unknown topology {cfg.topology}")
        self.register_buffer("internal_weights", self.adjacency.to_sparse_tensor(dtype))

        self.register_buffer("predictors", torch.zeros(self.output_predictors_count, dtype=dtype))

    @property
    def size(self) -> int:
        return self.neurons.size

    @property
    def num_inputs(self) -> int:
        return self.input_block.num_inputs

    @property
    def context_neuron_feature(self) -> bool:
        return self.context_neuron is not None

    @property
    def output_predictors_count(self) -> int:
        return self.size * 2 if self.augmented_states else self.size

    def reset(self, reset_statistics: bool = False) -> None:
        """Return neurons (and the context neuron) to the zero state.

        Weights and topology are untouched. The stored feedback is zeroed too.

        Args:
            reset_statistics (bool): Also forget the collected state statistics.
        """
        self.neurons.reset(reset_statistics)
        if self.context_neuron is not None:
            self.context_neuron.reset(reset_statistics)
        self.feedback.zero_()
        self.predictors.zero_()

    def set_feedback(self, values: torch.Tensor) -> None:
        """Store feedback values for the next :meth:`compute` call."""
        values = torch.as_tensor(values, dtype=self.dtype).reshape(-1)
        if values.numel() != self.feedback.numel():
            raise ValueError(
                f"reservoir {self.name} expects {self.feedback.numel()} feedback values, got {values.numel()}"
            )
        self.feedback.copy_(values)

    @torch.no_grad()
    def compute(self, input_values: torch.Tensor, collect_statistics: bool) -> torch.Tensor:
        """Advance the reservoir by one step.

        Args:
            input_values (torch.Tensor): Input vector ``(num_inputs,)``.
            collect_statistics (bool): Record the new states into the running
                statistics (typically ``False`` during the boot phase).

        Returns:
            torch.Tensor: Predictors ``(output_predictors_count,)``.
        """
        self.input_block.update(input_values)
        self.neurons.store_current_state()

        signal = self.input_block.signal()
        prev = self.neurons.previous_state.unsqueeze(1)
        signal = signal + torch.sparse.mm(self.internal_weights, prev).squeeze(1)
        if self.context_neuron is not None:
            signal = signal + self.context2neurons_weights * self.context_neuron.current_state[0]
        if self.feedback_feature:
            signal = signal + self.feedback @ self.feedback_weights

        states = self.neurons.compute(signal, collect_statistics)
        n = self.size
        self.predictors[:n] = states
        if self.augmented_states:
            self.predictors[n:] = states * states

        # barrier: the context neuron reads the new states of all neurons
        if self.context_neuron is not None:
            context_signal = (self.neurons2context_weights * states).sum().reshape(1)
            self.context_neuron.store_current_state()
            self.context_neuron.compute(context_signal, collect_statistics)
        return self.predictors.clone()

    def forward(self, input_values: torch.Tensor, collect_statistics: bool = True) -> torch.Tensor:
        return self.compute(input_values, collect_statistics)

    def collect_statistics(self) -> ReservoirStat:
        """Summarise the neurons' running state statistics."""
        stat = self.neurons.states_stat
        avg_stat, max_stat, min_stat, span_stat = (BasicStat(dtype=self.dtype) for _ in range(4))
        if not stat.empty:
            avg_stat.add_sample_values(stat.arith_avg)
            max_stat.add_sample_values(stat.max)
            min_stat.add_sample_values(stat.min)
            span_stat.add_sample_values(stat.span)
        context_stat = None
        if self.context_neuron is not None:
            context_stat = self.context_neuron.states_stat.clone()
        return ReservoirStat(
            name=self.name,
            num_neurons=self.size,
            neurons_avg_states_stat=avg_stat,
            neurons_max_states_stat=max_stat,
            neurons_min_states_stat=min_stat,
            neurons_states_spans_stat=span_stat,
            context_neuron_states_stat=context_stat,
        )
