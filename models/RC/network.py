"""Echo state network: reservoir instances composed with a readout layer."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Union

import torch
import torch.nn as nn

from .config import NetworkConfig, TaskType
from .data import PatternBundle, TimeSeriesBundle
from .readout_layer import ClusterErrStatistics, ReadoutLayer, ValidationBundle
from .reservoir import AnalogReservoir, ReservoirStat

logger = logging.getLogger(__name__)

InformativeCallback = Callable[[int, int, Any], None]


@dataclass
class RegressionStageInput:
    """Predictor/ideal pairs collected for the readout together with reservoir stats.

    Attributes:
        predictors (torch.Tensor): ``(N, num_predictors)``.
        ideal_outputs (torch.Tensor): ``(N, num_outputs)``.
        reservoir_stats (List[ReservoirStat]): One entry per reservoir instance.
    """

    predictors: torch.Tensor
    ideal_outputs: torch.Tensor
    reservoir_stats: List[ReservoirStat] = field(default_factory=list)


class ReservoirInstance:
    """A reservoir together with its slices of the shared input and output vectors."""

    def __init__(self, reservoir: AnalogReservoir, input_indices: List[int], feedback_indices: List[int]):
        self.reservoir = reservoir
        self.input_indices = torch.tensor(input_indices, dtype=torch.long)
        self.feedback_indices = torch.tensor(feedback_indices, dtype=torch.long)

    @property
    def name(self) -> str:
        return self.reservoir.name

    @property
    def uses_feedback(self) -> bool:
        return self.reservoir.feedback_feature

    def compute(self, input_vector: torch.Tensor, collect_statistics: bool) -> torch.Tensor:
        return self.reservoir.compute(input_vector[self.input_indices], collect_statistics)


def _resolve(names: Sequence[str], known: List[str], what: str, owner: str) -> List[int]:
    indices = []
    for name in names:
        if name not in known:
            raise ValueError(f"reservoir instance {owner}: unknown {what} field {name!r}")
        indices.append(known.index(name))
    return indices


class EchoStateNetwork(nn.Module):
    """Reservoir instances feeding one cross-validated readout layer. 多个储层实例共同驱动一个交叉验证读出层。

    In prediction mode the network consumes one input vector per step and
    keeps its reservoir states across calls. In classification mode it
    consumes whole patterns, resetting the reservoir states (not their
    statistics) before each one and keeping only the last predictors.
    With ``max_workers > 1`` the instances run on a thread pool; use the
    network as a context manager or call :meth:`close` to release it.

    Attributes:
        cfg (NetworkConfig): Network configuration. 网络配置。
        instances (List[ReservoirInstance]): Reservoir instances in config order. 按配置顺序排列的储层实例。
        readout_layer (ReadoutLayer): Trained by :meth:`build_readout`. 由 :meth:`build_readout` 训练的读出层。
    """

    def __init__(self, cfg: NetworkConfig, dtype: torch.dtype = torch.float64):
        super().__init__()
        self.cfg = cfg
        self.dtype = dtype
        output_fields = cfg.output_fields
        reservoirs = []
        self.instances: List[ReservoirInstance] = []
        for i, inst_cfg in enumerate(cfg.instances):
            input_idx = _resolve(inst_cfg.input_fields, cfg.input_fields, "input", inst_cfg.name)
            feedback_idx = []
            if inst_cfg.reservoir.feedback_feature:
                feedback_idx = _resolve(inst_cfg.feedback_fields, output_fields, "feedback", inst_cfg.name)
            seed = cfg.randomizer_seed + i if cfg.randomizer_seed >= 0 else -1
            reservoir = AnalogReservoir(
                inst_cfg.name,
                len(input_idx),
                inst_cfg.reservoir,
                num_feedback_values=len(feedback_idx),
                augmented_states=inst_cfg.augmented_states,
                seed=seed,
                dtype=dtype,
            )
            reservoirs.append(reservoir)
            self.instances.append(ReservoirInstance(reservoir, input_idx, feedback_idx))
        self.reservoirs = nn.ModuleList(reservoirs)
        self.readout_layer = ReadoutLayer(cfg.readout)
        self._executor: Optional[ThreadPoolExecutor] = None
        if cfg.max_workers > 1 and len(self.instances) > 1:
            self._executor = ThreadPoolExecutor(max_workers=cfg.max_workers)
        logger.info(
            "Echo state network built: %d reservoir instance(s), %d predictors, %d output(s)",
            len(self.instances), self.num_predictors, len(output_fields),
        )

    @property
    def task_type(self) -> TaskType:
        return self.cfg.task_type

    @property
    def num_inputs(self) -> int:
        return len(self.cfg.input_fields)

    @property
    def num_outputs(self) -> int:
        return len(self.cfg.output_fields)

    @property
    def num_predictors(self) -> int:
        count = sum(inst.reservoir.output_predictors_count for inst in self.instances)
        if self.cfg.route_input_to_readout:
            count += self.num_inputs
        return count

    def close(self) -> None:
        """Shut the worker threads down, if any."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> "EchoStateNetwork":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def __del__(self):
        executor = self.__dict__.get("_executor")
        if executor is not None:
            executor.shutdown(wait=False)

    def _check_task(self, expected: TaskType, operation: str) -> None:
        if self.task_type != expected:
            raise RuntimeError(
                f"{operation} is only available for {expected.value} networks, "
                f"this network is configured for {self.task_type.value}"
            )

    def _as_input(self, input_vector) -> torch.Tensor:
        x = torch.as_tensor(input_vector, dtype=self.dtype).reshape(-1)
        if x.numel() != self.num_inputs:
            raise ValueError(f"expected {self.num_inputs} input values, got {x.numel()}")
        return x

    def reset(self, reset_statistics: bool = False) -> None:
        """Reset every reservoir instance to its zero state."""
        for inst in self.instances:
            inst.reservoir.reset(reset_statistics)

    def _compute_instances(self, x: torch.Tensor, collect_statistics: bool) -> List[torch.Tensor]:
        if self._executor is None:
            return [inst.compute(x, collect_statistics) for inst in self.instances]
        futures = [self._executor.submit(inst.compute, x, collect_statistics) for inst in self.instances]
        return [f.result() for f in futures]

    def compute_predictors(self, input_vector, collect_statistics: bool = True) -> torch.Tensor:
        """Advance every reservoir one step and return the predictor vector.

        Args:
            input_vector: External input vector ``(num_inputs,)``.
            collect_statistics (bool): Record neuron states into the statistics.

        Returns:
            torch.Tensor: ``(num_predictors,)``; the reservoirs' predictors in
            instance order, followed by the raw inputs when routed to the readout.
        """
        x = self._as_input(input_vector)
        parts = self._compute_instances(x, collect_statistics)
        if self.cfg.route_input_to_readout:
            parts.append(x)
        return torch.cat(parts)

    def compute_pattern_predictors(self, pattern, collect_statistics: bool = True) -> torch.Tensor:
        """Predictors after feeding a whole ``(T, num_inputs)`` pattern from zero state."""
        p = torch.as_tensor(pattern, dtype=self.dtype)
        if p.dim() != 2 or p.shape[0] == 0:
            raise ValueError(f"pattern must be a non-empty (T, F) matrix, got {tuple(p.shape)}")
        self.reset(reset_statistics=False)
        predictors = None
        for row in p:
            predictors = self.compute_predictors(row, collect_statistics)
        return predictors

    def push_feedback(self, last_real_values) -> None:
        """Store the last known output values for the next step's feedback."""
        self._check_task(TaskType.PREDICTION, "push_feedback")
        values = torch.as_tensor(last_real_values, dtype=self.dtype).reshape(-1)
        if values.numel() != self.num_outputs:
            raise ValueError(f"expected {self.num_outputs} feedback values, got {values.numel()}")
        for inst in self.instances:
            if inst.uses_feedback:
                inst.reservoir.set_feedback(values[inst.feedback_indices])

    def prepare_regression_input(
        self,
        dataset: Union[TimeSeriesBundle, PatternBundle],
        num_boot_samples: int = 0,
        informative_callback: Optional[InformativeCallback] = None,
        user_object: Any = None,
    ) -> RegressionStageInput:
        """Run the dataset through the reservoirs and pair predictors with ideals.

        A time series starts from a full reset. The first ``num_boot_samples``
        steps only warm the reservoirs up: their predictors are discarded and
        no statistics are collected. After every step the true output is
        pushed as feedback for the next one.

        Args:
            dataset: ``TimeSeriesBundle`` for prediction networks,
                ``PatternBundle`` for classification networks.
            num_boot_samples (int): Leading time-series steps to discard.
            informative_callback: Called as ``(total, processed, user_object)``
                after each processed sample.
            user_object: Passed through to the callback.

        Returns:
            RegressionStageInput: Collected data and per-instance statistics.
        """
        total = len(dataset)
        predictors, ideals = [], []
        if isinstance(dataset, TimeSeriesBundle):
            self._check_task(TaskType.PREDICTION, "time-series preparation")
            if not 0 <= num_boot_samples < total:
                raise ValueError(
                    f"num_boot_samples must be within [0, {total}), got {num_boot_samples}"
                )
            self.reset(reset_statistics=True)
            for t, (x, y) in enumerate(zip(dataset.input_vectors, dataset.output_vectors)):
                booting = t < num_boot_samples
                p = self.compute_predictors(x, collect_statistics=not booting)
                if not booting:
                    predictors.append(p)
                    ideals.append(y)
                self.push_feedback(y)
                if informative_callback is not None:
                    informative_callback(total, t + 1, user_object)
        elif isinstance(dataset, PatternBundle):
            self._check_task(TaskType.CLASSIFICATION, "pattern preparation")
            if total == 0:
                raise ValueError("pattern bundle is empty")
            self.reset(reset_statistics=True)
            for i, (pattern, y) in enumerate(zip(dataset.input_patterns, dataset.output_vectors)):
                predictors.append(self.compute_pattern_predictors(pattern))
                ideals.append(y)
                if informative_callback is not None:
                    informative_callback(total, i + 1, user_object)
        else:
            raise ValueError(f"unsupported dataset type {type(dataset).__name__}")

        rsi = RegressionStageInput(
            predictors=torch.stack(predictors),
            ideal_outputs=torch.stack([y.to(self.dtype) for y in ideals]),
            reservoir_stats=[inst.reservoir.collect_statistics() for inst in self.instances],
        )
        logger.info(
            "Regression input prepared: %d samples (%d boot), %d predictors",
            rsi.predictors.shape[0], num_boot_samples, self.num_predictors,
        )
        return rsi

    def build_readout(
        self, rsi: RegressionStageInput, trainer: Optional[Callable] = None
    ) -> ValidationBundle:
        """Train the readout layer on prepared data."""
        return self.readout_layer.build(rsi.predictors, rsi.ideal_outputs, trainer=trainer)

    def compute_output(self, predictors: torch.Tensor) -> torch.Tensor:
        """Readout output vector for a predictor vector (or a batch of them)."""
        return self.readout_layer.compute(predictors)

    def compute(self, input_vector) -> torch.Tensor:
        """One prediction step: predictors with statistics, then the readout.

        The stored feedback is not touched; push the real values with
        :meth:`push_feedback` between calls when they are known.
        """
        self._check_task(TaskType.PREDICTION, "compute")
        if not self.readout_layer.trained:
            raise RuntimeError("readout layer is not built, call build_readout() first")
        return self.compute_output(self.compute_predictors(input_vector, collect_statistics=True))

    def compute_pattern(self, pattern) -> torch.Tensor:
        """Classify one ``(T, num_inputs)`` pattern."""
        self._check_task(TaskType.CLASSIFICATION, "compute_pattern")
        if not self.readout_layer.trained:
            raise RuntimeError("readout layer is not built, call build_readout() first")
        return self.compute_output(self.compute_pattern_predictors(pattern))

    def forward(self, input_vector) -> torch.Tensor:
        if self.task_type == TaskType.CLASSIFICATION:
            return self.compute_pattern(input_vector)
        return self.compute(input_vector)

    @property
    def cluster_error_statistics(self) -> List[ClusterErrStatistics]:
        return self.readout_layer.cluster_error_statistics

    def collect_statistics(self) -> List[ReservoirStat]:
        return [inst.reservoir.collect_statistics() for inst in self.instances]
