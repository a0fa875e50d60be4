"""Configuration dataclasses for reservoirs, the readout layer and the network."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .activation import ACTIVATION_NAMES


class TaskType(str, Enum):
    """Kind of task solved by a network or by one readout cluster."""

    PREDICTION = "prediction"
    CLASSIFICATION = "classification"


class TopologyKind(str, Enum):
    RANDOM = "random"
    RING = "ring"
    DTT = "dtt"


def _check_density(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be within [0, 1], got {value}")


@dataclass
class RandomTopologyCfg:
    """Random schema parameters.

    Attributes:
        connections_density (float): Fraction of all ``size^2`` pairs connected.
    """

    connections_density: float = 0.1

    def __post_init__(self):
        _check_density("connections_density", self.connections_density)


@dataclass
class RingTopologyCfg:
    """Ring schema parameters.

    Attributes:
        bidirection (bool): Also connect each neuron to its successor.
        self_connections_density (float): Fraction of self-connected neurons.
        inter_connections_density (float): Fraction of the ``size * (size - 1)``
            off-diagonal pairs additionally connected.
    """

    bidirection: bool = False
    self_connections_density: float = 0.0
    inter_connections_density: float = 0.0

    def __post_init__(self):
        _check_density("self_connections_density", self.self_connections_density)
        _check_density("inter_connections_density", self.inter_connections_density)


@dataclass
class DTTTopologyCfg:
    self_connections_density: float = 0.0

    def __post_init__(self):
        _check_density("self_connections_density", self.self_connections_density)


@dataclass
class ReservoirConfig:
    """Hyper-parameters of one analog reservoir.

    Attributes:
        size (int): Number of reservoir neurons.
        topology (TopologyKind): Internal connection schema.
        random_topology (RandomTopologyCfg): Used when ``topology`` is ``random``.
        ring_topology (RingTopologyCfg): Used when ``topology`` is ``ring``.
        dtt_topology (DTTTopologyCfg): Used when ``topology`` is ``dtt``.
        activation (str): Neuron activation name (see ``get_activation``).
        activation_params (Dict[str, Any]): Keyword arguments of the activation.
        input_connection_density (float): Fraction of neurons each input field
            is connected to (at least one neuron).
        input_weight_scale (float): Input weights are drawn from ``[-s, s]``.
        bias_scale (float): Input biases are drawn from ``[-s, s]``.
        internal_weight_scale (float): Internal weights are drawn from ``[-s, s]``.
        retainment_neurons_density (float): Fraction of leaky-integrator neurons.
        retainment_min_rate (float): Lower bound of drawn retainment rates.
        retainment_max_rate (float): Upper bound of drawn retainment rates.
        context_neuron_feedback_density (float): Fraction of neurons receiving
            the context neuron's signal; ``0`` disables the context neuron.
        context_neuron_in_weight_scale (float): Scale of neuron->context weights.
        context_neuron_out_weight_scale (float): Scale of context->neuron weights.
        context_activation (str): Activation of the context neuron.
        feedback_connection_density (float): Fraction of neurons each feedback
            value is connected to; ``0`` disables feedback.
        feedback_weight_scale (float): Scale of feedback weights.
    """

    size: int = 100
    topology: TopologyKind = TopologyKind.RANDOM
    random_topology: RandomTopologyCfg = field(default_factory=RandomTopologyCfg)
    ring_topology: RingTopologyCfg = field(default_factory=RingTopologyCfg)
    dtt_topology: DTTTopologyCfg = field(default_factory=DTTTopologyCfg)
    activation: str = "tanh"
    activation_params: Dict[str, Any] = field(default_factory=dict)
    input_connection_density: float = 1.0
    input_weight_scale: float = 1.0
    bias_scale: float = 0.0
    internal_weight_scale: float = 1.0
    retainment_neurons_density: float = 0.0
    retainment_min_rate: float = 0.0
    retainment_max_rate: float = 0.0
    context_neuron_feedback_density: float = 0.0
    context_neuron_in_weight_scale: float = 1.0
    context_neuron_out_weight_scale: float = 1.0
    context_activation: str = "tanh"
    feedback_connection_density: float = 0.0
    feedback_weight_scale: float = 1.0

    def __post_init__(self):
        if self.size <= 0:
            raise ValueError(f"reservoir size must be positive, got {self.size}")
        self.topology = TopologyKind(self.topology)
        for name in (self.activation, self.context_activation):
            if name.lower() not in ACTIVATION_NAMES:
                raise ValueError(f"unknown activation {name}")
        for name in (
            "input_connection_density",
            "retainment_neurons_density",
            "context_neuron_feedback_density",
            "feedback_connection_density",
        ):
            _check_density(name, getattr(self, name))
        if not 0.0 <= self.retainment_min_rate <= self.retainment_max_rate <= 0.99:
            raise ValueError(
                "retainment rates must satisfy 0 <= min <= max <= 0.99, got "
                f"min={self.retainment_min_rate}, max={self.retainment_max_rate}"
            )

    @property
    def feedback_feature(self) -> bool:
        return int(round(self.feedback_connection_density * self.size)) > 0

    @property
    def context_neuron_feature(self) -> bool:
        return int(round(self.context_neuron_feedback_density * self.size)) > 0


@dataclass
class ReservoirInstanceCfg:
    """One reservoir instance inside a network. 网络中的单个储层实例。

    Attributes:
        name (str): Instance identifier. 实例标识符。
        reservoir (ReservoirConfig): Reservoir hyper-parameters. 储层超参数。
        input_fields (List[str]): Network input fields fed to this instance. 输入到该实例的网络输入字段。
        feedback_fields (List[str]): Network output fields fed back to this
            instance; required in prediction networks when the reservoir has
            feedback enabled. 反馈到该实例的网络输出字段，预测网络中储层启用反馈时必须提供。
        augmented_states (bool): Also emit squared states as predictors. 是否额外输出状态平方作为预测因子。
    """

    name: str
    reservoir: ReservoirConfig
    input_fields: List[str]
    feedback_fields: List[str] = field(default_factory=list)
    augmented_states: bool = False

    def __post_init__(self):
        if not self.input_fields:
            raise ValueError(f"reservoir instance {self.name} has no input fields")


@dataclass
class ReadoutUnitCfg:
    """Readout cluster of one output field.

    Attributes:
        name (str): Output field name.
        task_type (TaskType): Prediction (regression) or binary classification.
        output_range (Tuple[float, float]): Range of the field's values.
        test_data_ratio (float): Fraction of samples in one validation fold.
        num_of_folds (int): Number of folds, ``0`` derives it automatically.
        trainer (Optional[Callable]): Regression procedure for this field;
            ``None`` uses the layer's default.
    """

    name: str
    task_type: TaskType = TaskType.PREDICTION
    output_range: Tuple[float, float] = (-1.0, 1.0)
    test_data_ratio: float = 0.1
    num_of_folds: int = 0
    trainer: Optional[Callable] = None

    def __post_init__(self):
        self.task_type = TaskType(self.task_type)
        if self.output_range[0] >= self.output_range[1]:
            raise ValueError(f"invalid output range {self.output_range} of {self.name}")
        if self.num_of_folds < 0:
            raise ValueError(f"num_of_folds must be >= 0, got {self.num_of_folds}")
        if not 0.0 < self.test_data_ratio <= 1.0:
            raise ValueError(f"test_data_ratio must be within (0, 1], got {self.test_data_ratio}")


@dataclass
class ReadoutLayerCfg:
    """Readout layer parameters. 读出层参数。

    Attributes:
        units (List[ReadoutUnitCfg]): One entry per output field, in order. 每个输出字段一项，按顺序排列。
        data_range (Tuple[float, float]): Admissible range of the data. 数据的允许范围。
        randomizer_seed (int): Seed of the shuffle and stratification. 打乱与分层划分的随机种子。
    """

    units: List[ReadoutUnitCfg]
    data_range: Tuple[float, float] = (-1.0, 1.0)
    randomizer_seed: int = 0

    def __post_init__(self):
        if not self.units:
            raise ValueError("readout layer needs at least one unit")
        if self.data_range[0] >= self.data_range[1]:
            raise ValueError(f"invalid data range {self.data_range}")

    @property
    def output_fields(self) -> List[str]:
        return [u.name for u in self.units]


@dataclass
class NetworkConfig:
    """Echo state network composed of reservoir instances and a readout layer. 由储层实例与读出层组成的回声状态网络。

    Attributes:
        input_fields (List[str]): Names of the external input vector's fields. 外部输入向量的字段名。
        instances (List[ReservoirInstanceCfg]): Reservoir instances. 储层实例列表。
        readout (ReadoutLayerCfg): Readout layer; its units name the outputs. 读出层，其单元命名输出字段。
        task_type (TaskType): Time-series prediction or pattern classification. 时间序列预测或模式分类。
        route_input_to_readout (bool): Append raw inputs to the predictors. 是否将原始输入附加到预测因子。
        randomizer_seed (int): Reservoir construction seed, negative for a
            non-deterministic build. 储层构建的随机种子，负数表示不确定性构建。
        max_workers (int): Threads computing reservoir instances, ``1`` runs
            them sequentially. 计算储层实例的线程数，``1`` 表示顺序执行。
    """

    input_fields: List[str]
    instances: List[ReservoirInstanceCfg]
    readout: ReadoutLayerCfg
    task_type: TaskType = TaskType.PREDICTION
    route_input_to_readout: bool = False
    randomizer_seed: int = -1
    max_workers: int = 1

    def __post_init__(self):
        self.task_type = TaskType(self.task_type)
        if not self.input_fields:
            raise ValueError("network needs at least one input field")
        if len(set(self.input_fields)) != len(self.input_fields):
            raise ValueError("input field names must be unique")
        if not self.instances:
            raise ValueError("network needs at least one reservoir instance")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.task_type != TaskType.PREDICTION:
            for inst in self.instances:
                if inst.feedback_fields and inst.reservoir.feedback_feature:
                    raise ValueError(
                        f"instance {inst.name}: feedback is only available for prediction tasks"
                    )
        else:
            for inst in self.instances:
                if inst.reservoir.feedback_feature and not inst.feedback_fields:
                    raise ValueError(
                        f"instance {inst.name}: feedback connections are configured but no feedback fields are named"
                    )

    @property
    def output_fields(self) -> List[str]:
        return self.readout.output_fields
