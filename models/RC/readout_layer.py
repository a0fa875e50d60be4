"""Cross-validated ensemble readout layer.

For every output field the layer trains a *cluster* of regression units, one
per fold. Unit ``k`` is trained on every fold except ``k`` and validated on
fold ``k``, so the validation predictions of a cluster cover each sample
exactly once. At inference the cluster output is the average of its units'
outputs weighted by the number of samples each unit has seen.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Union

import torch

from .config import ReadoutLayerCfg, ReadoutUnitCfg, TaskType
from .rand import create_generator, shuffled_indices
from .readout import ReadoutUnit, RidgeTrainer
from .stats import BasicStat, BinDistribution, BinErrStat

logger = logging.getLogger(__name__)

MAX_NUM_OF_FOLDS = 100
MAX_RATIO_OF_TEST_DATA = 1.0 / 3.0
MIN_LENGTH_OF_TEST_DATASET = 2


@dataclass
class ValidationBundle:
    """Pessimistic validation protocol of a built readout layer.

    Rows follow the order of the samples passed to ``build``.

    Attributes:
        computed_outputs (torch.Tensor): ``(N, F)`` values computed by the unit
            that held the sample out.
        ideal_outputs (torch.Tensor): ``(N, F)`` ideal values.
        fold_assignments (torch.Tensor): ``(N, F)`` fold holding each sample out.
    """

    computed_outputs: torch.Tensor
    ideal_outputs: torch.Tensor
    fold_assignments: torch.Tensor


class ClusterErrStatistics:
    """Error statistics of one cluster over its validation protocol.

    Attributes:
        name (str): Output field name.
        task_type (TaskType): Task type of the field.
        bin_border (Optional[float]): Class border, classification only.
        num_of_readout_units (int): Units (folds) in the cluster.
        precision_err_stat (BasicStat): Absolute errors ``|computed - ideal|``.
        binary_err_stat (Optional[BinErrStat]): Binary errors, classification only.
    """

    def __init__(
        self,
        name: str,
        task_type: TaskType,
        num_of_readout_units: int,
        bin_border: Optional[float] = None,
    ):
        self.name = name
        self.task_type = task_type
        self.num_of_readout_units = num_of_readout_units
        self.bin_border = bin_border
        self.precision_err_stat = BasicStat()
        self.binary_err_stat = None
        if task_type == TaskType.CLASSIFICATION:
            self.binary_err_stat = BinErrStat(bin_border)

    def update(self, computed_value: float, ideal_value: float) -> None:
        self.precision_err_stat.add_sample_value(abs(computed_value - ideal_value))
        if self.binary_err_stat is not None:
            self.binary_err_stat.update(computed_value, ideal_value)

    def clone(self) -> "ClusterErrStatistics":
        other = ClusterErrStatistics(
            self.name, self.task_type, self.num_of_readout_units, self.bin_border
        )
        other.precision_err_stat = self.precision_err_stat.clone()
        if self.binary_err_stat is not None:
            other.binary_err_stat = self.binary_err_stat.clone()
        return other


def validation_fold_length(num_samples: int, test_data_ratio: float) -> int:
    """Length of one validation fold, ``round(num_samples * test_data_ratio)``.

    Raises:
        ValueError: If the ratio exceeds 1/3 or the fold would be shorter than
            two samples.
    """
    if test_data_ratio > MAX_RATIO_OF_TEST_DATA:
        raise ValueError(
            f"test data ratio {test_data_ratio} is greater than {MAX_RATIO_OF_TEST_DATA:.4f}"
        )
    length = int(round(num_samples * test_data_ratio))
    if length < MIN_LENGTH_OF_TEST_DATASET:
        raise ValueError(
            f"number of test samples {length} is less than {MIN_LENGTH_OF_TEST_DATASET}"
        )
    return length


def resolve_num_of_folds(num_samples: int, test_length: int, requested: int) -> int:
    """Explicit fold count, or ``num_samples // test_length`` capped at 100."""
    if requested > 0:
        if not 2 <= requested <= num_samples:
            raise ValueError(
                f"number of folds must be within [2, {num_samples}], got {requested}"
            )
        return requested
    return min(num_samples // test_length, MAX_NUM_OF_FOLDS)


def divide_for_forecast(num_samples: int, num_folds: int) -> List[List[int]]:
    """Contiguous chunks in sample order, remainder dealt round-robin."""
    chunk = num_samples // num_folds
    folds = [list(range(k * chunk, (k + 1) * chunk)) for k in range(num_folds)]
    for i, pos in enumerate(range(num_folds * chunk, num_samples)):
        folds[i % num_folds].append(pos)
    return folds


def divide_for_classification(
    values: torch.Tensor, bin_border: float, num_folds: int
) -> List[List[int]]:
    """Stratified folds keeping the bin 0 / bin 1 ratio in every fold.

    Each fold first receives ``max(1, c0 // k)`` bin 0 and ``max(1, c1 // k)``
    bin 1 samples, the remaining samples of each bin are dealt round-robin.

    Raises:
        ValueError: If a bin cannot give every fold its share.
    """
    values = torch.as_tensor(values).reshape(-1)
    bin1 = [i for i, v in enumerate(values.tolist()) if v >= bin_border]
    bin0 = [i for i, v in enumerate(values.tolist()) if v < bin_border]
    per_fold0 = max(1, len(bin0) // num_folds)
    per_fold1 = max(1, len(bin1) // num_folds)
    if per_fold0 * num_folds > len(bin0):
        raise ValueError(
            f"insufficient bin 0 samples ({len(bin0)}) for {num_folds} folds"
        )
    if per_fold1 * num_folds > len(bin1):
        raise ValueError(
            f"insufficient bin 1 samples ({len(bin1)}) for {num_folds} folds"
        )
    folds = []
    for k in range(num_folds):
        folds.append(
            bin0[k * per_fold0:(k + 1) * per_fold0] + bin1[k * per_fold1:(k + 1) * per_fold1]
        )
    for i, pos in enumerate(bin0[num_folds * per_fold0:]):
        folds[i % num_folds].append(pos)
    for i, pos in enumerate(bin1[num_folds * per_fold1:]):
        folds[i % num_folds].append(pos)
    return folds


def _as_matrix(data: Union[torch.Tensor, Sequence], dtype: torch.dtype) -> torch.Tensor:
    if isinstance(data, torch.Tensor):
        return data.to(dtype)
    return torch.stack([torch.as_tensor(row, dtype=dtype) for row in data])


class ReadoutLayer:
    """Readout layer holding one cluster of trained units per output field. 每个输出字段持有一组已训练单元的读出层。

    Attributes:
        cfg (ReadoutLayerCfg): Layer configuration. 读出层配置。
        default_trainer (Callable): Trainer used when neither ``build`` nor the
            unit configuration supplies one. 当 ``build`` 与单元配置均未提供训练器时使用的默认训练器。
    """

    def __init__(self, cfg: ReadoutLayerCfg, default_trainer: Optional[Callable] = None):
        self.cfg = cfg
        self.default_trainer = default_trainer if default_trainer is not None else RidgeTrainer()
        self._clusters: Optional[List[List[ReadoutUnit]]] = None
        self._cluster_err_stats: List[ClusterErrStatistics] = []

    @property
    def num_outputs(self) -> int:
        return len(self.cfg.units)

    @property
    def trained(self) -> bool:
        return self._clusters is not None

    @property
    def clusters(self) -> List[List[ReadoutUnit]]:
        if self._clusters is None:
            raise RuntimeError("readout layer is not built, call build() first")
        return self._clusters

    @property
    def cluster_error_statistics(self) -> List[ClusterErrStatistics]:
        """Copies of the per-field error statistics, in output field order."""
        return [ces.clone() for ces in self._cluster_err_stats]

    def _check_output_range(self, unit_cfg: ReadoutUnitCfg) -> None:
        lo, hi = unit_cfg.output_range
        dlo, dhi = self.cfg.data_range
        if lo < dlo or hi > dhi:
            raise ValueError(
                f"readout unit {unit_cfg.name} output range <{lo}; {hi}> is outside "
                f"the data range <{dlo}; {dhi}>"
            )

    def build(
        self,
        predictors: Union[torch.Tensor, Sequence],
        ideal_outputs: Union[torch.Tensor, Sequence],
        trainer: Optional[Callable] = None,
    ) -> ValidationBundle:
        """Train every cluster and return the validation protocol.

        Args:
            predictors: Predictor vectors ``(N, P)``.
            ideal_outputs: Ideal output vectors ``(N, F)``.
            trainer (Optional[Callable]): Trainer overriding the configured ones.

        Returns:
            ValidationBundle: Fold-by-fold validation values of every field.
        """
        X = _as_matrix(predictors, torch.float64)
        Y = _as_matrix(ideal_outputs, torch.float64)
        if X.shape[0] != Y.shape[0]:
            raise ValueError(
                f"{X.shape[0]} predictor vectors do not match {Y.shape[0]} ideal vectors"
            )
        if Y.dim() != 2 or Y.shape[1] != self.num_outputs:
            raise ValueError(
                f"ideal vectors must have {self.num_outputs} values, got shape {tuple(Y.shape)}"
            )
        num_samples = X.shape[0]
        for unit_cfg in self.cfg.units:
            self._check_output_range(unit_cfg)

        # one shuffle shared by all fields
        gen = create_generator(self.cfg.randomizer_seed)
        order = shuffled_indices(gen, num_samples)
        X_sh, Y_sh = X[order], Y[order]

        computed = torch.zeros_like(Y)
        fold_assignments = torch.full(Y.shape, -1, dtype=torch.long)
        clusters: List[List[ReadoutUnit]] = []
        err_stats: List[ClusterErrStatistics] = []
        bin_border = (self.cfg.data_range[0] + self.cfg.data_range[1]) / 2.0

        for field_idx, unit_cfg in enumerate(self.cfg.units):
            test_length = validation_fold_length(num_samples, unit_cfg.test_data_ratio)
            num_folds = resolve_num_of_folds(num_samples, test_length, unit_cfg.num_of_folds)
            values = Y_sh[:, field_idx]
            if unit_cfg.task_type == TaskType.CLASSIFICATION:
                distr = BinDistribution(bin_border)
                distr.update(values)
                folds = divide_for_classification(values, bin_border, num_folds)
                logger.debug("field %s bin distribution %s", unit_cfg.name, distr.num_of)
            else:
                folds = divide_for_forecast(num_samples, num_folds)

            fit = trainer or unit_cfg.trainer or self.default_trainer
            ces = ClusterErrStatistics(unit_cfg.name, unit_cfg.task_type, num_folds, bin_border)
            cluster = []
            for fold_idx, val_pos in enumerate(folds):
                train_pos = [p for k, f in enumerate(folds) if k != fold_idx for p in f]
                val_idx = torch.tensor(val_pos, dtype=torch.long)
                train_idx = torch.tensor(train_pos, dtype=torch.long)
                unit = fit(
                    X_sh[train_idx],
                    Y_sh[train_idx, field_idx:field_idx + 1],
                    X_sh[val_idx],
                    Y_sh[val_idx, field_idx:field_idx + 1],
                )
                cluster.append(unit)
                val_out = unit.compute(X_sh[val_idx]).reshape(-1)
                original_idx = order[val_idx]
                computed[original_idx, field_idx] = val_out.to(computed.dtype)
                fold_assignments[original_idx, field_idx] = fold_idx
                for c, i in zip(val_out.tolist(), values[val_idx].tolist()):
                    ces.update(c, i)
                logger.debug(
                    "field %s fold %d/%d: %d training, %d validation samples",
                    unit_cfg.name, fold_idx + 1, num_folds, len(train_pos), len(val_pos),
                )
            clusters.append(cluster)
            err_stats.append(ces)
            logger.info(
                "Readout cluster %s trained: %d folds, mean abs error %.6f",
                unit_cfg.name, num_folds, ces.precision_err_stat.arith_avg.item(),
            )

        self._clusters = clusters
        self._cluster_err_stats = err_stats
        return ValidationBundle(computed, Y.clone(), fold_assignments)

    def _compute_cluster(self, cluster: List[ReadoutUnit], X: torch.Tensor) -> torch.Tensor:
        weights = torch.tensor([u.ensemble_weight for u in cluster], dtype=torch.float64)
        outputs = torch.stack([u.compute(X).reshape(-1).to(torch.float64) for u in cluster], dim=0)
        if weights.sum() <= 0:
            return outputs.mean(dim=0)
        return (weights.unsqueeze(1) * outputs).sum(dim=0) / weights.sum()

    @torch.no_grad()
    def compute(self, predictors: torch.Tensor) -> torch.Tensor:
        """Ensemble output ``(F,)`` for one predictor vector or ``(N, F)`` for a batch."""
        clusters = self.clusters
        X = torch.as_tensor(predictors, dtype=torch.float64)
        single = X.dim() == 1
        if single:
            X = X.unsqueeze(0)
        out = torch.stack([self._compute_cluster(c, X) for c in clusters], dim=1)
        return out[0] if single else out
