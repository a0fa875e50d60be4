"""Readout units and the regression procedures that train them.

A trainer is any callable with the signature::

    trainer(train_X, train_Y, val_X, val_Y) -> ReadoutUnit

where ``*_X`` are predictor matrices ``(N, P)`` and ``*_Y`` ideal values
``(N, 1)``. The returned unit must expose ``compute(predictors)`` and the
``training_error_stat`` / ``testing_error_stat`` sample counts used to weight
it inside an ensemble.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import torch
import torch.nn as nn
import torch.nn.functional as F

from .stats import BasicStat

logger = logging.getLogger(__name__)


# Ridge Regression Readout (Closed-form Solution)
@torch.no_grad()
def ridge_readout_fit(
    H: torch.Tensor, Y: torch.Tensor, lam: float = 1e-3, add_bias: bool = True
) -> Tuple[torch.Tensor, torch.Tensor]:
    """Solve ridge regression readout weights. 求解岭回归读出权重。

    Args:
        H (torch.Tensor): Predictor matrix ``(N, P)``. 预测因子矩阵 ``(N, P)``。
        Y (torch.Tensor): Target matrix ``(N, C)``. 目标矩阵 ``(N, C)``。
        lam (float): L2 regularisation strength ``λ``. L2 正则化系数 ``λ``。
        add_bias (bool): Whether to append a bias column during fitting. 是否在拟合时添加偏置列。

    Returns:
        Tuple[torch.Tensor, torch.Tensor]: Weight matrix ``(P, C)`` and bias ``(C,)``. 返回权重矩阵 ``(P, C)`` 与偏置向量 ``(C,)``。
    """
    if add_bias:
        Hb = torch.cat(
            [H, torch.ones(H.shape[0], 1, dtype=H.dtype, device=H.device)], dim=1
        )  # [N, P+1]
    else:
        Hb = H  # [N, P]

    I = torch.eye(Hb.shape[1], dtype=H.dtype, device=H.device)
    Wfull = torch.linalg.solve(Hb.T @ Hb + lam * I, Hb.T @ Y)  # [P+1, C]
    if add_bias:
        W, b = Wfull[:-1, :], Wfull[-1:, :].view(-1)
    else:
        W, b = Wfull, torch.zeros(Y.shape[1], dtype=H.dtype, device=H.device)
    return W, b


@torch.no_grad()
def ridge_readout_predict(
    H: torch.Tensor, W: torch.Tensor, b: torch.Tensor
) -> torch.Tensor:
    """Apply linear readout ``H @ W + b`` to predictors. 将线性读出应用于预测因子。

    Args:
        H (torch.Tensor): Predictor matrix ``(N, P)``. 预测因子矩阵 ``(N, P)``。
        W (torch.Tensor): Weight matrix ``(P, C)``. 权重矩阵 ``(P, C)``。
        b (torch.Tensor): Bias vector ``(C,)``. 偏置向量 ``(C,)``。

    Returns:
        torch.Tensor: Prediction matrix ``(N, C)``. 预测结果矩阵 ``(N, C)``。
    """
    return H @ W + b


class LinearReadout:
    """Linear map from predictors to a single output value."""

    def __init__(self, W: torch.Tensor, b: torch.Tensor):
        self.W = W
        self.b = b

    def compute(self, predictors: torch.Tensor) -> torch.Tensor:
        """Output ``(1,)`` for a single predictor vector, ``(N, 1)`` for a batch."""
        H = torch.as_tensor(predictors, dtype=self.W.dtype)
        if H.dim() == 1:
            return ridge_readout_predict(H.unsqueeze(0), self.W, self.b)[0]
        return ridge_readout_predict(H, self.W, self.b)


def error_stat(network, X: torch.Tensor, Y: torch.Tensor) -> BasicStat:
    """Statistic of absolute errors of ``network`` over the samples."""
    stat = BasicStat(dtype=Y.dtype)
    if X.shape[0] > 0:
        computed = network.compute(X).reshape(-1)
        stat.add_sample_values((computed - Y.reshape(-1)).abs())
    return stat


@dataclass
class ReadoutUnit:
    """A trained regression unit.

    Attributes:
        network: Object exposing ``compute(predictors)``.
        training_error_stat (BasicStat): Absolute errors on the training samples.
        testing_error_stat (Optional[BasicStat]): Absolute errors on the
            validation samples, if tracked.
    """

    network: object
    training_error_stat: BasicStat
    testing_error_stat: Optional[BasicStat] = None

    def compute(self, predictors: torch.Tensor) -> torch.Tensor:
        return self.network.compute(predictors)

    @property
    def ensemble_weight(self) -> int:
        """Number of samples the unit has seen (training plus testing)."""
        weight = self.training_error_stat.num_samples
        if self.testing_error_stat is not None:
            weight += self.testing_error_stat.num_samples
        return weight


class RidgeTrainer:
    """Closed-form ridge regression trainer.

    Attributes:
        lam (float): L2 regularisation strength.
        add_bias (bool): Fit an intercept.
    """

    def __init__(self, lam: float = 1e-3, add_bias: bool = True):
        if lam < 0:
            raise ValueError(f"lam must be >= 0, got {lam}")
        self.lam = lam
        self.add_bias = add_bias

    def __call__(self, train_X, train_Y, val_X, val_Y) -> ReadoutUnit:
        W, b = ridge_readout_fit(train_X, train_Y, lam=self.lam, add_bias=self.add_bias)
        net = LinearReadout(W, b)
        return ReadoutUnit(
            network=net,
            training_error_stat=error_stat(net, train_X, train_Y),
            testing_error_stat=error_stat(net, val_X, val_Y),
        )


class _TorchNetwork:
    """Adapter giving an ``nn.Module`` the ``compute`` contract."""

    def __init__(self, module: nn.Module):
        self.module = module

    @torch.no_grad()
    def compute(self, predictors: torch.Tensor) -> torch.Tensor:
        H = torch.as_tensor(predictors, dtype=torch.float64)
        if H.dim() == 1:
            return self.module(H.unsqueeze(0))[0]
        return self.module(H)


class RPropTrainer:
    """Resilient backpropagation trainer of a linear unit.

    Full-batch iterations of ``torch.optim.Rprop``; the weights of the
    iteration with the lowest ``max(train_mse, val_mse)`` are kept.

    Attributes:
        epochs (int): Maximum number of iterations.
        stop_mse (float): Stop once the training MSE drops below this value.
        delta_ini (float): Initial update step.
        eta_minus (float): Step decrease factor after a gradient sign change.
        eta_plus (float): Step increase factor.
        delta_min (float): Lower step bound.
        delta_max (float): Upper step bound.
    """

    def __init__(
        self,
        epochs: int = 400,
        stop_mse: float = 1e-6,
        delta_ini: float = 0.1,
        eta_minus: float = 0.5,
        eta_plus: float = 1.2,
        delta_min: float = 1e-6,
        delta_max: float = 50.0,
    ):
        if epochs <= 0:
            raise ValueError(f"epochs must be positive, got {epochs}")
        self.epochs = epochs
        self.stop_mse = stop_mse
        self.delta_ini = delta_ini
        self.eta_minus = eta_minus
        self.eta_plus = eta_plus
        self.delta_min = delta_min
        self.delta_max = delta_max

    def __call__(self, train_X, train_Y, val_X, val_Y) -> ReadoutUnit:
        train_X = train_X.to(torch.float64)
        train_Y = train_Y.to(torch.float64)
        val_X = val_X.to(torch.float64)
        val_Y = val_Y.to(torch.float64)

        net = nn.Linear(train_X.shape[1], train_Y.shape[1], dtype=torch.float64)
        # zero start keeps the training independent of the global RNG
        nn.init.zeros_(net.weight)
        nn.init.zeros_(net.bias)
        optimizer = torch.optim.Rprop(
            net.parameters(),
            lr=self.delta_ini,
            etas=(self.eta_minus, self.eta_plus),
            step_sizes=(self.delta_min, self.delta_max),
        )

        best_state, best_err, best_epoch = None, float("inf"), 0
        for epoch in range(1, self.epochs + 1):
            optimizer.zero_grad()
            loss = F.mse_loss(net(train_X), train_Y)
            loss.backward()
            optimizer.step()
            with torch.no_grad():
                train_mse = F.mse_loss(net(train_X), train_Y).item()
                val_mse = F.mse_loss(net(val_X), val_Y).item() if val_X.shape[0] > 0 else 0.0
            err = max(train_mse, val_mse)
            if err < best_err:
                best_err, best_epoch = err, epoch
                best_state = copy.deepcopy(net.state_dict())
            if train_mse <= self.stop_mse:
                break
        net.load_state_dict(best_state)
        logger.debug("RProp kept epoch %d (err=%.6g)", best_epoch, best_err)

        wrapped = _TorchNetwork(net)
        return ReadoutUnit(
            network=wrapped,
            training_error_stat=error_stat(wrapped, train_X, train_Y),
            testing_error_stat=error_stat(wrapped, val_X, val_Y),
        )
