"""
creditlab.simulation
====================
蒙特卡洛通过率/坏率模拟，以及基于 Cholesky 分解的相关随机数生成。
"""

import numpy as np
import pandas as pd
from typing import Callable, NamedTuple, Optional, Sequence

from creditlab.data import TARGET
from creditlab.utils import Timer, log_step


# ── 蒙特卡洛模拟 ───────────────────────────────────────────────────────────

class SimulationResult(NamedTuple):
    """
    simulate_approvals() 的返回值。

    runs : DataFrame，每次迭代一行：iteration, n_approved,
           approval_rate, event_rate（无通过样本时为 NaN）
    """
    runs: pd.DataFrame
    cutoff: float
    sample_size: int
    seed: Optional[int]

    def summary(self) -> pd.DataFrame:
        """通过率与坏率的均值、标准差及分位数"""
        return (self.runs[["approval_rate", "event_rate"]]
                .describe(percentiles=[0.05, 0.25, 0.5, 0.75, 0.95])
                .T)


def simulate_approvals(score_fn: Callable[[pd.DataFrame], np.ndarray],
                       population: pd.DataFrame,
                       cutoff: float,
                       sample_size: int,
                       n_iter: int = 500,
                       target: str = TARGET,
                       seed: Optional[int] = None) -> SimulationResult:
    """
    反复有放回抽样、打分、按 cutoff 审批，记录每次的通过率与通过样本坏率。

    用于评估一个 cutoff 在不同申请批次上的波动：
    同一 seed 的两次运行结果完全一致。

    Parameters
    ----------
    score_fn    : DataFrame → 风险分（越高越差），如 Scorecard.predict_proba
    population  : 申请样本池（含 target 列），只读
    cutoff      : 通过规则 score <= cutoff
    sample_size : 每次抽样条数
    n_iter      : 迭代次数

    Examples
    --------
    >>> res = simulate_approvals(sc.predict_proba, test, cutoff=0.05,
    ...                          sample_size=1000, n_iter=500, seed=1)
    >>> res.summary()
    """
    if target not in population.columns:
        raise ValueError(f"population 缺少目标列 {target!r}")
    if len(population) == 0:
        raise ValueError("population 为空")
    if sample_size < 1:
        raise ValueError(f"sample_size 必须 >= 1，收到：{sample_size}")
    if n_iter < 1:
        raise ValueError(f"n_iter 必须 >= 1，收到：{n_iter}")

    y = population[target].to_numpy()
    if not np.isin(y, [0, 1]).all():
        bad = pd.unique(y[~np.isin(y, [0, 1])])[:5]
        raise ValueError(f"目标列 {target!r} 只能取 0/1，发现：{list(bad)}")
    y   = y.astype(int)
    rng = np.random.default_rng(seed)
    n   = len(population)

    rows = []
    log_step(f"蒙特卡洛模拟：{n_iter} 次 × {sample_size} 条，cutoff={cutoff}")
    with Timer("simulate_approvals"):
        for i in range(n_iter):
            idx    = rng.integers(0, n, size=sample_size)
            sample = population.iloc[idx]
            score  = np.asarray(score_fn(sample), dtype=float)
            if len(score) != sample_size:
                raise ValueError(f"score_fn 返回 {len(score)} 个分数，期望 {sample_size}")

            approved   = score <= cutoff
            n_approved = int(approved.sum())
            rows.append({
                "iteration":     i + 1,
                "n_approved":    n_approved,
                "approval_rate": n_approved / sample_size,
                "event_rate":    float(y[idx][approved].mean()) if n_approved else np.nan,
            })

    return SimulationResult(runs=pd.DataFrame(rows), cutoff=float(cutoff),
                            sample_size=int(sample_size), seed=seed)


# ── 相关随机数 ─────────────────────────────────────────────────────────────

def correlated_normals(corr,
                       n: int,
                       seed: Optional[int] = None,
                       mean: Optional[Sequence[float]] = None,
                       std: Optional[Sequence[float]] = None,
                       columns: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """
    生成具有指定相关系数矩阵的正态随机数。

    原理：corr = L @ L.T（Cholesky 分解，L 为下三角），
    Z 为独立标准正态，则 X = Z @ L.T 的相关矩阵为 corr。
    再按 std 缩放、按 mean 平移。

    Examples
    --------
    >>> corr = [[1.0, 0.6], [0.6, 1.0]]
    >>> x = correlated_normals(corr, n=10_000, seed=7, columns=["pd", "lgd"])
    >>> correlation_check(x)
    """
    corr = np.asarray(corr, dtype=float)
    if corr.ndim != 2 or corr.shape[0] != corr.shape[1]:
        raise ValueError(f"相关矩阵必须是方阵，收到形状：{corr.shape}")
    if not np.allclose(corr, corr.T):
        raise ValueError("相关矩阵必须对称")
    if not np.allclose(np.diag(corr), 1.0):
        raise ValueError("相关矩阵对角线必须为 1")
    if n < 1:
        raise ValueError(f"n 必须 >= 1，收到：{n}")
    try:
        L = np.linalg.cholesky(corr)
    except np.linalg.LinAlgError as e:
        raise ValueError("相关矩阵不是正定矩阵，无法做 Cholesky 分解") from e

    k   = corr.shape[0]
    rng = np.random.default_rng(seed)
    x   = rng.standard_normal((n, k)) @ L.T

    if std is not None:
        x = x * np.asarray(std, dtype=float)
    if mean is not None:
        x = x + np.asarray(mean, dtype=float)

    columns = list(columns) if columns is not None else [f"x{i+1}" for i in range(k)]
    if len(columns) != k:
        raise ValueError(f"columns 长度应为 {k}")
    return pd.DataFrame(x, columns=columns)


def correlation_check(samples: pd.DataFrame) -> pd.DataFrame:
    """样本的经验相关系数矩阵，用于核对 correlated_normals 的输出"""
    return pd.DataFrame(samples).corr()
