"""
creditlab.evaluation
====================
模型评估：Gains 表（KS 表）、KS、AUC/GINI 汇总、多模型对比。

Gains 表是评分模型验证的标配输出：按分数等频分箱，
逐箱统计坏样本捕获率、累计坏率与 KS。
"""

import numpy as np
import pandas as pd
from typing import List, NamedTuple, Tuple
from sklearn.metrics import roc_auc_score, roc_curve


# ── 输入校验 ───────────────────────────────────────────────────────────────

def validate_inputs(y_true, y_score) -> Tuple[np.ndarray, np.ndarray]:
    """
    校验 (outcome, score) 两个等长序列，返回 numpy 数组。

    Raises
    ------
    ValueError : 长度不一致 / 空输入 / outcome 不是 0-1 / score 含 NaN 或 inf
    """
    y = np.asarray(y_true)
    s = np.asarray(y_score, dtype=float)

    if y.ndim != 1 or s.ndim != 1:
        raise ValueError("y_true 和 y_score 必须是一维序列")
    if len(y) != len(s):
        raise ValueError(f"长度不一致：y_true={len(y)}, y_score={len(s)}")
    if len(y) == 0:
        raise ValueError("输入为空")
    if not np.isin(y, [0, 1]).all():
        bad = pd.unique(y[~np.isin(y, [0, 1])])[:5]
        raise ValueError(f"y_true 只能取 0/1，发现：{list(bad)}")
    if not np.isfinite(s).all():
        raise ValueError("y_score 含 NaN 或 inf")
    return y.astype(int), s


# ── Gains 表 ───────────────────────────────────────────────────────────────

class GainsTable(NamedTuple):
    """
    gains_table() 的返回值。table 为独立副本，修改它不影响其他结果。

    table          : DataFrame，每个非空分箱一行，按 ascending 指定方向排列
    ks             : 全表 KS = max(ks 列)
    n_bins         : 实际产生的分箱数
    requested_bins : 请求的分箱数
    ascending      : 排列方向
    """
    table: pd.DataFrame
    ks: float
    n_bins: int
    requested_bins: int
    ascending: bool

    @property
    def degenerate(self) -> bool:
        """分数重复（clumping）导致分箱数少于请求数"""
        return self.n_bins < self.requested_bins


GAINS_COLUMNS = [
    "bin", "score_min", "score_max", "total", "events", "non_events",
    "event_rate", "pop_pct", "c_total", "c_events", "c_non_events",
    "c_events_pct", "c_non_events_pct", "ks", "cap_rate", "c_event_rate",
    "lift",
]


def gains_table(y_true,
                y_score,
                n_bins: int = 10,
                *,
                ascending: bool) -> GainsTable:
    """
    按分数等频分箱生成 Gains 表（KS 表）。

    分箱边界取 score 在 0, 1/N, ..., 1 处的经验分位数；最低一箱左闭，
    其余左开右闭。边界重复时合并，空箱直接丢弃，因此实际箱数可能 < N，
    通过返回值的 n_bins / degenerate 反映。

    Parameters
    ----------
    y_true    : 0/1 标签（1 = 事件，如违约）
    y_score   : 模型分数（概率、log-odds 或评分卡分数）
    n_bins    : 分箱数，默认十分位
    ascending : 必填。事件集中在低分段（评分卡分数，分越高越好）用 True；
                事件集中在高分段（违约概率）用 False。方向选错不会报错，
                但累计捕获率会整体反转，结论会被误读。

    Returns
    -------
    GainsTable

    Examples
    --------
    >>> gt = gains_table(y_val, pd_val, ascending=False)
    >>> print(f"KS={gt.ks:.4f}  bins={gt.n_bins}")
    >>> gt.table[["bin", "event_rate", "cap_rate", "ks"]]
    """
    y, s = validate_inputs(y_true, y_score)
    if isinstance(n_bins, bool) or not isinstance(n_bins, (int, np.integer)) or n_bins < 1:
        raise ValueError(f"n_bins 必须是 >= 1 的整数，收到：{n_bins!r}")

    breaks = np.unique(np.quantile(s, np.linspace(0, 1, n_bins + 1)))
    if len(breaks) < 2:
        # 所有分数相同：只有一箱
        codes = np.zeros(len(s), dtype=int)
    else:
        codes = pd.cut(s, bins=breaks, labels=False, include_lowest=True)

    df = pd.DataFrame({"code": codes, "score": s, "label": y})
    tbl = (df.groupby("code")
             .agg(score_min=("score", "min"), score_max=("score", "max"),
                  total=("label", "count"), events=("label", "sum"))
             .sort_index(ascending=ascending)
             .reset_index(drop=True))

    total_events     = int(y.sum())
    total_non_events = len(y) - total_events

    tbl.insert(0, "bin", np.arange(1, len(tbl) + 1))
    tbl["non_events"]       = tbl["total"] - tbl["events"]
    tbl["event_rate"]       = tbl["events"] / tbl["total"]
    tbl["pop_pct"]          = tbl["total"] / len(df)
    tbl["c_total"]          = tbl["total"].cumsum()
    tbl["c_events"]         = tbl["events"].cumsum()
    tbl["c_non_events"]     = tbl["non_events"].cumsum()
    tbl["c_events_pct"]     = tbl["c_events"] / total_events
    tbl["c_non_events_pct"] = tbl["c_non_events"] / total_non_events
    tbl["ks"]               = (tbl["c_events_pct"] - tbl["c_non_events_pct"]).abs()
    tbl["cap_rate"]         = tbl["c_events_pct"]
    tbl["c_event_rate"]     = tbl["c_events"] / tbl["c_total"]
    tbl["lift"]             = tbl["cap_rate"] / (tbl["c_total"] / len(df))

    return GainsTable(
        table=tbl[GAINS_COLUMNS].copy(),
        ks=float(tbl["ks"].max()),
        n_bins=len(tbl),
        requested_bins=int(n_bins),
        ascending=bool(ascending),
    )


# ── KS ─────────────────────────────────────────────────────────────────────

def ks_stat(y_true: np.ndarray,
            y_score: np.ndarray) -> Tuple[float, float]:
    """
    基于 ROC 曲线计算 KS 统计量及对应阈值。

    取 |TPR - FPR| 的最大值，因此对分数方向不敏感。

    Returns
    -------
    ks : float
    threshold : float   对应最大 KS 的分数阈值
    """
    y, s = validate_inputs(y_true, y_score)
    fpr, tpr, thresholds = roc_curve(y, s)
    diff = np.abs(tpr - fpr)
    idx  = np.argmax(diff)
    return float(diff[idx]), float(thresholds[idx])


# ── 综合评估报告 ───────────────────────────────────────────────────────────

def evaluate(y_true: np.ndarray,
             y_score: np.ndarray,
             label: str = "Model",
             higher_is_riskier: bool = True,
             n_bins: int = 10) -> dict:
    """
    一键输出 AUC / GINI / KS，并附十分位 Gains 表的 KS。

    Parameters
    ----------
    higher_is_riskier : 分数越高越可能违约（概率）为 True；
                        评分卡分数（越高越好）传 False

    Returns
    -------
    dict with keys: label, auc, gini, ks, ks_threshold, ks_table

    Examples
    --------
    >>> metrics = evaluate(y_test, scorecard.predict_score(X_test),
    ...                    label="Scorecard", higher_is_riskier=False)
    """
    y, s = validate_inputs(y_true, y_score)
    risk = s if higher_is_riskier else -s

    auc = roc_auc_score(y, risk)
    ks, thr = ks_stat(y, s)
    gt  = gains_table(y, s, n_bins=n_bins, ascending=not higher_is_riskier)

    metrics = dict(label=label, auc=auc, gini=2*auc-1, ks=ks,
                   ks_threshold=thr, ks_table=gt.ks)

    bar  = "=" * 42
    print(f"\n{bar}")
    print(f"  {label}")
    print(bar)
    print(f"  AUC  : {auc:.4f}")
    print(f"  GINI : {2*auc-1:.4f}")
    print(f"  KS   : {ks:.4f}  (thr={thr:.4f})")
    print(f"  KS@{gt.n_bins:<2d}: {gt.ks:.4f}")
    print(bar)
    return metrics


def compare_models(results: List[dict]) -> pd.DataFrame:
    """
    对比多个模型的评估结果。

    Examples
    --------
    >>> compare_models([
    ...     evaluate(y, pd_lr,  "Logistic"),
    ...     evaluate(y, pd_gbm, "LightGBM"),
    ... ])
    """
    df = pd.DataFrame(results)[["label", "auc", "gini", "ks", "ks_table"]]
    df = df.sort_values("ks", ascending=False).reset_index(drop=True)
    return df
