"""
creditlab.utils
===============
通用工具：可视化、计时器、日志。
"""

import time
from datetime import datetime

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt


# ── 可视化 ─────────────────────────────────────────────────────────────────

def plot_gains(gt, title: str = "Gains / KS", figsize=(13, 5)):
    """
    Gains 表可视化：左图累计捕获率（对比随机线），右图累计好/坏占比与 KS。

    Parameters
    ----------
    gt : creditlab.evaluation.GainsTable

    Examples
    --------
    >>> gt = gains_table(y_test, pd_test, ascending=False)
    >>> plot_gains(gt)
    """
    tbl   = gt.table
    x     = np.r_[0, tbl["c_total"] / tbl["total"].sum()]
    cap   = np.r_[0, tbl["cap_rate"]]
    c_ne  = np.r_[0, tbl["c_non_events_pct"]]
    k     = int(tbl["ks"].values.argmax())

    fig, axes = plt.subplots(1, 2, figsize=figsize)

    axes[0].plot(x, cap, marker="o", color="tomato", label="模型")
    axes[0].plot([0, 1], [0, 1], "k--", alpha=0.4, label="随机")
    axes[0].set_xlabel("累计样本占比"); axes[0].set_ylabel("累计坏样本捕获率")
    axes[0].set_title("捕获率曲线"); axes[0].legend()

    axes[1].plot(x, cap,  marker="o", color="tomato",    label="累计坏占比")
    axes[1].plot(x, c_ne, marker="o", color="steelblue", label="累计好占比")
    axes[1].vlines(x[k + 1], c_ne[k + 1], cap[k + 1], color="green", ls="--",
                   label=f"KS = {gt.ks:.4f}")
    axes[1].set_xlabel("累计样本占比"); axes[1].set_title(title)
    axes[1].legend()

    plt.tight_layout()
    plt.show()
    return fig


def plot_bad_rate(gt, figsize=(9, 4)):
    """各分箱坏率柱状图（按 Gains 表的排列方向）"""
    tbl = gt.table
    fig, ax = plt.subplots(figsize=figsize)
    ax.bar(tbl["bin"].astype(str), tbl["event_rate"] * 100, color="steelblue")
    ax.axhline(tbl["events"].sum() / tbl["total"].sum() * 100,
               color="k", ls="--", alpha=0.5, label="整体坏率")
    ax.set_xlabel("分箱" + ("（低分 → 高分）" if gt.ascending else "（高分 → 低分）"))
    ax.set_ylabel("坏率 (%)"); ax.set_title("各分箱坏率"); ax.legend()
    plt.tight_layout()
    plt.show()
    return fig


def plot_simulation(result, bins: int = 30, figsize=(13, 4)):
    """
    蒙特卡洛模拟结果分布：通过率、通过样本坏率。

    Parameters
    ----------
    result : creditlab.simulation.SimulationResult
    """
    runs = result.runs
    fig, axes = plt.subplots(1, 2, figsize=figsize)
    for ax, col, color, name in [
        (axes[0], "approval_rate", "steelblue", "通过率"),
        (axes[1], "event_rate",    "tomato",    "通过样本坏率"),
    ]:
        vals = runs[col].dropna()
        ax.hist(vals, bins=bins, color=color, alpha=0.8)
        ax.axvline(vals.mean(), color="k", ls="--", label=f"均值 {vals.mean():.4f}")
        ax.set_xlabel(name); ax.set_ylabel("频数"); ax.legend()
        ax.set_title(f"{name}分布（{len(runs)} 次，cutoff={result.cutoff:.4f}）")
    plt.tight_layout()
    plt.show()
    return fig


def plot_correlated(samples: pd.DataFrame, figsize=(8, 8), alpha: float = 0.3):
    """相关随机数两两散点图"""
    samples = pd.DataFrame(samples)
    k = samples.shape[1]
    fig, axes = plt.subplots(k, k, figsize=figsize, squeeze=False)
    corr = samples.corr()
    for i, ci in enumerate(samples.columns):
        for j, cj in enumerate(samples.columns):
            ax = axes[i][j]
            if i == j:
                ax.hist(samples[ci], bins=30, color="steelblue", alpha=0.8)
            else:
                ax.scatter(samples[cj], samples[ci], s=4, alpha=alpha, color="steelblue")
                ax.set_title(f"ρ={corr.loc[ci, cj]:.2f}", fontsize=8)
            if i == k - 1: ax.set_xlabel(str(cj))
            if j == 0:     ax.set_ylabel(str(ci))
    plt.tight_layout()
    plt.show()
    return fig


# ── 计时器 ─────────────────────────────────────────────────────────────────

class Timer:
    """
    简单计时器，用于记录各步骤的耗时。

    Examples
    --------
    >>> with Timer("模拟"):
    ...     result = simulate_approvals(...)
    """
    def __init__(self, name: str = ""):
        self.name = name
        self.elapsed: float = 0.0

    def __enter__(self):
        self._start = time.time()
        return self

    def __exit__(self, *args):
        self.elapsed = time.time() - self._start
        print(f"[{self.name}] 耗时 {self.elapsed:.1f}s")


# ── 简单日志 ───────────────────────────────────────────────────────────────

def log_step(msg: str, level: str = "INFO") -> None:
    """打印带时间戳的步骤日志"""
    ts = datetime.now().strftime("%H:%M:%S")
    icons = {"INFO": "ℹ️", "WARN": "⚠️", "ERROR": "❌", "OK": "✅"}
    print(f"[{ts}] {icons.get(level, '')} {msg}")
