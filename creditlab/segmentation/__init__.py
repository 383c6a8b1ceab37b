"""
creditlab.segmentation
======================
分群提升通过率：按等级划分 KG/KB（已知好/已知坏）客群、
分群建模、在坏率上限约束下搜索最宽松的 cutoff。

分数约定：本模块的 score 均为"风险分"（越高越可能违约，如违约概率），
通过规则为 score <= cutoff。评分卡分数（越高越好）需先取负。
"""

import numpy as np
import pandas as pd
from typing import Dict, NamedTuple, Optional, Sequence

from creditlab.data import GRADE_COL, TARGET
from creditlab.evaluation import validate_inputs
from creditlab.models import Scorecard
from creditlab.utils import log_step


KNOWN_GOOD  = "KG"
KNOWN_BAD   = "KB"
SEGMENT_COL = "segment"


# ── Cutoff 搜索 ────────────────────────────────────────────────────────────

class CutoffResult(NamedTuple):
    """
    find_cutoff() 的返回值。

    cutoff 为 None 表示没有任何前缀满足坏率上限（0 通过）。
    """
    cutoff: Optional[float]
    n_approved: int
    approval_rate: float
    event_rate: float
    n_total: int

    @property
    def found(self) -> bool:
        return self.cutoff is not None


def find_cutoff(y_true,
                y_score,
                max_event_rate: float) -> CutoffResult:
    """
    在"通过样本累计坏率 <= max_event_rate"的约束下，找最宽松的 cutoff。

    按风险分升序排列，取累计坏率不超过上限的最长前缀，
    cutoff 为该前缀中的最高分。前缀只在同分样本的末尾截断，
    因此 score <= cutoff 恰好复现该前缀。

    Examples
    --------
    >>> res = find_cutoff(test["bad"], pd_test, max_event_rate=0.02)
    >>> res.cutoff, res.approval_rate
    """
    y, s = validate_inputs(y_true, y_score)
    if not 0.0 <= max_event_rate <= 1.0:
        raise ValueError(f"max_event_rate 必须在 [0, 1] 内，收到：{max_event_rate}")

    n     = len(s)
    order = np.argsort(s, kind="mergesort")
    s_sorted, y_sorted = s[order], y[order]

    c_rate  = np.cumsum(y_sorted) / np.arange(1, n + 1)
    run_end = np.r_[s_sorted[1:] != s_sorted[:-1], True]
    ok      = (c_rate <= max_event_rate) & run_end

    if not ok.any():
        return CutoffResult(cutoff=None, n_approved=0, approval_rate=0.0,
                            event_rate=float("nan"), n_total=n)

    last = int(np.flatnonzero(ok)[-1])
    return CutoffResult(
        cutoff=float(s_sorted[last]),
        n_approved=last + 1,
        approval_rate=(last + 1) / n,
        event_rate=float(c_rate[last]),
        n_total=n,
    )


def approve(y_score, cutoff: Optional[float]) -> np.ndarray:
    """按 cutoff 给出通过标记；cutoff 为 None 时全部拒绝"""
    s = np.asarray(y_score, dtype=float)
    if cutoff is None:
        return np.zeros(len(s), dtype=bool)
    return s <= cutoff


# ── KG / KB 分群 ───────────────────────────────────────────────────────────

def assign_segments(df: pd.DataFrame,
                    grade_col: str = GRADE_COL,
                    known_good: Sequence[str] = ("A", "B")) -> pd.Series:
    """
    按等级划分客群：known_good 中的等级为 KG，其余为 KB。

    Examples
    --------
    >>> loans["segment"] = assign_segments(loans)
    >>> loans.groupby("segment")["bad"].agg(["count", "mean"])
    """
    if grade_col not in df.columns:
        raise ValueError(f"缺少等级列 {grade_col!r}")
    grade = df[grade_col].astype(str).str.strip().str.upper()
    seg = np.where(grade.isin([g.upper() for g in known_good]), KNOWN_GOOD, KNOWN_BAD)
    return pd.Series(seg, index=df.index, name=SEGMENT_COL)


class SegmentedScorecard:
    """
    分群评分卡：每个客群单独训练一个 Scorecard。

    样本量不足 min_segment_size 或只有单一标签的客群，
    回退到全量样本训练的 pooled 模型。

    使用示例
    --------
    >>> seg_sc = SegmentedScorecard(feature_cols=feats).fit(train)
    >>> pd_seg = seg_sc.predict_proba(test)
    """

    def __init__(self,
                 feature_cols: Sequence[str],
                 target: str = TARGET,
                 grade_col: str = GRADE_COL,
                 known_good: Sequence[str] = ("A", "B"),
                 min_segment_size: int = 200,
                 scorecard_params: Optional[dict] = None):
        self.feature_cols = list(feature_cols)
        self.target       = target
        self.grade_col    = grade_col
        self.known_good   = tuple(known_good)
        self.min_segment_size = min_segment_size
        self.scorecard_params = scorecard_params or {}
        self.models_: Dict[str, Scorecard] = {}
        self.pooled_: Optional[Scorecard] = None

    def segments(self, df: pd.DataFrame) -> pd.Series:
        return assign_segments(df, self.grade_col, self.known_good)

    def fit(self, df: pd.DataFrame) -> "SegmentedScorecard":
        X, y = df[self.feature_cols], df[self.target]
        seg  = self.segments(df)

        self.pooled_ = Scorecard(**self.scorecard_params).fit(X, y)
        self.models_ = {}
        for name in sorted(seg.unique()):
            mask = (seg == name).values
            if mask.sum() < self.min_segment_size or y[mask].nunique() < 2:
                log_step(f"客群 {name} 样本不足（{mask.sum()}），使用 pooled 模型", "WARN")
                continue
            self.models_[name] = Scorecard(**self.scorecard_params).fit(X[mask], y[mask])
            log_step(f"客群 {name}：{mask.sum()} 条，坏率 {y[mask].mean():.4%}")
        return self

    def predict_proba(self, df: pd.DataFrame) -> np.ndarray:
        if self.pooled_ is None:
            raise RuntimeError("SegmentedScorecard 尚未 fit")
        X   = df[self.feature_cols]
        seg = self.segments(df).values
        out = self.pooled_.predict_proba(X)
        for name, model in self.models_.items():
            mask = seg == name
            if mask.any():
                out[mask] = model.predict_proba(X[mask])
        return out


# ── 通过率对比 ─────────────────────────────────────────────────────────────

def segment_cutoffs(y_true,
                    y_score,
                    segments,
                    max_event_rate: float) -> pd.DataFrame:
    """
    各客群分别在坏率上限下找 cutoff，并汇总整体通过情况。

    Returns
    -------
    DataFrame：segment, n_total, cutoff, n_approved, approval_rate,
               event_rate，最后一行 segment="Total"
    """
    y, s = validate_inputs(y_true, y_score)
    seg  = np.asarray(segments)
    if len(seg) != len(y):
        raise ValueError(f"长度不一致：segments={len(seg)}, y_true={len(y)}")

    rows, events = [], 0
    for name in sorted(pd.unique(seg)):
        mask = seg == name
        res  = find_cutoff(y[mask], s[mask], max_event_rate)
        events += int(y[mask][approve(s[mask], res.cutoff)].sum())
        rows.append({"segment": name, **res._asdict()})

    tbl = pd.DataFrame(rows)
    n_app = int(tbl["n_approved"].sum())
    total = {"segment": "Total", "cutoff": np.nan, "n_approved": n_app,
             "approval_rate": n_app / len(y),
             "event_rate": events / n_app if n_app else np.nan,
             "n_total": len(y)}
    tbl = pd.concat([tbl, pd.DataFrame([total])], ignore_index=True)
    return tbl[["segment", "n_total", "cutoff", "n_approved",
                "approval_rate", "event_rate"]]


def compare_approvals(y_true,
                      scores: Dict[str, np.ndarray],
                      max_event_rate: float) -> pd.DataFrame:
    """
    多个评分方案在同一坏率上限下的通过率对比。

    Examples
    --------
    >>> compare_approvals(test["bad"], {
    ...     "单一模型": pd_single,
    ...     "分群模型": pd_segmented,
    ... }, max_event_rate=0.02)
    """
    rows = []
    for name, score in scores.items():
        res = find_cutoff(y_true, score, max_event_rate)
        rows.append({"strategy": name, **res._asdict()})
    tbl = pd.DataFrame(rows)
    return tbl.sort_values("n_approved", ascending=False).reset_index(drop=True)
