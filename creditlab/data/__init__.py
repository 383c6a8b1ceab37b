"""
creditlab.data
==============
贷款样本加载、清洗、标签定义、合成样本与划分。

样本格式参照 Lending Club 公开贷款数据（loan_status / grade / int_rate ...），
教程中用到的字段见 LOAN_DTYPES。
"""

import re
import numpy as np
import pandas as pd
from pathlib import Path
from typing import List, Optional, Tuple, Union


# ── 字段说明 ────────────────────────────────────────────────────────────────
LOAN_DTYPES = {
    "loan_amnt":      "float64",
    "term":           "float64",     # 36 / 60 (月)
    "int_rate":       "float64",     # 百分比，如 13.5
    "installment":    "float64",
    "grade":          "category",    # A-G
    "emp_length":     "float64",     # 年，'10+ years' → 10
    "home_ownership": "category",
    "annual_inc":     "float64",
    "purpose":        "category",
    "dti":            "float64",
    "delinq_2yrs":    "float64",
    "inq_last_6mths": "float64",
    "revol_util":     "float64",     # 百分比
    "loan_status":    "object",
    "bad":            "int64",       # TARGET: 1=坏
}

TARGET     = "bad"
STATUS_COL = "loan_status"
GRADE_COL  = "grade"
GRADES     = ["A", "B", "C", "D", "E", "F", "G"]

BAD_STATUSES = [
    "Charged Off",
    "Default",
    "Late (31-120 days)",
    "Does not meet the credit policy. Status:Charged Off",
]
GOOD_STATUSES = [
    "Fully Paid",
    "Does not meet the credit policy. Status:Fully Paid",
]


# ── 加载函数 ───────────────────────────────────────────────────────────────

def load_loans(path: Union[str, Path],
               nrows: Optional[int] = None) -> pd.DataFrame:
    """
    加载贷款样本 CSV 并完成基础清洗。

    Parameters
    ----------
    path : str | Path
        CSV 文件路径
    nrows : int, optional
        调试时加载前 N 行（None = 全量）

    Examples
    --------
    >>> loans = load_loans("data/loan_sample.csv")
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"找不到样本文件：{path}")

    raw   = pd.read_csv(path, nrows=nrows, low_memory=False)
    loans = clean_loans(raw)

    print(f"样本：{loans.shape}  |  坏率：{loans[TARGET].mean():.4%}  "
          f"|  剔除未结清：{len(raw) - len(loans)}")
    return loans


def clean_loans(df: pd.DataFrame) -> pd.DataFrame:
    """
    原始字段清洗，返回新的 DataFrame（不修改入参）。

    - 列名统一为小写下划线
    - '13.5%' → 13.5，' 36 months' → 36，'10+ years' → 10
    - 仅保留已结清（好/坏可判定）的贷款，并生成 TARGET
    """
    df = df.copy()
    df.columns = [_snake(c) for c in df.columns]

    if STATUS_COL not in df.columns:
        raise ValueError(f"缺少状态列 {STATUS_COL!r}")

    status = df[STATUS_COL].astype(str).str.strip()
    known  = status.isin(BAD_STATUSES + GOOD_STATUSES)
    df = df[known].copy()
    df[TARGET] = status[known].isin(BAD_STATUSES).astype("int64")

    for col in ("int_rate", "revol_util"):
        if col in df.columns:
            df[col] = _parse_percent(df[col])

    if "term" in df.columns:
        df["term"] = (df["term"].astype(str).str.extract(r"(\d+)")[0]
                      .astype(float))

    if "emp_length" in df.columns:
        df["emp_length"] = _parse_emp_length(df["emp_length"])

    if GRADE_COL in df.columns:
        df[GRADE_COL] = pd.Categorical(df[GRADE_COL].astype(str).str.strip().str.upper(),
                                       categories=GRADES)

    return df.reset_index(drop=True)


def _snake(name: str) -> str:
    name = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", str(name).strip())
    return re.sub(r"[^0-9a-zA-Z]+", "_", name).strip("_").lower()


def _parse_percent(series: pd.Series) -> pd.Series:
    """'13.5%' → 13.5；已是数值则原样返回"""
    if series.dtype.kind in "iuf":
        return series.astype(float)
    return pd.to_numeric(series.astype(str).str.replace("%", "", regex=False).str.strip(),
                         errors="coerce")


def _parse_emp_length(series: pd.Series) -> pd.Series:
    """'10+ years' → 10, '< 1 year' → 0, 'n/a' → NaN"""
    if series.dtype.kind in "iuf":
        return series.astype(float)
    text = series.astype(str).str.strip()
    years = pd.to_numeric(text.str.extract(r"(\d+)")[0], errors="coerce")
    years.loc[text.str.startswith("<")] = 0
    return years.astype(float)


# ── 合成样本 ───────────────────────────────────────────────────────────────

# 各等级的基础违约率，仅用于生成合成样本
_GRADE_BAD_RATE = {"A": 0.03, "B": 0.07, "C": 0.12, "D": 0.18,
                   "E": 0.25, "F": 0.32, "G": 0.38}


def make_loans(n: int = 5000, seed: int = 42) -> pd.DataFrame:
    """
    生成与 clean_loans() 输出同结构的模拟贷款样本（已清洗）。

    违约概率由等级基础坏率叠加 dti / 利用率 / 查询次数的 logit 效应得到，
    因此样本既能做等级分群，也能训练出有区分度的模型。

    Examples
    --------
    >>> loans = make_loans(10_000, seed=1)
    >>> loans.groupby("grade", observed=True)["bad"].mean()
    """
    rng = np.random.default_rng(seed)

    grade = rng.choice(GRADES, size=n, p=[0.18, 0.28, 0.24, 0.15, 0.09, 0.04, 0.02])
    g_idx = pd.Series(grade).map({g: i for i, g in enumerate(GRADES)}).values

    loan_amnt  = np.round(rng.lognormal(9.3, 0.6, n), -2)
    term       = np.where(rng.uniform(size=n) < 0.25 + 0.05 * g_idx, 60, 36)
    int_rate   = np.round(6 + 3.2 * g_idx + rng.normal(0, 1.0, n), 2)
    annual_inc = np.round(rng.lognormal(11.0, 0.5, n), -2)
    dti        = np.clip(rng.normal(15 + g_idx, 7, n), 0, 45)
    revol_util = np.clip(rng.normal(45 + 4 * g_idx, 22, n), 0, 120)
    inq        = rng.poisson(0.6 + 0.2 * g_idx)
    delinq     = rng.poisson(0.2, n)
    emp_length = rng.integers(0, 11, n).astype(float)
    home       = rng.choice(["RENT", "MORTGAGE", "OWN"], size=n, p=[0.45, 0.45, 0.10])
    purpose    = rng.choice(["debt_consolidation", "credit_card", "home_improvement",
                             "small_business", "other"],
                            size=n, p=[0.5, 0.2, 0.1, 0.05, 0.15])

    r = int_rate / 1200
    installment = np.round(loan_amnt * r / (1 - (1 + r) ** -term), 2)

    base  = pd.Series(grade).map(_GRADE_BAD_RATE).values
    logit = (np.log(base / (1 - base))
             + 0.03 * (dti - 15) + 0.008 * (revol_util - 50)
             + 0.15 * inq + 0.25 * (purpose == "small_business")
             - 0.25 * (np.log(annual_inc) - 11))
    bad = (rng.uniform(size=n) < 1 / (1 + np.exp(-logit))).astype("int64")

    df = pd.DataFrame({
        "loan_amnt":      loan_amnt,
        "term":           term,
        "int_rate":       int_rate,
        "installment":    installment,
        "grade":          pd.Categorical(grade, categories=GRADES),
        "emp_length":     emp_length,
        "home_ownership": home,
        "annual_inc":     annual_inc,
        "purpose":        purpose,
        "dti":            np.round(dti, 2),
        "delinq_2yrs":    delinq.astype(float),
        "inq_last_6mths": inq.astype(float),
        "revol_util":     np.round(revol_util, 1),
        STATUS_COL:       np.where(bad == 1, "Charged Off", "Fully Paid"),
        TARGET:           bad,
    })
    return df


# ── 数据集划分 ──────────────────────────────────────────────────────────────

def train_test_split_loans(df: pd.DataFrame,
                           test_ratio: float = 0.3,
                           stratify: bool = True,
                           random_state: int = 42
                           ) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    按比例随机划分训练集/测试集（分层抽样保持坏率）。

    Examples
    --------
    >>> train, test = train_test_split_loans(loans, test_ratio=0.3)
    """
    from sklearn.model_selection import train_test_split
    stratify_col = df[TARGET] if stratify else None
    train, test = train_test_split(
        df, test_size=test_ratio, stratify=stratify_col,
        random_state=random_state
    )
    return train.reset_index(drop=True), test.reset_index(drop=True)


def get_feature_cols(df: pd.DataFrame,
                     exclude: Optional[List[str]] = None) -> List[str]:
    """返回特征列（排除目标列、状态列及 exclude）"""
    drop = {TARGET, STATUS_COL, *(exclude or [])}
    return [c for c in df.columns if c not in drop]
