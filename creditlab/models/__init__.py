"""
creditlab.models
================
模型封装：逻辑回归评分卡（含分数刻度转换）、
贝叶斯优化调参的 LightGBM。
"""

import numpy as np
import pandas as pd
import lightgbm as lgb
import optuna
from typing import Callable, Dict, List, Optional, Tuple
from sklearn.compose import ColumnTransformer
from sklearn.impute import SimpleImputer
from sklearn.linear_model import LogisticRegression
from sklearn.model_selection import StratifiedKFold, cross_val_score
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder, StandardScaler

from creditlab.utils import Timer, log_step


# ── 预处理 ─────────────────────────────────────────────────────────────────

def infer_columns(X: pd.DataFrame) -> Tuple[List[str], List[str]]:
    """按 dtype 区分数值列与类别列"""
    num = [c for c in X.columns
           if pd.api.types.is_numeric_dtype(X[c]) and not pd.api.types.is_bool_dtype(X[c])]
    cat = [c for c in X.columns if c not in num]
    return num, cat


def make_preprocessor(num_cols: List[str],
                      cat_cols: List[str]) -> ColumnTransformer:
    """数值列：中位数填充 + 标准化；类别列：众数填充 + One-Hot"""
    num = Pipeline([("imputer", SimpleImputer(strategy="median")),
                    ("scaler",  StandardScaler())])
    cat = Pipeline([("imputer", SimpleImputer(strategy="most_frequent")),
                    ("ohe",     OneHotEncoder(handle_unknown="ignore"))])
    return ColumnTransformer([("num", num, num_cols), ("cat", cat, cat_cols)])


def _as_object(X: pd.DataFrame, cat_cols: List[str]) -> pd.DataFrame:
    # category dtype 的缺失值 SimpleImputer 处理不了，统一转 object
    X = X.copy()
    for c in cat_cols:
        X[c] = X[c].astype(object).where(X[c].notna(), np.nan)
    return X


# ── 评分卡 ─────────────────────────────────────────────────────────────────

class Scorecard:
    """
    逻辑回归评分卡：预处理 + 逻辑回归 + 刻度转换。

    分数刻度：score = offset - factor * ln(bad_odds)
        factor = pdo / ln(2)
        offset = base_score - factor * ln(base_odds)
    即好坏比为 base_odds 时得 base_score 分，好坏比每翻一倍加 pdo 分。
    分数越高越好，做 Gains 表时用 ascending=True。

    参数
    ----
    base_score : int    基准分（默认600）
    base_odds  : float  基准好坏比（默认50:1）
    pdo        : int    好坏比翻倍对应的分数变化（默认20）

    使用示例
    --------
    >>> sc = Scorecard().fit(train[feats], train["bad"])
    >>> pd_test = sc.predict_proba(test[feats])
    >>> points  = sc.predict_score(test[feats])
    """

    def __init__(self,
                 base_score: int   = 600,
                 base_odds: float  = 50.0,
                 pdo: int          = 20,
                 C: float          = 1.0,
                 max_iter: int     = 1000,
                 num_cols: Optional[List[str]] = None,
                 cat_cols: Optional[List[str]] = None):
        self.base_score = base_score
        self.base_odds  = base_odds
        self.pdo        = pdo
        self.C          = C
        self.max_iter   = max_iter
        self.num_cols   = num_cols
        self.cat_cols   = cat_cols
        self._pipe: Optional[Pipeline] = None
        self._factor: float = pdo / np.log(2)
        self._offset: float = base_score - self._factor * np.log(base_odds)

    def fit(self, X: pd.DataFrame, y: pd.Series) -> "Scorecard":
        if self.num_cols is None or self.cat_cols is None:
            num, cat = infer_columns(X)
            self.num_cols = num if self.num_cols is None else self.num_cols
            self.cat_cols = cat if self.cat_cols is None else self.cat_cols

        self._pipe = Pipeline([
            ("prep", make_preprocessor(self.num_cols, self.cat_cols)),
            ("clf",  LogisticRegression(C=self.C, max_iter=self.max_iter,
                                        solver="lbfgs")),
        ])
        self._pipe.fit(self._prepare(X), np.asarray(y).astype(int))
        return self

    def _prepare(self, X: pd.DataFrame) -> pd.DataFrame:
        return _as_object(X[self.num_cols + self.cat_cols], self.cat_cols)

    def _check_fitted(self) -> None:
        if self._pipe is None:
            raise RuntimeError("Scorecard 尚未 fit")

    def predict_proba(self, X: pd.DataFrame) -> np.ndarray:
        """违约概率（事件概率）"""
        self._check_fitted()
        return self._pipe.predict_proba(self._prepare(X))[:, 1]

    def predict_log_odds(self, X: pd.DataFrame) -> np.ndarray:
        """ln(p / (1 - p))，即逻辑回归的线性预测值"""
        self._check_fitted()
        return self._pipe.decision_function(self._prepare(X))

    def predict_score(self, X: pd.DataFrame) -> np.ndarray:
        """将 log-odds 转换为整数评分（越高越好）"""
        return np.round(self._offset - self._factor * self.predict_log_odds(X)).astype(int)

    def score_fn(self) -> Callable[[pd.DataFrame], np.ndarray]:
        """返回 DataFrame → 违约概率 的函数，供蒙特卡洛模拟使用"""
        self._check_fitted()
        return self.predict_proba

    def coefficients(self) -> pd.DataFrame:
        """各（展开后）特征的回归系数，按绝对值降序"""
        self._check_fitted()
        names = self._pipe.named_steps["prep"].get_feature_names_out()
        coef  = self._pipe.named_steps["clf"].coef_[0]
        tbl = pd.DataFrame({"feature": names, "coef": coef})
        tbl = tbl.reindex(tbl["coef"].abs().sort_values(ascending=False).index)
        return tbl.reset_index(drop=True)


# ── LightGBM + 贝叶斯优化 ──────────────────────────────────────────────────

class GBMTuner:
    """
    用贝叶斯优化（optuna TPE）搜索 LightGBM 超参数，
    目标是分层 K-Fold 交叉验证 AUC 最大。

    search_space 的每一项为 (类型, 下界, 上界, 是否取对数)。

    使用示例
    --------
    >>> tuner = GBMTuner(n_trials=30).fit(X_train, y_train)
    >>> tuner.best_params_, tuner.best_score_
    >>> pd_test = tuner.predict_proba(X_test)
    >>> tuner.trials_.sort_values("value", ascending=False).head()
    """

    DEFAULT_PARAMS = {
        "objective":        "binary",
        "verbosity":        -1,
        "n_estimators":     200,
        "subsample_freq":   1,
    }

    DEFAULT_SEARCH_SPACE = {
        "learning_rate":     ("float", 0.01, 0.3,  True),
        "num_leaves":        ("int",   8,    128,  False),
        "max_depth":         ("int",   2,    8,    False),
        "min_child_samples": ("int",   10,   200,  False),
        "subsample":         ("float", 0.5,  1.0,  False),
        "colsample_bytree":  ("float", 0.5,  1.0,  False),
        "reg_lambda":        ("float", 1e-3, 10.0, True),
    }

    def __init__(self,
                 n_trials: int = 30,
                 n_splits: int = 3,
                 params: Optional[dict] = None,
                 search_space: Optional[Dict[str, tuple]] = None,
                 seed: int = 42,
                 timeout: Optional[float] = None):
        self.n_trials = n_trials
        self.n_splits = n_splits
        self.params   = {**self.DEFAULT_PARAMS, **(params or {})}
        self.search_space = {**self.DEFAULT_SEARCH_SPACE, **(search_space or {})}
        self.seed     = seed
        self.timeout  = timeout
        self.best_params_: Optional[dict] = None
        self.best_score_:  Optional[float] = None
        self.trials_:      Optional[pd.DataFrame] = None
        self.model_:       Optional[lgb.LGBMClassifier] = None

    def _suggest(self, trial: optuna.Trial) -> dict:
        out = {}
        for name, (kind, low, high, log) in self.search_space.items():
            if kind == "int":
                out[name] = trial.suggest_int(name, int(low), int(high), log=log)
            elif kind == "float":
                out[name] = trial.suggest_float(name, float(low), float(high), log=log)
            else:
                raise ValueError(f"未知的参数类型 {kind!r}（{name}）")
        return out

    def _make_model(self, tuned: dict) -> lgb.LGBMClassifier:
        return lgb.LGBMClassifier(**{**self.params, **tuned}, random_state=self.seed)

    def fit(self, X: pd.DataFrame, y: pd.Series) -> "GBMTuner":
        X = _as_category(X)
        y = np.asarray(y).astype(int)
        kf = StratifiedKFold(n_splits=self.n_splits, shuffle=True,
                             random_state=self.seed)

        def objective(trial: optuna.Trial) -> float:
            model = self._make_model(self._suggest(trial))
            return float(cross_val_score(model, X, y, cv=kf, scoring="roc_auc").mean())

        optuna.logging.set_verbosity(optuna.logging.WARNING)
        sampler = optuna.samplers.TPESampler(seed=self.seed)
        study   = optuna.create_study(direction="maximize", sampler=sampler)

        log_step(f"贝叶斯优化：{self.n_trials} 轮，{self.n_splits}-Fold CV")
        with Timer("GBMTuner"):
            study.optimize(objective, n_trials=self.n_trials, timeout=self.timeout)

        self.best_params_ = dict(study.best_params)
        self.best_score_  = float(study.best_value)
        self.trials_      = study.trials_dataframe()
        log_step(f"最优 CV AUC = {self.best_score_:.4f}  {self.best_params_}", "OK")

        self.model_ = self._make_model(self.best_params_).fit(X, y)
        return self

    def predict_proba(self, X: pd.DataFrame) -> np.ndarray:
        if self.model_ is None:
            raise RuntimeError("GBMTuner 尚未 fit")
        return self.model_.predict_proba(_as_category(X))[:, 1]

    def feature_importance(self) -> pd.DataFrame:
        """最终模型的 gain 重要性"""
        if self.model_ is None:
            raise RuntimeError("GBMTuner 尚未 fit")
        booster = self.model_.booster_
        return (pd.Series(booster.feature_importance(importance_type="gain"),
                          index=booster.feature_name())
                .sort_values(ascending=False)
                .rename("importance_gain")
                .to_frame())


def _as_category(X: pd.DataFrame) -> pd.DataFrame:
    # LightGBM 原生支持 category，文本列（object / str）需先转换
    X = X.copy()
    for c in X.columns:
        if pd.api.types.is_object_dtype(X[c]) or pd.api.types.is_string_dtype(X[c]):
            X[c] = X[c].astype("category")
    return X
