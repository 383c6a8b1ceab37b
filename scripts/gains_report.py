#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Gains 表导出脚本
读入打分结果 CSV（含标签列与分数列），输出 Gains 表 CSV。

用法：
  python scripts/gains_report.py --scores scores.csv --out gains.csv \
      --y-col bad --score-col pd --bins 10 --descending
"""

import argparse
import sys
from pathlib import Path

import pandas as pd

from creditlab.evaluation import gains_table


def build_parser():
    ap = argparse.ArgumentParser(description="根据打分结果生成 Gains 表")
    ap.add_argument("--scores", required=True, help="打分结果 CSV")
    ap.add_argument("--out", required=True, help="输出 CSV 路径")
    ap.add_argument("--y-col", default="bad")
    ap.add_argument("--score-col", default="score")
    ap.add_argument("--bins", type=int, default=10)
    direction = ap.add_mutually_exclusive_group(required=True)
    direction.add_argument("--ascending", dest="ascending", action="store_true",
                           help="坏样本集中在低分段（评分卡分数）")
    direction.add_argument("--descending", dest="ascending", action="store_false",
                           help="坏样本集中在高分段（违约概率）")
    return ap


def main(argv=None):
    a = build_parser().parse_args(argv)

    df = pd.read_csv(a.scores)
    missing = [c for c in (a.y_col, a.score_col) if c not in df.columns]
    if missing:
        raise SystemExit(f"列 {missing} 不在 {a.scores} 中")

    gt = gains_table(df[a.y_col], df[a.score_col], n_bins=a.bins, ascending=a.ascending)

    out = Path(a.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    gt.table.to_csv(out, index=False)

    print(gt.table.to_string(index=False))
    print(f"\nKS = {gt.ks:.4f}  |  分箱 {gt.n_bins}/{gt.requested_bins}")
    if gt.degenerate:
        print("  警告：分数重复导致分箱数少于请求数")
    print(f"[ok] wrote {out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
