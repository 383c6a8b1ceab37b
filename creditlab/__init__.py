"""
creditlab: 信贷风险分析教程配套工具包

模块结构：
  creditlab.data          贷款样本加载、清洗、合成样本
  creditlab.evaluation    模型评估（Gains 表、KS、AUC）
  creditlab.segmentation  KG/KB 分群、坏率约束下的 cutoff 搜索
  creditlab.simulation    蒙特卡洛通过率模拟、相关随机数
  creditlab.models        逻辑回归评分卡、贝叶斯优化 LightGBM
  creditlab.utils         可视化、计时器、日志
"""

__version__ = "0.1.0"

from creditlab import utils, data, evaluation, models, segmentation, simulation
