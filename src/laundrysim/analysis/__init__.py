"""
分析模块
运营指标、财务测算与场景对比
"""

from .metrics import OperationalAnalyzer, OperationalMetrics, calculate_utilization, identify_bottlenecks
from .financial import FinancialCalculator, FinancialSummary
from .comparison import compare_scenarios

__all__ = [
    'OperationalAnalyzer',
    'OperationalMetrics',
    'calculate_utilization',
    'identify_bottlenecks',
    'FinancialCalculator',
    'FinancialSummary',
    'compare_scenarios'
]
