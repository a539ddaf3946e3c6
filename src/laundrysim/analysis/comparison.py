"""
多场景结果对比
"""

import logging
from typing import Dict, Any

import pandas as pd

from .financial import FinancialCalculator
from .metrics import OperationalAnalyzer

logger = logging.getLogger(__name__)

COMPARISON_COLUMNS = [
    'scenario', 'status', 'total_orders', 'completed_orders', 'completion_rate',
    'total_revenue', 'total_costs', 'gross_profit', 'gross_margin_pct',
    'primary_bottleneck', 'primary_utilization_pct', 'error',
]


def compare_scenarios(outcomes: Dict[str, Any]) -> pd.DataFrame:
    """
    生成场景对比表

    每个场景一行；失败的场景只填写 status 与 error。

    Args:
        outcomes: run_scenarios 返回的 {场景名: ScenarioOutcome}

    Returns:
        对比 DataFrame
    """
    analyzer = OperationalAnalyzer()
    rows = []

    for name, outcome in outcomes.items():
        if not outcome.succeeded:
            rows.append({'scenario': name, 'status': 'failed', 'error': outcome.error})
            continue

        result = outcome.result
        metrics = analyzer.calculate(result, outcome.config)
        financial = FinancialCalculator(outcome.config).calculate(result.orders).summary()

        rows.append({
            'scenario': name,
            'status': 'halted' if result.halted_early else 'ok',
            'total_orders': metrics.summary['total_orders'],
            'completed_orders': metrics.summary['completed_orders'],
            'completion_rate': metrics.summary['completion_rate'],
            'total_revenue': financial['total_revenue'],
            'total_costs': financial['total_costs'],
            'gross_profit': financial['gross_profit'],
            'gross_margin_pct': financial['gross_margin_pct'],
            'primary_bottleneck': metrics.bottlenecks.primary_bottleneck,
            'primary_utilization_pct': metrics.bottlenecks.primary_utilization_pct,
            'error': None,
        })

    df = pd.DataFrame(rows, columns=COMPARISON_COLUMNS)
    logger.info(f"场景对比表: {len(df)} 个场景")
    return df
