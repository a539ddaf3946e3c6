"""
运营指标计算模块
计算资源利用率、瓶颈、服务水平和完成统计
"""

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Any, Optional, Sequence

import pandas as pd

from ..simulation.capacity import sum_reserved_hours
from ..simulation.entities import Order, OrderStatus, ResourceType, ReservationRecord
from ..simulation.environment import calculate_summary_stats, summarize_queue_log, safe_ratio
from ..simulation.handlers import (
    WASH_TIME_BASE_MIN, WASH_TIME_PER_KG_MIN, DRY_TIME_BASE_MIN, DRY_TIME_PER_KG_MIN
)
from ..utils.json_utils import dump_json

logger = logging.getLogger(__name__)

BOTTLENECK_THRESHOLD_PCT = 80.0
UNDERUTILIZED_THRESHOLD_PCT = 50.0

# 同等利用率时的排序优先级
RESOURCE_PRIORITY = [ResourceType.VAN, ResourceType.DRIVER, ResourceType.WASH, ResourceType.DRY]

CAPACITY_KEYS = {
    ResourceType.VAN: 'num_vans',
    ResourceType.DRIVER: 'num_drivers',
    ResourceType.WASH: 'num_wash_machines',
    ResourceType.DRY: 'num_dry_machines',
}

# 路线估算假设
AVG_STOPS_PER_ROUTE = 5
HOURS_PER_ROUTE = 2.0
AVG_ORDER_KG = 7.0
AVG_WASH_HOURS = (WASH_TIME_BASE_MIN + WASH_TIME_PER_KG_MIN * AVG_ORDER_KG) / 60.0
AVG_DRY_HOURS = (DRY_TIME_BASE_MIN + DRY_TIME_PER_KG_MIN * AVG_ORDER_KG) / 60.0

METHOD_ROUTE_ESTIMATE = 'route_estimate'
METHOD_LEDGER = 'ledger'


@dataclass
class ResourceUtilization:
    """单个资源池的利用率"""
    resource_type: ResourceType
    units: int
    used_hours: float
    available_hours: float
    utilization_pct: float

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            'resource_type': self.resource_type.value,
            'units': self.units,
            'used_hours': self.used_hours,
            'available_hours': self.available_hours,
            'utilization_pct': self.utilization_pct
        }


@dataclass
class BottleneckReport:
    """瓶颈识别结果"""
    bottlenecks: List[str] = field(default_factory=list)  # 利用率 ≥80% 的资源
    underutilized: List[str] = field(default_factory=list)  # 利用率 <50% 的资源
    primary_bottleneck: Optional[str] = None  # 利用率最高的资源
    primary_utilization_pct: float = float('nan')

    @property
    def has_bottleneck(self) -> bool:
        return len(self.bottlenecks) > 0

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            'bottlenecks': self.bottlenecks,
            'underutilized': self.underutilized,
            'primary_bottleneck': self.primary_bottleneck,
            'primary_utilization_pct': self.primary_utilization_pct,
            'has_bottleneck': self.has_bottleneck
        }


@dataclass
class OperationalMetrics:
    """运营指标汇总"""
    method: str = METHOD_ROUTE_ESTIMATE
    utilization: List[ResourceUtilization] = field(default_factory=list)
    bottlenecks: BottleneckReport = field(default_factory=BottleneckReport)
    summary: Dict[str, Any] = field(default_factory=dict)
    service: Dict[str, Any] = field(default_factory=dict)
    queue_summary: List[Dict[str, Any]] = field(default_factory=list)

    def utilization_dataframe(self) -> pd.DataFrame:
        """利用率表"""
        columns = ['resource_type', 'units', 'used_hours', 'available_hours', 'utilization_pct']
        return pd.DataFrame([u.to_dict() for u in self.utilization], columns=columns)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            'method': self.method,
            'utilization': [u.to_dict() for u in self.utilization],
            'bottlenecks': self.bottlenecks.to_dict(),
            'summary': self.summary,
            'service': self.service,
            'queue_summary': self.queue_summary
        }


def _route_estimated_hours(orders: Sequence[Order]) -> Dict[ResourceType, float]:
    """按固定平均路线规模估算各资源占用小时数"""
    num_routes = math.ceil(len(orders) / AVG_STOPS_PER_ROUTE)
    # 取件路线与配送路线数量相同
    route_hours = 2 * num_routes * HOURS_PER_ROUTE

    return {
        ResourceType.VAN: route_hours,
        ResourceType.DRIVER: route_hours,
        ResourceType.WASH: sum(1 for o in orders if o.needs_wash) * AVG_WASH_HOURS,
        ResourceType.DRY: sum(1 for o in orders if o.needs_dry) * AVG_DRY_HOURS,
    }


def calculate_utilization(orders: Sequence[Order],
                          config: Dict[str, Any],
                          method: str = METHOD_ROUTE_ESTIMATE,
                          reservations: Optional[Sequence[ReservationRecord]] = None) -> List[ResourceUtilization]:
    """
    计算各资源池利用率

    利用率 = 占用小时 / (单元数 × 每日营业小时 × 天数) × 100

    Args:
        orders: 订单列表
        config: 完整仿真配置
        method: route_estimate 按路线数估算；ledger 使用产能台账的预约记录
        reservations: method=ledger 时必须提供

    Returns:
        按 van, driver, wash, dry 顺序的利用率列表
    """
    if method == METHOD_ROUTE_ESTIMATE:
        used_hours = _route_estimated_hours(orders)
    elif method == METHOD_LEDGER:
        if reservations is None:
            raise ValueError("ledger 方法需要提供预约记录")
        used_hours = sum_reserved_hours(reservations)
    else:
        raise ValueError(f"未知的利用率计算方法: {method}")

    capacity = config.get('capacity', {})
    operating_hours = capacity.get('operating_hours_per_day', 12)
    duration_days = config.get('simulation', {}).get('duration_days', 7)

    utilization = []
    for resource_type in RESOURCE_PRIORITY:
        units = int(capacity.get(CAPACITY_KEYS[resource_type], 0))
        available_hours = units * operating_hours * duration_days
        utilization.append(ResourceUtilization(
            resource_type=resource_type,
            units=units,
            used_hours=used_hours[resource_type],
            available_hours=available_hours,
            utilization_pct=safe_ratio(used_hours[resource_type], available_hours) * 100
        ))

    return utilization


def identify_bottlenecks(utilization: Sequence[ResourceUtilization]) -> BottleneckReport:
    """
    识别瓶颈与低利用资源

    主瓶颈取利用率最高者，相同时按 van, driver, wash, dry 顺序。
    """
    report = BottleneckReport()
    valid = [u for u in utilization if not math.isnan(u.utilization_pct)]

    for u in valid:
        if u.utilization_pct >= BOTTLENECK_THRESHOLD_PCT:
            report.bottlenecks.append(u.resource_type.value)
        elif u.utilization_pct < UNDERUTILIZED_THRESHOLD_PCT:
            report.underutilized.append(u.resource_type.value)

    if valid:
        primary = min(
            valid,
            key=lambda u: (-u.utilization_pct, RESOURCE_PRIORITY.index(u.resource_type))
        )
        report.primary_bottleneck = primary.resource_type.value
        report.primary_utilization_pct = primary.utilization_pct

    return report


def calculate_service_metrics(orders: Sequence[Order]) -> Dict[str, Any]:
    """
    服务水平指标

    退款率、配送失败率依赖事后随机效果，未应用时为 NaN。
    """
    total = len(orders)
    delivered = sum(1 for o in orders if o.status == OrderStatus.DELIVERED)

    refund_flags = [o.is_refunded for o in orders if o.is_refunded is not None]
    failed_flags = [o.delivery_failed for o in orders if o.delivery_failed is not None]

    status_counts = Counter(o.status.value for o in orders)

    return {
        'completion_rate': safe_ratio(delivered, total),
        'refund_rate': safe_ratio(sum(refund_flags), len(refund_flags)),
        'failed_delivery_rate': safe_ratio(sum(failed_flags), len(failed_flags)),
        'stalled_orders': sum(1 for o in orders if o.stalled),
        'avg_reschedules_per_order': safe_ratio(sum(o.reschedule_count for o in orders), total),
        'status_counts': dict(status_counts),
    }


class OperationalAnalyzer:
    """
    运营指标计算器
    从仿真结果中提取利用率、瓶颈和服务水平
    """

    def __init__(self, method: str = METHOD_ROUTE_ESTIMATE):
        """
        Args:
            method: 利用率计算方法（route_estimate / ledger）
        """
        self.method = method
        self.logger = logging.getLogger(__name__)

    def calculate(self, result, config: Dict[str, Any]) -> OperationalMetrics:
        """
        从仿真结果计算运营指标

        Args:
            result: SimulationResult 实例
            config: 完整仿真配置

        Returns:
            OperationalMetrics 对象
        """
        utilization = calculate_utilization(
            result.orders, config, method=self.method, reservations=result.reservation_log
        )

        metrics = OperationalMetrics(
            method=self.method,
            utilization=utilization,
            bottlenecks=identify_bottlenecks(utilization),
            summary=calculate_summary_stats(result.orders, result.queue_log),
            service=calculate_service_metrics(result.orders),
            queue_summary=summarize_queue_log(result.queue_log)
        )

        self._log_metrics_summary(metrics)
        return metrics

    def _log_metrics_summary(self, metrics: OperationalMetrics) -> None:
        """记录指标摘要到日志"""
        summary = metrics.summary
        self.logger.info("=" * 60)
        self.logger.info(f"运营指标摘要 (利用率方法: {metrics.method})")
        self.logger.info("=" * 60)
        self.logger.info(f"订单总数: {summary.get('total_orders', 0)}")
        self.logger.info(f"  已完成: {summary.get('completed_orders', 0)} "
                         f"(完成率: {summary.get('completion_rate', float('nan'))*100:.1f}%)")
        self.logger.info(f"  平均周期: {summary.get('avg_total_time_hours', float('nan')):.1f} 小时")
        self.logger.info(f"  排队事件: {summary.get('total_queue_events', 0)}")
        for u in metrics.utilization:
            self.logger.info(f"  {u.resource_type.value:<7} 利用率: {u.utilization_pct:.1f}% "
                             f"({u.used_hours:.1f}/{u.available_hours:.1f} 小时)")
        self.logger.info(f"主瓶颈: {metrics.bottlenecks.primary_bottleneck} "
                         f"({metrics.bottlenecks.primary_utilization_pct:.1f}%)")
        self.logger.info("=" * 60)

    def save_metrics(self, metrics: OperationalMetrics, output_path: Path) -> None:
        """
        保存指标到文件

        Args:
            metrics: 运营指标对象
            output_path: 输出路径（.json 保存全部，.csv 保存利用率表）
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        if output_path.suffix == '.json':
            dump_json(metrics.to_dict(), output_path)
            self.logger.info(f"指标已保存到 JSON: {output_path}")

        elif output_path.suffix == '.csv':
            metrics.utilization_dataframe().to_csv(output_path, index=False, encoding='utf-8')
            self.logger.info(f"利用率已保存到 CSV: {output_path}")

        else:
            raise ValueError(f"不支持的文件格式: {output_path.suffix}，仅支持 .json 或 .csv")
