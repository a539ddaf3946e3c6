"""
SimPy 仿真引擎
按时间顺序处理订单生命周期事件，在产能台账约束下推进每个订单
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Any, Sequence

import numpy as np
import pandas as pd
import simpy

from .capacity import CapacityLedger
from .entities import (
    Order, OrderStatus, EventType, SimulationEvent, QueueLogEntry, ReservationRecord
)
from .handlers import SimulationContext, dispatch_event, STOP_MODEL_FIXED, STOP_MODEL_ROUTE
from ..data_preparation.travel_estimator import TravelEstimator
from ..utils.json_utils import dump_json

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 100000
PROGRESS_LOG_INTERVAL = 1000
TRAFFIC_SEED_OFFSET = 2000  # 交通扰动随机流相对运行种子的偏移

# 导出时转换为日历时间的列
TIME_COLUMNS = [
    'placement_time', 'preferred_pickup_time', 'preferred_delivery_time',
    'pickup_time_actual', 'pickup_completed_time', 'intake_end_time',
    'wash_start_time', 'wash_end_time', 'dry_start_time', 'dry_end_time',
    'folding_start_time', 'folding_end_time',
    'delivery_time_scheduled', 'delivery_time_actual',
]


def safe_ratio(numerator: float, denominator: float) -> float:
    """分母为 0 时返回 NaN"""
    return numerator / denominator if denominator > 0 else float('nan')


def calculate_summary_stats(orders: Sequence[Order], queue_log: Sequence[QueueLogEntry]) -> Dict[str, Any]:
    """
    完成情况统计

    空订单集时比率与均值为 NaN。
    """
    completed_hours = [o.total_time_hours for o in orders
                       if o.status == OrderStatus.DELIVERED and o.total_time_hours is not None]
    total = len(orders)
    completed = sum(1 for o in orders if o.status == OrderStatus.DELIVERED)

    return {
        'total_orders': total,
        'completed_orders': completed,
        'completion_rate': safe_ratio(completed, total),
        'avg_total_time_hours': float(np.mean(completed_hours)) if completed_hours else float('nan'),
        'median_total_time_hours': float(np.median(completed_hours)) if completed_hours else float('nan'),
        'total_queue_events': len(queue_log),
    }


def summarize_queue_log(queue_log: Sequence[QueueLogEntry]) -> List[Dict[str, Any]]:
    """按排队原因计数；没有排队时返回一条 resource='none' 的记录"""
    if not queue_log:
        return [{
            'resource': 'none',
            'queue_count': 0,
            'description': "未发现排队，所有订单均顺利处理"
        }]

    counts = Counter(entry.reason.value for entry in queue_log)
    return [
        {
            'resource': reason,
            'queue_count': count,
            'description': f"{reason} 导致 {count} 次排队"
        }
        for reason, count in sorted(counts.items())
    ]


@dataclass
class SimulationResult:
    """单次仿真运行的输出"""
    orders: List[Order]
    reservation_log: List[ReservationRecord]
    queue_log: List[QueueLogEntry]
    events: List[SimulationEvent]
    start_date: str = '2026-01-06'
    iterations: int = 0
    final_time: float = 0.0
    halted_early: bool = False
    remaining_events: int = 0
    stalled_order_ids: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    summary_stats: Dict[str, Any] = field(default_factory=dict)
    queue_summary: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def completed_orders(self) -> List[Order]:
        return [o for o in self.orders if o.status == OrderStatus.DELIVERED]

    def orders_to_dataframe(self, calendar_time: bool = True) -> pd.DataFrame:
        """
        订单表

        Args:
            calendar_time: 是否把相对秒数转换为日历时间
        """
        df = pd.DataFrame([order.to_dict() for order in self.orders])
        if calendar_time and not df.empty:
            origin = pd.Timestamp(str(self.start_date))
            for column in TIME_COLUMNS:
                df[column] = origin + pd.to_timedelta(pd.to_numeric(df[column]), unit='s')
        return df

    def reservations_to_dataframe(self) -> pd.DataFrame:
        columns = ['resource_type', 'unit_id', 'reserved_from', 'reserved_until', 'order_id']
        return pd.DataFrame([r.to_dict() for r in self.reservation_log], columns=columns)

    def queue_log_to_dataframe(self) -> pd.DataFrame:
        columns = ['timestamp', 'order_id', 'reason', 'rescheduled_for']
        return pd.DataFrame([q.to_dict() for q in self.queue_log], columns=columns)

    def events_to_dataframe(self) -> pd.DataFrame:
        columns = ['timestamp', 'event_type', 'order_id', 'details']
        return pd.DataFrame([e.to_dict() for e in self.events], columns=columns)

    def get_statistics(self) -> Dict[str, Any]:
        """运行统计（可直接写入 JSON）"""
        return {
            'summary': self.summary_stats,
            'queue_summary': self.queue_summary,
            'iterations': self.iterations,
            'final_time': self.final_time,
            'halted_early': self.halted_early,
            'remaining_events': self.remaining_events,
            'stalled_orders': len(self.stalled_order_ids),
            'total_reservations': len(self.reservation_log),
            'warnings': self.warnings,
        }

    def save_results(self, output_dir: Path) -> Dict[str, Path]:
        """
        保存仿真结果

        Args:
            output_dir: 输出目录

        Returns:
            保存的文件路径字典
        """
        logger.info(f"保存仿真结果到: {output_dir}")

        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        saved_files = {}

        tables = {
            'orders': self.orders_to_dataframe(),
            'reservation_log': self.reservations_to_dataframe(),
            'queue_log': self.queue_log_to_dataframe(),
            'events': self.events_to_dataframe(),
        }
        for name, df in tables.items():
            path = output_dir / f"{name}.csv"
            df.to_csv(path, index=False, encoding='utf-8')
            saved_files[name] = path
            logger.info(f"{name} 已保存: {path} ({len(df)} 行)")

        stats_file = output_dir / "statistics.json"
        dump_json(self.get_statistics(), stats_file)
        saved_files['statistics'] = stats_file
        logger.info(f"统计信息已保存: {stats_file}")

        return saved_files


class SimulationEngine:
    """
    仿真引擎类

    每个生命周期事件对应一个 SimPy Timeout，其回调调用事件处理函数；
    处理函数返回的新事件再注册为新的 Timeout。同一时刻的事件按注册顺序处理。
    """

    def __init__(self,
                 orders: Sequence[Order],
                 config: Dict[str, Any],
                 ledger: Optional[CapacityLedger] = None,
                 travel_estimator: Optional[TravelEstimator] = None,
                 random_seed: Optional[int] = None):
        """
        初始化仿真引擎

        Args:
            orders: 订单列表（按下单时间排序）
            config: 完整仿真配置
            ledger: 产能台账，默认按 capacity 配置新建
            travel_estimator: 行程估算器（stop_duration_model=route 时使用）
            random_seed: 运行种子，默认取 randomization.random_seed；交通扰动使用其偏移后的独立随机流
        """
        self.env = simpy.Environment()
        self.config = config

        sim_config = config.get('simulation', {})
        self.start_date = str(sim_config.get('start_date', '2026-01-06'))
        self.max_iterations = sim_config.get('max_iterations') or DEFAULT_MAX_ITERATIONS
        self.max_reschedules = sim_config.get('max_reschedules_per_order')
        horizon_days = sim_config.get('horizon_days')
        self.horizon = horizon_days * 86400.0 if horizon_days else None

        self.orders: Dict[str, Order] = {}
        for order in orders:
            if order.order_id in self.orders:
                raise ValueError(f"订单编号重复: {order.order_id}")
            self.orders[order.order_id] = order

        stop_model = sim_config.get('stop_duration_model', STOP_MODEL_FIXED)
        if stop_model == STOP_MODEL_ROUTE and travel_estimator is None:
            travel_estimator = self._build_travel_estimator(config, random_seed)

        regional = config.get('regional', {})
        self.context = SimulationContext(
            ledger=ledger if ledger is not None else CapacityLedger(config.get('capacity', {})),
            travel_estimator=travel_estimator,
            depot=(regional.get('depot_lat', 40.4168), regional.get('depot_lon', -3.7038)),
            stop_duration_model=stop_model
        )

        # 事件轨迹
        self.events: List[SimulationEvent] = []

        self.iterations = 0
        self.pending_events = 0
        self.halted_early = False
        self.stalled_order_ids: List[str] = []
        self.warnings: List[str] = []

        logger.info("仿真引擎初始化完成")
        logger.info(f"订单数: {len(self.orders)}, {self.context.ledger}")

    @staticmethod
    def _build_travel_estimator(config: Dict[str, Any], random_seed: Optional[int]) -> TravelEstimator:
        jitter_std = config.get('simulation', {}).get('traffic_jitter_std', 0.0) or 0.0
        if jitter_std <= 0:
            return TravelEstimator()

        if random_seed is None:
            random_seed = config.get('randomization', {}).get('random_seed', 42)
        rng = np.random.default_rng(random_seed + TRAFFIC_SEED_OFFSET)
        logger.info(f"交通扰动已启用: std={jitter_std}, 种子={random_seed + TRAFFIC_SEED_OFFSET}")
        return TravelEstimator(jitter_std=jitter_std, rng=rng)

    @property
    def ledger(self) -> CapacityLedger:
        return self.context.ledger

    def schedule(self, event: SimulationEvent) -> None:
        """
        把事件注册到 SimPy 事件日历

        Args:
            event: 待处理事件，时间不得早于当前仿真时间
        """
        delay = event.timestamp - self.env.now
        if delay < -1e-6:
            raise ValueError(
                f"事件 {event.event_type.value} (订单{event.order_id}) 的时间 {event.timestamp:.1f}s "
                f"早于当前仿真时间 {self.env.now:.1f}s"
            )

        timeout = self.env.timeout(max(delay, 0.0), value=event)
        timeout.callbacks.append(self._on_timeout)
        self.pending_events += 1

    def _on_timeout(self, timeout: simpy.events.Timeout) -> None:
        self.pending_events -= 1
        self.process_event(timeout.value)

    def process_event(self, event: SimulationEvent) -> None:
        """处理单个事件并注册后续事件"""
        order = self.orders[event.order_id]

        # 停滞订单不再推进
        if order.stalled:
            return

        status_before = order.status
        queued_before = order.reschedule_count
        new_events = dispatch_event(event, order, self.context)

        self.events.append(SimulationEvent(
            timestamp=event.timestamp,
            event_type=event.event_type,
            order_id=event.order_id,
            details={
                'status_before': status_before.value,
                'status_after': order.status.value,
                'queued': order.reschedule_count > queued_before,
            }
        ))

        if self.max_reschedules is not None and order.reschedule_count > self.max_reschedules:
            self._mark_stalled(order, f"订单{order.order_id}重排次数超过上限 {self.max_reschedules}")
            return

        for new_event in new_events:
            self.schedule(new_event)

    def _mark_stalled(self, order: Order, reason: str) -> None:
        order.stalled = True
        self.stalled_order_ids.append(order.order_id)
        logger.warning(f"[{self.env.now:.1f}s] {reason}，状态停留在 {order.status.value}")

    def _seed_initial_events(self) -> None:
        """每个未开始的订单在期望取件时间触发一次取件安排"""
        placed = [o for o in self.orders.values() if o.status == OrderStatus.PLACED]
        for order in sorted(placed, key=lambda o: o.preferred_pickup_time):
            self.schedule(SimulationEvent(order.preferred_pickup_time, EventType.SCHEDULE_PICKUP, order.order_id))
        logger.info(f"初始事件队列: {len(placed)} 个取件安排")

    def run(self, until: Optional[float] = None) -> SimulationResult:
        """
        运行仿真直到事件队列为空、到达截止时间或达到迭代上限

        Args:
            until: 截止时间（秒），默认取配置的 horizon_days，None 表示不截止

        Returns:
            SimulationResult
        """
        horizon = until if until is not None else self.horizon
        logger.info(
            "开始仿真" + (f"，截止: {horizon:.0f}秒 ({horizon/86400:.1f}天)" if horizon is not None else "")
        )

        self._seed_initial_events()

        while self.pending_events > 0:
            if horizon is not None and self.env.peek() > horizon:
                logger.info(f"到达截止时间，队列中剩余 {self.pending_events} 个事件")
                break

            if self.iterations >= self.max_iterations:
                message = (f"达到最大迭代次数 {self.max_iterations}，"
                           f"事件队列中仍有 {self.pending_events} 个事件")
                logger.warning(message)
                self.warnings.append(message)
                self.halted_early = True
                break

            self.env.step()
            self.iterations += 1

            if self.iterations % PROGRESS_LOG_INTERVAL == 0:
                logger.info(f"[{self.env.now:.1f}s] 已处理 {self.iterations} 个事件，"
                            f"队列中剩余 {self.pending_events} 个")

        if self.halted_early:
            for order in self.orders.values():
                if order.status != OrderStatus.DELIVERED and not order.stalled:
                    order.stalled = True
                    self.stalled_order_ids.append(order.order_id)

        logger.info("仿真完成")
        result = self._build_result()
        self._print_summary(result)
        return result

    def _build_result(self) -> SimulationResult:
        orders = list(self.orders.values())
        queue_log = list(self.context.queue_log)
        return SimulationResult(
            orders=orders,
            reservation_log=list(self.ledger.reservations),
            queue_log=queue_log,
            events=list(self.events),
            start_date=self.start_date,
            iterations=self.iterations,
            final_time=float(self.env.now),
            halted_early=self.halted_early,
            remaining_events=self.pending_events,
            stalled_order_ids=list(self.stalled_order_ids),
            warnings=list(self.warnings),
            summary_stats=calculate_summary_stats(orders, queue_log),
            queue_summary=summarize_queue_log(queue_log)
        )

    def _print_summary(self, result: SimulationResult) -> None:
        """打印仿真摘要"""
        stats = result.summary_stats
        logger.info("=" * 60)
        logger.info("仿真摘要")
        logger.info("=" * 60)
        logger.info(f"仿真时长: {self.env.now:.1f}秒 ({self.env.now/86400:.2f}天)")
        logger.info(f"处理事件数: {self.iterations}")
        logger.info(f"总订单数: {stats['total_orders']}")
        logger.info(f"已送达订单: {stats['completed_orders']}")
        logger.info(f"排队事件数: {stats['total_queue_events']}")
        if stats['completed_orders'] > 0:
            logger.info(f"平均周期: {stats['avg_total_time_hours']:.1f} 小时 "
                        f"(中位数 {stats['median_total_time_hours']:.1f} 小时)")
        if result.stalled_order_ids:
            logger.info(f"停滞订单: {len(result.stalled_order_ids)}")
        logger.info("=" * 60)
