"""
订单生命周期事件处理函数

每个处理函数接收 (事件, 订单, 运行上下文)，就地推进订单与产能台账，
返回需要加入事件队列的新事件。资源不足时不报错，而是写排队记录并
在资源最早释放的时刻重新触发同一事件。
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from .capacity import CapacityLedger
from .entities import (
    Order, EventType, ResourceType, QueueReason, QueueLogEntry, SimulationEvent
)
from ..data_preparation.travel_estimator import TravelEstimator

logger = logging.getLogger(__name__)

# 各环节耗时（分钟）
PICKUP_TIME_PER_STOP_MIN = 15
DELIVERY_TIME_PER_STOP_MIN = 15
INTAKE_TIME_PER_ITEM_MIN = 2
ITEMS_PER_ORDER = 5
WASH_TIME_BASE_MIN = 30
WASH_TIME_PER_KG_MIN = 3
DRY_TIME_BASE_MIN = 40
DRY_TIME_PER_KG_MIN = 2
FOLDING_TIME_PER_KG_MIN = 1.5

STOP_MODEL_FIXED = 'fixed'
STOP_MODEL_ROUTE = 'route'


def minutes_to_seconds(minutes: float) -> float:
    """分钟数截断为整数分钟后转换为秒"""
    return int(minutes) * 60.0


def wash_duration(kg: float) -> float:
    """洗涤时长（秒）"""
    return minutes_to_seconds(WASH_TIME_BASE_MIN + WASH_TIME_PER_KG_MIN * kg)


def dry_duration(kg: float) -> float:
    """烘干时长（秒）"""
    return minutes_to_seconds(DRY_TIME_BASE_MIN + DRY_TIME_PER_KG_MIN * kg)


def folding_duration(kg: float) -> float:
    """折叠时长（秒）"""
    return minutes_to_seconds(FOLDING_TIME_PER_KG_MIN * kg)


@dataclass
class SimulationContext:
    """单次仿真运行的共享状态：产能台账、排队记录和上门时长模型"""
    ledger: CapacityLedger
    queue_log: List[QueueLogEntry] = field(default_factory=list)
    travel_estimator: Optional[TravelEstimator] = None
    depot: Tuple[float, float] = (40.4168, -3.7038)
    stop_duration_model: str = STOP_MODEL_FIXED

    def stop_duration(self, order: Order, at_time: float, fixed_minutes: float) -> float:
        """
        上门取件/送件的占用时长（秒）

        fixed 模型使用固定分钟数；route 模型使用仓库到客户地址的行程估算。
        """
        if self.stop_duration_model == STOP_MODEL_ROUTE and self.travel_estimator is not None:
            distance_km = self.travel_estimator.distance(self.depot, (order.address_lat, order.address_lon))
            hour_of_day = (at_time / 3600.0) % 24
            minutes = self.travel_estimator.travel_time(distance_km, hour_of_day, order.parking_difficulty)
            return minutes_to_seconds(minutes)
        return minutes_to_seconds(fixed_minutes)

    def log_queue(self, timestamp: float, order: Order, reason: QueueReason, rescheduled_for: float) -> None:
        """写入排队记录"""
        self.queue_log.append(QueueLogEntry(
            timestamp=timestamp,
            order_id=order.order_id,
            reason=reason,
            rescheduled_for=rescheduled_for
        ))
        order.reschedule_count += 1
        logger.debug(
            f"[{timestamp:.1f}s] 订单{order.order_id}排队 ({reason.value})，"
            f"推迟到 {rescheduled_for:.1f}s"
        )


def handle_schedule_pickup(event: SimulationEvent, order: Order, ctx: SimulationContext) -> List[SimulationEvent]:
    """同时需要一辆车和一名司机，缺一则整体推迟"""
    now = event.timestamp
    van = ctx.ledger.check_availability(ResourceType.VAN, now)
    driver = ctx.ledger.check_availability(ResourceType.DRIVER, now)

    if van.available and driver.available:
        end_time = now + ctx.stop_duration(order, now, PICKUP_TIME_PER_STOP_MIN)
        ctx.ledger.reserve(ResourceType.VAN, van.unit_id, end_time, now, order.order_id)
        ctx.ledger.reserve(ResourceType.DRIVER, driver.unit_id, end_time, now, order.order_id)
        order.schedule_pickup(now, van.unit_id, driver.unit_id)
        return [SimulationEvent(end_time, EventType.EXECUTE_PICKUP, order.order_id)]

    retry_time = max(van.next_available_time, driver.next_available_time)
    ctx.log_queue(now, order, QueueReason.VAN_OR_DRIVER_UNAVAILABLE, retry_time)
    return [SimulationEvent(retry_time, EventType.SCHEDULE_PICKUP, order.order_id)]


def handle_execute_pickup(event: SimulationEvent, order: Order, ctx: SimulationContext) -> List[SimulationEvent]:
    now = event.timestamp
    intake_end = now + minutes_to_seconds(INTAKE_TIME_PER_ITEM_MIN * ITEMS_PER_ORDER)
    order.complete_pickup(now, intake_end)
    return [SimulationEvent(intake_end, EventType.START_WASHING, order.order_id)]


def handle_start_washing(event: SimulationEvent, order: Order, ctx: SimulationContext) -> List[SimulationEvent]:
    now = event.timestamp
    if not order.needs_wash:
        return [SimulationEvent(now, EventType.START_DRYING, order.order_id)]

    machine = ctx.ledger.check_availability(ResourceType.WASH, now)
    if not machine.available:
        ctx.log_queue(now, order, QueueReason.WASH_MACHINE_UNAVAILABLE, machine.next_available_time)
        return [SimulationEvent(machine.next_available_time, EventType.START_WASHING, order.order_id)]

    end_time = now + wash_duration(order.kg_estimate)
    ctx.ledger.reserve(ResourceType.WASH, machine.unit_id, end_time, now, order.order_id)
    order.start_washing(now, end_time, machine.unit_id)

    next_type = EventType.START_DRYING if order.needs_dry else EventType.START_FOLDING
    return [SimulationEvent(end_time, next_type, order.order_id)]


def handle_start_drying(event: SimulationEvent, order: Order, ctx: SimulationContext) -> List[SimulationEvent]:
    now = event.timestamp
    if not order.needs_dry:
        return [SimulationEvent(now, EventType.START_FOLDING, order.order_id)]

    machine = ctx.ledger.check_availability(ResourceType.DRY, now)
    if not machine.available:
        ctx.log_queue(now, order, QueueReason.DRY_MACHINE_UNAVAILABLE, machine.next_available_time)
        return [SimulationEvent(machine.next_available_time, EventType.START_DRYING, order.order_id)]

    end_time = now + dry_duration(order.kg_estimate)
    ctx.ledger.reserve(ResourceType.DRY, machine.unit_id, end_time, now, order.order_id)
    order.start_drying(now, end_time, machine.unit_id)
    return [SimulationEvent(end_time, EventType.START_FOLDING, order.order_id)]


def handle_start_folding(event: SimulationEvent, order: Order, ctx: SimulationContext) -> List[SimulationEvent]:
    now = event.timestamp
    end_time = now + folding_duration(order.kg_estimate)
    order.complete_folding(now, end_time)
    return [SimulationEvent(end_time, EventType.SCHEDULE_DELIVERY, order.order_id)]


def handle_schedule_delivery(event: SimulationEvent, order: Order, ctx: SimulationContext) -> List[SimulationEvent]:
    """不早于客户期望送达时间，车辆与司机需同时可用"""
    target_time = max(event.timestamp, order.preferred_delivery_time)
    van = ctx.ledger.check_availability(ResourceType.VAN, target_time)
    driver = ctx.ledger.check_availability(ResourceType.DRIVER, target_time)

    if van.available and driver.available:
        end_time = target_time + ctx.stop_duration(order, target_time, DELIVERY_TIME_PER_STOP_MIN)
        ctx.ledger.reserve(ResourceType.VAN, van.unit_id, end_time, target_time, order.order_id)
        ctx.ledger.reserve(ResourceType.DRIVER, driver.unit_id, end_time, target_time, order.order_id)
        order.schedule_delivery(target_time, van.unit_id, driver.unit_id)
        return [SimulationEvent(end_time, EventType.EXECUTE_DELIVERY, order.order_id)]

    retry_time = max(van.next_available_time, driver.next_available_time)
    ctx.log_queue(target_time, order, QueueReason.DELIVERY_VAN_OR_DRIVER_UNAVAILABLE, retry_time)
    return [SimulationEvent(retry_time, EventType.SCHEDULE_DELIVERY, order.order_id)]


def handle_execute_delivery(event: SimulationEvent, order: Order, ctx: SimulationContext) -> List[SimulationEvent]:
    order.complete_delivery(event.timestamp)
    return []


EventHandler = Callable[[SimulationEvent, Order, SimulationContext], List[SimulationEvent]]

EVENT_HANDLERS: Dict[EventType, EventHandler] = {
    EventType.SCHEDULE_PICKUP: handle_schedule_pickup,
    EventType.EXECUTE_PICKUP: handle_execute_pickup,
    EventType.START_WASHING: handle_start_washing,
    EventType.START_DRYING: handle_start_drying,
    EventType.START_FOLDING: handle_start_folding,
    EventType.SCHEDULE_DELIVERY: handle_schedule_delivery,
    EventType.EXECUTE_DELIVERY: handle_execute_delivery,
}


def _check_handler_coverage() -> None:
    missing = [event_type.value for event_type in EventType if event_type not in EVENT_HANDLERS]
    if missing:
        raise RuntimeError(f"以下事件类型缺少处理函数: {missing}")


_check_handler_coverage()


def dispatch_event(event: SimulationEvent, order: Order, ctx: SimulationContext) -> List[SimulationEvent]:
    """
    分派事件到对应的处理函数

    Args:
        event: 当前事件
        order: 事件对应的订单
        ctx: 运行上下文

    Returns:
        新产生的事件列表
    """
    if event.order_id != order.order_id:
        raise ValueError(f"事件订单 {event.order_id} 与传入订单 {order.order_id} 不一致")
    return EVENT_HANDLERS[event.event_type](event, order, ctx)
