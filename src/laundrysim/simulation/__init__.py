"""
仿真模块
基于 SimPy 的洗衣配送离散事件仿真引擎
"""

from .entities import (
    Order, OrderStatus, ServiceType, ResourceType, EventType, QueueReason,
    SimulationEvent, QueueLogEntry, ReservationRecord
)
from .capacity import CapacityLedger, AvailabilityCheck
from .handlers import SimulationContext, dispatch_event, EVENT_HANDLERS
from .environment import SimulationEngine, SimulationResult

__all__ = [
    'Order',
    'OrderStatus',
    'ServiceType',
    'ResourceType',
    'EventType',
    'QueueReason',
    'SimulationEvent',
    'QueueLogEntry',
    'ReservationRecord',
    'CapacityLedger',
    'AvailabilityCheck',
    'SimulationContext',
    'dispatch_event',
    'EVENT_HANDLERS',
    'SimulationEngine',
    'SimulationResult',
]
