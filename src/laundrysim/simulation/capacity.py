"""
产能台账
记录车辆、司机、洗衣机、烘干机每个单元的最早可用时间，负责可用性查询与预约
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Iterable

import numpy as np
import pandas as pd

from .entities import ResourceType, ReservationRecord

logger = logging.getLogger(__name__)


def sum_reserved_hours(records: Iterable[ReservationRecord]) -> Dict[ResourceType, float]:
    """按资源池汇总预约时长（小时）"""
    hours = {resource_type: 0.0 for resource_type in ResourceType}
    for record in records:
        hours[record.resource_type] += record.duration / 3600.0
    return hours


@dataclass
class AvailabilityCheck:
    """可用性查询结果"""
    available: bool
    unit_id: Optional[int]  # 可用单元编号（从 1 开始），不可用时为 None
    next_available_time: float  # 不可用时为资源池中最早释放时间，可用时为查询时间


class CapacityLedger:
    """
    资源池台账

    每个资源池是一个长度等于单元数量的 numpy 数组，存放各单元的最早可用时间。
    查询时返回编号最小的空闲单元；预约只会把单元的可用时间向后推。
    """

    def __init__(self, capacity_config: Dict[str, Any], start_time: float = 0.0):
        """
        初始化台账

        Args:
            capacity_config: 产能配置（num_vans, num_drivers, num_wash_machines, num_dry_machines）
            start_time: 所有单元的初始可用时间
        """
        counts = {
            ResourceType.VAN: int(capacity_config.get('num_vans', 3)),
            ResourceType.DRIVER: int(capacity_config.get('num_drivers', 4)),
            ResourceType.WASH: int(capacity_config.get('num_wash_machines', 10)),
            ResourceType.DRY: int(capacity_config.get('num_dry_machines', 8)),
        }

        for resource_type, count in counts.items():
            if count <= 0:
                raise ValueError(f"资源池 {resource_type.value} 的数量必须为正数: {count}")

        self.pools: Dict[ResourceType, np.ndarray] = {
            resource_type: np.full(count, float(start_time))
            for resource_type, count in counts.items()
        }
        self.reservations: List[ReservationRecord] = []

        logger.debug(
            "产能台账初始化: " + ", ".join(f"{r.value}={c}" for r, c in counts.items())
        )

    def pool_size(self, resource_type: ResourceType) -> int:
        """资源池单元数"""
        return len(self.pools[resource_type])

    def available_from(self, resource_type: ResourceType, unit_id: int) -> float:
        """某单元的最早可用时间"""
        return float(self.pools[resource_type][unit_id - 1])

    def check_availability(self, resource_type: ResourceType, required_time: float) -> AvailabilityCheck:
        """
        查询 required_time 时是否有空闲单元

        Args:
            resource_type: 资源池类型
            required_time: 需要使用的时间

        Returns:
            AvailabilityCheck
        """
        pool = self.pools[resource_type]
        free = np.flatnonzero(pool <= required_time)

        if len(free) > 0:
            return AvailabilityCheck(
                available=True,
                unit_id=int(free[0]) + 1,
                next_available_time=float(required_time)
            )

        return AvailabilityCheck(
            available=False,
            unit_id=None,
            next_available_time=float(pool.min())
        )

    def reserve(self,
                resource_type: ResourceType,
                unit_id: int,
                until: float,
                reserved_from: float,
                order_id: Optional[str] = None) -> ReservationRecord:
        """
        预约单元直到 until

        调用方需保证该单元在 reserved_from 时已空闲。

        Args:
            resource_type: 资源池类型
            unit_id: 单元编号（从 1 开始）
            until: 释放时间
            reserved_from: 占用开始时间
            order_id: 关联订单

        Returns:
            新增的预约记录
        """
        self.pools[resource_type][unit_id - 1] = until

        record = ReservationRecord(
            resource_type=resource_type,
            unit_id=unit_id,
            reserved_from=reserved_from,
            reserved_until=until,
            order_id=order_id
        )
        self.reservations.append(record)
        return record

    def reserved_hours(self) -> Dict[ResourceType, float]:
        return sum_reserved_hours(self.reservations)

    def to_dataframe(self) -> pd.DataFrame:
        """预约记录表"""
        columns = ['resource_type', 'unit_id', 'reserved_from', 'reserved_until', 'order_id']
        return pd.DataFrame([r.to_dict() for r in self.reservations], columns=columns)

    def __repr__(self) -> str:
        sizes = ", ".join(f"{r.value}={len(p)}" for r, p in self.pools.items())
        return f"CapacityLedger({sizes}, reservations={len(self.reservations)})"
