"""
仿真实体类定义
包含订单(Order)的数据结构与状态机，以及事件、排队和资源预约记录
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import List, Tuple, Optional, Dict, Any


class OrderStatus(Enum):
    """订单状态枚举"""
    PLACED = "placed"  # 已下单
    PICKUP_SCHEDULED = "pickup_scheduled"  # 已安排取件
    PICKED_UP = "picked_up"  # 已取件
    WASHING = "washing"  # 洗涤中
    DRYING = "drying"  # 烘干中
    FOLDED = "folded"  # 已折叠
    OUT_FOR_DELIVERY = "out_for_delivery"  # 配送中
    DELIVERED = "delivered"  # 已送达


class ServiceType(Enum):
    """服务类型枚举"""
    WASH_DRY = "wash_dry"  # 洗涤+烘干
    WASH_ONLY = "wash_only"  # 仅洗涤
    DRY_ONLY = "dry_only"  # 仅烘干

    @property
    def needs_wash(self) -> bool:
        return self in (ServiceType.WASH_DRY, ServiceType.WASH_ONLY)

    @property
    def needs_dry(self) -> bool:
        return self in (ServiceType.WASH_DRY, ServiceType.DRY_ONLY)


class ResourceType(Enum):
    """资源池类型"""
    VAN = "van"  # 配送车辆
    DRIVER = "driver"  # 司机
    WASH = "wash"  # 洗衣机
    DRY = "dry"  # 烘干机


class EventType(Enum):
    """订单生命周期事件类型"""
    SCHEDULE_PICKUP = "schedule_pickup"
    EXECUTE_PICKUP = "execute_pickup"
    START_WASHING = "start_washing"
    START_DRYING = "start_drying"
    START_FOLDING = "start_folding"
    SCHEDULE_DELIVERY = "schedule_delivery"
    EXECUTE_DELIVERY = "execute_delivery"


class QueueReason(Enum):
    """资源不足导致排队的原因"""
    VAN_OR_DRIVER_UNAVAILABLE = "van_or_driver_unavailable"
    WASH_MACHINE_UNAVAILABLE = "wash_machine_unavailable"
    DRY_MACHINE_UNAVAILABLE = "dry_machine_unavailable"
    DELIVERY_VAN_OR_DRIVER_UNAVAILABLE = "delivery_van_or_driver_unavailable"


@dataclass
class Order:
    """
    订单类

    需求属性由订单生成器写入后不再改变；生命周期属性只由仿真引擎的
    事件处理函数逐阶段写入。时间均为相对仿真起点的秒数。
    """
    order_id: str
    placement_time: float  # 下单时间（秒）
    preferred_pickup_time: float  # 期望取件时间（秒）
    preferred_delivery_time: float  # 期望送达时间（秒）
    service_type: ServiceType
    kg_estimate: float  # 预估重量（公斤）
    is_subscription: bool = False  # 订阅用户
    self_check_enabled: bool = False  # 启用自助检查
    complexity_factor: float = 1.0  # 处理复杂度 [0.8, 1.2]
    route_cluster: int = 1  # 地理聚类编号 1-5
    address_lat: float = 0.0
    address_lon: float = 0.0
    parking_difficulty: int = 5  # 停车难度 1-10

    # 运行时状态
    status: OrderStatus = field(default=OrderStatus.PLACED)
    assigned_van: Optional[int] = None
    assigned_driver: Optional[int] = None
    assigned_wash_machine: Optional[int] = None
    assigned_dry_machine: Optional[int] = None
    delivery_van: Optional[int] = None
    delivery_driver: Optional[int] = None

    # 时间戳
    pickup_time_actual: Optional[float] = None  # 取件开始时间
    pickup_completed_time: Optional[float] = None  # 取件完成时间
    intake_end_time: Optional[float] = None  # 入库清点完成时间
    wash_start_time: Optional[float] = None
    wash_end_time: Optional[float] = None
    dry_start_time: Optional[float] = None
    dry_end_time: Optional[float] = None
    folding_start_time: Optional[float] = None
    folding_end_time: Optional[float] = None
    delivery_time_scheduled: Optional[float] = None  # 配送开始时间
    delivery_time_actual: Optional[float] = None  # 送达时间
    total_time_hours: Optional[float] = None  # 下单到送达（小时）

    # 排队与停滞
    reschedule_count: int = 0
    stalled: bool = False

    # 事后随机效果（None 表示未应用）
    is_refunded: Optional[bool] = None
    delivery_failed: Optional[bool] = None

    def __post_init__(self):
        """初始化后处理"""
        if isinstance(self.service_type, str):
            self.service_type = ServiceType(self.service_type)

        if self.kg_estimate <= 0:
            raise ValueError(f"Order {self.order_id}: kg_estimate must be positive")

        if self.preferred_delivery_time < self.preferred_pickup_time:
            raise ValueError(f"Order {self.order_id}: preferred_delivery_time cannot be before preferred_pickup_time")

    @property
    def needs_wash(self) -> bool:
        return self.service_type.needs_wash

    @property
    def needs_dry(self) -> bool:
        return self.service_type.needs_dry

    def schedule_pickup(self, start_time: float, van_id: int, driver_id: int) -> None:
        """安排取件（车辆与司机已预约）"""
        if self.status != OrderStatus.PLACED:
            raise ValueError(f"Order {self.order_id} cannot schedule pickup (status: {self.status})")

        self.pickup_time_actual = start_time
        self.assigned_van = van_id
        self.assigned_driver = driver_id
        self.status = OrderStatus.PICKUP_SCHEDULED

    def complete_pickup(self, current_time: float, intake_end_time: float) -> None:
        """完成取件并进入入库清点"""
        if self.status != OrderStatus.PICKUP_SCHEDULED:
            raise ValueError(f"Order {self.order_id} cannot complete pickup (status: {self.status})")

        self.pickup_completed_time = current_time
        self.intake_end_time = intake_end_time
        self.status = OrderStatus.PICKED_UP

    def start_washing(self, start_time: float, end_time: float, machine_id: int) -> None:
        """开始洗涤"""
        if self.status != OrderStatus.PICKED_UP:
            raise ValueError(f"Order {self.order_id} cannot start washing (status: {self.status})")

        self.wash_start_time = start_time
        self.wash_end_time = end_time
        self.assigned_wash_machine = machine_id
        self.status = OrderStatus.WASHING

    def start_drying(self, start_time: float, end_time: float, machine_id: int) -> None:
        """开始烘干"""
        if self.status not in (OrderStatus.PICKED_UP, OrderStatus.WASHING):
            raise ValueError(f"Order {self.order_id} cannot start drying (status: {self.status})")

        self.dry_start_time = start_time
        self.dry_end_time = end_time
        self.assigned_dry_machine = machine_id
        self.status = OrderStatus.DRYING

    def complete_folding(self, start_time: float, end_time: float) -> None:
        """折叠（无资源约束）"""
        if self.status not in (OrderStatus.PICKED_UP, OrderStatus.WASHING, OrderStatus.DRYING):
            raise ValueError(f"Order {self.order_id} cannot be folded (status: {self.status})")

        self.folding_start_time = start_time
        self.folding_end_time = end_time
        self.status = OrderStatus.FOLDED

    def schedule_delivery(self, start_time: float, van_id: int, driver_id: int) -> None:
        """安排配送（车辆与司机已预约）"""
        if self.status != OrderStatus.FOLDED:
            raise ValueError(f"Order {self.order_id} cannot schedule delivery (status: {self.status})")

        self.delivery_time_scheduled = start_time
        self.delivery_van = van_id
        self.delivery_driver = driver_id
        self.status = OrderStatus.OUT_FOR_DELIVERY

    def complete_delivery(self, current_time: float) -> None:
        """完成配送"""
        if self.status != OrderStatus.OUT_FOR_DELIVERY:
            raise ValueError(f"Order {self.order_id} cannot complete delivery (status: {self.status})")

        self.delivery_time_actual = current_time
        self.total_time_hours = (current_time - self.placement_time) / 3600.0
        self.status = OrderStatus.DELIVERED

    def stage_timestamps(self) -> List[Tuple[str, float]]:
        """按生命周期顺序返回已到达阶段的时间戳"""
        stages = [
            ('placed', self.placement_time),
            ('pickup_scheduled', self.pickup_time_actual),
            ('picked_up', self.pickup_completed_time),
            ('intake_end', self.intake_end_time),
            ('wash_start', self.wash_start_time),
            ('wash_end', self.wash_end_time),
            ('dry_start', self.dry_start_time),
            ('dry_end', self.dry_end_time),
            ('folding_start', self.folding_start_time),
            ('folding_end', self.folding_end_time),
            ('delivery_scheduled', self.delivery_time_scheduled),
            ('delivered', self.delivery_time_actual),
        ]
        return [(name, t) for name, t in stages if t is not None]

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            'order_id': self.order_id,
            'placement_time': self.placement_time,
            'preferred_pickup_time': self.preferred_pickup_time,
            'preferred_delivery_time': self.preferred_delivery_time,
            'service_type': self.service_type.value,
            'kg_estimate': self.kg_estimate,
            'is_subscription': self.is_subscription,
            'self_check_enabled': self.self_check_enabled,
            'complexity_factor': self.complexity_factor,
            'route_cluster': self.route_cluster,
            'address_lat': self.address_lat,
            'address_lon': self.address_lon,
            'parking_difficulty': self.parking_difficulty,
            'status': self.status.value,
            'assigned_van': self.assigned_van,
            'assigned_driver': self.assigned_driver,
            'assigned_wash_machine': self.assigned_wash_machine,
            'assigned_dry_machine': self.assigned_dry_machine,
            'delivery_van': self.delivery_van,
            'delivery_driver': self.delivery_driver,
            'pickup_time_actual': self.pickup_time_actual,
            'pickup_completed_time': self.pickup_completed_time,
            'intake_end_time': self.intake_end_time,
            'wash_start_time': self.wash_start_time,
            'wash_end_time': self.wash_end_time,
            'dry_start_time': self.dry_start_time,
            'dry_end_time': self.dry_end_time,
            'folding_start_time': self.folding_start_time,
            'folding_end_time': self.folding_end_time,
            'delivery_time_scheduled': self.delivery_time_scheduled,
            'delivery_time_actual': self.delivery_time_actual,
            'total_time_hours': self.total_time_hours,
            'reschedule_count': self.reschedule_count,
            'stalled': self.stalled,
            'is_refunded': self.is_refunded,
            'delivery_failed': self.delivery_failed,
        }


@dataclass
class SimulationEvent:
    """仿真事件（既用于事件队列，也用于事件轨迹记录）"""
    timestamp: float
    event_type: EventType
    order_id: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            'timestamp': self.timestamp,
            'event_type': self.event_type.value,
            'order_id': self.order_id,
            'details': self.details
        }


@dataclass
class QueueLogEntry:
    """排队记录：某阶段因资源不足被推迟"""
    timestamp: float
    order_id: str
    reason: QueueReason
    rescheduled_for: float

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            'timestamp': self.timestamp,
            'order_id': self.order_id,
            'reason': self.reason.value,
            'rescheduled_for': self.rescheduled_for
        }


@dataclass
class ReservationRecord:
    """资源预约记录"""
    resource_type: ResourceType
    unit_id: int  # 从 1 开始编号
    reserved_from: float
    reserved_until: float
    order_id: Optional[str] = None

    @property
    def duration(self) -> float:
        return self.reserved_until - self.reserved_from

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            'resource_type': self.resource_type.value,
            'unit_id': self.unit_id,
            'reserved_from': self.reserved_from,
            'reserved_until': self.reserved_until,
            'order_id': self.order_id
        }
