"""
行程估算模块
基于经纬度差的城市道路距离近似，以及考虑交通时段和停车难度的行程时间
"""

import logging
from dataclasses import dataclass, field
from itertools import groupby
from typing import Dict, Any, List, Tuple, Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)

# 马德里纬度附近每度对应的公里数
KM_PER_DEG_LAT = 111.0
KM_PER_DEG_LON = 85.0
ROAD_NETWORK_FACTOR = 1.3  # 直线距离到道路距离的折算

BASE_SPEED_KMH = 30.0
CUSTOMER_INTERACTION_MIN = 5.0
PARKING_MIN_AT_EASIEST = 2.0  # 难度 1
PARKING_MIN_AT_HARDEST = 15.0  # 难度 10


@dataclass
class RouteStop:
    """路线上的一个停靠点"""
    stop_id: str
    lat: float
    lon: float
    hour_of_day: float  # 到达该点时的钟点（0-24）
    parking_difficulty: int = 5


@dataclass
class StopMetrics:
    """单个停靠点的行程明细"""
    stop_id: str
    distance_km: float  # 从上一点到本点
    travel_minutes: float  # 行驶 + 停车 + 交接
    cumulative_minutes: float


@dataclass
class RouteMetrics:
    """整条路线（仓库 → 各停靠点 → 仓库）的汇总"""
    total_minutes: float = 0.0
    total_km: float = 0.0
    return_km: float = 0.0
    return_minutes: float = 0.0
    stops: List[StopMetrics] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            'total_minutes': self.total_minutes,
            'total_km': self.total_km,
            'return_km': self.return_km,
            'return_minutes': self.return_minutes,
            'num_stops': len(self.stops)
        }


class TravelEstimator:
    """行程估算器"""

    def __init__(self,
                 base_speed_kmh: float = BASE_SPEED_KMH,
                 jitter_std: float = 0.0,
                 rng: Optional[np.random.Generator] = None):
        """
        Args:
            base_speed_kmh: 畅通时的平均车速
            jitter_std: 交通系数随机扰动的标准差，0 表示确定性估算
            rng: 随机数生成器，jitter_std > 0 时必须提供
        """
        if jitter_std < 0:
            raise ValueError(f"jitter_std 不能为负: {jitter_std}")
        if jitter_std > 0 and rng is None:
            raise ValueError("启用交通扰动时必须提供带种子的 rng")

        self.base_speed_kmh = base_speed_kmh
        self.jitter_std = jitter_std
        self.rng = rng

    @staticmethod
    def distance(from_point: Tuple[float, float], to_point: Tuple[float, float]) -> float:
        """
        两点间的道路距离（公里）

        Args:
            from_point: (lat, lon)
            to_point: (lat, lon)
        """
        dlat = abs(to_point[0] - from_point[0])
        dlon = abs(to_point[1] - from_point[1])
        return (dlat * KM_PER_DEG_LAT + dlon * KM_PER_DEG_LON) * ROAD_NETWORK_FACTOR

    @staticmethod
    def traffic_multiplier(hour_of_day: float) -> float:
        """交通拥堵系数：早晚高峰 1.5，白天 1.2，其余 1.0"""
        hour = hour_of_day % 24
        if 8 <= hour < 10 or 18 <= hour < 20:
            return 1.5
        if 11 <= hour < 17:
            return 1.2
        return 1.0

    @staticmethod
    def parking_minutes(parking_difficulty: float) -> float:
        """停车耗时，难度 1 为 2 分钟，难度 10 为 15 分钟，线性插值"""
        step = (PARKING_MIN_AT_HARDEST - PARKING_MIN_AT_EASIEST) / 9.0
        return PARKING_MIN_AT_EASIEST + (parking_difficulty - 1) * step

    def driving_minutes(self, distance_km: float, hour_of_day: float) -> float:
        """纯行驶时间（分钟）"""
        multiplier = self.traffic_multiplier(hour_of_day)

        if self.jitter_std > 0:
            noise = self.rng.normal(0, self.jitter_std)
            multiplier *= float(np.clip(1 + noise, 0.8, 1.2))

        effective_speed = self.base_speed_kmh / multiplier
        return distance_km / effective_speed * 60.0

    def travel_time(self, distance_km: float, hour_of_day: float, parking_difficulty: float) -> float:
        """
        到达并完成一次上门交接所需时间（分钟）

        Args:
            distance_km: 行驶距离
            hour_of_day: 出发钟点
            parking_difficulty: 停车难度 1-10

        Returns:
            行驶 + 停车 + 客户交接的分钟数
        """
        return (self.driving_minutes(distance_km, hour_of_day)
                + self.parking_minutes(parking_difficulty)
                + CUSTOMER_INTERACTION_MIN)

    def route_metrics(self, stops: Sequence[RouteStop], depot: Tuple[float, float]) -> RouteMetrics:
        """
        按给定顺序计算路线总时长与总里程

        从仓库出发依次访问停靠点（每段使用该停靠点的钟点），最后空车返回仓库。
        不做顺序优化。
        """
        metrics = RouteMetrics()
        if not stops:
            return metrics

        current = depot
        for stop in stops:
            point = (stop.lat, stop.lon)
            leg_km = self.distance(current, point)
            leg_minutes = self.travel_time(leg_km, stop.hour_of_day, stop.parking_difficulty)

            metrics.total_km += leg_km
            metrics.total_minutes += leg_minutes
            metrics.stops.append(StopMetrics(
                stop_id=stop.stop_id,
                distance_km=leg_km,
                travel_minutes=leg_minutes,
                cumulative_minutes=metrics.total_minutes
            ))
            current = point

        metrics.return_km = self.distance(current, depot)
        metrics.return_minutes = self.driving_minutes(metrics.return_km, stops[-1].hour_of_day)
        metrics.total_km += metrics.return_km
        metrics.total_minutes += metrics.return_minutes

        return metrics


def build_cluster_routes(orders: Sequence[Any], stops_per_route: int = 5) -> List[List[Any]]:
    """
    按地理聚类把订单切分成固定大小的路线

    同一聚类内保持下单顺序，每 stops_per_route 个订单组成一条路线。

    Args:
        orders: 具有 route_cluster 和 placement_time 属性的订单
        stops_per_route: 每条路线的最大停靠点数

    Returns:
        路线列表，每条路线是订单列表
    """
    if stops_per_route <= 0:
        raise ValueError(f"stops_per_route 必须为正数: {stops_per_route}")

    ordered = sorted(orders, key=lambda o: (o.route_cluster, o.placement_time))
    routes = []
    for _, cluster_orders in groupby(ordered, key=lambda o: o.route_cluster):
        cluster_orders = list(cluster_orders)
        for i in range(0, len(cluster_orders), stops_per_route):
            routes.append(cluster_orders[i:i + stops_per_route])

    logger.debug(f"{len(orders)} 个订单划分为 {len(routes)} 条路线")
    return routes
