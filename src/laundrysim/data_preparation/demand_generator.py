"""
订单需求生成模块
根据区域住户数、需求场景、价格弹性和高峰时段生成一段周期内的洗衣订单
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Tuple, Optional, Sequence

import numpy as np
import pandas as pd

from ..simulation.entities import Order, ServiceType
from ..utils.config import parse_clock_hour
from ..utils.json_utils import dump_json

logger = logging.getLogger(__name__)

# 需求场景倍数
SCENARIO_MULTIPLIERS = {
    'pessimistic': 0.6,
    'realistic': 1.0,
    'optimistic': 1.5,
}
DEFAULT_SCENARIO_MULTIPLIER = 1.0

DEFAULT_WEEKLY_PENETRATION = 0.005
REFERENCE_PRICE = 15.0  # 洗+烘参考总价

# 服务时段 06:00-23:00
SERVICE_START_HOUR = 6.0
SERVICE_END_HOUR = 23.0

SERVICE_MIX = [
    (ServiceType.WASH_DRY, 0.70),
    (ServiceType.WASH_ONLY, 0.20),
    (ServiceType.DRY_ONLY, 0.10),
]

# (概率, 均值kg, 标准差kg)：小/中/大件
SIZE_CATEGORIES = [
    (0.20, 4.0, 0.8),
    (0.60, 7.0, 1.0),
    (0.20, 10.0, 1.2),
]
MIN_KG, MAX_KG = 2.0, 15.0
MIN_COMPLEXITY, MAX_COMPLEXITY = 0.8, 1.2

# 仓库周围 5 个聚类中心的经纬度偏移（度）
CLUSTER_OFFSETS = np.array([
    [0.02, 0.02],
    [0.02, -0.02],
    [-0.02, 0.02],
    [-0.02, -0.02],
    [0.0, 0.0],
]) / 1.5
LOCATION_NOISE_SD = 0.008
DENSITY_SPREAD = {
    'urban': 0.3,
    'suburban': 0.6,
    'rural': 1.0,
}
DEFAULT_DENSITY_SPREAD = 0.5

DEFAULT_DEPOT = (40.4168, -3.7038)

PICKUP_DELAY_HOURS = (24.0, 48.0)
DELIVERY_DELAY_HOURS = (24.0, 72.0)


class DemandGenerator:
    """订单需求生成器类"""

    def __init__(self, config: Dict[str, Any], random_seed: Optional[int] = None):
        """
        初始化需求生成器

        Args:
            config: 完整仿真配置
            random_seed: 随机种子，默认取 randomization.random_seed
        """
        self.config = config

        regional = config.get('regional', {})
        pricing = config.get('pricing', {})
        randomization = config.get('randomization', {})
        elasticity = config.get('elasticity', {})
        simulation = config.get('simulation', {})

        if random_seed is None:
            random_seed = randomization.get('random_seed', 42)
        self.random_seed = random_seed
        self.rng = np.random.default_rng(random_seed)

        # 区域
        self.dwellings = regional.get('dwellings', 50000)
        self.weekly_penetration = regional.get('weekly_penetration_rate', DEFAULT_WEEKLY_PENETRATION)
        self.parking_difficulty = int(regional.get('parking_difficulty', 5))
        self.geographic_density = regional.get('geographic_density', 'urban')
        self.depot = (regional.get('depot_lat', DEFAULT_DEPOT[0]),
                      regional.get('depot_lon', DEFAULT_DEPOT[1]))

        # 价格与弹性
        self.wash_price = pricing.get('wash_price', 7.0)
        self.dry_price = pricing.get('dry_price', 8.0)
        self.price_elasticity = elasticity.get('price_elasticity', 1.5)
        self.self_check_rate = elasticity.get('self_check_adoption_rate', 0.3)
        self.subscription_ratio = elasticity.get('subscription_ratio', 0.2)

        # 时段
        self.demand_scenario = randomization.get('demand_scenario', 'realistic')
        self.peak_start = parse_clock_hour(randomization.get('peak_hours_start', '18:00'))
        self.peak_end = parse_clock_hour(randomization.get('peak_hours_end', '20:00'))
        self.peak_multiplier = randomization.get('peak_hour_multiplier', 3.0)

        # 仿真周期
        self.duration_days = simulation.get('duration_days', 7)
        self.time_slot_hours = simulation.get('time_slot_hours', 2)

    def calculate_daily_demand(self) -> float:
        """
        日均订单量

        住户数 × 周渗透率 × 场景倍数 / 7，再乘以价格弹性调整
        (参考价 / 实际总价) ^ 弹性系数。
        """
        scenario_multiplier = SCENARIO_MULTIPLIERS.get(self.demand_scenario, DEFAULT_SCENARIO_MULTIPLIER)
        base_daily = self.dwellings * self.weekly_penetration * scenario_multiplier / 7.0

        total_price = self.wash_price + self.dry_price
        demand_adjustment = (REFERENCE_PRICE / total_price) ** self.price_elasticity

        return base_daily * demand_adjustment

    def calculate_total_orders(self) -> int:
        """仿真周期内的订单总数"""
        return int(np.round(self.calculate_daily_demand() * self.duration_days))

    def _off_peak_segments(self) -> List[Tuple[float, float]]:
        """服务时段去掉高峰窗口后剩下的区间"""
        segments = [
            (SERVICE_START_HOUR, min(self.peak_start, SERVICE_END_HOUR)),
            (max(self.peak_end, SERVICE_START_HOUR), SERVICE_END_HOUR),
        ]
        return [(lo, hi) for lo, hi in segments if hi > lo]

    def _sample_off_peak_hours(self, n: int) -> np.ndarray:
        """在非高峰服务时段内均匀采样钟点"""
        segments = self._off_peak_segments()
        if not segments:
            # 高峰窗口覆盖整个服务时段
            return self.rng.uniform(self.peak_start, self.peak_end, n)

        lengths = np.array([hi - lo for lo, hi in segments])
        offsets = self.rng.uniform(0, lengths.sum(), n)

        hours = np.empty(n)
        bounds = np.concatenate([[0.0], np.cumsum(lengths)])
        for i, (lo, _) in enumerate(segments):
            mask = (offsets >= bounds[i]) & (offsets < bounds[i + 1])
            hours[mask] = lo + offsets[mask] - bounds[i]
        # 浮点边界落在末端时归入最后一段
        hours[offsets >= bounds[-1]] = segments[-1][1]
        return hours

    def generate_placement_times(self, n: int) -> np.ndarray:
        """
        生成下单时间（秒）

        日期在周期内均匀分布；以 peak_multiplier/(peak_multiplier+1) 的概率
        落在高峰窗口内，否则落在其余服务时段。
        """
        num_days = max(1, int(np.ceil(self.duration_days)))
        day_offsets = self.rng.integers(0, num_days, n)

        peak_probability = self.peak_multiplier / (self.peak_multiplier + 1.0)
        in_peak = self.rng.random(n) < peak_probability

        peak_hours = self.rng.uniform(self.peak_start, self.peak_end, n)
        off_peak_hours = self._sample_off_peak_hours(n)
        hours = np.where(in_peak, peak_hours, off_peak_hours)

        return day_offsets * 86400.0 + hours * 3600.0

    def generate_service_types(self, n: int) -> np.ndarray:
        """按服务组合比例采样服务类型"""
        types = np.array([t for t, _ in SERVICE_MIX], dtype=object)
        probs = [p for _, p in SERVICE_MIX]
        return self.rng.choice(types, size=n, p=probs)

    def generate_customer_segments(self, n: int) -> Tuple[np.ndarray, np.ndarray]:
        """
        订阅与自助检查标记

        订阅用户的自助检查概率为基础率 ×1.5（不超过 1），非订阅用户为 ×0.7。
        """
        is_subscription = self.rng.random(n) < self.subscription_ratio
        self_check_prob = np.where(
            is_subscription,
            min(1.0, self.self_check_rate * 1.5),
            min(1.0, self.self_check_rate * 0.7)
        )
        self_check = self.rng.random(n) < self_check_prob
        return is_subscription, self_check

    def generate_weights(self, n: int) -> np.ndarray:
        """按小/中/大件分类采样重量，截断到 [2, 15] 公斤并保留一位小数"""
        probs = [p for p, _, _ in SIZE_CATEGORIES]
        means = np.array([m for _, m, _ in SIZE_CATEGORIES])
        sds = np.array([s for _, _, s in SIZE_CATEGORIES])

        categories = self.rng.choice(len(SIZE_CATEGORIES), size=n, p=probs)
        weights = self.rng.normal(means[categories], sds[categories])
        weights = np.clip(weights, MIN_KG, MAX_KG)
        return np.round(weights, 1)

    def generate_complexity(self, n: int) -> np.ndarray:
        """处理复杂度 N(1, 0.1)，截断到 [0.8, 1.2]"""
        return np.clip(self.rng.normal(1.0, 0.1, n), MIN_COMPLEXITY, MAX_COMPLEXITY)

    def generate_locations(self, n: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        地理分布：随机分配到 5 个聚类，在聚类中心附近加正态噪声

        Returns:
            (聚类编号 1-5, 纬度, 经度)
        """
        spread = DENSITY_SPREAD.get(self.geographic_density, DEFAULT_DENSITY_SPREAD)
        noise_sd = LOCATION_NOISE_SD * spread

        clusters = self.rng.integers(0, len(CLUSTER_OFFSETS), n)
        centers = np.array(self.depot) + CLUSTER_OFFSETS[clusters]

        lats = centers[:, 0] + self.rng.normal(0, noise_sd, n)
        lons = centers[:, 1] + self.rng.normal(0, noise_sd, n)
        return clusters + 1, lats, lons

    def _round_to_slot(self, times: np.ndarray) -> np.ndarray:
        slot = self.time_slot_hours * 3600.0
        return np.round(times / slot) * slot

    def generate_preferred_times(self, placement_times: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        期望取件/送达时间

        取件 = 下单后 24-48 小时，送达 = 取件后 24-72 小时，均取整到时间槽。
        """
        n = len(placement_times)
        pickup_delay = self.rng.uniform(*PICKUP_DELAY_HOURS, n) * 3600.0
        pickup = self._round_to_slot(placement_times + pickup_delay)

        delivery_delay = self.rng.uniform(*DELIVERY_DELAY_HOURS, n) * 3600.0
        delivery = self._round_to_slot(pickup + delivery_delay)
        return pickup, delivery

    def generate_orders(self) -> List[Order]:
        """
        生成订单列表

        Returns:
            按下单时间排序的订单列表
        """
        total_orders = self.calculate_total_orders()
        logger.info(
            f"生成 {total_orders} 个订单，周期 {self.duration_days} 天 "
            f"(日均 {self.calculate_daily_demand():.1f} 单, 场景: {self.demand_scenario})"
        )

        if total_orders <= 0:
            logger.warning("订单数为 0，返回空订单集")
            return []

        placement = self.generate_placement_times(total_orders)
        service_types = self.generate_service_types(total_orders)
        is_subscription, self_check = self.generate_customer_segments(total_orders)
        weights = self.generate_weights(total_orders)
        complexity = self.generate_complexity(total_orders)
        clusters, lats, lons = self.generate_locations(total_orders)
        pickup, delivery = self.generate_preferred_times(placement)

        order_index = np.argsort(placement, kind='stable')

        orders = []
        for seq, i in enumerate(order_index, start=1):
            orders.append(Order(
                order_id=f"ORD_{seq:06d}",
                placement_time=float(placement[i]),
                preferred_pickup_time=float(pickup[i]),
                preferred_delivery_time=float(delivery[i]),
                service_type=service_types[i],
                kg_estimate=float(weights[i]),
                is_subscription=bool(is_subscription[i]),
                self_check_enabled=bool(self_check[i]),
                complexity_factor=float(complexity[i]),
                route_cluster=int(clusters[i]),
                address_lat=float(lats[i]),
                address_lon=float(lons[i]),
                parking_difficulty=self.parking_difficulty
            ))

        mix = {t.value: sum(1 for o in orders if o.service_type == t) for t, _ in SERVICE_MIX}
        logger.info(f"订单生成完成: {len(orders)} 个, 服务组合 {mix}")
        return orders

    def get_statistics(self, orders: List[Order]) -> Dict[str, Any]:
        """
        获取订单统计信息

        Args:
            orders: 订单列表

        Returns:
            统计信息字典
        """
        if not orders:
            return {'total_orders': 0}

        orders_df = pd.DataFrame([order.to_dict() for order in orders])
        service_share = orders_df['service_type'].value_counts(normalize=True)

        stats = {
            'total_orders': len(orders),
            'orders_per_day': len(orders) / self.duration_days,
            'avg_kg': float(orders_df['kg_estimate'].mean()),
            'subscription_share': float(orders_df['is_subscription'].mean()),
            'self_check_share': float(orders_df['self_check_enabled'].mean()),
        }
        for service_type, _ in SERVICE_MIX:
            stats[f'{service_type.value}_share'] = float(service_share.get(service_type.value, 0.0))

        logger.info("订单统计信息:")
        for key, value in stats.items():
            logger.info(f"  {key}: {value:.2f}")

        return stats

    def save_orders(self, orders: List[Order], output_dir: Path) -> Dict[str, Path]:
        """
        保存订单数据

        Args:
            orders: 订单列表
            output_dir: 输出目录

        Returns:
            保存的文件路径字典
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        saved_files = {}

        orders_file = output_dir / "orders.csv"
        pd.DataFrame([order.to_dict() for order in orders]).to_csv(orders_file, index=False, encoding='utf-8')
        saved_files['orders'] = orders_file
        logger.info(f"订单文件已保存: {orders_file}")

        stats_file = output_dir / "order_statistics.json"
        dump_json(self.get_statistics(orders), stats_file)
        saved_files['statistics'] = stats_file

        return saved_files


def apply_randomization_effects(orders: Sequence[Order],
                                config: Dict[str, Any],
                                random_seed: Optional[int] = None) -> None:
    """
    事后标记退款与配送失败

    使用 random_seed + 1000 的独立随机流，不改变订单状态。

    Args:
        orders: 订单列表（原地修改）
        config: 完整仿真配置
        random_seed: 随机种子，默认取 randomization.random_seed
    """
    randomization = config.get('randomization', {})
    if random_seed is None:
        random_seed = randomization.get('random_seed', 42)

    rng = np.random.default_rng(random_seed + 1000)
    n = len(orders)

    refund_rate = randomization.get('refund_rate', 0.02)
    failed_rate = randomization.get('failed_delivery_rate', 0.05)
    refunded = rng.random(n) < refund_rate
    failed = rng.random(n) < failed_rate

    for order, is_refunded, delivery_failed in zip(orders, refunded, failed):
        order.is_refunded = bool(is_refunded)
        order.delivery_failed = bool(delivery_failed)

    logger.info(
        f"随机效果: 退款 {int(refunded.sum())} 单 ({refund_rate*100:.1f}%), "
        f"配送失败 {int(failed.sum())} 单 ({failed_rate*100:.1f}%)"
    )


def generate_orders(config: Dict[str, Any],
                    random_seed: Optional[int] = None,
                    output_dir: Optional[Path] = None) -> Tuple[List[Order], Dict[str, Path]]:
    """
    生成订单（便捷函数）

    Args:
        config: 完整仿真配置
        random_seed: 随机种子
        output_dir: 输出目录

    Returns:
        (订单列表, 保存的文件路径字典)
    """
    generator = DemandGenerator(config, random_seed)
    orders = generator.generate_orders()

    saved_files = {}
    if output_dir:
        saved_files = generator.save_orders(orders, output_dir)

    return orders, saved_files
