"""
财务测算模块
根据仿真订单计算收入、运营成本、配送成本、损益和盈亏平衡点
"""

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Any, Sequence

import pandas as pd

from ..data_preparation.travel_estimator import TravelEstimator, RouteStop, build_cluster_routes
from ..simulation.entities import Order, ServiceType
from ..simulation.environment import safe_ratio
from ..utils.json_utils import dump_json

logger = logging.getLogger(__name__)

STOPS_PER_ROUTE = 5

# fixed 方法的路线假设
FIXED_HOURS_PER_ROUTE = 2.0
FIXED_KM_PER_ROUTE = 20.0

DELIVERY_METHOD_ROUTE = 'route'
DELIVERY_METHOD_FIXED = 'fixed'


@dataclass
class FinancialSummary:
    """财务测算结果"""
    revenue: Dict[str, Any] = field(default_factory=dict)
    operational_costs: Dict[str, Any] = field(default_factory=dict)
    delivery_costs: Dict[str, Any] = field(default_factory=dict)
    total_costs: Dict[str, Any] = field(default_factory=dict)
    profit_loss: Dict[str, Any] = field(default_factory=dict)
    breakeven: Dict[str, Any] = field(default_factory=dict)

    @property
    def total_revenue(self) -> float:
        return self.revenue.get('total_revenue', 0.0)

    @property
    def total_cost(self) -> float:
        return self.total_costs.get('total_cost', 0.0)

    @property
    def gross_profit(self) -> float:
        return self.profit_loss.get('gross_profit', 0.0)

    def summary(self) -> Dict[str, Any]:
        """关键数字"""
        return {
            'total_revenue': self.total_revenue,
            'total_costs': self.total_cost,
            'gross_profit': self.gross_profit,
            'gross_margin_pct': self.profit_loss.get('gross_margin_pct', float('nan')),
            'breakeven_orders': self.breakeven.get('breakeven_orders', float('inf')),
            'is_profitable': self.profit_loss.get('is_profitable', False),
        }

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            'revenue': self.revenue,
            'operational_costs': self.operational_costs,
            'delivery_costs': self.delivery_costs,
            'total_costs': self.total_costs,
            'profit_loss': self.profit_loss,
            'breakeven': self.breakeven,
            'summary': self.summary(),
        }


def _hour_of_day(seconds: float) -> float:
    return (seconds / 3600.0) % 24


class FinancialCalculator:
    """
    财务计算器
    订单级收入用 pandas 向量化计算，配送成本按聚类路线或固定假设估算
    """

    def __init__(self, config: Dict[str, Any],
                 delivery_method: str = DELIVERY_METHOD_ROUTE,
                 travel_estimator: TravelEstimator = None):
        """
        Args:
            config: 完整仿真配置
            delivery_method: route 按聚类路线估算，fixed 使用每条路线 2 小时 20 公里
            travel_estimator: 行程估算器，默认不带随机扰动
        """
        if delivery_method not in (DELIVERY_METHOD_ROUTE, DELIVERY_METHOD_FIXED):
            raise ValueError(f"未知的配送成本计算方法: {delivery_method}")

        self.config = config
        self.delivery_method = delivery_method
        self.travel_estimator = travel_estimator or TravelEstimator()

        self.pricing = config.get('pricing', {})
        self.costs = config.get('costs', {})
        self.duration_days = config.get('simulation', {}).get('duration_days', 7)

        regional = config.get('regional', {})
        self.depot = (regional.get('depot_lat', 40.4168), regional.get('depot_lon', -3.7038))

    def order_revenue_frame(self, orders: Sequence[Order]) -> pd.DataFrame:
        """
        订单级收入明细

        基础价按服务类型；先减自助检查固定折扣，再对余额按订阅比例打折；
        退款订单收入为 0。
        """
        columns = ['order_id', 'service_type', 'is_subscription', 'self_check_enabled',
                   'is_refunded', 'base_revenue', 'self_check_discount_amount',
                   'subscription_discount_amount', 'final_revenue']
        if not orders:
            return pd.DataFrame(columns=columns)

        wash_price = self.pricing.get('wash_price', 7.0)
        dry_price = self.pricing.get('dry_price', 8.0)
        base_prices = {
            ServiceType.WASH_DRY.value: wash_price + dry_price,
            ServiceType.WASH_ONLY.value: wash_price,
            ServiceType.DRY_ONLY.value: dry_price,
        }

        df = pd.DataFrame({
            'order_id': [o.order_id for o in orders],
            'service_type': [o.service_type.value for o in orders],
            'is_subscription': [bool(o.is_subscription) for o in orders],
            'self_check_enabled': [bool(o.self_check_enabled) for o in orders],
            'is_refunded': [bool(o.is_refunded) for o in orders],
        })

        df['base_revenue'] = df['service_type'].map(base_prices)
        df['self_check_discount_amount'] = df['self_check_enabled'] * self.pricing.get('self_check_discount', 0.0)
        after_self_check = df['base_revenue'] - df['self_check_discount_amount']
        df['subscription_discount_amount'] = (
            df['is_subscription'] * after_self_check * self.pricing.get('subscription_discount_pct', 0.0)
        )
        df['final_revenue'] = after_self_check - df['subscription_discount_amount']
        df.loc[df['is_refunded'], 'final_revenue'] = 0.0

        return df[columns]

    def calculate_revenue(self, orders: Sequence[Order]) -> Dict[str, Any]:
        """收入汇总，含按服务类型与客户分群的拆分"""
        df = self.order_revenue_frame(orders)

        by_service = []
        for service_type in ServiceType:
            subset = df[df['service_type'] == service_type.value]
            revenue = float(subset['final_revenue'].sum())
            by_service.append({
                'service_type': service_type.value,
                'revenue': revenue,
                'order_count': len(subset),
                'avg_revenue_per_order': safe_ratio(revenue, len(subset)),
            })

        segments = {
            'subscription': df['is_subscription'],
            'non_subscription': ~df['is_subscription'].astype(bool),
            'self_check': df['self_check_enabled'],
            'non_self_check': ~df['self_check_enabled'].astype(bool),
        }
        by_segment = []
        for segment, mask in segments.items():
            subset = df[mask.astype(bool)]
            revenue = float(subset['final_revenue'].sum())
            by_segment.append({
                'segment': segment,
                'revenue': revenue,
                'order_count': len(subset),
                'avg_revenue_per_order': safe_ratio(revenue, len(subset)),
            })

        total_revenue = float(df['final_revenue'].sum())
        return {
            'total_revenue': total_revenue,
            'total_base_revenue': float(df['base_revenue'].sum()),
            'total_discounts': float((df['self_check_discount_amount'] + df['subscription_discount_amount']).sum()),
            'refunded_orders': int(df['is_refunded'].sum()),
            'avg_revenue_per_order': safe_ratio(total_revenue, len(df)),
            'revenue_by_service': by_service,
            'revenue_by_segment': by_segment,
        }

    def calculate_operational_costs(self, orders: Sequence[Order]) -> Dict[str, Any]:
        """洗涤、烘干按公斤计，固定开销按周期折算"""
        wash_kg = sum(o.kg_estimate for o in orders if o.needs_wash)
        dry_kg = sum(o.kg_estimate for o in orders if o.needs_dry)

        wash_cost = wash_kg * self.costs.get('cost_per_kg_wash', 0.0)
        dry_cost = dry_kg * self.costs.get('cost_per_kg_dry', 0.0)
        overhead_cost = self.costs.get('overhead_per_week', 0.0) * self.duration_days / 7.0
        total = wash_cost + dry_cost + overhead_cost

        return {
            'wash_kg': wash_kg,
            'wash_cost': wash_cost,
            'dry_kg': dry_kg,
            'dry_cost': dry_cost,
            'overhead_cost': overhead_cost,
            'total_operational_cost': total,
            'cost_per_order': safe_ratio(total, len(orders)),
        }

    def _route_totals(self, routes: List[List[Order]], time_attr: str) -> Dict[str, float]:
        """一组路线的总分钟数与总里程"""
        minutes = 0.0
        km = 0.0
        for route in routes:
            stops = [
                RouteStop(
                    stop_id=o.order_id,
                    lat=o.address_lat,
                    lon=o.address_lon,
                    hour_of_day=_hour_of_day(getattr(o, time_attr)),
                    parking_difficulty=o.parking_difficulty
                )
                for o in route
            ]
            metrics = self.travel_estimator.route_metrics(stops, self.depot)
            minutes += metrics.total_minutes
            km += metrics.total_km
        return {'minutes': minutes, 'km': km}

    def calculate_delivery_costs(self, orders: Sequence[Order]) -> Dict[str, Any]:
        """
        取件与配送的司机工时和燃油成本

        route: 每个聚类内按 5 单切分路线，取件路线用期望取件钟点、
        配送路线用期望送达钟点估算行程。
        fixed: 取件与配送各 ceil(n/5) 条路线，每条 2 小时 20 公里。
        """
        num_routes_fixed = math.ceil(len(orders) / STOPS_PER_ROUTE)

        if self.delivery_method == DELIVERY_METHOD_FIXED:
            num_pickup_routes = num_delivery_routes = num_routes_fixed
            driver_hours = (num_pickup_routes + num_delivery_routes) * FIXED_HOURS_PER_ROUTE
            total_km = (num_pickup_routes + num_delivery_routes) * FIXED_KM_PER_ROUTE
        else:
            routes = build_cluster_routes(orders, STOPS_PER_ROUTE)
            pickup = self._route_totals(routes, 'preferred_pickup_time')
            delivery = self._route_totals(routes, 'preferred_delivery_time')
            num_pickup_routes = num_delivery_routes = len(routes)
            driver_hours = (pickup['minutes'] + delivery['minutes']) / 60.0
            total_km = pickup['km'] + delivery['km']

        driver_cost = driver_hours * self.costs.get('driver_hourly_rate', 0.0)
        fuel_cost = total_km * self.costs.get('fuel_per_km', 0.0)
        total = driver_cost + fuel_cost

        return {
            'method': self.delivery_method,
            'num_pickup_routes': num_pickup_routes,
            'num_delivery_routes': num_delivery_routes,
            'driver_hours': driver_hours,
            'driver_cost': driver_cost,
            'total_km': total_km,
            'fuel_cost': fuel_cost,
            'total_delivery_cost': total,
            'cost_per_order': safe_ratio(total, len(orders)),
        }

    @staticmethod
    def calculate_total_costs(operational_costs: Dict[str, Any],
                              delivery_costs: Dict[str, Any]) -> Dict[str, Any]:
        operational = operational_costs['total_operational_cost']
        delivery = delivery_costs['total_delivery_cost']
        return {
            'operational_cost': operational,
            'delivery_cost': delivery,
            'total_cost': operational + delivery,
            'breakdown': {
                'wash': operational_costs['wash_cost'],
                'dry': operational_costs['dry_cost'],
                'overhead': operational_costs['overhead_cost'],
                'driver': delivery_costs['driver_cost'],
                'fuel': delivery_costs['fuel_cost'],
            }
        }

    @staticmethod
    def calculate_profit_loss(revenue: Dict[str, Any], total_costs: Dict[str, Any]) -> Dict[str, Any]:
        """损益：毛利率在收入为 0 时为 NaN"""
        gross_profit = revenue['total_revenue'] - total_costs['total_cost']
        return {
            'revenue': revenue['total_revenue'],
            'total_costs': total_costs['total_cost'],
            'gross_profit': gross_profit,
            'gross_margin_pct': safe_ratio(gross_profit, revenue['total_revenue']) * 100,
            'is_profitable': gross_profit > 0,
        }

    def calculate_breakeven(self, revenue: Dict[str, Any],
                            total_costs: Dict[str, Any],
                            num_orders: int) -> Dict[str, Any]:
        """
        盈亏平衡分析

        固定成本 = 固定开销；变动成本 = 洗涤 + 烘干 + 司机 + 燃油。
        单均边际贡献不为正时盈亏平衡单量为 inf；没有订单时单均值为 NaN。
        """
        breakdown = total_costs['breakdown']
        fixed_costs = breakdown['overhead']
        variable_total = breakdown['wash'] + breakdown['dry'] + breakdown['driver'] + breakdown['fuel']

        revenue_per_order = safe_ratio(revenue['total_revenue'], num_orders)
        variable_cost_per_order = safe_ratio(variable_total, num_orders)
        contribution_margin = revenue_per_order - variable_cost_per_order

        if contribution_margin > 0:
            breakeven_orders = math.ceil(fixed_costs / contribution_margin)
            breakeven_orders_per_day = breakeven_orders / self.duration_days
        else:
            breakeven_orders = float('inf')
            breakeven_orders_per_day = float('inf')

        return {
            'fixed_costs': fixed_costs,
            'variable_cost_per_order': variable_cost_per_order,
            'revenue_per_order': revenue_per_order,
            'contribution_margin_per_order': contribution_margin,
            'contribution_margin_pct': safe_ratio(contribution_margin, revenue_per_order) * 100,
            'breakeven_orders': breakeven_orders,
            'breakeven_orders_per_day': breakeven_orders_per_day,
            'actual_orders': num_orders,
            'actual_orders_per_day': num_orders / self.duration_days,
            'orders_above_breakeven': num_orders - breakeven_orders,
            'is_above_breakeven': num_orders >= breakeven_orders,
        }

    def calculate(self, orders: Sequence[Order]) -> FinancialSummary:
        """
        计算完整的财务测算

        Args:
            orders: 仿真后的订单列表

        Returns:
            FinancialSummary
        """
        orders = list(orders)
        revenue = self.calculate_revenue(orders)
        operational_costs = self.calculate_operational_costs(orders)
        delivery_costs = self.calculate_delivery_costs(orders)
        total_costs = self.calculate_total_costs(operational_costs, delivery_costs)

        summary = FinancialSummary(
            revenue=revenue,
            operational_costs=operational_costs,
            delivery_costs=delivery_costs,
            total_costs=total_costs,
            profit_loss=self.calculate_profit_loss(revenue, total_costs),
            breakeven=self.calculate_breakeven(revenue, total_costs, len(orders))
        )
        self._log_summary(summary)
        return summary

    def _log_summary(self, summary: FinancialSummary) -> None:
        key = summary.summary()
        logger.info("=" * 60)
        logger.info(f"财务摘要 (配送成本方法: {self.delivery_method})")
        logger.info("=" * 60)
        logger.info(f"收入: {key['total_revenue']:.2f}")
        logger.info(f"成本: {key['total_costs']:.2f}")
        logger.info(f"毛利: {key['gross_profit']:.2f} (毛利率 {key['gross_margin_pct']:.1f}%)")
        logger.info(f"盈亏平衡单量: {key['breakeven_orders']}")
        logger.info("=" * 60)

    def save_summary(self, summary: FinancialSummary, output_path: Path) -> None:
        """保存财务测算到 JSON"""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        dump_json(summary.to_dict(), output_path)
        logger.info(f"财务测算已保存: {output_path}")
