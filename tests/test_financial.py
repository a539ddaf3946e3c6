"""财务测算测试"""

import json
import math

import pytest

from laundrysim.analysis.financial import FinancialCalculator
from laundrysim.simulation.entities import ServiceType
from laundrysim.utils.config import get_default_config, merge_config


@pytest.fixture
def calculator():
    return FinancialCalculator(get_default_config())


def test_revenue_discount_order(make_order, calculator):
    """先减自助检查固定折扣，再按订阅比例打折"""
    order = make_order(service_type=ServiceType.WASH_DRY, is_subscription=True, self_check_enabled=True)
    df = calculator.order_revenue_frame([order])

    # (7 + 8 - 2) × (1 - 0.15)
    assert df['final_revenue'].iloc[0] == pytest.approx(13.0 * 0.85)
    assert df['subscription_discount_amount'].iloc[0] == pytest.approx(13.0 * 0.15)


def test_revenue_by_service_type(make_order, calculator):
    orders = [
        make_order(service_type=ServiceType.WASH_DRY),
        make_order(service_type=ServiceType.WASH_ONLY),
        make_order(service_type=ServiceType.DRY_ONLY),
    ]
    revenue = calculator.calculate_revenue(orders)

    assert revenue['total_revenue'] == pytest.approx(15.0 + 7.0 + 8.0)
    by_service = {row['service_type']: row for row in revenue['revenue_by_service']}
    assert by_service['wash_only']['revenue'] == pytest.approx(7.0)
    assert by_service['dry_only']['order_count'] == 1
    assert revenue['avg_revenue_per_order'] == pytest.approx(10.0)


def test_refunded_orders_earn_nothing(make_order, calculator):
    refunded = make_order(is_refunded=True)
    kept = make_order()
    revenue = calculator.calculate_revenue([refunded, kept])
    assert revenue['total_revenue'] == pytest.approx(15.0)
    assert revenue['refunded_orders'] == 1


def test_operational_costs(make_order, calculator):
    orders = [
        make_order(service_type=ServiceType.WASH_DRY, kg=10.0),
        make_order(service_type=ServiceType.WASH_ONLY, kg=5.0),
        make_order(service_type=ServiceType.DRY_ONLY, kg=4.0),
    ]
    costs = calculator.calculate_operational_costs(orders)

    assert costs['wash_kg'] == pytest.approx(15.0)
    assert costs['dry_kg'] == pytest.approx(14.0)
    assert costs['wash_cost'] == pytest.approx(15.0 * 0.25)
    assert costs['dry_cost'] == pytest.approx(14.0 * 0.40)
    assert costs['overhead_cost'] == pytest.approx(500.0)


def test_fixed_delivery_costs(make_order):
    calculator = FinancialCalculator(get_default_config(), delivery_method='fixed')
    costs = calculator.calculate_delivery_costs([make_order() for _ in range(6)])

    # 取送各 2 条路线
    assert costs['driver_hours'] == pytest.approx(8.0)
    assert costs['total_km'] == pytest.approx(80.0)
    assert costs['total_delivery_cost'] == pytest.approx(8.0 * 15.0 + 80.0 * 0.10)


def test_route_delivery_costs(make_order, calculator):
    """同一地点的一单：往返路程各计一次"""
    order = make_order(pickup=3 * 3600.0, delivery=27 * 3600.0,
                       address_lat=40.4168 + 0.01, address_lon=-3.7038, parking_difficulty=1)
    costs = calculator.calculate_delivery_costs([order])

    leg_km = 0.01 * 111 * 1.3
    assert costs['num_pickup_routes'] == 1
    assert costs['total_km'] == pytest.approx(4 * leg_km)
    # 凌晨 3 点无拥堵：单程 + 停车 2 分钟 + 交接 5 分钟 + 返程
    route_minutes = 2 * (leg_km / 30 * 60) + 7
    assert costs['driver_hours'] == pytest.approx(2 * route_minutes / 60)


def test_breakeven(make_order, calculator):
    # 所有客户都在仓库位置，只计停车与交接时间
    orders = [make_order(kg=5.0, address_lat=40.4168, address_lon=-3.7038) for _ in range(10)]
    summary = calculator.calculate(orders)
    breakeven = summary.breakeven

    assert breakeven['fixed_costs'] == pytest.approx(500.0)
    margin = breakeven['contribution_margin_per_order']
    assert margin == pytest.approx(breakeven['revenue_per_order'] - breakeven['variable_cost_per_order'])
    assert margin > 0
    assert breakeven['breakeven_orders'] == math.ceil(500.0 / margin)
    assert summary.gross_profit == pytest.approx(summary.total_revenue - summary.total_cost)


def test_breakeven_infinite_when_margin_not_positive(make_order):
    config = merge_config(get_default_config(), {'costs': {'cost_per_kg_wash': 10.0}})
    summary = FinancialCalculator(config).calculate([make_order(kg=10.0)])
    assert summary.breakeven['breakeven_orders'] == float('inf')
    assert not summary.breakeven['is_above_breakeven']
    assert not summary.profit_loss['is_profitable']


def test_no_orders(calculator, tmp_path):
    """没有订单时单均值为 NaN，盈亏平衡为 inf"""
    summary = calculator.calculate([])

    assert summary.total_revenue == 0.0
    assert math.isnan(summary.revenue['avg_revenue_per_order'])
    assert math.isnan(summary.breakeven['revenue_per_order'])
    assert math.isnan(summary.profit_loss['gross_margin_pct'])
    assert summary.breakeven['breakeven_orders'] == float('inf')
    assert summary.total_cost == pytest.approx(500.0)

    calculator.save_summary(summary, tmp_path / "financial.json")
    text = (tmp_path / "financial.json").read_text(encoding='utf-8')
    assert 'NaN' not in text and 'Infinity' not in text
    saved = json.loads(text)
    assert saved['breakeven']['breakeven_orders'] is None
    assert saved['revenue']['avg_revenue_per_order'] is None


def test_unknown_delivery_method():
    with pytest.raises(ValueError):
        FinancialCalculator(get_default_config(), delivery_method='drone')
