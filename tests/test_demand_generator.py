"""订单需求生成测试"""

import numpy as np
import pytest

from laundrysim.data_preparation.demand_generator import (
    DemandGenerator, apply_randomization_effects, generate_orders
)
from laundrysim.simulation.entities import OrderStatus, ServiceType
from laundrysim.utils.config import get_default_config, merge_config


def _config(**overrides):
    return merge_config(get_default_config(), overrides)


def test_realistic_example_size_and_mix():
    """50000 户、realistic、洗 7 烘 8、7 天 → 约 250 单，服务组合约 70/20/10"""
    orders, saved = generate_orders(get_default_config(), random_seed=42)

    assert saved == {}
    assert 200 <= len(orders) <= 300
    shares = {t: sum(o.service_type == t for o in orders) / len(orders) for t in ServiceType}
    assert shares[ServiceType.WASH_DRY] == pytest.approx(0.7, abs=0.1)
    assert shares[ServiceType.WASH_ONLY] == pytest.approx(0.2, abs=0.08)
    assert shares[ServiceType.DRY_ONLY] == pytest.approx(0.1, abs=0.06)


def test_total_orders_formula():
    generator = DemandGenerator(get_default_config())
    # 50000 × 0.005 × 1.0 / 7 × (15/15)^1.5 × 7
    assert generator.calculate_daily_demand() == pytest.approx(50000 * 0.005 / 7)
    assert generator.calculate_total_orders() == 250


def test_demand_scales_with_scenario_and_price():
    """场景倍数与价格弹性"""
    base = DemandGenerator(_config(regional={'dwellings': 200000})).calculate_daily_demand()
    optimistic = DemandGenerator(_config(
        regional={'dwellings': 200000}, randomization={'demand_scenario': 'optimistic'}
    )).calculate_daily_demand()
    pricey = DemandGenerator(_config(
        regional={'dwellings': 200000}, pricing={'wash_price': 14.0, 'dry_price': 16.0}
    )).calculate_daily_demand()

    assert optimistic / base == pytest.approx(1.5)
    assert pricey / base == pytest.approx(0.5 ** 1.5)


def test_generated_count_within_five_percent():
    """N ≥ 500 时生成单量与公式偏差不超过 5%"""
    config = _config(regional={'dwellings': 200000})
    generator = DemandGenerator(config, random_seed=3)
    expected = generator.calculate_daily_demand() * 7
    orders = generator.generate_orders()
    assert len(orders) >= 500
    assert abs(len(orders) - expected) / expected <= 0.05


def test_doubling_dwellings_doubles_orders():
    small = DemandGenerator(_config(regional={'dwellings': 200000}), random_seed=11).generate_orders()
    large = DemandGenerator(_config(regional={'dwellings': 400000}), random_seed=11).generate_orders()
    assert len(small) >= 500
    assert len(large) / len(small) == pytest.approx(2.0, rel=0.05)


def test_orders_sorted_and_ids_sequential():
    orders, _ = generate_orders(get_default_config(), random_seed=7)
    times = [o.placement_time for o in orders]
    assert times == sorted(times)
    assert [o.order_id for o in orders] == [f"ORD_{i:06d}" for i in range(1, len(orders) + 1)]
    assert all(o.status == OrderStatus.PLACED for o in orders)


def test_weight_and_complexity_clamped():
    orders, _ = generate_orders(_config(regional={'dwellings': 200000}), random_seed=11)
    kg = np.array([o.kg_estimate for o in orders])
    complexity = np.array([o.complexity_factor for o in orders])

    assert kg.min() >= 2.0 and kg.max() <= 15.0
    assert np.allclose(kg, np.round(kg, 1))
    assert complexity.min() >= 0.8 and complexity.max() <= 1.2


def test_preferred_times_on_slots_and_ordered():
    """期望时间取整到 2 小时时间槽，且送达晚于取件"""
    orders, _ = generate_orders(get_default_config(), random_seed=5)
    slot = 2 * 3600.0
    for o in orders:
        assert o.preferred_pickup_time % slot == 0
        assert o.preferred_delivery_time % slot == 0
        assert o.preferred_pickup_time >= o.placement_time + 23 * 3600
        assert o.preferred_delivery_time >= o.preferred_pickup_time + 22 * 3600


def test_placement_hours_follow_peak_window():
    """高峰倍数 3 → 约 75% 订单在 18:00-20:00 下单，其余在 06:00-23:00 的非高峰时段"""
    orders, _ = generate_orders(_config(regional={'dwellings': 200000}), random_seed=21)
    hours = np.array([(o.placement_time / 3600.0) % 24 for o in orders])
    days = np.array([o.placement_time // 86400 for o in orders])

    in_peak = (hours >= 18) & (hours < 20)
    assert in_peak.mean() == pytest.approx(0.75, abs=0.05)
    off_peak = hours[~in_peak]
    assert np.all(((off_peak >= 6) & (off_peak < 18)) | ((off_peak >= 20) & (off_peak <= 23)))
    assert days.min() >= 0 and days.max() <= 6


def test_locations_near_depot_and_clustered():
    orders, _ = generate_orders(get_default_config(), random_seed=2)
    assert {o.route_cluster for o in orders} <= {1, 2, 3, 4, 5}
    for o in orders:
        assert abs(o.address_lat - 40.4168) < 0.1
        assert abs(o.address_lon + 3.7038) < 0.1


def test_same_seed_same_orders():
    a, _ = generate_orders(get_default_config(), random_seed=99)
    b, _ = generate_orders(get_default_config(), random_seed=99)
    c, _ = generate_orders(get_default_config(), random_seed=100)

    assert [o.to_dict() for o in a] == [o.to_dict() for o in b]
    assert [o.to_dict() for o in a] != [o.to_dict() for o in c]


def test_tiny_region_gives_empty_order_set():
    orders, _ = generate_orders(_config(regional={'dwellings': 1}), random_seed=1)
    assert orders == []


def test_save_orders(tmp_path):
    orders, saved = generate_orders(get_default_config(), random_seed=42, output_dir=tmp_path)
    assert saved['orders'].exists()
    assert saved['statistics'].exists()


def test_randomization_effects_are_seeded_and_leave_status():
    """退款、配送失败标记使用 seed+1000 的独立随机流"""
    config = _config(randomization={'refund_rate': 0.3, 'failed_delivery_rate': 0.5})
    a, _ = generate_orders(config, random_seed=8)
    b, _ = generate_orders(config, random_seed=8)

    apply_randomization_effects(a, config, random_seed=8)
    apply_randomization_effects(b, config, random_seed=8)

    assert [o.is_refunded for o in a] == [o.is_refunded for o in b]
    assert [o.delivery_failed for o in a] == [o.delivery_failed for o in b]
    assert all(o.status == OrderStatus.PLACED for o in a)
    assert np.mean([o.is_refunded for o in a]) == pytest.approx(0.3, abs=0.1)
    assert np.mean([o.delivery_failed for o in a]) == pytest.approx(0.5, abs=0.1)
