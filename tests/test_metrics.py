"""运营指标测试"""

import math

import pytest

from laundrysim.analysis.metrics import (
    OperationalAnalyzer, ResourceUtilization, calculate_service_metrics,
    calculate_utilization, identify_bottlenecks, METHOD_LEDGER
)
from laundrysim.simulation.entities import ResourceType, ServiceType
from laundrysim.simulation.runner import run_simulation
from laundrysim.utils.config import get_default_config, merge_config


def _util(resource_type, pct):
    return ResourceUtilization(resource_type, units=1, used_hours=pct, available_hours=100.0, utilization_pct=pct)


def test_bottleneck_threshold():
    """≥80% 为瓶颈，<50% 为低利用"""
    report = identify_bottlenecks([
        _util(ResourceType.VAN, 80.0),
        _util(ResourceType.DRIVER, 79.9),
        _util(ResourceType.WASH, 49.9),
        _util(ResourceType.DRY, 50.0),
    ])
    assert report.bottlenecks == ['van']
    assert report.underutilized == ['wash']
    assert report.primary_bottleneck == 'van'
    assert report.has_bottleneck


def test_primary_bottleneck_tie_uses_priority():
    report = identify_bottlenecks([
        _util(ResourceType.VAN, 40.0),
        _util(ResourceType.DRIVER, 60.0),
        _util(ResourceType.WASH, 90.0),
        _util(ResourceType.DRY, 90.0),
    ])
    assert report.primary_bottleneck == 'wash'
    assert report.primary_utilization_pct == 90.0
    assert report.bottlenecks == ['wash', 'dry']


def test_nan_utilization_ignored():
    report = identify_bottlenecks([_util(ResourceType.VAN, float('nan'))])
    assert report.primary_bottleneck is None
    assert not report.has_bottleneck


def test_route_estimate_utilization(make_order):
    """10 单 → 取送各 2 条路线 × 2 小时"""
    orders = [make_order(service_type=ServiceType.WASH_DRY) for _ in range(8)]
    orders += [make_order(service_type=ServiceType.DRY_ONLY) for _ in range(2)]
    config = get_default_config()

    utilization = {u.resource_type: u for u in calculate_utilization(orders, config)}

    available_van = 3 * 12 * 7
    assert utilization[ResourceType.VAN].used_hours == pytest.approx(8.0)
    assert utilization[ResourceType.VAN].utilization_pct == pytest.approx(8.0 / available_van * 100)
    assert utilization[ResourceType.WASH].used_hours == pytest.approx(8 * 51 / 60)
    assert utilization[ResourceType.DRY].used_hours == pytest.approx(10 * 54 / 60)


def test_ledger_method_requires_reservations(make_order):
    with pytest.raises(ValueError):
        calculate_utilization([make_order()], get_default_config(), method=METHOD_LEDGER)
    with pytest.raises(ValueError):
        calculate_utilization([make_order()], get_default_config(), method='guess')


def test_service_metrics_nan_before_effects(make_order):
    metrics = calculate_service_metrics([make_order(), make_order()])
    assert metrics['completion_rate'] == 0.0
    assert math.isnan(metrics['refund_rate'])
    assert math.isnan(metrics['failed_delivery_rate'])
    assert metrics['status_counts'] == {'placed': 2}


def test_empty_orders_give_nan():
    utilization = calculate_utilization([], merge_config(get_default_config(), {}))
    assert all(u.used_hours == 0 for u in utilization)
    metrics = calculate_service_metrics([])
    assert math.isnan(metrics['completion_rate'])
    assert math.isnan(metrics['avg_reschedules_per_order'])


@pytest.mark.parametrize("method", ['route_estimate', 'ledger'])
def test_analyzer_on_simulation(tmp_path, method):
    config = merge_config(get_default_config(), {'regional': {'dwellings': 20000}})
    result = run_simulation(config, random_seed=1)

    analyzer = OperationalAnalyzer(method=method)
    metrics = analyzer.calculate(result, config)

    assert [u.resource_type for u in metrics.utilization] == [
        ResourceType.VAN, ResourceType.DRIVER, ResourceType.WASH, ResourceType.DRY
    ]
    assert metrics.summary['completed_orders'] == len(result.orders)
    assert 0.0 <= metrics.service['refund_rate'] <= 1.0
    assert metrics.bottlenecks.primary_bottleneck in {'van', 'driver', 'wash', 'dry'}

    pct = {u.resource_type.value: u.utilization_pct for u in metrics.utilization}
    assert all(pct[name] >= 80 for name in metrics.bottlenecks.bottlenecks)
    assert all(pct[name] < 50 for name in metrics.bottlenecks.underutilized)
    for name, value in pct.items():
        assert (name in metrics.bottlenecks.bottlenecks) == (value >= 80)

    if method == METHOD_LEDGER:
        wash = metrics.utilization[2]
        expected = sum(r.duration for r in result.reservation_log
                       if r.resource_type == ResourceType.WASH) / 3600
        assert wash.used_hours == pytest.approx(expected)

    analyzer.save_metrics(metrics, tmp_path / "metrics.json")
    analyzer.save_metrics(metrics, tmp_path / "utilization.csv")
    assert (tmp_path / "metrics.json").exists()
    assert (tmp_path / "utilization.csv").exists()
    with pytest.raises(ValueError):
        analyzer.save_metrics(metrics, tmp_path / "metrics.txt")
