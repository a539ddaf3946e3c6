"""测试公共夹具"""

import sys
from pathlib import Path

import pytest

SRC = Path(__file__).resolve().parent.parent / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from laundrysim.simulation.entities import Order, ServiceType
from laundrysim.utils.config import get_default_config, merge_config


@pytest.fixture
def default_config():
    """默认配置的深拷贝"""
    return get_default_config()


@pytest.fixture
def small_config():
    """小规模配置：约 100 单，跑得快"""
    return merge_config(get_default_config(), {
        'regional': {'dwellings': 20000},
        'simulation': {'duration_days': 7},
    })


@pytest.fixture
def make_order():
    """构造单个订单的工厂"""
    counter = {'n': 0}

    def _make(pickup=3600.0, delivery=None, service_type=ServiceType.WASH_DRY, kg=7.0, **kwargs):
        counter['n'] += 1
        kwargs.setdefault('order_id', f"T{counter['n']:03d}")
        kwargs.setdefault('placement_time', 0.0)
        return Order(
            preferred_pickup_time=pickup,
            preferred_delivery_time=delivery if delivery is not None else pickup,
            service_type=service_type,
            kg_estimate=kg,
            **kwargs
        )

    return _make


def capacity_config(vans=1, drivers=1, wash=1, dry=1):
    return {
        'num_vans': vans,
        'num_drivers': drivers,
        'num_wash_machines': wash,
        'num_dry_machines': dry,
        'operating_hours_per_day': 12,
    }


@pytest.fixture
def tight_config():
    """单车单司机单洗衣机单烘干机"""
    return merge_config(get_default_config(), {'capacity': capacity_config()})
