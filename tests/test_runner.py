"""仿真运行与场景对比测试"""

from laundrysim.analysis import compare_scenarios
from laundrysim.simulation.entities import OrderStatus
from laundrysim.simulation.runner import run_simulation, run_scenarios
from laundrysim.utils.config import get_default_config, merge_config


def _small(**overrides):
    return merge_config(get_default_config(), merge_config({'regional': {'dwellings': 10000}}, overrides))


def test_run_simulation_applies_effects():
    result = run_simulation(_small(), random_seed=5)
    assert result.orders
    assert all(o.status == OrderStatus.DELIVERED for o in result.orders)
    assert all(o.is_refunded is not None for o in result.orders)


def test_run_simulation_without_effects():
    result = run_simulation(_small(), random_seed=5, apply_effects=False)
    assert all(o.is_refunded is None for o in result.orders)


def test_seed_defaults_to_config():
    a = run_simulation(_small(randomization={'random_seed': 17}))
    b = run_simulation(_small(), random_seed=17)
    assert [o.to_dict() for o in a.orders] == [o.to_dict() for o in b.orders]


def test_failed_scenario_does_not_discard_others():
    """单个场景出错时记录错误，其余场景照常返回"""
    configs = {
        'ok': _small(),
        'broken': _small(capacity={'num_vans': 0}),
    }
    outcomes = run_scenarios(configs, max_workers=1, show_progress=False)

    assert list(outcomes) == ['ok', 'broken']
    assert outcomes['ok'].succeeded
    assert not outcomes['broken'].succeeded
    assert 'ValueError' in outcomes['broken'].error

    table = compare_scenarios(outcomes)
    assert list(table['scenario']) == ['ok', 'broken']
    ok_row = table.set_index('scenario').loc['ok']
    assert ok_row['status'] == 'ok'
    assert ok_row['completion_rate'] == 1.0
    assert ok_row['total_revenue'] > 0
    assert table.set_index('scenario').loc['broken', 'status'] == 'failed'


def test_parallel_scenarios_match_sequential():
    configs = {
        'pessimistic': _small(randomization={'demand_scenario': 'pessimistic'}),
        'optimistic': _small(randomization={'demand_scenario': 'optimistic'}),
    }
    parallel = run_scenarios(configs, max_workers=2, show_progress=False)
    sequential = run_scenarios(configs, max_workers=1, show_progress=False)

    for name in configs:
        assert parallel[name].succeeded
        assert ([o.to_dict() for o in parallel[name].result.orders]
                == [o.to_dict() for o in sequential[name].result.orders])
    assert len(parallel['optimistic'].result.orders) > len(parallel['pessimistic'].result.orders)


def test_empty_scenario_set():
    assert run_scenarios({}, show_progress=False) == {}
    assert compare_scenarios({}).empty
