"""命令行脚本测试"""

import importlib.util
import json
import logging
from pathlib import Path

import pandas as pd
import pytest
import yaml

SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "run_scenario.py"


@pytest.fixture
def script():
    spec = importlib.util.spec_from_file_location("run_scenario", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_cli_runs_and_saves(script, tmp_path, restore_root_logger):
    config_file = tmp_path / "small.yaml"
    config_file.write_text(yaml.safe_dump({'regional': {'dwellings': 10000}}), encoding='utf-8')
    output_dir = tmp_path / "out"

    exit_code = script.main([
        '--config', str(config_file), '--seed', '3', '--output-dir', str(output_dir), '--log-level', 'WARNING'
    ])

    assert exit_code == 0
    scenario_dir = output_dir / "small"
    for name in ['orders.csv', 'reservation_log.csv', 'queue_log.csv', 'events.csv',
                 'statistics.json', 'metrics.json', 'financial.json']:
        assert (scenario_dir / name).exists(), name

    with open(scenario_dir / "statistics.json", encoding='utf-8') as f:
        stats = json.load(f)
    assert stats['summary']['total_orders'] == 50
    assert not stats['halted_early']

    comparison = pd.read_csv(output_dir / "scenario_comparison.csv")
    assert list(comparison['scenario']) == ['small']
    assert list((output_dir / "logs").glob("simulation_*.log"))


def test_cli_reports_bad_config(script, tmp_path, restore_root_logger):
    config_file = tmp_path / "bad.yaml"
    config_file.write_text(yaml.safe_dump({'capacity': {'num_vans': -2}}), encoding='utf-8')

    assert script.main(['--config', str(config_file), '--output-dir', str(tmp_path / "out")]) == 1


def test_parse_args_repeatable_scenario(script):
    args = script.parse_args(['--scenario', 'pessimistic', '--scenario', 'optimistic', '--workers', '2'])
    assert args.scenario == ['pessimistic', 'optimistic']
    assert args.workers == 2
