"""
洗衣配送仿真运行脚本

用法:
    python scripts/run_scenario.py                                # 使用 config/config.yaml
    python scripts/run_scenario.py --scenario pessimistic --scenario optimistic
    python scripts/run_scenario.py --config my_config.yaml --seed 7 --output-dir outputs/run1
"""

import sys
import argparse
import logging
from datetime import datetime
from pathlib import Path

# 未安装时从源码目录导入
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from laundrysim.analysis import OperationalAnalyzer, FinancialCalculator, compare_scenarios
from laundrysim.simulation.runner import run_scenarios
from laundrysim.utils import ConfigValidationError, load_config, load_scenario_preset, merge_config, setup_logging

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="洗衣配送离散事件仿真")
    parser.add_argument('--config', type=str, default=None,
                        help="配置文件路径（默认 config/config.yaml）")
    parser.add_argument('--scenario', action='append', default=[],
                        help="场景预设名称，可重复指定（pessimistic / realistic / optimistic）")
    parser.add_argument('--seed', type=int, default=None,
                        help="覆盖配置中的随机种子")
    parser.add_argument('--output-dir', type=str, default=None,
                        help="结果输出目录（默认 outputs/simulation_results/<时间戳>）")
    parser.add_argument('--log-level', type=str, default='INFO',
                        help="日志级别")
    parser.add_argument('--workers', type=int, default=1,
                        help="并行进程数，1 表示顺序运行")
    return parser.parse_args(argv)


def build_configs(args) -> dict:
    """根据命令行参数组装 {场景名: 配置}"""
    configs = {}
    if args.scenario:
        for name in args.scenario:
            configs[name] = load_scenario_preset(name)
    else:
        config_path = args.config or str(project_root / "config" / "config.yaml")
        configs[Path(config_path).stem] = load_config(config_path)

    if args.seed is not None:
        configs = {
            name: merge_config(config, {'randomization': {'random_seed': args.seed}})
            for name, config in configs.items()
        }
    return configs


def main(argv=None) -> int:
    args = parse_args(argv)

    output_dir = Path(args.output_dir) if args.output_dir else (
        project_root / "outputs" / "simulation_results" / datetime.now().strftime("%Y%m%d_%H%M%S")
    )
    setup_logging(args.log_level, log_dir=output_dir / "logs")

    try:
        configs = build_configs(args)
    except (ConfigValidationError, FileNotFoundError) as e:
        logger.error(f"配置加载失败: {e}")
        return 1

    outcomes = run_scenarios(configs, max_workers=args.workers)

    analyzer = OperationalAnalyzer()
    for name, outcome in outcomes.items():
        if not outcome.succeeded:
            logger.error(f"场景 {name} 失败: {outcome.error}")
            continue

        scenario_dir = output_dir / name
        outcome.result.save_results(scenario_dir)

        metrics = analyzer.calculate(outcome.result, outcome.config)
        analyzer.save_metrics(metrics, scenario_dir / "metrics.json")

        calculator = FinancialCalculator(outcome.config)
        calculator.save_summary(calculator.calculate(outcome.result.orders), scenario_dir / "financial.json")

    comparison = compare_scenarios(outcomes)
    comparison_file = output_dir / "scenario_comparison.csv"
    comparison.to_csv(comparison_file, index=False, encoding='utf-8-sig')

    print("\n" + "=" * 70)
    print("场景对比")
    print("=" * 70)
    print(comparison.to_string(index=False))
    print(f"\n结果已保存到: {output_dir}")

    return 0 if all(outcome.succeeded for outcome in outcomes.values()) else 1


if __name__ == "__main__":
    sys.exit(main())
