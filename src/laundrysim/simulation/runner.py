"""
仿真运行入口
单次运行：生成订单 → 事件仿真 → 事后随机效果；
多场景运行：各场景在独立进程中构建自己的订单与产能台账。
"""

import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, Any, List, Optional

from tqdm import tqdm

from .entities import Order
from .environment import SimulationEngine, SimulationResult
from ..data_preparation import demand_generator

logger = logging.getLogger(__name__)


@dataclass
class ScenarioOutcome:
    """单个场景的运行结果，失败时 result 为 None 且 error 记录异常信息"""
    name: str
    config: Dict[str, Any]
    result: Optional[SimulationResult] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.result is not None


def run_simulation(config: Dict[str, Any],
                   random_seed: Optional[int] = None,
                   apply_effects: bool = True,
                   orders: Optional[List[Order]] = None) -> SimulationResult:
    """
    运行一次完整仿真

    Args:
        config: 完整仿真配置（已校验）
        random_seed: 随机种子，默认取 randomization.random_seed
        apply_effects: 是否在仿真结束后标记退款与配送失败
        orders: 预先生成的订单，为 None 时按配置生成

    Returns:
        SimulationResult
    """
    if random_seed is None:
        random_seed = config.get('randomization', {}).get('random_seed', 42)

    if orders is None:
        generator = demand_generator.DemandGenerator(config, random_seed)
        orders = generator.generate_orders()

    engine = SimulationEngine(orders, config, random_seed=random_seed)
    result = engine.run()

    if apply_effects:
        demand_generator.apply_randomization_effects(result.orders, config, random_seed)

    return result


def _run_scenario_worker(name: str, config: Dict[str, Any]) -> SimulationResult:
    logger.info(f"场景 {name} 开始运行")
    return run_simulation(config)


def run_scenarios(configs: Dict[str, Dict[str, Any]],
                  max_workers: Optional[int] = None,
                  show_progress: bool = True) -> Dict[str, ScenarioOutcome]:
    """
    并行运行多个相互独立的场景

    单个场景失败不影响其他场景，异常信息写入对应的 ScenarioOutcome。

    Args:
        configs: {场景名: 完整配置}
        max_workers: 进程数，1 表示在当前进程中顺序运行
        show_progress: 是否显示进度条

    Returns:
        {场景名: ScenarioOutcome}，顺序与 configs 一致
    """
    outcomes = {name: ScenarioOutcome(name=name, config=config) for name, config in configs.items()}
    if not configs:
        return outcomes

    logger.info(f"运行 {len(configs)} 个场景: {list(configs)}")
    progress = tqdm(total=len(configs), desc="运行场景", disable=not show_progress)

    if max_workers == 1:
        for name, config in configs.items():
            try:
                outcomes[name].result = _run_scenario_worker(name, config)
            except Exception as e:
                logger.exception(f"场景 {name} 运行失败")
                outcomes[name].error = f"{type(e).__name__}: {e}"
            progress.update(1)
    else:
        with ProcessPoolExecutor(max_workers=max_workers) as executor:
            futures = {
                executor.submit(_run_scenario_worker, name, config): name
                for name, config in configs.items()
            }
            for future in as_completed(futures):
                name = futures[future]
                try:
                    outcomes[name].result = future.result()
                except Exception as e:
                    logger.exception(f"场景 {name} 运行失败")
                    outcomes[name].error = f"{type(e).__name__}: {e}"
                progress.update(1)

    progress.close()

    failed = [name for name, outcome in outcomes.items() if not outcome.succeeded]
    logger.info(f"场景运行完成: 成功 {len(outcomes) - len(failed)} 个, 失败 {len(failed)} 个")
    return outcomes
