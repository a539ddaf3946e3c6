"""
配置管理工具
用于加载、校验和管理洗衣配送仿真的配置
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Dict, Any, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, ValidationInfo, model_validator

logger = logging.getLogger(__name__)


class ConfigValidationError(ValueError):
    """配置校验失败"""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("配置无效: " + "; ".join(self.errors))


# 默认配置（马德里城区，周期一周）
DEFAULT_CONFIG: Dict[str, Any] = {
    'regional': {
        'dwellings': 50000,  # 覆盖住户数
        'population': 120000,  # 覆盖人口
        'parking_difficulty': 7,  # 停车难度 1-10
        'geographic_density': 'urban',  # urban / suburban / rural
        'weekly_penetration_rate': 0.005,  # 每周下单住户占比
        'depot_lat': 40.4168,  # 仓库纬度
        'depot_lon': -3.7038,  # 仓库经度
    },
    'costs': {
        'driver_hourly_rate': 15.0,  # 司机时薪（欧元）
        'cost_per_kg_wash': 0.25,  # 每公斤洗涤成本
        'cost_per_kg_dry': 0.40,  # 每公斤烘干成本
        'overhead_per_week': 500.0,  # 每周固定开销
        'fuel_per_km': 0.10,  # 每公里燃油成本
    },
    'pricing': {
        'wash_price': 7.0,  # 洗涤价格
        'dry_price': 8.0,  # 烘干价格
        'self_check_discount': 2.0,  # 自助检查固定折扣
        'subscription_discount_pct': 0.15,  # 订阅折扣比例
    },
    'capacity': {
        'num_vans': 3,
        'van_capacity_kg': 100,
        'num_wash_machines': 10,
        'num_dry_machines': 8,
        'num_drivers': 4,
        'operating_hours_per_day': 12,
    },
    'randomization': {
        'distribution_type': 'normal',
        'random_seed': 42,
        'demand_scenario': 'realistic',
        'peak_hours_start': '18:00',
        'peak_hours_end': '20:00',
        'peak_hour_multiplier': 3.0,  # 高峰时段下单倍数
        'refund_rate': 0.02,
        'failed_delivery_rate': 0.05,
    },
    'elasticity': {
        'price_elasticity': 1.5,
        'self_check_adoption_rate': 0.30,
        'subscription_ratio': 0.20,
    },
    'simulation': {
        'start_date': '2026-01-06',
        'duration_days': 7,
        'time_slot_hours': 2,  # 预约时间槽长度（小时）
        'max_iterations': 100000,  # 事件处理上限
        'max_reschedules_per_order': None,  # 单订单重排上限，None 表示不限
        'stop_duration_model': 'fixed',  # fixed / route
        'traffic_jitter_std': 0.0,  # 交通系数扰动标准差，0 表示确定性
        'horizon_days': None,  # 仿真截止（天），None 表示处理至队列为空
    },
}


@dataclass
class ValidationResult:
    """配置校验结果"""
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return len(self.errors) == 0

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {'valid': self.valid, 'errors': self.errors, 'warnings': self.warnings}


def get_default_config() -> Dict[str, Any]:
    """返回默认配置的深拷贝"""
    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Dict[str, Any], overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    递归合并配置，overrides 中的值覆盖 base

    Args:
        base: 基础配置
        overrides: 覆盖项（可只包含部分字段）

    Returns:
        合并后的新字典，不修改输入
    """
    merged = copy.deepcopy(base)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def parse_clock_hour(value: Any) -> float:
    """将 "18:00" 或 18 这样的时刻解析为小时数"""
    if isinstance(value, (int, float)):
        return float(value)
    hours, _, minutes = str(value).partition(':')
    return int(hours) + (int(minutes) if minutes else 0) / 60.0


DensityType = Literal['urban', 'suburban', 'rural']
DistributionType = Literal['normal', 'uniform', 'poisson']
ScenarioType = Literal['pessimistic', 'realistic', 'optimistic']
StopModelType = Literal['fixed', 'route']


def _warn(info: ValidationInfo, message: str) -> None:
    """把交叉检查的警告写入校验上下文"""
    if info.context is not None:
        info.context.setdefault('warnings', []).append(message)


class RegionalConfig(BaseModel):
    """区域参数"""
    dwellings: int = Field(..., gt=0)
    population: int = Field(..., gt=0)
    parking_difficulty: float = Field(..., ge=1, le=10)
    geographic_density: DensityType
    weekly_penetration_rate: float = Field(0.005, ge=0, le=1)
    depot_lat: float = Field(40.4168, ge=-90, le=90)
    depot_lon: float = Field(-3.7038, ge=-180, le=180)


class CostsConfig(BaseModel):
    """成本参数"""
    driver_hourly_rate: float = Field(..., ge=0)
    cost_per_kg_wash: float = Field(..., ge=0)
    cost_per_kg_dry: float = Field(..., ge=0)
    overhead_per_week: float = Field(..., ge=0)
    fuel_per_km: float = Field(..., ge=0)


class PricingConfig(BaseModel):
    """价格与折扣"""
    wash_price: float = Field(..., gt=0)
    dry_price: float = Field(..., gt=0)
    self_check_discount: float = Field(..., ge=0)
    subscription_discount_pct: float = Field(..., ge=0, le=1)

    @model_validator(mode="after")
    def check_discounts(self, info: ValidationInfo) -> "PricingConfig":
        """订阅折扣必须低于 100%；自助折扣过大只给警告"""
        if self.subscription_discount_pct >= 1.0:
            raise ValueError("订阅折扣不能达到或超过 100%")

        min_price = min(self.wash_price, self.dry_price)
        if self.self_check_discount >= min_price:
            _warn(info, f"自助检查折扣 ({self.self_check_discount:.2f}) 不低于最低单价 ({min_price:.2f})")
        return self


class CapacityConfig(BaseModel):
    """产能参数"""
    num_vans: int = Field(..., gt=0)
    van_capacity_kg: float = Field(..., gt=0)
    num_wash_machines: int = Field(..., gt=0)
    num_dry_machines: int = Field(..., gt=0)
    num_drivers: int = Field(..., gt=0)
    operating_hours_per_day: int = Field(..., gt=0, le=24)

    @model_validator(mode="after")
    def check_drivers(self, info: ValidationInfo) -> "CapacityConfig":
        if self.num_drivers < self.num_vans:
            _warn(info, "司机数少于车辆数，部分车辆将闲置")
        return self


class RandomizationConfig(BaseModel):
    """随机化参数"""
    distribution_type: DistributionType
    random_seed: int
    demand_scenario: ScenarioType
    peak_hours_start: Union[str, float]
    peak_hours_end: Union[str, float]
    peak_hour_multiplier: float = Field(..., ge=1)
    refund_rate: float = Field(..., ge=0, le=1)
    failed_delivery_rate: float = Field(..., ge=0, le=1)

    @model_validator(mode="after")
    def check_peak_window(self) -> "RandomizationConfig":
        try:
            peak_start = parse_clock_hour(self.peak_hours_start)
            peak_end = parse_clock_hour(self.peak_hours_end)
        except ValueError:
            raise ValueError("peak_hours_start/peak_hours_end 必须是 HH:MM 格式") from None
        if not 0 <= peak_start < peak_end <= 24:
            raise ValueError("peak_hours_start 必须早于 peak_hours_end 且位于 0-24 之间")
        return self


class ElasticityConfig(BaseModel):
    """需求弹性参数"""
    price_elasticity: float = Field(..., ge=0)
    self_check_adoption_rate: float = Field(..., ge=0, le=1)
    subscription_ratio: float = Field(..., ge=0, le=1)


class SimulationConfig(BaseModel):
    """仿真控制参数"""
    start_date: date
    duration_days: float = Field(..., gt=0, le=365)
    time_slot_hours: float = Field(..., gt=0, le=24)
    max_iterations: Optional[int] = Field(None, gt=0)
    max_reschedules_per_order: Optional[int] = Field(None, ge=0)
    stop_duration_model: StopModelType = 'fixed'
    traffic_jitter_std: float = Field(0.0, ge=0, le=1)
    horizon_days: Optional[float] = Field(None, gt=0)


class LaundrySimConfig(BaseModel):
    """完整仿真配置，七个分区均为必填"""
    regional: RegionalConfig
    costs: CostsConfig
    pricing: PricingConfig
    capacity: CapacityConfig
    randomization: RandomizationConfig
    elasticity: ElasticityConfig
    simulation: SimulationConfig


def format_validation_errors(error: ValidationError) -> List[str]:
    """把 pydantic 错误转换为 "分区.字段: 原因" 形式的消息"""
    messages = []
    for item in error.errors():
        path = '.'.join(str(part) for part in item['loc'])
        messages.append(f"{path}: {item['msg']}")
    return messages


def check_config(config: Dict[str, Any]) -> List[str]:
    """
    校验配置，无效时抛出 ConfigValidationError

    Returns:
        交叉检查产生的警告列表
    """
    context: Dict[str, Any] = {'warnings': []}
    try:
        LaundrySimConfig.model_validate(config, context=context)
    except ValidationError as e:
        raise ConfigValidationError(format_validation_errors(e)) from e
    return context['warnings']


def validate_config(config: Dict[str, Any]) -> ValidationResult:
    """
    校验配置字段的类型与取值范围

    Args:
        config: 配置字典

    Returns:
        ValidationResult，errors 为空表示有效
    """
    try:
        warnings = check_config(config)
    except ConfigValidationError as e:
        return ValidationResult(errors=e.errors)
    return ValidationResult(warnings=warnings)


def get_project_root() -> Path:
    """获取项目根目录"""
    return Path(__file__).resolve().parent.parent.parent.parent


def get_scenarios_dir() -> Path:
    """获取场景预设目录"""
    return get_project_root() / "config" / "scenarios"


def load_config(config_path: str, validate: bool = True) -> Dict[str, Any]:
    """
    从 YAML 文件加载配置，缺省字段使用默认值补全

    Args:
        config_path: YAML 文件路径
        validate: 是否校验，无效时抛出 ConfigValidationError

    Returns:
        完整配置字典
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"配置文件不存在: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        overrides = yaml.safe_load(f) or {}

    config = merge_config(DEFAULT_CONFIG, overrides)

    if validate:
        for warning in check_config(config):
            logger.warning(f"配置警告: {warning}")

    logger.info(f"已加载配置: {config_path}")
    return config


def load_scenario_preset(name: str, scenarios_dir: Optional[Path] = None) -> Dict[str, Any]:
    """
    加载场景预设（pessimistic / realistic / optimistic）

    Args:
        name: 预设名称
        scenarios_dir: 预设目录，默认为项目根目录下的 config/scenarios

    Returns:
        完整配置字典
    """
    scenarios_dir = Path(scenarios_dir) if scenarios_dir else get_scenarios_dir()
    preset_file = scenarios_dir / f"{name}.yaml"
    if not preset_file.exists():
        available = sorted(p.stem for p in scenarios_dir.glob("*.yaml"))
        raise FileNotFoundError(f"未找到场景预设 '{name}'，可用预设: {available}")
    return load_config(str(preset_file))


class ConfigManager:
    """配置管理器类"""

    def __init__(self, config_path: Optional[str] = None, validate: bool = True):
        """
        初始化配置管理器

        Args:
            config_path: 配置文件路径，默认为项目根目录下的config/config.yaml
            validate: 加载后是否校验
        """
        if config_path is None:
            config_path = get_project_root() / "config" / "config.yaml"

        self.config_path = Path(config_path)
        self.config = load_config(str(self.config_path), validate=validate)

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        获取配置项（支持点号分隔的嵌套路径）

        Args:
            key_path: 配置项路径，如 "capacity.num_vans"
            default: 默认值

        Returns:
            配置值

        Examples:
            >>> config = ConfigManager()
            >>> vans = config.get("capacity.num_vans")
            >>> seed = config.get("randomization.random_seed", 42)
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def get_capacity_config(self) -> Dict[str, Any]:
        """获取产能配置"""
        return self.config.get('capacity', {})

    def get_random_seed(self) -> int:
        """获取随机种子"""
        return self.get('randomization.random_seed', 42)

    def validate(self) -> ValidationResult:
        """重新校验当前配置"""
        return validate_config(self.config)

    def update(self, key_path: str, value: Any) -> None:
        """
        更新配置项

        Args:
            key_path: 配置项路径
            value: 新值
        """
        keys = key_path.split('.')
        config = self.config

        for key in keys[:-1]:
            if key not in config:
                config[key] = {}
            config = config[key]

        config[keys[-1]] = value

    def save(self, output_path: Optional[str] = None) -> None:
        """
        保存配置到文件

        Args:
            output_path: 输出路径，默认覆盖原配置文件
        """
        if output_path is None:
            output_path = self.config_path

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            yaml.dump(self.config, f, allow_unicode=True, default_flow_style=False, sort_keys=False)
        logger.info(f"配置已保存: {output_path}")

    def to_dict(self) -> Dict[str, Any]:
        """返回配置副本"""
        return copy.deepcopy(self.config)

    def __repr__(self) -> str:
        return f"ConfigManager(config_path='{self.config_path}')"


# 全局配置实例（单例模式）
_global_config: Optional[ConfigManager] = None


def get_config(config_path: Optional[str] = None) -> ConfigManager:
    """
    获取全局配置实例

    Args:
        config_path: 配置文件路径

    Returns:
        配置管理器实例
    """
    global _global_config

    if _global_config is None:
        _global_config = ConfigManager(config_path)

    return _global_config
