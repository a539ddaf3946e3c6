"""
JSON 输出工具
统计量中的 NaN / inf 在写出时转为 null，保证输出是标准 JSON
"""

import json
import math
from pathlib import Path
from typing import Any


def to_json_safe(value: Any) -> Any:
    """递归地把非有限浮点数替换为 None"""
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, dict):
        return {key: to_json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(item) for item in value]
    return value


def dump_json(data: Any, output_path: Path) -> None:
    """写出 UTF-8、缩进 2 的 JSON 文件"""
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(to_json_safe(data), f, indent=2, ensure_ascii=False, allow_nan=False)
