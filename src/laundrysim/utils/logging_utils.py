"""
日志配置工具
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = "INFO",
                  log_dir: Optional[Path] = None,
                  log_name: str = "simulation") -> logging.Logger:
    """
    设置根日志器

    Args:
        level: 日志级别名称，如 "INFO"、"DEBUG"
        log_dir: 日志目录，为 None 时只输出到控制台
        log_name: 日志文件名前缀

    Returns:
        当前模块的日志器
    """
    numeric_level = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handlers = [logging.StreamHandler(sys.stdout)]

    log_file = None
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"{log_name}_{timestamp}.log"
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    root_logger = logging.getLogger()
    # 重复调用时避免叠加输出
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    logging.basicConfig(level=numeric_level, format=LOG_FORMAT, handlers=handlers)

    logger = logging.getLogger(__name__)
    if log_file is not None:
        logger.info(f"日志文件: {log_file}")

    return logger
