# rideshare/common/__init__.py
"""
Общие утилиты, константы и логгер.
"""

from rideshare.common.logger import get_logger, log_info, log_error, log_warning, log_debug
from rideshare.common.constants import TypeMsg

__all__ = [
    "get_logger",
    "log_info",
    "log_error",
    "log_warning",
    "log_debug",
    "TypeMsg",
]
