"""
Utilities package initialization.
"""
from .logger import get_logger, log_business_event, log_performance, setup_logging
from .files import format_file_size

__all__ = ["get_logger", "log_business_event", "log_performance", "setup_logging", "format_file_size"]
