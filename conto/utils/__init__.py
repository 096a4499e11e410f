"""
Utilities package.
Provides helper functions and dependencies.
"""
from .logger import setup_logging, log_file_processing

__all__ = [
    "setup_logging",
    "log_file_processing"
]
