"""
Structured logging configuration for the application.
Provides consistent logging across all modules.
"""
import logging
import sys
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pathlib import Path

from conto.config import settings

# Extra attributes forwarded to the JSON output when present on the record
_EXTRA_FIELDS = ("user_id", "account", "file_hash", "file_name", "row_number", "path", "method", "status_code")


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""
    
    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.
        
        Args:
            record: Log record to format
            
        Returns:
            JSON string of log record
        """
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }
        
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        
        for field in _EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)
        
        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Custom text formatter for human-readable logs."""
    
    def __init__(self):
        super().__init__(
            fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


def setup_logging() -> None:
    """
    Setup application logging based on configuration.
    Called once at application startup.
    """
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    
    if settings.LOG_FORMAT.lower() == "json":
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = TextFormatter()
    
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)
    
    if settings.LOG_FILE:
        log_file_path = Path(settings.LOG_FILE)
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
        
        file_handler = logging.FileHandler(log_file_path)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
    
    # Set levels for third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("motor").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    
    root_logger.info(f"✅ Logging configured: level={settings.LOG_LEVEL}, format={settings.LOG_FORMAT}")


def log_file_processing(
    logger: logging.Logger,
    filename: str,
    status: str,
    details: Optional[Dict[str, Any]] = None
) -> None:
    """Log a spreadsheet processing step."""
    logger.info(
        f"File {status}: {filename}",
        extra={"file_name": filename, **(details or {})}
    )
