"""
Structured logging for jobledger.

Wraps stdlib logging with console and file outputs, JSON context suffixes,
and write metrics per table for monitoring store health.
"""

import logging
import sys
import threading
from pathlib import Path
from typing import Optional
from datetime import datetime
import json

from .config import load_settings


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks write metrics for every table the stores touch.
    """

    def __init__(
        self,
        name: str = "jobledger",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = False,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()

        self._metrics_lock = threading.Lock()
        self.metrics = {
            "inserts": 0,
            "updates": 0,
            "deletes": 0,
            "rows_deleted": 0,
            "consistency_errors": 0,
            "errors_by_type": {},
            "table_stats": {},
        }

        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"jobledger_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def _table(self, table: str) -> dict:
        if table not in self.metrics["table_stats"]:
            self.metrics["table_stats"][table] = {
                "inserts": 0,
                "updates": 0,
                "deletes": 0,
            }
        return self.metrics["table_stats"][table]

    def record_insert(self, table: str):
        """Record one inserted row."""
        with self._metrics_lock:
            self.metrics["inserts"] += 1
            self._table(table)["inserts"] += 1

    def record_update(self, table: str):
        """Record one update statement."""
        with self._metrics_lock:
            self.metrics["updates"] += 1
            self._table(table)["updates"] += 1

    def record_delete(self, table: str, rows: int):
        """Record one delete statement and the rows it removed."""
        with self._metrics_lock:
            self.metrics["deletes"] += 1
            self.metrics["rows_deleted"] += rows
            self._table(table)["deletes"] += 1

    def record_error(self, error_type: str):
        """Record a failed store operation by exception class name."""
        with self._metrics_lock:
            if error_type == "ConsistencyError":
                self.metrics["consistency_errors"] += 1
            if error_type not in self.metrics["errors_by_type"]:
                self.metrics["errors_by_type"][error_type] = 0
            self.metrics["errors_by_type"][error_type] += 1

    def get_metrics(self) -> dict:
        """Return a snapshot of current metrics."""
        with self._metrics_lock:
            metrics_copy = dict(self.metrics)
            metrics_copy["errors_by_type"] = dict(self.metrics["errors_by_type"])
            metrics_copy["table_stats"] = {
                table: dict(stats) for table, stats in self.metrics["table_stats"].items()
            }
        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== Store Write Metrics ===")
        self.info(f"Inserts: {metrics['inserts']}")
        self.info(f"Updates: {metrics['updates']}")
        self.info(f"Deletes: {metrics['deletes']} ({metrics['rows_deleted']} rows)")
        self.info(f"Consistency errors: {metrics['consistency_errors']}")

        if metrics["table_stats"]:
            self.info("Per table:")
            for table, stats in metrics["table_stats"].items():
                self.info(
                    f"  {table}: {stats['inserts']} inserts, "
                    f"{stats['updates']} updates, {stats['deletes']} deletes"
                )

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "jobledger",
    level: Optional[str] = None,
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    The first call decides the configuration. When ``level`` or ``log_dir``
    are not given they come from the environment settings.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        settings = load_settings()
        if level is None:
            level = settings.log_level
        if "log_dir" not in kwargs and settings.log_dir is not None:
            kwargs["log_dir"] = settings.log_dir
            kwargs.setdefault("enable_file", True)
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
