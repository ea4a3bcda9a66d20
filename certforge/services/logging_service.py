"""
Logging and timing service for issuance runs.
"""
import json
import logging
import logging.handlers
import sys
import threading
import time
import traceback
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

CONSOLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@dataclass
class LogEntry:
    """Structured log entry for JSON logging."""
    timestamp: str
    level: str
    logger_name: str
    message: str
    module: str
    function: str
    line_number: int
    extra_data: Optional[Dict[str, Any]] = None
    exception_info: Optional[Dict[str, Any]] = None


@dataclass
class PerformanceMetric:
    """Performance metric data structure."""
    operation: str
    duration_ms: float
    timestamp: str
    success: bool
    error_message: Optional[str] = None
    extra_data: Optional[Dict[str, Any]] = None


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = LogEntry(
            timestamp=datetime.fromtimestamp(record.created).isoformat(),
            level=record.levelname,
            logger_name=record.name,
            message=record.getMessage(),
            module=record.module,
            function=record.funcName,
            line_number=record.lineno,
            extra_data=getattr(record, 'extra_data', None)
        )

        if record.exc_info:
            log_entry.exception_info = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
                'traceback': traceback.format_exception(*record.exc_info)
            }

        return json.dumps(asdict(log_entry), default=str)


class PerformanceMonitor:
    """Times key generation and signing steps."""

    def __init__(self):
        self.metrics: List[PerformanceMetric] = []
        self.lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    @contextmanager
    def measure_operation(self, operation: str, extra_data: Optional[Dict[str, Any]] = None):
        """Context manager to measure operation performance."""
        start_time = time.perf_counter()
        success = True
        error_message = None

        try:
            yield
        except Exception as e:
            success = False
            error_message = str(e)
            raise
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000

            metric = PerformanceMetric(
                operation=operation,
                duration_ms=duration_ms,
                timestamp=datetime.now().isoformat(),
                success=success,
                error_message=error_message,
                extra_data=extra_data
            )

            with self.lock:
                self.metrics.append(metric)

            self.logger.debug(
                f"Performance metric: {operation} took {duration_ms:.1f} ms",
                extra={
                    'extra_data': {
                        'operation': operation,
                        'duration_ms': duration_ms,
                        'success': success,
                        'error_message': error_message,
                        **(extra_data if extra_data else {})
                    }
                }
            )

    def get_metrics(self, operation: Optional[str] = None) -> List[PerformanceMetric]:
        """Get performance metrics, optionally for one operation."""
        with self.lock:
            filtered_metrics = self.metrics.copy()

        if operation:
            filtered_metrics = [m for m in filtered_metrics if m.operation == operation]

        return filtered_metrics

    def get_operation_stats(self, operation: str) -> Dict[str, Any]:
        """Get statistics for a specific operation."""
        metrics = self.get_metrics(operation=operation)

        if not metrics:
            return {}

        durations = [m.duration_ms for m in metrics]
        success_count = sum(1 for m in metrics if m.success)

        return {
            'operation': operation,
            'total_calls': len(metrics),
            'success_count': success_count,
            'failure_count': len(metrics) - success_count,
            'avg_duration_ms': sum(durations) / len(durations),
            'min_duration_ms': min(durations),
            'max_duration_ms': max(durations)
        }


class LoggingService:
    """Configures root logging for the CLI and holds the run's performance monitor."""

    def __init__(self, config):
        """Initialize logging service with configuration."""
        self.config = config
        self.performance_monitor = PerformanceMonitor()
        self._setup_logging()
        self.logger = logging.getLogger(__name__)
        self.logger.debug("Logging service initialized")

    def _setup_logging(self):
        """Install console and optional rotating JSON file handlers on the root logger."""
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        root_logger.setLevel(log_level)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        console_handler.setLevel(log_level)
        root_logger.addHandler(console_handler)

        if self.config.log_file_path:
            log_dir = Path(self.config.log_file_path).parent
            log_dir.mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                filename=self.config.log_file_path,
                maxBytes=5 * 1024 * 1024,  # 5MB
                backupCount=3,
                encoding='utf-8'
            )
            file_handler.setFormatter(JSONFormatter())
            file_handler.setLevel(log_level)
            root_logger.addHandler(file_handler)

    def measure_performance(self, operation: str, extra_data: Optional[Dict[str, Any]] = None):
        """Get performance measurement context manager."""
        return self.performance_monitor.measure_operation(operation, extra_data)

    def get_performance_stats(self) -> Dict[str, Any]:
        """Get statistics for every measured operation."""
        operations = {m.operation for m in self.performance_monitor.get_metrics()}
        return {op: self.performance_monitor.get_operation_stats(op) for op in operations}

    def close(self):
        """Flush and detach the handlers installed by this service."""
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            handler.close()
            root_logger.removeHandler(handler)
