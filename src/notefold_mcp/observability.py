"""Observability utilities for the Notefold MCP server.

Provides persistent rotating log files, per-operation timing metrics and
correlation IDs for tracing a single tool call through the logs.
"""
import functools
import json
import logging
import time
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = Path.home() / ".notefold" / "logs"
DEFAULT_METRICS_FILE = Path.home() / ".notefold" / "metrics.json"

# Logging format with ISO 8601 timestamps
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Arguments worth echoing into trace logs, in order of preference
_TRACE_KEYS = ("folder_id", "note_id", "tag_id", "item_id", "user")

F = TypeVar('F', bound=Callable[..., Any])


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB per file
    backup_count: int = 5,
    console: bool = True,
) -> Path:
    """Configure persistent file logging with rotation.

    Installs a rotating file handler (and optionally a console handler) on
    the ``notefold_mcp`` logger, so every module logger inherits them.

    Args:
        log_dir: Directory for log files. Defaults to ~/.notefold/logs/
        level: Logging level (default: INFO)
        max_bytes: Maximum size per log file before rotation (default: 10 MB)
        backup_count: Number of rotated files to keep (default: 5)
        console: Also log to the console (default: True)

    Returns:
        Path to the log directory
    """
    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger("notefold_mcp")
    root_logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    log_file = log_path / "notefold.log"
    if not any(
        isinstance(h, RotatingFileHandler) and Path(h.baseFilename).resolve() == log_file.resolve()
        for h in root_logger.handlers
    ):
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if console and not any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)
        for h in root_logger.handlers
    ):
        # MCP speaks over stdout, so the console handler writes to stderr
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    root_logger.info(f"Logging configured: {log_file} (max {max_bytes} bytes, {backup_count} backups)")

    return log_path


@dataclass
class OperationMetrics:
    """Metrics for a single operation type."""
    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: float = float('inf')
    max_duration_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None


class MetricsCollector:
    """Thread-safe metrics collection for server operations.

    Collects timing, success/failure counts and the last error for each
    operation type (folder_move, note_create, ...). Metrics can be saved to
    disk and are reloaded on startup.
    """

    def __init__(self, metrics_file: Optional[Union[str, Path]] = None):
        self._metrics: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._lock = Lock()
        self._start_time = datetime.now(timezone.utc)
        self._metrics_file = Path(metrics_file) if metrics_file else DEFAULT_METRICS_FILE
        self._load_metrics()

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None
    ) -> None:
        """Record metrics for one completed operation."""
        with self._lock:
            m = self._metrics[operation]
            m.count += 1
            m.total_duration_ms += duration_ms
            m.min_duration_ms = min(m.min_duration_ms, duration_ms)
            m.max_duration_ms = max(m.max_duration_ms, duration_ms)

            if success:
                m.success_count += 1
            else:
                m.error_count += 1
                m.last_error = error
                m.last_error_time = datetime.now(timezone.utc)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Get a snapshot of all metrics, keyed by operation name."""
        with self._lock:
            result = {}
            for op, m in self._metrics.items():
                avg_duration = m.total_duration_ms / m.count if m.count > 0 else 0
                min_dur = m.min_duration_ms if m.min_duration_ms != float('inf') else 0
                result[op] = {
                    'count': m.count,
                    'success_count': m.success_count,
                    'error_count': m.error_count,
                    'success_rate': m.success_count / m.count if m.count > 0 else 0,
                    'avg_duration_ms': round(avg_duration, 2),
                    'min_duration_ms': round(min_dur, 2),
                    'max_duration_ms': round(m.max_duration_ms, 2),
                    'last_error': m.last_error,
                    'last_error_time': m.last_error_time.isoformat() if m.last_error_time else None
                }
            return result

    def get_summary(self) -> Dict[str, Any]:
        """Get aggregate statistics across all operations."""
        with self._lock:
            total_ops = sum(m.count for m in self._metrics.values())
            total_success = sum(m.success_count for m in self._metrics.values())
            total_errors = sum(m.error_count for m in self._metrics.values())

            return {
                'uptime_seconds': (datetime.now(timezone.utc) - self._start_time).total_seconds(),
                'total_operations': total_ops,
                'total_success': total_success,
                'total_errors': total_errors,
                'overall_success_rate': total_success / total_ops if total_ops > 0 else 1.0,
                'operations_tracked': sorted(self._metrics.keys())
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._metrics.clear()
            self._start_time = datetime.now(timezone.utc)

    def _load_metrics(self) -> bool:
        try:
            if not self._metrics_file.exists():
                return False

            with open(self._metrics_file, "r", encoding="utf-8") as f:
                data = json.load(f)

            for op_name, op_data in data.get("operations", {}).items():
                m = self._metrics[op_name]
                m.count = op_data.get("count", 0)
                m.success_count = op_data.get("success_count", 0)
                m.error_count = op_data.get("error_count", 0)
                m.total_duration_ms = op_data.get("total_duration_ms", 0.0)
                m.min_duration_ms = op_data.get("min_duration_ms") or float("inf")
                m.max_duration_ms = op_data.get("max_duration_ms", 0.0)
                m.last_error = op_data.get("last_error")

            logger.debug(f"Loaded metrics from {self._metrics_file}")
            return True

        except (json.JSONDecodeError, KeyError, ValueError, TypeError) as e:
            logger.warning(f"Failed to load metrics from {self._metrics_file}: {e}")
            return False

    def save_metrics(self) -> bool:
        """Save metrics to disk atomically.

        Returns:
            True if saved successfully, False otherwise.
        """
        with self._lock:
            try:
                self._metrics_file.parent.mkdir(parents=True, exist_ok=True)
                data = {
                    "start_time": self._start_time.isoformat(),
                    "saved_at": datetime.now(timezone.utc).isoformat(),
                    "operations": {
                        op_name: {
                            "count": m.count,
                            "success_count": m.success_count,
                            "error_count": m.error_count,
                            "total_duration_ms": m.total_duration_ms,
                            "min_duration_ms": m.min_duration_ms if m.min_duration_ms != float("inf") else None,
                            "max_duration_ms": m.max_duration_ms,
                            "last_error": m.last_error,
                        }
                        for op_name, m in self._metrics.items()
                    },
                }

                # Atomic write via temp file
                temp_file = self._metrics_file.with_suffix(".tmp")
                with open(temp_file, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2)
                temp_file.replace(self._metrics_file)
                return True

            except (OSError, TypeError) as e:
                logger.error(f"Failed to save metrics to {self._metrics_file}: {e}")
                return False


# Global metrics collector instance
metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Context manager for timing and logging operations.

    Yields a dictionary the caller can fill with result info; it is logged
    on completion.

    Example:
        with timed_operation('folder_move', folder_id=fid) as op:
            repo.move(fid, target)
            op['moved'] = True
    """
    correlation_id = str(uuid.uuid4())[:8]
    start_time = time.perf_counter()
    result_info: Dict[str, Any] = {'correlation_id': correlation_id}

    context_str = ', '.join(f'{k}={v}' for k, v in context.items())
    logger.debug(f"[{correlation_id}] START {operation} ({context_str})")

    error_msg = None
    success = True

    try:
        yield result_info
    except Exception as e:
        success = False
        error_msg = str(e)
        raise
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        metrics.record_operation(operation, duration_ms, success, error_msg)

        result_str = ', '.join(f'{k}={v}' for k, v in result_info.items() if k != 'correlation_id')
        status = 'OK' if success else f'ERROR: {error_msg}'
        logger.debug(
            f"[{correlation_id}] END {operation} "
            f"({duration_ms:.2f}ms) [{status}] {result_str}"
        )


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Decorator for automatic operation tracing.

    Times the function through timed_operation, echoing the first
    identifying keyword argument (folder_id, note_id, ...) into the log.

    Example:
        @traced('workspace_delete_folder')
        def delete_folder(self, folder_id: str, user: str) -> FolderDeletion:
            ...
    """
    def decorator(func: F) -> F:
        op_name = operation_name or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            context = {}
            for key in _TRACE_KEYS:
                if key in kwargs:
                    context[key] = kwargs[key]
                    break

            with timed_operation(op_name, **context) as op:
                result = func(*args, **kwargs)
                if isinstance(result, (list, set, frozenset, dict)):
                    op['result_count'] = len(result)
                elif result is not None:
                    op['has_result'] = True
                return result

        return wrapper  # type: ignore
    return decorator
