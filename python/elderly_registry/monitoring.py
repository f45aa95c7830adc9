"""
Database Performance Monitoring for the Elderly Persons Registry

This module provides:
- Query timing context manager and decorator for slow query detection
- Prometheus metrics for query durations and rejected mutations
- Connection pool health checks

Usage:
    from elderly_registry.monitoring import query_timer, get_db_metrics

    with query_timer("person.search"):
        results = repo.search(PersonFilter(last_name="Soto"))
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from functools import wraps
from typing import Any, Callable, Dict, List, Optional

from prometheus_client import Counter, Histogram

from elderly_registry.errors import RegistryError

logger = logging.getLogger(__name__)


# ============================================
# CONFIGURATION
# ============================================

@dataclass
class MonitoringConfig:
    """Configuration for database monitoring."""
    slow_query_threshold_ms: float = 1000.0  # Log queries slower than this
    warning_threshold_ms: float = 500.0
    enable_prometheus: bool = True
    enable_logging: bool = True


_config = MonitoringConfig()


def configure_monitoring(
    slow_query_threshold_ms: float = 1000.0,
    warning_threshold_ms: float = 500.0,
    enable_prometheus: bool = True,
    enable_logging: bool = True
) -> None:
    """
    Configure monitoring settings.

    Args:
        slow_query_threshold_ms: Log queries slower than this (ms)
        warning_threshold_ms: Info-log queries slower than this (ms)
        enable_prometheus: Record Prometheus metrics
        enable_logging: Emit timing logs
    """
    global _config
    _config = MonitoringConfig(
        slow_query_threshold_ms=slow_query_threshold_ms,
        warning_threshold_ms=warning_threshold_ms,
        enable_prometheus=enable_prometheus,
        enable_logging=enable_logging
    )


def get_monitoring_config() -> MonitoringConfig:
    return _config


# ============================================
# PROMETHEUS METRICS
# ============================================

db_query_duration = Histogram(
    'elderly_registry_db_query_duration_seconds',
    'Database operation duration in seconds',
    ['operation', 'status'],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

db_query_total = Counter(
    'elderly_registry_db_query_total',
    'Total number of database operations',
    ['operation', 'status']
)

db_slow_queries_total = Counter(
    'elderly_registry_db_slow_queries_total',
    'Total number of slow database operations',
    ['operation']
)

db_rejected_mutations_total = Counter(
    'elderly_registry_db_rejected_mutations_total',
    'Mutations rejected by integrity rules',
    ['operation', 'error']
)


# ============================================
# QUERY STATS TRACKING
# ============================================

@dataclass
class QueryStats:
    """Statistics for a single operation."""
    operation: str
    count: int = 0
    total_time_ms: float = 0.0
    min_time_ms: float = float('inf')
    max_time_ms: float = 0.0
    errors: int = 0
    slow_queries: int = 0
    last_executed: Optional[datetime] = None

    @property
    def avg_time_ms(self) -> float:
        return self.total_time_ms / self.count if self.count > 0 else 0.0

    def record(self, duration_ms: float, error: bool = False, slow: bool = False) -> None:
        self.count += 1
        self.total_time_ms += duration_ms
        self.min_time_ms = min(self.min_time_ms, duration_ms)
        self.max_time_ms = max(self.max_time_ms, duration_ms)
        self.last_executed = datetime.now()

        if error:
            self.errors += 1
        if slow:
            self.slow_queries += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'operation': self.operation,
            'count': self.count,
            'total_time_ms': round(self.total_time_ms, 2),
            'avg_time_ms': round(self.avg_time_ms, 2),
            'min_time_ms': round(self.min_time_ms, 2) if self.min_time_ms != float('inf') else 0.0,
            'max_time_ms': round(self.max_time_ms, 2),
            'errors': self.errors,
            'slow_queries': self.slow_queries,
            'last_executed': self.last_executed.isoformat() if self.last_executed else None
        }


class QueryStatsCollector:
    """Thread-safe collector for query statistics."""

    def __init__(self):
        self._stats: Dict[str, QueryStats] = {}
        self._lock = threading.Lock()
        self._start_time = datetime.now()

    def record(self, operation: str, duration_ms: float, error: bool = False, slow: bool = False) -> None:
        with self._lock:
            if operation not in self._stats:
                self._stats[operation] = QueryStats(operation=operation)
            self._stats[operation].record(duration_ms, error, slow)

    def get_stats(self, operation: Optional[str] = None) -> Dict[str, Any]:
        with self._lock:
            if operation:
                stat = self._stats.get(operation)
                return stat.to_dict() if stat else {}

            return {
                'uptime_seconds': (datetime.now() - self._start_time).total_seconds(),
                'operations': {
                    op: stats.to_dict() for op, stats in self._stats.items()
                }
            }

    def get_slow_queries(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                stats.to_dict()
                for stats in self._stats.values()
                if stats.slow_queries > 0
            ]

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()
            self._start_time = datetime.now()


_stats_collector = QueryStatsCollector()


def get_db_metrics(operation: Optional[str] = None) -> Dict[str, Any]:
    """
    Get current database metrics.

    Args:
        operation: Restrict the report to one operation name

    Returns:
        Dictionary with query statistics
    """
    return _stats_collector.get_stats(operation)


def get_slow_query_report() -> List[Dict[str, Any]]:
    return _stats_collector.get_slow_queries()


def reset_metrics() -> None:
    """Reset all collected in-process metrics."""
    _stats_collector.reset()


# ============================================
# QUERY TIMER
# ============================================

@contextmanager
def query_timer(operation: str):
    """
    Context manager to time and monitor database operations.

    Integrity rejections are counted separately from storage errors; both
    propagate unchanged.
    """
    start_time = time.perf_counter()
    error_occurred = False

    try:
        yield
    except RegistryError as e:
        error_occurred = True
        if _config.enable_prometheus:
            db_rejected_mutations_total.labels(operation=operation, error=type(e).__name__).inc()
        raise
    except Exception:
        error_occurred = True
        raise
    finally:
        duration = time.perf_counter() - start_time
        duration_ms = duration * 1000

        is_slow = duration_ms > _config.slow_query_threshold_ms
        is_warning = duration_ms > _config.warning_threshold_ms

        _stats_collector.record(
            operation=operation,
            duration_ms=duration_ms,
            error=error_occurred,
            slow=is_slow
        )

        if _config.enable_prometheus:
            status = "error" if error_occurred else "success"
            db_query_duration.labels(operation=operation, status=status).observe(duration)
            db_query_total.labels(operation=operation, status=status).inc()

            if is_slow:
                db_slow_queries_total.labels(operation=operation).inc()

        if _config.enable_logging:
            if is_slow:
                logger.warning(
                    f"SLOW QUERY: {operation} took {duration_ms:.2f}ms "
                    f"(threshold: {_config.slow_query_threshold_ms}ms)"
                )
            elif is_warning and not error_occurred:
                logger.info(f"Query {operation} took {duration_ms:.2f}ms")


def timed_query(operation: str):
    """
    Decorator to time and monitor repository methods.

    ``{entity}`` in the operation name is replaced by the repository's
    entity name, so generic repository methods report per entity.

    Usage:
        @timed_query("{entity}.create")
        def create(self, data):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            name = operation
            if '{entity}' in operation and args:
                name = operation.format(entity=getattr(args[0], 'entity', 'unknown'))
            with query_timer(name):
                return func(*args, **kwargs)
        return wrapper
    return decorator


# ============================================
# HEALTH CHECK
# ============================================

@dataclass
class HealthStatus:
    """Database health status."""
    healthy: bool
    latency_ms: float
    pool_size: int = 0
    pool_checked_out: int = 0
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'healthy': self.healthy,
            'latency_ms': round(self.latency_ms, 2),
            'pool': {
                'size': self.pool_size,
                'checked_out': self.pool_checked_out,
            },
            'error': self.error,
            'timestamp': self.timestamp.isoformat()
        }


def _pool_stat(pool, name: str) -> int:
    # SQLite static/singleton pools do not expose size counters
    method = getattr(pool, name, None)
    return method() if callable(method) else 0


def check_health(engine, session_factory) -> HealthStatus:
    """
    Perform a database health check.

    Args:
        engine: SQLAlchemy Engine
        session_factory: SQLAlchemy session factory

    Returns:
        HealthStatus with check results
    """
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    start_time = time.perf_counter()

    try:
        session = session_factory()
        try:
            session.execute(text("SELECT 1"))
            latency = (time.perf_counter() - start_time) * 1000
            return HealthStatus(
                healthy=True,
                latency_ms=latency,
                pool_size=_pool_stat(engine.pool, 'size'),
                pool_checked_out=_pool_stat(engine.pool, 'checkedout')
            )
        finally:
            session.close()

    except SQLAlchemyError as e:
        latency = (time.perf_counter() - start_time) * 1000
        logger.error(f"Database health check failed: {e}")

        return HealthStatus(
            healthy=False,
            latency_ms=latency,
            error=str(e)
        )
