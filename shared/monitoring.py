"""
Prometheus Monitoring & Metrics

This module implements metrics collection for every service.

Features:
- Request/response size, latency and in-progress metrics per handler
- Business metrics (reservations by state, guarded deletes, notifications)
- Authentication metrics
- Database timing
- System resource summary (psutil)
"""

from prometheus_client import Counter, Histogram, Gauge, Info, REGISTRY
from prometheus_fastapi_instrumentator import Instrumentator, metrics
from fastapi import FastAPI
import logging
import time
import psutil
import os
import sys

logger = logging.getLogger(__name__)

# Business metrics
reservations_total = Counter(
    'reservations_total',
    'Reservation lifecycle events',
    ['state']
)

reservation_conflicts_total = Counter(
    'reservation_conflicts_total',
    'Reservation attempts rejected because the hall and slot were taken'
)

soft_delete_refusals_total = Counter(
    'soft_delete_refusals_total',
    'Deactivations refused because a pending reservation references the record',
    ['entity']
)

notifications_total = Counter(
    'notifications_total',
    'Reservation notifications by outcome',
    ['result']
)

users_total = Gauge(
    'users_total',
    'Total number of active users',
    ['role']
)

# Database metrics
db_query_duration_seconds = Histogram(
    'db_query_duration_seconds',
    'Database query duration',
    ['query_type']
)

# Authentication metrics
auth_attempts_total = Counter(
    'auth_attempts_total',
    'Total authentication attempts',
    ['result']
)

jwt_tokens_issued = Counter(
    'jwt_tokens_issued',
    'Total JWT tokens issued'
)

# System metrics
system_cpu_usage = Gauge(
    'system_cpu_usage_percent',
    'CPU usage percentage'
)

system_memory_usage = Gauge(
    'system_memory_usage_bytes',
    'Memory usage in bytes'
)

system_info = Info(
    'system_info',
    'System information'
)

def _system_resources():
    """Instrumentation refreshing the psutil gauges on every request."""
    def instrumentation(info: metrics.Info) -> None:
        update_system_metrics()

    return instrumentation


def setup_metrics(app: FastAPI, service: str):
    """
    Set up Prometheus metrics for a FastAPI application.

    Request metrics are namespaced by service so several applications can
    share one process registry. Nothing is instrumented unless the
    ``ENABLE_METRICS`` environment variable is ``true``.

    Args:
        app: FastAPI application instance
        service: Service name used as the metric namespace

    Example:
        app = FastAPI()
        setup_metrics(app, "halls")
    """
    instrumentator = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=False,
        should_group_untemplated=True,
        should_respect_env_var=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics", "/health"],
        env_var_name="ENABLE_METRICS",
        inprogress_name=f"{service}_http_requests_inprogress",
        inprogress_labels=True,
    )

    instrumentator.add(
        metrics.request_size(
            should_include_handler=True,
            should_include_method=True,
            should_include_status=True,
            metric_namespace=service,
        )
    )

    instrumentator.add(
        metrics.response_size(
            should_include_handler=True,
            should_include_method=True,
            should_include_status=True,
            metric_namespace=service,
        )
    )

    instrumentator.add(
        metrics.latency(
            should_include_handler=True,
            should_include_method=True,
            should_include_status=True,
            metric_namespace=service,
        )
    )

    instrumentator.add(
        metrics.requests(
            should_include_handler=True,
            should_include_method=True,
            should_include_status=True,
            metric_namespace=service,
        )
    )

    instrumentator.add(_system_resources())

    instrumentator.instrument(app)
    instrumentator.expose(app, endpoint="/metrics", include_in_schema=False)

    system_info.info({
        'version': '1.0.0',
        'python_version': sys.version.split()[0],
        'environment': os.getenv('ENVIRONMENT', 'development')
    })


def track_reservation(state: str, amount: int = 1):
    """
    Track a reservation lifecycle event.

    Args:
        state: State reached (PENDING on create, CANCELLED, COMPLETED)
        amount: Number of reservations that reached it
    """
    reservations_total.labels(state=state).inc(amount)


def track_reservation_conflict():
    """Track a rejected double booking."""
    reservation_conflicts_total.inc()


def track_soft_delete_refused(entity: str):
    """
    Track a refused deactivation.

    Args:
        entity: hall, time_slot, service or user
    """
    soft_delete_refusals_total.labels(entity=entity).inc()


def track_notification(success: bool):
    """Track the outcome of a notification attempt."""
    notifications_total.labels(result="sent" if success else "failed").inc()


def update_user_count(role: str, count: int):
    """
    Update user count by role.

    Args:
        role: User role label
        count: Number of users with that role
    """
    users_total.labels(role=role).set(count)


def track_auth_attempt(success: bool):
    """
    Track authentication attempt.

    Args:
        success: Whether authentication was successful
    """
    result = "success" if success else "failure"
    auth_attempts_total.labels(result=result).inc()


def track_jwt_issued():
    """Track JWT token issuance."""
    jwt_tokens_issued.inc()


def track_db_query(query_type: str, duration: float):
    """
    Track database query.

    Args:
        query_type: Type of query (select, insert, update, delete)
        duration: Query duration in seconds
    """
    db_query_duration_seconds.labels(query_type=query_type).observe(duration)


def update_system_metrics():
    """Update system resource metrics."""
    system_cpu_usage.set(psutil.cpu_percent(interval=None))
    system_memory_usage.set(psutil.virtual_memory().used)


class MetricsCollector:
    """
    Context manager for collecting metrics with automatic timing.

    Example:
        with MetricsCollector("select"):
            halls = db.query(Hall).all()
    """

    def __init__(self, query_type: str):
        self.query_type = query_type
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time:
            track_db_query(self.query_type, time.time() - self.start_time)


def get_metrics_summary() -> dict:
    """
    Get summary of current metrics.

    Returns:
        dict: Summary of system resources and request totals
    """
    total_requests = 0
    for metric in REGISTRY.collect():
        for sample in metric.samples:
            if sample.name.endswith('http_requests_total'):
                total_requests += sample.value

    try:
        system = {
            "cpu_percent": psutil.cpu_percent(interval=None),
            "memory_percent": psutil.virtual_memory().percent,
            "disk_percent": psutil.disk_usage('/').percent
        }
    except (psutil.Error, OSError) as e:
        logger.warning(f"Could not read system metrics: {e}")
        return {"error": str(e), "status": "error"}

    return {
        "system": system,
        "requests": {"total": total_requests},
        "status": "healthy"
    }
