"""
Prometheus metrics for the transaction ledger.
Tracks record outcomes and run-level figures for monitoring and alerting.
"""

from prometheus_client import Counter, Histogram, Gauge, start_http_server
import time
from functools import wraps
from typing import Mapping
import logging

from models import ClientAccount, LedgerSummary

logger = logging.getLogger(__name__)

# Business Metrics
RECORDS_TOTAL = Counter(
    'ledger_records_total',
    'Transaction records processed, by kind and outcome',
    ['kind', 'outcome']
)

MALFORMED_RECORDS_TOTAL = Counter(
    'ledger_malformed_records_total',
    'Input rows skipped because they could not be parsed'
)

ACCOUNTS = Gauge(
    'ledger_accounts',
    'Accounts referenced by the most recent run'
)

LOCKED_ACCOUNTS = Gauge(
    'ledger_locked_accounts',
    'Accounts locked by a chargeback in the most recent run'
)

# Technical Metrics
RUN_DURATION_SECONDS = Histogram(
    'ledger_run_duration_seconds',
    'Time spent processing an input file',
    ['status'],
    buckets=[0.1, 0.5, 1, 5, 10, 30, 60, 300]
)


class MetricsCollector:
    """Centralized metrics collection for ledger runs."""

    def __init__(self, port: int = 8000):
        self.port = port
        self.server_started = False

    def start_metrics_server(self):
        """Start Prometheus metrics server."""
        if not self.server_started:
            try:
                if not (8000 <= self.port <= 9999):
                    raise ValueError(f"Invalid port {self.port}. Must be between 8000-9999")

                start_http_server(self.port)
                self.server_started = True
                logger.info(f"Metrics server started on port {self.port}")
            except (OSError, ValueError) as e:
                logger.error(f"Failed to start metrics server: {e}")

    def record_summary(self, summary: LedgerSummary):
        """Record per-kind outcome counts from a finished run."""
        for kind, outcomes in summary.outcomes_by_kind.items():
            for outcome, count in outcomes.items():
                RECORDS_TOTAL.labels(kind=kind, outcome=outcome).inc(count)
        if summary.records_malformed:
            MALFORMED_RECORDS_TOTAL.inc(summary.records_malformed)

    def record_accounts(self, accounts: Mapping[int, ClientAccount]):
        """Update account gauges from final ledger state."""
        ACCOUNTS.set(len(accounts))
        LOCKED_ACCOUNTS.set(sum(1 for account in accounts.values() if account.locked))

    def record_run_duration(self, status: str, duration: float):
        RUN_DURATION_SECONDS.labels(status=status).observe(duration)


# Global metrics collector instance
metrics = MetricsCollector()


def track_duration(func):
    """Decorator recording a ledger run's duration, labelled by success or error."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        try:
            result = func(*args, **kwargs)
        except Exception:
            metrics.record_run_duration('error', time.time() - start_time)
            raise
        metrics.record_run_duration('success', time.time() - start_time)
        return result
    return wrapper
