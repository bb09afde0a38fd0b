"""Prometheus metrics for the support chat service."""

import logging
from contextlib import contextmanager

from prometheus_client import Counter, Histogram

from support_chat.config import get_settings

logger = logging.getLogger(__name__)


# Check if monitoring is enabled (default: False)
MONITORING_ENABLED = get_settings().enable_monitoring

if MONITORING_ENABLED:
    logger.info("Prometheus metrics enabled (ENABLE_MONITORING=true)")

    # Session resolution outcomes
    SESSIONS_RESOLVED = Counter(
        "chat_sessions_resolved_total",
        "Chat session resolutions",
        ["outcome"],  # outcome: found | created | conflict
    )

    RESOLVE_DURATION = Histogram(
        "chat_session_resolve_seconds",
        "Chat session resolution duration in seconds",
        buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
    )

    # Message log
    MESSAGES_APPENDED = Counter(
        "chat_messages_appended_total",
        "Messages appended to the chat log",
        ["sender_type"],  # sender_type: customer | agent | system
    )

    # Realtime fan-out
    BUS_DELIVERIES = Counter(
        "chat_bus_deliveries_total",
        "Events handed to realtime subscribers",
        ["status"],  # status: delivered | dropped
    )

    RESUBSCRIPTIONS = Counter(
        "chat_resubscriptions_total",
        "Client resubscriptions after a lost realtime feed",
        ["status"],  # status: recovered | failed
    )

    # Error tracking
    ERROR_COUNT = Counter(
        "chat_errors_total",
        "Total errors by type",
        ["error_type", "operation"],
    )
else:
    logger.info("Prometheus metrics disabled (ENABLE_MONITORING=false)")

    # Create no-op metrics that do nothing when monitoring is disabled
    class _NoOpMetric:
        """No-op metric that does nothing."""

        def labels(self, **kwargs):  # noqa: ARG002
            return self

        def inc(self, amount=1):  # noqa: ARG002
            pass

        def time(self):
            @contextmanager
            def _noop():
                yield

            return _noop()

    SESSIONS_RESOLVED = _NoOpMetric()
    RESOLVE_DURATION = _NoOpMetric()
    MESSAGES_APPENDED = _NoOpMetric()
    BUS_DELIVERIES = _NoOpMetric()
    RESUBSCRIPTIONS = _NoOpMetric()
    ERROR_COUNT = _NoOpMetric()
