# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports account-protocol metrics in Prometheus format.

Metrics:
- Validation outcomes (accepted / rejected / error), counted by the account EventBus
- Aborted phases
- Replay-guard rejections
- Fee settlements and settled amount
- Dispatched executions by path and status
"""

from prometheus_client import Counter, CollectorRegistry, generate_latest

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# VALIDATION METRICS
# ═══════════════════════════════════════════════════════════════════

validations_total = Counter(
    'smartaccount_validations_total',
    'Validation phase outcomes',
    ['outcome'],
    registry=metrics_registry
)

request_failures_total = Counter(
    'smartaccount_request_failures_total',
    'Phases aborted with a protocol error',
    ['phase'],
    registry=metrics_registry
)

replay_rejections_total = Counter(
    'smartaccount_replay_rejections_total',
    'Requests rejected for presenting an unexpected sequence number',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# SETTLEMENT METRICS
# ═══════════════════════════════════════════════════════════════════

settlements_total = Counter(
    'smartaccount_settlements_total',
    'Fee settlement attempts',
    ['status'],
    registry=metrics_registry
)

fees_settled_total = Counter(
    'smartaccount_fees_settled_total',
    'Total value paid to orchestrators as fees',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# EXECUTION METRICS
# ═══════════════════════════════════════════════════════════════════

executions_total = Counter(
    'smartaccount_executions_total',
    'Dispatched actions',
    ['path', 'status'],
    registry=metrics_registry
)


def export_metrics() -> bytes:
    """Renders the registry in the Prometheus text exposition format."""
    return generate_latest(metrics_registry)
