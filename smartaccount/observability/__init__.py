# MIT License
# Copyright (c) 2025 Hashborn

"""
Observability Module

Provides Prometheus metrics for the account protocol.
"""

from .metrics import metrics_registry, export_metrics

__all__ = ['metrics_registry', 'export_metrics']
