# MIT License
# Copyright (c) 2025 Hashborn

"""
Observability Module

Prometheus metrics for snapshot tooling runs.
"""

from .metrics import metrics_registry, record_snapshot, write_metrics

__all__ = ['metrics_registry', 'record_snapshot', 'write_metrics']
