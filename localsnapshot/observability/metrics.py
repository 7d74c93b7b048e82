# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics

Counters for offline merge / export / ingest runs. The registry is written to a
textfile (node-exporter textfile collector format) when the run finishes.

Metrics:
- Spent addresses merged (new / known)
- Spent addresses ingested between stores
- Cuckoo filter insertion failures
- Export bytes written / read
- Ledger supply mismatches seen while inspecting snapshots
"""

import logging
from prometheus_client import Counter, Gauge, CollectorRegistry, write_to_textfile

logger = logging.getLogger(__name__)

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# SPENT ADDRESS METRICS
# ═══════════════════════════════════════════════════════════════════

spent_addresses_merged_total = Counter(
    'localsnapshot_spent_addresses_merged_total',
    'Spent addresses read during merges',
    ['outcome'],
    registry=metrics_registry
)

spent_addresses_ingested_total = Counter(
    'localsnapshot_spent_addresses_ingested_total',
    'Spent addresses streamed from one store into another',
    registry=metrics_registry
)

filter_insert_failures_total = Counter(
    'localsnapshot_filter_insert_failures_total',
    'Spent addresses the cuckoo filter had no room for',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# SNAPSHOT / EXPORT METRICS
# ═══════════════════════════════════════════════════════════════════

export_bytes_written_total = Counter(
    'localsnapshot_export_bytes_written_total',
    'Bytes written to export files',
    registry=metrics_registry
)

export_bytes_read_total = Counter(
    'localsnapshot_export_bytes_read_total',
    'Bytes read from export files',
    registry=metrics_registry
)

supply_mismatches_total = Counter(
    'localsnapshot_supply_mismatches_total',
    'Snapshots whose balances do not add up to the total supply',
    registry=metrics_registry
)

last_milestone_index = Gauge(
    'localsnapshot_last_milestone_index',
    'Milestone index of the last snapshot processed',
    registry=metrics_registry
)


def record_snapshot(summary):
    """
    Update snapshot metrics.

    Args:
        summary: SnapshotSummary of the processed snapshot
    """
    last_milestone_index.set(summary.milestone_index)
    if not summary.supply_correct:
        supply_mismatches_total.inc()


def write_metrics(path: str):
    """Write the registry in text exposition format."""
    write_to_textfile(path, metrics_registry)
    logger.info(f"Metrics written to {path}")
