# MIT License
# Copyright (c) 2025 Hashborn

"""
Local Snapshot Manager

Builds the local snapshot store from plaintext snapshot files plus a
spent-addresses store, and reads the persisted snapshot back.
"""

import os
import time
import logging
from typing import Optional

from protocol.config.params import (
    LOCAL_SNAPSHOT_DB_KEY,
    LOCAL_SNAPSHOT_PARTITIONS,
    PARTITION_LOCAL_SNAPSHOTS,
    PARTITION_SPENT_ADDRESSES,
    SPENT_ADDRESSES_PARTITIONS,
)
from protocol.types.common import StorageIOError
from ..config import ToolConfig
from ..storage.db import KeyValueStore, DB_FILE_NAME
from ..spent.ingest import ingest_partition
from ..observability import metrics
from .codec import encode_local_snapshot, decode_local_snapshot
from .files import read_local_snapshot_files
from .types import SnapshotState, SnapshotSummary

logger = logging.getLogger(__name__)


def persist_local_snapshot(store: KeyValueStore, state: SnapshotState):
    """Writes the store-internal encoding under the local snapshot key."""
    store.put(PARTITION_LOCAL_SNAPSHOTS, LOCAL_SNAPSHOT_DB_KEY, encode_local_snapshot(state))


def load_local_snapshot(store: KeyValueStore) -> Optional[SnapshotState]:
    """
    Reads the persisted local snapshot (first entry of the partition).

    Returns:
        SnapshotState, or None if nothing is persisted
    """
    entry = store.first(PARTITION_LOCAL_SNAPSHOTS)
    if entry is None:
        return None
    _, raw = entry
    logger.info(f"Persisted local snapshot is {len(raw) // 1024} KBs in size")
    return decode_local_snapshot(raw)


class SnapshotManager:
    """
    Local snapshot store operations driven by a ToolConfig.
    """

    def __init__(self, config: ToolConfig):
        self.config = config

    def load_from_files(self) -> SnapshotState:
        return read_local_snapshot_files(self.config.ls_meta_file, self.config.ls_state_file)

    def describe(self, state: SnapshotState) -> SnapshotSummary:
        """Summarizes a snapshot, logging a warning if the supply does not add up."""
        summary = state.summary(self.config.total_supply)
        metrics.record_snapshot(summary)
        logger.info(
            f"ms index/hash/timestamp: {summary.milestone_index}/{summary.milestone_hash}/"
            f"{summary.milestone_timestamp}, solid entry points: {summary.solid_entry_points_count}, "
            f"seen milestones: {summary.seen_milestones_count}, ledger entries: {summary.ledger_entries_count}"
        )
        if not summary.supply_correct:
            logger.warning(
                f"Max supply incorrect: balances sum to {summary.computed_supply}, "
                f"expected {summary.expected_supply}"
            )
        return summary

    def info(self) -> SnapshotSummary:
        """Parses the plaintext snapshot files and summarizes them."""
        return self.describe(self.load_from_files())

    def build_database(self) -> SnapshotSummary:
        """
        Creates the local snapshot store.

        Streams the spent addresses of `spent_addresses_db_dir` into `ls_db_dir`
        and persists the snapshot parsed from the plaintext files.

        Raises:
            StorageIOError: If a store or file is unavailable
            FormatError: If the plaintext files are malformed
        """
        start = time.time()
        state = self.load_from_files()
        summary = self.describe(state)

        with KeyValueStore(self.config.spent_addresses_db_dir, SPENT_ADDRESSES_PARTITIONS,
                           create=False) as source:
            stale = os.path.join(self.config.ls_db_dir, DB_FILE_NAME)
            if os.path.exists(stale):
                logger.info(f"Removing stale local snapshot store {stale}")
                os.remove(stale)

            with KeyValueStore(self.config.ls_db_dir, LOCAL_SNAPSHOT_PARTITIONS,
                               commit_interval=self.config.commit_interval) as dest:
                logger.info("Reading and writing spent addresses database")
                ingest_partition(source, dest, PARTITION_SPENT_ADDRESSES, self.config.ingest_queue_size)

                logger.info("Writing local snapshot data...")
                persist_local_snapshot(dest, state)

        logger.info(f"Finished, took {time.time() - start:.2f}s")
        return summary

    def load_from_database(self) -> SnapshotState:
        """
        Raises:
            StorageIOError: If no local snapshot is persisted
        """
        with KeyValueStore(self.config.ls_db_dir, LOCAL_SNAPSHOT_PARTITIONS, create=False) as store:
            state = load_local_snapshot(store)
        if state is None:
            raise StorageIOError(f"No local snapshot in {self.config.ls_db_dir} persisted")
        return state
