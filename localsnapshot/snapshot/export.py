# MIT License
# Copyright (c) 2025 Hashborn

"""
Export Pipeline

Produces and consumes the single-file export of a local snapshot store:
    export  - store -> export file (staged, then moved into place)
    inspect - export file -> summary, nothing written
    import  - export file -> store
"""

import os
import time
import logging
from typing import Optional

from protocol.config.params import (
    LOCAL_SNAPSHOT_PARTITIONS,
    PARTITION_SPENT_ADDRESSES,
    SPENT_ADDRESS_VALUE,
)
from protocol.types.common import StorageIOError
from ..config import ToolConfig
from ..storage.db import KeyValueStore
from ..spent.ingest import AddressStream
from ..observability import metrics
from .codec import ExportContents, decode_export, write_export
from .manager import SnapshotManager, load_local_snapshot, persist_local_snapshot
from .types import ExportSummary, SnapshotState

logger = logging.getLogger(__name__)

STAGING_SUFFIX = ".tmp"


class ExportPipeline:
    """
    Moves a local snapshot store in and out of the export file format.
    """

    def __init__(self, config: ToolConfig):
        """
        Args:
            config: Tool configuration (store path, export path/version, filter capacity)
        """
        self.config = config
        self.snapshots = SnapshotManager(config)

    def _open_existing(self, db_dir: str) -> KeyValueStore:
        return KeyValueStore(db_dir, LOCAL_SNAPSHOT_PARTITIONS, commit_interval=self.config.commit_interval,
                             create=False)

    def _summary(self, path: str, state: SnapshotState, version: int, spent_count: int,
                 omitted: bool, filter_size: Optional[int]) -> ExportSummary:
        base = self.snapshots.describe(state)
        return ExportSummary(
            **base.model_dump(),
            path=path,
            version=version,
            spent_addresses_count=spent_count,
            spent_addresses_omitted=omitted,
            filter_size_bytes=filter_size,
            file_size_bytes=os.path.getsize(path),
        )

    def export(self, path: Optional[str] = None) -> ExportSummary:
        """
        Exports the local snapshot and spent addresses into a single file.

        The file is written to a staging path and moved over the target only
        once complete; a failed export leaves no file behind.

        Args:
            path: Target file (default: config.export_file)

        Returns:
            ExportSummary of the written file

        Raises:
            StorageIOError: If the store is missing or holds no local snapshot
            ConfigurationError: If the cuckoo filter capacity is too small
        """
        path = path or self.config.export_file
        version = self.config.export_version
        omit = self.config.omit_spent_addresses
        start = time.time()

        with self._open_existing(self.config.ls_db_dir) as store:
            state = load_local_snapshot(store)
            if state is None:
                raise StorageIOError(f"No local snapshot in {self.config.ls_db_dir} persisted")

            spent_count = 0 if omit else store.count(PARTITION_SPENT_ADDRESSES)
            if omit:
                logger.info("Omitting spent addresses from the export")
            else:
                logger.info(f"Exporting {spent_count} spent addresses")
            spent = [] if omit else AddressStream(store, PARTITION_SPENT_ADDRESSES, self.config.ingest_queue_size)

            if os.path.exists(path):
                logger.info(f"Removing stale export file {path}")
                os.remove(path)

            staging = path + STAGING_SUFFIX
            try:
                with open(staging, "wb") as f:
                    result = write_export(f, state, spent, spent_count, version,
                                          self.config.cuckoo_filter_capacity, omit)
                os.replace(staging, path)
            except BaseException:
                if os.path.exists(staging):
                    os.remove(staging)
                raise

        metrics.export_bytes_written_total.inc(os.path.getsize(path))
        logger.info(
            f"Wrote export file {path} (version {result.version}, {result.bytes_written // 1024} KBs payload), "
            f"took {time.time() - start:.2f}s"
        )
        return self._summary(path, state, result.version, result.spent_count, omit, result.filter_size)

    def read(self, path: Optional[str] = None) -> ExportContents:
        """
        Reads and decodes an export file, verifying its integrity.

        Raises:
            StorageIOError: If the file cannot be read
            FormatError: If the file is malformed or of an unsupported version
            IntegrityError: If the digest or filter count does not check out
        """
        path = path or self.config.export_file
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as e:
            raise StorageIOError(f"Cannot read export file {path}: {e}") from e

        metrics.export_bytes_read_total.inc(len(data))
        logger.info(f"Read export file {path} ({len(data) // 1024} KBs)")
        return decode_export(data)

    def inspect(self, path: Optional[str] = None) -> ExportSummary:
        """Decodes an export file and summarizes it without writing anything."""
        path = path or self.config.export_file
        contents = self.read(path)
        summary = self._summary(path, contents.state, contents.version, contents.spent_count,
                                contents.spent_omitted, contents.filter_size)
        logger.info(f"File version: {summary.version}, contains {summary.spent_addresses_count} spent addresses")
        return summary

    def import_into_store(self, path: Optional[str] = None, db_dir: Optional[str] = None) -> ExportSummary:
        """
        Decodes an export file and writes its contents into a local snapshot store.

        Spent addresses are only written for versions that carry them verbatim;
        a cuckoo filter cannot be enumerated.
        """
        path = path or self.config.export_file
        db_dir = db_dir or self.config.ls_db_dir
        contents = self.read(path)

        with KeyValueStore(db_dir, LOCAL_SNAPSHOT_PARTITIONS, commit_interval=self.config.commit_interval) as store:
            persist_local_snapshot(store, contents.state)
            if contents.spent_addresses is not None:
                with store.batch():
                    for addr in contents.spent_addresses:
                        store.put(PARTITION_SPENT_ADDRESSES, addr, SPENT_ADDRESS_VALUE)
                logger.info(f"Imported {len(contents.spent_addresses)} spent addresses into {db_dir}")
            elif contents.spent_filter is not None:
                logger.warning(
                    f"Export version {contents.version} stores spent addresses in a cuckoo filter; "
                    f"{contents.spent_count} spent addresses cannot be imported"
                )

        return self._summary(path, contents.state, contents.version, contents.spent_count,
                             contents.spent_omitted, contents.filter_size)
