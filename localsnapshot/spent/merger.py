# MIT License
# Copyright (c) 2025 Hashborn

"""
Spent-address merge.

Unions several spent-address sources (stores and/or newline-delimited tryte
files) into one target store, deduplicating by SHA256 of the binary address.
"""

import os
import time
import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Set

from protocol.config.params import (
    DEFAULT_INGEST_QUEUE_SIZE,
    PARTITION_SPENT_ADDRESSES,
    PROGRESS_LOG_INTERVAL,
    SPENT_ADDRESS_VALUE,
    SPENT_ADDRESSES_PARTITIONS,
)
from protocol.crypto.hash import content_key
from protocol.crypto.trinary import trytes_to_bytes
from protocol.types.common import ConfigurationError, FormatError, StorageIOError
from ..storage.db import KeyValueStore
from ..observability import metrics
from .ingest import AddressStream

logger = logging.getLogger(__name__)

TEXT_SOURCE_EXT = ".txt"


@dataclass
class SourceReport:
    source: str
    read: int = 0
    added: int = 0
    known: int = 0


@dataclass
class MergeReport:
    target: str
    sources: List[SourceReport] = field(default_factory=list)
    elapsed_sec: float = 0.0

    @property
    def total_added(self) -> int:
        return sum(s.added for s in self.sources)

    @property
    def total_known(self) -> int:
        return sum(s.known for s in self.sources)


def is_text_source(source: str) -> bool:
    return os.path.splitext(source)[1] == TEXT_SOURCE_EXT


def read_text_source(path: str) -> Iterator[bytes]:
    """
    Yields binary addresses from a file with one tryte address per line.

    Raises:
        StorageIOError: If the file cannot be read
        FormatError: If a line is not a valid address
    """
    try:
        f = open(path, "r")
    except OSError as e:
        raise StorageIOError(f"Cannot open spent-addresses source {path}: {e}") from e
    with f:
        for lineno, line in enumerate(f, start=1):
            trytes = line.strip()
            if not trytes:
                continue
            try:
                yield trytes_to_bytes(trytes)
            except FormatError as e:
                raise FormatError(f"{path}:{lineno}: {e}") from e


class SpentAddressMerger:
    """
    Merges spent-address sources into a target store.

    The set of content hashes seen so far lives for one merge run; every
    address whose hash is new is written to the target exactly once.
    """

    def __init__(self, target: KeyValueStore, queue_size: int = DEFAULT_INGEST_QUEUE_SIZE):
        self.target = target
        self.queue_size = queue_size
        self._seen: Set[bytes] = set()

    def _addresses(self, source: str) -> Iterator[bytes]:
        if is_text_source(source):
            yield from read_text_source(source)
            return
        store = KeyValueStore(source, SPENT_ADDRESSES_PARTITIONS, create=False)
        try:
            yield from AddressStream(store, PARTITION_SPENT_ADDRESSES, self.queue_size)
        finally:
            store.close()

    def merge_source(self, source: str) -> SourceReport:
        """
        Adds one source to the target.

        Returns:
            Per-source counts (read / added / known)
        """
        report = SourceReport(source=source)
        logger.info(f"Reading in {source}")
        with self.target.batch():
            for raw in self._addresses(source):
                report.read += 1
                key = content_key(raw)
                if key in self._seen:
                    report.known += 1
                    metrics.spent_addresses_merged_total.labels(outcome="known").inc()
                else:
                    self.target.put(PARTITION_SPENT_ADDRESSES, raw, SPENT_ADDRESS_VALUE)
                    self._seen.add(key)
                    report.added += 1
                    metrics.spent_addresses_merged_total.labels(outcome="new").inc()
                if report.read % PROGRESS_LOG_INTERVAL == 0:
                    logger.info(f"new {report.added}, known {report.known}")

        logger.info(f"{source}: new {report.added}, known {report.known} ...done")
        return report

    def merge(self, sources: List[str]) -> MergeReport:
        """
        Merges all sources, in order.

        Raises:
            ConfigurationError: If fewer than two sources are given
            FormatError: If a textual address is malformed
            StorageIOError: If a source is unreadable or a write fails
        """
        if len(sources) < 2:
            raise ConfigurationError(f"You must define at least 2 spent-addresses sources, got {len(sources)}")

        start = time.time()
        report = MergeReport(target=self.target.path)
        for source in sources:
            report.sources.append(self.merge_source(source))
        report.elapsed_sec = time.time() - start

        logger.info(f"Persisted {report.total_added} spent addresses, took {report.elapsed_sec:.2f}s")
        return report


def merge_spent_addresses(sources: List[str], target_dir: str,
                          queue_size: int = DEFAULT_INGEST_QUEUE_SIZE) -> MergeReport:
    """Opens the target store and merges `sources` into it."""
    with KeyValueStore(target_dir, SPENT_ADDRESSES_PARTITIONS) as target:
        return SpentAddressMerger(target, queue_size).merge(sources)
