# MIT License
# Copyright (c) 2025 Hashborn

"""
Streaming ingest of spent addresses between stores.

A producer thread walks a store partition in key order and hands each key to
the consumer through a queue. The producer closes the stream by enqueueing an
end marker once the iterator is exhausted; that marker is the consumer's only
termination signal.
"""

import queue
import logging
import threading
from typing import Iterator, Optional

from protocol.config.params import (
    DEFAULT_INGEST_QUEUE_SIZE,
    PARTITION_SPENT_ADDRESSES,
    PROGRESS_LOG_INTERVAL,
    SPENT_ADDRESS_VALUE,
)
from ..storage.db import KeyValueStore
from ..observability import metrics

logger = logging.getLogger(__name__)

_END = object()
_PUT_POLL_SEC = 0.1


class AddressStream:
    """
    Iterable over the keys of a store partition, read on a background thread.

    Errors raised by the producer are re-raised in the consuming thread once the
    stream ends. Abandoning iteration early stops the producer.
    """

    def __init__(self, store: KeyValueStore, partition: str = PARTITION_SPENT_ADDRESSES,
                 queue_size: int = DEFAULT_INGEST_QUEUE_SIZE):
        self.store = store
        self.partition = partition
        self._queue: "queue.Queue" = queue.Queue(maxsize=queue_size)
        self._stop = threading.Event()
        self._error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None

    def _put(self, item) -> bool:
        while not self._stop.is_set():
            try:
                self._queue.put(item, timeout=_PUT_POLL_SEC)
                return True
            except queue.Full:
                continue
        return False

    def _produce(self):
        try:
            for key in self.store.iterate_keys(self.partition):
                if not self._put(key):
                    return
        except Exception as e:
            self._error = e
        finally:
            self._put(_END)

    def __iter__(self) -> Iterator[bytes]:
        if self._thread is not None:
            raise RuntimeError("AddressStream can only be iterated once")
        self._thread = threading.Thread(
            target=self._produce, name=f"ingest-{self.store.path}", daemon=True
        )
        self._thread.start()
        try:
            while True:
                item = self._queue.get()
                if item is _END:
                    break
                yield item
        finally:
            self._stop.set()
            self._thread.join()

        if self._error is not None:
            raise self._error


def ingest_partition(source: KeyValueStore, dest: KeyValueStore,
                     partition: str = PARTITION_SPENT_ADDRESSES,
                     queue_size: int = DEFAULT_INGEST_QUEUE_SIZE) -> int:
    """
    Copies every key of `partition` from `source` into `dest`, in source key order.

    Args:
        source: Store to read from (iterated on a background thread)
        dest: Store to write to
        partition: Partition name in both stores
        queue_size: Hand-off queue bound (0 = unbounded)

    Returns:
        Number of addresses written
    """
    count = 0
    with dest.batch():
        for addr in AddressStream(source, partition, queue_size):
            dest.put(partition, addr, SPENT_ADDRESS_VALUE)
            count += 1
            metrics.spent_addresses_ingested_total.inc()
            if count % PROGRESS_LOG_INTERVAL == 0:
                logger.info(f"Ingested {count} spent addresses")

    logger.info(f"Persisted {count} spent addresses from {source.path} into {dest.path}")
    return count
