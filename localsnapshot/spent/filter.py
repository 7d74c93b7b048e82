# MIT License
# Copyright (c) 2025 Hashborn

"""
Spent-address cuckoo filter.

Compact, serializable approximate-membership set over spent addresses. Answers
"was this address spent?" with no false negatives for inserted addresses and a
bounded false-positive rate. Contents cannot be enumerated.
"""

import math
import struct
import logging
from typing import Iterable, Optional

from probables import CuckooFilter
from probables.exceptions import CuckooFilterFullError

from protocol.config.params import CUCKOO_BUCKET_SIZE, PROGRESS_LOG_INTERVAL
from protocol.types.common import ConfigurationError, IntegrityError
from ..observability import metrics

logger = logging.getLogger(__name__)


class SpentAddressFilter:
    """
    Wraps a cuckoo filter sized for `capacity` addresses.
    """

    def __init__(self, cuckoo: CuckooFilter, capacity: Optional[int] = None):
        self._cuckoo = cuckoo
        self.capacity = capacity
        self.failed_inserts = 0

    @classmethod
    def create(cls, capacity: int) -> "SpentAddressFilter":
        """Empty filter able to hold `capacity` addresses."""
        if capacity <= 0:
            raise ConfigurationError(f"Cuckoo filter capacity must be positive, got {capacity}")
        buckets = max(1, math.ceil(capacity / CUCKOO_BUCKET_SIZE))
        cuckoo = CuckooFilter(capacity=buckets, bucket_size=CUCKOO_BUCKET_SIZE, auto_expand=False)
        return cls(cuckoo, capacity)

    @classmethod
    def build(cls, capacity: int, addresses: Iterable[bytes], count: Optional[int] = None) -> "SpentAddressFilter":
        """
        Builds a filter over `addresses`.

        Insertion failures are counted in `failed_inserts` and do not abort the build.

        Args:
            capacity: Maximum number of addresses the filter is sized for
            addresses: Binary addresses to insert
            count: Number of addresses (defaults to len(addresses))

        Raises:
            ConfigurationError: If there are more addresses than capacity
        """
        if count is None:
            count = len(addresses)
        if count > capacity:
            raise ConfigurationError(
                f"The capacity of the cuckoo filter is too low to contain the spent addresses: "
                f"spent addresses {count} vs. filter capacity {capacity}"
            )

        cf = cls.create(capacity)
        processed = 0
        for addr in addresses:
            processed += 1
            if not cf.add(addr):
                cf.failed_inserts += 1
            if processed % PROGRESS_LOG_INTERVAL == 0:
                logger.info(f"Populating cuckoo filter: {processed}/{count} (failed to insert: {cf.failed_inserts})")

        if cf.failed_inserts:
            metrics.filter_insert_failures_total.inc(cf.failed_inserts)
            logger.warning(f"Failed to insert {cf.failed_inserts} of {processed} spent addresses into the cuckoo filter")
        logger.info(f"Cuckoo filter populated: {cf.count} elements from {processed} addresses")
        return cf

    def add(self, address: bytes) -> bool:
        """Returns False if the filter had no room for the address."""
        try:
            self._cuckoo.add(address)
            return True
        except CuckooFilterFullError:
            return False

    def contains(self, address: bytes) -> bool:
        return self._cuckoo.check(address)

    def __contains__(self, address: bytes) -> bool:
        return self.contains(address)

    @property
    def count(self) -> int:
        """Elements the filter reports as inserted."""
        return self._cuckoo.elements_added

    def to_bytes(self) -> bytes:
        return bytes(self._cuckoo)

    @classmethod
    def from_bytes(cls, data: bytes) -> "SpentAddressFilter":
        """
        Raises:
            IntegrityError: If the image cannot be reconstructed into a filter
        """
        if not data:
            raise IntegrityError("Cuckoo filter image is empty")
        try:
            cuckoo = CuckooFilter.frombytes(data)
        except (struct.error, ValueError, IndexError) as e:
            raise IntegrityError(
                f"Couldn't reconstruct the cuckoo filter from {len(data)} bytes of filter data: {e}"
            ) from e
        return cls(cuckoo)

    def validate(self, expected_count: int):
        """
        Raises:
            IntegrityError: If the filter's element count differs from the declared count
        """
        if self.count != expected_count:
            raise IntegrityError(
                f"Spent addresses count between the cuckoo filter ({self.count}) "
                f"and the header ({expected_count}) doesn't match"
            )
