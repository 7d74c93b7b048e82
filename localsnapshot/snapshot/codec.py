# MIT License
# Copyright (c) 2025 Hashborn

"""
Binary encodings of a local snapshot.

Store-internal (big-endian, used for the `localsnapshots` partition):
    hash[49] index:i32 timestamp:i64 sepCount:i32 seenCount:i32
    sepCount x (hash[49] index:i32)
    seenCount x (hash[49] index:i32)
    rest of buffer x (hash[49] balance:u64)

Export file (see EXPORT_FORMATS for per-version rules):
    version:u8 hash[49] index:i32 timestamp:i64
    sepCount:i32 seenCount:i32 ledgerCount:i32 spentCount:i32
    sections as above, ledger with an explicit count
    v2: filterSize:i32 filter[filterSize]               (gzip, big-endian)
    v3: spentCount x hash[49] ... sha256[32] trailer    (raw, little-endian)
"""

import gzip
import hashlib
import hmac
import io
import struct
import zlib
import logging
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from pydantic import ValidationError

from protocol.config.params import (
    EXPORT_FORMATS,
    ExportFormat,
    HASH_SIZE,
    SHA256_SIZE,
    SpentEncoding,
)
from protocol.types.common import FormatError, IntegrityError
from ..spent.filter import SpentAddressFilter
from ..observability import metrics
from .types import SnapshotState, LEDGER_ENTRY_SIZE

logger = logging.getLogger(__name__)

STORE_BYTE_ORDER = ">"
GZIP_MAGIC = b"\x1f\x8b"


class _Reader:
    """Bounds-checked cursor over a byte buffer."""

    def __init__(self, data: bytes, byte_order: str, offset: int = 0):
        self.data = memoryview(data)
        self.order = byte_order
        self.offset = offset

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def take(self, n: int) -> bytes:
        if n > self.remaining:
            raise FormatError(
                f"Unexpected end of data at offset {self.offset}: need {n} bytes, have {self.remaining}"
            )
        out = self.data[self.offset:self.offset + n].tobytes()
        self.offset += n
        return out

    def unpack(self, fmt: str) -> Tuple:
        st = struct.Struct(self.order + fmt)
        return st.unpack(self.take(st.size))

    def count(self, what: str) -> int:
        (n,) = self.unpack("i")
        if n < 0:
            raise FormatError(f"Negative {what} count {n} at offset {self.offset - 4}")
        return n

    def section(self, count: int, value_fmt: str, what: str) -> Dict[bytes, int]:
        st = struct.Struct(self.order + f"{HASH_SIZE}s{value_fmt}")
        entries: Dict[bytes, int] = {}
        for _ in range(count):
            key, value = st.unpack(self.take(st.size))
            if key in entries:
                raise FormatError(f"Duplicate {what} hash at offset {self.offset - st.size}")
            entries[key] = value
        return entries


def _write_section(write, order: str, entries: Dict[bytes, int], value_fmt: str):
    st = struct.Struct(order + f"{HASH_SIZE}s{value_fmt}")
    for key in sorted(entries):
        write(st.pack(key, entries[key]))


def _build_state(ms_hash: bytes, ms_index: int, ms_timestamp: int,
                 seps: Dict[bytes, int], seen: Dict[bytes, int], ledger: Dict[bytes, int]) -> SnapshotState:
    try:
        return SnapshotState(
            milestone_hash=ms_hash,
            milestone_index=ms_index,
            milestone_timestamp=ms_timestamp,
            solid_entry_points=seps,
            seen_milestones=seen,
            ledger_state=ledger,
        )
    except ValidationError as e:
        raise FormatError(f"Decoded local snapshot is invalid: {e}") from e


# --- Store-internal encoding ---

def encode_local_snapshot(state: SnapshotState) -> bytes:
    """Encodes a snapshot for the `localsnapshots` partition."""
    buf = io.BytesIO()
    order = STORE_BYTE_ORDER
    buf.write(state.milestone_hash)
    buf.write(struct.pack(order + "iqii",
                          state.milestone_index,
                          state.milestone_timestamp,
                          len(state.solid_entry_points),
                          len(state.seen_milestones)))
    _write_section(buf.write, order, state.solid_entry_points, "i")
    _write_section(buf.write, order, state.seen_milestones, "i")
    _write_section(buf.write, order, state.ledger_state, "Q")
    return buf.getvalue()


def decode_local_snapshot(raw: bytes) -> SnapshotState:
    """
    Decodes the store-internal encoding.

    The ledger entry count is not stored; it is whatever fits in the
    remaining bytes.

    Raises:
        FormatError: If the buffer is truncated or malformed
    """
    reader = _Reader(raw, STORE_BYTE_ORDER)
    ms_hash = reader.take(HASH_SIZE)
    ms_index, ms_timestamp = reader.unpack("iq")
    sep_count = reader.count("solid entry point")
    seen_count = reader.count("seen milestone")
    seps = reader.section(sep_count, "i", "solid entry point")
    seen = reader.section(seen_count, "i", "seen milestone")

    ledger_count, leftover = divmod(reader.remaining, LEDGER_ENTRY_SIZE)
    if leftover:
        logger.warning(f"Ignoring {leftover} trailing bytes after {ledger_count} ledger entries")
    ledger = reader.section(ledger_count, "Q", "ledger")

    return _build_state(ms_hash, ms_index, ms_timestamp, seps, seen, ledger)


# --- Export file encoding ---

class _DigestWriter:
    """Passes writes through to `out`, hashing and counting them."""

    def __init__(self, out: BinaryIO, digest: bool):
        self.out = out
        self.hasher = hashlib.sha256() if digest else None
        self.written = 0

    def write(self, data: bytes):
        if self.hasher is not None:
            self.hasher.update(data)
        self.out.write(data)
        self.written += len(data)


@dataclass
class ExportResult:
    version: int
    spent_count: int
    bytes_written: int
    filter_size: Optional[int] = None
    failed_inserts: int = 0


def get_export_format(version: int) -> ExportFormat:
    try:
        return EXPORT_FORMATS[version]
    except KeyError:
        raise FormatError(
            f"Export file version {version} is not supported, supported versions: {sorted(EXPORT_FORMATS)}"
        ) from None


def write_export(out: BinaryIO,
                 state: SnapshotState,
                 spent_addresses: Iterable[bytes],
                 spent_count: int,
                 version: int,
                 filter_capacity: int,
                 omit_spent: bool = False) -> ExportResult:
    """
    Streams an export file of the given version into `out`.

    Args:
        out: Binary sink (file or buffer)
        state: Snapshot to export
        spent_addresses: Binary spent addresses (consumed once)
        spent_count: Number of addresses `spent_addresses` yields
        version: Export format version
        filter_capacity: Cuckoo filter capacity (filter versions only)
        omit_spent: Export without spent addresses

    Raises:
        FormatError: Unknown version or malformed address
        ConfigurationError: More spent addresses than filter capacity
        IntegrityError: Spent address source yielded a different count than declared
    """
    fmt = get_export_format(version)
    addresses = iter(spent_addresses)
    try:
        return _write_export(out, state, addresses, spent_count, fmt, filter_capacity, omit_spent)
    finally:
        close = getattr(addresses, "close", None)
        if close is not None:
            close()


def _write_export(out: BinaryIO,
                  state: SnapshotState,
                  spent_addresses: Iterator[bytes],
                  spent_count: int,
                  fmt: ExportFormat,
                  filter_capacity: int,
                  omit_spent: bool) -> ExportResult:
    order = fmt.byte_order

    spent_filter = None
    filter_image = b""
    failed_inserts = 0
    if omit_spent:
        spent_count = 0
    elif fmt.spent_encoding == SpentEncoding.CUCKOO_FILTER:
        spent_filter = SpentAddressFilter.build(filter_capacity, spent_addresses, count=spent_count)
        filter_image = spent_filter.to_bytes()
        failed_inserts = spent_filter.failed_inserts
        # header carries what the filter reports after reload; a zero
        # fingerprint is counted on insert but reads back as an empty slot
        spent_count = SpentAddressFilter.from_bytes(filter_image).count
        lost = spent_filter.count - spent_count
        if lost:
            failed_inserts += lost
            metrics.filter_insert_failures_total.inc(lost)
            logger.warning(f"{lost} spent addresses hashed to an empty fingerprint and are not in the filter")

    gz = None
    sink = out
    if fmt.compressed:
        gz = gzip.GzipFile(fileobj=out, mode="wb", mtime=0)
        sink = gz
    writer = _DigestWriter(sink, fmt.digest_trailer)

    writer.write(struct.pack(order + "B", fmt.version))
    writer.write(state.milestone_hash)
    writer.write(struct.pack(order + "iqiiii",
                             state.milestone_index,
                             state.milestone_timestamp,
                             len(state.solid_entry_points),
                             len(state.seen_milestones),
                             len(state.ledger_state),
                             spent_count))
    _write_section(writer.write, order, state.solid_entry_points, "i")
    _write_section(writer.write, order, state.seen_milestones, "i")
    _write_section(writer.write, order, state.ledger_state, "Q")

    if fmt.spent_encoding == SpentEncoding.CUCKOO_FILTER:
        writer.write(struct.pack(order + "i", len(filter_image)))
        writer.write(filter_image)
        logger.info(f"Spent addresses cuckoo filter size: {len(filter_image) // 1024} KBs")
    elif not omit_spent:
        written = 0
        for addr in spent_addresses:
            if len(addr) != HASH_SIZE:
                raise FormatError(f"Spent address #{written} is {len(addr)} bytes, expected {HASH_SIZE}")
            writer.write(addr)
            written += 1
        if written != spent_count:
            raise IntegrityError(
                f"Spent address source yielded {written} addresses, header declares {spent_count}"
            )

    if writer.hasher is not None:
        writer.write(writer.hasher.digest())
    if gz is not None:
        gz.close()

    return ExportResult(
        version=fmt.version,
        spent_count=spent_count,
        bytes_written=writer.written,
        filter_size=len(filter_image) if spent_filter is not None else None,
        failed_inserts=failed_inserts,
    )


def encode_export(state: SnapshotState,
                  spent_addresses: List[bytes],
                  version: int,
                  filter_capacity: int = 0,
                  omit_spent: bool = False) -> bytes:
    """In-memory variant of write_export."""
    buf = io.BytesIO()
    write_export(buf, state, spent_addresses, len(spent_addresses), version,
                 filter_capacity or max(1, len(spent_addresses)), omit_spent)
    return buf.getvalue()


@dataclass
class ExportContents:
    version: int
    state: SnapshotState
    spent_count: int
    spent_addresses: Optional[List[bytes]] = None
    spent_filter: Optional[SpentAddressFilter] = None
    filter_size: Optional[int] = None
    payload_size: int = 0
    _spent_set: Optional[Set[bytes]] = field(default=None, repr=False, compare=False)

    @property
    def spent_omitted(self) -> bool:
        return self.spent_count == 0 and self.spent_filter is None and not self.spent_addresses

    def is_spent(self, address: bytes) -> bool:
        """Membership test (approximate for filter-based versions)."""
        if self.spent_filter is not None:
            return self.spent_filter.contains(address)
        if self.spent_addresses is not None:
            if self._spent_set is None:
                self._spent_set = set(self.spent_addresses)
            return address in self._spent_set
        return False


def _decompress(data: bytes) -> bytes:
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise FormatError(f"Corrupt gzip stream in export file: {e}") from e


def decode_export(data: bytes) -> ExportContents:
    """
    Decodes an export file, selecting the wire rules by its version byte.

    Raises:
        FormatError: Unsupported version, wrong container or malformed body
        IntegrityError: Digest mismatch, corrupt filter or filter-count mismatch
    """
    compressed = data[:2] == GZIP_MAGIC
    payload = _decompress(data) if compressed else data
    if not payload:
        raise FormatError("Export file is empty")

    fmt = get_export_format(payload[0])
    if fmt.compressed != compressed:
        raise FormatError(
            f"Export file version {fmt.version} must {'' if fmt.compressed else 'not '}be gzip compressed"
        )

    body = payload
    if fmt.digest_trailer:
        if len(payload) < 1 + SHA256_SIZE:
            raise FormatError(f"Export file too short for its digest trailer: {len(payload)} bytes")
        body, expected = payload[:-SHA256_SIZE], payload[-SHA256_SIZE:]
        actual = hashlib.sha256()
        actual.update(body)
        if not hmac.compare_digest(actual.digest(), expected):
            raise IntegrityError(
                f"Export file digest mismatch: trailer {expected.hex()}, computed {actual.hexdigest()}"
            )

    reader = _Reader(body, fmt.byte_order, offset=1)
    ms_hash = reader.take(HASH_SIZE)
    ms_index, ms_timestamp = reader.unpack("iq")
    sep_count = reader.count("solid entry point")
    seen_count = reader.count("seen milestone")
    ledger_count = reader.count("ledger entry")
    spent_count = reader.count("spent address")

    seps = reader.section(sep_count, "i", "solid entry point")
    seen = reader.section(seen_count, "i", "seen milestone")
    ledger = reader.section(ledger_count, "Q", "ledger")
    state = _build_state(ms_hash, ms_index, ms_timestamp, seps, seen, ledger)

    contents = ExportContents(version=fmt.version, state=state, spent_count=spent_count,
                              payload_size=len(payload))

    if fmt.spent_encoding == SpentEncoding.CUCKOO_FILTER:
        filter_size = reader.count("cuckoo filter byte")
        contents.filter_size = filter_size
        if filter_size == 0:
            if spent_count != 0:
                raise IntegrityError(f"Header declares {spent_count} spent addresses but the file has no filter")
        else:
            spent_filter = SpentAddressFilter.from_bytes(reader.take(filter_size))
            spent_filter.validate(spent_count)
            contents.spent_filter = spent_filter
    else:
        contents.spent_addresses = [reader.take(HASH_SIZE) for _ in range(spent_count)]

    if reader.remaining:
        raise FormatError(f"{reader.remaining} unexpected trailing bytes at offset {reader.offset}")

    return contents
