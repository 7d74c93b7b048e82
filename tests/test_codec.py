# MIT License
# Copyright (c) 2025 Hashborn

"""
Binary encoding tests: store-internal layout and both export file versions.
"""

import gzip
import hashlib
import io
import struct
import pytest

from localsnapshot.snapshot.codec import (
    decode_export,
    decode_local_snapshot,
    encode_export,
    encode_local_snapshot,
    write_export,
)
from localsnapshot.spent.ingest import AddressStream
from localsnapshot.storage.db import KeyValueStore
from protocol.config.params import (
    EXPORT_VERSION_GZIP_CUCKOO,
    EXPORT_VERSION_RAW_SHA256,
    HASH_SIZE,
    PARTITION_SPENT_ADDRESSES,
    SPENT_ADDRESS_VALUE,
    SPENT_ADDRESSES_PARTITIONS,
)
from protocol.crypto.trinary import trytes_to_bytes
from protocol.types.common import ConfigurationError, FormatError, IntegrityError

# offsets inside an export payload
VERSION_OFF = 0
INDEX_OFF = 1 + HASH_SIZE
SPENT_COUNT_OFF = INDEX_OFF + 4 + 8 + 4 + 4 + 4


# --- Store-internal ---

def test_local_snapshot_roundtrip(rich_state):
    raw = encode_local_snapshot(rich_state)
    assert len(raw) == rich_state.size_in_bytes()
    assert decode_local_snapshot(raw) == rich_state


def test_local_snapshot_is_big_endian(sample_state):
    raw = encode_local_snapshot(sample_state)
    assert raw[:HASH_SIZE] == sample_state.milestone_hash
    index, timestamp, seps, seen = struct.unpack_from(">iqii", raw, HASH_SIZE)
    assert (index, timestamp, seps, seen) == (100, 1600000000, 1, 0)


def test_local_snapshot_ledger_count_derived_from_length(sample_state):
    raw = encode_local_snapshot(sample_state)
    # trailing partial entry is ignored, full entries are kept
    decoded = decode_local_snapshot(raw + b"\x00" * 10)
    assert decoded.ledger_state == sample_state.ledger_state


def test_local_snapshot_truncated_header():
    with pytest.raises(FormatError):
        decode_local_snapshot(b"\x00" * (HASH_SIZE + 5))


# --- Export version 3 (raw, little-endian, sha256 trailer) ---

def test_raw_export_roundtrip(rich_state, spent_addresses):
    data = encode_export(rich_state, spent_addresses, EXPORT_VERSION_RAW_SHA256)
    contents = decode_export(data)
    assert contents.version == EXPORT_VERSION_RAW_SHA256
    assert contents.state == rich_state
    assert contents.spent_count == len(spent_addresses)
    assert contents.spent_addresses == spent_addresses
    assert all(contents.is_spent(a) for a in spent_addresses)
    assert not contents.is_spent(trytes_to_bytes("NEVERSPENT"))


def test_raw_export_layout(sample_state, spent_addresses):
    data = encode_export(sample_state, spent_addresses, EXPORT_VERSION_RAW_SHA256)
    assert data[VERSION_OFF] == EXPORT_VERSION_RAW_SHA256
    assert data[1:INDEX_OFF] == sample_state.milestone_hash
    assert struct.unpack_from("<i", data, INDEX_OFF)[0] == 100
    assert struct.unpack_from("<q", data, INDEX_OFF + 4)[0] == 1600000000
    assert struct.unpack_from("<iiii", data, INDEX_OFF + 12) == (1, 0, 2, len(spent_addresses))
    assert data[-32:] == hashlib.sha256(data[:-32]).digest()
    # spent addresses are the last records before the trailer
    assert data[-32 - len(spent_addresses) * HASH_SIZE:-32] == b"".join(spent_addresses)


def test_raw_export_omitting_spent_addresses(sample_state, spent_addresses):
    data = encode_export(sample_state, spent_addresses, EXPORT_VERSION_RAW_SHA256, omit_spent=True)
    assert struct.unpack_from("<i", data, SPENT_COUNT_OFF)[0] == 0
    contents = decode_export(data)
    assert contents.spent_count == 0
    assert contents.spent_addresses == []
    assert contents.spent_omitted


def test_any_flipped_byte_fails_integrity(sample_state, spent_addresses):
    data = encode_export(sample_state, spent_addresses[:2], EXPORT_VERSION_RAW_SHA256)
    for offset in range(1, len(data)):
        corrupted = bytearray(data)
        corrupted[offset] ^= 0x01
        with pytest.raises(IntegrityError):
            decode_export(bytes(corrupted))


def test_truncated_raw_export_fails(sample_state, spent_addresses):
    data = encode_export(sample_state, spent_addresses, EXPORT_VERSION_RAW_SHA256)
    with pytest.raises(IntegrityError):
        decode_export(data[:-1])
    with pytest.raises(FormatError):
        decode_export(data[:10])


# --- Export version 2 (gzip, big-endian, cuckoo filter) ---

def test_filter_export_roundtrip(rich_state, spent_addresses):
    data = encode_export(rich_state, spent_addresses, EXPORT_VERSION_GZIP_CUCKOO, filter_capacity=100)
    assert data[:2] == b"\x1f\x8b"
    contents = decode_export(data)
    assert contents.version == EXPORT_VERSION_GZIP_CUCKOO
    assert contents.state == rich_state
    assert contents.spent_count == len(spent_addresses)
    assert contents.spent_addresses is None
    assert contents.spent_filter.count == len(spent_addresses)
    assert all(contents.is_spent(a) for a in spent_addresses)


def test_filter_export_layout(sample_state, spent_addresses):
    data = encode_export(sample_state, spent_addresses, EXPORT_VERSION_GZIP_CUCKOO, filter_capacity=100)
    payload = gzip.decompress(data)
    assert payload[VERSION_OFF] == EXPORT_VERSION_GZIP_CUCKOO
    assert struct.unpack_from(">i", payload, INDEX_OFF)[0] == 100
    assert struct.unpack_from(">q", payload, INDEX_OFF + 4)[0] == 1600000000
    assert struct.unpack_from(">iiii", payload, INDEX_OFF + 12) == (1, 0, 2, len(spent_addresses))
    filter_size_off = SPENT_COUNT_OFF + 4 + 53 + 2 * 57
    (filter_size,) = struct.unpack_from(">i", payload, filter_size_off)
    assert filter_size > 0
    assert len(payload) == filter_size_off + 4 + filter_size


def test_filter_export_capacity_too_small(sample_state, spent_addresses):
    with pytest.raises(ConfigurationError):
        encode_export(sample_state, spent_addresses, EXPORT_VERSION_GZIP_CUCKOO,
                      filter_capacity=len(spent_addresses) - 1)


def test_filter_export_without_spent_addresses(sample_state, spent_addresses):
    data = encode_export(sample_state, spent_addresses, EXPORT_VERSION_GZIP_CUCKOO,
                         filter_capacity=100, omit_spent=True)
    contents = decode_export(data)
    assert contents.spent_count == 0
    assert contents.spent_filter is None
    assert contents.filter_size == 0
    assert contents.spent_omitted


def test_filter_count_mismatch(sample_state, spent_addresses):
    data = encode_export(sample_state, spent_addresses, EXPORT_VERSION_GZIP_CUCKOO, filter_capacity=100)
    payload = bytearray(gzip.decompress(data))
    struct.pack_into(">i", payload, SPENT_COUNT_OFF, len(spent_addresses) + 1)
    with pytest.raises(IntegrityError):
        decode_export(gzip.compress(bytes(payload)))


def test_corrupt_filter_image(sample_state):
    data = encode_export(sample_state, [], EXPORT_VERSION_GZIP_CUCKOO, filter_capacity=100, omit_spent=True)
    payload = bytearray(gzip.decompress(data))
    struct.pack_into(">i", payload, SPENT_COUNT_OFF, 1)
    # replace the empty filter with a 3 byte image
    payload = payload[:-4] + struct.pack(">i", 3) + b"\x00\x01\x02"
    with pytest.raises(IntegrityError):
        decode_export(gzip.compress(bytes(payload)))


def test_empty_fingerprint_address_not_counted(sample_state, spent_addresses):
    # fnv-1a fingerprint of this key is 0, indistinguishable from an empty slot
    empty_fingerprint = bytes(45) + bytes([238, 127, 6, 134])
    buf = io.BytesIO()
    result = write_export(buf, sample_state, spent_addresses + [empty_fingerprint], len(spent_addresses) + 1,
                          EXPORT_VERSION_GZIP_CUCKOO, filter_capacity=100)
    assert result.spent_count == len(spent_addresses)
    assert result.failed_inserts == 1

    contents = decode_export(buf.getvalue())
    assert contents.spent_count == len(spent_addresses)
    assert all(contents.is_spent(a) for a in spent_addresses)


def test_failed_export_stops_address_stream(tmp_path, sample_state):
    store = KeyValueStore(str(tmp_path / "src"), SPENT_ADDRESSES_PARTITIONS, page_size=2)
    # the short key sorts first and is rejected as a malformed address
    keys = [b"\x00"] + [bytes([1, i]) + bytes(HASH_SIZE - 2) for i in range(20)]
    for k in keys:
        store.put(PARTITION_SPENT_ADDRESSES, k, SPENT_ADDRESS_VALUE)

    stream = AddressStream(store, PARTITION_SPENT_ADDRESSES, queue_size=1)
    with pytest.raises(FormatError, match="expected 49"):
        write_export(io.BytesIO(), sample_state, stream, len(keys), EXPORT_VERSION_RAW_SHA256, 0)
    assert not stream._thread.is_alive()
    store.close()


def test_corrupt_gzip_stream(sample_state, spent_addresses):
    data = encode_export(sample_state, spent_addresses, EXPORT_VERSION_GZIP_CUCKOO, filter_capacity=100)
    with pytest.raises(FormatError):
        decode_export(data[:len(data) // 2])


# --- Version dispatch ---

@pytest.mark.parametrize("version", [0, 1, 4, 255])
def test_unknown_version_rejected(sample_state, version):
    data = bytearray(encode_export(sample_state, [], EXPORT_VERSION_RAW_SHA256))
    data[0] = version
    with pytest.raises(FormatError, match=f"version {version} is not supported"):
        decode_export(bytes(data))


def test_unknown_version_inside_gzip_rejected():
    with pytest.raises(FormatError, match="version 7 is not supported"):
        decode_export(gzip.compress(bytes([7]) + b"\x00" * 100))


def test_version_container_mismatch(sample_state):
    raw = encode_export(sample_state, [], EXPORT_VERSION_RAW_SHA256)
    with pytest.raises(FormatError):
        decode_export(gzip.compress(raw))
    payload = gzip.decompress(
        encode_export(sample_state, [], EXPORT_VERSION_GZIP_CUCKOO, filter_capacity=10, omit_spent=True)
    )
    with pytest.raises(FormatError):
        decode_export(payload)


def test_empty_file_rejected():
    with pytest.raises(FormatError):
        decode_export(b"")
