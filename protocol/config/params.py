# MIT License
# Copyright (c) 2025 Hashborn

from typing import Dict
from enum import Enum

# Address / hash widths
HASH_TRYTES = 81
HASH_SIZE = 49          # 243 trits packed 5 per byte
SHA256_SIZE = 32

# The ledger's fixed supply (sum of all balances at any milestone)
TOTAL_SUPPLY = 2_779_530_283_277_761

# Store partitions (column families)
PARTITION_DEFAULT = "default"
PARTITION_SPENT_ADDRESSES = "spent-addresses"
PARTITION_LOCAL_SNAPSHOTS = "localsnapshots"

SPENT_ADDRESSES_PARTITIONS = [PARTITION_DEFAULT, PARTITION_SPENT_ADDRESSES]
LOCAL_SNAPSHOT_PARTITIONS = [PARTITION_DEFAULT, PARTITION_SPENT_ADDRESSES, PARTITION_LOCAL_SNAPSHOTS]

# Key under which the local snapshot is persisted (int32 1, big-endian)
LOCAL_SNAPSHOT_DB_KEY = (1).to_bytes(4, "big")

# Spent addresses carry no payload, presence is the record
SPENT_ADDRESS_VALUE = b""


class SpentEncoding(str, Enum):
    CUCKOO_FILTER = "cuckoo_filter"
    RAW = "raw"


class ExportFormat:
    def __init__(self,
                 version: int,
                 byte_order: str,
                 compressed: bool,
                 spent_encoding: SpentEncoding,
                 digest_trailer: bool):
        self.version = version
        self.byte_order = byte_order      # struct prefix: ">" big-endian, "<" little-endian
        self.compressed = compressed
        self.spent_encoding = spent_encoding
        self.digest_trailer = digest_trailer

    def __repr__(self) -> str:
        return f"ExportFormat(version={self.version})"


EXPORT_VERSION_GZIP_CUCKOO = 2
EXPORT_VERSION_RAW_SHA256 = 3

# Version byte -> wire rules. Version bytes are never reused.
EXPORT_FORMATS: Dict[int, ExportFormat] = {
    EXPORT_VERSION_GZIP_CUCKOO: ExportFormat(
        version=EXPORT_VERSION_GZIP_CUCKOO,
        byte_order=">",
        compressed=True,
        spent_encoding=SpentEncoding.CUCKOO_FILTER,
        digest_trailer=False,
    ),
    EXPORT_VERSION_RAW_SHA256: ExportFormat(
        version=EXPORT_VERSION_RAW_SHA256,
        byte_order="<",
        compressed=False,
        spent_encoding=SpentEncoding.RAW,
        digest_trailer=True,
    ),
}

CURRENT_EXPORT_VERSION = EXPORT_VERSION_RAW_SHA256

# Tool defaults
DEFAULT_CUCKOO_FILTER_CAPACITY = 50_000_000
CUCKOO_BUCKET_SIZE = 4
DEFAULT_INGEST_QUEUE_SIZE = 1024
DEFAULT_COMMIT_INTERVAL = 10_000
PROGRESS_LOG_INTERVAL = 100_000
