# MIT License
# Copyright (c) 2025 Hashborn

"""
Local Snapshot

Data model, binary encodings and export file handling for local snapshots.
"""

from .types import SnapshotState, SnapshotSummary, ExportSummary
from .codec import (
    ExportContents,
    decode_export,
    decode_local_snapshot,
    encode_export,
    encode_local_snapshot,
    write_export,
)
from .files import parse_local_snapshot, read_local_snapshot_files
from .manager import SnapshotManager
from .export import ExportPipeline

__all__ = [
    "SnapshotState",
    "SnapshotSummary",
    "ExportSummary",
    "ExportContents",
    "decode_export",
    "decode_local_snapshot",
    "encode_export",
    "encode_local_snapshot",
    "write_export",
    "parse_local_snapshot",
    "read_local_snapshot_files",
    "SnapshotManager",
    "ExportPipeline",
]
