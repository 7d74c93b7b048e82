# MIT License
# Copyright (c) 2025 Hashborn

"""
Plaintext local snapshot sources (meta + state files).

Meta layout, one value per line:
    milestone hash
    milestone index
    milestone timestamp
    solid entry point count
    seen milestone count (informational)
    hash;index ...   (first <solid entry point count> lines are solid entry points,
                      the rest are seen milestones)

State layout: address;balance per line.
"""

import re
import logging
from typing import Dict, Iterable, List, Tuple

from pydantic import ValidationError

from protocol.crypto.trinary import trytes_to_bytes
from protocol.types.common import FormatError, StorageIOError
from .types import SnapshotState

logger = logging.getLogger(__name__)

META_HEADER_LINES = 5
_INT_RE = re.compile(r"-?[0-9]+")


def _clean(lines: Iterable[str]) -> List[Tuple[int, str]]:
    out = []
    for lineno, line in enumerate(lines, start=1):
        line = line.strip()
        if line:
            out.append((lineno, line))
    return out


def _parse_int(value: str, what: str, source: str, lineno: int) -> int:
    # plain ASCII decimal only: no sign prefix "+", no "_" separators
    if not _INT_RE.fullmatch(value):
        raise FormatError(f"{source}:{lineno}: {what} is not an integer: {value!r}")
    return int(value)


def _parse_pair(line: str, what: str, source: str, lineno: int) -> Tuple[bytes, int]:
    parts = line.split(";")
    if len(parts) != 2:
        raise FormatError(f"{source}:{lineno}: expected 'hash;{what}', got {line!r}")
    try:
        key = trytes_to_bytes(parts[0])
    except FormatError as e:
        raise FormatError(f"{source}:{lineno}: {e}") from e
    return key, _parse_int(parts[1], what, source, lineno)


def parse_local_snapshot(meta_lines: Iterable[str], state_lines: Iterable[str],
                         meta_source: str = "<meta>", state_source: str = "<state>") -> SnapshotState:
    """
    Builds a SnapshotState from meta and state lines.

    Raises:
        FormatError: If a line is malformed or a number is out of range
    """
    meta = _clean(meta_lines)
    if len(meta) < META_HEADER_LINES:
        raise FormatError(
            f"{meta_source}: expected at least {META_HEADER_LINES} header lines, got {len(meta)}"
        )

    try:
        ms_hash = trytes_to_bytes(meta[0][1])
    except FormatError as e:
        raise FormatError(f"{meta_source}:{meta[0][0]}: milestone hash: {e}") from e
    ms_index = _parse_int(meta[1][1], "milestone index", meta_source, meta[1][0])
    ms_timestamp = _parse_int(meta[2][1], "milestone timestamp", meta_source, meta[2][0])
    sep_count = _parse_int(meta[3][1], "solid entry point count", meta_source, meta[3][0])
    seen_count = _parse_int(meta[4][1], "seen milestone count", meta_source, meta[4][0])
    if sep_count < 0:
        raise FormatError(f"{meta_source}:{meta[3][0]}: negative solid entry point count {sep_count}")

    solid_entry_points: Dict[bytes, int] = {}
    seen_milestones: Dict[bytes, int] = {}
    remaining_seps = sep_count
    for lineno, line in meta[META_HEADER_LINES:]:
        key, index = _parse_pair(line, "index", meta_source, lineno)
        if remaining_seps:
            solid_entry_points[key] = index
            remaining_seps -= 1
            continue
        seen_milestones[key] = index

    if remaining_seps:
        logger.warning(
            f"{meta_source}: header declares {sep_count} solid entry points, found {sep_count - remaining_seps}"
        )
    if seen_count != len(seen_milestones):
        logger.debug(f"{meta_source}: header declares {seen_count} seen milestones, found {len(seen_milestones)}")

    ledger_state: Dict[bytes, int] = {}
    for lineno, line in _clean(state_lines):
        key, balance = _parse_pair(line, "balance", state_source, lineno)
        ledger_state[key] = balance

    try:
        return SnapshotState(
            milestone_hash=ms_hash,
            milestone_index=ms_index,
            milestone_timestamp=ms_timestamp,
            solid_entry_points=solid_entry_points,
            seen_milestones=seen_milestones,
            ledger_state=ledger_state,
        )
    except ValidationError as e:
        raise FormatError(f"Local snapshot values out of range ({meta_source}, {state_source}): {e}") from e


def read_local_snapshot_files(meta_path: str, state_path: str) -> SnapshotState:
    """
    Reads the plaintext meta and state files into a SnapshotState.

    Raises:
        StorageIOError: If a file cannot be read
        FormatError: If a line is malformed
    """
    try:
        with open(meta_path, "r") as meta_f, open(state_path, "r") as state_f:
            return parse_local_snapshot(meta_f, state_f, meta_source=meta_path, state_source=state_path)
    except UnicodeDecodeError as e:
        raise FormatError(f"Local snapshot files are not valid text: {e}") from e
    except OSError as e:
        raise StorageIOError(f"Cannot read local snapshot files: {e}") from e
