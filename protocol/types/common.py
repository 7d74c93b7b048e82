# MIT License
# Copyright (c) 2025 Hashborn


class SnapshotToolError(Exception):
    pass


class FormatError(SnapshotToolError):
    """Malformed textual or binary input, including unsupported version bytes."""
    pass


class IntegrityError(SnapshotToolError):
    """Digest mismatch, corrupt filter image or filter-count mismatch."""
    pass


class ConfigurationError(SnapshotToolError):
    """Configured limits or inputs cannot accommodate the data."""
    pass


class StorageIOError(SnapshotToolError, OSError):
    """A store, source or sink is unavailable or rejected a write."""
    pass
