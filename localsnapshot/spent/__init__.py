# MIT License
# Copyright (c) 2025 Hashborn

"""
Spent Addresses

Merging, streaming between stores and cuckoo filter encoding of spent addresses.
"""

from .filter import SpentAddressFilter
from .ingest import AddressStream, ingest_partition
from .merger import SpentAddressMerger, MergeReport, SourceReport, merge_spent_addresses

__all__ = [
    "SpentAddressFilter",
    "AddressStream",
    "ingest_partition",
    "SpentAddressMerger",
    "MergeReport",
    "SourceReport",
    "merge_spent_addresses",
]
