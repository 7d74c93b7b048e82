# MIT License
# Copyright (c) 2025 Hashborn

"""
Local Snapshot Data Structures
"""

from typing import Annotated, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field

from protocol.config.params import HASH_SIZE, TOTAL_SUPPLY
from protocol.crypto.trinary import bytes_to_trytes

INT32_MIN, INT32_MAX = -2**31, 2**31 - 1
INT64_MIN, INT64_MAX = -2**63, 2**63 - 1
UINT64_MAX = 2**64 - 1

Hash = Annotated[bytes, Field(min_length=HASH_SIZE, max_length=HASH_SIZE)]
Int32 = Annotated[int, Field(ge=INT32_MIN, le=INT32_MAX)]
Int64 = Annotated[int, Field(ge=INT64_MIN, le=INT64_MAX)]
UInt64 = Annotated[int, Field(ge=0, le=UINT64_MAX)]

# Fixed record widths of the binary encodings
HEADER_FIXED_SIZE = 4 + 8 + 4 + 4
INDEX_ENTRY_SIZE = HASH_SIZE + 4
LEDGER_ENTRY_SIZE = HASH_SIZE + 8


class SnapshotState(BaseModel):
    """
    Canonical ledger checkpoint. Hashes are kept in their 49-byte binary form.
    """
    model_config = ConfigDict(frozen=True)

    milestone_hash: Hash = Field(..., description="Checkpoint milestone hash")
    milestone_index: Int32 = Field(..., description="Milestone sequence number")
    milestone_timestamp: Int64 = Field(..., description="Milestone Unix timestamp")
    solid_entry_points: Dict[Hash, Int32] = Field(default_factory=dict, description="hash -> milestone index")
    seen_milestones: Dict[Hash, Int32] = Field(default_factory=dict, description="hash -> milestone index")
    ledger_state: Dict[Hash, UInt64] = Field(default_factory=dict, description="address -> balance")

    def computed_supply(self) -> int:
        return sum(self.ledger_state.values())

    def size_in_bytes(self) -> int:
        """Size of the store-internal encoding."""
        return (
            HASH_SIZE + HEADER_FIXED_SIZE
            + len(self.solid_entry_points) * INDEX_ENTRY_SIZE
            + len(self.seen_milestones) * INDEX_ENTRY_SIZE
            + len(self.ledger_state) * LEDGER_ENTRY_SIZE
        )

    def summary(self, expected_supply: int = TOTAL_SUPPLY) -> "SnapshotSummary":
        supply = self.computed_supply()
        return SnapshotSummary(
            milestone_hash=bytes_to_trytes(self.milestone_hash),
            milestone_index=self.milestone_index,
            milestone_timestamp=self.milestone_timestamp,
            solid_entry_points_count=len(self.solid_entry_points),
            seen_milestones_count=len(self.seen_milestones),
            ledger_entries_count=len(self.ledger_state),
            computed_supply=supply,
            expected_supply=expected_supply,
            supply_correct=supply == expected_supply,
            size_bytes=self.size_in_bytes(),
        )


class SnapshotSummary(BaseModel):
    """
    Human-readable facts about a snapshot.
    """
    milestone_hash: str = Field(..., description="Milestone hash (trytes)")
    milestone_index: int = Field(..., description="Milestone index")
    milestone_timestamp: int = Field(..., description="Milestone timestamp")
    solid_entry_points_count: int = Field(..., description="Number of solid entry points")
    seen_milestones_count: int = Field(..., description="Number of seen milestones")
    ledger_entries_count: int = Field(..., description="Number of ledger entries")
    computed_supply: int = Field(..., description="Sum of all balances")
    expected_supply: int = Field(..., description="Ledger total supply")
    supply_correct: bool = Field(..., description="computed_supply == expected_supply")
    size_bytes: int = Field(..., description="Store-internal encoding size (bytes)")


class ExportSummary(SnapshotSummary):
    """
    Snapshot facts plus export file details.
    """
    path: str = Field(..., description="Export file path")
    version: int = Field(..., description="Export format version")
    spent_addresses_count: int = Field(..., description="Spent addresses in the file")
    spent_addresses_omitted: bool = Field(default=False, description="Export carries no spent addresses")
    filter_size_bytes: Optional[int] = Field(default=None, description="Cuckoo filter image size (bytes)")
    file_size_bytes: int = Field(..., description="File size on disk (bytes)")
