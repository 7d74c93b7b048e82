# MIT License
# Copyright (c) 2025 Hashborn

"""
Tool configuration.

One immutable ToolConfig is built by the CLI and handed to every component.
"""

from typing import List
from pydantic import BaseModel, ConfigDict, Field, field_validator

from protocol.config.params import (
    EXPORT_FORMATS,
    CURRENT_EXPORT_VERSION,
    DEFAULT_CUCKOO_FILTER_CAPACITY,
    DEFAULT_INGEST_QUEUE_SIZE,
    DEFAULT_COMMIT_INTERVAL,
    TOTAL_SUPPLY,
)


class ToolConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Local snapshot database
    ls_db_dir: str = Field(default="./localsnapshots-db", description="Local snapshot store directory")
    spent_addresses_db_dir: str = Field(default="./spent-addresses-db", description="Source spent-addresses store")
    ls_state_file: str = Field(default="./mainnet.snapshot.state", description="Plaintext ledger state file")
    ls_meta_file: str = Field(default="./mainnet.snapshot.meta", description="Plaintext snapshot meta file")

    # Export
    export_file: str = Field(default="export.bin", description="Export file path")
    export_version: int = Field(default=CURRENT_EXPORT_VERSION, description="Export format version to write")
    omit_spent_addresses: bool = Field(default=False, description="Export without spent addresses")
    cuckoo_filter_capacity: int = Field(default=DEFAULT_CUCKOO_FILTER_CAPACITY, gt=0,
                                        description="Max spent addresses the cuckoo filter holds")

    # Merge
    merge_sources: List[str] = Field(default_factory=list, description="Spent-address stores or .txt files")
    merge_target: str = Field(default="./merged-spent-addresses-db", description="Merged spent-addresses store")

    # Tuning
    ingest_queue_size: int = Field(default=DEFAULT_INGEST_QUEUE_SIZE, ge=0,
                                   description="Hand-off queue bound (0 = unbounded)")
    commit_interval: int = Field(default=DEFAULT_COMMIT_INTERVAL, gt=0, description="Writes per store commit")
    total_supply: int = Field(default=TOTAL_SUPPLY, description="Expected sum of all balances")

    @field_validator("export_version")
    @classmethod
    def _known_version(cls, v: int) -> int:
        if v not in EXPORT_FORMATS:
            raise ValueError(f"unsupported export version {v}, supported: {sorted(EXPORT_FORMATS)}")
        return v
