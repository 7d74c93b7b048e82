# MIT License
# Copyright (c) 2025 Hashborn

import os
import pytest

from localsnapshot.config import ToolConfig
from localsnapshot.snapshot.files import parse_local_snapshot
from localsnapshot.storage.db import KeyValueStore
from protocol.config.params import PARTITION_SPENT_ADDRESSES, SPENT_ADDRESSES_PARTITIONS, SPENT_ADDRESS_VALUE
from protocol.crypto.trinary import trytes_to_bytes

META_LINES = ["HASHM", "100", "1600000000", "1", "0", "HASHA;50"]
STATE_LINES = ["HASHA;1000", "HASHB;2000"]

SPENT_TRYTES = ["SPENTADDRESSA", "SPENTADDRESSB", "SPENTADDRESSC", "SPENTADDRESSD"]


def write_lines(path, lines):
    with open(path, "w") as f:
        f.write("\n".join(lines) + "\n")
    return str(path)


def make_spent_store(path, addresses):
    with KeyValueStore(str(path), SPENT_ADDRESSES_PARTITIONS) as store:
        for a in addresses:
            store.put(PARTITION_SPENT_ADDRESSES, a, SPENT_ADDRESS_VALUE)
    return str(path)


@pytest.fixture
def sample_state():
    return parse_local_snapshot(META_LINES, STATE_LINES)


@pytest.fixture
def rich_state():
    """Snapshot with every section populated."""
    meta = ["MILESTONE", "42", "1600000123", "2", "2",
            "SEPA;40", "SEPB;41", "SEENA;43", "SEENB;44"]
    state = ["ADDRA;1", "ADDRB;18446744073709551615", "ADDRC;0"]
    return parse_local_snapshot(meta, state)


@pytest.fixture
def spent_addresses():
    return [trytes_to_bytes(t) for t in SPENT_TRYTES]


@pytest.fixture
def snapshot_files(tmp_path):
    meta = write_lines(tmp_path / "mainnet.snapshot.meta", META_LINES)
    state = write_lines(tmp_path / "mainnet.snapshot.state", STATE_LINES)
    return meta, state


@pytest.fixture
def spent_db(tmp_path, spent_addresses):
    return make_spent_store(tmp_path / "spent-addresses-db", spent_addresses)


@pytest.fixture
def config(tmp_path, snapshot_files, spent_db):
    meta, state = snapshot_files
    return ToolConfig(
        ls_db_dir=os.path.join(str(tmp_path), "localsnapshots-db"),
        spent_addresses_db_dir=spent_db,
        ls_meta_file=meta,
        ls_state_file=state,
        export_file=os.path.join(str(tmp_path), "export.bin"),
        cuckoo_filter_capacity=1000,
        merge_target=os.path.join(str(tmp_path), "merged-db"),
    )
