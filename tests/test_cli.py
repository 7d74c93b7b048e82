# MIT License
# Copyright (c) 2025 Hashborn

import pytest

from cli.main import main
from conftest import write_lines
from localsnapshot.snapshot.codec import encode_export
from protocol.config.params import EXPORT_VERSION_RAW_SHA256


def build_args(config):
    return [
        "build",
        "--ls-db-dir", config.ls_db_dir,
        "--spent-addresses-db-dir", config.spent_addresses_db_dir,
        "--ls-meta-file", config.ls_meta_file,
        "--ls-state-file", config.ls_state_file,
    ]


def test_info(config, capsys):
    code = main(["info", "--ls-meta-file", config.ls_meta_file, "--ls-state-file", config.ls_state_file])
    out = capsys.readouterr().out
    assert code == 0
    assert "ledger entries: 2" in out
    assert "max supply correct: False" in out


def test_info_with_expected_supply(config, capsys):
    code = main(["--total-supply", "3000", "info",
                 "--ls-meta-file", config.ls_meta_file, "--ls-state-file", config.ls_state_file])
    assert code == 0
    assert "max supply correct: True" in capsys.readouterr().out


def test_build_export_and_inspect(config, capsys):
    assert main(build_args(config)) == 0
    assert main(["export", "--ls-db-dir", config.ls_db_dir, "--file", config.export_file,
                 "--version", "2", "--cuckoo-filter-capacity", "100"]) == 0
    capsys.readouterr()

    assert main(["export-info", "--file", config.export_file]) == 0
    out = capsys.readouterr().out
    assert "file version: 2" in out
    assert "spent addresses: 4" in out


def test_export_info_rejects_corrupted_file(tmp_path, sample_state, capsys):
    data = bytearray(encode_export(sample_state, [], EXPORT_VERSION_RAW_SHA256))
    data[10] ^= 0xFF
    path = tmp_path / "corrupt.bin"
    path.write_bytes(bytes(data))

    assert main(["export-info", "--file", str(path)]) == 1
    assert "digest mismatch" in capsys.readouterr().err


def test_merge(tmp_path, capsys):
    first = write_lines(tmp_path / "a.txt", ["AAA", "BBB"])
    second = write_lines(tmp_path / "b.txt", ["BBB", "CCC"])
    code = main(["merge", "--sources", f"{first},{second}", "--target", str(tmp_path / "merged")])
    assert code == 0
    assert "persisted 3 spent addresses" in capsys.readouterr().out


def test_merge_needs_two_sources(tmp_path):
    first = write_lines(tmp_path / "a.txt", ["AAA"])
    assert main(["merge", "--sources", first, "--target", str(tmp_path / "merged")]) == 1


def test_invalid_capacity_is_configuration_error(config):
    assert main(["export", "--ls-db-dir", config.ls_db_dir, "--cuckoo-filter-capacity", "0"]) == 1


def test_unknown_version_rejected_by_parser():
    with pytest.raises(SystemExit):
        main(["export", "--version", "9"])


def test_metrics_file_written(config, tmp_path):
    metrics_file = tmp_path / "localsnapshot.prom"
    code = main(["--metrics-file", str(metrics_file), "info",
                 "--ls-meta-file", config.ls_meta_file, "--ls-state-file", config.ls_state_file])
    assert code == 0
    assert "localsnapshot_last_milestone_index 100.0" in metrics_file.read_text()
