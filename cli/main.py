# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import sys
import logging
from typing import List, Optional

from pydantic import ValidationError

from localsnapshot.config import ToolConfig
from localsnapshot.observability import write_metrics
from localsnapshot.snapshot import ExportPipeline, SnapshotManager
from localsnapshot.snapshot.types import ExportSummary, SnapshotSummary
from localsnapshot.spent import merge_spent_addresses
from protocol.config.params import EXPORT_FORMATS
from protocol.types.common import ConfigurationError, SnapshotToolError

logger = logging.getLogger(__name__)

# argparse dest -> ToolConfig field
CONFIG_FIELDS = [
    "ls_db_dir",
    "spent_addresses_db_dir",
    "ls_state_file",
    "ls_meta_file",
    "export_file",
    "export_version",
    "omit_spent_addresses",
    "cuckoo_filter_capacity",
    "merge_sources",
    "merge_target",
    "ingest_queue_size",
    "total_supply",
]


def build_config(args) -> ToolConfig:
    values = {}
    for name in CONFIG_FIELDS:
        value = getattr(args, name, None)
        if value is not None:
            values[name] = value
    try:
        return ToolConfig(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def print_snapshot_summary(s: SnapshotSummary):
    print(f"ms index/hash/timestamp: {s.milestone_index}/{s.milestone_hash}/{s.milestone_timestamp}")
    print(f"solid entry points: {s.solid_entry_points_count}")
    print(f"seen milestones: {s.seen_milestones_count}")
    print(f"ledger entries: {s.ledger_entries_count}")
    print(f"max supply correct: {s.supply_correct} (computed {s.computed_supply}, expected {s.expected_supply})")
    print(f"size: {s.size_bytes // 1024} (KBs)")


def print_export_summary(s: ExportSummary):
    print(f"file: {s.path}")
    print(f"file version: {s.version}")
    print_snapshot_summary(s)
    if s.filter_size_bytes is not None:
        print(f"spent addresses cuckoo filter size: {s.filter_size_bytes // 1024} KBs")
    if s.spent_addresses_omitted:
        print("spent addresses: omitted")
    else:
        print(f"spent addresses: {s.spent_addresses_count}")
    print(f"file size: {s.file_size_bytes // 1024} KBs")


# --- Commands ---
def cmd_build(config: ToolConfig):
    print("[merge local snapshot files and spent-addresses-db mode]")
    summary = SnapshotManager(config).build_database()
    print_snapshot_summary(summary)


def cmd_info(config: ToolConfig):
    print("[print local snapshot files info mode]")
    print_snapshot_summary(SnapshotManager(config).info())


def cmd_merge(config: ToolConfig):
    print("[merge spent-addresses sources mode]")
    report = merge_spent_addresses(config.merge_sources, config.merge_target, config.ingest_queue_size)
    for src in report.sources:
        print(f"{src.source}: new {src.added}, known {src.known}")
    print(f"persisted {report.total_added} spent addresses into {report.target}")
    print(f"finished, took {report.elapsed_sec:.2f}s")


def cmd_export(config: ToolConfig):
    print("[generate export file from database mode]")
    print_export_summary(ExportPipeline(config).export())


def cmd_export_info(config: ToolConfig):
    print("[print export file info mode]")
    print_export_summary(ExportPipeline(config).inspect())


def cmd_import(config: ToolConfig):
    print("[import export file into database mode]")
    print_export_summary(ExportPipeline(config).import_into_store())


COMMANDS = {
    "build": cmd_build,
    "info": cmd_info,
    "merge": cmd_merge,
    "export": cmd_export,
    "export-info": cmd_export_info,
    "import": cmd_import,
}


def _comma_list(value: str) -> List[str]:
    return [s.strip() for s in value.split(",") if s.strip()]


def make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="localsnapshot", description="Local snapshot database tool")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--metrics-file", help="Write Prometheus metrics to this file when done")
    parser.add_argument("--ingest-queue-size", type=int, help="Spent address hand-off queue bound (0 = unbounded)")
    parser.add_argument("--total-supply", type=int, help="Expected sum of all balances")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # build
    p_build = subparsers.add_parser("build", help="Build the local snapshot db from snapshot files + spent-addresses db")
    p_build.add_argument("--ls-db-dir", help="Local snapshot database directory to write")
    p_build.add_argument("--spent-addresses-db-dir", help="Spent-addresses database directory to read")
    p_build.add_argument("--ls-state-file", help="Local snapshot state file")
    p_build.add_argument("--ls-meta-file", help="Local snapshot meta file")

    # info
    p_info = subparsers.add_parser("info", help="Parse the local snapshot files and print their info")
    p_info.add_argument("--ls-state-file", help="Local snapshot state file")
    p_info.add_argument("--ls-meta-file", help="Local snapshot meta file")

    # merge
    p_merge = subparsers.add_parser("merge", help="Merge multiple spent-addresses sources into one database")
    p_merge.add_argument("--sources", dest="merge_sources", type=_comma_list, required=True,
                         help="Comma separated spent-addresses databases and/or .txt files")
    p_merge.add_argument("--target", dest="merge_target", help="Merged spent-addresses database directory")

    # export
    p_export = subparsers.add_parser("export", help="Export the local snapshot db into a single file")
    p_export.add_argument("--ls-db-dir", help="Local snapshot database directory")
    p_export.add_argument("--file", dest="export_file", help="Export file to write")
    p_export.add_argument("--version", dest="export_version", type=int, choices=sorted(EXPORT_FORMATS),
                          help="Export file format version")
    p_export.add_argument("--omit-spent-addresses", action="store_true", default=None,
                          help="Do not include spent addresses")
    p_export.add_argument("--cuckoo-filter-capacity", type=int, help="Capacity of the spent addresses cuckoo filter")

    # export-info
    p_einfo = subparsers.add_parser("export-info", help="Verify an export file and print its info")
    p_einfo.add_argument("--file", dest="export_file", help="Export file to read")

    # import
    p_import = subparsers.add_parser("import", help="Write an export file into a local snapshot db")
    p_import.add_argument("--file", dest="export_file", help="Export file to read")
    p_import.add_argument("--ls-db-dir", help="Local snapshot database directory to write")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = make_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    try:
        config = build_config(args)
        COMMANDS[args.command](config)
    except (SnapshotToolError, OSError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        if args.metrics_file:
            write_metrics(args.metrics_file)

    return 0


if __name__ == "__main__":
    sys.exit(main())
