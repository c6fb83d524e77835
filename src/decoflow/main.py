from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from decoflow.application.container import build_container
from decoflow.config import get_app_paths
from decoflow.domain.errors import AppError
from decoflow.logging_config import setup_logging
from decoflow.services.collaborators import DirectoryShareTarget, StaticFilePicker

log = logging.getLogger(__name__)


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="decoflow", description="DecoFlow local data maintenance.")
    parser.add_argument("--home", help="Data directory (defaults to DECOFLOW_HOME or the per-user folder).")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    p_export = sub.add_parser("export", help="Write a full backup archive.")
    p_export.add_argument("--out", help="Folder that receives the archive.")

    p_import = sub.add_parser("import", help="Replace all data with a backup archive.")
    p_import.add_argument("archive")

    sub.add_parser("gc", help="Delete image files no record references.")
    sub.add_parser("health", help="Check database integrity and image references.")

    p_reset = sub.add_parser("reset", help="Delete every record and image.")
    p_reset.add_argument("--yes", action="store_true", help="Confirm the reset.")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    paths = get_app_paths(base_dir=args.home)
    setup_logging(paths.logs_dir, level=logging.DEBUG if args.verbose else logging.INFO, console=args.verbose)

    picker = StaticFilePicker(getattr(args, "archive", None))
    share = DirectoryShareTarget(args.out) if getattr(args, "out", None) else None

    if args.command == "reset" and not args.yes:
        print("Refusing to reset without --yes.", file=sys.stderr)
        return 2

    try:
        c = build_container(paths, picker=picker, share=share)
    except AppError as exc:
        log.exception("startup_failed")
        print(exc.user_message, file=sys.stderr)
        return 1

    try:
        if args.command == "export":
            archive = c.exporter.export_backup()
            print(share.last_shared if share else archive)
        elif args.command == "import":
            c.importer.import_backup()
            report = c.importer.last_report
            print(f"Restored {sum(report.counts.values())} records, {report.images_restored} images.")
        elif args.command == "gc":
            report = c.gc.collect()
            print(f"Deleted {report.deleted} orphaned images ({report.referenced} referenced).")
        elif args.command == "health":
            report = c.operations.run_health_check()
            print(f"integrity={report.sqlite_integrity} images={report.images_count} db_bytes={report.db_size_bytes}")
            for d in report.dangling_images:
                print(f"missing image: {d.kind}/{d.record_id} -> {Path(d.reference).name}")
            return 0 if report.ok else 1
        elif args.command == "reset":
            report = c.reset.reset_all()
            print(f"Deleted {report.rows_deleted} rows and {report.images_deleted} images.")
    except AppError as exc:
        log.exception("command_failed command=%s", args.command)
        print(exc.user_message, file=sys.stderr)
        return 1
    finally:
        c.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
