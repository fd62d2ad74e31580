"""Command-line entry point: wires services and runs backup commands.

Usage:
    python main.py [--save-dir DIR] [--config-dir DIR] <command> ...

Commands:
    status                          Show save files, size level and last backup
    backup FILE [FILE ...]          Back up save files (manual trigger)
    list [NAME]                     List backups, optionally for one save file
    restore BACKUP [TARGET]         Restore a backup (default target: original save)
    delete BACKUP                   Delete a backup
    verify BACKUP                   Check a backup for corruption
    periodic                        Run one periodic backup pass now

A GUI front end builds the same AppContext with create_context() and wraps
``ctx.backup_store.events`` in ``saveguard.ui.bridge.BackupSignalBridge`` to
receive backup progress as Qt signals.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from loguru import logger

from saveguard.config import Config, get_config
from saveguard.context import AppContext
from saveguard.core.auto_backup import AutoBackupService
from saveguard.core.backup import BackupDirectoryError, BackupStore
from saveguard.core.events import BackupFailed, BackupProgress
from saveguard.core.scanner import scan_save_files
from saveguard.logger import setup_logger
from saveguard.models.backup_record import BackupRecord, BackupStatus, BackupTrigger
from saveguard.utils import format_size


def create_context(config: Config, save_dir: Path) -> AppContext:
    """Wire all services and return an AppContext."""
    store = BackupStore(config, save_dir)
    auto_backup = AutoBackupService(store, config, save_dir)
    return AppContext(
        config=config,
        save_dir=save_dir,
        backup_store=store,
        auto_backup=auto_backup,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="d2r-save-guard",
        description="Back up and restore Diablo II: Resurrected save files.",
    )
    parser.add_argument("--save-dir", type=Path, help="save directory (default: from config)")
    parser.add_argument("--config-dir", type=Path, help="configuration/data directory")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="show save files and their last backup")

    p = sub.add_parser("backup", help="back up save files")
    p.add_argument("files", nargs="+", type=Path)

    p = sub.add_parser("list", help="list backups")
    p.add_argument("name", nargs="?", help="original save file name, e.g. Amazon.d2s")

    p = sub.add_parser("restore", help="restore a backup")
    p.add_argument("backup", help="backup file name")
    p.add_argument("target", nargs="?", type=Path, help="file to overwrite")
    p.add_argument(
        "--no-safety-backup",
        action="store_true",
        help="do not back up the current target before overwriting it",
    )

    p = sub.add_parser("delete", help="delete a backup")
    p.add_argument("backup", help="backup file name")

    p = sub.add_parser("verify", help="check a backup for corruption")
    p.add_argument("backup", help="backup file name")

    sub.add_parser("periodic", help="run one periodic backup pass")
    return parser


def _find_backup(store: BackupStore, backup_name: str) -> BackupRecord | None:
    for record in store.list_all():
        if record.backup_name == backup_name:
            return record
    print(f"Error: backup not found: {backup_name}")
    return None


def _print_records(records: list[BackupRecord]) -> None:
    if not records:
        print("No backups found")
        return
    for record in records:
        flag = "zip" if record.compressed else "   "
        print(
            f"{record.timestamp:%Y-%m-%d %H:%M:%S}  {flag}  "
            f"{format_size(record.size_bytes):>9}  {record.status:<9}  {record.backup_name}"
        )


def _cmd_status(ctx: AppContext, args: argparse.Namespace) -> int:
    saves = scan_save_files(ctx.save_dir)
    if not saves:
        print(f"No save files in {ctx.save_dir}")
        return 0
    for save in saves:
        backups = ctx.backup_store.list_for(save.name)
        last = f"{backups[0].timestamp:%Y-%m-%d %H:%M}" if backups else "never"
        print(
            f"{save.name:<24} {save.size:>6} B  {save.usage_percent:5.1f}%  "
            f"{save.level:<7}  {len(backups):>3} backup(s), last {last}"
        )
    return 0


def _cmd_backup(ctx: AppContext, args: argparse.Namespace) -> int:
    store = ctx.backup_store
    if len(args.files) == 1:
        results = [store.create(args.files[0], BackupTrigger.MANUAL_SINGLE)]
    else:
        store.events.subscribe(
            BackupProgress,
            lambda e: print(f"[{e.current}/{e.total}] {e.current_file}"),
        )
        results = store.create_bulk(args.files, BackupTrigger.MANUAL_BULK)

    failed = 0
    for path, result in zip(args.files, results):
        if result.success and result.record is not None:
            print(f"OK    {result.record.backup_name}")
        else:
            failed += 1
            print(f"FAIL  {path.name}: {result.error}")
    return 1 if failed else 0


def _cmd_list(ctx: AppContext, args: argparse.Namespace) -> int:
    store = ctx.backup_store
    records = store.list_for(args.name) if args.name else store.list_all()
    _print_records(records)
    return 0


def _cmd_restore(ctx: AppContext, args: argparse.Namespace) -> int:
    record = _find_backup(ctx.backup_store, args.backup)
    if record is None:
        return 1
    target = args.target or ctx.save_dir / record.original_name
    result = ctx.backup_store.restore(
        record, target, take_pre_restore_backup=not args.no_safety_backup
    )
    if result.pre_restore_record is not None:
        print(f"Safety backup: {result.pre_restore_record.backup_name}")
    if not result.success:
        print(f"Error: {result.error}")
        return 1
    print(f"Restored {record.backup_name} -> {result.restored_file}")
    return 0


def _cmd_delete(ctx: AppContext, args: argparse.Namespace) -> int:
    record = _find_backup(ctx.backup_store, args.backup)
    if record is None:
        return 1
    if not ctx.backup_store.delete(record):
        print(f"Error: could not delete {record.backup_name}")
        return 1
    print(f"Deleted {record.backup_name}")
    return 0


def _cmd_verify(ctx: AppContext, args: argparse.Namespace) -> int:
    record = _find_backup(ctx.backup_store, args.backup)
    if record is None:
        return 1
    status = ctx.backup_store.verify(record)
    print(f"{record.backup_name}: {status}")
    return 0 if status is BackupStatus.VALID else 1


def _cmd_periodic(ctx: AppContext, args: argparse.Namespace) -> int:
    results = ctx.auto_backup.run_periodic_pass()
    print(f"Backed up {sum(r.success for r in results)}/{len(results)} file(s)")
    return 0 if all(r.success for r in results) else 1


_COMMANDS = {
    "status": _cmd_status,
    "backup": _cmd_backup,
    "list": _cmd_list,
    "restore": _cmd_restore,
    "delete": _cmd_delete,
    "verify": _cmd_verify,
    "periodic": _cmd_periodic,
}


def main(argv: list[str] | None = None) -> int:
    """Application entry point."""
    args = build_parser().parse_args(argv)

    config = Config(args.config_dir) if args.config_dir else get_config()
    setup_logger(config.data_dir / "logs", verbose=args.verbose)

    save_dir = args.save_dir or config.save_path
    if save_dir is None:
        print("Error: no save directory; pass --save-dir or set save_path in config.json")
        return 1

    try:
        ctx = create_context(config, save_dir)
    except BackupDirectoryError as e:
        logger.error(f"{e}: {e.__cause__}")
        return 1

    ctx.backup_store.events.subscribe(
        BackupFailed, lambda e: logger.error(f"Backup of {e.file_name} failed: {e.error}")
    )
    try:
        return _COMMANDS[args.command](ctx, args)
    finally:
        ctx.auto_backup.shutdown()


if __name__ == "__main__":
    sys.exit(main())
