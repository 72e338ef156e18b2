"""Import service: closed-trade CSV ledger into csv_trades."""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from loguru import logger

from src.api.csv_ledger import (
    RecordParseError,
    backup_csv_file,
    parse_ledger_row,
    read_ledger_rows,
)
from src.database.db_manager import DatabaseManager


@dataclass
class ImportResult:
    success_count: int = 0
    error_count: int = 0
    backup_path: Optional[Path] = None
    errors: List[str] = field(default_factory=list)


def import_csv_ledger(
    path: Union[str, Path],
    db: DatabaseManager,
    lenient_dates: bool = False,
    backup_dir: Optional[Union[str, Path]] = None,
    backup: bool = True,
    now: Optional[datetime] = None,
) -> ImportResult:
    """Back up the file, then upsert every parseable row by Id.

    Bad rows and rows the database rejects are logged and counted; the rest
    of the file still imports.  An unreadable file raises CsvLedgerError.
    """
    result = ImportResult()
    logger.info(f"Importing CSV from: {path}")

    rows = read_ledger_rows(path)
    if backup:
        result.backup_path = backup_csv_file(path, backup_dir)

    for i, row in enumerate(rows, start=1):
        try:
            trade = parse_ledger_row(row, i, lenient_dates=lenient_dates, now=now)
        except RecordParseError as e:
            logger.error(str(e))
            result.error_count += 1
            result.errors.append(str(e))
            continue

        try:
            db.save_csv_trade(trade)
            result.success_count += 1
        except Exception as e:
            logger.error(f"Error inserting record {i} ({trade['id']}): {e}")
            result.error_count += 1
            result.errors.append(f"Row {i}: {e}")
            continue

        if i % 100 == 0:
            logger.info(f"Processed {i}/{len(rows)} records")

    logger.info(f"Import completed: {result.success_count} successful, {result.error_count} errors")
    if result.backup_path:
        logger.info(f"Original file backed up to: {result.backup_path}")
    return result
