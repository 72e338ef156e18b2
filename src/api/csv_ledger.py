"""
TopstepX closed-trade CSV ledger reader.

Each row is one already-paired trade (entry and exit on the same line).
Rows are returned as dicts keyed like the csv_trades table.
"""

import csv
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

from dateutil import parser as dtparser
from loguru import logger

LEDGER_COLUMNS = (
    "Id", "ContractName", "EnteredAt", "ExitedAt", "EntryPrice", "ExitPrice",
    "Fees", "PnL", "Size", "Type", "TradeDay", "TradeDuration",
)

DEFAULT_BACKUP_DIR = "data/csv-imports"


class CsvLedgerError(Exception):
    """The ledger file as a whole can't be read."""


class RecordParseError(ValueError):
    """One ledger row can't be turned into a trade."""

    def __init__(self, row_number: int, message: str):
        super().__init__(f"Row {row_number}: {message}")
        self.row_number = row_number
        self.message = message


def clean_header(name: Optional[str]) -> str:
    """Strip a leading UTF-8 BOM and surrounding whitespace from a column name."""
    return (name or "").lstrip("\ufeff").strip()


def _to_float(value: Optional[str]) -> float:
    if not value:
        return 0.0
    try:
        return float(value.replace("$", "").replace(",", ""))
    except ValueError:
        return 0.0


def _to_int(value: Optional[str]) -> int:
    return int(_to_float(value))


def _parse_date(value: Optional[str], field: str, row_number: int,
                lenient: bool, now: Optional[datetime]) -> datetime:
    try:
        if not value:
            raise ValueError("empty")
        return dtparser.parse(value)
    except (ValueError, OverflowError) as e:
        if not lenient:
            raise RecordParseError(row_number, f"invalid {field} {value!r}") from e
        fallback = now or datetime.now(timezone.utc).replace(tzinfo=None)
        logger.warning(f"Row {row_number}: invalid {field} date {value!r}, using {fallback.isoformat()}")
        return fallback


def read_ledger_rows(path: Union[str, Path]) -> List[Dict[str, str]]:
    """Read the CSV into dicts with cleaned headers and trimmed values.

    Fully blank lines are skipped.
    """
    path = Path(path)
    if not path.is_file():
        raise CsvLedgerError(f"File not found: {path}")

    try:
        with path.open(newline="", encoding="utf-8-sig") as fh:
            reader = csv.DictReader(fh)
            if reader.fieldnames is None:
                raise CsvLedgerError(f"{path} is empty")
            reader.fieldnames = [clean_header(h) for h in reader.fieldnames]
            rows = []
            for raw in reader:
                row = {k: (v or "").strip() for k, v in raw.items() if k}
                if not any(row.values()):
                    continue
                rows.append(row)
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise CsvLedgerError(f"Cannot read {path}: {e}") from e

    missing = [c for c in LEDGER_COLUMNS if rows and c not in rows[0]]
    if missing:
        logger.warning(f"{path.name}: missing columns {missing}")

    logger.info(f"Read {len(rows)} ledger rows from {path.name}")
    return rows


def parse_ledger_row(row: Dict[str, str], row_number: int,
                     lenient_dates: bool = False,
                     now: Optional[datetime] = None) -> Dict:
    """One cleaned CSV row -> csv_trades values.

    Numbers that don't parse become 0.  A missing Id is always an error;
    a bad date is an error unless lenient_dates, which substitutes now.
    """
    trade_id = row.get("Id")
    if not trade_id:
        raise RecordParseError(row_number, "missing Id")

    return {
        "id": trade_id,
        "contract_name": row.get("ContractName", ""),
        "entered_at": _parse_date(row.get("EnteredAt"), "EnteredAt", row_number, lenient_dates, now),
        "exited_at": _parse_date(row.get("ExitedAt"), "ExitedAt", row_number, lenient_dates, now),
        "entry_price": _to_float(row.get("EntryPrice")),
        "exit_price": _to_float(row.get("ExitPrice")),
        "fees": _to_float(row.get("Fees")),
        "profit_and_loss": _to_float(row.get("PnL")),
        "size": _to_int(row.get("Size")),
        "type": row.get("Type") or "Unknown",
        "trade_day": _parse_date(row.get("TradeDay"), "TradeDay", row_number, lenient_dates, now),
        "trade_duration": row.get("TradeDuration") or "00:00:00",
    }


def backup_csv_file(original_path: Union[str, Path], backup_dir: Optional[Union[str, Path]] = None,
                    now: Optional[datetime] = None) -> Path:
    """Copy the source file to <backup_dir>/trades_import_<YYYY-MM-DD_HH-MM-SS>.csv."""
    backup_dir = Path(backup_dir or os.getenv("CSV_BACKUP_DIR", DEFAULT_BACKUP_DIR))
    backup_dir.mkdir(parents=True, exist_ok=True)

    timestamp = (now or datetime.now()).strftime("%Y-%m-%d_%H-%M-%S")
    backup_path = backup_dir / f"trades_import_{timestamp}.csv"
    try:
        shutil.copyfile(original_path, backup_path)
    except OSError as e:
        raise CsvLedgerError(f"Cannot back up {original_path}: {e}") from e

    logger.info(f"CSV backed up to: {backup_path}")
    return backup_path
