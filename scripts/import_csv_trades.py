#!/usr/bin/env python3
"""Import a TopstepX closed-trade CSV export.

Usage:
    venv/bin/python scripts/import_csv_trades.py trades.csv
    venv/bin/python scripts/import_csv_trades.py trades.csv --lenient-dates
"""

import argparse
import os
import sys

from dotenv import load_dotenv
from loguru import logger

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.api.csv_ledger import CsvLedgerError
from src.database.db_manager import DatabaseManager
from src.services.import_service import import_csv_ledger

# Configure logging
logger.add(
    "logs/csv_import_{time}.log",
    rotation="1 day",
    retention="7 days",
    level="INFO"
)


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description="Import a TopstepX trades CSV")
    parser.add_argument("csv_file", nargs="?", help="Path to the CSV export")
    parser.add_argument("--lenient-dates", action="store_true",
                        help="Use the current time for unparseable dates instead of rejecting the row")
    parser.add_argument("--backup-dir", default=None,
                        help="Where to copy the file first (default CSV_BACKUP_DIR or data/csv-imports)")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    if args.verbose:
        logger.remove()
        logger.add(sys.stderr, level="DEBUG")
        logger.add(
            "logs/csv_import_{time}.log",
            rotation="1 day",
            retention="7 days",
            level="DEBUG"
        )

    load_dotenv()

    csv_file = args.csv_file
    if not csv_file:
        csv_file = input("Enter the path to your CSV file: ").strip()
    if not csv_file:
        logger.error("No file path provided")
        sys.exit(1)

    try:
        db = DatabaseManager(db_url=os.getenv("DATABASE_URL"))
        db.initialize_database()
        result = import_csv_ledger(
            csv_file, db, lenient_dates=args.lenient_dates, backup_dir=args.backup_dir,
        )
        print(f"Import completed: {result.success_count} successful, {result.error_count} errors")
        if result.backup_path:
            print(f"Original file backed up to: {result.backup_path}")
        sys.exit(0 if result.success_count or not result.error_count else 1)
    except CsvLedgerError as e:
        logger.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Import interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Import failed: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
