#!/usr/bin/env python3
"""Rebuild round turns from stored ledger rows or broker fills.

Usage:
    venv/bin/python scripts/build_round_turns.py                 # csv, full rebuild
    venv/bin/python scripts/build_round_turns.py --source api
    venv/bin/python scripts/build_round_turns.py --incremental
"""

import argparse
import os
import sys

from dotenv import load_dotenv
from loguru import logger

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.database.db_manager import DatabaseManager
from src.pipeline.orchestrator import SOURCES, rebuild_round_turns

# Configure logging
logger.add(
    "logs/build_round_turns_{time}.log",
    rotation="1 day",
    retention="7 days",
    level="INFO"
)


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description="Consolidate executions into round turns")
    parser.add_argument("--source", choices=SOURCES, default="csv",
                        help="csv: closed-trade ledger rows, api: TopstepX fills (default: csv)")
    parser.add_argument("--incremental", action="store_true",
                        help="Upsert over existing round turns instead of clearing them first")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    if args.verbose:
        logger.remove()
        logger.add(sys.stderr, level="DEBUG")
        logger.add(
            "logs/build_round_turns_{time}.log",
            rotation="1 day",
            retention="7 days",
            level="DEBUG"
        )

    load_dotenv()

    try:
        db = DatabaseManager(db_url=os.getenv("DATABASE_URL"))
        db.initialize_database()

        mode = "incremental" if args.incremental else "full"
        logger.info(f"Building round turns from {args.source} ({mode})")
        result = rebuild_round_turns(db, source=args.source, incremental=args.incremental)

        print(f"Records loaded:      {result.records_loaded}")
        print(f"Records skipped:     {result.records_skipped}")
        print(f"Round turns created: {result.round_turns_created}")
        print(f"Open positions:      {result.open_positions}")
        print(f"Errors:              {result.errors}")
        sys.exit(0)
    except KeyboardInterrupt:
        logger.info("Build interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Build failed: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
