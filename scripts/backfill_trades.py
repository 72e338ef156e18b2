#!/usr/bin/env python3
"""Backfill TopstepX fills and orders into the local database.

Usage:
    venv/bin/python scripts/backfill_trades.py
    venv/bin/python scripts/backfill_trades.py --dry-run
    venv/bin/python scripts/backfill_trades.py --resume --window-days 7
"""

import argparse
import os
import sys
from datetime import datetime

from dotenv import load_dotenv
from loguru import logger

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.api.topstepx_client import TopstepXClient
from src.database.db_manager import DatabaseManager
from src.services.backfill_service import run_backfill

# Configure logging
logger.add(
    "logs/backfill_{time}.log",
    rotation="1 day",
    retention="7 days",
    level="INFO"
)


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description="Backfill TopstepX trades and orders")
    parser.add_argument("--dry-run", action="store_true", help="Fetch and count without writing")
    parser.add_argument("--resume", action="store_true", help="Continue after the last completed window")
    parser.add_argument("--start", type=datetime.fromisoformat, default=None,
                        help="Historic start (ISO format, default BACKFILL_START)")
    parser.add_argument("--window-days", type=int, default=None,
                        help="Window length in days (default BACKFILL_WINDOW_DAYS or 30)")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    if args.verbose:
        logger.remove()
        logger.add(sys.stderr, level="DEBUG")
        logger.add(
            "logs/backfill_{time}.log",
            rotation="1 day",
            retention="7 days",
            level="DEBUG"
        )

    load_dotenv()

    required_vars = ["TOPSTEPX_USERNAME", "TOPSTEPX_API_KEY", "TOPSTEPX_ACCOUNT_ID"]
    missing_vars = [var for var in required_vars if not os.getenv(var)]
    if missing_vars:
        logger.error(f"Missing required environment variables: {', '.join(missing_vars)}")
        sys.exit(1)

    db = DatabaseManager(db_url=os.getenv("DATABASE_URL"))
    db.initialize_database()
    client = TopstepXClient.from_env()

    try:
        result = run_backfill(
            client,
            db,
            start=args.start,
            window_days=args.window_days,
            dry_run=args.dry_run,
            resume=args.resume,
        )
        prefix = "[dry-run] " if result.dry_run else ""
        print(f"{prefix}Windows: {result.windows}")
        print(f"{prefix}Trades: {result.trades_fetched} fetched, {result.trades_saved} saved, {result.trades_skipped} skipped")
        print(f"{prefix}Orders: {result.orders_fetched} fetched, {result.orders_saved} saved, {result.orders_skipped} skipped")
        sys.exit(0)
    except KeyboardInterrupt:
        logger.info("Backfill interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Backfill failed: {str(e)}")
        sys.exit(1)
    finally:
        client.close()


if __name__ == "__main__":
    main()
