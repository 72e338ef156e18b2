"""Health check routes."""

from datetime import datetime

from fastapi import APIRouter, Depends

from src.database.db_manager import DatabaseManager
from src.database.engine import get_dialect
from src.dependencies import get_db
from src.models.round_turn_manager import RoundTurnManager

router = APIRouter()


@router.get("/api/health")
async def health_check(db: DatabaseManager = Depends(get_db)):
    """Health check with row counts"""
    return {
        "status": "ok",
        "service": "FuturesLedger",
        "timestamp": datetime.now().isoformat(),
        "database": get_dialect(),
        "executions": db.count_executions(),
        "csv_trades": db.count_csv_trades(),
        "round_turns": RoundTurnManager(db).count(),
    }
