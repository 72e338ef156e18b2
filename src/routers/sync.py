"""Sync routes: broker backfill."""

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from src.api.topstepx_client import TopstepXClient, TopstepXError
from src.database.db_manager import DatabaseManager
from src.dependencies import get_db, get_topstepx_client
from src.schemas import BackfillRequest
from src.services.backfill_service import run_backfill

router = APIRouter()


@router.post("/api/sync/backfill")
def backfill(
    body: BackfillRequest,
    client: TopstepXClient = Depends(get_topstepx_client),
    db: DatabaseManager = Depends(get_db),
):
    """Backfill fills and orders window by window up to now"""
    try:
        logger.info("Backfill requested")
        result = run_backfill(
            client,
            db,
            start=body.start,
            window_days=body.window_days,
            dry_run=body.dry_run,
            resume=body.resume,
        )
        return result.to_dict()
    except TopstepXError as e:
        logger.error(f"Backfill failed at broker: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        logger.error(f"Error during backfill: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
