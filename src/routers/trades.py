"""Live broker trade lookup."""

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from src.api.topstepx_client import TopstepXClient, TopstepXError
from src.dependencies import get_topstepx_client
from src.routers.round_turns import parse_iso_param

router = APIRouter()


@router.get("/api/trades")
def get_trades(start: str = None, end: str = None, client: TopstepXClient = Depends(get_topstepx_client)):
    """Fetch fills straight from TopstepX for [start, end]"""
    if not start or not end:
        raise HTTPException(status_code=400, detail="Missing required start or end timestamp")

    start_ts = parse_iso_param(start, "start")
    end_ts = parse_iso_param(end, "end")

    try:
        trades = client.fetch_trades(start_ts, end_ts)
    except TopstepXError as e:
        logger.error(f"/api/trades error: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    for trade in trades:
        if trade["creation_timestamp"] is not None:
            trade["creation_timestamp"] = trade["creation_timestamp"].isoformat()
    return {"trades": trades}
