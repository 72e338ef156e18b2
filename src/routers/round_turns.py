"""Round turn routes: listing, detail, journal notes and tags, rebuild."""

from datetime import datetime

from dateutil import parser as dtparser
from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from src.database.db_manager import DatabaseManager
from src.dependencies import get_db, get_round_turn_manager
from src.models.round_turn_manager import RoundTurnManager
from src.pipeline.orchestrator import SOURCES, rebuild_round_turns
from src.schemas import RebuildRequest, RoundTurnNotesUpdate, RoundTurnTagsAdd

router = APIRouter()


def parse_iso_param(value: str, name: str) -> datetime:
    try:
        return dtparser.isoparse(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name} format: {value}")


@router.get("/api/round-turns")
async def list_round_turns(
    start: str = None,
    end: str = None,
    manager: RoundTurnManager = Depends(get_round_turn_manager),
):
    """Round turns entered on/after start and exited on/before end, newest first"""
    if not start or not end:
        raise HTTPException(status_code=400, detail="start and end are required")

    entry_from = parse_iso_param(start, "start")
    exit_to = parse_iso_param(end, "end")
    return manager.list_round_turns(entry_from, exit_to)


@router.post("/api/round-turns/rebuild")
async def rebuild(body: RebuildRequest, db: DatabaseManager = Depends(get_db)):
    """Recompute round turns for one source"""
    if body.source not in SOURCES:
        raise HTTPException(status_code=400, detail=f"source must be one of {', '.join(SOURCES)}")

    try:
        logger.info(f"Rebuild requested: source={body.source} incremental={body.incremental}")
        result = rebuild_round_turns(db, source=body.source, incremental=body.incremental)
        return {"source": body.source, "incremental": body.incremental, **result.summary()}
    except Exception as e:
        logger.error(f"Error rebuilding round turns: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/api/round-turns/{round_turn_id}")
async def get_round_turn(round_turn_id: str, manager: RoundTurnManager = Depends(get_round_turn_manager)):
    round_turn = manager.get(round_turn_id)
    if round_turn is None:
        raise HTTPException(status_code=404, detail=f"Round turn '{round_turn_id}' not found")
    return round_turn


@router.patch("/api/round-turns/{round_turn_id}")
async def update_round_turn_notes(
    round_turn_id: str,
    body: RoundTurnNotesUpdate,
    manager: RoundTurnManager = Depends(get_round_turn_manager),
):
    """Save journal notes for a round turn"""
    if not manager.set_notes(round_turn_id, body.text):
        raise HTTPException(status_code=404, detail=f"Round turn '{round_turn_id}' not found")
    return manager.get(round_turn_id)


@router.post("/api/round-turns/{round_turn_id}/tags")
async def add_round_turn_tags(
    round_turn_id: str,
    body: RoundTurnTagsAdd,
    manager: RoundTurnManager = Depends(get_round_turn_manager),
):
    """Attach tags to a round turn; re-adding an attached tag is a no-op"""
    try:
        added = manager.add_tags(round_turn_id, body.tag_ids)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if added is None:
        raise HTTPException(status_code=404, detail=f"Round turn '{round_turn_id}' not found")

    round_turn = manager.get(round_turn_id)
    return {"added": added, "tags": round_turn["tags"]}
