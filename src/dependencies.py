"""Singleton instances shared across routers and services."""

import os

from fastapi import Depends, HTTPException

from src.api.topstepx_client import TopstepXClient
from src.database.db_manager import DatabaseManager
from src.models.round_turn_manager import RoundTurnManager

db = DatabaseManager(db_url=os.getenv("DATABASE_URL"))

_topstepx_client = None


def get_db() -> DatabaseManager:
    return db


def get_round_turn_manager(db: DatabaseManager = Depends(get_db)) -> RoundTurnManager:
    return RoundTurnManager(db)


def get_topstepx_client() -> TopstepXClient:
    """Process-wide broker client built from .env credentials.

    Raises 503 if credentials are not configured.
    """
    global _topstepx_client
    if _topstepx_client is None:
        client = TopstepXClient.from_env()
        if not client.username or not client.api_key or client.account_id is None:
            raise HTTPException(
                status_code=503,
                detail="TopstepX not configured. Set TOPSTEPX_USERNAME, TOPSTEPX_API_KEY and TOPSTEPX_ACCOUNT_ID.",
            )
        _topstepx_client = client
    return _topstepx_client
