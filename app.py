#!/usr/bin/env python3

"""
FuturesLedger Web Application
Local journal for TopstepX futures round turns
"""

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

load_dotenv()

from src.dependencies import db
from src.routers import health, round_turns, rules, sync, tags, trades

# Configure logging
logger.add(
    "logs/webapp_{time}.log",
    rotation="1 day",
    retention="7 days",
    level="INFO"
)

# Initialize FastAPI app
app = FastAPI(
    title="FuturesLedger",
    description="Futures trading journal built on consolidated round turns",
    version="1.0.0"
)

# Add CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(round_turns.router)
app.include_router(tags.router)
app.include_router(rules.router)
app.include_router(trades.router)
app.include_router(sync.router)


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup"""
    logger.info("Starting FuturesLedger Web App")
    db.initialize_database()


if __name__ == "__main__":
    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
