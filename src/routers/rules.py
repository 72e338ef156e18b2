"""Trading rules document routes."""

from fastapi import APIRouter, Depends
from loguru import logger

from src.database.db_manager import DatabaseManager
from src.database.models import Rules
from src.dependencies import get_db
from src.schemas import RulesUpdate

router = APIRouter()


def _rules_dict(rules: Rules) -> dict:
    return {
        "id": rules.id,
        "content": rules.content,
        "created_at": rules.created_at.isoformat() if rules.created_at else None,
        "updated_at": rules.updated_at.isoformat() if rules.updated_at else None,
    }


@router.get("/api/rules")
async def get_rules(db: DatabaseManager = Depends(get_db)):
    """Fetch the rules document, creating an empty one on first read"""
    with db.get_session() as session:
        rules = session.query(Rules).order_by(Rules.id.asc()).first()
        if rules is None:
            logger.info("No rules found, creating default entry")
            rules = Rules(content="")
            session.add(rules)
            session.flush()
            session.refresh(rules)
        return _rules_dict(rules)


@router.patch("/api/rules")
async def update_rules(body: RulesUpdate, db: DatabaseManager = Depends(get_db)):
    """Replace the rules document content"""
    with db.get_session() as session:
        rules = session.query(Rules).order_by(Rules.id.asc()).first()
        if rules is None:
            rules = Rules(content=body.content)
            session.add(rules)
        else:
            rules.content = body.content
        session.flush()
        session.refresh(rules)
        logger.info(f"Rules saved ({len(body.content)} chars)")
        return _rules_dict(rules)
