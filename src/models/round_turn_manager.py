"""
Round Turn Manager
Persistence and journal operations for consolidated round turns
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select

from src.database.db_manager import to_naive_utc
from src.database.engine import dialect_insert
from src.database.models import RoundTurn, RoundTurnTag, Tag
from src.models.round_turn import RoundTurnRecord

logger = logging.getLogger(__name__)


class RoundTurnManager:
    """Round-turn store: upsert by composite id, range queries, notes and tags"""

    def __init__(self, db_manager):
        self.db = db_manager

    def clear(self, source: Optional[str] = None) -> int:
        """Delete round turns (one source, or all). Tag links cascade."""
        with self.db.get_session() as session:
            query = session.query(RoundTurn)
            if source:
                query = query.filter(RoundTurn.source == source)
            deleted = query.delete(synchronize_session=False)
        logger.info("Cleared %d round turns%s", deleted, f" for source {source}" if source else "")
        return deleted

    def prune(self, source: str, keep_ids: Iterable[str]) -> List[str]:
        """Delete the source's round turns whose id is not in keep_ids.

        Used after an incremental rebuild: when a new record merges or
        re-splits groups, the old composite ids no longer exist and would
        otherwise double count their records.  Returns the deleted ids.
        """
        keep = set(keep_ids)
        with self.db.get_session() as session:
            existing = session.execute(
                select(RoundTurn.id).where(RoundTurn.source == source)
            ).scalars().all()
            stale = sorted(rt_id for rt_id in existing if rt_id not in keep)
            if stale:
                session.query(RoundTurn).filter(RoundTurn.id.in_(stale)).delete(
                    synchronize_session=False,
                )
        if stale:
            logger.info("Pruned %d stale %s round turns: %s", len(stale), source, stale)
        return stale

    def upsert(self, record: RoundTurnRecord, overwrite: bool = True) -> bool:
        """Write one round turn keyed by its composite id.

        With overwrite=False an existing row wins and the write is a no-op.
        Otherwise aggregates are refreshed; notes are never touched.
        Returns True when a row was inserted or updated.
        """
        row = record.to_row()
        row["entry_time"] = to_naive_utc(row["entry_time"])
        row["exit_time"] = to_naive_utc(row["exit_time"])

        with self.db.get_session() as session:
            stmt = dialect_insert(RoundTurn).values(**row)
            if overwrite:
                stmt = stmt.on_conflict_do_update(
                    index_elements=["id"],
                    set_={k: getattr(stmt.excluded, k) for k in row if k != "id"},
                )
            else:
                stmt = stmt.on_conflict_do_nothing(index_elements=["id"])
            result = session.execute(stmt)
            return result.rowcount > 0

    def list_round_turns(
        self,
        entry_from: Optional[datetime] = None,
        exit_to: Optional[datetime] = None,
        source: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Round turns entered at/after entry_from and exited at/before exit_to, newest first"""
        with self.db.get_session() as session:
            query = select(RoundTurn)
            if entry_from is not None:
                query = query.where(RoundTurn.entry_time >= to_naive_utc(entry_from))
            if exit_to is not None:
                query = query.where(RoundTurn.exit_time <= to_naive_utc(exit_to))
            if source:
                query = query.where(RoundTurn.source == source)
            query = query.order_by(RoundTurn.entry_time.desc(), RoundTurn.id)
            return [rt.to_dict() for rt in session.execute(query).scalars().all()]

    def get(self, round_turn_id: str) -> Optional[Dict[str, Any]]:
        """One round turn with its tags, or None"""
        with self.db.get_session() as session:
            rt = session.get(RoundTurn, round_turn_id)
            if rt is None:
                return None
            result = rt.to_dict()
            result["tags"] = [
                {
                    "id": link.tag.id,
                    "name": link.tag.name,
                    "color": link.tag.color,
                    "tag_group_id": link.tag.tag_group_id,
                }
                for link in rt.tags
            ]
            return result

    def set_notes(self, round_turn_id: str, text: Optional[str]) -> bool:
        """Replace the free-text notes. Returns False if the round turn doesn't exist."""
        with self.db.get_session() as session:
            rt = session.get(RoundTurn, round_turn_id)
            if rt is None:
                return False
            rt.notes = text
        logger.info("Updated notes for round turn %s", round_turn_id)
        return True

    def add_tags(self, round_turn_id: str, tag_ids: Iterable[int]) -> Optional[int]:
        """Attach tags; already-attached ones are left alone.

        Returns the number of new links, or None if the round turn doesn't
        exist.  Raises ValueError for unknown tag ids.
        """
        tag_ids = sorted(set(tag_ids))
        with self.db.get_session() as session:
            if session.get(RoundTurn, round_turn_id) is None:
                return None

            known = set(session.execute(select(Tag.id).where(Tag.id.in_(tag_ids))).scalars())
            unknown = [t for t in tag_ids if t not in known]
            if unknown:
                raise ValueError(f"Unknown tag ids: {unknown}")

            added = 0
            for tag_id in tag_ids:
                stmt = dialect_insert(RoundTurnTag).values(
                    round_turn_id=round_turn_id, tag_id=tag_id,
                ).on_conflict_do_nothing(index_elements=["round_turn_id", "tag_id"])
                added += session.execute(stmt).rowcount
        return added

    def count(self, source: Optional[str] = None) -> int:
        with self.db.get_session() as session:
            query = session.query(RoundTurn)
            if source:
                query = query.filter(RoundTurn.source == source)
            return query.count()
