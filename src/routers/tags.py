"""Tag group and tag CRUD endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from src.database.db_manager import DatabaseManager
from src.database.models import Tag, TagGroup
from src.dependencies import get_db
from src.schemas import TagCreate, TagGroupCreate

router = APIRouter()

DEFAULT_TAG_COLOR = "#3B82F6"


def _tag_dict(tag: Tag) -> dict:
    return {
        "id": tag.id,
        "name": tag.name,
        "color": tag.color or DEFAULT_TAG_COLOR,
        "tag_group_id": tag.tag_group_id,
        "usage_count": len(tag.round_turn_tags),
    }


def _group_dict(group: TagGroup) -> dict:
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "color": group.color,
        "tags": [_tag_dict(t) for t in sorted(group.tags, key=lambda t: t.name)],
    }


# ---------------------------------------------------------------------------
# Tag groups
# ---------------------------------------------------------------------------

@router.get("/api/tag-groups")
async def list_tag_groups(db: DatabaseManager = Depends(get_db)):
    """List tag groups with their tags."""
    with db.get_session() as session:
        rows = session.query(TagGroup).order_by(TagGroup.name.asc()).all()
        return [_group_dict(g) for g in rows]


@router.post("/api/tag-groups")
async def create_tag_group(body: TagGroupCreate, db: DatabaseManager = Depends(get_db)):
    """Create a new tag group."""
    name = body.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Tag group name is required")

    with db.get_session() as session:
        if session.query(TagGroup).filter(TagGroup.name == name).first():
            raise HTTPException(status_code=400, detail=f"Tag group '{name}' already exists")

        group = TagGroup(name=name, description=body.description, color=body.color)
        session.add(group)
        session.flush()
        return _group_dict(group)


@router.delete("/api/tag-groups/{group_id}")
async def delete_tag_group(group_id: int, db: DatabaseManager = Depends(get_db)):
    """Delete a tag group together with its tags."""
    with db.get_session() as session:
        group = session.query(TagGroup).filter(TagGroup.id == group_id).first()
        if not group:
            raise HTTPException(status_code=404, detail="Tag group not found")

        name = group.name
        deleted_tags = len(group.tags)
        session.delete(group)

    logger.info(f"Deleted tag group {name} (ID: {group_id}) with {deleted_tags} tags")
    return {
        "success": True,
        "message": f'Tag group "{name}" deleted successfully',
        "deleted_tags_count": deleted_tags,
    }


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

@router.get("/api/tags")
async def list_tags(tag_group_id: Optional[int] = None, db: DatabaseManager = Depends(get_db)):
    """List tags, optionally only one group's."""
    with db.get_session() as session:
        query = session.query(Tag)
        if tag_group_id is not None:
            query = query.filter(Tag.tag_group_id == tag_group_id)
        return [_tag_dict(t) for t in query.order_by(Tag.name.asc()).all()]


@router.post("/api/tags")
async def create_tag(body: TagCreate, db: DatabaseManager = Depends(get_db)):
    """Create a tag in a group; an existing tag of that name is returned as is."""
    name = body.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Tag name is required")

    with db.get_session() as session:
        if session.get(TagGroup, body.tag_group_id) is None:
            raise HTTPException(status_code=400, detail=f"Tag group {body.tag_group_id} does not exist")

        existing = session.query(Tag).filter(
            Tag.name == name, Tag.tag_group_id == body.tag_group_id,
        ).first()
        if existing:
            return _tag_dict(existing)

        tag = Tag(name=name, color=body.color or DEFAULT_TAG_COLOR, tag_group_id=body.tag_group_id)
        session.add(tag)
        session.flush()
        return _tag_dict(tag)


@router.delete("/api/tags/{tag_id}")
async def delete_tag(tag_id: int, db: DatabaseManager = Depends(get_db)):
    """Delete a tag and all its associations."""
    with db.get_session() as session:
        tag = session.query(Tag).filter(Tag.id == tag_id).first()
        if not tag:
            raise HTTPException(status_code=404, detail="Tag not found")

        name = tag.name
        group_name = tag.tag_group.name
        usage_count = len(tag.round_turn_tags)
        session.delete(tag)

    logger.info(f"Deleted tag {name} (ID: {tag_id}) from group {group_name}")
    return {
        "success": True,
        "message": f'Tag "{name}" deleted successfully',
        "tag_group_name": group_name,
        "usage_count": usage_count,
    }
