"""Pydantic request models for FuturesLedger API."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class RoundTurnNotesUpdate(BaseModel):
    notes: Optional[str] = None
    content: Optional[str] = None

    @property
    def text(self) -> Optional[str]:
        return self.notes if self.notes else self.content


class RoundTurnTagsAdd(BaseModel):
    tag_ids: List[int] = Field(min_length=1)


class RebuildRequest(BaseModel):
    source: str = "csv"
    incremental: bool = False


class BackfillRequest(BaseModel):
    start: Optional[datetime] = None
    window_days: Optional[int] = Field(default=None, gt=0)
    dry_run: bool = False
    resume: bool = False


class TagGroupCreate(BaseModel):
    name: str
    description: Optional[str] = None
    color: Optional[str] = None


class TagCreate(BaseModel):
    name: str
    tag_group_id: int
    color: Optional[str] = None


class RulesUpdate(BaseModel):
    content: str
