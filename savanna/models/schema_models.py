from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, field_validator

from savanna.domain.board_rules import Animal


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything stored is UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class HintSchema(BaseModel):
    animal: Animal
    sector: int

    class Config:
        from_attributes = True


class GameStateSchema(BaseModel):
    status: str
    center_lat: float | None
    center_lon: float | None
    deadline_utc: datetime | None
    active_start_index: int
    selected_sectors: List[int]
    guesses_remaining: int
    solution: Optional[List[Animal]] = None
    solution_revealed: bool
    hints: List[HintSchema]
    version: int
    updated_at: datetime | None = None

    class Config:
        from_attributes = True

    @field_validator("deadline_utc", "updated_at")
    @classmethod
    def normalize_timezone(cls, value):
        return _as_utc(value)

    @field_validator("selected_sectors", "hints", mode="before")
    @classmethod
    def none_as_empty(cls, value):
        return value or []


class SurveyLogSchema(BaseModel):
    id: int
    log_id: UUID | None
    created_at: datetime
    sectors: List[int]
    animal: Animal
    count: int
    game_version: int

    class Config:
        from_attributes = True

    @field_validator("created_at")
    @classmethod
    def normalize_timezone(cls, value):
        return _as_utc(value)
