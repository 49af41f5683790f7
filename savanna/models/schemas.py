from datetime import datetime, timezone

from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.schema import Column
from sqlalchemy.types import JSON, Boolean, DateTime, Float, Integer, String, Uuid
from uuid6 import uuid7

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in dev/tests).
JsonColumn = JSON().with_variant(JSONB(), "postgresql")

GAME_STATE_ID = 1


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class GameState(Base):
    """The singleton authoritative record (always id=1)."""

    __tablename__ = "game_state"
    id = Column(Integer, primary_key=True, default=GAME_STATE_ID)
    status = Column(String, nullable=False, default="waiting")
    center_lat = Column(Float, nullable=True)
    center_lon = Column(Float, nullable=True)
    deadline_utc = Column(DateTime(timezone=True), nullable=True)
    active_start_index = Column(Integer, nullable=False, default=0)
    selected_sectors = Column(JsonColumn, nullable=False, default=list)  # list[int]
    guesses_remaining = Column(Integer, nullable=False, default=3)
    solution = Column(JsonColumn, nullable=True)  # list[str], one animal per sector
    solution_revealed = Column(Boolean, nullable=False, default=False)
    hints = Column(JsonColumn, nullable=False, default=list)  # list[{"animal", "sector"}]
    version = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), default=utc_now)


class SurveyLog(Base):
    __tablename__ = "survey_log"
    id = Column(Integer, primary_key=True, autoincrement=True)
    log_id = Column(Uuid, default=uuid7)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    sectors = Column(JsonColumn, nullable=False)  # ordered run, list[int]
    animal = Column(String, nullable=False)
    count = Column(Integer, nullable=False)
    game_version = Column(Integer, nullable=False)


class CommandDedup(Base):
    __tablename__ = "commands_dedup"
    command_id = Column(Uuid, primary_key=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
