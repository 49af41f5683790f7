from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from savanna.domain.board_rules import Animal
from savanna.domain.geometry import N_SECTORS

Latitude = Annotated[float, Field(ge=-90.0, le=90.0, allow_inf_nan=False)]
Longitude = Annotated[float, Field(ge=-180.0, le=180.0, allow_inf_nan=False)]


class GameStatus(str, Enum):
    waiting = "waiting"
    running = "running"
    won = "won"
    lost = "lost"


class BroadcastKind(str, Enum):
    none = "none"  # nothing a client can see changed
    timer = "timer"  # countdown only
    state = "state"  # full snapshot


class BaseCommand(BaseModel):
    command_id: Optional[UUID] = None

    @field_validator("command_id", mode="before")
    @classmethod
    def ignore_unparsable_token(cls, value):
        # An unusable token only disables deduplication for this command.
        if value is None or isinstance(value, UUID):
            return value
        try:
            return UUID(str(value))
        except ValueError:
            return None


class NewGameCommand(BaseCommand):
    type: Literal["NEW_GAME"]
    center_lat: Latitude
    center_lon: Longitude


class AddSectorCommand(BaseCommand):
    type: Literal["ADD_SECTOR"]
    lat: Latitude
    lon: Longitude


class RemoveSectorCommand(BaseCommand):
    type: Literal["REMOVE_SECTOR"]
    lat: Latitude
    lon: Longitude


class RunSurveyCommand(BaseCommand):
    type: Literal["RUN_SURVEY"]
    animal_type: Animal


class SubmitGuessCommand(BaseCommand):
    type: Literal["SUBMIT_GUESS"]
    guess: List[Animal] = Field(min_length=N_SECTORS, max_length=N_SECTORS)


class TickCommand(BaseCommand):
    type: Literal["TICK"]


CommandModel = Annotated[
    Union[
        NewGameCommand,
        AddSectorCommand,
        RemoveSectorCommand,
        RunSurveyCommand,
        SubmitGuessCommand,
        TickCommand,
    ],
    Field(discriminator="type"),
]
command_adapter = TypeAdapter(CommandModel)


class HintModel(BaseModel):
    animal: Animal
    sector: int


class SurveyLogModel(BaseModel):
    id: int
    created_at: datetime
    sectors: List[int]
    animal: Animal
    count: int
    game_version: int
    sectors_display: str


class SnapshotModel(BaseModel):
    status: GameStatus
    center_lat: float | None
    center_lon: float | None

    n_sectors: int
    inner_radius_m: float
    outer_radius_m: float

    active_len: int
    active_start_index: int
    active_sectors: List[int]
    selected_sectors: List[int]

    deadline_utc: datetime | None
    minutes_remaining: int | None

    guesses_remaining: int
    hints: List[HintModel]

    solution_revealed: bool
    solution: Optional[List[Animal]] = None
    version: int
    server_time_utc: datetime

    log: List[SurveyLogModel] = []


class TimerModel(BaseModel):
    status: GameStatus
    minutes_remaining: int | None
    server_time_utc: datetime


class CommandResultModel(BaseModel):
    accepted: bool
    message: str
    broadcast: BroadcastKind = BroadcastKind.none
    snapshot: Optional[SnapshotModel] = None
    count: Optional[int] = None  # RUN_SURVEY match count
    correct: Optional[bool] = None  # SUBMIT_GUESS outcome
