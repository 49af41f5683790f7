from datetime import datetime
from typing import List

from savanna.domain.board_rules import ACTIVE_LEN, active_sectors, sectors_display
from savanna.domain.geometry import INNER_RADIUS_M, N_SECTORS, OUTER_RADIUS_M
from savanna.models.dc_models import (
    HintModel,
    SnapshotModel,
    SurveyLogModel,
    TimerModel,
)
from savanna.models.schema_models import GameStateSchema, SurveyLogSchema
from savanna.services.timer_cache import TimerCache, minutes_remaining


class DataConverter:
    """This class is used to convert data between different formats."""

    def convert_surveylogschema_to_surveylogmodel(self, log_data: SurveyLogSchema) -> SurveyLogModel:
        text, _ = sectors_display(log_data.sectors)
        return SurveyLogModel(
            id=log_data.id,
            created_at=log_data.created_at,
            sectors=log_data.sectors,
            animal=log_data.animal,
            count=log_data.count,
            game_version=log_data.game_version,
            sectors_display=text,
        )

    def convert_gamestateschema_to_snapshotmodel(
        self, state_data: GameStateSchema, log_data: List[SurveyLogSchema], now: datetime
    ) -> SnapshotModel:
        """Convert the GameStateSchema to the SnapshotModel to send client

        The solution only leaves the server once it has been revealed.

        Args:
            state_data (GameStateSchema): The authoritative game state
            log_data (List[SurveyLogSchema]): Recent survey log entries, newest first
            now (datetime): Current UTC time

        Returns:
            SnapshotModel: Full public snapshot
        """
        solution = state_data.solution if state_data.solution_revealed else None
        return SnapshotModel(
            status=state_data.status,
            center_lat=state_data.center_lat,
            center_lon=state_data.center_lon,
            n_sectors=N_SECTORS,
            inner_radius_m=INNER_RADIUS_M,
            outer_radius_m=OUTER_RADIUS_M,
            active_len=ACTIVE_LEN,
            active_start_index=state_data.active_start_index,
            active_sectors=active_sectors(state_data.active_start_index),
            selected_sectors=state_data.selected_sectors,
            deadline_utc=state_data.deadline_utc,
            minutes_remaining=minutes_remaining(state_data.deadline_utc, now),
            guesses_remaining=state_data.guesses_remaining,
            hints=[HintModel(animal=h.animal, sector=h.sector) for h in state_data.hints],
            solution_revealed=state_data.solution_revealed,
            solution=solution,
            version=state_data.version,
            server_time_utc=now,
            log=[self.convert_surveylogschema_to_surveylogmodel(entry) for entry in log_data],
        )

    def convert_timercache_to_timermodel(self, timer_cache: TimerCache, now: datetime) -> TimerModel:
        return TimerModel(
            status=timer_cache.status,
            minutes_remaining=timer_cache.minutes_remaining,
            server_time_utc=now,
        )
