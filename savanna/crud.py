from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc, update, delete
from sqlalchemy.dialects import postgresql, sqlite
from typing import List
import logging

from savanna.models.schema_models import GameStateSchema, SurveyLogSchema
from savanna.models.schemas import (
    GAME_STATE_ID,
    CommandDedup,
    GameState,
    SurveyLog,
    utc_now,
)
from uuid import UUID

# None of these helpers commit; the caller owns the transaction (see GameStore).


def _insert_for(session: AsyncSession):
    """Dialect insert supporting ON CONFLICT DO NOTHING."""
    if session.bind.dialect.name == "postgresql":
        return postgresql.insert
    return sqlite.insert


class ReadData:
    @staticmethod
    async def read_game_state(session: AsyncSession, for_update: bool = False) -> GameStateSchema | None:
        """Read the singleton game state row

        Args:
            session (AsyncSession): Session inside an open transaction
            for_update (bool, optional): Take the row's exclusive lock (SELECT ... FOR UPDATE). Defaults to False.

        Returns:
            GameStateSchema | None: The game state, None if the row is missing
        """
        try:
            stmt = select(GameState).where(GameState.id == GAME_STATE_ID)
            if for_update:
                stmt = stmt.with_for_update()
            result = await session.execute(stmt)
            result = result.scalars().first()

            if result is None:
                return None

            return GameStateSchema.model_validate(result)
        except Exception as e:
            logging.error(f"Failed to read game state: {e}")
            raise

    @staticmethod
    async def read_survey_log(limit: int, session: AsyncSession) -> List[SurveyLogSchema]:
        """Read the most recent survey log entries, newest first

        Args:
            limit (int): Maximum number of entries

        Returns:
            List[SurveyLogSchema]: Survey log entries
        """
        try:
            stmt = select(SurveyLog).order_by(desc(SurveyLog.id)).limit(limit)
            result = await session.execute(stmt)
            return [SurveyLogSchema.model_validate(row) for row in result.scalars().all()]
        except Exception as e:
            logging.error(f"Failed to read survey log: {e}")
            raise


class CreateData:
    @staticmethod
    async def create_game_state_if_absent(session: AsyncSession) -> bool:
        """Insert the waiting singleton row unless it already exists

        Returns:
            bool: True if the row was created
        """
        try:
            insert = _insert_for(session)
            stmt = (
                insert(GameState)
                .values(
                    id=GAME_STATE_ID,
                    status="waiting",
                    active_start_index=0,
                    selected_sectors=[],
                    guesses_remaining=3,
                    solution_revealed=False,
                    hints=[],
                    version=0,
                    updated_at=utc_now(),
                )
                .on_conflict_do_nothing(index_elements=[GameState.id])
            )
            result = await session.execute(stmt)
            return result.rowcount == 1
        except Exception as e:
            logging.error(f"Failed to create game state: {e}")
            raise

    @staticmethod
    async def create_command_dedup(command_id: UUID, session: AsyncSession) -> bool:
        """Record an idempotency token

        Args:
            command_id (UUID): Client supplied token

        Returns:
            bool: True if the token is new, False if it was already recorded
        """
        try:
            insert = _insert_for(session)
            stmt = (
                insert(CommandDedup)
                .values(command_id=command_id, created_at=utc_now())
                .on_conflict_do_nothing(index_elements=[CommandDedup.command_id])
            )
            result = await session.execute(stmt)
            return result.rowcount == 1
        except Exception as e:
            logging.error(f"Failed to record command {command_id}: {e}")
            raise

    @staticmethod
    async def create_survey_log(
        sectors: List[int], animal: str, count: int, game_version: int, session: AsyncSession
    ):
        """Append a survey log entry

        Args:
            sectors (List[int]): Ordered surveyed run
            animal (str): Surveyed animal
            count (int): Number of sectors in the run holding the animal
            game_version (int): Version produced by the survey
        """
        try:
            session.add(
                SurveyLog(
                    sectors=list(sectors),
                    animal=animal,
                    count=count,
                    game_version=game_version,
                    created_at=utc_now(),
                )
            )
            await session.flush()
        except Exception as e:
            logging.error(f"Failed to create survey log: {e}")
            raise


class UpdateData:
    @staticmethod
    async def update_game_state(patch: dict, session: AsyncSession):
        """Update the given fields of the singleton row

        Args:
            patch (dict): Column name -> new value
        """
        if not patch:
            return
        try:
            stmt = (
                update(GameState)
                .where(GameState.id == GAME_STATE_ID)
                .values(**patch, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            await session.execute(stmt)
        except Exception as e:
            logging.error(f"Failed to update game state {sorted(patch)}: {e}")
            raise


class DeleteData:
    @staticmethod
    async def delete_survey_log(session: AsyncSession):
        """Clear the survey log (new game)"""
        try:
            await session.execute(delete(SurveyLog))
        except Exception as e:
            logging.error(f"Failed to clear survey log: {e}")
            raise
