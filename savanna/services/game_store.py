"""DB service layer for the singleton game record.

- The command processor should not touch DB sessions directly; it calls this module.
- This layer owns session/transaction boundaries.
- Uses CRUD helpers that do NOT commit inside session.begin().
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from savanna.crud import CreateData, DeleteData, ReadData, UpdateData
from savanna.models.schema_models import GameStateSchema, SurveyLogSchema
from savanna.models.schemas import Base


class GameStateMissing(RuntimeError):
    pass


class GameTransaction:
    """Storage operations bound to one open all-or-nothing transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def lock_state(self) -> GameStateSchema:
        state = await ReadData.read_game_state(self.session, for_update=True)
        if state is None:
            raise GameStateMissing("game_state row missing")
        return state

    async def read_state(self) -> GameStateSchema:
        state = await ReadData.read_game_state(self.session)
        if state is None:
            raise GameStateMissing("game_state row missing")
        return state

    async def record_command(self, command_id: UUID) -> bool:
        return await CreateData.create_command_dedup(command_id, self.session)

    async def append_log(self, sectors: List[int], animal: str, count: int, game_version: int):
        await CreateData.create_survey_log(sectors, animal, count, game_version, self.session)

    async def clear_log(self):
        await DeleteData.delete_survey_log(self.session)

    async def update_state(self, patch: dict):
        await UpdateData.update_game_state(patch, self.session)

    async def read_log(self, limit: int) -> List[SurveyLogSchema]:
        return await ReadData.read_survey_log(limit, self.session)


class GameStore:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[GameTransaction]:
        """Commit when the block exits normally, roll back on any exception."""
        async with self.session_factory() as session:
            async with session.begin():
                yield GameTransaction(session)

    async def create_schema(self):
        engine = self.session_factory.kw["bind"]
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def bootstrap(self):
        """Create tables and the waiting singleton row if they do not exist yet."""
        await self.create_schema()
        async with self.transaction() as tx:
            created = await CreateData.create_game_state_if_absent(tx.session)
        if created:
            logging.info("Created waiting game state")
