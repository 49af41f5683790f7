"""Authoritative command processing for the singleton game.

Every command runs one full cycle before the next starts: lock and read the
record, validate, write and commit, then broadcast. Handlers raise
CommandValidationError / RuleViolation / DuplicateCommand /
SolutionGenerationError; the transaction rolls back on any of them and
`process` turns the exception into a non-throwing CommandResultModel.
"""
import logging
import random
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from pydantic import ValidationError

from savanna.command_queue import CommandQueue
from savanna.converter import DataConverter
from savanna.domain.board_rules import (
    MAX_GUESSES,
    MAX_SELECTION,
    SHIFT_PER_SURVEY,
    SURVEYABLE,
    contiguous_run,
    count_in_sectors,
    is_sector_active,
    survey_cost_minutes,
    wrap,
)
from savanna.domain.geometry import sector_for_position
from savanna.domain.hints import generate_hints
from savanna.domain.solver import generate
from savanna.errors import (
    CommandValidationError,
    DuplicateCommand,
    RuleViolation,
    SolutionGenerationError,
)
from savanna.manager import ConnectionManager
from savanna.models.dc_models import (
    AddSectorCommand,
    BaseCommand,
    BroadcastKind,
    CommandResultModel,
    GameStatus,
    NewGameCommand,
    RemoveSectorCommand,
    RunSurveyCommand,
    SnapshotModel,
    SubmitGuessCommand,
    TickCommand,
    command_adapter,
)
from savanna.models.schema_models import GameStateSchema
from savanna.services.game_store import GameStore, GameTransaction
from savanna.services.timer_cache import TimerCache

data_converter = DataConverter()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _accepted(message: str, broadcast: BroadcastKind = BroadcastKind.state, **extra) -> CommandResultModel:
    return CommandResultModel(accepted=True, message=message, broadcast=broadcast, **extra)


def _rejected(message: str) -> CommandResultModel:
    return CommandResultModel(accepted=False, message=message, broadcast=BroadcastKind.none)


def parse_command(raw: Any) -> BaseCommand:
    """Validate a raw transport payload into a typed command

    Raises:
        CommandValidationError: Unknown type or missing/invalid fields
    """
    if isinstance(raw, BaseCommand):
        return raw
    try:
        return command_adapter.validate_python(raw)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'command'}: {err['msg']}"
            for err in e.errors()
        )
        raise CommandValidationError(f"Invalid command: {details}") from e


class CommandProcessor:
    def __init__(
        self,
        store: GameStore,
        manager: ConnectionManager | None = None,
        start_time_minutes: int = 120,
        log_limit: int = 200,
        clock: Callable[[], datetime] = utc_now,
        rng: random.Random | None = None,
    ):
        self.store = store
        self.manager = manager
        self.start_time_minutes = start_time_minutes
        self.log_limit = log_limit
        self.clock = clock
        self.rng = rng or random.Random()
        self.timer_cache = TimerCache()
        self.queue = CommandQueue(self.process)
        self._handlers = {
            NewGameCommand: self._new_game,
            AddSectorCommand: self._add_sector,
            RemoveSectorCommand: self._remove_sector,
            RunSurveyCommand: self._run_survey,
            SubmitGuessCommand: self._submit_guess,
        }

    # ---- lifecycle / entry points -------------------------------------

    def start(self):
        self.queue.start()

    async def stop(self):
        await self.queue.stop()

    async def enqueue(self, command: Any) -> CommandResultModel:
        """Queue a command and wait until it has been fully processed and broadcast"""
        return await self.queue.put(command)

    async def fetch_snapshot(self) -> SnapshotModel:
        """Read the authoritative record and refresh the timer cache from it"""
        now = self.clock()
        async with self.store.transaction() as tx:
            state = await tx.read_state()
            log = await tx.read_log(self.log_limit)
        self.timer_cache.refresh_from_state(state, now)
        return data_converter.convert_gamestateschema_to_snapshotmodel(state, log, now)

    async def process(self, raw: Any) -> CommandResultModel:
        """Run one command through its whole cycle; never raises"""
        try:
            result = await self.handle_command(raw)
        except CommandValidationError as e:
            result = _rejected(str(e))
        except RuleViolation as e:
            result = _rejected(str(e))
        except DuplicateCommand as e:
            logging.info(f"Duplicate command {e.command_id} ignored")
            result = _accepted("Duplicate command ignored.", BroadcastKind.none)
        except SolutionGenerationError as e:
            logging.error(f"Game creation aborted: {e}")
            self.timer_cache.invalidate()
            result = _rejected(f"Could not create a new game: {e}")
        except Exception as e:
            logging.exception(f"Command failed: {e}")
            self.timer_cache.invalidate()
            result = _rejected(f"Command failed: {e}")

        await self._publish(result)
        return result

    async def handle_command(self, raw: Any) -> CommandResultModel:
        command = parse_command(raw)
        logging.debug(f"Handling {command.type}")

        if isinstance(command, TickCommand):
            return await self._tick()

        now = self.clock()
        async with self.store.transaction() as tx:
            state = await tx.lock_state()
            self.timer_cache.refresh_from_state(state, now)

            if command.command_id is not None:
                if not await tx.record_command(command.command_id):
                    raise DuplicateCommand(command.command_id)

            handler = self._handlers[type(command)]
            result = await handler(tx, state, command, now)

        logging.info(f"{command.type}: {result.message}")
        return result

    # ---- broadcast ------------------------------------------------------

    async def _publish(self, result: CommandResultModel):
        if result.broadcast == BroadcastKind.state:
            try:
                result.snapshot = await self.fetch_snapshot()
            except Exception as e:
                logging.error(f"Failed to read snapshot for broadcast: {e}")
                self.timer_cache.invalidate()
                return
            if self.manager is not None:
                await self.manager.broadcast_snapshot(result.snapshot)
        elif result.broadcast == BroadcastKind.timer:
            now = self.clock()
            self.timer_cache.recompute(now)
            if self.manager is not None:
                await self.manager.broadcast_timer(
                    data_converter.convert_timercache_to_timermodel(self.timer_cache, now)
                )

    # ---- TICK -----------------------------------------------------------

    async def _tick(self) -> CommandResultModel:
        now = self.clock()
        if not self.timer_cache.loaded:
            async with self.store.transaction() as tx:
                state = await tx.read_state()
            self.timer_cache.refresh_from_state(state, now)

        self.timer_cache.recompute(now)
        if not self.timer_cache.needs_expiry(now):
            return _accepted("tick", BroadcastKind.timer)

        async with self.store.transaction() as tx:
            # Re-check under the lock: a survey may already have ended the game.
            state = await tx.lock_state()
            self.timer_cache.refresh_from_state(state, now)
            expired = (
                state.status == GameStatus.running.value
                and state.deadline_utc is not None
                and now >= state.deadline_utc
            )
            if expired:
                await tx.update_state(
                    {
                        "status": GameStatus.lost.value,
                        "solution_revealed": True,
                        "version": state.version + 1,
                    }
                )

        if not expired:
            return _accepted("tick", BroadcastKind.timer)
        logging.info("Deadline passed, game lost")
        return _accepted("Time is up. You lose.")

    # ---- command handlers -----------------------------------------------

    async def _new_game(
        self, tx: GameTransaction, state: GameStateSchema, command: NewGameCommand, now: datetime
    ) -> CommandResultModel:
        solution = generate(self.rng)
        hints = generate_hints(solution, self.rng)
        deadline = now + timedelta(minutes=self.start_time_minutes)

        await tx.clear_log()
        await tx.update_state(
            {
                "status": GameStatus.running.value,
                "center_lat": command.center_lat,
                "center_lon": command.center_lon,
                "deadline_utc": deadline,
                "active_start_index": 0,
                "selected_sectors": [],
                "guesses_remaining": MAX_GUESSES,
                "solution": [animal.value for animal in solution],
                "solution_revealed": False,
                "hints": hints,
                "version": state.version + 1,
            }
        )
        return _accepted("New game started.")

    @staticmethod
    def _require_running(state: GameStateSchema):
        if state.status != GameStatus.running.value:
            raise RuleViolation(f"Game is not running (status={state.status}).")
        if state.center_lat is None or state.center_lon is None:
            raise RuleViolation("Game center is not set. Start a new game first.")

    def _target_sector(self, state: GameStateSchema, lat: float, lon: float) -> int:
        sector = sector_for_position(state.center_lat, state.center_lon, lat, lon)
        if sector is None:
            raise RuleViolation("You are not currently inside any sector.")
        if not is_sector_active(sector, state.active_start_index):
            raise RuleViolation("That sector is currently out of play (fogged).")
        return sector

    async def _add_sector(
        self, tx: GameTransaction, state: GameStateSchema, command: AddSectorCommand, now: datetime
    ) -> CommandResultModel:
        self._require_running(state)
        sector = self._target_sector(state, command.lat, command.lon)
        selected = list(state.selected_sectors)
        if sector in selected:
            return _accepted("Sector already selected.", BroadcastKind.none)
        if len(selected) >= MAX_SELECTION:
            raise RuleViolation(f"You cannot select more than {MAX_SELECTION} sectors.")

        selected.append(sector)
        await tx.update_state({"selected_sectors": sorted(selected), "version": state.version + 1})
        return _accepted("Sector added.")

    async def _remove_sector(
        self, tx: GameTransaction, state: GameStateSchema, command: RemoveSectorCommand, now: datetime
    ) -> CommandResultModel:
        self._require_running(state)
        sector = self._target_sector(state, command.lat, command.lon)
        if sector not in state.selected_sectors:
            return _accepted("Sector not selected.", BroadcastKind.none)

        selected = sorted(s for s in state.selected_sectors if s != sector)
        await tx.update_state({"selected_sectors": selected, "version": state.version + 1})
        return _accepted("Sector removed.")

    async def _run_survey(
        self, tx: GameTransaction, state: GameStateSchema, command: RunSurveyCommand, now: datetime
    ) -> CommandResultModel:
        self._require_running(state)
        animal = command.animal_type
        if animal not in SURVEYABLE:
            raise RuleViolation(f"{animal.value} cannot be surveyed.")

        ok, run = contiguous_run(state.selected_sectors)
        if not ok:
            raise RuleViolation("Selected sectors must be 2-4 and contiguous.")
        if not all(is_sector_active(s, state.active_start_index) for s in run):
            raise RuleViolation("Selection includes out-of-play (fogged) sectors.")
        cost = survey_cost_minutes(len(run))
        if cost is None:
            raise RuleViolation("Invalid survey length.")
        if state.solution is None or state.deadline_utc is None:
            raise RuleViolation("Server missing solution. Start a new game.")

        count = count_in_sectors(state.solution, run, animal)
        deadline = state.deadline_utc - timedelta(minutes=cost)
        version = state.version + 1
        expired = now >= deadline

        await tx.append_log(run, animal.value, count, version)
        patch = {
            "deadline_utc": deadline,
            "active_start_index": wrap(state.active_start_index + SHIFT_PER_SURVEY),
            "selected_sectors": [],
            "version": version,
        }
        if expired:
            patch["status"] = GameStatus.lost.value
            patch["solution_revealed"] = True
        await tx.update_state(patch)

        if expired:
            return _accepted("Time ran out. You lose.", count=count)
        return _accepted(f"Survey complete: {count}", count=count)

    async def _submit_guess(
        self, tx: GameTransaction, state: GameStateSchema, command: SubmitGuessCommand, now: datetime
    ) -> CommandResultModel:
        self._require_running(state)
        if state.solution is None:
            raise RuleViolation("Server missing solution. Start a new game.")

        version = state.version + 1
        if list(command.guess) == list(state.solution):
            await tx.update_state(
                {"status": GameStatus.won.value, "solution_revealed": True, "version": version}
            )
            return _accepted("Correct! You win.", correct=True)

        remaining = max(0, state.guesses_remaining - 1)
        if remaining == 0:
            await tx.update_state(
                {
                    "guesses_remaining": 0,
                    "status": GameStatus.lost.value,
                    "solution_revealed": True,
                    "version": version,
                }
            )
            return _accepted("Incorrect. No guesses remaining. You lose.", correct=False)

        await tx.update_state({"guesses_remaining": remaining, "version": version})
        return _accepted(f"Incorrect. Guesses remaining: {remaining}.", correct=False)
