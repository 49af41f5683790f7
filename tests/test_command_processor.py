import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from conftest import CENTER_LAT, CENTER_LON, add_sector, new_game, read_state, remove_sector
from savanna.domain.board_rules import Animal
from savanna.errors import SolutionGenerationError
from savanna.models.dc_models import BroadcastKind
from savanna.models.schema_models import GameStateSchema
from savanna.services import command_processor as processor_module
from savanna.services.game_store import GameTransaction
from savanna.services.timer_cache import TimerCache


def wrong_guess(solution):
    # a rotation of a non-periodic 13-board never equals the board
    return [a.value for a in solution[1:] + solution[:1]]


def test_new_game_starts_running(run_game, clock):
    async def scenario(processor):
        result = await processor.enqueue(new_game())
        return result, await read_state(processor)

    result, state = run_game(scenario)

    assert result.accepted is True
    assert result.broadcast == BroadcastKind.state
    snapshot = result.snapshot
    assert snapshot.status == "running"
    assert snapshot.guesses_remaining == 3
    assert snapshot.active_start_index == 0
    assert snapshot.active_sectors == [0, 1, 2, 3, 4, 5]
    assert snapshot.selected_sectors == []
    assert snapshot.solution_revealed is False
    assert snapshot.solution is None
    assert len(snapshot.hints) == 6
    assert snapshot.minutes_remaining == 120
    assert snapshot.deadline_utc == clock.now + timedelta(minutes=120)
    assert snapshot.version == 1
    assert state.solution is not None and len(state.solution) == 13


def test_commands_rejected_before_a_game_exists(run_game):
    async def scenario(processor):
        result = await processor.enqueue(add_sector(0))
        return result, await read_state(processor)

    result, state = run_game(scenario)
    assert result.accepted is False
    assert "not running" in result.message
    assert result.broadcast == BroadcastKind.none
    assert state.status == "waiting"
    assert state.version == 0


def test_selection_edits_and_versions(run_game, recorder):
    async def scenario(processor):
        await processor.enqueue(new_game())
        added = await processor.enqueue(add_sector(2))
        again = await processor.enqueue(add_sector(2))
        missing = await processor.enqueue(remove_sector(3))
        await processor.enqueue(add_sector(1))
        removed = await processor.enqueue(remove_sector(2))
        return added, again, missing, removed, await read_state(processor)

    added, again, missing, removed, state = run_game(scenario)

    assert added.accepted and added.snapshot.selected_sectors == [2]
    assert added.snapshot.version == 2
    assert again.accepted and again.broadcast == BroadcastKind.none and again.snapshot is None
    assert missing.accepted and missing.broadcast == BroadcastKind.none
    assert removed.accepted and removed.snapshot.selected_sectors == [1]
    assert state.version == 4
    assert recorder.kinds() == ["state", "state", "state", "state"]


def test_fogged_and_out_of_ring_positions_are_rejected(run_game):
    async def scenario(processor):
        await processor.enqueue(new_game())
        fogged = await processor.enqueue(add_sector(6))
        lat, lon = 51.5007, -0.1246
        center = await processor.enqueue({"type": "ADD_SECTOR", "lat": lat, "lon": lon})
        return fogged, center, await read_state(processor)

    fogged, center, state = run_game(scenario)
    assert not fogged.accepted and "fogged" in fogged.message
    assert not center.accepted and "not currently inside" in center.message
    assert state.selected_sectors == []
    assert state.version == 1


def test_selection_caps_at_four(run_game):
    async def scenario(processor):
        await processor.enqueue(new_game())
        for sector in range(4):
            await processor.enqueue(add_sector(sector))
        return await processor.enqueue(add_sector(4)), await read_state(processor)

    result, state = run_game(scenario)
    assert not result.accepted
    assert state.selected_sectors == [0, 1, 2, 3]
    assert state.version == 5


def test_survey_charges_time_and_shifts_window(run_game, clock):
    async def scenario(processor):
        await processor.enqueue(new_game())
        for sector in (2, 0, 1):
            await processor.enqueue(add_sector(sector))
        before = await read_state(processor)
        result = await processor.enqueue({"type": "RUN_SURVEY", "animal_type": "ZEBRA"})
        return before, result, await read_state(processor)

    before, result, after = run_game(scenario)

    expected = sum(1 for s in (0, 1, 2) if before.solution[s] == Animal.ZEBRA)
    assert result.accepted
    assert result.count == expected
    assert after.deadline_utc == before.deadline_utc - timedelta(minutes=15)
    assert after.active_start_index == 2
    assert after.selected_sectors == []
    assert after.status == "running"
    assert after.version == before.version + 1

    entry = result.snapshot.log[0]
    assert entry.sectors == [0, 1, 2]
    assert entry.animal == Animal.ZEBRA
    assert entry.count == expected
    assert entry.game_version == after.version
    assert entry.sectors_display == "1 to 3"
    assert result.snapshot.minutes_remaining == 105


def test_survey_rule_violations_leave_state_alone(run_game):
    async def scenario(processor):
        await processor.enqueue(new_game())
        await processor.enqueue(add_sector(0))
        single = await processor.enqueue({"type": "RUN_SURVEY", "animal_type": "OAK"})
        await processor.enqueue(add_sector(2))
        gap = await processor.enqueue({"type": "RUN_SURVEY", "animal_type": "OAK"})
        await processor.enqueue(add_sector(1))
        aardwolf = await processor.enqueue({"type": "RUN_SURVEY", "animal_type": "AARDWOLF"})
        hippo = await processor.enqueue({"type": "RUN_SURVEY", "animal_type": "HIPPO"})
        return single, gap, aardwolf, hippo, await read_state(processor)

    single, gap, aardwolf, hippo, state = run_game(scenario)
    assert not single.accepted and "contiguous" in single.message
    assert not gap.accepted
    assert not aardwolf.accepted and "cannot be surveyed" in aardwolf.message
    assert not hippo.accepted and hippo.message.startswith("Invalid command")
    assert state.selected_sectors == [0, 1, 2]
    assert state.version == 4


def test_survey_that_runs_out_of_time_loses(run_game):
    async def scenario(processor):
        await processor.enqueue(new_game())
        await processor.enqueue(add_sector(4))
        await processor.enqueue(add_sector(5))
        return await processor.enqueue({"type": "RUN_SURVEY", "animal_type": "LEOPARD"})

    result = run_game(scenario, start_time_minutes=10)
    assert result.accepted
    assert result.snapshot.status == "lost"
    assert result.snapshot.solution_revealed is True
    assert len(result.snapshot.solution) == 13
    assert result.snapshot.minutes_remaining == 0


def test_exact_guess_wins(run_game):
    async def scenario(processor):
        await processor.enqueue(new_game())
        state = await read_state(processor)
        miss = await processor.enqueue({"type": "SUBMIT_GUESS", "guess": wrong_guess(state.solution)})
        hit = await processor.enqueue(
            {"type": "SUBMIT_GUESS", "guess": [a.value for a in state.solution]}
        )
        return state, miss, hit

    state, miss, hit = run_game(scenario)
    assert miss.accepted and miss.correct is False
    assert miss.snapshot.guesses_remaining == 2
    assert hit.accepted and hit.correct is True
    assert hit.snapshot.status == "won"
    assert hit.snapshot.solution_revealed is True
    assert hit.snapshot.solution == state.solution
    assert hit.snapshot.version == 3


def test_three_wrong_guesses_lose(run_game):
    async def scenario(processor):
        await processor.enqueue(new_game())
        state = await read_state(processor)
        guess = {"type": "SUBMIT_GUESS", "guess": wrong_guess(state.solution)}
        results = [await processor.enqueue(guess) for _ in range(4)]
        return results, await read_state(processor)

    results, state = run_game(scenario)
    assert [r.snapshot.guesses_remaining for r in results[:2]] == [2, 1]
    assert results[2].snapshot.status == "lost"
    assert results[2].snapshot.solution_revealed is True
    assert results[2].snapshot.guesses_remaining == 0
    assert results[3].accepted is False
    assert state.version == 4


def test_malformed_guesses_are_rejected(run_game):
    async def scenario(processor):
        await processor.enqueue(new_game())
        short = await processor.enqueue({"type": "SUBMIT_GUESS", "guess": ["OAK"] * 12})
        bad = await processor.enqueue({"type": "SUBMIT_GUESS", "guess": ["OAK"] * 12 + ["LION"]})
        return short, bad, await read_state(processor)

    short, bad, state = run_game(scenario)
    assert not short.accepted and not bad.accepted
    assert state.guesses_remaining == 3
    assert state.version == 1


@pytest.mark.parametrize(
    "raw",
    [
        {"type": "ADD_SECTOR", "lat": 51.5},
        {"type": "DANCE"},
        {"type": "NEW_GAME", "center_lat": 123.0, "center_lon": 0.0},
        "not a command",
    ],
)
def test_invalid_commands_are_rejected(run_game, recorder, raw):
    async def scenario(processor):
        return await processor.enqueue(raw)

    result = run_game(scenario)
    assert result.accepted is False
    assert result.message.startswith("Invalid command")
    assert recorder.sent == []


def test_duplicate_token_is_not_applied_twice(run_game, recorder):
    token = str(uuid4())

    async def scenario(processor):
        await processor.enqueue(new_game())
        first = await processor.enqueue(add_sector(1, command_id=token))
        state_after_first = await read_state(processor)
        second = await processor.enqueue(remove_sector(1, command_id=token))
        return first, second, state_after_first, await read_state(processor)

    first, second, state_after_first, state = run_game(scenario)
    assert first.accepted and second.accepted
    assert second.message == "Duplicate command ignored."
    assert second.broadcast == BroadcastKind.none
    assert state == state_after_first
    assert recorder.kinds() == ["state", "state"]


def test_rejected_command_does_not_consume_its_token(run_game):
    token = str(uuid4())

    async def scenario(processor):
        await processor.enqueue(new_game())
        rejected = await processor.enqueue({"type": "RUN_SURVEY", "animal_type": "OAK", "command_id": token})
        await processor.enqueue(add_sector(0))
        await processor.enqueue(add_sector(1))
        retried = await processor.enqueue({"type": "RUN_SURVEY", "animal_type": "OAK", "command_id": token})
        return rejected, retried

    rejected, retried = run_game(scenario)
    assert rejected.accepted is False
    assert retried.accepted is True
    assert retried.message.startswith("Survey complete")


def test_new_game_resets_everything_and_keeps_version_moving(run_game):
    async def scenario(processor):
        await processor.enqueue(new_game())
        await processor.enqueue(add_sector(0))
        await processor.enqueue(add_sector(1))
        await processor.enqueue({"type": "RUN_SURVEY", "animal_type": "OAK"})
        state = await read_state(processor)
        await processor.enqueue({"type": "SUBMIT_GUESS", "guess": [a.value for a in state.solution]})
        return await processor.enqueue(new_game(center_lat=40.0, center_lon=-73.9))

    result = run_game(scenario)
    snapshot = result.snapshot
    assert snapshot.status == "running"
    assert snapshot.center_lat == 40.0
    assert snapshot.log == []
    assert snapshot.active_start_index == 0
    assert snapshot.solution is None
    assert snapshot.version == 6


def test_generation_failure_aborts_new_game(run_game, monkeypatch):
    def exhausted(rng=None, max_attempts=0):
        raise SolutionGenerationError("Failed to generate solution after 0 attempts.")

    monkeypatch.setattr(processor_module, "generate", exhausted)

    async def scenario(processor):
        result = await processor.enqueue(new_game())
        return result, await read_state(processor)

    result, state = run_game(scenario)
    assert result.accepted is False
    assert "Could not create a new game" in result.message
    assert state.status == "waiting"
    assert state.version == 0


def test_tick_expires_running_game(run_game, clock, recorder):
    async def scenario(processor):
        idle = await processor.enqueue({"type": "TICK"})
        await processor.enqueue(new_game())
        clock.advance(minutes=30)
        running = await processor.enqueue({"type": "TICK"})
        clock.advance(minutes=91)
        expired = await processor.enqueue({"type": "TICK"})
        after = await processor.enqueue({"type": "TICK"})
        return idle, running, expired, after, await read_state(processor)

    idle, running, expired, after, state = run_game(scenario)
    assert idle.broadcast == BroadcastKind.timer
    assert running.broadcast == BroadcastKind.timer
    assert expired.broadcast == BroadcastKind.state
    assert expired.snapshot.status == "lost"
    assert expired.snapshot.solution_revealed is True
    assert after.broadcast == BroadcastKind.timer
    assert state.version == 2
    assert recorder.kinds() == ["timer", "state", "timer", "state", "timer"]
    assert recorder.sent[2][1].minutes_remaining == 90


def test_tick_fast_path_skips_storage(run_game, clock):
    class ExplodingStore:
        def transaction(self):
            raise AssertionError("TICK touched storage")

    async def scenario(processor):
        await processor.enqueue(new_game())
        real_store = processor.store
        processor.store = ExplodingStore()
        try:
            clock.advance(minutes=5)
            return await processor.enqueue({"type": "TICK"})
        finally:
            processor.store = real_store

    result = run_game(scenario)
    assert result.accepted
    assert result.broadcast == BroadcastKind.timer
    assert result.snapshot is None


def test_tick_does_not_expire_a_game_a_survey_already_ended(run_game, clock):
    async def scenario(processor):
        await processor.enqueue(new_game())
        await processor.enqueue(add_sector(0))
        await processor.enqueue(add_sector(1))
        lost = await processor.enqueue({"type": "RUN_SURVEY", "animal_type": "OAK"})
        # a stale cache still believes the game is running
        processor.timer_cache.status = "running"
        tick = await processor.enqueue({"type": "TICK"})
        return lost, tick, await read_state(processor)

    lost, tick, state = run_game(scenario, start_time_minutes=15)
    assert lost.snapshot.status == "lost"
    assert tick.broadcast == BroadcastKind.timer
    assert state.version == lost.snapshot.version


def test_concurrent_producers_are_serialized(run_game):
    async def scenario(processor):
        await processor.enqueue(new_game())
        results = await asyncio.gather(*(processor.enqueue(add_sector(s)) for s in range(4)))
        return results, await read_state(processor)

    results, state = run_game(scenario)
    assert [r.snapshot.version for r in results] == [2, 3, 4, 5]
    assert state.selected_sectors == [0, 1, 2, 3]


def test_hint_failure_aborts_new_game(run_game, monkeypatch):
    def no_hints(solution, rng=None):
        raise SolutionGenerationError("No sector left for a VULTURE hint.")

    monkeypatch.setattr(processor_module, "generate_hints", no_hints)

    async def scenario(processor):
        result = await processor.enqueue(new_game())
        return result, await read_state(processor)

    result, state = run_game(scenario)
    assert result.accepted is False
    assert "Could not create a new game" in result.message
    assert state.status == "waiting"
    assert state.solution is None
    assert state.version == 0


def test_remove_on_fogged_sector_is_rejected(run_game):
    async def scenario(processor):
        await processor.enqueue(new_game())
        result = await processor.enqueue(remove_sector(6))
        return result, await read_state(processor)

    result, state = run_game(scenario)
    assert not result.accepted and "fogged" in result.message
    assert state.version == 1


def test_late_snapshot_read_does_not_hide_expiry(run_game, clock, monkeypatch):
    reading = asyncio.Event()
    release = asyncio.Event()
    real_read_log = GameTransaction.read_log

    async def held_read_log(self, limit):
        # only the first reader (the viewer) is held back
        if not reading.is_set():
            reading.set()
            await release.wait()
        return await real_read_log(self, limit)

    monkeypatch.setattr(GameTransaction, "read_log", held_read_log)

    async def scenario(processor):
        viewer = asyncio.create_task(processor.fetch_snapshot())
        await reading.wait()
        await processor.enqueue(new_game())
        release.set()
        stale = await viewer
        clock.advance(minutes=121)
        tick = await processor.enqueue({"type": "TICK"})
        return stale, tick, await read_state(processor)

    stale, tick, state = run_game(scenario)
    assert stale.status == "waiting"
    assert tick.broadcast == BroadcastKind.state
    assert tick.snapshot.status == "lost"
    assert state.status == "lost"


def test_timer_cache_ignores_older_state(clock):
    cache = TimerCache()
    running = GameStateSchema(
        status="running",
        center_lat=CENTER_LAT,
        center_lon=CENTER_LON,
        deadline_utc=clock.now + timedelta(minutes=30),
        active_start_index=0,
        selected_sectors=[],
        guesses_remaining=3,
        solution_revealed=False,
        hints=[],
        version=5,
    )
    waiting = running.model_copy(update={"status": "waiting", "deadline_utc": None, "version": 4})

    assert cache.refresh_from_state(running, clock.now) is True
    assert cache.refresh_from_state(waiting, clock.now) is False
    assert cache.status == "running"
    assert cache.minutes_remaining == 30
