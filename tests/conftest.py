import asyncio
import math
import os
import random
import tempfile
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest

# The app module builds its engine at import; point it at a throwaway SQLite file.
_DB_DIR = tempfile.mkdtemp(prefix="savanna-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'app.sqlite3')}"

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402

from savanna.domain.geometry import EARTH_RADIUS_M, SLICE_DEG  # noqa: E402
from savanna.services.command_processor import CommandProcessor  # noqa: E402
from savanna.services.game_store import GameStore  # noqa: E402

CENTER_LAT = 51.5007
CENTER_LON = -0.1246


def point_in_sector(sector: int, distance_m: float = 400.0, center=(CENTER_LAT, CENTER_LON)):
    """Destination point at distance_m along the middle bearing of sector."""
    bearing = math.radians((sector + 0.5) * SLICE_DEG)
    lat1, lon1 = math.radians(center[0]), math.radians(center[1])
    delta = distance_m / EARTH_RADIUS_M
    lat2 = math.asin(
        math.sin(lat1) * math.cos(delta) + math.cos(lat1) * math.sin(delta) * math.cos(bearing)
    )
    lon2 = lon1 + math.atan2(
        math.sin(bearing) * math.sin(delta) * math.cos(lat1),
        math.cos(delta) - math.sin(lat1) * math.sin(lat2),
    )
    return math.degrees(lat2), math.degrees(lon2)


class Clock:
    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingManager:
    """Stands in for ConnectionManager and remembers what would have been sent."""

    def __init__(self):
        self.sent = []

    async def broadcast_snapshot(self, snapshot):
        self.sent.append(("state", snapshot))

    async def broadcast_timer(self, timer):
        self.sent.append(("timer", timer))

    def kinds(self):
        return [kind for kind, _ in self.sent]


@asynccontextmanager
async def running_processor(db_url: str, **kwargs):
    engine = create_async_engine(db_url)
    store = GameStore(async_sessionmaker(engine, expire_on_commit=False))
    await store.bootstrap()
    processor = CommandProcessor(store, **kwargs)
    processor.start()
    try:
        yield processor
    finally:
        await processor.stop()
        await engine.dispose()


async def read_state(processor: CommandProcessor):
    async with processor.store.transaction() as tx:
        return await tx.read_state()


def new_game(**extra) -> dict:
    return {"type": "NEW_GAME", "center_lat": CENTER_LAT, "center_lon": CENTER_LON, **extra}


def add_sector(sector: int, **extra) -> dict:
    lat, lon = point_in_sector(sector)
    return {"type": "ADD_SECTOR", "lat": lat, "lon": lon, **extra}


def remove_sector(sector: int, **extra) -> dict:
    lat, lon = point_in_sector(sector)
    return {"type": "REMOVE_SECTOR", "lat": lat, "lon": lon, **extra}


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def recorder():
    return RecordingManager()


@pytest.fixture
def run_game(tmp_path, clock, recorder):
    """Run `async def scenario(processor)` against a fresh database."""
    db_url = f"sqlite+aiosqlite:///{tmp_path / 'game.sqlite3'}"

    def _run(scenario, **kwargs):
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("rng", random.Random(20240601))
        kwargs.setdefault("manager", recorder)

        async def main():
            async with running_processor(db_url, **kwargs) as processor:
                return await scenario(processor)

        return asyncio.run(main())

    return _run
