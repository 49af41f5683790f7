from apscheduler.schedulers.asyncio import AsyncIOScheduler
import logging
from fastapi import FastAPI
from contextlib import asynccontextmanager

from savanna.db import engine
from savanna.load_secrets import log_level, tick_interval_seconds
from savanna.routers import game
from savanna.routers.game import command_processor, game_store

logging.basicConfig(level=log_level)


@asynccontextmanager
async def lifespan(app):
    """Create the game record if needed, start the command queue and the TICK job.
    This function is called to start the server.
    """
    await game_store.bootstrap()
    command_processor.start()

    # The scheduler binds to the running loop, so it is created per lifespan.
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        command_processor.enqueue,
        "interval",
        seconds=tick_interval_seconds,
        args=[{"type": "TICK"}],
        id="tick",
        replace_existing=True,
        max_instances=1,
    )
    scheduler.start()
    logging.info("Start Server")
    try:
        yield
    finally:
        scheduler.shutdown(wait=False)
        await command_processor.stop()
        await engine.dispose()
        logging.info("Stop Server")


app = FastAPI(lifespan=lifespan)
app.include_router(game.game_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8080)
