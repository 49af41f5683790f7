import json
import logging

from fastapi import APIRouter, Body, HTTPException, WebSocket, WebSocketDisconnect, status
from uuid6 import uuid7

from savanna.db import Session
from savanna.load_secrets import log_limit, start_time_minutes
from savanna.manager import ConnectionManager
from savanna.services.command_processor import CommandProcessor
from savanna.services.game_store import GameStore

game_router = APIRouter()
connect_manager = ConnectionManager()
game_store = GameStore(Session)
command_processor = CommandProcessor(
    game_store,
    connect_manager,
    start_time_minutes=start_time_minutes,
    log_limit=log_limit,
)


class GameServer:
    @staticmethod
    @game_router.get("/health")
    async def health() -> dict:
        return {"ok": True}

    @staticmethod
    @game_router.get("/state")
    async def get_state() -> dict:
        """Send the current full snapshot

        Returns:
            dict: {"ok": True, "state": snapshot}
        """
        try:
            snapshot = await command_processor.fetch_snapshot()
        except Exception as e:
            logging.error(f"Failed to read state: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e)
            )
        return {"ok": True, "state": snapshot.model_dump(mode="json")}

    @staticmethod
    @game_router.post("/command")
    async def post_command(command: dict = Body(...)) -> dict:
        """Enqueue a command and answer with its result once processed

        Args:
            command (dict): {"type": ..., "command_id": optional token, ...command fields}

        Returns:
            dict: accepted, message, broadcast, snapshot (state broadcasts only)
        """
        if not command.get("command_id"):
            command["command_id"] = str(uuid7())
        result = await command_processor.enqueue(command)
        return result.model_dump(mode="json")

    @staticmethod
    @game_router.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Viewer connection: one snapshot on connect, then broadcasts.

        Text frames sent by the client are treated as commands and answered privately.
        """
        await connect_manager.connect(websocket)
        try:
            snapshot = await command_processor.fetch_snapshot()
            await connect_manager.send_personal_message(
                {"type": "STATE_SNAPSHOT", "payload": snapshot.model_dump(mode="json")},
                websocket,
            )
            while True:
                raw = await websocket.receive_text()
                try:
                    command = json.loads(raw)
                except ValueError:
                    # left to command validation, which rejects it
                    command = raw
                result = await command_processor.enqueue(command)
                await connect_manager.send_personal_message(
                    {"type": "COMMAND_RESULT", "payload": result.model_dump(mode="json")},
                    websocket,
                )
        except WebSocketDisconnect:
            logging.info("Websocket disconnected")
        finally:
            connect_manager.disconnect(websocket)
