import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from judge import state
from judge.config import get_settings
from judge.sessions import SessionStore

logger = logging.getLogger("judge.ws.sessions")
router = APIRouter()

_TERMINAL = ("completed", "error")


@router.websocket("/ws/sessions/{session_id}")
async def websocket_session(websocket: WebSocket, session_id: str):
    """Relay update events for one session until it reaches a terminal state."""
    await websocket.accept()
    if state.redis_client is None:
        await websocket.close(code=1011)
        return

    settings = get_settings()
    pubsub = state.redis_client.pubsub()
    await pubsub.subscribe(settings.events.session_channel)

    snapshot = await SessionStore(state.redis_client, settings.session).projection(session_id)
    await websocket.send_text(json.dumps({"sessionId": session_id, "snapshot": snapshot}))

    done = asyncio.Event()
    if snapshot.get("status") in _TERMINAL:
        done.set()

    async def send_updates():
        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    event = json.loads(message["data"])
                except ValueError:
                    continue
                if event.get("sessionId") != session_id:
                    continue
                await websocket.send_text(message["data"])
                if event.get("status") in _TERMINAL:
                    done.set()
                    return
        except Exception as e:
            logger.info("session relay stopped session=%s: %s", session_id, e)
            done.set()

    async def heartbeat():
        try:
            while True:
                await asyncio.sleep(25)
                await websocket.send_text(json.dumps({"type": "ping"}))
        except Exception:
            done.set()

    async def receive():
        try:
            while True:
                await websocket.receive_text()
        except (WebSocketDisconnect, RuntimeError):
            done.set()

    tasks = [
        asyncio.create_task(send_updates()),
        asyncio.create_task(heartbeat()),
        asyncio.create_task(receive()),
    ]
    try:
        await done.wait()
    finally:
        for task in tasks:
            task.cancel()
        await pubsub.unsubscribe(settings.events.session_channel)
        if hasattr(pubsub, "aclose"):
            await pubsub.aclose()
        else:
            await pubsub.close()
        try:
            await websocket.close()
        except RuntimeError:
            pass
