"""
WebSocket handler for live sessions.

One connection may join several sessions. Inbound messages:
    {"event": "join-session", "data": {"sessionId": ...}}
    {"event": "leave-session", "data": {"sessionId": ...}}
    {"event": "edit-command", "data": {"sessionId": ..., "command": ...}}

Outbound messages are whatever the broadcaster queues for this
connection, plus "heartbeat" when idle and "error" for rejected input.
"""

import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from vidforge.services.broadcaster import (
    ProgressBroadcaster,
    SessionNotFoundError,
    SessionNotJoinedError,
    Subscriber,
)

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])


def _error(message: str) -> dict:
    return {"event": "error", "data": {"message": message}}


def handle_client_message(
    broadcaster: ProgressBroadcaster,
    subscriber: Subscriber,
    message: object,
) -> None:
    """
    Apply one inbound message.

    Rejections are delivered to the sender as "error" events.
    """
    if not isinstance(message, dict):
        subscriber.deliver(_error("Message must be a JSON object"))
        return

    event = message.get("event")
    data = message.get("data") or {}
    session_id = data.get("sessionId") if isinstance(data, dict) else None

    if event not in ("join-session", "leave-session", "edit-command"):
        subscriber.deliver(_error(f"Unknown event: {event}"))
        return
    if not isinstance(session_id, str) or not session_id:
        subscriber.deliver(_error(f"{event} requires sessionId"))
        return

    try:
        if event == "join-session":
            broadcaster.join(session_id, subscriber)
        elif event == "leave-session":
            broadcaster.unsubscribe(session_id, subscriber)
        else:
            broadcaster.relay_command(session_id, subscriber, data.get("command"))
    except SessionNotFoundError:
        subscriber.deliver(_error(f"Session not found: {session_id}"))
    except SessionNotJoinedError:
        subscriber.deliver(_error(f"Not joined to session: {session_id}"))


async def _receive_loop(
    websocket: WebSocket,
    broadcaster: ProgressBroadcaster,
    subscriber: Subscriber,
) -> None:
    while True:
        try:
            text = await websocket.receive_text()
        except WebSocketDisconnect:
            return

        try:
            message = json.loads(text)
        except ValueError:
            subscriber.deliver(_error("Invalid JSON"))
            continue

        handle_client_message(broadcaster, subscriber, message)


async def _send_loop(websocket: WebSocket, subscriber: Subscriber, heartbeat_interval: float) -> None:
    while True:
        try:
            # Wait for next message with timeout
            message = await asyncio.wait_for(subscriber.queue.get(), timeout=heartbeat_interval)
        except asyncio.TimeoutError:
            message = {"event": "heartbeat", "data": {}}
        await websocket.send_json(message)


@router.websocket("/ws")
async def session_websocket(websocket: WebSocket) -> None:
    """
    WebSocket endpoint for live progress and collaborative edit commands.

    Example client (Python):
        async with websockets.connect("ws://localhost:8802/ws") as ws:
            await ws.send(json.dumps({"event": "join-session", "data": {"sessionId": sid}}))
            async for message in ws:
                print(json.loads(message))

    Args:
        websocket: WebSocket connection
    """
    services = websocket.app.state.services
    broadcaster: ProgressBroadcaster = services.broadcaster

    await websocket.accept()
    subscriber = broadcaster.new_subscriber()
    logger.info(f"WebSocket connected: {subscriber}")

    receiver = asyncio.create_task(_receive_loop(websocket, broadcaster, subscriber))
    sender = asyncio.create_task(
        _send_loop(websocket, subscriber, services.settings.heartbeat_interval)
    )

    try:
        done, _ = await asyncio.wait(
            {receiver, sender}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.error(f"WebSocket error for {subscriber}: {error}")
    finally:
        for task in (receiver, sender):
            task.cancel()
        await asyncio.gather(receiver, sender, return_exceptions=True)
        broadcaster.disconnect(subscriber)
        logger.info(f"WebSocket closed: {subscriber}")
