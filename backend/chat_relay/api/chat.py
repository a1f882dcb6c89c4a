"""Chat socket endpoint relaying prompts to the session controller."""

import asyncio
import json
import logging
import uuid
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from starlette.websockets import WebSocketState

from chat_relay.llm.chat.controller import (
    TransportSendError,
    get_session_controller,
)
from chat_relay.llm.chat.models import RelayEvent, SessionInfo

logger = logging.getLogger(__name__)

router = APIRouter()

USER_QUERY_EVENT = "user-query"
NEW_CHAT_EVENT = "new-chat"

# Strong references to in-flight cycles; the loop only keeps weak ones
_cycle_tasks: set[asyncio.Task] = set()


class WebSocketTransport:
    """Adapts a FastAPI WebSocket to the controller's transport interface."""

    def __init__(self, websocket: WebSocket, session_id: str):
        self.websocket = websocket
        self.session_id = session_id
        self._closed = False

    @property
    def is_connected(self) -> bool:
        return (
            not self._closed
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def mark_closed(self) -> None:
        self._closed = True

    async def send(self, event: str, data: Any) -> None:
        try:
            await self.websocket.send_json(RelayEvent(event=event, data=data).model_dump())
        except (WebSocketDisconnect, RuntimeError) as e:
            # Starlette raises RuntimeError when sending on a closed socket
            self._closed = True
            raise TransportSendError(str(e), session_id=self.session_id) from e


@router.websocket("/chat/ws")
async def chat_websocket(websocket: WebSocket) -> None:
    """WebSocket endpoint for relayed chat.

    Message format from client:
    {"event": "user-query", "data": "prompt text"}
    {"event": "new-chat"}

    Events sent to client:
    {"event": "response", "data": "formatted reply"}
    {"event": "response", "data": "Finished"}

    Each connection is its own session; history does not survive a reconnect.
    """
    await websocket.accept()

    controller = get_session_controller()
    session_id = str(uuid.uuid4())[:12]
    transport = WebSocketTransport(websocket, session_id)
    reason = "client disconnect"

    logger.info(f"Client connected: {session_id}")

    try:
        while True:
            try:
                data = await websocket.receive_json()
            except (json.JSONDecodeError, KeyError, TypeError) as e:
                # Binary frames carry no "text" key
                logger.error(f"Socket error for {session_id}: unreadable frame ({e!r})")
                continue

            try:
                message = RelayEvent.model_validate(data)
            except ValidationError as e:
                logger.error(f"Socket error for {session_id}: malformed event ({e})")
                continue

            if message.event == USER_QUERY_EVENT:
                if not isinstance(message.data, str):
                    logger.error(f"Socket error for {session_id}: user-query without text")
                    continue
                logger.info(f"User query from {session_id}: {message.data}")
                task = asyncio.create_task(controller.handle_prompt(transport, message.data))
                _cycle_tasks.add(task)
                task.add_done_callback(_cycle_tasks.discard)

            elif message.event == NEW_CHAT_EVENT:
                controller.handle_new_chat(session_id)

            else:
                logger.warning(f"Ignoring unknown event {message.event!r} from {session_id}")

    except WebSocketDisconnect as e:
        reason = f"code {e.code}"
    except Exception as e:
        reason = "error"
        logger.error(f"Socket error for {session_id}: {e}")
    finally:
        transport.mark_closed()
        controller.handle_disconnect(session_id, reason)


@router.get("/chat/sessions")
async def list_chat_sessions() -> list[SessionInfo]:
    """List sessions currently holding history."""
    return get_session_controller().store.list_sessions()


# Admin endpoint for monitoring
@router.get("/chat/stats")
async def get_chat_stats() -> dict[str, Any]:
    """Get chat relay statistics (admin endpoint)."""
    stats = get_session_controller().store.get_stats()
    stats["in_flight_cycles"] = len(_cycle_tasks)
    return stats
