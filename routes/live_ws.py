"""WebSocket endpoint streaming live conversation events to the UI."""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket
from starlette.websockets import WebSocketDisconnect

from services.realtime.conversation_controller import LiveConversationController
from services.realtime.ws_commands import LiveCommandHandler

LOGGER = logging.getLogger(__name__)

router = APIRouter()


def _require_controller(websocket: WebSocket) -> LiveConversationController:
	controller = getattr(websocket.app.state, "live_controller", None)
	if controller is None:
		raise HTTPException(status_code=500, detail="Live controller unavailable")
	return controller


async def _forward_events(websocket: WebSocket, queue: asyncio.Queue) -> None:
	while True:
		event = await queue.get()
		await websocket.send_text(json.dumps(event))


async def _receive_commands(websocket: WebSocket, handler: LiveCommandHandler) -> None:
	while True:
		try:
			raw = await websocket.receive_text()
		except WebSocketDisconnect:
			return
		try:
			payload = json.loads(raw)
		except ValueError:
			await websocket.send_text(json.dumps({"type": "error", "detail": "Payload must be JSON"}))
			continue
		if not isinstance(payload, dict):
			await websocket.send_text(json.dumps({"type": "error", "detail": "Payload must be a JSON object"}))
			continue
		await handler.handle(websocket, payload)


@router.websocket("/live/events")
async def live_events_socket(websocket: WebSocket, controller: LiveConversationController = Depends(_require_controller)):
	"""Push controller events to the client and accept commands on the same socket."""
	await websocket.accept()
	queue = controller.subscribe()
	handler = LiveCommandHandler(controller)
	sender = asyncio.create_task(_forward_events(websocket, queue))
	receiver = asyncio.create_task(_receive_commands(websocket, handler))
	try:
		done, pending = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
		for task in pending:
			task.cancel()
		await asyncio.gather(*pending, return_exceptions=True)
		for task in done:
			exc = task.exception()
			if exc is not None and not isinstance(exc, WebSocketDisconnect):
				LOGGER.warning("Live events socket closed after error: %s", exc)
	finally:
		controller.unsubscribe(queue)
	try:
		await websocket.close()
	except RuntimeError:
		pass
