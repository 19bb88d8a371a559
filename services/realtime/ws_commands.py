"""Dispatch UI websocket commands to the live conversation controller."""
from __future__ import annotations

import json
from typing import Any, Dict, Optional

from fastapi import WebSocket

from services.realtime.conversation_controller import LiveConversationController
from utils.media_validation import decode_image_payload


class LiveCommandHandler:
	"""Route inbound UI commands for the live conversation."""

	def __init__(self, controller: LiveConversationController) -> None:
		self.controller = controller

	async def handle(self, websocket: WebSocket, payload: Dict[str, Any]) -> None:
		"""Process a single inbound websocket payload."""
		request_id = payload.get("request_id")
		message_type = payload.get("type")
		try:
			if message_type == "live.connect":
				result = await self.controller.connect()
			elif message_type == "recording.start":
				if not await self.controller.start_recording():
					raise RuntimeError(self.controller.error or "Not connected")
				result = self.controller.snapshot()
			elif message_type == "recording.stop":
				await self.controller.stop_recording()
				result = self.controller.snapshot()
			elif message_type == "live.disconnect":
				await self.controller.disconnect()
				result = self.controller.snapshot()
			elif message_type == "frame.update":
				result = self._update_frame(payload)
			elif message_type == "vision.request":
				if not await self.controller.request_vision_analysis():
					raise RuntimeError("No camera frame available for vision analysis.")
				result = self.controller.snapshot()
			elif message_type == "state.get":
				result = self.controller.snapshot()
			else:
				raise ValueError("Unsupported message type.")
			await self._send(websocket, {"type": f"{message_type}.ack", "request_id": request_id, "state": result})
		except Exception as exc:
			await self._send_error(websocket, request_id, str(exc))

	def _update_frame(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
		"""Decode a base64 frame from the payload and hand it to the session."""
		image = (payload.get("image") or "").strip()
		if not image:
			raise ValueError("Frame image is required.")
		frame = decode_image_payload(image.encode("utf-8"))
		if not self.controller.update_video_frame(frame):
			raise RuntimeError("No live session to receive frames.")
		return {"accepted": True, "bytes": len(frame)}

	async def _send_error(self, websocket: WebSocket, request_id: Any, detail: str) -> None:
		await self._send(websocket, {"type": "error", "request_id": request_id, "detail": detail})

	async def _send(self, websocket: WebSocket, payload: Dict[str, Any]) -> None:
		await websocket.send_text(json.dumps(payload))
