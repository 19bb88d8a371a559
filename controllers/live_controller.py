"""Request-level helpers for the live conversation endpoints."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import HTTPException, Request, UploadFile

from models.provider_models import AIProvider
from services.realtime.conversation_controller import LiveConversationController
from services.realtime.errors import ConfigurationError
from utils.media_validation import read_image_bytes


def _controller(request: Request) -> LiveConversationController:
	controller = getattr(request.app.state, "live_controller", None)
	if controller is None:
		raise HTTPException(status_code=503, detail="Live controller unavailable")
	return controller


async def connect_live(request: Request) -> Dict[str, Any]:
	"""Connect a new live session for the current provider."""
	controller = _controller(request)
	try:
		return await controller.connect()
	except ConfigurationError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from exc


async def start_recording(request: Request) -> Dict[str, Any]:
	"""Start microphone streaming; 409 when no session is connected."""
	controller = _controller(request)
	if not await controller.start_recording():
		raise HTTPException(status_code=409, detail=controller.error or "Not connected")
	return controller.snapshot()


async def stop_recording(request: Request) -> Dict[str, Any]:
	controller = _controller(request)
	await controller.stop_recording()
	return controller.snapshot()


async def disconnect_live(request: Request) -> Dict[str, Any]:
	controller = _controller(request)
	await controller.disconnect()
	return controller.snapshot()


async def get_state(request: Request) -> Dict[str, Any]:
	return _controller(request).snapshot()


async def upload_frame(request: Request, file: UploadFile) -> Dict[str, Any]:
	"""Replace the pending camera frame of the live session."""
	controller = _controller(request)
	frame = await read_image_bytes(file)
	if not controller.update_video_frame(frame):
		raise HTTPException(status_code=409, detail="No live session to receive frames")
	return {"accepted": True, "bytes": len(frame)}


async def request_vision(request: Request) -> Dict[str, Any]:
	"""Send the pending camera frame right away; 409 without a connected session or frame."""
	controller = _controller(request)
	if not await controller.request_vision_analysis():
		raise HTTPException(status_code=409, detail="No camera frame available for vision analysis")
	return {"requested": True}


async def set_provider(request: Request, provider_id: str) -> Dict[str, Any]:
	"""Switch provider, rebuilding a connected conversation."""
	controller = _controller(request)
	try:
		provider = AIProvider(provider_id.strip().lower())
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=f"Unknown provider: {provider_id}") from exc
	try:
		return await controller.switch_provider(provider)
	except ConfigurationError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from exc
