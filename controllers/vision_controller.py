"""Quick recognition of a single uploaded photo."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, UploadFile

from services.quick_vision import QuickVisionService
from services.realtime.errors import ConfigurationError
from utils.media_validation import read_image_bytes

LOGGER = logging.getLogger(__name__)


async def release_quick_vision(state: Any) -> None:
	"""Close the cached quick-vision client, if one was built."""
	cached = getattr(state, "quick_vision", None)
	state.quick_vision = None
	if cached is None:
		return
	try:
		await cached[1].vision_client.close()
	except Exception as exc:
		LOGGER.warning("Error closing quick-vision client: %s", exc)


async def _quick_vision(request: Request) -> QuickVisionService:
	"""Return the quick-vision service for the current provider, building it on first use."""
	state = request.app.state
	provider = state.live_controller.provider
	cached = getattr(state, "quick_vision", None)
	if cached is not None and cached[0] is provider:
		return cached[1]
	service = state.session_factory.create_quick_vision(provider)
	await release_quick_vision(state)
	state.quick_vision = (provider, service)
	return service


async def quick_recognize(request: Request, file: UploadFile, prompt: Optional[str] = None) -> Dict[str, Any]:
	"""Describe one photo with the provider's vision model.

	Returns:
		A dict with `text` and `latency`; upstream failures map to HTTP 502.
	"""
	image = await read_image_bytes(file)
	try:
		service = await _quick_vision(request)
	except ConfigurationError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from exc

	cleaned_prompt = prompt.strip() if prompt else None
	result = await service.recognize(image, cleaned_prompt or None)
	if not result.ok:
		status = 400 if (result.error or "").startswith("Invalid image") else 502
		raise HTTPException(status_code=status, detail=result.error)
	return {"text": result.text, "latency": round(result.latency, 3)}
