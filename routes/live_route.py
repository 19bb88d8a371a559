"""FastAPI routes controlling the live conversation."""

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from pydantic import BaseModel

from controllers.live_controller import (
	connect_live,
	disconnect_live,
	get_state,
	request_vision,
	set_provider,
	start_recording,
	stop_recording,
	upload_frame,
)

router = APIRouter(prefix="/live")


class ProviderPayload(BaseModel):
	provider: str


@router.post("/connect")
async def connect_route(request: Request):
	try:
		return await connect_live(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/recording/start")
async def start_recording_route(request: Request):
	try:
		return await start_recording(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/recording/stop")
async def stop_recording_route(request: Request):
	try:
		return await stop_recording(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/disconnect")
async def disconnect_route(request: Request):
	try:
		return await disconnect_live(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/state")
async def state_route(request: Request):
	return await get_state(request)


@router.post("/frame")
async def frame_route(request: Request, image: UploadFile = File(...)):
	"""Replace the pending camera frame with the uploaded image."""
	try:
		return await upload_frame(request, image)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/vision")
async def vision_route(request: Request):
	"""Send the pending camera frame to the model without waiting for the throttle."""
	try:
		return await request_vision(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.put("/provider")
async def provider_route(request: Request, payload: ProviderPayload):
	try:
		return await set_provider(request, payload.provider)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
