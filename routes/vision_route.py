"""FastAPI route for one-shot quick recognition."""

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile

from controllers.vision_controller import quick_recognize

router = APIRouter(prefix="/vision")


@router.post("/quick")
async def quick_route(request: Request, image: UploadFile = File(...), prompt: str | None = Form(None)):
	"""Describe the uploaded photo and return the text."""
	try:
		return await quick_recognize(request, image, prompt)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
