"""Validation helpers for uploaded camera frames."""

import base64
import binascii

from fastapi import HTTPException, UploadFile

ALLOWED_IMAGE_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "image/bmp",
}
MAX_IMAGE_BYTES = 10 * 1024 * 1024


def decode_image_payload(raw: bytes) -> bytes:
    """Return binary image bytes, decoding base64 text uploads when necessary.

    Glasses bridges sometimes post the frame as a base64 string (optionally a
    data URL) instead of the binary file.
    """
    head = raw[:32].lstrip()
    if head.startswith(b"data:image/"):
        _, _, raw = raw.partition(b",")
    elif raw[:3] == b"\xff\xd8\xff" or raw[:8] == b"\x89PNG\r\n\x1a\n":
        return raw
    try:
        return base64.b64decode(raw.strip(), validate=True)
    except (binascii.Error, ValueError):
        return raw


def validate_image_file(image_file: UploadFile) -> None:
    """Validate that the uploaded file claims to be a supported image format."""
    if image_file.content_type:
        content_type = image_file.content_type.lower().split(";", 1)[0].strip()
        if content_type == "application/octet-stream":
            return
        if content_type not in ALLOWED_IMAGE_TYPES:
            raise HTTPException(status_code=415, detail=f"Unsupported image content type: {image_file.content_type}")
    elif image_file.filename and not image_file.filename.lower().endswith((".jpg", ".jpeg", ".png", ".webp", ".bmp")):
        raise HTTPException(status_code=415, detail="Unsupported or missing image content type.")


async def read_image_bytes(image_file: UploadFile) -> bytes:
    """Read validated image bytes, ensuring the upload is neither empty nor oversized."""
    validate_image_file(image_file)
    raw = await image_file.read()
    if not raw:
        raise HTTPException(status_code=400, detail="Uploaded image file is empty.")
    if len(raw) > MAX_IMAGE_BYTES:
        raise HTTPException(status_code=413, detail="Uploaded image file is too large.")
    return decode_image_payload(raw)
