"""Frame encoder service.

Provides a small OOP wrapper around Pillow to turn camera frames into
JPEG bytes for upload. Frames arrive either as decoded `PIL.Image.Image`
objects or as encoded image bytes (JPEG/PNG from the glasses stream) and
always leave as baseline RGB JPEG at the configured quality.

Public class: `FrameEncoder`

Example:
    encoder = FrameEncoder(quality=60)
    jpeg = encoder.to_jpeg(frame)
"""
from __future__ import annotations

import base64
import io
from typing import Tuple, Union

from PIL import Image

Frame = Union[Image.Image, bytes, bytearray]

REALTIME_JPEG_QUALITY = 60
VISION_JPEG_QUALITY = 80
QUICK_VISION_JPEG_QUALITY = 70


class FrameEncoder:
    """Compress frames to JPEG.

    Args:
        quality: JPEG quality in the 1-95 range Pillow recommends.
        max_size: Optional bounding box; larger frames are downscaled with
            their aspect ratio preserved before compression.
        background: Color used when flattening frames that carry alpha.
    """

    def __init__(
        self,
        quality: int = REALTIME_JPEG_QUALITY,
        max_size: Tuple[int, int] | None = None,
        background: Tuple[int, int, int] | None = None,
    ):
        if not 1 <= quality <= 95:
            raise ValueError("JPEG quality must be between 1 and 95")
        self.quality = quality
        self.max_size = max_size
        self.background = background or (255, 255, 255)

    def to_jpeg(self, frame: Frame) -> bytes:
        """Return JPEG bytes for a frame.

        Raises:
            ValueError: If encoded bytes cannot be opened as an image.
        """
        src = self._open(frame)

        # Flatten alpha against the background color
        if src.mode in ("RGBA", "LA", "P"):
            src = src.convert("RGBA")
            flat = Image.new("RGB", src.size, self.background)
            flat.paste(src, mask=src.split()[3])
            src = flat
        elif src.mode != "RGB":
            src = src.convert("RGB")

        if self.max_size:
            src = src.copy()
            src.thumbnail(self.max_size, Image.LANCZOS)

        out_io = io.BytesIO()
        src.save(out_io, format="JPEG", quality=self.quality)
        return out_io.getvalue()

    def to_base64(self, frame: Frame) -> str:
        """Return the JPEG encoding of a frame as a base64 string."""
        return base64.b64encode(self.to_jpeg(frame)).decode("utf-8")

    def to_data_url(self, frame: Frame) -> str:
        """Return the frame as a `data:image/jpeg;base64,...` URL."""
        return f"data:image/jpeg;base64,{self.to_base64(frame)}"

    @staticmethod
    def _open(frame: Frame) -> Image.Image:
        if isinstance(frame, Image.Image):
            return frame
        if not frame:
            raise ValueError("Frame is empty")
        try:
            image = Image.open(io.BytesIO(bytes(frame)))
            image.load()
        except Exception as exc:
            raise ValueError("Frame bytes are not a supported image format") from exc
        return image
