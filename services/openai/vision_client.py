"""Single-shot image description over an OpenAI-compatible chat endpoint."""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from models.provider_models import ProviderEndpoints
from services.frame_encoder import VISION_JPEG_QUALITY, Frame, FrameEncoder
from services.openai.media_inputs import build_vision_messages
from services.openai.response_parser import extract_message_text, extract_usage

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_TOKENS = 2000


class VisionStatus(Enum):
    SUCCESS = 1
    ERROR = -1


@dataclass
class VisionResult:
    text: Optional[str]
    error: Optional[str]
    status: VisionStatus
    latency: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is VisionStatus.SUCCESS

    @classmethod
    def failure(cls, error: str, latency: float = 0.0) -> "VisionResult":
        return cls(text=None, error=error, status=VisionStatus.ERROR, latency=latency)


class VisionClient:
    """Describe one image with the provider's vision model.

    Failures are returned as a `VisionResult` with `VisionStatus.ERROR`
    rather than raised, so callers on the audio path can log and move on.
    """

    def __init__(
        self,
        endpoints: ProviderEndpoints,
        api_key: str,
        client: Optional[AsyncOpenAI] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        jpeg_quality: int = VISION_JPEG_QUALITY,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> None:
        """Initialize the client.

        Args:
            endpoints: Provider endpoints; `rest_base_url` and `vision_model` are used.
            api_key: Provider API key.
            client: Optional async OpenAI client instance for dependency injection.
            timeout: Request timeout in seconds.
            jpeg_quality: Compression applied to the image before upload.
            max_tokens: Upper bound on the description length.
        """
        self.endpoints = endpoints
        self.model = endpoints.vision_model
        self.max_tokens = max_tokens
        self.encoder = FrameEncoder(quality=jpeg_quality)
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=endpoints.rest_base_url,
            timeout=timeout,
            max_retries=0,
        )

    async def analyze(self, image: Frame, prompt: str) -> VisionResult:
        """Return a text description of `image` guided by `prompt`."""
        started = time.monotonic()
        try:
            image_url = await asyncio.to_thread(self.encoder.to_data_url, image)
        except ValueError as exc:
            LOGGER.warning("Vision request skipped: %s", exc)
            return VisionResult.failure(f"Invalid image: {exc}")

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=build_vision_messages(image_url, prompt),
                max_tokens=self.max_tokens,
            )
        except OpenAIError as exc:
            latency = time.monotonic() - started
            LOGGER.error("Vision request to %s failed after %.2fs: %s", self.model, latency, exc)
            return VisionResult.failure(str(exc) or exc.__class__.__name__, latency)

        latency = time.monotonic() - started
        text = (extract_message_text(response) or "").strip()
        if not text:
            LOGGER.warning("Vision response from %s contained no text", self.model)
            return VisionResult.failure("Vision response did not include any text.", latency)

        usage = extract_usage(response)
        LOGGER.info(
            "Vision description from %s in %.2fs (prompt_tokens=%s, completion_tokens=%s)",
            self.model,
            latency,
            usage["prompt_tokens"],
            usage["completion_tokens"],
        )
        return VisionResult(text=text, error=None, status=VisionStatus.SUCCESS, latency=latency)

    async def close(self) -> None:
        await self.client.close()
