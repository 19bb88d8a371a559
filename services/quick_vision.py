"""Quick recognition: describe one photo and optionally speak the answer."""

import inspect
import logging
from typing import Any, Callable, Optional

from services.frame_encoder import Frame
from services.openai.vision_client import VisionClient, VisionResult

LOGGER = logging.getLogger(__name__)


class QuickVisionService:
    """Run a one-shot vision call outside any realtime session.

    Args:
        vision_client: Client used for the description.
        prompt: Default prompt, normally localized to the output language.
        speak: Optional callable (sync or async) that reads the text aloud.
    """

    def __init__(
        self,
        vision_client: VisionClient,
        prompt: str,
        speak: Optional[Callable[[str], Any]] = None,
    ) -> None:
        self.vision_client = vision_client
        self.prompt = prompt
        self.speak = speak

    async def recognize(self, image: Frame, prompt: Optional[str] = None) -> VisionResult:
        result = await self.vision_client.analyze(image, prompt or self.prompt)
        if not result.ok:
            LOGGER.warning("Quick recognition failed: %s", result.error)
            return result
        if self.speak is not None:
            try:
                spoken = self.speak(result.text)
                if inspect.isawaitable(spoken):
                    await spoken
            except Exception as exc:
                LOGGER.error("Speaking quick recognition result failed: %s", exc)
        return result
