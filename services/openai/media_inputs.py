"""Utilities to build multimodal chat-completions payloads for vision calls."""

from typing import Any, Dict, List


def build_vision_messages(image_url: str, prompt: str) -> List[Dict[str, Any]]:
    """Compose the single user turn carrying the image and the prompt.

    Args:
        image_url: A `data:image/jpeg;base64,...` URL.
        prompt: Instruction text sent alongside the image.
    """
    if not image_url.startswith("data:image/"):
        raise ValueError("Vision input must be an image data URL.")
    return [
        {
            "role": "user",
            "content": [
                {"type": "image_url", "image_url": {"url": image_url}},
                {"type": "text", "text": prompt},
            ],
        }
    ]
