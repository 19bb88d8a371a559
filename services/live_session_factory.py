"""Build realtime sessions and quick-vision services for the configured provider."""

import logging
from typing import Any, Callable, Dict, Optional, Type

from models.provider_models import AIProvider, SessionConfig, TurnDetection, WireProtocol
from services.audio.devices import MicrophoneSource, SpeakerOutput
from services.frame_encoder import QUICK_VISION_JPEG_QUALITY
from services.openai.vision_client import VisionClient
from services.providers.provider_config import ResolvedProvider, resolve_provider
from services.quick_vision import QuickVisionService
from services.realtime.live_session import RealtimeSession
from services.realtime.omni_codec import OmniRealtimeCodec
from services.realtime.openai_codec import OpenAIRealtimeCodec
from services.realtime.prompts import live_instructions, quick_vision_prompt
from services.realtime.session_listener import SessionListener
from services.realtime.wire_codec import WireCodec
from utils.settings import AppSettings

LOGGER = logging.getLogger(__name__)

CODECS: Dict[WireProtocol, Type[WireCodec]] = {
    WireProtocol.OMNI: OmniRealtimeCodec,
    WireProtocol.OPENAI: OpenAIRealtimeCodec,
}

OPENAI_TRANSCRIPTION_MODEL = "whisper-1"


def build_session_config(resolved: ResolvedProvider, language: str) -> SessionConfig:
    """Return the session configuration for a resolved provider."""
    endpoints = resolved.endpoints
    instructions = live_instructions(language)
    if resolved.protocol is WireProtocol.OPENAI:
        return SessionConfig(
            model=endpoints.realtime_model,
            voice=endpoints.voice,
            instructions=instructions,
            modalities=("audio",),
            turn_detection=TurnDetection(threshold=0.5, silence_duration_ms=500, prefix_padding_ms=300),
            transcription_model=OPENAI_TRANSCRIPTION_MODEL,
        )
    return SessionConfig(
        model=endpoints.realtime_model,
        voice=endpoints.voice,
        instructions=instructions,
        modalities=("text", "audio"),
        turn_detection=TurnDetection(threshold=0.5, silence_duration_ms=800),
    )


class LiveSessionFactory:
    """Resolve provider settings once per session and wire up its collaborators.

    Device and connector factories are injectable so the controller can be
    exercised without audio hardware or network access.
    """

    def __init__(
        self,
        settings: AppSettings,
        capture_factory: Callable[[], Any] = MicrophoneSource,
        output_factory: Callable[[], Any] = SpeakerOutput,
        vision_client_factory: Optional[Callable[..., Any]] = None,
        connector: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.settings = settings
        self.capture_factory = capture_factory
        self.output_factory = output_factory
        self.vision_client_factory = vision_client_factory or VisionClient
        self.connector = connector

    def resolve(self, provider: Optional[AIProvider] = None) -> ResolvedProvider:
        return resolve_provider(self.settings, provider)

    def create_session(
        self,
        listener: Optional[SessionListener] = None,
        provider: Optional[AIProvider] = None,
    ) -> RealtimeSession:
        """Return a new, unconnected session.

        Raises:
            ConfigurationError: If the provider cannot be resolved.
        """
        resolved = self.resolve(provider)
        codec = CODECS[resolved.protocol]()
        vision_client = None
        if not codec.supports_image_append:
            vision_client = self.vision_client_factory(
                resolved.endpoints,
                resolved.api_key,
                timeout=self.settings.vision_timeout,
            )
        return RealtimeSession(
            endpoints=resolved.endpoints,
            api_key=resolved.api_key,
            codec=codec,
            config=build_session_config(resolved, self.settings.output_language),
            listener=listener,
            capture_source=self.capture_factory(),
            output_device=self.output_factory(),
            vision_client=vision_client,
            provider=resolved.provider,
            connector=self.connector,
            idle_timeout=self.settings.realtime_idle_timeout,
        )

    def create_quick_vision(
        self,
        provider: Optional[AIProvider] = None,
        speak: Optional[Callable[[str], Any]] = None,
    ) -> QuickVisionService:
        """Return a quick-recognition service for the provider's vision model."""
        resolved = self.resolve(provider)
        vision_client = self.vision_client_factory(
            resolved.endpoints,
            resolved.api_key,
            timeout=self.settings.vision_timeout,
            jpeg_quality=QUICK_VISION_JPEG_QUALITY,
        )
        return QuickVisionService(
            vision_client,
            prompt=quick_vision_prompt(self.settings.output_language),
            speak=speak,
        )
