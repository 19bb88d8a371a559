"""Application settings loaded from environment variables."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from services.realtime.errors import ConfigurationError

DEFAULT_CUSTOM_REST_ENDPOINT = "https://api.openai.com/v1"
DEFAULT_CUSTOM_WS_ENDPOINT = "wss://api.openai.com/v1/realtime"
DEFAULT_CUSTOM_VISION_MODEL = "gpt-4-turbo"
DEFAULT_CUSTOM_REALTIME_MODEL = "gpt-4o-realtime-preview"
DEFAULT_CUSTOM_VOICE = "alloy"


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _seconds(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _clean(env.get(name))
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name}={raw!r} is not a number of seconds") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} must be greater than zero")
    return value


@dataclass(frozen=True)
class AppSettings:
    """
    Settings for the live assistant, built once at startup.

    Only `from_env` reads the environment; everything downstream receives
    this object explicitly.
    """

    provider: str = "alibaba_cloud"
    alibaba_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    custom_api_key: Optional[str] = None
    alibaba_region: str = "beijing"
    custom_rest_endpoint: str = DEFAULT_CUSTOM_REST_ENDPOINT
    custom_ws_endpoint: str = DEFAULT_CUSTOM_WS_ENDPOINT
    custom_vision_model: str = DEFAULT_CUSTOM_VISION_MODEL
    custom_realtime_model: str = DEFAULT_CUSTOM_REALTIME_MODEL
    custom_voice: str = DEFAULT_CUSTOM_VOICE
    custom_protocol: Optional[str] = None
    output_language: str = "zh-CN"
    realtime_idle_timeout: float = 120.0
    vision_timeout: float = 30.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppSettings":
        """Read settings from `environ` (defaults to `os.environ`).

        Raises:
            ConfigurationError: If a numeric or enumerated value is invalid.
        """
        env = os.environ if environ is None else environ

        region = (_clean(env.get("ALIBABA_REGION")) or "beijing").lower()
        if region not in ("beijing", "singapore"):
            raise ConfigurationError(f"ALIBABA_REGION must be 'beijing' or 'singapore', got {region!r}")

        protocol = _clean(env.get("CUSTOM_PROTOCOL"))
        if protocol is not None:
            protocol = protocol.lower()
            if protocol not in ("omni", "openai"):
                raise ConfigurationError(f"CUSTOM_PROTOCOL must be 'omni' or 'openai', got {protocol!r}")

        return cls(
            provider=(_clean(env.get("LIVE_AI_PROVIDER")) or "alibaba_cloud").lower(),
            alibaba_api_key=_clean(env.get("ALIBABA_API_KEY")) or _clean(env.get("DASHSCOPE_API_KEY")),
            openai_api_key=_clean(env.get("OPENAI_API_KEY")),
            custom_api_key=_clean(env.get("CUSTOM_API_KEY")),
            alibaba_region=region,
            custom_rest_endpoint=_clean(env.get("CUSTOM_REST_ENDPOINT")) or DEFAULT_CUSTOM_REST_ENDPOINT,
            custom_ws_endpoint=_clean(env.get("CUSTOM_WS_ENDPOINT")) or DEFAULT_CUSTOM_WS_ENDPOINT,
            custom_vision_model=_clean(env.get("CUSTOM_VISION_MODEL")) or DEFAULT_CUSTOM_VISION_MODEL,
            custom_realtime_model=_clean(env.get("CUSTOM_REALTIME_MODEL")) or DEFAULT_CUSTOM_REALTIME_MODEL,
            custom_voice=_clean(env.get("CUSTOM_VOICE")) or DEFAULT_CUSTOM_VOICE,
            custom_protocol=protocol,
            output_language=_clean(env.get("OUTPUT_LANGUAGE")) or "zh-CN",
            realtime_idle_timeout=_seconds(env, "REALTIME_IDLE_TIMEOUT", 120.0),
            vision_timeout=_seconds(env, "VISION_TIMEOUT", 30.0),
            log_level=(_clean(env.get("LOG_LEVEL")) or "INFO").upper(),
        )
