import asyncio
import json
import time
from collections import deque
from typing import Any, Callable, List, Optional

import pytest

from models.provider_models import ProviderEndpoints, SessionConfig, TurnDetection
from models.session_models import SessionStatus
from services.openai.vision_client import VisionResult, VisionStatus
from services.realtime.live_session import RealtimeSession
from services.realtime.omni_codec import OmniRealtimeCodec
from services.realtime.openai_codec import OpenAIRealtimeCodec
from services.realtime.session_listener import SessionListener
from utils.settings import AppSettings

ENDPOINTS = ProviderEndpoints(
    rest_base_url="https://example.test/v1",
    ws_base_url="wss://example.test/realtime",
    vision_model="vision-test",
    realtime_model="realtime-test",
    voice="test-voice",
)

PCM_FRAME = b"\x01\x00" * 2400  # 100 ms of 24 kHz mono PCM16


class FakeSocket:
    """In-memory stand-in for a websockets ClientConnection."""

    def __init__(self) -> None:
        self.sent: List[str] = []
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self.send_error: Optional[BaseException] = None

    async def send(self, message: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(message)

    async def recv(self) -> str:
        item = await self.incoming.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True

    def push(self, payload: Any) -> None:
        if isinstance(payload, dict):
            payload = json.dumps(payload)
        self.incoming.put_nowait(payload)

    def sent_payloads(self) -> List[dict]:
        return [json.loads(message) for message in self.sent]

    def sent_types(self) -> List[str]:
        return [payload["type"] for payload in self.sent_payloads()]


class FakeConnector:
    def __init__(self, socket: Optional[FakeSocket] = None, error: Optional[BaseException] = None) -> None:
        self.socket = socket or FakeSocket()
        self.error = error
        self.calls: List[tuple] = []

    async def __call__(self, url: str, **kwargs: Any) -> FakeSocket:
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.socket


class FakeCapture:
    def __init__(self, frames=(), open_error: Optional[BaseException] = None, open_delay: float = 0.0) -> None:
        self.frames = deque(frames)
        self.open_error = open_error
        self.open_delay = open_delay
        self.opened = 0
        self.closed = 0

    def open(self) -> None:
        if self.open_delay:
            time.sleep(self.open_delay)
        if self.open_error is not None:
            raise self.open_error
        self.opened += 1

    def read(self) -> bytes:
        if self.frames:
            return self.frames.popleft()
        time.sleep(0.005)
        return b""

    def close(self) -> None:
        self.closed += 1


class FakeOutput:
    def __init__(
        self, open_error: Optional[BaseException] = None, write_delay: float = 0.0, open_delay: float = 0.0
    ) -> None:
        self.open_error = open_error
        self.open_delay = open_delay
        self.write_delay = write_delay
        self.written: List[bytes] = []
        self.opened = 0
        self.closes: List[bool] = []

    def open(self) -> None:
        if self.open_delay:
            time.sleep(self.open_delay)
        if self.open_error is not None:
            raise self.open_error
        self.opened += 1

    def write(self, chunk: bytes) -> None:
        if self.write_delay:
            time.sleep(self.write_delay)
        self.written.append(chunk)

    def close(self, discard: bool = True) -> None:
        self.closes.append(discard)


class FakeVisionClient:
    def __init__(self, result: Optional[VisionResult] = None, delay: float = 0.0) -> None:
        self.result = result or VisionResult(text="a red door", error=None, status=VisionStatus.SUCCESS)
        self.delay = delay
        self.calls: List[tuple] = []
        self.closed = False

    async def analyze(self, image: Any, prompt: str) -> VisionResult:
        self.calls.append((image, prompt))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.result

    async def close(self) -> None:
        self.closed = True


class RecordingListener(SessionListener):
    def __init__(self) -> None:
        self.events: List[tuple] = []

    def on_state_changed(self, status: SessionStatus) -> None:
        self.events.append(("state", status))

    def on_speech_started(self) -> None:
        self.events.append(("speech_started",))

    def on_speech_stopped(self) -> None:
        self.events.append(("speech_stopped",))

    def on_transcript_delta(self, text: str) -> None:
        self.events.append(("transcript_delta", text))

    def on_transcript_done(self, text: str) -> None:
        self.events.append(("transcript_done", text))

    def on_user_transcript(self, text: str) -> None:
        self.events.append(("user_transcript", text))

    def on_speaking_changed(self, speaking: bool) -> None:
        self.events.append(("speaking", speaking))

    def on_error(self, message: str) -> None:
        self.events.append(("error", message))

    def named(self, name: str) -> List[tuple]:
        return [event for event in self.events if event[0] == name]

    @property
    def states(self) -> List[SessionStatus]:
        return [event[1] for event in self.named("state")]


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


def omni_config() -> SessionConfig:
    return SessionConfig(model="realtime-test", voice="test-voice", instructions="Be brief.")


def openai_config() -> SessionConfig:
    return SessionConfig(
        model="realtime-test",
        voice="test-voice",
        instructions="Be brief.",
        modalities=("audio",),
        turn_detection=TurnDetection(silence_duration_ms=500),
        transcription_model="whisper-1",
    )


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_session(listener, clock):
    """Build a RealtimeSession wired to fakes; keyword overrides pass through."""

    def factory(protocol: str = "omni", **overrides: Any) -> RealtimeSession:
        codec = OmniRealtimeCodec() if protocol == "omni" else OpenAIRealtimeCodec()
        config = omni_config() if protocol == "omni" else openai_config()
        options = dict(
            endpoints=ENDPOINTS,
            api_key="sk-test",
            codec=codec,
            config=config,
            listener=listener,
            capture_source=FakeCapture(),
            output_device=FakeOutput(),
            vision_client=FakeVisionClient(),
            connector=FakeConnector(),
            clock=clock,
        )
        options.update(overrides)
        return RealtimeSession(**options)

    return factory


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(alibaba_api_key="sk-ali", openai_api_key="sk-openai")
