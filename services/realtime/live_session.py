"""Realtime streaming session over a provider WebSocket.

`RealtimeSession` owns one socket for its whole life. It sends the session
configuration as the first message, streams microphone audio and the most
recent camera frame upstream, and turns decoded server events into state
transitions, listener callbacks and audio playback. Three tasks run per
live session: the capture loop, the receive loop and the playback drain
loop (inside `PlaybackQueue`). Blocking device work runs in worker threads.

Network and protocol failures never raise out of the public coroutines;
they are reported through `SessionListener.on_error` and the session state.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, Set
from urllib.parse import urlencode

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosedOK

from models.provider_models import AIProvider, ProviderEndpoints, SessionConfig
from models.session_models import SessionStatus
from models.wire_events import WireEvent, WireEventType
from services.audio.devices import AudioCaptureSource, AudioOutputDevice
from services.audio.playback import PlaybackQueue
from services.frame_encoder import REALTIME_JPEG_QUALITY, Frame, FrameEncoder
from services.realtime.errors import DeviceError, SessionConnectionError, UpstreamFailure
from services.realtime.frame_slot import LatestFrameSlot
from services.realtime.prompts import asks_about_view, vision_context_prompt
from services.realtime.session_listener import SessionListener
from services.realtime.wire_codec import WireCodec

LOGGER = logging.getLogger(__name__)

FRAME_INTERVAL_SECONDS = 0.5
PING_INTERVAL_SECONDS = 30.0
IDLE_TIMEOUT_SECONDS = 120.0
CAPTURE_STOP_TIMEOUT_SECONDS = 1.0
DRAIN_ON_CLOSE_TIMEOUT_SECONDS = 10.0

Connector = Callable[..., Awaitable[Any]]

_LIVE_STATES = (
	SessionStatus.CONNECTED,
	SessionStatus.RECORDING,
	SessionStatus.PROCESSING,
	SessionStatus.SPEAKING,
	SessionStatus.ERROR,
)


class RealtimeSession:
	"""One realtime conversation with a cloud provider.

	Args:
		endpoints: Provider endpoints; the socket URL is
			`{ws_base_url}?model={config.model}`.
		api_key: Bearer token for the socket and the vision fallback.
		codec: Wire dialect for this provider.
		config: Session configuration sent right after the socket opens.
		listener: Receives callbacks; defaults to a no-op listener.
		capture_source: Microphone-like object with `open`, `read`, `close`.
		output_device: Speaker-like object with `open`, `write`, `close`.
		vision_client: Used to describe frames when the dialect cannot carry
			images; must provide `async analyze(image, prompt)`. The session
			closes it on teardown when it has a `close` coroutine.
		connector: Coroutine function opening the socket; defaults to
			`websockets.asyncio.client.connect`.
		clock: Monotonic clock used by the frame throttle.
	"""

	def __init__(
		self,
		*,
		endpoints: ProviderEndpoints,
		api_key: str,
		codec: WireCodec,
		config: SessionConfig,
		listener: Optional[SessionListener] = None,
		capture_source: Optional[AudioCaptureSource] = None,
		output_device: Optional[AudioOutputDevice] = None,
		vision_client=None,
		provider: Optional[AIProvider] = None,
		connector: Optional[Connector] = None,
		frame_encoder: Optional[FrameEncoder] = None,
		vision_prompt: Optional[str] = None,
		clock: Callable[[], float] = time.monotonic,
		frame_interval: float = FRAME_INTERVAL_SECONDS,
		idle_timeout: Optional[float] = IDLE_TIMEOUT_SECONDS,
		ping_interval: Optional[float] = PING_INTERVAL_SECONDS,
	) -> None:
		self.endpoints = endpoints
		self.provider = provider
		self.codec = codec
		self.config = config
		self.listener = listener or SessionListener()
		self._api_key = api_key
		self._capture = capture_source
		self._vision = vision_client
		self._connector = connector or ws_connect
		self._encoder = frame_encoder or FrameEncoder(quality=REALTIME_JPEG_QUALITY)
		self._vision_prompt = vision_prompt or vision_context_prompt()
		self._clock = clock
		self._frame_interval = frame_interval
		self._idle_timeout = idle_timeout
		self._ping_interval = ping_interval

		self._status = SessionStatus.IDLE
		self._last_error: Optional[str] = None
		self._last_failure: Optional[UpstreamFailure] = None
		self._socket = None
		self._closed = False
		self._receive_task: Optional[asyncio.Task] = None
		self._record_task: Optional[asyncio.Task] = None
		self._background: Set[asyncio.Task] = set()
		self._vision_task: Optional[asyncio.Task] = None
		self._recording = False
		self._capture_open = False
		self._speaking = False
		self._transcript: List[str] = []
		self._frames: LatestFrameSlot[Frame] = LatestFrameSlot()
		self._last_frame_sent_at: Optional[float] = None
		self._playback = PlaybackQueue(
			output_device,
			on_speaking_changed=self._set_speaking,
			on_error=self._on_playback_error,
		)

	# Properties ---------------------------------------------------------

	@property
	def state(self) -> SessionStatus:
		return self._status

	@property
	def last_error(self) -> Optional[str]:
		return self._last_error

	@property
	def last_failure(self) -> Optional[UpstreamFailure]:
		"""The most recent failure reported by the provider, if any."""
		return self._last_failure

	@property
	def is_connected(self) -> bool:
		return self._socket is not None and self._status in _LIVE_STATES

	@property
	def is_recording(self) -> bool:
		return self._recording

	@property
	def is_speaking(self) -> bool:
		return self._speaking

	@property
	def current_transcript(self) -> str:
		return "".join(self._transcript)

	@property
	def playback(self) -> PlaybackQueue:
		return self._playback

	@property
	def url(self) -> str:
		base = self.endpoints.ws_base_url
		separator = "&" if "?" in base else "?"
		return f"{base}{separator}{urlencode({'model': self.config.model})}"

	# Public API ---------------------------------------------------------

	async def connect(self) -> None:
		"""Open the socket, send the session configuration and start reading."""
		if self._closed:
			self._report_error("Session has been closed; create a new session to reconnect")
			return
		if self._socket is not None or self._status is not SessionStatus.IDLE:
			LOGGER.debug("connect() ignored in state %s", self._status.value)
			return

		self._set_status(SessionStatus.CONNECTING)
		LOGGER.info("Connecting realtime session (%s) to %s", self.codec.protocol.value, self.url)
		try:
			self._socket = await self._connector(
				self.url,
				additional_headers={"Authorization": f"Bearer {self._api_key}"},
				ping_interval=self._ping_interval,
				max_size=None,
			)
		except Exception as exc:
			LOGGER.error("Realtime socket open failed: %s", exc)
			self._closed = True
			self._set_status(SessionStatus.IDLE)
			self._report_error(f"Connection failed: {exc}")
			return

		if not await self._send(self.codec.encode_session_config(self.config), "session.update"):
			return
		self._receive_task = asyncio.create_task(self._receive_loop())

	async def start_recording(self) -> None:
		"""Start pulling microphone frames into the session."""
		if self._recording or not self.is_connected:
			LOGGER.debug("start_recording() ignored (recording=%s, state=%s)", self._recording, self._status.value)
			return
		self._recording = True
		try:
			if self._capture is None:
				raise DeviceError("No audio capture source configured")
			await asyncio.to_thread(self._capture.open)
		except Exception as exc:
			self._recording = False
			message = str(exc) if isinstance(exc, DeviceError) else f"Microphone unavailable: {exc}"
			LOGGER.error(message)
			self._report_error(message)
			return

		self._capture_open = True
		if self._closed or not self._recording or not self.is_connected:
			LOGGER.info("Recording cancelled while the microphone was opening")
			self._recording = False
			await self._close_capture()
			return

		self._last_frame_sent_at = None
		self._record_task = asyncio.create_task(self._record_loop())
		LOGGER.info("Recording started")

	async def send_audio_data(self, pcm: bytes) -> None:
		"""Upload one PCM16 frame, then the pending camera frame if it is due."""
		if not self.is_connected:
			return
		if not await self._send(self.codec.encode_audio_append(pcm), "input_audio_buffer.append"):
			return

		frame = self._frames.current()
		if frame is None:
			return
		now = self._clock()
		if self._last_frame_sent_at is not None and now - self._last_frame_sent_at < self._frame_interval:
			return
		if self._vision_busy:
			LOGGER.debug("Vision request still running; skipping frame tick")
			return
		self._last_frame_sent_at = now
		await self._send_frame(frame)

	def update_video_frame(self, frame: Frame) -> None:
		"""Replace the pending camera frame; safe to call from any thread."""
		self._frames.put(frame)

	async def request_vision_analysis(self) -> bool:
		"""Send the pending camera frame now, regardless of the throttle.

		Returns:
			False when the session is not connected or no frame is pending.
		"""
		if not self.is_connected:
			return False
		frame = self._frames.current()
		if frame is None:
			LOGGER.warning("No camera frame available for vision analysis")
			return False
		LOGGER.info("Vision analysis requested")
		self._last_frame_sent_at = self._clock()
		await self._send_frame(frame)
		return True

	async def send_text_context(self, text: str) -> None:
		"""Add a text item to the conversation without requesting a response."""
		if not self.is_connected:
			LOGGER.debug("Dropping text context; session not connected")
			return
		await self._send(self.codec.encode_context_item(text), "conversation.item.create")

	async def stop_recording(self) -> None:
		"""Stop the capture loop and release the microphone; the socket stays open."""
		task, self._record_task = self._record_task, None
		was_recording, self._recording = self._recording, False
		if task is not None and not task.done() and task is not asyncio.current_task():
			done, _ = await asyncio.wait({task}, timeout=CAPTURE_STOP_TIMEOUT_SECONDS)
			if not done:
				task.cancel()
				await asyncio.gather(task, return_exceptions=True)
		await self._close_capture()
		if was_recording:
			LOGGER.info("Recording stopped")

	async def disconnect(self) -> None:
		"""Tear everything down and return to Idle; safe to repeat."""
		await self._teardown(drain_playback=False)

	# Loops --------------------------------------------------------------

	async def _record_loop(self) -> None:
		try:
			while self._recording:
				pcm = await asyncio.to_thread(self._capture.read)
				if not self._recording:
					break
				if pcm:
					await self.send_audio_data(pcm)
		except asyncio.CancelledError:
			raise
		except Exception as exc:
			LOGGER.error("Audio capture failed: %s", exc)
			self._recording = False
			await self._close_capture()
			self._report_error(f"Audio capture failed: {exc}")

	async def _receive_loop(self) -> None:
		socket = self._socket
		try:
			while True:
				try:
					raw = await asyncio.wait_for(socket.recv(), timeout=self._idle_timeout)
				except asyncio.TimeoutError:
					raise SessionConnectionError(f"No server traffic for {self._idle_timeout:.0f}s") from None
				if isinstance(raw, (bytes, bytearray)):
					raw = bytes(raw).decode("utf-8", errors="replace")
				event = self.codec.decode(raw)
				if event is not None:
					await self._dispatch(event)
		except asyncio.CancelledError:
			raise
		except Exception as exc:
			if isinstance(exc, ConnectionClosedOK):
				LOGGER.info("Realtime socket closed by server")
				await self._handle_connection_lost(None)
			else:
				LOGGER.error("Realtime socket failed: %s", exc)
				await self._handle_connection_lost(f"Connection lost: {exc}")

	# Dispatch -----------------------------------------------------------

	async def _dispatch(self, event: WireEvent) -> None:
		kind = event.type
		if kind is WireEventType.SESSION_READY:
			LOGGER.info("Realtime session %s", "configured" if event.configured else "created")
			if event.configured and self._status is SessionStatus.CONNECTING:
				self._set_status(SessionStatus.CONNECTED)
		elif kind is WireEventType.SPEECH_STARTED:
			await self._playback.stop()
			self._set_speaking(False)
			self._set_status(SessionStatus.RECORDING)
			self._emit("on_speech_started")
		elif kind is WireEventType.SPEECH_STOPPED:
			self._set_status(SessionStatus.PROCESSING)
			self._emit("on_speech_stopped")
		elif kind is WireEventType.TRANSCRIPT_DELTA:
			self._transcript.append(event.text or "")
			self._emit("on_transcript_delta", event.text or "")
		elif kind is WireEventType.TRANSCRIPT_DONE:
			final = event.text if event.text is not None else "".join(self._transcript)
			self._emit("on_transcript_done", final)
			self._transcript.clear()
			self._set_status(SessionStatus.CONNECTED)
		elif kind is WireEventType.USER_TRANSCRIPT:
			text = event.text or ""
			self._emit("on_user_transcript", text)
			if not self.codec.supports_image_append and asks_about_view(text):
				LOGGER.info("Vision question detected; sending current frame")
				await self.request_vision_analysis()
		elif kind is WireEventType.AUDIO_CHUNK:
			self._playback.enqueue(event.audio or b"")
			self._set_status(SessionStatus.SPEAKING)
		elif kind is WireEventType.AUDIO_DONE:
			self._set_speaking(False)
		elif kind in (WireEventType.RESPONSE_FAILED, WireEventType.SERVER_ERROR):
			failure = UpstreamFailure(event.message or "Unknown error", event.code)
			LOGGER.error("Upstream failure (%s, code=%s): %s", event.raw_type, failure.code, failure)
			self._last_failure = failure
			self._set_status(SessionStatus.ERROR, error=str(failure))
			self._emit("on_error", str(failure))
		elif kind in (WireEventType.RESPONSE_STARTED, WireEventType.RESPONSE_DONE):
			LOGGER.debug("Realtime %s", event.raw_type)

	# Frames -------------------------------------------------------------

	@property
	def _vision_busy(self) -> bool:
		return self._vision_task is not None and not self._vision_task.done()

	async def _send_frame(self, frame: Frame) -> None:
		if self.codec.supports_image_append:
			await self._send_image(frame)
		else:
			self._vision_task = self._spawn(self._inject_visual_context(frame))

	async def _send_image(self, frame: Frame) -> None:
		try:
			jpeg = await asyncio.to_thread(self._encoder.to_jpeg, frame)
		except ValueError as exc:
			LOGGER.warning("Skipping unreadable camera frame: %s", exc)
			return
		await self._send(self.codec.encode_image_append(jpeg), "input_image_buffer.append")

	async def _inject_visual_context(self, frame: Frame) -> None:
		if self._vision is None:
			LOGGER.debug("No vision client; skipping visual context")
			return
		result = await self._vision.analyze(frame, self._vision_prompt)
		if not result.ok:
			LOGGER.warning("Visual context skipped: %s", result.error)
			return
		await self.send_text_context(f"[Visual context: {result.text}]")

	def _spawn(self, coro: Awaitable[None]) -> asyncio.Task:
		task = asyncio.create_task(coro)
		self._background.add(task)
		task.add_done_callback(self._background.discard)
		return task

	# Teardown -----------------------------------------------------------

	async def _handle_connection_lost(self, message: Optional[str]) -> None:
		if self._closed:
			return
		await self._teardown(drain_playback=True)
		if message:
			self._report_error(message)

	async def _teardown(self, drain_playback: bool) -> None:
		self._closed = True
		await self.stop_recording()

		pending = [task for task in self._background if task is not asyncio.current_task()]
		for task in pending:
			task.cancel()
		if pending:
			await asyncio.gather(*pending, return_exceptions=True)
		self._vision_task = None
		await self._close_vision()

		if drain_playback:
			await self._playback.finish(timeout=DRAIN_ON_CLOSE_TIMEOUT_SECONDS)
		else:
			await self._playback.stop()

		task, self._receive_task = self._receive_task, None
		if task is not None and not task.done() and task is not asyncio.current_task():
			task.cancel()
			await asyncio.gather(task, return_exceptions=True)

		socket, self._socket = self._socket, None
		if socket is not None:
			try:
				await socket.close()
			except Exception as exc:
				LOGGER.warning("Error closing realtime socket: %s", exc)

		self._transcript.clear()
		self._frames.clear()
		self._set_speaking(False)
		self._set_status(SessionStatus.IDLE)

	async def _close_capture(self) -> None:
		if not self._capture_open:
			return
		self._capture_open = False
		try:
			await asyncio.to_thread(self._capture.close)
		except Exception as exc:
			LOGGER.warning("Error releasing microphone: %s", exc)

	async def _close_vision(self) -> None:
		vision, self._vision = self._vision, None
		close = getattr(vision, "close", None)
		if close is None:
			return
		try:
			await close()
		except Exception as exc:
			LOGGER.warning("Error closing vision client: %s", exc)

	# Helpers ------------------------------------------------------------

	async def _send(self, message: str, kind: str) -> bool:
		socket = self._socket
		if socket is None:
			return False
		try:
			await socket.send(message)
		except Exception as exc:
			LOGGER.error("Realtime send of %s failed: %s", kind, exc)
			await self._handle_connection_lost(f"Connection lost: {exc}")
			return False
		LOGGER.debug("Sent %s (%d chars)", kind, len(message))
		return True

	def _set_status(self, status: SessionStatus, error: Optional[str] = None) -> None:
		if status is SessionStatus.ERROR:
			self._last_error = error
		if status is self._status and status is not SessionStatus.ERROR:
			return
		self._status = status
		self._emit("on_state_changed", status)

	def _set_speaking(self, speaking: bool) -> None:
		if self._speaking == speaking:
			return
		self._speaking = speaking
		self._emit("on_speaking_changed", speaking)

	def _on_playback_error(self, message: str) -> None:
		self._report_error(message)

	def _report_error(self, message: str) -> None:
		self._last_error = message
		self._emit("on_error", message)

	def _emit(self, name: str, *args) -> None:
		try:
			getattr(self.listener, name)(*args)
		except Exception:
			LOGGER.exception("Session listener %s failed", name)
