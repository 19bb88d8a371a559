import asyncio
import base64

from PIL import Image
from websockets.exceptions import ConnectionClosedOK
from websockets.frames import Close

from conftest import PCM_FRAME, FakeCapture, FakeConnector, FakeOutput, FakeVisionClient, wait_until
from models.session_models import SessionStatus
from services.openai.vision_client import VisionResult


async def open_session(make_session, protocol="omni", **overrides):
    connector = overrides.pop("connector", None) or FakeConnector()
    session = make_session(protocol, connector=connector, **overrides)
    await session.connect()
    connector.socket.push({"type": "session.updated"})
    await wait_until(lambda: session.state is SessionStatus.CONNECTED)
    return session, connector.socket


def red_frame():
    return Image.new("RGB", (16, 16), (200, 10, 10))


class TestConnect:
    async def test_config_is_first_message_and_url_carries_model(self, make_session):
        connector = FakeConnector()
        session = make_session(connector=connector)

        await session.connect()

        url, kwargs = connector.calls[0]
        assert url == "wss://example.test/realtime?model=realtime-test"
        assert kwargs["additional_headers"] == {"Authorization": "Bearer sk-test"}
        assert connector.socket.sent_types() == ["session.update"]
        assert session.state is SessionStatus.CONNECTING
        await session.disconnect()

    async def test_session_updated_moves_connecting_to_connected(self, make_session, listener):
        for protocol in ("omni", "openai"):
            listener.events.clear()
            connector = FakeConnector()
            session = make_session(protocol, connector=connector)
            await session.connect()
            connector.socket.push({"type": "session.created"})
            connector.socket.push({"type": "session.updated"})

            await wait_until(lambda: session.state is SessionStatus.CONNECTED)

            assert listener.states == [SessionStatus.CONNECTING, SessionStatus.CONNECTED]
            await session.disconnect()

    async def test_connect_twice_is_noop(self, make_session):
        session, socket = await open_session(make_session)

        await session.connect()

        assert socket.sent_types() == ["session.update"]
        await session.disconnect()

    async def test_open_failure_reports_error_and_stays_idle(self, make_session, listener):
        session = make_session(connector=FakeConnector(error=OSError("refused")))

        await session.connect()

        assert session.state is SessionStatus.IDLE
        assert listener.named("error") == [("error", "Connection failed: refused")]

        await session.connect()
        assert "closed" in listener.named("error")[-1][1]


class TestRecording:
    async def test_start_recording_requires_connection(self, make_session):
        capture = FakeCapture([PCM_FRAME])
        session = make_session(capture_source=capture)

        await session.start_recording()

        assert not session.is_recording
        assert capture.opened == 0

    async def test_audio_frames_are_uploaded(self, make_session):
        capture = FakeCapture([PCM_FRAME, PCM_FRAME])
        session, socket = await open_session(make_session, capture_source=capture)

        await session.start_recording()
        await wait_until(lambda: socket.sent_types().count("input_audio_buffer.append") == 2)
        await session.stop_recording()

        assert not session.is_recording
        assert capture.closed == 1
        assert session.is_connected
        await session.disconnect()

    async def test_microphone_failure_is_reported(self, make_session, listener):
        capture = FakeCapture(open_error=RuntimeError("busy"))
        session, _ = await open_session(make_session, capture_source=capture)

        await session.start_recording()

        assert not session.is_recording
        assert listener.named("error") == [("error", "Microphone unavailable: busy")]
        assert session.is_connected
        await session.disconnect()


class TestFrames:
    async def test_slot_keeps_only_latest_frame(self, make_session):
        session, socket = await open_session(make_session)
        first = Image.new("RGB", (8, 8), (0, 0, 0))
        second = Image.new("RGB", (8, 8), (255, 255, 255))

        session.update_video_frame(first)
        session.update_video_frame(second)
        await session.send_audio_data(PCM_FRAME)

        assert socket.sent_types().count("input_image_buffer.append") == 1
        assert session._frames.current() is second
        await session.disconnect()

    async def test_frame_throttle_window(self, make_session, clock):
        session, socket = await open_session(make_session)
        session.update_video_frame(red_frame())

        await session.send_audio_data(PCM_FRAME)
        clock.advance(0.2)
        await session.send_audio_data(PCM_FRAME)
        assert socket.sent_types().count("input_image_buffer.append") == 1

        clock.advance(0.4)
        await session.send_audio_data(PCM_FRAME)
        assert socket.sent_types().count("input_image_buffer.append") == 2
        assert socket.sent_types().count("input_audio_buffer.append") == 3
        await session.disconnect()

    async def test_openai_frames_become_visual_context(self, make_session):
        vision = FakeVisionClient()
        session, socket = await open_session(make_session, "openai", vision_client=vision)
        session.update_video_frame(red_frame())

        await session.send_audio_data(PCM_FRAME)
        await wait_until(lambda: "conversation.item.create" in socket.sent_types())

        item = socket.sent_payloads()[-1]["item"]
        assert item["role"] == "user"
        assert item["content"][0]["text"] == "[Visual context: a red door]"
        assert "input_image_buffer.append" not in socket.sent_types()
        assert len(vision.calls) == 1
        await session.disconnect()

    async def test_frame_tick_skipped_while_vision_request_runs(self, make_session, clock):
        vision = FakeVisionClient(delay=0.1)
        session, socket = await open_session(make_session, "openai", vision_client=vision)
        session.update_video_frame(red_frame())

        await session.send_audio_data(PCM_FRAME)
        clock.advance(0.6)
        await session.send_audio_data(PCM_FRAME)
        assert len(vision.calls) == 1

        await wait_until(lambda: "conversation.item.create" in socket.sent_types())
        await session.send_audio_data(PCM_FRAME)
        assert len(vision.calls) == 2
        await session.disconnect()

    async def test_request_vision_analysis_ignores_throttle(self, make_session):
        session, socket = await open_session(make_session)

        assert await session.request_vision_analysis() is False

        session.update_video_frame(red_frame())
        await session.send_audio_data(PCM_FRAME)
        assert await session.request_vision_analysis() is True

        assert socket.sent_types().count("input_image_buffer.append") == 2
        await session.disconnect()

    async def test_vision_question_sends_frame_right_away(self, make_session, listener):
        vision = FakeVisionClient()
        session, socket = await open_session(make_session, "openai", vision_client=vision)
        session.update_video_frame(red_frame())

        socket.push({"type": "conversation.item.input_audio_transcription.completed", "transcript": "Hello there"})
        socket.push({"type": "conversation.item.input_audio_transcription.completed", "transcript": "What is this?"})
        await wait_until(lambda: "conversation.item.create" in socket.sent_types())

        assert len(vision.calls) == 1
        assert [event[1] for event in listener.named("user_transcript")] == ["Hello there", "What is this?"]
        await session.disconnect()

    async def test_vision_failure_is_skipped(self, make_session, listener):
        vision = FakeVisionClient(VisionResult.failure("timeout"))
        session, socket = await open_session(make_session, "openai", vision_client=vision)
        session.update_video_frame(red_frame())

        await session.send_audio_data(PCM_FRAME)
        await wait_until(lambda: len(vision.calls) == 1)
        await asyncio.sleep(0.01)

        assert "conversation.item.create" not in socket.sent_types()
        assert listener.named("error") == []
        await session.disconnect()


class TestDispatch:
    async def test_transcript_buffer_is_joined_and_cleared(self, make_session, listener):
        session, socket = await open_session(make_session)

        socket.push({"type": "response.audio_transcript.delta", "delta": "Hello"})
        socket.push({"type": "response.audio_transcript.delta", "delta": " world"})
        await wait_until(lambda: session.current_transcript == "Hello world")
        socket.push({"type": "response.audio_transcript.done", "transcript": "Hello world"})
        await wait_until(lambda: bool(listener.named("transcript_done")))

        assert listener.named("transcript_done") == [("transcript_done", "Hello world")]
        assert session.current_transcript == ""
        assert session.state is SessionStatus.CONNECTED
        await session.disconnect()

    async def test_transcript_done_without_text_uses_buffer(self, make_session, listener):
        session, socket = await open_session(make_session, "openai")

        socket.push({"type": "response.output_audio_transcript.delta", "delta": "Hi"})
        socket.push({"type": "response.output_audio_transcript.done"})
        await wait_until(lambda: bool(listener.named("transcript_done")))

        assert listener.named("transcript_done") == [("transcript_done", "Hi")]
        await session.disconnect()

    async def test_audio_chunks_play_in_order(self, make_session):
        output = FakeOutput()
        session, socket = await open_session(make_session, output_device=output)
        chunks = [bytes([index, 0]) * 4 for index in range(5)]

        for chunk in chunks:
            socket.push({"type": "response.audio.delta", "delta": base64.b64encode(chunk).decode()})
        await wait_until(lambda: len(output.written) == 5)

        assert output.written == chunks
        assert session.state is SessionStatus.SPEAKING
        await session.disconnect()

    async def test_speech_started_interrupts_playback(self, make_session, listener):
        output = FakeOutput(write_delay=0.05)
        session, socket = await open_session(make_session, output_device=output)
        for _ in range(6):
            socket.push({"type": "response.audio.delta", "delta": base64.b64encode(b"\x00\x00" * 100).decode()})
        await wait_until(lambda: session.is_speaking)

        socket.push({"type": "input_audio_buffer.speech_started"})
        await wait_until(lambda: bool(listener.named("speech_started")))

        assert session.playback.pending == 0
        assert not session.is_speaking
        names = [event[0] for event in listener.events]
        assert names.index("speech_started") > max(
            index for index, event in enumerate(listener.events) if event == ("speaking", False)
        )
        assert session.state is SessionStatus.RECORDING
        assert len(output.written) < 6
        await session.disconnect()

    async def test_speech_stopped_moves_to_processing(self, make_session, listener):
        session, socket = await open_session(make_session)

        socket.push({"type": "input_audio_buffer.speech_stopped"})
        await wait_until(lambda: session.state is SessionStatus.PROCESSING)

        assert listener.named("speech_stopped") == [("speech_stopped",)]
        await session.disconnect()

    async def test_user_transcript_does_not_change_state(self, make_session, listener):
        session, socket = await open_session(make_session)

        socket.push({"type": "conversation.item.input_audio_transcription.completed", "transcript": "what is this"})
        await wait_until(lambda: bool(listener.named("user_transcript")))

        assert listener.named("user_transcript") == [("user_transcript", "what is this")]
        assert session.state is SessionStatus.CONNECTED
        await session.disconnect()

    async def test_unknown_and_malformed_messages_have_no_effect(self, make_session, listener):
        session, socket = await open_session(make_session)
        before = list(listener.events)

        socket.push({"type": "rate_limits.updated"})
        socket.push("{not json")
        socket.push({"type": "input_audio_buffer.speech_stopped"})
        await wait_until(lambda: session.state is SessionStatus.PROCESSING)

        assert listener.events[len(before):] == [("state", SessionStatus.PROCESSING), ("speech_stopped",)]
        await session.disconnect()

    async def test_failed_response_enters_error_but_stays_connected(self, make_session, listener):
        session, socket = await open_session(make_session)

        socket.push(
            {
                "type": "response.done",
                "response": {
                    "status": "failed",
                    "status_details": {"type": "failed", "error": {"code": "quota", "message": "Out of credit"}},
                },
            }
        )
        await wait_until(lambda: session.state is SessionStatus.ERROR)

        message = "Response failed - Type: failed, Code: quota, Message: Out of credit"
        assert listener.named("error") == [("error", message)]
        assert session.last_error == message
        assert session.last_failure.code == "quota"
        assert session.is_connected

        await session.disconnect()
        assert session.state is SessionStatus.IDLE


class TestTeardown:
    async def test_disconnect_twice_is_safe(self, make_session):
        session, socket = await open_session(make_session)

        await session.disconnect()
        await session.disconnect()

        assert session.state is SessionStatus.IDLE
        assert socket.closed

    async def test_disconnect_releases_devices(self, make_session):
        capture = FakeCapture()
        output = FakeOutput(write_delay=0.02)
        session, socket = await open_session(make_session, capture_source=capture, output_device=output)
        await session.start_recording()
        socket.push({"type": "response.audio.delta", "delta": base64.b64encode(b"\x00\x00" * 10).decode()})
        await wait_until(lambda: output.opened == 1)

        await session.disconnect()

        assert capture.closed == 1
        assert output.closes == [True]
        assert not session.playback.is_running
        assert not session.is_recording

    async def test_disconnect_while_microphone_opens_releases_it(self, make_session):
        capture = FakeCapture(open_delay=0.05)
        session, _ = await open_session(make_session, capture_source=capture)

        starting = asyncio.create_task(session.start_recording())
        await asyncio.sleep(0.01)
        await session.disconnect()
        await starting

        assert session.state is SessionStatus.IDLE
        assert not session.is_recording
        assert capture.opened == 1
        assert capture.closed == 1

    async def test_disconnect_closes_vision_client(self, make_session):
        vision = FakeVisionClient()
        session, _ = await open_session(make_session, "openai", vision_client=vision)

        await session.disconnect()
        await session.disconnect()

        assert vision.closed

    async def test_socket_failure_surfaces_error_and_goes_idle(self, make_session, listener):
        session, socket = await open_session(make_session)

        socket.push(ConnectionResetError("reset by peer"))
        await wait_until(lambda: session.state is SessionStatus.IDLE)

        assert listener.named("error") == [("error", "Connection lost: reset by peer")]
        assert socket.closed
        assert not session.is_connected

    async def test_normal_close_goes_idle_without_error(self, make_session, listener):
        session, socket = await open_session(make_session)

        socket.push(ConnectionClosedOK(Close(1000, "bye"), Close(1000, "bye")))
        await wait_until(lambda: session.state is SessionStatus.IDLE)

        assert listener.named("error") == []

    async def test_queued_audio_drains_when_socket_drops(self, make_session):
        output = FakeOutput(write_delay=0.01)
        session, socket = await open_session(make_session, output_device=output)
        for _ in range(3):
            socket.push({"type": "response.audio.delta", "delta": base64.b64encode(b"\x00\x00" * 10).decode()})
        socket.push(ConnectionResetError("gone"))
        await wait_until(lambda: session.state is SessionStatus.IDLE)

        assert len(output.written) == 3
        assert output.closes == [False]

    async def test_idle_timeout_closes_session(self, make_session, listener):
        session, _ = await open_session(make_session, idle_timeout=0.05)

        await wait_until(lambda: session.state is SessionStatus.IDLE)

        assert "No server traffic" in listener.named("error")[0][1]


async def test_end_to_end_omni_turn(make_session, listener):
    connector = FakeConnector()
    capture = FakeCapture([PCM_FRAME])
    session = make_session("omni", connector=connector, capture_source=capture)
    socket = connector.socket

    await session.connect()
    socket.push({"type": "session.created"})
    socket.push({"type": "session.updated"})
    await wait_until(lambda: session.state is SessionStatus.CONNECTED)

    await session.start_recording()
    await wait_until(lambda: "input_audio_buffer.append" in socket.sent_types())
    assert socket.sent_types().count("input_audio_buffer.append") == 1

    socket.push({"type": "input_audio_buffer.speech_started"})
    await wait_until(lambda: session.state is SessionStatus.RECORDING)
    assert listener.named("speech_started") == [("speech_started",)]

    await session.disconnect()
    assert session.state is SessionStatus.IDLE
