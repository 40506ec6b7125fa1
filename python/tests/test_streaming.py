"""
Tests for the streaming session client.

Uses FakeLiveConnector so no network connection is made.

Last Grunted: 10/18/2026
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import numpy as np
import pytest
from google.genai import types

from live_interview.codec import AudioChunk, encode_frame
from live_interview.playback import AudioPlayback
from live_interview.streaming import (
    GeminiLiveConnection,
    GeminiLiveConnector,
    LiveEvent,
    StreamingClient,
    StreamingConnectionError,
    StreamingState,
)
from tests.mock_data import (
    FakeAudioOutput,
    FakeLiveConnector,
    ManualClock,
    audio_blocks,
    settle,
)


async def _idle_source():
    # Never yields; keeps the send task parked.
    await asyncio.Event().wait()
    yield np.zeros(0, dtype=np.float32)


class Recorder:
    """Collects handler calls in arrival order."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, object]] = []
        self.errors: list[StreamingConnectionError] = []

    def client(self, connector: FakeLiveConnector, output: FakeAudioOutput) -> StreamingClient:
        playback = AudioPlayback(ManualClock(), output, sample_rate=24000)
        return StreamingClient(
            connector,
            playback,
            on_input_text=lambda text: self.calls.append(("input", text)),
            on_output_text=lambda text: self.calls.append(("output", text)),
            on_output_audio=lambda: self.calls.append(("audio", None)),
            on_turn_complete=lambda: self.calls.append(("turn", None)),
            on_error=self.errors.append,
        )


# =============================================================================
# LiveEvent parsing
# =============================================================================

class TestLiveEvent:
    """Tests for inbound message parsing."""

    def test_from_wire_reads_every_field(self):
        """Transcriptions, turn flag and all inline audio parts are extracted."""
        payload = {
            "serverContent": {
                "inputTranscription": {"text": "I have"},
                "outputTranscription": {"text": "Great"},
                "turnComplete": True,
                "modelTurn": {
                    "parts": [
                        {"inlineData": {"data": "AAA=", "mimeType": "audio/pcm;rate=24000"}},
                        {"text": "ignored"},
                        {"inlineData": {"data": "AEA=", "mimeType": "audio/pcm;rate=24000"}},
                    ]
                },
            }
        }

        event = LiveEvent.from_wire(payload)

        assert event.input_text == "I have"
        assert event.output_text == "Great"
        assert event.turn_complete is True
        assert event.audio == ["AAA=", "AEA="]

    def test_from_wire_without_server_content_is_empty(self):
        assert LiveEvent.from_wire({"setupComplete": {}}).is_empty

    def test_from_server_message(self):
        """SDK messages with raw audio bytes are reduced the same way."""
        message = SimpleNamespace(
            server_content=SimpleNamespace(
                input_transcription=None,
                output_transcription=SimpleNamespace(text="Hello"),
                turn_complete=False,
                model_turn=SimpleNamespace(
                    parts=[SimpleNamespace(inline_data=SimpleNamespace(data=b"\x00\x40"))]
                ),
            )
        )

        event = LiveEvent.from_server_message(message)

        assert event.input_text is None
        assert event.output_text == "Hello"
        assert event.audio == [b"\x00\x40"]

    def test_from_server_message_without_content(self):
        assert LiveEvent.from_server_message(SimpleNamespace(server_content=None)).is_empty


# =============================================================================
# Client
# =============================================================================

class TestStreamingClient:
    """Tests for StreamingClient."""

    @pytest.mark.asyncio
    async def test_audio_blocks_sent_in_capture_order(self):
        connector = FakeLiveConnector()
        client = Recorder().client(connector, FakeAudioOutput())

        assert await client.open("Be an interviewer.", audio_blocks(3, size=8))
        await settle()

        sent = connector.connection.sent
        assert [chunk.data for chunk in sent] == [
            encode_frame(np.full(8, (i + 1) / 100.0, dtype=np.float32)) for i in range(3)
        ]
        assert all(chunk.mime_type == "audio/pcm;rate=16000" for chunk in sent)
        assert client.frames_sent == 3
        assert connector.instructions == ["Be an interviewer."]
        await client.close()

    @pytest.mark.asyncio
    async def test_event_parts_dispatched_in_order(self):
        """Input, output, audio and turn-complete handlers fire in that order."""
        connector = FakeLiveConnector()
        output = FakeAudioOutput()
        recorder = Recorder()
        client = recorder.client(connector, output)
        await client.open("x", _idle_source())

        connector.connection.push(LiveEvent(
            input_text="yes",
            output_text="Thanks",
            turn_complete=True,
            audio=[encode_frame(np.full(240, 0.5, dtype=np.float32))],
        ))
        await settle()

        assert recorder.calls == [("input", "yes"), ("output", "Thanks"), ("audio", None), ("turn", None)]
        assert client._playback.active_sources == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_audio_only_message_reports_agent_audio_once(self):
        """Several audio parts in one message fire the audio handler once."""
        connector = FakeLiveConnector()
        output = FakeAudioOutput()
        recorder = Recorder()
        client = recorder.client(connector, output)
        await client.open("x", _idle_source())

        part = encode_frame(np.full(240, 0.25, dtype=np.float32))
        connector.connection.push(LiveEvent(audio=[part, part]))
        await settle()

        assert recorder.calls == [("audio", None)]
        assert client._playback.active_sources == 2
        await client.close()

    @pytest.mark.asyncio
    async def test_undecodable_audio_is_skipped(self):
        connector = FakeLiveConnector()
        recorder = Recorder()
        client = recorder.client(connector, FakeAudioOutput())
        await client.open("x", _idle_source())

        connector.connection.push(LiveEvent(output_text="ok", audio=["***"]))
        await settle()

        assert recorder.calls == [("output", "ok")]
        assert client.state is StreamingState.OPEN
        await client.close()

    @pytest.mark.asyncio
    async def test_connect_failure_reports_error(self):
        """A failed connect returns False and moves the client to Errored."""
        connector = FakeLiveConnector(fail_with=ConnectionRefusedError("refused"))
        recorder = Recorder()
        client = recorder.client(connector, FakeAudioOutput())

        assert await client.open("x", _idle_source()) is False

        assert client.state is StreamingState.ERRORED
        assert len(recorder.errors) == 1
        assert isinstance(recorder.errors[0].cause, ConnectionRefusedError)
        await client.close()
        assert client.state is StreamingState.ERRORED

    @pytest.mark.asyncio
    async def test_cannot_reopen(self):
        connector = FakeLiveConnector()
        client = Recorder().client(connector, FakeAudioOutput())
        await client.open("x", _idle_source())
        await client.close()

        with pytest.raises(RuntimeError):
            await client.open("x", _idle_source())

    @pytest.mark.asyncio
    async def test_remote_drop_errors_and_silences_playback(self):
        connector = FakeLiveConnector()
        output = FakeAudioOutput()
        recorder = Recorder()
        client = recorder.client(connector, output)
        await client.open("x", _idle_source())

        connector.connection.fail(ConnectionResetError("socket closed"))
        await settle()

        assert client.state is StreamingState.ERRORED
        assert len(recorder.errors) == 1
        assert output.clears == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_remote_close_is_an_error(self):
        connector = FakeLiveConnector()
        recorder = Recorder()
        client = recorder.client(connector, FakeAudioOutput())
        await client.open("x", _idle_source())

        connector.connection.finish()
        await settle()

        assert client.state is StreamingState.ERRORED
        assert "closed by remote" in str(recorder.errors[0])
        await client.close()

    @pytest.mark.asyncio
    async def test_send_failure_is_an_error(self):
        connector = FakeLiveConnector()
        connector.connection.send_error = BrokenPipeError("gone")
        recorder = Recorder()
        client = recorder.client(connector, FakeAudioOutput())

        await client.open("x", audio_blocks(2))
        await settle()

        assert client.state is StreamingState.ERRORED
        assert len(recorder.errors) == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_close_is_idempotent_and_releases_everything(self):
        connector = FakeLiveConnector()
        output = FakeAudioOutput()
        recorder = Recorder()
        client = recorder.client(connector, output)
        await client.open("x", _idle_source())

        await client.close()
        await client.close()

        assert client.state is StreamingState.CLOSED
        assert connector.closed
        assert output.closed
        assert recorder.errors == []

    @pytest.mark.asyncio
    async def test_close_while_connecting_discards_the_session(self):
        """A connect that completes after close() is shut down, never streamed."""
        connector = FakeLiveConnector(gate=asyncio.Event())
        output = FakeAudioOutput()
        recorder = Recorder()
        client = recorder.client(connector, output)
        opening = asyncio.create_task(client.open("x", audio_blocks(3, size=8)))
        await asyncio.wait_for(connector.entered.wait(), 1.0)
        assert client.state is StreamingState.CONNECTING

        await client.close()
        connector.gate.set()

        assert await opening is False
        await settle()
        assert client.state is StreamingState.CLOSED
        assert connector.closed
        assert connector.connection.sent == []
        assert client.frames_sent == 0
        assert recorder.errors == []
        assert output.closed

    @pytest.mark.asyncio
    async def test_events_after_close_are_ignored(self):
        connector = FakeLiveConnector()
        recorder = Recorder()
        client = recorder.client(connector, FakeAudioOutput())
        await client.open("x", _idle_source())
        await client.close()

        connector.connection.push(LiveEvent(input_text="late"))
        await settle()

        assert recorder.calls == []


# =============================================================================
# Gemini adapter
# =============================================================================

class FakeGeminiSession:
    """AsyncSession stand-in whose receive() yields one batch per call."""

    def __init__(self, batches: list[list[object]]) -> None:
        self._batches = list(batches)
        self.sent: list[types.Blob] = []

    async def send_realtime_input(self, *, audio: types.Blob) -> None:
        self.sent.append(audio)

    async def receive(self):
        batch = self._batches.pop(0) if self._batches else []
        for message in batch:
            yield message


class TestGeminiAdapter:
    """Tests for the google-genai adapter."""

    def test_config_requests_audio_and_both_transcriptions(self):
        connector = GeminiLiveConnector(client=None, model="gemini-live")

        config = connector.build_config("Interview the candidate.")

        assert config.response_modalities == [types.Modality.AUDIO]
        assert config.system_instruction.parts[0].text == "Interview the candidate."
        assert config.input_audio_transcription is not None
        assert config.output_audio_transcription is not None

    @pytest.mark.asyncio
    async def test_send_audio_uses_raw_pcm_blob(self):
        session = FakeGeminiSession([])
        connection = GeminiLiveConnection(session)
        chunk = AudioChunk.from_samples(np.array([0.5], dtype=np.float32), 16000)

        await connection.send_audio(chunk)

        assert session.sent[0].data == chunk.pcm_bytes()
        assert session.sent[0].mime_type == "audio/pcm;rate=16000"

    @pytest.mark.asyncio
    async def test_events_span_turns_until_receive_is_empty(self):
        """receive() is re-entered after each turn until it yields nothing."""
        first = SimpleNamespace(server_content=SimpleNamespace(
            input_transcription=None, output_transcription=SimpleNamespace(text="Hi"),
            turn_complete=True, model_turn=None,
        ))
        second = SimpleNamespace(server_content=SimpleNamespace(
            input_transcription=SimpleNamespace(text="Hello"), output_transcription=None,
            turn_complete=False, model_turn=None,
        ))
        connection = GeminiLiveConnection(FakeGeminiSession([[first], [second], []]))

        events = [event async for event in connection.events()]

        assert [(e.output_text, e.input_text) for e in events] == [("Hi", None), (None, "Hello")]
