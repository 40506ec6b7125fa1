"""
Streaming Session Client.

Bidirectional session with the remote live model. Microphone blocks are
encoded and pushed in capture order; inbound server messages are decoded into
LiveEvent objects and dispatched to transcription handlers and to gapless
playback.

The remote side is Gemini Live through google-genai. The connector is an
injectable seam so tests (and alternative transports) can supply their own
LiveConnection.

Last Grunted: 10/14/2026
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Any, AsyncContextManager, AsyncIterable, AsyncIterator, Callable, Optional, Protocol, Union

import numpy as np
from google import genai
from google.genai import types
from pydantic import BaseModel, Field

from .codec import AudioChunk, decode_frame
from .playback import AudioPlayback
from .resources import cancel_and_wait


__all__ = [
    "GeminiLiveConnection",
    "GeminiLiveConnector",
    "LiveConnection",
    "LiveConnector",
    "LiveEvent",
    "StreamingClient",
    "StreamingConnectionError",
    "StreamingState",
]


logger = logging.getLogger(__name__)


class StreamingState(str, Enum):
    """Connection lifecycle. Closed and Errored are final."""

    IDLE = "Idle"
    CONNECTING = "Connecting"
    OPEN = "Open"
    CLOSED = "Closed"
    ERRORED = "Errored"


class StreamingConnectionError(Exception):
    """Raised when the streaming session fails to open or drops."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        super().__init__(f"{message}: {cause}" if cause else message)


# =============================================================================
# Inbound events
# =============================================================================

class LiveEvent(BaseModel):
    """
    One inbound server message, reduced to what the session consumes.

    Attributes:
        input_text: Candidate transcription fragment, if any.
        output_text: Agent transcription fragment, if any.
        turn_complete: Whether the agent finished its turn.
        audio: Inline audio payloads of every model-turn part, in order.
            Each is base64 text or raw PCM bytes.
    """

    input_text: Optional[str] = None
    output_text: Optional[str] = None
    turn_complete: bool = False
    audio: list[Union[str, bytes]] = Field(default_factory=list)

    @classmethod
    def from_server_message(cls, message: Any) -> "LiveEvent":
        """Build from a google-genai LiveServerMessage."""
        content = getattr(message, "server_content", None)
        if content is None:
            return cls()
        input_tx = getattr(content, "input_transcription", None)
        output_tx = getattr(content, "output_transcription", None)
        audio: list[Union[str, bytes]] = []
        model_turn = getattr(content, "model_turn", None)
        for part in (getattr(model_turn, "parts", None) or []):
            inline = getattr(part, "inline_data", None)
            if inline is not None and inline.data:
                audio.append(inline.data)
        return cls(
            input_text=getattr(input_tx, "text", None) if input_tx is not None else None,
            output_text=getattr(output_tx, "text", None) if output_tx is not None else None,
            turn_complete=bool(getattr(content, "turn_complete", False)),
            audio=audio,
        )

    @classmethod
    def from_wire(cls, payload: dict[str, Any]) -> "LiveEvent":
        """Build from a camelCase JSON server message."""
        content = payload.get("serverContent") or {}
        parts = (content.get("modelTurn") or {}).get("parts") or []
        audio = [
            part["inlineData"]["data"]
            for part in parts
            if (part.get("inlineData") or {}).get("data")
        ]
        return cls(
            input_text=(content.get("inputTranscription") or {}).get("text"),
            output_text=(content.get("outputTranscription") or {}).get("text"),
            turn_complete=bool(content.get("turnComplete", False)),
            audio=audio,
        )

    @property
    def is_empty(self) -> bool:
        return (
            not self.input_text
            and not self.output_text
            and not self.turn_complete
            and not self.audio
        )


# =============================================================================
# Transport seam
# =============================================================================

class LiveConnection(Protocol):
    """An open live session."""

    async def send_audio(self, chunk: AudioChunk) -> None: ...

    def events(self) -> AsyncIterator[LiveEvent]: ...


class LiveConnector(Protocol):
    """Opens live sessions for a given system instruction."""

    def connect(self, system_instruction: str) -> AsyncContextManager[LiveConnection]: ...


class GeminiLiveConnection:
    """LiveConnection over a google-genai AsyncSession."""

    def __init__(self, session: Any) -> None:
        self._session = session

    async def send_audio(self, chunk: AudioChunk) -> None:
        await self._session.send_realtime_input(
            audio=types.Blob(data=chunk.pcm_bytes(), mime_type=chunk.mime_type)
        )

    async def events(self) -> AsyncIterator[LiveEvent]:
        # receive() ends after each turn_complete; re-enter until the
        # server stops sending.
        while True:
            received = False
            async for message in self._session.receive():
                received = True
                yield LiveEvent.from_server_message(message)
            if not received:
                return


class GeminiLiveConnector:
    """
    Connects to Gemini Live with audio responses and both transcriptions.

    Example:
        >>> client = genai.Client(api_key=settings.gemini_api_key)
        >>> connector = GeminiLiveConnector(client, settings.live_model)
        >>> async with connector.connect(instruction) as connection:
        ...     await connection.send_audio(chunk)
    """

    def __init__(self, client: genai.Client, model: str) -> None:
        self._client = client
        self._model = model

    def build_config(self, system_instruction: str) -> types.LiveConnectConfig:
        return types.LiveConnectConfig(
            response_modalities=[types.Modality.AUDIO],
            system_instruction=types.Content(parts=[types.Part(text=system_instruction)]),
            input_audio_transcription=types.AudioTranscriptionConfig(),
            output_audio_transcription=types.AudioTranscriptionConfig(),
        )

    @contextlib.asynccontextmanager
    async def connect(self, system_instruction: str) -> AsyncIterator[LiveConnection]:
        config = self.build_config(system_instruction)
        logger.info("Connecting to live model %s", self._model)
        async with self._client.aio.live.connect(model=self._model, config=config) as session:
            yield GeminiLiveConnection(session)


# =============================================================================
# Client
# =============================================================================

TextHandler = Callable[[str], None]


def _noop_text(_: str) -> None:
    return None


def _noop() -> None:
    return None


def _log_error(exc: StreamingConnectionError) -> None:
    logger.error("Streaming error: %s", exc)


class StreamingClient:
    """
    Drives one live session: audio producer plus inbound event consumer.

    Handlers are plain callables invoked on the event loop in arrival order.
    Failures never propagate out of the client; they move it to Errored and
    are reported through on_error.

    Example:
        >>> client = StreamingClient(connector, playback, on_input_text=print)
        >>> await client.open(instruction, MicrophoneReader(track, 16000, 4096))
        >>> await client.close()
    """

    def __init__(
        self,
        connector: LiveConnector,
        playback: AudioPlayback,
        *,
        sample_rate: int = 16000,
        on_input_text: TextHandler = _noop_text,
        on_output_text: TextHandler = _noop_text,
        on_output_audio: Callable[[], None] = _noop,
        on_turn_complete: Callable[[], None] = _noop,
        on_error: Callable[[StreamingConnectionError], None] = _log_error,
    ) -> None:
        self._connector = connector
        self._playback = playback
        self._sample_rate = sample_rate
        self._on_input_text = on_input_text
        self._on_output_text = on_output_text
        self._on_output_audio = on_output_audio
        self._on_turn_complete = on_turn_complete
        self._on_error = on_error
        self._state = StreamingState.IDLE
        self._stack = contextlib.AsyncExitStack()
        self._connection: Optional[LiveConnection] = None
        self._send_task: Optional[asyncio.Task] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._closed = False
        self.frames_sent = 0

    @property
    def state(self) -> StreamingState:
        return self._state

    async def open(self, system_instruction: str, audio_source: AsyncIterable[np.ndarray]) -> bool:
        """
        Connect and start streaming.

        Returns:
            True when the session is open, False when connecting failed
            (the client is then Errored).

        Raises:
            RuntimeError: If the client was already opened.
        """
        if self._state is not StreamingState.IDLE:
            raise RuntimeError(f"Streaming client cannot be reopened (state={self._state.value})")
        self._state = StreamingState.CONNECTING
        try:
            self._connection = await self._stack.enter_async_context(
                self._connector.connect(system_instruction)
            )
        except Exception as exc:
            self._fail(StreamingConnectionError("Failed to open live session", exc))
            return False
        if self._closed:
            # close() ran while connecting.
            await self._release_connection()
            logger.info("Live session closed before it opened")
            return False

        self._state = StreamingState.OPEN
        logger.info("Live session open")
        loop = asyncio.get_running_loop()
        self._send_task = loop.create_task(self._pump_audio(audio_source), name="live-audio-send")
        self._receive_task = loop.create_task(self._consume_events(), name="live-receive")
        return True

    async def _pump_audio(self, audio_source: AsyncIterable[np.ndarray]) -> None:
        assert self._connection is not None
        try:
            async for block in audio_source:
                if self._state is not StreamingState.OPEN:
                    return
                await self._connection.send_audio(AudioChunk.from_samples(block, self._sample_rate))
                self.frames_sent += 1
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._fail(StreamingConnectionError("Failed to send audio", exc))
            return
        logger.debug("Audio source exhausted after %d frame(s)", self.frames_sent)

    async def _consume_events(self) -> None:
        assert self._connection is not None
        try:
            async for event in self._connection.events():
                if self._state is not StreamingState.OPEN:
                    return
                self._dispatch(event)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._fail(StreamingConnectionError("Live session dropped", exc))
            return
        if self._state is StreamingState.OPEN:
            self._fail(StreamingConnectionError("Live session closed by remote"))

    def _dispatch(self, event: LiveEvent) -> None:
        if event.input_text:
            self._on_input_text(event.input_text)
        if event.output_text:
            self._on_output_text(event.output_text)
        scheduled = 0
        for payload in event.audio:
            try:
                samples = decode_frame(payload)
            except ValueError as exc:
                logger.warning("Dropping undecodable audio payload: %s", exc)
                continue
            self._playback.schedule(samples)
            scheduled += 1
        if scheduled:
            self._on_output_audio()
        if event.turn_complete:
            self._on_turn_complete()

    def _fail(self, exc: StreamingConnectionError) -> None:
        if self._state in (StreamingState.CLOSED, StreamingState.ERRORED):
            return
        self._state = StreamingState.ERRORED
        self._playback.stop_all()
        logger.warning("Streaming client errored: %s", exc)
        self._on_error(exc)

    async def close(self) -> None:
        """Stop streaming, close the session and silence playback. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._state is not StreamingState.ERRORED:
            self._state = StreamingState.CLOSED
        await cancel_and_wait(self._send_task)
        await cancel_and_wait(self._receive_task)
        await self._release_connection()
        self._playback.close()
        logger.info("Live session closed (%s)", self._state.value)

    async def _release_connection(self) -> None:
        try:
            await self._stack.aclose()
        except Exception as exc:
            logger.warning("Error closing live session: %s", exc)
        self._connection = None
