"""
Live Interview Session.

The session state machine. Owns the media pair, recorder, proctoring monitor
and streaming client for one interview, and exposes a single start/end
contract to the host application.

    Idle -> Connecting -> Active -> Terminated | Ended

- start() acquires media (PermissionDeniedError propagates), starts the
  recorder, the proctoring checks and the live stream, then goes Active.
  A live stream that fails to open or drops later leaves the session Active
  but degraded.
- end() drains the recorder, closes the stream, stops proctoring, releases
  media and hands the SessionArtifact to on_end exactly once.
- A second cheating violation moves the session to Terminated: everything is
  torn down immediately and no artifact is produced.

Every resource and timer is registered in one ResourceBag so all exit paths
share the same idempotent disposal.

Last Grunted: 10/17/2026
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from aiortc.contrib.media import MediaRecorder

from .clock import AsyncioClock, Clock
from .config import LiveInterviewSettings
from .media import FrameGrabber, MediaCapture, MediaStreamPair, MicrophoneReader
from .models import (
    AiStatus,
    ProctoringIssues,
    ProctoringSignal,
    SessionArtifact,
    SessionStatus,
    SignalKind,
    Speaker,
    TranscriptEntry,
)
from .oracle import VisionOracle
from .playback import AudioOutput, AudioPlayback, SoundDeviceOutput
from .proctoring import AudioLevelMeter, ProctoringMonitor, Visibility
from .prompts import build_system_instruction
from .pubsub import SessionEvent, SessionEventPublisher, SessionEventType
from .recorder import RecorderFactory, SessionRecorder
from .resources import ResourceBag
from .speech import SpeechSynthesizer
from .streaming import LiveConnector, StreamingClient, StreamingConnectionError, StreamingState
from .transcript import TranscriptAggregator


__all__ = ["LiveInterviewSession"]


logger = logging.getLogger(__name__)

EndCallback = Callable[[SessionArtifact], Union[None, Awaitable[None]]]
TerminatedCallback = Callable[[], Union[None, Awaitable[None]]]

_SILENCE_TIMER = "silence"
_WARNING_TIMER = "warning_dismiss"


async def _call(callback: Callable[..., Any], *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class LiveInterviewSession:
    """
    Orchestrates one live AI interview.

    Args:
        settings: Tunables (intervals, thresholds, sample rates, models).
        job_description: Job description given to the interviewer.
        resume_text: Candidate resume given to the interviewer.
        capture: Media capture layer.
        connector: Opens the live streaming session.
        oracle: Vision oracle for proctoring.
        speaker: Speaks proctoring warnings.
        on_end: Receives the artifact of a gracefully ended session.
        on_terminated: Called once after a terminated session is torn down.
        clock: Timer source. Defaults to the asyncio clock.
        playback_output: Speaker output. Defaults to sounddevice.
        recorder_factory: aiortc MediaRecorder compatible factory.
        publisher: Event stream for a host UI.

    Example:
        >>> session = LiveInterviewSession(
        ...     settings, job_description=job, resume_text=resume,
        ...     capture=MediaCapture(settings), connector=connector,
        ...     oracle=oracle, speaker=Pyttsx3Speaker(), on_end=save_artifact,
        ... )
        >>> await session.start()
        >>> ...
        >>> artifact = await session.end(code="def solve(): ...")
    """

    def __init__(
        self,
        settings: LiveInterviewSettings,
        *,
        job_description: str,
        resume_text: str,
        capture: MediaCapture,
        connector: LiveConnector,
        oracle: VisionOracle,
        speaker: SpeechSynthesizer,
        on_end: EndCallback,
        on_terminated: Optional[TerminatedCallback] = None,
        clock: Optional[Clock] = None,
        playback_output: Optional[AudioOutput] = None,
        recorder_factory: RecorderFactory = MediaRecorder,
        publisher: Optional[SessionEventPublisher] = None,
    ) -> None:
        self._settings = settings
        self._job_description = job_description
        self._resume_text = resume_text
        self._capture = capture
        self._connector = connector
        self._oracle = oracle
        self._speaker = speaker
        self._on_end = on_end
        self._on_terminated = on_terminated
        self._clock = clock or AsyncioClock()
        self._playback_output = playback_output
        self._recorder_factory = recorder_factory
        self.publisher = publisher or SessionEventPublisher()

        self._bag = ResourceBag()
        self._visibility = Visibility()
        self._transcript = TranscriptAggregator()
        self._pair: Optional[MediaStreamPair] = None
        self._recorder: Optional[SessionRecorder] = None
        self._monitor: Optional[ProctoringMonitor] = None
        self._streaming: Optional[StreamingClient] = None
        self._playback: Optional[AudioPlayback] = None
        self._teardown: Optional[asyncio.Task] = None

        self._status = SessionStatus.IDLE
        self._ai_status = AiStatus.THINKING
        self._question_count = 1
        self._warning_count = 0
        self._show_cheating_warning = False
        self._muted = False
        self._code = ""
        self._artifact_delivered = False

    # =========================================================================
    # Observable state
    # =========================================================================

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def ai_status(self) -> AiStatus:
        return self._ai_status

    @property
    def question_count(self) -> int:
        return self._question_count

    @property
    def warning_count(self) -> int:
        return self._warning_count

    @property
    def show_cheating_warning(self) -> bool:
        return self._show_cheating_warning

    @property
    def is_absence_warning_active(self) -> bool:
        return self._monitor is not None and self._monitor.absence_warning_active

    @property
    def proctoring_issues(self) -> ProctoringIssues:
        return self._monitor.issues if self._monitor is not None else ProctoringIssues()

    @property
    def transcript(self) -> list[TranscriptEntry]:
        return self._transcript.entries

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def streaming_state(self) -> StreamingState:
        return self._streaming.state if self._streaming is not None else StreamingState.IDLE

    @property
    def code(self) -> str:
        """Current contents of the candidate's code editor."""
        return self._code

    @code.setter
    def code(self, value: str) -> None:
        self._code = value

    @property
    def volume(self) -> float:
        return self._playback.volume if self._playback is not None else self._settings.playback_volume

    @volume.setter
    def volume(self, value: float) -> None:
        if self._playback is not None:
            self._playback.volume = value

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """
        Acquire media and bring the interview online.

        Raises:
            PermissionDeniedError: If any capture device is denied. Nothing is
                retained and the session returns to Idle, so start() may be
                retried.
            RuntimeError: If the session was already started.
        """
        if self._status is not SessionStatus.IDLE:
            raise RuntimeError(f"Session already started (status={self._status.value})")
        self._set_status(SessionStatus.CONNECTING)

        try:
            pair = await self._capture.acquire()
        except Exception:
            self._set_status(SessionStatus.IDLE)
            raise
        if self._status is not SessionStatus.CONNECTING:
            # Disposed while acquiring.
            self._capture.release(pair)
            return
        self._pair = pair
        self._bag.add("media", lambda: self._capture.release(pair))

        self._recorder = SessionRecorder(pair, self._settings, self._clock, self._recorder_factory)
        self._bag.add("recorder", self._recorder.abort)
        await self._recorder.start()
        if self._status is not SessionStatus.CONNECTING:
            return

        self._start_proctoring(pair)

        output = self._playback_output or SoundDeviceOutput(self._settings.output_sample_rate)
        self._playback = AudioPlayback(
            self._clock, output, self._settings.output_sample_rate, self._settings.playback_volume
        )
        self._streaming = StreamingClient(
            self._connector,
            self._playback,
            sample_rate=self._settings.input_sample_rate,
            on_input_text=self._handle_input_text,
            on_output_text=self._handle_output_text,
            on_output_audio=self._handle_output_audio,
            on_turn_complete=self._handle_turn_complete,
            on_error=self._handle_stream_error,
        )
        self._bag.add("streaming", self._streaming.close)
        microphone = MicrophoneReader(
            pair.camera.subscribe_audio(),
            self._settings.input_sample_rate,
            self._settings.input_block_size,
            gate=lambda: pair.camera.audio_enabled,
        )
        instruction = build_system_instruction(self._job_description, self._resume_text)
        await self._streaming.open(instruction, microphone)
        if self._status is not SessionStatus.CONNECTING:
            return

        self._set_status(SessionStatus.ACTIVE)

    def _start_proctoring(self, pair: MediaStreamPair) -> None:
        camera = FrameGrabber(pair.camera.subscribe_video(), "camera")
        camera.start()
        levels = AudioLevelMeter(pair.camera.subscribe_audio(), self._settings.input_sample_rate)
        levels.start()
        screen: Optional[FrameGrabber] = None
        if self._settings.proctor_screen_share:
            screen = FrameGrabber(pair.screen.subscribe_video(), "screen")
            screen.start()

        monitor = ProctoringMonitor(
            self._clock,
            self._oracle,
            camera,
            levels,
            self._speaker,
            self._settings,
            visibility=self._visibility,
            screen=screen,
            on_cheating=self.report_cheating,
            on_absence=self._handle_absence,
            on_issues=self._handle_issues,
            on_signals=self._handle_signals,
        )
        self._monitor = monitor

        async def stop_proctoring() -> None:
            monitor.stop()
            await camera.stop()
            await levels.stop()
            if screen is not None:
                await screen.stop()

        self._bag.add("proctoring", stop_proctoring)
        monitor.start()

    async def end(self, code: Optional[str] = None) -> Optional[SessionArtifact]:
        """
        End the interview gracefully and deliver the artifact to on_end.

        Args:
            code: Final editor contents. Defaults to the last value set on
                the code property.

        Returns:
            The artifact, or None if the session was not active.
        """
        if self._status is not SessionStatus.ACTIVE:
            logger.warning("end() ignored: session is %s", self._status.value)
            return None
        if code is not None:
            self._code = code
        self._set_status(SessionStatus.ENDED)
        self._bag.cancel_timers()
        transcript = self._transcript.entries

        recording = await self._recorder.stop() if self._recorder is not None else ""
        await self._bag.close("recorder")
        await self._bag.close("streaming")
        await self._bag.close("proctoring")
        await self._bag.close("media")
        await self._bag.dispose_all()

        artifact = SessionArtifact(transcript=transcript, code_submission=self._code, recording_data=recording)
        await self._deliver(artifact)
        return artifact

    async def _deliver(self, artifact: SessionArtifact) -> None:
        if self._artifact_delivered:
            return
        self._artifact_delivered = True
        logger.info(
            "Session ended: %d transcript entries, recording %s",
            len(artifact.transcript),
            "attached" if artifact.recording_data else "unavailable",
        )
        await _call(self._on_end, artifact)

    def _terminate(self) -> None:
        self._set_status(SessionStatus.TERMINATED)
        self._show_cheating_warning = False
        self._bag.cancel_timers()
        if self._monitor is not None:
            self._monitor.stop()
        self._teardown = asyncio.get_running_loop().create_task(
            self._teardown_terminated(), name="session-teardown"
        )

    async def _teardown_terminated(self) -> None:
        await self._bag.dispose_all()
        logger.info("Terminated session torn down")
        if self._on_terminated is not None:
            await _call(self._on_terminated)

    async def wait_closed(self) -> None:
        """Wait for a pending termination teardown to finish."""
        if self._teardown is not None:
            await self._teardown

    async def dispose(self) -> None:
        """
        Tear everything down without producing an artifact.

        For hosts that abandon the session (e.g. the candidate navigates
        away). Safe to call on any path, any number of times.
        """
        if self._status in (SessionStatus.CONNECTING, SessionStatus.ACTIVE):
            self._set_status(SessionStatus.ENDED)
        await self._bag.dispose_all()
        await self.wait_closed()

    # =========================================================================
    # Host controls
    # =========================================================================

    def set_muted(self, muted: bool) -> None:
        """Mute or unmute the transport; the live stream stays open."""
        self._muted = muted
        if self._pair is not None:
            self._pair.camera.audio_enabled = not muted

    def toggle_mute(self) -> bool:
        self.set_muted(not self._muted)
        return self._muted

    def set_visible(self, visible: bool) -> None:
        """Report page visibility; proctoring checks pause while hidden."""
        self._visibility.hidden = not visible

    # =========================================================================
    # Proctoring
    # =========================================================================

    def report_cheating(self, signal: Optional[ProctoringSignal] = None) -> None:
        """
        Count one confirmed cheating violation.

        The first shows a transient warning; the second terminates the
        session. Ignored once the session is no longer active.
        """
        if self._status is not SessionStatus.ACTIVE:
            return
        signal = signal or ProctoringSignal(kind=SignalKind.CHEATING_DETECTED)
        self._warning_count += 1
        logger.warning("Cheating violation %d: %s", self._warning_count, signal.detail or signal.kind.value)

        if self._warning_count >= self._settings.warning_threshold:
            self._publish(
                SessionEventType.WARNING,
                "The interview has been terminated due to repeated policy violations.",
                warning_count=self._warning_count,
                terminal=True,
            )
            self._terminate()
            return

        self._show_cheating_warning = True
        self._bag.set_timer(
            _WARNING_TIMER,
            self._clock.call_later(self._settings.warning_dismiss_seconds, self._dismiss_warning),
        )
        self._publish(
            SessionEventType.WARNING,
            "Warning: Please do not use your mobile phone.",
            warning_count=self._warning_count,
            terminal=False,
        )

    def _dismiss_warning(self) -> None:
        self._show_cheating_warning = False
        self._bag.cancel_timer(_WARNING_TIMER)

    def _handle_absence(self) -> None:
        if self._muted:
            self.set_muted(False)
        self._publish(SessionEventType.PROCTORING, self._settings.absence_warning_text, absent=True)

    def _handle_issues(self, issues: ProctoringIssues) -> None:
        self._publish(SessionEventType.PROCTORING, "Proctoring state changed", issues=issues.model_dump())

    def _handle_signals(self, source: str, signals: list[ProctoringSignal]) -> None:
        logger.debug("%s signals: %s", source, [s.kind.value for s in signals])

    # =========================================================================
    # Streaming
    # =========================================================================

    def _handle_input_text(self, text: str) -> None:
        if self._status is not SessionStatus.ACTIVE:
            return
        self._set_ai_status(AiStatus.LISTENING)
        self._bag.set_timer(
            _SILENCE_TIMER,
            self._clock.call_later(self._settings.silence_timeout, self._handle_silence),
        )
        self._add_fragment(Speaker.CANDIDATE, text)

    def _handle_silence(self) -> None:
        self._bag.cancel_timer(_SILENCE_TIMER)
        if self._status is SessionStatus.ACTIVE:
            self._set_ai_status(AiStatus.THINKING)

    def _handle_output_text(self, text: str) -> None:
        if self._status is not SessionStatus.ACTIVE:
            return
        self._bag.cancel_timer(_SILENCE_TIMER)
        self._set_ai_status(AiStatus.SPEAKING)
        self._add_fragment(Speaker.AGENT, text)

    def _handle_output_audio(self) -> None:
        if self._status is not SessionStatus.ACTIVE:
            return
        self._bag.cancel_timer(_SILENCE_TIMER)
        self._set_ai_status(AiStatus.SPEAKING)

    def _handle_turn_complete(self) -> None:
        if self._status is not SessionStatus.ACTIVE:
            return
        self._transcript.turn_complete()
        self._set_ai_status(AiStatus.IDLE)
        self._question_count += 1
        self._publish(SessionEventType.TURN, f"Question {self._question_count}", question_count=self._question_count)

    def _handle_stream_error(self, exc: StreamingConnectionError) -> None:
        logger.error("Live stream unavailable, continuing without it: %s", exc)
        self._publish(SessionEventType.ERROR, str(exc), component="streaming")

    def _add_fragment(self, speaker: Speaker, text: str) -> None:
        timestamp = self._recorder.elapsed() if self._recorder is not None else None
        entry = self._transcript.add_fragment(speaker, text, timestamp)
        self._publish(
            SessionEventType.TRANSCRIPT,
            entry.text,
            index=len(self._transcript) - 1,
            entry=entry.model_dump(mode="json"),
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _set_status(self, status: SessionStatus) -> None:
        if status is self._status:
            return
        logger.info("Session %s -> %s", self._status.value, status.value)
        self._status = status
        self._publish(SessionEventType.STATUS, status.value, status=status.value)

    def _set_ai_status(self, status: AiStatus) -> None:
        if status is self._ai_status:
            return
        self._ai_status = status
        self._publish(SessionEventType.AI_STATUS, status.value, ai_status=status.value)

    def _publish(self, event_type: SessionEventType, content: str, **data: Any) -> None:
        self.publisher.publish_nowait(SessionEvent(event_type, content, data=data))
