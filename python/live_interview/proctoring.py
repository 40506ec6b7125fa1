"""
Proctoring Monitor.

Two independent periodic checks run for the whole session:

  - Visual (every 15 s): the current camera frame is judged by the vision
    oracle. Cheating is reported on every detecting tick. Absence is
    edge-triggered: one spoken warning per present -> absent transition,
    suppressed until a later tick confirms the candidate is back. Gaze and
    video quality update the display state.
  - Audio (every 2 s): the spectral energy of the raw microphone input is
    compared against a threshold to raise or clear the noise flag.

Both checks do nothing while the host reports the page hidden; their timers
keep firing. An optional third check judges screen-share frames for
cheating at the visual interval.

Last Grunted: 10/16/2026
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Protocol

import numpy as np
from aiortc.mediastreams import MediaStreamTrack

from .clock import Clock, TimerHandle
from .config import LiveInterviewSettings
from .media import MicrophoneReader
from .models import ProctoringIssues, ProctoringResult, ProctoringSignal, SignalKind
from .oracle import OracleCallError, VisionOracle
from .resources import cancel_and_wait
from .speech import SpeechSynthesizer


__all__ = [
    "AudioLevelMeter",
    "FrameSource",
    "FrequencyAnalyser",
    "LevelSource",
    "ProctoringMonitor",
    "Visibility",
]


logger = logging.getLogger(__name__)


# =============================================================================
# Audio level
# =============================================================================

class FrequencyAnalyser:
    """
    Byte-scaled spectrum of the most recent audio, with analyser-node semantics.

    A Blackman-windowed FFT of the last fft_size samples gives fft_size / 2
    bins. Magnitudes are smoothed across reads, converted to dB and mapped
    linearly from [min_db, max_db] onto 0..255.

    Example:
        >>> analyser = FrequencyAnalyser()
        >>> analyser.push(np.zeros(256, dtype=np.float32))
        >>> analyser.average_level()
        0.0
    """

    def __init__(
        self,
        fft_size: int = 256,
        smoothing: float = 0.8,
        min_db: float = -100.0,
        max_db: float = -30.0,
    ) -> None:
        if fft_size <= 0 or fft_size & (fft_size - 1):
            raise ValueError(f"fft_size must be a power of two. Got: {fft_size}")
        if max_db <= min_db:
            raise ValueError("max_db must be greater than min_db")
        self.fft_size = fft_size
        self.smoothing = smoothing
        self.min_db = min_db
        self.max_db = max_db
        self._window = np.blackman(fft_size).astype(np.float64)
        self._samples = np.zeros(fft_size, dtype=np.float64)
        self._smoothed = np.zeros(fft_size // 2, dtype=np.float64)

    @property
    def bin_count(self) -> int:
        return self.fft_size // 2

    def push(self, samples: np.ndarray) -> None:
        """Append time-domain samples, keeping the latest fft_size."""
        data = np.asarray(samples, dtype=np.float64).ravel()
        if data.size >= self.fft_size:
            self._samples = data[-self.fft_size:].copy()
        elif data.size:
            self._samples = np.concatenate([self._samples[data.size:], data])

    def byte_frequency_data(self) -> np.ndarray:
        """Current spectrum as uint8 values, one per bin."""
        spectrum = np.fft.rfft(self._samples * self._window)[: self.bin_count]
        magnitude = np.abs(spectrum) / self.fft_size
        self._smoothed = self.smoothing * self._smoothed + (1.0 - self.smoothing) * magnitude
        with np.errstate(divide="ignore"):
            db = 20.0 * np.log10(self._smoothed)
        scaled = (db - self.min_db) * (255.0 / (self.max_db - self.min_db))
        return np.clip(np.floor(scaled), 0, 255).astype(np.uint8)

    def average_level(self) -> float:
        """Mean of byte_frequency_data()."""
        return float(self.byte_frequency_data().mean())


class LevelSource(Protocol):
    def level(self) -> float: ...


class AudioLevelMeter:
    """
    Feeds a raw microphone subscription into a FrequencyAnalyser.

    Reads the track independently of the transport, so muting the
    microphone does not silence the noise check.
    """

    def __init__(
        self,
        track: MediaStreamTrack,
        sample_rate: int = 16000,
        analyser: Optional[FrequencyAnalyser] = None,
    ) -> None:
        self.analyser = analyser or FrequencyAnalyser()
        self._reader = MicrophoneReader(track, sample_rate, self.analyser.fft_size)
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run(), name="audio-level-meter")

    async def _run(self) -> None:
        async for block in self._reader:
            self.analyser.push(block)

    def level(self) -> float:
        return self.analyser.average_level()

    async def stop(self) -> None:
        await cancel_and_wait(self._task)
        self._task = None


# =============================================================================
# Monitor
# =============================================================================

class FrameSource(Protocol):
    async def snapshot_jpeg(self, quality: int = 70) -> Optional[str]: ...


class Visibility:
    """Host-reported page visibility. Checks pause while hidden."""

    def __init__(self, hidden: bool = False) -> None:
        self._hidden = hidden

    @property
    def hidden(self) -> bool:
        return self._hidden

    @hidden.setter
    def hidden(self, value: bool) -> None:
        if value != self._hidden:
            logger.info("Proctoring %s", "paused (page hidden)" if value else "resumed (page visible)")
        self._hidden = value


def _noop_signals(source: str, signals: list[ProctoringSignal]) -> None:
    return None


class ProctoringMonitor:
    """
    Periodic visual and audio proctoring.

    Args:
        clock: Timer source for both checks.
        oracle: Vision oracle judging camera (and screen) frames.
        camera: Latest camera frame source.
        levels: Microphone level source for the noise check.
        speaker: Speaks the absence warning.
        settings: Intervals, thresholds and warning text.
        visibility: Shared page visibility flag.
        screen: Screen frame source; checked only when
            settings.proctor_screen_share is set.
        on_cheating: Called once per tick that detects cheating.
        on_absence: Called when an absence warning is raised.
        on_issues: Called with the display state whenever it changes.
        on_signals: Called with every non-empty signal list, tagged with the
            check that produced it ("visual", "screen" or "audio").

    Example:
        >>> monitor = ProctoringMonitor(clock, oracle, grabber, meter, speaker, settings,
        ...                             on_cheating=session.report_cheating)
        >>> monitor.start()
        >>> monitor.stop()
    """

    def __init__(
        self,
        clock: Clock,
        oracle: VisionOracle,
        camera: FrameSource,
        levels: LevelSource,
        speaker: SpeechSynthesizer,
        settings: LiveInterviewSettings,
        *,
        visibility: Optional[Visibility] = None,
        screen: Optional[FrameSource] = None,
        on_cheating: Callable[[ProctoringSignal], None] = lambda signal: None,
        on_absence: Callable[[], None] = lambda: None,
        on_issues: Callable[[ProctoringIssues], None] = lambda issues: None,
        on_signals: Callable[[str, list[ProctoringSignal]], None] = _noop_signals,
    ) -> None:
        self._clock = clock
        self._oracle = oracle
        self._camera = camera
        self._levels = levels
        self._speaker = speaker
        self._settings = settings
        self.visibility = visibility or Visibility()
        self._screen = screen
        self._on_cheating = on_cheating
        self._on_absence = on_absence
        self._on_issues = on_issues
        self._on_signals = on_signals

        self._issues = ProctoringIssues()
        self._absence_warning_active = False
        self._timers: list[TimerHandle] = []
        self._running = False
        self._stopped = False
        self.absence_warnings = 0

    @property
    def issues(self) -> ProctoringIssues:
        return self._issues.model_copy()

    @property
    def absence_warning_active(self) -> bool:
        return self._absence_warning_active

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Schedule the periodic checks."""
        if self._running or self._stopped:
            return
        self._running = True
        self._timers.append(self._clock.call_every(self._settings.visual_check_interval, self.run_visual_check))
        self._timers.append(self._clock.call_every(self._settings.audio_check_interval, self.run_audio_check))
        if self._settings.proctor_screen_share and self._screen is not None:
            self._timers.append(
                self._clock.call_every(self._settings.visual_check_interval, self.run_screen_check)
            )
        logger.info(
            "Proctoring started (visual every %.0fs, audio every %.0fs, screen %s)",
            self._settings.visual_check_interval,
            self._settings.audio_check_interval,
            "on" if len(self._timers) > 2 else "off",
        )

    def stop(self) -> None:
        """Cancel both checks. Later ticks and late oracle replies are ignored."""
        if self._stopped:
            return
        self._stopped = True
        self._running = False
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()
        logger.info("Proctoring stopped")

    def _paused(self) -> bool:
        return self._stopped or self.visibility.hidden

    # -------------------------------------------------------------------------
    # Visual
    # -------------------------------------------------------------------------

    async def _judge(self, source: FrameSource, stream_type: str) -> Optional[ProctoringResult]:
        frame = await source.snapshot_jpeg(self._settings.jpeg_quality)
        if frame is None:
            logger.debug("No %s frame available yet; skipping check", stream_type)
            return None
        try:
            result = await self._oracle.analyze_frame(frame, stream_type)
        except OracleCallError as exc:
            logger.warning("%s check skipped: %s", stream_type.capitalize(), exc)
            return None
        if self._stopped:
            return None
        return result

    async def run_visual_check(self) -> None:
        """One webcam sampling tick."""
        if self._paused():
            return
        result = await self._judge(self._camera, "webcam")
        if result is None:
            return

        signals: list[ProctoringSignal] = []
        if result.cheating_detected:
            signal = ProctoringSignal(kind=SignalKind.CHEATING_DETECTED, detail=result.cheating_reason)
            signals.append(signal)
            logger.warning("Cheating detected on webcam: %s", result.cheating_reason)
            self._on_cheating(signal)
            if self._stopped:
                self._on_signals("visual", signals)
                return

        warn = False
        if result.candidate_absent:
            signals.append(ProctoringSignal(kind=SignalKind.CANDIDATE_ABSENT))
            if not self._absence_warning_active:
                self._absence_warning_active = True
                self.absence_warnings += 1
                warn = True
        else:
            self._absence_warning_active = False

        if result.eye_contact_deviation:
            signals.append(ProctoringSignal(kind=SignalKind.GAZE_DEVIATION))
        if result.video_quality_issue:
            signals.append(
                ProctoringSignal(kind=SignalKind.VIDEO_QUALITY_ISSUE, detail=result.video_quality_reason)
            )
        self._update_issues(
            gaze=result.eye_contact_deviation,
            quality=result.video_quality_reason if result.video_quality_issue else "",
        )
        if signals:
            self._on_signals("visual", signals)

        if warn:
            logger.info("Candidate absent; speaking warning")
            self._on_absence()
            await self._speaker.speak(self._settings.absence_warning_text)

    async def run_screen_check(self) -> None:
        """One screen-share sampling tick."""
        if self._paused() or self._screen is None:
            return
        result = await self._judge(self._screen, "screen")
        if result is None or not result.cheating_detected:
            return
        signal = ProctoringSignal(kind=SignalKind.CHEATING_DETECTED, detail=f"Screen: {result.cheating_reason}")
        logger.warning("Cheating detected on screen share: %s", result.cheating_reason)
        self._on_cheating(signal)
        self._on_signals("screen", [signal])

    # -------------------------------------------------------------------------
    # Audio
    # -------------------------------------------------------------------------

    def run_audio_check(self) -> None:
        """One noise sampling tick."""
        if self._paused():
            return
        level = self._levels.level()
        noise = level > self._settings.noise_threshold
        logger.debug("Microphone level %.1f (threshold %.1f)", level, self._settings.noise_threshold)
        self._update_issues(noise=noise)
        if noise:
            self._on_signals(
                "audio",
                [ProctoringSignal(kind=SignalKind.AUDIO_NOISE, detail=f"level={level:.1f}")],
            )

    def _update_issues(self, **changes) -> None:
        updated = self._issues.model_copy(update=changes)
        if updated != self._issues:
            self._issues = updated
            self._on_issues(updated.model_copy())
