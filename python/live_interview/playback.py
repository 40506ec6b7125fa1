"""
Gapless playback of the agent's synthesized speech.

Decoded buffers are scheduled back to back: each starts at the later of
"now" and the previous buffer's end, so consecutive chunks neither overlap
nor leave audible gaps. The schedule is kept on the injected Clock and the
samples are handed to an output device when their start time arrives.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Optional, Protocol

import numpy as np

from .clock import Clock, TimerHandle


__all__ = ["AudioOutput", "AudioPlayback", "ScheduledSource", "SoundDeviceOutput"]


logger = logging.getLogger(__name__)


class AudioOutput(Protocol):
    """Sink for mono float32 samples at a fixed rate."""

    def write(self, samples: np.ndarray) -> None: ...

    def clear(self) -> None: ...

    def close(self) -> None: ...


@dataclass(eq=False)
class ScheduledSource:
    """One scheduled buffer of agent speech."""

    samples: np.ndarray
    start_time: float
    duration: float
    handles: list[TimerHandle] = field(default_factory=list)
    started: bool = False

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration

    def stop(self) -> None:
        for handle in self.handles:
            handle.cancel()
        self.handles.clear()


class AudioPlayback:
    """
    Schedules decoded buffers for gapless playback.

    Example:
        >>> playback = AudioPlayback(clock, output, sample_rate=24000)
        >>> playback.schedule(samples)   # starts now
        >>> playback.schedule(samples)   # starts when the first one ends
        >>> playback.stop_all()
    """

    def __init__(
        self,
        clock: Clock,
        output: AudioOutput,
        sample_rate: int,
        volume: float = 1.0,
    ) -> None:
        self._clock = clock
        self._output = output
        self._sample_rate = sample_rate
        self._volume = volume
        self._next_start_time = 0.0
        self._sources: set[ScheduledSource] = set()
        self._closed = False

    @property
    def active_sources(self) -> int:
        """Number of buffers scheduled or playing."""
        return len(self._sources)

    @property
    def next_start_time(self) -> float:
        return self._next_start_time

    @property
    def volume(self) -> float:
        return self._volume

    @volume.setter
    def volume(self, value: float) -> None:
        self._volume = max(0.0, float(value))

    def schedule(self, samples: np.ndarray) -> Optional[ScheduledSource]:
        """Queue a buffer after everything already scheduled."""
        if self._closed or samples.size == 0:
            return None
        now = self._clock.now()
        self._next_start_time = max(self._next_start_time, now)
        source = ScheduledSource(
            samples=samples,
            start_time=self._next_start_time,
            duration=samples.size / self._sample_rate,
        )
        self._next_start_time += source.duration
        self._sources.add(source)
        source.handles.append(
            self._clock.call_later(source.start_time - now, lambda: self._begin(source))
        )
        source.handles.append(
            self._clock.call_later(source.end_time - now, lambda: self._sources.discard(source))
        )
        return source

    def _begin(self, source: ScheduledSource) -> None:
        if self._closed or source not in self._sources:
            return
        source.started = True
        self._output.write(source.samples * self._volume)

    def stop_all(self) -> None:
        """Stop every scheduled and playing buffer."""
        for source in list(self._sources):
            source.stop()
        self._sources.clear()
        self._output.clear()

    def close(self) -> None:
        if self._closed:
            return
        self.stop_all()
        self._closed = True
        self._output.close()
        logger.debug("Playback closed")


class SoundDeviceOutput:
    """
    Speaker output backed by a sounddevice callback stream.

    The stream is opened lazily on the first write, matching an output audio
    context that is only created once the agent first speaks.
    """

    def __init__(self, sample_rate: int, device: Optional[str] = None) -> None:
        self._sample_rate = sample_rate
        self._device = device
        self._pending: deque[np.ndarray] = deque()
        self._lock = threading.Lock()
        self._stream = None

    def _ensure_stream(self) -> None:
        if self._stream is not None:
            return
        import sounddevice as sd

        self._stream = sd.OutputStream(
            samplerate=self._sample_rate,
            channels=1,
            dtype="float32",
            device=self._device,
            callback=self._callback,
        )
        self._stream.start()
        logger.info("Opened speaker output at %d Hz", self._sample_rate)

    def _callback(self, outdata, frames, time_info, status) -> None:
        if status:
            logger.debug("Output stream status: %s", status)
        out = outdata[:, 0]
        filled = 0
        with self._lock:
            while filled < frames and self._pending:
                chunk = self._pending[0]
                take = min(frames - filled, chunk.size)
                out[filled:filled + take] = chunk[:take]
                filled += take
                if take == chunk.size:
                    self._pending.popleft()
                else:
                    self._pending[0] = chunk[take:]
        out[filled:] = 0.0

    def write(self, samples: np.ndarray) -> None:
        self._ensure_stream()
        with self._lock:
            self._pending.append(np.asarray(samples, dtype=np.float32))

    def clear(self) -> None:
        with self._lock:
            self._pending.clear()

    def close(self) -> None:
        self.clear()
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None
