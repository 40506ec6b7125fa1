"""
Session Recorder.

Records the camera stream (video + microphone) to a temporary file from the
moment media is acquired until the session ends, then hands the recording
back as a data URL. Recording is best effort: any failure is logged and the
artifact gets an empty recording instead of blocking completion.

Last Grunted: 10/16/2026
"""

from __future__ import annotations

import base64
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional

import aiofiles
from aiortc.contrib.media import MediaRecorder

from .clock import Clock
from .config import LiveInterviewSettings
from .media import MediaStreamPair


__all__ = ["SessionRecorder", "to_data_url"]


logger = logging.getLogger(__name__)

RecorderFactory = Callable[..., Any]


def to_data_url(payload: bytes, mime_type: str) -> str:
    """Encode bytes as a base64 data URL."""
    return f"data:{mime_type};base64,{base64.b64encode(payload).decode('ascii')}"


class SessionRecorder:
    """
    Records the camera stream for one session.

    Example:
        >>> recorder = SessionRecorder(pair, settings, clock)
        >>> await recorder.start()
        >>> ...
        >>> url = await recorder.stop()   # "data:video/mp4;base64,..." or ""
    """

    def __init__(
        self,
        pair: MediaStreamPair,
        settings: LiveInterviewSettings,
        clock: Clock,
        recorder_factory: RecorderFactory = MediaRecorder,
        temp_dir: Optional[Path] = None,
    ) -> None:
        self._pair = pair
        self._format = settings.recording_format
        self._clock = clock
        self._recorder_factory = recorder_factory
        self._temp_dir = temp_dir
        self._recorder: Optional[Any] = None
        self._path: Optional[Path] = None
        self._started_at: Optional[float] = None
        self._result: Optional[str] = None

    @property
    def recording(self) -> bool:
        return self._recorder is not None and self._result is None

    @property
    def mime_type(self) -> str:
        return f"video/{self._format}"

    def elapsed(self) -> Optional[float]:
        """Seconds since recording started, or None when not recording."""
        if self._started_at is None or self._result is not None:
            return None
        return max(0.0, self._clock.now() - self._started_at)

    async def start(self) -> bool:
        """
        Begin recording.

        Returns:
            True if recording started. Failures are logged, not raised.
        """
        if self._recorder is not None or self._result is not None:
            return self._recorder is not None
        fd, name = tempfile.mkstemp(prefix="interview_", suffix=f".{self._format}", dir=self._temp_dir)
        os.close(fd)
        self._path = Path(name)
        try:
            recorder = self._recorder_factory(str(self._path), format=self._format)
            recorder.addTrack(self._pair.camera.subscribe_audio())
            recorder.addTrack(self._pair.camera.subscribe_video())
            await recorder.start()
        except Exception as exc:
            logger.error("Error starting recorder: %s", exc, exc_info=True)
            self._discard_file()
            return False
        if self._result is not None:
            # Aborted while starting.
            await self._stop_quietly(recorder)
            self._discard_file()
            return False
        self._recorder = recorder
        self._started_at = self._clock.now()
        logger.info("Recording started: %s", self._path)
        return True

    async def stop(self) -> str:
        """
        Finish recording and return it as a data URL.

        Returns:
            The recording, or "" if it never started, is empty or failed.
            Repeated calls return the first result.
        """
        if self._result is not None:
            return self._result
        if self._recorder is None:
            self._result = ""
            return self._result

        recorder = self._recorder
        try:
            await recorder.stop()
            async with aiofiles.open(self._path, "rb") as f:
                payload = await f.read()
            if not payload:
                logger.warning("Recording is empty")
                self._result = ""
            else:
                self._result = to_data_url(payload, self.mime_type)
                logger.info("Recording stopped (%d bytes)", len(payload))
        except Exception as exc:
            logger.error("Error finalizing recording: %s", exc, exc_info=True)
            self._result = ""
        finally:
            self._discard_file()
        return self._result

    async def abort(self) -> None:
        """Stop recording and discard it without reading it back."""
        if self._result is not None:
            return
        self._result = ""
        if self._recorder is None:
            return
        await self._stop_quietly(self._recorder)
        self._discard_file()
        logger.info("Recording discarded")

    async def _stop_quietly(self, recorder: Any) -> None:
        try:
            await recorder.stop()
        except Exception as exc:
            logger.warning("Error stopping recorder: %s", exc)

    def _discard_file(self) -> None:
        if self._path is None:
            return
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not delete temporary recording %s: %s", self._path, exc)
        self._path = None
