"""
Media Capture Layer.

Acquires the candidate's camera, microphone and screen through FFmpeg
capture devices (aiortc MediaPlayer) and exposes them as two local streams:
camera (video + microphone audio) and screen (video). Each stream fans its
tracks out to several consumers through a MediaRelay, so the streaming
client, the proctoring monitor and the recorder each read every frame.

Also provides the two track readers the orchestrator needs: a microphone
reader that yields fixed-size resampled blocks, and a frame grabber that
holds the latest camera frame for proctoring snapshots.

Last Grunted: 10/12/2026
"""

from __future__ import annotations

import asyncio
import base64
import io
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Optional

import av
import numpy as np
from aiortc.contrib.media import MediaPlayer, MediaRelay
from aiortc.mediastreams import MediaStreamError, MediaStreamTrack
from av.error import FFmpegError

from .codec import BlockBuffer
from .config import LiveInterviewSettings
from .resources import cancel_and_wait


__all__ = [
    "FrameGrabber",
    "LocalStream",
    "MediaCapture",
    "MediaStreamPair",
    "MicrophoneReader",
    "PermissionDeniedError",
]


logger = logging.getLogger(__name__)

PlayerFactory = Callable[..., Any]


class PermissionDeniedError(Exception):
    """Raised when a capture device is denied or unavailable."""

    def __init__(self, device: str, cause: Optional[BaseException] = None) -> None:
        self.device = device
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(
            f"Camera, microphone and screen sharing permissions are required for a live "
            f"interview ({device} unavailable{detail}). Please grant access and try again."
        )


# =============================================================================
# Streams
# =============================================================================

class LocalStream:
    """
    A group of local source tracks with fan-out subscriptions.

    The source tracks are read only through relay subscriptions. Stopping
    the stream stops every subscription and every source track.
    """

    def __init__(
        self,
        label: str,
        *,
        video: Optional[MediaStreamTrack] = None,
        audio: Optional[MediaStreamTrack] = None,
        relay: Optional[MediaRelay] = None,
    ) -> None:
        self.label = label
        self._video = video
        self._audio = audio
        self._relay = relay or MediaRelay()
        self._subscriptions: list[MediaStreamTrack] = []
        self._audio_enabled = True
        self._stopped = False

    @property
    def video_track(self) -> Optional[MediaStreamTrack]:
        return self._video

    @property
    def audio_track(self) -> Optional[MediaStreamTrack]:
        return self._audio

    @property
    def active(self) -> bool:
        return not self._stopped

    @property
    def audio_enabled(self) -> bool:
        """
        Whether captured audio is forwarded to the transport.

        Disabling only silences the transport; the tracks keep running so the
        streaming session stays open and proctoring still hears the room.
        """
        return self._audio_enabled

    @audio_enabled.setter
    def audio_enabled(self, enabled: bool) -> None:
        if enabled != self._audio_enabled:
            logger.info("%s audio %s", self.label, "enabled" if enabled else "muted")
        self._audio_enabled = enabled

    def subscribe_video(self) -> MediaStreamTrack:
        return self._subscribe(self._video, "video")

    def subscribe_audio(self) -> MediaStreamTrack:
        return self._subscribe(self._audio, "audio")

    def _subscribe(self, track: Optional[MediaStreamTrack], kind: str) -> MediaStreamTrack:
        if self._stopped:
            raise RuntimeError(f"{self.label} stream has been released")
        if track is None:
            raise RuntimeError(f"{self.label} stream has no {kind} track")
        proxy = self._relay.subscribe(track)
        self._subscriptions.append(proxy)
        return proxy

    def stop(self) -> None:
        """Stop every subscription and source track. Safe to call repeatedly."""
        if self._stopped:
            return
        self._stopped = True
        for proxy in self._subscriptions:
            proxy.stop()
        self._subscriptions.clear()
        for track in (self._video, self._audio):
            if track is not None:
                track.stop()
        logger.debug("%s stream stopped", self.label)


@dataclass
class MediaStreamPair:
    """Camera (audio + video) and screen-share streams owned by one session."""

    camera: LocalStream
    screen: LocalStream
    released: bool = field(default=False)


# =============================================================================
# Capture
# =============================================================================

def _player_options(device_format: Optional[str], kind: str) -> dict[str, str]:
    if kind == "camera":
        options = {"video_size": "640x480"}
        if device_format == "avfoundation":
            options["framerate"] = "30"
        return options
    if kind == "screen" and device_format in ("x11grab", "gdigrab", "avfoundation"):
        return {"framerate": "5"}
    return {}


class MediaCapture:
    """
    Acquires and releases the candidate's media devices.

    Acquisition is all-or-nothing: if any device fails, every device opened
    so far is stopped and PermissionDeniedError is raised.

    Example:
        >>> capture = MediaCapture(settings)
        >>> pair = await capture.acquire()
        >>> capture.release(pair)
    """

    def __init__(
        self,
        settings: LiveInterviewSettings,
        player_factory: PlayerFactory = MediaPlayer,
        relay_factory: Callable[[], MediaRelay] = MediaRelay,
    ) -> None:
        self._settings = settings
        self._player_factory = player_factory
        self._relay_factory = relay_factory

    async def acquire(self) -> MediaStreamPair:
        """
        Open camera + microphone and screen share.

        Raises:
            PermissionDeniedError: If any device is denied or unavailable.
        """
        opened: list[MediaStreamTrack] = []
        try:
            camera_video = await self._open_track(
                "camera", self._settings.camera_device, self._settings.camera_format, "video"
            )
            opened.append(camera_video)
            microphone = await self._open_track(
                "microphone", self._settings.microphone_device, self._settings.microphone_format, "audio"
            )
            opened.append(microphone)
            screen_video = await self._open_track(
                "screen", self._settings.screen_device, self._settings.screen_format, "video"
            )
            opened.append(screen_video)
        except PermissionDeniedError:
            for track in opened:
                track.stop()
            logger.warning("Media acquisition failed; released %d opened track(s)", len(opened))
            raise

        pair = MediaStreamPair(
            camera=LocalStream("camera", video=camera_video, audio=microphone, relay=self._relay_factory()),
            screen=LocalStream("screen", video=screen_video, relay=self._relay_factory()),
        )
        logger.info("Media acquired: camera, microphone and screen share")
        return pair

    async def _open_track(
        self,
        label: str,
        device: str,
        device_format: Optional[str],
        kind: str,
    ) -> MediaStreamTrack:
        options = _player_options(device_format, label)
        try:
            player = await asyncio.to_thread(
                self._player_factory, device, format=device_format, options=options
            )
        except (OSError, FFmpegError) as exc:
            raise PermissionDeniedError(label, exc) from exc

        track = player.video if kind == "video" else player.audio
        # Stop the track we do not use so the player can shut down cleanly.
        unused = player.audio if kind == "video" else player.video
        if unused is not None:
            unused.stop()
        if track is None:
            raise PermissionDeniedError(label)
        logger.debug("Opened %s (%s, format=%s)", label, device, device_format)
        return track

    def release(self, pair: Optional[MediaStreamPair]) -> None:
        """Stop every track of the pair. A second call is a no-op."""
        if pair is None or pair.released:
            return
        pair.released = True
        pair.camera.stop()
        pair.screen.stop()
        logger.info("Media released")


# =============================================================================
# Track readers
# =============================================================================

class MicrophoneReader:
    """
    Async iterator over fixed-size mono float32 blocks from an audio track.

    Frames are resampled to sample_rate and re-chunked into block_size
    samples. When gate() returns False the block is replaced by silence,
    which is how a muted microphone reaches the transport.
    """

    def __init__(
        self,
        track: MediaStreamTrack,
        sample_rate: int,
        block_size: int,
        gate: Optional[Callable[[], bool]] = None,
    ) -> None:
        self._track = track
        self._gate = gate
        self._resampler = av.AudioResampler(format="flt", layout="mono", rate=sample_rate)
        self._buffer = BlockBuffer(block_size)

    def __aiter__(self) -> AsyncIterator[np.ndarray]:
        return self._blocks()

    async def _blocks(self) -> AsyncIterator[np.ndarray]:
        while True:
            try:
                frame = await self._track.recv()
            except MediaStreamError:
                logger.debug("Microphone track ended")
                return
            for block in self._buffer.push(self._resample(frame)):
                if self._gate is not None and not self._gate():
                    block = np.zeros_like(block)
                yield block

    def _resample(self, frame: av.AudioFrame) -> np.ndarray:
        chunks = [out.to_ndarray().reshape(-1) for out in self._resampler.resample(frame)]
        if not chunks:
            return np.zeros(0, dtype=np.float32)
        return np.concatenate(chunks).astype(np.float32, copy=False)


def encode_jpeg(frame: Any, quality: int) -> str:
    """Encode a video frame (anything with to_image()) as base64 JPEG."""
    image = frame.to_image()
    if image.mode != "RGB":
        image = image.convert("RGB")
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality)
    return base64.b64encode(buffer.getvalue()).decode("ascii")


class FrameGrabber:
    """
    Keeps the most recent frame of a video track.

    Mirrors a playing video element: snapshots return the current frame, or
    None until the first frame has arrived.
    """

    def __init__(self, track: MediaStreamTrack, label: str = "camera") -> None:
        self._track = track
        self._label = label
        self._latest: Optional[Any] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def has_frame(self) -> bool:
        return self._latest is not None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            try:
                self._latest = await self._track.recv()
            except MediaStreamError:
                logger.debug("%s frame grabber: track ended", self._label)
                return

    async def snapshot_jpeg(self, quality: int = 70) -> Optional[str]:
        """Current frame as base64 JPEG, or None if no frame is available yet."""
        frame = self._latest
        if frame is None:
            return None
        return await asyncio.to_thread(encode_jpeg, frame, quality)

    async def stop(self) -> None:
        await cancel_and_wait(self._task)
        self._task = None
