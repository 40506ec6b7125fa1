"""
Tests for media acquisition, release and the track readers.

Devices are FakePlayer/FakeTrack instances; frames go through a real
aiortc MediaRelay.

Last Grunted: 10/18/2026
"""

from __future__ import annotations

import asyncio
import base64

import av
import numpy as np
import pytest
from PIL import Image

from live_interview.media import (
    FrameGrabber,
    MediaCapture,
    MicrophoneReader,
    PermissionDeniedError,
    encode_jpeg,
)
from tests.mock_data import (
    FakeTrack,
    FakeVideoFrame,
    make_devices,
    make_player_factory,
    make_settings,
    settle,
)


def _audio_frames(count: int, samples: int = 1024, value: int = 8192) -> list[av.AudioFrame]:
    frames = []
    for i in range(count):
        frame = av.AudioFrame.from_ndarray(
            np.full((1, samples), value, dtype=np.int16), format="s16", layout="mono"
        )
        frame.sample_rate = 16000
        frame.pts = i * samples
        frames.append(frame)
    return frames


async def _collect(reader: MicrophoneReader, track: FakeTrack) -> list[np.ndarray]:
    blocks: list[np.ndarray] = []

    async def consume() -> None:
        async for block in reader:
            blocks.append(block)

    task = asyncio.create_task(consume())
    await settle()
    track.stop()
    await asyncio.wait_for(task, timeout=1.0)
    return blocks


# =============================================================================
# Acquisition
# =============================================================================

class TestMediaCapture:
    """Tests for MediaCapture acquire/release."""

    @pytest.mark.asyncio
    async def test_acquire_opens_all_devices(self):
        tracks = make_devices()
        factory = make_player_factory(tracks)
        capture = MediaCapture(make_settings(), player_factory=factory)

        pair = await capture.acquire()

        assert [call[0] for call in factory.calls] == ["camera0", "mic0", "screen0"]
        assert factory.calls[0][1] == "v4l2"
        assert pair.camera.video_track is tracks["camera"]
        assert pair.camera.audio_track is tracks["microphone"]
        assert pair.screen.video_track is tracks["screen"]
        assert pair.screen.audio_track is None
        capture.release(pair)

    @pytest.mark.asyncio
    async def test_denied_device_stops_already_opened_tracks(self):
        """If the screen is denied, camera and microphone are stopped before raising."""
        log: list[str] = []
        tracks = make_devices(log)
        capture = MediaCapture(make_settings(), player_factory=make_player_factory(tracks, deny="screen0"))

        with pytest.raises(PermissionDeniedError) as exc_info:
            await capture.acquire()

        assert exc_info.value.device == "screen"
        assert isinstance(exc_info.value.cause, PermissionError)
        assert log == ["stop:camera", "stop:microphone"]

    @pytest.mark.asyncio
    async def test_denied_camera_opens_nothing_else(self):
        log: list[str] = []
        tracks = make_devices(log)
        factory = make_player_factory(tracks, deny="camera0")
        capture = MediaCapture(make_settings(), player_factory=factory)

        with pytest.raises(PermissionDeniedError):
            await capture.acquire()

        assert len(factory.calls) == 1
        assert log == []

    @pytest.mark.asyncio
    async def test_release_stops_every_track_once(self):
        log: list[str] = []
        tracks = make_devices(log)
        capture = MediaCapture(make_settings(), player_factory=make_player_factory(tracks))
        pair = await capture.acquire()

        capture.release(pair)
        capture.release(pair)
        capture.release(None)

        assert log == ["stop:camera", "stop:microphone", "stop:screen"]
        assert all(t.stop_calls == 1 for t in tracks.values())
        assert not pair.camera.active

    @pytest.mark.asyncio
    async def test_no_subscriptions_after_release(self):
        capture = MediaCapture(make_settings(), player_factory=make_player_factory(make_devices()))
        pair = await capture.acquire()
        capture.release(pair)

        with pytest.raises(RuntimeError):
            pair.camera.subscribe_video()

    @pytest.mark.asyncio
    async def test_audio_enabled_toggles_without_stopping(self):
        tracks = make_devices()
        capture = MediaCapture(make_settings(), player_factory=make_player_factory(tracks))
        pair = await capture.acquire()

        pair.camera.audio_enabled = False

        assert pair.camera.audio_enabled is False
        assert tracks["microphone"].stop_calls == 0
        capture.release(pair)


# =============================================================================
# Track readers
# =============================================================================

class TestFrameGrabber:
    """Tests for FrameGrabber snapshots."""

    @pytest.mark.asyncio
    async def test_snapshot_of_latest_frame(self):
        tracks = make_devices()
        capture = MediaCapture(make_settings(), player_factory=make_player_factory(tracks))
        pair = await capture.acquire()
        grabber = FrameGrabber(pair.camera.subscribe_video())

        grabber.start()
        await settle()
        snapshot = await grabber.snapshot_jpeg(quality=60)

        assert grabber.has_frame
        assert base64.b64decode(snapshot)[:2] == b"\xff\xd8"
        await grabber.stop()
        capture.release(pair)

    @pytest.mark.asyncio
    async def test_no_frame_yet_returns_none(self):
        track = FakeTrack("video", "camera")
        grabber = FrameGrabber(track)
        grabber.start()
        await settle()

        assert await grabber.snapshot_jpeg() is None
        await grabber.stop()
        track.stop()

    def test_encode_jpeg_converts_to_rgb(self):
        class RgbaFrame:
            def to_image(self):
                return Image.new("RGBA", (8, 8), (255, 0, 0, 128))

        data = base64.b64decode(encode_jpeg(RgbaFrame(), 70))

        assert data[:2] == b"\xff\xd8"

    def test_encode_jpeg_of_fake_frame(self):
        assert encode_jpeg(FakeVideoFrame(), 70)


class TestMicrophoneReader:
    """Tests for MicrophoneReader."""

    @pytest.mark.asyncio
    async def test_yields_fixed_size_float_blocks(self):
        track = FakeTrack("audio", "microphone", _audio_frames(4))
        reader = MicrophoneReader(track, 16000, 1024)

        blocks = await _collect(reader, track)

        assert len(blocks) >= 3
        assert all(block.size == 1024 and block.dtype == np.float32 for block in blocks)
        assert np.allclose(blocks[1], 0.25)

    @pytest.mark.asyncio
    async def test_closed_gate_sends_silence(self):
        track = FakeTrack("audio", "microphone", _audio_frames(3))
        reader = MicrophoneReader(track, 16000, 1024, gate=lambda: False)

        blocks = await _collect(reader, track)

        assert blocks
        assert all(not block.any() for block in blocks)

    @pytest.mark.asyncio
    async def test_track_end_finishes_iteration(self):
        track = FakeTrack("audio", "microphone")
        track.stop()

        blocks = [block async for block in MicrophoneReader(track, 16000, 1024)]

        assert blocks == []
