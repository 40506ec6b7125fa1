"""
Tests for SessionRecorder.

Last Grunted: 10/18/2026
"""

from __future__ import annotations

import asyncio
import base64

import pytest

from live_interview.media import MediaCapture
from live_interview.recorder import SessionRecorder, to_data_url
from tests.mock_data import (
    FakeRecorderFactory,
    ManualClock,
    make_devices,
    make_player_factory,
    make_settings,
)


class Setup:
    def __init__(self, tmp_path, **recorder_kwargs) -> None:
        self.settings = make_settings()
        self.capture = MediaCapture(self.settings, player_factory=make_player_factory(make_devices()))
        self.clock = ManualClock(start=100.0)
        self.factory = FakeRecorderFactory(**recorder_kwargs)
        self.tmp_path = tmp_path
        self.pair = None

    async def recorder(self) -> SessionRecorder:
        self.pair = await self.capture.acquire()
        return SessionRecorder(
            self.pair, self.settings, self.clock, recorder_factory=self.factory, temp_dir=self.tmp_path
        )

    def release(self) -> None:
        self.capture.release(self.pair)


class TestSessionRecorder:
    """Tests for recording start/stop."""

    @pytest.mark.asyncio
    async def test_records_camera_audio_and_video(self, tmp_path):
        setup = Setup(tmp_path)
        recorder = await setup.recorder()

        assert await recorder.start() is True

        fake = setup.factory.instances[0]
        assert fake.started
        assert fake.format == "mp4"
        assert [track.kind for track in fake.tracks] == ["audio", "video"]
        assert recorder.recording
        await recorder.abort()
        setup.release()

    @pytest.mark.asyncio
    async def test_stop_returns_data_url_and_cleans_up(self, tmp_path):
        payload = b"\x00\x00\x00\x18ftypmp42session"
        setup = Setup(tmp_path, payload=payload)
        recorder = await setup.recorder()
        await recorder.start()

        url = await recorder.stop()

        assert url == "data:video/mp4;base64," + base64.b64encode(payload).decode("ascii")
        assert list(tmp_path.iterdir()) == []
        assert await recorder.stop() == url
        assert not recorder.recording
        setup.release()

    @pytest.mark.asyncio
    async def test_elapsed_tracks_clock(self, tmp_path):
        setup = Setup(tmp_path)
        recorder = await setup.recorder()
        assert recorder.elapsed() is None

        await recorder.start()
        await setup.clock.advance(12.5)

        assert recorder.elapsed() == pytest.approx(12.5)
        await recorder.stop()
        assert recorder.elapsed() is None
        setup.release()

    @pytest.mark.asyncio
    async def test_failed_start_yields_empty_recording(self, tmp_path):
        setup = Setup(tmp_path, fail_start=True)
        recorder = await setup.recorder()

        assert await recorder.start() is False

        assert await recorder.stop() == ""
        assert list(tmp_path.iterdir()) == []
        setup.release()

    @pytest.mark.asyncio
    async def test_empty_file_yields_empty_recording(self, tmp_path):
        setup = Setup(tmp_path, payload=b"")
        recorder = await setup.recorder()
        await recorder.start()

        assert await recorder.stop() == ""
        setup.release()

    @pytest.mark.asyncio
    async def test_stop_without_start(self, tmp_path):
        setup = Setup(tmp_path)
        recorder = await setup.recorder()

        assert await recorder.stop() == ""
        assert setup.factory.instances == []
        setup.release()

    @pytest.mark.asyncio
    async def test_abort_discards_recording(self, tmp_path):
        setup = Setup(tmp_path)
        recorder = await setup.recorder()
        await recorder.start()

        await recorder.abort()

        assert setup.factory.instances[0].stopped
        assert list(tmp_path.iterdir()) == []
        assert await recorder.stop() == ""
        setup.release()

    @pytest.mark.asyncio
    async def test_abort_while_starting_stops_the_encoder(self, tmp_path):
        """An abort that lands mid-start leaves nothing recording."""
        gate = asyncio.Event()
        setup = Setup(tmp_path, gate=gate)
        recorder = await setup.recorder()
        starting = asyncio.create_task(recorder.start())
        await asyncio.sleep(0)
        fake = setup.factory.instances[0]
        await asyncio.wait_for(fake.entered.wait(), 1.0)

        await recorder.abort()
        gate.set()

        assert await starting is False
        assert fake.stopped
        assert not recorder.recording
        assert recorder.elapsed() is None
        assert list(tmp_path.iterdir()) == []
        assert await recorder.stop() == ""
        setup.release()


def test_to_data_url():
    assert to_data_url(b"abc", "video/webm") == "data:video/webm;base64,YWJj"
