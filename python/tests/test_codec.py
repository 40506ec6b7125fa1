"""
Tests for the audio transport codec.

Last Grunted: 10/18/2026
"""

from __future__ import annotations

import base64

import numpy as np
import pytest

from live_interview.codec import (
    AudioChunk,
    BlockBuffer,
    decode_frame,
    decode_pcm16,
    encode_frame,
    encode_pcm16,
    pcm_mime_type,
)
from tests.mock_data import tone


class TestPcm16:
    """Tests for int16 packing."""

    def test_round_trip_within_quantization(self):
        """Decoding an encoded frame matches the input within one int16 step."""
        samples = tone(440.0, 0.1)

        decoded = decode_frame(encode_frame(samples))

        assert decoded.shape == samples.shape
        assert np.max(np.abs(decoded - samples)) <= 1.0 / 32768.0

    @pytest.mark.parametrize(
        "samples",
        [
            np.array([-1.0, 1.0, 0.0, -1.0, 1.0], dtype=np.float32),
            np.random.default_rng(11).uniform(-1.0, 1.0, 4096).astype(np.float32),
        ],
        ids=["full_scale", "uniform"],
    )
    def test_round_trip_holds_at_full_scale(self, samples):
        """Full-scale and random samples in [-1, 1] survive within one int16 step."""
        decoded = decode_frame(encode_frame(samples))

        assert decoded.shape == samples.shape
        assert np.max(np.abs(decoded - samples)) <= 1.0 / 32768.0

    def test_full_scale_maps_to_int16_limits(self):
        """+1.0 saturates at 32767 and -1.0 lands exactly on -32768."""
        pcm = encode_pcm16(np.array([1.0, -1.0], dtype=np.float32))

        assert list(np.frombuffer(pcm, dtype="<i2")) == [32767, -32768]
        assert decode_pcm16(pcm).tolist() == [32767 / 32768, -1.0]

    def test_little_endian_layout(self):
        """Samples are packed as little-endian int16."""
        pcm = encode_pcm16(np.array([0.5, -0.5], dtype=np.float32))

        assert pcm == (16384).to_bytes(2, "little", signed=True) + (-16384).to_bytes(2, "little", signed=True)

    def test_out_of_range_samples_are_clipped(self):
        """Values beyond [-1, 1] saturate instead of wrapping."""
        pcm = encode_pcm16(np.array([1.0, 2.0, -1.5], dtype=np.float32))

        assert list(np.frombuffer(pcm, dtype="<i2")) == [32767, 32767, -32768]

    def test_odd_length_payload_drops_trailing_byte(self):
        """A dangling byte is ignored."""
        decoded = decode_pcm16(b"\x00\x40\x01")

        assert decoded.tolist() == [0.5]

    def test_empty_payload(self):
        """An empty payload decodes to no samples."""
        assert decode_frame("").size == 0


class TestDecodeFrame:
    """Tests for inbound payload decoding."""

    def test_accepts_raw_bytes(self):
        """Raw PCM bytes from an SDK decode without base64."""
        samples = np.array([0.25, -0.25], dtype=np.float32)

        decoded = decode_frame(encode_pcm16(samples))

        assert decoded.tolist() == [0.25, -0.25]

    def test_invalid_base64_raises_value_error(self):
        """Garbage text is rejected."""
        with pytest.raises(ValueError):
            decode_frame("not base64!!")


class TestAudioChunk:
    """Tests for the realtime audio envelope."""

    def test_wire_shape(self):
        """The envelope serializes with camelCase mimeType."""
        chunk = AudioChunk.from_samples(np.zeros(4, dtype=np.float32), 16000)

        assert chunk.model_dump(by_alias=True) == {
            "data": base64.b64encode(b"\x00" * 8).decode("ascii"),
            "mimeType": "audio/pcm;rate=16000",
        }

    def test_pcm_bytes(self):
        """pcm_bytes returns the raw payload carried in data."""
        samples = np.array([0.5], dtype=np.float32)

        assert AudioChunk.from_samples(samples, 16000).pcm_bytes() == encode_pcm16(samples)

    def test_mime_type_reflects_rate(self):
        assert pcm_mime_type(24000) == "audio/pcm;rate=24000"


class TestBlockBuffer:
    """Tests for fixed-size re-chunking."""

    def test_emits_full_blocks_and_keeps_remainder(self):
        """Whole blocks are emitted in order; the tail waits for more samples."""
        buffer = BlockBuffer(4)

        first = buffer.push(np.arange(6, dtype=np.float32))
        second = buffer.push(np.arange(6, 9, dtype=np.float32))

        assert [b.tolist() for b in first] == [[0, 1, 2, 3]]
        assert [b.tolist() for b in second] == [[4, 5, 6, 7]]
        assert buffer.pending == 1

    def test_large_push_emits_multiple_blocks(self):
        buffer = BlockBuffer(4096)

        blocks = buffer.push(np.zeros(4096 * 3 + 10, dtype=np.float32))

        assert len(blocks) == 3
        assert all(b.size == 4096 for b in blocks)
        assert buffer.pending == 10

    def test_clear_drops_pending(self):
        buffer = BlockBuffer(4)
        buffer.push(np.ones(3, dtype=np.float32))

        buffer.clear()

        assert buffer.pending == 0

    def test_rejects_non_positive_block_size(self):
        with pytest.raises(ValueError):
            BlockBuffer(0)
