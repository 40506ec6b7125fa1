"""
Audio transport codec.

Converts between normalized float samples and the 16-bit little-endian PCM
payloads carried, base64 encoded, in the streaming session's JSON envelope.
Capture (16 kHz) and playback (24 kHz) streams are independent, so the codec
itself is rate agnostic; the rate only appears in the envelope's mime type.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field


__all__ = [
    "AudioChunk",
    "BlockBuffer",
    "decode_frame",
    "decode_pcm16",
    "encode_frame",
    "encode_pcm16",
    "pcm_mime_type",
]


logger = logging.getLogger(__name__)

_INT16_SCALE = 32768.0


def pcm_mime_type(sample_rate: int) -> str:
    """Mime type for raw 16-bit PCM at the given rate."""
    return f"audio/pcm;rate={sample_rate}"


def encode_pcm16(samples: np.ndarray) -> bytes:
    """
    Scale float samples in [-1, 1] to int16 and pack them little-endian.

    Values outside [-1, 1] are clipped rather than wrapped.
    """
    scaled = np.round(np.asarray(samples, dtype=np.float32) * _INT16_SCALE)
    return np.clip(scaled, -32768, 32767).astype("<i2").tobytes()


def decode_pcm16(pcm: bytes) -> np.ndarray:
    """Unpack little-endian int16 PCM into float32 samples in [-1, 1)."""
    if len(pcm) % 2:
        logger.debug("Dropping trailing byte from odd-length PCM payload (%d bytes)", len(pcm))
        pcm = pcm[:-1]
    return np.frombuffer(pcm, dtype="<i2").astype(np.float32) / _INT16_SCALE


def encode_frame(samples: np.ndarray) -> str:
    """Encode float samples as a base64 PCM16 wire payload."""
    return base64.b64encode(encode_pcm16(samples)).decode("ascii")


def decode_frame(payload: Union[str, bytes]) -> np.ndarray:
    """
    Decode an inbound audio payload into float32 samples.

    Args:
        payload: base64 text from a JSON envelope, or raw PCM bytes as
            delivered by SDKs that already decoded the envelope.

    Raises:
        ValueError: If a text payload is not valid base64.
    """
    if isinstance(payload, str):
        try:
            pcm = base64.b64decode(payload, validate=True)
        except binascii.Error as exc:
            raise ValueError(f"Invalid base64 audio payload: {exc}") from exc
    else:
        pcm = bytes(payload)
    return decode_pcm16(pcm)


class AudioChunk(BaseModel):
    """
    Realtime audio input envelope sent to the streaming session.

    Serializes as {"data": <base64>, "mimeType": "audio/pcm;rate=16000"}.
    """

    model_config = ConfigDict(populate_by_name=True)

    data: str = Field(..., description="Base64 encoded PCM16 audio")
    mime_type: str = Field(..., alias="mimeType", description="PCM mime type including rate")

    @classmethod
    def from_samples(cls, samples: np.ndarray, sample_rate: int) -> "AudioChunk":
        return cls(data=encode_frame(samples), mime_type=pcm_mime_type(sample_rate))

    def pcm_bytes(self) -> bytes:
        """Raw PCM16 bytes carried by this envelope."""
        return base64.b64decode(self.data)


class BlockBuffer:
    """
    Re-chunks a stream of variable-length sample arrays into fixed-size blocks.

    Capture devices deliver frames of whatever size the driver picks; the
    streaming transport sends fixed-size buffers.

    Example:
        >>> buffer = BlockBuffer(4)
        >>> [b.tolist() for b in buffer.push(np.arange(6, dtype=np.float32))]
        [[0.0, 1.0, 2.0, 3.0]]
        >>> buffer.pending
        2
    """

    def __init__(self, block_size: int) -> None:
        if block_size <= 0:
            raise ValueError(f"block_size must be positive. Got: {block_size}")
        self._block_size = block_size
        self._pending = np.zeros(0, dtype=np.float32)

    @property
    def block_size(self) -> int:
        return self._block_size

    @property
    def pending(self) -> int:
        """Number of buffered samples not yet emitted."""
        return int(self._pending.size)

    def push(self, samples: np.ndarray) -> list[np.ndarray]:
        """Append samples and return every complete block, oldest first."""
        data = np.concatenate([self._pending, np.asarray(samples, dtype=np.float32).ravel()])
        count = data.size // self._block_size
        blocks = [
            data[i * self._block_size:(i + 1) * self._block_size].copy()
            for i in range(count)
        ]
        self._pending = data[count * self._block_size:]
        return blocks

    def clear(self) -> None:
        self._pending = np.zeros(0, dtype=np.float32)
