"""
On-device speech synthesis for proctoring warnings.

Spoken locally rather than through the live session so a warning is heard
even when the streaming connection is degraded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import pyttsx3


__all__ = ["Pyttsx3Speaker", "SpeechSynthesizer"]


logger = logging.getLogger(__name__)


class SpeechSynthesizer(Protocol):
    async def speak(self, text: str) -> None:
        """Speak text and return once playback has finished."""
        ...


class Pyttsx3Speaker:
    """
    pyttsx3 speaker. Each utterance runs on a worker thread with a fresh
    engine, since runAndWait() blocks until the audio has played.
    """

    def __init__(self, rate: int = 180, volume: float = 1.0) -> None:
        self._rate = rate
        self._volume = volume
        self._lock = asyncio.Lock()

    def _speak_blocking(self, text: str) -> None:
        engine = pyttsx3.init()
        engine.setProperty("rate", self._rate)
        engine.setProperty("volume", self._volume)
        engine.say(text)
        engine.runAndWait()
        engine.stop()

    async def speak(self, text: str) -> None:
        if not text:
            return
        # One utterance at a time.
        async with self._lock:
            logger.info("Speaking: %s", text)
            try:
                await asyncio.to_thread(self._speak_blocking, text)
            except (RuntimeError, OSError) as exc:
                logger.error("Speech synthesis failed: %s", exc)
