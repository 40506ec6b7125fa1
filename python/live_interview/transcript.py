"""
Transcript aggregation.

Transcription fragments arrive incrementally from the streaming session for
both speakers. Consecutive fragments from the same speaker belong to one
utterance until the agent's turn completes; a fragment from the other
speaker, or any fragment after a turn-complete, starts a new entry.

Last Grunted: 10/13/2026
"""

from __future__ import annotations

import logging
from typing import Optional

from .models import Speaker, TranscriptEntry


__all__ = ["TranscriptAggregator", "merge_fragment"]


logger = logging.getLogger(__name__)


def merge_fragment(
    entries: list[TranscriptEntry],
    speaker: Speaker,
    text: str,
    timestamp: Optional[float],
    sealed: bool = False,
) -> list[TranscriptEntry]:
    """
    Fold one transcription fragment into the transcript.

    Pure function: the input list and its entries are left untouched.

    Args:
        entries: Current transcript, oldest first.
        speaker: Speaker of the fragment.
        text: Fragment text, appended verbatim.
        timestamp: Seconds into the recording, used only for a new entry.
        sealed: True when the last entry was closed by a turn-complete.

    Returns:
        New transcript list. Existing entries never move.

    Example:
        >>> t = merge_fragment([], Speaker.CANDIDATE, "I have", 3.0)
        >>> t = merge_fragment(t, Speaker.CANDIDATE, " 5 years", 3.4)
        >>> [(e.speaker.value, e.text, e.timestamp) for e in t]
        [('candidate', 'I have 5 years', 3.0)]
    """
    if entries and not sealed and entries[-1].speaker == speaker:
        last = entries[-1]
        return entries[:-1] + [last.model_copy(update={"text": last.text + text})]
    return entries + [TranscriptEntry(speaker=speaker, text=text, timestamp=timestamp)]


class TranscriptAggregator:
    """Stateful wrapper around merge_fragment that tracks turn boundaries."""

    def __init__(self) -> None:
        self._entries: list[TranscriptEntry] = []
        self._sealed = False

    def add_fragment(self, speaker: Speaker, text: str, timestamp: Optional[float]) -> TranscriptEntry:
        """Apply a fragment and return the entry it landed in."""
        before = len(self._entries)
        self._entries = merge_fragment(self._entries, speaker, text, timestamp, self._sealed)
        self._sealed = False
        if len(self._entries) > before:
            logger.debug("New %s transcript entry at %s", speaker.value, timestamp)
        return self._entries[-1]

    def turn_complete(self) -> None:
        """Close the current entry; the next fragment starts a new one."""
        self._sealed = True

    @property
    def entries(self) -> list[TranscriptEntry]:
        """Copy of the transcript, oldest first."""
        return [entry.model_copy() for entry in self._entries]

    def __len__(self) -> int:
        return len(self._entries)
