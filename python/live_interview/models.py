"""
Pydantic models for the live interview session.

Defines the transcript, proctoring and artifact shapes exchanged between the
orchestrator components and handed back to the host application.

Last Grunted: 10/12/2026
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Speaker(str, Enum):
    """Who produced a transcript entry."""

    AGENT = "agent"
    CANDIDATE = "candidate"


class SessionStatus(str, Enum):
    """
    Lifecycle states of a live interview session.

    Attributes:
        IDLE: Constructed, start() not called yet.
        CONNECTING: Media capture and streaming setup in progress.
        ACTIVE: Normal operation.
        TERMINATED: Ended by repeated policy violations (absorbing).
        ENDED: Ended gracefully by the candidate or host.
    """

    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    TERMINATED = "terminated"
    ENDED = "ended"


class AiStatus(str, Enum):
    """Display status of the remote interview agent."""

    IDLE = "Idle"
    LISTENING = "Listening"
    THINKING = "Thinking"
    SPEAKING = "Speaking"


class SignalKind(str, Enum):
    """Kinds of proctoring signals raised per sampling tick."""

    CHEATING_DETECTED = "cheatingDetected"
    CANDIDATE_ABSENT = "candidateAbsent"
    GAZE_DEVIATION = "gazeDeviation"
    VIDEO_QUALITY_ISSUE = "videoQualityIssue"
    AUDIO_NOISE = "audioNoise"


class TranscriptEntry(BaseModel):
    """
    One utterance in the interview transcript.

    Text grows while fragments of the same turn keep arriving. The timestamp
    is the number of seconds into the recording at which the entry started,
    or None when no recording was running.

    Example:
        >>> entry = TranscriptEntry(speaker=Speaker.CANDIDATE, text="I have 5 years", timestamp=12.4)
    """

    speaker: Speaker = Field(..., description="Speaker of this utterance")
    text: str = Field(default="", description="Accumulated utterance text")
    timestamp: Optional[float] = Field(
        default=None,
        description="Seconds into the recording when the entry became active",
    )


class ProctoringResult(BaseModel):
    """
    Structured judgment returned by the vision oracle for one frame.

    Field names follow the oracle's JSON schema. A result with every flag
    false means no issue was seen in the frame.
    """

    cheating_detected: bool = Field(
        default=False,
        description="Candidate is using a phone or another secondary device",
    )
    cheating_reason: str = Field(default="None", description="Short reason for the cheating flag")
    candidate_absent: bool = Field(
        default=False,
        description="No person is clearly visible in front of the camera",
    )
    eye_contact_deviation: bool = Field(
        default=False,
        description="Gaze is obviously and persistently away from the screen",
    )
    video_quality_issue: bool = Field(
        default=False,
        description="Frame is too dark, blurry or pixelated to see the candidate",
    )
    video_quality_reason: str = Field(default="None", description="Short reason for the quality flag")


class ProctoringSignal(BaseModel):
    """A single violation or quality signal produced by one sampling tick."""

    kind: SignalKind
    detail: str = ""


class ProctoringIssues(BaseModel):
    """Current proctoring display state (non-terminal issues only)."""

    gaze: bool = False
    quality: str = ""
    noise: bool = False


class SessionArtifact(BaseModel):
    """
    Result of a gracefully ended session.

    Handed to the host's completion callback exactly once. The recording is
    a data URL, or an empty string when recording failed or never started.

    Example:
        >>> artifact = SessionArtifact(
        ...     transcript=[TranscriptEntry(speaker=Speaker.AGENT, text="Hello!")],
        ...     code_submission="print('hi')",
        ...     recording_data="",
        ... )
        >>> artifact.model_dump(by_alias=True)["codeSubmission"]
        "print('hi')"
    """

    model_config = ConfigDict(populate_by_name=True)

    transcript: list[TranscriptEntry] = Field(
        default_factory=list,
        description="Ordered transcript entries",
    )
    code_submission: str = Field(
        default="",
        alias="codeSubmission",
        description="Contents of the candidate's code editor at session end",
    )
    recording_data: str = Field(
        default="",
        alias="recordingData",
        description="Recording encoded as a data URL, or empty",
    )
