"""
Live Interview Session Orchestrator.

Runs a real-time spoken AI interview: streams the candidate's microphone to a
live model, plays the agent's synthesized speech, aggregates both sides of
the transcript, proctors the candidate's camera and microphone, records the
session and hands back a single artifact when it ends.

Components:
    - LiveInterviewSession: Session state machine (start/end contract)
    - MediaCapture: Camera, microphone and screen-share acquisition
    - StreamingClient: Bidirectional live session (Gemini Live)
    - TranscriptAggregator / merge_fragment: Speaker-turn aggregation
    - ProctoringMonitor: Periodic visual and audio checks
    - SessionRecorder: Camera recording as a data URL
    - ArtifactWriter: Persists artifacts to JSON files
    - SessionEventPublisher: Real-time event stream for a host UI

Example:
    >>> from live_interview import LiveInterviewSession, LiveInterviewSettings
    >>>
    >>> settings = LiveInterviewSettings.from_env()
    >>> session = LiveInterviewSession(settings, job_description=job, resume_text=resume, ...)
    >>> await session.start()
    >>> artifact = await session.end()

Last Grunted: 10/17/2026
"""

from .models import (
    AiStatus,
    ProctoringIssues,
    ProctoringResult,
    ProctoringSignal,
    SessionArtifact,
    SessionStatus,
    SignalKind,
    Speaker,
    TranscriptEntry,
)

from .config import LiveInterviewSettings, load_environment

from .clock import AsyncioClock, Clock

from .codec import AudioChunk, BlockBuffer, decode_frame, encode_frame

from .media import (
    FrameGrabber,
    MediaCapture,
    MediaStreamPair,
    MicrophoneReader,
    PermissionDeniedError,
)

from .transcript import TranscriptAggregator, merge_fragment

from .playback import AudioPlayback, SoundDeviceOutput

from .streaming import (
    GeminiLiveConnector,
    LiveEvent,
    StreamingClient,
    StreamingConnectionError,
    StreamingState,
)

from .oracle import (
    GeminiVisionOracle,
    OpenAIVisionOracle,
    OracleCallError,
    create_vision_oracle,
)

from .speech import Pyttsx3Speaker

from .proctoring import AudioLevelMeter, FrequencyAnalyser, ProctoringMonitor, Visibility

from .recorder import SessionRecorder

from .pubsub import SessionEvent, SessionEventPublisher, SessionEventType

from .output import ArtifactReadError, ArtifactWriteError, ArtifactWriter

from .session import LiveInterviewSession


__all__ = [
    # Models
    "AiStatus",
    "ProctoringIssues",
    "ProctoringResult",
    "ProctoringSignal",
    "SessionArtifact",
    "SessionStatus",
    "SignalKind",
    "Speaker",
    "TranscriptEntry",
    # Configuration
    "LiveInterviewSettings",
    "load_environment",
    # Timers
    "AsyncioClock",
    "Clock",
    # Codec
    "AudioChunk",
    "BlockBuffer",
    "decode_frame",
    "encode_frame",
    # Media
    "FrameGrabber",
    "MediaCapture",
    "MediaStreamPair",
    "MicrophoneReader",
    "PermissionDeniedError",
    # Transcript
    "TranscriptAggregator",
    "merge_fragment",
    # Streaming
    "AudioPlayback",
    "SoundDeviceOutput",
    "GeminiLiveConnector",
    "LiveEvent",
    "StreamingClient",
    "StreamingConnectionError",
    "StreamingState",
    # Proctoring
    "GeminiVisionOracle",
    "OpenAIVisionOracle",
    "OracleCallError",
    "create_vision_oracle",
    "Pyttsx3Speaker",
    "AudioLevelMeter",
    "FrequencyAnalyser",
    "ProctoringMonitor",
    "Visibility",
    # Recording and output
    "SessionRecorder",
    "ArtifactReadError",
    "ArtifactWriteError",
    "ArtifactWriter",
    # Pub/Sub
    "SessionEvent",
    "SessionEventPublisher",
    "SessionEventType",
    # Session
    "LiveInterviewSession",
]

__version__ = "0.1.0"
