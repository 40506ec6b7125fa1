"""
Configuration for the live interview orchestrator.

Settings come from environment variables, optionally loaded from a .env file
at the repository's python/ directory. Every tunable has a default; only the
API key of the selected providers is required.

Environment variables:
    GEMINI_API_KEY            - Gemini key for the live session and vision oracle
    LIVE_MODEL                - Live (native audio) model name
    VISION_PROVIDER           - "gemini" (default) or "openai"
    VISION_MODEL              - Gemini model for frame analysis
    OPENAI_API_KEY            - OpenAI key (VISION_PROVIDER=openai)
    OPENAI_VISION_MODEL       - OpenAI model for frame analysis
    AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_KEY, AZURE_OPENAI_DEPLOYMENT,
    AZURE_OPENAI_API_VERSION  - Azure OpenAI alternative to OPENAI_API_KEY
    CAMERA_DEVICE / CAMERA_FORMAT, MICROPHONE_DEVICE / MICROPHONE_FORMAT,
    SCREEN_DEVICE / SCREEN_FORMAT - FFmpeg device specs for media capture
    VISUAL_CHECK_INTERVAL_SECONDS, AUDIO_CHECK_INTERVAL_SECONDS,
    NOISE_THRESHOLD, SILENCE_TIMEOUT_SECONDS, WARNING_THRESHOLD,
    WARNING_DISMISS_SECONDS, PROCTOR_SCREEN_SHARE, RECORDING_FORMAT,
    PLAYBACK_VOLUME, ORACLE_MAX_RETRIES, ORACLE_INITIAL_DELAY_SECONDS

Last Grunted: 10/12/2026
"""

import logging
import os
import sys
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


__all__ = ["LiveInterviewSettings", "load_environment"]


logger = logging.getLogger(__name__)

_ENV_PATH = Path(__file__).parent.parent / ".env"


def load_environment(env_path: Optional[Path] = None) -> None:
    """Load variables from a .env file into the process environment, if present."""
    path = env_path or _ENV_PATH
    if path.exists():
        load_dotenv(path)
        logger.debug("Loaded environment from %s", path)


def _default_devices() -> dict[str, str]:
    """FFmpeg capture devices for the current platform."""
    if sys.platform == "darwin":
        return {
            "camera_device": "default:none",
            "camera_format": "avfoundation",
            "microphone_device": "none:default",
            "microphone_format": "avfoundation",
            "screen_device": "Capture screen 0:none",
            "screen_format": "avfoundation",
        }
    if sys.platform.startswith("win"):
        return {
            "camera_device": "video=Integrated Camera",
            "camera_format": "dshow",
            "microphone_device": "audio=Microphone",
            "microphone_format": "dshow",
            "screen_device": "desktop",
            "screen_format": "gdigrab",
        }
    return {
        "camera_device": "/dev/video0",
        "camera_format": "v4l2",
        "microphone_device": "default",
        "microphone_format": "pulse",
        "screen_device": os.environ.get("DISPLAY", ":0.0"),
        "screen_format": "x11grab",
    }


def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(name)
    if value is None:
        return default
    value = value.strip()
    return value or default


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number. Got: {raw}") from exc


def _env_int(name: str, default: int) -> int:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer. Got: {raw}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = _env_str(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


class LiveInterviewSettings(BaseModel):
    """
    Runtime settings for one live interview orchestrator.

    Construct directly in tests, or from the environment with from_env().

    Example:
        >>> settings = LiveInterviewSettings(gemini_api_key="test-key", visual_check_interval=1.0)
        >>> settings.validate_required()
        []
    """

    # Remote AI services
    gemini_api_key: Optional[str] = None
    live_model: str = "gemini-2.5-flash-native-audio-preview-09-2025"
    vision_provider: Literal["gemini", "openai"] = "gemini"
    vision_model: str = "gemini-2.5-flash"
    openai_api_key: Optional[str] = None
    openai_vision_model: str = "gpt-4o-mini"
    azure_openai_endpoint: Optional[str] = None
    azure_openai_key: Optional[str] = None
    azure_openai_deployment: Optional[str] = None
    azure_openai_api_version: str = "2024-08-01-preview"
    oracle_max_retries: int = Field(default=3, ge=1)
    oracle_initial_delay: float = Field(default=1.5, ge=0.0)

    # Audio transport
    input_sample_rate: int = 16000
    output_sample_rate: int = 24000
    input_block_size: int = 4096
    playback_volume: float = Field(default=1.0, ge=0.0)

    # Proctoring
    visual_check_interval: float = Field(default=15.0, gt=0.0)
    audio_check_interval: float = Field(default=2.0, gt=0.0)
    noise_threshold: float = 35.0
    jpeg_quality: int = Field(default=70, ge=1, le=95)
    proctor_screen_share: bool = False
    absence_warning_text: str = "Please sit before the camera and continue the interview."

    # Session state machine
    silence_timeout: float = Field(default=1.5, gt=0.0)
    warning_threshold: int = Field(default=2, ge=1)
    warning_dismiss_seconds: float = Field(default=5.0, ge=0.0)

    # Media devices and recording
    camera_device: str = Field(default_factory=lambda: _default_devices()["camera_device"])
    camera_format: Optional[str] = Field(default_factory=lambda: _default_devices()["camera_format"])
    microphone_device: str = Field(default_factory=lambda: _default_devices()["microphone_device"])
    microphone_format: Optional[str] = Field(default_factory=lambda: _default_devices()["microphone_format"])
    screen_device: str = Field(default_factory=lambda: _default_devices()["screen_device"])
    screen_format: Optional[str] = Field(default_factory=lambda: _default_devices()["screen_format"])
    recording_format: str = "mp4"

    @classmethod
    def from_env(cls, env_path: Optional[Path] = None) -> "LiveInterviewSettings":
        """
        Build settings from environment variables.

        Raises:
            RuntimeError: If a numeric variable cannot be parsed.
        """
        load_environment(env_path)
        devices = _default_devices()

        provider = (_env_str("VISION_PROVIDER", "gemini") or "gemini").lower()
        if provider not in ("gemini", "openai"):
            raise RuntimeError(f"VISION_PROVIDER must be 'gemini' or 'openai'. Got: {provider}")

        return cls(
            gemini_api_key=_env_str("GEMINI_API_KEY") or _env_str("API_KEY"),
            live_model=_env_str("LIVE_MODEL", cls.model_fields["live_model"].default),
            vision_provider=provider,
            vision_model=_env_str("VISION_MODEL", cls.model_fields["vision_model"].default),
            openai_api_key=_env_str("OPENAI_API_KEY"),
            openai_vision_model=_env_str(
                "OPENAI_VISION_MODEL", cls.model_fields["openai_vision_model"].default
            ),
            azure_openai_endpoint=_env_str("AZURE_OPENAI_ENDPOINT"),
            azure_openai_key=_env_str("AZURE_OPENAI_KEY"),
            azure_openai_deployment=_env_str("AZURE_OPENAI_DEPLOYMENT"),
            azure_openai_api_version=_env_str(
                "AZURE_OPENAI_API_VERSION", cls.model_fields["azure_openai_api_version"].default
            ),
            oracle_max_retries=_env_int("ORACLE_MAX_RETRIES", 3),
            oracle_initial_delay=_env_float("ORACLE_INITIAL_DELAY_SECONDS", 1.5),
            playback_volume=_env_float("PLAYBACK_VOLUME", 1.0),
            visual_check_interval=_env_float("VISUAL_CHECK_INTERVAL_SECONDS", 15.0),
            audio_check_interval=_env_float("AUDIO_CHECK_INTERVAL_SECONDS", 2.0),
            noise_threshold=_env_float("NOISE_THRESHOLD", 35.0),
            proctor_screen_share=_env_bool("PROCTOR_SCREEN_SHARE", False),
            silence_timeout=_env_float("SILENCE_TIMEOUT_SECONDS", 1.5),
            warning_threshold=_env_int("WARNING_THRESHOLD", 2),
            warning_dismiss_seconds=_env_float("WARNING_DISMISS_SECONDS", 5.0),
            camera_device=_env_str("CAMERA_DEVICE", devices["camera_device"]),
            camera_format=_env_str("CAMERA_FORMAT", devices["camera_format"]),
            microphone_device=_env_str("MICROPHONE_DEVICE", devices["microphone_device"]),
            microphone_format=_env_str("MICROPHONE_FORMAT", devices["microphone_format"]),
            screen_device=_env_str("SCREEN_DEVICE", devices["screen_device"]),
            screen_format=_env_str("SCREEN_FORMAT", devices["screen_format"]),
            recording_format=_env_str("RECORDING_FORMAT", "mp4"),
        )

    @property
    def uses_azure_openai(self) -> bool:
        """Whether the OpenAI vision provider should target Azure OpenAI."""
        return bool(
            self.azure_openai_endpoint
            and self.azure_openai_key
            and self.azure_openai_deployment
        )

    def validate_required(self) -> list[str]:
        """Return the list of missing required settings (empty when complete)."""
        missing = []
        if not self.gemini_api_key:
            missing.append("GEMINI_API_KEY (required for the live interview session)")
        if self.vision_provider == "openai" and not (
            self.openai_api_key or self.uses_azure_openai
        ):
            missing.append(
                "OPENAI_API_KEY or AZURE_OPENAI_ENDPOINT/KEY/DEPLOYMENT "
                "(required when VISION_PROVIDER=openai)"
            )
        return missing
