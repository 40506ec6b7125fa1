"""
Vision Oracle.

Judges a single camera (or screen) frame for proctoring signals. Each call is
one base64 JPEG in, one ProctoringResult out. Calls are retried with
exponential backoff and jitter; after the last attempt the failure is
classified and raised as OracleCallError, which the proctoring monitor treats
as "no signal this tick".

Supports two backends:
  - Gemini (default): google-genai structured output
  - OpenAI / Azure OpenAI: chat completions with a parsed response_format

Last Grunted: 10/15/2026
"""

from __future__ import annotations

import asyncio
import base64
import logging
import random
from typing import Any, Awaitable, Callable, Optional, Protocol, TypeVar

from google import genai
from google.genai import types
from openai import AsyncAzureOpenAI, AsyncOpenAI
from pydantic import BaseModel, ValidationError

from .config import LiveInterviewSettings
from .models import ProctoringResult
from .prompts import proctor_prompt


__all__ = [
    "GeminiVisionOracle",
    "OpenAIVisionOracle",
    "OracleCallError",
    "VisionOracle",
    "classify_error",
    "create_vision_oracle",
    "with_retry",
]


logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class OracleCallError(Exception):
    """Raised when an oracle call fails after all retries."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        super().__init__(message)


class EmptyResponseError(Exception):
    """The model answered with no usable content."""


class VisionOracle(Protocol):
    """Frame judge used by the proctoring monitor."""

    async def analyze_frame(self, jpeg_base64: str, stream_type: str = "webcam") -> ProctoringResult:
        """
        Raises:
            OracleCallError: If the frame could not be judged.
        """
        ...


# =============================================================================
# Retry
# =============================================================================

def classify_error(exc: Optional[BaseException]) -> str:
    """Map a final failure to a user-facing message."""
    text = str(exc).lower() if exc is not None else ""
    if "api key not valid" in text or "invalid api key" in text or "401" in text:
        return (
            "Authentication Error: The provided API key is invalid. "
            "Please ensure it is configured correctly in your environment."
        )
    if "429" in text or "rate limit" in text:
        return "Rate Limit Exceeded: Too many requests sent. Please wait a moment before trying again."
    if "500" in text or "503" in text or "service unavailable" in text:
        return (
            "Service Unavailable: The AI service is temporarily down or experiencing issues. "
            "Please try again in a few minutes."
        )
    return f"The AI service failed to respond: {exc}"


async def with_retry(
    call: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    initial_delay: float = 1.5,
    sleep: Sleep = asyncio.sleep,
    jitter: Callable[[], float] = random.random,
    label: str = "oracle call",
) -> T:
    """
    Run call() up to max_retries times with exponential backoff.

    The delay before retry i (0-based) is initial_delay * 2**i plus up to
    20% jitter. No delay follows the last attempt.

    Raises:
        OracleCallError: With a classified message when every attempt fails.
    """
    last_error: Optional[BaseException] = None
    for attempt in range(max_retries):
        try:
            return await call()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            last_error = exc
            if attempt < max_retries - 1:
                delay = initial_delay * (2 ** attempt)
                delay += delay * 0.2 * jitter()
                logger.warning(
                    "%s attempt %d of %d failed, retrying in %.1fs: %s",
                    label, attempt + 1, max_retries, delay, exc,
                )
                await sleep(delay)
            else:
                logger.warning("%s attempt %d of %d failed: %s", label, attempt + 1, max_retries, exc)

    logger.error("%s failed after %d attempt(s)", label, max_retries)
    raise OracleCallError(classify_error(last_error), last_error) from last_error


# =============================================================================
# Backends
# =============================================================================

_GEMINI_RESPONSE_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "cheating_detected": types.Schema(type=types.Type.BOOLEAN),
        "cheating_reason": types.Schema(type=types.Type.STRING),
        "candidate_absent": types.Schema(type=types.Type.BOOLEAN),
        "eye_contact_deviation": types.Schema(type=types.Type.BOOLEAN),
        "video_quality_issue": types.Schema(type=types.Type.BOOLEAN),
        "video_quality_reason": types.Schema(type=types.Type.STRING),
    },
    required=[
        "cheating_detected",
        "cheating_reason",
        "candidate_absent",
        "eye_contact_deviation",
        "video_quality_issue",
        "video_quality_reason",
    ],
)


class _OpenAIVerdict(BaseModel):
    # Strict structured output rejects defaults, so every field is required.
    cheating_detected: bool
    cheating_reason: str
    candidate_absent: bool
    eye_contact_deviation: bool
    video_quality_issue: bool
    video_quality_reason: str


class GeminiVisionOracle:
    """
    Vision oracle backed by Gemini structured output.

    Example:
        >>> oracle = GeminiVisionOracle(genai.Client(api_key=key), "gemini-2.5-flash")
        >>> result = await oracle.analyze_frame(jpeg_b64)
        >>> result.candidate_absent
        False
    """

    def __init__(
        self,
        client: genai.Client,
        model: str,
        *,
        max_retries: int = 3,
        initial_delay: float = 1.5,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._client = client
        self._model = model
        self._max_retries = max_retries
        self._initial_delay = initial_delay
        self._sleep = sleep

    async def _generate(self, jpeg_base64: str, stream_type: str) -> ProctoringResult:
        response = await self._client.aio.models.generate_content(
            model=self._model,
            contents=[
                types.Part.from_text(text=proctor_prompt(stream_type)),
                types.Part.from_bytes(data=base64.b64decode(jpeg_base64), mime_type="image/jpeg"),
            ],
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=_GEMINI_RESPONSE_SCHEMA,
            ),
        )
        text = (response.text or "").strip() if response is not None else ""
        if not text:
            raise EmptyResponseError("Received an empty or invalid response from the AI model.")
        try:
            return ProctoringResult.model_validate_json(text)
        except ValidationError as exc:
            raise EmptyResponseError(f"Unparseable proctoring result: {exc}") from exc

    async def analyze_frame(self, jpeg_base64: str, stream_type: str = "webcam") -> ProctoringResult:
        result = await with_retry(
            lambda: self._generate(jpeg_base64, stream_type),
            max_retries=self._max_retries,
            initial_delay=self._initial_delay,
            sleep=self._sleep,
            label=f"Gemini {stream_type} frame analysis",
        )
        logger.debug("Frame analysis (%s): %s", stream_type, result.model_dump())
        return result


class OpenAIVisionOracle:
    """
    Vision oracle backed by OpenAI or Azure OpenAI chat completions.

    The model receives the proctor prompt plus the frame as an image_url
    data URL and must answer in the ProctoringResult schema.
    """

    def __init__(
        self,
        client: Any,
        model: str,
        *,
        max_retries: int = 3,
        initial_delay: float = 1.5,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._client = client
        self._model = model
        self._max_retries = max_retries
        self._initial_delay = initial_delay
        self._sleep = sleep

    async def _generate(self, jpeg_base64: str, stream_type: str) -> ProctoringResult:
        completion = await self._client.chat.completions.parse(
            model=self._model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": proctor_prompt(stream_type)},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:image/jpeg;base64,{jpeg_base64}"},
                        },
                    ],
                }
            ],
            response_format=_OpenAIVerdict,
        )
        parsed = completion.choices[0].message.parsed if completion.choices else None
        if parsed is None:
            raise EmptyResponseError("Received an empty or invalid response from the AI model.")
        return ProctoringResult.model_validate(parsed.model_dump())

    async def analyze_frame(self, jpeg_base64: str, stream_type: str = "webcam") -> ProctoringResult:
        return await with_retry(
            lambda: self._generate(jpeg_base64, stream_type),
            max_retries=self._max_retries,
            initial_delay=self._initial_delay,
            sleep=self._sleep,
            label=f"OpenAI {stream_type} frame analysis",
        )


def create_vision_oracle(settings: LiveInterviewSettings) -> VisionOracle:
    """
    Build the configured oracle backend.

    Azure OpenAI is used when the OpenAI provider is selected and the
    AZURE_OPENAI_* settings are complete.
    """
    if settings.vision_provider == "openai":
        if settings.uses_azure_openai:
            logger.info(
                "Using Azure OpenAI vision oracle: %s, deployment: %s",
                settings.azure_openai_endpoint, settings.azure_openai_deployment,
            )
            client = AsyncAzureOpenAI(
                azure_endpoint=settings.azure_openai_endpoint,
                api_key=settings.azure_openai_key,
                api_version=settings.azure_openai_api_version,
            )
            model = settings.azure_openai_deployment
        else:
            logger.info("Using OpenAI vision oracle: model %s", settings.openai_vision_model)
            client = AsyncOpenAI(api_key=settings.openai_api_key)
            model = settings.openai_vision_model
        return OpenAIVisionOracle(
            client,
            model,
            max_retries=settings.oracle_max_retries,
            initial_delay=settings.oracle_initial_delay,
        )

    logger.info("Using Gemini vision oracle: model %s", settings.vision_model)
    return GeminiVisionOracle(
        genai.Client(api_key=settings.gemini_api_key),
        settings.vision_model,
        max_retries=settings.oracle_max_retries,
        initial_delay=settings.oracle_initial_delay,
    )
