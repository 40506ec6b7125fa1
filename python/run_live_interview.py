#!/usr/bin/env python3
"""
Live Interview Runner.

Runs one live AI interview on this machine's camera, microphone and screen,
then writes the artifact (transcript, code submission, recording) to JSON.

Usage:
    uv run python run_live_interview.py --job job.txt --resume resume.txt

    # End automatically after 20 minutes, with the code file attached:
    uv run python run_live_interview.py --job job.txt --resume resume.txt \
        --duration 1200 --code solution.py

Press Ctrl+C to end the interview gracefully.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Final, Optional

from google import genai

from live_interview import (
    ArtifactWriteError,
    ArtifactWriter,
    GeminiLiveConnector,
    LiveInterviewSession,
    LiveInterviewSettings,
    MediaCapture,
    PermissionDeniedError,
    Pyttsx3Speaker,
    SessionArtifact,
    SessionEventPublisher,
    SessionStatus,
    create_vision_oracle,
)

# =============================================================================
# Logging Configuration
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger: logging.Logger = logging.getLogger(__name__)


# =============================================================================
# Exit Codes
# =============================================================================

EXIT_SUCCESS: Final[int] = 0
EXIT_CONFIG_ERROR: Final[int] = 1
EXIT_PERMISSION_DENIED: Final[int] = 2
EXIT_TERMINATED: Final[int] = 3
EXIT_INTERRUPTED: Final[int] = 130


async def _log_events(publisher: SessionEventPublisher) -> None:
    queue = await publisher.subscribe()
    try:
        while True:
            event = await queue.get()
            logger.info("[%s] %s", event.event_type.value, event.content)
    finally:
        await publisher.unsubscribe(queue)


async def run_interview(
    settings: LiveInterviewSettings,
    job_description: str,
    resume_text: str,
    output_dir: Path,
    duration: Optional[float] = None,
    code_path: Optional[Path] = None,
) -> int:
    """
    Run one interview until Ctrl+C, the duration elapses or it is terminated.

    Returns:
        Exit code.
    """
    session_id = datetime.now(timezone.utc).strftime("int_%Y%m%d_%H%M%S")
    writer = ArtifactWriter(output_dir)
    stop = asyncio.Event()

    async def save_artifact(artifact: SessionArtifact) -> None:
        try:
            path = await writer.write(session_id, artifact)
            logger.info("Artifact saved: %s", path)
        except ArtifactWriteError as e:
            logger.error("Could not save artifact: %s", e)

    publisher = SessionEventPublisher()
    session = LiveInterviewSession(
        settings,
        job_description=job_description,
        resume_text=resume_text,
        capture=MediaCapture(settings),
        connector=GeminiLiveConnector(genai.Client(api_key=settings.gemini_api_key), settings.live_model),
        oracle=create_vision_oracle(settings),
        speaker=Pyttsx3Speaker(),
        on_end=save_artifact,
        on_terminated=stop.set,
        publisher=publisher,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers.
            pass

    events = asyncio.create_task(_log_events(publisher))
    try:
        try:
            await session.start()
        except PermissionDeniedError as e:
            logger.error("%s", e)
            return EXIT_PERMISSION_DENIED

        logger.info("Interview %s is live. Press Ctrl+C to end.", session_id)
        try:
            await asyncio.wait_for(stop.wait(), timeout=duration)
        except asyncio.TimeoutError:
            logger.info("Duration of %.0fs reached", duration)

        if session.status is SessionStatus.TERMINATED:
            await session.wait_closed()
            logger.warning("Interview terminated due to repeated policy violations")
            return EXIT_TERMINATED

        code = code_path.read_text(encoding="utf-8") if code_path else None
        await session.end(code=code)
        return EXIT_SUCCESS
    finally:
        await session.dispose()
        events.cancel()


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Run a live AI interview with proctoring and recording.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
    GEMINI_API_KEY        Gemini API key (required)
    VISION_PROVIDER       gemini (default) or openai
    CAMERA_DEVICE         Capture device for the camera (platform default)
    MICROPHONE_DEVICE     Capture device for the microphone
    SCREEN_DEVICE         Capture device for the screen
        """,
    )
    parser.add_argument("--job", type=Path, required=True, help="Job description text file")
    parser.add_argument("--resume", type=Path, required=True, help="Resume text file")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path(__file__).parent / "output",
        help="Directory for artifact JSON (default: python/output)",
    )
    parser.add_argument("--duration", type=float, default=None, help="End automatically after N seconds")
    parser.add_argument("--code", type=Path, default=None, help="File whose contents are the code submission")
    parser.add_argument("--env-file", type=Path, default=None, help="Path to a .env file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        settings = LiveInterviewSettings.from_env(args.env_file)
    except RuntimeError as e:
        logger.error("Invalid configuration: %s", e)
        return EXIT_CONFIG_ERROR
    missing = settings.validate_required()
    if missing:
        logger.error("Missing required settings: %s", ", ".join(missing))
        return EXIT_CONFIG_ERROR

    try:
        job_description = args.job.read_text(encoding="utf-8")
        resume_text = args.resume.read_text(encoding="utf-8")
    except OSError as e:
        logger.error("Could not read input: %s", e)
        return EXIT_CONFIG_ERROR

    try:
        return asyncio.run(
            run_interview(
                settings,
                job_description,
                resume_text,
                args.output_dir,
                duration=args.duration,
                code_path=args.code,
            )
        )
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
