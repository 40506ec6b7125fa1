"""
Session Artifact Writer.

Persists finished interview artifacts (transcript, code submission and
recording data URL) to JSON files.

Output files are named: {session_id}_artifact.json

Last Grunted: 10/17/2026
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiofiles
from pydantic import ValidationError

from .models import SessionArtifact


__all__ = ["ArtifactReadError", "ArtifactWriteError", "ArtifactWriter"]


logger = logging.getLogger(__name__)


class ArtifactWriteError(Exception):
    """Raised when writing an artifact fails."""

    def __init__(self, path: Path, cause: Exception) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to write to {path}: {cause}")


class ArtifactReadError(Exception):
    """Raised when reading an artifact fails."""

    def __init__(self, path: Path, cause: Exception) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to read from {path}: {cause}")


def _format_utc_timestamp() -> str:
    """Return current UTC timestamp as ISO 8601 string with 'Z' suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ArtifactWriter:
    """
    Writes session artifacts to JSON files.

    The JSON uses the artifact's wire field names (codeSubmission,
    recordingData) plus a _meta block.

    Example:
        >>> writer = ArtifactWriter(Path("./output"))
        >>> path = await writer.write("int_20261017_103000", artifact)
        >>> loaded = await writer.load("int_20261017_103000")
    """

    def __init__(self, output_dir: Path) -> None:
        """
        Initialize the writer.

        Args:
            output_dir: Directory for artifact files. Created if missing.

        Raises:
            ArtifactWriteError: If the directory cannot be created.
        """
        self.output_dir = Path(output_dir)
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArtifactWriteError(self.output_dir, e) from e
        logger.debug("Output directory ready: %s", self.output_dir)

    def path_for(self, session_id: str) -> Path:
        return self.output_dir / f"{session_id}_artifact.json"

    async def write(self, session_id: str, artifact: SessionArtifact) -> Path:
        """
        Write an artifact, overwriting any earlier file for the session.

        Returns:
            Path to the written file.

        Raises:
            ArtifactWriteError: If the write fails.
        """
        output_path = self.path_for(session_id)
        data = artifact.model_dump(mode="json", by_alias=True)
        data["_meta"] = {
            "session_id": session_id,
            "written_at": _format_utc_timestamp(),
            "version": "1.0",
        }
        try:
            async with aiofiles.open(output_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data, indent=2, ensure_ascii=False))
        except OSError as e:
            raise ArtifactWriteError(output_path, e) from e

        logger.info("Wrote artifact to %s", output_path)
        return output_path

    async def load(self, session_id: str) -> Optional[SessionArtifact]:
        """
        Load an artifact written earlier.

        Returns:
            The artifact, or None if no file exists for the session.

        Raises:
            ArtifactReadError: If the file is unreadable or invalid.
        """
        output_path = self.path_for(session_id)
        if not output_path.exists():
            logger.debug("No artifact found for session %s", session_id)
            return None
        try:
            async with aiofiles.open(output_path, "r", encoding="utf-8") as f:
                data = json.loads(await f.read())
        except (OSError, json.JSONDecodeError) as e:
            raise ArtifactReadError(output_path, e) from e

        data.pop("_meta", None)
        try:
            return SessionArtifact.model_validate(data)
        except ValidationError as e:
            raise ArtifactReadError(output_path, e) from e

    def list_sessions(self) -> list[str]:
        """Session IDs with an artifact file, sorted."""
        return sorted(path.name[: -len("_artifact.json")] for path in self.output_dir.glob("*_artifact.json"))
