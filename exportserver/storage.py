"""
Artifact storage for rendered exports.
"""

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Writing or reading an artifact failed."""


def artifact_key(deck_id: str, job_id: str, extension: str) -> str:
    """Deterministic key per job; re-running a job overwrites its artifact."""
    return f"exports/{deck_id}/{job_id}.{extension}"


class ArtifactStorage(ABC):
    """Abstract base class for artifact stores."""

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str) -> str:
        """
        Store ``data`` under ``key``, replacing any previous content.

        Args:
            key: Storage key from ``artifact_key``
            data: File content
            content_type: MIME type of the content

        Returns:
            URL the artifact can be fetched from

        Raises:
            StorageError: If the write failed
        """
        pass

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Read an artifact. Raises FileNotFoundError if it does not exist."""
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        pass


class LocalArtifactStorage(ArtifactStorage):
    """Stores artifacts on the local filesystem under ``root``."""

    def __init__(self, root: str, public_base_url: str = "/files"):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise StorageError(f"Key escapes storage root: {key}")
        return path

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self.path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Write then rename so readers never see a partial file
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".upload-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Failed to store {key}: {e}") from e

        logger.debug("Stored %s (%d bytes, %s)", key, len(data), content_type)
        return self.url_for(key)

    def get(self, key: str) -> bytes:
        return self.path_for(key).read_bytes()

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()
