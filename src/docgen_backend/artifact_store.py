"""
Filesystem storage for rendered documents.

Each artifact is a single file in a managed output directory; the path string
is the opaque handle stored on the job. There is no index on disk: the
in-memory job registry is the only record of which files belong to which job.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from .errors import ArtifactNotFoundError, StorageError
from .utils import ensure_directory, sanitize_label

logger = logging.getLogger(__name__)

FALLBACK_DIRNAME = "docgen-artifacts"


def _usable_directory(path: Path) -> Path:
    ensure_directory(path)
    if not os.access(path, os.W_OK):
        raise PermissionError(f"Directory is not writable: {path}")
    return path


def resolve_output_directory(preferred: Optional[Path], fallback_root: Optional[Path] = None) -> Path:
    """
    Pick the directory artifacts are written to.

    The preferred directory is used when it can be created and written to.
    Otherwise ``<fallback_root>/docgen-artifacts`` is used, where
    ``fallback_root`` defaults to the platform temporary directory.

    Raises:
        StorageError: Neither directory is usable. Callers treat this as fatal.
    """
    fallback = Path(fallback_root or tempfile.gettempdir()) / FALLBACK_DIRNAME

    if preferred is not None:
        try:
            directory = _usable_directory(preferred)
            logger.info("Output directory created/verified: %s", directory)
            return directory
        except OSError as exc:
            logger.error("Error creating output directory %s: %s", preferred, exc)

    try:
        directory = _usable_directory(fallback)
    except OSError as exc:
        logger.error("Error creating fallback output directory %s: %s", fallback, exc)
        raise StorageError(f"No usable output directory (tried {preferred} and {fallback})") from exc

    logger.info("Fallback output directory created: %s", directory)
    return directory


class ArtifactStore:
    """
    Saves, reads and deletes artifact files under one output directory.

    No caching: every read goes back to the filesystem.
    """

    def __init__(self, output_dir: Optional[Path] = None, fallback_root: Optional[Path] = None) -> None:
        self.output_dir = resolve_output_directory(output_dir, fallback_root=fallback_root)

    def save(self, data: bytes, suggested_name: str) -> str:
        """
        Write ``data`` to a new file and return its location.

        Raises:
            StorageError: The file exists already or could not be written.
        """
        path = self.output_dir / sanitize_label(Path(suggested_name).name, fallback="document.pdf")
        try:
            with path.open("xb") as handle:
                handle.write(data)
        except FileExistsError as exc:
            raise StorageError(f"Refusing to overwrite existing artifact {path}") from exc
        except OSError as exc:
            # The file was created by this call; drop the partial write.
            path.unlink(missing_ok=True)
            raise StorageError(f"Could not write artifact {path}: {exc}") from exc

        logger.debug("Artifact saved: %s (%d bytes)", path, len(data))
        return str(path)

    def read(self, location: str) -> bytes:
        try:
            return Path(location).read_bytes()
        except FileNotFoundError as exc:
            raise ArtifactNotFoundError(location) from exc

    def exists(self, location: str) -> bool:
        return Path(location).is_file()

    def delete(self, location: str) -> None:
        """Remove an artifact. Missing files are ignored; other I/O errors are logged only."""
        try:
            Path(location).unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            logger.warning("Error deleting artifact %s: %s", location, exc)
            return
        logger.info("Artifact deleted: %s", location)
