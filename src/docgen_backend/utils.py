"""
Utility functions for file system operations, identifiers and timestamps.

This module provides helper functions for:
- Sanitizing document names for safe filesystem usage
- Ensuring directory creation
- Generating process-unique job identifiers
- Producing timezone-aware UTC timestamps
"""

from __future__ import annotations

import random
import re
import string
import time
from datetime import datetime, timezone
from pathlib import Path

# Pattern to match characters that are not safe for filesystem paths
# Allows: alphanumeric characters, dots, underscores, and hyphens
SANITIZE_PATTERN = re.compile(r"[^a-zA-Z0-9._-]+")

_ID_ALPHABET = string.digits + string.ascii_lowercase
_ID_SUFFIX_LENGTH = 9


def sanitize_label(label: str, fallback: str) -> str:
    """
    Generate a filesystem-safe name from arbitrary input.

    Unsafe characters are replaced with hyphens and leading/trailing
    separators are stripped. Case is preserved so that document prefixes
    such as ``PACKING_LIST`` survive unchanged.

    Args:
        label: The original string to sanitize
        fallback: Value to return if sanitization results in an empty string

    Returns:
        A filesystem-safe name or the fallback value

    Example:
        >>> sanitize_label("PACKING_LIST INV/1.pdf", "document.pdf")
        "PACKING_LIST-INV-1.pdf"
        >>> sanitize_label("@#$", "document.pdf")
        "document.pdf"
    """
    cleaned = SANITIZE_PATTERN.sub("-", label.strip())
    cleaned = cleaned.strip("-_.")
    return cleaned or fallback


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    Args:
        path: The directory path to create

    Returns:
        The same path object for chaining

    Raises:
        OSError: If directory creation fails due to permissions or other I/O errors
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def generate_job_id() -> str:
    """
    Build a job id from the current epoch milliseconds and a random base36 suffix.

    Example:
        >>> generate_job_id()
        "job_1760899200000_k3j9x0a1b"
    """
    suffix = "".join(random.choices(_ID_ALPHABET, k=_ID_SUFFIX_LENGTH))
    return f"job_{int(time.time() * 1000)}_{suffix}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
