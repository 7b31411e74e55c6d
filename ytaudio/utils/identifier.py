"""
Utilities for URL parsing and deterministic artifact naming.
"""

import re
from pathlib import Path
from typing import Optional, Tuple

from pathvalidate import is_valid_filename

_IDENTIFIER_PATTERN = re.compile(
    r"(?:youtube(?:-nocookie)?\.com/"
    r"(?:watch\?(?:[^#\s]*?&)?v=|embed/|shorts/|live/|v/|e/)"
    r"|youtu\.be/)"
    r"(?P<id>[A-Za-z0-9_-]{11})(?![A-Za-z0-9_-])"
)


def extract_identifier(url: object) -> Optional[str]:
    """
    Extracts the 11-character content identifier from a supported URL.
    Returns None for anything that does not match; never raises.
    """
    if not isinstance(url, str) or not url:
        return None
    match = _IDENTIFIER_PATTERN.search(url.strip())
    if match:
        return match.group("id")
    return None


def artifact_name_for(identifier: str, fmt: str) -> str:
    """Builds the on-disk file name for an (identifier, format) pair."""
    return f"{identifier}.{fmt}"


def parse_artifact_name(name: str) -> Optional[Tuple[str, str]]:
    """
    Splits an artifact file name back into (identifier, format).
    Returns None for names that could not have been produced by
    `artifact_name_for` or that are unsafe as bare file names.
    """
    if not name or not is_valid_filename(name, platform="universal"):
        return None
    identifier, sep, fmt = name.rpartition(".")
    if not sep or not identifier or not fmt:
        return None
    return identifier, fmt


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)
