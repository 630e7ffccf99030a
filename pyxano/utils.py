"""Utility functions for pyxano."""

import base64
import hashlib
from pathlib import Path
from typing import Optional, Union

# =============================================================================
# Constants
# =============================================================================

# File extension of XanoScript sources
XS_EXTENSION: str = ".xs"

# Page size used when listing remote collections
DEFAULT_PER_PAGE: int = 500

# Retry configuration for transient errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds


# =============================================================================
# Content addressing
# =============================================================================


def compute_sha256(content: str) -> str:
    """Compute the SHA-256 digest of a text body.

    The digest is taken over the UTF-8 encoding, so two bodies have the
    same digest exactly when they are byte-identical.

    Args:
        content: Text body

    Returns:
        Lowercase hex digest (64 characters)

    Examples:
        >>> compute_sha256("")
        'e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855'
    """
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def compute_file_sha256(file_path: Union[str, Path]) -> Optional[str]:
    """Compute the SHA-256 digest of a file's bytes.

    The file is not decoded, so line endings and invalid UTF-8 are hashed
    exactly as stored. For valid UTF-8 the result equals
    ``compute_sha256`` of the decoded body.

    Args:
        file_path: Path to the file

    Returns:
        Hex digest, or None if the file does not exist
    """
    path = Path(file_path)
    if not path.is_file():
        return None
    return hashlib.sha256(path.read_bytes()).hexdigest()


def encode_snapshot(content: str) -> str:
    """Encode a body for storage as the last-synced snapshot.

    Args:
        content: Text body

    Returns:
        Base64 encoding of the UTF-8 bytes

    Examples:
        >>> encode_snapshot("function calc {}")
        'ZnVuY3Rpb24gY2FsYyB7fQ=='
    """
    return base64.b64encode(content.encode("utf-8")).decode("ascii")


def encode_file_snapshot(file_path: Union[str, Path]) -> Optional[str]:
    """Encode a file's bytes as a snapshot, or None if it does not exist."""
    path = Path(file_path)
    if not path.is_file():
        return None
    return base64.b64encode(path.read_bytes()).decode("ascii")


def decode_snapshot(snapshot: str) -> str:
    """Decode a snapshot produced by :func:`encode_snapshot`.

    Args:
        snapshot: Base64 string

    Returns:
        The original text body

    Examples:
        >>> decode_snapshot("ZnVuY3Rpb24gY2FsYyB7fQ==")
        'function calc {}'
    """
    return base64.b64decode(snapshot.encode("ascii")).decode("utf-8")


def read_text(file_path: Union[str, Path]) -> Optional[str]:
    """Read a UTF-8 text file, returning None when it does not exist.

    Line endings are kept as stored.

    Raises:
        UnicodeDecodeError: If the file is not valid UTF-8
    """
    path = Path(file_path)
    if not path.is_file():
        return None
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


def extract_xanoscript(value: object) -> Optional[str]:
    """Extract the XanoScript body from an API payload field.

    The Metadata API returns either a plain string or an object of the
    form ``{"status": "...", "value": "..."}``.

    Args:
        value: Raw ``xanoscript`` field

    Returns:
        The body text, or None if absent or malformed

    Examples:
        >>> extract_xanoscript({"status": "ok", "value": "table users {}"})
        'table users {}'
        >>> extract_xanoscript(None) is None
        True
    """
    if not value:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        inner = value.get("value")
        if isinstance(inner, str):
            return inner
    return None
