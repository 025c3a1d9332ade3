"""Metadata helpers for files: MIME types, names and storage keys."""

import mimetypes
import re
import secrets
import time
from typing import Final

from django.utils.crypto import get_random_string

# Characters allowed verbatim in storage keys, everything else becomes `_`
_UNSAFE_KEY_CHARS: Final = re.compile(r'[^A-Za-z0-9.-]')
_KEY_RANDOM_LENGTH: Final = 12  # ~71 bits with the alphanumeric alphabet
_SHARE_TOKEN_BYTES: Final = 32
_DEFAULT_MIME_TYPE: Final = 'application/octet-stream'


def detect_mime_type(filename: str) -> str:
    """Detect MIME type from filename extension.

    Args:
        filename: Filename with extension.

    Returns:
        MIME type string (e.g., 'image/jpeg', 'application/pdf').
        Returns 'application/octet-stream' if type cannot be determined.
    """
    mime_type, _ = mimetypes.guess_type(filename)
    if mime_type is None:
        return _DEFAULT_MIME_TYPE
    return mime_type


def sanitize_filename(filename: str) -> str:
    """Make a filename safe to embed in a storage key.

    Example: 'my report (1).pdf' -> 'my_report__1_.pdf'

    Args:
        filename: Original filename from the client.

    Returns:
        Filename with every character outside [A-Za-z0-9.-] replaced by `_`.
    """
    return _UNSAFE_KEY_CHARS.sub('_', filename)


def build_storage_key(user_id: int, original_name: str) -> str:
    """Build a unique storage key for a new upload.

    Wall clock milliseconds plus a random suffix keep keys unique even
    for concurrent uploads of the same filename by the same user.

    Args:
        user_id: Owner's user ID.
        original_name: Filename as uploaded.

    Returns:
        Key like '42/1760781234567-k3j9x0q2m1zb-report.pdf'.
    """
    timestamp = time.time_ns() // 1_000_000
    random_part = get_random_string(_KEY_RANDOM_LENGTH)
    return '{user_id}/{timestamp}-{random}-{name}'.format(
        user_id=user_id,
        timestamp=timestamp,
        random=random_part,
        name=sanitize_filename(original_name),
    )


def generate_share_token() -> str:
    """Generate an unguessable share token.

    Returns:
        64 character hex string (256 bits of entropy).
    """
    return secrets.token_hex(_SHARE_TOKEN_BYTES)

