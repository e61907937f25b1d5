"""
Input sanitization utilities.
Provides functions to clean user supplied file names before they become storage keys.
"""

import re
from typing import Optional

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def sanitize_filename(value: Optional[str], default: str = "receipt.pdf") -> str:
    if not value:
        return default
    # Drop any client supplied directory components
    value = value.replace("\\", "/").rsplit("/", 1)[-1].strip()
    value = _UNSAFE_FILENAME_CHARS.sub("_", value)
    value = value.lstrip(".")
    return value or default
