"""Text normalisation for OCR and embedded PDF text.

OCR output and PDF text layers are noisy: fullwidth punctuation from
CJK fonts, exotic Unicode spaces, ragged runs of whitespace and empty
lines.  ``normalize_text`` folds all of that into plain ASCII
punctuation while keeping one receipt line per text line, which the
regex parser relies on.
"""

from __future__ import annotations

import re

_CHAR_MAP = str.maketrans({
    "\uFF04": "$",  # fullwidth dollar sign
    "\uFF0E": ".",  # fullwidth full stop
    "\uFF0C": ",",  # fullwidth comma
})

_UNICODE_SPACES_RE = re.compile(r"[\u00A0\u1680\u180E\u2000-\u200B\u202F\u205F\u3000\uFEFF]")
_HORIZONTAL_WS_RE = re.compile(r"[ \t\f\v]+")


def normalize_text(text: str | None) -> str:
    """Normalise receipt text, preserving line boundaries."""
    if not text:
        return ""
    text = text.translate(_CHAR_MAP)
    text = _UNICODE_SPACES_RE.sub(" ", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = (_HORIZONTAL_WS_RE.sub(" ", line).strip() for line in text.split("\n"))
    return "\n".join(line for line in lines if line).strip()
