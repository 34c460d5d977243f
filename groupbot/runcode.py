"""Output handling for running code snippets online."""

from __future__ import annotations

MAX_LINES = 30
MAX_CHARS = 1000
_ELLIPSIS = "\n............\n............"


def cut_too_long(text: str) -> str:
    """Cut output after 30 line breaks or about 1000 characters."""
    count = 0
    size = len(text)
    for i, ch in enumerate(text):
        if ch == "\r" and i < size - 1 and text[i + 1] == "\n":
            pass  # the following "\n" is counted on its own
        elif ch in "\n\r":
            count += 1
        if count > MAX_LINES or i > MAX_CHARS:
            return text[: i - 1] + _ELLIPSIS
    return text