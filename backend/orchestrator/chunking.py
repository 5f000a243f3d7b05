"""
Pure response fragmenting logic.

This module contains NO side effects and NO timing primitives.
It is a deterministic function over the current text buffer.

A fragment ends at whichever comes first:
- a sentence terminator ('.', '!', '?'), including any run of
  terminators directly after it ("?!", "...")
- the explicit delimiter character '•' (the delimiter itself is dropped)

A '.' followed by a digit ("3.5") is not a boundary. A '.' at the very
end of the buffer is undecided until more text arrives; the caller
flushes whatever is left when the stream completes.
"""

from __future__ import annotations

from dataclasses import dataclass

from constants import FRAGMENT_DELIMITER, SENTENCE_END_CHARS


# =============================================================================
# Fragment Decision
# =============================================================================

@dataclass(frozen=True)
class FragmentCut:
    """
    Result of a fragmenting evaluation.

    If found is False, text is None and remainder equals the input buffer.
    If found is True but text is None, the cut produced only whitespace
    and the caller should continue with remainder.
    """
    found: bool
    text: str | None = None
    remainder: str = ""


# =============================================================================
# Public API
# =============================================================================

def cut_fragment(buffer: str) -> FragmentCut:
    """
    Cut the first speakable fragment off the front of buffer.

    Returns:
        FragmentCut describing the fragment (stripped) and the remainder.
    """
    boundary = _find_boundary(buffer)
    if boundary is None:
        return FragmentCut(found=False, remainder=buffer)

    end, resume = boundary
    text = clean_fragment_text(buffer[:end])
    return FragmentCut(
        found=True,
        text=text or None,
        remainder=buffer[resume:],
    )


def drain_fragments(buffer: str) -> tuple[list[str], str]:
    """
    Cut every complete fragment out of buffer.

    Returns:
        (fragments in order, unconsumed remainder)
    """
    fragments: list[str] = []
    while True:
        cut = cut_fragment(buffer)
        if not cut.found:
            return fragments, buffer
        if cut.text is not None:
            fragments.append(cut.text)
        buffer = cut.remainder


def clean_fragment_text(text: str) -> str:
    """Remove delimiter characters and surrounding whitespace."""
    return " ".join(text.replace(FRAGMENT_DELIMITER, " ").split())


# =============================================================================
# Helpers
# =============================================================================

def _find_boundary(buffer: str) -> tuple[int, int] | None:
    """
    Locate the first fragment boundary.

    Returns:
        (end of fragment text, start of remainder) or None.
    """
    n = len(buffer)
    for i, ch in enumerate(buffer):
        if ch == FRAGMENT_DELIMITER:
            return i, i + 1

        if ch not in SENTENCE_END_CHARS:
            continue

        j = i + 1
        while j < n and buffer[j] in SENTENCE_END_CHARS:
            j += 1

        if ch == "." and j == i + 1:
            if j == n:
                # Undecided: could be a decimal point still streaming in
                return None
            if buffer[j].isdigit():
                continue

        return j, j

    return None


def find_tool_prefix(text: str, prefix: str, *, at_word_start: bool) -> int:
    """
    Locate a tool-call prefix that begins a word.

    at_word_start says whether the text streamed before `text` ended in
    whitespace (or nothing has streamed yet). A prefix inside a word
    ("service@shop.com") is ordinary speech.

    Returns:
        Index of the prefix in text, or -1.
    """
    start = 0
    while True:
        i = text.find(prefix, start)
        if i < 0:
            return -1
        if (i == 0 and at_word_start) or (i > 0 and text[i - 1].isspace()):
            return i
        start = i + 1
