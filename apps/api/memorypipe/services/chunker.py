from __future__ import annotations

import math
import re
from enum import Enum

# Split point: right after terminal punctuation, before the whitespace that follows it.
# Keeping the whitespace on the next sentence makes "".join(chunks) == text.
_SENTENCE_BOUNDARY_RE = re.compile(r"(?<=[.!?])(?=\s)")


class SummaryChunkPolicy(str, Enum):
    """What the summarization stage does with an oversized input once it is chunked."""

    FIRST_CHUNK = "first_chunk"  # summarize the opening chunk only
    ALL_CHUNKS = "all_chunks"  # summarize every chunk, join partial summaries in order


def estimate_tokens(text: str, chars_per_token: int = 4) -> int:
    """Rough token estimate (~4 chars per token for English prose)."""
    if not text:
        return 0
    return math.ceil(len(text) / max(1, chars_per_token))


def _sentences(text: str) -> list[str]:
    parts = _SENTENCE_BOUNDARY_RE.split(text)
    out: list[str] = []
    for p in parts:
        if not p:
            continue
        # trailing whitespace after the last sentence stays with it
        if not p.strip() and out:
            out[-1] += p
            continue
        out.append(p)
    return out


def split(text: str, max_chunk_chars: int) -> list[str]:
    """
    Split text into sentence-aligned chunks of at most max_chunk_chars.

    - sentences are accumulated greedily; a new chunk starts when the next one would overflow
    - a single sentence longer than max_chunk_chars becomes its own (oversized) chunk
    - text without terminal punctuation comes back as one chunk
    - "".join(split(text, n)) == text for any non-blank text; blank text yields []
    """
    if max_chunk_chars <= 0:
        raise ValueError("max_chunk_chars must be positive")
    if not text or not text.strip():
        return []

    chunks: list[str] = []
    current = ""
    for sentence in _sentences(text):
        if current and len(current) + len(sentence) > max_chunk_chars:
            chunks.append(current)
            current = sentence
        else:
            current += sentence

    if current:
        chunks.append(current)
    return chunks
