"""
Splitting of long text into speakable chunks.

Speech backends reject or truncate long inputs, so over-length text is
cut at the most natural boundary available: sentence ends first, then
commas/semicolons, then whitespace, and raw character offsets only as a
last resort. Every chunk is at most ``max_length`` characters and the
chunks, concatenated, contain all of the original non-whitespace text.
"""

import re

# Sentence spans; the second alternative keeps unterminated tail text
_SENTENCE_RE = re.compile(r"[^.!?]*[.!?]+|[^.!?]+$")
_CLAUSE_SPLIT_RE = re.compile(r"([,;])")
_WORD_SPLIT_RE = re.compile(r"(\s+)")


def split_text_into_chunks(text: str, max_length: int) -> list[str]:
    """Split text into chunks of at most ``max_length`` characters.

    Args:
        text: Text to split.
        max_length: Maximum characters per chunk (must be positive).

    Returns:
        Non-empty, stripped chunks in reading order. Text that already fits
        is returned as a single chunk.
    """
    if max_length <= 0:
        raise ValueError("max_length must be positive")

    text = text.strip()
    if not text:
        return []
    if len(text) <= max_length:
        return [text]

    sentences = [s for s in _SENTENCE_RE.findall(text) if s.strip()]
    if len(sentences) <= 1:
        return _split_on_clauses(text, max_length)

    chunks: list[str] = []
    current = ""
    for sentence in sentences:
        if len(sentence) > max_length:
            _flush(chunks, current)
            current = ""
            chunks.extend(_split_on_clauses(sentence, max_length))
        elif len(current) + len(sentence) <= max_length:
            current += sentence
        else:
            _flush(chunks, current)
            current = sentence
    _flush(chunks, current)
    return chunks


def _split_on_clauses(text: str, max_length: int) -> list[str]:
    chunks: list[str] = []
    current = ""
    for part in _CLAUSE_SPLIT_RE.split(text):
        if len(current) + len(part) <= max_length:
            current += part
            continue
        _flush(chunks, current)
        current = ""
        if len(part) > max_length:
            chunks.extend(_split_on_words(part, max_length))
        else:
            current = part
    _flush(chunks, current)
    return chunks


def _split_on_words(text: str, max_length: int) -> list[str]:
    chunks: list[str] = []
    current = ""
    for word in _WORD_SPLIT_RE.split(text):
        if len(current) + len(word) <= max_length:
            current += word
            continue
        _flush(chunks, current)
        current = ""
        if len(word) > max_length:
            chunks.extend(word[i:i + max_length] for i in range(0, len(word), max_length))
        elif not word.isspace():
            current = word
    _flush(chunks, current)
    return chunks


def _flush(chunks: list[str], current: str) -> None:
    stripped = current.strip()
    if stripped:
        chunks.append(stripped)
