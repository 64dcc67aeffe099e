"""Document chunking into retrieval passages.

Passages follow the document's own structure where it has one:
1. Paragraphs (separated by blank lines)
2. Sentences, for paragraphs longer than the target length
3. Hard character cuts, overlapping by `chunk_overlap`, for sentences
   that are still too long

Adjacent pieces are then packed greedily into passages of at most
`chunk_size` characters. Whitespace-only pieces are dropped.
"""

import re
from typing import List, Optional

from localgpt.models.stream import Passage


_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n\s*")
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")

Span = tuple[int, int]


def _trim(text: str, start: int, end: int) -> Optional[Span]:
    """Shrink a span past surrounding whitespace; None if nothing is left."""
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    if start >= end:
        return None
    return start, end


def _split_spans(text: str, pattern: re.Pattern, start: int, end: int) -> List[Span]:
    """Non-empty spans of text[start:end] between matches of `pattern`."""
    spans = []
    segment_start = start
    for match in pattern.finditer(text, start, end):
        span = _trim(text, segment_start, match.start())
        if span:
            spans.append(span)
        segment_start = match.end()
    span = _trim(text, segment_start, end)
    if span:
        spans.append(span)
    return spans


def _hard_cuts(text: str, start: int, end: int, chunk_size: int, chunk_overlap: int) -> List[Span]:
    """Fixed-length windows over text[start:end], each overlapping the previous one."""
    step = chunk_size - chunk_overlap
    spans = []
    window_start = start
    while True:
        window_end = min(window_start + chunk_size, end)
        span = _trim(text, window_start, window_end)
        if span:
            spans.append(span)
        if window_end >= end:
            break
        window_start += step
    return spans


def _units(text: str, chunk_size: int, chunk_overlap: int) -> List[Span]:
    """Document-ordered pieces no longer than chunk_size."""
    units: List[Span] = []
    for paragraph in _split_spans(text, _PARAGRAPH_BREAK, 0, len(text)):
        if paragraph[1] - paragraph[0] <= chunk_size:
            units.append(paragraph)
            continue
        for sentence in _split_spans(text, _SENTENCE_BREAK, *paragraph):
            if sentence[1] - sentence[0] <= chunk_size:
                units.append(sentence)
            else:
                units.extend(_hard_cuts(text, *sentence, chunk_size, chunk_overlap))
    return units


def split_passages(document: str, chunk_size: int = 1000, chunk_overlap: int = 100) -> List[Passage]:
    """
    Split a document into retrieval passages.

    Args:
        document: Source text
        chunk_size: Target (maximum) passage length in characters
        chunk_overlap: Overlap between consecutive hard cuts, < chunk_size

    Returns:
        Passages in document order, each with its character offset

    Raises:
        ValueError: If the size parameters are inconsistent

    Examples:
        >>> [p.text for p in split_passages("First.\\n\\nSecond.", chunk_size=10, chunk_overlap=0)]
        ['First.', 'Second.']
        >>> split_passages("First.\\n\\nSecond.")[0].text
        'First.\\n\\nSecond.'
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be positive")
    if not 0 <= chunk_overlap < chunk_size:
        raise ValueError("chunk_overlap must be in [0, chunk_size)")

    passages: List[Passage] = []
    current: Optional[Span] = None

    for start, end in _units(document, chunk_size, chunk_overlap):
        if current is not None and end - current[0] <= chunk_size:
            current = (current[0], end)
            continue
        if current is not None:
            passages.append(Passage(text=document[current[0]:current[1]], source_offset=current[0]))
        current = (start, end)

    if current is not None:
        passages.append(Passage(text=document[current[0]:current[1]], source_offset=current[0]))

    return passages
