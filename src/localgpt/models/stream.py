"""Value types produced by stream decoding and retrieval."""

from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass(frozen=True)
class StreamUpdate:
    """One step of a streamed generation.

    Carries the full text generated so far, never a delta: consumers replace
    whatever they display with `accumulated_text`.

    Attributes:
        accumulated_text: Concatenation of every fragment received so far
    """

    accumulated_text: str


@dataclass
class Passage:
    """A chunk of a source document eligible for retrieval.

    Attributes:
        text: Passage text
        source_offset: Character offset of the passage in the source document
        vector: Embedding vector, populated on first retrieval request
        score: Cosine similarity to the query, set when ranked
    """

    text: str
    source_offset: int
    vector: Optional[np.ndarray] = None
    score: Optional[float] = None
