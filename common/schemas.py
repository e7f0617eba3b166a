from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, model_validator


# --- Canonical transcript model: every backend is normalized into this ---

class Word(BaseModel):
    text: str
    start: int  # milliseconds since audio start
    end: int
    speaker_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_times(self):
        if self.start < 0 or self.end < 0:
            raise ValueError("timestamps must be non-negative")
        if self.start > self.end:
            raise ValueError(f"start ({self.start}) is after end ({self.end})")
        return self


class Sentence(Word):
    """A segment; same shape as a word."""


class StandardResult(BaseModel):
    text: str
    words: list[Word]
    sentences: list[Sentence] = []
    language: Optional[str] = None
