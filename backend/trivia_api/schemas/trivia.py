"""
Pydantic v2 response schemas for the trivia endpoints.

Options are the correct answer plus three wrong answers in random order;
the order is decided per response (see services/trivia_formatter.py).
"""

from __future__ import annotations

from pydantic import Field

from trivia_api.schemas.base import CamelModel, Envelope


class ClueOut(CamelModel):
    """The source clue a question was generated from."""

    id: int
    question: str
    answer: str
    category: str


class TriviaOut(CamelModel):
    id: int
    question: str
    options: list[str] = Field(..., min_length=4, max_length=4)
    correct_answer: str
    category: str
    clue: ClueOut


class TriviaEnvelope(Envelope):
    trivia: TriviaOut


class TriviaPageEnvelope(Envelope):
    """One page of questions (by category or search)."""

    category: str | None = None
    query: str | None = None
    total: int
    count: int
    offset: int
    limit: int
    trivia: list[TriviaOut]


class CategoryOut(CamelModel):
    id: int
    title: str
    trivia_count: int


class CategoriesEnvelope(Envelope):
    count: int
    categories: list[CategoryOut]
