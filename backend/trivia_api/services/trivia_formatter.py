"""
Shape stored TriviaQuestion rows into API responses.

The four options are shuffled independently on every call, so the
position of the correct answer carries no information.
"""

from __future__ import annotations

import random

from trivia_api.models.trivia import TriviaQuestion
from trivia_api.schemas.trivia import ClueOut, TriviaOut


def shuffled_options(question: TriviaQuestion, rng: random.Random | None = None) -> list[str]:
    options = [question.correct_answer, *question.wrong_answers]
    (rng or random).shuffle(options)
    return options


def format_trivia(question: TriviaQuestion, rng: random.Random | None = None) -> TriviaOut:
    clue = question.clue
    category = clue.category.title
    return TriviaOut(
        id=question.id,
        question=question.rephrased,
        options=shuffled_options(question, rng),
        correct_answer=question.correct_answer,
        category=category,
        clue=ClueOut(
            id=clue.id,
            question=clue.question,
            answer=clue.answer,
            category=category,
        ),
    )
