"""
Question store: clue corpus paging for the batch generator and trivia
reads for the API.

Paging contract (batch generator):
  • Clues are always returned in ascending id order.
  • page_clues(scan, after, limit) returns clues with id > after (None
    means no cursor) that also fall inside the scan range; an empty list
    means the corpus is exhausted.

Like the credential store, the SQL implementation wraps a session it is
given and converts SQLAlchemy failures into PersistenceError.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from fastapi import Depends
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from trivia_api.core.database import get_db_session
from trivia_api.models.clue import Category, Clue
from trivia_api.models.trivia import TriviaQuestion
from trivia_api.stores.base import wrap_db_errors

if TYPE_CHECKING:
    from trivia_api.services.generation_client import TriviaDraft


@dataclass(frozen=True, slots=True)
class ClueRange:
    """Inclusive id bounds plus an exclusive resume cursor.

    Any bound may be None (unbounded). after_id is the checkpoint cursor:
    only clues with id > after_id are in range.
    """

    start_id: int | None = None
    end_id: int | None = None
    after_id: int | None = None

    def contains(self, clue_id: int) -> bool:
        if self.start_id is not None and clue_id < self.start_id:
            return False
        if self.end_id is not None and clue_id > self.end_id:
            return False
        if self.after_id is not None and clue_id <= self.after_id:
            return False
        return True


@dataclass(frozen=True, slots=True)
class CategoryCount:
    id: int
    title: str
    trivia_count: int


class QuestionStore(Protocol):
    """Operations the batch generator depends on."""

    async def count_clues(self, scan: ClueRange) -> int: ...

    async def page_clues(
        self, scan: ClueRange, after: int | None, limit: int
    ) -> list[Clue]: ...

    async def find_trivia_by_clue(self, clue_id: int) -> TriviaQuestion | None: ...

    async def create_trivia(
        self, clue: Clue, draft: "TriviaDraft", model: str
    ) -> TriviaQuestion: ...


def _range_filters(scan: ClueRange) -> list:
    filters = []
    if scan.start_id is not None:
        filters.append(Clue.id >= scan.start_id)
    if scan.end_id is not None:
        filters.append(Clue.id <= scan.end_id)
    if scan.after_id is not None:
        filters.append(Clue.id > scan.after_id)
    return filters


class SqlQuestionStore:
    """SQLAlchemy-backed question store bound to one session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ── Batch generator ─────────────────────────────────────
    @wrap_db_errors
    async def count_clues(self, scan: ClueRange) -> int:
        stmt = select(func.count()).select_from(Clue).where(*_range_filters(scan))
        return (await self.session.execute(stmt)).scalar_one()

    @wrap_db_errors
    async def page_clues(
        self, scan: ClueRange, after: int | None, limit: int
    ) -> list[Clue]:
        filters = _range_filters(scan)
        if after is not None:
            filters.append(Clue.id > after)
        stmt = (
            select(Clue)
            .where(*filters)
            .order_by(Clue.id.asc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    @wrap_db_errors
    async def find_trivia_by_clue(self, clue_id: int) -> TriviaQuestion | None:
        stmt = (
            select(TriviaQuestion)
            .where(TriviaQuestion.clue_id == clue_id)
            .order_by(TriviaQuestion.id)
            .limit(1)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    @wrap_db_errors
    async def create_trivia(
        self, clue: Clue, draft: "TriviaDraft", model: str
    ) -> TriviaQuestion:
        first, second, third = draft.wrong_answers
        question = TriviaQuestion(
            clue_id=clue.id,
            rephrased=draft.question,
            correct_answer=draft.correct_answer,
            wrong_answer_1=first,
            wrong_answer_2=second,
            wrong_answer_3=third,
            model=model,
        )
        self.session.add(question)
        await self.session.commit()
        await self.session.refresh(question)
        return question

    # ── API reads ───────────────────────────────────────────
    @wrap_db_errors
    async def random_trivia(self, category: str | None = None) -> TriviaQuestion | None:
        """Pick one question uniformly at random, optionally by category substring."""
        filters = []
        if category:
            filters.append(Category.title.icontains(category, autoescape=True))

        count_stmt = (
            select(func.count(TriviaQuestion.id))
            .join(Clue, TriviaQuestion.clue_id == Clue.id)
            .join(Category, Clue.category_id == Category.id)
            .where(*filters)
        )
        total = (await self.session.execute(count_stmt)).scalar_one()
        if total == 0:
            return None

        stmt = (
            select(TriviaQuestion)
            .join(Clue, TriviaQuestion.clue_id == Clue.id)
            .join(Category, Clue.category_id == Category.id)
            .where(*filters)
            .order_by(TriviaQuestion.id)
            .offset(random.randrange(total))
            .limit(1)
        )
        return (await self.session.execute(stmt)).scalars().first()

    @wrap_db_errors
    async def get_trivia(self, trivia_id: int) -> TriviaQuestion | None:
        return await self.session.get(TriviaQuestion, trivia_id)

    @wrap_db_errors
    async def find_category(self, title: str) -> Category | None:
        stmt = (
            select(Category)
            .where(Category.title.icontains(title, autoescape=True))
            .order_by(Category.id)
            .limit(1)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    @wrap_db_errors
    async def trivia_by_category(
        self, category_id: int, limit: int, offset: int
    ) -> tuple[int, list[TriviaQuestion]]:
        in_category = (
            select(TriviaQuestion)
            .join(Clue, TriviaQuestion.clue_id == Clue.id)
            .where(Clue.category_id == category_id)
        )
        return await self._paged(in_category, limit, offset)

    @wrap_db_errors
    async def list_categories(self) -> list[CategoryCount]:
        """Categories that have at least one trivia question, with counts."""
        stmt = (
            select(
                Category.id,
                Category.title,
                func.count(TriviaQuestion.id).label("trivia_count"),
            )
            .join(Clue, Clue.category_id == Category.id)
            .join(TriviaQuestion, TriviaQuestion.clue_id == Clue.id)
            .group_by(Category.id, Category.title)
            .order_by(Category.title.asc())
        )
        rows = (await self.session.execute(stmt)).all()
        return [CategoryCount(id=r.id, title=r.title, trivia_count=r.trivia_count) for r in rows]

    @wrap_db_errors
    async def search_trivia(
        self, query: str, limit: int, offset: int
    ) -> tuple[int, list[TriviaQuestion]]:
        """Case-insensitive substring search over question, answers and category."""
        matches = (
            select(TriviaQuestion)
            .join(Clue, TriviaQuestion.clue_id == Clue.id)
            .join(Category, Clue.category_id == Category.id)
            .where(
                or_(
                    TriviaQuestion.rephrased.icontains(query, autoescape=True),
                    TriviaQuestion.correct_answer.icontains(query, autoescape=True),
                    Clue.question.icontains(query, autoescape=True),
                    Clue.answer.icontains(query, autoescape=True),
                    Category.title.icontains(query, autoescape=True),
                )
            )
        )
        return await self._paged(matches, limit, offset)

    async def _paged(self, stmt, limit: int, offset: int) -> tuple[int, list[TriviaQuestion]]:  # type: ignore[no-untyped-def]
        total_stmt = select(func.count()).select_from(stmt.subquery())
        total = (await self.session.execute(total_stmt)).scalar_one()

        page_stmt = stmt.order_by(TriviaQuestion.id.asc()).limit(limit).offset(offset)
        items = list((await self.session.execute(page_stmt)).scalars().unique().all())
        return total, items


def get_question_store(
    session: AsyncSession = Depends(get_db_session),
) -> SqlQuestionStore:
    """FastAPI dependency: a question store over the request's session."""
    return SqlQuestionStore(session)
