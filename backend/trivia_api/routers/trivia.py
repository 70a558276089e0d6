"""
Trivia router: read access to generated questions.

Every endpoint requires an X-API-Key and consumes one request from the
key's rate limit (see auth/rate_limit.py). Allowed responses carry the
X-RateLimit-* headers.

Endpoints:
  GET /api/trivia/random             - one random question (?category=)
  GET /api/trivia/categories         - categories with question counts
  GET /api/trivia/category/{title}   - paged questions in a category
  GET /api/trivia/search             - paged substring search (?query=)
  GET /api/trivia/{id}               - one question by id
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from trivia_api.auth.rate_limit import enforce_rate_limit
from trivia_api.core.errors import NotFound, ValidationError
from trivia_api.schemas.trivia import (
    CategoriesEnvelope,
    CategoryOut,
    TriviaEnvelope,
    TriviaPageEnvelope,
)
from trivia_api.services.trivia_formatter import format_trivia
from trivia_api.stores.questions import SqlQuestionStore, get_question_store

router = APIRouter(tags=["Trivia"], dependencies=[Depends(enforce_rate_limit)])

Questions = Annotated[SqlQuestionStore, Depends(get_question_store)]
Limit = Annotated[int, Query(ge=1, le=100)]
Offset = Annotated[int, Query(ge=0)]


# ── 1. Random ───────────────────────────────────────────────
@router.get(
    "/random",
    response_model=TriviaEnvelope,
    summary="One random trivia question",
)
async def get_random_trivia(
    questions: Questions,
    category: Annotated[str | None, Query(max_length=255)] = None,
) -> TriviaEnvelope:
    question = await questions.random_trivia(category)
    if question is None:
        raise NotFound("No trivia questions found matching the criteria")
    return TriviaEnvelope(trivia=format_trivia(question))


# ── 2. Categories ───────────────────────────────────────────
@router.get(
    "/categories",
    response_model=CategoriesEnvelope,
    summary="Categories that have trivia questions",
)
async def get_categories(questions: Questions) -> CategoriesEnvelope:
    categories = await questions.list_categories()
    return CategoriesEnvelope(
        count=len(categories),
        categories=[
            CategoryOut(id=c.id, title=c.title, trivia_count=c.trivia_count)
            for c in categories
        ],
    )


@router.get(
    "/category/{title}",
    response_model=TriviaPageEnvelope,
    summary="Trivia questions in a category",
)
async def get_trivia_by_category(
    title: str,
    questions: Questions,
    limit: Limit = 10,
    offset: Offset = 0,
) -> TriviaPageEnvelope:
    category = await questions.find_category(title)
    if category is None:
        raise NotFound("Category not found")

    total, items = await questions.trivia_by_category(category.id, limit, offset)
    return TriviaPageEnvelope(
        category=category.title,
        total=total,
        count=len(items),
        offset=offset,
        limit=limit,
        trivia=[format_trivia(q) for q in items],
    )


# ── 3. Search ───────────────────────────────────────────────
@router.get(
    "/search",
    response_model=TriviaPageEnvelope,
    summary="Search trivia questions",
    description=(
        "Case-insensitive substring match over the question, the correct "
        "answer, the source clue and the category title."
    ),
)
async def search_trivia(
    questions: Questions,
    query: Annotated[str | None, Query(max_length=255)] = None,
    limit: Limit = 10,
    offset: Offset = 0,
) -> TriviaPageEnvelope:
    if query is None or not query.strip():
        raise ValidationError("Search query is required")

    query = query.strip()
    total, items = await questions.search_trivia(query, limit, offset)
    return TriviaPageEnvelope(
        query=query,
        total=total,
        count=len(items),
        offset=offset,
        limit=limit,
        trivia=[format_trivia(q) for q in items],
    )


# ── 4. By id (must stay last) ───────────────────────────
@router.get(
    "/{trivia_id}",
    response_model=TriviaEnvelope,
    summary="One trivia question by id",
)
async def get_trivia_by_id(trivia_id: int, questions: Questions) -> TriviaEnvelope:
    question = await questions.get_trivia(trivia_id)
    if question is None:
        raise NotFound("Trivia question not found")
    return TriviaEnvelope(trivia=format_trivia(question))
