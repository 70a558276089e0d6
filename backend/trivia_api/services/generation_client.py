"""
Ollama client that turns a raw clue into a multiple-choice trivia draft.

Uses Ollama's /api/generate endpoint via httpx with a JSON-schema `format`
(structured outputs), so the model is constrained to return exactly:

    {"question": str, "correctAnswer": str, "wrongAnswers": [str, str, str]}

Failure handling:
  • Service unreachable / timed out  → UpstreamUnavailable
  • Non-2xx response                 → UpstreamError
  • Unparsable payload               → logged, deterministic fallback draft
    built from the clue itself (never raised to the caller)

One request per call and no internal retry; retrying is the batch
pipeline's job.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from trivia_api.core.config import settings
from trivia_api.core.errors import MalformedOutput, UpstreamError, UpstreamUnavailable
from trivia_api.models.clue import Clue

logger = logging.getLogger(__name__)

WRONG_ANSWER_COUNT = 3

# ── Structured output schema ────────────────────────────────
OUTPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "question": {
            "type": "string",
            "description": "The rephrased trivia question",
        },
        "correctAnswer": {
            "type": "string",
            "description": "The correct answer to the question",
        },
        "wrongAnswers": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Three plausible but incorrect answers",
            "minItems": WRONG_ANSWER_COUNT,
            "maxItems": WRONG_ANSWER_COUNT,
        },
    },
    "required": ["question", "correctAnswer", "wrongAnswers"],
}

PROMPT_TEMPLATE = """\
You are generating a multiple-choice trivia question based on a Jeopardy! clue.

Original Category: {category}
Original Clue: {question}
Correct Answer: {answer}

Please rephrase this into a clear, engaging multiple-choice trivia question.

Create a set of 3 plausible wrong answers that:
- Are related to the category
- Different from each other
- In a similar format/style as the correct answer
- Are somewhat plausible but clearly incorrect to someone who knows the subject

The wrong answers should be at a medium difficulty level - not too obvious,
but not extremely tricky.

Return as JSON.\
"""


@dataclass(frozen=True, slots=True)
class TriviaDraft:
    """A not-yet-persisted trivia question. Always exactly 3 wrong answers."""

    question: str
    correct_answer: str
    wrong_answers: tuple[str, str, str]


def build_prompt(clue: Clue) -> str:
    return PROMPT_TEMPLATE.format(
        category=clue.category.title,
        question=clue.question,
        answer=clue.answer,
    )


def fallback_draft(clue: Clue) -> TriviaDraft:
    """Deterministic draft built purely from the clue's own text."""
    return TriviaDraft(
        question=f'In the category "{clue.category.title}": {clue.question}',
        correct_answer=clue.answer,
        wrong_answers=("Wrong option 1", "Wrong option 2", "Wrong option 3"),
    )


def _normalize_wrong_answers(answers: list[str], correct: str) -> tuple[str, str, str]:
    """Dedupe, truncate to 3, then pad with filler placeholders up to 3."""
    seen = {correct.strip().casefold()}
    unique: list[str] = []
    for answer in answers:
        text = answer.strip()
        if not text or text.casefold() in seen:
            continue
        seen.add(text.casefold())
        unique.append(text)

    unique = unique[:WRONG_ANSWER_COUNT]
    while len(unique) < WRONG_ANSWER_COUNT:
        unique.append(f"Filler answer {len(unique) + 1}")
    return unique[0], unique[1], unique[2]


def parse_draft(raw: Any, clue: Clue) -> TriviaDraft:
    """
    Convert the model's `response` field into a TriviaDraft.

    Accepts either a JSON string or an already-decoded object.

    Raises:
        MalformedOutput: payload is not JSON, or question/correctAnswer are
            not strings, or wrongAnswers is not an array.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MalformedOutput(f"Response is not valid JSON: {exc}") from exc

    if not isinstance(raw, dict):
        raise MalformedOutput(f"Expected a JSON object, got {type(raw).__name__}")

    question = raw.get("question")
    correct = raw.get("correctAnswer")
    wrong = raw.get("wrongAnswers")

    if not isinstance(question, str) or not isinstance(correct, str):
        raise MalformedOutput("question and correctAnswer must be strings")
    if not isinstance(wrong, list):
        raise MalformedOutput("wrongAnswers must be an array")

    # Numeric answers (years, counts) are kept as text; other junk entries
    # are dropped and the normalizer pads back up to 3.
    wrong = [
        str(w) if isinstance(w, (int, float)) and not isinstance(w, bool) else w
        for w in wrong
    ]
    wrong = [w for w in wrong if isinstance(w, str)]

    # Blank fields fall back to the clue's own text
    question = question.strip() or fallback_draft(clue).question
    correct = correct.strip() or clue.answer

    return TriviaDraft(
        question=question,
        correct_answer=correct,
        wrong_answers=_normalize_wrong_answers(wrong, correct),
    )


class GenerationClient:
    """
    Async client for the text-generation service.

    Pass an existing httpx.AsyncClient to share a connection pool; otherwise
    one is created and closed by aclose() / the async context manager.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.base_url = (base_url or settings.OLLAMA_BASE_URL).rstrip("/")
        self.model = model or settings.GENERATION_MODEL
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=timeout or settings.GENERATION_TIMEOUT_SECONDS,
        )

    async def __aenter__(self) -> GenerationClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def generate(self, clue: Clue) -> TriviaDraft:
        """
        Generate a trivia draft for one clue.

        Raises:
            UpstreamUnavailable: connection refused, DNS failure, timeout.
            UpstreamError:       the service returned a non-2xx status.
        """
        payload = {
            "model": self.model,
            "prompt": build_prompt(clue),
            "format": OUTPUT_SCHEMA,
            "stream": False,
        }

        try:
            response = await self._client.post(f"{self.base_url}/api/generate", json=payload)
        except httpx.TransportError as exc:
            logger.error(
                "Could not reach text generation service at %s for clue %s: %r",
                self.base_url,
                clue.id,
                exc,
            )
            raise UpstreamUnavailable() from exc

        if not response.is_success:
            logger.error(
                "Generation API error for clue %s: status=%d body=%s",
                clue.id,
                response.status_code,
                response.text[:500],
            )
            raise UpstreamError(
                f"Text generation service returned {response.status_code}",
                status=response.status_code,
            )

        # ── Parse the structured output ─────────────────────
        raw: Any = None
        try:
            raw = response.json()["response"]
            return parse_draft(raw, clue)
        except (KeyError, TypeError, ValueError, MalformedOutput) as exc:
            logger.error("Error parsing structured output for clue %s: %s", clue.id, exc)
            logger.error("Raw response for clue %s: %.500r", clue.id, raw)
            return fallback_draft(clue)
