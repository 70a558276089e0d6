import json

import httpx
import pytest
import respx

from conftest import make_clue
from trivia_api.core.errors import MalformedOutput, UpstreamError, UpstreamUnavailable
from trivia_api.services.generation_client import (
    OUTPUT_SCHEMA,
    GenerationClient,
    build_prompt,
    fallback_draft,
    parse_draft,
)

BASE_URL = "http://ollama.test"
GENERATE_URL = f"{BASE_URL}/api/generate"


@pytest.fixture
def clue():
    return make_clue(42, question="This city is the capital of France", answer="Paris")


def ollama_reply(payload):
    body = payload if isinstance(payload, str) else json.dumps(payload)
    return httpx.Response(200, json={"model": "m", "response": body, "done": True})


# ── Parsing ─────────────────────────────────────────────────
def test_prompt_mentions_clue(clue):
    prompt = build_prompt(clue)

    assert "Original Category: WORLD CAPITALS" in prompt
    assert "Original Clue: This city is the capital of France" in prompt
    assert "Correct Answer: Paris" in prompt


def test_parse_draft_accepts_well_formed_output(clue):
    draft = parse_draft(
        json.dumps({
            "question": "Which city is the capital of France?",
            "correctAnswer": "Paris",
            "wrongAnswers": ["Lyon", "Marseille", "Nice"],
        }),
        clue,
    )

    assert draft.question == "Which city is the capital of France?"
    assert draft.correct_answer == "Paris"
    assert draft.wrong_answers == ("Lyon", "Marseille", "Nice")


def test_parse_draft_truncates_extra_wrong_answers(clue):
    draft = parse_draft(
        {"question": "Q?", "correctAnswer": "Paris", "wrongAnswers": ["A", "B", "C", "D"]},
        clue,
    )
    assert draft.wrong_answers == ("A", "B", "C")


def test_parse_draft_pads_missing_wrong_answers(clue):
    draft = parse_draft(
        {"question": "Q?", "correctAnswer": "Paris", "wrongAnswers": ["Lyon"]},
        clue,
    )
    assert draft.wrong_answers == ("Lyon", "Filler answer 2", "Filler answer 3")


def test_parse_draft_drops_duplicates_and_correct_answer(clue):
    draft = parse_draft(
        {"question": "Q?", "correctAnswer": "Paris", "wrongAnswers": ["paris", "Lyon", "lyon ", "Nice"]},
        clue,
    )
    assert draft.wrong_answers == ("Lyon", "Nice", "Filler answer 3")


def test_parse_draft_blank_fields_use_clue(clue):
    draft = parse_draft({"question": " ", "correctAnswer": "", "wrongAnswers": []}, clue)

    assert draft.question == fallback_draft(clue).question
    assert draft.correct_answer == "Paris"
    assert len(draft.wrong_answers) == 3


def test_parse_draft_keeps_numeric_and_drops_junk_wrong_answers(clue):
    draft = parse_draft(
        {"question": "Q?", "correctAnswer": "Paris", "wrongAnswers": [1789, None, {"x": 1}, "Lyon"]},
        clue,
    )

    assert draft.question == "Q?"
    assert draft.correct_answer == "Paris"
    assert draft.wrong_answers == ("1789", "Lyon", "Filler answer 3")


@pytest.mark.parametrize(
    "raw",
    ["not json at all", "[1, 2, 3]", {"question": "Q?"}, {"question": "Q?", "correctAnswer": "A", "wrongAnswers": "B"}],
)
def test_parse_draft_rejects_bad_shapes(clue, raw):
    with pytest.raises(MalformedOutput):
        parse_draft(raw, clue)


def test_fallback_draft_is_built_from_clue(clue):
    draft = fallback_draft(clue)

    assert draft.question == 'In the category "WORLD CAPITALS": This city is the capital of France'
    assert draft.correct_answer == "Paris"
    assert draft.wrong_answers == ("Wrong option 1", "Wrong option 2", "Wrong option 3")


# ── HTTP ────────────────────────────────────────────────────
@pytest.mark.asyncio
@respx.mock
async def test_generate_posts_structured_request(clue):
    route = respx.post(GENERATE_URL).mock(
        return_value=ollama_reply({
            "question": "Which city is the capital of France?",
            "correctAnswer": "Paris",
            "wrongAnswers": ["Lyon", "Marseille", "Nice"],
        })
    )

    async with GenerationClient(base_url=BASE_URL, model="qwq:32b") as client:
        draft = await client.generate(clue)

    assert route.called
    sent = json.loads(route.calls.last.request.content)
    assert sent["model"] == "qwq:32b"
    assert sent["stream"] is False
    assert sent["format"] == OUTPUT_SCHEMA
    assert "Paris" in sent["prompt"]
    assert draft.wrong_answers == ("Lyon", "Marseille", "Nice")


@pytest.mark.asyncio
@respx.mock
async def test_generate_falls_back_on_unparsable_output(clue):
    respx.post(GENERATE_URL).mock(return_value=ollama_reply("<think>hmm</think> Paris?"))

    async with GenerationClient(base_url=BASE_URL, model="m") as client:
        draft = await client.generate(clue)

    assert draft == fallback_draft(clue)


@pytest.mark.asyncio
@respx.mock
async def test_generate_falls_back_when_response_field_missing(clue):
    respx.post(GENERATE_URL).mock(return_value=httpx.Response(200, json={"done": True}))

    async with GenerationClient(base_url=BASE_URL, model="m") as client:
        draft = await client.generate(clue)

    assert len(draft.wrong_answers) == 3
    assert draft.correct_answer == "Paris"


@pytest.mark.asyncio
@respx.mock
async def test_generate_raises_when_service_unreachable(clue):
    respx.post(GENERATE_URL).mock(side_effect=httpx.ConnectError("connection refused"))

    async with GenerationClient(base_url=BASE_URL, model="m") as client:
        with pytest.raises(UpstreamUnavailable):
            await client.generate(clue)


@pytest.mark.asyncio
@respx.mock
async def test_generate_raises_on_error_status(clue):
    respx.post(GENERATE_URL).mock(return_value=httpx.Response(500, text="model not loaded"))

    async with GenerationClient(base_url=BASE_URL, model="m") as client:
        with pytest.raises(UpstreamError) as exc_info:
            await client.generate(clue)

    assert exc_info.value.status == 500


@pytest.mark.asyncio
async def test_shared_http_client_is_not_closed(clue):
    http_client = httpx.AsyncClient()
    async with GenerationClient(http_client, base_url=BASE_URL, model="m"):
        pass

    assert not http_client.is_closed
    await http_client.aclose()
