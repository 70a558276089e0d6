import random

from conftest import FakeQuestionStore, make_clue
from trivia_api.services.trivia_formatter import format_trivia, shuffled_options


def make_question():
    clue = make_clue(7, question="Largest planet", answer="Jupiter", category="SPACE")
    return FakeQuestionStore().add_trivia(
        clue, question="Which planet is the largest?", wrong=("Saturn", "Neptune", "Mars")
    )


def test_options_are_a_permutation_of_all_answers():
    question = make_question()

    for seed in range(20):
        options = shuffled_options(question, random.Random(seed))
        assert sorted(options) == ["Jupiter", "Mars", "Neptune", "Saturn"]


def test_correct_answer_lands_in_every_position():
    question = make_question()
    rng = random.Random(1234)

    positions = {shuffled_options(question, rng).index("Jupiter") for _ in range(200)}

    assert positions == {0, 1, 2, 3}


def test_format_trivia_serializes_camel_case():
    body = format_trivia(make_question(), random.Random(0)).model_dump(by_alias=True)

    assert body["question"] == "Which planet is the largest?"
    assert body["correctAnswer"] == "Jupiter"
    assert body["category"] == "SPACE"
    assert body["clue"]["answer"] == "Jupiter"
    assert len(body["options"]) == 4
