import asyncio
import collections

import pytest

from conftest import FakeQuestionStore, make_clue
from trivia_api.core.errors import FatalPipelineError, PersistenceError, UpstreamUnavailable
from trivia_api.services.generation_client import TriviaDraft
from trivia_api.services.pipeline import BatchPipeline, ClueOutcome, PipelineConfig
from trivia_api.services.progress import BatchProgress, ProgressStore
from trivia_api.stores.questions import ClueRange

REQUEST_DELAY = 0.01
BATCH_DELAY = 0.5
RETRY_DELAY = 5.0


class FakeGenerator:
    model = "test-model"

    def __init__(self, always_fail=(), fail_first=()):
        self.always_fail = set(always_fail)
        self.fail_first = set(fail_first)
        self.calls = collections.Counter()
        self.in_flight = 0
        self.max_in_flight = 0

    async def generate(self, clue):
        self.calls[clue.id] += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if clue.id in self.always_fail:
                raise UpstreamUnavailable()
            if clue.id in self.fail_first and self.calls[clue.id] == 1:
                raise UpstreamUnavailable()
            return TriviaDraft(
                question=f"Rephrased {clue.id}",
                correct_answer=clue.answer,
                wrong_answers=("A", "B", "C"),
            )
        finally:
            self.in_flight -= 1


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)

    def count(self, seconds):
        return self.delays.count(seconds)


def make_pipeline(store, generator, tmp_path, sleep, **config):
    defaults = dict(
        batch_size=1000,
        concurrency=5,
        request_delay=REQUEST_DELAY,
        batch_delay=BATCH_DELAY,
        max_retries=3,
        retry_delay=RETRY_DELAY,
    )
    defaults.update(config)
    return BatchPipeline(
        store=store,
        generator=generator,
        progress_store=ProgressStore(tmp_path / "progress.json"),
        config=PipelineConfig(**defaults),
        sleep=sleep,
    )


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.mark.asyncio
async def test_range_run_processes_only_inclusive_bounds(tmp_path, sleep):
    store = FakeQuestionStore([make_clue(i) for i in range(998, 1005)])
    generator = FakeGenerator()
    pipeline = make_pipeline(store, generator, tmp_path, sleep)

    summary = await pipeline.run(1000, 1002)

    assert summary.ok
    assert summary.total_clues == 3
    assert sorted(t.clue_id for t in store.trivia) == [1000, 1001, 1002]
    assert all(t.model == "test-model" for t in store.trivia)
    assert summary.progress.last_processed_id == 1002
    assert summary.progress.processed_count == 3
    assert summary.progress.error_count == 0

    saved = pipeline.progress_store.load()
    assert saved.last_processed_id == 1002
    assert saved.processed_count == 3


@pytest.mark.asyncio
async def test_always_failing_clue_is_retried_then_counted(tmp_path, sleep):
    store = FakeQuestionStore([make_clue(i) for i in range(1, 11)])
    generator = FakeGenerator(always_fail={5})
    pipeline = make_pipeline(store, generator, tmp_path, sleep)

    summary = await pipeline.run()

    assert summary.ok
    assert generator.calls[5] == 4
    assert sleep.count(RETRY_DELAY) == 3
    assert summary.failed_clue_ids == [5]
    assert summary.progress.error_count == 1
    assert summary.progress.processed_count == 9
    assert summary.progress.last_processed_id == 10
    assert store.trivia_for(5) == []


@pytest.mark.asyncio
async def test_transient_failure_succeeds_on_retry(tmp_path, sleep):
    store = FakeQuestionStore([make_clue(1), make_clue(2)])
    generator = FakeGenerator(fail_first={2})
    pipeline = make_pipeline(store, generator, tmp_path, sleep)

    summary = await pipeline.run()

    assert generator.calls[2] == 2
    assert summary.progress.error_count == 0
    assert len(store.trivia_for(2)) == 1


@pytest.mark.asyncio
async def test_resume_never_revisits_checkpointed_ids(tmp_path, sleep):
    store = FakeQuestionStore([make_clue(i) for i in range(1, 8)])
    generator = FakeGenerator()
    pipeline = make_pipeline(store, generator, tmp_path, sleep)
    pipeline.progress_store.save(BatchProgress(last_processed_id=4, processed_count=4, error_count=1))

    summary = await pipeline.run(resume=True)

    assert set(generator.calls) == {5, 6, 7}
    assert all(after is None or after >= 4 for _, after, _ in store.page_calls)
    assert summary.total_clues == 3
    assert summary.progress.last_processed_id == 7
    assert summary.progress.processed_count == 7
    assert summary.progress.error_count == 1


@pytest.mark.asyncio
async def test_resume_without_checkpoint_starts_fresh(tmp_path, sleep):
    store = FakeQuestionStore([make_clue(1), make_clue(2)])
    generator = FakeGenerator()
    pipeline = make_pipeline(store, generator, tmp_path, sleep)

    summary = await pipeline.run(resume=True)

    assert set(generator.calls) == {1, 2}
    assert summary.progress.processed_count == 2


@pytest.mark.asyncio
async def test_existing_questions_are_skipped_and_counted(tmp_path, sleep):
    first = make_clue(1)
    store = FakeQuestionStore([first, make_clue(2)])
    store.add_trivia(first)
    generator = FakeGenerator()
    pipeline = make_pipeline(store, generator, tmp_path, sleep)

    summary = await pipeline.run()

    assert set(generator.calls) == {2}
    assert len(store.trivia_for(1)) == 1
    assert summary.skipped == 1
    assert summary.created == 1
    assert summary.progress.processed_count == 2


@pytest.mark.asyncio
async def test_force_creates_second_question(tmp_path, sleep):
    first = make_clue(1)
    store = FakeQuestionStore([first])
    store.add_trivia(first)
    pipeline = make_pipeline(store, FakeGenerator(), tmp_path, sleep)

    summary = await pipeline.run(force=True)

    assert len(store.trivia_for(1)) == 2
    assert summary.created == 1
    assert summary.skipped == 0


@pytest.mark.asyncio
async def test_pages_advance_cursor_and_stop_on_short_page(tmp_path, sleep):
    store = FakeQuestionStore([make_clue(i) for i in range(1, 6)])
    pipeline = make_pipeline(store, FakeGenerator(), tmp_path, sleep, batch_size=2)

    summary = await pipeline.run()

    assert summary.pages == 3
    assert [after for _, after, _ in store.page_calls] == [None, 2, 4]
    assert sleep.count(BATCH_DELAY) == 2
    assert summary.progress.last_processed_id == 5


@pytest.mark.asyncio
async def test_exact_multiple_of_batch_size_ends_on_empty_page(tmp_path, sleep):
    store = FakeQuestionStore([make_clue(i) for i in range(1, 5)])
    pipeline = make_pipeline(store, FakeGenerator(), tmp_path, sleep, batch_size=2)

    summary = await pipeline.run()

    assert summary.pages == 2
    assert [after for _, after, _ in store.page_calls] == [None, 2, 4]
    assert summary.progress.processed_count == 4


@pytest.mark.asyncio
async def test_concurrency_is_bounded(tmp_path, sleep):
    store = FakeQuestionStore([make_clue(i) for i in range(1, 21)])
    generator = FakeGenerator()
    pipeline = make_pipeline(store, generator, tmp_path, sleep, concurrency=3)

    clues = await store.page_clues(ClueRange(), None, 100)
    results = await pipeline.process_page(clues)

    assert generator.max_in_flight <= 3
    assert [r.clue_id for r in results] == list(range(1, 21))
    assert all(r.outcome is ClueOutcome.CREATED for r in results)
    assert sleep.count(REQUEST_DELAY) == 20


class FailingPageStore(FakeQuestionStore):
    def __init__(self, clues, fail_after):
        super().__init__(clues)
        self.fail_after = fail_after

    async def page_clues(self, scan, after, limit):
        if after == self.fail_after:
            raise PersistenceError()
        return await super().page_clues(scan, after, limit)


@pytest.mark.asyncio
async def test_store_failure_is_fatal_and_keeps_checkpoint(tmp_path, sleep):
    store = FailingPageStore([make_clue(i) for i in range(1, 6)], fail_after=2)
    pipeline = make_pipeline(store, FakeGenerator(), tmp_path, sleep, batch_size=2)

    summary = await pipeline.run()

    assert not summary.ok
    assert isinstance(summary.fatal_error, FatalPipelineError)
    assert "PersistenceError" in summary.fatal_error.message
    saved = pipeline.progress_store.load()
    assert saved.last_processed_id == 2
    assert saved.processed_count == 2
