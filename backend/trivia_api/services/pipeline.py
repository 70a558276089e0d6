"""
Batch trivia generation pipeline.

Walks the clue corpus in ascending id order, one page at a time, and turns
each clue into a TriviaQuestion through the generation client.

Per page:
  1. Fetch up to batch_size clues with id > cursor (inside the scan range).
  2. Process them with at most `concurrency` generation calls in flight,
     pausing request_delay between admissions. The page is joined before
     moving on (TaskGroup), no polling.
  3. Advance the cursor to the page's last id, save the checkpoint, log a
     summary line.
  4. Sleep batch_delay before the next page; a short page means the corpus
     is exhausted and the run stops without waiting.

Failure containment:
  • Per clue: any exception is retried (max_retries extra attempts,
    retry_delay apart) and then recorded as a failure. The run goes on.
  • Outside per-clue processing (counting or paging the store, saving the
    checkpoint): the run stops, the error is logged and returned as a
    FatalPipelineError in the RunSummary. The last checkpoint stays valid.

Idempotency: with skip-existing on (the default), re-running a page only
creates questions for clues that have none, so resuming after an
interrupted page is safe. force=True disables the check and creates a new
row per clue; scan order is unchanged.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Protocol

from trivia_api.core.config import settings
from trivia_api.core.errors import FatalPipelineError
from trivia_api.core.timestamps import utcnow
from trivia_api.models.clue import Clue
from trivia_api.models.trivia import TriviaQuestion
from trivia_api.services.generation_client import TriviaDraft
from trivia_api.services.progress import BatchProgress, ProgressStore
from trivia_api.stores.questions import ClueRange, QuestionStore, SqlQuestionStore

logger = logging.getLogger(__name__)


class TriviaGenerator(Protocol):
    model: str

    async def generate(self, clue: Clue) -> TriviaDraft: ...


class ClueOutcome(str, enum.Enum):
    CREATED = "created"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ClueResult:
    clue_id: int
    outcome: ClueOutcome
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.outcome is not ClueOutcome.FAILED


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Tunables of a batch run. Delays are in seconds."""

    batch_size: int = 1000
    concurrency: int = 5
    request_delay: float = 0.01
    batch_delay: float = 0.01
    max_retries: int = 3
    retry_delay: float = 5.0

    @classmethod
    def from_settings(cls) -> PipelineConfig:
        return cls(
            batch_size=settings.BATCH_SIZE,
            concurrency=settings.BATCH_CONCURRENCY,
            request_delay=settings.REQUEST_DELAY_SECONDS,
            batch_delay=settings.BATCH_DELAY_SECONDS,
            max_retries=settings.MAX_RETRIES,
            retry_delay=settings.RETRY_DELAY_SECONDS,
        )


@dataclass(slots=True)
class RunSummary:
    """Totals of one run. progress holds the cumulative (checkpointed) counts."""

    progress: BatchProgress
    total_clues: int = 0
    pages: int = 0
    created: int = 0
    skipped: int = 0
    failed: int = 0
    failed_clue_ids: list[int] = field(default_factory=list)
    fatal_error: FatalPipelineError | None = None

    @property
    def ok(self) -> bool:
        return self.fatal_error is None


class ScopedQuestionStore:
    """
    QuestionStore that opens a fresh session per operation.

    The pipeline runs several clues concurrently and an AsyncSession must
    not be shared between tasks.
    """

    def __init__(
        self, session_factory: Callable[[], AbstractAsyncContextManager]
    ) -> None:
        self.session_factory = session_factory

    async def count_clues(self, scan: ClueRange) -> int:
        async with self.session_factory() as session:
            return await SqlQuestionStore(session).count_clues(scan)

    async def page_clues(self, scan: ClueRange, after: int | None, limit: int) -> list[Clue]:
        async with self.session_factory() as session:
            return await SqlQuestionStore(session).page_clues(scan, after, limit)

    async def find_trivia_by_clue(self, clue_id: int) -> TriviaQuestion | None:
        async with self.session_factory() as session:
            return await SqlQuestionStore(session).find_trivia_by_clue(clue_id)

    async def create_trivia(self, clue: Clue, draft: TriviaDraft, model: str) -> TriviaQuestion:
        async with self.session_factory() as session:
            return await SqlQuestionStore(session).create_trivia(clue, draft, model)


class BatchPipeline:
    """Drives the generation client over the clue corpus."""

    def __init__(
        self,
        store: QuestionStore,
        generator: TriviaGenerator,
        progress_store: ProgressStore,
        config: PipelineConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.generator = generator
        self.progress_store = progress_store
        self.config = config or PipelineConfig.from_settings()
        self.sleep = sleep

    # ── Run ─────────────────────────────────────────────────
    async def run(
        self,
        start_id: int | None = None,
        end_id: int | None = None,
        *,
        resume: bool = False,
        force: bool = False,
    ) -> RunSummary:
        """
        Process every clue in [start_id, end_id] (both optional, inclusive).

        With resume=True the saved checkpoint's cursor and totals are
        loaded and only clues with id > lastProcessedId are scanned.

        Never raises for processing errors; check RunSummary.fatal_error.
        """
        progress = BatchProgress()
        summary = RunSummary(progress=progress)

        try:
            if resume:
                saved = self.progress_store.load()
                if saved is not None:
                    progress = summary.progress = saved
                    logger.info(
                        "Resuming from clue ID %d, already processed %d clues",
                        progress.last_processed_id,
                        progress.processed_count,
                    )
                else:
                    logger.info("No checkpoint found at %s, starting fresh", self.progress_store.path)

            cursor = progress.last_processed_id if progress.last_processed_id > 0 else None
            scan = ClueRange(start_id=start_id, end_id=end_id, after_id=cursor)

            summary.total_clues = await self.store.count_clues(scan)
            logger.info("Starting batch processing for %d clues", summary.total_clues)

            await self._run_pages(scan, cursor, summary, skip_existing=not force)
        except Exception as exc:
            logger.exception("Fatal error in batch processing")
            summary.fatal_error = FatalPipelineError(f"{type(exc).__name__}: {exc}")
            return summary

        logger.info(
            "Batch processing complete. Processed %d clues with %d errors.",
            progress.processed_count,
            progress.error_count,
        )
        return summary

    async def _run_pages(
        self,
        scan: ClueRange,
        cursor: int | None,
        summary: RunSummary,
        *,
        skip_existing: bool,
    ) -> None:
        progress = summary.progress
        page_num = 1

        while True:
            logger.info("Processing batch %d (clues > ID %s)", page_num, cursor if cursor is not None else "start")
            clues = await self.store.page_clues(scan, cursor, self.config.batch_size)
            if not clues:
                logger.info("No more clues to process")
                return

            logger.info("Found %d clues in batch %d", len(clues), page_num)
            results = await self.process_page(clues, skip_existing=skip_existing)

            successes = sum(1 for r in results if r.success)
            skipped = sum(1 for r in results if r.outcome is ClueOutcome.SKIPPED)
            failures = [r for r in results if not r.success]

            summary.pages += 1
            summary.created += successes - skipped
            summary.skipped += skipped
            summary.failed += len(failures)
            summary.failed_clue_ids.extend(r.clue_id for r in failures)

            # ── Checkpoint ──────────────────────────────────
            cursor = clues[-1].id
            progress.last_processed_id = cursor
            progress.processed_count += successes
            progress.error_count += len(failures)
            progress.last_updated = utcnow()
            self.progress_store.save(progress)

            logger.info(
                "Batch %d completed: %d successful (%d skipped), %d failed",
                page_num,
                successes,
                skipped,
                len(failures),
            )
            logger.info(
                "Progress: %d/%d clues processed (%d errors)",
                progress.processed_count,
                summary.total_clues,
                progress.error_count,
            )

            if len(clues) < self.config.batch_size:
                return

            logger.info("Waiting %.2f seconds before next batch...", self.config.batch_delay)
            await self.sleep(self.config.batch_delay)
            page_num += 1

    # ── Page ────────────────────────────────────────────────
    async def process_page(
        self, clues: list[Clue], *, skip_existing: bool = True
    ) -> list[ClueResult]:
        """
        Process one page with bounded concurrency. Results are returned in
        the page's order once every clue has finished.
        """
        semaphore = asyncio.Semaphore(self.config.concurrency)

        async def worker(clue: Clue) -> ClueResult:
            try:
                return await self.process_clue(clue, skip_existing=skip_existing)
            finally:
                semaphore.release()

        tasks: list[asyncio.Task[ClueResult]] = []
        async with asyncio.TaskGroup() as group:
            for clue in clues:
                await semaphore.acquire()
                tasks.append(group.create_task(worker(clue)))
                await self.sleep(self.config.request_delay)

        return [task.result() for task in tasks]

    # ── Clue ────────────────────────────────────────────────
    async def process_clue(self, clue: Clue, *, skip_existing: bool = True) -> ClueResult:
        """Skip-check, generate and persist one clue, retrying on any failure."""
        attempts = self.config.max_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                return await self._process_once(clue, skip_existing=skip_existing)
            except Exception as exc:
                remaining = attempts - attempt
                if remaining > 0:
                    logger.info(
                        "Retrying clue ID %d, %d attempts remaining (%s)",
                        clue.id,
                        remaining,
                        exc,
                    )
                    await self.sleep(self.config.retry_delay)
                    continue

                logger.error(
                    "Failed to process clue ID %d after %d attempts",
                    clue.id,
                    attempts,
                    exc_info=exc,
                )
                return ClueResult(clue.id, ClueOutcome.FAILED, error=str(exc) or type(exc).__name__)

        raise AssertionError("unreachable")  # pragma: no cover

    async def _process_once(self, clue: Clue, *, skip_existing: bool) -> ClueResult:
        if skip_existing and await self.store.find_trivia_by_clue(clue.id) is not None:
            logger.info("Skipping clue ID %d - already has trivia question", clue.id)
            return ClueResult(clue.id, ClueOutcome.SKIPPED)

        draft = await self.generator.generate(clue)
        await self.store.create_trivia(clue, draft, self.generator.model)

        logger.info("Successfully processed clue ID %d", clue.id)
        return ClueResult(clue.id, ClueOutcome.CREATED)
