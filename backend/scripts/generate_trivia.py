"""
Batch trivia generation job.

Usage:
    python -m scripts.generate_trivia [start_id] [end_id] [--resume] [--force]

Walks the clue corpus in ascending id order and stores one generated
multiple-choice question per clue. Progress is checkpointed after every
page to PROGRESS_FILE; the run log and error log go to LOG_FILE and
ERROR_FILE.

Exit status is 0 when the run completes (individual clue failures are
counted, not fatal) and 1 when it stops on a fatal error.
"""

import argparse
import asyncio
import logging
import sys

# Ensure the project root is on the path
sys.path.insert(0, ".")

from trivia_api.core.config import settings
from trivia_api.core.database import async_session_factory, engine
from trivia_api.services.generation_client import GenerationClient
from trivia_api.services.pipeline import BatchPipeline, PipelineConfig, ScopedQuestionStore
from trivia_api.services.progress import ProgressStore, configure_batch_logging

logger = logging.getLogger("trivia_api.scripts.generate_trivia")

EXAMPLES = """\
examples:
  python -m scripts.generate_trivia                   # process all clues
  python -m scripts.generate_trivia 1000 2000         # clues with IDs 1000-2000
  python -m scripts.generate_trivia --resume          # resume from the last processed ID
  python -m scripts.generate_trivia 1000 --force      # from ID 1000, even clues that already have questions
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m scripts.generate_trivia",
        description="Generate multiple-choice trivia questions from the clue corpus.",
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("start_id", nargs="?", type=int, help="first clue ID to process (inclusive)")
    parser.add_argument("end_id", nargs="?", type=int, help="last clue ID to process (inclusive)")
    parser.add_argument(
        "--resume",
        action="store_true",
        help="resume from the last processed clue ID in the progress file",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="process all clues, even if they already have trivia questions",
    )
    return parser


async def run(args: argparse.Namespace) -> int:
    configure_batch_logging(
        logging.getLogger("trivia_api"),
        settings.LOG_FILE,
        settings.ERROR_FILE,
        fresh=not args.resume,
    )
    logger.info(
        "Run options: start_id=%s end_id=%s resume=%s force=%s model=%s",
        args.start_id,
        args.end_id,
        args.resume,
        args.force,
        settings.GENERATION_MODEL,
    )

    try:
        async with GenerationClient() as generator:
            pipeline = BatchPipeline(
                store=ScopedQuestionStore(async_session_factory),
                generator=generator,
                progress_store=ProgressStore(settings.PROGRESS_FILE),
                config=PipelineConfig.from_settings(),
            )
            summary = await pipeline.run(
                args.start_id,
                args.end_id,
                resume=args.resume,
                force=args.force,
            )
    finally:
        await engine.dispose()

    if not summary.ok:
        logger.error("Batch run stopped: %s", summary.fatal_error)
        return 1

    logger.info(
        "Run finished: %d pages, %d created, %d skipped, %d failed",
        summary.pages,
        summary.created,
        summary.skipped,
        summary.failed,
    )
    if summary.failed_clue_ids:
        logger.info("Failed clue IDs: %s", ", ".join(map(str, summary.failed_clue_ids)))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
