import json
import logging
import uuid

import pytest

from conftest import T0
from trivia_api.services.progress import BatchProgress, ProgressStore, configure_batch_logging


def test_load_without_checkpoint_returns_none(tmp_path):
    assert ProgressStore(tmp_path / "progress.json").load() is None


def test_save_writes_camel_case_checkpoint(tmp_path):
    path = tmp_path / "progress.json"
    ProgressStore(path).save(
        BatchProgress(last_processed_id=1002, processed_count=3, error_count=1, last_updated=T0)
    )

    assert json.loads(path.read_text()) == {
        "lastProcessedId": 1002,
        "processedCount": 3,
        "errorCount": 1,
        "lastUpdated": "2026-10-19T12:00:00.000Z",
    }
    assert [p.name for p in tmp_path.iterdir()] == ["progress.json"]


def test_load_reads_saved_checkpoint(tmp_path):
    store = ProgressStore(tmp_path / "progress.json")
    store.save(BatchProgress(last_processed_id=7, processed_count=6, error_count=1, last_updated=T0))

    loaded = store.load()

    assert loaded == BatchProgress(last_processed_id=7, processed_count=6, error_count=1, last_updated=T0)


def test_from_json_defaults_missing_counters():
    progress = BatchProgress.from_json({"lastProcessedId": 12, "lastUpdated": "garbage"})

    assert progress.last_processed_id == 12
    assert progress.processed_count == 0
    assert progress.error_count == 0


# ── Log files ───────────────────────────────────────────────
@pytest.fixture
def batch_logger():
    log = logging.getLogger(f"test.batch.{uuid.uuid4().hex}")
    log.propagate = False
    yield log
    for handler in list(log.handlers):
        handler.close()
        log.removeHandler(handler)


def close_handlers(log):
    for handler in list(log.handlers):
        handler.close()
        log.removeHandler(handler)


def test_fresh_run_truncates_and_writes_headers(tmp_path, batch_logger):
    log_file = tmp_path / "run.txt"
    error_file = tmp_path / "errors.txt"
    log_file.write_text("old run\n")

    configure_batch_logging(batch_logger, log_file, error_file, fresh=True)
    batch_logger.info("Processing batch 1")
    batch_logger.error("Failed to process clue ID 5 after 4 attempts")
    close_handlers(batch_logger)

    run_log = log_file.read_text()
    error_log = error_file.read_text()
    assert "old run" not in run_log
    assert run_log.startswith("Starting new batch processing at ")
    assert "INFO Processing batch 1" in run_log
    assert "ERROR Failed to process clue ID 5" in run_log
    assert error_log.startswith("Error log for batch processing starting at ")
    assert "Processing batch 1" not in error_log
    assert "Failed to process clue ID 5" in error_log


def test_resumed_run_appends(tmp_path, batch_logger):
    log_file = tmp_path / "run.txt"
    error_file = tmp_path / "errors.txt"
    log_file.write_text("earlier line\n")

    configure_batch_logging(batch_logger, log_file, error_file, fresh=False)
    batch_logger.info("Resuming from clue ID 1002")
    close_handlers(batch_logger)

    run_log = log_file.read_text()
    assert run_log.startswith("earlier line\n")
    assert "Resuming from clue ID 1002" in run_log
    assert "Starting new batch processing" not in run_log
