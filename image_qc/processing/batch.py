import logging
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

from .. import config
from ..exceptions import ConfigurationError
from ..models import BatchError, BatchResult, FileRecord, MetadataBag
from ..tools.jhove import FormatValidationResult
from ..validation.orchestrator import Validator
from .progress import ProgressState, ProgressTracker, load_checkpoint, resume_index

ProgressCallback = Callable[[ProgressState], None]


class BatchDriver:
    """
    Runs a file list through extraction and validation, chunk by chunk.

    Execution is sequential: one chunk at a time, one file at a time within
    a chunk, in the order supplied. Nothing below the batch level is fatal;
    a failing file or a crashing chunk becomes recorded failures and the
    batch moves on.
    """

    def __init__(self,
                 validator: Validator,
                 chunk_size: int = config.DEFAULT_CHUNK_SIZE,
                 on_progress: Optional[ProgressCallback] = None,
                 checkpoint_path: Optional[Path] = None,
                 operation: str = 'spec-validation'):
        if chunk_size < 1:
            raise ConfigurationError(f"chunk_size must be at least 1, got {chunk_size}")
        self.validator = validator
        self.chunk_size = chunk_size
        self.on_progress = on_progress
        self.checkpoint_path = checkpoint_path
        self.operation = operation
        self.tracker: Optional[ProgressTracker] = None

    def process(self, files: List[FileRecord], run_id: int, resume_from: int = 0) -> BatchResult:
        """
        Validates `files[resume_from:]` against run `run_id`.

        Returns counts of processed/failed/skipped files plus per-file errors.
        On KeyboardInterrupt the checkpoint is flushed before re-raising, so
        a later resume does not redo committed files.
        """
        start_index = max(0, min(resume_from, len(files)))
        to_process = files[start_index:]

        result = BatchResult(skipped=start_index)
        self.tracker = ProgressTracker(self.checkpoint_path, self.operation)
        self.tracker.start(len(to_process), offset=start_index)
        self._emit()

        if start_index:
            logging.info(f"Skipping {start_index} already processed files")
        logging.info(f"Validating {len(to_process)} files in chunks of {self.chunk_size}...")

        started = time.monotonic()
        try:
            for i in range(0, len(to_process), self.chunk_size):
                chunk = to_process[i:i + self.chunk_size]
                done: Set[str] = set()
                try:
                    self._process_chunk(chunk, run_id, result, done)
                except Exception as e:
                    # e.g. the extraction subprocess crashed
                    logging.error(f"Chunk starting at {chunk[0].key} failed: {e}")
                    for rec in chunk:
                        if rec.key not in done:
                            self._record_failure(result, rec, f"Chunk execution failed: {e}")
                            done.add(rec.key)
        except KeyboardInterrupt:
            logging.warning("Interrupted; saving checkpoint.")
            self.tracker.save_checkpoint()
            raise

        result.duration = time.monotonic() - started
        self.tracker.complete()
        self._emit()

        logging.info(
            f"Batch complete: {result.processed} processed, {result.failed} failed, "
            f"{result.skipped} skipped in {result.duration:.1f}s"
        )
        return result

    def resume(self, files: List[FileRecord], run_id: int, checkpoint_path: Path) -> BatchResult:
        """Continues a batch from the position recorded in a checkpoint."""
        if not files:
            raise ConfigurationError("Resume requires the file list of the interrupted batch")

        data = load_checkpoint(checkpoint_path)
        skip = resume_index(data)
        logging.info(f"Resuming from {checkpoint_path} at index {skip} of {len(files)}")

        if self.checkpoint_path is None:
            self.checkpoint_path = checkpoint_path
        return self.process(files, run_id, resume_from=skip)

    def _process_chunk(self, chunk: List[FileRecord], run_id: int, result: BatchResult, done: Set[str]):
        exif_results = self.validator.exiftool.extract_batch([rec.key for rec in chunk])

        format_results: Dict[str, FormatValidationResult] = {}
        tiffs = [rec.key for rec in chunk if self.validator.needs_format_validation(rec)]
        if tiffs:
            format_results = self.validator.jhove.validate_batch(tiffs)

        for rec in chunk:
            exif = exif_results.get(rec.key)
            if exif is None or not exif.success or exif.data is None:
                error = exif.error if exif is not None and exif.error else 'Unknown EXIF extraction error'
                self._record_failure(result, rec, error)
                done.add(rec.key)
                continue

            try:
                verdict = self.validator.validate_file(
                    rec,
                    run_id,
                    metadata=MetadataBag.from_exiftool(exif.data),
                    format_result=format_results.get(rec.key),
                )
            except Exception as e:
                logging.error(f"Failed to validate {rec.key}: {e}")
                self._record_failure(result, rec, str(e) or e.__class__.__name__)
            else:
                result.processed += 1
                if verdict.passed:
                    result.passed += 1
                self.tracker.record_success(rec.key)
                self._emit()
            done.add(rec.key)

    def _record_failure(self, result: BatchResult, rec: FileRecord, error: str):
        result.failed += 1
        result.errors.append(BatchError(filepath=rec.key, error=error))
        self.tracker.record_failure(rec.key, error)
        self._emit()

    def _emit(self):
        if self.on_progress is not None and self.tracker is not None:
            self.on_progress(self.tracker.snapshot())
