import logging
from pathlib import Path
from typing import Optional, Tuple

from . import config
from .comparison import ComparisonResult, compare_runs, run_statuses
from .database.db import DBManager
from .database.ops import DBOperations
from .exceptions import ConfigurationError
from .models import BatchResult, ValidationRun
from .processing.batch import BatchDriver, ProgressCallback
from .project_spec import ProjectSpec
from .scanning.filesystem import DiskScanner
from .tools.exiftool import ExifToolAdapter
from .tools.jhove import JhoveAdapter
from .validation.orchestrator import Validator


class QCApp:
    """
    Wires scanning, the batch driver and the result store together for one
    project spec. Tool adapters are built once here and shared.
    """

    def __init__(self,
                 db_path: Path,
                 spec: Optional[ProjectSpec],
                 exiftool: Optional[ExifToolAdapter] = None,
                 jhove: Optional[JhoveAdapter] = None):
        self.db_manager = DBManager(db_path)
        self.spec = spec
        self.exiftool = exiftool or ExifToolAdapter()
        self.jhove = jhove or JhoveAdapter()

    def validate_directory(self,
                           root: Path,
                           checkpoint_path: Optional[Path] = None,
                           chunk_size: int = config.DEFAULT_CHUNK_SIZE,
                           on_progress: Optional[ProgressCallback] = None) -> Tuple[ValidationRun, BatchResult]:
        """
        Executes a full validation run.
        1. Scan (sorted file list)
        2. Start run
        3. Batch extract + validate
        4. Complete run with totals
        """
        files = self._scan(root)

        with self.db_manager as conn:
            db_ops = DBOperations(conn)
            run = db_ops.start_run(self.spec.fingerprint)
            driver = self._driver(db_ops, chunk_size, on_progress, checkpoint_path)
            result = driver.process(files, run.id)
            self._complete_run(db_ops, run.id, len(files))
            return db_ops.fetch_run(run.id) or run, result

    def resume(self,
               root: Path,
               checkpoint_path: Path,
               run_id: Optional[int] = None,
               chunk_size: int = config.DEFAULT_CHUNK_SIZE,
               on_progress: Optional[ProgressCallback] = None) -> Tuple[ValidationRun, BatchResult]:
        """
        Continues an interrupted run. The directory is rescanned; scan order
        is deterministic, so the checkpoint index still lines up.
        """
        files = self._scan(root)
        if not files:
            raise ConfigurationError(f"No files to resume under {root}")

        with self.db_manager as conn:
            db_ops = DBOperations(conn)
            run = db_ops.fetch_run(run_id) if run_id is not None else db_ops.latest_open_run()
            if run is None:
                raise ConfigurationError("No validation run to resume")
            if run.config_hash != self.spec.fingerprint:
                logging.warning(f"Project spec changed since run {run.id} started")

            driver = self._driver(db_ops, chunk_size, on_progress, checkpoint_path)
            result = driver.resume(files, run.id, checkpoint_path)
            self._complete_run(db_ops, run.id, len(files))
            return db_ops.fetch_run(run.id) or run, result

    def compare(self, run_a: int, run_b: int) -> ComparisonResult:
        with self.db_manager as conn:
            return compare_runs(DBOperations(conn), run_a, run_b)

    def _scan(self, root: Path):
        if not root.exists():
            raise ConfigurationError(f"Source path {root} does not exist.")
        scan = DiskScanner().scan(root, self.spec.format.allowed_extensions or None)
        for rec in scan.mismatched:
            logging.warning(f"Extension not allowed by spec, skipping: {rec.key}")
        return scan.matched

    def _driver(self, db_ops: DBOperations, chunk_size: int,
                on_progress: Optional[ProgressCallback], checkpoint_path: Optional[Path]) -> BatchDriver:
        validator = Validator(db_ops, self.spec, self.exiftool, self.jhove)
        return BatchDriver(validator, chunk_size=chunk_size, on_progress=on_progress,
                           checkpoint_path=checkpoint_path)

    def _complete_run(self, db_ops: DBOperations, run_id: int, total: int):
        # Files that never produced result rows (extraction/persistence failures) count as failed
        statuses = run_statuses(db_ops, run_id)
        passed = sum(1 for s in statuses.values() if s.status != 'fail')
        db_ops.complete_run(run_id, total=total, passed=passed, failed=max(total - passed, 0))
