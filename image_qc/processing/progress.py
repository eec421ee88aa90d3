"""
Progress state for long-running batches, persisted as a JSON checkpoint.

The checkpoint is rewritten atomically (temp file + os.replace) so that a
crash never leaves a half-written file behind; it is read back to resume.
"""
import json
import logging
import os
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, UTC
from pathlib import Path
from typing import Optional, List, Dict, Any

from tqdm import tqdm

from .. import config
from ..exceptions import ConfigurationError


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True)
class ProgressError:
    file: str
    error: str
    timestamp: str


@dataclass
class ProgressState:
    operation: str
    phase: str = 'init'             # init/processing/completed
    total: int = 0
    completed: int = 0
    failed: int = 0
    current_file: Optional[str] = None
    started_at: str = field(default_factory=_now_iso)
    updated_at: str = field(default_factory=_now_iso)
    estimated_completion: Optional[str] = None
    errors: List[ProgressError] = field(default_factory=list)
    last_processed_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Checkpoint JSON form."""
        data: Dict[str, Any] = {
            'operation': self.operation,
            'phase': self.phase,
            'total': self.total,
            'completed': self.completed,
            'failed': self.failed,
            'currentFile': self.current_file,
            'startedAt': self.started_at,
            'updatedAt': self.updated_at,
            'estimatedCompletion': self.estimated_completion,
            'errors': [{'file': e.file, 'error': e.error, 'timestamp': e.timestamp} for e in self.errors],
        }
        if self.last_processed_index is not None:
            data['lastProcessedIndex'] = self.last_processed_index
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProgressState":
        return cls(
            operation=data.get('operation', ''),
            phase=data.get('phase', 'init'),
            total=int(data.get('total') or 0),
            completed=int(data.get('completed') or 0),
            failed=int(data.get('failed') or 0),
            current_file=data.get('currentFile'),
            started_at=data.get('startedAt') or _now_iso(),
            updated_at=data.get('updatedAt') or _now_iso(),
            estimated_completion=data.get('estimatedCompletion'),
            errors=[ProgressError(e.get('file', ''), e.get('error', ''), e.get('timestamp', ''))
                    for e in data.get('errors') or []],
            last_processed_index=data.get('lastProcessedIndex'),
        )


def write_json_atomic(path: Path, payload: Dict[str, Any]):
    tmp_path = path.with_name(f"{path.name}.tmp.{os.getpid()}")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass


def load_checkpoint(path: Path) -> Dict[str, Any]:
    """
    Reads a checkpoint for an explicit resume. A missing or unreadable
    checkpoint is a configuration error at that point.
    """
    if not path.exists():
        raise ConfigurationError(f"Progress file not found at {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Progress file {path} is unreadable: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Progress file {path} does not contain a JSON object")
    return data


def resume_index(data: Dict[str, Any]) -> int:
    """Files to skip: lastProcessedIndex if recorded, else completed + failed."""
    last = data.get('lastProcessedIndex')
    if isinstance(last, (int, float)) and not isinstance(last, bool):
        return max(0, int(last))
    try:
        return max(0, int(data.get('completed') or 0) + int(data.get('failed') or 0))
    except (TypeError, ValueError):
        return 0


class ProgressTracker:
    """
    Mutable progress for one batch with ETA projection.

    Failures are checkpointed immediately; successes at most once per
    `throttle` seconds. Without a checkpoint path nothing is written.
    """

    def __init__(self,
                 checkpoint_path: Optional[Path],
                 operation: str,
                 throttle: float = config.CHECKPOINT_THROTTLE_SEC):
        self.checkpoint_path = checkpoint_path
        self.throttle = throttle
        self.state = ProgressState(operation=operation)
        self._started = time.monotonic()
        self._last_write = 0.0

    def start(self, total: int, offset: int = 0, phase: str = 'processing'):
        self._started = time.monotonic()
        now = _now_iso()
        self.state.total = total
        self.state.phase = phase
        self.state.completed = 0
        self.state.failed = 0
        self.state.started_at = now
        self.state.updated_at = now
        self.state.estimated_completion = None
        self.state.last_processed_index = offset
        self.save_checkpoint()

    def record_success(self, file: str):
        self.state.completed += 1
        self._advance(file)
        self._throttled_write()

    def record_failure(self, file: str, error: str):
        self.state.failed += 1
        self.state.errors.append(ProgressError(file=file, error=error, timestamp=_now_iso()))
        self._advance(file)
        self.save_checkpoint()

    def complete(self):
        self.state.phase = 'completed'
        self.state.current_file = None
        self.state.updated_at = _now_iso()
        self.state.estimated_completion = None
        self.save_checkpoint()

    def _advance(self, file: str):
        self.state.current_file = file
        self.state.updated_at = _now_iso()
        if self.state.last_processed_index is not None:
            self.state.last_processed_index += 1
        else:
            self.state.last_processed_index = self.state.completed + self.state.failed

        done = self.state.completed + self.state.failed
        elapsed = max(time.monotonic() - self._started, 1e-6)
        rate = done / elapsed
        remaining = max(self.state.total - done, 0)
        if rate > 0 and remaining > 0:
            eta = datetime.now(UTC) + timedelta(seconds=remaining / rate)
            self.state.estimated_completion = eta.isoformat()
        else:
            self.state.estimated_completion = None

    def snapshot(self) -> ProgressState:
        """Copy of the current state, safe to hand to observers."""
        return replace(self.state, errors=list(self.state.errors))

    def percentage(self) -> float:
        if self.state.total <= 0:
            return 0.0
        return (self.state.completed + self.state.failed) / self.state.total * 100

    def eta(self) -> Optional[datetime]:
        if not self.state.estimated_completion:
            return None
        return datetime.fromisoformat(self.state.estimated_completion)

    def save_checkpoint(self):
        if self.checkpoint_path is None:
            return
        try:
            write_json_atomic(self.checkpoint_path, self.state.to_dict())
            self._last_write = time.monotonic()
        except OSError as e:
            logging.warning(f"Failed to write checkpoint {self.checkpoint_path}: {e}")

    def _throttled_write(self):
        if time.monotonic() - self._last_write > self.throttle:
            self.save_checkpoint()


class TqdmProgressObserver:
    """Renders progress snapshots as a tqdm bar."""

    def __init__(self, desc: str = "Validating"):
        self.desc = desc
        self._bar = None

    def __call__(self, state: ProgressState):
        if self._bar is None:
            self._bar = tqdm(total=state.total, desc=self.desc, unit="file")

        self._bar.n = state.completed + state.failed
        self._bar.set_postfix(failed=state.failed, refresh=False)
        self._bar.refresh()

        if state.phase == 'completed':
            self.close()

    def close(self):
        if self._bar is not None:
            self._bar.close()
            self._bar = None
