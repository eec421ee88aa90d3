import json

import pytest

from image_qc.exceptions import ConfigurationError
from image_qc.processing.progress import (
    ProgressState,
    ProgressTracker,
    TqdmProgressObserver,
    load_checkpoint,
    resume_index,
    write_json_atomic,
)

def test_write_json_atomic_leaves_no_temp_files(tmp_path):
    target = tmp_path / "progress.json"
    write_json_atomic(target, {'a': 1})
    write_json_atomic(target, {'a': 2})

    assert json.loads(target.read_text(encoding='utf-8')) == {'a': 2}
    assert [p.name for p in tmp_path.iterdir()] == ["progress.json"]

def test_load_checkpoint_errors(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_checkpoint(tmp_path / "missing.json")

    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding='utf-8')
    with pytest.raises(ConfigurationError, match="unreadable"):
        load_checkpoint(bad)

    listed = tmp_path / "list.json"
    listed.write_text("[1, 2]", encoding='utf-8')
    with pytest.raises(ConfigurationError):
        load_checkpoint(listed)

def test_resume_index_prefers_last_processed_index():
    assert resume_index({'lastProcessedIndex': 7, 'completed': 1, 'failed': 1}) == 7
    assert resume_index({'completed': 3, 'failed': 2}) == 5
    assert resume_index({'completed': 'x'}) == 0
    assert resume_index({}) == 0

def test_state_round_trip_uses_camel_case():
    state = ProgressState(operation='spec-validation', total=10, completed=4, current_file='/a.tif',
                          last_processed_index=4)
    data = state.to_dict()

    assert {'currentFile', 'startedAt', 'updatedAt', 'estimatedCompletion', 'lastProcessedIndex'} <= set(data)
    assert ProgressState.from_dict(data) == state

def test_failures_are_written_immediately_successes_throttled(tmp_path):
    checkpoint = tmp_path / "progress.json"
    tracker = ProgressTracker(checkpoint, 'spec-validation', throttle=3600)
    tracker.start(total=3)

    tracker.record_success('/a.tif')
    assert json.loads(checkpoint.read_text())['completed'] == 0

    tracker.record_failure('/b.tif', 'boom')
    saved = json.loads(checkpoint.read_text())
    assert saved['completed'] == 1
    assert saved['failed'] == 1
    assert saved['errors'][0]['file'] == '/b.tif'
    assert saved['lastProcessedIndex'] == 2

def test_tracker_eta_and_percentage():
    tracker = ProgressTracker(None, 'spec-validation')
    tracker.start(total=4, offset=10)
    tracker.record_success('/a.tif')

    assert tracker.percentage() == 25.0
    assert tracker.eta() is not None
    assert tracker.state.last_processed_index == 11

    tracker.record_success('/b.tif')
    tracker.record_success('/c.tif')
    tracker.record_success('/d.tif')
    assert tracker.eta() is None

    tracker.complete()
    assert tracker.state.phase == 'completed'

def test_tqdm_observer_follows_snapshots():
    tracker = ProgressTracker(None, 'spec-validation')
    observer = TqdmProgressObserver(desc="test")
    tracker.start(total=2)
    observer(tracker.snapshot())

    tracker.record_success('/a.tif')
    tracker.record_failure('/b.tif', 'boom')
    observer(tracker.snapshot())
    assert observer._bar.n == 2

    tracker.complete()
    observer(tracker.snapshot())
    assert observer._bar is None
