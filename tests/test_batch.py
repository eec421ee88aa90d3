import json

import pytest

from image_qc.exceptions import ConfigurationError
from image_qc.processing.batch import BatchDriver
from image_qc.project_spec import ProjectSpec
from image_qc.validation.orchestrator import Validator

from helpers import FakeExifTool, FakeJhove, make_record

SPEC = {
    'format': {'file_type': 'TIFF'},
    'dimensions': {'min_long_edge': 3000},
    'validation': {'run_jhove': True},
}

@pytest.fixture
def files():
    return [make_record(f'/in/img_{i}.tif', 'TIFF') for i in range(5)]

def _driver(db_ops, exiftool=None, **kwargs):
    validator = Validator(db_ops, ProjectSpec.from_dict(SPEC), exiftool=exiftool or FakeExifTool(), jhove=FakeJhove())
    return BatchDriver(validator, **kwargs)

def _outcomes(db_ops, run_id):
    return sorted((r['image_id'], r['check_type'], r['status'], r['severity']) for r in db_ops.fetch_results(run_id))

def test_results_do_not_depend_on_chunk_size(db_ops, files):
    small = db_ops.start_run('h')
    large = db_ops.start_run('h')
    exif = FakeExifTool(data={'/in/img_2.tif': {'File:ImageWidth': 100, 'File:ImageHeight': 100}})

    res_small = _driver(db_ops, exif, chunk_size=2).process(files, small.id)
    res_large = _driver(db_ops, exif, chunk_size=100).process(files, large.id)

    assert _outcomes(db_ops, small.id) == _outcomes(db_ops, large.id)
    assert (res_small.processed, res_small.passed) == (5, 4)
    assert (res_large.processed, res_large.passed) == (5, 4)

def test_chunks_drive_one_extraction_call_each(db_ops, files):
    exif = FakeExifTool()
    driver = _driver(db_ops, exif, chunk_size=2)

    driver.process(files, db_ops.start_run('h').id)

    assert [len(c) for c in exif.calls] == [2, 2, 1]
    assert [len(c) for c in driver.validator.jhove.calls] == [2, 2, 1]

def test_extraction_failure_is_recorded_per_file(db_ops, files):
    exif = FakeExifTool(failures={'/in/img_1.tif': 'No data returned for this file'})

    result = _driver(db_ops, exif).process(files, db_ops.start_run('h').id)

    assert result.processed == 4
    assert result.failed == 1
    assert result.errors[0].filepath == '/in/img_1.tif'
    assert result.errors[0].error == 'No data returned for this file'

def test_chunk_crash_fails_only_that_chunk(db_ops, files):
    exif = FakeExifTool(crash_on='/in/img_2.tif')

    result = _driver(db_ops, exif, chunk_size=2).process(files, db_ops.start_run('h').id)

    assert result.processed == 3
    assert result.failed == 2
    assert [e.filepath for e in result.errors] == ['/in/img_2.tif', '/in/img_3.tif']
    assert all(e.error == 'Chunk execution failed: exiftool crashed' for e in result.errors)

def test_resume_from_skips_prefix(db_ops, files):
    exif = FakeExifTool()

    result = _driver(db_ops, exif).process(files, db_ops.start_run('h').id, resume_from=2)

    assert result.skipped == 2
    assert result.processed == 3
    assert exif.calls == [['/in/img_2.tif', '/in/img_3.tif', '/in/img_4.tif']]

def test_progress_callbacks(db_ops, files):
    snapshots = []
    _driver(db_ops, chunk_size=2, on_progress=snapshots.append).process(files, db_ops.start_run('h').id)

    assert snapshots[0].phase == 'processing'
    assert snapshots[0].completed == 0
    assert snapshots[-1].phase == 'completed'
    assert snapshots[-1].completed == 5
    done = [s.completed + s.failed for s in snapshots]
    assert done == sorted(done)

def test_checkpoint_written_and_resumed(db_ops, files, tmp_path):
    checkpoint = tmp_path / "progress.json"
    checkpoint.write_text(json.dumps({'operation': 'spec-validation', 'completed': 1, 'failed': 0,
                                      'lastProcessedIndex': 2}), encoding='utf-8')
    exif = FakeExifTool()

    result = _driver(db_ops, exif).resume(files, db_ops.start_run('h').id, checkpoint)

    assert result.skipped == 2
    assert exif.calls[0][0] == '/in/img_2.tif'

    saved = json.loads(checkpoint.read_text(encoding='utf-8'))
    assert saved['phase'] == 'completed'
    assert saved['lastProcessedIndex'] == 5
    assert saved['completed'] == 3

def test_interrupt_saves_checkpoint_and_reraises(db_ops, files, tmp_path):
    checkpoint = tmp_path / "progress.json"
    exif = FakeExifTool(interrupt_on='/in/img_2.tif')
    driver = _driver(db_ops, exif, chunk_size=2, checkpoint_path=checkpoint)

    with pytest.raises(KeyboardInterrupt):
        driver.process(files, db_ops.start_run('h').id)

    saved = json.loads(checkpoint.read_text(encoding='utf-8'))
    assert saved['phase'] == 'processing'
    assert saved['lastProcessedIndex'] == 2

def test_invalid_configuration(db_ops, files, tmp_path):
    with pytest.raises(ConfigurationError):
        _driver(db_ops, chunk_size=0)

    driver = _driver(db_ops)
    with pytest.raises(ConfigurationError):
        driver.resume([], 1, tmp_path / "progress.json")
    with pytest.raises(ConfigurationError):
        driver.resume(files, 1, tmp_path / "missing.json")
