"""Builders and in-process tool fakes shared across test modules."""
from pathlib import Path

from image_qc.models import FileRecord
from image_qc.tools.exiftool import ExifToolResult
from image_qc.tools.jhove import FormatValidationResult

def make_record(path, file_type='JPEG', size=1000) -> FileRecord:
    return FileRecord.from_path(Path(path), file_type, size)

class FakeExifTool:
    """
    In-process stand-in for ExifToolAdapter.

    Every file reports a 4000x3000 image unless overridden in `data`;
    paths in `failures` fail extraction; `crash_on` raises for any chunk
    containing that path.
    """
    def __init__(self, data=None, failures=None, crash_on=None, interrupt_on=None):
        self.data = data or {}
        self.failures = failures or {}
        self.crash_on = crash_on
        self.interrupt_on = interrupt_on
        self.calls = []

    def extract(self, path):
        return self.extract_batch([path])[path]

    def extract_batch(self, paths):
        self.calls.append(list(paths))
        if self.interrupt_on in paths:
            raise KeyboardInterrupt()
        if self.crash_on in paths:
            raise RuntimeError("exiftool crashed")

        results = {}
        for p in paths:
            if p in self.failures:
                results[p] = ExifToolResult(success=False, error=self.failures[p])
            else:
                record = {'SourceFile': p, 'File:ImageWidth': 4000, 'File:ImageHeight': 3000}
                record.update(self.data.get(p, {}))
                results[p] = ExifToolResult(success=True, data=record)
        return results

class FakeJhove:
    def __init__(self, status='valid'):
        self.status = status
        self.calls = []

    def validate(self, path):
        return self.validate_batch([path])[path]

    def validate_batch(self, paths):
        self.calls.append(list(paths))
        return {
            p: FormatValidationResult(
                filepath=p,
                status=self.status,
                valid=self.status == 'valid',
                well_formed=self.status in ('valid', 'not-valid'),
            )
            for p in paths
        }
