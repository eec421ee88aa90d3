import json
import logging
import os
import tempfile
from dataclasses import dataclass
from typing import Optional, List, Dict, Any

from .. import config
from ..exceptions import ImageQCError, ToolNotFoundError
from .correlate import correlate
from .process import run_process


@dataclass
class ExifToolResult:
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    raw_output: Optional[str] = None
    ambiguous: bool = False


class ExifToolAdapter:
    """
    Wraps the 'exiftool' command line utility.

    Batches are passed through an argument file (-@) so that long path lists
    never hit the OS command-line limit. Output is JSON with group-prefixed
    tag names (-G1) and raw numeric values (-n).
    """

    def __init__(self,
                 exiftool_path: str = config.EXIFTOOL_BINARY,
                 timeout: float = config.EXIFTOOL_TIMEOUT_SEC,
                 tags: Optional[List[str]] = None):
        self.exiftool_path = exiftool_path
        self.timeout = timeout
        self.tags = [t.strip() for t in (tags or []) if t.strip()]

    def build_args(self) -> List[str]:
        args = list(config.EXIFTOOL_BASE_ARGS)
        for tag in self.tags:
            args.append(tag if tag.startswith('-') else f"-{tag}")
        return args

    def version(self) -> str:
        result = run_process(self.exiftool_path, ['-ver'], self.timeout)
        return result.stdout_text.strip()

    def is_installed(self) -> bool:
        try:
            self.version()
            return True
        except ImageQCError:
            return False

    def extract(self, path: str) -> ExifToolResult:
        """Single-file extraction; same code path as a batch of one."""
        return self.extract_batch([path])[path]

    def extract_batch(self, paths: List[str]) -> Dict[str, ExifToolResult]:
        """
        Extracts metadata for every path in one exiftool invocation.

        Always returns an entry for every requested path. Tool-level failures
        (missing binary, timeout, unparsable JSON) fail the whole batch
        uniformly; a file the tool did not report fails on its own.
        """
        if not paths:
            return {}

        fd, arg_file = tempfile.mkstemp(prefix="exiftool_args_", suffix=".txt")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write('\n'.join(paths))

            try:
                proc = run_process(self.exiftool_path, [*self.build_args(), '-@', arg_file], self.timeout)
            except ToolNotFoundError:
                logging.error(f"ExifTool not found at '{self.exiftool_path}'")
                return self._fail_all(paths, "ExifTool not installed")
            except ImageQCError as e:
                logging.error(f"ExifTool batch of {len(paths)} files failed: {e}")
                return self._fail_all(paths, str(e))

            stdout = proc.stdout_text
            stderr = proc.stderr_text

            try:
                records = json.loads(stdout) if stdout.strip() else []
                if not isinstance(records, list):
                    raise ValueError("top-level JSON value is not an array")
            except ValueError as e:
                logging.warning(f"Failed to parse ExifTool JSON output for {len(paths)} files: {e}")
                raw = stderr or stdout[:config.RAW_OUTPUT_PREVIEW_CHARS]
                return self._fail_all(paths, "Failed to parse ExifTool JSON output", raw)

            by_source: Dict[str, Dict[str, Any]] = {}
            for item in records:
                if isinstance(item, dict) and item.get('SourceFile'):
                    by_source.setdefault(str(item['SourceFile']), item)

            matches = correlate(paths, by_source.keys())

            results: Dict[str, ExifToolResult] = {}
            for path in paths:
                match = matches.get(path)
                if match is not None:
                    results[path] = ExifToolResult(
                        success=True,
                        data=by_source[match.key],
                        raw_output=stderr if proc.exit_code != 0 else None,
                        ambiguous=match.ambiguous,
                    )
                else:
                    error = stderr.strip() if proc.exit_code != 0 and stderr.strip() else "No data returned for this file"
                    logging.warning(f"ExifTool returned no data for {path}")
                    results[path] = ExifToolResult(success=False, error=error, raw_output=stderr or None)
            return results

        finally:
            try:
                os.unlink(arg_file)
            except OSError as e:
                logging.debug(f"Could not remove exiftool argument file {arg_file}: {e}")

    def _fail_all(self, paths: List[str], error: str, raw_output: Optional[str] = None) -> Dict[str, ExifToolResult]:
        return {p: ExifToolResult(success=False, error=error, raw_output=raw_output) for p in paths}
