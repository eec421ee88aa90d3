import logging
import re
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any

from lxml import etree

from .. import config
from ..exceptions import ImageQCError, MalformedOutputError
from .correlate import correlate, normalize_tool_path
from .process import run_process

_VERSION_PATTERNS = [
    re.compile(r'JHOVE\s+(\d+\.\d+(?:\.\d+)?)', re.IGNORECASE),
    re.compile(r'Rel\.\s+(\d+\.\d+(?:\.\d+)?)', re.IGNORECASE),
]


@dataclass
class FormatMessage:
    message: str
    offset: Optional[int] = None


@dataclass
class FormatValidationResult:
    filepath: str
    status: str                     # valid/not-valid/not-well-formed/error
    valid: bool = False
    well_formed: bool = False
    format: Optional[str] = None
    version: Optional[str] = None
    errors: List[FormatMessage] = field(default_factory=list)
    warnings: List[FormatMessage] = field(default_factory=list)
    error_message: Optional[str] = None     # set when the tool itself failed


def classify_status(status_text: str) -> str:
    """
    Maps jhove's free-form status to valid/not-valid/not-well-formed.
    Anything unrecognised is treated as not well-formed.
    """
    status = (status_text or '').strip().lower()
    if status == 'well-formed and valid':
        return 'valid'
    if 'not well-formed' in status or 'not well formed' in status:
        return 'not-well-formed'
    if 'well-formed' in status:
        return 'not-valid'
    return 'not-well-formed'


class JhoveAdapter:
    """
    Runs a JHOVE-style format validator over batches of files.

    jhove -h xml -m TIFF-hul file1 file2 ...
    """

    def __init__(self,
                 jhove_path: str = config.JHOVE_BINARY,
                 timeout: float = config.JHOVE_TIMEOUT_SEC,
                 module: str = config.JHOVE_MODULE,
                 batch_size: int = config.JHOVE_BATCH_SIZE):
        self.jhove_path = jhove_path
        self.timeout = timeout
        self.module = module
        self.batch_size = max(1, batch_size)

    def version(self) -> str:
        # Running without arguments prints the banner; there is no portable --version
        proc = run_process(self.jhove_path, [], min(self.timeout, 5.0))
        output = proc.stdout_text or proc.stderr_text
        for pattern in _VERSION_PATTERNS:
            match = pattern.search(output)
            if match:
                return match.group(1)
        return "Unknown"

    def is_installed(self) -> bool:
        try:
            proc = run_process(self.jhove_path, [], min(self.timeout, 5.0))
        except ImageQCError:
            return False
        return bool(proc.stdout or proc.stderr)

    def validate(self, path: str) -> FormatValidationResult:
        """Single-file validation; same code path as a batch of one."""
        return self.validate_batch([path])[path]

    def validate_batch(self, paths: List[str]) -> Dict[str, FormatValidationResult]:
        results: Dict[str, FormatValidationResult] = {}

        for i in range(0, len(paths), self.batch_size):
            chunk = paths[i:i + self.batch_size]
            try:
                results.update(self._process_batch(chunk))
            except Exception as e:
                # A failed invocation fails the whole sub-batch, never part of it
                logging.error(f"JHOVE batch of {len(chunk)} files failed: {e}")
                for path in chunk:
                    results[path] = FormatValidationResult(
                        filepath=path,
                        status='error',
                        error_message=str(e) or 'Batch processing failed',
                    )

        return results

    def _process_batch(self, paths: List[str]) -> Dict[str, FormatValidationResult]:
        args = ['-h', 'xml', '-m', self.module, *paths]
        proc = run_process(self.jhove_path, args, self.timeout)
        if proc.exit_code != 0 and proc.stderr:
            logging.debug(f"JHOVE exited {proc.exit_code}: {proc.stderr_text.strip()[:200]}")
        return self.parse_xml(proc.stdout_text, paths)

    def parse_xml(self, output: str, requested: List[str]) -> Dict[str, FormatValidationResult]:
        """
        Parses a jhove XML report into one result per requested path.

        JVM tools sometimes print log lines around the XML on stdout, so the
        document is cut from the first <jhove to the last </jhove>.
        """
        start = output.find('<jhove')
        end = output.rfind('</jhove>')
        if start < 0:
            raise MalformedOutputError("No <jhove> element found in output", output[:config.RAW_OUTPUT_PREVIEW_CHARS])
        document = output[start:end + len('</jhove>')] if end > start else output[start:]

        parser = etree.XMLParser(resolve_entities=False, no_network=True)
        try:
            root = etree.fromstring(document.encode('utf-8'), parser)
        except etree.XMLSyntaxError as e:
            raise MalformedOutputError(f"JHOVE XML syntax error: {e}", output[:config.RAW_OUTPUT_PREVIEW_CHARS]) from e

        rep_infos = [el for el in root.iter() if isinstance(el.tag, str) and etree.QName(el).localname == 'repInfo']
        if not rep_infos:
            raise MalformedOutputError("Invalid JHOVE XML structure: missing repInfo", output[:config.RAW_OUTPUT_PREVIEW_CHARS])

        by_uri: Dict[str, Any] = {}
        for info in rep_infos:
            uri = info.get('uri')
            if uri:
                by_uri.setdefault(uri, info)

        matches = correlate(requested, by_uri.keys(), normalize=normalize_tool_path)

        results: Dict[str, FormatValidationResult] = {}
        for path in requested:
            match = matches.get(path)
            if match is None:
                logging.warning(f"JHOVE output did not include {path}")
                results[path] = FormatValidationResult(
                    filepath=path,
                    status='error',
                    error_message='File missing from JHOVE output',
                )
                continue
            results[path] = self._rep_info_to_result(path, by_uri[match.key])

        return results

    def _rep_info_to_result(self, filepath: str, info) -> FormatValidationResult:
        status = classify_status(_child_text(info, 'status'))

        errors: List[FormatMessage] = []
        warnings: List[FormatMessage] = []
        for msg in info.iter():
            if not isinstance(msg.tag, str) or etree.QName(msg).localname != 'message':
                continue
            text = (msg.text or '').strip()
            severity = (msg.get('severity') or 'info').lower()
            if severity == 'error':
                offset = msg.get('offset')
                errors.append(FormatMessage(text, int(offset) if offset and offset.isdigit() else None))
            elif severity == 'warning':
                warnings.append(FormatMessage(text))
            # info and other severities are dropped

        return FormatValidationResult(
            filepath=filepath,
            status=status,
            valid=status == 'valid',
            well_formed=status in ('valid', 'not-valid'),
            format=_child_text(info, 'format'),
            version=_child_text(info, 'version'),
            errors=errors,
            warnings=warnings,
        )


def _child_text(element, name: str) -> Optional[str]:
    for child in element:
        if isinstance(child.tag, str) and etree.QName(child).localname == name:
            return (child.text or '').strip()
    return None
