import logging
from typing import Optional, Dict, List, Tuple

from .. import config
from ..checks import (
    check_dimensions,
    check_color,
    check_required_tags,
    check_filename,
    check_raw_container,
)
from ..database.ops import DBOperations
from ..exceptions import MetadataExtractionError
from ..models import CheckOutcome, CheckResult, FileRecord, FileValidation, MetadataBag
from ..project_spec import ProjectSpec
from ..tools.exiftool import ExifToolAdapter
from ..tools.jhove import FormatValidationResult, JhoveAdapter


def max_severity(a: Optional[str], b: Optional[str]) -> Optional[str]:
    if not a:
        return b
    if not b:
        return a
    return b if config.SEVERITY_RANK[b] > config.SEVERITY_RANK[a] else a


def _join_messages(items: List[Dict]) -> str:
    return '; '.join(str(item.get('message') or 'warning') for item in items)


def summarize(result: CheckResult) -> Tuple[Optional[str], Optional[str]]:
    """
    Reduces a check to one (severity, message) pair.

    Precedence: explicit failures, then hard errors, then named sub-checks,
    then warnings. No severity means the check passed.
    """
    if result.failures:
        severity = None
        for failure in result.failures:
            severity = max_severity(severity, failure.severity)
        return severity, '; '.join(f.message for f in result.failures)

    if result.errors:
        return 'critical', _join_messages(result.errors)

    failed_checks = [c for c in result.sub_checks if not c.passed]
    if failed_checks:
        severity = None
        for check in failed_checks:
            severity = max_severity(severity, config.RAW_CHECK_SEVERITY.get(check.name, 'critical'))
        return severity, '; '.join(f"{c.name}: {c.message or 'failed'}" for c in failed_checks)

    if result.warnings:
        return 'warning', _join_messages(result.warnings)

    return None, None


def format_result_to_check(result: FormatValidationResult) -> CheckResult:
    errors = [{'message': e.message, 'offset': e.offset} for e in result.errors]
    if result.error_message and not errors:
        # The tool itself failed for this file
        errors.append({'message': result.error_message, 'offset': None})
    return CheckResult(
        kind='jhove',
        passed=result.valid,
        errors=errors,
        warnings=[{'message': w.message} for w in result.warnings],
        details={
            'status': result.status,
            'well_formed': result.well_formed,
            'format': result.format,
            'version': result.version,
        },
    )


class Validator:
    """
    Applies the project spec to one file and records one result row per
    check that applies to it.

    Tool adapters are injected so the batch driver can share them (and tests
    can replace them).
    """

    def __init__(self,
                 db_ops: DBOperations,
                 spec: ProjectSpec,
                 exiftool: Optional[ExifToolAdapter] = None,
                 jhove: Optional[JhoveAdapter] = None):
        self.db = db_ops
        self.spec = spec
        self.exiftool = exiftool or ExifToolAdapter()
        self.jhove = jhove or JhoveAdapter()

    @property
    def runs_jhove(self) -> bool:
        return bool(self.spec.validation.run_jhove)

    def needs_format_validation(self, record: FileRecord) -> bool:
        return self.runs_jhove and record.file_type == 'TIFF'

    def resolve_metadata(self, record: FileRecord, metadata: Optional[MetadataBag]) -> MetadataBag:
        if metadata is not None:
            return metadata

        result = self.exiftool.extract(record.key)
        if not result.success or result.data is None:
            raise MetadataExtractionError(result.error or 'Unknown EXIF extraction error')
        return MetadataBag.from_exiftool(result.data)

    def run_checks(self,
                   record: FileRecord,
                   meta: MetadataBag,
                   format_result: Optional[FormatValidationResult] = None) -> Dict[str, CheckResult]:
        """Runs only the checks the spec asks for and the file type supports."""
        spec = self.spec
        checks: Dict[str, CheckResult] = {}

        if spec.dimensions is not None:
            checks['dimension'] = check_dimensions(meta, spec.dimensions)

        if spec.color is not None:
            checks['color'] = check_color(meta, spec.color)

        if spec.required_exif:
            checks['exif'] = check_required_tags(meta, spec.required_exif)

        if spec.naming is not None:
            checks['naming'] = check_filename(record.path, spec.naming)

        if self.needs_format_validation(record):
            if format_result is None:
                format_result = self._validate_format(record)
            checks['jhove'] = format_result_to_check(format_result)

        if spec.validation.check_raw_validity and record.file_type == 'RAW':
            checks['raw_validity'] = check_raw_container(record.path, meta)

        return checks

    def _validate_format(self, record: FileRecord) -> FormatValidationResult:
        try:
            return self.jhove.validate(record.key)
        except Exception as e:
            logging.warning(f"Format validation failed for {record.key}: {e}")
            return FormatValidationResult(filepath=record.key, status='error', error_message=str(e))

    def classify(self, check_type: str, result: CheckResult) -> CheckOutcome:
        severity, message = summarize(result)
        status = 'pass'

        if severity:
            if severity == 'warning' and not self.spec.validation.treat_warnings_as_critical:
                status = 'warning'
            else:
                status = 'fail'
                if severity == 'warning':
                    severity = 'critical'
        elif not result.passed:
            severity = 'critical'
            status = 'fail'
            message = message or 'Validation failed without additional details'

        return CheckOutcome(
            check_type=check_type,
            status=status,
            severity=severity,
            message=None if status == 'pass' else (message or status),
            details=result.to_dict(),
        )

    def validate_file(self,
                      record: FileRecord,
                      run_id: int,
                      metadata: Optional[MetadataBag] = None,
                      format_result: Optional[FormatValidationResult] = None) -> FileValidation:
        """
        Validates one file and persists the outcome.

        The image row, its tags and its result rows for this run are written
        in one transaction; earlier rows for the same (image, run) are replaced.
        Raises MetadataExtractionError or PersistenceError; the batch driver
        records either as a failure for this file.
        """
        meta = self.resolve_metadata(record, metadata)
        checks = self.run_checks(record, meta, format_result)
        outcomes = [self.classify(check_type, result) for check_type, result in checks.items()]

        with self.db.transaction():
            image_id = self.db.insert_or_update_file(record)
            self.db.replace_tags(image_id, meta.tags)
            self.db.delete_check_results(image_id, run_id)
            for outcome in outcomes:
                self.db.insert_check_result(image_id, run_id, outcome)

        verdict = FileValidation(record=record, image_id=image_id, passed=True, checks=checks, outcomes=outcomes)
        for outcome in outcomes:
            if outcome.status == 'fail':
                verdict.passed = False
                verdict.failed += 1
            if outcome.severity == 'critical':
                verdict.critical += 1
            elif outcome.severity == 'fixable':
                verdict.fixable += 1
            elif outcome.severity == 'warning':
                verdict.warnings += 1

        if not verdict.passed:
            logging.debug(f"{record.filename}: {verdict.failed} check(s) failed")
        return verdict
