import logging
import re
from pathlib import Path
from typing import List, Optional

from .. import config
from ..models import CheckResult, Failure
from ..project_spec import NamingSpec

_UNSAFE = re.compile(config.UNSAFE_FILENAME_CHARS)


def check_filename(path: Path, spec: Optional[NamingSpec]) -> CheckResult:
    """Checks naming conventions against the project's naming rules."""
    filename = path.name
    ext = path.suffix

    if spec is None:
        return CheckResult(kind='naming', passed=True, details={'filename': filename})

    failures: List[Failure] = []

    if spec.pattern:
        try:
            if not re.search(spec.pattern, filename):
                failures.append(Failure('pattern', f"Filename doesn't match pattern: {spec.pattern}", 'warning'))
        except re.error as e:
            logging.warning(f"Invalid naming pattern {spec.pattern!r}: {e}")

    # Spaces are only rejected when explicitly disallowed
    if spec.allow_spaces is False and ' ' in filename:
        failures.append(Failure('spaces', 'Filename contains spaces', 'fixable'))

    if spec.required_prefix and not filename.startswith(spec.required_prefix):
        failures.append(Failure('prefix', f"Missing required prefix: {spec.required_prefix}", 'fixable'))

    if _UNSAFE.search(filename):
        failures.append(Failure('special_chars', 'Filename contains unsafe characters', 'fixable'))

    if ext and ext != ext.lower():
        failures.append(Failure('extension_case', 'Extension should be lowercase', 'warning'))

    return CheckResult(
        kind='naming',
        passed=not failures,
        failures=failures,
        details={'filename': filename},
    )
