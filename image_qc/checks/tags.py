from typing import Any, List

from ..models import CheckResult, Failure, MetadataBag
from ..project_spec import RequiredTag


def value_matches(actual: Any, expected: str, allow_variations: bool = False) -> bool:
    """
    Exact comparison after trimming; with allow_variations, a case-insensitive
    containment test so that "Sony" accepts "SONY CORPORATION".
    """
    actual_str = str(actual).strip()
    expected_str = expected.strip()

    if allow_variations:
        return expected_str.lower() in actual_str.lower()

    return actual_str == expected_str


def check_required_tags(meta: MetadataBag, required: List[RequiredTag]) -> CheckResult:
    if not required:
        return CheckResult(kind='exif', passed=True)

    failures: List[Failure] = []
    checked = []

    for req in required:
        value = meta.lookup(req.tag)
        present = value is not None and value != ''

        if not present:
            failures.append(Failure(req.tag, 'missing', 'fixable'))
            checked.append({'tag': req.tag, 'present': False, 'matches': False,
                            'expected_value': req.expected_value})
            continue

        matches = True
        if req.expected_value:
            matches = value_matches(value, req.expected_value, req.allow_variations)
            if not matches:
                failures.append(Failure(req.tag, 'wrong_value', 'fixable', req.expected_value, str(value)))

        checked.append({'tag': req.tag, 'present': True, 'value': str(value), 'matches': matches,
                        'expected_value': req.expected_value})

    return CheckResult(
        kind='exif',
        passed=not failures,
        failures=failures,
        details={'checked_tags': checked},
    )
