from typing import List, Optional

from ..models import CheckResult, Failure, MetadataBag
from ..project_spec import DimensionSpec


def check_dimensions(meta: MetadataBag, spec: Optional[DimensionSpec]) -> CheckResult:
    """
    Checks long/short edge limits.

    Too small is critical (upscaling is not a fix); too large is fixable.
    """
    if spec is None:
        return CheckResult(kind='dimension', passed=True)

    width, height = meta.width, meta.height
    if width is None or height is None:
        return CheckResult(
            kind='dimension',
            passed=False,
            failures=[Failure(
                subject='missing_dimensions',
                reason='missing_dimensions',
                severity='critical',
                expected='width and height',
                actual='missing',
            )],
        )

    long_edge = max(width, height)
    short_edge = min(width, height)
    failures: List[Failure] = []

    if spec.min_long_edge and long_edge < spec.min_long_edge:
        failures.append(Failure('min_long_edge', 'min_long_edge', 'critical', spec.min_long_edge, long_edge))

    if spec.max_long_edge and long_edge > spec.max_long_edge:
        failures.append(Failure('max_long_edge', 'max_long_edge', 'fixable', spec.max_long_edge, long_edge))

    if spec.min_short_edge and short_edge < spec.min_short_edge:
        failures.append(Failure('min_short_edge', 'min_short_edge', 'critical', spec.min_short_edge, short_edge))

    if spec.max_short_edge and short_edge > spec.max_short_edge:
        failures.append(Failure('max_short_edge', 'max_short_edge', 'fixable', spec.max_short_edge, short_edge))

    # exact_dimensions is intentionally not evaluated: it has no defined target.

    return CheckResult(
        kind='dimension',
        passed=not failures,
        failures=failures,
        details={'width': width, 'height': height, 'long_edge': long_edge, 'short_edge': short_edge},
    )
