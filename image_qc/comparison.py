"""
Run-to-run comparison: which images got fixed, which regressed.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List

from .database.ops import DBOperations
from .exceptions import ConfigurationError
from .models import ValidationRun


@dataclass
class ImageComparison:
    image_id: int
    filepath: str
    filename: str
    status_a: str           # pass/warning/fail/missing
    status_b: str
    failures_a: List[str] = field(default_factory=list)
    failures_b: List[str] = field(default_factory=list)


@dataclass
class ComparisonResult:
    run_a: ValidationRun
    run_b: ValidationRun
    fixed: List[ImageComparison] = field(default_factory=list)
    new_failures: List[ImageComparison] = field(default_factory=list)
    still_failing: List[ImageComparison] = field(default_factory=list)
    unchanged: List[ImageComparison] = field(default_factory=list)

    @property
    def net_change(self) -> int:
        return len(self.fixed) - len(self.new_failures)

    def summary(self) -> Dict[str, int]:
        return {
            'fixed': len(self.fixed),
            'new_failures': len(self.new_failures),
            'still_failing': len(self.still_failing),
            'unchanged': len(self.unchanged),
            'net_change': self.net_change,
        }


@dataclass
class _ImageStatus:
    status: str = 'pass'
    failures: List[str] = field(default_factory=list)


def run_statuses(db_ops: DBOperations, run_id: int) -> Dict[int, _ImageStatus]:
    """
    Collapses a run's check rows into one status per image:
    any fail -> fail, else any warning -> warning, else pass.
    """
    statuses: Dict[int, _ImageStatus] = {}
    for row in db_ops.fetch_results(run_id):
        entry = statuses.setdefault(row['image_id'], _ImageStatus())
        if row['status'] == 'fail':
            entry.status = 'fail'
        elif row['status'] == 'warning' and entry.status != 'fail':
            entry.status = 'warning'

        if row['status'] in ('fail', 'warning') and row['message']:
            entry.failures.append(row['message'])
    return statuses


def compare_runs(db_ops: DBOperations, run_a_id: int, run_b_id: int) -> ComparisonResult:
    """
    Classifies every image with results in either run.

    fixed:          fail in A, present and not failing in B
    new failure:    present and not failing in A, fail in B
    still failing:  fail in both
    unchanged:      everything else, including images present in one run only
    """
    run_a = db_ops.fetch_run(run_a_id)
    run_b = db_ops.fetch_run(run_b_id)
    if run_a is None or run_b is None:
        missing = run_a_id if run_a is None else run_b_id
        raise ConfigurationError(f"Validation run {missing} not found")

    statuses_a = run_statuses(db_ops, run_a_id)
    statuses_b = run_statuses(db_ops, run_b_id)

    result = ComparisonResult(run_a=run_a, run_b=run_b)

    for image_id in sorted(set(statuses_a) | set(statuses_b)):
        info = db_ops.fetch_image(image_id)
        if info is None:
            continue

        res_a = statuses_a.get(image_id)
        res_b = statuses_b.get(image_id)
        comp = ImageComparison(
            image_id=image_id,
            filepath=info['filepath'],
            filename=info['filename'],
            status_a=res_a.status if res_a else 'missing',
            status_b=res_b.status if res_b else 'missing',
            failures_a=list(res_a.failures) if res_a else [],
            failures_b=list(res_b.failures) if res_b else [],
        )

        fail_a = comp.status_a == 'fail'
        fail_b = comp.status_b == 'fail'

        if fail_a and not fail_b and comp.status_b != 'missing':
            result.fixed.append(comp)
        elif not fail_a and fail_b and comp.status_a != 'missing':
            result.new_failures.append(comp)
        elif fail_a and fail_b:
            result.still_failing.append(comp)
        else:
            result.unchanged.append(comp)

    logging.info(
        f"Compared run {run_a_id} -> {run_b_id}: {len(result.fixed)} fixed, "
        f"{len(result.new_failures)} new failures, net {result.net_change:+d}"
    )
    return result
