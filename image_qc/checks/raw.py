import logging
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from ..models import CheckResult, MetadataBag, SubCheck


def _file_readable(path: Path, meta: Optional[MetadataBag]) -> bool:
    try:
        return path.stat().st_size > 0
    except OSError:
        return False


def _has_exif(path: Path, meta: Optional[MetadataBag]) -> bool:
    return meta is not None and bool(meta.tags)


def _has_dimensions(path: Path, meta: Optional[MetadataBag]) -> bool:
    return meta is not None and bool(meta.width) and bool(meta.height)


def _camera_metadata(path: Path, meta: Optional[MetadataBag]) -> bool:
    return meta is not None and bool(meta.make or meta.model)


# (name, probe, failure message); severities live in config.RAW_CHECK_SEVERITY
RAW_CHECKS: List[Tuple[str, Callable[[Path, Optional[MetadataBag]], bool], str]] = [
    ('file_readable', _file_readable, 'File cannot be read or is empty'),
    ('has_exif', _has_exif, 'No EXIF data found'),
    ('has_dimensions', _has_dimensions, 'Missing image dimensions'),
    ('camera_metadata', _camera_metadata, 'Missing camera Make/Model metadata'),
]


def check_raw_container(path: Path, meta: Optional[MetadataBag]) -> CheckResult:
    """
    Sanity checks for camera RAW containers.

    There is no RAW equivalent of jhove, so this relies on what exiftool
    could read out of the container.
    """
    if meta is not None and meta.file_type:
        fmt = meta.file_type
    else:
        fmt = path.suffix.lstrip('.').upper() or 'UNKNOWN'

    sub_checks: List[SubCheck] = []
    for name, probe, message in RAW_CHECKS:
        try:
            passed = bool(probe(path, meta))
        except Exception as e:
            logging.debug(f"RAW check {name} raised for {path}: {e}")
            passed = False
        sub_checks.append(SubCheck(name=name, passed=passed, message=None if passed else message))

    return CheckResult(
        kind='raw_validity',
        passed=all(c.passed for c in sub_checks),
        sub_checks=sub_checks,
        details={'format': fmt},
    )
