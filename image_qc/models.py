from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional, List, Dict, Any, Union

from . import config


@dataclass(frozen=True)
class FileRecord:
    """
    Represents an image found during a scan. Identity is the path.
    """
    path: Path
    filename: str
    extension: str          # lowercase, with leading dot
    file_type: str          # TIFF/RAW/JPEG/PNG
    size_bytes: int

    @classmethod
    def from_path(cls, path: Path, file_type: str, size_bytes: int) -> "FileRecord":
        return cls(
            path=path,
            filename=path.name,
            extension=path.suffix.lower(),
            file_type=file_type,
            size_bytes=size_bytes,
        )

    @property
    def key(self) -> str:
        """The path string handed to external tools and used for correlation."""
        return str(self.path)


def _ungrouped(tag: str) -> str:
    return tag.split(':', 1)[1] if ':' in tag else tag


@dataclass
class MetadataBag:
    """
    Extracted metadata for one file.

    Well-known fields are resolved once from the tool's group-prefixed tags;
    everything the tool reported stays available in `tags`.
    """
    width: Optional[int] = None
    height: Optional[int] = None
    bits_per_sample: Optional[Union[int, List[int]]] = None
    color_space: Optional[Union[int, str]] = None
    icc_profile: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    datetime_original: Optional[str] = None
    file_type: Optional[str] = None
    tags: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exiftool(cls, record: Dict[str, Any]) -> "MetadataBag":
        tags = {k: v for k, v in record.items() if k != 'SourceFile'}
        bag = cls(tags=tags)
        bag.width = _as_int(bag.lookup('ImageWidth'))
        bag.height = _as_int(bag.lookup('ImageHeight'))
        bag.bits_per_sample = _as_depth(bag.lookup('BitsPerSample'))
        bag.color_space = bag.lookup('ColorSpace')
        bag.icc_profile = _as_str(bag.lookup('ICCProfileName') or bag.lookup('ProfileDescription'))
        bag.make = _as_str(bag.lookup('Make'))
        bag.model = _as_str(bag.lookup('Model'))
        bag.datetime_original = _as_str(bag.lookup('DateTimeOriginal'))
        bag.file_type = _as_str(bag.lookup('FileType'))
        return bag

    def lookup(self, tag: str) -> Any:
        """
        Finds a tag by exact key first, then by its name without group prefix.
        Grouped matches are tried in config.TAG_GROUP_PRIORITY order.
        """
        if tag in self.tags:
            return self.tags[tag]

        name = _ungrouped(tag)
        candidates = {k.split(':', 1)[0]: v for k, v in self.tags.items() if ':' in k and _ungrouped(k) == name}
        for group in config.TAG_GROUP_PRIORITY:
            if group in candidates:
                return candidates[group]
        if candidates:
            return next(iter(candidates.values()))
        return self.tags.get(name)


def _as_int(value: Any) -> Optional[int]:
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_str(value: Any) -> Optional[str]:
    if value is None or value == '':
        return None
    return str(value)


def _as_depth(value: Any) -> Optional[Union[int, List[int]]]:
    # exiftool -n reports multi-channel depth as "8 8 8"
    if value is None or value == '':
        return None
    if isinstance(value, list):
        return [int(v) for v in value]
    if isinstance(value, str):
        parts = value.split()
        try:
            return [int(p) for p in parts] if len(parts) > 1 else int(parts[0])
        except ValueError:
            return None
    return _as_int(value)


@dataclass
class Failure:
    """A single failed assertion inside a check."""
    subject: str            # check/tag/rule name
    reason: str
    severity: str           # warning/fixable/critical
    expected: Optional[Any] = None
    actual: Optional[Any] = None

    @property
    def message(self) -> str:
        if self.expected is not None and self.actual is not None:
            return f"{self.subject}: Exp {self.expected}, Act {self.actual}"
        if self.reason and self.reason != self.subject:
            return f"{self.subject}: {self.reason}"
        return f"{self.subject}: failed"


@dataclass
class SubCheck:
    """Named pass/fail probe (raw-container checks)."""
    name: str
    passed: bool
    message: Optional[str] = None


@dataclass
class CheckResult:
    """
    Outcome of one check kind for one file.

    Depending on the kind, the outcome is carried by `failures`,
    hard `errors`, named `sub_checks`, or `warnings`.
    """
    kind: str               # dimension/color/exif/naming/jhove/raw_validity
    passed: bool
    failures: List[Failure] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[Dict[str, Any]] = field(default_factory=list)
    sub_checks: List[SubCheck] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CheckOutcome:
    """The persisted verdict of one check (one validation_results row)."""
    check_type: str
    status: str             # pass/fail/warning
    severity: Optional[str]
    message: Optional[str]
    details: Dict[str, Any]


@dataclass
class FileValidation:
    """Per-file verdict returned by the Validator."""
    record: FileRecord
    image_id: int
    passed: bool
    checks: Dict[str, CheckResult] = field(default_factory=dict)
    outcomes: List[CheckOutcome] = field(default_factory=list)
    critical: int = 0
    fixable: int = 0
    warnings: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return len(self.outcomes)


@dataclass
class ValidationRun:
    id: int
    version: int
    config_hash: str
    started_at: str
    completed_at: Optional[str] = None
    total_images: Optional[int] = None
    passed: Optional[int] = None
    failed: Optional[int] = None


@dataclass
class BatchError:
    filepath: str
    error: str


@dataclass
class BatchResult:
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    passed: int = 0         # files whose overall verdict was pass
    errors: List[BatchError] = field(default_factory=list)
    duration: float = 0.0   # seconds
