import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Iterable, List, Optional, Set, Dict

from .. import config
from ..models import FileRecord


@dataclass
class ScanResult:
    matched: List[FileRecord] = field(default_factory=list)
    mismatched: List[FileRecord] = field(default_factory=list)   # image, but extension not allowed
    skipped: List[Path] = field(default_factory=list)            # not an image or unreadable

    def by_type(self) -> Dict[str, int]:
        counts = {t: 0 for t in sorted(set(config.EXT_TO_TYPE.values()))}
        for rec in self.matched:
            counts[rec.file_type] = counts.get(rec.file_type, 0) + 1
        return counts


class DiskScanner:
    def scan(self, root: Path, allowed_extensions: Optional[Iterable[str]] = None) -> ScanResult:
        """
        Collects every image under root.

        Images whose extension is not in `allowed_extensions` are reported as
        mismatched. Matched files are sorted by filename so that batch
        order (and therefore resume offsets) is deterministic.
        """
        allowed: Optional[Set[str]] = None
        if allowed_extensions is not None:
            allowed = {e.lower() if e.startswith('.') else f".{e.lower()}" for e in allowed_extensions}

        result = ScanResult()
        for path in self._iter_files(root):
            record = self._process_single_file(path)
            if record is None:
                result.skipped.append(path)
            elif allowed is not None and record.extension not in allowed:
                result.mismatched.append(record)
            else:
                result.matched.append(record)

        result.matched.sort(key=lambda r: (r.filename, r.key))
        logging.info(
            f"Scan of {root}: {len(result.matched)} matched, "
            f"{len(result.mismatched)} mismatched, {len(result.skipped)} skipped"
        )
        return result

    def _process_single_file(self, path: Path) -> Optional[FileRecord]:
        """Classifies one file; None for non-images and unreadable files."""
        # AppleDouble resource forks share the image's extension
        if path.name.startswith("._"):
            return None

        ftype = config.EXT_TO_TYPE.get(path.suffix.lower())
        if ftype is None:
            return None

        try:
            size_bytes = path.stat().st_size
        except OSError as e:
            logging.error(f"Failed to stat {path}: {e}")
            return None

        return FileRecord.from_path(path, ftype, size_bytes)

    def _iter_files(self, root: Path) -> Iterator[Path]:
        """Depth-first walker using os.scandir for speed."""
        stack = [root]
        while stack:
            current = stack.pop()

            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except OSError:
                logging.warning(f"Permission denied: {current}")
                continue

            # Sort for stable traversal order
            entries.sort(key=lambda e: e.name.lower())

            dirs = []
            files = []
            for e in entries:
                if e.is_dir(follow_symlinks=False):
                    dirs.append(Path(e.path))
                elif e.is_file(follow_symlinks=False):
                    files.append(Path(e.path))

            # Push dirs to stack (reversed so we process A before Z)
            for d in reversed(dirs):
                stack.append(d)

            for f in files:
                yield f
