"""
Matching tool output records back to the paths we asked about.

Both exiftool and jhove may rewrite paths (absolute paths, file:// URIs,
URL-encoding, backslashes). Correlation tries an exact match, then a suffix
match in either direction.
"""
import logging
import re
from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterable, List, Optional
from urllib.parse import unquote, urlparse

_WIN_DRIVE_PREFIX = re.compile(r'^/[A-Za-z]:/')


@dataclass(frozen=True)
class Correlation:
    key: str            # reported path as it appeared in tool output
    method: str         # exact/suffix
    ambiguous: bool = False


def normalize_tool_path(value: str) -> str:
    """
    Brings a tool-reported path (or one of our inputs) into a comparable form.

    file:///C:/a%20b/x.tif -> C:/a b/x.tif
    C:\\a\\x.tif          -> C:/a/x.tif
    """
    if not value:
        return value

    normalized = value.strip()

    if normalized.lower().startswith('file:'):
        parsed = urlparse(normalized)
        if parsed.path:
            normalized = parsed.path
            if parsed.netloc and parsed.netloc.lower() != 'localhost':
                normalized = f"//{parsed.netloc}{normalized}"
        else:
            normalized = re.sub(r'^file:/*', '', normalized, flags=re.IGNORECASE)

    normalized = unquote(normalized)
    normalized = normalized.replace('\\', '/')

    if _WIN_DRIVE_PREFIX.match(normalized):
        normalized = normalized[1:]

    return normalized


def _suffix_match(a: str, b: str) -> bool:
    """True when the shorter path is the longer one's trailing path components."""
    shorter, longer = (a, b) if len(a) <= len(b) else (b, a)
    if not longer.endswith(shorter):
        return False
    return len(shorter) == len(longer) or shorter.startswith('/') or longer[-len(shorter) - 1] == '/'


def correlate(requested: Iterable[str],
              reported: Iterable[str],
              normalize: Optional[Callable[[str], str]] = None) -> Dict[str, Correlation]:
    """
    Maps each requested path to the reported path that describes it.

    Requested paths with no match are absent from the result. When several
    reported paths suffix-match one input (same filename in different
    directories), the first one wins and the correlation is flagged. A suffix
    only counts on a path component boundary, so x.tif never matches ax.tif.
    A reported path claimed by more than one input flags all of them.
    """
    norm = normalize or (lambda s: s)
    reported_list: List[str] = list(reported)
    reported_norm = [(key, norm(key)) for key in reported_list if key and norm(key)]
    by_exact = {}
    for key, nkey in reported_norm:
        by_exact.setdefault(key, key)
        by_exact.setdefault(nkey, key)

    matches: Dict[str, Correlation] = {}
    for path in requested:
        npath = norm(path)

        hit = by_exact.get(path) or by_exact.get(npath)
        if hit is not None:
            matches[path] = Correlation(key=hit, method='exact')
            continue

        candidates = [key for key, nkey in reported_norm if _suffix_match(nkey, npath)]
        if not candidates:
            continue

        ambiguous = len(candidates) > 1
        if ambiguous:
            logging.warning(
                f"Ambiguous correlation for {path}: {len(candidates)} reported paths match by suffix; "
                f"using {candidates[0]}"
            )
        matches[path] = Correlation(key=candidates[0], method='suffix', ambiguous=ambiguous)

    # One reported record claimed by several inputs
    claims: Dict[str, List[str]] = {}
    for path, match in matches.items():
        claims.setdefault(match.key, []).append(path)
    for key, paths in claims.items():
        if len(paths) < 2:
            continue
        logging.warning(f"Ambiguous correlation: {key} matches {len(paths)} requested paths: {', '.join(paths)}")
        for path in paths:
            matches[path] = replace(matches[path], ambiguous=True)

    return matches
