import re
from typing import List, Optional

from .. import config
from ..models import CheckResult, Failure, MetadataBag
from ..project_spec import ColorSpec


def _normalize(value: str) -> str:
    return re.sub(r'[^a-z0-9]', '', value.lower())


def color_space_matches(actual: str, expected: str) -> bool:
    norm_actual = _normalize(actual)
    norm_expected = _normalize(expected)

    if norm_actual == norm_expected:
        return True

    # Common aliases: "Adobe RGB (1998)" vs "AdobeRGB", "sRGB IEC61966-2.1" vs "sRGB"
    if 'adobergb' in norm_expected and 'adobergb' in norm_actual:
        return True
    if norm_expected == 'srgb' and 'srgb' in norm_actual:
        return True

    return False


def color_space_name(value) -> str:
    """Resolves exiftool's numeric ColorSpace code to a name."""
    if value is None or value == '':
        return ''
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, int):
        return config.COLOR_SPACE_NAMES.get(value, f"Unknown ({value})")
    if isinstance(value, str) and value.isdigit():
        return config.COLOR_SPACE_NAMES.get(int(value), f"Unknown ({value})")
    return str(value)


def check_color(meta: MetadataBag, spec: Optional[ColorSpec]) -> CheckResult:
    """
    Checks bit depth, color space and ICC profile.

    A bit depth mismatch is critical (changing it is lossy); color space and
    ICC problems can be fixed by re-tagging or converting.
    """
    if spec is None:
        return CheckResult(kind='color', passed=True)

    failures: List[Failure] = []

    # BitsPerSample may be per channel, e.g. [8, 8, 8]; channels are assumed uniform
    depth = meta.bits_per_sample
    if isinstance(depth, list):
        depth_value = depth[0] if depth else None
    else:
        depth_value = depth

    if spec.bit_depth and depth_value is not None and depth_value != spec.bit_depth:
        actual = ','.join(str(d) for d in depth) if isinstance(depth, list) else depth_value
        failures.append(Failure('bit_depth', 'bit_depth', 'critical', spec.bit_depth, actual))

    space = color_space_name(meta.color_space)
    if spec.color_space:
        if not space:
            failures.append(Failure('color_space', 'missing', 'fixable', spec.color_space, 'missing'))
        elif not color_space_matches(space, spec.color_space):
            failures.append(Failure('color_space', 'color_space', 'fixable', spec.color_space, space))

    icc = meta.icc_profile
    if spec.icc_profile:
        if not icc:
            failures.append(Failure('icc_profile', 'missing', 'fixable', spec.icc_profile, 'missing'))
        elif icc != spec.icc_profile:
            failures.append(Failure('icc_profile', 'icc_profile', 'fixable', spec.icc_profile, icc))

    return CheckResult(
        kind='color',
        passed=not failures,
        failures=failures,
        details={'bit_depth': depth, 'color_space': space or meta.color_space, 'icc_profile': icc},
    )
