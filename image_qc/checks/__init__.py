from .dimension import check_dimensions
from .color import check_color
from .tags import check_required_tags
from .filename import check_filename
from .raw import check_raw_container

__all__ = [
    'check_dimensions',
    'check_color',
    'check_required_tags',
    'check_filename',
    'check_raw_container',
]
