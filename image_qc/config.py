"""
Configuration constants for the image QC validator.
"""

# --- File Type Definitions ---
TIFF_EXTS = {'.tif', '.tiff'}
RAW_EXTS = {'.dng', '.arw', '.nef', '.cr2', '.cr3', '.orf', '.raw', '.raf', '.rw2'}
JPEG_EXTS = {'.jpg', '.jpeg'}
PNG_EXTS = {'.png'}

# Extension to Type Mapping
# Used to quickly classify files without complex if/else chains
EXT_TO_TYPE = {}
for ext in TIFF_EXTS: EXT_TO_TYPE[ext] = 'TIFF'
for ext in RAW_EXTS: EXT_TO_TYPE[ext] = 'RAW'
for ext in JPEG_EXTS: EXT_TO_TYPE[ext] = 'JPEG'
for ext in PNG_EXTS: EXT_TO_TYPE[ext] = 'PNG'

# --- External Tools ---
EXIFTOOL_BINARY = "exiftool"
EXIFTOOL_TIMEOUT_SEC = 30.0
# -json = JSON output, -G1 = group-prefixed tag names, -n = numeric values
EXIFTOOL_BASE_ARGS = ["-json", "-G1", "-n"]

JHOVE_BINARY = "jhove"
JHOVE_TIMEOUT_SEC = 60.0
JHOVE_MODULE = "TIFF-hul"
JHOVE_BATCH_SIZE = 30

# --- Batch Processing ---
DEFAULT_CHUNK_SIZE = 100
CHECKPOINT_THROTTLE_SEC = 0.5
RAW_OUTPUT_PREVIEW_CHARS = 1000

# --- Severity ---
# Ordered lowest to highest; aggregation keeps the maximum.
SEVERITY_RANK = {
    'warning': 0,
    'fixable': 1,
    'critical': 2,
}

RAW_CHECK_SEVERITY = {
    'file_readable': 'critical',
    'has_exif': 'critical',
    'has_dimensions': 'critical',
    'camera_metadata': 'fixable',
}

# --- Metadata Parsing ---
# EXIF ColorSpace numeric codes as reported by exiftool -n
COLOR_SPACE_NAMES = {
    1: 'sRGB',
    2: 'Adobe RGB (1998)',
    65535: 'Uncalibrated',
}

# Group priority when resolving well-known fields from -G1 output.
# Earlier groups win; ungrouped keys are checked last.
TAG_GROUP_PRIORITY = ['File', 'IFD0', 'ExifIFD', 'SubIFD', 'ICC-header', 'ICC_Profile', 'Composite', 'System']

# Filename characters that break shells or other filesystems
UNSAFE_FILENAME_CHARS = r'[<>:"/\\|?*\x00-\x1f]'
