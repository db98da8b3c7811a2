from __future__ import annotations


# Part naming
LABEL_WIDTH = 4
PART_MARKER = ".part-"
ZIP_SUFFIX = ".zip"
PARTS_DIR_SUFFIX = ".parts"

# Zip local file / end of central directory / spanned archive signatures
ZIP_SIGNATURES = (
    b"PK\x03\x04",
    b"PK\x05\x06",
    b"PK\x07\x08",
)

# Stored-part overhead estimate (bytes) for strict part sizing
ZIP_LOCAL_HEADER = 30
ZIP_CENTRAL_HEADER = 46
ZIP_END_OF_CENTRAL = 22
ZIP_DATA_DESCRIPTOR = 16
ZIP_SAFETY_MARGIN = 32
ZIP_AES_OVERHEAD = 64
STRICT_SIZE_ROUNDS = 5

# Split units
UNIT_BYTES = {
    "B": 1,
    "KB": 1024,
    "MB": 1024 * 1024,
    "GB": 1024 * 1024 * 1024,
}
MIN_RAW_BYTES = 1024

# Compression
MIN_LEVEL = 1
MAX_LEVEL = 9
DEFAULT_LEVEL = 6

# I/O
HASH_BLOCK_SIZE = 65536
DEFAULT_BUFFER_SIZE = 4 * 1024 * 1024
ZIP64_THRESHOLD = 0x7FFFFFFF

# Progress phases
PHASE_ZIPPING = "zipping"
PHASE_SPLITTING = "splitting"
PHASE_HASHING = "hashing"
PHASE_VERIFYING = "verifying"
PHASE_UNZIPPING = "unzipping"
PHASE_MERGING = "merging"
PHASE_EXTRACTING = "extracting"

SCRATCH_PREFIX = ".partkit-"
MANIFEST_VERSION = "1.0"
