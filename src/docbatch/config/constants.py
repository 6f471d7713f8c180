"""Constants for docbatch."""

from docbatch import __version__

# Application constants
APP_NAME = "docbatch"
APP_VERSION = __version__

# Default paths
DEFAULT_LOG_DIR = ".logs"
DEFAULT_CONFIG_FILE = "docbatch.yaml"
DEFAULT_ARCHIVE_BASE_NAME = "converted-files"

# Input extensions accepted for batch processing (lowercase, no dot)
SUPPORTED_INPUT_FORMATS = frozenset(
    {
        # Documents
        "docx",
        "doc",
        "odt",
        "rtf",
        "txt",
        "html",
        "htm",
        # Spreadsheets
        "xlsx",
        "xls",
        "ods",
        "csv",
        # Presentations
        "pptx",
        "ppt",
        "odp",
        # PDF and images
        "pdf",
        "png",
        "jpg",
        "jpeg",
        "svg",
    }
)

# Target formats the converter can produce
OUTPUT_FORMATS = frozenset(
    {
        "pdf",
        "docx",
        "odt",
        "rtf",
        "txt",
        "html",
        "xlsx",
        "ods",
        "csv",
        "pptx",
        "odp",
        "png",
        "svg",
    }
)

# Batch defaults
DEFAULT_MAX_RETRIES = 2
DEFAULT_STALL_TIMEOUT = 30.0  # seconds without a progress event
DEFAULT_HEARTBEAT_INTERVAL = 5.0  # seconds between stall checks
DEFAULT_RETRY_BACKOFF = 0.5  # seconds between attempts
DEFAULT_OUTPUT_FORMAT = "pdf"

# Archive defaults
MIB = 1024 * 1024
DEFAULT_MAX_ARCHIVE_SIZE = 250 * MIB
ARCHIVE_INDEX_WIDTH = 3

# Preview defaults
DEFAULT_PREVIEW_WIDTH = 200

# Converter defaults
DEFAULT_CONVERSION_TIMEOUT = 300  # 5 minutes
DEFAULT_LIVENESS_INTERVAL = 2.0  # seconds between "still converting" events

# Blob store key prefix
STORAGE_KEY_PREFIX = "batch"
