"""Utility modules for asvtoolkit."""

from asvtoolkit.utils.config import (
    DEFAULT_RANDOM_SEED,
    MAX_QUALITY,
    PHRED_OFFSET,
    get_output_path,
    setup_thread_limits,
)
from asvtoolkit.utils.validation import (
    sample_name,
    validate_file_exists,
    validate_read_files,
)
from asvtoolkit.utils.logging_utils import log_stage, setup_logger
