"""Logging setup shared by the console entry point and embedding applications."""
import logging
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging with the package format.

    Args:
        level: Level name; defaults to the configured ``log_level`` setting
    """
    if level is None:
        from file_access.settings import get_settings
        level = get_settings().log_level
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # boto and urllib3 are chatty at DEBUG
    for noisy in ("botocore", "boto3", "urllib3", "s3transfer"):
        logging.getLogger(noisy).setLevel(max(logging.getLogger().level, logging.INFO))
