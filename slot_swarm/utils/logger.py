"""
Logging configuration
"""

import logging
import sys
from pathlib import Path
from typing import Optional


DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = 'INFO', log_file: Optional[str] = None, log_format: Optional[str] = None):
    """
    Setup logging configuration

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (optional)
        log_format: Log message format (optional)
    """
    if log_format is None:
        log_format = DEFAULT_FORMAT

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(numeric_level)

    # Replace handlers from a previous call instead of stacking them
    for handler in list(root.handlers):
        root.removeHandler(handler)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(logging.Formatter(log_format))
    root.addHandler(console_handler)

    # File handler (if specified)
    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter(log_format))
        root.addHandler(file_handler)

    # aiohttp access logs are noise for a daemon that serves one health route
    logging.getLogger("aiohttp.access").setLevel(max(numeric_level, logging.WARNING))

    logging.debug("Logging configured")

