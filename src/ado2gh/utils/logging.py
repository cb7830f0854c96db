"""Logging utilities for the migration tool."""

import re
import sys
from pathlib import Path
from typing import Iterable, Optional

from loguru import logger


MASK = '***'
_URL_CREDENTIALS = re.compile(r'(https?://)([^/@\s]+)@')


def setup_logging(
    level: str = 'INFO',
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
) -> None:
    """Setup logging configuration using loguru.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        log_format: Optional custom log format
    """
    # Remove default handler
    logger.remove()
    logger.configure(extra={'component': 'ado2gh'})

    # Default format if not provided
    if log_format is None:
        log_format = (
            '<green>{time:YYYY-MM-DD HH:mm:ss}</green> | '
            '<level>{level: <8}</level> | '
            '<cyan>{extra[component]}</cyan> | '
            '<level>{message}</level>'
        )

    # Add console handler
    logger.add(
        sys.stderr,
        format=log_format,
        level=level,
        colorize=True,
        backtrace=True,
        diagnose=False,
    )

    # Add file handler if specified
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # File format (no colors)
        file_format = (
            '{time:YYYY-MM-DD HH:mm:ss} | '
            '{level: <8} | '
            '{extra[component]} | '
            '{name}:{function}:{line} | '
            '{message}'
        )

        logger.add(
            log_file,
            format=file_format,
            level=level,
            rotation='10 MB',
            retention='30 days',
            compression='gz',
            backtrace=True,
            diagnose=False,
        )

    logger.info(f'Logging initialized with level: {level}')
    if log_file:
        logger.info(f'Log file: {log_file}')


def mask_secrets(text: str, secrets: Iterable[Optional[str]] = ()) -> str:
    """Hide credentials embedded in URLs and any of the given secret values.

    Args:
        text: Text to mask (typically a command line)
        secrets: Literal secret values to hide

    Returns:
        Masked text
    """
    masked = _URL_CREDENTIALS.sub(rf'\1{MASK}@', text)
    for secret in secrets:
        if secret:
            masked = masked.replace(secret, MASK)
    return masked
