"""Logging utilities for GitHub Migration Tool."""

import sys
from pathlib import Path
from typing import Optional, Set

from loguru import logger


REDACTION_MARKER = '***'


class SecretRedactor:
    """Hides known secret values in log messages.

    One instance is shared by whoever knows the secrets and installed as the
    loguru patcher by ``setup_logging``.
    """

    def __init__(self):
        self.secrets: Set[str] = set()

    def add(self, value: Optional[str]) -> None:
        """Redact a secret value from every subsequent log line.

        Args:
            value: Secret to hide; empty values are ignored
        """
        if value:
            self.secrets.add(value)

    def redact(self, message: str) -> str:
        """Replace known secrets in a message with the redaction marker."""
        for secret in self.secrets:
            message = message.replace(secret, REDACTION_MARKER)
        return message

    def patch(self, record) -> None:
        if self.secrets:
            record['message'] = self.redact(record['message'])


def setup_logging(
    level: str = 'INFO',
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    redactor: Optional[SecretRedactor] = None,
) -> None:
    """Setup logging configuration using loguru.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        log_format: Optional custom log format
        redactor: Optional redactor applied to every message
    """
    # Remove default handler
    logger.remove()
    if redactor is not None:
        logger.configure(patcher=redactor.patch)

    if log_format is None:
        log_format = (
            '<green>{time:YYYY-MM-DD HH:mm:ss}</green> | '
            '<level>{level: <8}</level> | '
            '<level>{message}</level>'
        )
        if level == 'DEBUG':
            log_format = (
                '<green>{time:YYYY-MM-DD HH:mm:ss}</green> | '
                '<level>{level: <8}</level> | '
                '<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | '
                '<level>{message}</level>'
            )

    logger.add(
        sys.stderr,
        format=log_format,
        level=level,
        colorize=True,
        backtrace=True,
        diagnose=False,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # File format (no colors)
        file_format = (
            '{time:YYYY-MM-DD HH:mm:ss} | '
            '{level: <8} | '
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

    logger.debug(f'Logging initialized with level: {level}')
    if log_file:
        logger.info(f'Log file: {log_file}')
