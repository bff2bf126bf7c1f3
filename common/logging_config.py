import logging
import os
import re
import sys
from typing import Optional


class SensitiveDataFilter(logging.Filter):
    """Filter to mask wallet secrets and credentials in log records."""

    PATTERNS = [
        (re.compile(r'(mnemonic["\']?\s*[:=]\s*["\']?)([^"\'}\n,]+)', re.IGNORECASE), r'\1***MASKED***'),
        (re.compile(r'(private[_-]?key["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)', re.IGNORECASE), r'\1***MASKED***'),
        (re.compile(r'(api[_-]?key["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)', re.IGNORECASE), r'\1***MASKED***'),
        (re.compile(r'(token["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)', re.IGNORECASE), r'\1***MASKED***'),
        (re.compile(r'(bearer\s+)([^\s,}\'\"]+)', re.IGNORECASE), r'\1***MASKED***'),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        """Mask sensitive data in the log message."""
        if isinstance(record.msg, str):
            record.msg = self._mask_value(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._mask_value(v) for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(self._mask_value(arg) for arg in record.args)

        return True

    def _mask_value(self, value):
        if isinstance(value, str):
            for pattern, replacement in self.PATTERNS:
                value = pattern.sub(replacement, value)
        return value


def _build_formatter(correlation_id: Optional[str] = None) -> logging.Formatter:
    prefix = f'[{correlation_id}] - ' if correlation_id else ''
    return logging.Formatter(
        f'%(asctime)s - %(name)s - %(levelname)s - {prefix}%(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def setup_logging(
    component_name: str,
    log_level: Optional[str] = None,
    correlation_id: Optional[str] = None
) -> logging.Logger:
    """
    Set up logging configuration for a component.

    Child loggers of the packages used by the component (``uploader``, ``metadb``,
    ``common``) share the same handler so module loggers created with
    ``get_logger(__name__)`` end up on the console too.

    Args:
        component_name: Name of the component (e.g., 'cli')
        log_level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to LOG_LEVEL env var or INFO
        correlation_id: Optional correlation ID to include in log format

    Returns:
        Configured logger instance
    """
    if log_level is None:
        log_level = os.getenv('LOG_LEVEL', 'INFO')

    level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(component_name)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(_build_formatter(correlation_id))
    handler.addFilter(SensitiveDataFilter())

    for name in (component_name, 'uploader', 'metadb', 'common'):
        package_logger = logging.getLogger(name)
        package_logger.setLevel(level)
        if handler not in package_logger.handlers:
            package_logger.addHandler(handler)
        package_logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
