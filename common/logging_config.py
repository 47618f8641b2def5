import logging
import os
import re
import sys
from typing import Optional

MASK = '***MASKED***'


class SensitiveDataFilter(logging.Filter):
    """
    Mask WOPI credentials in log records.

    Access tokens travel in query strings, proofs and lock tokens in
    X-WOPI-* headers, and lock-conflict reasons quote the holder's lock
    token; none of them may reach the log output.
    """

    PATTERNS = [
        (re.compile(r'(access_token["\']?\s*[:=]\s*["\']?)([^"\'}\s,&]+)', re.IGNORECASE), r'\1' + MASK),
        (re.compile(r'(x-wopi-(?:proof|proofold|lock|oldlock)["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)', re.IGNORECASE),
         r'\1' + MASK),
        (re.compile(r'(locked by\s+)(\S+)', re.IGNORECASE), r'\1' + MASK),
        (re.compile(r'(bearer\s+)([^\s,}\'\"]+)', re.IGNORECASE), r'\1' + MASK),
        (re.compile(r'((?:token_)?secret["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)', re.IGNORECASE), r'\1' + MASK),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self.mask(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._mask_value(v) for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(self._mask_value(arg) for arg in record.args)

        return True

    @classmethod
    def mask(cls, text: str) -> str:
        for pattern, replacement in cls.PATTERNS:
            text = pattern.sub(replacement, text)
        return text

    def _mask_value(self, value):
        if isinstance(value, str):
            return self.mask(value)
        return value


def setup_logging(component_name: str, log_level: Optional[str] = None) -> logging.Logger:
    """
    Configure the service's root logger.

    Installs one stdout handler with the masking filter on `component_name`;
    every module logger under that name (``wopi_host.wopi.locks``, ...)
    propagates to it.

    Args:
        component_name: Top-level package name (e.g., 'wopi_host')
        log_level: DEBUG, INFO, WARNING or ERROR. Defaults to LOG_LEVEL env var or INFO

    Returns:
        Configured logger instance
    """
    if log_level is None:
        log_level = os.getenv('LOG_LEVEL', 'INFO').upper()

    level = getattr(logging, log_level, logging.INFO)

    logger = logging.getLogger(component_name)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    handler.addFilter(SensitiveDataFilter())

    logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name (typically __name__)."""
    return logging.getLogger(name)
