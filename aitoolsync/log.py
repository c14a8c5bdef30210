"""Logging setup for the aitoolsync package and the aitpm CLI."""

import logging
import re
import sys

LOGGER_NAME = "aitoolsync"
LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"

# user:password@ or token@ inside a URL authority
_CREDENTIALS_RE = re.compile(r"(?P<scheme>[a-zA-Z][a-zA-Z0-9+.-]*://)[^/@\s]+@")


def redact_credentials(text: str) -> str:
    """
    Mask credentials embedded in URLs.

    Args:
        text: Arbitrary text that may contain URLs

    Returns:
        Text with every ``scheme://secret@`` replaced by ``scheme://***@``
    """
    return _CREDENTIALS_RE.sub(r"\g<scheme>***@", text)


def setup_logging(verbose: bool = False) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        verbose: Enable debug output

    Returns:
        The configured ``aitoolsync`` logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Clear existing handlers
    if logger.hasHandlers():
        logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False

    logger.debug("Logging configured.")
    return logger
