import logging

from anamnesportalen.config import settings

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'


def configure_logging(level: str = None) -> logging.Logger:
    """Set up console logging for the service (idempotent)."""
    root_logger = logging.getLogger()
    root_logger.setLevel((level or settings.LOG_LEVEL).upper())

    # Avoid stacking handlers when the app is re-created (tests, reload)
    if not any(getattr(h, "_anamnesportalen", False) for h in root_logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        console_handler._anamnesportalen = True
        root_logger.addHandler(console_handler)

    return root_logger


def token_prefix(token) -> str:
    """Only the first characters of an access token ever reach the logs."""
    if not isinstance(token, str) or not token:
        return "missing"
    return f"{token[:6]}..."
