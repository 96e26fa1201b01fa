"""Logging setup for the API process and scripts."""
import logging
from typing import Optional

from .settings import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None):
    """Configure root logging once; later calls only adjust the level."""
    level = (level or get_settings().log_level).upper()
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)
