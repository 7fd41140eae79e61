# lapush/utils.py

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: str = "INFO") -> logging.Logger:
    """
    Podpina jeden StreamHandler do root loggera (tylko raz na proces)
    i ustawia poziom logowania.
    """
    global _configured
    root = logging.getLogger()
    if not _configured:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        _configured = True
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    return root


def short_token(token: Optional[str], keep: int = 8) -> str:
    """Końcówka tokenu do logów, nigdy cały token."""
    if not token:
        return ""
    return "..." + token[-keep:]
