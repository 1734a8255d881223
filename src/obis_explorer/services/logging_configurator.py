"""Console logging setup.

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed here, by the CLI or a script, never at import time.
"""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a single console handler on the root logger.

    Args:
        level: Level name (``DEBUG``, ``INFO``...). Unknown names fall back to INFO.
    """
    root_logger = logging.getLogger()

    # Clear existing handlers to prevent duplicate logs in re-runs (e.g., in tests)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(console_handler)

    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        root_logger.setLevel(logging.INFO)
        root_logger.warning("Invalid log level '%s'. Defaulting to INFO.", level)
        return
    root_logger.setLevel(resolved)

    # urllib3 logs every retry at DEBUG/WARNING; keep it quiet unless debugging
    urllib3_level = logging.DEBUG if resolved <= logging.DEBUG else logging.WARNING
    logging.getLogger("urllib3").setLevel(urllib3_level)
