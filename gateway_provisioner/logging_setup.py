"""Console and file diagnostics for command-line runs."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"
PACKAGE_LOGGER = "gateway_provisioner"


def configure_logging(level: int = logging.INFO, log_file: Optional[Union[str, Path]] = None) -> logging.Logger:
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    # Re-running inside one interpreter must not stack handlers.
    if not logger.handlers:
        formatter = logging.Formatter(LOG_FORMAT)
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(formatter)
        logger.addHandler(console)

        if log_file:
            path = Path(log_file)
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path, encoding="utf-8")
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
    return logger
