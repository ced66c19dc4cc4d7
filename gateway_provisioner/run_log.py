"""Append-only, human-readable run log for provisioning audits."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from pathlib import Path
from typing import List, Optional, Union

from gateway_provisioner.models import ProvisioningOutcome

logger = logging.getLogger(__name__)

RUN_LOG_FORMAT = "%(asctime)s - %(message)s"


class _UtcIsoFormatter(logging.Formatter):
    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class RunLog:
    """One line per event: ``timestamp - PORT EVENT detail``.

    Each instance owns an unregistered logger with a single append-mode file
    handler, so two runs never interleave handlers and nothing outlives the
    instance. Lines are also mirrored to this module's logger for console
    visibility.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.lines: List[str] = []
        # Built directly so it never enters the logging manager's registry.
        self._logger = logging.Logger(f"{__name__}.file", level=logging.INFO)
        self._handler = logging.FileHandler(self.path, mode="a", encoding="utf-8")
        self._handler.setFormatter(_UtcIsoFormatter(RUN_LOG_FORMAT))
        self._logger.addHandler(self._handler)

    def write(self, message: str) -> None:
        self.lines.append(message)
        self._logger.info(message)
        logger.info(message)

    def start(self, title: str) -> None:
        self.write(f"==== {title} started ====")

    def event(self, port: str, event: str, detail: str = "") -> None:
        self.write(f"{port} {event} {detail}".rstrip())

    def record(self, outcome: ProvisioningOutcome) -> None:
        self.event(outcome.port, outcome.describe())

    def close(self) -> None:
        self._logger.removeHandler(self._handler)
        self._handler.close()

    def __enter__(self) -> "RunLog":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
