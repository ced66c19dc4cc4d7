"""Contact email rotation across provisioning attempts."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
from pathlib import Path
from typing import List, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

DEFAULT_EMAIL = "rb@usa.com"

STRATEGY_SINGLE = "single"
STRATEGY_LOOP = "loop"
STRATEGY_N_TIMES = "n-times"
STRATEGIES = (STRATEGY_SINGLE, STRATEGY_LOOP, STRATEGY_N_TIMES)


@dataclass(frozen=True)
class EmailRotationPolicy:
    strategy: str = STRATEGY_SINGLE
    addresses: Sequence[str] = field(default_factory=tuple)
    single_address: str = DEFAULT_EMAIL
    n: int = 1

    def __post_init__(self) -> None:
        if self.strategy not in STRATEGIES:
            raise ValueError(f"Unknown email strategy: {self.strategy!r}")
        if self.n < 1:
            raise ValueError("n-times strategy needs n >= 1.")

    @property
    def usable(self) -> Tuple[str, ...]:
        if self.strategy == STRATEGY_SINGLE:
            return (self.single_address or DEFAULT_EMAIL,)
        if self.strategy == STRATEGY_LOOP:
            pool = tuple(self.addresses)
        else:
            pool = tuple(self.addresses)[: self.n]
        return pool or (DEFAULT_EMAIL,)

    def select(self, counter: int) -> str:
        """Email for the ``counter``-th attempted port (zero based)."""
        pool = self.usable
        return pool[counter % len(pool)]

    def describe(self) -> str:
        if self.strategy == STRATEGY_SINGLE:
            return f"single email ({self.usable[0]})"
        if self.strategy == STRATEGY_LOOP:
            return f"looping {len(self.usable)} emails"
        return f"first {len(self.usable)} emails (requested {self.n})"


def load_email_list(path: Union[str, Path]) -> List[str]:
    """Read a JSON array of addresses, keeping strings that contain ``@``."""
    source = Path(path)
    if not source.exists():
        logger.warning("Email list %s not found", source)
        return []
    try:
        payload = json.loads(source.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Could not read email list %s: %s", source, exc)
        return []
    if not isinstance(payload, list):
        logger.warning("Email list %s is not a JSON array", source)
        return []
    return [item.strip() for item in payload if isinstance(item, str) and "@" in item]
