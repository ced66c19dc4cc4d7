"""Pattern extraction for gateway console AT-command response rows."""

from __future__ import annotations

from enum import Enum
import re
from typing import List, NamedTuple, Optional

from gateway_provisioner.models import normalize_port_key


class Command(Enum):
    """Console query per identifier, tagged by the AT command that fetches it."""

    IMEI = "at+cgsn"
    ICCID = "at+ccid"
    MDN = "at+cnum"

    @property
    def attribute(self) -> str:
        return self.name.lower()


class RowExtraction(NamedTuple):
    port: Optional[str]
    value: Optional[str]


_SPACE_ARTIFACTS = re.compile(r"[\u00a0\u2007\u202f\t\r\f\v]")
_ZERO_WIDTH = re.compile(r"[\u200b\u200c\u200d\ufeff]")
_PORT_TOKEN = re.compile(r"\bA\d{1,2}\b|\b\d{1,2}A\b")
_DIGIT_RUN = re.compile(r"\d{10,}")

_TAGGED_PATTERNS = {
    Command.IMEI: re.compile(r"\+CGSN:\s*(\d{10,})", re.IGNORECASE),
    Command.ICCID: re.compile(r"\+CCID:\s*(\d{10,})", re.IGNORECASE),
    # +CNUM: "<alpha tag>","+15188184240",145; the number is the second field
    Command.MDN: re.compile(r"\+CNUM:\s*\"[^\"]*\"\s*,\s*\"\+?(\d{10,})\"", re.IGNORECASE),
}

COUNTRY_CODE = "1"


def normalize_row(text: str) -> str:
    text = _ZERO_WIDTH.sub("", text)
    return _SPACE_ARTIFACTS.sub(" ", text)


def find_port_key(text: str) -> Optional[str]:
    for match in _PORT_TOKEN.finditer(text):
        key = normalize_port_key(match.group(0))
        if key:
            return key
    return None


def longest_digit_run(text: str) -> Optional[str]:
    runs: List[str] = _DIGIT_RUN.findall(text)
    if not runs:
        return None
    # max() keeps the first of equally long runs
    return max(runs, key=len)


def normalize_mdn(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    if len(value) == 11 and value.startswith(COUNTRY_CODE):
        value = value[1:]
    if len(value) not in (10, 11):
        return None
    return value


def extract_value(text: str, command: Command) -> Optional[str]:
    tagged = _TAGGED_PATTERNS[command].search(text)
    value = tagged.group(1) if tagged else longest_digit_run(text)
    if command is Command.MDN:
        return normalize_mdn(value)
    return value


def extract_row(text: Optional[str], command: Command) -> RowExtraction:
    """Parse one console row into ``(port, value)``; never raises."""
    if not text or not text.strip():
        return RowExtraction(None, None)
    cleaned = normalize_row(text)
    return RowExtraction(find_port_key(cleaned), extract_value(cleaned, command))
