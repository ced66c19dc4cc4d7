"""Carrier detection and port health classification."""

from __future__ import annotations

from enum import Enum
import re
from typing import Dict, NamedTuple, Optional, Sequence

from gateway_provisioner.models import (
    STATUS_ACTIVE,
    STATUS_ERROR,
    STATUS_INACTIVE,
    STATUS_WEAK_SIGNAL,
    GatewayDataset,
    normalize_port_key,
)

CARRIER_ATT = "AT&T"
CARRIER_TMOBILE = "T-Mobile"
CARRIER_VERIZON = "Verizon"
CARRIER_OTHER = "Other/Unknown"
CARRIER_UNKNOWN = "Unknown"

VERIZON_IIN = "8914"
US_IIN = "8901"

# Mobile network codes found in ICCID digits 5-7 after the 8901 issuer prefix.
ATT_NETWORK_CODES = frozenset({"030", "150", "170", "280", "380", "410", "560", "680"})
TMOBILE_NETWORK_CODES = frozenset({"026", "160", "240", "260", "490", "580", "800"})


def detect_carrier(iccid: Optional[str]) -> str:
    if not iccid:
        return CARRIER_UNKNOWN
    digits = re.sub(r"\D", "", iccid)
    if len(digits) < 7:
        return CARRIER_UNKNOWN
    if digits.startswith(VERIZON_IIN):
        return CARRIER_VERIZON
    if digits.startswith(US_IIN):
        network_code = digits[4:7]
        if network_code in ATT_NETWORK_CODES:
            return CARRIER_ATT
        if network_code in TMOBILE_NETWORK_CODES:
            return CARRIER_TMOBILE
    return CARRIER_OTHER


class VisualIndicator(Enum):
    GREEN_DOT = "green-dot"
    GREEN_CIRCLE = "green-circle"
    RED_DOT = "red-dot"
    RED_EXCLAMATION = "red-exclamation"
    UNKNOWN = "unknown"


class StatusRow(NamedTuple):
    """One row of the console's Port Status table."""

    text: str
    indicator_html: str


_INDICATOR_RULES = (
    (VisualIndicator.RED_DOT, ("offline", "red", "#ff0000", "rgb(255, 0, 0)")),
    (VisualIndicator.RED_EXCLAMATION, ("exclamation", "error", "alert")),
    (VisualIndicator.GREEN_CIRCLE, ("weaksignal", "weak", "yellow", "circle")),
    (VisualIndicator.GREEN_DOT, ("online", "green", "#00ff00", "rgb(0, 255, 0)", "rgb(0, 128, 0)")),
)


def indicator_from_html(html: Optional[str]) -> VisualIndicator:
    markup = (html or "").lower()
    if not markup:
        return VisualIndicator.UNKNOWN
    for indicator, needles in _INDICATOR_RULES:
        if any(needle in markup for needle in needles):
            return indicator
    return VisualIndicator.UNKNOWN


def derive_status(
    indicator: VisualIndicator,
    missing_fields: Sequence[str],
    default: str = STATUS_INACTIVE,
) -> str:
    if indicator is VisualIndicator.RED_DOT:
        return STATUS_INACTIVE
    if indicator is VisualIndicator.RED_EXCLAMATION:
        return STATUS_ERROR
    if indicator is VisualIndicator.GREEN_CIRCLE:
        return STATUS_WEAK_SIGNAL
    if indicator is VisualIndicator.GREEN_DOT:
        # Healthy light with incomplete data is an anomaly, not an active port.
        return STATUS_ACTIVE if not missing_fields else STATUS_ERROR
    return default


_STATUS_PORT = re.compile(r"\b(\d{1,2})A\b|\bA(\d{1,2})\b")


def apply_port_status(dataset: GatewayDataset, status_rows: Sequence[StatusRow]) -> GatewayDataset:
    statuses: Dict[str, str] = {}
    for row in status_rows:
        match = _STATUS_PORT.search(row.text or "")
        if not match:
            continue
        key = normalize_port_key(match.group(0))
        if key is None or key in statuses:
            continue
        record = dataset[key]
        statuses[key] = derive_status(
            indicator_from_html(row.indicator_html),
            record.missing_fields,
            default=record.status,
        )
    return dataset.with_statuses(statuses)
