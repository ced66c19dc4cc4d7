"""Per-port records, gateway datasets and provisioning outcomes."""

from __future__ import annotations

from dataclasses import dataclass, replace
import re
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

PORT_COUNT = 64

STATUS_ACTIVE = "active"
STATUS_WEAK_SIGNAL = "weak-signal"
STATUS_INACTIVE = "inactive"
STATUS_ERROR = "error"
PORT_STATUSES: Tuple[str, ...] = (STATUS_ACTIVE, STATUS_WEAK_SIGNAL, STATUS_INACTIVE, STATUS_ERROR)

OUTCOME_SUCCESS = "success"
OUTCOME_SKIPPED = "skipped"
OUTCOME_FAILED = "failed"

AttributeValues = Dict[str, Optional[str]]

_PORT_TOKEN = re.compile(r"^(?:A(\d{1,2})|(\d{1,2})A)$", re.IGNORECASE)


def port_key(index: int) -> str:
    return f"A{index}"


def port_keys() -> List[str]:
    return [port_key(i) for i in range(1, PORT_COUNT + 1)]


def port_index(key: str) -> int:
    normalized = normalize_port_key(key)
    if normalized is None:
        raise ValueError(f"Not a port key: {key!r}")
    return int(normalized[1:])


def normalize_port_key(token: str) -> Optional[str]:
    """Return the canonical ``A{n}`` form of ``A7``/``7A``/``a07``, or None."""
    match = _PORT_TOKEN.match(token.strip())
    if not match:
        return None
    number = int(match.group(1) or match.group(2))
    if not 1 <= number <= PORT_COUNT:
        return None
    return port_key(number)


def empty_values() -> AttributeValues:
    return {key: None for key in port_keys()}


def count_resolved(values: Mapping[str, Optional[str]]) -> int:
    return sum(1 for value in values.values() if value)


def merge_first_writer(target: AttributeValues, extracted: Mapping[str, Optional[str]]) -> int:
    """Copy values into ``target`` only where it is still empty.

    Returns the number of ports newly filled.
    """
    filled = 0
    for key, value in extracted.items():
        if not value or key not in target:
            continue
        if target[key] is None:
            target[key] = value
            filled += 1
    return filled


@dataclass(frozen=True)
class PortRecord:
    port: str
    imei: Optional[str] = None
    iccid: Optional[str] = None
    mdn: Optional[str] = None
    status: str = STATUS_INACTIVE

    @property
    def carrier(self) -> str:
        from gateway_provisioner.classifier import detect_carrier

        return detect_carrier(self.iccid)

    @property
    def missing_fields(self) -> Tuple[str, ...]:
        missing: List[str] = []
        if not self.mdn:
            missing.append("MDN")
        if not self.iccid:
            missing.append("ICCID")
        if not self.imei:
            missing.append("IMEI")
        return tuple(missing)

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields

    def value(self, field_name: str) -> Optional[str]:
        return getattr(self, field_name.lower())


class GatewayDataset(Mapping[str, PortRecord]):
    """Exactly 64 port records keyed ``A1``..``A64``; read-only once built."""

    def __init__(self, records: Optional[Mapping[str, PortRecord]] = None, gateway_id: str = "") -> None:
        self.gateway_id = gateway_id
        built: Dict[str, PortRecord] = {}
        supplied = dict(records or {})
        for key in port_keys():
            record = supplied.pop(key, None)
            built[key] = record if record is not None else PortRecord(port=key)
        if supplied:
            raise ValueError(f"Unknown port keys: {sorted(supplied)}")
        self._records = built

    @classmethod
    def from_attributes(
        cls,
        imei: Optional[Mapping[str, Optional[str]]] = None,
        iccid: Optional[Mapping[str, Optional[str]]] = None,
        mdn: Optional[Mapping[str, Optional[str]]] = None,
        gateway_id: str = "",
    ) -> "GatewayDataset":
        imei = imei or {}
        iccid = iccid or {}
        mdn = mdn or {}
        records = {
            key: PortRecord(port=key, imei=imei.get(key) or None, iccid=iccid.get(key) or None, mdn=mdn.get(key) or None)
            for key in port_keys()
        }
        return cls(records, gateway_id=gateway_id)

    def __getitem__(self, key: str) -> PortRecord:
        return self._records[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def with_statuses(self, statuses: Mapping[str, str]) -> "GatewayDataset":
        records = {
            key: replace(record, status=statuses[key]) if key in statuses else record
            for key, record in self._records.items()
        }
        return GatewayDataset(records, gateway_id=self.gateway_id)

    def count(self, status: str) -> int:
        return sum(1 for record in self._records.values() if record.status == status)


@dataclass(frozen=True)
class ProvisioningOutcome:
    port: str
    kind: str
    stage: Optional[str] = None
    detail: str = ""

    @classmethod
    def success(cls, port: str, detail: str = "") -> "ProvisioningOutcome":
        return cls(port=port, kind=OUTCOME_SUCCESS, detail=detail)

    @classmethod
    def skipped(cls, port: str, reason: str) -> "ProvisioningOutcome":
        return cls(port=port, kind=OUTCOME_SKIPPED, detail=reason)

    @classmethod
    def failed(cls, port: str, stage: str, detail: str) -> "ProvisioningOutcome":
        return cls(port=port, kind=OUTCOME_FAILED, stage=stage, detail=detail)

    def describe(self) -> str:
        if self.kind == OUTCOME_FAILED:
            return f"FAILED stage={self.stage} {self.detail}".rstrip()
        return f"{self.kind.upper()} {self.detail}".rstrip()
