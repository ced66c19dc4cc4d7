"""Multi-gateway inventory scrape and tabular reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
import logging
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Union

import pandas as pd

from gateway_provisioner.browser import ProvisionerError
from gateway_provisioner.config import GatewayConfig
from gateway_provisioner.dataset_builder import GatewayConsole, build_gateway_dataset
from gateway_provisioner.models import (
    STATUS_ACTIVE,
    STATUS_ERROR,
    STATUS_INACTIVE,
    STATUS_WEAK_SIGNAL,
    GatewayDataset,
)

logger = logging.getLogger(__name__)

STATUS_LABELS: Dict[str, str] = {
    STATUS_ACTIVE: "Active",
    STATUS_WEAK_SIGNAL: "Weak Sig",
    STATUS_ERROR: "Error",
    STATUS_INACTIVE: "Inactive",
}

INVENTORY_COLUMNS: List[str] = ["gateway", "port", "status", "carrier", "mdn", "iccid", "imei", "missing"]

RULE_WIDTH = 120

ConsoleFactory = Callable[[GatewayConfig], GatewayConsole]


@dataclass
class InventoryScrape:
    datasets: Dict[str, GatewayDataset] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)


def scrape_all_gateways(
    configs: Mapping[str, GatewayConfig],
    console_factory: ConsoleFactory,
) -> InventoryScrape:
    """Scrape every configured gateway; one gateway failing never stops the rest."""
    result = InventoryScrape()
    logger.info("Starting scrape for %d gateways", len(configs))
    for gateway_id, config in configs.items():
        try:
            console = console_factory(config)
            dataset = build_gateway_dataset(console, gateway_id=gateway_id, with_status=True)
        except ProvisionerError as exc:
            message = f"Gateway {gateway_id} FAILED: {exc}"
            logger.error(message)
            result.errors.append(message)
            continue
        result.datasets[gateway_id] = dataset
        logger.info("Gateway %s scrape complete. Active: %d", gateway_id, dataset.count(STATUS_ACTIVE))
    return result


def dataset_frame(datasets: Mapping[str, GatewayDataset]) -> pd.DataFrame:
    rows = []
    for gateway_id in sorted(datasets):
        for record in datasets[gateway_id].values():
            rows.append(
                {
                    "gateway": gateway_id,
                    "port": record.port,
                    "status": record.status,
                    "carrier": record.carrier,
                    "mdn": record.mdn,
                    "iccid": record.iccid,
                    "imei": record.imei,
                    "missing": ",".join(record.missing_fields),
                }
            )
    return pd.DataFrame(rows, columns=INVENTORY_COLUMNS)


def status_counts(frame: pd.DataFrame) -> Dict[str, int]:
    counts = frame["status"].value_counts() if not frame.empty else pd.Series(dtype=int)
    return {status: int(counts.get(status, 0)) for status in STATUS_LABELS}


def format_inventory_report(
    frame: pd.DataFrame,
    errors: Sequence[str] = (),
    generated_at: Optional[datetime] = None,
) -> str:
    stamp = (generated_at or datetime.now(timezone.utc)).isoformat()
    lines: List[str] = ["=" * RULE_WIDTH, "GATEWAY INVENTORY REPORT", f"Generated: {stamp}", "=" * RULE_WIDTH, ""]

    if errors:
        lines.append("ERRORS ENCOUNTERED:")
        lines.extend(f"  - {error}" for error in errors)
        lines.extend(["", "=" * RULE_WIDTH, ""])

    if frame.empty:
        lines.append("No port data collected.")
        return "\n".join(lines)

    table = frame.assign(
        port=frame["gateway"] + "-" + frame["port"],
        status=frame["status"].map(STATUS_LABELS).fillna(frame["status"]),
        mdn=frame["mdn"].fillna("N/A"),
        iccid=frame["iccid"].fillna("N/A"),
        imei=frame["imei"].fillna("N/A"),
        notes=frame["missing"].map(lambda missing: f"MISSING: {missing}" if missing else ""),
    )
    for gateway_id, group in table.groupby("gateway", sort=True):
        counts = status_counts(frame[frame["gateway"] == gateway_id])
        summary = ", ".join(f"{STATUS_LABELS[status]}: {count}" for status, count in counts.items())
        lines.append(f"\nGATEWAY {gateway_id} ({summary})")
        lines.append("-" * RULE_WIDTH)
        lines.append(
            group[["port", "status", "carrier", "mdn", "iccid", "imei", "notes"]]
            .rename(columns=str.upper)
            .to_string(index=False, justify="left")
        )
    return "\n".join(lines)


def save_inventory(
    frame: pd.DataFrame,
    errors: Sequence[str],
    output_dir: Union[str, Path],
    generated_at: Optional[datetime] = None,
) -> Dict[str, Path]:
    moment = generated_at or datetime.now(timezone.utc)
    folder = Path(output_dir)
    folder.mkdir(parents=True, exist_ok=True)
    day = moment.strftime("%Y-%m-%d")

    paths = {
        "txt": folder / f"GW_Inventory_{day}.txt",
        "json": folder / f"GW_Inventory_{day}.json",
    }
    paths["txt"].write_text(format_inventory_report(frame, errors, moment), encoding="utf-8")
    records = json.loads(frame.to_json(orient="records"))
    payload = {"data": records, "errors": list(errors), "timestamp": moment.isoformat()}
    paths["json"].write_text(json.dumps(payload, indent=2), encoding="utf-8")
    if errors:
        paths["errors"] = folder / f"GW_Inventory_Errors_{day}.log"
        paths["errors"].write_text("\n".join(errors), encoding="utf-8")

    for kind, path in paths.items():
        logger.info("Inventory %s saved: %s", kind.upper(), path)
    return paths
