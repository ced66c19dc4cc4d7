"""Per-attribute record files: the checkpoint between scraping and provisioning."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

from gateway_provisioner.extractor import Command
from gateway_provisioner.models import (
    AttributeValues,
    GatewayDataset,
    count_resolved,
    empty_values,
    normalize_port_key,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def dataset_filename(command: Command) -> str:
    return f"{command.attribute}_dataset.json"


def dataset_path(output_dir: PathLike, command: Command) -> Path:
    return Path(output_dir) / dataset_filename(command)


def save_attribute_values(
    output_dir: PathLike,
    command: Command,
    values: Mapping[str, Optional[str]],
) -> Path:
    """Write all 64 port keys, ``null`` where unresolved."""
    payload = empty_values()
    for key, value in values.items():
        normalized = normalize_port_key(key)
        if normalized:
            payload[normalized] = value or None
    path = dataset_path(output_dir, command)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    logger.info("Saved %s (%d entries)", path.name, count_resolved(payload))
    return path


def load_attribute_values(output_dir: PathLike, command: Command) -> AttributeValues:
    path = dataset_path(output_dir, command)
    values = empty_values()
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.warning("Could not read %s; every %s is treated as missing", path.name, command.attribute.upper())
        return values
    except (OSError, ValueError) as exc:
        logger.warning("Could not parse %s: %s", path.name, exc)
        return values
    if not isinstance(payload, dict):
        logger.warning("%s does not hold a port mapping", path.name)
        return values
    for key, value in payload.items():
        normalized = normalize_port_key(str(key))
        if normalized and value not in (None, ""):
            values[normalized] = str(value)
    return values


def load_checkpoint(
    output_dir: PathLike,
    commands: Sequence[Command],
    gateway_id: str = "",
) -> GatewayDataset:
    loaded = {command: load_attribute_values(output_dir, command) for command in commands}
    return GatewayDataset.from_attributes(
        imei=loaded.get(Command.IMEI),
        iccid=loaded.get(Command.ICCID),
        mdn=loaded.get(Command.MDN),
        gateway_id=gateway_id,
    )
