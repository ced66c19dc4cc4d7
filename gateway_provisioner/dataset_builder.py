"""Builds per-attribute port datasets from gateway console queries."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from gateway_provisioner.browser import ConsoleError
from gateway_provisioner.classifier import StatusRow, apply_port_status
from gateway_provisioner.extractor import Command, extract_row
from gateway_provisioner.models import (
    PORT_COUNT,
    AttributeValues,
    GatewayDataset,
    count_resolved,
    empty_values,
    merge_first_writer,
)

logger = logging.getLogger(__name__)


class GatewayConsole(Protocol):
    def send_command(self, command: Command) -> None:
        ...

    def count_ok_markers(self) -> int:
        ...

    def read_response_rows(self) -> List[Optional[str]]:
        ...

    def read_status_rows(self) -> List[StatusRow]:
        ...

    def is_closed(self) -> bool:
        ...


@dataclass(frozen=True)
class BuilderSettings:
    completion_timeout: float = 90.0
    poll_interval: float = 2.0
    ok_threshold: int = PORT_COUNT - 1
    retry_budget: int = 3
    retry_settle: float = 5.0


@dataclass(frozen=True)
class BuildResult:
    command: Command
    values: AttributeValues
    passes: int
    ok_count: int

    @property
    def resolved(self) -> int:
        return count_resolved(self.values)

    @property
    def unresolved_ports(self) -> List[str]:
        return [key for key, value in self.values.items() if not value]


class PortDatasetBuilder:
    def __init__(
        self,
        console: GatewayConsole,
        settings: Optional[BuilderSettings] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.console = console
        self.settings = settings or BuilderSettings()
        self._sleep = sleep
        self._clock = clock

    def build(self, command: Command) -> BuildResult:
        values = empty_values()
        ok_count = self._run_pass(command, values, settle=0.0)
        passes = 1

        retries = 0
        while (
            count_resolved(values) < PORT_COUNT
            and retries < self.settings.retry_budget
            and not self.console.is_closed()
        ):
            retries += 1
            logger.info(
                "%s: captured %d/%d, retry %d re-sending query",
                command.value,
                count_resolved(values),
                PORT_COUNT,
                retries,
            )
            ok_count = self._run_pass(command, values, settle=self.settings.retry_settle)
            passes += 1

        result = BuildResult(command=command, values=values, passes=passes, ok_count=ok_count)
        if result.resolved < PORT_COUNT:
            logger.warning(
                "%s: only %d/%d ports resolved after %d passes; %d left empty",
                command.value,
                result.resolved,
                PORT_COUNT,
                passes,
                PORT_COUNT - result.resolved,
            )
        else:
            logger.info("%s: all %d ports resolved in %d passes", command.value, PORT_COUNT, passes)
        return result

    def _run_pass(self, command: Command, values: AttributeValues, settle: float) -> int:
        try:
            self.console.send_command(command)
            if settle:
                self._sleep(settle)
            ok_count = self.wait_for_completion()
            filled = merge_first_writer(values, self.extract(command))
        except ConsoleError as exc:
            logger.warning("%s: pass made no progress: %s", command.value, exc)
            return 0
        logger.info("%s: pass filled %d ports (%d OK markers)", command.value, filled, ok_count)
        return ok_count

    def wait_for_completion(self) -> int:
        """Poll the OK marker count until the threshold or the timeout."""
        deadline = self._clock() + self.settings.completion_timeout
        ok_count = 0
        while True:
            ok_count = self.console.count_ok_markers()
            if ok_count >= self.settings.ok_threshold:
                return ok_count
            if self._clock() >= deadline:
                logger.warning(
                    "Only %d OK responses after %.0fs; proceeding anyway",
                    ok_count,
                    self.settings.completion_timeout,
                )
                return ok_count
            self._sleep(self.settings.poll_interval)

    def extract(self, command: Command) -> Dict[str, str]:
        extracted: Dict[str, str] = {}
        for text in self.console.read_response_rows():
            port, value = extract_row(text, command)
            if port and value and port not in extracted:
                extracted[port] = value
        return extracted


def build_gateway_dataset(
    console: GatewayConsole,
    commands: Sequence[Command] = (Command.IMEI, Command.ICCID, Command.MDN),
    gateway_id: str = "",
    builder: Optional[PortDatasetBuilder] = None,
    with_status: bool = False,
) -> GatewayDataset:
    builder = builder or PortDatasetBuilder(console)
    results = {command: builder.build(command).values for command in commands}
    dataset = GatewayDataset.from_attributes(
        imei=results.get(Command.IMEI),
        iccid=results.get(Command.ICCID),
        mdn=results.get(Command.MDN),
        gateway_id=gateway_id,
    )
    if not with_status:
        return dataset
    try:
        rows = console.read_status_rows()
    except ConsoleError as exc:
        logger.warning("Could not read port status for gateway %s: %s", gateway_id or "?", exc)
        return dataset
    return apply_port_status(dataset, rows)
