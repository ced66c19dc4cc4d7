"""Gateway port reload: the Port Settings toggle sequence that re-reads every SIM.

The console re-queries each module when the port hardware and basic settings
are saved with specific checkbox combinations between AT commands. The
sequence is data; ``run_reload_sequence`` walks it against any panel that
implements ``PortSettingsPanel``.
"""

from __future__ import annotations

import logging
from typing import NamedTuple, Optional, Protocol, Sequence, Tuple

from gateway_provisioner.browser import ConsoleError
from gateway_provisioner.extractor import Command

logger = logging.getLogger(__name__)

SEND = "send"
CHECK = "check"
UNCHECK = "uncheck"
CLICK = "click"
SAVE = "save"
PAUSE = "pause"

# Controls on the Port Settings page.
ALL = "all"
LIST_FOOT = "list-foot"
LIST_FOOT_CELL = "list-foot-cell"
ENABLE = "enable"
ENABLE_CELL = "enable-cell"
REFRESH = "refresh"

# Save buttons.
PORT_HARDWARE = "port-hardware"
BASIC_SETTINGS = "basic-settings"


class PortSettingsPanel(Protocol):
    def send_command(self, command: Command) -> None:
        ...

    def set_checkbox(self, control: str, checked: bool) -> None:
        ...

    def click_control(self, control: str) -> None:
        ...

    def save_section(self, section: str) -> None:
        ...

    def settle(self, seconds: float) -> None:
        ...


class ReloadStep(NamedTuple):
    action: str
    target: Optional[str] = None
    command: Optional[Command] = None
    seconds: float = 0.0

    def describe(self) -> str:
        if self.action == SEND and self.command is not None:
            return f"send {self.command.value}"
        if self.action == PAUSE:
            return f"pause {self.seconds:g}s"
        return f"{self.action} {self.target}"


def _send(command: Command) -> ReloadStep:
    return ReloadStep(SEND, command=command)


def _check(control: str) -> ReloadStep:
    return ReloadStep(CHECK, control)


def _uncheck(control: str) -> ReloadStep:
    return ReloadStep(UNCHECK, control)


def _click(control: str) -> ReloadStep:
    return ReloadStep(CLICK, control)


def _save(section: str) -> ReloadStep:
    return ReloadStep(SAVE, section)


RELOAD_SEQUENCE: Tuple[ReloadStep, ...] = (
    _send(Command.ICCID),
    _check(LIST_FOOT),
    _save(PORT_HARDWARE),
    _click(REFRESH),
    _check(ALL),
    _check(LIST_FOOT),
    _uncheck(LIST_FOOT),
    _save(PORT_HARDWARE),
    _check(ENABLE),
    _save(BASIC_SETTINGS),
    _click(ENABLE_CELL),
    _uncheck(ENABLE),
    _save(BASIC_SETTINGS),
    _send(Command.IMEI),
    _check(ENABLE),
    _save(BASIC_SETTINGS),
    _send(Command.IMEI),
    _check(LIST_FOOT),
    _save(PORT_HARDWARE),
    _uncheck(ENABLE),
    _save(BASIC_SETTINGS),
    _check(LIST_FOOT),
    _uncheck(LIST_FOOT),
    _save(PORT_HARDWARE),
    _click(ENABLE_CELL),
    _check(ENABLE),
    _save(BASIC_SETTINGS),
    _save(PORT_HARDWARE),
    _send(Command.MDN),
    _click(LIST_FOOT_CELL),
    _save(PORT_HARDWARE),
    _click(LIST_FOOT_CELL),
    _uncheck(LIST_FOOT),
    _save(PORT_HARDWARE),
    _uncheck(ENABLE),
    _save(BASIC_SETTINGS),
    _click(ENABLE_CELL),
    _check(ENABLE),
    _save(BASIC_SETTINGS),
    _uncheck(ENABLE),
    ReloadStep(PAUSE, seconds=1.0),
)


def apply_step(panel: PortSettingsPanel, step: ReloadStep) -> None:
    if step.action == SEND and step.command is not None:
        panel.send_command(step.command)
    elif step.action in (CHECK, UNCHECK) and step.target:
        panel.set_checkbox(step.target, step.action == CHECK)
    elif step.action == CLICK and step.target:
        panel.click_control(step.target)
    elif step.action == SAVE and step.target:
        panel.save_section(step.target)
    elif step.action == PAUSE:
        panel.settle(step.seconds)
    else:
        raise ValueError(f"Malformed reload step: {step!r}")


def run_reload_sequence(
    panel: PortSettingsPanel,
    gateway_id: str = "",
    steps: Sequence[ReloadStep] = RELOAD_SEQUENCE,
) -> int:
    """Apply every step in order; the first console failure stops the reload.

    Returns the number of steps applied.
    """
    label = gateway_id or "?"
    logger.info("Starting port reload on gateway %s (%d steps)", label, len(steps))
    for number, step in enumerate(steps, start=1):
        try:
            apply_step(panel, step)
        except ConsoleError as exc:
            raise ConsoleError(f"Gateway {label} reload failed at step {number} ({step.describe()}): {exc}") from exc
    logger.info("Port reload on gateway %s complete", label)
    return len(steps)
