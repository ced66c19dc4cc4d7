"""Browser automation contract consumed by the provisioning engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Protocol


class ProvisionerError(Exception):
    """Base class for every error raised by this package."""


class StepError(ProvisionerError):
    """A single page interaction failed; recoverable at the port level."""


class StepTimeout(StepError):
    pass


class ElementNotFound(StepError):
    pass


class SessionClosedError(ProvisionerError):
    """The controlling page or browser went away. Fatal for the run."""


class ConsoleError(ProvisionerError):
    """The gateway console could not be read or driven."""


class ConfigError(ProvisionerError):
    pass


@dataclass(frozen=True)
class Locator:
    """Either an accessible role + name pair, or a raw CSS selector."""

    role: Optional[str] = None
    name: Optional[str] = None
    selector: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.selector and not self.role:
            raise ValueError("Locator needs a selector or a role.")

    def describe(self) -> str:
        if self.selector:
            return self.selector
        return f"{self.role}[name={self.name!r}]"


class BrowserSession(Protocol):
    def navigate(self, url: str, timeout: float) -> None:
        ...

    def locate(self, locator: Locator) -> Any:
        ...

    def wait_visible(self, handle: Any, timeout: float) -> None:
        ...

    def fill(self, handle: Any, text: str, timeout: float = 5.0) -> None:
        ...

    def click(self, handle: Any, timeout: float = 5.0) -> None:
        ...

    def inner_text(self, handle: Any, timeout: float = 3.0) -> str:
        ...

    def texts(self, locator: Locator) -> List[str]:
        ...

    def current_url(self) -> str:
        ...

    def is_session_closed(self) -> bool:
        ...

    def pause(self, seconds: float) -> None:
        ...


def is_closed_message(message: str) -> bool:
    text = message.lower()
    return any(
        marker in text
        for marker in ("page has been closed", "browser has been closed", "context has been closed", "target closed")
    )
