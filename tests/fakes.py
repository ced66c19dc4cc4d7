from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence, Tuple

from gateway_provisioner.browser import ConsoleError, Locator, SessionClosedError, StepTimeout
from gateway_provisioner.classifier import StatusRow
from gateway_provisioner.extractor import Command

SUBMIT_BUTTONS = {"Submit", "Purchase Refill"}

Hook = Callable[["FakeBrowserSession", str, str, Optional[str]], Optional[Exception]]


class FakeBrowserSession:
    """Scripted page: elements always exist, the receipt heading shows after a submit.

    ``hook(session, action, target, text)`` may return an exception to raise
    for that interaction. ``after_submit(form)`` returns the URL the page
    lands on after a submit button is clicked. ``page_texts`` and
    ``page_lists`` hold per-URL body text and per-selector text lists.
    """

    def __init__(
        self,
        hook: Optional[Hook] = None,
        after_submit: Optional[Callable[[Dict[str, str]], str]] = None,
        body_text: str = "Something went wrong\nPlease try again\n",
        page_texts: Optional[Dict[str, str]] = None,
        page_lists: Optional[Dict[str, Dict[str, List[str]]]] = None,
    ) -> None:
        self.hook = hook
        self.after_submit = after_submit
        self.body_text = body_text
        self.page_texts = page_texts or {}
        self.page_lists = page_lists or {}
        self.url = "about:blank"
        self.form: Dict[str, str] = {}
        self.submitted = False
        self.closed = False
        self.actions: List[Tuple[str, str, Optional[str]]] = []
        self.paused = 0.0

    def _check(self, action: str, target: str, text: Optional[str] = None) -> None:
        if self.closed:
            raise SessionClosedError("page has been closed")
        if self.hook is not None:
            error = self.hook(self, action, target, text)
            if error is not None:
                raise error

    def navigate(self, url: str, timeout: float) -> None:
        self._check("navigate", url)
        self.actions.append(("navigate", url, None))
        self.url = url
        self.form = {}
        self.submitted = False

    def locate(self, locator: Locator) -> Locator:
        if self.closed:
            raise SessionClosedError("page has been closed")
        return locator

    def wait_visible(self, handle: Locator, timeout: float) -> None:
        self._check("wait", handle.describe())
        if handle.role == "heading" and not self.submitted:
            raise StepTimeout(f"{handle.describe()} not visible after {timeout}s")

    def fill(self, handle: Locator, text: str, timeout: float = 5.0) -> None:
        target = handle.name or handle.describe()
        self._check("fill", target, text)
        self.actions.append(("fill", target, text))
        self.form[target] = text

    def click(self, handle: Locator, timeout: float = 5.0) -> None:
        target = handle.name or handle.describe()
        self._check("click", target)
        self.actions.append(("click", target, None))
        if handle.name in SUBMIT_BUTTONS:
            self.submitted = True
            if self.after_submit is not None:
                self.url = self.after_submit(dict(self.form))

    def inner_text(self, handle: Locator, timeout: float = 3.0) -> str:
        self._check("read", handle.describe())
        return self.page_texts.get(self.url, self.body_text)

    def texts(self, locator: Locator) -> List[str]:
        self._check("texts", locator.describe())
        return list(self.page_lists.get(self.url, {}).get(locator.selector or "", []))

    def current_url(self) -> str:
        if self.closed:
            raise SessionClosedError("page has been closed")
        return self.url

    def is_session_closed(self) -> bool:
        return self.closed

    def pause(self, seconds: float) -> None:
        if self.closed:
            raise SessionClosedError("page has been closed")
        self.paused += seconds

    def fills(self, field_name: str) -> List[str]:
        return [text or "" for action, target, text in self.actions if action == "fill" and target == field_name]


def imei_row(index: int, value: Optional[str] = None) -> str:
    return f"{index}A\t+CGSN: {value or f'8640000000000{index:02d}'}\tOK"


def iccid_row(index: int, value: Optional[str] = None) -> str:
    return f"A{index} | +CCID: {value or f'890141032111185107{index:02d}'} | OK"


def mdn_row(index: int, value: Optional[str] = None) -> str:
    number = value or f"+1518818{4000 + index}"
    return f'A{index} +CNUM: "","{number}",145 OK'


ROW_BUILDERS = {Command.IMEI: imei_row, Command.ICCID: iccid_row, Command.MDN: mdn_row}


def full_pass(command: Command, ports: Sequence[int] = range(1, 65)) -> List[Optional[str]]:
    build = ROW_BUILDERS[command]
    return [build(i) for i in ports]


class FakeGatewayConsole:
    """Replays scripted response passes per command.

    ``passes[command]`` holds the rows returned after each successive send;
    the last pass repeats once the script runs out. A pass listed in
    ``failing_sends[command]`` (zero based) raises ``ConsoleError`` on send.
    """

    def __init__(
        self,
        passes: Optional[Dict[Command, List[List[Optional[str]]]]] = None,
        ok_counts: Optional[List[int]] = None,
        status_rows: Optional[List[StatusRow]] = None,
        failing_sends: Optional[Dict[Command, Sequence[int]]] = None,
    ) -> None:
        self.passes = passes or {}
        self.ok_counts = list(ok_counts or [])
        self.status_rows = list(status_rows or [])
        self.failing_sends = failing_sends or {}
        self.closed = False
        self.sent: List[Command] = []
        self._current: List[Optional[str]] = []

    def send_command(self, command: Command) -> None:
        attempt = sum(1 for sent in self.sent if sent is command)
        self.sent.append(command)
        if attempt in self.failing_sends.get(command, ()):
            raise ConsoleError(f"{command.value} send failed")
        script = self.passes.get(command) or [[]]
        self._current = list(script[min(attempt, len(script) - 1)])

    def count_ok_markers(self) -> int:
        if self.ok_counts:
            return self.ok_counts.pop(0)
        return len(self._current)

    def read_response_rows(self) -> List[Optional[str]]:
        return list(self._current)

    def read_status_rows(self) -> List[StatusRow]:
        return list(self.status_rows)

    def is_closed(self) -> bool:
        return self.closed


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
