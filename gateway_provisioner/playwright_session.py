"""Playwright (sync API) adapters for the external portal and the gateway console."""

from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import Any, Iterator, List, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Frame, Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from gateway_provisioner.browser import (
    ConsoleError,
    ElementNotFound,
    Locator,
    SessionClosedError,
    StepError,
    StepTimeout,
    is_closed_message,
)
from gateway_provisioner.classifier import StatusRow
from gateway_provisioner.config import GatewayConfig, PortalCredentials
from gateway_provisioner.extractor import Command
from gateway_provisioner.port_reload import (
    ALL,
    BASIC_SETTINGS,
    ENABLE,
    ENABLE_CELL,
    LIST_FOOT,
    LIST_FOOT_CELL,
    PORT_HARDWARE,
    REFRESH,
)

logger = logging.getLogger(__name__)


def _ms(seconds: float) -> float:
    return seconds * 1000.0


@contextmanager
def _translated(action: str) -> Iterator[None]:
    try:
        yield
    except PlaywrightTimeoutError as exc:
        raise StepTimeout(f"{action}: {exc}") from exc
    except PlaywrightError as exc:
        message = str(exc)
        if is_closed_message(message):
            raise SessionClosedError(f"{action}: {message}") from exc
        if "strict mode violation" in message or "not found" in message.lower():
            raise ElementNotFound(f"{action}: {message}") from exc
        raise StepError(f"{action}: {message}") from exc


class PlaywrightBrowserSession:
    """``BrowserSession`` over one Playwright page."""

    def __init__(self, page: Page) -> None:
        self.page = page

    def _check_open(self) -> None:
        if self.page.is_closed():
            raise SessionClosedError("page has been closed")

    def navigate(self, url: str, timeout: float) -> None:
        self._check_open()
        with _translated(f"navigate {url}"):
            self.page.goto(url, timeout=_ms(timeout))

    def locate(self, locator: Locator) -> Any:
        self._check_open()
        if locator.selector:
            return self.page.locator(locator.selector).first
        return self.page.get_by_role(locator.role, name=locator.name)  # type: ignore[arg-type]

    def wait_visible(self, handle: Any, timeout: float) -> None:
        with _translated("wait for visible"):
            handle.wait_for(state="visible", timeout=_ms(timeout))

    def fill(self, handle: Any, text: str, timeout: float = 5.0) -> None:
        with _translated("fill"):
            handle.fill(text, timeout=_ms(timeout))

    def click(self, handle: Any, timeout: float = 5.0) -> None:
        with _translated("click"):
            handle.click(timeout=_ms(timeout))

    def inner_text(self, handle: Any, timeout: float = 3.0) -> str:
        with _translated("read text"):
            return handle.inner_text(timeout=_ms(timeout))

    def texts(self, locator: Locator) -> List[str]:
        self._check_open()
        if locator.selector:
            target = self.page.locator(locator.selector)
        else:
            target = self.page.get_by_role(locator.role, name=locator.name)  # type: ignore[arg-type]
        with _translated(f"read texts of {locator.describe()}"):
            return target.all_inner_texts()

    def current_url(self) -> str:
        self._check_open()
        return self.page.url

    def is_session_closed(self) -> bool:
        return self.page.is_closed()

    def pause(self, seconds: float) -> None:
        self._check_open()
        with _translated("pause"):
            self.page.wait_for_timeout(_ms(seconds))


def login_to_portal(session: PlaywrightBrowserSession, login_url: str, credentials: PortalCredentials) -> None:
    """Sign in to the dealer portal; raises ``StepError`` if the form is unusable."""
    page = session.page
    session.navigate(login_url, 70.0)
    with _translated("portal login"):
        page.locator("#DealerCode").fill(credentials.dealer_code)
        page.locator("#UserName").fill(credentials.username)
        page.locator("#Password").fill(credentials.password)
        page.get_by_role("button", name="Login").click()
    try:
        page.wait_for_url(lambda url: "LogOn" not in url, timeout=_ms(20.0))
        logger.info("Portal login completed: %s", page.url)
    except PlaywrightTimeoutError:
        logger.warning("Portal login completion check failed, proceeding anyway")


class PlaywrightGatewayConsole:
    """``GatewayConsole`` over the gateway's framed web UI."""

    COMMAND_BOX = "#ID_goip_at_cmd"
    OK_CELLS = 'td:has-text("OK")'
    OK_ROWS = 'tr:has(td:has-text("OK"))'
    LIST_FOOT_SELECTOR = ".listFoot > tbody > tr > td:nth-child(3)"
    SAVE_BUTTONS = {
        PORT_HARDWARE: 'input[name="btn_goip_port_hwattr"]',
        BASIC_SETTINGS: 'input[name="btn_goip_basic_settings"]',
    }

    def __init__(self, page: Page, command_settle: float = 8.0) -> None:
        self.page = page
        self.command_settle = command_settle

    def login(self, config: GatewayConfig, link_type: str = "external") -> None:
        url = config.login_url(link_type)
        logger.info("Logging in to gateway %s at %s", config.gateway_id, url)
        try:
            self.page.goto(url, timeout=_ms(120.0))
            self.page.locator("#accountID").fill(config.username)
            self.page.locator("#passwordID2").click()
            self.page.locator("#passwordID").fill(config.password)
            self.page.locator("#passwordID").press("Enter")
            self.page.wait_for_timeout(5000)
        except PlaywrightError as exc:
            raise ConsoleError(f"Login to gateway {config.gateway_id} failed: {exc}") from exc

    def open_port_settings(self) -> None:
        left = self._frame("left")
        try:
            try:
                left.get_by_text("Gateway settings").click(timeout=10000)
            except PlaywrightError:
                logger.warning("Could not click Gateway settings text, trying the menu toggle")
                left.locator("#ID_Settings_Plus_Minus").click(timeout=5000)
            self.page.wait_for_timeout(2000)
            left.get_by_role("link", name="Port Settings").click()
            self.page.wait_for_timeout(5000)
            self._frame("right").locator(self.COMMAND_BOX).wait_for(state="visible", timeout=60000)
        except PlaywrightError as exc:
            raise ConsoleError(f"Port Settings did not load: {exc}") from exc
        logger.info("Port Settings page loaded and ready")

    def open_port_status(self) -> None:
        try:
            self._frame("left").get_by_role("link", name="Port Status").click()
            self.page.wait_for_timeout(10000)
            self._frame("right").locator("table").first.wait_for(state="visible", timeout=60000)
        except PlaywrightError as exc:
            raise ConsoleError(f"Port Status did not load: {exc}") from exc

    def _frame(self, name: str) -> Frame:
        if self.page.is_closed():
            raise ConsoleError("gateway page has been closed")
        frame = self.page.frame(name=name)
        if frame is None:
            raise ConsoleError(f"could not re-acquire the {name} frame")
        return frame

    def send_command(self, command: Command) -> None:
        right = self._frame("right")
        logger.info("Sending AT command: %s", command.value)
        try:
            box = right.locator(self.COMMAND_BOX)
            box.wait_for(state="visible", timeout=30000)
            box.fill(command.value, timeout=5000)
            right.get_by_role("checkbox", name="All").check(timeout=5000)
            right.get_by_role("cell", name=f"{command.value} \u00a0 Send").get_by_role("button").click(timeout=5000)
            self.page.wait_for_timeout(_ms(self.command_settle))
        except PlaywrightError as exc:
            raise ConsoleError(f"Failed to send {command.value}: {exc}") from exc

    def count_ok_markers(self) -> int:
        try:
            return self._frame("right").locator(self.OK_CELLS).count()
        except PlaywrightError as exc:
            raise ConsoleError(f"Could not count OK responses: {exc}") from exc

    def read_response_rows(self) -> List[Optional[str]]:
        try:
            rows = self._frame("right").locator(self.OK_ROWS)
            total = rows.count()
        except PlaywrightError as exc:
            raise ConsoleError(f"Could not read response rows: {exc}") from exc
        texts: List[Optional[str]] = []
        for i in range(total):
            texts.append(self._row_text(rows.nth(i)))
        return texts

    @staticmethod
    def _row_text(row: Any) -> Optional[str]:
        try:
            return row.inner_text(timeout=3000)
        except PlaywrightError:
            pass
        try:
            return row.text_content(timeout=3000)
        except PlaywrightError:
            return None

    def read_status_rows(self) -> List[StatusRow]:
        self.open_port_status()
        try:
            rows = self._frame("right").locator("tr:has(td)")
            total = rows.count()
        except PlaywrightError as exc:
            raise ConsoleError(f"Could not read port status rows: {exc}") from exc
        status_rows: List[StatusRow] = []
        for i in range(total):
            row = rows.nth(i)
            try:
                text = row.text_content(timeout=3000) or ""
                html = row.locator("td").first.inner_html(timeout=3000)
            except PlaywrightError:
                continue
            status_rows.append(StatusRow(text=text, indicator_html=html))
        return status_rows

    def _control(self, control: str) -> Any:
        right = self._frame("right")
        if control == ALL:
            return right.get_by_role("checkbox", name="All")
        if control == LIST_FOOT:
            return right.locator(self.LIST_FOOT_SELECTOR + " > input")
        if control == LIST_FOOT_CELL:
            return right.locator(self.LIST_FOOT_SELECTOR)
        if control == ENABLE:
            return right.get_by_role("checkbox", name="Enable")
        if control == ENABLE_CELL:
            return right.get_by_role("cell", name="Enable", exact=True)
        if control == REFRESH:
            return right.get_by_role("button", name="Refresh")
        raise ConsoleError(f"Unknown Port Settings control: {control}")

    def set_checkbox(self, control: str, checked: bool) -> None:
        try:
            self._control(control).set_checked(checked, timeout=10000)
        except PlaywrightError as exc:
            raise ConsoleError(f"Could not {'check' if checked else 'uncheck'} {control}: {exc}") from exc

    def click_control(self, control: str) -> None:
        try:
            self._control(control).click(timeout=10000)
        except PlaywrightError as exc:
            raise ConsoleError(f"Could not click {control}: {exc}") from exc

    def save_section(self, section: str) -> None:
        button = self.SAVE_BUTTONS.get(section)
        if button is None:
            raise ConsoleError(f"Unknown Port Settings section: {section}")
        logger.info("Saving %s settings", section)
        try:
            self._frame("right").locator(button).click(timeout=10000)
            self.page.wait_for_timeout(2000)
        except PlaywrightError as exc:
            raise ConsoleError(f"Could not save {section}: {exc}") from exc

    def settle(self, seconds: float) -> None:
        try:
            self.page.wait_for_timeout(_ms(seconds))
        except PlaywrightError as exc:
            raise ConsoleError(f"Gateway page went away: {exc}") from exc

    def is_closed(self) -> bool:
        return self.page.is_closed()
