from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
import pytest

from gateway_provisioner.browser import ConsoleError, ElementNotFound, Locator, SessionClosedError, StepError, StepTimeout
from gateway_provisioner.playwright_session import PlaywrightBrowserSession, PlaywrightGatewayConsole, _translated
from gateway_provisioner.port_reload import LIST_FOOT


@pytest.mark.parametrize(
    "error, expected",
    [
        (PlaywrightTimeoutError("Timeout 5000ms exceeded."), StepTimeout),
        (PlaywrightError("Target page, context or browser has been closed"), SessionClosedError),
        (PlaywrightError("strict mode violation: get_by_role resolved to 2 elements"), ElementNotFound),
        (PlaywrightError("Element is not attached to the DOM"), StepError),
    ],
)
def test_playwright_errors_are_translated(error: Exception, expected: type) -> None:
    with pytest.raises(expected) as raised:
        with _translated("click"):
            raise error

    assert str(raised.value).startswith("click: ")
    assert raised.value.__cause__ is error


class _ClosedPage:
    url = "about:blank"

    def is_closed(self) -> bool:
        return True


def test_closed_page_raises_before_any_interaction() -> None:
    session = PlaywrightBrowserSession(_ClosedPage())  # type: ignore[arg-type]

    assert session.is_session_closed()
    with pytest.raises(SessionClosedError):
        session.navigate("https://portal.test/", 30.0)
    with pytest.raises(SessionClosedError):
        session.pause(1.0)
    with pytest.raises(SessionClosedError):
        session.texts(Locator(selector="label"))


def test_reload_controls_on_a_closed_gateway_page_are_console_errors() -> None:
    console = PlaywrightGatewayConsole(_ClosedPage())  # type: ignore[arg-type]

    with pytest.raises(ConsoleError):
        console.set_checkbox(LIST_FOOT, True)
    with pytest.raises(ConsoleError, match="Unknown Port Settings section"):
        console.save_section("firmware")
