"""Declarative definitions of the external activation and refill workflows.

A workflow maps each action state of the provisioning engine to the page
interactions it performs. States a workflow does not list pass straight
through, so the refill flow (phone lookup, plan pick, purchase) runs on the
same state machine as the activation flow (IMEI, SIM, account details).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence, Tuple, Union

from gateway_provisioner.browser import BrowserSession, Locator, StepError
from gateway_provisioner.engine import State

PORTAL_BASE_URL = "https://www.modernwirelessusa.com"
ACTIVATION_PATH = "/Activate/MobileX/Activation/MOBILEX/00001777"
REFILL_PATH = "/Refill/MobileX"
DEFAULT_REFILL_PLAN = "$20 / mo"


@dataclass(frozen=True)
class Fill:
    """Wait for a field (optionally), click it, then type ``values[source]``."""

    locator: Locator
    source: str
    wait: Optional[float] = None
    timeout: float = 5.0

    def perform(self, session: BrowserSession, values: Mapping[str, Optional[str]]) -> None:
        text = values.get(self.source)
        if not text:
            raise StepError(f"No value for {self.source}")
        handle = session.locate(self.locator)
        if self.wait:
            session.wait_visible(handle, self.wait)
        session.click(handle, self.timeout)
        session.fill(handle, text, self.timeout)


@dataclass(frozen=True)
class Click:
    locator: Locator
    wait: Optional[float] = None
    timeout: float = 10.0

    def perform(self, session: BrowserSession, values: Mapping[str, Optional[str]]) -> None:
        handle = session.locate(self.locator)
        if self.wait:
            session.wait_visible(handle, self.wait)
        session.click(handle, self.timeout)


Interaction = Union[Fill, Click]


@dataclass(frozen=True)
class HeadingMarker:
    locator: Locator
    timeout: float = 25.0

    def reached(self, session: BrowserSession, poll_interval: float = 0.5) -> bool:
        try:
            session.wait_visible(session.locate(self.locator), self.timeout)
        except StepError:
            return False
        return True


@dataclass(frozen=True)
class UrlMarker:
    """Success once the URL contains ``success_fragment``.

    Landing on ``failure_fragment`` ends the wait early as a failure.
    """

    success_fragment: str
    failure_fragment: Optional[str] = None
    timeout: float = 25.0

    def reached(self, session: BrowserSession, poll_interval: float = 0.5) -> bool:
        waited = 0.0
        while True:
            url = session.current_url()
            if self.success_fragment in url:
                return True
            if self.failure_fragment and self.failure_fragment in url:
                return False
            if waited >= self.timeout:
                return False
            session.pause(poll_interval)
            waited += poll_interval


SuccessMarker = Union[HeadingMarker, UrlMarker]


@dataclass(frozen=True)
class AccountDetails:
    zip_code: str = "12222"
    pin: str = "335656"
    contact_phone: str = "5555555555"

    def as_values(self) -> Mapping[str, str]:
        return {"zip": self.zip_code, "pin": self.pin, "phone": self.contact_phone}


@dataclass(frozen=True)
class WorkflowDefinition:
    name: str
    entry_url: str
    required_fields: Tuple[str, ...]
    steps: Mapping[State, Sequence[Interaction]]
    success: SuccessMarker
    static_values: Mapping[str, str] = field(default_factory=dict)

    def interactions(self, state: State) -> Sequence[Interaction]:
        return self.steps.get(state, ())

    @property
    def uses_email(self) -> bool:
        return any(
            isinstance(interaction, Fill) and interaction.source == "email"
            for interactions in self.steps.values()
            for interaction in interactions
        )

    def validate(self) -> None:
        for state in self.steps:
            if state not in State.action_states():
                raise ValueError(f"{self.name}: {state.name} is not an action state.")


def _textbox(name: str) -> Locator:
    return Locator(role="textbox", name=name)


def _button(name: str) -> Locator:
    return Locator(role="button", name=name)


def activation_workflow(
    account: Optional[AccountDetails] = None,
    base_url: str = PORTAL_BASE_URL,
) -> WorkflowDefinition:
    account = account or AccountDetails()
    return WorkflowDefinition(
        name="activation",
        entry_url=base_url.rstrip("/") + ACTIVATION_PATH,
        required_fields=("imei", "iccid"),
        steps={
            State.FILL_IDENTIFIER_A: (Fill(_textbox("IMEI"), "imei", wait=10.0),),
            State.CONTINUE_1: (Click(_button("Continue"), timeout=10.0),),
            State.FILL_IDENTIFIER_B: (Fill(_textbox("Enter SIM #"), "iccid", wait=15.0),),
            State.CONTINUE_2: (Click(_button("Continue"), timeout=15.0),),
            State.FILL_ACCOUNT_DETAILS: (
                Fill(_textbox("Account Zip Code"), "zip", wait=15.0),
                Fill(_textbox("Account PIN"), "pin"),
                Fill(_textbox("Confirm PIN"), "pin"),
                Fill(_textbox("Contact Email"), "email"),
                Fill(_textbox("Contact Phone #"), "phone"),
            ),
            State.SUBMIT: (Click(_button("Submit"), timeout=25.0),),
        },
        success=HeadingMarker(Locator(role="heading", name="Activation Receipt"), timeout=25.0),
        static_values=account.as_values(),
    )


def refill_workflow(plan_name: str = DEFAULT_REFILL_PLAN, base_url: str = PORTAL_BASE_URL) -> WorkflowDefinition:
    return WorkflowDefinition(
        name="refill",
        entry_url=base_url.rstrip("/") + REFILL_PATH,
        required_fields=("mdn",),
        steps={
            State.FILL_IDENTIFIER_A: (Fill(_textbox("Phone Number"), "mdn", wait=10.0),),
            State.CONTINUE_1: (Click(_button("Lookup Phone Number"), timeout=10.0),),
            State.FILL_IDENTIFIER_B: (Click(Locator(role="link", name=plan_name), wait=20.0, timeout=5.0),),
            State.SUBMIT: (Click(_button("Purchase Refill"), timeout=10.0),),
        },
        success=UrlMarker("/Refill/Receipt/", failure_fragment="/Refill/MobileX/", timeout=25.0),
    )
