"""Batch provisioning state machine.

Every port walks the same states::

    INIT -> FILL_IDENTIFIER_A -> CONTINUE_1 -> FILL_IDENTIFIER_B -> CONTINUE_2
         -> FILL_ACCOUNT_DETAILS -> SUBMIT -> SUCCESS | FAILURE -> RESET -> NEXT

``transition`` is the only place page interactions happen. It returns the next
state plus at most one outcome and never touches counters or the run log;
``ProvisioningEngine.run`` threads the email counter and records outcomes.
A closed session is the single edge into ``ABORT``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
import logging
from typing import TYPE_CHECKING, Dict, FrozenSet, List, Mapping, Optional, Tuple

from gateway_provisioner.browser import BrowserSession, Locator, SessionClosedError, StepError
from gateway_provisioner.email_policy import EmailRotationPolicy
from gateway_provisioner.models import (
    OUTCOME_FAILED,
    OUTCOME_SKIPPED,
    OUTCOME_SUCCESS,
    PORT_COUNT,
    GatewayDataset,
    PortRecord,
    ProvisioningOutcome,
    port_key,
)
from gateway_provisioner.run_log import RunLog

if TYPE_CHECKING:
    from gateway_provisioner.workflows import WorkflowDefinition

logger = logging.getLogger(__name__)


class State(Enum):
    INIT = "Init"
    FILL_IDENTIFIER_A = "FillIdentifierA"
    CONTINUE_1 = "Continue1"
    FILL_IDENTIFIER_B = "FillIdentifierB"
    CONTINUE_2 = "Continue2"
    FILL_ACCOUNT_DETAILS = "FillAccountDetails"
    SUBMIT = "Submit"
    SUCCESS = "Success"
    FAILURE = "Failure"
    RESET = "Reset"
    NEXT = "Next"
    ABORT = "Abort"

    @classmethod
    def action_states(cls) -> FrozenSet["State"]:
        return frozenset(_ACTION_FLOW)


_ACTION_FLOW: Dict[State, State] = {
    State.FILL_IDENTIFIER_A: State.CONTINUE_1,
    State.CONTINUE_1: State.FILL_IDENTIFIER_B,
    State.FILL_IDENTIFIER_B: State.CONTINUE_2,
    State.CONTINUE_2: State.FILL_ACCOUNT_DETAILS,
    State.FILL_ACCOUNT_DETAILS: State.SUBMIT,
    State.SUBMIT: State.SUCCESS,
}

BODY = Locator(selector="body")


@dataclass(frozen=True)
class EngineSettings:
    settle_seconds: float = 5.0
    entry_settle_seconds: float = 2.0
    navigation_timeout: float = 30.0
    snippet_lines: int = 10
    snippet_timeout: float = 3.0
    url_poll_interval: float = 0.5


@dataclass(frozen=True)
class PortContext:
    index: int
    record: PortRecord
    values: Mapping[str, Optional[str]]
    failure_stage: Optional[str] = None
    failure_detail: str = ""

    @property
    def port(self) -> str:
        return self.record.port

    @classmethod
    def for_port(
        cls,
        index: int,
        record: PortRecord,
        email: str,
        static_values: Optional[Mapping[str, str]] = None,
    ) -> "PortContext":
        values: Dict[str, Optional[str]] = dict(static_values or {})
        values.update(imei=record.imei, iccid=record.iccid, mdn=record.mdn, email=email)
        return cls(index=index, record=record, values=values)


@dataclass(frozen=True)
class Transition:
    state: State
    context: PortContext
    outcome: Optional[ProvisioningOutcome] = None
    diagnostic: Optional[str] = None


def page_snippet(session: BrowserSession, settings: EngineSettings) -> str:
    """First lines of the page's visible text, joined for a single log line."""
    try:
        text = session.inner_text(session.locate(BODY), settings.snippet_timeout) or ""
    except StepError:
        return ""
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return " | ".join(lines[: settings.snippet_lines])


def transition(
    state: State,
    ctx: PortContext,
    session: BrowserSession,
    workflow: "WorkflowDefinition",
    settings: EngineSettings,
) -> Transition:
    try:
        return _step(state, ctx, session, workflow, settings)
    except SessionClosedError as exc:
        return Transition(State.ABORT, ctx, diagnostic=str(exc))


def _step(
    state: State,
    ctx: PortContext,
    session: BrowserSession,
    workflow: "WorkflowDefinition",
    settings: EngineSettings,
) -> Transition:
    if state is State.INIT:
        if session.is_session_closed():
            return Transition(State.ABORT, ctx, diagnostic="session reported closed")
        for field_name in workflow.required_fields:
            if not ctx.record.value(field_name):
                reason = f"{field_name.upper()} is null or missing"
                return Transition(State.NEXT, ctx, ProvisioningOutcome.skipped(ctx.port, reason))
        return Transition(State.FILL_IDENTIFIER_A, ctx)

    if state in _ACTION_FLOW:
        try:
            for interaction in workflow.interactions(state):
                interaction.perform(session, ctx.values)
        except StepError as exc:
            return Transition(State.FAILURE, replace(ctx, failure_stage=state.value, failure_detail=str(exc)))
        if state is State.SUBMIT and not workflow.success.reached(session, settings.url_poll_interval):
            detail = "confirmation marker not found"
            return Transition(State.FAILURE, replace(ctx, failure_stage=state.value, failure_detail=detail))
        return Transition(_ACTION_FLOW[state], ctx)

    if state is State.SUCCESS:
        outcome = ProvisioningOutcome.success(ctx.port, f"URL:{session.current_url()}")
        return Transition(State.RESET, ctx, outcome)

    if state is State.FAILURE:
        outcome = ProvisioningOutcome.failed(ctx.port, ctx.failure_stage or "Unknown", ctx.failure_detail)
        return Transition(State.RESET, ctx, outcome, diagnostic=page_snippet(session, settings) or None)

    if state is State.RESET:
        try:
            session.navigate(workflow.entry_url, settings.navigation_timeout)
        except StepError as exc:
            session.pause(settings.settle_seconds)
            return Transition(State.NEXT, ctx, diagnostic=f"reset navigation failed: {exc}")
        session.pause(settings.settle_seconds)
        return Transition(State.NEXT, ctx)

    raise ValueError(f"No transition out of terminal state {state.name}")


@dataclass(frozen=True)
class PortResult:
    outcome: Optional[ProvisioningOutcome]
    aborted: bool = False


@dataclass(frozen=True)
class RunSummary:
    workflow: str
    start_port: int
    outcomes: Tuple[ProvisioningOutcome, ...] = field(default_factory=tuple)
    aborted: bool = False

    def count(self, kind: str) -> int:
        return sum(1 for outcome in self.outcomes if outcome.kind == kind)

    @property
    def succeeded(self) -> int:
        return self.count(OUTCOME_SUCCESS)

    @property
    def failed(self) -> int:
        return self.count(OUTCOME_FAILED)

    @property
    def skipped(self) -> int:
        return self.count(OUTCOME_SKIPPED)

    def outcome_for(self, port: str) -> Optional[ProvisioningOutcome]:
        for outcome in self.outcomes:
            if outcome.port == port:
                return outcome
        return None


def clamp_start_port(value: int) -> int:
    return max(1, min(PORT_COUNT, int(value)))


class ProvisioningEngine:
    def __init__(
        self,
        session: BrowserSession,
        workflow: "WorkflowDefinition",
        run_log: RunLog,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        workflow.validate()
        self.session = session
        self.workflow = workflow
        self.run_log = run_log
        self.settings = settings or EngineSettings()

    def open_entry(self) -> None:
        try:
            self.session.navigate(self.workflow.entry_url, self.settings.navigation_timeout)
            self.session.pause(self.settings.entry_settle_seconds)
        except StepError as exc:
            logger.warning("Could not open %s before the run: %s", self.workflow.entry_url, exc)

    def run(
        self,
        dataset: GatewayDataset,
        start_port: int = 1,
        email_policy: Optional[EmailRotationPolicy] = None,
    ) -> RunSummary:
        policy = email_policy or EmailRotationPolicy()
        start = clamp_start_port(start_port)
        self.run_log.start(f"{self.workflow.name.capitalize()} run from A{start}")
        logger.info("Starting %s loop from port A%d, %s", self.workflow.name, start, policy.describe())

        try:
            self.open_entry()
        except SessionClosedError as exc:
            self.run_log.event("-", "FATAL", f"session closed before the first port: {exc}")
            return RunSummary(self.workflow.name, start, aborted=True)

        outcomes: List[ProvisioningOutcome] = []
        attempts = 0
        aborted = False
        for index in range(start, PORT_COUNT + 1):
            record = dataset[port_key(index)]
            result = self.process_port(index, record, policy.select(attempts))
            if result.aborted:
                aborted = True
                break
            if result.outcome is None:
                continue
            outcomes.append(result.outcome)
            if result.outcome.kind != OUTCOME_SKIPPED:
                attempts += 1

        summary = RunSummary(self.workflow.name, start, tuple(outcomes), aborted)
        self.run_log.write(
            f"==== {self.workflow.name.capitalize()} run finished: {summary.succeeded} succeeded, "
            f"{summary.failed} failed, {summary.skipped} skipped{' (aborted)' if aborted else ''} ===="
        )
        return summary

    def process_port(self, index: int, record: PortRecord, email: str) -> PortResult:
        ctx = PortContext.for_port(index, record, email, self.workflow.static_values)
        state = State.INIT
        outcome: Optional[ProvisioningOutcome] = None
        while state is not State.NEXT:
            if state is State.FILL_IDENTIFIER_A:
                self.run_log.event(ctx.port, "START", self._attempt_detail(ctx))
            step = transition(state, ctx, self.session, self.workflow, self.settings)
            if step.state is State.ABORT:
                self.run_log.event(ctx.port, "FATAL", f"session closed: {step.diagnostic}. Aborting remaining ports.")
                return PortResult(outcome=None, aborted=True)
            if step.outcome is not None:
                outcome = step.outcome
                self.run_log.record(outcome)
            if step.diagnostic:
                event = "PAGE_TEXT" if state is State.FAILURE else "WARNING"
                self.run_log.event(ctx.port, event, step.diagnostic)
            state, ctx = step.state, step.context
        return PortResult(outcome=outcome)

    def _attempt_detail(self, ctx: PortContext) -> str:
        parts = [f"{name.upper()}:{ctx.values.get(name)}" for name in self.workflow.required_fields]
        if self.workflow.uses_email:
            parts.append(f"EMAIL:{ctx.values.get('email')}")
        return " ".join(parts)
