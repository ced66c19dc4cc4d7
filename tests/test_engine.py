from pathlib import Path
from typing import Optional

import pytest
from fakes import FakeBrowserSession

from gateway_provisioner.browser import SessionClosedError, StepTimeout
from gateway_provisioner.email_policy import EmailRotationPolicy
from gateway_provisioner.engine import (
    EngineSettings,
    PortContext,
    ProvisioningEngine,
    State,
    clamp_start_port,
    transition,
)
from gateway_provisioner.models import GatewayDataset, PortRecord
from gateway_provisioner.run_log import RunLog
from gateway_provisioner.workflows import activation_workflow, refill_workflow

SETTINGS = EngineSettings(settle_seconds=0.0, url_poll_interval=0.5)


def _imei(index: int) -> str:
    return f"8640000000000{index:02d}"


def _iccid(index: int) -> str:
    return f"890141032111185107{index:02d}"


def _activation_dataset(*ports: int, without_iccid: tuple = ()) -> GatewayDataset:
    return GatewayDataset.from_attributes(
        imei={f"A{i}": _imei(i) for i in ports},
        iccid={f"A{i}": _iccid(i) for i in ports if i not in without_iccid},
    )


def _engine(session: FakeBrowserSession, tmp_path: Path, workflow=None) -> ProvisioningEngine:
    run_log = RunLog(tmp_path / "activation_run.log")
    return ProvisioningEngine(session, workflow or activation_workflow(), run_log, SETTINGS)


def test_happy_path_walks_every_activation_step(tmp_path: Path) -> None:
    session = FakeBrowserSession(after_submit=lambda form: "https://portal/Activate/Receipt/1")
    engine = _engine(session, tmp_path)

    summary = engine.run(_activation_dataset(1), start_port=1)
    engine.run_log.close()

    assert summary.succeeded == 1
    assert summary.skipped == 63
    assert summary.outcome_for("A1").detail == "URL:https://portal/Activate/Receipt/1"
    assert session.fills("IMEI") == [_imei(1)]
    assert session.fills("Enter SIM #") == [_iccid(1)]
    assert session.fills("Account PIN") == ["335656"]
    assert session.fills("Confirm PIN") == ["335656"]
    assert session.fills("Contact Email") == ["rb@usa.com"]
    assert any(line.startswith("A1 START IMEI:") for line in engine.run_log.lines)


def test_skipped_port_does_not_advance_email_rotation(tmp_path: Path) -> None:
    session = FakeBrowserSession()
    engine = _engine(session, tmp_path)
    policy = EmailRotationPolicy(strategy="loop", addresses=("a@x.com", "b@x.com", "c@x.com"))

    summary = engine.run(_activation_dataset(1, 2, 3, without_iccid=(2,)), start_port=1, email_policy=policy)
    engine.run_log.close()

    assert session.fills("Contact Email") == ["a@x.com", "b@x.com"]
    skipped = summary.outcome_for("A2")
    assert skipped.kind == "skipped"
    assert skipped.detail == "ICCID is null or missing"
    assert "A2 SKIPPED ICCID is null or missing" in engine.run_log.lines


def test_submit_failure_is_isolated_to_its_port(tmp_path: Path) -> None:
    def hook(session: FakeBrowserSession, action: str, target: str, text: Optional[str]) -> Optional[Exception]:
        if action == "click" and target == "Submit" and session.form.get("IMEI") == _imei(5):
            return StepTimeout("Submit button timed out")
        return None

    session = FakeBrowserSession(hook=hook, body_text="Activation\nInvalid SIM\n\nTry again")
    engine = _engine(session, tmp_path)

    summary = engine.run(_activation_dataset(4, 5, 6), start_port=4)
    engine.run_log.close()

    assert [summary.outcome_for(p).kind for p in ("A4", "A5", "A6")] == ["success", "failed", "success"]
    failed = summary.outcome_for("A5")
    assert failed.stage == "Submit"
    assert "Submit button timed out" in failed.detail
    assert "A5 PAGE_TEXT Activation | Invalid SIM | Try again" in engine.run_log.lines
    assert session.fills("IMEI") == [_imei(4), _imei(5), _imei(6)]
    assert session.fills("Enter SIM #")[-1] == _iccid(6)
    navigations = [target for action, target, _ in session.actions if action == "navigate"]
    assert navigations.count(engine.workflow.entry_url) == 4


def test_missing_confirmation_marker_fails_the_submit_stage(tmp_path: Path) -> None:
    def hook(session: FakeBrowserSession, action: str, target: str, text: Optional[str]) -> Optional[Exception]:
        if action == "wait" and target.startswith("heading"):
            return StepTimeout("receipt heading never appeared")
        return None

    session = FakeBrowserSession(hook=hook)
    engine = _engine(session, tmp_path)

    summary = engine.run(_activation_dataset(64), start_port=64)
    engine.run_log.close()

    outcome = summary.outcome_for("A64")
    assert outcome.kind == "failed"
    assert outcome.stage == "Submit"
    assert outcome.detail == "confirmation marker not found"


def test_closed_session_aborts_the_remaining_ports(tmp_path: Path) -> None:
    def hook(session: FakeBrowserSession, action: str, target: str, text: Optional[str]) -> Optional[Exception]:
        if action == "fill" and text == _imei(10):
            session.closed = True
            return SessionClosedError("Target page, context or browser has been closed")
        return None

    session = FakeBrowserSession(hook=hook)
    engine = _engine(session, tmp_path)

    summary = engine.run(_activation_dataset(9, 10, 11), start_port=9)
    engine.run_log.close()

    assert summary.aborted
    assert [outcome.port for outcome in summary.outcomes] == ["A9"]
    assert summary.outcome_for("A10") is None
    assert _imei(11) not in session.fills("IMEI")
    assert any(line.startswith("A10 FATAL session closed") for line in engine.run_log.lines)
    assert engine.run_log.lines[-1].endswith("(aborted) ====")


def test_reset_navigation_failure_is_logged_and_the_run_continues(tmp_path: Path) -> None:
    calls = {"navigate": 0}

    def hook(session: FakeBrowserSession, action: str, target: str, text: Optional[str]) -> Optional[Exception]:
        if action == "navigate":
            calls["navigate"] += 1
            if calls["navigate"] == 2:
                return StepTimeout("navigation timed out")
        return None

    session = FakeBrowserSession(hook=hook)
    engine = _engine(session, tmp_path)

    summary = engine.run(_activation_dataset(1, 2), start_port=1)
    engine.run_log.close()

    assert summary.outcome_for("A1").kind == "success"
    assert summary.outcome_for("A2").kind == "success"
    assert any(line.startswith("A1 WARNING reset navigation failed") for line in engine.run_log.lines)


def test_refill_success_and_failure_are_read_from_the_url(tmp_path: Path) -> None:
    def landing(form: dict) -> str:
        if form.get("Phone Number") == "5188184001":
            return "https://portal/Refill/Receipt/991"
        return "https://portal/Refill/MobileX/?error=1"

    session = FakeBrowserSession(after_submit=landing)
    dataset = GatewayDataset.from_attributes(mdn={"A1": "5188184001", "A2": "5188184002"})
    engine = ProvisioningEngine(session, refill_workflow(), RunLog(tmp_path / "refill_run.log"), SETTINGS)

    summary = engine.run(dataset, start_port=1)
    engine.run_log.close()

    assert summary.outcome_for("A1").kind == "success"
    assert summary.outcome_for("A1").detail == "URL:https://portal/Refill/Receipt/991"
    assert summary.outcome_for("A2").kind == "failed"
    assert summary.outcome_for("A2").stage == "Submit"
    assert summary.outcome_for("A3").detail == "MDN is null or missing"
    clicks = [target for action, target, _ in session.actions if action == "click"]
    assert clicks[:3] == ["Phone Number", "Lookup Phone Number", "$20 / mo"]
    assert "Purchase Refill" in clicks


def test_init_transition_skips_incomplete_records() -> None:
    session = FakeBrowserSession()
    ctx = PortContext.for_port(3, PortRecord("A3", iccid=_iccid(3)), "a@x.com")

    step = transition(State.INIT, ctx, session, activation_workflow(), SETTINGS)

    assert step.state is State.NEXT
    assert step.outcome.kind == "skipped"
    assert step.outcome.detail == "IMEI is null or missing"
    assert session.actions == []


def test_init_transition_aborts_on_closed_session() -> None:
    session = FakeBrowserSession()
    session.closed = True
    ctx = PortContext.for_port(1, PortRecord("A1", imei=_imei(1), iccid=_iccid(1)), "a@x.com")

    assert transition(State.INIT, ctx, session, activation_workflow(), SETTINGS).state is State.ABORT


def test_terminal_states_have_no_transition() -> None:
    ctx = PortContext.for_port(1, PortRecord("A1"), "a@x.com")

    with pytest.raises(ValueError):
        transition(State.NEXT, ctx, FakeBrowserSession(), activation_workflow(), SETTINGS)


@pytest.mark.parametrize("value, expected", [(0, 1), (-3, 1), (29, 29), (64, 64), (65, 64)])
def test_clamp_start_port(value: int, expected: int) -> None:
    assert clamp_start_port(value) == expected


def test_closed_session_wins_over_missing_identifiers() -> None:
    session = FakeBrowserSession()
    session.closed = True
    ctx = PortContext.for_port(4, PortRecord("A4"), "a@x.com")

    step = transition(State.INIT, ctx, session, activation_workflow(), SETTINGS)

    assert step.state is State.ABORT
    assert step.outcome is None


def test_entry_page_settle_comes_from_settings(tmp_path: Path) -> None:
    session = FakeBrowserSession()
    settings = EngineSettings(settle_seconds=0.0, entry_settle_seconds=0.25)
    engine = ProvisioningEngine(session, activation_workflow(), RunLog(tmp_path / "activation_run.log"), settings)

    engine.open_entry()
    engine.run_log.close()

    assert session.url == engine.workflow.entry_url
    assert session.paused == 0.25
