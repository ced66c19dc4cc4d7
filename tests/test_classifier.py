import pytest

from gateway_provisioner.classifier import (
    StatusRow,
    VisualIndicator,
    apply_port_status,
    derive_status,
    detect_carrier,
    indicator_from_html,
)
from gateway_provisioner.models import GatewayDataset


@pytest.mark.parametrize(
    "iccid, carrier",
    [
        ("89014103211118510720", "AT&T"),
        ("8901260123456789012", "T-Mobile"),
        ("89148000001234567890", "Verizon"),
        ("8944500102198304826", "Other/Unknown"),
        ("8901999123456789012", "Other/Unknown"),
        ("890141", "Unknown"),
        (None, "Unknown"),
    ],
)
def test_detect_carrier(iccid: str, carrier: str) -> None:
    assert detect_carrier(iccid) == carrier


@pytest.mark.parametrize(
    "html, indicator",
    [
        ('<span style="color: rgb(255, 0, 0)">&#9679;</span>', VisualIndicator.RED_DOT),
        ('<img src="offline.gif">', VisualIndicator.RED_DOT),
        ('<img src="alert.gif">', VisualIndicator.RED_EXCLAMATION),
        ('<img src="weaksignal.png">', VisualIndicator.GREEN_CIRCLE),
        ('<img src="online.png">', VisualIndicator.GREEN_DOT),
        ("<span>?</span>", VisualIndicator.UNKNOWN),
        ("", VisualIndicator.UNKNOWN),
        (None, VisualIndicator.UNKNOWN),
    ],
)
def test_indicator_from_html(html: str, indicator: VisualIndicator) -> None:
    assert indicator_from_html(html) == indicator


COMPLETE = ()
INCOMPLETE = ("MDN",)


@pytest.mark.parametrize(
    "indicator, missing, status",
    [
        (VisualIndicator.GREEN_DOT, COMPLETE, "active"),
        (VisualIndicator.GREEN_DOT, INCOMPLETE, "error"),
        (VisualIndicator.GREEN_CIRCLE, COMPLETE, "weak-signal"),
        (VisualIndicator.GREEN_CIRCLE, INCOMPLETE, "weak-signal"),
        (VisualIndicator.RED_DOT, COMPLETE, "inactive"),
        (VisualIndicator.RED_DOT, INCOMPLETE, "inactive"),
        (VisualIndicator.RED_EXCLAMATION, COMPLETE, "error"),
        (VisualIndicator.RED_EXCLAMATION, INCOMPLETE, "error"),
        (VisualIndicator.UNKNOWN, COMPLETE, "inactive"),
        (VisualIndicator.UNKNOWN, INCOMPLETE, "inactive"),
    ],
)
def test_derive_status_table(indicator: VisualIndicator, missing: tuple, status: str) -> None:
    assert derive_status(indicator, missing) == status


def test_unknown_indicator_keeps_the_supplied_default() -> None:
    assert derive_status(VisualIndicator.UNKNOWN, (), default="weak-signal") == "weak-signal"


def test_apply_port_status_uses_first_matching_row_per_port() -> None:
    dataset = GatewayDataset.from_attributes(
        imei={"A1": "864000000000001", "A2": "864000000000002"},
        iccid={"A1": "89014103211118510701", "A2": "89014103211118510702"},
        mdn={"A1": "5188184001"},
    )
    rows = [
        StatusRow(text="1A  Registered", indicator_html='<img src="online.png">'),
        StatusRow(text="2A  Registered", indicator_html='<img src="online.png">'),
        StatusRow(text="3A  No SIM", indicator_html='<img src="offline.png">'),
        StatusRow(text="1A  again", indicator_html='<img src="offline.png">'),
        StatusRow(text="Port  Status", indicator_html="<b>header</b>"),
    ]

    updated = apply_port_status(dataset, rows)

    assert updated["A1"].status == "active"
    assert updated["A2"].status == "error"
    assert updated["A3"].status == "inactive"
    assert updated["A4"].status == "inactive"
    assert dataset["A1"].status == "inactive"
