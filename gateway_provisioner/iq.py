"""PrepaidIQ line details: enrich the latest gateway inventory with carrier-side data.

Each port with a usable MDN is looked up on the dealer site's line-details
page. The page is read as plain text plus two parallel lists of label and
value texts; ``parse_line_details`` turns those into a ``LineDetails`` without
touching the browser, so the parsing rules are testable on their own.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
import json
import logging
from pathlib import Path
import re
from typing import Dict, List, Optional, Sequence, Union

import pandas as pd

from gateway_provisioner.browser import BrowserSession, Locator, StepError

logger = logging.getLogger(__name__)

IQ_BASE_URL = "https://dealers.prepaidiq.com"
LOGIN_PATH = "/login"
LINE_DETAILS_PATH = "/tools/line-details/"
DEFAULT_LINE_LIMIT = 50

BODY = Locator(selector="body")
LABELS = Locator(selector="label, .label, .field-label, dt, th")
VALUES = Locator(selector="input[readonly], .value, .field-value, dd, td")
EMAIL_FIELD = Locator(selector='input[name="email"], input[type="email"], #email, #username')
PASSWORD_FIELD = Locator(selector='input[name="password"], input[type="password"], #password')
SUBMIT_BUTTON = Locator(
    selector='button[type="submit"], input[type="submit"], button:has-text("Login"), button:has-text("Sign In")'
)

IQ_STATUS_ERROR = "Error"

# First match wins, so a page mentioning both reads as Active.
_STATUS_WORDS = (
    ("Active", re.compile(r"\b(?:Active|ACTIVE)\b")),
    ("Inactive", re.compile(r"\b(?:Inactive|INACTIVE)\b")),
    ("Suspended", re.compile(r"\b(?:Suspended|SUSPENDED)\b")),
)

# label fragment -> LineDetails field
_LABEL_FIELDS = (
    (("plan", "product"), "rate_plan"),
    (("balance", "credit"), "balance"),
    (("expir",), "expiry"),
    (("note",), "dealer_notes"),
)

IQ_COLUMNS: List[str] = ["iq_status", "rate_plan", "balance", "expiry", "dealer_notes"]
_PLACEHOLDER_MDNS = {"N/A", "MISSING"}


@dataclass(frozen=True)
class IQCredentials:
    username: str
    password: str


@dataclass(frozen=True)
class IQSettings:
    base_url: str = IQ_BASE_URL
    line_limit: int = DEFAULT_LINE_LIMIT
    navigation_timeout: float = 60.0
    login_settle: float = 5.0
    page_settle: float = 3.0
    rate_limit: float = 1.0

    def line_url(self, mdn: str) -> str:
        return f"{self.base_url.rstrip('/')}{LINE_DETAILS_PATH}{mdn}"

    def source_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{LINE_DETAILS_PATH}"


@dataclass(frozen=True)
class LineDetails:
    mdn: str
    iq_status: Optional[str] = None
    rate_plan: Optional[str] = None
    balance: Optional[str] = None
    expiry: Optional[str] = None
    dealer_notes: Optional[str] = None
    error: Optional[str] = None

    def as_row(self) -> Dict[str, Optional[str]]:
        row = asdict(self)
        row.pop("error")
        return row


@dataclass
class IQEnrichment:
    frame: pd.DataFrame
    errors: List[str] = field(default_factory=list)


def line_status(body_text: str) -> Optional[str]:
    for status, pattern in _STATUS_WORDS:
        if pattern.search(body_text or ""):
            return status
    return None


def parse_line_details(
    mdn: str,
    body_text: str,
    labels: Sequence[str],
    values: Sequence[str],
) -> LineDetails:
    """Read status from the page text and fields from label/value pairs.

    Labels and values pair up by position. Empty values are ignored and a
    later matching label overwrites an earlier one.
    """
    found: Dict[str, str] = {}
    for label, value in zip(labels, values):
        label = label.strip().lower()
        value = value.strip()
        if not value:
            continue
        for fragments, name in _LABEL_FIELDS:
            if any(fragment in label for fragment in fragments):
                found[name] = value
    return LineDetails(mdn=mdn, iq_status=line_status(body_text), **found)


def login_to_iq(session: BrowserSession, credentials: IQCredentials, settings: IQSettings) -> None:
    """Sign in to the dealer site; ``StepError`` propagates to the caller."""
    logger.info("Logging into PrepaidIQ...")
    session.navigate(settings.base_url.rstrip("/") + LOGIN_PATH, settings.navigation_timeout)
    session.pause(2.0)
    email = session.locate(EMAIL_FIELD)
    session.wait_visible(email, 10.0)
    session.fill(email, credentials.username)
    session.fill(session.locate(PASSWORD_FIELD), credentials.password)
    session.click(session.locate(SUBMIT_BUTTON))
    session.pause(settings.login_settle)
    logger.info("PrepaidIQ login completed.")


def fetch_line_details(session: BrowserSession, mdn: str, settings: IQSettings) -> LineDetails:
    """Look up one MDN. A failed page read becomes an ``Error`` row; a closed session propagates."""
    logger.info("Scraping IQ data for MDN: %s...", mdn)
    try:
        session.navigate(settings.line_url(mdn), settings.navigation_timeout)
        session.pause(settings.page_settle)
        body_text = session.inner_text(session.locate(BODY))
        labels = session.texts(LABELS)
        values = session.texts(VALUES)
    except StepError as exc:
        logger.warning("Failed to scrape IQ for %s: %s", mdn, exc)
        return LineDetails(mdn=mdn, iq_status=IQ_STATUS_ERROR, error=str(exc))
    details = parse_line_details(mdn, body_text, labels, values)
    logger.info("Found IQ data for %s: status=%s plan=%s", mdn, details.iq_status, details.rate_plan)
    return details


def find_latest_inventory(output_dir: Union[str, Path]) -> Optional[Path]:
    folder = Path(output_dir)
    if not folder.is_dir():
        logger.warning("Inventory folder not found: %s", folder)
        return None
    files = sorted(folder.glob("GW_Inventory_*.json"), reverse=True)
    if not files:
        logger.warning("No inventory JSON files found in %s", folder)
        return None
    logger.info("Found latest inventory file: %s", files[0].name)
    return files[0]


def load_inventory_frame(path: Union[str, Path]) -> pd.DataFrame:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    return pd.DataFrame(payload.get("data") or [])


def lines_with_mdn(frame: pd.DataFrame) -> pd.DataFrame:
    """Rows whose MDN looks like a real number: present, not a placeholder, ten digits or more."""
    if frame.empty or "mdn" not in frame.columns:
        return frame.iloc[0:0]
    mdn = frame["mdn"].fillna("").astype(str).str.strip()
    usable = (mdn.str.len() >= 10) & ~mdn.isin(_PLACEHOLDER_MDNS)
    return frame[usable].assign(mdn=mdn[usable])


def enrich_inventory(session: BrowserSession, inventory: pd.DataFrame, settings: IQSettings) -> IQEnrichment:
    """Look up every usable MDN (up to the line limit) and left-join the results onto the inventory rows."""
    lines = lines_with_mdn(inventory).head(settings.line_limit).reset_index(drop=True)
    if lines.empty:
        return IQEnrichment(frame=pd.DataFrame(columns=[*inventory.columns, *IQ_COLUMNS, "data_source"]))
    logger.info("Scraping IQ data for %d lines...", len(lines))
    details: List[LineDetails] = []
    errors: List[str] = []
    for index, mdn in enumerate(lines["mdn"]):
        line = fetch_line_details(session, mdn, settings)
        details.append(line)
        if line.error:
            errors.append(f"{mdn}: {line.error}")
        if index < len(lines) - 1:
            session.pause(settings.rate_limit)

    iq_frame = pd.DataFrame([line.as_row() for line in details], columns=["mdn"] + IQ_COLUMNS)
    frame = lines.merge(iq_frame.drop_duplicates("mdn"), on="mdn", how="left").assign(data_source="combined")
    logger.info("IQ scrape complete. Enhanced %d lines.", len(frame))
    return IQEnrichment(frame=frame, errors=errors)


def enrich_latest_inventory(
    session: BrowserSession,
    output_dir: Union[str, Path],
    credentials: IQCredentials,
    settings: IQSettings,
) -> IQEnrichment:
    """Load the newest inventory report, sign in and enrich it. Setup failures come back as errors."""
    empty = pd.DataFrame()
    path = find_latest_inventory(output_dir)
    if path is None:
        return IQEnrichment(empty, ["No Gateway Inventory file found. Run Inventory scrape first."])
    try:
        inventory = load_inventory_frame(path)
    except (OSError, ValueError) as exc:
        return IQEnrichment(empty, [f"Failed to read inventory file: {exc}"])
    logger.info("Loaded %d ports from inventory.", len(inventory))

    if lines_with_mdn(inventory).empty:
        return IQEnrichment(empty, ["No ports with MDN found in inventory."])
    try:
        login_to_iq(session, credentials, settings)
    except StepError as exc:
        return IQEnrichment(empty, [f"IQ login failed: {exc}"])
    return enrich_inventory(session, inventory, settings)


def format_enriched_report(enrichment: IQEnrichment, generated_at: Optional[datetime] = None) -> str:
    stamp = (generated_at or datetime.now(timezone.utc)).isoformat()
    rule = "=" * 100
    lines = [rule, "PREPAIDIQ LINE DETAILS", f"Generated: {stamp}", rule, ""]
    if enrichment.errors:
        lines.append("ERRORS ENCOUNTERED:")
        lines.extend(f"  - {error}" for error in enrichment.errors)
        lines.append("")
    frame = enrichment.frame
    if frame.empty:
        lines.append("No lines enriched.")
        return "\n".join(lines)
    columns = [column for column in ("gateway", "port", "mdn", "status", *IQ_COLUMNS) if column in frame.columns]
    lines.append(frame[columns].fillna("").rename(columns=str.upper).to_string(index=False, justify="left"))
    return "\n".join(lines)


def save_enriched(
    enrichment: IQEnrichment,
    output_dir: Union[str, Path],
    settings: IQSettings = IQSettings(),
    generated_at: Optional[datetime] = None,
) -> Dict[str, Path]:
    moment = generated_at or datetime.now(timezone.utc)
    folder = Path(output_dir)
    folder.mkdir(parents=True, exist_ok=True)
    day = moment.strftime("%Y-%m-%d")
    frame = enrichment.frame

    records = json.loads(frame.to_json(orient="records")) if not frame.empty else []
    with_iq = int(frame["iq_status"].notna().sum()) if "iq_status" in frame.columns else 0
    payload = {
        "source_url": settings.source_url(),
        "timestamp": moment.isoformat(),
        "data": records,
        "errors": list(enrichment.errors),
        "summary": {"total_lines": len(records), "with_iq_data": with_iq, "errors": len(enrichment.errors)},
    }
    paths = {"json": folder / f"IQ_Enhanced_{day}.json", "txt": folder / f"IQ_Enhanced_{day}.txt"}
    paths["json"].write_text(json.dumps(payload, indent=2), encoding="utf-8")
    paths["txt"].write_text(format_enriched_report(enrichment, moment), encoding="utf-8")
    for kind, path in paths.items():
        logger.info("Enhanced IQ %s saved: %s", kind.upper(), path)
    return paths
