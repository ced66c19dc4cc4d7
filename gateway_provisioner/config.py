"""Run configuration read from the environment and the gateway config file."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import os
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence, Union

from gateway_provisioner.browser import ConfigError
from gateway_provisioner.email_policy import (
    DEFAULT_EMAIL,
    STRATEGIES,
    STRATEGY_SINGLE,
    EmailRotationPolicy,
    load_email_list,
)
from gateway_provisioner.engine import clamp_start_port
from gateway_provisioner.iq import DEFAULT_LINE_LIMIT, IQ_BASE_URL, IQCredentials
from gateway_provisioner.workflows import DEFAULT_REFILL_PLAN, PORTAL_BASE_URL, AccountDetails

PROCESS_ACTIVATION = "activation"
PROCESS_REFILL = "refill"
PROCESSES = (PROCESS_ACTIVATION, PROCESS_REFILL)

LINK_EXTERNAL = "external"
LINK_INTERNAL = "internal"

DEFAULT_START_PORT = 29


@dataclass(frozen=True)
class GatewayConfig:
    gateway_id: str
    url: str
    password: str
    local_url: Optional[str] = None
    username: str = "root"

    def login_url(self, link_type: str = LINK_EXTERNAL) -> str:
        if link_type == LINK_INTERNAL and self.local_url:
            return self.local_url
        return self.url


@dataclass(frozen=True)
class PortalCredentials:
    dealer_code: str
    username: str
    password: str


@dataclass(frozen=True)
class RunConfig:
    process: str = PROCESS_ACTIVATION
    gateway_id: str = ""
    link_type: str = LINK_EXTERNAL
    start_port: int = DEFAULT_START_PORT
    email_policy: EmailRotationPolicy = field(default_factory=EmailRotationPolicy)
    output_dir: Path = field(default_factory=Path.cwd)
    gateway_config_path: Optional[Path] = None
    portal: Optional[PortalCredentials] = None
    portal_base_url: str = PORTAL_BASE_URL
    account: AccountDetails = field(default_factory=AccountDetails)
    refill_plan: str = DEFAULT_REFILL_PLAN
    headless: bool = False
    iq_credentials: Optional[IQCredentials] = None
    iq_base_url: str = IQ_BASE_URL
    iq_line_limit: int = DEFAULT_LINE_LIMIT

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RunConfig":
        env = os.environ if environ is None else environ

        process = _get(env, "PROCESS_KIND", PROCESS_ACTIVATION).lower()
        if process not in PROCESSES:
            raise ConfigError(f"PROCESS_KIND must be one of {', '.join(PROCESSES)}, got {process!r}")

        link_type = _get(env, "LINK_TYPE", LINK_EXTERNAL).lower()
        if link_type == "local":
            link_type = LINK_INTERNAL

        output_dir = Path(_get(env, "OUTPUT_PATH", "") or Path.cwd())
        config_path = _get(env, "GATEWAY_CONFIG_PATH", "")

        portal: Optional[PortalCredentials] = None
        dealer_code = _get(env, "PORTAL_DEALER_CODE", "")
        if dealer_code:
            portal = PortalCredentials(
                dealer_code=dealer_code,
                username=_get(env, "PORTAL_USERNAME", ""),
                password=_get(env, "PORTAL_PASSWORD", ""),
            )

        iq_credentials: Optional[IQCredentials] = None
        iq_username = _get(env, "IQ_USERNAME", "")
        if iq_username:
            iq_credentials = IQCredentials(username=iq_username, password=_get(env, "IQ_PASSWORD", ""))

        defaults = AccountDetails()
        return cls(
            process=process,
            gateway_id=_get(env, "GATEWAY_ID", ""),
            link_type=link_type,
            start_port=_start_port(_get(env, "START_PORT", "")),
            email_policy=_email_policy(env),
            output_dir=output_dir,
            gateway_config_path=Path(config_path) if config_path else None,
            portal=portal,
            portal_base_url=_get(env, "PORTAL_BASE_URL", PORTAL_BASE_URL),
            account=AccountDetails(
                zip_code=_get(env, "ACCOUNT_ZIP", defaults.zip_code),
                pin=_get(env, "ACCOUNT_PIN", defaults.pin),
                contact_phone=_get(env, "CONTACT_PHONE", defaults.contact_phone),
            ),
            refill_plan=_get(env, "REFILL_PLAN", DEFAULT_REFILL_PLAN),
            headless=_get(env, "HEADLESS", "false").lower() in {"1", "true", "yes"},
            iq_credentials=iq_credentials,
            iq_base_url=_get(env, "IQ_BASE_URL", IQ_BASE_URL),
            iq_line_limit=_positive_int(_get(env, "IQ_LINE_LIMIT", ""), DEFAULT_LINE_LIMIT),
        )


def _get(env: Mapping[str, str], name: str, default: str) -> str:
    return (env.get(name, "") or "").strip() or default


def _positive_int(raw: str, default: int) -> int:
    try:
        value = int(raw) if raw else default
    except ValueError:
        return default
    return value if value > 0 else default


def _start_port(raw: str) -> int:
    try:
        value = int(raw) if raw else DEFAULT_START_PORT
    except ValueError:
        value = DEFAULT_START_PORT
    return clamp_start_port(value)


def _email_policy(env: Mapping[str, str]) -> EmailRotationPolicy:
    strategy = _get(env, "EMAIL_STRATEGY", STRATEGY_SINGLE).lower()
    if strategy not in STRATEGIES:
        strategy = STRATEGY_SINGLE
    try:
        n = max(1, int(_get(env, "EMAIL_N", "1")))
    except ValueError:
        n = 1
    addresses: Sequence[str] = ()
    if strategy != STRATEGY_SINGLE:
        addresses = tuple(load_email_list(_get(env, "EMAIL_LIST_PATH", "emails.json")))
    return EmailRotationPolicy(
        strategy=strategy,
        addresses=addresses,
        single_address=_get(env, "EMAIL_SINGLE", DEFAULT_EMAIL),
        n=n,
    )


def load_gateway_configs(path: Union[str, Path]) -> Dict[str, GatewayConfig]:
    """Read ``{"101": {"url": ..., "password": ..., "local_url": ...}, ...}``."""
    source = Path(path)
    try:
        payload = json.loads(source.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"Gateway config file not found: {source}") from exc
    except ValueError as exc:
        raise ConfigError(f"Invalid gateway config JSON in {source}: {exc}") from exc

    configs: Dict[str, GatewayConfig] = {}
    for gateway_id, entry in (payload or {}).items():
        if not isinstance(entry, dict) or not entry.get("url") or not entry.get("password"):
            raise ConfigError(f"Config missing or incomplete for gateway {gateway_id}")
        configs[str(gateway_id)] = GatewayConfig(
            gateway_id=str(gateway_id),
            url=str(entry["url"]),
            password=str(entry["password"]),
            local_url=entry.get("local_url") or None,
            username=str(entry.get("username") or "root"),
        )
    return configs


def gateway_config(configs: Mapping[str, GatewayConfig], gateway_id: str) -> GatewayConfig:
    try:
        return configs[gateway_id]
    except KeyError:
        raise ConfigError(f"Gateway {gateway_id!r} is not configured") from None
