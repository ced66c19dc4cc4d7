"""Command-line entry point: ``python -m gateway_provisioner <command>``."""

from __future__ import annotations

import argparse
from dataclasses import replace
import logging
from typing import Dict, List, Optional, Sequence

from playwright.sync_api import Browser, sync_playwright

from gateway_provisioner.browser import ConfigError, ProvisionerError
from gateway_provisioner.config import (
    PROCESS_ACTIVATION,
    PROCESS_REFILL,
    GatewayConfig,
    RunConfig,
    gateway_config,
    load_gateway_configs,
)
from gateway_provisioner.dataset_builder import PortDatasetBuilder
from gateway_provisioner.engine import ProvisioningEngine, RunSummary
from gateway_provisioner.extractor import Command
from gateway_provisioner.inventory import dataset_frame, save_inventory, scrape_all_gateways
from gateway_provisioner.iq import IQSettings, enrich_latest_inventory, save_enriched
from gateway_provisioner.logging_setup import configure_logging
from gateway_provisioner.playwright_session import (
    PlaywrightBrowserSession,
    PlaywrightGatewayConsole,
    login_to_portal,
)
from gateway_provisioner.port_reload import run_reload_sequence
from gateway_provisioner.run_log import RunLog
from gateway_provisioner.storage import load_checkpoint, save_attribute_values
from gateway_provisioner.workflows import WorkflowDefinition, activation_workflow, refill_workflow

logger = logging.getLogger(__name__)

PORTAL_LOGIN_PATH = "/Account/LogOn"

PROCESS_COMMANDS = {
    PROCESS_ACTIVATION: (Command.IMEI, Command.ICCID),
    PROCESS_REFILL: (Command.MDN,),
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gateway_provisioner", description=__doc__)
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-file", default=None)
    sub = parser.add_subparsers(dest="command", required=True)

    scrape = sub.add_parser("scrape", help="Read IMEI/ICCID/MDN from one gateway into the record files.")
    scrape.add_argument("--gateway", default=None, help="Gateway id (defaults to GATEWAY_ID).")
    scrape.add_argument(
        "--attribute",
        action="append",
        choices=[command.attribute for command in Command],
        help="Attribute to scrape; repeat for several. Defaults to the ones PROCESS_KIND needs.",
    )

    for name in ("activate", "refill"):
        run = sub.add_parser(name, help=f"Run the {name} workflow over the saved record files.")
        run.add_argument("--start-port", type=int, default=None, help="Overrides START_PORT.")

    sub.add_parser("inventory", help="Scrape every configured gateway and write the inventory report.")
    sub.add_parser("enrich", help="Look up the latest inventory's MDNs on PrepaidIQ and write the combined report.")

    reload = sub.add_parser("reload", help="Run the Port Settings reload sequence on one gateway.")
    reload.add_argument("--gateway", default=None, help="Gateway id (defaults to GATEWAY_ID).")
    return parser


def _gateway_configs(config: RunConfig) -> Dict[str, GatewayConfig]:
    if config.gateway_config_path is None:
        raise ConfigError("GATEWAY_CONFIG_PATH is not set")
    return load_gateway_configs(config.gateway_config_path)


def _open_console(browser: Browser, gateway: GatewayConfig, link_type: str) -> PlaywrightGatewayConsole:
    console = PlaywrightGatewayConsole(browser.new_page())
    console.login(gateway, link_type)
    console.open_port_settings()
    return console


def scrape_gateway(config: RunConfig, gateway_id: str, commands: Sequence[Command]) -> None:
    gateway = gateway_config(_gateway_configs(config), gateway_id)
    with sync_playwright() as playwright:
        browser = playwright.chromium.launch(headless=config.headless)
        try:
            console = _open_console(browser, gateway, config.link_type)
            builder = PortDatasetBuilder(console)
            for command in commands:
                result = builder.build(command)
                save_attribute_values(config.output_dir, command, result.values)
        finally:
            browser.close()


def provision(config: RunConfig, workflow: WorkflowDefinition) -> RunSummary:
    if config.portal is None:
        raise ConfigError("PORTAL_DEALER_CODE is not set")
    dataset = load_checkpoint(config.output_dir, PROCESS_COMMANDS[config.process], gateway_id=config.gateway_id)
    log_path = config.output_dir / f"{workflow.name}_run.log"

    with sync_playwright() as playwright, RunLog(log_path) as run_log:
        browser = playwright.chromium.launch(headless=config.headless)
        try:
            session = PlaywrightBrowserSession(browser.new_page())
            login_to_portal(session, config.portal_base_url.rstrip("/") + PORTAL_LOGIN_PATH, config.portal)
            engine = ProvisioningEngine(session, workflow, run_log)
            summary = engine.run(dataset, start_port=config.start_port, email_policy=config.email_policy)
        finally:
            browser.close()

    logger.info(
        "%s finished: %d succeeded, %d failed, %d skipped%s",
        workflow.name,
        summary.succeeded,
        summary.failed,
        summary.skipped,
        " (aborted)" if summary.aborted else "",
    )
    return summary


def inventory(config: RunConfig) -> None:
    configs = _gateway_configs(config)
    with sync_playwright() as playwright:
        browser = playwright.chromium.launch(headless=config.headless)
        try:
            scrape = scrape_all_gateways(configs, lambda gateway: _open_console(browser, gateway, config.link_type))
        finally:
            browser.close()
    save_inventory(dataset_frame(scrape.datasets), scrape.errors, config.output_dir)


def enrich(config: RunConfig) -> None:
    if config.iq_credentials is None:
        raise ConfigError("IQ_USERNAME is not set")
    settings = IQSettings(base_url=config.iq_base_url, line_limit=config.iq_line_limit)
    with sync_playwright() as playwright:
        browser = playwright.chromium.launch(headless=config.headless)
        try:
            session = PlaywrightBrowserSession(browser.new_page())
            enrichment = enrich_latest_inventory(session, config.output_dir, config.iq_credentials, settings)
        finally:
            browser.close()
    for error in enrichment.errors:
        logger.warning("%s", error)
    save_enriched(enrichment, config.output_dir, settings)


def reload_ports(config: RunConfig, gateway_id: str) -> int:
    gateway = gateway_config(_gateway_configs(config), gateway_id)
    with sync_playwright() as playwright:
        browser = playwright.chromium.launch(headless=config.headless)
        try:
            console = _open_console(browser, gateway, config.link_type)
            return run_reload_sequence(console, gateway_id=gateway_id)
        finally:
            browser.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(getattr(logging, str(args.log_level).upper(), logging.INFO), args.log_file)

    try:
        config = RunConfig.from_env()
        if args.command in ("scrape", "reload"):
            gateway_id = args.gateway or config.gateway_id
            if not gateway_id:
                raise ConfigError("No gateway selected; pass --gateway or set GATEWAY_ID")
        if args.command == "reload":
            reload_ports(config, gateway_id)
        elif args.command == "scrape":
            if args.attribute:
                commands = [command for command in Command if command.attribute in args.attribute]
            else:
                commands = list(PROCESS_COMMANDS[config.process])
            scrape_gateway(config, gateway_id, commands)
        elif args.command == "inventory":
            inventory(config)
        elif args.command == "enrich":
            enrich(config)
        else:
            process = PROCESS_ACTIVATION if args.command == "activate" else PROCESS_REFILL
            config = replace(config, process=process)
            if args.start_port is not None:
                config = replace(config, start_port=args.start_port)
            if process == PROCESS_ACTIVATION:
                workflow = activation_workflow(config.account, base_url=config.portal_base_url)
            else:
                workflow = refill_workflow(config.refill_plan, base_url=config.portal_base_url)
            summary = provision(config, workflow)
            if summary.aborted:
                return 2
    except ProvisionerError as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
