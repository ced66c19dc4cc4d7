"""Gateway provisioner package exports."""

__version__ = "0.1.0"

from gateway_provisioner.browser import (
    BrowserSession,
    ConfigError,
    ConsoleError,
    ElementNotFound,
    Locator,
    ProvisionerError,
    SessionClosedError,
    StepError,
    StepTimeout,
)
from gateway_provisioner.classifier import (
    StatusRow,
    VisualIndicator,
    apply_port_status,
    derive_status,
    detect_carrier,
    indicator_from_html,
)
from gateway_provisioner.config import GatewayConfig, PortalCredentials, RunConfig, load_gateway_configs
from gateway_provisioner.dataset_builder import (
    BuilderSettings,
    BuildResult,
    GatewayConsole,
    PortDatasetBuilder,
    build_gateway_dataset,
)
from gateway_provisioner.email_policy import EmailRotationPolicy, load_email_list
from gateway_provisioner.engine import (
    EngineSettings,
    ProvisioningEngine,
    RunSummary,
    State,
    transition,
)
from gateway_provisioner.extractor import Command, extract_row
from gateway_provisioner.iq import IQCredentials, IQSettings, LineDetails, enrich_latest_inventory, parse_line_details
from gateway_provisioner.models import GatewayDataset, PortRecord, ProvisioningOutcome, normalize_port_key
from gateway_provisioner.port_reload import RELOAD_SEQUENCE, PortSettingsPanel, ReloadStep, run_reload_sequence
from gateway_provisioner.run_log import RunLog
from gateway_provisioner.storage import load_checkpoint, save_attribute_values
from gateway_provisioner.workflows import WorkflowDefinition, activation_workflow, refill_workflow

__all__ = [
    "BrowserSession",
    "BuildResult",
    "BuilderSettings",
    "Command",
    "ConfigError",
    "ConsoleError",
    "ElementNotFound",
    "EmailRotationPolicy",
    "EngineSettings",
    "GatewayConfig",
    "GatewayConsole",
    "GatewayDataset",
    "IQCredentials",
    "IQSettings",
    "LineDetails",
    "Locator",
    "PortDatasetBuilder",
    "PortRecord",
    "PortSettingsPanel",
    "PortalCredentials",
    "ProvisionerError",
    "ProvisioningEngine",
    "ProvisioningOutcome",
    "RELOAD_SEQUENCE",
    "ReloadStep",
    "RunConfig",
    "RunLog",
    "RunSummary",
    "SessionClosedError",
    "State",
    "StatusRow",
    "StepError",
    "StepTimeout",
    "VisualIndicator",
    "WorkflowDefinition",
    "activation_workflow",
    "apply_port_status",
    "build_gateway_dataset",
    "derive_status",
    "detect_carrier",
    "enrich_latest_inventory",
    "extract_row",
    "indicator_from_html",
    "load_checkpoint",
    "load_email_list",
    "load_gateway_configs",
    "normalize_port_key",
    "parse_line_details",
    "refill_workflow",
    "run_reload_sequence",
    "save_attribute_values",
    "transition",
]
