import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from maestro_portal.orchestrator.resources import ResourceKind

# Seconds between poll ticks. Collections change slowly, a selected instance
# and its execution history are watched closely.
DEFAULT_POLL_INTERVALS = {
    ResourceKind.PROCESSES: 30.0,
    ResourceKind.INSTANCES: 10.0,
    ResourceKind.INSTANCE: 5.0,
    ResourceKind.BPMN: 10.0,
    ResourceKind.EXECUTION_HISTORY: 5.0,
    ResourceKind.VARIABLES: 10.0,
}

# Max age before a snapshot is refetched. Kept below the poll interval so each
# tick finds the previous result stale; the BPMN structure rarely changes.
DEFAULT_STALE_WINDOWS = {
    ResourceKind.PROCESSES: 25.0,
    ResourceKind.INSTANCES: 8.0,
    ResourceKind.INSTANCE: 4.0,
    ResourceKind.BPMN: 30.0,
    ResourceKind.EXECUTION_HISTORY: 4.0,
    ResourceKind.VARIABLES: 8.0,
}


@dataclass
class PortalConfig:
    registry_adapter: str = "mock"          # http | mock
    base_url: str = "https://cloud.uipath.com"
    org_name: str = ""
    tenant_name: str = ""
    access_token: str = ""
    default_folder_key: Optional[str] = None
    http_timeout: float = 30.0
    cancel_token_ttl: float = 60.0
    poll_intervals: dict = field(default_factory=lambda: dict(DEFAULT_POLL_INTERVALS))
    stale_windows: dict = field(default_factory=lambda: dict(DEFAULT_STALE_WINDOWS))


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}") from None


def load_config(dotenv_path: str = ".env") -> PortalConfig:
    """Read configuration from the environment, after loading ``dotenv_path`` if present.

    Per-kind overrides: MAESTRO_POLL_<KIND> and MAESTRO_STALE_<KIND>, e.g.
    MAESTRO_POLL_EXECUTION_HISTORY=3.
    """
    load_dotenv(dotenv_path=dotenv_path, override=False)
    cfg = PortalConfig(
        registry_adapter=os.getenv("MAESTRO_REGISTRY_ADAPTER", "mock").lower(),
        base_url=os.getenv("UIPATH_BASE_URL", PortalConfig.base_url),
        org_name=os.getenv("UIPATH_ORG_NAME", ""),
        tenant_name=os.getenv("UIPATH_TENANT_NAME", ""),
        access_token=os.getenv("UIPATH_ACCESS_TOKEN", ""),
        default_folder_key=os.getenv("MAESTRO_DEFAULT_FOLDER_KEY") or None,
        http_timeout=_env_float("MAESTRO_HTTP_TIMEOUT", 30.0),
        cancel_token_ttl=_env_float("MAESTRO_CANCEL_TOKEN_TTL", 60.0),
    )
    for kind in ResourceKind:
        cfg.poll_intervals[kind] = _env_float(f"MAESTRO_POLL_{kind.name}", cfg.poll_intervals[kind])
        cfg.stale_windows[kind] = _env_float(f"MAESTRO_STALE_{kind.name}", cfg.stale_windows[kind])
    return cfg
