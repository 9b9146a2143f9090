import pytest

from maestro_portal.orchestrator.resources import ResourceKind
from maestro_portal.services.config import DEFAULT_POLL_INTERVALS, DEFAULT_STALE_WINDOWS, load_config

_VARS = [
    "MAESTRO_REGISTRY_ADAPTER", "UIPATH_BASE_URL", "UIPATH_ORG_NAME", "UIPATH_TENANT_NAME",
    "UIPATH_ACCESS_TOKEN", "MAESTRO_DEFAULT_FOLDER_KEY", "MAESTRO_HTTP_TIMEOUT", "MAESTRO_CANCEL_TOKEN_TTL",
    *(f"MAESTRO_POLL_{k.name}" for k in ResourceKind),
    *(f"MAESTRO_STALE_{k.name}" for k in ResourceKind),
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_env(tmp_path) -> None:
    cfg = load_config(dotenv_path=str(tmp_path / "missing.env"))
    assert cfg.registry_adapter == "mock"
    assert cfg.default_folder_key is None
    assert cfg.poll_intervals == DEFAULT_POLL_INTERVALS
    assert cfg.stale_windows == DEFAULT_STALE_WINDOWS
    assert cfg.poll_intervals[ResourceKind.INSTANCE] == 5.0
    assert cfg.stale_windows[ResourceKind.BPMN] == 30.0


def test_stale_windows_below_intervals_except_bpmn() -> None:
    for kind in ResourceKind:
        if kind is ResourceKind.BPMN:
            continue
        assert DEFAULT_STALE_WINDOWS[kind] < DEFAULT_POLL_INTERVALS[kind]


def test_env_overrides(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("MAESTRO_REGISTRY_ADAPTER", "HTTP")
    monkeypatch.setenv("UIPATH_ORG_NAME", "acme")
    monkeypatch.setenv("MAESTRO_POLL_EXECUTION_HISTORY", "3")
    monkeypatch.setenv("MAESTRO_STALE_INSTANCES", "2.5")
    cfg = load_config(dotenv_path=str(tmp_path / "missing.env"))
    assert cfg.registry_adapter == "http"
    assert cfg.org_name == "acme"
    assert cfg.poll_intervals[ResourceKind.EXECUTION_HISTORY] == 3.0
    assert cfg.stale_windows[ResourceKind.INSTANCES] == 2.5


def test_dotenv_file_does_not_override_environment(monkeypatch, tmp_path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("MAESTRO_DEFAULT_FOLDER_KEY=from-file\nUIPATH_TENANT_NAME=file-tenant\n")
    monkeypatch.setenv("UIPATH_TENANT_NAME", "env-tenant")
    # load_dotenv writes into os.environ; register the key so monkeypatch restores it
    monkeypatch.setenv("MAESTRO_DEFAULT_FOLDER_KEY", "")
    monkeypatch.delenv("MAESTRO_DEFAULT_FOLDER_KEY")
    cfg = load_config(dotenv_path=str(env_file))
    assert cfg.default_folder_key == "from-file"
    assert cfg.tenant_name == "env-tenant"


def test_bad_number_is_reported(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("MAESTRO_HTTP_TIMEOUT", "soon")
    with pytest.raises(ValueError, match="MAESTRO_HTTP_TIMEOUT"):
        load_config(dotenv_path=str(tmp_path / "missing.env"))
