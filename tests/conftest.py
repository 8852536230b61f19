import pytest

from ws_monitor.config import MonitorConfig

MONITOR_ENV_VARS = (
    "MONITOR_URL",
    "MONITOR_INTERVAL",
    "MONITOR_CONNECTION_TIMEOUT",
    "MONITOR_REQUEST_TIMEOUT",
    "SERVER_ADDR",
    "SERVER_PORT",
    "VERBOSE",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Keep host environment variables and .env files out of the tests."""
    for name in MONITOR_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def monitor_config():
    return MonitorConfig(
        monitor_url="wss://node.example.org",
        monitor_interval=60,
        monitor_connection_timeout=5,
        monitor_request_timeout=5,
        server_addr="127.0.0.1",
        server_port=0,
    )
