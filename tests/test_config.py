import pytest
from pydantic import ValidationError

from edgenode.config import CONFIG_DIR, DEFAULT_USER_AGENT, NodeSettings


@pytest.fixture
def mock_env(monkeypatch):
    monkeypatch.setenv("BATCH_SIZE", "7")
    monkeypatch.setenv("MAX_RETRIES", "3")
    monkeypatch.setenv("API_BASE_URL", "http://localhost:9999")
    monkeypatch.setenv("REF_CODE", "TESTCODE")


def test_settings_from_env(mock_env):
    settings = NodeSettings()
    assert settings.batch_size == 7
    assert settings.max_retries == 3
    assert settings.api_base_url == "http://localhost:9999"
    assert settings.ref_code == "TESTCODE"


class TestNodeSettingsDefaults:
    """Test suite for NodeSettings default values."""

    def test_retry_policy_defaults(self):
        settings = NodeSettings()
        assert settings.max_retries == 30
        assert settings.backoff_ms == 2000
        assert settings.network_retry_delay_seconds == 2.0
        assert settings.request_timeout_seconds == 60.0

    def test_scheduling_defaults(self):
        settings = NodeSettings()
        assert settings.batch_size == 100
        assert settings.sweep_interval_seconds == 3600.0
        assert settings.auto_register_count == 0

    def test_input_paths_under_config_dir(self):
        settings = NodeSettings()
        assert settings.wallets_file == str(CONFIG_DIR / "wallets.json")
        assert settings.proxies_file == str(CONFIG_DIR / "proxy.txt")

    def test_init_kwargs_override(self):
        settings = NodeSettings(batch_size=10, wallet_start_delay_seconds=0)
        assert settings.batch_size == 10
        assert settings.wallet_start_delay_seconds == 0


class TestNodeSettingsValidation:
    """Malformed configuration must fail at startup."""

    def test_zero_batch_size_rejected(self):
        with pytest.raises(ValidationError):
            NodeSettings(batch_size=0)

    def test_zero_retries_rejected(self):
        with pytest.raises(ValidationError):
            NodeSettings(max_retries=0)

    def test_negative_delay_rejected(self):
        with pytest.raises(ValidationError):
            NodeSettings(batch_pause_seconds=-1)


class TestBuildHeaders:
    """Test the browser-like header profile."""

    def test_origin_and_referer(self):
        headers = NodeSettings(origin_url="https://layeredge.io/").build_headers()
        assert headers["Origin"] == "https://layeredge.io"
        assert headers["Referer"] == "https://layeredge.io/"

    def test_fixed_browser_hints(self):
        headers = NodeSettings().build_headers()
        assert headers["User-Agent"] == DEFAULT_USER_AGENT
        assert headers["Accept"] == "application/json, text/plain, */*"
        assert headers["Sec-Fetch-Mode"] == "cors"
        assert headers["sec-ch-ua-platform"] == '"Windows"'
