"""Application configuration for the EdgeNode wallet runner.

Central configuration module powered by Pydantic v2.  Settings are loaded
from environment variables (with ``.env`` file support).

Key exports:
    NodeSettings: Root settings model (instantiate once at startup).
    BASE_DIR / CONFIG_DIR / LOGS_DIR: Canonical project paths.
"""

# pylint: disable=no-member

import logging
from pathlib import Path
from typing import Dict

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Base Paths
# ---------------------------------------------------------------------------
BASE_DIR: Path = Path(__file__).parent.parent
"""Project root directory (parent of ``edgenode/``)."""

CONFIG_DIR: Path = BASE_DIR / "config"
"""Directory containing runtime input files (wallets, proxies)."""

LOGS_DIR: Path = BASE_DIR / "logs"
"""Directory for log output files."""

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/121.0.0.0 Safari/537.36"
)

logger: logging.Logger = logging.getLogger(__name__)


class NodeSettings(BaseSettings):
    """Root configuration model for the node runner.

    All fields can be set via environment variables or a ``.env`` file.

    Section overview:
        * **Core** -- log level.
        * **Remote API** -- base URL, header origin, referral code.
        * **Inputs** -- wallet and proxy file locations.
        * **Retry policy** -- attempt cap, 500 backoff base, network
          retry delay, per-request timeout.
        * **Scheduling** -- batch window, stagger, pauses, sweep interval.
        * **Bootstrap** -- number of wallets registered after each sweep.
    """

    # Core
    log_level: str = "INFO"

    # Remote API
    api_base_url: str = "https://referralapi.layeredge.io"
    # Used for Origin / Referer headers
    origin_url: str = "https://layeredge.io"
    ref_code: str = "RSYJNQjI"
    user_agent: str = DEFAULT_USER_AGENT

    # Inputs
    # JSON list of {"address": ..., "privateKey": ...}
    wallets_file: str = str(CONFIG_DIR / "wallets.json")
    # File containing 1 proxy per line (user:pass@ip:port)
    proxies_file: str = str(CONFIG_DIR / "proxy.txt")

    # Retry policy
    max_retries: int = 30
    # Base for the 1.5x exponential backoff applied to HTTP 500
    backoff_ms: int = 2000
    # Fixed pause after network errors and timeouts
    network_retry_delay_seconds: float = 2.0
    request_timeout_seconds: float = 60.0

    # Scheduling
    # Max sessions in flight per window
    batch_size: int = 100
    wallet_start_delay_seconds: float = 20.0
    batch_pause_seconds: float = 60.0
    sweep_interval_seconds: float = 3600.0

    # Bootstrap
    auto_register_count: int = 0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @field_validator("batch_size", "max_retries")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value

    @field_validator(
        "backoff_ms",
        "network_retry_delay_seconds",
        "request_timeout_seconds",
        "wallet_start_delay_seconds",
        "batch_pause_seconds",
        "sweep_interval_seconds",
        "auto_register_count",
    )
    @classmethod
    def _non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    def build_headers(self) -> Dict[str, str]:
        """Return the browser-like header profile sent with every request.

        The remote API rejects requests that do not look like they come
        from the dashboard, so the set is fixed apart from the origin and
        user agent.
        """
        origin = self.origin_url.rstrip("/")
        return {
            "Accept": "application/json, text/plain, */*",
            "Accept-Encoding": "gzip, deflate, br",
            "Accept-Language": "en-US,en;q=0.9",
            "Origin": origin,
            "Referer": f"{origin}/",
            "Sec-Fetch-Dest": "empty",
            "Sec-Fetch-Mode": "cors",
            "Sec-Fetch-Site": "same-site",
            "User-Agent": self.user_agent,
            "sec-ch-ua": (
                '"Not A(Brand";v="99", "Google Chrome";v="121", '
                '"Chromium";v="121"'
            ),
            "sec-ch-ua-mobile": "?0",
            "sec-ch-ua-platform": '"Windows"',
        }
