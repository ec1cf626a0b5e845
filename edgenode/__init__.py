"""
EdgeNode wallet runner.

Keeps a fleet of wallets' light nodes active on the remote node service:
each sweep checks every wallet's node status, stops running nodes to claim
accrued points, reconnects them, and reads back the point balance.

Submodules:
    config: Runner settings (``NodeSettings``) via Pydantic.
    logging_setup: Compressed rotating file + safe console logging.
    identity: ``SigningIdentity`` wrapping an Ethereum key.
    transport: Single-shot aiohttp requests through a proxy.
    executor: ``RetryingExecutor`` with tiered retry/backoff.
    session: ``NodeSession`` per-wallet step sequence and ``ApiResult``.
    orchestrator: ``BatchScheduler`` bounded-window sweep loop.
    proxy_manager: Proxy file parsing and round-robin assignment.
    wallet_manager: Wallet file loading and saving.
    registration: Post-sweep referral registration bootstrap.
    utils: Atomic JSON file writes and the millisecond clock.
"""

__version__ = "1.0.0"
