"""Referral registration bootstrap.

Run after each sweep: creates fresh wallets, checks the referral code
and registers each wallet under it.  Registered wallets are appended to
the wallet file and returned so the scheduler can pick them up on the
next sweep.
"""

import asyncio
import logging
from typing import List, Optional

from edgenode.config import NodeSettings
from edgenode.executor import SleepFunc
from edgenode.identity import SigningIdentity
from edgenode.proxy_manager import ProxyManager
from edgenode.session import NodeSession
from edgenode.wallet_manager import WalletFileError, WalletRecord, append_wallets

logger = logging.getLogger(__name__)


class AutoRegistrar:
    """Create and register ``settings.auto_register_count`` new wallets.

    Args:
        settings: Runner configuration.
        proxy_manager: Source of proxies for the registration calls.
        stop_event: Cancellation signal shared with the scheduler.
        sleep: Optional delay override handed to each executor.
        log: Logger for outcomes.
    """

    def __init__(
        self,
        settings: NodeSettings,
        proxy_manager: Optional[ProxyManager] = None,
        stop_event: Optional[asyncio.Event] = None,
        sleep: Optional[SleepFunc] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.proxy_manager = proxy_manager or ProxyManager(proxies=[])
        self.stop_event = stop_event
        self.sleep = sleep
        self.log = log or logger

    async def register_one(self, index: int) -> Optional[WalletRecord]:
        """Create one wallet and register it; ``None`` if the service refused."""
        identity = SigningIdentity()
        session = NodeSession.from_settings(
            self.settings,
            identity,
            proxy=self.proxy_manager.assign_proxy_url(index),
            stop_event=self.stop_event,
            sleep=self.sleep,
            log=self.log,
        )
        try:
            if not await session.check_invite():
                return None
            if not await session.register_wallet():
                return None
        finally:
            await session.close()
        return WalletRecord(address=identity.address, private_key=identity.private_key)

    async def run(self) -> List[WalletRecord]:
        count = self.settings.auto_register_count
        if count <= 0:
            return []

        self.log.info(f"Registering {count} new wallets with ref code {self.settings.ref_code}")
        registered: List[WalletRecord] = []
        for i in range(count):
            if self.stop_event is not None and self.stop_event.is_set():
                break
            record = await self.register_one(i)
            if record:
                registered.append(record)

        self.log.info(f"Registered {len(registered)}/{count} new wallets")
        if registered:
            try:
                append_wallets(self.settings.wallets_file, registered)
            except WalletFileError as e:
                # Records are still returned so they join the next sweep
                self.log.error(
                    f"Failed to save {len(registered)} registered wallets: {e}. "
                    f"Held in memory only: {[w.address for w in registered]}"
                )
        return registered
