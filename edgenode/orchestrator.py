"""Batch scheduler for the EdgeNode wallet runner.

Drives the recurring sweep over the wallet list:

* Wallets are admitted in fixed windows of ``batch_size``.  Every session
  in a window must settle (success or failure) before the next window
  starts, so no more than ``batch_size`` sessions are ever in flight.
* Wallet ``i`` is routed through ``proxies[i % len(proxies)]``.
* A failure inside one wallet's session is logged and contained; it never
  reaches the other wallets or the loop.
* After each full sweep the registration hook runs, then the loop sleeps
  ``sweep_interval_seconds`` before starting over.

The loop runs until :meth:`BatchScheduler.stop` is called.  The stop
signal is shared with every executor, so pending delays end at once.

Classes:
    SweepSummary: Counters for one sweep.
    BatchScheduler: Main loop.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence

from edgenode.config import NodeSettings
from edgenode.executor import SleepFunc
from edgenode.identity import SigningIdentity
from edgenode.proxy_manager import ProxyManager
from edgenode.session import NodeSession, SessionReport
from edgenode.wallet_manager import WalletRecord

logger = logging.getLogger(__name__)

SessionFactory = Callable[[WalletRecord, Optional[str]], NodeSession]
RegistrationHook = Callable[[], Awaitable[Optional[List[WalletRecord]]]]


@dataclass
class SweepSummary:
    """Outcome counters for one pass over the wallet list."""

    total: int = 0
    completed: int = 0
    failed: int = 0
    connected: int = 0
    duration: float = 0.0


class BatchScheduler:
    """Run node sessions for every wallet, forever.

    Args:
        settings: Runner configuration (batch size, delays).
        wallets: Wallets to sweep, in file order.
        proxy_manager: Proxy source; an empty manager means direct
            connections.
        session_factory: Optional builder for a wallet's session.  The
            default creates a :class:`SigningIdentity` from the wallet's
            key and a fully wired :class:`NodeSession`.
        registration_hook: Coroutine run after each sweep.  Wallets it
            returns join the list for the next sweep.
        sleep: Optional delay override (applied to scheduler pauses and
            handed to default sessions).
        log: Logger for batch-level reporting.
    """

    def __init__(
        self,
        settings: NodeSettings,
        wallets: Sequence[WalletRecord],
        proxy_manager: Optional[ProxyManager] = None,
        session_factory: Optional[SessionFactory] = None,
        registration_hook: Optional[RegistrationHook] = None,
        sleep: Optional[SleepFunc] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.wallets: List[WalletRecord] = list(wallets)
        self.proxy_manager = proxy_manager or ProxyManager(proxies=[])
        self.session_factory = session_factory or self._default_session
        self.registration_hook = registration_hook
        self._sleep = sleep
        self.log = log or logger
        self._stop_event = asyncio.Event()

        self.sweep_count = 0
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def stop_event(self) -> asyncio.Event:
        return self._stop_event

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Signal the loop and every in-flight executor to wind down."""
        self.log.info("Stop requested, finishing current work...")
        self._stop_event.set()

    def assign_proxy(self, index: int) -> Optional[str]:
        """Proxy URL for the wallet at position *index*, or ``None``."""
        return self.proxy_manager.assign_proxy_url(index)

    def _default_session(self, wallet: WalletRecord, proxy: Optional[str]) -> NodeSession:
        identity = SigningIdentity(wallet.private_key)
        if identity.address.lower() != wallet.address.lower():
            self.log.warning(
                f"Wallet file address {wallet.address} does not match key address "
                f"{identity.address}, using key address"
            )
        return NodeSession.from_settings(
            self.settings,
            identity,
            proxy=proxy,
            stop_event=self._stop_event,
            sleep=self._sleep,
            log=self.log,
        )

    async def _wait(self, seconds: float) -> None:
        if seconds <= 0:
            return
        if self._sleep is not None:
            await self._sleep(seconds)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def process_wallet(self, wallet: WalletRecord, index: int) -> Optional[SessionReport]:
        """Run one wallet's session, containing any failure.

        Returns:
            The session report, or ``None`` if the session raised or was
            skipped because of a stop request.
        """
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        session: Optional[NodeSession] = None
        try:
            await self._wait(self.settings.wallet_start_delay_seconds)
            if self.stopped:
                return None
            assigned = self.proxy_manager.assign_proxy(index)
            self.log.info(
                f"Processing Wallet Address: {wallet.address} with proxy: "
                f"{assigned.masked() if assigned else None}"
            )
            session = self.session_factory(wallet, assigned.to_string() if assigned else None)
            return await session.run()
        except Exception as e:
            self.log.error(f"Error Processing wallet {wallet.address}: {e}")
            return None
        finally:
            if session is not None:
                try:
                    await session.close()
                except Exception as e:
                    self.log.warning(f"Failed to close session for {wallet.address}: {e}")
            self.in_flight -= 1

    async def run_sweep(self) -> SweepSummary:
        """Process every wallet once, one window at a time."""
        started = time.monotonic()
        wallets = list(self.wallets)
        batch_size = self.settings.batch_size
        summary = SweepSummary(total=len(wallets))

        for start in range(0, len(wallets), batch_size):
            if self.stopped:
                break
            batch = wallets[start:start + batch_size]
            results = await asyncio.gather(
                *(self.process_wallet(w, start + j) for j, w in enumerate(batch)),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, SessionReport):
                    summary.completed += 1
                    if result.connected:
                        summary.connected += 1
                else:
                    summary.failed += 1

            self.log.warning(f"Processed batch of {len(batch)} wallets")
            if start + batch_size < len(wallets) and not self.stopped:
                self.log.info(
                    f"Waiting {self.settings.batch_pause_seconds:.0f}s before next batch..."
                )
                await self._wait(self.settings.batch_pause_seconds)

        summary.duration = time.monotonic() - started
        self.sweep_count += 1
        return summary

    async def _run_registration(self) -> None:
        if self.registration_hook is None:
            return
        try:
            new_wallets = await self.registration_hook()
        except Exception as e:
            self.log.error(f"Registration hook failed: {e}")
            return
        if not new_wallets:
            return
        known = {w.address.lower() for w in self.wallets}
        added = [w for w in new_wallets if w.address.lower() not in known]
        self.wallets.extend(added)
        if added:
            self.log.info(f"Added {len(added)} newly registered wallets to the next sweep")

    async def run_forever(self, max_sweeps: Optional[int] = None) -> None:
        """Sweep, register, sleep, repeat until stopped.

        Args:
            max_sweeps: Optional cap on the number of sweeps (``--once``
                passes ``1``).  The interval sleep is skipped after the
                final capped sweep.
        """
        self.log.info(f"Starting run Program with all Wallets: {len(self.wallets)}")
        while not self.stopped:
            summary = await self.run_sweep()
            self.log.warning(
                f"All {summary.total} wallets have been processed "
                f"({summary.completed} completed, {summary.failed} failed, "
                f"{summary.connected} connected) in {summary.duration:.1f}s"
            )
            if self.stopped:
                break
            await self._run_registration()
            if max_sweeps is not None and self.sweep_count >= max_sweeps:
                break
            self.log.warning(
                f"Waiting {self.settings.sweep_interval_seconds / 3600:.1f} hours before next run..."
            )
            await self._wait(self.settings.sweep_interval_seconds)
        self.log.info("Batch scheduler stopped.")
