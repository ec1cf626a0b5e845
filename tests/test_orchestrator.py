import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from edgenode.config import NodeSettings
from edgenode.identity import SigningIdentity
from edgenode.orchestrator import BatchScheduler, SweepSummary
from edgenode.proxy_manager import Proxy, ProxyManager
from edgenode.session import SessionReport
from edgenode.transport import HttpResponse, Transport
from edgenode.wallet_manager import WalletRecord


def _settings(**overrides):
    values = dict(
        batch_size=10,
        wallet_start_delay_seconds=0,
        batch_pause_seconds=0,
        sweep_interval_seconds=3600,
    )
    values.update(overrides)
    return NodeSettings(**values)


def _wallets(count):
    return [
        WalletRecord(address=f"0x{i:040x}", private_key=f"0x{i + 1:064x}")
        for i in range(count)
    ]


class FakeSession:
    """Stand-in session that yields to the loop so windows overlap."""

    def __init__(self, wallet, proxy, processed, fail_addresses=()):
        self.wallet = wallet
        self.proxy = proxy
        self.processed = processed
        self.fail_addresses = fail_addresses
        self.closed = False

    async def run(self):
        await asyncio.sleep(0.01)
        if self.wallet.address in self.fail_addresses:
            raise RuntimeError("boom")
        self.processed.append((self.wallet.address, self.proxy))
        return SessionReport(address=self.wallet.address, connected=True)

    async def close(self):
        self.closed = True


def _factory(processed, fail_addresses=(), created=None):
    def build(wallet, proxy):
        session = FakeSession(wallet, proxy, processed, fail_addresses)
        if created is not None:
            created.append(session)
        return session
    return build


class TestProxyAssignment:
    """Wallet i uses proxies[i % len(proxies)]."""

    @pytest.mark.parametrize("proxy_count", [1, 2, 3, 7])
    def test_round_robin(self, proxy_count):
        proxies = [Proxy(ip=f"10.0.0.{n}", port=8000 + n) for n in range(proxy_count)]
        scheduler = BatchScheduler(_settings(), _wallets(0), ProxyManager(proxies=proxies))
        for i in range(25):
            assert scheduler.assign_proxy(i) == proxies[i % proxy_count].to_string()

    def test_no_proxies_means_direct(self):
        scheduler = BatchScheduler(_settings(), _wallets(0), ProxyManager(proxies=[]))
        assert all(scheduler.assign_proxy(i) is None for i in range(5))

    @pytest.mark.asyncio
    async def test_sessions_receive_assigned_proxy(self):
        processed = []
        proxies = [Proxy(ip="1.1.1.1", port=80), Proxy(ip="2.2.2.2", port=80, username="u", password="p")]
        scheduler = BatchScheduler(
            _settings(), _wallets(5), ProxyManager(proxies=proxies),
            session_factory=_factory(processed),
        )

        await scheduler.run_sweep()

        by_address = dict(processed)
        wallets = _wallets(5)
        assert by_address[wallets[0].address] == "http://1.1.1.1:80"
        assert by_address[wallets[1].address] == "http://u:p@2.2.2.2:80"
        assert by_address[wallets[4].address] == "http://1.1.1.1:80"


class TestRunSweep:
    """Bounded windows and failure isolation."""

    @pytest.mark.asyncio
    async def test_concurrency_bounded_by_batch_size(self):
        processed = []
        scheduler = BatchScheduler(_settings(batch_size=10), _wallets(25), session_factory=_factory(processed))

        summary = await scheduler.run_sweep()

        assert scheduler.max_in_flight == 10
        assert scheduler.in_flight == 0
        assert len(processed) == 25
        assert summary.total == 25
        assert summary.completed == 25

    @pytest.mark.asyncio
    async def test_failure_isolated_to_one_wallet(self):
        processed = []
        created = []
        wallets = _wallets(25)
        failing = wallets[6].address  # wallet #7
        scheduler = BatchScheduler(
            _settings(batch_size=10), wallets,
            session_factory=_factory(processed, fail_addresses={failing}, created=created),
        )

        summary = await scheduler.run_sweep()

        processed_addresses = [a for a, _ in processed]
        assert failing not in processed_addresses
        for wallet in wallets[7:]:
            assert wallet.address in processed_addresses
        assert summary.completed == 24
        assert summary.failed == 1
        assert all(s.closed for s in created)

    @pytest.mark.asyncio
    async def test_factory_error_contained(self):
        processed = []

        def build(wallet, proxy):
            if wallet.address.endswith("1"):
                raise ValueError("bad key")
            return FakeSession(wallet, proxy, processed)

        scheduler = BatchScheduler(_settings(), _wallets(3), session_factory=build)
        summary = await scheduler.run_sweep()

        assert summary.failed == 1
        assert len(processed) == 2

    @pytest.mark.asyncio
    async def test_pause_between_batches_only(self):
        sleep = AsyncMock()
        scheduler = BatchScheduler(
            _settings(batch_size=10, batch_pause_seconds=60), _wallets(25),
            session_factory=_factory([]), sleep=sleep,
        )

        await scheduler.run_sweep()

        assert [c.args[0] for c in sleep.await_args_list] == [60, 60]

    @pytest.mark.asyncio
    async def test_start_delay_per_wallet(self):
        sleep = AsyncMock()
        scheduler = BatchScheduler(
            _settings(wallet_start_delay_seconds=20), _wallets(3),
            session_factory=_factory([]), sleep=sleep,
        )

        await scheduler.run_sweep()

        assert [c.args[0] for c in sleep.await_args_list] == [20, 20, 20]

    @pytest.mark.asyncio
    async def test_empty_wallet_list(self):
        scheduler = BatchScheduler(_settings(), [], session_factory=_factory([]))
        summary = await scheduler.run_sweep()
        assert summary == SweepSummary(total=0, duration=summary.duration)


class TestRunForever:
    """Sweep loop, registration hook and stop signal."""

    @pytest.mark.asyncio
    async def test_sweeps_then_sleeps_interval(self):
        sleep = AsyncMock()
        hook = AsyncMock(return_value=[])
        scheduler = BatchScheduler(
            _settings(), _wallets(2), session_factory=_factory([]),
            registration_hook=hook, sleep=sleep,
        )

        await scheduler.run_forever(max_sweeps=2)

        assert scheduler.sweep_count == 2
        assert hook.await_count == 2
        assert [c.args[0] for c in sleep.await_args_list] == [3600]

    @pytest.mark.asyncio
    async def test_registered_wallets_join_next_sweep(self):
        processed = []
        new_wallet = WalletRecord(address="0x" + "f" * 40, private_key="0x" + "1" * 64)
        hook = AsyncMock(side_effect=[[new_wallet], []])
        scheduler = BatchScheduler(
            _settings(), _wallets(2), session_factory=_factory(processed),
            registration_hook=hook, sleep=AsyncMock(),
        )

        await scheduler.run_forever(max_sweeps=2)

        addresses = [a for a, _ in processed]
        assert addresses.count(new_wallet.address) == 1
        assert len(processed) == 5

    @pytest.mark.asyncio
    async def test_hook_failure_does_not_stop_loop(self):
        hook = AsyncMock(side_effect=RuntimeError("referral API down"))
        scheduler = BatchScheduler(
            _settings(), _wallets(1), session_factory=_factory([]),
            registration_hook=hook, sleep=AsyncMock(),
        )

        await scheduler.run_forever(max_sweeps=2)

        assert scheduler.sweep_count == 2

    @pytest.mark.asyncio
    async def test_stop_ends_loop(self):
        scheduler = BatchScheduler(_settings(), _wallets(1), session_factory=_factory([]))

        async def stop_after_sweep():
            scheduler.stop()
            return []

        scheduler.registration_hook = stop_after_sweep

        # Real interruptible sleep of one hour must end immediately
        await asyncio.wait_for(scheduler.run_forever(), timeout=2)

        assert scheduler.stopped is True
        assert scheduler.sweep_count == 1

    @pytest.mark.asyncio
    async def test_stop_skips_remaining_batches(self):
        processed = []
        scheduler = BatchScheduler(_settings(batch_size=2), _wallets(6), session_factory=_factory(processed))
        original = scheduler.process_wallet

        async def process_and_stop(wallet, index):
            result = await original(wallet, index)
            scheduler.stop()
            return result

        scheduler.process_wallet = process_and_stop
        await scheduler.run_sweep()

        assert len(processed) == 2


class TestEndToEnd:
    """Real sessions over a mocked transport."""

    @pytest.mark.asyncio
    async def test_two_wallets_no_proxy_not_running(self):
        identities = [SigningIdentity(), SigningIdentity()]
        wallets = [WalletRecord(address=i.address, private_key=i.private_key) for i in identities]
        calls = []

        async def fake_execute(self, request):
            calls.append((self.proxy, request.method, request.url))
            if "/node-status/" in request.url:
                return HttpResponse(200, {"data": {"startTimestamp": None}})
            if request.url.endswith("/start"):
                return HttpResponse(200, {"message": "node action executed successfully"})
            if "/wallet-details/" in request.url:
                return HttpResponse(200, {"data": {"nodePoints": 42}})
            return HttpResponse(200, {"message": "ok"})

        scheduler = BatchScheduler(_settings(), wallets, ProxyManager(proxies=[]))
        with patch.object(Transport, "execute", fake_execute):
            summary = await scheduler.run_sweep()

        assert summary.completed == 2
        assert summary.connected == 2
        for identity in identities:
            own = [(m, u) for _, m, u in calls if identity.address in u]
            assert [m for m, _ in own] == ["GET", "POST", "GET"]
            assert "/node-status/" in own[0][1]
            assert own[1][1].endswith("/start")
            assert "/wallet-details/" in own[2][1]
        assert all(proxy is None for proxy, _, _ in calls)
        assert not any(u.endswith("/stop") for _, _, u in calls)
