"""Per-wallet node session.

A :class:`NodeSession` drives one wallet through the fixed sequence used
on every sweep::

    check_status -> stop (only if running) -> connect -> check_points

Each step goes through the :class:`~edgenode.executor.RetryingExecutor`
and yields an :class:`ApiResult`.  A step whose request never succeeded
is logged and the sequence carries on.  Unexpected exceptions (a signing
failure, for instance) propagate out of :meth:`NodeSession.run` and are
handled by the scheduler for that wallet only.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

from edgenode.config import NodeSettings
from edgenode.executor import ErrorType, RetryingExecutor, SleepFunc
from edgenode.identity import SigningIdentity
from edgenode.transport import DEFAULT_TIMEOUT_SECONDS, RequestDescriptor, Transport
from edgenode.utils import now_ms

logger = logging.getLogger(__name__)

NODE_ACTION_SUCCESS = "node action executed successfully"

ACTIVATION_MESSAGE = "Node activation request for {address} at {timestamp}"
DEACTIVATION_MESSAGE = "Node deactivation request for {address} at {timestamp}"
CHECK_IN_MESSAGE = "Daily check-in request for {address} at {timestamp}"

VERIFY_REFERRAL_PATH = "/api/referral/verify-referral-code"
REGISTER_WALLET_PATH = "/api/referral/register-wallet/{ref_code}"
NODE_START_PATH = "/api/light-node/node-action/{address}/start"
NODE_STOP_PATH = "/api/light-node/node-action/{address}/stop"
CLAIM_POINTS_PATH = "/api/light-node/claim-node-points"
NODE_STATUS_PATH = "/api/light-node/node-status/{address}"
WALLET_DETAILS_PATH = "/api/referral/wallet-details/{address}"


@dataclass(frozen=True)
class ApiResult:
    """Tagged outcome of one API step.

    ``ok`` results carry the decoded body in ``data``; failures carry an
    :class:`ErrorType` and a short ``detail``.  Failures caused by a 4xx
    still keep the body for logging.
    """

    ok: bool
    data: Any = None
    status: Optional[int] = None
    error_type: Optional[ErrorType] = None
    detail: str = ""

    @classmethod
    def success(cls, data: Any, status: int = 200) -> "ApiResult":
        return cls(ok=True, data=data, status=status)

    @classmethod
    def failure(
        cls,
        error_type: ErrorType,
        detail: str = "",
        status: Optional[int] = None,
        data: Any = None,
    ) -> "ApiResult":
        return cls(ok=False, data=data, status=status, error_type=error_type, detail=detail)

    def get_path(self, *keys: str, default: Any = None) -> Any:
        """Walk nested dict keys in ``data``, returning *default* on any shape mismatch."""
        node = self.data
        for key in keys:
            if not isinstance(node, dict) or key not in node:
                return default
            node = node[key]
        return node


@dataclass(frozen=True)
class PointsSnapshot:
    """Point balance read at the end of a session."""

    address: str
    points: float


@dataclass
class SessionReport:
    """What happened to one wallet during one sweep."""

    address: str
    was_running: bool = False
    stopped: Optional[bool] = None
    connected: bool = False
    points: Optional[PointsSnapshot] = None


class NodeSession:
    """Signed node-API client for a single wallet.

    Args:
        identity: Signing identity owned by this session.
        executor: Executor bound to this wallet's transport.
        base_url: API root, e.g. ``https://referralapi.layeredge.io``.
        ref_code: Referral code used by the registration calls.
        timeout: Per-request timeout in seconds.
        log: Logger to report step outcomes on.
    """

    def __init__(
        self,
        identity: SigningIdentity,
        executor: RetryingExecutor,
        base_url: str,
        ref_code: str = "",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        log: Optional[logging.Logger] = None,
    ):
        self.identity = identity
        self.executor = executor
        self.base_url = base_url.rstrip("/")
        self.ref_code = ref_code
        self.timeout = timeout
        self.log = log or logger

    @classmethod
    def from_settings(
        cls,
        settings: NodeSettings,
        identity: SigningIdentity,
        proxy: Optional[str] = None,
        stop_event: Optional[asyncio.Event] = None,
        sleep: Optional[SleepFunc] = None,
        log: Optional[logging.Logger] = None,
    ) -> "NodeSession":
        """Build a session with its own transport and executor."""
        transport = Transport(
            proxy=proxy,
            headers=settings.build_headers(),
            timeout=settings.request_timeout_seconds,
        )
        executor = RetryingExecutor(
            transport,
            max_attempts=settings.max_retries,
            base_backoff_ms=settings.backoff_ms,
            network_retry_delay=settings.network_retry_delay_seconds,
            stop_event=stop_event,
            sleep=sleep,
            log=log,
        )
        return cls(
            identity,
            executor,
            settings.api_base_url,
            ref_code=settings.ref_code,
            timeout=settings.request_timeout_seconds,
            log=log,
        )

    @property
    def address(self) -> str:
        return self.identity.address

    async def close(self) -> None:
        await self.executor.transport.close()

    # ------------------------------------------------------------------
    # Request helpers
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, body: Any = None) -> ApiResult:
        request = RequestDescriptor(
            method=method,
            url=f"{self.base_url}{path}",
            body=body,
            timeout=self.timeout,
        )
        response = await self.executor.execute_with_retry(request)
        if response is None:
            return ApiResult.failure(
                self.executor.last_error_type or ErrorType.TERMINAL,
                detail=f"No response from {path}",
            )
        if response.status >= 400:
            return ApiResult.failure(
                ErrorType.CLIENT_REJECTION,
                detail=f"HTTP {response.status}",
                status=response.status,
                data=response.data,
            )
        return ApiResult.success(response.data, response.status)

    def _signed_payload(self, template: str) -> dict:
        timestamp = now_ms()
        message = template.format(address=self.address, timestamp=timestamp)
        return {"sign": self.identity.sign(message), "timestamp": timestamp}

    # ------------------------------------------------------------------
    # Node steps
    # ------------------------------------------------------------------

    async def check_status(self) -> bool:
        """Return ``True`` when the node reports a start timestamp."""
        result = await self._request("GET", NODE_STATUS_PATH.format(address=self.address))
        if result.ok and result.get_path("data", "startTimestamp") is not None:
            self.log.info(f"Node Status Running {result.data}")
            return True
        if not result.ok:
            self.log.error(f"Node status check failed for {self.address}: {result.detail}")
        self.log.warning(f"Node not running for {self.address}, will start node...")
        return False

    async def stop(self) -> bool:
        """Deactivate the node, which also claims the points accrued so far."""
        payload = self._signed_payload(DEACTIVATION_MESSAGE)
        result = await self._request(
            "POST", NODE_STOP_PATH.format(address=self.address), payload,
        )
        if result.ok:
            self.log.info(f"Stop and Claim Points Result: {result.data}")
            return True
        self.log.error(f"Failed to stop node and claim points for {self.address}: {result.detail}")
        return False

    async def connect(self) -> bool:
        """Activate the node.  Only the explicit success message counts."""
        payload = self._signed_payload(ACTIVATION_MESSAGE)
        result = await self._request(
            "POST", NODE_START_PATH.format(address=self.address), payload,
        )
        if result.ok and result.get_path("message") == NODE_ACTION_SUCCESS:
            self.log.info(f"Connected Node Successfully {result.data}")
            return True
        self.log.error(
            f"Failed to connect node for {self.address}: "
            f"{result.detail or result.data}"
        )
        return False

    async def check_points(self) -> Optional[PointsSnapshot]:
        """Read the wallet's node point balance."""
        result = await self._request("GET", WALLET_DETAILS_PATH.format(address=self.address))
        if not result.ok:
            self.log.error(f"Failed to check total points for {self.address}: {result.detail}")
            return None
        points = result.get_path("data", "nodePoints")
        if not isinstance(points, (int, float)) or isinstance(points, bool):
            points = 0
        snapshot = PointsSnapshot(address=self.address, points=points)
        self.log.info(f"{self.address} Total Points: {snapshot.points}")
        return snapshot

    async def daily_check_in(self) -> bool:
        """Claim the daily check-in points."""
        payload = self._signed_payload(CHECK_IN_MESSAGE)
        payload["walletAddress"] = self.address
        result = await self._request("POST", CLAIM_POINTS_PATH, payload)
        if result.ok:
            self.log.info(f"Daily Check in Result: {result.data}")
            return True
        self.log.error(f"Failed to perform daily check-in for {self.address}: {result.detail}")
        return False

    # ------------------------------------------------------------------
    # Referral calls
    # ------------------------------------------------------------------

    async def check_invite(self) -> bool:
        """Verify that :attr:`ref_code` is accepted by the service."""
        result = await self._request(
            "POST", VERIFY_REFERRAL_PATH, {"invite_code": self.ref_code},
        )
        if result.ok and result.get_path("data", "valid") is True:
            self.log.info(f"Invite Code Valid {result.data}")
            return True
        self.log.error(f"Invite code {self.ref_code} rejected: {result.detail or result.data}")
        return False

    async def register_wallet(self) -> bool:
        """Register this wallet under :attr:`ref_code`."""
        result = await self._request(
            "POST",
            REGISTER_WALLET_PATH.format(ref_code=self.ref_code),
            {"walletAddress": self.address},
        )
        if result.ok:
            self.log.info(f"Wallet successfully registered {result.data}")
            return True
        self.log.error(f"Failed to register wallet {self.address}: {result.detail}")
        return False

    # ------------------------------------------------------------------
    # Sequence
    # ------------------------------------------------------------------

    async def run(self) -> SessionReport:
        """Run the status/stop/connect/points sequence once."""
        report = SessionReport(address=self.address)

        self.log.info(f"Checking Node Status for: {self.address}")
        report.was_running = await self.check_status()

        if report.was_running:
            self.log.info(f"Wallet {self.address} is running - trying to claim node points...")
            report.stopped = await self.stop()

        self.log.info(f"Trying to reconnect node for Wallet: {self.address}")
        report.connected = await self.connect()

        self.log.info(f"Checking Node Points for Wallet: {self.address}")
        report.points = await self.check_points()
        return report
