"""
WireGuard Endpoint Reconciliation

Mirrors registry mutations onto the live WireGuard endpoint without
restarting it, using ``wg set`` over the remote execution channel.

Features:
- Add a peer with its preshared key in one remote transaction
  (temp file -> ``wg set`` -> delete temp file)
- Remove a peer (``wg set ... remove`` is idempotent)
- Idempotent IP forwarding + masquerade rule for the overlay subnet
  (check with ``iptables -C`` before ``-A``)

Every call is best-effort. Failures come back as a ReconciliationResult
carrying a ReconciliationFailure; nothing is raised to the caller. Missing
credentials are a valid configuration meaning "reconciliation disabled"
and report the NOT_CONFIGURED reason.
"""

import logging
import shlex
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sovereign_vpn.config import ServerSettings
from sovereign_vpn.networking.remote_executor import (
    RemoteCommandError,
    RemoteConnectionError,
    RemoteExecutionError,
    RemoteExecutor,
    RemoteTransportError,
)

logger = logging.getLogger(__name__)


class FailureReason(str, Enum):
    """Why a reconciliation did not reach the endpoint"""

    NOT_CONFIGURED = "not_configured"
    CONNECTION = "connection"
    COMMAND = "command"
    TRANSPORT = "transport"


@dataclass(frozen=True)
class ReconciliationFailure:
    reason: FailureReason
    message: str
    remote_error: str = ""


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome of one reconciliation call; ``failure`` is None on success"""

    failure: Optional[ReconciliationFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls) -> "ReconciliationResult":
        return cls()

    @classmethod
    def failed(
        cls, reason: FailureReason, message: str, remote_error: str = ""
    ) -> "ReconciliationResult":
        return cls(failure=ReconciliationFailure(reason, message, remote_error))


NOT_CONFIGURED = ReconciliationResult.failed(
    FailureReason.NOT_CONFIGURED,
    "Reconciliation not configured (no remote host credentials)"
)


class ReconciliationChannel:
    """
    Applies and removes peers on the live endpoint

    Attributes:
        interface: WireGuard interface on the endpoint (e.g., "wg0")
        subnet: Overlay subnet CIDR used for the masquerade rule
        wan_interface: Endpoint egress interface
        executor: Remote executor, None when reconciliation is disabled
    """

    def __init__(
        self,
        settings: ServerSettings,
        executor: Optional[RemoteExecutor] = None,
    ):
        self.interface = settings.interface
        self.subnet = settings.subnet
        self.wan_interface = settings.wan_interface

        if executor is None and settings.remote.enabled:
            executor = RemoteExecutor(settings.remote)
        self.executor = executor

        if self.enabled:
            logger.info(
                f"Reconciliation enabled for {self.interface} "
                f"on {settings.remote.host or 'custom executor'}"
            )
        else:
            logger.info("Reconciliation disabled: no remote credentials configured")

    @property
    def enabled(self) -> bool:
        return self.executor is not None

    def set_peer_script(self, public_key: str, allowed_address: str) -> str:
        """
        Script that stores the stdin payload in a private temp file, points
        ``wg set`` at it and deletes the file whatever the outcome.
        """
        return "\n".join([
            "set -euo pipefail",
            "umask 077",
            'tmp="$(mktemp)"',
            "trap 'rm -f \"$tmp\"' EXIT",
            'cat > "$tmp"',
            f"wg set {shlex.quote(self.interface)} peer {shlex.quote(public_key)} "
            f'preshared-key "$tmp" allowed-ips {shlex.quote(allowed_address)}',
        ])

    def forwarding_script(self) -> str:
        rule = (
            f"POSTROUTING -s {shlex.quote(self.subnet)} "
            f"-o {shlex.quote(self.wan_interface)} -j MASQUERADE"
        )
        return "\n".join([
            "set -euo pipefail",
            "sysctl -w net.ipv4.ip_forward=1 >/dev/null",
            f"iptables -t nat -C {rule} 2>/dev/null || iptables -t nat -A {rule}",
        ])

    def remove_peer_script(self, public_key: str) -> str:
        return (
            f"wg set {shlex.quote(self.interface)} "
            f"peer {shlex.quote(public_key)} remove"
        )

    def manual_remove_command(self, public_key: str) -> str:
        """Command an operator runs by hand when reconciliation is disabled"""
        return f"wg set {self.interface} peer {public_key} remove"

    async def apply_peer(
        self, public_key: str, preshared_key: str, allowed_address: str
    ) -> ReconciliationResult:
        """
        Add or update a peer on the endpoint, then ensure forwarding + NAT.

        Args:
            public_key: Peer's WireGuard public key
            preshared_key: Peer's shared secret (sent over stdin only)
            allowed_address: Peer's overlay address (``<ip>/32``)

        Returns:
            ReconciliationResult
        """
        if not self.enabled:
            return NOT_CONFIGURED

        result = await self._run(
            "apply",
            public_key,
            self.set_peer_script(public_key, allowed_address),
            stdin=preshared_key + "\n",
        )
        if not result.ok:
            return result

        return await self._run("forwarding", public_key, self.forwarding_script())

    async def remove_peer(self, public_key: str) -> ReconciliationResult:
        """
        Remove a peer from the endpoint. Unknown peers are not an error on
        the endpoint side.
        """
        if not self.enabled:
            return NOT_CONFIGURED

        return await self._run("remove", public_key, self.remove_peer_script(public_key))

    async def _run(
        self, action: str, public_key: str, script: str, stdin: Optional[str] = None
    ) -> ReconciliationResult:
        try:
            await self.executor.run(script, stdin=stdin)
        except RemoteConnectionError as e:
            return self._failed(action, public_key, FailureReason.CONNECTION, e)
        except RemoteCommandError as e:
            return self._failed(action, public_key, FailureReason.COMMAND, e)
        except RemoteTransportError as e:
            return self._failed(action, public_key, FailureReason.TRANSPORT, e)
        except RemoteExecutionError as e:
            return self._failed(action, public_key, FailureReason.TRANSPORT, e)

        logger.info(f"Reconciliation '{action}' succeeded for {public_key[:16]}...")
        return ReconciliationResult.success()

    def _failed(
        self,
        action: str,
        public_key: str,
        reason: FailureReason,
        error: RemoteExecutionError,
    ) -> ReconciliationResult:
        logger.warning(
            f"Reconciliation '{action}' failed for {public_key[:16]}... "
            f"({reason.value}): {error}"
        )
        return ReconciliationResult.failed(reason, str(error), error.stderr)
