"""
VPN permission gate

Bringing a tunnel up may require the user to approve a system prompt.
The gate issues the prompt through a caller-supplied hook and then waits
on a future that only the explicit grant/deny callbacks resolve.
"""

import asyncio
import logging
from typing import Callable, Optional

from sovereign_vpn.client.errors import VpnPermissionDeniedError

logger = logging.getLogger(__name__)


class VpnPermissionGate:
    """
    Attributes:
        prompt: Called once per request to show the system prompt
        granted: True once the user has approved
    """

    def __init__(self, prompt: Optional[Callable[[], None]] = None, granted: bool = False):
        self.prompt = prompt
        self.granted = granted
        self._pending: Optional[asyncio.Future] = None

    async def request(self) -> None:
        """
        Wait for permission.

        Raises:
            VpnPermissionDeniedError: If the user declines
        """
        if self.granted:
            return

        if self._pending is None or self._pending.done():
            self._pending = asyncio.get_running_loop().create_future()
            if self.prompt is not None:
                self.prompt()
            logger.info("Requested VPN permission")

        if not await asyncio.shield(self._pending):
            raise VpnPermissionDeniedError()

    def grant(self) -> None:
        self.granted = True
        self._resolve(True)

    def deny(self) -> None:
        self._resolve(False)

    def _resolve(self, outcome: bool) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.set_result(outcome)
        logger.info(f"VPN permission {'granted' if outcome else 'denied'}")
