"""
Control plane API client

Async httpx client for the control plane. Only the device's public key is
ever sent.

Registration outcomes are returned as explicit result values
(Registered / Conflict / Rejected) so the caller decides what a 409 means.
Network-level problems raise TransportFailureError.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union
from urllib.parse import quote

import httpx

from sovereign_vpn.client.errors import (
    RequestFailedError,
    ResponseFormatError,
    TransportFailureError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Registered:
    body: Dict[str, Any]


@dataclass(frozen=True)
class Conflict:
    message: str


@dataclass(frozen=True)
class Rejected:
    status_code: int
    message: str


RegistrationResult = Union[Registered, Conflict, Rejected]


def error_message(response: httpx.Response, fallback: str = "Registration failed") -> str:
    """
    Server-provided error text, falling back to the status line.
    """
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        for field in ("detail", "error", "message"):
            value = body.get(field)
            if isinstance(value, str) and value:
                return value

    return f"{fallback}: {response.status_code} {response.reason_phrase}"


class ControlPlaneClient:
    """
    Async client for the control plane HTTP API

    Attributes:
        base_url: Control plane base URL
        client: Shared httpx.AsyncClient
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def close(self):
        """Close HTTP client and cleanup resources"""
        await self.client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise TransportFailureError(f"Cannot reach control plane: {e}")

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            raise ResponseFormatError(f"Non-JSON response ({response.status_code})")
        if not isinstance(body, dict):
            raise ResponseFormatError("Expected a JSON object")
        return body

    async def register_peer(self, name: str, public_key: str) -> RegistrationResult:
        """
        POST /api/peers

        Args:
            name: Device display name
            public_key: Device public key (base64)

        Returns:
            Registered, Conflict (409) or Rejected (any other error status)

        Raises:
            TransportFailureError: Network failure
            ResponseFormatError: Success status without a JSON object body
        """
        response = await self._request(
            "POST", "/api/peers", json={"name": name, "publicKey": public_key}
        )

        if response.status_code == 409:
            return Conflict(error_message(response))
        if response.is_success:
            return Registered(self._json(response))
        return Rejected(response.status_code, error_message(response))

    async def health(self) -> Dict[str, Any]:
        response = await self._request("GET", "/api/health")
        self._raise_for_status(response)
        return self._json(response)

    async def list_peers(self) -> Dict[str, Any]:
        response = await self._request("GET", "/api/peers")
        self._raise_for_status(response)
        return self._json(response)

    async def delete_peer(self, public_key: str) -> Dict[str, Any]:
        """
        DELETE /api/peers/{publicKey}, with the key URL-encoded.

        Raises:
            RequestFailedError: 404 or any other error status
        """
        response = await self._request(
            "DELETE", f"/api/peers/{quote(public_key, safe='')}"
        )
        self._raise_for_status(response)
        return self._json(response)

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if not response.is_success:
            raise RequestFailedError(
                error_message(response, fallback="Request failed"), response.status_code
            )
