"""
Client-side exceptions
"""

from typing import Optional


class ClientError(Exception):
    """Base exception for device-side failures"""
    pass


class TransportFailureError(ClientError):
    """Raised when the control plane cannot be reached"""
    pass


class RequestFailedError(ClientError):
    """
    Raised when the control plane answers with an error status.

    ``message`` is the server-provided text, surfaced verbatim.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        self.message = message
        super().__init__(message)


class RegistrationFailedError(RequestFailedError):
    """Raised when the control plane rejects a registration"""
    pass


class ConflictPersistedError(RegistrationFailedError):
    """Raised when registration conflicts again after rotating the identity"""

    def __init__(self, message: str):
        super().__init__(message, status_code=409)


class ResponseFormatError(ClientError):
    """Raised when a response lacks the variant the protocol mode expects"""
    pass


class NotRegisteredError(ClientError):
    """Raised when a tunnel is requested before registration completed"""

    def __init__(self, message: str = "No config - register device first"):
        super().__init__(message)


class VpnPermissionDeniedError(ClientError):
    """Raised when the user declines the VPN permission prompt"""

    def __init__(self, message: str = "VPN permission denied"):
        super().__init__(message)


class TunnelEngineError(ClientError):
    """Raised when the tunnel engine fails to change state or report stats"""
    pass
