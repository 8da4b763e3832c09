"""
Control plane wire models
"""

from .peers import (
    PeerRegistrationRequest,
    PeerRegistrationResponse,
    PeerListResponse,
    PeerRevocationResponse,
    HealthResponse,
    ServerConfig,
)

__all__ = [
    "PeerRegistrationRequest",
    "PeerRegistrationResponse",
    "PeerListResponse",
    "PeerRevocationResponse",
    "HealthResponse",
    "ServerConfig",
]
