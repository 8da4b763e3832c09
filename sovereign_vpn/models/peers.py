"""
Peer Provisioning Models

Pydantic models for the control plane's JSON surface. Field names follow
the wire format (camelCase).

Validation of name and key content is done by the registry so that every
malformed request maps to the same 400 response; the request model only
fixes the shape.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class PeerRegistrationRequest(BaseModel):
    """Request to register a device"""
    model_config = ConfigDict(extra='ignore')

    name: Optional[str] = Field(None, description="Device display name")
    publicKey: Optional[str] = Field(
        None,
        description="Client WireGuard public key (base64 of 32 bytes)"
    )


class PeerInfo(BaseModel):
    name: str
    assignedIP: str = Field(..., description="Overlay address, <ip>/32")
    createdAt: str = Field(..., description="ISO 8601 timestamp")


class ServerConfig(BaseModel):
    """Everything the client needs besides its own private key"""

    serverPublicKey: str
    endpoint: str = Field(..., description="Endpoint (host:port)")
    presharedKey: str
    dns: str = Field(..., description="Comma separated DNS servers")
    allowedIPs: str = Field(..., description="Comma separated routes")
    persistentKeepalive: int = Field(25, ge=0, le=65535)


class ReconciliationError(BaseModel):
    reason: str
    message: str


class PeerRegistrationResponse(BaseModel):
    """Response after a successful registration"""
    model_config = ConfigDict(extra='allow')

    message: str
    peer: PeerInfo
    serverConfig: ServerConfig
    serverPeerBlock: str
    serverApplied: bool = Field(
        ...,
        description="Whether the live endpoint was updated"
    )
    serverError: Optional[ReconciliationError] = None
    notice: Optional[str] = None


class PeerSummary(BaseModel):
    """Public view of a peer; never carries the preshared key"""

    name: str
    publicKey: str
    assignedIP: str
    createdAt: str


class PeerListResponse(BaseModel):
    count: int
    peers: List[PeerSummary]


class RemovedPeer(BaseModel):
    name: str
    publicKey: str
    assignedIP: str


class PeerRevocationResponse(BaseModel):
    model_config = ConfigDict(extra='allow')

    message: str
    removedPeer: RemovedPeer
    serverRemoved: Optional[bool] = None
    serverAction: Optional[str] = None
    serverError: Optional[ReconciliationError] = None


class HealthResponse(BaseModel):
    status: str
    service: str
    activePeers: int
    reconciliationEnabled: bool
    timestamp: str


class PoolStatsResponse(BaseModel):
    totalAddresses: int
    issuedAddresses: int
    remainingAddresses: int
    activePeers: int
