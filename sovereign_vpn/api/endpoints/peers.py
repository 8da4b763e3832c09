"""
Peer Provisioning API Endpoint

Provides:
- POST /api/peers - Register a device by public key
- GET /api/peers - List registered peers (no secrets)
- DELETE /api/peers/{publicKey} - Revoke a peer (key URL-encoded)
- GET /api/pool/stats - Overlay address pool statistics

Errors:
- 400: Invalid name or public key
- 404: Peer not found
- 409: Public key already registered
- 503: Address pool exhausted
- 500: Internal server error
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from sovereign_vpn.config import ServerSettings
from sovereign_vpn.models.peers import (
    PeerListResponse,
    PeerRegistrationRequest,
    PeerRegistrationResponse,
    PeerRevocationResponse,
    PoolStatsResponse,
)
from sovereign_vpn.services.errors import (
    AddressPoolExhaustedError,
    DuplicatePeerError,
    InvalidInputError,
    PeerNotFoundError,
)
from sovereign_vpn.services.provisioning_service import ProvisioningService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Peers"])


# ============================================================================
# Dependency Injection
# ============================================================================

# Singleton instance of provisioning service
_provisioning_service: Optional[ProvisioningService] = None


def get_provisioning_service() -> ProvisioningService:
    """
    Get or create the process-wide provisioning service

    Returns:
        ProvisioningService configured from the environment
    """
    global _provisioning_service

    if _provisioning_service is None:
        _provisioning_service = ProvisioningService(ServerSettings.from_env())

    return _provisioning_service


# ============================================================================
# API Endpoints
# ============================================================================

@router.post(
    "/peers",
    response_model=PeerRegistrationResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    summary="Register a device",
)
async def register_peer(
    request: PeerRegistrationRequest,
    service: ProvisioningService = Depends(get_provisioning_service)
):
    """
    Register a device by its client-generated public key.

    The response carries the overlay address, server public key, endpoint,
    preshared key, DNS, routes and keepalive, plus ``serverApplied``
    reporting whether the live endpoint was updated.
    """
    try:
        return await service.register(name=request.name, public_key=request.publicKey)

    except InvalidInputError as e:
        logger.warning(f"Rejected registration: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    except DuplicatePeerError as e:
        logger.warning(f"Duplicate registration for {e.public_key[:16]}...")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    except AddressPoolExhaustedError as e:
        logger.error(f"Address pool exhausted: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e)
        )

    except Exception as e:
        logger.error(f"Unexpected error during registration: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to register peer"
        )


@router.get(
    "/peers",
    response_model=PeerListResponse,
    summary="List registered peers",
)
async def list_peers(
    service: ProvisioningService = Depends(get_provisioning_service)
):
    return service.list_peers()


@router.delete(
    "/peers/{public_key:path}",
    response_model=PeerRevocationResponse,
    response_model_exclude_none=True,
    summary="Revoke a peer",
)
async def revoke_peer(
    public_key: str,
    service: ProvisioningService = Depends(get_provisioning_service)
):
    """
    Revoke a peer. The path segment is the URL-encoded base64 public key.
    """
    try:
        return await service.revoke(public_key)

    except PeerNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    except Exception as e:
        logger.error(f"Error revoking peer: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to revoke peer"
        )


@router.get(
    "/pool/stats",
    response_model=PoolStatsResponse,
    summary="Get overlay address pool statistics",
)
async def get_pool_stats(
    service: ProvisioningService = Depends(get_provisioning_service)
):
    return service.pool_stats()
