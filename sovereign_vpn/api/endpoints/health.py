"""
Control Plane Health Endpoint

GET /api/health - readiness probe with the active peer count and whether
live reconciliation is configured.
"""

from fastapi import APIRouter, Depends

from sovereign_vpn.api.endpoints.peers import get_provisioning_service
from sovereign_vpn.models.peers import HealthResponse
from sovereign_vpn.services.provisioning_service import ProvisioningService

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health(
    service: ProvisioningService = Depends(get_provisioning_service)
):
    return service.health()
