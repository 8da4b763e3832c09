"""
FastAPI application entrypoint

Registers the control plane routers under ``/api``. Schema-level request
failures are answered with 400 so every malformed registration is reported
the same way.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from sovereign_vpn import __version__
from sovereign_vpn.api.endpoints.health import router as health_router
from sovereign_vpn.api.endpoints.peers import router as peers_router

app = FastAPI(
    title="Sovereign VPN Control Plane",
    description="Zero-trust WireGuard peer provisioning",
    version=__version__,
)

app.include_router(health_router, prefix="/api")
app.include_router(peers_router, prefix="/api")


@app.exception_handler(RequestValidationError)
async def invalid_request_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Invalid request body"},
    )
