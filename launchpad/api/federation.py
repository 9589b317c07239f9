from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from launchpad.api.deps import require_admin_id
from launchpad.errors import utc_timestamp
from launchpad.schemas.federation import InstanceRegistration

# Mounted under both /api/federation and /api/v1/federation.
router = APIRouter(tags=["federation"])


@router.get("/health")
def federation_health(request: Request) -> JSONResponse:
    service = request.app.state.federation_discovery_service
    return JSONResponse(
        content=service.health(request.app.state.health_service.uptime()),
        headers={"Cache-Control": "no-cache"},
    )


@router.get("/info")
def federation_info(request: Request) -> JSONResponse:
    return JSONResponse(
        content=request.app.state.federation_discovery_service.federation_info(),
        headers={"Cache-Control": "public, max-age=3600"},
    )


@router.get("/directories")
def list_directories(request: Request, category: str | None = None, limit: int = 50, offset: int = 0) -> JSONResponse:
    service = request.app.state.federation_discovery_service
    return JSONResponse(
        content=service.list_directories(category, limit, offset),
        headers={"Cache-Control": "public, max-age=1800"},
    )


@router.get("/instances")
def list_instances(request: Request, status: str | None = "active", limit: int = 50) -> dict:
    service = request.app.state.federation_discovery_service
    instances = service.get_known_instances(None if status == "all" else status, limit)
    return {"instances": instances, "total": len(instances), "timestamp": utc_timestamp()}


@router.post("/instances", status_code=201)
async def register_instance(payload: InstanceRegistration, request: Request) -> dict:
    service = request.app.state.federation_discovery_service
    result = await service.register_instance(
        payload.name, payload.base_url, payload.admin_email, payload.description
    )
    return {
        "success": True,
        "message": "Instance registered successfully",
        **result,
        "timestamp": utc_timestamp(),
    }


@router.post("/instances/ping", dependencies=[Depends(require_admin_id)])
async def ping_instances(request: Request) -> dict:
    results = await request.app.state.federation_discovery_service.ping_instances()
    return {
        "success": True,
        "results": results,
        "active": sum(1 for r in results if r["status"] == "active"),
        "total": len(results),
        "timestamp": utc_timestamp(),
    }
