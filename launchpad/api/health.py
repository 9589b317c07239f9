from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(tags=["health"])


@router.get("/api/health")
async def health(request: Request, detailed: bool = False) -> JSONResponse:
    service = request.app.state.health_service
    if not detailed:
        return JSONResponse(content=service.basic())
    report, status_code = await service.detailed()
    return JSONResponse(content=report, status_code=status_code)
