from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request):
    settings = request.app.state.settings
    return {
        "status": "ok",
        "environment": settings.gateway_environment,
        "gateway": request.app.state.gateway.name,
    }
