from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
import time

from app.core.config import settings

# /health 대신 루트 경로에 등록
ROUTER_PREFIX = ""

health_router = APIRouter()

START_TIME = time.time()


@health_router.get("/healthz", status_code=status.HTTP_200_OK, tags=["health"])
async def health_check():
    uptime = time.time() - START_TIME
    return JSONResponse(
        content={"status": "healthy", "uptime": uptime, "version": settings.version}
    )
