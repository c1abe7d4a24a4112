from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from mt_gateway.api.deps import get_registry
from mt_gateway.core.config import settings
from mt_gateway.schemas.account import HealthResponse
from mt_gateway.services.account_registry import AccountRegistry

router = APIRouter(tags=["System"])


@router.get("/version")
def version():
    return {"version": settings.VERSION}


@router.get("/health", response_model=HealthResponse)
async def healthcheck(registry: AccountRegistry = Depends(get_registry)):
    return HealthResponse(
        message="Server is running",
        timestamp=datetime.now(timezone.utc),
        connected_accounts=len(registry),
    )
