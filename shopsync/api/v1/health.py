"""Health check endpoint."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from shopsync.api.deps import get_engine
from shopsync.services.etsy import EtsySyncEngine

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    environment: str
    scheduler_running: bool


@router.get("", response_model=HealthResponse)
async def health_check(engine: EtsySyncEngine = Depends(get_engine)) -> HealthResponse:
    return HealthResponse(
        status="ok",
        environment=engine.settings.ENVIRONMENT,
        scheduler_running=engine.scheduler.running,
    )
