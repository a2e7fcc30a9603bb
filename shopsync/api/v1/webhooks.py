"""Inbound Etsy webhook endpoint."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from shopsync.api.deps import get_engine
from shopsync.services.etsy import EtsySyncEngine

router = APIRouter()


@router.post("/etsy")
async def etsy_webhook(
    request: Request,
    engine: EtsySyncEngine = Depends(get_engine),
) -> JSONResponse:
    """Receive an Etsy order event.

    The raw body is verified before parsing; processing errors are still
    acknowledged with 200 so Etsy does not redeliver.
    """
    payload = await request.body()
    result = await engine.webhooks.handle(payload, request.headers)
    return JSONResponse(status_code=result.status_code, content=result.body)
