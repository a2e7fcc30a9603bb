"""Etsy integration API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from shopsync.api.deps import get_engine
from shopsync.services.etsy import EtsyError, EtsyOAuthError, EtsySyncEngine

router = APIRouter()


# Response schemas


class AuthURLResponse(BaseModel):
    """OAuth authorization URL response."""

    authorization_url: str
    state: str


class ConnectedShop(BaseModel):
    id: int
    etsy_shop_id: int
    shop_name: str
    status: str


class ConnectResponse(BaseModel):
    """Shops registered by a completed OAuth flow."""

    shops: list[ConnectedShop]


class SyncResponse(BaseModel):
    """Manual sync response."""

    message: str
    shop_id: int
    synced_count: int
    daily_api_calls_remaining: int


class RateLimitStatusResponse(BaseModel):
    """Rate limit status response."""

    daily_used: int
    daily_remaining: int
    max_per_day: int


# Endpoints


@router.get("/auth/url", response_model=AuthURLResponse)
async def get_auth_url(engine: EtsySyncEngine = Depends(get_engine)) -> AuthURLResponse:
    """Get Etsy OAuth authorization URL.

    Returns a URL that the shop owner should visit to authorize the app.
    """
    url, state = engine.oauth.get_authorization_url()
    return AuthURLResponse(authorization_url=url, state=state)


@router.get("/auth/callback", response_model=ConnectResponse)
async def oauth_callback(
    code: str = Query(..., description="Authorization code from Etsy"),
    state: str = Query(..., description="State parameter for CSRF verification"),
    engine: EtsySyncEngine = Depends(get_engine),
) -> ConnectResponse:
    """Handle Etsy OAuth callback.

    Exchanges the authorization code and registers every shop the user owns.
    """
    try:
        shops = await engine.oauth.connect(code, state)
    except EtsyOAuthError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except EtsyError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return ConnectResponse(
        shops=[
            ConnectedShop(
                id=shop.id,
                etsy_shop_id=shop.etsy_shop_id,
                shop_name=shop.shop_name,
                status=shop.status.value,
            )
            for shop in shops
        ]
    )


@router.post("/shops/{shop_id}/sync", response_model=SyncResponse)
async def manual_sync_shop(
    shop_id: int,
    engine: EtsySyncEngine = Depends(get_engine),
) -> SyncResponse:
    """Manually trigger a product and order sync for one shop."""
    try:
        result = await engine.scheduler.sync_shop_now(shop_id)
    except LookupError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Shop {shop_id} not found",
        )

    if not result.success:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=result.error)

    return SyncResponse(
        message="Sync completed successfully",
        shop_id=shop_id,
        synced_count=result.synced,
        daily_api_calls_remaining=await engine.rate_limiter.remaining(
            engine.client.quota_scope
        ),
    )


@router.get("/rate-limit", response_model=RateLimitStatusResponse)
async def get_rate_limit_status(
    engine: EtsySyncEngine = Depends(get_engine),
) -> RateLimitStatusResponse:
    """Get current Etsy API daily quota usage."""
    used = await engine.rate_limiter.used(engine.client.quota_scope)
    return RateLimitStatusResponse(
        daily_used=used,
        daily_remaining=max(0, engine.rate_limiter.daily_limit - used),
        max_per_day=engine.rate_limiter.daily_limit,
    )
