"""API v1 router aggregator."""

from fastapi import APIRouter

from shopsync.api.v1 import etsy, health, webhooks

api_router = APIRouter()

# Health check
api_router.include_router(health.router, prefix="/health", tags=["health"])

# Etsy connect, manual sync and quota
api_router.include_router(etsy.router, prefix="/etsy", tags=["etsy"])

# Inbound Etsy webhooks
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
