"""Shared API dependencies."""

from fastapi import Request

from shopsync.services.etsy import EtsySyncEngine


def get_engine(request: Request) -> EtsySyncEngine:
    """Sync engine built in the application lifespan."""
    return request.app.state.engine
