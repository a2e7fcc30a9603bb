"""Etsy integration services.

This package provides:
- Encrypted credential storage and OAuth 2.0 PKCE connect flow
- Quota-governed, retrying API client
- Order and product reconciliation
- Webhook verification and dispatch
- Background sync scheduler
"""

from shopsync.services.etsy.client import EtsyRequest, ResilientClient
from shopsync.services.etsy.crypto import CredentialIntegrityError, CredentialVault
from shopsync.services.etsy.engine import EtsySyncEngine, build_engine
from shopsync.services.etsy.errors import (
    AuthExpired,
    EtsyAPIError,
    EtsyError,
    EtsyOAuthError,
    QuotaExceeded,
    RateLimited,
    RemoteUnavailable,
    SignatureInvalid,
)
from shopsync.services.etsy.locks import ShopLocks
from shopsync.services.etsy.oauth import EtsyOAuthService, TokenManager
from shopsync.services.etsy.orders import OrderSync
from shopsync.services.etsy.products import ProductSync
from shopsync.services.etsy.rate_limiter import (
    EtsyRateLimiter,
    InMemoryCounterStore,
    RedisCounterStore,
)
from shopsync.services.etsy.scheduler import BatchResult, ShopSyncResult, SyncScheduler
from shopsync.services.etsy.webhooks import WebhookDispatcher, WebhookResult

__all__ = [
    # Credentials
    "CredentialVault",
    "CredentialIntegrityError",
    # OAuth
    "EtsyOAuthService",
    "TokenManager",
    # Client
    "EtsyRequest",
    "ResilientClient",
    # Rate limiter
    "EtsyRateLimiter",
    "InMemoryCounterStore",
    "RedisCounterStore",
    # Sync
    "OrderSync",
    "ProductSync",
    "WebhookDispatcher",
    "WebhookResult",
    # Scheduler
    "SyncScheduler",
    "BatchResult",
    "ShopSyncResult",
    "ShopLocks",
    # Composition
    "EtsySyncEngine",
    "build_engine",
    # Errors
    "EtsyError",
    "EtsyAPIError",
    "EtsyOAuthError",
    "QuotaExceeded",
    "RateLimited",
    "AuthExpired",
    "RemoteUnavailable",
    "SignatureInvalid",
]
