"""Wiring of the Etsy sync engine from shared resources."""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shopsync.config import Settings
from shopsync.db.repositories import Repositories
from shopsync.services.etsy.client import ResilientClient
from shopsync.services.etsy.crypto import CredentialVault
from shopsync.services.etsy.locks import ShopLocks
from shopsync.services.etsy.oauth import EtsyOAuthService, TokenManager
from shopsync.services.etsy.orders import OrderSync
from shopsync.services.etsy.products import ProductSync
from shopsync.services.etsy.rate_limiter import CounterStore, EtsyRateLimiter
from shopsync.services.etsy.scheduler import ScheduleIntervals, SyncScheduler
from shopsync.services.etsy.webhooks import WebhookDispatcher
from shopsync.services.notifications import (
    EmailNotifier,
    NotificationDispatcher,
    NotificationService,
    TelegramNotifier,
)


@dataclass
class EtsySyncEngine:
    """Every long-lived component, built once per process."""

    settings: Settings
    repos: Repositories
    rate_limiter: EtsyRateLimiter
    tokens: TokenManager
    client: ResilientClient
    oauth: EtsyOAuthService
    order_sync: OrderSync
    product_sync: ProductSync
    webhooks: WebhookDispatcher
    scheduler: SyncScheduler
    locks: ShopLocks


def build_engine(
    settings: Settings,
    http: httpx.AsyncClient,
    session_maker: async_sessionmaker[AsyncSession],
    counter_store: CounterStore,
    notifier: Optional[NotificationService] = None,
) -> EtsySyncEngine:
    """Assemble the engine.

    Args:
        settings: Application settings
        http: Shared HTTP client (Etsy and notification transports)
        session_maker: Session factory for the repositories
        counter_store: Backing store for the daily call counter
        notifier: Notification collaborator; defaults to Telegram + e-mail

    Raises:
        ValueError: If TOKEN_ENCRYPTION_KEY or the webhook secret is unusable.
    """
    repos = Repositories.from_session_maker(session_maker)
    vault = CredentialVault(settings.TOKEN_ENCRYPTION_KEY)
    locks = ShopLocks()

    if notifier is None:
        notifier = NotificationDispatcher(
            telegram=TelegramNotifier(http, settings.TELEGRAM_BOT_TOKEN),
            email=EmailNotifier(
                http, settings.SENDGRID_API_KEY, settings.FROM_EMAIL, settings.FROM_NAME
            ),
        )

    rate_limiter = EtsyRateLimiter(
        counter_store,
        daily_limit=settings.ETSY_DAILY_CALL_LIMIT,
        warn_threshold=settings.ETSY_DAILY_CALL_WARN,
    )
    tokens = TokenManager(
        http,
        vault,
        repos.credentials,
        api_key=settings.ETSY_API_KEY,
        refresh_margin=timedelta(minutes=settings.TOKEN_REFRESH_MARGIN_MINUTES),
    )
    client = ResilientClient(
        http,
        tokens,
        rate_limiter,
        repos.shops,
        api_key=settings.ETSY_API_KEY,
        max_retries=settings.ETSY_MAX_RETRIES,
        default_retry_after=settings.ETSY_DEFAULT_RETRY_AFTER,
    )
    oauth = EtsyOAuthService(settings, http, tokens, repos.shops, client)

    order_sync = OrderSync(client, repos, notifier, page_size=settings.ETSY_PAGE_SIZE)
    product_sync = ProductSync(client, repos, page_size=settings.ETSY_PAGE_SIZE)

    webhooks = WebhookDispatcher(
        repos.shops,
        client,
        order_sync,
        locks,
        signing_secret=settings.ETSY_WEBHOOK_SECRET,
    )
    scheduler = SyncScheduler(
        repos.shops,
        tokens,
        order_sync,
        product_sync,
        locks,
        intervals=ScheduleIntervals(
            order_sync=timedelta(minutes=settings.ORDER_SYNC_INTERVAL_MINUTES),
            product_sync=timedelta(minutes=settings.PRODUCT_SYNC_INTERVAL_MINUTES),
            token_refresh=timedelta(minutes=settings.TOKEN_REFRESH_INTERVAL_MINUTES),
            order_lookback=timedelta(hours=settings.ORDER_SYNC_LOOKBACK_HOURS),
            token_lookahead=timedelta(minutes=settings.TOKEN_REFRESH_LOOKAHEAD_MINUTES),
        ),
    )

    return EtsySyncEngine(
        settings=settings,
        repos=repos,
        rate_limiter=rate_limiter,
        tokens=tokens,
        client=client,
        oauth=oauth,
        order_sync=order_sync,
        product_sync=product_sync,
        webhooks=webhooks,
        scheduler=scheduler,
        locks=locks,
    )
