from __future__ import annotations

from dataclasses import dataclass, field
import logging

import httpx

from listings_client.core.config import Settings, get_settings
from listings_client.core.entities import ENTITY_KINDS
from listings_client.core.session import Session
from listings_client.core.telemetry import (
    TelemetryRuntime,
    configure_client_logging,
    setup_client_telemetry,
    shutdown_client_telemetry,
)
from listings_client.services.api_client import FALLBACK_ERROR_MESSAGE, ApiError, ListingsAPIClient
from listings_client.services.notifications import Notifier
from listings_client.services.query_cache import ErrorHandler, QueryCache, QueryKey
from listings_client.services.resources import BookingResource, CommentResource, ListingResource, ProfileResource

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ClientRuntime:
    session: Session
    api: ListingsAPIClient
    cache: QueryCache
    notifier: Notifier
    listings: dict[str, ListingResource]
    comments: CommentResource
    booking: BookingResource
    profile: ProfileResource
    telemetry: TelemetryRuntime = field(default_factory=lambda: TelemetryRuntime(enabled=False, provider=None))

    def logout(self) -> None:
        """End the session and drop everything cached under it."""
        self.session.logout()
        self.cache.clear()
        self.notifier.info("You have been logged out")

    def shutdown(self) -> None:
        shutdown_client_telemetry(self.telemetry)


def report_refetch_failure(notifier: Notifier) -> ErrorHandler:
    def report(key: QueryKey, exc: Exception) -> None:
        notifier.errors(exc.messages if isinstance(exc, ApiError) else [FALLBACK_ERROR_MESSAGE])

    return report


def create_runtime(
    session: Session,
    *,
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
    notifier: Notifier | None = None,
) -> ClientRuntime:
    settings = settings or get_settings()
    configure_client_logging()
    telemetry = setup_client_telemetry(settings)

    api = ListingsAPIClient(
        settings.api_base_url,
        session,
        timeout_seconds=settings.request_timeout_seconds,
        client=http_client,
    )
    notifier = notifier or Notifier()
    cache = QueryCache(
        stale_time_seconds=settings.stale_time_seconds,
        refetch_on_window_focus=settings.refetch_on_window_focus,
        on_error=report_refetch_failure(notifier),
    )
    logger.info(
        "client runtime ready api_base_url=%s stale_time_seconds=%s",
        settings.api_base_url,
        settings.stale_time_seconds,
    )
    return ClientRuntime(
        session=session,
        api=api,
        cache=cache,
        notifier=notifier,
        listings={
            path: ListingResource(kind, api, cache, notifier, applications_page_size=settings.applications_page_size)
            for path, kind in ENTITY_KINDS.items()
        },
        comments=CommentResource(api, cache, notifier),
        booking=BookingResource(api, cache, notifier),
        profile=ProfileResource(api, cache, notifier),
        telemetry=telemetry,
    )
