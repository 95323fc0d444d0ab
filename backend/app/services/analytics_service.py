"""
Best-effort product analytics.

Usage events go to the PostHog capture API. Delivery is fire-and-forget:
callers never await the network round trip, and no failure here can reach
the metering result.
"""
import asyncio
import logging
from typing import Any, Dict, Optional, Set

import httpx

from app.config import settings
from app.utils.metrics import analytics_failures_total

logger = logging.getLogger(__name__)

CAPTURE_PATH = "/capture/"
CAPTURE_TIMEOUT_SECONDS = 3.0

# Strong references to in-flight sends; the event loop only keeps weak ones
_pending: Set[asyncio.Task] = set()


class AnalyticsService:
    """PostHog capture client."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        host: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.posthog_api_key
        self.host = host or settings.posthog_host
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def capture(self, distinct_id: str, event: str, properties: Dict[str, Any]) -> None:
        """Send one event. Raises httpx.HTTPError on delivery failure."""
        if not self.enabled:
            return
        payload = {
            "api_key": self.api_key,
            "event": event,
            "distinct_id": distinct_id,
            "properties": properties,
        }
        async with httpx.AsyncClient(
            base_url=self.host,
            timeout=CAPTURE_TIMEOUT_SECONDS,
            transport=self._transport,
        ) as client:
            response = await client.post(CAPTURE_PATH, json=payload)
            response.raise_for_status()

    async def _safe_capture(self, distinct_id: str, event: str, properties: Dict[str, Any]) -> None:
        try:
            await self.capture(distinct_id, event, properties)
        except Exception as e:
            analytics_failures_total.inc()
            logger.warning(
                f"Analytics event {event} dropped: {e}",
                extra={"event": "analytics_failed", "user_id": distinct_id, "analytics_event": event},
            )

    def dispatch(self, distinct_id: str, event: str, properties: Dict[str, Any]) -> Optional[asyncio.Task]:
        """
        Schedule an event without waiting for it.

        Returns the scheduled task (None when analytics is disabled or no
        event loop is running).
        """
        if not self.enabled:
            return None
        try:
            task = asyncio.get_running_loop().create_task(
                self._safe_capture(distinct_id, event, properties)
            )
        except RuntimeError:
            logger.debug("No running event loop; analytics event skipped")
            return None
        _pending.add(task)
        task.add_done_callback(_pending.discard)
        return task


_default_service: Optional[AnalyticsService] = None


def get_analytics_service() -> AnalyticsService:
    """Process-wide analytics client built from settings."""
    global _default_service
    if _default_service is None:
        _default_service = AnalyticsService()
    return _default_service
