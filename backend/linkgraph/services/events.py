"""Event publisher — relationship-change notifications to the event sink."""
from __future__ import annotations

import logging

import httpx

from linkgraph.config import Settings
from linkgraph.models.event import ConnectionEvent

logger = logging.getLogger(__name__)


class EventPublisher:
    """Delivers connection events to a webhook.

    Fire-and-acknowledge: a 2xx response acknowledges the event. Delivery
    failures are logged and reported through the return value but never
    raised, so a sink outage cannot fail a committed connection change.
    Without a configured webhook the event is only logged.
    """

    def __init__(self, settings: Settings) -> None:
        self._webhook_url = settings.event_webhook_url
        self._timeout = settings.event_timeout_seconds

    @property
    def enabled(self) -> bool:
        return bool(self._webhook_url)

    async def publish(self, event: ConnectionEvent) -> bool:
        logger.info(
            "Publishing %s: connection=%s requester=%s addressee=%s",
            event.event_type.value, event.connection_id,
            event.requester_id, event.addressee_id,
        )
        if not self.enabled:
            return False

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(
                    self._webhook_url,
                    json=event.model_dump(mode="json"),
                    headers={"X-Event-Id": event.event_id},
                )
            resp.raise_for_status()
        except httpx.HTTPError:
            logger.warning(
                "Failed to deliver %s for connection %s",
                event.event_type.value, event.connection_id,
                exc_info=True,
            )
            return False

        logger.debug("Event %s acknowledged", event.event_id)
        return True
