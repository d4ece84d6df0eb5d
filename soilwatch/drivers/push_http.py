from __future__ import annotations

import logging

import httpx

from ..domain.errors import PushDeliveryError

logger = logging.getLogger(__name__)


class HttpPushDelivery:
    """Topic push through an HTTP push gateway (FCM relay or similar)."""

    def __init__(self, gateway_url: str, timeout: float = 5.0) -> None:
        self._gateway_url = gateway_url
        self._timeout = timeout

    async def send_to_topic(self, topic: str, title: str, body: str, data: dict[str, str]) -> None:
        if not self._gateway_url:
            raise PushDeliveryError("Push gateway not configured")
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(
                    self._gateway_url,
                    json={
                        "topic": topic,
                        "notification": {"title": title, "body": body},
                        "data": data,
                    },
                )
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Push to topic=%s failed: %s", topic, e, exc_info=True)
            raise PushDeliveryError(f"Push send failed: {e}") from e
        logger.info("Push sent topic=%s title=%r", topic, title)
