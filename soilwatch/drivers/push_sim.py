from __future__ import annotations
import logging

logger = logging.getLogger(__name__)


class LoggingPushDelivery:
    def __init__(self) -> None:
        self.sent: list[dict] = []

    async def send_to_topic(self, topic: str, title: str, body: str, data: dict[str, str]) -> None:
        self.sent.append({"topic": topic, "title": title, "body": body, "data": dict(data)})
        logger.info("PUSH topic=%s title=%s body=%s", topic, title, body)
