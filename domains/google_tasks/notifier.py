"""Status notification sinks (fire-and-forget)."""

import asyncio
from typing import Optional, Protocol

import httpx

from logger import logger


class Notifier(Protocol):
    def notify(self, message: str) -> None: ...


class LogNotifier:
    """Writes status messages to the log."""

    def notify(self, message: str) -> None:
        logger.info(f"[notice] {message}")


class NtfyNotifier:
    """Pushes status messages to an ntfy topic, and to the log."""

    def __init__(
        self,
        topic: str,
        server: str = "https://ntfy.sh",
        token: Optional[str] = None,
        priority: str = "default",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.topic = topic
        self.server = server.rstrip("/")
        self.token = token
        self.priority = priority
        self._transport = transport
        self._pending: set[asyncio.Task] = set()

    def notify(self, message: str) -> None:
        logger.info(f"[notice] {message}")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, ntfy notification skipped")
            return

        task = loop.create_task(self.send(message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def send(self, message: str) -> bool:
        """Post the message. Returns False (and logs) on failure."""
        headers = {"Title": "Google Tasks sync", "Priority": self.priority}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=10) as client:
                response = await client.post(
                    f"{self.server}/{self.topic}",
                    content=message.encode("utf-8"),
                    headers=headers,
                )
            if not response.is_success:
                logger.error(f"Failed to send ntfy notification: HTTP {response.status_code} {response.text}")
                return False
            return True
        except httpx.HTTPError as e:
            logger.error(f"Error sending ntfy notification: {e}")
            return False

    async def drain(self) -> None:
        """Wait for notifications still being sent."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)


def build_notifier() -> Notifier:
    """ntfy when a topic is configured, otherwise the log."""
    import config

    if config.NTFY_TOPIC:
        return NtfyNotifier(
            topic=config.NTFY_TOPIC,
            server=config.NTFY_SERVER,
            token=config.NTFY_TOKEN,
            priority=config.NTFY_PRIORITY,
        )
    return LogNotifier()
