"""Polls an open chat view for new messages"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from curbside.client.api import PortalClient
from curbside.config import settings
from curbside.workflows.errors import SubmissionError

logger = logging.getLogger(__name__)

MessageHandler = Callable[[list[dict[str, Any]]], Awaitable[None]]


class ChatPoller:
    """Fetch new messages on a fixed interval while the view is open.

    No backoff; a failed poll is logged and the next tick tries again.
    Closing the view stops polling entirely.
    """

    def __init__(
        self,
        client: PortalClient,
        conversation_id: str,
        on_messages: MessageHandler,
        interval: float | None = None,
    ):
        self.client = client
        self.conversation_id = conversation_id
        self.on_messages = on_messages
        self.interval = interval if interval is not None else settings.chat_poll_interval_seconds
        self.cursor: datetime | None = None
        self.last_error: SubmissionError | None = None
        self._seen: set[str] = set()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def open(self) -> None:
        """Start polling; a no-op if already running"""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"chat-poll-{self.conversation_id}")

    async def close(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def poll_once(self) -> list[dict[str, Any]]:
        """Fetch messages from the cursor on and hand unseen ones to the handler"""
        messages = await self.client.list_messages(self.conversation_id, after=self.cursor)
        fresh = [message for message in messages if message["id"] not in self._seen]
        for message in fresh:
            self._seen.add(message["id"])
            created_at = datetime.fromisoformat(message["createdAt"])
            if self.cursor is None or created_at > self.cursor:
                self.cursor = created_at
        if fresh:
            await self.on_messages(fresh)
        return fresh

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
                self.last_error = None
            except SubmissionError as e:
                self.last_error = e
                logger.warning(f"Chat poll for {self.conversation_id} failed: {e.message}")
            await asyncio.sleep(self.interval)
