"""
Fire-and-forget notification dispatch

Emails go out on background tasks started after the store write has
committed. A failed send is logged and never reaches the caller.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from .models import NotificationKind
from .protocols import MarketplaceRepositoryProtocol, NotificationClientProtocol

logger = logging.getLogger(__name__)


class Notifier:
    """Resolves the recipient's email and hands the message to the sink"""

    def __init__(
        self,
        client: Optional[NotificationClientProtocol],
        repository: MarketplaceRepositoryProtocol,
    ):
        self.client = client
        self.repository = repository
        self._tasks: Set[asyncio.Task] = set()

    def dispatch(
        self, kind: NotificationKind, user_id: Optional[str], payload: Dict[str, Any]
    ) -> Optional[asyncio.Task]:
        """Schedule a notification; returns the task, or None when nothing is sent"""
        if self.client is None or not user_id:
            return None

        task = asyncio.create_task(self._deliver(kind, user_id, dict(payload)))
        # Keep a reference until done so the task is not garbage collected
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _deliver(self, kind: NotificationKind, user_id: str, payload: Dict[str, Any]) -> bool:
        try:
            user = await self.repository.get_user(user_id)
            if user is None or not user.email:
                logger.warning(f"No email on file for {user_id}; {kind.value} notification skipped")
                return False

            payload.setdefault("name", user.full_name or user.email.split("@")[0])
            return await self.client.notify(kind, user.email, payload)
        except Exception as e:
            logger.error(f"Failed to send {kind.value} notification to {user_id}: {e}")
            return False

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self):
        """Wait for in-flight notifications (shutdown and tests)"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
