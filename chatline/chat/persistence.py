"""Post-commit persistence of chat state snapshots."""

import asyncio

from chatline.chat.models import ChatState
from chatline.observability.logging import get_logger
from chatline.storage.store import SessionStore

logger = get_logger(__name__)


class StatePersister:
    """Writes committed snapshots to the SessionStore in the background.

    Commits are synchronous, so the persister only records the latest
    snapshot and lets one drain task write it. Bursts of commits collapse
    into a single write of the newest snapshot. flush() waits until the
    newest snapshot is stored.
    """

    def __init__(self, store: SessionStore) -> None:
        self._store = store
        self._latest: ChatState | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> bool:
        return self._latest is not None or (
            self._task is not None and not self._task.done()
        )

    def __call__(self, state: ChatState) -> None:
        self._latest = state
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while self._latest is not None:
            snapshot, self._latest = self._latest, None
            # SessionStore absorbs storage failures
            await self._store.save_chat_state(snapshot)
            logger.debug("chat_state_persisted", status=snapshot.status.value)

    async def flush(self) -> None:
        """Wait until every recorded snapshot has been written."""
        if self._task is not None:
            await self._task
        if self._latest is not None:
            await self._drain()
