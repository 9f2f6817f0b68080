import asyncio
import logging
import time
from typing import Callable, Optional, Set

from .api import ApiError, ChatApi
from .dedupe import dedupe_messages
from .state import ChatState, SessionRegister

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 4.0
UNSTABLE_MESSAGE = "Connection unstable. Trying to resync..."


class SyncEngine:
    """Polls the full lobby snapshot on a fixed cadence while a session is active.

    Ticks are not serialized: each one runs as its own task, so a slow request
    never delays the next tick. A result is applied only if the session that
    started the tick is still the current one when the response arrives.
    """

    def __init__(self, api: ChatApi, state: ChatState, sessions: SessionRegister, *,
                 interval: float = POLL_INTERVAL_SECONDS, clock: Callable[[], float] = time.time,
                 on_applied: Optional[Callable[[], None]] = None):
        self.api = api
        self.state = state
        self.sessions = sessions
        self.interval = interval
        self._clock = clock
        self._on_applied = on_applied
        self._runner: Optional[asyncio.Task] = None
        self._ticks: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    def start(self) -> None:
        if self.running:
            return
        self._spawn_tick()
        self._runner = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        # In-flight ticks are left to finish; the identity check discards them.
        if self._runner is not None:
            self._runner.cancel()
            self._runner = None

    async def drain(self) -> None:
        """Wait for ticks already in flight."""
        if self._ticks:
            await asyncio.gather(*list(self._ticks), return_exceptions=True)

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time()
        while True:
            deadline += self.interval
            await asyncio.sleep(max(0.0, deadline - loop.time()))
            self._spawn_tick()

    def _spawn_tick(self) -> None:
        task = asyncio.get_running_loop().create_task(self._tick())
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)

    async def _tick(self) -> None:
        try:
            await self.refresh_once()
        except ApiError as exc:
            logger.debug("refresh failed: %s", exc.reason)

    async def refresh_once(self) -> bool:
        """Fetch and apply one snapshot. Returns True if the result was applied.

        Raises ApiError on failure after flagging the connection as unstable;
        previously displayed data is kept.
        """
        session = self.sessions.current
        if session is None:
            return False
        try:
            snapshot = await self.api.fetch_snapshot(session.context)
        except ApiError:
            if self.sessions.is_current(session):
                self.state.sync_error = UNSTABLE_MESSAGE
            raise
        if not self.sessions.is_current(session):
            logger.debug("discarding snapshot for superseded session of '%s'", session.username)
            return False

        self.state.users = snapshot.users
        self.state.messages = dedupe_messages(snapshot.messages)
        self.state.sync_error = ""
        self.state.last_refreshed = self._clock()
        if self._on_applied is not None:
            self._on_applied()
        return True
