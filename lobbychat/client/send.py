import logging
import time
from typing import Callable, Optional

from .api import ApiError, ChatApi
from .dedupe import dedupe_messages
from .state import ChatState, Session, SessionRegister
from .sync import SyncEngine

logger = logging.getLogger(__name__)

SEND_FAILED = "Unable to send message"


class MessageSender:
    """Optimistic send of the compose draft, one in flight per session."""

    def __init__(self, api: ChatApi, state: ChatState, sessions: SessionRegister, sync: SyncEngine,
                 clock: Callable[[], float] = time.time):
        self.api = api
        self.state = state
        self.sessions = sessions
        self.sync = sync
        self._clock = clock
        self._in_flight: Optional[Session] = None

    async def send(self) -> bool:
        session = self.sessions.current
        if session is None or self._in_flight is session:
            return False
        raw = self.state.draft
        text = raw.strip()
        if not text:
            return False

        self._in_flight = session
        self.state.sending = True
        self.state.draft = ""
        try:
            ack = await self.api.send_chat(session.context, text)
        except ApiError as exc:
            logger.error("send message failed: %s", exc.reason)
            if self.sessions.is_current(session):
                self.state.sync_error = exc.reason or SEND_FAILED
                self.state.draft = raw
            return False
        finally:
            if self._in_flight is session:
                self._in_flight = None
                if self.sessions.is_current(session):
                    self.state.sending = False

        if not self.sessions.is_current(session):
            return False
        if ack.accepted and ack.message is not None:
            self.state.messages = dedupe_messages([*self.state.messages, ack.message])
            self.state.sync_error = ""
            self.state.last_refreshed = self._clock()
            return True

        logger.debug("message not accepted (%s), resyncing", ack.reason)
        try:
            await self.sync.refresh_once()
        except ApiError as exc:
            logger.debug("resync after rejected send failed: %s", exc.reason)
        return ack.accepted
