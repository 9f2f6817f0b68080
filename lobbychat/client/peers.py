import asyncio
import logging
from typing import Optional

from .api import ApiError, ChatApi
from .state import ChatState, Session, SessionRegister

logger = logging.getLogger(__name__)

OFFLINE_NOTICE = "Peer is offline or did not publish details yet."
LOOKUP_FAILED = "Unable to load peer details"


class PeerLookup:
    """Handle for one lookup, scoped to the session and selection it started under."""

    def __init__(self, session: Session, username: str):
        self.session = session
        self.username = username
        self.active = True

    def cancel(self) -> None:
        self.active = False


class PeerDetailFetcher:
    def __init__(self, api: ChatApi, state: ChatState, sessions: SessionRegister):
        self.api = api
        self.state = state
        self.sessions = sessions
        self._current: Optional[PeerLookup] = None

    def reset(self) -> None:
        if self._current is not None:
            self._current.cancel()
            self._current = None
        self.state.clear_peer()

    def refresh(self) -> Optional[asyncio.Task]:
        """Start a lookup for the current selection, superseding any earlier one."""
        if self._current is not None:
            self._current.cancel()
            self._current = None

        session = self.sessions.current
        selected = self.state.selected_user
        if session is None or not selected or selected == session.username:
            self.state.clear_peer()
            return None

        lookup = PeerLookup(session, selected)
        self._current = lookup
        self.state.peer_loading = True
        self.state.peer_error = ""
        self.state.peer_notice = ""
        return asyncio.get_running_loop().create_task(self._resolve(lookup))

    def _applies(self, lookup: PeerLookup) -> bool:
        return (
            lookup.active
            and self.sessions.is_current(lookup.session)
            and self.state.selected_user == lookup.username
        )

    async def _resolve(self, lookup: PeerLookup) -> None:
        try:
            details = await self.api.fetch_peer_details(lookup.session.context, lookup.username)
        except ApiError as exc:
            if not self._applies(lookup):
                logger.debug("dropping stale peer lookup failure for '%s'", lookup.username)
                return
            self.state.peer_details = None
            self.state.peer_error = exc.reason or LOOKUP_FAILED
        else:
            if not self._applies(lookup):
                logger.debug("dropping stale peer details for '%s'", lookup.username)
                return
            self.state.peer_details = details
            if details is None:
                self.state.peer_notice = OFFLINE_NOTICE
        self.state.peer_loading = False
