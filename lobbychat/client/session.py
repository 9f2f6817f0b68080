import enum
import logging
import time
from typing import Callable, Optional

from ..schemas import JoinResponse, UserProfile
from .api import ApiError, ChatApi, RequestContext
from .dedupe import dedupe_messages
from .peers import PeerDetailFetcher
from .state import ChatState, Session, SessionRegister
from .sync import SyncEngine

logger = logging.getLogger(__name__)

MISSING_CREDENTIALS = "Username and password are required."
JOIN_FAILED = "Unable to join lobby."
LOGIN_FAILED = "Unable to connect. Please try again."


class SessionStatus(enum.Enum):
    LOGGED_OUT = "logged_out"
    LOGGING_IN = "logging_in"
    ACTIVE = "active"
    LOGGING_OUT = "logging_out"


class SessionController:
    """Owns the login episode lifecycle and is the only writer of the session register."""

    def __init__(self, api: ChatApi, state: ChatState, sessions: SessionRegister, sync: SyncEngine,
                 peers: PeerDetailFetcher, *, clock: Callable[[], float] = time.time,
                 on_activated: Optional[Callable[[], None]] = None):
        self.api = api
        self.state = state
        self.sessions = sessions
        self.sync = sync
        self.peers = peers
        self._clock = clock
        self._on_activated = on_activated
        self.status = SessionStatus.LOGGED_OUT

    async def login(self, username: Optional[str] = None, password: Optional[str] = None) -> bool:
        if self.status is not SessionStatus.LOGGED_OUT:
            return False
        if username is not None:
            self.state.username_input = username
        if password is not None:
            self.state.password_input = password

        username = self.state.username_input.strip()
        password = self.state.password_input
        if not username or not password:
            self.state.login_error = MISSING_CREDENTIALS
            return False

        self._begin_login()
        try:
            try:
                auth = await self.api.sign_in(username, password)
                context = RequestContext(auth.access_token)
                joined = await self._join(context)
            except ApiError as exc:
                logger.error("login failed for '%s': %s", username, exc.reason)
                self._fail_login(exc.reason or LOGIN_FAILED)
                return False
            return self._finish_login(context, auth.user, joined)
        finally:
            self._abandon_login()

    async def resume(self, token: str) -> bool:
        """Restore a session from a previously issued token.

        An unusable token simply leaves the controller logged out.
        """
        if self.status is not SessionStatus.LOGGED_OUT or not token:
            return False
        self._begin_login()
        context = RequestContext(token)
        try:
            try:
                profile = await self.api.me(context)
            except ApiError as exc:
                logger.debug("stored token rejected: %s", exc.reason)
                return False
            try:
                joined = await self._join(context)
            except ApiError as exc:
                logger.error("rejoin failed for '%s': %s", profile.username, exc.reason)
                self._fail_login(exc.reason or LOGIN_FAILED)
                return False
            return self._finish_login(context, profile, joined)
        finally:
            self._abandon_login()

    async def _join(self, context: RequestContext) -> JoinResponse:
        options = self.state.connect_options
        return await self.api.join(context, file_tcp=options.file_tcp, voice_udp=options.voice_udp,
                                   ip_override=options.ip_override)

    def _begin_login(self) -> None:
        self.status = SessionStatus.LOGGING_IN
        self.state.login_pending = True
        self.state.login_error = ""

    def _abandon_login(self) -> None:
        # Any exit that did not reach ACTIVE returns to the login form.
        if self.status is SessionStatus.LOGGING_IN:
            self.state.login_pending = False
            self.status = SessionStatus.LOGGED_OUT

    def _fail_login(self, reason: str) -> None:
        self.state.login_pending = False
        self.state.login_error = reason
        self.state.password_input = ""
        self.status = SessionStatus.LOGGED_OUT

    def _finish_login(self, context: RequestContext, profile: Optional[UserProfile], joined: JoinResponse) -> bool:
        if not joined.success or not joined.user:
            self._fail_login(joined.reason or JOIN_FAILED)
            return False

        self.sessions.replace(Session(username=joined.user, context=context, profile=profile))
        self.state.users = list(joined.users)
        self.state.messages = dedupe_messages(joined.messages)
        self.state.draft = ""
        self.state.sync_error = ""
        self.state.last_refreshed = self._clock()
        self.state.password_input = ""
        self.state.login_pending = False
        self.status = SessionStatus.ACTIVE
        self.sync.start()
        if self._on_activated is not None:
            self._on_activated()
        return True

    async def logout(self) -> None:
        session = self.sessions.current
        if session is None:
            return
        # Local state goes first: leaving must not depend on the network.
        self.status = SessionStatus.LOGGING_OUT
        self.sessions.clear()
        self.sync.stop()
        self.peers.reset()
        self.state.clear_session_data()
        try:
            await self.api.leave(session.context)
        except ApiError as exc:
            logger.debug("logout error: %s", exc.reason)
        finally:
            self.status = SessionStatus.LOGGED_OUT
