import asyncio
import time
from typing import Callable, List, Optional

import httpx

from ..schemas import OnlineUser
from .api import API_BASE, ChatApi
from .peers import PeerDetailFetcher
from .send import MessageSender
from .session import SessionController, SessionStatus
from .state import ChatState, ConnectOptions, Session, SessionRegister
from .sync import POLL_INTERVAL_SECONDS, SyncEngine


class LobbyClient:
    """Wires the client components around one shared ChatState.

    Drive it from a single event loop; it is not thread-safe.
    """

    def __init__(self, api: Optional[ChatApi] = None, *, base_url: str = API_BASE,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 poll_interval: float = POLL_INTERVAL_SECONDS, clock: Callable[[], float] = time.time):
        self.api = api or ChatApi(base_url, transport=transport)
        self.state = ChatState()
        self.sessions = SessionRegister()
        self.sync = SyncEngine(self.api, self.state, self.sessions, interval=poll_interval, clock=clock,
                               on_applied=self._reconcile_selection)
        self.peers = PeerDetailFetcher(self.api, self.state, self.sessions)
        self.sender = MessageSender(self.api, self.state, self.sessions, self.sync, clock=clock)
        self.controller = SessionController(self.api, self.state, self.sessions, self.sync, self.peers,
                                            clock=clock, on_activated=self._reconcile_selection)

    async def aclose(self) -> None:
        self.sync.stop()
        await self.api.aclose()

    async def __aenter__(self) -> "LobbyClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    @property
    def session(self) -> Optional[Session]:
        return self.sessions.current

    @property
    def status(self) -> SessionStatus:
        return self.controller.status

    @property
    def sorted_users(self) -> List[OnlineUser]:
        return sorted(self.state.users, key=lambda u: u.user)

    async def login(self, username: str, password: str, *, file_tcp: Optional[int] = None,
                    voice_udp: Optional[int] = None, ip_override: Optional[str] = None) -> bool:
        if self.status is SessionStatus.LOGGED_OUT:
            self.state.connect_options = ConnectOptions(file_tcp, voice_udp, ip_override)
        return await self.controller.login(username, password)

    async def resume(self, token: str, *, file_tcp: Optional[int] = None, voice_udp: Optional[int] = None,
                     ip_override: Optional[str] = None) -> bool:
        if self.status is SessionStatus.LOGGED_OUT:
            self.state.connect_options = ConnectOptions(file_tcp, voice_udp, ip_override)
        return await self.controller.resume(token)

    async def logout(self) -> None:
        await self.controller.logout()

    async def refresh(self) -> bool:
        return await self.sync.refresh_once()

    def set_draft(self, text: str) -> None:
        self.state.draft = text

    async def send_message(self, text: Optional[str] = None) -> bool:
        if text is not None:
            self.state.draft = text
        return await self.sender.send()

    def select_user(self, username: Optional[str]) -> Optional[asyncio.Task]:
        self.state.selected_user = username
        return self.peers.refresh()

    def _reconcile_selection(self) -> None:
        session = self.sessions.current
        if session is None:
            return
        online = [u.user for u in self.sorted_users]
        previous = self.state.selected_user
        if previous in online:
            return
        if session.username in online:
            chosen = session.username
        else:
            chosen = online[0] if online else None
        if chosen != previous:
            self.select_user(chosen)
