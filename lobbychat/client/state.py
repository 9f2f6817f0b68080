"""Client-side state shared by the session, sync, peer and send components."""

import itertools
from dataclasses import dataclass, field
from typing import List, Optional

from ..schemas import ChatMessage, OnlineUser, PeerDetails, UserProfile
from .api import RequestContext

_epochs = itertools.count(1)


@dataclass(frozen=True, eq=False)
class Session:
    """One login episode.

    Compared by identity: a new login always produces a new object, even for
    the same username, so continuations can tell whether the episode they were
    started in is still the current one.
    """

    username: str
    context: RequestContext
    profile: Optional[UserProfile] = None
    epoch: int = field(default_factory=lambda: next(_epochs))


class SessionRegister:
    """Holds the current session. Only SessionController writes to it."""

    def __init__(self) -> None:
        self._current: Optional[Session] = None

    @property
    def current(self) -> Optional[Session]:
        return self._current

    def replace(self, session: Optional[Session]) -> None:
        self._current = session

    def clear(self) -> None:
        self._current = None

    def is_current(self, session: Optional[Session]) -> bool:
        return session is not None and self._current is session


@dataclass(frozen=True)
class ConnectOptions:
    """Ports and address advertised to peers on every join."""

    file_tcp: Optional[int] = None
    voice_udp: Optional[int] = None
    ip_override: Optional[str] = None


@dataclass
class ChatState:
    # login form
    username_input: str = ""
    password_input: str = ""
    login_pending: bool = False
    login_error: str = ""
    connect_options: ConnectOptions = field(default_factory=ConnectOptions)

    # lobby
    users: List[OnlineUser] = field(default_factory=list)
    messages: List[ChatMessage] = field(default_factory=list)
    sync_error: str = ""
    last_refreshed: Optional[float] = None

    # selection and peer lookup
    selected_user: Optional[str] = None
    peer_details: Optional[PeerDetails] = None
    peer_loading: bool = False
    peer_error: str = ""
    peer_notice: str = ""

    # compose
    draft: str = ""
    sending: bool = False

    def clear_peer(self) -> None:
        self.peer_details = None
        self.peer_loading = False
        self.peer_error = ""
        self.peer_notice = ""

    def clear_session_data(self) -> None:
        self.users = []
        self.messages = []
        self.sync_error = ""
        self.last_refreshed = None
        self.selected_user = None
        self.clear_peer()
        self.draft = ""
        self.sending = False
