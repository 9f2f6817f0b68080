from .api import ApiError, ChatApi, RequestContext, Snapshot
from .app import LobbyClient
from .dedupe import dedupe_messages, message_key
from .peers import PeerDetailFetcher
from .send import MessageSender
from .session import SessionController, SessionStatus
from .state import ChatState, ConnectOptions, Session, SessionRegister
from .sync import SyncEngine

__all__ = [
    "ApiError",
    "ChatApi",
    "ChatState",
    "ConnectOptions",
    "LobbyClient",
    "MessageSender",
    "PeerDetailFetcher",
    "RequestContext",
    "Session",
    "SessionController",
    "SessionRegister",
    "SessionStatus",
    "Snapshot",
    "SyncEngine",
    "dedupe_messages",
    "message_key",
]
