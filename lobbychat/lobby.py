"""Server-side lobby: who is online and the recent broadcast history."""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional

from .config import HISTORY_LIMIT
from .schemas import ChatMessage, OnlineUser, PeerDetails

logger = logging.getLogger(__name__)


@dataclass
class Presence:
    user: str
    ip: Optional[str]
    file_tcp: int = -1
    voice_udp: int = -1

    def to_online_user(self) -> OnlineUser:
        return OnlineUser(user=self.user, ip=self.ip, fileTcp=self.file_tcp, voiceUdp=self.voice_udp)

    def to_peer_details(self) -> PeerDetails:
        return PeerDetails(user=self.user, ip=self.ip, fileTcp=self.file_tcp, voiceUdp=self.voice_udp)


class Lobby:
    def __init__(self, history_limit: int = HISTORY_LIMIT, clock: Callable[[], float] = time.time):
        self._lock = threading.Lock()
        self._online: Dict[str, Presence] = {}
        self._history: Deque[ChatMessage] = deque(maxlen=history_limit)
        self._clock = clock

    def join(self, username: str, ip: Optional[str], file_tcp: Optional[int] = None,
             voice_udp: Optional[int] = None) -> Presence:
        presence = Presence(
            user=username,
            ip=ip,
            file_tcp=file_tcp if file_tcp is not None else -1,
            voice_udp=voice_udp if voice_udp is not None else -1,
        )
        with self._lock:
            replaced = self._online.get(username) is not None
            self._online[username] = presence
        logger.info("JOIN %s from %s (fileTcp=%s, voiceUdp=%s%s)", username, ip,
                    presence.file_tcp, presence.voice_udp, ", relogin" if replaced else "")
        return presence

    def leave(self, username: str) -> bool:
        with self._lock:
            removed = self._online.pop(username, None) is not None
        if removed:
            logger.info("LEAVE %s", username)
        return removed

    def is_online(self, username: str) -> bool:
        with self._lock:
            return username in self._online

    def post(self, username: str, text: str) -> Optional[ChatMessage]:
        """Append a message from a joined user; None when the user is not in the lobby."""
        with self._lock:
            if username not in self._online:
                return None
            message = ChatMessage(sender=username, text=text, timestampSeconds=int(self._clock()))
            self._history.append(message)
        return message

    def online_users(self) -> List[OnlineUser]:
        with self._lock:
            presences = sorted(self._online.values(), key=lambda p: p.user.casefold())
        return [p.to_online_user() for p in presences]

    def recent_messages(self) -> List[ChatMessage]:
        with self._lock:
            return list(self._history)

    def find_peer(self, username: str) -> Optional[PeerDetails]:
        with self._lock:
            presence = self._online.get(username)
        return presence.to_peer_details() if presence else None
