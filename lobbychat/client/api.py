"""Async HTTP client for the lobby chat API.

Credentials are never held in module state: every authenticated call takes a
:class:`RequestContext` carrying the bearer token of the session that issued it.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from ..schemas import AuthResponse, ChatMessage, JoinResponse, MessageAck, OnlineUser, PeerDetails, UserProfile

logger = logging.getLogger(__name__)

API_BASE = "http://localhost:8000"
# Kept below the poll interval so stale requests cannot pile up.
REQUEST_TIMEOUT_SECONDS = 3.0
INVALID_RESPONSE = "Invalid response from server"

ModelT = TypeVar("ModelT", bound=BaseModel)


class ApiError(Exception):
    def __init__(self, reason: str, status: Optional[int] = None, payload: Any = None):
        super().__init__(reason)
        self.reason = reason
        self.status = status
        self.payload = payload


@dataclass(frozen=True)
class RequestContext:
    token: Optional[str] = None

    def headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}


ANONYMOUS = RequestContext()


@dataclass
class Snapshot:
    users: List[OnlineUser] = field(default_factory=list)
    messages: List[ChatMessage] = field(default_factory=list)


def _reason_from(response: httpx.Response) -> Tuple[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    reason = None
    if isinstance(payload, dict):
        for key in ("reason", "detail", "message"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                reason = value
                break
    return reason or response.reason_phrase or "Request failed", payload


def _parse(model: Type[ModelT], data: Any) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        logger.debug("unexpected %s payload: %s", model.__name__, exc)
        raise ApiError(INVALID_RESPONSE, payload=data) from exc


class ChatApi:
    def __init__(self, base_url: str = API_BASE, *, timeout: float = REQUEST_TIMEOUT_SECONDS,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ChatApi":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, context: RequestContext = ANONYMOUS,
                       json: Any = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json, headers=context.headers())
        except httpx.HTTPError as exc:
            logger.debug("%s %s failed: %r", method, path, exc)
            raise ApiError(str(exc) or exc.__class__.__name__) from exc
        if response.is_error:
            reason, payload = _reason_from(response)
            raise ApiError(reason, status=response.status_code, payload=payload)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            logger.debug("%s %s returned a non-JSON body", method, path)
            raise ApiError(INVALID_RESPONSE, status=response.status_code) from exc

    # ---------- Auth ----------
    async def sign_in(self, username: str, password: str) -> AuthResponse:
        data = await self._request("POST", "/api/auth/login", json={"username": username, "password": password})
        return _parse(AuthResponse, data)

    async def register(self, username: str, email: str, password: str) -> AuthResponse:
        data = await self._request(
            "POST", "/api/auth/register", json={"username": username, "email": email, "password": password}
        )
        return _parse(AuthResponse, data)

    async def me(self, context: RequestContext) -> UserProfile:
        return _parse(UserProfile, await self._request("GET", "/api/auth/me", context))

    # ---------- Lobby ----------
    async def join(self, context: RequestContext, file_tcp: Optional[int] = None, voice_udp: Optional[int] = None,
                   ip_override: Optional[str] = None) -> JoinResponse:
        payload: Dict[str, Any] = {}
        if file_tcp is not None:
            payload["fileTcp"] = file_tcp
        if voice_udp is not None:
            payload["voiceUdp"] = voice_udp
        if ip_override:
            payload["ipOverride"] = ip_override
        try:
            data = await self._request("POST", "/api/lobby/join", context, json=payload)
        except ApiError as exc:
            # A refused join still carries a JoinResponse body with the reason.
            if isinstance(exc.payload, dict) and "success" in exc.payload:
                return _parse(JoinResponse, exc.payload)
            raise
        return _parse(JoinResponse, data)

    async def leave(self, context: RequestContext) -> None:
        try:
            await self._request("POST", "/api/lobby/leave", context)
        except ApiError as exc:
            if exc.status != 404:
                raise

    async def fetch_snapshot(self, context: RequestContext) -> Snapshot:
        users, messages = await asyncio.gather(
            self._request("GET", "/api/lobby/users", context),
            self._request("GET", "/api/lobby/messages", context),
        )
        return Snapshot(
            users=[_parse(OnlineUser, u) for u in users] if isinstance(users, list) else [],
            messages=[_parse(ChatMessage, m) for m in messages] if isinstance(messages, list) else [],
        )

    async def send_chat(self, context: RequestContext, text: str) -> MessageAck:
        try:
            data = await self._request("POST", "/api/lobby/message", context, json={"text": text})
        except ApiError as exc:
            # 403 is a non-acceptance acknowledgement, not a transport failure
            if exc.status == 403 and isinstance(exc.payload, dict) and "accepted" in exc.payload:
                return _parse(MessageAck, exc.payload)
            raise
        return _parse(MessageAck, data)

    async def fetch_peer_details(self, context: RequestContext, username: str) -> Optional[PeerDetails]:
        if not username:
            return None
        try:
            data = await self._request("GET", f"/api/lobby/peer/{quote(username, safe='')}", context)
        except ApiError as exc:
            if exc.status == 404:
                return None
            raise
        return _parse(PeerDetails, data)
