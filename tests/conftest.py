from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

from lobbychat.client.api import Snapshot
from lobbychat.config import Settings
from lobbychat.main import create_app
from lobbychat.schemas import ChatMessage, OnlineUser

SECRET = "unit-test-signing-key-0123456789abcdef"
PASSWORD = "s3cret-pass"


@pytest.fixture()
def settings() -> Settings:
    return Settings(jwt_secret=SECRET)


@pytest.fixture()
def app(settings: Settings):
    return create_app(settings)


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def register(client: TestClient) -> Callable[..., str]:
    def _register(username: str, password: str = PASSWORD) -> str:
        response = client.post(
            "/api/auth/register",
            json={"username": username, "email": f"{username.lower()}@example.com", "password": password},
        )
        assert response.status_code == 200, response.text
        return response.json()["access_token"]

    return _register


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def msg(sender: str, text: str, ts: int) -> ChatMessage:
    return ChatMessage(sender=sender, text=text, timestampSeconds=ts)


def online(*names: str) -> list[OnlineUser]:
    return [OnlineUser(user=name, ip="10.0.0.1") for name in names]


class FakeApi:
    """Scripted stand-in for ChatApi.

    Each call pops the next scripted result for that method: a value, an
    exception to raise, or a Future to await first. With nothing scripted the
    method's default is returned.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple]] = []
        self.script: dict[str, deque] = defaultdict(deque)
        self.defaults: dict[str, Any] = {
            "fetch_snapshot": Snapshot(),
            "leave": None,
            "fetch_peer_details": None,
        }

    def queue(self, name: str, *results: Any) -> None:
        self.script[name].extend(results)

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    async def _dispatch(self, name: str, *args: Any) -> Any:
        self.calls.append((name, args))
        result = self.script[name].popleft() if self.script[name] else self.defaults.get(name)
        if isinstance(result, asyncio.Future):
            result = await result
        if isinstance(result, BaseException):
            raise result
        return result

    async def sign_in(self, username, password):
        return await self._dispatch("sign_in", username, password)

    async def me(self, context):
        return await self._dispatch("me", context)

    async def join(self, context, file_tcp=None, voice_udp=None, ip_override=None):
        return await self._dispatch("join", context, file_tcp, voice_udp, ip_override)

    async def leave(self, context):
        return await self._dispatch("leave", context)

    async def fetch_snapshot(self, context):
        return await self._dispatch("fetch_snapshot", context)

    async def send_chat(self, context, text):
        return await self._dispatch("send_chat", context, text)

    async def fetch_peer_details(self, context, username):
        return await self._dispatch("fetch_peer_details", context, username)

    async def aclose(self):
        pass


@pytest.fixture()
def fake_api() -> FakeApi:
    return FakeApi()
