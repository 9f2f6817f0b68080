import asyncio

from lobbychat.client.api import ApiError, RequestContext, Snapshot
from lobbychat.client.state import ChatState, Session, SessionRegister
from lobbychat.client.sync import UNSTABLE_MESSAGE, SyncEngine

from conftest import msg, online


def _engine(api, interval=60.0):
    state = ChatState()
    sessions = SessionRegister()
    sessions.replace(Session("alice", RequestContext("token-a")))
    return SyncEngine(api, state, sessions, interval=interval, clock=lambda: 1234.0), state, sessions


def test_refresh_replaces_users_and_dedupes_messages(fake_api):
    async def scenario():
        engine, state, _ = _engine(fake_api)
        state.sync_error = UNSTABLE_MESSAGE
        fake_api.queue("fetch_snapshot", Snapshot(
            users=online("alice", "bob"),
            messages=[msg("bob", "yo", 2), msg("alice", "hi", 1), msg("bob", "yo", 2)],
        ))
        assert await engine.refresh_once() is True
        assert [u.user for u in state.users] == ["alice", "bob"]
        assert [(m.sender, m.text) for m in state.messages] == [("alice", "hi"), ("bob", "yo")]
        assert state.sync_error == ""
        assert state.last_refreshed == 1234.0

    asyncio.run(scenario())


def test_result_for_superseded_session_is_discarded(fake_api):
    async def scenario():
        engine, state, sessions = _engine(fake_api)
        pending = asyncio.get_running_loop().create_future()
        fake_api.queue("fetch_snapshot", pending)

        refresh = asyncio.create_task(engine.refresh_once())
        await asyncio.sleep(0)
        sessions.replace(Session("alice", RequestContext("token-b")))
        pending.set_result(Snapshot(users=online("alice"), messages=[msg("alice", "old", 1)]))

        assert await refresh is False
        assert state.users == []
        assert state.messages == []
        assert state.last_refreshed is None

    asyncio.run(scenario())


def test_failure_keeps_previous_data_and_flags_connection(fake_api):
    async def scenario():
        engine, state, _ = _engine(fake_api)
        state.users = online("alice")
        state.messages = [msg("alice", "hi", 1)]
        fake_api.queue("fetch_snapshot", ApiError("timed out"))

        try:
            await engine.refresh_once()
        except ApiError:
            pass
        else:
            raise AssertionError("refresh_once should propagate the failure")
        assert state.sync_error == UNSTABLE_MESSAGE
        assert [m.text for m in state.messages] == ["hi"]
        assert [u.user for u in state.users] == ["alice"]

    asyncio.run(scenario())


def test_failure_after_logout_sets_no_indicator(fake_api):
    async def scenario():
        engine, state, sessions = _engine(fake_api)
        pending = asyncio.get_running_loop().create_future()
        fake_api.queue("fetch_snapshot", pending)

        refresh = asyncio.create_task(engine.refresh_once())
        await asyncio.sleep(0)
        sessions.clear()
        pending.set_result(ApiError("connection reset"))

        try:
            await refresh
        except ApiError:
            pass
        assert state.sync_error == ""

    asyncio.run(scenario())


def test_ticks_overlap_instead_of_queueing(fake_api):
    async def scenario():
        engine, state, _ = _engine(fake_api, interval=0.01)
        hung = [asyncio.get_running_loop().create_future() for _ in range(20)]
        fake_api.queue("fetch_snapshot", *hung)

        engine.start()
        await asyncio.sleep(0.08)
        engine.stop()
        assert not engine.running
        # none of the requests completed, yet ticks kept firing
        assert fake_api.count("fetch_snapshot") >= 3

        calls = fake_api.count("fetch_snapshot")
        for future in hung[:calls]:
            future.set_result(Snapshot(users=online("alice")))
        await engine.drain()
        assert [u.user for u in state.users] == ["alice"]

    asyncio.run(scenario())


def test_tick_swallows_failures(fake_api):
    async def scenario():
        engine, state, _ = _engine(fake_api, interval=0.01)
        fake_api.queue("fetch_snapshot", ApiError("down"), ApiError("down"))
        engine.start()
        await asyncio.sleep(0.1)
        engine.stop()
        await engine.drain()
        assert fake_api.count("fetch_snapshot") >= 3
        # the first successful tick after the failures clears the indicator
        assert state.sync_error == ""

    asyncio.run(scenario())


def test_no_session_means_no_fetch(fake_api):
    async def scenario():
        engine, _, sessions = _engine(fake_api)
        sessions.clear()
        assert await engine.refresh_once() is False
        assert fake_api.count("fetch_snapshot") == 0

    asyncio.run(scenario())
