import asyncio

from lobbychat.client.api import ApiError, RequestContext
from lobbychat.client.peers import OFFLINE_NOTICE, PeerDetailFetcher
from lobbychat.client.state import ChatState, Session, SessionRegister
from lobbychat.schemas import PeerDetails


def _fetcher(api):
    state = ChatState()
    sessions = SessionRegister()
    sessions.replace(Session("alice", RequestContext("token-a")))
    return PeerDetailFetcher(api, state, sessions), state, sessions


def _details(user):
    return PeerDetails(user=user, ip="10.0.0.5", fileTcp=7000, voiceUdp=7001)


def test_no_lookup_for_self_or_empty_selection(fake_api):
    async def scenario():
        fetcher, state, _ = _fetcher(fake_api)
        state.peer_details = _details("bob")
        state.peer_error = "old"
        state.peer_loading = True

        for selection in (None, "alice"):
            state.selected_user = selection
            assert fetcher.refresh() is None
        assert state.peer_details is None
        assert state.peer_error == ""
        assert state.peer_loading is False
        assert fake_api.count("fetch_peer_details") == 0

    asyncio.run(scenario())


def test_no_lookup_without_session(fake_api):
    async def scenario():
        fetcher, state, sessions = _fetcher(fake_api)
        sessions.clear()
        state.selected_user = "bob"
        assert fetcher.refresh() is None
        assert fake_api.count("fetch_peer_details") == 0

    asyncio.run(scenario())


def test_found_peer(fake_api):
    async def scenario():
        fetcher, state, _ = _fetcher(fake_api)
        fake_api.queue("fetch_peer_details", _details("bob"))
        state.selected_user = "bob"
        task = fetcher.refresh()
        assert state.peer_loading is True
        await task
        assert state.peer_details == _details("bob")
        assert state.peer_loading is False
        assert state.peer_error == ""
        assert state.peer_notice == ""

    asyncio.run(scenario())


def test_not_found_is_an_informational_state(fake_api):
    async def scenario():
        fetcher, state, _ = _fetcher(fake_api)
        state.selected_user = "bob"
        await fetcher.refresh()
        assert state.peer_details is None
        assert state.peer_notice == OFFLINE_NOTICE
        assert state.peer_error == ""
        assert state.peer_loading is False

    asyncio.run(scenario())


def test_failure_sets_error_and_clears_result(fake_api):
    async def scenario():
        fetcher, state, _ = _fetcher(fake_api)
        state.peer_details = _details("bob")
        fake_api.queue("fetch_peer_details", ApiError("Internal Server Error", status=500))
        state.selected_user = "bob"
        await fetcher.refresh()
        assert state.peer_details is None
        assert state.peer_error == "Internal Server Error"
        assert state.peer_loading is False

    asyncio.run(scenario())


def test_stale_lookup_never_overwrites_new_selection(fake_api):
    async def scenario():
        fetcher, state, _ = _fetcher(fake_api)
        loop = asyncio.get_running_loop()
        for_bob, for_carol = loop.create_future(), loop.create_future()
        fake_api.queue("fetch_peer_details", for_bob, for_carol)

        state.selected_user = "bob"
        bob_task = fetcher.refresh()
        await asyncio.sleep(0)
        state.selected_user = "carol"
        carol_task = fetcher.refresh()
        await asyncio.sleep(0)

        for_bob.set_result(_details("bob"))
        await bob_task
        assert state.peer_details is None
        assert state.peer_loading is True

        for_carol.set_result(_details("carol"))
        await carol_task
        assert state.peer_details.user == "carol"
        assert state.peer_loading is False

    asyncio.run(scenario())


def test_stale_failure_is_dropped_too(fake_api):
    async def scenario():
        fetcher, state, _ = _fetcher(fake_api)
        pending = asyncio.get_running_loop().create_future()
        fake_api.queue("fetch_peer_details", pending, _details("carol"))

        state.selected_user = "bob"
        bob_task = fetcher.refresh()
        await asyncio.sleep(0)
        state.selected_user = "carol"
        await fetcher.refresh()

        pending.set_result(ApiError("boom"))
        await bob_task
        assert state.peer_error == ""
        assert state.peer_details.user == "carol"

    asyncio.run(scenario())


def test_lookup_resolving_after_logout_is_discarded(fake_api):
    async def scenario():
        fetcher, state, sessions = _fetcher(fake_api)
        pending = asyncio.get_running_loop().create_future()
        fake_api.queue("fetch_peer_details", pending)

        state.selected_user = "bob"
        task = fetcher.refresh()
        await asyncio.sleep(0)
        sessions.clear()
        fetcher.reset()
        state.selected_user = None

        pending.set_result(_details("bob"))
        await task
        assert state.peer_details is None
        assert state.peer_notice == ""
        assert state.peer_loading is False

    asyncio.run(scenario())
