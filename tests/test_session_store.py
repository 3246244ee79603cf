import asyncio
import json

import pytest

from meetsession.crud.session_store import SqlSessionStore
from meetsession.realtime.change_feed import RedisChangeFeed, channel_for
from meetsession.schemas.session import Coordinate, MeetSession, SessionFlow, SessionStatus
from meetsession.services.session_errors import SessionNotFound
from tests.mocks.mock_place_provider import make_place

SENDER = Coordinate(latitude=37.7749, longitude=-122.4194)


class FakeRedis:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.published = []

    async def publish(self, channel, payload):
        if self.fail:
            raise ConnectionError("redis is down")
        self.published.append((channel, payload))
        return 1


def _new_session(session_id="s-1", **overrides) -> MeetSession:
    fields = dict(id=session_id, category="cafe", sender_location=SENDER, invite_token="tok")
    fields.update(overrides)
    return MeetSession(**fields)


def test_insert_and_read_back(store):
    session = _new_session(flow=SessionFlow.INVITE, privacy_masked=True)

    stored = asyncio.run(_insert_and_get(store, session))

    assert stored.id == "s-1"
    assert stored.version == 0
    assert stored.status == SessionStatus.CREATED
    assert stored.flow == SessionFlow.INVITE
    assert stored.sender_location == SENDER
    assert stored.receiver_location is None
    assert stored.midpoint is None
    assert stored.candidate_places == []
    assert stored.privacy_masked is True
    assert stored.invite_token == "tok"
    assert stored.created_at is not None


async def _insert_and_get(store, session):
    await store.insert(session)
    return await store.get_by_id(session.id)


def test_get_unknown_session_raises(store):
    with pytest.raises(SessionNotFound) as exc_info:
        asyncio.run(store.get_by_id("missing"))
    assert exc_info.value.status_code == 404


def test_update_where_bumps_version_and_round_trips_places(store):
    places = [make_place("a", 4.5, 0.4, provider_place_id="g-a"), make_place("b", 3.0, 1.2)]

    async def scenario():
        await store.insert(_new_session())
        ok = await store.update_where(
            "s-1",
            0,
            {
                "status": SessionStatus.READY,
                "midpoint": Coordinate(latitude=37.79, longitude=-122.35),
                "candidate_places": places,
            },
        )
        return ok, await store.get_by_id("s-1")

    ok, updated = asyncio.run(scenario())

    assert ok is True
    assert updated.version == 1
    assert updated.status == SessionStatus.READY
    assert updated.midpoint == Coordinate(latitude=37.79, longitude=-122.35)
    assert updated.candidate_places == places


def test_stale_version_write_is_rejected(store):
    async def scenario():
        await store.insert(_new_session())
        first = await store.update_where("s-1", 0, {"status": SessionStatus.AWAITING_RECEIVER})
        stale = await store.update_where("s-1", 0, {"status": SessionStatus.CONFIRMED})
        return first, stale, await store.get_by_id("s-1")

    first, stale, current = asyncio.run(scenario())

    assert first is True
    assert stale is False
    assert current.status == SessionStatus.AWAITING_RECEIVER
    assert current.version == 1


def test_update_unknown_session_returns_false(store):
    assert asyncio.run(store.update_where("missing", 0, {"category": "park"})) is False


def test_clearing_a_coordinate(store):
    async def scenario():
        await store.insert(_new_session(receiver_location=Coordinate(latitude=37.8, longitude=-122.27)))
        await store.update_where("s-1", 0, {"receiver_location": None})
        return await store.get_by_id("s-1")

    assert asyncio.run(scenario()).receiver_location is None


@pytest.mark.parametrize("field", ["id", "version", "created_at", "updated_at"])
def test_immutable_fields_cannot_be_patched(store, field):
    asyncio.run(store.insert(_new_session()))
    with pytest.raises(ValueError):
        asyncio.run(store.update_where("s-1", 0, {field: "x"}))


def test_committed_writes_are_published(session_factory):
    redis_client = FakeRedis()
    store = SqlSessionStore(session_factory, change_feed=RedisChangeFeed(redis_client))

    async def scenario():
        await store.insert(_new_session())
        await store.update_where("s-1", 0, {"status": SessionStatus.AWAITING_RECEIVER})
        await store.update_where("s-1", 0, {"status": SessionStatus.CONFIRMED})  # lost, not published

    asyncio.run(scenario())

    assert [channel for channel, _ in redis_client.published] == [channel_for("s-1")] * 2
    last = MeetSession.model_validate(json.loads(redis_client.published[-1][1]))
    assert last.status == SessionStatus.AWAITING_RECEIVER
    assert last.version == 1


def test_failed_publish_keeps_the_write(session_factory):
    store = SqlSessionStore(session_factory, change_feed=RedisChangeFeed(FakeRedis(fail=True)))

    async def scenario():
        await store.insert(_new_session())
        ok = await store.update_where("s-1", 0, {"status": SessionStatus.AWAITING_RECEIVER})
        return ok, await store.get_by_id("s-1")

    ok, current = asyncio.run(scenario())
    assert ok is True
    assert current.status == SessionStatus.AWAITING_RECEIVER


def test_subscribe_without_feed_is_an_error(store):
    with pytest.raises(RuntimeError):
        store.subscribe_to_changes("s-1", lambda session: None)
