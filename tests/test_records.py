import asyncio

import pytest

from authsvc.core.crypto import digest
from authsvc.core.errors import InvalidGrant, InvalidStateTransition, StoreUnavailable, TokenNotFound
from authsvc.core.schemas import RecordStatus
from authsvc.db.models import Authorization
from authsvc.services.records import AuthorizationStore


def _record(clock, *, code=None, refresh=None, access=None, ttl=60):
    now = int(clock())
    r = Authorization(client_id="web", subject="alice", scopes=["profile"])
    if code:
        r.code_hash, r.code_expires_at, r.redirect_uri = digest(code), now + ttl, "https://web.example/callback"
    if refresh:
        r.refresh_token_hash, r.refresh_expires_at = digest(refresh), now + ttl
    if access:
        r.access_token_hash, r.access_expires_at = digest(access), now + ttl
    return r


@pytest.mark.asyncio
async def test_create_and_find(records, clock):
    rid = await records.create(_record(clock, code="c-1"))
    found = await records.find_by_code("c-1")
    assert found.id == rid
    assert found.status == RecordStatus.ACTIVE.value

    rid2 = await records.create(_record(clock, refresh="r-1", access="a-1"))
    assert (await records.find_by_refresh_token("r-1")).id == rid2
    assert (await records.find_by_access_token("a-1")).id == rid2
    assert (await records.find_any("r-1")).id == rid2

    with pytest.raises(TokenNotFound):
        await records.find_by_code("nope")


@pytest.mark.asyncio
async def test_terminal_states(records, clock):
    rid = await records.create(_record(clock, refresh="r-1"))
    await records.transition(rid, RecordStatus.REVOKED)

    with pytest.raises(TokenNotFound):
        await records.find_by_refresh_token("r-1")
    assert (await records.find_any("r-1")).status == RecordStatus.REVOKED.value

    with pytest.raises(InvalidStateTransition):
        await records.transition(rid, RecordStatus.REVOKED)
    with pytest.raises(InvalidStateTransition):
        await records.transition(rid, RecordStatus.CONSUMED)


@pytest.mark.asyncio
async def test_no_transition_back_to_active(records, clock):
    rid = await records.create(_record(clock, code="c-1"))
    with pytest.raises(InvalidStateTransition):
        await records.transition(rid, RecordStatus.ACTIVE)
    assert (await records.get(rid)).status == RecordStatus.ACTIVE.value


@pytest.mark.asyncio
async def test_transition_unknown_record(records):
    with pytest.raises(TokenNotFound):
        await records.transition("missing", RecordStatus.REVOKED)


@pytest.mark.asyncio
async def test_consume_replaces_record(records, clock):
    rid = await records.create(_record(clock, code="c-1"))
    await records.consume(rid, _record(clock, refresh="r-1", access="a-1"))

    old = await records.get(rid)
    assert old.status == RecordStatus.CONSUMED.value
    assert old.code_hash is None  # el código de un solo uso queda borrado

    new = await records.find_by_refresh_token("r-1")
    assert new.parent_id == rid
    assert new.id != rid


@pytest.mark.asyncio
async def test_second_consume_fails_without_writing(records, clock):
    rid = await records.create(_record(clock, refresh="r-1"))
    await records.consume(rid, _record(clock, refresh="r-2"))

    with pytest.raises(InvalidGrant):
        await records.consume(rid, _record(clock, refresh="r-3"))
    with pytest.raises(TokenNotFound):
        await records.find_any("r-3")


@pytest.mark.asyncio
async def test_concurrent_consume_single_winner(records, clock):
    rid = await records.create(_record(clock, refresh="r-1"))
    results = await asyncio.gather(
        records.consume(rid, _record(clock, refresh="r-a")),
        records.consume(rid, _record(clock, refresh="r-b")),
        return_exceptions=True,
    )
    errors = [r for r in results if isinstance(r, Exception)]
    assert len(errors) == 1
    assert isinstance(errors[0], InvalidGrant)


@pytest.mark.asyncio
async def test_purge_expired(records, clock):
    old = await records.create(_record(clock, refresh="r-old", ttl=10))
    fresh = await records.create(_record(clock, refresh="r-new", ttl=1000))
    clock.advance(10 + 100 + 1)

    assert await records.purge_expired(retention=100) == 1
    with pytest.raises(TokenNotFound):
        await records.get(old)
    assert (await records.get(fresh)).id == fresh


class _SlowSession:
    async def __aenter__(self):
        await asyncio.sleep(1)
        return self

    async def __aexit__(self, *exc):
        return False


@pytest.mark.asyncio
async def test_store_calls_are_time_bounded():
    store = AuthorizationStore(lambda: _SlowSession(), timeout=0.05)
    with pytest.raises(StoreUnavailable):
        await store.get("anything")
