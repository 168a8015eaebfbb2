"""Tests for the in-memory analysis session store."""

import asyncio
import time

import pytest

from services.analysis.session_store import AnalysisSessionStore


@pytest.fixture
def store(make_session, stub_client, completion_body, valid_assessment):
    def factory():
        return make_session(stub_client(completion_body(valid_assessment), completion_body(valid_assessment)))

    return AnalysisSessionStore(factory)


@pytest.mark.asyncio
async def test_start_creates_a_session_per_upload(store, image_bytes):
    first = store.start_analysis(image_bytes, "sk-test")
    second = store.start_analysis(image_bytes, "sk-test")

    assert first != second
    assert len(store) == 2
    assert (await store.get(first).wait()).name.value == "succeeded"
    await store.close_all()


@pytest.mark.asyncio
async def test_start_with_handle_reuses_the_session(store, image_bytes):
    handle = store.start_analysis(image_bytes, "sk-test")
    await store.get(handle).wait()

    assert store.start_analysis(image_bytes, "sk-test", handle=handle) == handle
    phase = await store.get(handle).wait()

    assert phase.sequence == 2
    assert len(store) == 1
    await store.close_all()


@pytest.mark.asyncio
async def test_unknown_handles_raise_key_error(store, image_bytes):
    with pytest.raises(KeyError):
        store.get_phase("missing")
    with pytest.raises(KeyError):
        store.start_analysis(image_bytes, "sk-test", handle="missing")
    with pytest.raises(KeyError):
        await store.discard("missing")


@pytest.mark.asyncio
async def test_reset_and_discard(store, image_bytes):
    handle = store.start_analysis(image_bytes, "sk-test")
    await store.get(handle).wait()

    assert store.reset(handle).name.value == "idle"
    assert store.cancel(handle).name.value == "idle"

    await store.discard(handle)
    assert len(store) == 0


@pytest.mark.asyncio
async def test_close_all_empties_the_store(store):
    store.create()
    store.create()
    await store.close_all()
    assert len(store) == 0


@pytest.mark.asyncio
async def test_finished_sessions_are_evicted_after_idle_ttl(make_session, stub_client, image_bytes, completion_body, valid_assessment):
    now = [time.time()]
    store = AnalysisSessionStore(
        lambda: make_session(stub_client(completion_body(valid_assessment))),
        idle_ttl=60,
        clock=lambda: now[0],
    )
    old = store.start_analysis(image_bytes, "sk-test")
    await store.get(old).wait()

    now[0] += 30
    store.create()
    assert len(store) == 2

    now[0] += 61
    fresh = store.create()

    assert len(store) == 1
    assert store.get_phase(fresh).name.value == "idle"
    with pytest.raises(KeyError):
        store.get(old)
    await store.close_all()


@pytest.mark.asyncio
async def test_running_sessions_are_never_evicted(make_session, stub_client, image_bytes, wait_for_phase):
    gate = asyncio.Event()

    async def held_reply(request, api_key, timeout):
        await gate.wait()

    now = [time.time()]
    store = AnalysisSessionStore(lambda: make_session(stub_client(held_reply)), idle_ttl=60, clock=lambda: now[0])
    running = store.start_analysis(image_bytes, "sk-test")
    await wait_for_phase(store.get(running), "requesting")

    now[0] += 3600
    assert store.evict_idle() == 0
    assert store.get(running).in_flight
    await store.close_all()


def test_eviction_is_off_without_ttl(make_session, stub_client):
    now = [time.time()]
    store = AnalysisSessionStore(lambda: make_session(stub_client()), clock=lambda: now[0])
    store.create()
    now[0] += 10**6
    store.create()
    assert len(store) == 2
