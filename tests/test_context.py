"""Tests for the active pinia pointer, sessions and the store registry."""

import asyncio
import gc
import json
import logging
import weakref

import pytest
from immutables import Map

from pypinia import (
    ContextError, active_pinia, close_session, configure, create_pinia, define_store,
    get_active_pinia, get_root_state, open_session, registry, reset_active_pinia, reset_config,
    serialize_state, set_active_pinia,
)

use_counter = define_store("ctx", state=lambda: {"n": 0, "nested": {"a": 1}})


def test_get_active_pinia_warns_in_dev_mode(caplog):
    with caplog.at_level(logging.WARNING, logger="pypinia.context"):
        assert get_active_pinia() is None

    assert len(caplog.records) == 1
    assert caplog.records[0].levelno == logging.WARNING
    assert "set_active_pinia" in caplog.records[0].getMessage()


def test_missing_pinia_log_level_is_configurable(caplog):
    configure(missing_pinia_log_level=logging.ERROR)

    with caplog.at_level(logging.DEBUG, logger="pypinia.context"):
        get_active_pinia()

    assert [r.levelno for r in caplog.records] == [logging.ERROR]


def test_get_active_pinia_is_silent_in_production(caplog, monkeypatch):
    monkeypatch.setenv("PYPINIA_ENV", "production")
    reset_config()

    with caplog.at_level(logging.DEBUG, logger="pypinia.context"):
        assert get_active_pinia() is None

    assert caplog.records == []


def test_use_store_without_active_pinia_raises():
    with pytest.raises(ContextError):
        use_counter()


def test_passing_a_pinia_makes_it_active():
    pinia = create_pinia().install()

    store = use_counter(pinia)

    assert get_active_pinia() is pinia
    assert use_counter() is store


def test_active_pinia_context_manager_restores_previous(pinia):
    other = create_pinia().install()

    with active_pinia(other):
        assert get_active_pinia() is other
        assert use_counter() is registry.get(other, "ctx")

    assert get_active_pinia() is pinia


def test_reset_active_pinia_uses_token(pinia):
    other = create_pinia()
    token = set_active_pinia(other)

    reset_active_pinia(token)

    assert get_active_pinia() is pinia


def test_store_created_before_install_warns_once(caplog, monkeypatch):
    monkeypatch.setattr("pypinia.store._uninstalled_warned", False)
    use_other = define_store("ctx_other", state=dict)

    with caplog.at_level(logging.WARNING, logger="pypinia.store"):
        use_counter(create_pinia())
        use_other(create_pinia())

    messages = [r.getMessage() for r in caplog.records]
    assert len(messages) == 1
    assert "install()" in messages[0]


def test_open_and_close_session():
    pinia = open_session(app="app")
    store = use_counter()
    events = []
    store.subscribe(lambda mutation, state: events.append(mutation))

    assert pinia.installed
    assert pinia.app == "app"
    assert get_active_pinia() is pinia

    close_session(pinia)
    store.n = 1

    assert events == []
    assert registry.stores(pinia) == {}
    assert len(pinia.state) == 0
    assert pinia.plugins == ()
    with pytest.raises(ContextError):
        use_counter()


def test_close_session_leaves_other_active_pinia_alone(pinia):
    other = create_pinia().install()

    close_session(other)

    assert get_active_pinia() is pinia


@pytest.mark.asyncio
async def test_interleaved_sessions_are_isolated():
    async def handle(value):
        pinia = open_session()
        store = use_counter()
        store.n = value
        await asyncio.sleep(0)
        assert get_active_pinia() is pinia
        assert use_counter() is store
        result = store.n
        close_session(pinia)
        return result

    assert await asyncio.gather(handle(1), handle(2), handle(3)) == [1, 2, 3]


def test_root_state_snapshot_is_immutable(pinia):
    store = use_counter()

    snapshot = get_root_state(pinia)
    store.n = 4

    assert isinstance(snapshot, Map)
    assert snapshot["ctx"]["n"] == 0
    assert get_root_state(pinia)["ctx"]["n"] == 4


def test_hydration_from_serialized_state(pinia):
    store = use_counter()
    store.patch({"n": 3, "nested": {"a": 9}})

    payload = json.dumps(serialize_state(pinia))
    client = create_pinia(initial_state=json.loads(payload)).install()
    hydrated = use_counter(client)

    assert hydrated.n == 3
    assert hydrated.state["nested"] == {"a": 9}

    hydrated.reset()
    assert hydrated.n == 0
    assert client.state["ctx"]["n"] == 0


def test_registry_does_not_keep_pinia_alive():
    pinia = create_pinia().install()
    use_counter(pinia)
    set_active_pinia(None)
    ref = weakref.ref(pinia)

    del pinia
    gc.collect()

    assert ref() is None


def test_same_id_returns_first_definition(pinia):
    first = use_counter()
    use_duplicate = define_store("ctx", state=lambda: {"other": True})

    assert use_duplicate() is first
