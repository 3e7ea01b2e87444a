"""Tests for the plugin extension point."""

import pytest

from pypinia import (
    PluginContext, PluginError, StorePlugin, create_pinia, define_store, provides, registry,
)

use_counter = define_store("plugged", state=lambda: {"n": 0}, persist=True)


def greeting_plugin(context):
    return {"greeting": f"hello from {context.store.id}"}


def test_plugin_properties_are_attached_to_new_stores(pinia):
    pinia.use(greeting_plugin)

    store = use_counter()

    assert store.greeting == "hello from plugged"


def test_plugin_receives_context_with_custom_options(pinia):
    seen = []

    def inspect_plugin(context):
        seen.append(context)

    pinia.use(inspect_plugin)
    store = use_counter()

    context = seen[0]
    assert isinstance(context, PluginContext)
    assert context.store is store
    assert context.pinia is pinia
    assert context.options["persist"] is True
    assert context.options["id"] == "plugged"


def test_plugins_registered_before_install_are_queued():
    pinia = create_pinia().use(greeting_plugin)

    assert pinia.plugins == ()

    pinia.install()
    store = use_counter(pinia)

    assert pinia.plugins == (greeting_plugin,)
    assert store.greeting == "hello from plugged"


def test_later_plugins_see_and_override_earlier_ones(pinia):
    def shout_plugin(context):
        return {"greeting": context.store.greeting.upper()}

    pinia.use(greeting_plugin).use(shout_plugin)
    store = use_counter()

    assert store.greeting == "HELLO FROM PLUGGED"


def test_plugins_only_apply_to_stores_created_afterwards(pinia):
    store = use_counter()
    pinia.use(greeting_plugin)

    with pytest.raises(AttributeError):
        store.greeting


def test_failing_plugin_aborts_store_creation(pinia):
    def broken_plugin(context):
        raise RuntimeError("plugin failed")

    pinia.use(broken_plugin)

    with pytest.raises(RuntimeError):
        use_counter()
    assert not registry.has(pinia, "plugged")


def test_plugin_must_return_a_mapping(pinia):
    pinia.use(lambda context: ["not", "a", "mapping"])

    with pytest.raises(PluginError):
        use_counter()


def test_plugin_cannot_shadow_state(pinia):
    pinia.use(lambda context: {"n": 1})

    with pytest.raises(PluginError) as info:
        use_counter()
    assert info.value.details["store_id"] == "plugged"


def test_use_rejects_non_callables(pinia):
    with pytest.raises(TypeError):
        pinia.use("plugin")


class HistoryPlugin(StorePlugin):
    provides = ("history",)

    def extend(self, context):
        history = []
        context.store.subscribe(lambda mutation, state: history.append(mutation["type"]))
        return {"history": history}


def test_store_plugin_subclass(pinia):
    pinia.use(HistoryPlugin())
    store = use_counter()

    store.n = 1
    store.patch({"n": 2})

    assert store.history == ["direct", "patch-object"]


def test_plugin_subscriptions_end_with_the_store(pinia):
    pinia.use(HistoryPlugin())
    store = use_counter()
    history = store.history

    store.dispose()
    use_counter().n = 5

    assert history == []


def test_declared_plugin_cannot_return_undeclared_properties(pinia):
    @provides("router")
    def router_plugin(context):
        return {"router": object(), "extra": 1}

    pinia.use(router_plugin)

    with pytest.raises(PluginError) as info:
        use_counter()
    assert info.value.plugin_name == "router_plugin"


def test_declared_plugin_with_matching_properties(pinia):
    @provides("router")
    def router_plugin(context):
        return {"router": "main"}

    pinia.use(router_plugin)

    assert use_counter().router == "main"
