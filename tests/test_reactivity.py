"""Tests for the reactive primitives backing stores."""

import pytest

from pypinia import (
    Computed, EffectScope, ReactiveCell, ReactiveDict, ReactiveList, Ref,
    on_scope_dispose, reactive, to_raw, watch,
)


def test_ref_satisfies_reactive_cell_protocol():
    assert isinstance(Ref(1), ReactiveCell)


def test_reactive_converts_nested_structures():
    state = reactive({"user": {"name": "Ed"}, "tags": ["a"]})

    assert isinstance(state, ReactiveDict)
    assert isinstance(state["user"], ReactiveDict)
    assert isinstance(state["tags"], ReactiveList)
    assert state == {"user": {"name": "Ed"}, "tags": ["a"]}
    assert to_raw(state) == {"user": {"name": "Ed"}, "tags": ["a"]}
    assert type(to_raw(state)["user"]) is dict


def test_reactive_returns_existing_reactive_values_unchanged():
    state = reactive({"n": 1})
    assert reactive(state) is state
    assert reactive(3) == 3


def test_computed_is_cached_between_reads():
    calls = []
    count = Ref(2)

    def compute():
        calls.append(count.value)
        return count.value * 2

    doubled = Computed(compute)

    assert doubled.value == 4
    assert doubled.value == 4
    assert calls == [2]


def test_computed_recomputes_only_when_a_read_dependency_changes():
    calls = []
    state = reactive({"n": 1, "m": 1})

    def compute():
        calls.append(state["n"])
        return state["n"] * 2

    doubled = Computed(compute)
    assert doubled.value == 2

    state["m"] = 10
    assert doubled.value == 2
    assert calls == [1]

    state["n"] = 3
    assert doubled.value == 6
    assert calls == [1, 3]


def test_writing_an_equal_value_does_not_invalidate():
    calls = []
    count = Ref(5)

    def compute():
        calls.append(True)
        return count.value

    value = Computed(compute)
    value.value
    count.value = 5
    value.value

    assert len(calls) == 1


def test_computed_tracks_keys_added_later():
    state = reactive({})
    has_flag = Computed(lambda: "flag" in state)

    assert has_flag.value is False
    state["flag"] = True
    assert has_flag.value is True


def test_computed_chains_propagate_invalidation():
    count = Ref(1)
    doubled = Computed(lambda: count.value * 2)
    quadrupled = Computed(lambda: doubled.value * 2)

    assert quadrupled.value == 4
    count.value = 3
    assert quadrupled.value == 12


def test_list_mutations_invalidate_dependents():
    items = reactive([1, 2])
    total = Computed(lambda: sum(items))

    assert total.value == 3
    items.append(4)
    assert total.value == 7
    items[0] = 10
    assert total.value == 16


def test_deep_watch_fires_synchronously_for_every_nested_write():
    state = reactive({"user": {"name": "a"}, "tags": []})
    seen = []

    stop = watch(state, lambda new, old: seen.append(new["user"]["name"]))
    state["user"]["name"] = "b"
    state["tags"].append("x")

    assert seen == ["b", "b"]

    stop()
    state["user"]["name"] = "c"
    assert seen == ["b", "b"]


def test_watch_passes_new_and_old_values():
    count = Ref(0)
    seen = []

    watch(lambda: count.value, lambda new, old: seen.append((new, old)))
    count.value = 1
    count.value = 2

    assert seen == [(1, 0), (2, 1)]


def test_watch_rejects_non_sync_flush():
    with pytest.raises(ValueError):
        watch(lambda: 1, lambda new, old: None, flush="post")


def test_effect_scope_stop_releases_effects_and_runs_cleanups():
    count = Ref(0)
    seen = []
    cleaned = []
    scope = EffectScope()

    with scope.activate():
        watch(lambda: count.value, lambda new, old: seen.append(new))
        assert on_scope_dispose(lambda: cleaned.append(True)) is True

    count.value = 1
    scope.stop()
    count.value = 2

    assert seen == [1]
    assert cleaned == [True]
    assert scope.active is False


def test_on_scope_dispose_without_scope_returns_false():
    assert on_scope_dispose(lambda: None) is False


def test_nested_scopes_stop_with_their_parent():
    parent = EffectScope()
    with parent.activate():
        child = EffectScope()
        detached = EffectScope(detached=True)

    parent.stop()

    assert child.active is False
    assert detached.active is True


def test_effects_read_fresh_computed_values():
    count = Ref(1)
    seen = []
    doubled = Computed(lambda: count.value * 2)
    watch(lambda: count.value, lambda new, old: seen.append(doubled.value))
    assert doubled.value == 2

    count.value = 5
    count.value = 6

    assert seen == [10, 12]


def test_failing_effect_does_not_block_other_dependents():
    count = Ref(1)

    def explode(new, old):
        raise RuntimeError("watcher failed")

    watch(lambda: count.value, explode)
    seen = []
    watch(lambda: count.value, lambda new, old: seen.append(new))
    doubled = Computed(lambda: count.value * 2)
    assert doubled.value == 2

    with pytest.raises(RuntimeError):
        count.value = 3

    assert seen == [3]
    assert doubled.value == 6
