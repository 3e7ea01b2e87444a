"""Tests for immutable snapshot helpers."""

from immutables import Map
from pydantic import BaseModel

from pypinia import reactive, to_dict, to_immutable, to_pydantic


class Settings(BaseModel):
    theme: str
    tags: list


def test_to_immutable_converts_reactive_state():
    state = reactive({"theme": "dark", "tags": ["a", "b"], "flags": {"beta": True}})

    snapshot = to_immutable(state)

    assert isinstance(snapshot, Map)
    assert snapshot["tags"] == ("a", "b")
    assert isinstance(snapshot["flags"], Map)
    assert to_dict(snapshot) == {"theme": "dark", "tags": ["a", "b"], "flags": {"beta": True}}


def test_to_pydantic_validates_state():
    state = reactive({"theme": "light", "tags": ["x"]})

    settings = to_pydantic(state, Settings)

    assert settings == Settings(theme="light", tags=["x"])
    assert to_dict(settings) == {"theme": "light", "tags": ["x"]}
