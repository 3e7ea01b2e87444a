"""
PyPinia 共用型別定義。
"""

from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, TypeVar, Union

from typing_extensions import TypedDict

S = TypeVar("S")
R = TypeVar("R")

StateTree = Dict[str, Any]
StateFactory = Callable[[], Any]


class MutationType(str, Enum):
    """狀態變更的來源類型"""
    DIRECT = "direct"
    PATCH_OBJECT = "patch-object"
    PATCH_FUNCTION = "patch-function"


class MutationPayload(TypedDict):
    """傳遞給 subscribe 回調的變更描述"""
    store_id: str
    type: MutationType
    payload: Any


class ActionContext(TypedDict):
    """
    傳遞給 on_action 監聽器的上下文。

    after / on_error 用於登記本次呼叫完成或失敗時的回調。
    """
    name: str
    store: Any
    args: Tuple[Any, ...]
    kwargs: Dict[str, Any]
    after: Callable[[Callable[[Any], None]], None]
    on_error: Callable[[Callable[[BaseException], None]], None]


SubscriptionCallback = Callable[[MutationPayload, Any], None]
ActionListener = Callable[[ActionContext], None]
Unsubscribe = Callable[[], None]
Getter = Callable[[Any], Any]
ActionFunction = Callable[..., Any]
Mutator = Callable[[Any], None]
PatchArgument = Union[Mapping[str, Any], Mutator]
PluginResult = Optional[Mapping[str, Any]]
