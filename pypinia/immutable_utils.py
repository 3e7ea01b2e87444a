# pypinia/immutable_utils.py
from typing import Any, Type, TypeVar
from immutables import Map
from pydantic import BaseModel

from .reactivity import ReactiveDict, ReactiveList

T = TypeVar('T', bound=BaseModel)

def to_immutable(obj: Any) -> Any:
    """將任何狀態對象轉換為不可變快照 (包括反應式容器與 Pydantic 模型)"""
    if isinstance(obj, BaseModel):
        return Map({k: to_immutable(v) for k, v in obj.model_dump().items()})
    elif isinstance(obj, (dict, ReactiveDict)):
        # 直接讀取底層資料，避免在快照時登記依賴
        items = obj._data.items() if isinstance(obj, ReactiveDict) else obj.items()
        return Map({k: to_immutable(v) for k, v in items})
    elif isinstance(obj, (list, ReactiveList)):
        items = obj._data if isinstance(obj, ReactiveList) else obj
        return tuple(to_immutable(i) for i in items)
    elif isinstance(obj, (set, frozenset)):
        return frozenset(to_immutable(i) for i in obj)
    return obj

def to_pydantic(obj: Any, model_class: Type[T]) -> T:
    """將狀態 (Map 或反應式 dict) 轉換為 Pydantic 模型"""
    return model_class.model_validate(to_dict(obj))

def to_dict(obj: Any) -> Any:
    """將 Map、反應式容器及其巢狀結構轉換為普通字典與列表"""
    if isinstance(obj, BaseModel):
        return obj.model_dump()
    if isinstance(obj, (Map, dict)):
        return {k: to_dict(v) for k, v in obj.items()}
    if isinstance(obj, ReactiveDict):
        return {k: to_dict(v) for k, v in obj._data.items()}
    if isinstance(obj, (tuple, list)):
        return [to_dict(i) for i in obj]
    if isinstance(obj, ReactiveList):
        return [to_dict(i) for i in obj._data]
    if isinstance(obj, frozenset):
        return {to_dict(i) for i in obj}
    return obj
