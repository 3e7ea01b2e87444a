"""
PyPinia 反應式核心。

此模組提供 Store 所需的最小反應式原語：
- Ref: 包裝單一值的反應式單元（ReactiveCell），讀取時登記依賴，寫入時通知依賴者
- ReactiveDict / ReactiveList: 深層反應式容器，狀態樹由它們組成
- Computed: 惰性、快取、依賴追蹤的衍生值
- watch: 同步刷新的觀察者
- EffectScope: 收集 effect 與清理回調，供宿主在元件結束時統一釋放

依賴追蹤透過 contextvars 進行，因此交錯執行的 asyncio 任務之間不會互相污染。
任何實作 ReactiveCell 協定的引擎都可以替換這裡的 Ref。
"""

import contextlib
from collections.abc import Mapping, MutableMapping, MutableSequence
from contextvars import ContextVar
from typing import (
    Any, Callable, Dict, Generic, Iterator, List, Optional, Protocol, TypeVar,
    runtime_checkable,
)

T = TypeVar("T")

_MISSING = object()
_SCALARS = (int, float, complex, str, bytes, bool, type(None))

_active_effect: ContextVar[Optional["ReactiveEffect"]] = ContextVar("pypinia_active_effect", default=None)
_should_track: ContextVar[bool] = ContextVar("pypinia_should_track", default=True)
_active_scope: ContextVar[Optional["EffectScope"]] = ContextVar("pypinia_active_scope", default=None)


def has_changed(old: Any, new: Any) -> bool:
    """
    判斷寫入是否真的改變了值。

    同一物件視為未改變；同型別的純量以相等比較；其他情況一律視為改變。
    """
    if old is new:
        return False
    if isinstance(old, _SCALARS) and type(old) is type(new):
        return old != new
    return True


def _is_tracking() -> bool:
    return _active_effect.get() is not None and _should_track.get()


@contextlib.contextmanager
def pause_tracking():
    """在此區塊內的讀取不會被登記為依賴。"""
    token = _should_track.set(False)
    try:
        yield
    finally:
        _should_track.reset(token)


class Dep:
    """一組依賴者（effect）。Computed 先失效，其他 effect 依登記順序同步執行。"""

    __slots__ = ("subscribers",)

    def __init__(self) -> None:
        # dict 作為有序集合
        self.subscribers: Dict["ReactiveEffect", None] = {}

    def depend(self) -> None:
        effect = _active_effect.get()
        if effect is None or not effect.active or not _should_track.get():
            return
        if effect not in self.subscribers:
            self.subscribers[effect] = None
            effect.deps.append(self)

    def trigger(self) -> None:
        """
        通知所有依賴者。

        先將所有受影響的 Computed（包括間接依賴的）標記為過期，
        再依序執行其他 effect，因此 effect 中讀到的衍生值一定是最新的。
        某個 effect 拋出異常時，其餘 effect 仍會執行，結束後再拋出第一個異常。
        """
        jobs: List["ReactiveEffect"] = []
        _collect_jobs(self, jobs)

        first_error: Optional[BaseException] = None
        for effect in jobs:
            try:
                effect.trigger()
            except Exception as err:
                if first_error is None:
                    first_error = err
        if first_error is not None:
            raise first_error


def _collect_jobs(dep: Dep, jobs: List["ReactiveEffect"]) -> None:
    current = _active_effect.get()
    for effect in list(dep.subscribers):
        # effect 不會因為自己的寫入而遞迴觸發
        if effect is current or not effect.active:
            continue
        computed = effect.computed
        if computed is not None:
            if not computed._dirty:
                computed._dirty = True
                _collect_jobs(computed._dep, jobs)
        elif effect not in jobs:
            jobs.append(effect)


class ReactiveEffect:
    """
    執行一個函數並記錄其讀取到的所有 Dep。

    當任一依賴被觸發時，呼叫 scheduler（若有）或直接重新執行。
    建立時若存在 active EffectScope，會自動被收集，以便統一停止。
    """

    def __init__(self, fn: Callable[[], Any], scheduler: Optional[Callable[[], None]] = None) -> None:
        self.fn = fn
        self.scheduler = scheduler
        self.deps: List[Dep] = []
        self.active = True
        # 由 Computed 擁有時指向該 Computed
        self.computed: Optional["Computed"] = None
        scope = _active_scope.get()
        if scope is not None and scope.active:
            scope.effects.append(self)

    def run(self) -> Any:
        if not self.active:
            return self.fn()
        self._cleanup()
        effect_token = _active_effect.set(self)
        track_token = _should_track.set(True)
        try:
            return self.fn()
        finally:
            _should_track.reset(track_token)
            _active_effect.reset(effect_token)

    def trigger(self) -> None:
        if not self.active:
            return
        if self.scheduler is not None:
            self.scheduler()
        else:
            self.run()

    def stop(self) -> None:
        if self.active:
            self._cleanup()
            self.active = False

    def _cleanup(self) -> None:
        for dep in self.deps:
            dep.subscribers.pop(self, None)
        self.deps.clear()


@runtime_checkable
class ReactiveCell(Protocol[T]):
    """
    反應式單元協定：讀取 value 時登記依賴，寫入 value 時通知依賴者。

    StateContainer 只依賴此能力，不依賴具體實作。
    """

    value: T


class Ref(Generic[T]):
    """預設的 ReactiveCell 實作。"""

    __slots__ = ("_value", "_dep", "__weakref__")

    def __init__(self, value: T) -> None:
        self._value = value
        self._dep = Dep()

    @property
    def value(self) -> T:
        if _is_tracking():
            self._dep.depend()
        return self._value

    @value.setter
    def value(self, new_value: T) -> None:
        if has_changed(self._value, new_value):
            self._value = new_value
            self._dep.trigger()

    def __repr__(self) -> str:
        return f"Ref({self._value!r})"


def reactive(value: Any) -> Any:
    """
    將純資料轉換為反應式結構。

    dict 轉為 ReactiveDict、list 轉為 ReactiveList（遞迴處理），
    已經是反應式的值與其他型別原樣返回。
    """
    if isinstance(value, (ReactiveDict, ReactiveList)):
        return value
    if isinstance(value, dict):
        return ReactiveDict(value)
    if isinstance(value, list):
        return ReactiveList(value)
    return value


def is_reactive(value: Any) -> bool:
    return isinstance(value, (ReactiveDict, ReactiveList))


def is_plain_object(value: Any) -> bool:
    """狀態合併時可遞迴處理的「記錄」：一般 dict 或 ReactiveDict。"""
    return isinstance(value, (dict, ReactiveDict))


def to_raw(value: Any) -> Any:
    """將反應式結構深層轉回一般 dict / list。"""
    if isinstance(value, (ReactiveDict, dict)):
        items = value._data.items() if isinstance(value, ReactiveDict) else value.items()
        return {k: to_raw(v) for k, v in items}
    if isinstance(value, (ReactiveList, list)):
        items = value._data if isinstance(value, ReactiveList) else value
        return [to_raw(v) for v in items]
    return value


class ReactiveDict(MutableMapping):
    """
    深層反應式 dict。

    讀取某個 key（包括不存在的 key）會登記該 key 的依賴；
    迭代與 len 會登記「key 集合」的依賴。
    寫入只在值改變時觸發該 key，新增或刪除 key 另外觸發 key 集合。
    """

    __slots__ = ("_data", "_deps", "_keys_dep", "__weakref__")

    def __init__(self, data: Optional[Mapping] = None) -> None:
        self._data: Dict[Any, Any] = {}
        self._deps: Dict[Any, Dep] = {}
        self._keys_dep = Dep()
        if data:
            for key, value in data.items():
                self._data[key] = reactive(value)

    def _track(self, key: Any) -> None:
        if not _is_tracking():
            return
        dep = self._deps.get(key)
        if dep is None:
            dep = self._deps[key] = Dep()
        dep.depend()

    def _trigger(self, key: Any) -> None:
        dep = self._deps.get(key)
        if dep is not None:
            dep.trigger()

    def __getitem__(self, key: Any) -> Any:
        self._track(key)
        return self._data[key]

    def __setitem__(self, key: Any, value: Any) -> None:
        value = reactive(value)
        old = self._data.get(key, _MISSING)
        self._data[key] = value
        if old is _MISSING:
            try:
                self._trigger(key)
            finally:
                self._keys_dep.trigger()
        elif has_changed(old, value):
            self._trigger(key)

    def __delitem__(self, key: Any) -> None:
        del self._data[key]
        try:
            self._trigger(key)
        finally:
            self._keys_dep.trigger()

    def __contains__(self, key: Any) -> bool:
        self._track(key)
        return key in self._data

    def __iter__(self) -> Iterator[Any]:
        if _is_tracking():
            self._keys_dep.depend()
        return iter(list(self._data))

    def __len__(self) -> int:
        if _is_tracking():
            self._keys_dep.depend()
        return len(self._data)

    def __repr__(self) -> str:
        return f"ReactiveDict({self._data!r})"

    def copy(self) -> Dict[Any, Any]:
        """返回一個深層的一般 dict 副本。"""
        return to_raw(self)


class ReactiveList(MutableSequence):
    """深層反應式 list，整個 list 共用一個依賴。"""

    __slots__ = ("_data", "_dep", "__weakref__")

    def __init__(self, data: Optional[List[Any]] = None) -> None:
        self._data: List[Any] = [reactive(v) for v in (data or [])]
        self._dep = Dep()

    def _track(self) -> None:
        if _is_tracking():
            self._dep.depend()

    def __getitem__(self, index):
        self._track()
        return self._data[index]

    def __setitem__(self, index, value) -> None:
        if isinstance(index, slice):
            self._data[index] = [reactive(v) for v in value]
        else:
            self._data[index] = reactive(value)
        self._dep.trigger()

    def __delitem__(self, index) -> None:
        del self._data[index]
        self._dep.trigger()

    def __len__(self) -> int:
        self._track()
        return len(self._data)

    def __iter__(self) -> Iterator[Any]:
        self._track()
        return iter(list(self._data))

    def insert(self, index: int, value: Any) -> None:
        self._data.insert(index, reactive(value))
        self._dep.trigger()

    def __eq__(self, other: Any) -> bool:
        self._track()
        if isinstance(other, ReactiveList):
            return self._data == other._data
        if isinstance(other, list):
            return self._data == other
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"ReactiveList({self._data!r})"

    def copy(self) -> List[Any]:
        return to_raw(self)


def traverse(value: Any, seen: Optional[set] = None) -> Any:
    """遞迴讀取整個結構，讓 active effect 依賴其中每一個節點。"""
    if not is_reactive(value):
        return value
    seen = seen if seen is not None else set()
    if id(value) in seen:
        return value
    seen.add(id(value))
    if isinstance(value, ReactiveDict):
        for key in value:
            traverse(value[key], seen)
    else:
        for item in value:
            traverse(item, seen)
    return value


class Computed(Generic[T]):
    """
    惰性求值的衍生值。

    只有在依賴被觸發之後的下一次讀取才會重新計算，期間的讀取直接返回快取。
    Computed 本身也是一個依賴來源，因此 getter 之間可以互相引用。
    """

    def __init__(self, getter: Callable[[], T]) -> None:
        self._dirty = True
        self._value: Any = None
        self._dep = Dep()
        self.effect = ReactiveEffect(getter, scheduler=self._invalidate)
        self.effect.computed = self

    def _invalidate(self) -> None:
        if not self._dirty:
            self._dirty = True
            self._dep.trigger()

    @property
    def value(self) -> T:
        if _is_tracking():
            self._dep.depend()
        if self._dirty or not self.effect.active:
            self._value = self.effect.run()
            self._dirty = False
        return self._value

    def stop(self) -> None:
        self.effect.stop()

    def __repr__(self) -> str:
        state = "dirty" if self._dirty else repr(self._value)
        return f"Computed({state})"


def watch(
    source: Any,
    callback: Callable[[Any, Any], None],
    *,
    deep: bool = False,
    immediate: bool = False,
    flush: str = "sync",
) -> Callable[[], None]:
    """
    觀察一個來源，在其依賴變化時同步呼叫 callback(new_value, old_value)。

    Args:
        source: 無參數函數、ReactiveCell，或反應式容器（容器自動視為 deep）
        callback: 變化時呼叫的函數
        deep: 是否深層追蹤來源返回的結構
        immediate: 是否在建立時立即呼叫一次 callback
        flush: 只支援 "sync"，不跨越事件迴圈批次處理

    Returns:
        停止觀察的函數
    """
    if flush != "sync":
        raise ValueError(f"Unsupported flush mode: {flush!r}")

    if callable(source):
        getter = source
    elif is_reactive(source):
        getter = lambda: source  # noqa: E731
        deep = True
    elif isinstance(source, ReactiveCell):
        getter = lambda: source.value  # noqa: E731
    else:
        raise TypeError(f"Cannot watch {type(source).__name__}")

    if deep:
        base_getter = getter
        getter = lambda: traverse(base_getter())  # noqa: E731

    old_value: Any = _MISSING

    def job() -> None:
        nonlocal old_value
        if not effect.active:
            return
        new_value = effect.run()
        if deep or has_changed(old_value, new_value):
            previous = None if old_value is _MISSING else old_value
            old_value = new_value
            with pause_tracking():
                callback(new_value, previous)

    effect = ReactiveEffect(getter, scheduler=job)
    if immediate:
        job()
    else:
        old_value = effect.run()
    return effect.stop


class EffectScope:
    """
    收集在其中建立的 effect 與清理回調。

    宿主可以在元件渲染期間啟用一個 scope，元件卸載時呼叫 stop()，
    其中登記的訂閱與衍生值都會一併釋放。
    """

    def __init__(self, detached: bool = False) -> None:
        self.active = True
        self.effects: List[ReactiveEffect] = []
        self.cleanups: List[Callable[[], None]] = []
        self.scopes: List["EffectScope"] = []
        self.parent: Optional[EffectScope] = None if detached else _active_scope.get()
        if self.parent is not None:
            self.parent.scopes.append(self)

    def run(self, fn: Callable[[], T]) -> Optional[T]:
        if not self.active:
            return None
        token = _active_scope.set(self)
        try:
            return fn()
        finally:
            _active_scope.reset(token)

    @contextlib.contextmanager
    def activate(self):
        """以 with 區塊的形式啟用此 scope。"""
        token = _active_scope.set(self)
        try:
            yield self
        finally:
            _active_scope.reset(token)

    def stop(self) -> None:
        if not self.active:
            return
        self.active = False
        for effect in self.effects:
            effect.stop()
        for scope in list(self.scopes):
            scope.stop()
        for cleanup in self.cleanups:
            cleanup()
        self.effects.clear()
        self.scopes.clear()
        self.cleanups.clear()
        if self.parent is not None and self in self.parent.scopes:
            self.parent.scopes.remove(self)


def get_current_scope() -> Optional[EffectScope]:
    return _active_scope.get()


def on_scope_dispose(fn: Callable[[], None]) -> bool:
    """
    在目前 active scope 停止時呼叫 fn。

    Returns:
        是否成功登記（沒有 active scope 時返回 False）
    """
    scope = _active_scope.get()
    if scope is None or not scope.active:
        return False
    scope.cleanups.append(fn)
    return True
