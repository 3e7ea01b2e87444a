import logging
import types
import weakref
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Union

from pydantic import BaseModel
from reactivex import Observable, Subject
from reactivex import operators as ops

from .actions import wrap_action
from .config import get_config
from .context import Pinia, active_pinia, get_active_pinia, set_active_pinia
from .errors import ContextError, PluginError, StoreError
from .immutable_utils import to_immutable
from .plugins import apply_plugins
from .reactivity import (
    Computed, EffectScope, Ref, is_plain_object, on_scope_dispose, pause_tracking,
    reactive, watch,
)
from .registry import registry
from .types import (
    ActionFunction, ActionListener, Getter, MutationPayload, MutationType,
    PatchArgument, StateFactory, SubscriptionCallback, Unsubscribe,
)

logger = logging.getLogger("pypinia.store")

# store 自身的 API，state、getter、action 與 plugin 屬性都不能使用這些名稱
RESERVED_NAMES = frozenset({
    "id", "state", "patch", "subscribe", "on_action", "reset", "dispose", "select",
})

_uninstalled_warned = False


def merge_patch(target: Any, patch: Mapping[str, Any]) -> Any:
    """
    將 patch 遞迴合併到 target。

    兩邊都是記錄（dict）時逐 key 合併，其他情況（包括 list）整個替換。

    Args:
        target: 要被修改的狀態樹
        patch: 部分狀態

    Returns:
        修改後的 target
    """
    for key, sub_patch in patch.items():
        if key in target and is_plain_object(target[key]) and is_plain_object(sub_patch):
            merge_patch(target[key], sub_patch)
        else:
            target[key] = sub_patch
    return target


def _as_state_tree(value: Any, store_id: str) -> Dict[str, Any]:
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, Mapping):
        return dict(value)
    raise StoreError(
        f"State must be a mapping or a pydantic model, got {type(value).__name__}",
        store_id=store_id,
        operation="state",
    )


@dataclass(frozen=True)
class StoreDefinition:
    """
    不可變的 store 描述。

    屬性:
        id: 在同一個 Pinia 內唯一的識別字
        state: 產生初始狀態樹的工廠函數
        getters: 名稱到 getter(store) 的映射
        actions: 名稱到 action(store, *args, **kwargs) 的映射
        options: 傳遞給 plugin 的完整選項
    """
    id: str
    state: Optional[StateFactory] = None
    getters: Mapping[str, Getter] = field(default_factory=dict)
    actions: Mapping[str, ActionFunction] = field(default_factory=dict)
    options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id:
            raise StoreError("Store id must be a non-empty string", operation="define")
        object.__setattr__(self, "getters", types.MappingProxyType(dict(self.getters or {})))
        object.__setattr__(self, "actions", types.MappingProxyType(dict(self.actions or {})))
        object.__setattr__(self, "options", types.MappingProxyType(dict(self.options or {})))

        for kind, members in (("getter", self.getters), ("action", self.actions)):
            for name, fn in members.items():
                if name in RESERVED_NAMES:
                    raise StoreError(f"{kind} name {name!r} is reserved", store_id=self.id, operation="define")
                if not callable(fn):
                    raise StoreError(f"{kind} {name!r} must be callable", store_id=self.id, operation="define")
        overlap = set(self.getters) & set(self.actions)
        if overlap:
            raise StoreError(
                f"Names used both as getter and action: {', '.join(sorted(overlap))}",
                store_id=self.id,
                operation="define",
            )

    def build_state(self) -> Dict[str, Any]:
        """呼叫狀態工廠產生一棵新的狀態樹。"""
        if self.state is None:
            return {}
        return _as_state_tree(self.state(), self.id)

    def create(self, pinia: Pinia) -> "Store":
        return Store(self, pinia)


class Store:
    """
    一個 store 實例：即時狀態樹、快取的 getter、綁定的 action 與 plugin 屬性。

    state 的 key 可以直接以屬性讀寫（store.count += 1），
    getter 是唯讀屬性，action 是綁定好的函數。
    以底線開頭的 state key 只能透過 store.state 存取。
    """

    def __init__(self, definition: StoreDefinition, pinia: Pinia):
        """
        建立 store。通常不直接呼叫，而是透過 define_store() 返回的 use_store()。

        Args:
            definition: store 定義
            pinia: 擁有此 store 的會話
        """
        object.__setattr__(self, "_definition", definition)
        object.__setattr__(self, "_id", definition.id)
        object.__setattr__(self, "_pinia_ref", weakref.ref(pinia))
        object.__setattr__(self, "_paused", 0)
        object.__setattr__(self, "_subject", Subject())
        object.__setattr__(self, "_action_subject", Subject())
        object.__setattr__(self, "_getters", {})
        object.__setattr__(self, "_actions", {})
        object.__setattr__(self, "_extensions", {})
        object.__setattr__(self, "_disposed", False)
        object.__setattr__(self, "_tasks", set())

        global _uninstalled_warned
        config = get_config()
        if config.dev_mode and config.warn_uninstalled and not pinia.installed and not _uninstalled_warned:
            _uninstalled_warned = True
            logger.warning(
                "store %r was instantiated before calling pinia.install(). "
                "Plugins registered with pinia.use() are only applied after install().",
                self._id,
            )

        with pinia._scope.activate():
            object.__setattr__(self, "_scope", EffectScope())

        with pause_tracking():
            hydrated = self._id in pinia.state
        try:
            with pause_tracking():
                self._scope.run(lambda: self._setup(pinia))
                self._check_state_keys()
                self._scope.run(lambda: apply_plugins(self, pinia, pinia.plugins, definition.options))
        except Exception:
            self._scope.stop()
            if not hydrated:
                pinia.state.pop(self._id, None)
            raise
        logger.debug("store %r created", self._id)

    def _setup(self, pinia: Pinia) -> None:
        definition = self._definition
        if self._id in pinia.state:
            # 水合：使用會話中已存在的狀態
            initial = pinia.state[self._id]
        else:
            initial = definition.build_state()
        state_cell = Ref(reactive(initial))
        object.__setattr__(self, "_state_cell", state_cell)
        pinia.state[self._id] = state_cell.value

        watch(lambda: self._state_cell.value, self._on_direct_mutation, deep=True)

        for name, getter in definition.getters.items():
            self._getters[name] = Computed(self._bind_getter(getter))
        for name, action in definition.actions.items():
            self._actions[name] = wrap_action(self, name, action)

    def _bind_getter(self, getter: Getter) -> Callable[[], Any]:
        def compute() -> Any:
            with active_pinia(self._pinia_ref()):
                return getter(self)
        return compute

    def _check_state_keys(self) -> None:
        for key in self._state_cell.value:
            if key in RESERVED_NAMES:
                raise StoreError(f"State key {key!r} is reserved", store_id=self._id, operation="create")
            if key in self._getters or key in self._actions:
                raise StoreError(
                    f"State key {key!r} collides with a getter or action",
                    store_id=self._id,
                    operation="create",
                )

    def _on_direct_mutation(self, state: Any, _old: Any) -> None:
        if self._paused == 0:
            self._emit(MutationType.DIRECT, None)

    def _emit(self, mutation_type: MutationType, payload: Any) -> None:
        mutation: MutationPayload = {"store_id": self._id, "type": mutation_type, "payload": payload}
        self._subject.on_next((mutation, self._state_cell.value))

    def _extend(self, properties: Mapping[str, Any], source: str) -> None:
        state = self._state_cell.value
        for name, value in properties.items():
            if name in RESERVED_NAMES or name in self._getters or name in self._actions or name in state:
                raise PluginError(f"Property {name!r} would shadow the store API, state, getters or actions",
                                  plugin_name=source, store_id=self._id)
            self._extensions[name] = value

    @property
    def _pinia(self) -> Pinia:
        pinia = self._pinia_ref()
        if pinia is None:
            raise StoreError("The pinia owning this store no longer exists", store_id=self._id)
        return pinia

    # ==== 公開 API ====

    @property
    def id(self) -> str:
        """store 的唯一識別字（建立後不可修改）。"""
        return self._id

    @property
    def state(self) -> Any:
        """即時狀態樹。指定新值會整個替換並發出一次通知。"""
        return self._state_cell.value

    @state.setter
    def state(self, new_state: Any) -> None:
        tree = reactive(_as_state_tree(new_state, self._id))
        self._paused += 1
        try:
            self._state_cell.value = tree
            pinia = self._pinia_ref()
            if pinia is not None:
                pinia.state[self._id] = tree
        finally:
            self._paused -= 1
        self._emit(MutationType.DIRECT, tree)

    def patch(self, partial_state_or_mutator: PatchArgument) -> None:
        """
        套用部分狀態或執行一個 mutator，完成後只通知訂閱者一次。

        Args:
            partial_state_or_mutator: 要深層合併的部分狀態，
                                      或接收即時狀態樹並直接修改它的函數
        """
        arg = partial_state_or_mutator
        if isinstance(arg, BaseModel):
            arg = arg.model_dump(exclude_unset=True)
        if isinstance(arg, Mapping):
            mutation_type, payload = MutationType.PATCH_OBJECT, arg
        elif callable(arg):
            mutation_type, payload = MutationType.PATCH_FUNCTION, None
        else:
            raise StoreError(
                f"patch() expects a mapping or a callable, got {type(arg).__name__}",
                store_id=self._id,
                operation="patch",
            )

        self._paused += 1
        try:
            if mutation_type is MutationType.PATCH_FUNCTION:
                arg(self._state_cell.value)
            else:
                merge_patch(self._state_cell.value, arg)
        finally:
            self._paused -= 1
        self._emit(mutation_type, payload)

    def subscribe(self, callback: SubscriptionCallback, detached: bool = False) -> Unsubscribe:
        """
        註冊狀態變更回調 callback(mutation, state)。

        Args:
            callback: 每次狀態變更時同步呼叫
            detached: 為 False 且目前存在 active EffectScope 時，scope 停止會一併取消訂閱

        Returns:
            取消訂閱的函數
        """
        disposable = self._subject.subscribe(on_next=lambda event: callback(*event))
        return self._register_teardown(disposable.dispose, detached)

    def on_action(self, callback: ActionListener, detached: bool = False) -> Unsubscribe:
        """
        註冊 action 監聽器，在每個 action 執行前以 ActionContext 同步呼叫。

        Returns:
            取消監聽的函數
        """
        disposable = self._action_subject.subscribe(on_next=callback)
        return self._register_teardown(disposable.dispose, detached)

    def _register_teardown(self, dispose: Callable[[], None], detached: bool) -> Unsubscribe:
        if not detached:
            on_scope_dispose(dispose)
        return dispose

    def reset(self) -> None:
        """丟棄所有訂閱，並以狀態工廠重建狀態樹。getter、action 與 plugin 屬性不受影響。"""
        # 先前 select() 返回的 Observable 在此完成
        self._subject.on_completed()
        object.__setattr__(self, "_subject", Subject())
        tree = reactive(self._definition.build_state())
        self._paused += 1
        try:
            self._state_cell.value = tree
            pinia = self._pinia_ref()
            if pinia is not None:
                pinia.state[self._id] = tree
        finally:
            self._paused -= 1
        logger.debug("store %r reset", self._id)

    def dispose(self) -> None:
        """
        停止 store 的 getter 與狀態觀察、清除所有訂閱與監聽器，並從登錄表移除。

        會話中的根狀態會保留，之後再次 use_store() 會以該狀態建立新的實例。
        """
        if self._disposed:
            return
        object.__setattr__(self, "_disposed", True)
        self._scope.stop()
        self._subject.on_completed()
        self._action_subject.on_completed()
        pinia = self._pinia_ref()
        if pinia is not None:
            registry.remove(pinia, self._id, self)
        logger.debug("store %r disposed", self._id)

    def select(self, selector: Optional[Callable[[Any], Any]] = None) -> Observable:
        """
        選擇狀態的一部分進行觀察。

        每次通知後以 selector(state) 計算，值改變時才發出。
        選到的值會轉為不可變快照，因此比較的是內容而不是物件身分。

        Args:
            selector: 接收狀態樹並返回希望觀察的部分，預設為整個狀態

        Returns:
            發送選定狀態快照的 Observable
        """
        selector = selector or (lambda state: state)
        return self._subject.pipe(
            ops.map(lambda event: to_immutable(selector(event[1]))),
            ops.distinct_until_changed(),
        )

    # ==== 屬性存取 ====

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        getters = self.__dict__.get("_getters", {})
        if name in getters:
            return getters[name].value
        actions = self.__dict__.get("_actions", {})
        if name in actions:
            return actions[name]
        state_cell = self.__dict__.get("_state_cell")
        if state_cell is not None:
            state = state_cell.value
            if name in state:
                return state[name]
        extensions = self.__dict__.get("_extensions", {})
        if name in extensions:
            return extensions[name]
        raise AttributeError(f"Store {self.__dict__.get('_id')!r} has no attribute {name!r}")

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_") or name == "state":
            object.__setattr__(self, name, value)
            return
        if name in RESERVED_NAMES:
            raise AttributeError(f"Store attribute {name!r} is read-only")
        if name in self._getters:
            raise AttributeError(f"Getter {name!r} of store {self._id!r} is read-only")
        if name in self._actions:
            raise AttributeError(f"Action {name!r} of store {self._id!r} cannot be replaced")
        with pause_tracking():
            state = self._state_cell.value
            is_state_key = name in state
        if is_state_key:
            state[name] = value
        else:
            self._extensions[name] = value

    def __dir__(self):
        with pause_tracking():
            state_keys = [k for k in self._state_cell.value if isinstance(k, str)]
        return sorted(set(super().__dir__()) | set(state_keys) | set(self._getters)
                      | set(self._actions) | set(self._extensions))

    def __repr__(self) -> str:
        with pause_tracking():
            return f"<Store {self._id!r} state={self._state_cell.value!r}>"


def define_store(
    id: Union[str, Mapping[str, Any]],
    state: Optional[StateFactory] = None,
    getters: Optional[Mapping[str, Getter]] = None,
    actions: Optional[Mapping[str, ActionFunction]] = None,
    **options: Any,
) -> Callable[[Optional[Pinia]], Store]:
    """
    定義一個 store，返回取得該 store 實例的 use_store 函數。

    Args:
        id: store 的唯一識別字，或包含 id/state/getters/actions 的選項映射
        state: 產生初始狀態的工廠函數（返回 dict 或 pydantic 模型）
        getters: 名稱到 getter(store) 的映射
        actions: 名稱到 action(store, *args, **kwargs) 的映射
        **options: 其他自訂選項，會原樣傳給 plugin

    Returns:
        use_store(pinia=None)：在 active pinia（或指定的 pinia）中取得唯一的 store 實例

    範例:
        >>> def increment(store, by=1):
        ...     store.count += by
        >>> use_counter = define_store(
        ...     "counter",
        ...     state=lambda: {"count": 0},
        ...     getters={"doubled": lambda store: store.count * 2},
        ...     actions={"increment": increment},
        ... )
        >>> counter = use_counter(pinia)
        >>> counter.increment()
    """
    if isinstance(id, Mapping):
        opts = dict(id)
        store_id = opts.pop("id", None)
        state = opts.pop("state", state)
        getters = opts.pop("getters", getters)
        actions = opts.pop("actions", actions)
        options = {**opts, **options}
    else:
        store_id = id

    all_options = {"id": store_id, "state": state, "getters": getters or {}, "actions": actions or {}, **options}
    definition = StoreDefinition(
        id=store_id,
        state=state,
        getters=getters or {},
        actions=actions or {},
        options=all_options,
    )

    def use_store(pinia: Optional[Pinia] = None) -> Store:
        if pinia is not None:
            set_active_pinia(pinia)
        pinia = get_active_pinia()
        if pinia is None:
            raise ContextError(
                f"Cannot use store {store_id!r}: no active pinia",
                {"store_id": store_id},
            )
        return registry.get_or_create(pinia, store_id, definition)

    use_store.id = store_id  # type: ignore[attr-defined]
    use_store.definition = definition  # type: ignore[attr-defined]
    return use_store
