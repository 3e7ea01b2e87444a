"""
Plugin 擴充點。

Plugin 是接收 PluginContext 並返回額外屬性映射的可呼叫物件。
返回的屬性會依註冊順序附加到 store 上，後面的 plugin 可以看到並覆寫前面 plugin 加入的屬性。

若 plugin 宣告了 provides（繼承 StorePlugin 或使用 @provides 裝飾器），
返回未宣告的屬性會被視為錯誤，宣告即為該 plugin 提供的能力描述。
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Optional, Tuple

from .errors import PluginError
from .types import PluginResult

logger = logging.getLogger("pypinia.plugins")


@dataclass(frozen=True)
class PluginContext:
    """
    傳遞給 plugin 的上下文。

    屬性:
        store: 正在建立的 store
        pinia: store 所屬的 Pinia
        options: store 定義的選項（包含 define_store 的自訂選項）
    """
    store: Any
    pinia: Any
    options: Mapping[str, Any]


class StorePlugin:
    """
    具型別能力宣告的 plugin 基礎類。

    子類別透過 provides 宣告會加到 store 上的屬性名稱，並實作 extend()。

    範例:
        ```python
        class HistoryPlugin(StorePlugin):
            provides = ("history",)

            def extend(self, context):
                history = []
                context.store.subscribe(lambda mutation, state: history.append(mutation["type"]))
                return {"history": history}

        pinia.use(HistoryPlugin())
        ```
    """

    provides: Tuple[str, ...] = ()

    def extend(self, context: PluginContext) -> PluginResult:
        raise NotImplementedError

    def __call__(self, context: PluginContext) -> PluginResult:
        return self.extend(context)


def provides(*names: str) -> Callable[[Callable], Callable]:
    """為函數型 plugin 宣告其提供的屬性名稱。"""
    def decorator(fn: Callable) -> Callable:
        fn.provides = tuple(names)  # type: ignore[attr-defined]
        return fn
    return decorator


def plugin_name(plugin: Any) -> str:
    name = getattr(plugin, "__name__", None)
    if name is None:
        name = type(plugin).__name__
    return name


def _declared(plugin: Any) -> Optional[Tuple[str, ...]]:
    declared = getattr(plugin, "provides", None)
    if declared is None:
        return None
    return tuple(declared)


def apply_plugins(store: Any, pinia: Any, plugins: Iterable[Callable], options: Mapping[str, Any]) -> None:
    """
    依序套用 plugin 並將其返回的屬性附加到 store。

    plugin 拋出的異常不會被捕捉，會中止這個 store 的建立。

    Raises:
        PluginError: plugin 返回非映射，或返回了未宣告的屬性
    """
    for plugin in plugins:
        name = plugin_name(plugin)
        result = plugin(PluginContext(store=store, pinia=pinia, options=options))
        if result is None:
            continue
        if not isinstance(result, Mapping):
            raise PluginError(
                f"Plugin must return a mapping or None, got {type(result).__name__}",
                plugin_name=name,
            )
        declared = _declared(plugin)
        if declared is not None:
            undeclared = sorted(set(result) - set(declared))
            if undeclared:
                raise PluginError(
                    f"Plugin returned undeclared properties: {', '.join(undeclared)}",
                    plugin_name=name,
                    declared=declared,
                )
        store._extend(result, name)
        logger.debug("plugin %s extended store %r with %s", name, store.id, sorted(result))
