"""
Action 分派模組。

將使用者定義的 action 函數包裝為綁定到 store 的可呼叫物件。每次呼叫時：
1. 在呼叫期間將 store 所屬的 Pinia 設為 active，巢狀的 use_store() 會解析到正確的會話
2. 依註冊順序同步通知所有 action 監聽器，監聽器可登記 after / on_error 回調
3. 以 (store, *args, **kwargs) 執行 action 本體
4. 同步異常：呼叫 on_error 回調、上報後原樣重新拋出
5. 非同步結果：在完成時呼叫 after，失敗時呼叫 on_error，不阻塞呼叫端
"""

import asyncio
import functools
import inspect
import logging
from typing import Any, Callable, List

from .config import get_config
from .context import reset_active_pinia, set_active_pinia
from .errors import ActionError, global_error_handler
from .types import ActionContext, ActionFunction

logger = logging.getLogger("pypinia.actions")


def _trigger(callbacks: List[Callable[[Any], None]], value: Any) -> None:
    for callback in list(callbacks):
        callback(value)


def _report(store: Any, name: str, error: BaseException) -> None:
    if not get_config().report_action_errors:
        return
    global_error_handler.handle(ActionError(
        f"Action {name!r} of store {store.id!r} failed: {error}",
        store_id=store.id,
        action_name=name,
        error_type=type(error).__name__,
    ))


async def _settle(store: Any, pinia: Any, name: str, awaitable: Any,
                  after_callbacks: List[Callable], error_callbacks: List[Callable]) -> Any:
    """等待非同步 action 完成，期間保持 Pinia 生效，並觸發 after / on_error。"""
    token = set_active_pinia(pinia)
    try:
        try:
            value = await awaitable
        except Exception as err:
            _trigger(error_callbacks, err)
            _report(store, name, err)
            raise
        _trigger(after_callbacks, value)
        return value
    finally:
        reset_active_pinia(token)


def _watch_future(store: Any, name: str, future: "asyncio.Future",
                  after_callbacks: List[Callable], error_callbacks: List[Callable]) -> None:
    def done(fut: "asyncio.Future") -> None:
        if fut.cancelled():
            return
        error = fut.exception()
        if error is not None:
            _trigger(error_callbacks, error)
            _report(store, name, error)
        else:
            _trigger(after_callbacks, fut.result())

    future.add_done_callback(done)


def _wrap_awaitable(store: Any, pinia: Any, name: str, result: Any,
                    after_callbacks: List[Callable], error_callbacks: List[Callable]) -> Any:
    if isinstance(result, asyncio.Future):
        _watch_future(store, name, result, after_callbacks, error_callbacks)
        return result

    settled = _settle(store, pinia, name, result, after_callbacks, error_callbacks)
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # 沒有執行中的事件迴圈，交給呼叫端 await
        return settled

    task = asyncio.ensure_future(settled)
    # 呼叫端不保留 task 時，由 store 持有直到完成
    store._tasks.add(task)

    def release(fut: "asyncio.Future") -> None:
        store._tasks.discard(fut)
        if error_callbacks and not fut.cancelled():
            # 失敗已交給 on_error，標記為已取得
            fut.exception()

    task.add_done_callback(release)
    return task


def wrap_action(store: Any, name: str, action: ActionFunction) -> Callable[..., Any]:
    """
    將 action 函數包裝為綁定到 store 的可呼叫物件。

    Args:
        store: 擁有此 action 的 store
        name: action 名稱
        action: 使用者定義的函數，第一個參數為 store

    Returns:
        包裝後的函數，返回值（或非同步結果）原樣傳回呼叫端
    """
    @functools.wraps(action)
    def wrapped(*args: Any, **kwargs: Any) -> Any:
        pinia = store._pinia
        token = set_active_pinia(pinia)
        try:
            after_callbacks: List[Callable[[Any], None]] = []
            error_callbacks: List[Callable[[BaseException], None]] = []
            context: ActionContext = {
                "name": name,
                "store": store,
                "args": args,
                "kwargs": kwargs,
                "after": after_callbacks.append,
                "on_error": error_callbacks.append,
            }
            store._action_subject.on_next(context)

            try:
                result = action(store, *args, **kwargs)
            except Exception as err:
                _trigger(error_callbacks, err)
                _report(store, name, err)
                raise

            if inspect.isawaitable(result):
                return _wrap_awaitable(store, pinia, name, result, after_callbacks, error_callbacks)

            _trigger(after_callbacks, result)
            return result
        finally:
            reset_active_pinia(token)

    wrapped.action_name = name  # type: ignore[attr-defined]
    return wrapped
