"""
PyPinia 會話上下文。

Pinia 代表一個隔離的會話（一個應用實例或一個伺服器請求），
持有該會話所有 store 的根狀態與 plugin 列表。

目前生效的 Pinia 透過 contextvars 保存：同步程式碼中行為如同一個全域指標，
但每個 asyncio 任務都擁有自己的副本，交錯處理的請求因此互不干擾。
宿主仍應在每個入口點（請求處理函數、任務）開始時設定 active pinia。
"""

import contextlib
import logging
from contextvars import ContextVar, Token
from typing import Any, Callable, Dict, List, Mapping, Optional

from immutables import Map

from .config import get_config
from .immutable_utils import to_dict, to_immutable
from .reactivity import EffectScope, ReactiveDict, pause_tracking
from .registry import registry

logger = logging.getLogger("pypinia.context")

_MISSING_PINIA_MESSAGE = (
    "get_active_pinia() was called with no active Pinia. "
    "Call set_active_pinia(pinia) or pass a pinia to use_store() at the start of "
    "every entry point (request handler, task) that uses stores."
)


class Pinia:
    """
    一個隔離的狀態會話。

    屬性:
        state: 根狀態，store id 到該 store 即時狀態樹的映射
        app: install() 時附加的宿主物件
        installed: 是否已附加到宿主
    """

    def __init__(self, initial_state: Optional[Mapping[str, Any]] = None) -> None:
        """
        初始化 Pinia。

        Args:
            initial_state: 可選的初始根狀態（例如由伺服器序列化後傳來），
                           store 建立時會優先使用其中對應 id 的狀態
        """
        self.state = ReactiveDict(initial_state or {})
        self.app: Any = None
        self.installed = False
        self._plugins: List[Callable[..., Any]] = []
        self._pending_plugins: List[Callable[..., Any]] = []
        # 所有 store 的 effect scope 都掛在這個 scope 之下
        self._scope = EffectScope(detached=True)

    def install(self, app: Any = None) -> "Pinia":
        """
        將執行環境附加到宿主，並啟用所有排隊中的 plugin。

        Args:
            app: 宿主應用物件（可選）

        Returns:
            Pinia 本身，方便鏈式呼叫
        """
        self.app = app
        if not self.installed:
            self.installed = True
            self._plugins.extend(self._pending_plugins)
            self._pending_plugins.clear()
            logger.debug("pinia installed with %d plugin(s)", len(self._plugins))
        return self

    def use(self, plugin: Callable[..., Any]) -> "Pinia":
        """
        註冊一個 plugin。

        install() 之前註冊的 plugin 會排隊，install() 時才啟用；
        之後註冊的立即啟用。plugin 只會套用到啟用之後建立的 store。
        """
        if not callable(plugin):
            raise TypeError(f"Plugin must be callable, got {type(plugin).__name__}")
        if self.installed:
            self._plugins.append(plugin)
        else:
            self._pending_plugins.append(plugin)
        return self

    @property
    def plugins(self) -> tuple:
        """目前已啟用的 plugin，依註冊順序排列。"""
        return tuple(self._plugins)

    def __repr__(self) -> str:
        with pause_tracking():
            ids = list(self.state)
        return f"<Pinia installed={self.installed} stores={ids}>"


_active_pinia: ContextVar[Optional[Pinia]] = ContextVar("pypinia_active_pinia", default=None)


def create_pinia(initial_state: Optional[Mapping[str, Any]] = None) -> Pinia:
    """
    創建一個新的 Pinia 實例。

    Args:
        initial_state: 可選的初始根狀態，用於水合

    Returns:
        Pinia: 新創建的實例
    """
    return Pinia(initial_state)


def set_active_pinia(pinia: Optional[Pinia]) -> Token:
    """
    設定目前生效的 Pinia。

    Returns:
        可交給 reset_active_pinia() 的 token
    """
    return _active_pinia.set(pinia)


def reset_active_pinia(token: Token) -> None:
    """恢復 set_active_pinia() 之前的 active pinia。"""
    _active_pinia.reset(token)


def get_active_pinia() -> Optional[Pinia]:
    """
    返回目前生效的 Pinia。

    沒有設定時，開發模式下依配置的日誌等級記錄警告，生產模式下靜默；
    兩種模式都返回 None，由呼叫端在下游失敗。
    """
    pinia = _active_pinia.get()
    if pinia is None:
        config = get_config()
        if config.dev_mode:
            logger.log(config.missing_pinia_log_level, _MISSING_PINIA_MESSAGE)
    return pinia


@contextlib.contextmanager
def active_pinia(pinia: Optional[Pinia]):
    """在 with 區塊內使用指定的 Pinia，離開時恢復原本的值。"""
    token = _active_pinia.set(pinia)
    try:
        yield pinia
    finally:
        _active_pinia.reset(token)


def open_session(app: Any = None, initial_state: Optional[Mapping[str, Any]] = None) -> Pinia:
    """
    創建、安裝並啟用一個新的會話。

    Args:
        app: 宿主應用物件（可選）
        initial_state: 可選的初始根狀態

    Returns:
        已生效的 Pinia
    """
    pinia = create_pinia(initial_state).install(app)
    set_active_pinia(pinia)
    logger.debug("session opened: %r", pinia)
    return pinia


def close_session(pinia: Pinia) -> None:
    """
    確定性地結束一個會話。

    釋放該會話的所有 store、清空根狀態與 plugin，
    並在它是目前 active pinia 時將其取消。
    """
    stores = registry.stores(pinia)
    for store in list(stores.values()):
        store.dispose()
    registry.clear(pinia)
    pinia._scope.stop()
    pinia.state.clear()
    pinia._plugins.clear()
    pinia._pending_plugins.clear()
    if _active_pinia.get() is pinia:
        _active_pinia.set(None)
    logger.debug("session closed (%d store(s) disposed)", len(stores))


def get_root_state(pinia: Pinia) -> Map:
    """
    返回會話中所有 store 狀態的不可變快照，適合附加在錯誤報告中。
    """
    return to_immutable(pinia.state)


def serialize_state(pinia: Pinia) -> Dict[str, Any]:
    """
    將根狀態轉為一般 dict，可直接 json.dumps，
    並可作為另一端 create_pinia(initial_state=...) 的輸入。
    """
    return to_dict(pinia.state)
