"""
PyPinia 錯誤處理模組。

定義所有 PyPinia 異常的層級結構，以及一個集中式的錯誤處理器，
用於記錄與上報 action 執行期間發生的錯誤。
"""

import logging
import sys
import traceback
from typing import Any, Callable, Dict, List, Optional, Union

logger = logging.getLogger("pypinia")


class PyPiniaError(Exception):
    """所有 PyPinia 異常的基礎類。"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.traceback = traceback.format_exc() if sys.exc_info()[0] is not None else ""

    def to_dict(self) -> Dict[str, Any]:
        """
        將錯誤轉換為可序列化的字典，方便上報。

        Returns:
            包含錯誤類型、訊息與細節的字典
        """
        data = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": dict(self.details),
        }
        if self.traceback:
            data["traceback"] = self.traceback
        return data

    def __str__(self) -> str:
        if not self.details:
            return self.message
        details = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
        return f"{self.message} ({details})"


class StoreError(PyPiniaError):
    """與 Store 建立或操作相關的錯誤。"""

    def __init__(
        self,
        message: str,
        store_id: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        details = {k: v for k, v in (("store_id", store_id), ("operation", operation)) if v is not None}
        details.update(kwargs)
        super().__init__(message, details)
        self.store_id = store_id
        self.operation = operation


class ActionError(PyPiniaError):
    """與 Action 執行相關的錯誤，用於上報，原始異常仍會被重新拋出。"""

    def __init__(self, message: str, store_id: str, action_name: str, **kwargs: Any) -> None:
        super().__init__(message, {"store_id": store_id, "action_name": action_name, **kwargs})
        self.store_id = store_id
        self.action_name = action_name


class PluginError(PyPiniaError):
    """與 Plugin 相關的錯誤。"""

    def __init__(self, message: str, plugin_name: str, **kwargs: Any) -> None:
        super().__init__(message, {"plugin_name": plugin_name, **kwargs})
        self.plugin_name = plugin_name


class ContextError(PyPiniaError):
    """找不到可用的 Pinia（會話上下文）時拋出。"""


class ConfigurationError(PyPiniaError):
    """配置相關的錯誤。"""

    def __init__(self, message: str, component: str, config_key: Optional[str] = None, **kwargs: Any) -> None:
        details = {"component": component, **kwargs}
        if config_key is not None:
            details["config_key"] = config_key
        super().__init__(message, details)
        self.component = component
        self.config_key = config_key


class ErrorHandler:
    """集中式錯誤處理器，用於捕獲、日誌記錄和錯誤報告。"""

    def __init__(self, level: int = logging.ERROR) -> None:
        """
        初始化錯誤處理器。

        Args:
            level: 記錄錯誤時使用的日誌等級
        """
        self.level = level
        self.handlers: List[Callable[[PyPiniaError], None]] = []

    def register_handler(self, handler: Callable[[PyPiniaError], None]) -> Callable[[], None]:
        """
        註冊一個錯誤處理回調。

        Args:
            handler: 接收 PyPiniaError 的函數

        Returns:
            取消註冊的函數
        """
        self.handlers.append(handler)

        def unregister() -> None:
            if handler in self.handlers:
                self.handlers.remove(handler)

        return unregister

    def handle(self, error: Union[PyPiniaError, Exception]) -> PyPiniaError:
        """
        記錄錯誤並通知所有已註冊的處理器。

        處理器本身拋出的異常只會被記錄，不會向外傳播。

        Args:
            error: 要處理的錯誤，非 PyPiniaError 會先被包裝

        Returns:
            實際被處理的 PyPiniaError
        """
        if not isinstance(error, PyPiniaError):
            error = PyPiniaError(str(error), {"original_type": type(error).__name__})

        logger.log(self.level, "%s", error)
        for handler in list(self.handlers):
            try:
                handler(error)
            except Exception:
                logger.exception("error handler %r failed", handler)
        return error


# 單例錯誤處理器
global_error_handler = ErrorHandler()
