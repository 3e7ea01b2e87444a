"""
PyPinia: 以會話隔離為核心的反應式應用狀態執行環境。

每個會話（應用實例或伺服器請求）擁有自己的一組 store，
每個 store 管理一棵可變的狀態樹、快取的 getter 與可呼叫的 action。
"""

from .errors import (
    PyPiniaError, StoreError, ActionError, PluginError, ContextError,
    ConfigurationError, ErrorHandler, global_error_handler,
)
from .config import RuntimeConfig, configure, get_config, reset_config
from .reactivity import (
    ReactiveCell, Ref, ReactiveDict, ReactiveList, Computed, EffectScope,
    reactive, is_reactive, to_raw, watch, pause_tracking,
    get_current_scope, on_scope_dispose,
)
from .types import MutationType, MutationPayload, ActionContext
from .context import (
    Pinia, create_pinia, set_active_pinia, get_active_pinia, reset_active_pinia,
    active_pinia, open_session, close_session, get_root_state, serialize_state,
)
from .registry import StoreRegistry, registry
from .plugins import PluginContext, StorePlugin, provides
from .store import Store, StoreDefinition, define_store, merge_patch
from .immutable_utils import to_immutable, to_dict, to_pydantic

# 匯出所有公開 API
__all__ = [
    # Errors
    "PyPiniaError", "StoreError", "ActionError", "PluginError", "ContextError",
    "ConfigurationError", "ErrorHandler", "global_error_handler",

    # Config
    "RuntimeConfig", "configure", "get_config", "reset_config",

    # Reactivity
    "ReactiveCell", "Ref", "ReactiveDict", "ReactiveList", "Computed", "EffectScope",
    "reactive", "is_reactive", "to_raw", "watch", "pause_tracking",
    "get_current_scope", "on_scope_dispose",

    # Types
    "MutationType", "MutationPayload", "ActionContext",

    # Context
    "Pinia", "create_pinia", "set_active_pinia", "get_active_pinia", "reset_active_pinia",
    "active_pinia", "open_session", "close_session", "get_root_state", "serialize_state",

    # Registry
    "StoreRegistry", "registry",

    # Plugins
    "PluginContext", "StorePlugin", "provides",

    # Store
    "Store", "StoreDefinition", "define_store", "merge_patch",

    # Immutable Utils
    "to_immutable", "to_dict", "to_pydantic",
]
