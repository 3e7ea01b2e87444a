"""
PyPinia 執行期配置。

開發模式與生產模式的差異（例如缺少 active pinia 時是否發出警告）
集中在這裡，以可調整的日誌等級策略表達，而不是寫死在各模組中。
"""

import logging
import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigurationError


def _dev_mode_from_env() -> bool:
    return os.environ.get("PYPINIA_ENV", "development").lower() != "production"


class RuntimeConfig(BaseModel):
    """PyPinia 全域執行期設定"""
    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    dev_mode: bool = Field(default_factory=_dev_mode_from_env, description="Development mode emits diagnostics")
    missing_pinia_log_level: int = Field(
        default=logging.WARNING, ge=logging.NOTSET, le=logging.CRITICAL,
        description="Log level used when no active pinia is set (dev mode only)",
    )
    warn_uninstalled: bool = Field(default=True, description="Warn once when a store is created before install()")
    report_action_errors: bool = Field(default=True, description="Route failed actions to the global error handler")


_config = RuntimeConfig()


def get_config() -> RuntimeConfig:
    """返回目前生效的配置。"""
    return _config


def configure(**overrides: Any) -> RuntimeConfig:
    """
    以驗證後的值覆寫目前配置。

    Args:
        **overrides: RuntimeConfig 的欄位名稱與新值

    Returns:
        更新後的配置

    Raises:
        ConfigurationError: 欄位不存在或值不合法
    """
    global _config
    try:
        _config = RuntimeConfig(**{**_config.model_dump(), **overrides})
    except ValidationError as err:
        first = err.errors()[0]
        key = ".".join(str(p) for p in first.get("loc", ())) or None
        raise ConfigurationError(first.get("msg", str(err)), component="runtime", config_key=key) from err
    return _config


def reset_config() -> RuntimeConfig:
    """恢復為預設配置（重新讀取環境變數）。"""
    global _config
    _config = RuntimeConfig()
    return _config
