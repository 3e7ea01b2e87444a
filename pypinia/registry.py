"""
Store 登錄表：每個 (Pinia, id) 最多一個 store 實例。

Pinia 到 {id: store} 的關聯使用 WeakKeyDictionary，
store 只持有 Pinia 的弱引用，因此登錄表本身不會讓會話存活。
"""

import logging
import weakref
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from .context import Pinia
    from .store import Store, StoreDefinition

logger = logging.getLogger("pypinia.registry")


class StoreRegistry:
    """
    管理所有會話的 store 實例。

    Attributes:
        _stores: Pinia 到 {store id: Store} 的弱鍵映射
    """

    def __init__(self) -> None:
        self._stores: "weakref.WeakKeyDictionary[Pinia, Dict[str, Store]]" = weakref.WeakKeyDictionary()

    def get_or_create(self, pinia: "Pinia", store_id: str, definition: "StoreDefinition") -> "Store":
        """
        返回會話中 id 對應的 store，不存在時建立並登錄。

        建立失敗（例如 plugin 拋出異常）時不會留下任何登錄項。
        相同 id 的不同定義會得到先建立的那個實例。
        """
        stores = self._stores.get(pinia)
        if stores is None:
            stores = self._stores[pinia] = {}

        store = stores.get(store_id)
        if store is None:
            store = definition.create(pinia)
            stores[store_id] = store
            logger.debug("store %r registered", store_id)
        return store

    def get(self, pinia: "Pinia", store_id: str) -> Optional["Store"]:
        return self._stores.get(pinia, {}).get(store_id)

    def has(self, pinia: "Pinia", store_id: str) -> bool:
        return store_id in self._stores.get(pinia, {})

    def stores(self, pinia: "Pinia") -> Dict[str, "Store"]:
        """返回會話中所有 store 的淺拷貝。"""
        return dict(self._stores.get(pinia, {}))

    def remove(self, pinia: "Pinia", store_id: str, store: Any = None) -> bool:
        """
        移除一個登錄項。

        Args:
            store: 若提供，只有登錄的實例正是它時才移除

        Returns:
            是否有移除
        """
        stores = self._stores.get(pinia)
        if not stores or store_id not in stores:
            return False
        if store is not None and stores[store_id] is not store:
            return False
        del stores[store_id]
        return True

    def clear(self, pinia: "Pinia") -> None:
        self._stores.pop(pinia, None)

    def __len__(self) -> int:
        return len(self._stores)

    def __contains__(self, pinia: object) -> bool:
        try:
            return pinia in self._stores
        except TypeError:
            return False


registry = StoreRegistry()
