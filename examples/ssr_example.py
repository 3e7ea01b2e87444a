"""
PyPinia 範例：伺服器端渲染。

每個請求開啟自己的會話，交錯執行的請求互不干擾；
請求結束時序列化根狀態，客戶端以此水合新的會話。
"""

import asyncio
import json
import logging
import time

from pypinia import (
    StorePlugin, close_session, create_pinia, define_store, get_root_state,
    global_error_handler, open_session, serialize_state,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("ssr_example")


class TimingPlugin(StorePlugin):
    """記錄每個 action 的耗時"""
    provides = ("timings",)

    def extend(self, context):
        timings = {}

        def listener(ctx):
            start = time.perf_counter()
            ctx["after"](lambda _: timings.__setitem__(ctx["name"], time.perf_counter() - start))

        context.store.on_action(listener)
        return {"timings": timings}


async def fetch_user(store, user_id: int):
    await asyncio.sleep(0.01 * user_id)
    store.patch({"user": {"id": user_id, "name": f"user-{user_id}"}, "loaded": True})
    use_cart().add_item(f"welcome-pack-{user_id}")
    return store.user


def add_item(store, item: str):
    store.items.append(item)


use_user = define_store(
    "user",
    state=lambda: {"user": None, "loaded": False},
    getters={"display_name": lambda store: store.user["name"] if store.user else "guest"},
    actions={"fetch_user": fetch_user},
)

use_cart = define_store(
    "cart",
    state=lambda: {"items": []},
    getters={"size": lambda store: len(store.items)},
    actions={"add_item": add_item},
)


async def handle_request(user_id: int) -> str:
    pinia = open_session().use(TimingPlugin())
    try:
        user = use_user()
        await user.fetch_user(user_id)
        logger.info("request %d rendered for %s, cart size %d, timings %s",
                    user_id, user.display_name, use_cart().size, user.timings)
        return json.dumps(serialize_state(pinia))
    except Exception:
        global_error_handler.handle(RuntimeError(f"render failed: {dict(get_root_state(pinia))}"))
        raise
    finally:
        close_session(pinia)


async def main():
    payloads = await asyncio.gather(*(handle_request(i) for i in (3, 1, 2)))

    # 客戶端水合
    client = create_pinia(initial_state=json.loads(payloads[0])).install()
    user = use_user(client)
    print(f"hydrated: {user.display_name}, cart: {list(use_cart().items)}")


if __name__ == "__main__":
    asyncio.run(main())
