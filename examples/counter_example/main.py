import asyncio
import json
import logging

from pypinia import open_session, close_session, to_dict
from counter_store import use_counter

logging.basicConfig(level=logging.INFO)


async def main():
    pinia = open_session()
    counter = use_counter()

    # 訂閱狀態變化
    counter.subscribe(
        lambda mutation, state: print(f"[{mutation['type'].value}] count = {state['count']}")
    )
    counter.select(lambda state: state["count"]).subscribe(
        on_next=lambda count: print(f"計數變化: {count}")
    )

    # 記錄每個 action 的結果
    def log_action(ctx):
        ctx["after"](lambda result: print(f"action {ctx['name']} 完成: {result!r}"))
        ctx["on_error"](lambda err: print(f"action {ctx['name']} 失敗: {err}"))

    counter.on_action(log_action)

    print("\n==== 開始測試基本操作 ====")
    counter.increment()
    counter.increment_by(5)
    counter.decrement()
    counter.set_count(10)
    print(f"doubled = {counter.doubled}")

    print("\n==== 開始測試異步操作 ====")
    await counter.load_count()

    print("\n==== 最終狀態 ====")
    print(json.dumps(to_dict(pinia.state), ensure_ascii=False, indent=2))
    print(json.dumps(counter.info, ensure_ascii=False))

    close_session(pinia)


if __name__ == "__main__":
    asyncio.run(main())
