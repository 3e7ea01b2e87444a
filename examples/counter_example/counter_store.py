import asyncio
from typing import List, Optional

from pydantic import BaseModel

from pypinia import define_store


# ====== 狀態模型 ======
class CounterState(BaseModel):
    count: int = 0
    loading: bool = False
    error: Optional[str] = None
    history: List[int] = []


# ====== Actions ======
def increment(store):
    store.count += 1


def increment_by(store, amount: int):
    store.count += amount


def decrement(store):
    store.count -= 1


def set_count(store, value: int):
    store.patch({"count": value, "history": [*store.history, store.count]})


async def load_count(store):
    store.loading = True
    try:
        await asyncio.sleep(0.5)
        store.patch({"count": 42, "loading": False})
    except Exception as e:
        store.patch({"loading": False, "error": str(e)})
        raise
    return store.count


use_counter = define_store(
    "counter",
    state=CounterState,
    getters={
        "doubled": lambda store: store.count * 2,
        "info": lambda store: {"count": store.count, "doubled": store.doubled, "loading": store.loading},
    },
    actions={
        "increment": increment,
        "increment_by": increment_by,
        "decrement": decrement,
        "set_count": set_count,
        "load_count": load_count,
    },
)
