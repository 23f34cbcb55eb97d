import asyncio

from comanda.core.conversation_locks import InMemoryConversationLockService


def test_same_customer_is_serialized():
    locks = InMemoryConversationLockService()
    events = []

    async def worker(name):
        async with locks.hold(restaurant_id=1, customer_phone="351900000001"):
            events.append(f"{name}:start")
            await asyncio.sleep(0.01)
            events.append(f"{name}:end")

    async def main():
        await asyncio.gather(worker("a"), worker("b"), worker("c"))

    asyncio.run(main())

    assert events == ["a:start", "a:end", "b:start", "b:end", "c:start", "c:end"]
    assert locks.active_keys() == []


def test_different_customers_run_in_parallel():
    locks = InMemoryConversationLockService()
    inside = []
    peak = []

    async def worker(phone):
        async with locks.hold(restaurant_id=1, customer_phone=phone):
            inside.append(phone)
            peak.append(len(inside))
            await asyncio.sleep(0.01)
            inside.remove(phone)

    async def main():
        await asyncio.gather(worker("351900000001"), worker("351900000002"))

    asyncio.run(main())

    assert max(peak) == 2


def test_lock_is_released_on_error():
    locks = InMemoryConversationLockService()

    async def failing():
        async with locks.hold(restaurant_id=1, customer_phone="351900000001"):
            raise RuntimeError("falhou")

    async def main():
        try:
            await failing()
        except RuntimeError:
            pass
        async with locks.hold(restaurant_id=1, customer_phone="351900000001"):
            return locks.active_keys()

    assert asyncio.run(main()) == [(1, "351900000001")]
    assert locks.active_keys() == []
