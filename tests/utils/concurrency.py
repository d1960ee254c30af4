import asyncio


async def run_concurrently(n, coro_factory):
    """n 个协程同时起跑，异常原样收回（不吞）。"""
    tasks = [asyncio.create_task(coro_factory(i)) for i in range(n)]
    return await asyncio.gather(*tasks, return_exceptions=True)
