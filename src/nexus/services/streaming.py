from typing import AsyncIterator, Iterable, TypeVar


T = TypeVar("T")


def iter_as_async(it: Iterable[T]) -> AsyncIterator[T]:
    async def gen() -> AsyncIterator[T]:
        for x in it:
            yield x

    return gen()


def encode_sse(payload: str) -> str:
    return f"data: {payload}\n\n"


SSE_DONE = encode_sse("[DONE]")
