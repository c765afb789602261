"""
Handler Invocation Helpers

Architectural Intent:
- One place that knows how to call user-supplied handlers
- Coroutine functions run on the event loop; everything else runs in the
  default thread pool because handlers perform blocking I/O
"""

import asyncio
import functools
import inspect
from typing import Any, Callable


def accepts_argument(fn: Callable[..., Any]) -> bool:
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return True
    return any(
        p.kind
        in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
            inspect.Parameter.VAR_POSITIONAL,
        )
        for p in signature.parameters.values()
    )


async def call_blocking_or_async(fn: Callable[..., Any], *args: Any) -> Any:
    if inspect.iscoroutinefunction(fn):
        return await fn(*args)
    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(None, functools.partial(fn, *args))
    if inspect.isawaitable(result):
        return await result
    return result
