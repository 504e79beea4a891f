"""
The stop & ready flags of the relay, for embedding it into other apps.

An app can run the relay in its own event-loop (with asyncio primitives)
or in a thread next to its own code (with threading primitives).
"""
import asyncio
import threading
from typing import Any, Union

from eventrelay._cogs.aiokits import aiotasks

Flag = Union[aiotasks.Future, asyncio.Event, threading.Event]


async def wait_flag(flag: Flag | None) -> Any:
    """ Wait until the flag is raised; return its value (if it has any). """
    match flag:
        case None:
            return None
        case asyncio.Future():
            return await flag
        case asyncio.Event():
            return await flag.wait()
        case threading.Event():
            return await asyncio.get_running_loop().run_in_executor(None, flag.wait)
        case _:
            raise TypeError(f"Unsupported type of a flag: {flag!r}")


async def raise_flag(flag: Flag | None) -> None:
    match flag:
        case None:
            pass
        case asyncio.Future():
            flag.set_result(None)
        case asyncio.Event() | threading.Event():
            flag.set()
        case _:
            raise TypeError(f"Unsupported type of a flag: {flag!r}")


def check_flag(flag: Flag | None) -> bool | None:
    match flag:
        case None:
            return None
        case asyncio.Future():
            return flag.done()
        case asyncio.Event() | threading.Event():
            return flag.is_set()
        case _:
            raise TypeError(f"Unsupported type of a flag: {flag!r}")
