"""
Async testing helpers.
"""

import asyncio
from typing import Callable, List, Any


async def wait_for_condition(
    condition: Callable[[], bool],
    timeout: float = 5.0,
    interval: float = 0.01,
    message: str = "Condition not met"
) -> None:
    """Wait for a sync condition to become true."""
    loop = asyncio.get_running_loop()
    start = loop.time()

    while loop.time() - start < timeout:
        if condition():
            return
        await asyncio.sleep(interval)

    raise TimeoutError(f"{message} after {timeout}s")


class NotificationRecorder:
    """Records session notifications in arrival order."""

    NAMES = ("event", "response", "disconnect", "reconnect", "reconnect-error", "error")

    def __init__(self):
        self.calls: List[tuple] = []

    def attach(self, stream) -> "NotificationRecorder":
        for name in self.NAMES:
            stream.on(name, self._recorder(name))
        return self

    def _recorder(self, name: str) -> Callable[..., None]:
        def record(*args: Any) -> None:
            self.calls.append((name, args[0] if args else None))
        return record

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def payloads(self, name: str) -> List[Any]:
        return [payload for n, payload in self.calls if n == name]

    def count(self, name: str) -> int:
        return self.names.count(name)
