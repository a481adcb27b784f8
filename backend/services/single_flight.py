"""Single-flight lazy initialization for expensive shared resources."""
import asyncio
import logging
from typing import Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """
    Run an async factory at most once and share its outcome.

    The first caller of get() starts the factory; callers arriving while it
    runs await the same task. A failure is remembered and re-raised to every
    later caller, it is never retried.
    """

    def __init__(self, factory: Callable[[], Awaitable[T]], name: str = "resource"):
        self._factory = factory
        self._name = name
        self._task: Optional["asyncio.Future[T]"] = None

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def ready(self) -> bool:
        """True once the factory finished successfully."""
        return (
            self._task is not None
            and self._task.done()
            and not self._task.cancelled()
            and self._task.exception() is None
        )

    async def get(self) -> T:
        if self._task is None:
            logger.info(f"Initializing {self._name}...")
            self._task = asyncio.ensure_future(self._factory())
        # Shield so a cancelled caller does not cancel the shared initialization
        return await asyncio.shield(self._task)
