"""Thread primitives shared by the station worker, radio adapters and portal tasks."""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class LockedValue(Generic[T]):
    """A value written by one thread and read from others.

    The station worker publishes the current SSID and IP address through
    these; callers on any thread read them.

    Usage:
        ssid = LockedValue("")
        ssid.set("Home")
        ssid.get()
    """

    _value: T
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def get(self) -> T:
        with self._lock:
            return self._value

    def set(self, value: T) -> None:
        with self._lock:
            self._value = value


class StoppableThread(threading.Thread):
    """Daemon thread whose target polls a stop flag.

    The target is called with the thread as its first argument, so loops
    can check ``should_stop()`` between units of work:

        def loop(thread: StoppableThread) -> None:
            while not thread.should_stop():
                handle(events.get(timeout=1.0))

        worker = StoppableThread(target=loop, name="LinkMonitor")
        worker.start()
        worker.stop()
    """

    def __init__(
        self,
        target: Callable[..., Any] | None = None,
        name: str | None = None,
        args: tuple[Any, ...] = (),
        kwargs: dict[str, Any] | None = None,
        daemon: bool = True,
    ) -> None:
        self._stop_requested = threading.Event()
        bound = None
        if target is not None:

            def bound(*a: Any, **kw: Any) -> Any:
                return target(self, *a, **kw)

        super().__init__(target=bound, name=name, args=args, kwargs=kwargs or {}, daemon=daemon)

    def request_stop(self) -> None:
        """Raise the stop flag without joining."""
        self._stop_requested.set()

    def stop(self, timeout: float = 5.0) -> bool:
        """Raise the stop flag and join.

        From inside the thread itself this only raises the flag.

        Returns:
            True once the thread has exited
        """
        self._stop_requested.set()
        if threading.current_thread() is self:
            return False
        if not self.is_alive():
            return True

        logger.debug("Joining thread %s", self.name)
        self.join(timeout=timeout)
        if self.is_alive():
            logger.warning("Thread %s still running after %.1fs", self.name, timeout)
            return False
        return True

    def should_stop(self) -> bool:
        return self._stop_requested.is_set()
