"""A long-lived asyncio loop that Flask request threads submit coroutines to."""

import asyncio
import logging
import threading
from typing import Any, Coroutine

logger = logging.getLogger(__name__)


class BackgroundLoop:
    """Runs one event loop in a daemon thread.

    Provider HTTP calls and managed GeoGebra engines are bound to this loop,
    so engines created for one request can be reused by the next.
    """

    def __init__(self, name: str = "tutor-async"):
        self.name = name
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            ready = threading.Event()

            def _run():
                loop = asyncio.new_event_loop()
                asyncio.set_event_loop(loop)
                self._loop = loop
                ready.set()
                try:
                    loop.run_forever()
                finally:
                    loop.close()

            self._thread = threading.Thread(target=_run, name=self.name, daemon=True)
            self._thread.start()
            ready.wait()
            logger.debug("Background event loop started")

    def run(self, coro: Coroutine[Any, Any, Any], timeout: float | None = None) -> Any:
        """Run ``coro`` on the loop and block until it finishes."""
        if not self.running:
            self.start()
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout)

    def stop(self) -> None:
        with self._lock:
            if not self.running or self._loop is None:
                return
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout=5)
            self._thread = None
            self._loop = None
