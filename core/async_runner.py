import asyncio
import logging
import threading
from collections.abc import Coroutine
from concurrent.futures import Future
from typing import Any

logger = logging.getLogger(__name__)


class AsyncRunner:
    """
    Hosts one asyncio event loop on a daemon thread.

    Request threads hand coroutines to the loop with run()/submit(); all
    pipeline I/O and background enrichment tasks live on this loop.
    """

    def __init__(self):
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Starts the loop thread; no-op if it is already running."""
        if self._thread and self._thread.is_alive():
            logger.warning("AsyncRunner loop already running")
            return

        self._ready.clear()
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._run_loop, name="PipelineEventLoop", daemon=True
        )
        self._thread.start()
        self._ready.wait(timeout=5.0)
        logger.info("AsyncRunner event loop started")

    def stop(self, timeout: float = 5.0) -> None:
        """Stops the loop and joins the thread."""
        if not self._loop or not self._thread:
            return
        if self._loop.is_running():
            self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=timeout)
        if not self._loop.is_running():
            self._loop.close()
        self._loop = None
        self._thread = None
        logger.info("AsyncRunner event loop stopped")

    @property
    def is_running(self) -> bool:
        return bool(self._loop and self._loop.is_running())

    @property
    def loop(self) -> asyncio.AbstractEventLoop | None:
        return self._loop

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, coro: Coroutine) -> Future:
        """Schedules a coroutine on the loop and returns a concurrent Future."""
        if not self.is_running:
            coro.close()
            raise RuntimeError("AsyncRunner is not running")
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def run(self, coro: Coroutine, timeout: float | None = None) -> Any:
        """Runs a coroutine on the loop and blocks until it finishes."""
        return self.submit(coro).result(timeout=timeout)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.call_soon(self._ready.set)
        try:
            self._loop.run_forever()
        except Exception as e:
            logger.error(f"AsyncRunner loop crashed: {e}", exc_info=True)
        finally:
            pending = asyncio.all_tasks(self._loop)
            for task in pending:
                task.cancel()
            if pending:
                self._loop.run_until_complete(
                    asyncio.gather(*pending, return_exceptions=True)
                )
            self._loop.run_until_complete(self._loop.shutdown_asyncgens())


# Global instance
async_runner = AsyncRunner()
