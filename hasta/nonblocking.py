"""
Fire-and-forget writes.

The caller gets a Future it may ignore; failures never surface at the call
site but are always logged and handed to every registered error listener.
Callers that need a guaranteed outcome should write through an awaited
session instead.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, List, Optional, Type

from hasta.store import DocumentStore

logger = logging.getLogger(__name__)

ErrorListener = Callable[[str, BaseException], None]


class NonBlockingWriter:
    def __init__(self, store: Optional[DocumentStore] = None, max_workers: int = 4):
        self._store = store
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="hasta-writer")
        self._listeners: List[ErrorListener] = []
        self._inflight: set = set()
        self._lock = threading.Lock()

    def add_error_listener(self, listener: ErrorListener) -> None:
        self._listeners.append(listener)

    def remove_error_listener(self, listener: ErrorListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def submit(self, fn: Callable, *args, description: str = "", **kwargs) -> Future:
        description = description or getattr(fn, "__name__", "write")
        future = self._executor.submit(self._run, fn, description, args, kwargs)
        with self._lock:
            self._inflight.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._inflight.discard(future)

    def _run(self, fn: Callable, description: str, args, kwargs):
        # Listeners run before the future resolves, so flush() observes them
        try:
            return fn(*args, **kwargs)
        except Exception as exc:
            self._report(description, exc)
            raise

    def _report(self, description: str, exc: BaseException) -> None:
        logger.error(
            "Non-blocking write failed | op=%s | error=%s",
            description,
            exc,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        for listener in list(self._listeners):
            try:
                listener(description, exc)
            except Exception:
                logger.exception("Error listener failed | op=%s", description)

    # ---------- document helpers ----------

    def set_non_blocking(self, model: Type, doc_id, data: Dict[str, Any], merge: bool = True) -> Future:
        return self.submit(
            self._require_store().set,
            model,
            doc_id,
            data,
            merge=merge,
            description=f"set {model.__name__}/{doc_id}",
        )

    def delete_non_blocking(self, model: Type, doc_id) -> Future:
        return self.submit(
            self._require_store().delete,
            model,
            doc_id,
            description=f"delete {model.__name__}/{doc_id}",
        )

    def _require_store(self) -> DocumentStore:
        if self._store is None:
            raise RuntimeError("NonBlockingWriter has no document store attached")
        return self._store

    # ---------- lifecycle ----------

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for every in-flight write. Returns False on timeout."""
        with self._lock:
            pending = list(self._inflight)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
