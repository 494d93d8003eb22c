"""Hands audit entries to a background writer without blocking the caller.

Entries go into a bounded queue drained by one daemon thread. When the queue
is full the *oldest* pending entry is dropped to make room: the request path
never waits on audit storage, and under sustained overload the trail keeps the
most recent activity. Drops are counted and logged.
"""

import logging
import queue
import threading
from typing import Optional

from taskgate.core.config import settings
from taskgate.schemas.schemas import AuditEntry
from taskgate.services.audit_service import AuditRecorder, audit_recorder

logger = logging.getLogger("taskgate.audit")

_STOP = object()


class AuditDispatcher:
    """Bounded, drop-oldest queue in front of an AuditRecorder."""

    def __init__(self, recorder: AuditRecorder, maxsize: Optional[int] = None):
        self.recorder = recorder
        self._queue: "queue.Queue" = queue.Queue(maxsize=maxsize or settings.AUDIT_QUEUE_MAXSIZE)
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._drop_lock = threading.Lock()
        self.dropped = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self._thread = threading.Thread(
                target=self._run, name="audit-writer", daemon=True
            )
            self._thread.start()

    def dispatch(self, entry: AuditEntry) -> None:
        """Enqueue ``entry``; returns immediately and never raises."""
        try:
            if not self.running:
                self.start()
            self._enqueue(entry)
        except Exception:
            logger.exception("Failed to dispatch audit entry")

    def _enqueue(self, entry: AuditEntry) -> None:
        while True:
            try:
                self._queue.put_nowait(entry)
                return
            except queue.Full:
                try:
                    oldest = self._queue.get_nowait()
                except queue.Empty:
                    continue
                self._queue.task_done()
                if oldest is _STOP:
                    # Never discard a pending stop; the caller's entry goes instead.
                    self._queue.put(_STOP)
                    self._count_drop()
                    return
                self._count_drop()

    def _count_drop(self) -> None:
        with self._drop_lock:
            self.dropped += 1
            dropped = self.dropped
        logger.warning(
            "Audit queue full (%s); dropped oldest entry (%s dropped so far)",
            self._queue.maxsize, dropped,
        )

    def _run(self) -> None:
        while True:
            entry = self._queue.get()
            try:
                if entry is _STOP:
                    return
                self.recorder.record(entry)
            except Exception:
                # Keep the writer alive.
                logger.exception("Audit writer failed")
            finally:
                self._queue.task_done()

    def flush(self) -> None:
        """Block until every queued entry has been handled."""
        if self.running:
            self._queue.join()

    def stop(self, timeout: float = 5.0) -> None:
        """Drain the queue and stop the writer thread."""
        with self._lock:
            thread = self._thread
            if thread is None or not thread.is_alive():
                return
            self._queue.put(_STOP)
            thread.join(timeout)
            self._thread = None


audit_dispatcher = AuditDispatcher(audit_recorder)
