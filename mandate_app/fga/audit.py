"""
Fire-and-forget audit trail for tuple writes and authorization decisions.

Records are queued without blocking and shipped by a single daemon worker to
``POST {audit_url}/audit``. A full queue, a slow sink or a failed POST drops the
record; none of these reach the request that produced it.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import asdict, dataclass

import requests

logger = logging.getLogger(__name__)

_STOP = object()


@dataclass(frozen=True)
class AuditRecord:
    source: str
    decision: str
    user: str
    relation: str
    resource: str
    method: str
    reason: str


class AuditDispatcher:
    def __init__(self, audit_url: str | None, *, maxsize: int = 1000, timeout: float = 5.0) -> None:
        self._url = f"{audit_url.rstrip('/')}/audit" if audit_url else None
        self._timeout = timeout
        self._q: queue.Queue = queue.Queue(maxsize=maxsize)
        self._worker: threading.Thread | None = None

    @property
    def enabled(self) -> bool:
        return self._url is not None

    def start(self) -> None:
        if not self.enabled or self._worker is not None:
            return
        self._worker = threading.Thread(target=self._run, name="audit-dispatcher", daemon=True)
        self._worker.start()
        logger.info("Audit dispatcher started url=%s", self._url)

    def close(self, timeout: float = 5.0) -> None:
        if self._worker is None:
            return
        try:
            self._q.put(_STOP, timeout=timeout)
        except queue.Full:
            logger.warning("Audit queue full on shutdown; pending records dropped")
            return
        self._worker.join(timeout=timeout)
        self._worker = None

    def emit(self, record: AuditRecord) -> None:
        if not self.enabled:
            return
        try:
            self._q.put_nowait(record)
        except queue.Full:
            logger.debug("Audit queue full; dropped %s %s", record.decision, record.resource)

    def _run(self) -> None:
        while True:
            item = self._q.get()
            if item is _STOP:
                return
            self._send(item)

    def _send(self, record: AuditRecord) -> None:
        try:
            resp = requests.post(self._url, json=asdict(record), timeout=self._timeout)
            if resp.status_code >= 400:
                logger.debug("Audit sink returned status=%s", resp.status_code)
        except requests.RequestException as e:
            logger.debug("Audit post failed: %s", type(e).__name__)
