from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Iterator
from typing import Any

from ..models.process_error import Message

"""Ordered, bounded message channel between a run (producer) and its consumer.

The run executes on a worker thread and pushes messages with ``send``; the
consumer iterates the stream. When the queue is full the producer blocks
(backpressure). ``close`` cancels the run: the producer's next ``send``
raises RunCancelled, which unwinds the run through its cleanup path.
"""

logger = logging.getLogger(__name__)

_PUT_POLL_SECONDS = 0.1
_END = object()


class RunCancelled(Exception):
    """The consumer closed the stream; the producer must stop sending."""


class RunStream:
    """Single-producer / single-consumer stream of run messages. Iterate once."""

    def __init__(self, queue_size: int = 100) -> None:
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=queue_size)
        self._cancelled = threading.Event()
        self._thread: threading.Thread | None = None
        self.error: BaseException | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def send(self, message: Message) -> None:
        """Producer side. Blocks while the queue is full.

        Raises:
            RunCancelled: the consumer closed the stream
        """
        while True:
            if self._cancelled.is_set():
                raise RunCancelled("stream closed by consumer")
            try:
                self._queue.put(message, timeout=_PUT_POLL_SECONDS)
                return
            except queue.Full:
                continue

    def _finish(self) -> None:
        while not self._cancelled.is_set():
            try:
                self._queue.put(_END, timeout=_PUT_POLL_SECONDS)
                return
            except queue.Full:
                continue

    def start(self, target: Callable[[RunStream], Any], *, name: str = "catalog-run") -> RunStream:
        """Run ``target(self)`` on a worker thread and return self for iteration."""
        if self._thread is not None:
            raise RuntimeError("stream already started")

        def _run() -> None:
            try:
                target(self)
            except RunCancelled:
                logger.debug("producer stopped after cancellation")
            except Exception as e:  # スレッド境界: 呼び出し側へ記録して終了
                self.error = e
                logger.exception("run producer failed")
            finally:
                self._finish()

        self._thread = threading.Thread(target=_run, name=name, daemon=True)
        self._thread.start()
        return self

    def __iter__(self) -> Iterator[Message]:
        while True:
            item = self._queue.get()
            if item is _END:
                return
            yield item

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def close(self, timeout: float | None = None) -> None:
        """Cancel the producer and wait for it to finish its cleanup."""
        self._cancelled.set()
        self._drain()
        self.join(timeout)
        self._drain()

    def _drain(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                return

    def __enter__(self) -> RunStream:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
