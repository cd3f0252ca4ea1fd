from __future__ import annotations

import asyncio
from typing import AsyncIterator, Callable, Optional

from .config import SPEECH_MAX_DURATION_SECONDS
from .utils import _log_debug, normalize_text

TranscriptSource = Callable[[], AsyncIterator[str]]

_DONE = object()


class TranscriptStream:
  """Cancellable stream of partial transcripts from a recognizer.

  ``source_factory`` is called once per iteration, so nothing is captured
  until the stream is iterated, and iterating again starts a fresh capture.
  A capture ends when the recognizer finishes, when ``stop()`` is called or
  when ``max_duration`` seconds have elapsed, whichever comes first.
  Partials are cumulative: each one replaces the previous one.
  """

  def __init__(self,
               source_factory: TranscriptSource,
               max_duration: float = SPEECH_MAX_DURATION_SECONDS):
    self._source_factory = source_factory
    self.max_duration = max_duration
    self._stop_event: Optional[asyncio.Event] = None
    self._pump: Optional[asyncio.Task] = None

  @property
  def running(self) -> bool:
    return self._pump is not None and not self._pump.done()

  def stop(self) -> None:
    if self._stop_event is not None:
      self._stop_event.set()

  def __aiter__(self) -> AsyncIterator[str]:
    return self._capture()

  async def _capture(self) -> AsyncIterator[str]:
    if self.running:
      raise RuntimeError("Transcript capture is already running.")
    queue: asyncio.Queue = asyncio.Queue()
    stop_event = asyncio.Event()
    self._stop_event = stop_event

    async def pump() -> None:
      try:
        async for partial in self._source_factory():
          await queue.put(partial)
      finally:
        queue.put_nowait(_DONE)

    pump_task = asyncio.create_task(pump())
    self._pump = pump_task
    stop_waiter = asyncio.create_task(stop_event.wait())
    loop = asyncio.get_running_loop()
    deadline = loop.time() + self.max_duration
    try:
      while True:
        remaining = deadline - loop.time()
        if remaining <= 0 or stop_event.is_set():
          _log_debug("[SPEECH] capture stopped")
          break
        getter = asyncio.create_task(queue.get())
        done, _ = await asyncio.wait({getter, stop_waiter},
                                     timeout=remaining,
                                     return_when=asyncio.FIRST_COMPLETED)
        if getter not in done:
          getter.cancel()
          continue
        partial = getter.result()
        if partial is _DONE:
          break
        if isinstance(partial, str):
          yield partial
      if pump_task.done() and not pump_task.cancelled() and pump_task.exception() is not None:
        raise pump_task.exception()
    finally:
      stop_waiter.cancel()
      if not pump_task.done():
        pump_task.cancel()
      self._stop_event = None


def augment_compose_text(base_text: str, partial: str) -> str:
  """Compose-box text with the current partial transcript appended to ``base_text``."""
  base = base_text or ""
  spoken = normalize_text(partial)
  if not spoken:
    return base
  if not base.strip():
    return spoken
  separator = "" if base.endswith((" ", "\n")) else " "
  return f"{base}{separator}{spoken}"


async def dictate(stream: TranscriptStream, base_text: str = "") -> str:
  text = base_text
  async for partial in stream:
    text = augment_compose_text(base_text, partial)
  return text
