"""Interceptor that requests picture loss indications on a fixed interval."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Optional

from .interceptor import Interceptor, RTCPWriter, RTPReader, StreamInfo, stream_supports_pli
from .rtcp import PictureLossIndication

_DEFAULT_INTERVAL = 3.0


class PLIInterceptorFactory:
    """Builds PLIGeneratorInterceptor instances with fixed options."""

    def __init__(self, interval: float = _DEFAULT_INTERVAL,
                 log: Optional[logging.Logger] = None) -> None:
        self._interval = interval
        self._log = log

    def new_interceptor(self, interceptor_id: str) -> PLIGeneratorInterceptor:
        return PLIGeneratorInterceptor(interval=self._interval, log=self._log)


class PLIGeneratorInterceptor(Interceptor):
    """Sends a PLI for every new stream that supports it, then periodically.

    ``interval`` is in seconds; zero or less disables the periodic PLIs.
    """

    def __init__(self, interval: float = _DEFAULT_INTERVAL,
                 log: Optional[logging.Logger] = None) -> None:
        self.interval = interval
        self._log = log or logging.getLogger("rtpinterceptor.pli_generator")
        self._cond = threading.Condition()
        self._streams: dict[int, None] = {}
        self._pending: deque[tuple[int, ...]] = deque()
        self._closed = False
        self._threads: list[threading.Thread] = []

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()
            threads = list(self._threads)
        current = threading.current_thread()
        for thread in threads:
            if thread is not current:
                thread.join()

    def bind_rtcp_writer(self, writer: RTCPWriter) -> RTCPWriter:
        with self._cond:
            if self._closed:
                return writer
            thread = threading.Thread(target=self._loop, args=(writer,), daemon=True)
            self._threads.append(thread)
            thread.start()
        return writer

    def bind_remote_stream(self, info: StreamInfo, reader: RTPReader) -> RTPReader:
        if not stream_supports_pli(info):
            return reader
        with self._cond:
            self._streams[info.ssrc] = None
        self.force_pli(info.ssrc)
        return reader

    def unbind_local_stream(self, info: StreamInfo) -> None:
        with self._cond:
            self._streams.pop(info.ssrc, None)

    def force_pli(self, *args: int) -> None:
        """Request an immediate PLI for the given SSRCs."""
        with self._cond:
            while self._pending and not self._closed:
                self._cond.wait()
            if self._closed:
                return
            self._pending.append(args)
            self._cond.notify_all()

    def _loop(self, writer: RTCPWriter) -> None:
        next_tick = time.monotonic() + self.interval if self.interval > 0 else None
        while True:
            with self._cond:
                while not self._closed and not self._pending:
                    if next_tick is None:
                        self._cond.wait()
                        continue
                    remaining = next_tick - time.monotonic()
                    if remaining <= 0:
                        break
                    self._cond.wait(remaining)
                if self._closed:
                    return
                if self._pending:
                    ssrcs = list(self._pending.popleft())
                    self._cond.notify_all()
                else:
                    ssrcs = list(self._streams)
                    now = time.monotonic()
                    next_tick += self.interval
                    if next_tick <= now:
                        next_tick = now + self.interval
            self._write_plis(writer, ssrcs)

    def _write_plis(self, writer: RTCPWriter, ssrcs: list[int]) -> None:
        if not ssrcs:
            return
        packets = [PictureLossIndication(media_ssrc=ssrc) for ssrc in ssrcs]
        try:
            writer(packets, {})
        except Exception as exc:  # the writer is user code; keep the loop alive
            self._log.warning("failed sending: %s", exc)