"""Interceptor that sends NACK feedback for RTP packets that never arrived."""

from __future__ import annotations

import logging
import random
import threading
from typing import Callable, Optional

from .interceptor import (
    Attributes,
    Interceptor,
    RTCPWriter,
    RTPReader,
    StreamInfo,
    get_rtp_header,
    stream_supports_nack,
)
from .receive_log import ReceiveLog, check_size
from .rtcp import TransportLayerNack, nack_pairs_from_sequence_numbers

StreamsFilter = Callable[[StreamInfo], bool]

_DEFAULT_SIZE = 512
_DEFAULT_INTERVAL = 0.1
_SMALLEST_SIZE_EXPONENT = 6


class NackGeneratorInterceptorFactory:
    """Builds NackGeneratorInterceptor instances with fixed options.

    ``size`` must be a power of two from 64 to 32768; ``interval`` is in
    seconds; ``max_nacks_per_packet`` of zero means no limit.
    """

    def __init__(
        self,
        size: int = _DEFAULT_SIZE,
        skip_last_n: int = 0,
        max_nacks_per_packet: int = 0,
        interval: float = _DEFAULT_INTERVAL,
        log: Optional[logging.Logger] = None,
        streams_filter: StreamsFilter = stream_supports_nack,
    ) -> None:
        self._size = size
        self._skip_last_n = skip_last_n
        self._max_nacks_per_packet = max_nacks_per_packet
        self._interval = interval
        self._log = log
        self._streams_filter = streams_filter

    def new_interceptor(self, interceptor_id: str) -> NackGeneratorInterceptor:
        return NackGeneratorInterceptor(
            size=self._size,
            skip_last_n=self._skip_last_n,
            max_nacks_per_packet=self._max_nacks_per_packet,
            interval=self._interval,
            log=self._log,
            streams_filter=self._streams_filter,
        )


class NackGeneratorInterceptor(Interceptor):
    """Tracks received sequence numbers and periodically NACKs the gaps."""

    def __init__(
        self,
        size: int = _DEFAULT_SIZE,
        skip_last_n: int = 0,
        max_nacks_per_packet: int = 0,
        interval: float = _DEFAULT_INTERVAL,
        log: Optional[logging.Logger] = None,
        streams_filter: StreamsFilter = stream_supports_nack,
    ) -> None:
        check_size(size, _SMALLEST_SIZE_EXPONENT)
        self._size = size
        self._skip_last_n = skip_last_n
        self._max_nacks_per_packet = max_nacks_per_packet
        self._interval = interval
        self._log = log or logging.getLogger("rtpinterceptor.nack_generator")
        self._streams_filter = streams_filter
        self._lock = threading.Lock()
        self._closed = threading.Event()
        self._threads: list[threading.Thread] = []
        self._logs_lock = threading.Lock()
        self._receive_logs: dict[int, ReceiveLog] = {}
        self._nack_counts: dict[int, dict[int, int]] = {}

    def bind_rtcp_writer(self, writer: RTCPWriter) -> RTCPWriter:
        with self._lock:
            if self._closed.is_set():
                return writer
            thread = threading.Thread(target=self._loop, args=(writer,), daemon=True)
            self._threads.append(thread)
            thread.start()
        return writer

    def bind_remote_stream(self, info: StreamInfo, reader: RTPReader) -> RTPReader:
        if not self._streams_filter(info):
            return reader
        receive_log = ReceiveLog(self._size)
        with self._logs_lock:
            self._receive_logs[info.ssrc] = receive_log

        def read(attributes: Optional[Attributes]) -> tuple[bytes, Optional[Attributes]]:
            data, attrs = reader(attributes)
            if attrs is None:
                attrs = {}
            header = get_rtp_header(attrs, data)
            receive_log.add(header.sequence_number)
            return data, attrs

        return read

    def unbind_remote_stream(self, info: StreamInfo) -> None:
        with self._logs_lock:
            self._receive_logs.pop(info.ssrc, None)

    def close(self) -> None:
        with self._lock:
            self._closed.set()
            threads = list(self._threads)
        current = threading.current_thread()
        for thread in threads:
            if thread is not current:
                thread.join()

    def _loop(self, writer: RTCPWriter) -> None:
        sender_ssrc = random.getrandbits(32)
        while not self._closed.wait(self._interval):
            self._send_nacks(writer, sender_ssrc)

    def _send_nacks(self, writer: RTCPWriter, sender_ssrc: int) -> None:
        with self._logs_lock:
            for ssrc, receive_log in self._receive_logs.items():
                missing = receive_log.missing_seq_numbers(self._skip_last_n)

                counts = self._nack_counts.get(ssrc)
                if not missing or counts is None:
                    counts = self._nack_counts[ssrc] = {}
                if not missing:
                    continue

                if self._max_nacks_per_packet > 0:
                    filtered = []
                    for seq in missing:
                        sent = counts.get(seq, 0)
                        if sent < self._max_nacks_per_packet:
                            filtered.append(seq)
                        counts[seq] = sent + 1
                else:
                    filtered = missing

                still_missing = set(missing)
                for seq in [s for s in counts if s not in still_missing]:
                    del counts[seq]

                if not filtered:
                    continue

                nack = TransportLayerNack(
                    sender_ssrc=sender_ssrc,
                    media_ssrc=ssrc,
                    nacks=nack_pairs_from_sequence_numbers(filtered),
                )
                try:
                    writer([nack], {})
                except Exception as exc:  # the writer is user code; keep the loop alive
                    self._log.warning("failed sending nack: %s", exc)