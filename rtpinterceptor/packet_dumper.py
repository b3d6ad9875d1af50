"""Writes RTP and RTCP packets to text streams from a background thread."""

from __future__ import annotations

import logging
import queue
import sys
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, TextIO, Union

from .interceptor import Attributes
from .rtcp import RTCPPacket
from .rtp import Header, Packet

RTPFormatCallback = Callable[[Packet, Attributes], str]
RTCPFormatCallback = Callable[[Sequence[RTCPPacket], Attributes], str]
RTPFilterCallback = Callable[[Packet], bool]
RTCPFilterCallback = Callable[[Sequence[RTCPPacket]], bool]


def default_rtp_formatter(packet: Packet, attributes: Attributes) -> str:
    """Format an RTP packet as its text description followed by a newline."""
    return f"{packet}\n"


def default_rtcp_formatter(packets: Sequence[RTCPPacket], attributes: Attributes) -> str:
    """Format a batch of RTCP packets as a bracketed list followed by a newline."""
    return "[" + " ".join(str(p) for p in packets) + "]\n"


@dataclass
class _RTPDump:
    attributes: Attributes
    packet: Packet


@dataclass
class _RTCPDump:
    attributes: Attributes
    packets: Sequence[RTCPPacket]


_STOP = object()


class PacketDumper:
    """Dumps packets to text streams.

    Packets are formatted and written in the order they were logged, from a
    background thread. Streams default to standard output; filters decide
    whether a packet is written at all. Packets logged after ``close`` are
    dropped.
    """

    def __init__(
        self,
        log: Optional[logging.Logger] = None,
        rtp_stream: Optional[TextIO] = None,
        rtcp_stream: Optional[TextIO] = None,
        rtp_format: RTPFormatCallback = default_rtp_formatter,
        rtcp_format: RTCPFormatCallback = default_rtcp_formatter,
        rtp_filter: Optional[RTPFilterCallback] = None,
        rtcp_filter: Optional[RTCPFilterCallback] = None,
    ) -> None:
        self._log = log or logging.getLogger("rtpinterceptor.packet_dumper")
        self._rtp_stream = rtp_stream if rtp_stream is not None else sys.stdout
        self._rtcp_stream = rtcp_stream if rtcp_stream is not None else sys.stdout
        self._rtp_format = rtp_format
        self._rtcp_format = rtcp_format
        self._rtp_filter = rtp_filter or (lambda _packet: True)
        self._rtcp_filter = rtcp_filter or (lambda _packets: True)
        self._queue: queue.Queue[Union[_RTPDump, _RTCPDump, object]] = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False
        self._thread = threading.Thread(target=self._loop, daemon=True)
        self._thread.start()

    def __enter__(self) -> PacketDumper:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def log_rtp_packet(self, header: Header, payload: bytes, attributes: Attributes) -> None:
        """Queue an RTP packet for dumping."""
        packet = Packet(header=header.clone(), payload=bytes(payload))
        self._submit(_RTPDump(attributes, packet))

    def log_rtcp_packets(self, packets: Sequence[RTCPPacket], attributes: Attributes) -> None:
        """Queue a batch of RTCP packets for dumping."""
        self._submit(_RTCPDump(attributes, list(packets)))

    def close(self) -> None:
        """Stop accepting packets and wait until the queued ones are written."""
        with self._lock:
            if not self._closed:
                self._closed = True
                self._queue.put(_STOP)
        if self._thread is not threading.current_thread():
            self._thread.join()

    def _submit(self, item: Union[_RTPDump, _RTCPDump]) -> None:
        with self._lock:
            if not self._closed:
                self._queue.put(item)

    def _loop(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            if isinstance(item, _RTPDump):
                try:
                    if self._rtp_filter(item.packet):
                        self._rtp_stream.write(self._rtp_format(item.packet, item.attributes))
                except Exception as exc:  # streams and callbacks are user code
                    self._log.error("could not dump RTP packet %s", exc)
            elif isinstance(item, _RTCPDump):
                try:
                    if self._rtcp_filter(item.packets):
                        self._rtcp_stream.write(self._rtcp_format(item.packets, item.attributes))
                except Exception as exc:  # streams and callbacks are user code
                    self._log.error("could not dump RTCP packet %s", exc)