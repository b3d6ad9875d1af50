"""Reference-counted copies of sent RTP packets and a buffer that keeps them."""

from __future__ import annotations

import random
import struct
import threading
from typing import Callable, Optional

from .receive_log import check_size
from .rtp import Header

MAX_PAYLOAD_LEN = 1460
_SEQ_MASK = 0xFFFF
_HALF = 1 << 15


class PacketReleasedError(RuntimeError):
    """Raised when retaining a packet that was already released."""

    def __init__(self, message: str = "could not retain packet, already released") -> None:
        super().__init__(message)


class PaddingOverflowError(ValueError):
    """Raised when a packet's padding length exceeds its payload."""

    def __init__(self, message: str = "padding size exceeds payload size") -> None:
        super().__init__(message)


ReleaseCallback = Callable[[Optional[Header], Optional[bytes]], None]


class RetainablePacket:
    """An RTP header and payload shared by reference count.

    A new packet has a count of one; when the count drops to zero the
    packet forgets its header and payload.
    """

    def __init__(self, header: Header, payload: Optional[bytes], sequence_number: int,
                 on_release: Optional[ReleaseCallback] = None) -> None:
        self.header: Optional[Header] = header
        self.payload: Optional[bytes] = payload
        self.sequence_number = sequence_number
        self.count = 1
        self._on_release = on_release
        self._lock = threading.Lock()

    def retain(self) -> None:
        """Take another reference to the packet."""
        with self._lock:
            if self.count == 0:
                raise PacketReleasedError()
            self.count += 1

    def release(self) -> None:
        """Drop a reference; the last one frees the packet's contents."""
        with self._lock:
            self.count -= 1
            if self.count == 0:
                if self._on_release is not None:
                    self._on_release(self.header, self.payload)
                self.header = None
                self.payload = None


class _Sequencer:
    """Hands out consecutive 16-bit sequence numbers from a random start."""

    def __init__(self) -> None:
        self._value = random.getrandbits(16)
        self._lock = threading.Lock()

    def next_sequence_number(self) -> int:
        with self._lock:
            self._value = (self._value + 1) & _SEQ_MASK
            return self._value


class PacketManager:
    """Creates packets holding their own copy of header and payload.

    When a retransmission SSRC and payload type are given, the copy is
    rewritten as an RFC 4588 retransmission packet.
    """

    def __init__(self) -> None:
        self._rtx_sequencer = _Sequencer()

    def new_packet(self, header: Header, payload: Optional[bytes], rtx_ssrc: int,
                   rtx_payload_type: int) -> RetainablePacket:
        if payload is not None and len(payload) > MAX_PAYLOAD_LEN:
            raise ValueError("payload exceeds the maximum packet length")

        copy = header.clone()
        body = bytes(payload) if payload is not None else None

        if rtx_ssrc != 0 and rtx_payload_type != 0:
            original_seq = copy.sequence_number
            copy.sequence_number = self._rtx_sequencer.next_sequence_number()
            copy.ssrc = rtx_ssrc
            copy.payload_type = rtx_payload_type

            padding_length = 0
            if copy.padding and body:
                padding_length = body[-1]
                if padding_length <= 0 or padding_length > len(body):
                    raise PaddingOverflowError()
                copy.padding = False

            content = body or b""
            body = struct.pack("!H", original_seq) + content[: len(content) - padding_length]

        return RetainablePacket(copy, body, header.sequence_number)


class NoOpPacketFactory:
    """Creates packets that reference the caller's header and payload directly."""

    def new_packet(self, header: Header, payload: Optional[bytes], rtx_ssrc: int,
                   rtx_payload_type: int) -> RetainablePacket:
        return RetainablePacket(header, payload, header.sequence_number)


class SendBuffer:
    """Keeps the last ``size`` sent packets so that they can be resent."""

    def __init__(self, size: int) -> None:
        check_size(size, 0)
        self._size = size
        self._packets: list[Optional[RetainablePacket]] = [None] * size
        self._last_added = 0
        self._started = False
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        return self._size

    def add(self, packet: RetainablePacket) -> None:
        """Store a packet, releasing whatever it and any skipped slots replace."""
        seq = packet.sequence_number & _SEQ_MASK
        with self._lock:
            if not self._started:
                self._packets[seq % self._size] = packet
                self._last_added = seq
                self._started = True
                return

            diff = (seq - self._last_added) & _SEQ_MASK
            if diff == 0:
                return
            if diff < _HALF:
                i = (self._last_added + 1) & _SEQ_MASK
                while i != seq:
                    self._replace(i % self._size, None)
                    i = (i + 1) & _SEQ_MASK

            self._replace(seq % self._size, packet)
            self._last_added = seq

    def get(self, seq: int) -> Optional[RetainablePacket]:
        """Return the packet with ``seq``, retained for the caller, or None."""
        seq &= _SEQ_MASK
        with self._lock:
            diff = (self._last_added - seq) & _SEQ_MASK
            if diff >= _HALF or diff >= self._size:
                return None
            packet = self._packets[seq % self._size]
            if packet is None or packet.sequence_number != seq:
                return None
            try:
                packet.retain()
            except PacketReleasedError:
                return None
            return packet

    def _replace(self, index: int, packet: Optional[RetainablePacket]) -> None:
        previous = self._packets[index]
        if previous is not None:
            previous.release()
        self._packets[index] = packet