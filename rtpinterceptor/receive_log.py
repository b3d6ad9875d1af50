"""Log of received RTP sequence numbers used to find missing packets."""

from __future__ import annotations

import threading

_SEQ_MASK = 0xFFFF
_HALF = 1 << 15


class InvalidSizeError(ValueError):
    """Raised when a buffer is created with an unsupported size."""


def check_size(size: int, smallest_exponent: int) -> None:
    """Raise InvalidSizeError unless ``size`` is a power of two in range."""
    allowed = [1 << i for i in range(smallest_exponent, 16)]
    if size not in allowed:
        listed = " ".join(str(s) for s in allowed)
        raise InvalidSizeError(
            f"invalid buffer size: {size} is not a valid size, allowed sizes: [{listed}]"
        )


class ReceiveLog:
    """Remembers which of the last ``size`` sequence numbers were received."""

    def __init__(self, size: int) -> None:
        check_size(size, 6)
        self._size = size
        self._received = bytearray(size)
        self._end = 0
        self._started = False
        self._last_consecutive = 0
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        return self._size

    @property
    def last_consecutive(self) -> int:
        """The newest sequence number up to which every packet was received."""
        with self._lock:
            return self._last_consecutive

    def add(self, seq: int) -> None:
        """Record that the packet with ``seq`` was received."""
        seq &= _SEQ_MASK
        with self._lock:
            if not self._started:
                self._set(seq)
                self._end = seq
                self._started = True
                self._last_consecutive = seq
                return

            diff = (seq - self._end) & _SEQ_MASK
            if diff == 0:
                return
            if diff < _HALF:
                # Clear slots between the old end and seq; they may hold
                # packets from a full buffer ago.
                i = (self._end + 1) & _SEQ_MASK
                while i != seq:
                    self._clear(i)
                    i = (i + 1) & _SEQ_MASK
                self._end = seq
                if (self._last_consecutive + 1) & _SEQ_MASK == seq:
                    self._last_consecutive = seq
                elif (seq - self._last_consecutive) & _SEQ_MASK > self._size:
                    self._last_consecutive = (seq - self._size) & _SEQ_MASK
                    self._fix_last_consecutive()
            elif (self._last_consecutive + 1) & _SEQ_MASK == seq:
                self._last_consecutive = seq
                self._fix_last_consecutive()

            self._set(seq)

    def get(self, seq: int) -> bool:
        """True when ``seq`` is within the log and was received."""
        seq &= _SEQ_MASK
        with self._lock:
            diff = (self._end - seq) & _SEQ_MASK
            if diff >= _HALF or diff >= self._size:
                return False
            return self._is_set(seq)

    def missing_seq_numbers(self, skip_last_n: int) -> list[int]:
        """Sequence numbers not received, ignoring the newest ``skip_last_n``."""
        with self._lock:
            until = (self._end - skip_last_n) & _SEQ_MASK
            if (until - self._last_consecutive) & _SEQ_MASK >= _HALF:
                return []
            missing = []
            stop = (until + 1) & _SEQ_MASK
            i = (self._last_consecutive + 1) & _SEQ_MASK
            while i != stop:
                if not self._is_set(i):
                    missing.append(i)
                i = (i + 1) & _SEQ_MASK
            return missing

    def _set(self, seq: int) -> None:
        self._received[seq % self._size] = 1

    def _clear(self, seq: int) -> None:
        self._received[seq % self._size] = 0

    def _is_set(self, seq: int) -> bool:
        return bool(self._received[seq % self._size])

    def _fix_last_consecutive(self) -> None:
        stop = (self._end + 1) & _SEQ_MASK
        i = (self._last_consecutive + 1) & _SEQ_MASK
        while i != stop and self._is_set(i):
            i = (i + 1) & _SEQ_MASK
        self._last_consecutive = (i - 1) & _SEQ_MASK