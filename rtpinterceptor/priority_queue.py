"""An ordered collection of RTP packets keyed by sequence number."""

from __future__ import annotations

from bisect import bisect_left
from typing import Iterator

from .rtp import Packet


class InvalidOperationError(LookupError):
    """Raised when a pop is attempted on an empty queue."""

    def __init__(self, message: str = "attempt to find or pop on an empty list") -> None:
        super().__init__(message)


class PacketNotFoundError(LookupError):
    """Raised when no packet in the queue matches the request."""

    def __init__(self, message: str = "priority not found") -> None:
        super().__init__(message)


class PriorityQueue:
    """Keeps RTP packets sorted by priority (normally the sequence number).

    Packets that share a priority are kept with the newest one first.
    """

    def __init__(self) -> None:
        self._entries: list[tuple[int, Packet]] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Packet]:
        return (packet for _, packet in self._entries)

    def push(self, packet: Packet, priority: int) -> None:
        """Insert ``packet`` in order of ``priority``."""
        index = bisect_left(self._entries, priority, key=lambda entry: entry[0])
        self._entries.insert(index, (priority, packet))

    def find(self, seq: int) -> Packet:
        """Return the packet with priority ``seq`` without removing it."""
        for priority, packet in self._entries:
            if priority == seq:
                return packet
        raise PacketNotFoundError()

    def pop(self) -> Packet:
        """Remove and return the first packet, whatever its priority."""
        if not self._entries:
            raise InvalidOperationError()
        return self._entries.pop(0)[1]

    def pop_at(self, seq: int) -> Packet:
        """Remove and return the packet with priority ``seq``."""
        if not self._entries:
            raise InvalidOperationError()
        for index, (priority, _) in enumerate(self._entries):
            if priority == seq:
                return self._entries.pop(index)[1]
        raise PacketNotFoundError()

    def pop_at_timestamp(self, timestamp: int) -> Packet:
        """Remove and return the first packet, in order, with the given RTP timestamp."""
        if not self._entries:
            raise InvalidOperationError()
        for index, (_, packet) in enumerate(self._entries):
            if packet.header.timestamp == timestamp:
                return self._entries.pop(index)[1]
        raise PacketNotFoundError()

    def clear(self) -> None:
        """Remove every packet."""
        self._entries.clear()