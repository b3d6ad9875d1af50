"""RTCP packets used by the interceptors, with their wire encoding."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Protocol

from .rtp import ParseError

TYPE_SENDER_REPORT = 200
TYPE_RECEIVER_REPORT = 201
TYPE_TRANSPORT_FEEDBACK = 205
TYPE_PAYLOAD_FEEDBACK = 206
FORMAT_TLN = 1
FORMAT_PLI = 1

_NTP_EPOCH_OFFSET = 2208988800
_UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_REPORT_SIZE = 24


class RTCPPacket(Protocol):
    def marshal(self) -> bytes: ...


def _header(count: int, packet_type: int, body: bytes) -> bytes:
    if count > 31:
        raise ValueError("too many items for one RTCP packet")
    return struct.pack("!BBH", 0x80 | count, packet_type, len(body) // 4) + body


def _pack(fmt: str, *values: int) -> bytes:
    try:
        return struct.pack(fmt, *values)
    except struct.error as exc:
        raise ValueError(f"RTCP field out of range: {exc}") from exc


@dataclass
class PictureLossIndication:
    """Payload-specific feedback asking the sender for a new key frame."""

    sender_ssrc: int = 0
    media_ssrc: int = 0

    def marshal(self) -> bytes:
        body = _pack("!II", self.sender_ssrc, self.media_ssrc)
        return _header(FORMAT_PLI, TYPE_PAYLOAD_FEEDBACK, body)


@dataclass
class NackPair:
    """A lost packet id and a bitmask of the 16 packets that follow it."""

    packet_id: int = 0
    lost_packets: int = 0

    def sequence_numbers(self) -> list[int]:
        """Return every sequence number this pair reports as lost."""
        following = [
            (self.packet_id + bit + 1) & 0xFFFF
            for bit in range(16)
            if self.lost_packets >> bit & 1
        ]
        return [self.packet_id, *following]


@dataclass
class TransportLayerNack:
    """Generic NACK feedback listing lost RTP packets."""

    sender_ssrc: int = 0
    media_ssrc: int = 0
    nacks: list[NackPair] = field(default_factory=list)

    def marshal(self) -> bytes:
        body = _pack("!II", self.sender_ssrc, self.media_ssrc)
        body += b"".join(_pack("!HH", n.packet_id, n.lost_packets) for n in self.nacks)
        return _header(FORMAT_TLN, TYPE_TRANSPORT_FEEDBACK, body)


@dataclass
class ReceptionReport:
    """One reception report block of a sender or receiver report."""

    ssrc: int = 0
    fraction_lost: int = 0
    total_lost: int = 0
    last_sequence_number: int = 0
    jitter: int = 0
    last_sender_report: int = 0
    delay: int = 0

    def _marshal(self) -> bytes:
        if not 0 <= self.total_lost <= 0xFFFFFF:
            raise ValueError("total_lost does not fit in 24 bits")
        return (
            _pack("!IB", self.ssrc, self.fraction_lost)
            + self.total_lost.to_bytes(3, "big")
            + _pack(
                "!IIII",
                self.last_sequence_number,
                self.jitter,
                self.last_sender_report,
                self.delay,
            )
        )

    @classmethod
    def _parse(cls, data: bytes, offset: int) -> ReceptionReport:
        ssrc, fraction = struct.unpack_from("!IB", data, offset)
        total = int.from_bytes(data[offset + 5 : offset + 8], "big")
        last_seq, jitter, lsr, delay = struct.unpack_from("!IIII", data, offset + 8)
        return cls(ssrc, fraction, total, last_seq, jitter, lsr, delay)


@dataclass
class SenderReport:
    """An RTCP sender report."""

    ssrc: int = 0
    ntp_time: int = 0
    rtp_time: int = 0
    packet_count: int = 0
    octet_count: int = 0
    reports: list[ReceptionReport] = field(default_factory=list)

    def marshal(self) -> bytes:
        body = _pack(
            "!IQIII",
            self.ssrc,
            self.ntp_time,
            self.rtp_time,
            self.packet_count,
            self.octet_count,
        )
        body += b"".join(r._marshal() for r in self.reports)
        return _header(len(self.reports), TYPE_SENDER_REPORT, body)


@dataclass
class ReceiverReport:
    """An RTCP receiver report."""

    ssrc: int = 0
    reports: list[ReceptionReport] = field(default_factory=list)

    def marshal(self) -> bytes:
        body = _pack("!I", self.ssrc) + b"".join(r._marshal() for r in self.reports)
        return _header(len(self.reports), TYPE_RECEIVER_REPORT, body)


@dataclass
class RawPacket:
    """An RTCP packet of a type this package does not interpret."""

    data: bytes = b""

    def marshal(self) -> bytes:
        return bytes(self.data)


def nack_pairs_from_sequence_numbers(seqs: Iterable[int]) -> list[NackPair]:
    """Group lost sequence numbers, in order, into NACK pairs."""
    seqs = list(seqs)
    if not seqs:
        return []
    pairs = []
    current = NackPair(packet_id=seqs[0])
    for seq in seqs[1:]:
        distance = (seq - current.packet_id) & 0xFFFF
        if distance > 16:
            pairs.append(current)
            current = NackPair(packet_id=seq)
        elif distance:
            current.lost_packets |= 1 << (distance - 1)
    pairs.append(current)
    return pairs


def marshal_packets(packets: Iterable[RTCPPacket]) -> bytes:
    """Encode packets as one compound RTCP datagram."""
    return b"".join(p.marshal() for p in packets)


def _require(body: bytes, size: int) -> None:
    if len(body) < size:
        raise ParseError("RTCP packet too short")


def _parse_one(chunk: bytes, count: int, packet_type: int) -> RTCPPacket:
    body = chunk[4:]
    if packet_type == TYPE_SENDER_REPORT:
        _require(body, 24 + _REPORT_SIZE * count)
        ssrc, ntp, rtp_time, packets, octets = struct.unpack_from("!IQIII", body)
        reports = [ReceptionReport._parse(body, 24 + _REPORT_SIZE * i) for i in range(count)]
        return SenderReport(ssrc, ntp, rtp_time, packets, octets, reports)
    if packet_type == TYPE_RECEIVER_REPORT:
        _require(body, 4 + _REPORT_SIZE * count)
        (ssrc,) = struct.unpack_from("!I", body)
        reports = [ReceptionReport._parse(body, 4 + _REPORT_SIZE * i) for i in range(count)]
        return ReceiverReport(ssrc, reports)
    if packet_type == TYPE_TRANSPORT_FEEDBACK and count == FORMAT_TLN:
        _require(body, 8)
        sender, media = struct.unpack_from("!II", body)
        nacks = [NackPair(*pair) for pair in struct.iter_unpack("!HH", body[8:])]
        return TransportLayerNack(sender, media, nacks)
    if packet_type == TYPE_PAYLOAD_FEEDBACK and count == FORMAT_PLI:
        _require(body, 8)
        return PictureLossIndication(*struct.unpack_from("!II", body))
    return RawPacket(bytes(chunk))


def parse_packets(data: bytes) -> list[RTCPPacket]:
    """Decode a compound RTCP datagram into its packets."""
    data = bytes(data)
    if not data:
        raise ParseError("empty RTCP data")
    packets = []
    offset = 0
    while offset < len(data):
        if len(data) - offset < 4:
            raise ParseError("RTCP header too short")
        first, packet_type, length = struct.unpack_from("!BBH", data, offset)
        if first >> 6 != 2:
            raise ParseError("invalid RTCP version")
        end = offset + (length + 1) * 4
        if end > len(data):
            raise ParseError("RTCP packet length exceeds data")
        packets.append(_parse_one(data[offset:end], first & 0x1F, packet_type))
        offset = end
    return packets


def to_ntp(moment: datetime) -> int:
    """Convert a datetime to a 64-bit NTP timestamp; naive values count as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    delta = moment - _UNIX_EPOCH
    nanos = (delta.days * 86400 + delta.seconds) * 1_000_000_000 + delta.microseconds * 1000
    seconds = nanos / 1e9 + _NTP_EPOCH_OFFSET
    whole = int(seconds)
    fraction = int((seconds - whole) * 0xFFFFFFFF)
    return (whole & 0xFFFFFFFF) << 32 | (fraction & 0xFFFFFFFF)