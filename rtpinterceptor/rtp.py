"""RTP headers and packets with their wire encoding."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field, replace

HEADER_SIZE = 12
_FIXED = struct.Struct("!BBHII")


class ParseError(ValueError):
    """Raised when bytes do not hold a valid RTP header or packet."""


def _padded_len(length: int) -> int:
    return (length + 3) // 4 * 4


@dataclass
class Header:
    """An RTP fixed header with optional CSRC list and header extension."""

    version: int = 2
    padding: bool = False
    extension: bool = False
    marker: bool = False
    payload_type: int = 0
    sequence_number: int = 0
    timestamp: int = 0
    ssrc: int = 0
    csrc: list[int] = field(default_factory=list)
    extension_profile: int = 0
    extension_payload: bytes = b""

    def marshal_size(self) -> int:
        """Return the number of bytes the encoded header occupies."""
        size = HEADER_SIZE + 4 * len(self.csrc)
        if self.extension:
            size += 4 + _padded_len(len(self.extension_payload))
        return size

    def marshal(self) -> bytes:
        """Encode the header in network byte order."""
        if len(self.csrc) > 15:
            raise ValueError("an RTP header holds at most 15 CSRC identifiers")
        if not 0 <= self.version <= 3:
            raise ValueError(f"invalid RTP version {self.version}")
        if not 0 <= self.payload_type <= 127:
            raise ValueError(f"invalid payload type {self.payload_type}")
        first = (
            self.version << 6
            | int(self.padding) << 5
            | int(self.extension) << 4
            | len(self.csrc)
        )
        second = int(self.marker) << 7 | self.payload_type
        try:
            out = bytearray(
                _FIXED.pack(first, second, self.sequence_number, self.timestamp, self.ssrc)
            )
            out += struct.pack(f"!{len(self.csrc)}I", *self.csrc)
            if self.extension:
                body = bytes(self.extension_payload)
                body += bytes(_padded_len(len(body)) - len(body))
                out += struct.pack("!HH", self.extension_profile, len(body) // 4)
                out += body
        except struct.error as exc:
            raise ValueError(f"header field out of range: {exc}") from exc
        return bytes(out)

    def clone(self) -> Header:
        """Return an independent copy of the header."""
        return replace(self, csrc=list(self.csrc))


@dataclass
class Packet:
    """An RTP packet: header, payload and the size of any trailing padding."""

    header: Header = field(default_factory=Header)
    payload: bytes = b""
    padding_size: int = 0

    def marshal(self) -> bytes:
        """Encode the packet, appending padding when padding_size is set."""
        if not 0 <= self.padding_size <= 255:
            raise ValueError(f"invalid padding size {self.padding_size}")
        header = replace(self.header, padding=self.padding_size > 0)
        out = header.marshal() + bytes(self.payload)
        if self.padding_size:
            out += bytes(self.padding_size - 1) + bytes([self.padding_size])
        return out

    def __str__(self) -> str:
        h = self.header
        lines = [
            "RTP PACKET:",
            f"\tVersion: {h.version}",
            f"\tMarker: {h.marker}",
            f"\tPayload Type: {h.payload_type}",
            f"\tSequence Number: {h.sequence_number}",
            f"\tTimestamp: {h.timestamp}",
            f"\tSSRC: {h.ssrc} ({h.ssrc:x})",
            f"\tPayload Length: {len(self.payload)}",
        ]
        return "\n".join(lines) + "\n"


def parse_header(data: bytes) -> Header:
    """Decode an RTP header from the start of ``data``."""
    if len(data) < HEADER_SIZE:
        raise ParseError("RTP header size insufficient")
    first, second, seq, timestamp, ssrc = _FIXED.unpack_from(data)
    count = first & 0x0F
    offset = HEADER_SIZE + 4 * count
    if len(data) < offset:
        raise ParseError("RTP header size insufficient for CSRC list")
    csrc = list(struct.unpack_from(f"!{count}I", data, HEADER_SIZE))
    extension = bool(first & 0x10)
    profile = 0
    ext_payload = b""
    if extension:
        if len(data) < offset + 4:
            raise ParseError("RTP header size insufficient for extension")
        profile, words = struct.unpack_from("!HH", data, offset)
        offset += 4
        end = offset + 4 * words
        if len(data) < end:
            raise ParseError("RTP header size insufficient for extension")
        ext_payload = bytes(data[offset:end])
    return Header(
        version=first >> 6,
        padding=bool(first & 0x20),
        extension=extension,
        marker=bool(second & 0x80),
        payload_type=second & 0x7F,
        sequence_number=seq,
        timestamp=timestamp,
        ssrc=ssrc,
        csrc=csrc,
        extension_profile=profile,
        extension_payload=ext_payload,
    )


def parse_packet(data: bytes) -> Packet:
    """Decode a full RTP packet, stripping any padding."""
    header = parse_header(data)
    payload = bytes(data[header.marshal_size():])
    padding_size = 0
    if header.padding:
        if not payload:
            raise ParseError("RTP packet too short for padding")
        padding_size = payload[-1]
        if padding_size == 0 or padding_size > len(payload):
            raise ParseError("RTP padding size exceeds payload")
        payload = payload[:-padding_size]
    return Packet(header=header, payload=payload, padding_size=padding_size)