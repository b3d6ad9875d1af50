"""Interceptor base class, stream description and attribute helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .rtcp import RTCPPacket, parse_packets
from .rtp import Header, parse_header

Attributes = Dict[Any, Any]

RTPWriter = Callable[[Header, bytes, Attributes], int]
"""Writes one RTP packet (header, payload, attributes); returns bytes written."""

RTPReader = Callable[[Optional[Attributes]], Tuple[bytes, Optional[Attributes]]]
"""Reads one RTP packet; returns its bytes and the attributes."""

RTCPWriter = Callable[[Sequence[RTCPPacket], Attributes], int]
"""Writes a batch of RTCP packets; returns bytes written."""

RTCPReader = Callable[[Optional[Attributes]], Tuple[bytes, Optional[Attributes]]]
"""Reads one RTCP datagram; returns its bytes and the attributes."""

_RTP_HEADER_KEY = "rtp_header"
_RTCP_PACKETS_KEY = "rtcp_packets"


@dataclass
class RTCPFeedback:
    """An RTCP feedback mechanism negotiated for a stream."""

    type: str
    parameter: str = ""


@dataclass
class StreamInfo:
    """Description of a local or remote media stream."""

    id: str = ""
    attributes: Attributes = field(default_factory=dict)
    ssrc: int = 0
    ssrc_retransmission: int = 0
    ssrc_forward_error_correction: int = 0
    payload_type: int = 0
    payload_type_retransmission: int = 0
    payload_type_forward_error_correction: int = 0
    mime_type: str = ""
    clock_rate: int = 0
    channels: int = 0
    sdp_fmtp_line: str = ""
    rtcp_feedback: List[RTCPFeedback] = field(default_factory=list)


class Interceptor:
    """An interceptor that passes everything through unchanged."""

    def bind_rtcp_reader(self, reader: RTCPReader) -> RTCPReader:
        return reader

    def bind_rtcp_writer(self, writer: RTCPWriter) -> RTCPWriter:
        return writer

    def bind_local_stream(self, info: StreamInfo, writer: RTPWriter) -> RTPWriter:
        return writer

    def unbind_local_stream(self, info: StreamInfo) -> None:
        pass

    def bind_remote_stream(self, info: StreamInfo, reader: RTPReader) -> RTPReader:
        return reader

    def unbind_remote_stream(self, info: StreamInfo) -> None:
        pass

    def close(self) -> None:
        pass


def get_rtp_header(attributes: Attributes, data: bytes) -> Header:
    """Return the RTP header cached in ``attributes``, parsing ``data`` if absent."""
    cached = attributes.get(_RTP_HEADER_KEY)
    if cached is not None:
        if not isinstance(cached, Header):
            raise TypeError("cached RTP header attribute has an invalid type")
        return cached
    header = parse_header(data)
    attributes[_RTP_HEADER_KEY] = header
    return header


def get_rtcp_packets(attributes: Attributes, data: bytes) -> list[RTCPPacket]:
    """Return the RTCP packets cached in ``attributes``, parsing ``data`` if absent."""
    cached = attributes.get(_RTCP_PACKETS_KEY)
    if cached is not None:
        if not isinstance(cached, list):
            raise TypeError("cached RTCP packets attribute has an invalid type")
        return cached
    packets = parse_packets(data)
    attributes[_RTCP_PACKETS_KEY] = packets
    return packets


def stream_supports_nack(info: StreamInfo) -> bool:
    """True when the stream negotiated generic NACK feedback."""
    return any(fb.type == "nack" and fb.parameter == "" for fb in info.rtcp_feedback)


def stream_supports_pli(info: StreamInfo) -> bool:
    """True when the stream negotiated picture loss indications."""
    return any(fb.type == "nack" and fb.parameter == "pli" for fb in info.rtcp_feedback)