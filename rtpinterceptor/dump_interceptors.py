"""Interceptors that dump the RTP and RTCP packets passing through them."""

from __future__ import annotations

from typing import Any, Optional, Sequence

from .interceptor import (
    Attributes,
    Interceptor,
    RTCPReader,
    RTCPWriter,
    RTPReader,
    RTPWriter,
    StreamInfo,
    get_rtcp_packets,
    get_rtp_header,
)
from .packet_dumper import PacketDumper
from .rtcp import RTCPPacket
from .rtp import Header


class DumpReceiverInterceptorFactory:
    """Builds DumpReceiverInterceptor instances; takes PacketDumper's keyword options."""

    def __init__(self, **options: Any) -> None:
        self._options = options

    def new_interceptor(self, interceptor_id: str) -> DumpReceiverInterceptor:
        return DumpReceiverInterceptor(**self._options)


class DumpReceiverInterceptor(Interceptor):
    """Dumps incoming RTP and RTCP packets."""

    def __init__(self, **options: Any) -> None:
        self._dumper = PacketDumper(**options)

    def bind_remote_stream(self, info: StreamInfo, reader: RTPReader) -> RTPReader:
        def read(attributes: Optional[Attributes]) -> tuple[bytes, Optional[Attributes]]:
            data, attrs = reader(attributes)
            if attrs is None:
                attrs = {}
            header = get_rtp_header(attrs, data)
            self._dumper.log_rtp_packet(header, data[header.marshal_size():], attrs)
            return data, attrs

        return read

    def bind_rtcp_reader(self, reader: RTCPReader) -> RTCPReader:
        def read(attributes: Optional[Attributes]) -> tuple[bytes, Optional[Attributes]]:
            data, attrs = reader(attributes)
            if attrs is None:
                attrs = {}
            packets = get_rtcp_packets(attrs, data)
            self._dumper.log_rtcp_packets(packets, attrs)
            return data, attrs

        return read

    def close(self) -> None:
        self._dumper.close()


class DumpSenderInterceptorFactory:
    """Builds DumpSenderInterceptor instances; takes PacketDumper's keyword options."""

    def __init__(self, **options: Any) -> None:
        self._options = options

    def new_interceptor(self, interceptor_id: str) -> DumpSenderInterceptor:
        return DumpSenderInterceptor(**self._options)


class DumpSenderInterceptor(Interceptor):
    """Dumps outgoing RTP and RTCP packets."""

    def __init__(self, **options: Any) -> None:
        self._dumper = PacketDumper(**options)

    def bind_rtcp_writer(self, writer: RTCPWriter) -> RTCPWriter:
        def write(packets: Sequence[RTCPPacket], attributes: Attributes) -> int:
            self._dumper.log_rtcp_packets(packets, attributes)
            return writer(packets, attributes)

        return write

    def bind_local_stream(self, info: StreamInfo, writer: RTPWriter) -> RTPWriter:
        def write(header: Header, payload: bytes, attributes: Attributes) -> int:
            self._dumper.log_rtp_packet(header, payload, attributes)
            return writer(header, payload, attributes)

        return write

    def close(self) -> None:
        self._dumper.close()