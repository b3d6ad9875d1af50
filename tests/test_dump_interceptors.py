import io

from rtpinterceptor.dump_interceptors import (
    DumpReceiverInterceptorFactory,
    DumpSenderInterceptorFactory,
)
from rtpinterceptor.interceptor import StreamInfo
from rtpinterceptor.rtcp import PictureLossIndication, marshal_packets
from rtpinterceptor.rtp import Header, Packet

INFO = StreamInfo(ssrc=123456, clock_rate=90000)


def _receive_both(interceptor):
    rtcp_bytes = marshal_packets([PictureLossIndication(sender_ssrc=123, media_ssrc=456)])
    rtp_bytes = Packet(header=Header(sequence_number=0)).marshal()
    rtcp_read = interceptor.bind_rtcp_reader(lambda attrs: (rtcp_bytes, attrs))
    rtp_read = interceptor.bind_remote_stream(INFO, lambda attrs: (rtp_bytes, attrs))
    return rtcp_read(None), rtp_read(None)


def _send_both(interceptor):
    sent = []

    def rtcp_writer(packets, attributes):
        sent.append(("rtcp", packets))
        return 12

    def rtp_writer(header, payload, attributes):
        sent.append(("rtp", header.sequence_number))
        return 13

    rtcp_result = interceptor.bind_rtcp_writer(rtcp_writer)(
        [PictureLossIndication(sender_ssrc=123, media_ssrc=456)], {}
    )
    rtp_result = interceptor.bind_local_stream(INFO, rtp_writer)(
        Header(sequence_number=0), b"", {}
    )
    return sent, rtcp_result, rtp_result


def test_receiver_filter_everything_out():
    buf = io.StringIO()
    factory = DumpReceiverInterceptorFactory(
        rtp_stream=buf,
        rtcp_stream=buf,
        rtp_filter=lambda p: False,
        rtcp_filter=lambda pkts: False,
    )
    interceptor = factory.new_interceptor("")
    assert buf.getvalue() == ""
    _receive_both(interceptor)
    interceptor.close()
    assert buf.getvalue() == ""


def test_receiver_filter_nothing():
    buf = io.StringIO()
    factory = DumpReceiverInterceptorFactory(
        rtp_stream=buf,
        rtcp_stream=buf,
        rtp_filter=lambda p: True,
        rtcp_filter=lambda pkts: True,
    )
    interceptor = factory.new_interceptor("")
    assert buf.getvalue() == ""
    _receive_both(interceptor)
    interceptor.close()
    assert len(buf.getvalue()) > 0


def test_receiver_passes_data_through_and_caches_parsed_values():
    buf = io.StringIO()
    interceptor = DumpReceiverInterceptorFactory(rtp_stream=buf, rtcp_stream=buf).new_interceptor("")
    (rtcp_data, rtcp_attrs), (rtp_data, rtp_attrs) = _receive_both(interceptor)
    interceptor.close()
    assert rtp_data == Packet(header=Header(sequence_number=0)).marshal()
    assert rtp_attrs["rtp_header"].sequence_number == 0
    assert rtcp_attrs["rtcp_packets"] == [PictureLossIndication(sender_ssrc=123, media_ssrc=456)]


def test_receiver_dumps_payload_after_header():
    seen = []
    interceptor = DumpReceiverInterceptorFactory(
        rtp_stream=io.StringIO(),
        rtp_format=lambda p, a: seen.append(p) or "",
    ).new_interceptor("")
    data = Packet(header=Header(sequence_number=42, ssrc=7), payload=b"abc").marshal()
    interceptor.bind_remote_stream(INFO, lambda attrs: (data, attrs))(None)
    interceptor.close()
    assert len(seen) == 1
    assert seen[0].payload == b"abc"
    assert seen[0].header.sequence_number == 42


def test_sender_filter_everything_out():
    buf = io.StringIO()
    factory = DumpSenderInterceptorFactory(
        rtp_stream=buf,
        rtcp_stream=buf,
        rtp_filter=lambda p: False,
        rtcp_filter=lambda pkts: False,
    )
    interceptor = factory.new_interceptor("")
    assert buf.getvalue() == ""
    sent, _, _ = _send_both(interceptor)
    interceptor.close()
    assert buf.getvalue() == ""
    assert [kind for kind, _ in sent] == ["rtcp", "rtp"]


def test_sender_filter_nothing():
    buf = io.StringIO()
    factory = DumpSenderInterceptorFactory(
        rtp_stream=buf,
        rtcp_stream=buf,
        rtp_filter=lambda p: True,
        rtcp_filter=lambda pkts: True,
    )
    interceptor = factory.new_interceptor("")
    assert buf.getvalue() == ""
    _send_both(interceptor)
    interceptor.close()
    assert len(buf.getvalue()) > 0


def test_sender_returns_what_the_writer_returns():
    interceptor = DumpSenderInterceptorFactory(
        rtp_stream=io.StringIO(), rtcp_stream=io.StringIO()
    ).new_interceptor("")
    sent, rtcp_result, rtp_result = _send_both(interceptor)
    interceptor.close()
    assert (rtcp_result, rtp_result) == (12, 13)
    assert sent[1] == ("rtp", 0)


def test_factory_builds_independent_interceptors():
    first_buf = io.StringIO()
    factory = DumpSenderInterceptorFactory(rtp_stream=first_buf, rtcp_stream=first_buf)
    first = factory.new_interceptor("a")
    second = factory.new_interceptor("b")
    first.close()
    _send_both(second)
    second.close()
    assert first is not second
    assert len(first_buf.getvalue()) > 0