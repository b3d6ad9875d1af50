import io
import logging

import pytest

from rtpinterceptor.packet_dumper import (
    PacketDumper,
    default_rtcp_formatter,
    default_rtp_formatter,
)
from rtpinterceptor.rtcp import PictureLossIndication
from rtpinterceptor.rtp import Header, Packet


class _FailingStream:
    def write(self, text):
        raise OSError("disk full")


def test_default_rtp_formatter_appends_newline():
    packet = Packet(header=Header(sequence_number=7), payload=b"\x01\x02")
    text = default_rtp_formatter(packet, {})
    assert text == str(packet) + "\n"
    assert text.startswith("RTP PACKET:")


def test_default_rtcp_formatter_brackets_packets():
    text = default_rtcp_formatter([PictureLossIndication(123, 456)], {})
    assert text.startswith("[")
    assert text.endswith("]\n")
    assert "PictureLossIndication" in text


def test_rtp_packets_written_with_custom_format_in_order():
    out = io.StringIO()
    dumper = PacketDumper(
        rtp_stream=out,
        rtp_format=lambda p, a: f"rtp {p.header.sequence_number} {p.payload!r}\n",
    )
    for seq in (3, 1, 2):
        dumper.log_rtp_packet(Header(sequence_number=seq), b"x", {})
    dumper.close()
    assert out.getvalue() == "rtp 3 b'x'\nrtp 1 b'x'\nrtp 2 b'x'\n"


def test_rtcp_packets_written_to_rtcp_stream():
    rtp_out = io.StringIO()
    rtcp_out = io.StringIO()
    with PacketDumper(
        rtp_stream=rtp_out,
        rtcp_stream=rtcp_out,
        rtcp_format=lambda pkts, a: f"{len(pkts)} {pkts[0].media_ssrc}\n",
    ) as dumper:
        dumper.log_rtcp_packets([PictureLossIndication(123, 456)], {})
    assert rtcp_out.getvalue() == "1 456\n"
    assert rtp_out.getvalue() == ""


def test_default_format_used_when_none_given():
    out = io.StringIO()
    header = Header(sequence_number=9, ssrc=5)
    with PacketDumper(rtp_stream=out) as dumper:
        dumper.log_rtp_packet(header, b"ab", {})
    assert out.getvalue() == default_rtp_formatter(Packet(header=header, payload=b"ab"), {})


def test_filters_drop_packets():
    out = io.StringIO()
    with PacketDumper(
        rtp_stream=out,
        rtcp_stream=out,
        rtp_filter=lambda p: p.header.sequence_number % 2 == 0,
        rtcp_filter=lambda pkts: False,
        rtp_format=lambda p, a: f"{p.header.sequence_number}\n",
    ) as dumper:
        for seq in range(4):
            dumper.log_rtp_packet(Header(sequence_number=seq), b"", {})
        dumper.log_rtcp_packets([PictureLossIndication(1, 2)], {})
    assert out.getvalue() == "0\n2\n"


def test_packets_after_close_are_dropped():
    out = io.StringIO()
    dumper = PacketDumper(rtp_stream=out, rtcp_stream=out)
    dumper.close()
    dumper.log_rtp_packet(Header(sequence_number=1), b"", {})
    dumper.log_rtcp_packets([PictureLossIndication(1, 2)], {})
    dumper.close()
    assert out.getvalue() == ""


def test_logged_header_is_copied():
    out = io.StringIO()
    header = Header(sequence_number=1)
    dumper = PacketDumper(
        rtp_stream=out, rtp_format=lambda p, a: f"{p.header.sequence_number}\n"
    )
    dumper.log_rtp_packet(header, b"", {})
    header.sequence_number = 99
    dumper.close()
    assert out.getvalue() == "1\n"


def test_write_failure_is_logged(caplog):
    log = logging.getLogger("test.dumper")
    with caplog.at_level(logging.ERROR, logger="test.dumper"):
        dumper = PacketDumper(log=log, rtp_stream=_FailingStream(), rtcp_stream=_FailingStream())
        dumper.log_rtp_packet(Header(), b"", {})
        dumper.log_rtcp_packets([PictureLossIndication()], {})
        dumper.close()
    messages = [r.getMessage() for r in caplog.records]
    assert any(m.startswith("could not dump RTP packet") for m in messages)
    assert any(m.startswith("could not dump RTCP packet") for m in messages)


@pytest.mark.parametrize("count", [0, 1, 5])
def test_every_logged_packet_is_written(count):
    out = io.StringIO()
    with PacketDumper(rtp_stream=out, rtp_format=lambda p, a: "-") as dumper:
        for _ in range(count):
            dumper.log_rtp_packet(Header(), b"", {})
    assert len(out.getvalue()) == count