import logging
import queue
import threading

import pytest

from rtpinterceptor.interceptor import RTCPFeedback, StreamInfo
from rtpinterceptor.intervalpli import PLIGeneratorInterceptor, PLIInterceptorFactory
from rtpinterceptor.rtcp import PictureLossIndication

SSRC = 123456


def _collector():
    written = queue.Queue()

    def writer(packets, attributes):
        written.put(list(packets))
        return len(packets)

    return written, writer


def _reader(attributes):
    return b"", attributes


def _pli_info(ssrc=SSRC):
    return StreamInfo(
        ssrc=ssrc,
        clock_rate=90000,
        mime_type="video/h264",
        rtcp_feedback=[RTCPFeedback("nack", "pli")],
    )


def test_unsupported_stream_gets_no_pli():
    generator = PLIGeneratorInterceptor(interval=0.01, log=logging.getLogger("test"))
    written, writer = _collector()
    generator.bind_rtcp_writer(writer)
    info = StreamInfo(ssrc=SSRC, mime_type="video/h264")
    try:
        assert generator.bind_remote_stream(info, _reader) is _reader
        with pytest.raises(queue.Empty):
            written.get(timeout=0.1)
    finally:
        generator.close()


def test_supported_stream_gets_immediate_then_periodic_pli():
    generator = PLIGeneratorInterceptor(interval=1.0, log=logging.getLogger("test"))
    written, writer = _collector()
    generator.bind_rtcp_writer(writer)
    try:
        generator.bind_remote_stream(_pli_info(), _reader)
        assert written.get(timeout=1) == [PictureLossIndication(media_ssrc=SSRC)]
        with pytest.raises(queue.Empty):
            written.get(timeout=0.1)
        assert written.get(timeout=2) == [PictureLossIndication(media_ssrc=SSRC)]
    finally:
        generator.close()


def test_zero_interval_sends_only_forced_plis():
    generator = PLIGeneratorInterceptor(interval=0)
    written, writer = _collector()
    generator.bind_rtcp_writer(writer)
    try:
        generator.force_pli(1, 2)
        assert written.get(timeout=1) == [
            PictureLossIndication(media_ssrc=1),
            PictureLossIndication(media_ssrc=2),
        ]
        generator.force_pli()
        with pytest.raises(queue.Empty):
            written.get(timeout=0.1)
    finally:
        generator.close()


def test_unbound_stream_is_not_requested_periodically():
    generator = PLIGeneratorInterceptor(interval=0.02)
    info = _pli_info()
    generator.bind_remote_stream(info, _reader)
    generator.unbind_local_stream(info)
    written, writer = _collector()
    generator.bind_rtcp_writer(writer)
    try:
        assert written.get(timeout=1) == [PictureLossIndication(media_ssrc=SSRC)]
        with pytest.raises(queue.Empty):
            written.get(timeout=0.1)
    finally:
        generator.close()


def test_closed_interceptor_writes_nothing():
    generator = PLIGeneratorInterceptor(interval=0.01)
    generator.close()
    generator.close()
    written, writer = _collector()
    assert generator.bind_rtcp_writer(writer) is writer
    generator.force_pli(5)
    with pytest.raises(queue.Empty):
        written.get(timeout=0.1)


def test_writer_failure_is_logged(caplog):
    called = threading.Event()

    def failing_writer(packets, attributes):
        called.set()
        raise RuntimeError("boom")

    generator = PLIGeneratorInterceptor(interval=0, log=logging.getLogger("test.pli"))
    with caplog.at_level(logging.WARNING, logger="test.pli"):
        generator.bind_rtcp_writer(failing_writer)
        generator.force_pli(7)
        assert called.wait(timeout=1)
        generator.close()
    assert "failed sending" in caplog.text


def test_factory_passes_options():
    factory = PLIInterceptorFactory(interval=0.5)
    first = factory.new_interceptor("a")
    second = factory.new_interceptor("b")
    assert first.interval == 0.5
    assert first is not second