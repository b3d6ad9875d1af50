"""Per-stream reception statistics used to build RTCP receiver reports."""

from __future__ import annotations

import random
import threading
from datetime import datetime
from typing import Optional

from .rtcp import ReceiverReport, ReceptionReport, SenderReport
from .rtp import Header

PACKETS_PER_HISTORY_ENTRY = 64
_DEFAULT_HISTORY_ENTRIES = 128
_SEQ_MASK = 0xFFFF
_U32_MASK = 0xFFFFFFFF
_HALF = 1 << 15
_MAX_24_BITS = 0xFFFFFF


class ReceiverStream:
    """Tracks received sequence numbers, loss and jitter for one remote stream."""

    def __init__(self, ssrc: int, clock_rate: int) -> None:
        self.ssrc = ssrc
        self.receiver_ssrc = random.getrandbits(32)
        self.clock_rate = float(clock_rate)
        self.size = _DEFAULT_HISTORY_ENTRIES
        self._history = self.size * PACKETS_PER_HISTORY_ENTRY
        self._received = bytearray(self._history)
        self._started = False
        self._seqnum_cycles = 0
        self._last_seqnum = 0
        self._last_report_seqnum = 0
        self._last_rtp_time_rtp = 0
        self._last_rtp_time_time: Optional[datetime] = None
        self._jitter = 0.0
        self._last_sender_report = 0
        self._last_sender_report_time: Optional[datetime] = None
        self._total_lost = 0
        self._lock = threading.Lock()

    def set_received(self, seq: int) -> None:
        """Mark ``seq`` as received."""
        self._received[(seq & _SEQ_MASK) % self._history] = 1

    def del_received(self, seq: int) -> None:
        """Mark ``seq`` as not received."""
        self._received[(seq & _SEQ_MASK) % self._history] = 0

    def get_received(self, seq: int) -> bool:
        """True when ``seq`` is marked as received."""
        return bool(self._received[(seq & _SEQ_MASK) % self._history])

    def process_rtp(self, now: datetime, header: Header) -> None:
        """Account for one received RTP packet arriving at ``now``."""
        seq = header.sequence_number & _SEQ_MASK
        timestamp = header.timestamp & _U32_MASK
        with self._lock:
            if not self._started:
                self._started = True
                self.set_received(seq)
                self._last_seqnum = seq
                self._last_report_seqnum = (seq - 1) & _SEQ_MASK
                self._last_rtp_time_rtp = timestamp
                self._last_rtp_time_time = now
                return

            self.set_received(seq)
            diff = (seq - self._last_seqnum) & _SEQ_MASK
            if 0 < diff < _HALF:
                if seq < self._last_seqnum:
                    self._seqnum_cycles = (self._seqnum_cycles + 1) & _SEQ_MASK
                i = (self._last_seqnum + 1) & _SEQ_MASK
                while i != seq:
                    self.del_received(i)
                    i = (i + 1) & _SEQ_MASK
                self._last_seqnum = seq

            # Interarrival jitter as defined in RFC 3550, section 6.4.1.
            elapsed = (now - self._last_rtp_time_time).total_seconds()
            d = abs(elapsed * self.clock_rate - (float(timestamp) - float(self._last_rtp_time_rtp)))
            self._jitter += (d - self._jitter) / 16
            self._last_rtp_time_rtp = timestamp
            self._last_rtp_time_time = now

    def process_sender_report(self, now: datetime, report: SenderReport) -> None:
        """Remember the middle 32 bits of a sender report's NTP time and when it arrived."""
        with self._lock:
            self._last_sender_report = (report.ntp_time >> 16) & _U32_MASK
            self._last_sender_report_time = now

    def generate_report(self, now: datetime) -> ReceiverReport:
        """Build a receiver report covering the packets since the previous one."""
        with self._lock:
            total_since_report = (self._last_seqnum - self._last_report_seqnum) & _SEQ_MASK
            lost_since_report = 0
            if self._last_seqnum != self._last_report_seqnum:
                i = (self._last_report_seqnum + 1) & _SEQ_MASK
                while i != self._last_seqnum:
                    if not self.get_received(i):
                        lost_since_report += 1
                    i = (i + 1) & _SEQ_MASK
            self._total_lost = min(self._total_lost + lost_since_report, _MAX_24_BITS)
            lost_since_report = min(lost_since_report, _MAX_24_BITS)

            if total_since_report:
                fraction_lost = int(lost_since_report * 256 / total_since_report) & 0xFF
            else:
                fraction_lost = 0

            if self._last_sender_report_time is None:
                delay = 0
            else:
                seconds = (now - self._last_sender_report_time).total_seconds()
                delay = int(seconds * 65536) & _U32_MASK

            report = ReceiverReport(
                ssrc=self.receiver_ssrc,
                reports=[
                    ReceptionReport(
                        ssrc=self.ssrc,
                        last_sequence_number=(self._seqnum_cycles << 16 | self._last_seqnum),
                        last_sender_report=self._last_sender_report,
                        fraction_lost=fraction_lost,
                        total_lost=self._total_lost,
                        delay=delay,
                        jitter=int(self._jitter) & _U32_MASK,
                    )
                ],
            )
            self._last_report_seqnum = self._last_seqnum
            return report