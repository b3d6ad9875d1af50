"""RTP/RTCP interceptors and building blocks: NACK generation, interval PLI, packet dumps and reception statistics."""

__version__ = "0.1.0"