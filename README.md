# rtpinterceptor

Interceptors and building blocks for RTP and RTCP media streams. An
interceptor sits in a media pipeline between a transport and an
application: it wraps the readers and writers it is bound to, watches the
packets that pass, and may send RTCP feedback from a background thread.

The package has no runtime dependencies beyond the standard library.

## Modules

- `rtpinterceptor.rtp`: `Header` and `Packet` with `marshal()`,
  `parse_header()` and `parse_packet()`. Bad input raises `ParseError`.
- `rtpinterceptor.rtcp`: `PictureLossIndication`, `TransportLayerNack`
  with `NackPair`, `SenderReport`, `ReceiverReport` and `ReceptionReport`;
  `marshal_packets()`, `parse_packets()`,
  `nack_pairs_from_sequence_numbers()` and `to_ntp()`.
- `rtpinterceptor.interceptor`: the `Interceptor` base class (passes
  everything through), `StreamInfo`, `RTCPFeedback`, the attribute
  helpers `get_rtp_header()` and `get_rtcp_packets()`, and
  `stream_supports_nack()` / `stream_supports_pli()`.
- `rtpinterceptor.intervalpli`: `PLIGeneratorInterceptor` and
  `PLIInterceptorFactory`.
- `rtpinterceptor.nack_generator`: `NackGeneratorInterceptor` and
  `NackGeneratorInterceptorFactory`.
- `rtpinterceptor.receive_log`: `ReceiveLog`, which finds gaps in
  received sequence numbers.
- `rtpinterceptor.send_buffer`: `SendBuffer`, `RetainablePacket`,
  `PacketManager` and `NoOpPacketFactory`.
- `rtpinterceptor.priority_queue`: `PriorityQueue`, RTP packets kept in
  order of sequence number.
- `rtpinterceptor.packet_dumper`: `PacketDumper` and the default
  formatters.
- `rtpinterceptor.dump_interceptors`: `DumpSenderInterceptor`,
  `DumpReceiverInterceptor` and their factories.
- `rtpinterceptor.receiver_stream`: `ReceiverStream`, loss and jitter
  statistics for one remote stream.

## Readers and writers

Readers and writers are plain callables:

- an RTP writer is `writer(header, payload, attributes) -> int`;
- an RTCP writer is `writer(packets, attributes) -> int`;
- an RTP or RTCP reader is `reader(attributes) -> (data, attributes)`.

`bind_local_stream`, `bind_remote_stream`, `bind_rtcp_reader` and
`bind_rtcp_writer` each return the callable the next stage should use.
`unbind_local_stream` and `unbind_remote_stream` forget a stream, and
`close()` stops any background thread the interceptor started.

## Generating NACKs

`NackGeneratorInterceptor` records the sequence number of every RTP packet
read from a stream that negotiated generic NACK feedback
(`RTCPFeedback("nack")`), and every `interval` seconds writes a
`TransportLayerNack` for each gap to the RTCP writer it was bound to.

```python
from rtpinterceptor.interceptor import RTCPFeedback, StreamInfo
from rtpinterceptor.nack_generator import NackGeneratorInterceptorFactory
from rtpinterceptor.rtp import Header, Packet

factory = NackGeneratorInterceptorFactory(size=64, skip_last_n=2, interval=0.01)
generator = factory.new_interceptor("")

sent = []
generator.bind_rtcp_writer(lambda packets, attributes: sent.append(packets) or 0)

incoming = iter(Packet(Header(sequence_number=s)).marshal() for s in (10, 11, 12, 14, 16, 18))
info = StreamInfo(ssrc=1, rtcp_feedback=[RTCPFeedback("nack")])
read = generator.bind_remote_stream(info, lambda attributes: (next(incoming), attributes))
for _ in range(6):
    read(None)
# After a tick, sent holds TransportLayerNack packets for 13 and 15.
generator.close()
```

`size` must be a power of two from 64 to 32768, otherwise
`InvalidSizeError` is raised. `max_nacks_per_packet` limits how often one
missing packet is NACKed (zero means no limit), and `streams_filter`
replaces the test for which streams are tracked.

The gap tracking is available on its own:

```python
from rtpinterceptor.receive_log import ReceiveLog
from rtpinterceptor.rtcp import nack_pairs_from_sequence_numbers

log = ReceiveLog(128)
for seq in (10, 11, 12, 14, 16, 18):
    log.add(seq)

missing = log.missing_seq_numbers(2)      # [13, 15]
nack_pairs_from_sequence_numbers(missing)  # [NackPair(packet_id=13, lost_packets=2)]
```

## Periodic picture loss indications

`PLIGeneratorInterceptor` sends a `PictureLossIndication` as soon as a
remote stream that negotiated `RTCPFeedback("nack", "pli")` is bound, and
then one for every such stream each `interval` seconds (default 3; zero or
less turns the periodic requests off). `force_pli(*ssrcs)` asks for an
immediate PLI; it waits until the previous request has been taken by the
background thread started by `bind_rtcp_writer`.

## Keeping sent packets for retransmission

`SendBuffer(size)` keeps the most recent `size` packets (a power of two
from 1 to 32768). `PacketManager.new_packet` copies a header and payload;
given a non-zero retransmission SSRC and payload type it rewrites the
copy as an RFC 4588 retransmission packet, with the original sequence
number in front of the payload and any padding removed.
`NoOpPacketFactory` keeps references instead of copies.

```python
from rtpinterceptor.rtp import Header
from rtpinterceptor.send_buffer import PacketManager, SendBuffer

manager = PacketManager()
buffer = SendBuffer(8)
buffer.add(manager.new_packet(Header(sequence_number=5), b"abc", 0, 0))

packet = buffer.get(5)   # retained for the caller
print(packet.payload)    # b'abc'
packet.release()
```

## Dumping packets

`PacketDumper` writes packets to text streams (standard output by
default) from a background thread, in the order they were logged. Its
keyword options are `log`, `rtp_stream`, `rtcp_stream`, `rtp_format`,
`rtcp_format`, `rtp_filter` and `rtcp_filter`. `DumpSenderInterceptor`
dumps outgoing packets, `DumpReceiverInterceptor` incoming ones; both
take the same keyword options.

```python
import io

from rtpinterceptor.dump_interceptors import DumpSenderInterceptor
from rtpinterceptor.interceptor import StreamInfo
from rtpinterceptor.rtp import Header

out = io.StringIO()
dumper = DumpSenderInterceptor(rtp_stream=out, rtcp_stream=out)
write = dumper.bind_local_stream(StreamInfo(), lambda header, payload, attributes: len(payload))
write(Header(sequence_number=1), b"\x00\x00", {})
dumper.close()
print(out.getvalue())   # "RTP PACKET:\n\tVersion: 2 ..."
```

## Reception statistics

`ReceiverStream(ssrc, clock_rate)` takes each received header with
`process_rtp(now, header)` and each sender report with
`process_sender_report(now, report)`. `generate_report(now)` returns a
`ReceiverReport` with the extended highest sequence number, fraction and
total lost, interarrival jitter, and delay since the last sender report.

## What the package does not do

- It has no interceptor that answers incoming NACKs by resending packets:
  `SendBuffer` holds them, but reading NACKs and writing the packets
  again is left to the caller.
- It has no interceptors that send RTCP sender or receiver reports on a
  schedule. `ReceiverStream` builds a receiver report when asked, and
  `SenderReport` can be encoded and decoded, but nothing sends them by
  itself.
- It has no jitter buffer with a playout state. `PriorityQueue` keeps
  packets in sequence order and pops them by sequence number or
  timestamp; deciding when to play them out is left to the caller.

## Running the tests

```
pip install -e ".[test]"
pytest
```