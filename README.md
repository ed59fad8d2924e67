# logplumb

Small, thread-safe building blocks for moving logs and metrics through a
pipeline. The package uses only the Python standard library.

## What is in it

- **Diodes** (`logplumb.diodes`): fixed-size ring buffers that never block
  writers. When a writer laps the reader, the oldest unread items are
  overwritten, and the next read tells the optional alerter callback how
  many were lost. `ManyToOne` and `OneToOne` carry byte strings;
  `ManyToOneEnvelope`, `ManyToOneEnvelopeV2` and `OneToOneEnvelopeV2` carry
  envelopes. Every diode (all subclasses of `Diode`) offers `set`,
  `try_next` (returns `None` when empty) and `next` (blocks). `None` cannot
  be stored.
- **Metrics** (`logplumb.metrics`): `Counter` and `Gauge` produce
  `Envelope` objects (with `CounterMessage`, `GaugeValue` or `EventMessage`
  payloads). Tag options are `with_tags` and `with_version`. A counter's
  delta is reset by `with_envelope` and added back if the callback raises.
  A gauge keeps two decimal places.
- **Emitter client** (`logplumb.emitter`): `Client` wraps an ingress object
  that opens sender streams. Counters and gauges made with `new_counter` and
  `new_gauge` are sent every `pulse_interval` seconds on a background
  thread; `emit_event` sends one event and ignores failures; `close` stops
  the pulses. The `origin` and `deployment` arguments add tags to every
  metric.
- **Envelope averager** (`logplumb.envelope_averager`): `EnvelopeAverager`
  collects counts and sizes with `track` and reports the average size of
  each interval through `start`'s callback until `stop`.
- **Batching** (`logplumb.batching`): `V2EnvelopeBatcher` hands envelopes to
  a writer once `size` are collected, or on `flush` once the interval has
  lapsed.
- **Doppler subscriptions** (`logplumb.pool`, `logplumb.static_finder`,
  `logplumb.connector`): `Pool` holds one connection per address, made in
  the background by a dial function you supply; `StaticFinder` announces a
  fixed list of addresses as an `Event`; `GRPCConnector` merges data from
  every announced doppler into a `Subscription` with `recv` and `cancel`.
- **TLS** (`logplumb.tls`): `new_client_context` returns a `ClientContext`
  (an `ssl.SSLContext` plus the server name to verify); `new_server_context`
  returns an `ssl.SSLContext` that requires client certificates. Both are
  limited to TLS 1.2 and two ECDHE-RSA AES-GCM ciphers; `with_cipher_suites`
  narrows that further and raises `ValueError` if no name is known.
- **Log writer** (`logplumb.logwriter`): `LogWriter` writes each message with
  a nanosecond UTC timestamp prefix, to standard error by default.
- **Test helpers** (`logplumb.spy_metrics`, `logplumb.spy_registry`):
  `SpyMetricClient` and `SpyRegistry` record metrics in memory for
  assertions in your own tests.
- **Load generation** (`logplumb.write_strategies`):
  `ConstantWriteStrategy` and `BurstWriteStrategy` (with `BurstParameters`)
  call a writer with generated messages at a steady rate or in random
  bursts until `stop`.

## Examples

Tracking the average envelope size:

```python
from logplumb.envelope_averager import EnvelopeAverager

averager = EnvelopeAverager()
averager.start(1.0, lambda average: print(f"average size: {average}"))
averager.track(1, 100)
# ... later
averager.stop()
```

Finding dopplers from a static list:

```python
from logplumb.static_finder import StaticFinder

finder = StaticFinder(["10.0.0.1:8082", "10.0.0.2:8082"])
event = finder.next(1.0)
print(event.grpc_dopplers)
```

Emitting and resetting a counter:

```python
from logplumb.metrics import Counter, with_tags

counter = Counter("ingress", "my-source", with_tags({"protocol": "grpc"}))
counter.increment(5)
envelope = counter.with_envelope(lambda env: env)
print(envelope.counter.delta, counter.delta)  # 5 0
```

Writing timestamped lines to standard error:

```python
from logplumb.logwriter import LogWriter

LogWriter().write(b"service started\n")
```

## What it does not do

There is no wire protocol here: the package has no gRPC or other network
client for dopplers or ingress services, no server, and no command-line
program. `Pool` and `Client` work with whatever connection objects you pass
in (a dial function returning a client with `batch_subscribe` and `close`,
or an ingress with `sender`).

## Running the tests

Install the `test` extra and run `pytest` from the project directory.