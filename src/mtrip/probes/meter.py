#!/usr/bin/env python3
"""
Bandwidth Meter
Drives a measurement against a reflector: per round it samples RTT, sends a
paced one-second burst, reads back how many probes arrived and adapts the
target send rate to the loss it saw.
"""

import time
import socket
import logging
import threading
from typing import List, Optional

from mtrip import metrics
from mtrip.controller.aggregator import RoundSample, SessionResult
from mtrip.controller.config_loader import MeterConfig
from mtrip.controller.rate_controller import RateState, loss_detected, next_rate_state
from mtrip.probes.protocol import (
    BURST_WINDOW_SEC, HANDSHAKE_PACING_SEC, INT_SIZE, FeedbackTimeout, HandshakeError,
    ProtocolError, decode_int, encode_int, filler_payload, is_ack,
)
from mtrip.probes.transport import UDPClientTransport

logger = logging.getLogger(__name__)

# Pause before retrying after a receive error (e.g. ICMP port unreachable)
RETRY_DELAY_SEC = 0.1


class Meter:
    """Active side of a measurement"""

    def __init__(self, config: MeterConfig, transport: UDPClientTransport,
                 burst_window: float = BURST_WINDOW_SEC):
        self.config = config
        self.transport = transport
        self.burst_window = burst_window
        self.target = f"{config.host}:{config.port}"
        self.payload = filler_payload(config.probe_size)

        self.transport.set_timeout(config.reply_timeout)

    def handshake(self):
        """Negotiate probe size and round count; raises HandshakeError on any failure"""
        try:
            self.transport.send(encode_int(self.config.probe_size))
            time.sleep(HANDSHAKE_PACING_SEC)
            self.transport.send(encode_int(self.config.measurement_time))
            reply = self.transport.receive(self.config.probe_size)
        except socket.timeout as e:
            raise HandshakeError(f"No handshake reply from {self.target} within {self.config.reply_timeout}s") from e
        except OSError as e:
            raise HandshakeError(f"Handshake with {self.target} failed: {e}") from e

        if not is_ack(reply):
            raise HandshakeError(f"Reflector {self.target} did not acknowledge (got {reply[:2]!r})")

        logger.info(f"Handshake with {self.target} complete")

    def measure_rtt(self) -> float:
        """
        Send one timing probe and wait for its echo. Returns RTT in ms.

        Only a datagram of exactly probe_size bytes is taken as the echo. A lost
        echo is not resent: the reflector has already moved on to counting, so
        a second timing probe would open its burst window.
        """
        bufsize = self.config.probe_size + 1
        while True:
            start = time.perf_counter()
            try:
                self.transport.send(self.payload)
                while len(self.transport.receive(bufsize)) != self.config.probe_size:
                    logger.debug("Ignoring datagram that is not the timing echo")
            except socket.timeout as e:
                raise FeedbackTimeout(f"No timing echo from {self.target} within {self.config.reply_timeout}s") from e
            except OSError as e:
                logger.warning(f"Timing probe failed, retrying: {e}")
                time.sleep(RETRY_DELAY_SEC)
                continue
            return (time.perf_counter() - start) * 1000

    def send_burst(self, rate: RateState) -> int:
        """
        Send probes paced at rate.current_rate for one burst window

        Sleep granularity means very high target rates are undershot.

        Returns:
            Number of datagrams actually sent
        """
        gap_sec = rate.gap_us / 1_000_000
        sent = 0

        start = time.perf_counter()
        while True:
            try:
                self.transport.send(self.payload)
                sent += 1
            except OSError as e:
                logger.debug(f"Burst send failed: {e}")

            time.sleep(gap_sec)
            if (time.perf_counter() - start) >= self.burst_window:
                break

        return sent

    def receive_count(self) -> int:
        """Block for the reflector's per-round packet count"""
        bufsize = max(self.config.probe_size, INT_SIZE)
        while True:
            try:
                data = self.transport.receive(bufsize)
            except socket.timeout as e:
                raise FeedbackTimeout(f"No packet count from {self.target} within {self.config.reply_timeout}s") from e
            except OSError as e:
                logger.warning(f"Waiting for packet count failed, retrying: {e}")
                time.sleep(RETRY_DELAY_SEC)
                continue

            try:
                return decode_int(data)
            except ProtocolError:
                # A late echo, not the count
                logger.debug(f"Ignoring {len(data)}-byte datagram while waiting for count")

    def run_round(self, index: int, rate: RateState) -> RoundSample:
        rtt_ms = self.measure_rtt()
        packets_sent = self.send_burst(rate)
        packets_received = self.receive_count()

        return RoundSample(
            index=index,
            rtt_ms=rtt_ms,
            packets_sent=packets_sent,
            packets_received=packets_received,
            target_rate=rate.current_rate,
            probe_size=self.config.probe_size,
        )

    def run(self, stop_event: Optional[threading.Event] = None) -> Optional[SessionResult]:
        """
        Handshake, then run every round

        Returns:
            SessionResult, or None if stop_event was set before the last round
        """
        self.handshake()

        logger.info("=" * 60)
        logger.info(f"Measuring {self.target}: probe_size={self.config.probe_size}B, "
                    f"rounds={self.config.measurement_time}")
        logger.info("=" * 60)

        rate = RateState(self.config.initial_rate, self.config.initial_previous_rate)
        rounds: List[RoundSample] = []

        for current_round in range(self.config.measurement_time):
            if stop_event is not None and stop_event.is_set():
                logger.info(f"Measurement cancelled after {len(rounds)} rounds")
                return None

            sample = self.run_round(current_round, rate)
            rounds.append(sample)
            self._export(sample)

            rate = next_rate_state(rate, loss_detected(sample.packets_sent, sample.packets_received))
            metrics.meter_rate_gauge.labels(target=self.target).set(rate.current_rate)

            status = "LOSS" if sample.lost else "OK"
            logger.info(f"Round {current_round + 1}/{self.config.measurement_time}: "
                        f"rtt={sample.rtt_ms:.3f}ms, sent={sample.packets_sent}, "
                        f"received={sample.packets_received}, speed={sample.speed_mbps:.3f}Mbps "
                        f"[{status}] -> next rate {rate.current_rate:.0f}pps")

        return SessionResult(
            host=self.config.host,
            port=self.config.port,
            probe_size=self.config.probe_size,
            rounds=tuple(rounds),
        )

    def _export(self, sample: RoundSample):
        metrics.meter_rtt_gauge.labels(target=self.target).set(sample.rtt_ms)
        metrics.meter_rtt_hist.labels(target=self.target).observe(sample.rtt_ms)
        metrics.meter_speed_gauge.labels(target=self.target).set(sample.speed_mbps)
        metrics.meter_sent_counter.labels(target=self.target).inc(sample.packets_sent)
        metrics.meter_received_counter.labels(target=self.target).inc(sample.packets_received)


def run_meter(config: MeterConfig, stop_event: Optional[threading.Event] = None) -> Optional[SessionResult]:
    """Open the client socket described by a MeterConfig and measure"""
    if config.metrics_port:
        metrics.start_metrics_server(config.metrics_port)

    with UDPClientTransport(config.host, config.port) as transport:
        return Meter(config, transport).run(stop_event)
