#!/usr/bin/env python3
"""
UDP Reflector
Answers meter sessions one after another: echoes one timing probe per round
and counts the probes of the timed burst that follows it.
"""

import time
import socket
import logging
import threading
from dataclasses import dataclass
from typing import Optional, Tuple

from mtrip import metrics
from mtrip.controller.config_loader import ReflectConfig
from mtrip.probes.protocol import (
    BURST_WINDOW_SEC, MAX_DATAGRAM, INT_SIZE, HandshakeError, ProtocolError,
    build_ack, decode_int, encode_int, valid_probe_size,
)
from mtrip.probes.transport import UDPServerTransport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReflectorSession:
    """Values negotiated with one meter"""
    peer: Tuple[str, int]
    probe_size: int
    measurement_time: int


class Reflector:
    """Passive side of a measurement: echo, count, report"""

    def __init__(self, transport: UDPServerTransport, burst_window: float = BURST_WINDOW_SEC):
        self.transport = transport
        self.burst_window = burst_window
        self.port_label = str(transport.port)

    def serve_forever(self, stop_event: Optional[threading.Event] = None):
        """Accept sessions until stop_event is set (checked between rounds and sessions)"""
        logger.info("=" * 60)
        logger.info(f"UDP Reflector listening on {self.transport.host}:{self.transport.port}")
        logger.info("=" * 60)

        while stop_event is None or not stop_event.is_set():
            try:
                session = self.accept_session()
                if session is not None:
                    self.run_session(session, stop_event)
            except OSError as e:
                logger.error(f"Session aborted: {e}")

            # Unpin so the next handshake may come from any host
            if self.transport.pinned:
                self.transport.reset()

        logger.info("Reflector stopped")

    def accept_session(self) -> Optional[ReflectorSession]:
        """
        Wait for a handshake from any host and acknowledge it

        Returns:
            Negotiated session, or None if the attempt was abandoned
        """
        try:
            session = self._handshake()
        except (HandshakeError, OSError) as e:
            logger.error(f"Handshake abandoned: {e}")
            metrics.reflector_sessions_counter.labels(port=self.port_label, outcome='rejected').inc()
            return None

        metrics.reflector_sessions_counter.labels(port=self.port_label, outcome='accepted').inc()
        logger.info(f"Session from {session.peer[0]}:{session.peer[1]}: "
                    f"probe_size={session.probe_size}B, rounds={session.measurement_time}")
        return session

    def _handshake(self) -> ReflectorSession:
        try:
            # First control datagram pins the sender for the rest of the session
            probe_size = decode_int(self.transport.receive(MAX_DATAGRAM, pin=True))
            measurement_time = decode_int(self.transport.receive(MAX_DATAGRAM))
        except ProtocolError as e:
            raise HandshakeError(str(e)) from e

        if not valid_probe_size(probe_size):
            raise HandshakeError(f"Invalid probe size {probe_size}")
        if measurement_time < 1:
            raise HandshakeError(f"Invalid measurement time {measurement_time}")

        self.transport.send(build_ack(probe_size))
        return ReflectorSession(
            peer=self.transport.peer,
            probe_size=probe_size,
            measurement_time=measurement_time,
        )

    def run_session(self, session: ReflectorSession, stop_event: Optional[threading.Event] = None):
        for current_round in range(session.measurement_time):
            if stop_event is not None and stop_event.is_set():
                logger.info(f"Session cancelled before round {current_round + 1}")
                return

            self.reflect_timing_probe(session.probe_size)
            count = self.count_burst(session.probe_size)
            self.transport.send(encode_int(count))

            metrics.reflector_burst_gauge.labels(port=self.port_label).set(count)
            logger.info(f"Round {current_round + 1}/{session.measurement_time}: counted {count} probes")

        logger.info(f"Session with {session.peer[0]}:{session.peer[1]} complete")

    def reflect_timing_probe(self, probe_size: int):
        """Echo one datagram back unchanged; the meter times the round trip"""
        data = self._receive_retrying(probe_size)
        self.transport.send(data)

    def count_burst(self, probe_size: int) -> int:
        """
        Count probe-sized datagrams arriving within one burst window

        The first datagram is awaited without a timeout and its arrival opens
        the window. Datagrams of any other length are ignored.
        """
        bufsize = min(probe_size + 1, MAX_DATAGRAM)

        first = self._receive_retrying(bufsize)
        window_start = time.perf_counter()
        count = 1 if len(first) == probe_size else 0

        self.transport.set_timeout(self.burst_window)
        try:
            while (time.perf_counter() - window_start) < self.burst_window:
                try:
                    data = self.transport.receive(bufsize)
                except socket.timeout:
                    continue
                except OSError as e:
                    logger.debug(f"Receive error inside burst window: {e}")
                    continue

                if len(data) == probe_size:
                    count += 1
        finally:
            self.transport.set_timeout(None)

        late = self.transport.drain(max(bufsize, INT_SIZE))
        if late:
            logger.debug(f"Dropped {late} datagrams that arrived after the window closed")
        return count

    def _receive_retrying(self, bufsize: int) -> bytes:
        # No retry limit: a silent peer stalls the session here
        while True:
            try:
                return self.transport.receive(bufsize)
            except OSError as e:
                logger.warning(f"Receive failed, retrying: {e}")


def run_reflector(config: ReflectConfig, stop_event: Optional[threading.Event] = None):
    """Open the server socket described by a ReflectConfig and serve forever"""
    if config.metrics_port:
        metrics.start_metrics_server(config.metrics_port)

    with UDPServerTransport(config.port) as transport:
        Reflector(transport).serve_forever(stop_event)
