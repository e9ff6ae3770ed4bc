#!/usr/bin/env python3
"""
Prometheus metrics exported by the meter and the reflector
"""

import logging
from prometheus_client import start_http_server, Counter, Gauge, Histogram

logger = logging.getLogger(__name__)

# --- METER ---
meter_rtt_gauge = Gauge('mtrip_meter_rtt_ms', 'Round-trip time of the last timing probe in milliseconds', ['target'])
meter_rtt_hist = Histogram('mtrip_meter_rtt_ms_hist', 'Timing probe RTT histogram', ['target'],
                           buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 50.0, 100.0, 250.0])
meter_speed_gauge = Gauge('mtrip_meter_speed_mbps', 'Throughput received by the reflector in the last round (Mbps)', ['target'])
meter_rate_gauge = Gauge('mtrip_meter_target_rate_pps', 'Target send rate for the next round (packets/sec)', ['target'])
meter_sent_counter = Counter('mtrip_meter_packets_sent', 'Burst datagrams sent', ['target'])
meter_received_counter = Counter('mtrip_meter_packets_received', 'Burst datagrams counted by the reflector', ['target'])

# --- REFLECTOR ---
reflector_sessions_counter = Counter('mtrip_reflector_sessions', 'Handshakes handled by the reflector', ['port', 'outcome'])
reflector_burst_gauge = Gauge('mtrip_reflector_burst_packets', 'Datagrams counted in the last burst window', ['port'])


def start_metrics_server(port: int):
    start_http_server(port)
    logger.info(f"Metrics server listening on :{port}/metrics")
