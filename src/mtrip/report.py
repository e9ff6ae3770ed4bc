#!/usr/bin/env python3
"""
Text report for a finished measurement
"""

from mtrip.controller.aggregator import SessionResult


def format_report(result: SessionResult) -> str:
    lines = []
    lines.append("=" * 70)
    lines.append(f"Bandwidth measurement: {result.host}:{result.port} (probe size {result.probe_size}B)")
    lines.append("=" * 70)
    lines.append(f"{'Round':>5} {'RTT (ms)':>10} {'Target (pps)':>13} {'Sent':>8} {'Received':>9} {'Speed (Mbps)':>13}")
    lines.append("-" * 70)

    for r in result.rounds:
        lines.append(f"{r.index + 1:>5} {r.rtt_ms:>10.3f} {r.target_rate:>13.0f} "
                     f"{r.packets_sent:>8} {r.packets_received:>9} {r.speed_mbps:>13.3f}")

    lines.append("-" * 70)

    if result.rounds:
        rtt = result.rtt_summary
        speed = result.speed_summary
        lines.append(f"RTT   (ms):   min={rtt.minimum:.3f}  max={rtt.maximum:.3f}  "
                     f"mean={rtt.mean:.3f}  std_dev={rtt.std_dev:.3f}")
        lines.append(f"Speed (Mbps): min={speed.minimum:.3f}  max={speed.maximum:.3f}  "
                     f"mean={speed.mean:.3f}  std_dev={speed.std_dev:.3f}")

    lines.append(f"Packets: sent={result.total_packets_sent}  received={result.total_packets_received}")

    loss = result.loss_percent
    if loss is None:
        lines.append("Loss: n/a (nothing sent)")
    else:
        lines.append(f"Loss: ~{loss:.2f}%")

    lines.append("=" * 70)
    return "\n".join(lines)
