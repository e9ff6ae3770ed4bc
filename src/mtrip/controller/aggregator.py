#!/usr/bin/env python3
"""
Session statistics
Per-round samples, summary metrics and loss accounting for a finished run
"""

import statistics
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple


@dataclass(frozen=True)
class RoundSample:
    """One measurement round as observed by the meter"""
    index: int
    rtt_ms: float
    packets_sent: int
    packets_received: int
    target_rate: float
    probe_size: int

    @property
    def speed_mbps(self) -> float:
        # Only what actually arrived counts toward throughput
        return throughput_mbps(self.packets_received, self.probe_size)

    @property
    def lost(self) -> bool:
        return self.packets_received < self.packets_sent


@dataclass(frozen=True)
class SampleSummary:
    minimum: float
    maximum: float
    mean: float
    std_dev: float


def throughput_mbps(packets_received: int, probe_size: int) -> float:
    """Bits received during a one-second window, in Mbit/s"""
    return packets_received * probe_size * 8 / 1_000_000


def summarize(samples: Sequence[float]) -> SampleSummary:
    """Min/max/mean and population standard deviation of a non-empty sample"""
    if not samples:
        raise ValueError("Cannot summarize an empty sample")

    return SampleSummary(
        minimum=min(samples),
        maximum=max(samples),
        mean=statistics.fmean(samples),
        std_dev=statistics.pstdev(samples),
    )


def loss_percent(total_sent: int, total_received: int) -> Optional[float]:
    """Approximate loss; None when nothing was sent"""
    if total_sent == 0:
        return None
    return 100 - (total_received / total_sent) * 100


@dataclass(frozen=True)
class SessionResult:
    """Immutable outcome of a completed measurement run"""
    host: str
    port: int
    probe_size: int
    rounds: Tuple[RoundSample, ...] = field(default_factory=tuple)

    @property
    def rtt_samples(self) -> Tuple[float, ...]:
        return tuple(r.rtt_ms for r in self.rounds)

    @property
    def speed_samples(self) -> Tuple[float, ...]:
        return tuple(r.speed_mbps for r in self.rounds)

    @property
    def total_packets_sent(self) -> int:
        return sum(r.packets_sent for r in self.rounds)

    @property
    def total_packets_received(self) -> int:
        return sum(r.packets_received for r in self.rounds)

    @property
    def rtt_summary(self) -> SampleSummary:
        return summarize(self.rtt_samples)

    @property
    def speed_summary(self) -> SampleSummary:
        return summarize(self.speed_samples)

    @property
    def loss_percent(self) -> Optional[float]:
        return loss_percent(self.total_packets_sent, self.total_packets_received)

    def to_dict(self) -> Dict:
        """Plain structure for JSON output"""
        data = {
            'host': self.host,
            'port': self.port,
            'probe_size': self.probe_size,
            'rounds': [
                {
                    'index': r.index,
                    'rtt_ms': r.rtt_ms,
                    'packets_sent': r.packets_sent,
                    'packets_received': r.packets_received,
                    'target_rate': r.target_rate,
                    'speed_mbps': r.speed_mbps,
                }
                for r in self.rounds
            ],
            'total_packets_sent': self.total_packets_sent,
            'total_packets_received': self.total_packets_received,
            'loss_percent': self.loss_percent,
        }
        if self.rounds:
            data['rtt_ms'] = _summary_dict(self.rtt_summary)
            data['speed_mbps'] = _summary_dict(self.speed_summary)
        return data


def _summary_dict(summary: SampleSummary) -> Dict[str, float]:
    return {
        'min': summary.minimum,
        'max': summary.maximum,
        'mean': summary.mean,
        'std_dev': summary.std_dev,
    }
