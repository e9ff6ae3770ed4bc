#!/usr/bin/env python3
"""
Loss-driven send rate search for the meter

Algorithm: "Double while clean, fall back halfway on loss"
- No loss: remember the current rate as known-good, then double it
- Loss: move to the midpoint between the last known-good rate and the current one

The search never converges. Every loss-free round doubles again, so the
rate keeps oscillating around the loss threshold of the path.
"""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Seed values (packets/sec)
INITIAL_RATE = 10_000
INITIAL_PREVIOUS_RATE = 100


@dataclass(frozen=True)
class RateState:
    """Target send rate in packets/sec plus the last rate that saw no loss"""
    current_rate: float
    previous_rate: float

    def __post_init__(self):
        if self.current_rate <= 0 or self.previous_rate <= 0:
            raise ValueError(f"Rates must be positive, got {self.current_rate}/{self.previous_rate}")

    @property
    def gap_us(self) -> float:
        """Inter-packet gap for a paced burst at current_rate"""
        return 1_000_000 / self.current_rate


def next_rate_state(state: RateState, loss_occurred: bool) -> RateState:
    """
    Compute the rate for the next round

    Args:
        state: Rate state used for the round that just finished
        loss_occurred: True if the reflector counted fewer packets than were sent

    Returns:
        New RateState (the input is never modified)
    """
    if loss_occurred:
        # Back off toward the last known-good rate, not a full halving
        return RateState(
            current_rate=(state.previous_rate + state.current_rate) / 2,
            previous_rate=state.previous_rate,
        )

    return RateState(
        current_rate=state.current_rate * 2,
        previous_rate=state.current_rate,
    )


def loss_detected(packets_sent: int, packets_received: int) -> bool:
    return packets_received < packets_sent
