#!/usr/bin/env python3
"""
Test for the loss-driven rate search

Tests the formula:
- No loss: previous <- current, current <- current × 2  [Multiplicative probe-forward]
- Loss:    current <- (previous + current) / 2          [Averaging back-off]
"""

import pytest

from mtrip.controller.rate_controller import (
    INITIAL_PREVIOUS_RATE, INITIAL_RATE, RateState, loss_detected, next_rate_state,
)


def test_seed_values():
    """Test the search starts from the documented seeds"""
    assert INITIAL_RATE == 10_000
    assert INITIAL_PREVIOUS_RATE == 100
    print("✓ Test 1: Seeds are 10000 / 100 pps")


def test_clean_round_doubles():
    """Test multiplicative increase when nothing was lost"""
    result = next_rate_state(RateState(10_000, 100), loss_occurred=False)
    assert result == RateState(current_rate=20_000, previous_rate=10_000)
    print("✓ Test 2: Clean round (10000 pps) -> 20000 pps, known-good 10000")


def test_loss_averages_back():
    """Test back-off to the midpoint of known-good and current rate"""
    state = next_rate_state(RateState(10_000, 100), loss_occurred=False)
    result = next_rate_state(state, loss_occurred=True)
    # (10000 + 20000) / 2 = 15000
    assert result.current_rate == 15_000
    assert result.previous_rate == 10_000
    print("✓ Test 3: Loss at 20000 pps -> 15000 pps, known-good stays 10000")


def test_loss_is_not_a_full_halving():
    """Test the back-off lands above half of the current rate"""
    result = next_rate_state(RateState(40_000, 20_000), loss_occurred=True)
    assert result.current_rate == 30_000
    assert result.current_rate > 40_000 / 2
    print("✓ Test 4: Back-off (40000 pps) -> 30000 pps, not 20000")


def test_search_keeps_oscillating():
    """Test the search doubles again after recovering instead of settling"""
    state = RateState(INITIAL_RATE, INITIAL_PREVIOUS_RATE)
    # Path with a ceiling around 25000 pps
    trace = []
    for _ in range(8):
        loss = state.current_rate > 25_000
        state = next_rate_state(state, loss)
        trace.append(state.current_rate)

    assert trace == [20_000, 40_000, 30_000, 25_000, 50_000, 37_500, 31_250, 28_125]
    print(f"✓ Test 5: Rate trace oscillates around the ceiling: {trace}")


def test_input_state_untouched():
    """Test the update is pure"""
    state = RateState(10_000, 100)
    next_rate_state(state, loss_occurred=False)
    next_rate_state(state, loss_occurred=True)
    assert state == RateState(10_000, 100)
    print("✓ Test 6: Input state is immutable")


def test_gap_from_rate():
    """Test inter-packet gap in microseconds"""
    assert RateState(10_000, 100).gap_us == 100
    assert RateState(1_000, 100).gap_us == 1_000
    print("✓ Test 7: 10000 pps -> 100us gap")


def test_rates_must_be_positive():
    with pytest.raises(ValueError):
        RateState(0, 100)
    with pytest.raises(ValueError):
        RateState(100, -1)


def test_loss_detection():
    assert loss_detected(packets_sent=1000, packets_received=999)
    assert not loss_detected(packets_sent=1000, packets_received=1000)
    # Duplicates are not loss
    assert not loss_detected(packets_sent=1000, packets_received=1001)


if __name__ == '__main__':
    print("=" * 60)
    print("Rate Search Algorithm Tests")
    print("Formula: Clean → ×2 | Loss → (previous + current) / 2")
    print("=" * 60)

    test_seed_values()
    test_clean_round_doubles()
    test_loss_averages_back()
    test_loss_is_not_a_full_halving()
    test_search_keeps_oscillating()
    test_input_state_untouched()
    test_gap_from_rate()

    print("=" * 60)
    print("All tests passed! ✓")
    print("=" * 60)
