import random

import pytest

from bucketbridge.transition import (
    FAIL,
    SUCCESS,
    BucketState,
    expiry_seconds,
    refill,
    transition,
)

NOW = 1_700_000_000_000
CAPACITY = 200
RATE = 100  # tokens per minute


def test_unseen_bucket_is_full():
    result = transition(None, CAPACITY, 0, RATE, NOW)

    assert result.admitted is True
    assert result.tokens == CAPACITY
    assert result.state == BucketState(CAPACITY, NOW)
    assert result.expires_in == 0


def test_consume_from_fresh_bucket():
    result = transition(None, CAPACITY, 10, RATE, NOW)

    assert result.outcome == SUCCESS
    assert result.tokens == 190
    # 10 missing tokens at 100/min take 6 seconds to come back
    assert 6 <= result.expires_in <= 7


def test_peek_refills_elapsed_time():
    stored = BucketState(100.0, NOW - 30_000)

    result = transition(stored, CAPACITY, 0, RATE, NOW)

    assert result.tokens == pytest.approx(150)
    assert result.state.last_refilled_at == NOW


def test_denied_when_cost_exceeds_fresh_bucket():
    result = transition(None, CAPACITY, 201, RATE, NOW)

    assert result.outcome == FAIL
    assert result.tokens == CAPACITY
    # a full bucket needs no record at all
    assert result.expires_in == 0


def test_denial_keeps_refill_and_moves_clock():
    stored = BucketState(100.0, NOW - 30_000)

    result = transition(stored, CAPACITY, 160, RATE, NOW)

    assert result.admitted is False
    assert result.tokens == pytest.approx(150)
    assert result.state.tokens == pytest.approx(150)
    assert result.state.last_refilled_at == NOW
    assert result.expires_in == expiry_seconds(result.tokens, CAPACITY, RATE)


def test_exact_cost_drains_to_zero():
    stored = BucketState(100.0, NOW - 12_345)
    available = refill(stored.tokens, stored.last_refilled_at, CAPACITY, RATE, NOW)

    result = transition(stored, CAPACITY, available, RATE, NOW)

    assert result.admitted is True
    assert result.tokens == 0.0


def test_refill_is_capped_at_capacity():
    stored = BucketState(199.0, NOW - 3_600_000)

    assert refill(stored.tokens, stored.last_refilled_at, CAPACITY, RATE, NOW) == CAPACITY


def test_backwards_clock_does_not_lose_tokens():
    stored = BucketState(120.0, NOW)

    result = transition(stored, CAPACITY, 0, RATE, NOW - 5_000)

    assert result.tokens == 120.0
    assert result.state.last_refilled_at == NOW


def test_expiry_counts_from_stored_timestamp_under_skew():
    stored = BucketState(120.0, NOW)
    behind = NOW - 5_000

    result = transition(stored, CAPACITY, 0, RATE, behind)

    # 80 missing tokens take 48s, starting 5s ahead of the caller's clock
    assert 53 <= result.expires_in <= 54
    at_expiry = transition(
        result.state, CAPACITY, 0, RATE, behind + result.expires_in * 1000
    )
    assert at_expiry.tokens == pytest.approx(CAPACITY)


def test_full_bucket_has_no_expiry_even_under_skew():
    assert expiry_seconds(CAPACITY, CAPACITY, RATE, lead_ms=10_000) == 0


def test_refill_is_monotonic_without_consumption():
    state = transition(None, CAPACITY, 150, RATE, NOW).state
    seen = []
    for offset in (1_000, 5_000, 20_000, 45_000, 120_000):
        seen.append(transition(state, CAPACITY, 0, RATE, NOW + offset).tokens)

    assert seen == sorted(seen)
    assert seen[-1] == CAPACITY


def test_tokens_stay_within_bounds():
    rng = random.Random(7)
    state = None
    now = NOW
    for _ in range(500):
        now += rng.randint(0, 2_000)
        cost = rng.choice([0, 1, 5, 25, 80, 250]) * rng.random()
        result = transition(state, CAPACITY, cost, RATE, now)
        assert 0 <= result.tokens <= CAPACITY
        state = result.state


def test_record_expires_when_bucket_is_full_again():
    result = transition(None, CAPACITY, 37.5, RATE, NOW)
    expired_at = NOW + result.expires_in * 1000

    later = transition(result.state, CAPACITY, 0, RATE, expired_at)

    assert later.tokens == pytest.approx(CAPACITY)


def test_expiry_is_recomputed_from_latest_state():
    first = transition(None, CAPACITY, 100, RATE, NOW)
    second = transition(first.state, CAPACITY, 0, RATE, NOW + 30_000)

    assert second.expires_in < first.expires_in
    assert second.expires_in == expiry_seconds(second.tokens, CAPACITY, RATE)
