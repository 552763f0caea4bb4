import pytest

from memorypipe.services.confidence import score


def test_fast_and_small_is_high_confidence():
    assert score(0, 0) == 1.0


def test_at_or_beyond_ceilings_is_zero():
    assert score(10000, 1000) == 0.0
    assert score(60000, 50000) == 0.0


def test_average_of_components():
    # latency 1000ms -> 0.9, 200 tokens -> 0.8
    assert score(1000, 200) == pytest.approx(0.85)


def test_monotonic_non_increasing():
    latencies = [0, 500, 2500, 9000, 12000]
    tokens = [0, 100, 400, 999, 5000]

    by_latency = [score(lat, 100) for lat in latencies]
    by_tokens = [score(500, tok) for tok in tokens]

    assert by_latency == sorted(by_latency, reverse=True)
    assert by_tokens == sorted(by_tokens, reverse=True)
    assert all(0.0 <= s <= 1.0 for s in by_latency + by_tokens)


def test_custom_ceilings():
    assert score(500, 50, latency_ceiling_ms=1000, token_ceiling=100) == pytest.approx(0.5)
    with pytest.raises(ValueError):
        score(1, 1, latency_ceiling_ms=0)
