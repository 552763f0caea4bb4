from __future__ import annotations


def _component(value: float, ceiling: float) -> float:
    if ceiling <= 0:
        raise ValueError("ceiling must be positive")
    return max(0.0, 1.0 - max(0.0, float(value)) / float(ceiling))


def score(
    latency_ms: float,
    total_tokens: int,
    *,
    latency_ceiling_ms: float = 10000.0,
    token_ceiling: int = 1000,
) -> float:
    """
    Heuristic quality proxy for a completed generation, in [0, 1].

    Latency and token volume each map linearly onto [0, 1] (0 at or beyond their ceiling),
    and the two components are averaged. Non-increasing in both inputs.
    """
    latency_score = _component(latency_ms, latency_ceiling_ms)
    token_score = _component(total_tokens, token_ceiling)
    return min(1.0, max(0.0, (latency_score + token_score) / 2.0))
