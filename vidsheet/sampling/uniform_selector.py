from __future__ import annotations

import numpy as np

DEFAULT_MARGIN_RATIO = 0.02
EDGE_GUARD_SECONDS = 0.1


def select_uniform_timestamps(duration: float, count: int) -> list[float]:
    """Sample the centre of ``count`` equal slices, skipping a 2% margin at both ends."""

    return select_uniform_timestamps_with_margin(
        duration,
        count,
        start_margin=DEFAULT_MARGIN_RATIO,
        end_margin=DEFAULT_MARGIN_RATIO,
    )


def select_uniform_timestamps_with_margin(
    duration: float,
    count: int,
    start_margin: float,
    end_margin: float,
) -> list[float]:
    """Like :func:`select_uniform_timestamps` with explicit start/end margin ratios."""

    if count <= 0 or duration <= 0:
        return []

    effective_start = duration * start_margin
    effective_span = duration * (1.0 - end_margin) - effective_start
    if effective_span <= 0:
        return [duration / 2.0]

    ratios = (np.arange(count, dtype=float) + 0.5) / count
    timestamps = effective_start + effective_span * ratios
    clipped = np.minimum(np.maximum(timestamps, EDGE_GUARD_SECONDS), duration - EDGE_GUARD_SECONDS)
    return [float(value) for value in clipped]
