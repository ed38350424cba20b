from __future__ import annotations

import math
from typing import Sequence

from vidsheet.models import SceneChange

REPRESENTATIVE_OFFSET_RATIO = 0.35
MIN_SEGMENT_SECONDS = 0.5
BOUNDARY_GUARD_SECONDS = 0.5
POINT_DEDUP_SECONDS = 0.1
END_GUARD_SECONDS = 0.1

Segment = tuple[float, float]


def select_timestamps(
    duration: float,
    scene_changes: Sequence[SceneChange],
    count: int,
    offset_ratio: float = REPRESENTATIVE_OFFSET_RATIO,
) -> list[float]:
    """Pick exactly ``count`` representative timestamps from scene segments.

    Pipeline:
    1) split [0, duration] at the scene changes, dropping sub-0.5s segments
    2) too many segments: keep ``count`` of them evenly spaced by index
    3) too few segments: bisect the longest one until there are ``count``
    4) sample each segment at ``offset_ratio`` of its length, away from the cut
    5) spread any samples the end guard pushed onto each other
    """

    if count <= 0 or duration <= 0:
        return []

    segments = build_segments(duration, scene_changes)
    if len(segments) > count:
        segments = select_evenly(segments, count)
    elif len(segments) < count:
        segments = split_longest_segments(segments, count)

    timestamps = [
        representative_time(start, end, duration, offset_ratio=offset_ratio)
        for start, end in segments[:count]
    ]
    return spread_clamped_tail(timestamps, duration)


def build_segments(duration: float, scene_changes: Sequence[SceneChange]) -> list[Segment]:
    points = sorted([0.0, *(scene.timestamp for scene in scene_changes), duration])

    unique_points: list[float] = []
    for point in points:
        if unique_points and abs(point - unique_points[-1]) < POINT_DEDUP_SECONDS:
            continue
        unique_points.append(point)

    segments = [
        (start, end)
        for start, end in zip(unique_points, unique_points[1:])
        if end - start >= MIN_SEGMENT_SECONDS
    ]
    if not segments and duration > 0:
        # shorter than one minimum segment; keep the whole video as the only segment
        segments = [(0.0, duration)]
    return segments


def select_evenly(segments: Sequence[Segment], count: int) -> list[Segment]:
    if not segments or count <= 0:
        return []

    step = (len(segments) - 1) / max(count - 1, 1)
    last_index = len(segments) - 1
    return [segments[min(_round_half_up(i * step), last_index)] for i in range(count)]


def split_longest_segments(segments: Sequence[Segment], target_count: int) -> list[Segment]:
    result = list(segments)
    if not result:
        return result

    while len(result) < target_count:
        # ties go to the last of equally long segments
        longest_index = max(reversed(range(len(result))), key=lambda idx: result[idx][1] - result[idx][0])
        start, end = result[longest_index]
        midpoint = (start + end) / 2.0
        result[longest_index : longest_index + 1] = [(start, midpoint), (midpoint, end)]

    return sorted(result, key=lambda segment: segment[0])


def representative_time(
    start: float,
    end: float,
    duration: float,
    offset_ratio: float = REPRESENTATIVE_OFFSET_RATIO,
) -> float:
    segment_length = end - start
    offset = min(max(segment_length * offset_ratio, BOUNDARY_GUARD_SECONDS), segment_length - BOUNDARY_GUARD_SECONDS)
    timestamp = start + max(offset, 0.0)
    return max(min(timestamp, duration - END_GUARD_SECONDS), 0.0)


def spread_clamped_tail(timestamps: Sequence[float], duration: float) -> list[float]:
    """Keep timestamps strictly increasing and below ``duration``.

    Only the end guard can make neighbours collide, and only at the tail, so
    the tail from the first collision is redistributed evenly between the
    last distinct sample and ``duration``.
    """

    result = list(timestamps)
    for index in range(1, len(result)):
        if result[index] > result[index - 1]:
            continue
        anchor = result[index - 1]
        remaining = len(result) - index
        step = (duration - anchor) / (remaining + 1)
        result[index:] = [anchor + step * (offset + 1) for offset in range(remaining)]
        break
    return result


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
