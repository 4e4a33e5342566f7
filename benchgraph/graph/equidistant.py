"""Day-equidistant x coordinates.

When many commits are made on the same day, plotting them at their exact
committer time clusters the points. This transform spreads each day's commits
evenly across that day instead, keeping their display order.
"""

from typing import List, Sequence

SECONDS_PER_DAY = 24 * 60 * 60


def day_equidistant(timestamps: Sequence[int]) -> List[float]:
    """Compute day-equidistant coordinates for display-ordered timestamps.

    Consecutive timestamps on the same day (``timestamp // SECONDS_PER_DAY``,
    same epoch and timezone as the timestamps) form a run. Commit ``i`` of a
    run of ``k`` commits starting at day-start ``T`` is placed at
    ``T + SECONDS_PER_DAY / k * (i + 0.5)``.

    Args:
        timestamps: Committer timestamps in display order

    Returns:
        Coordinates with the same length and order as ``timestamps``
    """
    result: List[float] = []
    n = len(timestamps)
    start = 0

    while start < n:
        day = timestamps[start] // SECONDS_PER_DAY
        end = start + 1
        while end < n and timestamps[end] // SECONDS_PER_DAY == day:
            end += 1

        k = end - start
        day_start = day * SECONDS_PER_DAY
        step = SECONDS_PER_DAY / k
        result.extend(day_start + step * (i + 0.5) for i in range(k))
        start = end

    return result
