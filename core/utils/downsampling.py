"""
Pixel-budget downsampling for plot data

A chart can't show more points than it has horizontal pixels, so long,
dense ranges are reduced to at most one raw sample per pixel bucket.
Sparse or zoomed-in views are returned untouched.
"""

from bisect import bisect_left, bisect_right
from datetime import datetime, timedelta

from core.models.timeseries import Sample

# Ranges at or below this span are never reduced
MIN_REDUCE_SPAN = timedelta(hours=6)


def downsample(
    samples: list[Sample], begin: datetime, end: datetime, pixels: int = 1200
) -> list[Sample]:
    """
    Reduce raw samples to a pixel budget

    Applies only when len(samples) > pixels and the span exceeds 6 hours.
    [begin, end] is split into `pixels` equal buckets (the last one closed on
    end); each bucket keeps the last raw sample inside it. Buckets are
    evaluated into a pre-sized, index-addressed list, so the survivors are
    already in time order. If the result does not end on `end`, the true last
    raw sample is appended when it is later than the last survivor.

    Args:
        samples: Raw samples sorted by time ASC
        begin: Range start
        end: Range end
        pixels: Horizontal pixel budget

    Returns:
        The raw list itself when no reduction applies, else a new list of at
        most pixels + 1 samples

    Raises:
        ValueError: If pixels is not positive
    """
    if pixels <= 0:
        raise ValueError(f"Pixel budget must be > 0, got {pixels}")
    if len(samples) <= pixels or end - begin <= MIN_REDUCE_SPAN:
        return samples

    times = [s.time for s in samples]
    width = (end - begin) / pixels

    def last_in_bucket(i: int) -> Sample | None:
        lo = bisect_left(times, begin + i * width)
        if i == pixels - 1:
            hi = bisect_right(times, end)
        else:
            hi = bisect_left(times, begin + (i + 1) * width)
        return samples[hi - 1] if hi > lo else None

    buckets = [last_in_bucket(i) for i in range(pixels)]
    plot = [s for s in buckets if s is not None]

    last = samples[-1]
    if plot and plot[-1].time != end and last.time > plot[-1].time:
        plot.append(last)
    return plot
