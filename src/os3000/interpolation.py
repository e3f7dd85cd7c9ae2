"""
Resampling of captured traces to an arbitrary number of display points.

Every kernel follows the same recipe: decimate the source into timestamped
control points, fit a spline through them, sample the spline at ``N - 8``
query times (indices 4 .. N-4) and pad the tail with the last produced value
so the result is exactly ``N`` long. The kernels only differ in how the
control points are derived and how a segment is evaluated.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .processing import scale_time

# Query indices [EDGE_TRIM, N - EDGE_TRIM) are sampled; the rest is padding.
EDGE_TRIM = 4
# Query times are normalised against a 1000 point trace.
BASELINE_POINTS = 1000.0


class Kernel(str, enum.Enum):
    LINEAR = "linear"
    COSINE = "cosine"
    CATMULL_ROM = "catmull_rom"
    BEZIER = "bezier"
    BEZIER_VARIANT = "bezier_variant"

    @classmethod
    def parse(cls, value: "str | Kernel") -> "Kernel":
        if isinstance(value, Kernel):
            return value
        key = str(value).strip().lower().replace("-", "_")
        try:
            return cls(key)
        except ValueError as exc:
            raise ValueError(f"Unknown kernel '{value}'. Expected one of {[k.value for k in cls]}") from exc


@dataclass
class Spline:
    """Control points sorted by time plus an optional Bézier control value per key."""

    kernel: Kernel
    times: np.ndarray
    values: np.ndarray
    controls: Optional[np.ndarray] = None

    def clamped_sample(self, query: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """
        Evaluate the spline at every query time.

        Returns ``(values, defined)``. Queries before the first key or at/after
        the last key take that key's value. Interior queries the kernel cannot
        evaluate (Catmull-Rom next to either end) are flagged undefined.
        """
        query = np.asarray(query, dtype=float)
        out = np.zeros(query.shape, dtype=float)
        defined = np.zeros(query.shape, dtype=bool)
        count = self.times.size
        if count == 0:
            return out, defined

        lower = np.searchsorted(self.times, query, side="right") - 1
        inside = (lower >= 0) & (lower < count - 1)
        if self.kernel is Kernel.CATMULL_ROM:
            inside &= (lower >= 1) & (lower < count - 2)
        idx = lower[inside]
        if idx.size:
            out[inside] = self._evaluate(idx, query[inside])
            defined[inside] = True

        before = ~inside & (query <= self.times[0])
        after = ~inside & ~before & (query >= self.times[-1])
        out[before] = self.values[0]
        out[after] = self.values[-1]
        defined |= before | after
        return out, defined

    def _evaluate(self, idx: np.ndarray, t: np.ndarray) -> np.ndarray:
        t0 = self.times[idx]
        t1 = self.times[idx + 1]
        a = self.values[idx]
        b = self.values[idx + 1]
        nt = (t - t0) / (t1 - t0)

        if self.kernel is Kernel.LINEAR:
            return _lerp(nt, a, b)
        if self.kernel is Kernel.COSINE:
            return _lerp((1.0 - np.cos(nt * np.pi)) * 0.5, a, b)
        if self.kernel is Kernel.CATMULL_ROM:
            tm = self.times[idx - 1]
            tp = self.times[idx + 2]
            vm = self.values[idx - 1]
            vp = self.values[idx + 2]
            t2 = nt * nt
            t3 = t2 * nt
            two_t = nt * 2.0
            two_t2 = nt * two_t
            two_t3 = t2 * two_t
            three_t2 = nt * (nt * 3.0)
            m0 = (b - vm) / (t1 - tm) * (t1 - t0)
            m1 = (vp - a) / (tp - t0) * (t1 - t0)
            return (
                a * (two_t3 - three_t2 + 1.0)
                + m0 * (t3 - two_t2 + nt)
                + b * (three_t2 - two_t3)
                + m1 * (t3 - t2)
            )
        assert self.controls is not None
        # Both Bézier kernels mirror the next key's control point around that key.
        u = self.controls[idx]
        v = b + b - self.controls[idx + 1]
        one_t = 1.0 - nt
        one_t2 = one_t * one_t
        t2 = nt * nt
        return a * (one_t2 * one_t) + (u * one_t2 * nt + v * one_t * t2) * 3.0 + b * t2 * nt


def _lerp(t: np.ndarray, a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return a * (1.0 - t) + b * t


def build_keys(samples: np.ndarray, time_per_division: float, step: int, kernel: Kernel) -> Spline:
    """Decimate ``samples`` into the control points used by ``kernel``."""
    n = samples.size
    if kernel is Kernel.LINEAR:
        idx = np.arange(0, n, step)
        return Spline(kernel, _key_times(idx, time_per_division), samples[idx])
    if kernel in (Kernel.COSINE, Kernel.CATMULL_ROM):
        idx = np.arange(0, n, step)
        return Spline(kernel, _key_times(idx + 1, time_per_division), samples[idx])
    if kernel is Kernel.BEZIER:
        idx = np.arange(0, max(n - 1, 0), step + 1)
        controls = samples[idx + 1]
    else:
        idx = np.arange(0, max(n - 1, 0), step)
        controls = (samples[idx] + samples[idx + 1]) / 2.0
    return Spline(kernel, _key_times(idx, time_per_division), samples[idx], controls)


def _key_times(idx: np.ndarray, time_per_division: float) -> np.ndarray:
    return scale_time(idx.astype(float), time_per_division, 1.0)


def interpolate(
    samples: Sequence[float] | np.ndarray,
    num_samples: int,
    time_per_division: float,
    step: int = 1,
    kernel: Kernel | str = Kernel.LINEAR,
) -> np.ndarray:
    """Resample ``samples`` to exactly ``num_samples`` points with the chosen kernel."""
    kernel = Kernel.parse(kernel)
    if num_samples <= 2 * EDGE_TRIM:
        raise ValueError(f"num_samples must be greater than {2 * EDGE_TRIM}, got {num_samples}")
    if step < 1:
        raise ValueError(f"step must be >= 1, got {step}")
    if time_per_division <= 0:
        raise ValueError(f"time_per_division must be positive, got {time_per_division}")
    source = np.asarray(samples, dtype=float)
    if source.ndim != 1 or source.size == 0:
        raise ValueError("samples must be a non-empty 1-D sequence")

    spline = build_keys(source, time_per_division, step, kernel)
    positions = np.arange(EDGE_TRIM, num_samples - EDGE_TRIM)
    query = scale_time(positions.astype(float), time_per_division, 1.0) / (num_samples / BASELINE_POINTS)
    values, defined = spline.clamped_sample(query)
    produced = values[defined]
    if produced.size == 0:
        raise ValueError(f"{kernel.value} spline produced no samples from {source.size} source points")
    if produced.size < num_samples:
        padding = np.full(num_samples - produced.size, produced[-1])
        produced = np.concatenate([produced, padding])
    return produced


def resample_for_display(
    samples: Sequence[float] | np.ndarray,
    points: int,
    time_per_division: float,
    *,
    kernel: Kernel | str = Kernel.LINEAR,
    step: int = 2,
    prepass_step: int = 1,
    prepass_points: Optional[int] = None,
) -> np.ndarray:
    """
    Linear pre-pass to ``prepass_points`` (twice the source length by default),
    then the selected kernel to ``points``.
    """
    source = np.asarray(samples, dtype=float)
    if prepass_points is None:
        prepass_points = source.size * 2
    dense = interpolate(source, prepass_points, time_per_division, prepass_step, Kernel.LINEAR)
    return interpolate(dense, points, time_per_division, step, kernel)


def moving_average_filter(samples: Sequence[float] | np.ndarray, window_size: int) -> np.ndarray:
    """
    Running mean over ``window_size`` samples, kept the same length as the input
    by repeating the first and last mean at alternating ends.
    """
    source = np.asarray(samples, dtype=float)
    if window_size < 1:
        raise ValueError(f"window_size must be >= 1, got {window_size}")
    if source.size == 0:
        return source.copy()
    if window_size > source.size:
        raise ValueError(f"window_size {window_size} exceeds sample count {source.size}")

    sums = np.cumsum(np.concatenate([[0.0], source]))
    means = (sums[window_size:] - sums[:-window_size]) / window_size

    missing = source.size - means.size
    front = (missing + 1) // 2
    back = missing - front
    return np.concatenate([np.full(front, means[0]), means, np.full(back, means[-1])])
