from __future__ import annotations

import numpy as np
import pytest

from os3000.interpolation import (
    EDGE_TRIM,
    Kernel,
    build_keys,
    interpolate,
    moving_average_filter,
    resample_for_display,
)


def _trace(n: int = 1000) -> np.ndarray:
    x = np.arange(n, dtype=float)
    return np.sin(x / 40.0) * 3.0


@pytest.mark.parametrize("kernel", list(Kernel))
@pytest.mark.parametrize("num_samples", [9, 500, 1009, 1500, 2048])
@pytest.mark.parametrize("step", [1, 2, 5])
def test_every_kernel_returns_exact_length(kernel, num_samples, step) -> None:
    out = interpolate(_trace(), num_samples, 1.0, step, kernel)
    assert out.shape == (num_samples,)
    assert np.all(np.isfinite(out))


@pytest.mark.parametrize("kernel", list(Kernel))
def test_tail_is_padded_with_last_value(kernel) -> None:
    num_samples = 1200
    out = interpolate(_trace(), num_samples, 0.5, 2, kernel)
    tail = out[num_samples - 2 * EDGE_TRIM :]
    assert np.all(tail == tail[0])


def test_linear_resample_to_same_length_is_shifted_identity() -> None:
    source = _trace()
    out = interpolate(source, source.size, 1.0, 1, Kernel.LINEAR)
    interior = source.size - 2 * EDGE_TRIM
    assert np.allclose(out[:interior], source[EDGE_TRIM : EDGE_TRIM + interior])


def test_linear_preserves_monotonic_increase() -> None:
    source = np.cumsum(np.linspace(0.1, 2.0, 800))
    for num_samples in (1009, 1600, 3000):
        out = interpolate(source, num_samples, 2.0, 3, Kernel.LINEAR)
        interior = out[: num_samples - 2 * EDGE_TRIM]
        assert np.all(np.diff(interior) >= 0.0)


def test_linear_reproduces_a_ramp() -> None:
    source = np.arange(1000, dtype=float)
    out = interpolate(source, 2000, 1.0, 1, Kernel.LINEAR)
    query = (1.0 / 100.0) * np.arange(EDGE_TRIM, 2000 - EDGE_TRIM) / 2.0
    assert np.allclose(out[: 2000 - 2 * EDGE_TRIM], query * 100.0)


@pytest.mark.parametrize("kernel", list(Kernel))
def test_constant_trace_stays_constant(kernel) -> None:
    out = interpolate(np.full(600, 2.5), 1009, 1.0, 2, kernel)
    assert np.allclose(out, 2.5)


@pytest.mark.parametrize("kernel", [Kernel.LINEAR, Kernel.COSINE])
def test_convex_kernels_stay_within_source_range(kernel) -> None:
    source = _trace()
    out = interpolate(source, 1500, 1.0, 4, kernel)
    assert out.min() >= source.min() - 1e-12
    assert out.max() <= source.max() + 1e-12


def test_bezier_keys_use_next_sample_as_control() -> None:
    samples = np.array([0.0, 1.0, 4.0, 9.0, 16.0, 25.0])
    spline = build_keys(samples, 1.0, 1, Kernel.BEZIER)
    assert np.allclose(spline.values, [0.0, 4.0, 16.0])
    assert np.allclose(spline.controls, [1.0, 9.0, 25.0])


def test_bezier_variant_keys_use_pair_average_as_control() -> None:
    samples = np.array([0.0, 1.0, 4.0, 9.0])
    spline = build_keys(samples, 1.0, 1, Kernel.BEZIER_VARIANT)
    assert np.allclose(spline.values, [0.0, 1.0, 4.0])
    assert np.allclose(spline.controls, [0.5, 2.5, 6.5])


def test_cosine_and_catmull_keys_are_offset_by_one_index() -> None:
    samples = np.arange(10, dtype=float)
    cosine = build_keys(samples, 1.0, 2, Kernel.COSINE)
    linear = build_keys(samples, 1.0, 2, Kernel.LINEAR)
    assert np.allclose(cosine.times - linear.times, 0.01)


def test_catmull_rom_is_undefined_next_to_the_ends() -> None:
    spline = build_keys(np.arange(6, dtype=float), 100.0, 1, Kernel.CATMULL_ROM)
    values, defined = spline.clamped_sample(np.array([1.5, 2.5, 3.5, 5.5, 6.0, 0.5]))
    assert defined.tolist() == [False, True, True, False, True, True]
    assert values[4] == 5.0
    assert values[5] == 0.0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"num_samples": 8, "time_per_division": 1.0, "step": 1},
        {"num_samples": 100, "time_per_division": 1.0, "step": 0},
        {"num_samples": 100, "time_per_division": 0.0, "step": 1},
    ],
)
def test_interpolate_rejects_bad_arguments(kwargs) -> None:
    with pytest.raises(ValueError):
        interpolate(_trace(), **kwargs)


def test_kernel_parse_accepts_names() -> None:
    assert Kernel.parse("catmull-rom") is Kernel.CATMULL_ROM
    assert Kernel.parse("Bezier_Variant") is Kernel.BEZIER_VARIANT
    with pytest.raises(ValueError):
        Kernel.parse("spline")


def test_resample_for_display_length() -> None:
    out = resample_for_display(_trace(), 1200, 1.0, kernel="catmull_rom", step=2)
    assert out.shape == (1200,)


def test_moving_average_centered_padding() -> None:
    out = moving_average_filter([1.0, 2.0, 3.0, 4.0, 5.0], 3)
    assert np.allclose(out, [2.0, 2.0, 3.0, 4.0, 4.0])


def test_moving_average_even_window_pads_front_first() -> None:
    out = moving_average_filter([1.0, 2.0, 3.0, 4.0], 2)
    assert np.allclose(out, [1.5, 1.5, 2.5, 3.5])


def test_moving_average_keeps_length_of_long_trace() -> None:
    source = _trace(997)
    for window in (1, 4, 25):
        out = moving_average_filter(source, window)
        assert out.size == source.size
    assert np.allclose(moving_average_filter(source, 1), source)


def test_moving_average_rejects_bad_window() -> None:
    with pytest.raises(ValueError):
        moving_average_filter([1.0, 2.0], 0)
    with pytest.raises(ValueError):
        moving_average_filter([1.0, 2.0], 3)


def test_resample_for_display_prepass_points() -> None:
    source = np.arange(1000, dtype=float)
    default = resample_for_display(source, 1000, 1.0)
    explicit = resample_for_display(source, 1000, 1.0, prepass_points=2000)
    assert np.allclose(default, explicit)
    coarse = resample_for_display(source, 1000, 1.0, prepass_points=500)
    assert coarse.shape == (1000,)
    assert not np.allclose(coarse, default)
