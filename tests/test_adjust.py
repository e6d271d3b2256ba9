"""Unit tests for alpaca_imaging.imaging.adjust and colormaps.

Covers AdjustmentParams validation, the gamma lookup table, the
levels/brightness/contrast arithmetic, preview strides and colour maps.
"""

from __future__ import annotations

import math

import numpy as np
import pytest

from alpaca_imaging.imaging.adjust import (
    AdjustmentParams,
    adjusted_values,
    apply_adjustments,
    build_gamma_lut,
)
from alpaca_imaging.imaging.colormaps import ColorMap, apply_color_map, color_map_table
from alpaca_imaging.imaging.frame import NormalizedCache


def _cache(pixels) -> NormalizedCache:
    array = np.asarray(pixels, dtype=np.uint8)
    array.setflags(write=False)
    return NormalizedCache(width=array.shape[1], height=array.shape[0], pixels=array)


@pytest.fixture
def gradient() -> NormalizedCache:
    """16x16 cache holding every byte value once."""
    return _cache(np.arange(256).reshape(16, 16))


class TestAdjustmentParams:
    """Validation and copying of AdjustmentParams."""

    def test_defaults_are_neutral(self) -> None:
        params = AdjustmentParams()

        assert params.contrast == 1.0
        assert params.brightness == 0.0
        assert params.gamma == 1.0
        assert params.color_map is ColorMap.GRAYSCALE
        assert (params.black_point, params.white_point) == (0.0, 100.0)
        assert params.auto_stretch is False

    @pytest.mark.parametrize(
        ("changes", "match"),
        [
            ({"gamma": 0}, "gamma"),
            ({"gamma": -1.0}, "gamma"),
            ({"contrast": -0.1}, "contrast"),
            ({"black_point": 50, "white_point": 50}, "black_point"),
            ({"black_point": -1}, "black_point"),
            ({"white_point": 101}, "white_point"),
        ],
    )
    def test_invalid_values_raise(self, changes, match) -> None:
        with pytest.raises(ValueError, match=match):
            AdjustmentParams(**changes)

    @pytest.mark.parametrize(
        "field", ["contrast", "brightness", "gamma", "black_point", "white_point"]
    )
    @pytest.mark.parametrize("value", [math.inf, -math.inf, math.nan])
    def test_non_finite_values_raise(self, field, value) -> None:
        with pytest.raises(ValueError, match=f"{field} must be finite"):
            AdjustmentParams(**{field: value})

    def test_color_map_accepts_string(self) -> None:
        assert AdjustmentParams(color_map="viridis").color_map is ColorMap.VIRIDIS

    def test_unknown_color_map_raises(self) -> None:
        with pytest.raises(ValueError):
            AdjustmentParams(color_map="rainbow")

    def test_with_changes_revalidates(self) -> None:
        params = AdjustmentParams(gamma=2.0)

        assert params.with_changes(contrast=1.5).gamma == 2.0
        with pytest.raises(ValueError):
            params.with_changes(gamma=0)

    def test_to_dict_is_json_friendly(self) -> None:
        data = AdjustmentParams(color_map=ColorMap.HEAT).to_dict()

        assert data["color_map"] == "heat"
        assert set(data) == {
            "contrast",
            "brightness",
            "gamma",
            "color_map",
            "black_point",
            "white_point",
            "auto_stretch",
        }


class TestGammaLut:
    """Tests for build_gamma_lut()."""

    def test_gamma_one_is_identity(self) -> None:
        np.testing.assert_array_equal(build_gamma_lut(1.0), np.arange(256))

    def test_gamma_two_brightens_midtones(self) -> None:
        lut = build_gamma_lut(2.0)

        assert lut[0] == 0
        assert lut[255] == 255
        assert lut[64] == 128

    def test_lut_is_monotonic(self) -> None:
        for gamma in (0.3, 0.5, 2.2, 4.0):
            assert np.all(np.diff(build_gamma_lut(gamma).astype(int)) >= 0)

    def test_lut_is_read_only_and_cached(self) -> None:
        lut = build_gamma_lut(2.2)

        assert not lut.flags.writeable
        assert build_gamma_lut(2.2) is lut

    def test_non_positive_gamma_raises(self) -> None:
        with pytest.raises(ValueError, match="gamma"):
            build_gamma_lut(0.0)


class TestAdjustedValues:
    """Per-pixel arithmetic of adjusted_values()."""

    def test_neutral_params_are_identity(self, gradient) -> None:
        values = adjusted_values(gradient, AdjustmentParams())

        np.testing.assert_array_equal(values, gradient.pixels)

    def test_brightness_offsets_and_clamps(self) -> None:
        cache = _cache([[0, 100, 250]])

        values = adjusted_values(cache, AdjustmentParams(brightness=10))

        assert values.tolist() == [[10, 110, 255]]

    def test_contrast_pivots_on_mid_grey(self) -> None:
        cache = _cache([[28, 128, 228]])

        values = adjusted_values(cache, AdjustmentParams(contrast=2.0))

        assert values.tolist() == [[0, 128, 255]]

    def test_zero_contrast_is_flat_grey(self, gradient) -> None:
        values = adjusted_values(gradient, AdjustmentParams(contrast=0.0))

        assert np.all(values == 128)

    def test_rounding_is_half_up(self) -> None:
        cache = _cache([[1, 3]])

        values = adjusted_values(cache, AdjustmentParams(contrast=0.5, brightness=0))

        # 128 + (1 - 128) * 0.5 = 64.5 and 128 + (3 - 128) * 0.5 = 65.5
        assert values.tolist() == [[65, 66]]

    def test_levels_map_black_and_white_points(self) -> None:
        cache = _cache([[0, 51, 102, 153, 204, 255]])

        values = adjusted_values(
            cache, AdjustmentParams(black_point=20, white_point=60)
        )

        # (v - 51) * 100 / 40, clamped
        assert values.tolist() == [[0, 0, 128, 255, 255, 255]]

    def test_stride_subsamples_rows_and_columns(self, gradient) -> None:
        values = adjusted_values(gradient, AdjustmentParams(), stride=4)

        assert values.shape == (4, 4)
        assert values[1, 1] == gradient.pixels[4, 4]

    def test_stride_rounds_up_partial_blocks(self) -> None:
        cache = _cache(np.zeros((5, 9)))

        assert adjusted_values(cache, AdjustmentParams(), stride=4).shape == (2, 3)

    def test_invalid_stride_raises(self, gradient) -> None:
        with pytest.raises(ValueError, match="stride"):
            adjusted_values(gradient, AdjustmentParams(), stride=0)

    def test_cache_is_never_modified(self, gradient) -> None:
        before = gradient.pixels.copy()

        adjusted_values(gradient, AdjustmentParams(contrast=3, gamma=0.4))

        np.testing.assert_array_equal(gradient.pixels, before)


class TestApplyAdjustments:
    """RGBA rendering through apply_adjustments()."""

    def test_grayscale_replicates_channels(self, gradient) -> None:
        rgba = apply_adjustments(gradient, AdjustmentParams())

        assert rgba.shape == (16, 16, 4)
        assert rgba.dtype == np.uint8
        np.testing.assert_array_equal(rgba[..., 0], gradient.pixels)
        np.testing.assert_array_equal(rgba[..., 1], gradient.pixels)
        np.testing.assert_array_equal(rgba[..., 2], gradient.pixels)
        assert np.all(rgba[..., 3] == 255)

    def test_color_map_applied_after_gamma(self, gradient) -> None:
        params = AdjustmentParams(gamma=2.0, color_map=ColorMap.HEAT)

        rgba = apply_adjustments(gradient, params)

        expected = color_map_table(ColorMap.HEAT)[build_gamma_lut(2.0)[gradient.pixels]]
        np.testing.assert_array_equal(rgba[..., :3], expected)
        assert np.all(rgba[..., 3] == 255)

    def test_empty_cache_gives_empty_raster(self) -> None:
        rgba = apply_adjustments(NormalizedCache.empty(), AdjustmentParams())

        assert rgba.shape == (0, 0, 4)

    def test_pure_function_of_inputs(self, gradient) -> None:
        params = AdjustmentParams(contrast=1.3, brightness=-12, gamma=0.8)

        first = apply_adjustments(gradient, params, stride=2)
        second = apply_adjustments(gradient, params, stride=2)

        np.testing.assert_array_equal(first, second)

    def test_extreme_finite_values_clamp(self, gradient) -> None:
        params = AdjustmentParams(contrast=1e6, brightness=1e9, gamma=1e-6)

        rgba = apply_adjustments(gradient, params)

        assert rgba.shape == (16, 16, 4)
        assert (rgba[..., :3] == 255).all()


class TestColorMaps:
    """Tests for the simplified colour map tables."""

    @pytest.mark.parametrize("color_map", list(ColorMap))
    def test_table_shape(self, color_map) -> None:
        table = color_map_table(color_map)

        assert table.shape == (256, 3)
        assert table.dtype == np.uint8
        assert not table.flags.writeable

    def test_heat_endpoints(self) -> None:
        table = color_map_table(ColorMap.HEAT)

        assert table[0].tolist() == [0, 0, 0]
        assert table[255].tolist() == [255, 255, 255]
        assert table[85].tolist() == [255, 0, 0]

    def test_viridis_endpoints(self) -> None:
        table = color_map_table(ColorMap.VIRIDIS)

        assert table[0].tolist() == [68, 1, 84]
        assert table[255].tolist() == [253, 231, 37]

    def test_plasma_endpoints(self) -> None:
        table = color_map_table(ColorMap.PLASMA)

        assert table[0].tolist() == [13, 8, 135]
        assert table[255].tolist() == [240, 249, 33]

    def test_grayscale_is_identity_ramp(self) -> None:
        table = color_map_table(ColorMap.GRAYSCALE)

        np.testing.assert_array_equal(table[:, 0], np.arange(256))

    def test_apply_color_map_adds_channel_axis(self) -> None:
        values = np.zeros((3, 5), dtype=np.uint8)

        assert apply_color_map(values, ColorMap.VIRIDIS).shape == (3, 5, 3)
