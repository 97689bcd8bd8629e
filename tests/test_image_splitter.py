"""
Boundary normalization, default boundaries and image splitting
"""

import numpy as np
import pytest

from capture_models import FooterOptions, FooterScope
from footer_compositor import Footer
from image_splitter import (
    ImageSplitter,
    default_boundaries,
    footer_qualifies,
    get_footer_heights,
    normalize_boundaries,
    split_by_boundaries,
)

from conftest import SyntheticPage, image_array


class TestNormalizeBoundaries:

    def test_sorted_and_spaced(self):
        assert normalize_boundaries([150, 100, 900, 905], 1000) == [100, 150, 900]

    def test_invalid_values_dropped(self):
        values = ["abc", None, float("nan"), float("inf"), -5, 0, 1000, 1200, "300", 500.7]
        assert normalize_boundaries(values, 1000) == [300, 500]

    def test_empty_input(self):
        assert normalize_boundaries([], 1000) == []
        assert normalize_boundaries(None, 1000) == []

    def test_gap_is_measured_from_last_kept_value(self):
        # 130 is within 40px of 100, 145 is not within 40px of the kept 100
        assert normalize_boundaries([100, 130, 145], 1000) == [100, 145]

    def test_custom_min_gap(self):
        assert normalize_boundaries([100, 130], 1000, min_gap=10) == [100, 130]

    def test_result_strictly_increasing(self):
        result = normalize_boundaries([700, 100, 100, 400, 401, 999], 1000)
        assert result == sorted(set(result))
        assert all(b - a >= 40 for a, b in zip(result, result[1:]))


class TestFooterHeights:

    def test_scope_last(self):
        options = FooterOptions(url="https://example.com", scope=FooterScope.LAST)
        assert get_footer_heights(3, options) == [0, 0, 220]

    def test_scope_all(self):
        options = FooterOptions(url="https://example.com", scope=FooterScope.ALL)
        assert get_footer_heights(4, options) == [220] * 4

    def test_disabled_footer(self):
        assert get_footer_heights(3, None) == [0, 0, 0]
        assert get_footer_heights(3, FooterOptions(url="", scope=FooterScope.ALL)) == [0, 0, 0]

    @pytest.mark.parametrize("scope, expected", [
        ("none", [False, False, False]),
        ("last", [False, False, True]),
        ("all", [True, True, True]),
    ])
    def test_footer_qualifies(self, scope, expected):
        assert [footer_qualifies(i, 3, scope) for i in range(3)] == expected


class TestDefaultBoundaries:

    def test_even_split(self):
        assert default_boundaries(900, 3) == [300, 600]

    def test_remainder_goes_to_earliest_parts(self):
        assert default_boundaries(2000, 3) == [667, 1334]

    def test_single_part_has_no_boundaries(self):
        assert default_boundaries(2000, 1) == []

    def test_footer_on_last_part_equalizes_final_heights(self):
        result = default_boundaries(2000, 3, [0, 0, 220])
        assert result == [740, 1480]
        # Every final part is 740px including the footer
        assert 2000 - result[-1] + 220 == 740

    def test_footer_on_all_parts(self):
        assert default_boundaries(2000, 3, [220, 220, 220]) == [667, 1334]

    def test_boundaries_are_integers_and_increasing(self):
        result = default_boundaries(4321, 9, [0] * 8 + [220])
        assert len(result) == 8
        assert all(isinstance(b, int) for b in result)
        assert result == sorted(result)
        assert 0 < result[0] and result[-1] < 4321


class TestImageSplitter:

    def test_parts_reassemble_to_original(self, page):
        parts = ImageSplitter().split(page.image, [500, 1000], content_height=2000)

        assert [p.size for p in parts] == [(200, 500), (200, 500), (200, 1000)]
        stacked = np.concatenate([image_array(p) for p in parts], axis=0)
        assert np.array_equal(stacked, image_array(page.image))

    def test_no_boundaries_gives_single_part(self, page):
        parts = ImageSplitter().split(page.image, [], content_height=2000)
        assert len(parts) == 1
        assert parts[0].size == (200, 2000)

    def test_close_boundaries_merge(self, page):
        parts = ImageSplitter().split(page.image, [500, 520], content_height=2000)
        assert len(parts) == 2

    def test_footer_on_last_part(self, page):
        footer = Footer(url="https://example.com/article")
        parts = ImageSplitter().split(page.image, [500, 1000], 2000,
                                      footer_scope=FooterScope.LAST, footer=footer)

        assert [p.height for p in parts] == [500, 500, 1220]
        assert np.array_equal(image_array(parts[2])[:1000], image_array(page.image)[1000:])

    def test_footer_on_all_parts(self, page):
        footer = Footer(url="https://example.com/article")
        parts = ImageSplitter().split(page.image, [500, 1000], 2000,
                                      footer_scope="all", footer=footer)
        assert [p.height for p in parts] == [720, 720, 1220]

    def test_scope_without_footer_draws_nothing(self, page):
        parts = ImageSplitter().split(page.image, [1000], 2000, footer_scope="all", footer=None)
        assert [p.height for p in parts] == [1000, 1000]

    def test_pixel_ratio_maps_css_boundaries(self):
        dense = SyntheticPage(width=100, height=1000, viewport_height=250, dpr=2)
        parts = ImageSplitter().split(dense.image, [250], content_height=1000, pixel_ratio=2)

        assert [p.size for p in parts] == [(200, 500), (200, 1500)]

    def test_footer_band_scales_with_pixel_ratio(self):
        dense = SyntheticPage(width=100, height=1000, viewport_height=250, dpr=2)
        footer = Footer(url="https://example.com/article")
        parts = ImageSplitter().split(dense.image, [500], 1000, pixel_ratio=2,
                                      footer_scope="last", footer=footer)
        assert parts[-1].size == (200, 1000 + 440)

    def test_module_level_shortcut(self, page):
        parts = split_by_boundaries(page.image, [150, 100, 900, 905], 2000)
        assert [p.height for p in parts] == [100, 50, 750, 1100]
