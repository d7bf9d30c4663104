"""utils/color.py のテスト"""

from __future__ import annotations

import pytest

from utils.color import hex_to_rgb, rgb_floats_to_hex, with_alpha


class TestRgbFloatsToHex:
    def test_basic(self):
        assert rgb_floats_to_hex([1.0, 0.0, 0.5]) == '#FF0080'

    def test_clamps_out_of_range(self):
        assert rgb_floats_to_hex([1.5, -0.2, 0.0]) == '#FF0000'

    def test_ignores_extra_values(self):
        assert rgb_floats_to_hex([0.0, 0.0, 0.0, 1.0]) == '#000000'


class TestHexToRgb:
    @pytest.mark.parametrize('text,expected', [
        ('#FF8000', (255, 128, 0)),
        ('ff8000', (255, 128, 0)),
        ('#f00', (255, 0, 0)),
        (' #000000 ', (0, 0, 0)),
    ])
    def test_valid(self, text, expected):
        assert hex_to_rgb(text) == expected

    @pytest.mark.parametrize('text', ['', 'red', '#12345', '#GGGGGG'])
    def test_invalid_returns_default(self, text):
        assert hex_to_rgb(text, default=(1, 2, 3)) == (1, 2, 3)


class TestWithAlpha:
    def test_opacity_to_alpha(self):
        assert with_alpha((10, 20, 30), 0.5) == (10, 20, 30, 128)

    def test_clamped(self):
        assert with_alpha((0, 0, 0), 2.0)[3] == 255
        assert with_alpha((0, 0, 0), -1.0)[3] == 0
