"""compositor.py のユニットテスト

テスト対象:
  - compute_scale: fit-inside スケール、サイズ不正
  - compose: 走査順、非表示の除外、座標・不透明度・フォントサイズの変換
  - 壊れたレイヤーのスキップ
  - ネスト上限
"""

from __future__ import annotations

import logging

import pytest
from PIL import Image

from core.compositor import (
    DEFAULT_FONT_FAMILY,
    DEFAULT_FONT_SIZE_PT,
    DEFAULT_TEXT_COLOR,
    CompositionError,
    ImagePlacement,
    ScaleContext,
    TextPlacement,
    compose,
    compute_scale,
    fitted_surface_size,
    iter_visible_leaves,
)
from core.psd_model import (
    GroupNode,
    PsdDocument,
    RasterLayerNode,
    SurfaceTarget,
    TextLayerNode,
    TextStyle,
)

# ── ヘルパー ─────────────────────────────────────────────────────────────────


def _pixels(w: int = 4, h: int = 4) -> Image.Image:
    return Image.new('RGBA', (w, h), (255, 0, 0, 255))


def _raster(name: str, left: int = 0, top: int = 0, **kwargs) -> RasterLayerNode:
    kwargs.setdefault('pixels', _pixels())
    return RasterLayerNode(name=name, left=left, top=top, width=4, height=4, **kwargs)


def _doc(*children, width: int = 1000, height: int = 1000) -> PsdDocument:
    return PsdDocument(width=width, height=height, children=list(children), name='doc')


def _names(placements) -> list[str]:
    return [p.debug_name for p in placements]


# ── スケール ─────────────────────────────────────────────────────────────────


class TestComputeScale:
    def test_min_of_axis_ratios(self):
        doc = _doc(width=1000, height=2000)
        scale = compute_scale(doc, SurfaceTarget(500, 500))
        assert scale.scale_factor == pytest.approx(0.25)

    def test_width_limited(self):
        doc = _doc(width=2000, height=1000)
        assert compute_scale(doc, SurfaceTarget(500, 500)).scale_factor == pytest.approx(0.25)

    def test_small_document_is_upscaled(self):
        doc = _doc(width=100, height=50)
        assert compute_scale(doc, SurfaceTarget(400, 400)).scale_factor == pytest.approx(4.0)

    @pytest.mark.parametrize('w,h', [(0, 100), (100, 0), (-1, 100)])
    def test_invalid_document_size(self, w, h):
        with pytest.raises(CompositionError):
            compute_scale(_doc(width=w, height=h), SurfaceTarget(100, 100))

    @pytest.mark.parametrize('w,h', [(0, 100), (100, 0)])
    def test_invalid_surface_size(self, w, h):
        with pytest.raises(CompositionError):
            compute_scale(_doc(), SurfaceTarget(w, h))

    def test_composition_error_is_value_error(self):
        assert issubclass(CompositionError, ValueError)

    def test_fitted_surface_size(self):
        doc = _doc(width=1000, height=2000)
        assert fitted_surface_size(doc, ScaleContext(0.25)) == (250, 500)

    def test_fitted_surface_size_never_zero(self):
        doc = _doc(width=1, height=1)
        assert fitted_surface_size(doc, ScaleContext(0.01)) == (1, 1)


# ── 走査順 ───────────────────────────────────────────────────────────────────


class TestTraversalOrder:
    """格納順（下 → 上）を保ったまま平坦化する。"""

    def test_siblings_keep_order(self):
        doc = _doc(_raster('A'), _raster('B'), _raster('C'))
        assert _names(compose(doc, SurfaceTarget(100, 100))) == ['A', 'B', 'C']

    def test_nested_group_flattened_before_next_sibling(self):
        doc = _doc(
            _raster('A'),
            GroupNode(name='G', children=[
                _raster('B1'),
                GroupNode(name='GG', children=[_raster('B2')]),
                _raster('B3'),
            ]),
            _raster('C'),
        )
        assert _names(compose(doc, SurfaceTarget(100, 100))) == ['A', 'B1', 'B2', 'B3', 'C']

    def test_mixed_kinds_keep_order(self):
        doc = _doc(
            _raster('bg'),
            TextLayerNode(name='title', text='Hello'),
            _raster('fg'),
        )
        placements = compose(doc, SurfaceTarget(100, 100))
        assert _names(placements) == ['bg', 'title', 'fg']
        assert isinstance(placements[1], TextPlacement)

    def test_empty_document(self):
        assert compose(_doc(), SurfaceTarget(100, 100)) == []


# ── 非表示 ───────────────────────────────────────────────────────────────────


class TestHidden:
    def test_hidden_group_prunes_subtree(self):
        doc = _doc(GroupNode(name='G', hidden=True, children=[
            _raster('visible-child'),
            GroupNode(name='inner', children=[_raster('deep')]),
        ]))
        assert compose(doc, SurfaceTarget(100, 100)) == []

    def test_hidden_leaf_skipped_siblings_continue(self):
        doc = _doc(_raster('A'), _raster('B', hidden=True), _raster('C'))
        assert _names(compose(doc, SurfaceTarget(100, 100))) == ['A', 'C']

    def test_hidden_text_skipped(self):
        doc = _doc(TextLayerNode(name='t', hidden=True, text='x'), _raster('A'))
        assert _names(compose(doc, SurfaceTarget(100, 100))) == ['A']


# ── 画像レイヤー ─────────────────────────────────────────────────────────────


class TestImagePlacement:
    def test_position_and_uniform_scale(self):
        doc = _doc(_raster('A', left=200, top=400), width=1000, height=2000)
        (p,) = compose(doc, SurfaceTarget(500, 500))
        assert isinstance(p, ImagePlacement)
        assert p.left == pytest.approx(50.0)
        assert p.top == pytest.approx(100.0)
        assert p.scale_x == p.scale_y == pytest.approx(0.25)

    def test_pixels_passed_through(self):
        px = _pixels(7, 3)
        doc = _doc(_raster('A', pixels=px))
        (p,) = compose(doc, SurfaceTarget(100, 100))
        assert p.pixels is px

    def test_round_trip_scale(self):
        layer = _raster('A', left=123, top=457)
        layer.width, layer.height = 321, 77
        doc = _doc(layer, width=1920, height=1080)
        (p,) = compose(doc, SurfaceTarget(333, 777))
        s = p.scale_x
        assert p.left / s == pytest.approx(123)
        assert p.top / s == pytest.approx(457)
        assert (layer.width * s) / s == pytest.approx(321)
        assert (layer.height * s) / s == pytest.approx(77)

    def test_negative_offsets_scaled(self):
        doc = _doc(_raster('A', left=-100, top=-40))
        (p,) = compose(doc, SurfaceTarget(500, 500))
        assert p.left == pytest.approx(-50.0)
        assert p.top == pytest.approx(-20.0)

    @pytest.mark.parametrize('raw,expected', [
        (1.0, 1.0),
        (0.5, 0.5),
        (0.0, 0.0),
        (255, 1.0),
        (128, 128 / 255),
        (1, 1.0),
        (0, 0.0),
    ])
    def test_opacity_normalized(self, raw, expected):
        doc = _doc(_raster('A', opacity=raw))
        (p,) = compose(doc, SurfaceTarget(100, 100))
        assert p.opacity == pytest.approx(expected)
        assert 0.0 <= p.opacity <= 1.0

    def test_missing_pixels_skipped_with_warning(self, caplog):
        doc = _doc(_raster('A'), _raster('broken', pixels=None), _raster('C'))
        with caplog.at_level(logging.WARNING, logger='core.compositor'):
            placements = compose(doc, SurfaceTarget(100, 100))
        assert _names(placements) == ['A', 'C']
        assert 'broken' in caplog.text


# ── テキストレイヤー ─────────────────────────────────────────────────────────


class TestTextPlacement:
    def test_style_applied_and_scaled(self):
        layer = TextLayerNode(
            name='title', left=100, top=300, opacity=0.8, text='セール',
            style=TextStyle(font_family='MicrosoftYaHei', font_size_pt=48.0, fill_color='#FF0000'),
        )
        doc = _doc(layer, width=1000, height=2000)
        (p,) = compose(doc, SurfaceTarget(500, 500))
        assert p.left == pytest.approx(25.0)
        assert p.top == pytest.approx(75.0)
        assert p.scale == pytest.approx(0.25)
        assert p.font_size_px == pytest.approx(12.0)
        assert p.font_family == 'MicrosoftYaHei'
        assert p.color == '#FF0000'
        assert p.text == 'セール'
        assert p.opacity == pytest.approx(0.8)
        assert p.debug_name == 'title'

    def test_defaults_when_style_unset(self):
        doc = _doc(TextLayerNode(name='t', text='abc'))
        (p,) = compose(doc, SurfaceTarget(2000, 2000))
        assert p.font_family == DEFAULT_FONT_FAMILY == 'Arial'
        assert p.color == DEFAULT_TEXT_COLOR == '#000000'
        assert p.font_size_px == pytest.approx(DEFAULT_FONT_SIZE_PT * 2)

    def test_zero_font_size_falls_back(self):
        doc = _doc(TextLayerNode(name='t', text='abc', style=TextStyle(font_size_pt=0)))
        (p,) = compose(doc, SurfaceTarget(1000, 1000))
        assert p.font_size_px == pytest.approx(DEFAULT_FONT_SIZE_PT)

    def test_empty_text_kept_verbatim(self):
        doc = _doc(TextLayerNode(name='t', text=''))
        (p,) = compose(doc, SurfaceTarget(1000, 1000))
        assert p.text == ''

    def test_unreadable_text_skipped(self, caplog):
        doc = _doc(TextLayerNode(name='bad', text=None), _raster('after'))
        with caplog.at_level(logging.WARNING, logger='core.compositor'):
            placements = compose(doc, SurfaceTarget(100, 100))
        assert _names(placements) == ['after']
        assert 'bad' in caplog.text


# ── 前提条件・副作用 ─────────────────────────────────────────────────────────


class TestPreconditions:
    def test_zero_document_is_fatal(self):
        with pytest.raises(CompositionError):
            compose(_doc(_raster('A'), width=0, height=100), SurfaceTarget(100, 100))

    def test_nesting_limit(self):
        node: GroupNode | RasterLayerNode = _raster('leaf')
        for i in range(5):
            node = GroupNode(name=f'g{i}', children=[node])
        doc = _doc(node)
        assert _names(compose(doc, SurfaceTarget(10, 10), max_depth=5)) == ['leaf']
        with pytest.raises(CompositionError, match='nesting'):
            compose(doc, SurfaceTarget(10, 10), max_depth=4)

    def test_input_tree_not_mutated(self):
        layer = _raster('A', left=200, top=300, opacity=128)
        group = GroupNode(name='G', children=[layer])
        doc = _doc(group)
        compose(doc, SurfaceTarget(100, 100))
        assert (layer.left, layer.top, layer.opacity) == (200, 300, 128)
        assert doc.children == [group]
        assert group.children == [layer]

    def test_repeated_calls_are_independent(self):
        doc = _doc(_raster('A', left=100), width=1000, height=1000)
        first = compose(doc, SurfaceTarget(500, 500))
        second = compose(doc, SurfaceTarget(100, 100))
        assert first[0].left == pytest.approx(50.0)
        assert second[0].left == pytest.approx(10.0)


class TestIterVisibleLeaves:
    def test_depth_and_order(self):
        doc = _doc(
            _raster('A'),
            GroupNode(name='G', children=[_raster('B'), _raster('hidden', hidden=True)]),
            GroupNode(name='H', hidden=True, children=[_raster('X')]),
        )
        assert [(d, n.name) for d, n in iter_visible_leaves(doc)] == [(0, 'A'), (1, 'B')]
