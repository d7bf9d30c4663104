"""レイヤーコンポジター

PsdDocument のレイヤーツリーを走査し、描画先サーフェスに収まるよう
一様にスケーリングした配置命令 (ImagePlacement / TextPlacement) の列に変換する。

座標変換（ドキュメント座標 → サーフェス座標）はここで一元管理する。
描画そのものは行わない（core.surface の PILSurface 等が担当）。

使用方法:
    from core.compositor import compose
    placements = compose(doc, SurfaceTarget(800, 600))
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from core.psd_model import (
    DocumentNode,
    GroupNode,
    PsdDocument,
    RasterLayerNode,
    SurfaceTarget,
    TextLayerNode,
    normalize_opacity,
)

if TYPE_CHECKING:
    from PIL import Image

logger = logging.getLogger(__name__)

# ── 定数 ─────────────────────────────────────────────────────────────────────

DEFAULT_FONT_FAMILY = 'Arial'
DEFAULT_FONT_SIZE_PT = 12.0
DEFAULT_TEXT_COLOR = '#000000'

# グループのネスト上限（これを超えるツリーは不正とみなす）
DEFAULT_MAX_DEPTH = 64


class CompositionError(ValueError):
    """コンポジション全体を中止する前提条件違反。"""


# ── 配置命令 ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ScaleContext:
    """1 回のコンポジションで使うスケール係数。"""
    scale_factor: float

    def apply(self, value: float) -> float:
        return value * self.scale_factor


@dataclass
class ImagePlacement:
    """画像レイヤーの配置命令。"""
    left: float
    top: float
    scale_x: float
    scale_y: float
    opacity: float
    pixels: Image.Image
    debug_name: str = ''


@dataclass
class TextPlacement:
    """テキストレイヤーの配置命令。font_size_px はスケール適用済み。"""
    left: float
    top: float
    scale: float
    opacity: float
    text: str
    font_family: str
    font_size_px: float
    color: str
    debug_name: str = ''


Placement = Union[ImagePlacement, TextPlacement]


# ── スケール計算 ─────────────────────────────────────────────────────────────


def compute_scale(document: PsdDocument, surface: SurfaceTarget) -> ScaleContext:
    """ドキュメント全体がサーフェスに収まるスケールを返す。

    縦横のうち小さい方の比率を採用する（アスペクト比維持）。
    ドキュメントが小さい場合は 1 を超える（拡大）こともある。

    Raises:
        CompositionError: ドキュメントまたはサーフェスのサイズが 0 以下の場合
    """
    if document.width <= 0 or document.height <= 0:
        raise CompositionError(
            f'Invalid document size: {document.width}x{document.height}'
        )
    if surface.width <= 0 or surface.height <= 0:
        raise CompositionError(
            f'Invalid surface size: {surface.width}x{surface.height}'
        )
    width_scale = surface.width / document.width
    height_scale = surface.height / document.height
    return ScaleContext(min(width_scale, height_scale))


def fitted_surface_size(
    document: PsdDocument, scale: ScaleContext,
) -> tuple[int, int]:
    """スケール適用後のドキュメント外形サイズ (px) を返す。"""
    w = max(1, round(document.width * scale.scale_factor))
    h = max(1, round(document.height * scale.scale_factor))
    return w, h


# ── 配置命令の生成 ───────────────────────────────────────────────────────────


def _image_placement(
    layer: RasterLayerNode, scale: ScaleContext,
) -> ImagePlacement | None:
    if layer.pixels is None:
        logger.warning('ピクセルデータのないレイヤーをスキップ: %s', layer.name or '(無名)')
        return None
    return ImagePlacement(
        left=scale.apply(layer.left),
        top=scale.apply(layer.top),
        scale_x=scale.scale_factor,
        scale_y=scale.scale_factor,
        opacity=normalize_opacity(layer.opacity),
        pixels=layer.pixels,
        debug_name=layer.name,
    )


def _text_placement(
    layer: TextLayerNode, scale: ScaleContext,
) -> TextPlacement | None:
    if layer.text is None:
        logger.warning('テキストを読めないレイヤーをスキップ: %s', layer.name or '(無名)')
        return None

    style = layer.style
    size_pt = style.font_size_pt
    if not size_pt or size_pt <= 0:
        size_pt = DEFAULT_FONT_SIZE_PT

    return TextPlacement(
        left=scale.apply(layer.left),
        top=scale.apply(layer.top),
        scale=scale.scale_factor,
        opacity=normalize_opacity(layer.opacity),
        text=layer.text,
        font_family=style.font_family or DEFAULT_FONT_FAMILY,
        font_size_px=scale.apply(size_pt),
        color=style.fill_color or DEFAULT_TEXT_COLOR,
        debug_name=layer.name,
    )


def _walk(
    nodes: list[DocumentNode],
    scale: ScaleContext,
    out: list[Placement],
    depth: int,
    max_depth: int,
) -> None:
    """格納順を保ったまま深さ優先で走査する。"""
    if depth > max_depth:
        raise CompositionError(f'Layer nesting exceeds {max_depth} levels')

    for node in nodes:
        if node.hidden:
            continue
        if isinstance(node, GroupNode):
            _walk(node.children, scale, out, depth + 1, max_depth)
        elif isinstance(node, RasterLayerNode):
            placement = _image_placement(node, scale)
            if placement is not None:
                out.append(placement)
        elif isinstance(node, TextLayerNode):
            placement = _text_placement(node, scale)
            if placement is not None:
                out.append(placement)
        else:
            logger.warning('未知のノード型をスキップ: %r', type(node).__name__)


def compose(
    document: PsdDocument,
    surface: SurfaceTarget,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> list[Placement]:
    """レイヤーツリーを配置命令のリストに変換する。

    - 非表示グループは子孫ごと除外する
    - 非表示レイヤーは除外し、兄弟の走査は続ける
    - 出力順 = 走査順（下 → 上）。描画側はこの順に重ねる

    Args:
        document: パース済みドキュメント（children は下 → 上の順）
        surface: 描画先サーフェスのサイズ
        max_depth: グループのネスト上限

    Returns:
        配置命令のリスト（呼び出し側が所有する）

    Raises:
        CompositionError: サイズ不正、またはネスト上限超過の場合
    """
    scale = compute_scale(document, surface)
    placements: list[Placement] = []
    _walk(document.children, scale, placements, 0, max_depth)
    logger.debug(
        'コンポジション完了: %s (scale=%.4f, %d 件)',
        document.name or '(無名)', scale.scale_factor, len(placements),
    )
    return placements


def iter_visible_leaves(
    document: PsdDocument,
) -> Iterator[tuple[int, RasterLayerNode | TextLayerNode]]:
    """表示対象のレイヤーを (ネスト深さ, ノード) で走査順に返す。"""
    def _iter(nodes: list[DocumentNode], depth: int):
        for node in nodes:
            if node.hidden:
                continue
            if isinstance(node, GroupNode):
                yield from _iter(node.children, depth + 1)
            else:
                yield depth, node

    yield from _iter(document.children, 0)
