"""配置命令の PIL (Pillow) 描画サーフェス

compositor.compose() が返す ImagePlacement / TextPlacement を
リスト順に重ねて描画する。後の要素ほど前面になる。

使用方法:
    from core.surface import render_preview
    img = render_preview(doc, 800, 600)
"""

from __future__ import annotations

import functools
import logging
import os

from PIL import Image, ImageDraw, ImageFont

from core.compositor import (
    ImagePlacement,
    Placement,
    TextPlacement,
    compose,
    compute_scale,
    fitted_surface_size,
)
from core.psd_model import PsdDocument, SurfaceTarget
from utils.color import hex_to_rgb, with_alpha

logger = logging.getLogger(__name__)

# ── 定数 ─────────────────────────────────────────────────────────────────────

_DEFAULT_BACKGROUND = (255, 255, 255, 0)

# PSD でよく使われるフォント名 → フォントファイル候補
_FONT_NAME_MAP: dict[str, list[str]] = {
    'Arial': [
        'C:/Windows/Fonts/arial.ttf',
        '/Library/Fonts/Arial.ttf',
        '/usr/share/fonts/truetype/msttcorefonts/Arial.ttf',
    ],
    'ArialMT': [
        'C:/Windows/Fonts/arial.ttf',
        '/Library/Fonts/Arial.ttf',
    ],
    'MicrosoftYaHei': ['C:/Windows/Fonts/msyh.ttc'],
    'SimHei': ['C:/Windows/Fonts/simhei.ttf'],
    'MS-Gothic': ['C:/Windows/Fonts/msgothic.ttc'],
    'Meiryo': ['C:/Windows/Fonts/meiryo.ttc'],
}

# フォールバック候補（指定フォントが見つからない場合）
_FALLBACK_FONT_PATHS = [
    'C:/Windows/Fonts/meiryo.ttc',
    'C:/Windows/Fonts/msyh.ttc',
    'C:/Windows/Fonts/arial.ttf',
    '/System/Library/Fonts/Hiragino Sans GB.ttc',
    '/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc',
    '/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf',
]


@functools.lru_cache(maxsize=64)
def _load_font(
    font_name: str, size_px: int,
) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """フォントをロードする。見つからなければフォールバック → 既定フォント。"""
    candidates = list(_FONT_NAME_MAP.get(font_name, []))
    candidates.extend(_FALLBACK_FONT_PATHS)
    for path in candidates:
        if os.path.exists(path):
            try:
                return ImageFont.truetype(path, size=size_px)
            except (OSError, IndexError):
                continue
    return ImageFont.load_default(size=size_px)


# ── サーフェス ───────────────────────────────────────────────────────────────


class PILSurface:
    """Pillow の RGBA 画像を描画先とするサーフェス。

    追加された配置命令を保持し、set_dimensions() でサイズが変わった場合は
    同じ順序で描き直す。
    """

    def __init__(
        self, width: int, height: int,
        background: tuple[int, int, int, int] = _DEFAULT_BACKGROUND,
    ) -> None:
        self._background = background
        self._placements: list[Placement] = []
        self._img = self._new_canvas(width, height)

    def _new_canvas(self, width: int, height: int) -> Image.Image:
        if width <= 0 or height <= 0:
            raise ValueError(f'Invalid surface size: {width}x{height}')
        return Image.new('RGBA', (width, height), self._background)

    @property
    def width(self) -> int:
        return self._img.width

    @property
    def height(self) -> int:
        return self._img.height

    @property
    def image(self) -> Image.Image:
        return self._img

    @property
    def target(self) -> SurfaceTarget:
        return SurfaceTarget(self.width, self.height)

    @property
    def placements(self) -> list[Placement]:
        return list(self._placements)

    def set_dimensions(self, width: int, height: int) -> None:
        """サーフェスサイズを変更し、追加済みの命令を描き直す。"""
        self._img = self._new_canvas(width, height)
        for placement in self._placements:
            self._draw(placement)

    def clear(self) -> None:
        self._placements.clear()
        self._img = self._new_canvas(self.width, self.height)

    def add(self, placement: Placement) -> None:
        """配置命令を 1 つ追加して描画する。"""
        self._placements.append(placement)
        self._draw(placement)

    def _draw(self, placement: Placement) -> None:
        if isinstance(placement, ImagePlacement):
            self._draw_image(placement)
        elif isinstance(placement, TextPlacement):
            self._draw_text(placement)

    def _composite(self, overlay: Image.Image) -> None:
        self._img = Image.alpha_composite(self._img, overlay)

    def _draw_image(self, p: ImagePlacement) -> None:
        src = p.pixels.convert('RGBA')
        w = max(1, round(src.width * p.scale_x))
        h = max(1, round(src.height * p.scale_y))
        if (w, h) != src.size:
            src = src.resize((w, h), Image.Resampling.LANCZOS)
        if p.opacity < 1.0:
            alpha = src.getchannel('A').point(lambda a: round(a * p.opacity))
            src.putalpha(alpha)

        # paste はキャンバス外（負の座標含む）を自動的にクリップする
        overlay = Image.new('RGBA', self._img.size, (0, 0, 0, 0))
        overlay.paste(src, (round(p.left), round(p.top)))
        self._composite(overlay)

    def _draw_text(self, p: TextPlacement) -> None:
        if not p.text:
            return
        size_px = max(1, round(p.font_size_px))
        font = _load_font(p.font_family, size_px)
        fill = with_alpha(hex_to_rgb(p.color), p.opacity)

        overlay = Image.new('RGBA', self._img.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(overlay)
        if '\n' in p.text:
            draw.multiline_text((p.left, p.top), p.text, fill=fill, font=font)
        else:
            draw.text((p.left, p.top), p.text, fill=fill, font=font)
        self._composite(overlay)


# ── 描画 ─────────────────────────────────────────────────────────────────────


def render_placements(placements: list[Placement], surface: PILSurface) -> None:
    """配置命令をリスト順にサーフェスへ描画する。"""
    for placement in placements:
        surface.add(placement)


def render_preview(
    document: PsdDocument,
    width: int,
    height: int,
    *,
    fit_surface: bool = True,
    background: tuple[int, int, int, int] = _DEFAULT_BACKGROUND,
    max_depth: int | None = None,
) -> Image.Image:
    """ドキュメントを width × height の枠に収めてレンダリングする。

    fit_surface=True の場合、サーフェスをスケール後のドキュメントサイズに縮める
    （余白なし）。

    Returns:
        PIL.Image.Image (RGBA)
    """
    surface = PILSurface(width, height, background=background)
    kwargs = {} if max_depth is None else {'max_depth': max_depth}
    placements = compose(document, surface.target, **kwargs)
    if fit_surface:
        scale = compute_scale(document, surface.target)
        surface.set_dimensions(*fitted_surface_size(document, scale))
    render_placements(placements, surface)
    logger.debug(
        'プレビュー描画: %s (%dx%d, %d 件)',
        document.name or '(無名)', surface.width, surface.height, len(placements),
    )
    return surface.image
