"""psd-tools の PSDImage を PsdDocument に変換するリーダー

psd-tools のレイヤーは種類ごとに属性が異なるため、
ここで一度だけ GroupNode / RasterLayerNode / TextLayerNode に解決する。
コンポジター以降は psd-tools に依存しない。

変換規則:
  - kind == 'group'           → GroupNode（再帰）
  - kind == 'type'            → TextLayerNode
  - それ以外 (pixel/shape/…)  → RasterLayerNode (pixels = layer.topil())
  - hidden = not layer.visible
  - opacity: psd-tools は 0〜255 の整数 → 0.0〜1.0 に変換
  - 子の並び順は psd-tools の反復順（下 → 上）のまま
"""

from __future__ import annotations

import io
import logging
import os
from typing import IO, Any

from psd_tools import PSDImage

from core.psd_model import (
    DocumentNode,
    GroupNode,
    PsdDocument,
    RasterLayerNode,
    TextLayerNode,
    TextStyle,
    opacity_from_byte,
)
from utils.color import rgb_floats_to_hex

logger = logging.getLogger(__name__)


# ── テキストスタイル ─────────────────────────────────────────────────────────


def _first_style_sheet(engine_dict: Any) -> Any:
    """EngineData の最初のスタイルランの StyleSheetData を返す。"""
    run_array = engine_dict['StyleRun']['RunArray']
    return run_array[0]['StyleSheet']['StyleSheetData']


def _read_text_style(layer: Any) -> TextStyle:
    """テキストレイヤーのフォント・サイズ・塗り色を読み取る。

    取得できなかった項目は None のまま返す（コンポジター側で既定値を使う）。
    """
    style = TextStyle()
    try:
        sheet = _first_style_sheet(layer.engine_dict)
    except (AttributeError, KeyError, IndexError, TypeError) as exc:
        logger.debug('スタイル情報なし: %s (%s)', layer.name, exc)
        return style

    try:
        if 'FontSize' in sheet:
            style.font_size_pt = float(sheet['FontSize'])
    except (TypeError, ValueError):
        logger.debug('フォントサイズ不正: %s', layer.name)

    try:
        if 'Font' in sheet:
            font_set = layer.resource_dict['FontSet']
            name = font_set[int(sheet['Font'])]['Name']
            style.font_family = str(name).strip('\x00').strip("'") or None
    except (AttributeError, KeyError, IndexError, TypeError, ValueError):
        logger.debug('フォント名を解決できません: %s', layer.name)

    try:
        if 'FillColor' in sheet:
            values = [float(v) for v in sheet['FillColor']['Values']]
            # Values = [A, R, G, B] (0.0〜1.0)
            if len(values) == 4:
                style.fill_color = rgb_floats_to_hex(values[1:])
            elif len(values) == 3:
                style.fill_color = rgb_floats_to_hex(values)
    except (KeyError, TypeError, ValueError):
        logger.debug('塗り色不正: %s', layer.name)

    return style


def _read_text(layer: Any) -> str | None:
    try:
        text = layer.text
    except Exception as exc:
        logger.warning('テキスト読込エラー: %s (%s)', layer.name, exc)
        return None
    if text is None:
        return ''
    return str(text).replace('\r\n', '\n').replace('\r', '\n')


# ── レイヤー変換 ─────────────────────────────────────────────────────────────


def _read_pixels(layer: Any):
    try:
        return layer.topil()
    except Exception as exc:
        logger.debug('ピクセル取得失敗: %s (%s)', layer.name, exc)
        return None


def _convert_layer(layer: Any) -> DocumentNode:
    """psd-tools のレイヤー 1 つを DocumentNode に変換する。"""
    name = str(layer.name or '')
    hidden = not bool(layer.visible)
    kind = getattr(layer, 'kind', '')

    if kind == 'group' or (kind == '' and layer.is_group()):
        return GroupNode(
            name=name,
            hidden=hidden,
            children=_convert_children(layer),
        )

    left = int(layer.left or 0)
    top = int(layer.top or 0)
    opacity = opacity_from_byte(layer.opacity)

    if kind == 'type':
        return TextLayerNode(
            name=name,
            hidden=hidden,
            left=left,
            top=top,
            opacity=opacity,
            text=_read_text(layer),
            style=_read_text_style(layer),
        )

    pixels = None if hidden else _read_pixels(layer)
    width = int(layer.width or 0)
    height = int(layer.height or 0)
    if pixels is not None:
        width = width or pixels.width
        height = height or pixels.height
    return RasterLayerNode(
        name=name,
        hidden=hidden,
        left=left,
        top=top,
        width=width,
        height=height,
        opacity=opacity,
        pixels=pixels,
    )


def _convert_children(group: Any) -> list[DocumentNode]:
    return [_convert_layer(child) for child in group]


# ── 公開 API ─────────────────────────────────────────────────────────────────


def document_from_psd(psd: Any, name: str = '') -> PsdDocument:
    """オープン済みの PSDImage を PsdDocument に変換する。"""
    doc = PsdDocument(
        width=int(psd.width or 0),
        height=int(psd.height or 0),
        children=_convert_children(psd),
        name=name,
    )
    logger.debug(
        'PSD 読込: %s (%dx%d, %d レイヤー)',
        name or '(無名)', doc.width, doc.height, doc.layer_count,
    )
    return doc


def read_psd(source: str | bytes | IO[bytes], name: str = '') -> PsdDocument:
    """PSD をパースして PsdDocument を返す。

    Args:
        source: ファイルパス、バイト列、またはバイナリファイルオブジェクト
        name: ログ・デバッグ用の名前（省略時はファイル名）

    Raises:
        ValueError: PSD として読めない場合
    """
    if isinstance(source, (bytes, bytearray)):
        fp: str | IO[bytes] = io.BytesIO(source)
    else:
        fp = source
        if isinstance(source, str) and not name:
            name = os.path.splitext(os.path.basename(source))[0]

    try:
        psd = PSDImage.open(fp)
    except Exception as exc:
        raise ValueError(f'PSD parse failed: {exc}') from exc
    return document_from_psd(psd, name=name)


def open_psd_image(source: str | bytes) -> PSDImage:
    """psd-tools の PSDImage を直接開く（合成済みプレビューの取得用）。"""
    if isinstance(source, (bytes, bytearray)):
        return PSDImage.open(io.BytesIO(source))
    return PSDImage.open(source)
