"""PNG / JPEG ヘッダーからの画像サイズ取得

画像デコードライブラリを使わず、圧縮済みバイト列のヘッダー部分だけを
読んで幅・高さを返す。カタログ生成時のプレビュー画像メタデータ用。

フォーマット概要:
  - PNG: 8 バイトのシグネチャ + IHDR チャンク。
    幅・高さはオフセット 16 / 20 の big-endian uint32。
  - JPEG: SOI (FF D8) の後にマーカーセグメントが続く。
    SOF 系マーカーのセグメント内に 高さ → 幅 の順で uint16 が格納される。

解析できない場合は例外を出さず None を返す。呼び出し側が既定サイズを補う。
"""

from __future__ import annotations

import logging
import os
import struct
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

# ── 定数 ─────────────────────────────────────────────────────────────────────

_PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'
_PNG_MIN_LEN = 24
_PNG_WIDTH_OFFSET = 16
_PNG_HEIGHT_OFFSET = 20

_JPEG_SOI = b'\xff\xd8'
_JPEG_MARKER_PREFIX = 0xFF

# SOF マーカー（baseline / extended / progressive / lossless の 4 系統）
# C4 (DHT), C8 (JPG), CC (DAC) は SOF ではない
_JPEG_SOF_MARKERS: frozenset[int] = frozenset(
    list(range(0xC0, 0xC4))
    + list(range(0xC5, 0xC8))
    + list(range(0xC9, 0xCC))
    + list(range(0xCD, 0xD0))
)

# セグメント長フィールドからの相対オフセット（長さ2 + 精度1 の後）
_SOF_HEIGHT_OFFSET = 3
_SOF_WIDTH_OFFSET = 5

# 解析できなかったときの既定サイズ
DEFAULT_IMAGE_SIZE: tuple[int, int] = (1920, 1080)


class ImageFormat(Enum):
    """サイズ取得に対応する画像形式。"""
    PNG = 'png'
    JPEG = 'jpeg'


_EXTENSION_MAP: dict[str, ImageFormat] = {
    '.png': ImageFormat.PNG,
    '.jpg': ImageFormat.JPEG,
    '.jpeg': ImageFormat.JPEG,
}


@dataclass(frozen=True)
class RasterHeader:
    """ヘッダーから読み取った画像サイズ (px)。"""
    width: int
    height: int

    def as_tuple(self) -> tuple[int, int]:
        return self.width, self.height


# ── PNG ──────────────────────────────────────────────────────────────────────


def _sniff_png(buffer: bytes) -> RasterHeader | None:
    """PNG の IHDR 固定位置から幅・高さを読む。"""
    if len(buffer) < _PNG_MIN_LEN:
        return None
    if not buffer.startswith(_PNG_SIGNATURE):
        return None
    width = struct.unpack_from('>I', buffer, _PNG_WIDTH_OFFSET)[0]
    height = struct.unpack_from('>I', buffer, _PNG_HEIGHT_OFFSET)[0]
    return RasterHeader(width, height)


# ── JPEG ─────────────────────────────────────────────────────────────────────


def _sniff_jpeg(buffer: bytes) -> RasterHeader | None:
    """JPEG のマーカー列を走査して最初の SOF セグメントからサイズを読む。"""
    if not buffer.startswith(_JPEG_SOI):
        return None

    size = len(buffer)
    offset = 2
    while offset + 4 <= size:
        if buffer[offset] != _JPEG_MARKER_PREFIX:
            # マーカー列が壊れている
            return None
        marker = buffer[offset + 1]
        offset += 2

        length = struct.unpack_from('>H', buffer, offset)[0]
        if length < 2:
            return None

        if marker in _JPEG_SOF_MARKERS:
            if offset + length > size or length < _SOF_WIDTH_OFFSET + 2:
                return None
            height = struct.unpack_from('>H', buffer, offset + _SOF_HEIGHT_OFFSET)[0]
            width = struct.unpack_from('>H', buffer, offset + _SOF_WIDTH_OFFSET)[0]
            return RasterHeader(width, height)

        offset += length

    return None


# ── 公開 API ─────────────────────────────────────────────────────────────────


def sniff(buffer: bytes, fmt: ImageFormat) -> RasterHeader | None:
    """バイト列のヘッダーから画像サイズを返す。

    Args:
        buffer: 画像ファイルの生バイト列
        fmt: 画像形式（通常は拡張子から判定する）

    Returns:
        RasterHeader、または解析できない場合 None。例外は送出しない。
    """
    if fmt is ImageFormat.PNG:
        return _sniff_png(buffer)
    if fmt is ImageFormat.JPEG:
        return _sniff_jpeg(buffer)
    return None


def format_from_extension(path: str) -> ImageFormat | None:
    """ファイル拡張子から ImageFormat を返す。未対応なら None。"""
    ext = os.path.splitext(path)[1].lower()
    return _EXTENSION_MAP.get(ext)


def sniff_file(
    path: str,
    default: tuple[int, int] = DEFAULT_IMAGE_SIZE,
) -> tuple[int, int]:
    """画像ファイルのサイズを (width, height) で返す。

    拡張子が未対応、ヘッダーが解析できない、ファイルが読めない場合は
    default を返す。
    """
    fmt = format_from_extension(path)
    if fmt is None:
        logger.debug('未対応の画像形式: %s', path)
        return default

    try:
        with open(path, 'rb') as f:
            data = f.read()
    except OSError as exc:
        logger.warning('画像読込エラー: %s (%s)', path, exc)
        return default

    header = sniff(data, fmt)
    if header is None:
        logger.warning('画像サイズを取得できません: %s (既定 %dx%d)', path, *default)
        return default
    return header.as_tuple()
