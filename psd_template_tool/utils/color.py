"""色表現の変換ユーティリティ"""

from __future__ import annotations

import re
from collections.abc import Sequence

_HEX_RE = re.compile(r'^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$')


def rgb_floats_to_hex(values: Sequence[float]) -> str:
    """(r, g, b) 0.0〜1.0 → '#RRGGBB'。範囲外はクランプする。"""
    parts = []
    for v in values[:3]:
        c = round(min(1.0, max(0.0, float(v))) * 255)
        parts.append(f'{c:02X}')
    return '#' + ''.join(parts)


def hex_to_rgb(color: str, default: tuple[int, int, int] = (0, 0, 0)) -> tuple[int, int, int]:
    """'#RRGGBB' / '#RGB' → (r, g, b)。解釈できなければ default を返す。

    >>> hex_to_rgb('#FF8000')
    (255, 128, 0)
    >>> hex_to_rgb('#f00')
    (255, 0, 0)
    """
    if not color:
        return default
    m = _HEX_RE.match(color.strip())
    if not m:
        return default
    digits = m.group(1)
    if len(digits) == 3:
        digits = ''.join(ch * 2 for ch in digits)
    return (
        int(digits[0:2], 16),
        int(digits[2:4], 16),
        int(digits[4:6], 16),
    )


def with_alpha(rgb: tuple[int, int, int], opacity: float) -> tuple[int, int, int, int]:
    """(r, g, b) に不透明度 (0.0〜1.0) を付けた RGBA を返す。"""
    alpha = round(min(1.0, max(0.0, opacity)) * 255)
    return rgb[0], rgb[1], rgb[2], alpha
