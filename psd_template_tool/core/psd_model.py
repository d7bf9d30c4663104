"""PSD ドキュメントのレイヤーツリーモデル

デコーダー (psd_reader) が生成し、コンポジター (compositor) が読み取る。
ノードは GroupNode / RasterLayerNode / TextLayerNode の 3 種のみ。

子ノードの並び順:
  PSD の格納順（下 → 上）をそのまま保持する。先頭が最背面。
  コンポジターはこの順で出力し、後の要素ほど前面に描画される。

不透明度:
  モデル内部では 0.0〜1.0 に統一する。
  psd-tools は 0〜255 の整数を返すため、読み込み時に opacity_from_byte() で変換する。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from PIL import Image


def opacity_from_byte(value: int | None) -> float:
    """psd-tools の不透明度 (0〜255) を 0.0〜1.0 に変換する。"""
    if value is None:
        return 1.0
    return min(1.0, max(0.0, value / 255.0))


def normalize_opacity(value: float | int | None) -> float:
    """不透明度を 0.0〜1.0 に正規化する。

    - None → 1.0（不透明）
    - 1 を超える値 → 0〜255 スケールとみなして 255 で割る
    - それ以外 → そのまま（0.0〜1.0 にクランプ）

    整数の 1 は 1.0（不透明）として扱う。
    """
    if value is None:
        return 1.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if value > 1:
        value = value / 255.0
    return min(1.0, max(0.0, float(value)))


@dataclass
class TextStyle:
    """テキストレイヤーのスタイル。未設定の項目は None。"""
    font_family: str | None = None
    font_size_pt: float | None = None
    fill_color: str | None = None  # '#RRGGBB'


@dataclass
class GroupNode:
    """レイヤーグループ。"""
    name: str = ''
    hidden: bool = False
    children: list[DocumentNode] = field(default_factory=list)


@dataclass
class RasterLayerNode:
    """ピクセルレイヤー。pixels が None のものは描画できない。"""
    name: str = ''
    hidden: bool = False
    left: int = 0
    top: int = 0
    width: int = 0
    height: int = 0
    opacity: float = 1.0
    pixels: Image.Image | None = None


@dataclass
class TextLayerNode:
    """テキストレイヤー。text が None のものはテキストを読めなかったことを示す。"""
    name: str = ''
    hidden: bool = False
    left: int = 0
    top: int = 0
    opacity: float = 1.0
    text: str | None = ''
    style: TextStyle = field(default_factory=TextStyle)


DocumentNode = Union[GroupNode, RasterLayerNode, TextLayerNode]


@dataclass
class PsdDocument:
    """パース済み PSD ドキュメント（ルートグループ + キャンバスサイズ）。"""
    width: int = 0
    height: int = 0
    children: list[DocumentNode] = field(default_factory=list)
    name: str = ''

    def walk(self):
        """全ノードを深さ優先（格納順）で返す。hidden も含む。"""
        stack: list[list[DocumentNode]] = [list(reversed(self.children))]
        while stack:
            pending = stack[-1]
            if not pending:
                stack.pop()
                continue
            node = pending.pop()
            yield node
            if isinstance(node, GroupNode):
                stack.append(list(reversed(node.children)))

    @property
    def layer_count(self) -> int:
        """グループを除いたレイヤー数。"""
        return sum(1 for n in self.walk() if not isinstance(n, GroupNode))


@dataclass(frozen=True)
class SurfaceTarget:
    """描画先サーフェスのピクセルサイズ。"""
    width: int
    height: int
