"""PSD テンプレートツール — エントリーポイント

使用方法（psd_template_tool/ ディレクトリから実行）:
    python main.py catalog                 # プレビューカタログ生成
    python main.py package [--dev]         # PSD を zip 化してカタログ生成
    python main.py preview SRC -o out.png  # PSD / zip / URL をプレビュー描画
    python main.py inspect SRC             # 表示レイヤー一覧
    python main.py size IMAGE              # 画像サイズ取得
"""

import argparse
import logging
import os
import sys

from core.compositor import iter_visible_leaves
from core.config import (
    get_catalog_path,
    get_default_image_size,
    get_input_dir,
    get_output_dir,
    get_psd_root,
    load_config,
)
from core.image_size import sniff_file
from core.psd_model import RasterLayerNode
from core.surface import render_preview
from core.template_archive import load_template_document, resolve_template_url
from templates.catalog import build_package_catalog, build_preview_catalog, write_catalog
from utils.color import hex_to_rgb

logger = logging.getLogger(__name__)


def _cmd_catalog(config: dict, args: argparse.Namespace) -> int:
    psd_root = args.root or get_psd_root(config)
    out_path = args.output or get_catalog_path(config)
    catalog = build_preview_catalog(psd_root, get_default_image_size(config))
    write_catalog(catalog, out_path)
    print(f'テンプレート数: {catalog["count"]}')
    for i, t in enumerate(catalog['templates'], 1):
        print(f'  {i}. {t["name"]} ({t["id"]}) {t["width"]}x{t["height"]}')
    return 0


def _cmd_package(config: dict, args: argparse.Namespace) -> int:
    input_dir = args.input or get_input_dir(config)
    output_dir = args.output or get_output_dir(config, create=False)
    # 開発モード: 出力フォルダが未作成なら何もしない
    if args.dev and not os.path.isdir(output_dir):
        logger.info('出力フォルダがないためスキップ: %s', output_dir)
        return 0
    catalog = build_package_catalog(input_dir, output_dir)
    write_catalog(catalog, args.catalog or get_catalog_path(config))
    print(f'処理したテンプレート数: {catalog["count"]}')
    return 0


def _resolve_source(config: dict, source: str) -> str:
    """カタログの相対 zip パスをリモートのベース URL と結合する。"""
    base_url = config.get('remote', {}).get('base_url', '')
    if base_url and not os.path.exists(source) and '://' not in source:
        return resolve_template_url(base_url, source)
    return source


def _cmd_preview(config: dict, args: argparse.Namespace) -> int:
    preview_cfg = config.get('preview', {})
    remote_cfg = config.get('remote', {})
    width = args.width or int(preview_cfg.get('width', 800))
    height = args.height or int(preview_cfg.get('height', 600))
    background = (*hex_to_rgb(preview_cfg.get('background', '#FFFFFF'), (255, 255, 255)), 255)

    doc = load_template_document(
        _resolve_source(config, args.source),
        timeout=float(remote_cfg.get('timeout', 30)),
    )
    img = render_preview(
        doc, width, height,
        background=background,
        max_depth=int(config.get('compositor', {}).get('max_depth', 64)),
    )
    img.save(args.output, format='PNG')
    print(f'{args.output} ({img.width}x{img.height})')
    return 0


def _cmd_inspect(config: dict, args: argparse.Namespace) -> int:
    doc = load_template_document(
        _resolve_source(config, args.source),
        timeout=float(config.get('remote', {}).get('timeout', 30)),
    )
    print(f'{doc.name}: {doc.width}x{doc.height} ({doc.layer_count} レイヤー)')
    for depth, node in iter_visible_leaves(doc):
        kind = 'image' if isinstance(node, RasterLayerNode) else 'text'
        print(f'{"  " * depth}- [{kind}] {node.name} ({node.left}, {node.top})')
    return 0


def _cmd_size(config: dict, args: argparse.Namespace) -> int:
    w, h = sniff_file(args.image, default=get_default_image_size(config))
    print(f'{w}x{h}')
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='psd_template_tool')
    parser.add_argument('-c', '--config', help='config.json のパス')
    parser.add_argument('-v', '--verbose', action='store_true')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('catalog', help='プレビューカタログを生成する')
    p.add_argument('--root', help='テンプレートフォルダ')
    p.add_argument('-o', '--output', help='カタログ JSON の出力先')
    p.set_defaults(func=_cmd_catalog)

    p = sub.add_parser('package', help='PSD を zip 化してカタログを生成する')
    p.add_argument('--input', help='PSD 入力フォルダ')
    p.add_argument('-o', '--output', help='出力フォルダ')
    p.add_argument('--catalog', help='カタログ JSON の出力先')
    p.add_argument('--dev', action='store_true', help='出力フォルダが無ければ何もしない')
    p.set_defaults(func=_cmd_package)

    p = sub.add_parser('preview', help='PSD をプレビュー描画する')
    p.add_argument('source', help='PSD / zip のパスまたは URL')
    p.add_argument('-o', '--output', required=True, help='出力 PNG')
    p.add_argument('--width', type=int)
    p.add_argument('--height', type=int)
    p.set_defaults(func=_cmd_preview)

    p = sub.add_parser('inspect', help='表示レイヤーを一覧表示する')
    p.add_argument('source', help='PSD / zip のパスまたは URL')
    p.set_defaults(func=_cmd_inspect)

    p = sub.add_parser('size', help='PNG / JPEG のサイズを表示する')
    p.add_argument('image')
    p.set_defaults(func=_cmd_size)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(levelname)s %(name)s: %(message)s',
    )
    config = load_config(args.config)
    try:
        return args.func(config, args)
    except Exception:
        logging.exception('処理に失敗しました')
        return 1


if __name__ == '__main__':
    sys.exit(main())
