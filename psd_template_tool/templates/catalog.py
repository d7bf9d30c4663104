"""テンプレートカタログ（config.json）生成

2 種類のカタログを生成する:

1. プレビューカタログ (build_preview_catalog)
   psd_root 配下の psdNNNNN / zpsdNNNNN フォルダを走査し、
   同名のプレビュー画像と PSD を持つフォルダをテンプレートとして登録する。
   プレビュー画像のサイズはヘッダーから取得する（失敗時は既定サイズ）。

2. パッケージカタログ (build_package_catalog)
   input_dir の PSD を 1 つずつ zip 化し、PNG プレビューを書き出して登録する。

出力 JSON のキーはフロントエンドの読込形式に合わせて camelCase とする。
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
from datetime import date, datetime, timezone
from typing import Any

from core.image_size import DEFAULT_IMAGE_SIZE, sniff_file
from core.psd_reader import document_from_psd, open_psd_image
from core.surface import render_preview
from core.template_archive import package_psd

logger = logging.getLogger(__name__)

CATALOG_VERSION = '1.0.0'

_PREVIEW_EXTENSIONS = frozenset({'.jpg', '.jpeg', '.png'})
_PSD_EXTENSIONS = frozenset({'.psd', '.ps'})
_README_NAMES = frozenset({'説明.htm', 'readme.htm', '説明.html'})
_PSD_FILE_RE = re.compile(r'\.(?:psd|ps)$', re.IGNORECASE)
_NUMBER_RE = re.compile(r'\d+')

_MAX_TAGS = 8

# カテゴリ名
CATEGORY_POSTER = 'ポスター'
CATEGORY_SOCIAL = 'SNS'
CATEGORY_GENERAL = '総合'
CATEGORY_OTHER = 'その他'

# カテゴリ別タグ
_CATEGORY_TAGS: dict[str, list[str]] = {
    CATEGORY_POSTER: ['ポスター', '宣伝', '印刷', '大判'],
    CATEGORY_SOCIAL: ['SNS', 'ウェブ', 'シェア', '小サイズ'],
    CATEGORY_GENERAL: ['汎用', '多機能', 'テンプレート'],
}
_COMMON_TAGS = ['デザイン', 'テンプレート', '編集可']

_BASE_PATH = '/templates/psd/'


# ── フォルダ名の解析 ─────────────────────────────────────────────────────────


def _extract_number(text: str) -> int:
    m = _NUMBER_RE.search(text)
    return int(m.group(0)) if m else 0


def parse_template_dir_name(dir_name: str) -> dict[str, Any] | None:
    """フォルダ名からテンプレート情報を推定する。

    psd / zpsd で始まらないフォルダは None を返す。

    番号によるカテゴリ判定:
        40000〜40999 → ポスター
        41000〜41999 → SNS
        zpsd*        → 総合
        その他       → その他
    """
    lower = dir_name.lower()
    if not (lower.startswith('psd') or lower.startswith('zpsd')):
        return None

    number = _extract_number(dir_name)
    category = CATEGORY_OTHER
    description = 'PSD デザインテンプレート'

    if 40000 <= number < 41000:
        category = CATEGORY_POSTER
        name = f'ポスターテンプレート {number}'
        description = '商品宣伝用のポスターデザイン'
    elif 41000 <= number < 42000:
        category = CATEGORY_SOCIAL
        name = f'SNS テンプレート {number}'
        description = 'SNS 投稿用のデザインテンプレート'
    elif lower.startswith('zpsd'):
        category = CATEGORY_GENERAL
        name = f'総合テンプレート {number}'
        description = '多用途デザインテンプレート'
    else:
        name = f'デザインテンプレート {number}'

    return {
        'id': dir_name,
        'number': number,
        'name': name,
        'category': category,
        'description': description,
    }


def generate_tags(category: str, template_id: str) -> list[str]:
    """カテゴリと ID からタグを生成する（重複除去、最大 8 個）。"""
    tags: list[str] = list(_CATEGORY_TAGS.get(category, []))

    lower = template_id.lower()
    if lower.startswith('zpsd'):
        tags.extend(['圧縮', '総合'])
    elif 'psd' in lower:
        tags.extend(['PSD', 'ソースファイル'])

    tags.extend(_COMMON_TAGS)
    return list(dict.fromkeys(tags))[:_MAX_TAGS]


# ── ファイル検索 ─────────────────────────────────────────────────────────────


def _find_named_file(
    files: list[str], dir_name: str, extensions: frozenset[str],
) -> str | None:
    """フォルダ名を含み、指定拡張子を持つ最初のファイルを返す。"""
    key = dir_name.lower()
    for fname in sorted(files):
        stem, ext = os.path.splitext(fname)
        if ext.lower() in extensions and key in stem.lower():
            return fname
    return None


def _find_readme(files: list[str]) -> str | None:
    for fname in sorted(files):
        if fname.lower() in _README_NAMES:
            return fname
    return None


def _created_date(path: str) -> str:
    try:
        st = os.stat(path)
    except OSError:
        return date.today().isoformat()
    ts = getattr(st, 'st_birthtime', None) or st.st_ctime
    return datetime.fromtimestamp(ts).date().isoformat()


def _modified_date(path: str) -> str:
    try:
        ts = os.path.getmtime(path)
    except OSError:
        return date.today().isoformat()
    return datetime.fromtimestamp(ts).date().isoformat()


# ── プレビューカタログ ───────────────────────────────────────────────────────


def scan_template_dir(
    psd_root: str,
    dir_name: str,
    default_size: tuple[int, int] = DEFAULT_IMAGE_SIZE,
) -> dict[str, Any] | None:
    """1 つのテンプレートフォルダを解析してカタログエントリを返す。

    プレビュー画像または PSD が無い、フォルダ名が規約外の場合は None。
    """
    dir_path = os.path.join(psd_root, dir_name)
    files = [f for f in os.listdir(dir_path)
             if os.path.isfile(os.path.join(dir_path, f))]

    preview = _find_named_file(files, dir_name, _PREVIEW_EXTENSIONS)
    if preview is None:
        logger.warning('プレビュー画像が見つかりません: %s', dir_name)
        return None

    psd_file = _find_named_file(files, dir_name, _PSD_EXTENSIONS)
    if psd_file is None:
        logger.warning('PSD ファイルが見つかりません: %s', dir_name)
        return None

    info = parse_template_dir_name(dir_name)
    if info is None:
        logger.warning('フォルダ名の形式を認識できません: %s', dir_name)
        return None

    width, height = sniff_file(os.path.join(dir_path, preview), default=default_size)
    readme = _find_readme(files)
    base = f'{_BASE_PATH}{dir_name}/'

    entry = {
        'id': info['id'],
        'number': info['number'],
        'name': info['name'],
        'description': info['description'],
        'image': f'{base}{preview}',
        'psd': f'{base}{psd_file}',
        'width': width,
        'height': height,
        'category': info['category'],
        'tags': generate_tags(info['category'], info['id']),
        'hasReadme': readme is not None,
        'readmePath': f'{base}{readme}' if readme else None,
        'createdAt': _created_date(dir_path),
        'updatedAt': _modified_date(dir_path),
    }
    logger.info(
        '追加: %s (%s, %dx%d)', info['name'], preview, width, height,
    )
    return entry


def _catalog_stats(templates: list[dict[str, Any]]) -> dict[str, Any]:
    by_category: dict[str, int] = {}
    for t in templates:
        by_category[t['category']] = by_category.get(t['category'], 0) + 1
    return {
        'totalTemplates': len(templates),
        'byCategory': by_category,
        'withReadme': sum(1 for t in templates if t['hasReadme']),
        'sizeRange': {
            'minWidth': min(t['width'] for t in templates),
            'maxWidth': max(t['width'] for t in templates),
            'minHeight': min(t['height'] for t in templates),
            'maxHeight': max(t['height'] for t in templates),
        },
    }


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='seconds')


def build_preview_catalog(
    psd_root: str,
    default_size: tuple[int, int] = DEFAULT_IMAGE_SIZE,
) -> dict[str, Any]:
    """psd_root 配下のテンプレートフォルダからカタログを生成する。

    個々のフォルダの処理に失敗しても残りの処理は続ける。
    テンプレートが 1 つも無い場合は、フォルダ構成の説明を含む既定カタログを返す。
    """
    templates: list[dict[str, Any]] = []
    if os.path.isdir(psd_root):
        for dir_name in sorted(os.listdir(psd_root)):
            if not os.path.isdir(os.path.join(psd_root, dir_name)):
                continue
            try:
                entry = scan_template_dir(psd_root, dir_name, default_size)
            except OSError as exc:
                logger.warning('処理失敗: %s (%s)', dir_name, exc)
                continue
            if entry is not None:
                templates.append(entry)
    else:
        logger.warning('PSD フォルダが存在しません: %s', psd_root)

    templates.sort(key=lambda t: _extract_number(t['id']))

    if not templates:
        return {
            'generatedAt': _now_iso(),
            'version': CATALOG_VERSION,
            'count': 0,
            'templates': [],
            'directoryStructure': {
                'base': _BASE_PATH,
                'pattern': 'psdXXXXX または zpsdXXXXX',
                'expectedFiles': [
                    'psdXXXXX.jpg (プレビュー画像)',
                    'psdXXXXX.psd (PSD ソースファイル)',
                    '説明.htm (任意の説明ファイル)',
                ],
            },
            'instructions': 'psdXXXXX 形式のフォルダを作成し、同名の jpg と psd を置いてください',
        }

    stats = _catalog_stats(templates)
    return {
        'generatedAt': _now_iso(),
        'version': CATALOG_VERSION,
        'count': len(templates),
        'templates': templates,
        'stats': stats,
        'categories': list(stats['byCategory']),
        'structure': {
            'basePath': _BASE_PATH,
            'pattern': 'psdXXXXX (XXXXX は数字)',
            'fileNaming': 'フォルダ名と jpg/psd のファイル名を一致させる',
            'example': {
                'directory': 'psd40449',
                'files': ['psd40449.jpg', 'psd40449.psd', '説明.htm (任意)'],
            },
        },
    }


# ── パッケージカタログ ───────────────────────────────────────────────────────


def _write_package_preview(psd_path: str, png_path: str) -> tuple[int, int]:
    """PSD の合成済みプレビューを PNG に書き出し、(幅, 高さ) を返す。

    PSD に合成画像が保存されていない場合はレイヤーから再構成する。
    """
    psd = open_psd_image(psd_path)
    image = psd.topil()
    if image is None:
        logger.info('合成画像なし、レイヤーから再構成: %s', psd_path)
        doc = document_from_psd(psd, name=os.path.basename(psd_path))
        image = render_preview(doc, doc.width, doc.height)
    # CMYK など PNG に書けないモードは RGBA にする
    if image.mode not in ('RGB', 'RGBA'):
        image = image.convert('RGBA')
    image.save(png_path, format='PNG')
    return int(psd.width), int(psd.height)


def build_package_catalog(
    input_dir: str,
    output_dir: str,
    *,
    clean: bool = True,
) -> dict[str, Any]:
    """input_dir の PSD を zip 化してプレビューを書き出し、カタログを返す。

    出力構成:
        output_dir/
          <name>/
            <name>.zip   # PSD を格納した zip
            <name>.png   # プレビュー

    Args:
        input_dir: PSD を置いたフォルダ（無ければ作成して空カタログを返す）
        output_dir: 出力先フォルダ
        clean: True の場合、処理前に output_dir を削除する
    """
    if clean and os.path.isdir(output_dir):
        shutil.rmtree(output_dir, ignore_errors=True)
        logger.info('旧出力を削除: %s', output_dir)

    templates: list[dict[str, Any]] = []
    if not os.path.isdir(input_dir):
        os.makedirs(input_dir, exist_ok=True)
        logger.warning('入力フォルダを作成しました。PSD を配置してください: %s', input_dir)
        return _package_catalog(templates)

    os.makedirs(output_dir, exist_ok=True)
    psd_files = sorted(f for f in os.listdir(input_dir) if _PSD_FILE_RE.search(f))
    logger.info('%d 個の PSD を検出', len(psd_files))

    for i, fname in enumerate(psd_files, 1):
        psd_path = os.path.join(input_dir, fname)
        name = os.path.splitext(fname)[0]
        out_dir = os.path.join(output_dir, name)
        logger.info('[%d/%d] 処理中: %s', i, len(psd_files), fname)
        try:
            os.makedirs(out_dir, exist_ok=True)
            zip_path = package_psd(psd_path, os.path.join(out_dir, f'{name}.zip'))
            png_path = os.path.join(out_dir, f'{name}.png')
            width, height = _write_package_preview(psd_path, png_path)
        except Exception:
            logger.exception('処理失敗: %s', fname)
            shutil.rmtree(out_dir, ignore_errors=True)
            continue

        templates.append({
            'name': name,
            'inputPsdPath': psd_path,
            'zipFile': zip_path,
            'width': width,
            'height': height,
            'image': png_path,
        })

    return _package_catalog(templates)


def _package_catalog(templates: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        'version': CATALOG_VERSION,
        'count': len(templates),
        'templates': templates,
    }


def write_catalog(catalog: dict[str, Any], path: str) -> str:
    """カタログを JSON で書き出す。"""
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(catalog, f, ensure_ascii=False, indent=2)
    logger.info('カタログ出力: %s (%d 件)', path, catalog.get('count', 0))
    return path
