"""テンプレート zip パッケージの作成・読込

PSD を zip に格納して配布し、プレビュー時に zip から PSD を取り出す。
リモート配置（静的ホスティング / Git LFS）からの取得にも対応する。
"""

from __future__ import annotations

import io
import logging
import os
import zipfile

import requests

from core.psd_model import PsdDocument
from core.psd_reader import read_psd

logger = logging.getLogger(__name__)

_REQUEST_TIMEOUT = 30  # seconds

# Git LFS ポインタファイルの先頭行
_LFS_POINTER_PREFIX = b'version https://git-lfs.github.com/spec/v1'
_LFS_SNIFF_LEN = 100

_PSD_EXTENSIONS = ('.psd',)


class TemplateArchiveError(ValueError):
    """テンプレート zip を取得・展開できない。"""


# ── パッケージ作成 ───────────────────────────────────────────────────────────


def package_psd(psd_path: str, zip_path: str) -> str:
    """PSD ファイルを zip（DEFLATE, 最大圧縮）に格納する。

    zip 内のエントリ名は拡張子付きのファイル名。

    Returns:
        作成した zip のパス
    """
    os.makedirs(os.path.dirname(os.path.abspath(zip_path)), exist_ok=True)
    with zipfile.ZipFile(
        zip_path, 'w',
        compression=zipfile.ZIP_DEFLATED,
        compresslevel=9,
    ) as zf:
        zf.write(psd_path, arcname=os.path.basename(psd_path))
    logger.info('ZIP 作成: %s', zip_path)
    return zip_path


# ── 読込 ─────────────────────────────────────────────────────────────────────


def is_lfs_pointer(data: bytes) -> bool:
    """データが実体ではなく Git LFS ポインタファイルかを判定する。"""
    return data[:_LFS_SNIFF_LEN].startswith(_LFS_POINTER_PREFIX)


def _is_resource_fork(name: str) -> bool:
    """macOS が付加するメタデータエントリか。"""
    base = name.rsplit('/', 1)[-1]
    return '__MACOSX' in name or base.startswith('._')


def find_psd_in_zip(zf: zipfile.ZipFile) -> str:
    """zip 内の最初の PSD エントリ名を返す。

    Raises:
        TemplateArchiveError: PSD が含まれていない場合
    """
    for name in zf.namelist():
        if name.endswith('/') or _is_resource_fork(name):
            continue
        if name.lower().endswith(_PSD_EXTENSIONS):
            return name
    raise TemplateArchiveError('No PSD file found in zip')


def read_psd_from_zip(zip_bytes: bytes) -> tuple[str, bytes]:
    """zip のバイト列から (エントリ名, PSD バイト列) を返す。"""
    if is_lfs_pointer(zip_bytes):
        raise TemplateArchiveError(
            'Git LFS pointer file received instead of binary content'
        )
    try:
        with zipfile.ZipFile(io.BytesIO(zip_bytes)) as zf:
            name = find_psd_in_zip(zf)
            return name, zf.read(name)
    except zipfile.BadZipFile as exc:
        raise TemplateArchiveError(f'Invalid zip: {exc}') from exc


def resolve_template_url(base_url: str, zip_file: str) -> str:
    """ベース URL とカタログの zip パスを結合する（二重スラッシュを避ける）。"""
    clean = zip_file[1:] if zip_file.startswith('/') else zip_file
    if not base_url:
        return clean
    if base_url.endswith('/'):
        return f'{base_url}{clean}'
    return f'{base_url}/{clean}'


def fetch_template(url: str, timeout: float = _REQUEST_TIMEOUT) -> bytes:
    """リモートのテンプレート zip をダウンロードする。

    Raises:
        TemplateArchiveError: HTTP エラー、または LFS ポインタを受け取った場合
    """
    try:
        resp = requests.get(url, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise TemplateArchiveError(f'Download failed: {url} ({exc})') from exc

    data = resp.content
    if is_lfs_pointer(data):
        raise TemplateArchiveError(
            f'Git LFS pointer file received instead of binary content: {url}'
        )
    return data


def _is_url(source: str) -> bool:
    return source.startswith(('http://', 'https://'))


def load_template_document(
    source: str, timeout: float = _REQUEST_TIMEOUT,
) -> PsdDocument:
    """PSD / zip のパスまたは URL から PsdDocument を読み込む。"""
    if _is_url(source):
        data = fetch_template(source, timeout=timeout)
        name = os.path.splitext(os.path.basename(source.split('?', 1)[0]))[0]
    else:
        with open(source, 'rb') as f:
            data = f.read()
        name = os.path.splitext(os.path.basename(source))[0]

    if source.lower().split('?', 1)[0].endswith('.zip') or data[:4] == b'PK\x03\x04':
        entry, data = read_psd_from_zip(data)
        logger.debug('ZIP から PSD を取得: %s', entry)

    return read_psd(data, name=name)
