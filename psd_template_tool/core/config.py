"""設定ファイル（config.json）管理"""

import json
import os
import sys
from typing import Any


def _get_app_dir() -> str:
    """アプリの実行ディレクトリを返す（ユーザー書き込み用）。"""
    if getattr(sys, 'frozen', False):
        return os.path.dirname(sys.executable)
    return os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def _get_config_path() -> str:
    """config.json の絶対パスを返す。"""
    return os.path.join(_get_app_dir(), 'config.json')


def _default_config() -> dict[str, Any]:
    """デフォルト設定を返す。"""
    return {
        'app_version': '1.0.0',
        'input_dir': './public/templates/files',
        'output_dir': './public/templates/psd',
        'psd_root': './public/templates/psd',
        'catalog_file': './public/templates/config.json',
        'default_image_size': [1920, 1080],
        'preview': {
            'width': 800,
            'height': 600,
            'background': '#FFFFFF',
        },
        'compositor': {
            'max_depth': 64,
        },
        'remote': {
            'base_url': '',
            'timeout': 30,
        },
    }


def _deep_merge(base: dict, override: dict) -> dict:
    """ネストした辞書を再帰的にマージする。override が優先。"""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def load_config(path: str | None = None) -> dict[str, Any]:
    """config.json を読み込む。存在しない / 不正な場合はデフォルト値を返す。

    Args:
        path: 設定ファイルのパス（省略時はアプリディレクトリの config.json）
    """
    defaults = _default_config()
    path = path or _get_config_path()
    if not os.path.exists(path):
        return _deep_merge(defaults, {})
    try:
        with open(path, encoding='utf-8') as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return _deep_merge(defaults, {})
    if not isinstance(data, dict):
        return _deep_merge(defaults, {})
    return _deep_merge(defaults, data)


def save_config(config: dict[str, Any], path: str | None = None) -> None:
    """config を config.json に保存する。"""
    path = path or _get_config_path()
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(config, f, ensure_ascii=False, indent=2)


def _resolve(raw: str) -> str:
    """アプリディレクトリ基準で相対パスを解決する。"""
    if os.path.isabs(raw):
        return raw
    return os.path.normpath(os.path.join(_get_app_dir(), raw))


def get_input_dir(config: dict[str, Any]) -> str:
    """PSD 入力フォルダの絶対パスを返す（作成はしない）。"""
    return _resolve(config.get('input_dir', './public/templates/files'))


def get_output_dir(config: dict[str, Any], create: bool = True) -> str:
    """パッケージ出力フォルダの絶対パスを返す。create=True なら作成する。"""
    path = _resolve(config.get('output_dir', './public/templates/psd'))
    if create:
        os.makedirs(path, exist_ok=True)
    return path


def get_psd_root(config: dict[str, Any]) -> str:
    """プレビューカタログのスキャン対象フォルダの絶対パスを返す。"""
    return _resolve(config.get('psd_root', './public/templates/psd'))


def get_catalog_path(config: dict[str, Any]) -> str:
    """カタログ JSON の出力先パスを返す。親フォルダは作成する。"""
    path = _resolve(config.get('catalog_file', './public/templates/config.json'))
    os.makedirs(os.path.dirname(path), exist_ok=True)
    return path


def get_default_image_size(config: dict[str, Any]) -> tuple[int, int]:
    """サイズ取得失敗時の既定画像サイズを返す。"""
    raw = config.get('default_image_size') or [1920, 1080]
    try:
        w, h = int(raw[0]), int(raw[1])
    except (TypeError, ValueError, IndexError):
        return 1920, 1080
    if w <= 0 or h <= 0:
        return 1920, 1080
    return w, h
