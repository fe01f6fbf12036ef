#!/usr/bin/env python3
"""
Path utilities for the working directories.
"""

from __future__ import annotations

from pathlib import Path

from .constants import DEFAULT_TMP_DIR


def ensure_dir(path: Path | str) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def expand_path(path: Path | str) -> Path:
    """~/astronomy/sharpcap -> /home/<user>/astronomy/sharpcap"""
    return Path(str(path)).expanduser()


def pretty_path(path: Path | str) -> str:
    """Inverse of expand_path, for log lines."""
    text = str(path)
    home = str(Path.home())
    if home and home != '/' and text.startswith(home):
        return '~' + text[len(home):]
    return text


def _paths_config(config) -> dict:
    try:
        return config.get_paths_config()
    except Exception:
        return {}


def get_tmp_dir(config) -> Path:
    return expand_path(_paths_config(config).get('tmp_dir') or DEFAULT_TMP_DIR)


def get_plate_solve_dir(config) -> Path:
    cfg = _paths_config(config)
    return expand_path(cfg.get('plate_solve_dir') or get_tmp_dir(config) / 'platesolve')


def get_download_dir(config) -> Path:
    cfg = _paths_config(config)
    return expand_path(cfg.get('download_dir') or get_tmp_dir(config) / 'download')


def get_upload_dir(config) -> Path:
    cfg = _paths_config(config)
    return expand_path(cfg.get('upload_dir') or get_tmp_dir(config) / 'upload')


def get_lock_file(config) -> Path:
    cfg = _paths_config(config)
    return expand_path(cfg.get('lock_file') or get_tmp_dir(config) / 'stella_sync.lock')
