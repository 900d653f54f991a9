"""
后端运行配置（ScoreLibrary Settings）。

定位：
- 配置真源是仓库内 `docs/data/scorelib_settings.yaml`（可用环境变量 SCORELIB_SETTINGS 指向其它文件）。
- 环境变量覆盖文件值，便于本地切换 MuseScore / Audiveris 安装与曲库位置。

约束：
- 未知 key 直接报错，不静默忽略（避免拼写错误导致配置不生效）。
- 进程内缓存一次；测试可调用 `reset_settings_cache()` 重新加载。
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from .paths import default_library_root, docs_data_dir, find_repo_root


INSTRUMENTS = ("piano", "violin", "guitar", "flute", "drums")

_WINDOWS_MUSESCORE = r"C:\Program Files\MuseScore 4\bin\MuseScore4.exe"

_KNOWN_KEYS = {
    "library_path",
    "musescore_path",
    "musescore_timeout_s",
    "audiveris_path",
    "audiveris_timeout_s",
    "default_instrument",
}


@dataclass(frozen=True)
class Settings:
    library_path: Path
    musescore_path: str
    musescore_timeout_s: float
    audiveris_path: str | None
    audiveris_timeout_s: float
    default_instrument: str = "piano"


def normalize_exe_path(raw: str) -> str:
    """去掉首尾引号与空白（.env 里常见 `"C:\\Program Files\\..."` 写法）。"""

    s = raw.strip()
    if len(s) >= 1 and s[0] in "'\"":
        s = s[1:]
    if len(s) >= 1 and s[-1] in "'\"":
        s = s[:-1]
    return s.strip()


def _default_musescore_path() -> str:
    return _WINDOWS_MUSESCORE if sys.platform == "win32" else "mscore"


def _as_timeout(v: Any, *, where: str) -> float:
    try:
        t = float(v)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Settings: {where} 必须是数字：{v!r}") from e
    if t <= 0:
        raise ValueError(f"Settings: {where} 必须为正数：{v!r}")
    return t


def _resolve_library_path(raw: str | None) -> Path:
    if not raw:
        return default_library_root()
    p = Path(raw).expanduser()
    if not p.is_absolute():
        p = find_repo_root() / p
    return p


def settings_file_path() -> Path:
    override = os.environ.get("SCORELIB_SETTINGS")
    if override:
        return Path(override)
    return docs_data_dir() / "scorelib_settings.yaml"


def _read_settings_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"Settings: 顶层必须是 dict：{path}")
    unknown = sorted(set(raw) - _KNOWN_KEYS)
    if unknown:
        raise ValueError(f"Settings: 未知配置项 {unknown!r}（{path}）")
    return raw


def load_settings(path: Path | None = None, env: dict[str, str] | None = None) -> Settings:
    file_values = _read_settings_file(path or settings_file_path())
    env = dict(os.environ) if env is None else env

    def pick(key: str, env_key: str) -> Any:
        v = env.get(env_key)
        if v is not None and v.strip() != "":
            return v
        return file_values.get(key)

    musescore = pick("musescore_path", "MUSESCORE_PATH")
    audiveris = pick("audiveris_path", "AUDIVERIS_PATH")
    instrument = str(file_values.get("default_instrument") or "piano")
    if instrument not in INSTRUMENTS:
        raise ValueError(f"Settings: default_instrument 必须是 {INSTRUMENTS!r} 之一：{instrument!r}")

    return Settings(
        library_path=_resolve_library_path(pick("library_path", "LIBRARY_PATH")),
        musescore_path=normalize_exe_path(str(musescore)) if musescore else _default_musescore_path(),
        musescore_timeout_s=_as_timeout(pick("musescore_timeout_s", "MUSESCORE_TIMEOUT_S") or 300, where="musescore_timeout_s"),
        audiveris_path=normalize_exe_path(str(audiveris)) if audiveris else None,
        audiveris_timeout_s=_as_timeout(pick("audiveris_timeout_s", "AUDIVERIS_TIMEOUT_S") or 300, where="audiveris_timeout_s"),
        default_instrument=instrument,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def reset_settings_cache() -> None:
    get_settings.cache_clear()
