"""
路径与仓库定位工具。

定位：
- 后端运行时需要定位仓库根目录（用于读取 docs/data 内的配置文件）。
- 同时需要定位曲库根目录（默认 backend/library，可由配置覆盖）。

约束：
- 曲库内的任何路径都必须落在曲库根目录之内；越界路径一律拒绝。
"""

from __future__ import annotations

from pathlib import Path


def find_repo_root(start: Path | None = None) -> Path:
    """向上搜索仓库根目录（基于目录特征）。"""

    cur = (start or Path(__file__)).resolve()
    if cur.is_file():
        cur = cur.parent

    for _ in range(20):
        if (cur / "backend").exists() and (cur / "docs").exists():
            return cur
        if cur.parent == cur:
            break
        cur = cur.parent
    raise RuntimeError("无法定位仓库根目录（未找到 backend/docs 两个目录）")


def backend_dir() -> Path:
    return find_repo_root() / "backend"


def docs_data_dir() -> Path:
    return find_repo_root() / "docs" / "data"


def default_library_root() -> Path:
    return backend_dir() / "library"


def is_safe_segment(name: str) -> bool:
    """单个路径段（piece_id 等）是否安全：非空、非 . / ..、不含分隔符。"""

    if not name or name in (".", ".."):
        return False
    return "/" not in name and "\\" not in name and "\x00" not in name


def is_within(root: Path, candidate: Path) -> bool:
    root_r = root.resolve()
    cand_r = candidate.resolve()
    return cand_r == root_r or root_r in cand_r.parents
