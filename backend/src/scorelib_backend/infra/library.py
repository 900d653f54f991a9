"""
曲库（文件夹）管理：曲目目录、元数据、派生文件。

约定（曲库根目录，默认 backend/library，可由配置 library_path / LIBRARY_PATH 覆盖）：

每个曲目一个目录（UUID4）：

{library}/{piece_id}/
  meta.json
  original.mid | original.mxl | original.png | original.jpg
  score.mxl | score.xml
  score.pdf
  thumbnail.jpg        （可选，仅检测是否存在）

说明：
- 当前阶段使用文件夹管理，单机单进程；不做多用户/网络存储。
- 元数据损坏或缺失的目录不出现在曲库列表中（记录日志后跳过）。
"""

from __future__ import annotations

import logging
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..domain.metadata import PieceMeta, read_metadata, update_metadata, write_metadata
from ..utils.paths import is_safe_segment, is_within
from ..utils.settings import get_settings


logger = logging.getLogger(__name__)

FILE_KINDS: tuple[str, ...] = ("pdf", "mxl", "mid")

META_FILENAME = "meta.json"
THUMBNAIL_FILENAME = "thumbnail.jpg"


class PieceNotFoundError(LookupError):
    def __init__(self, piece_id: str) -> None:
        super().__init__(f"Piece {piece_id} not found")
        self.piece_id = piece_id


@dataclass(frozen=True)
class PieceFiles:
    mid: Path
    mxl: Path
    pdf: Path
    thumbnail: Path | None = None

    def to_dict(self) -> dict[str, str]:
        out = {"mid": str(self.mid), "mxl": str(self.mxl), "pdf": str(self.pdf)}
        if self.thumbnail is not None:
            out["thumbnail"] = str(self.thumbnail)
        return out


@dataclass(frozen=True)
class Piece:
    id: str
    directory: Path
    meta: PieceMeta
    files: PieceFiles

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "directory": str(self.directory),
            "meta": self.meta.to_dict(),
            "files": self.files.to_dict(),
        }


@dataclass(frozen=True)
class LibraryStats:
    total_pieces: int
    total_size: int
    last_upload: str | None


def library_root() -> Path:
    return get_settings().library_path


def ensure_library_dir() -> Path:
    root = library_root()
    root.mkdir(parents=True, exist_ok=True)
    return root


def library_path(*segments: str) -> Path:
    return library_root().joinpath(*segments)


def piece_dir(piece_id: str) -> Path:
    if not is_safe_segment(piece_id):
        raise PieceNotFoundError(piece_id)
    return library_path(piece_id)


def piece_meta_path(piece_id: str) -> Path:
    return piece_dir(piece_id) / META_FILENAME


def generate_piece_id() -> str:
    return str(uuid.uuid4())


def create_piece_directory() -> tuple[str, Path]:
    ensure_library_dir()
    piece_id = generate_piece_id()
    d = piece_dir(piece_id)
    d.mkdir(parents=True, exist_ok=True)
    return piece_id, d


def save_metadata(piece_id: str, meta: PieceMeta) -> None:
    write_metadata(piece_meta_path(piece_id), meta)


def load_metadata(piece_id: str) -> PieceMeta | None:
    try:
        return read_metadata(piece_meta_path(piece_id))
    except PieceNotFoundError:
        return None


def _piece_files(d: Path) -> PieceFiles:
    thumb = d / THUMBNAIL_FILENAME
    return PieceFiles(
        mid=d / "original.mid",
        mxl=d / "score.mxl",
        pdf=d / "score.pdf",
        thumbnail=thumb if thumb.exists() else None,
    )


def get_piece(piece_id: str) -> Piece | None:
    if not is_safe_segment(piece_id):
        return None
    d = piece_dir(piece_id)
    if not d.is_dir():
        return None
    meta = load_metadata(piece_id)
    if meta is None:
        return None
    return Piece(id=piece_id, directory=d, meta=meta, files=_piece_files(d))


def require_piece(piece_id: str) -> Piece:
    piece = get_piece(piece_id)
    if piece is None:
        raise PieceNotFoundError(piece_id)
    return piece


def list_pieces() -> list[Piece]:
    """列出曲库内所有曲目（按上传时间倒序，最新在前）。"""

    root = ensure_library_dir()
    out: list[Piece] = []
    for p in sorted(root.iterdir()):
        if not p.is_dir():
            continue
        meta = read_metadata(p / META_FILENAME)
        if meta is None:
            logger.info("跳过无有效元数据的目录：%s", p)
            continue
        out.append(Piece(id=p.name, directory=p, meta=meta, files=_piece_files(p)))
    out.sort(key=lambda x: x.meta.uploaded_at_dt(), reverse=True)
    return out


def delete_piece(piece_id: str) -> None:
    if not is_safe_segment(piece_id):
        return
    d = piece_dir(piece_id)
    if d.exists():
        shutil.rmtree(d)
        logger.info("已删除曲目：%s", piece_id)


def update_piece_metadata(piece_id: str, updates: dict[str, Any]) -> PieceMeta:
    current = load_metadata(piece_id)
    if current is None:
        raise PieceNotFoundError(piece_id)
    new_meta = update_metadata(current, updates)
    save_metadata(piece_id, new_meta)
    return new_meta


def resolve_piece_file(piece: Piece, kind: str) -> Path:
    """返回 pdf/mxl/mid 的文件路径；路径越出曲库根目录时拒绝。"""

    if kind == "pdf":
        p = piece.files.pdf
    elif kind == "mxl":
        p = piece.files.mxl
    elif kind == "mid":
        p = piece.files.mid
    else:
        raise ValueError(f"Invalid type. Must be one of: {', '.join(FILE_KINDS)}")
    if not is_within(library_root(), p):
        raise PermissionError("Access denied")
    return p


def _dir_size(d: Path) -> int:
    return sum(f.stat().st_size for f in d.rglob("*") if f.is_file())


def library_stats() -> LibraryStats:
    pieces = list_pieces()
    total_size = sum(_dir_size(p.directory) for p in pieces)
    return LibraryStats(
        total_pieces=len(pieces),
        total_size=total_size,
        last_upload=pieces[0].meta.uploaded_at if pieces else None,
    )
