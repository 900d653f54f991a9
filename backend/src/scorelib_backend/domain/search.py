"""曲库检索：标题 / 标签 / 原始文件名的大小写不敏感子串匹配。"""

from __future__ import annotations

from ..infra.library import Piece


def piece_matches(piece: Piece, query: str) -> bool:
    q = query.lower()
    meta = piece.meta
    if q in meta.title.lower():
        return True
    if any(q in tag.lower() for tag in meta.tags):
        return True
    return q in meta.original_name.lower()


def search_pieces(pieces: list[Piece], query: str | None) -> list[Piece]:
    q = (query or "").strip()
    if not q:
        return list(pieces)
    return [p for p in pieces if piece_matches(p, q)]
