"""
曲目元数据（meta.json 侧车文件）。

定位：
- 每个曲目目录下有一个 meta.json，记录原始文件名、标题、上传时间、标签、播放乐器等。
- 磁盘与 HTTP 上都沿用 camelCase 键（originalName / uploadedAt ...），与前端约定一致。

约束：
- 读取时做结构校验：缺字段/类型不对视为“无效元数据”（返回 None 并记录日志），不猜测补全。
- 写入时一律 2 空格缩进、UTF-8、保留非 ASCII 字符。
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..utils.settings import INSTRUMENTS, get_settings


logger = logging.getLogger(__name__)

_SCORE_SUFFIX_RE = re.compile(r"\.(mid|midi|mxl)$", re.IGNORECASE)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class PieceMeta:
    original_name: str
    title: str
    uploaded_at: str
    tags: tuple[str, ...] = field(default_factory=tuple)
    instrument: str | None = None
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "originalName": self.original_name,
            "title": self.title,
            "uploadedAt": self.uploaded_at,
            "tags": list(self.tags),
        }
        if self.instrument is not None:
            out["instrument"] = self.instrument
        if self.description is not None:
            out["description"] = self.description
        return out

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "PieceMeta":
        """严格解析；结构不对抛 ValueError。"""

        if not isinstance(d, dict):
            raise ValueError("meta.json 顶层必须是 object")
        for key in ("originalName", "title", "uploadedAt"):
            if not isinstance(d.get(key), str):
                raise ValueError(f"meta.json 缺少字符串字段 {key!r}")
        tags = d.get("tags")
        if not isinstance(tags, list):
            raise ValueError("meta.json 缺少数组字段 'tags'")
        instrument = d.get("instrument")
        description = d.get("description")
        return cls(
            original_name=d["originalName"],
            title=d["title"],
            uploaded_at=d["uploadedAt"],
            tags=tuple(str(t) for t in tags),
            instrument=str(instrument) if instrument is not None else None,
            description=str(description) if description is not None else None,
        )

    def uploaded_at_dt(self) -> datetime:
        """上传时间（用于排序）；无法解析时视为最早。"""

        try:
            dt = datetime.fromisoformat(self.uploaded_at.replace("Z", "+00:00"))
        except ValueError:
            return datetime.min.replace(tzinfo=timezone.utc)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt


def title_from_filename(original_name: str) -> str:
    return _SCORE_SUFFIX_RE.sub("", original_name).replace("_", " ")


def create_default_metadata(original_name: str) -> PieceMeta:
    return PieceMeta(
        original_name=original_name,
        title=title_from_filename(original_name),
        uploaded_at=utc_now_iso(),
        tags=(),
        instrument=get_settings().default_instrument,
    )


def read_metadata(path: Path) -> PieceMeta | None:
    if not path.exists():
        return None
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error("读取元数据失败：%s (%s)", path, e)
        return None
    try:
        return PieceMeta.from_dict(raw)
    except ValueError as e:
        logger.error("元数据格式无效：%s (%s)", path, e)
        return None


def write_metadata(path: Path, meta: PieceMeta) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(meta.to_dict(), ensure_ascii=False, indent=2) + "\n", encoding="utf-8")


def update_metadata(current: PieceMeta, updates: dict[str, Any]) -> PieceMeta:
    """合并部分更新；未给出的字段保持原值。

    updates 使用 snake_case 字段名（title / tags / instrument / description）。
    """

    unknown = set(updates) - {"title", "tags", "instrument", "description"}
    if unknown:
        raise ValueError(f"不支持更新的字段：{sorted(unknown)!r}")
    changes: dict[str, Any] = {}
    if updates.get("title") is not None:
        changes["title"] = updates["title"]
    if updates.get("tags") is not None:
        changes["tags"] = tuple(updates["tags"])
    if updates.get("instrument") is not None:
        changes["instrument"] = updates["instrument"]
    if "description" in updates:
        changes["description"] = updates["description"]
    return replace(current, **changes)


def normalize_title(raw: str) -> str:
    t = raw.strip()
    if not t:
        raise ValueError("title cannot be empty")
    return t


def normalize_tags(raw: list[Any]) -> list[str]:
    """trim、去空、去重（保留首次出现的顺序）。"""

    out: list[str] = []
    seen: set[str] = set()
    for x in raw:
        t = x.strip() if isinstance(x, str) else ""
        if not t or t in seen:
            continue
        seen.add(t)
        out.append(t)
    return out


def normalize_instrument(raw: str) -> str:
    v = raw.strip().lower()
    if v not in INSTRUMENTS:
        raise ValueError(f"instrument must be one of: {', '.join(INSTRUMENTS)}")
    return v
