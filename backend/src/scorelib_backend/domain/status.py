"""
曲库状态与外部工具就绪性检查（面向前端 UI）。

定位：
- 上传/识谱依赖外部工具（MuseScore、Audiveris）；前端需要一个轻量端点判断“当前能否上传/识谱”。
- 同时给出曲库规模统计（曲目数、占用空间、最近上传时间）。

约束：
- 该模块只做诊断，不修改曲库。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..engines.audiveris import has_audiveris
from ..engines.musescore import musescore_available
from ..infra.library import LibraryStats, library_root, library_stats
from ..utils.settings import get_settings


@dataclass(frozen=True)
class LibraryStatus:
    library_path: str
    stats: LibraryStats
    musescore_available: bool
    audiveris_configured: bool
    audiveris_available: bool


def compute_status() -> LibraryStatus:
    return LibraryStatus(
        library_path=str(library_root()),
        stats=library_stats(),
        musescore_available=musescore_available(),
        audiveris_configured=get_settings().audiveris_path is not None,
        audiveris_available=has_audiveris(),
    )


def status_to_dict(status: LibraryStatus) -> dict[str, Any]:
    return {
        "libraryPath": status.library_path,
        "totalPieces": status.stats.total_pieces,
        "totalSize": status.stats.total_size,
        "lastUpload": status.stats.last_upload,
        "tools": {
            "musescore": status.musescore_available,
            "audiverisConfigured": status.audiveris_configured,
            "audiveris": status.audiveris_available,
        },
    }
