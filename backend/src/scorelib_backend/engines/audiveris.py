"""
Audiveris 光学识谱（OMR）：扫描图片 → MusicXML（MXL 或 XML）。

定位：
- Audiveris 是可选外部工具；未配置 audiveris_path 时 OMR 功能整体不可用。
- 调用方式：`audiveris -batch -transcribe -export -output <out_dir> <image>`，工作目录设为 out_dir。

约束：
- Audiveris 可能把结果放进子目录；按深度优先找第一个 *.mxl，找不到再找第一个 *.xml。
- 失败抛 OmrError，不做重试。
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from ..utils.settings import get_settings


logger = logging.getLogger(__name__)

_TAIL = 1500


class OmrError(RuntimeError):
    pass


class OmrUnavailableError(RuntimeError):
    pass


def has_audiveris() -> bool:
    exe = get_settings().audiveris_path
    if not exe:
        return False
    return Path(exe).exists()


def find_first_by_extensions(root: Path, exts: tuple[str, ...]) -> Path | None:
    """深度优先查找第一个匹配扩展名的文件（同层按名称排序，保证结果稳定）。"""

    for entry in sorted(root.iterdir(), key=lambda p: p.name):
        if entry.is_file():
            if entry.suffix.lower() in exts:
                return entry
        elif entry.is_dir():
            found = find_first_by_extensions(entry, exts)
            if found is not None:
                return found
    return None


def convert_image_to_mxl(
    audiveris_path: str,
    image_path: Path,
    out_dir: Path,
    timeout_s: float | None = None,
) -> Path:
    out_dir.mkdir(parents=True, exist_ok=True)
    timeout = timeout_s if timeout_s is not None else get_settings().audiveris_timeout_s
    cmd = [audiveris_path, "-batch", "-transcribe", "-export", "-output", str(out_dir), str(image_path)]
    logger.info("Running Audiveris: %s", " ".join(cmd))

    try:
        p = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout, cwd=str(out_dir))
    except FileNotFoundError as e:
        raise OmrError(f"Audiveris not found: {audiveris_path}") from e
    except subprocess.TimeoutExpired as e:
        raise OmrError(f"Audiveris timed out after {timeout:g}s") from e

    if p.returncode != 0:
        raise OmrError(f"Audiveris exited with {p.returncode}. stderr: {p.stderr[-_TAIL:]}")

    found = find_first_by_extensions(out_dir, (".mxl",)) or find_first_by_extensions(out_dir, (".xml",))
    if found is None:
        raise OmrError("No MusicXML output found from Audiveris")
    return found
