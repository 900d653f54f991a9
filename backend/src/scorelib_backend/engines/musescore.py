"""
MuseScore 命令行转换（MIDI / MXL / PDF）。

定位：
- 所有乐谱格式的解析与渲染都交给 MuseScore：`mscore <input> -o <output>`，输出格式由扩展名决定。
- 本模块只负责调用、判定成败、把失败原因带回调用方。

约束：
- 成功的唯一判据是“输出文件存在”；进程退出码为 0 但没有产物同样视为失败。
- 失败抛 ConversionError（携带 stdout/stderr 尾部），不做重试。
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from ..utils.settings import get_settings


logger = logging.getLogger(__name__)

_TAIL = 1500


class ConversionError(RuntimeError):
    pass


@dataclass(frozen=True)
class MidToPdfResult:
    mxl_path: Path
    pdf_path: Path


@dataclass(frozen=True)
class MxlToPdfAndMidResult:
    pdf_path: Path
    mid_path: Path | None


def musescore_available() -> bool:
    exe = get_settings().musescore_path
    return shutil.which(exe) is not None or Path(exe).is_file()


def run_musescore(input_path: Path, output_path: Path) -> Path:
    settings = get_settings()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    # 成功判据是“输出文件存在”，旧产物必须先删掉，否则失败会被误判为成功
    output_path.unlink(missing_ok=True)
    cmd = [settings.musescore_path, str(input_path), "-o", str(output_path)]
    logger.info("Executing: %s", " ".join(cmd))

    try:
        p = subprocess.run(cmd, capture_output=True, text=True, timeout=settings.musescore_timeout_s)
    except FileNotFoundError as e:
        raise ConversionError(f"MuseScore not found: {settings.musescore_path}") from e
    except subprocess.TimeoutExpired as e:
        raise ConversionError(f"MuseScore timed out after {settings.musescore_timeout_s:g}s") from e

    if p.stderr:
        logger.warning("MuseScore stderr: %s", p.stderr[-_TAIL:])

    if not output_path.exists():
        raise ConversionError(
            f"output file not created (exit={p.returncode}). stdout: {p.stdout[-_TAIL:]}, stderr: {p.stderr[-_TAIL:]}"
        )
    return output_path


def _convert(input_path: Path, output_path: Path, *, label: str) -> Path:
    try:
        return run_musescore(input_path, output_path)
    except ConversionError as e:
        logger.error("%s conversion error: %s", label, e)
        raise


def convert_mid_to_mxl(input_path: Path, output_path: Path) -> Path:
    return _convert(input_path, output_path, label="MIDI to MXL")


def convert_mxl_to_pdf(input_path: Path, output_path: Path) -> Path:
    return _convert(input_path, output_path, label="MXL to PDF")


def convert_mxl_to_mid(input_path: Path, output_path: Path) -> Path:
    return _convert(input_path, output_path, label="MXL to MIDI")


def convert_mid_to_pdf(midi_path: Path, out_dir: Path, base_name: str = "score") -> MidToPdfResult:
    """两步转换：MIDI → MXL → PDF（任一步失败即停止）。"""

    mxl_path = out_dir / f"{base_name}.mxl"
    pdf_path = out_dir / f"{base_name}.pdf"

    try:
        convert_mid_to_mxl(midi_path, mxl_path)
    except ConversionError as e:
        raise ConversionError(f"MXL conversion failed: {e}") from e

    try:
        convert_mxl_to_pdf(mxl_path, pdf_path)
    except ConversionError as e:
        raise ConversionError(f"PDF conversion failed: {e}") from e

    return MidToPdfResult(mxl_path=mxl_path, pdf_path=pdf_path)


def convert_mxl_to_pdf_and_mid(
    mxl_path: Path,
    out_dir: Path,
    base_name: str = "score",
    generate_mid: bool = True,
) -> MxlToPdfAndMidResult:
    """MXL → PDF（必须成功），可选 MXL → MIDI（失败只记日志）。"""

    pdf_path = out_dir / f"{base_name}.pdf"
    try:
        convert_mxl_to_pdf(mxl_path, pdf_path)
    except ConversionError as e:
        raise ConversionError(f"PDF conversion failed: {e}") from e

    if not generate_mid:
        return MxlToPdfAndMidResult(pdf_path=pdf_path, mid_path=None)

    mid_path = out_dir / f"{base_name}.mid"
    try:
        convert_mxl_to_mid(mxl_path, mid_path)
    except ConversionError as e:
        logger.warning("MIDI generation failed: %s", e)
        return MxlToPdfAndMidResult(pdf_path=pdf_path, mid_path=None)
    return MxlToPdfAndMidResult(pdf_path=pdf_path, mid_path=mid_path)
