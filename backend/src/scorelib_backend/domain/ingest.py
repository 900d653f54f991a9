"""
上传入库流程：乐谱文件（MIDI/MXL）与扫描图片（OMR）。

定位：
- 把“建目录 → 保存原件 → 外部工具转换 → 写元数据”串成一条线性流程。
- 建目录之后任何一步失败（外部工具、写盘、元数据）即停止：曲目目录整体删除，异常原样上抛给 API 层。

例外（与原流程一致）：
- MXL 上传时 MIDI 派生失败只记日志；
- 图片上传时 OMR 已成功，但 MuseScore 渲染 PDF/MIDI 失败，保留曲目（仍可下载 MXL/XML）。
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from ..engines.audiveris import OmrUnavailableError, convert_image_to_mxl
from ..engines.musescore import (
    ConversionError,
    convert_mid_to_pdf,
    convert_mxl_to_pdf_and_mid,
    musescore_available,
)
from ..infra.library import create_piece_directory, require_piece, save_metadata
from ..utils.settings import get_settings
from .metadata import create_default_metadata


logger = logging.getLogger(__name__)

SCORE_EXTENSIONS = (".mid", ".midi", ".mxl")
IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg")


def _same_file(a: Path, b: Path) -> bool:
    return a.resolve() == b.resolve()


def _remove_piece_dir(d: Path) -> None:
    shutil.rmtree(d, ignore_errors=True)
    logger.info("已清理失败的曲目目录：%s", d)


def ingest_score_upload(filename: str, data: bytes) -> str:
    """保存 MIDI/MXL 上传并生成派生文件，返回 piece_id。"""

    lower = filename.lower()
    if not lower.endswith(SCORE_EXTENSIONS):
        raise ValueError("File must be a MIDI file (.mid, .midi) or MXL file (.mxl)")
    is_midi = lower.endswith((".mid", ".midi"))

    piece_id, d = create_piece_directory()
    try:
        original = d / ("original.mid" if is_midi else "original.mxl")
        original.write_bytes(data)
        if is_midi:
            convert_mid_to_pdf(original, d, "score")
        else:
            result = convert_mxl_to_pdf_and_mid(original, d, "score", True)
            shutil.copyfile(original, d / "score.mxl")
            if result.mid_path is not None and result.mid_path.exists():
                shutil.move(str(result.mid_path), str(d / "original.mid"))
        save_metadata(piece_id, create_default_metadata(filename))
    except Exception:
        _remove_piece_dir(d)
        raise

    logger.info("上传完成：%s -> %s", filename, piece_id)
    return piece_id


def ingest_image_upload(filename: str, data: bytes) -> str:
    """保存扫描图片，经 Audiveris 识谱入库，返回 piece_id。"""

    settings = get_settings()
    if not settings.audiveris_path:
        raise OmrUnavailableError("Audiveris is not configured. Set AUDIVERIS_PATH.")

    lower = filename.lower()
    if not lower.endswith(IMAGE_EXTENSIONS):
        raise ValueError("File must be an image (.png, .jpg)")
    is_png = lower.endswith(".png")

    piece_id, d = create_piece_directory()
    d = d.resolve()
    original = d / ("original.png" if is_png else "original.jpg")
    original.write_bytes(data)

    try:
        found = convert_image_to_mxl(str(Path(settings.audiveris_path).resolve()), original, d)
    except Exception:
        _remove_piece_dir(d)
        raise

    score_mxl = d / "score.mxl"
    score_xml = d / "score.xml"
    if found.suffix.lower() == ".xml":
        if not _same_file(found, score_xml):
            shutil.copyfile(found, score_xml)
    else:
        if not _same_file(found, score_mxl):
            shutil.copyfile(found, score_mxl)
        original_mxl = d / "original.mxl"
        if not _same_file(found, original_mxl):
            shutil.copyfile(found, original_mxl)

    if musescore_available():
        source = score_mxl if score_mxl.exists() else score_xml if score_xml.exists() else None
        if source is not None:
            try:
                convert_mxl_to_pdf_and_mid(source, d, "score", True)
            except ConversionError as e:
                logger.warning("MuseScore conversion failed: %s", e)

    save_metadata(piece_id, create_default_metadata(filename))
    logger.info("OMR 上传完成：%s -> %s", filename, piece_id)
    return piece_id


def reconvert_piece(piece_id: str) -> None:
    """从 original.mid 重新生成 score.mxl / score.pdf。"""

    piece = require_piece(piece_id)
    convert_mid_to_pdf(piece.files.mid, piece.directory, "score")
