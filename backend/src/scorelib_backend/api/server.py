"""
ScoreLibrary 后端 API（FastAPI）。

约定：
- 服务端口：7130
- 曲库：backend/library（文件夹管理多个曲目，见 infra/library.py）

API 设计原则：
- 路由与响应结构与前端约定保持一致（/api/library、/api/upload、/api/download ...，camelCase 字段）。
- 错误统一返回 JSON：写操作 `{"success": false, "error": ...}`，读操作 `{"error": ...}`。
- JSON 请求体由 handler 自行解析：非法 JSON 返回 400 而不是 FastAPI 的 422；类型不对的字段直接忽略。
- 外部工具（MuseScore/Audiveris）是阻塞调用，放到线程池执行，不阻塞事件循环。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from fastapi import FastAPI, File, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ..domain.ingest import ingest_image_upload, ingest_score_upload, reconvert_piece
from ..domain.metadata import normalize_instrument, normalize_tags, normalize_title
from ..domain.search import search_pieces
from ..domain.status import compute_status, status_to_dict
from ..engines.audiveris import OmrError, OmrUnavailableError
from ..engines.musescore import ConversionError
from ..infra.library import (
    FILE_KINDS,
    PieceNotFoundError,
    delete_piece,
    get_piece,
    list_pieces,
    resolve_piece_file,
    update_piece_metadata,
)
from ..utils.settings import get_settings


logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "pdf": "application/pdf",
    "mxl": "application/vnd.recordare.musicxml+xml",
    "mid": "audio/midi",
}
MXL_ZIP_CONTENT_TYPE = "application/vnd.recordare.musicxml+zip"


app = FastAPI(title="ScoreLibrary Backend", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _fail(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def _error(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error})


class UpdatePieceRequest(BaseModel):
    """PUT /api/library 的请求体。

    约定：字段按 Any 接收，类型不对的字段在 handler 里忽略，而不是整体 422。
    """

    model_config = ConfigDict(populate_by_name=True)

    piece_id: Any = Field(default=None, alias="pieceId")
    title: Any = None
    tags: Any = None
    instrument: Any = None
    description: Any = None


class ConvertRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    piece_id: Any = Field(default=None, alias="pieceId")


async def _json_object(request: Request) -> dict[str, Any] | None:
    """读取 JSON 对象请求体；空体、非法 JSON 或非对象均返回 None。"""

    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/status")
def api_status() -> dict[str, Any]:
    return status_to_dict(compute_status())


@app.get("/api/library", response_model=None)
def api_list_library() -> list[dict[str, Any]] | JSONResponse:
    try:
        return [p.to_dict() for p in list_pieces()]
    except OSError as e:
        logger.exception("Error listing pieces")
        return _error(500, f"Failed to list pieces: {e}")


@app.get("/api/library/{piece_id}", response_model=None)
def api_get_piece(piece_id: str) -> dict[str, Any] | JSONResponse:
    piece = get_piece(piece_id)
    if piece is None:
        return _error(404, f"Piece {piece_id} not found")
    return piece.to_dict()


@app.put("/api/library", response_model=None)
async def api_update_piece(request: Request) -> dict[str, Any] | JSONResponse:
    body = await _json_object(request)
    if body is None:
        return _fail(400, "Invalid JSON body")
    req = UpdatePieceRequest.model_validate(body)
    if not isinstance(req.piece_id, str) or not req.piece_id:
        return _fail(400, "pieceId is required")
    if get_piece(req.piece_id) is None:
        return _fail(404, f"Piece {req.piece_id} not found")

    updates: dict[str, Any] = {}
    try:
        if isinstance(req.title, str):
            updates["title"] = normalize_title(req.title)
        if isinstance(req.instrument, str):
            updates["instrument"] = normalize_instrument(req.instrument)
    except ValueError as e:
        return _fail(400, str(e))
    if isinstance(req.tags, list):
        updates["tags"] = normalize_tags(req.tags)
    if isinstance(req.description, str):
        updates["description"] = req.description.strip() or None

    if not updates:
        return _fail(400, "No valid fields to update")

    try:
        update_piece_metadata(req.piece_id, updates)
    except PieceNotFoundError as e:
        return _fail(404, str(e))
    except OSError as e:
        logger.exception("Error updating piece %s", req.piece_id)
        return _fail(500, f"Failed to update piece: {e}")
    return {"success": True}


@app.delete("/api/library", response_model=None)
def api_delete_piece(piece_id: str | None = Query(default=None, alias="pieceId")) -> dict[str, Any] | JSONResponse:
    if not piece_id:
        return _fail(400, "pieceId parameter is required")
    if get_piece(piece_id) is None:
        return _fail(404, f"Piece {piece_id} not found")
    try:
        delete_piece(piece_id)
    except OSError as e:
        logger.exception("Error deleting piece %s", piece_id)
        return _fail(500, f"Failed to delete piece: {e}")
    return {"success": True}


@app.get("/api/search", response_model=None)
def api_search(q: str | None = None) -> list[dict[str, Any]] | JSONResponse:
    try:
        pieces = list_pieces()
    except OSError as e:
        logger.exception("Search error")
        return _error(500, f"Search failed: {e}")
    return [p.to_dict() for p in search_pieces(pieces, q)]


@app.post("/api/upload", response_model=None)
async def api_upload(midi: UploadFile | None = File(default=None)) -> dict[str, Any] | JSONResponse:
    """上传 MIDI/MXL 并生成 PDF/MXL/MIDI 派生文件。"""

    if midi is None or not midi.filename:
        return _fail(400, "No MIDI file provided")

    data = await midi.read()
    try:
        piece_id = await run_in_threadpool(ingest_score_upload, midi.filename, data)
    except ValueError as e:
        return _fail(400, str(e))
    except ConversionError as e:
        return _fail(500, f"Conversion failed: {e}")
    except Exception as e:  # noqa: BLE001
        logger.exception("Upload error")
        return _fail(500, f"Upload failed: {e}")
    return {"success": True, "pieceId": piece_id}


@app.post("/api/omr", response_model=None)
async def api_omr(image: UploadFile | None = File(default=None)) -> dict[str, Any] | JSONResponse:
    """上传扫描图片，经 Audiveris 识谱后入库。"""

    if not get_settings().audiveris_path:
        return _fail(400, "Audiveris is not configured. Set AUDIVERIS_PATH.")
    if image is None or not image.filename:
        return _fail(400, "No image provided")

    data = await image.read()
    try:
        piece_id = await run_in_threadpool(ingest_image_upload, image.filename, data)
    except OmrUnavailableError as e:
        return _fail(400, str(e))
    except ValueError as e:
        return _fail(400, str(e))
    except OmrError as e:
        return _fail(500, f"OMR conversion failed: {e}")
    except Exception as e:  # noqa: BLE001
        logger.exception("OMR upload error")
        return _fail(500, f"Upload failed: {e}")
    return {"success": True, "pieceId": piece_id}


@app.post("/api/convert", response_model=None)
async def api_convert(request: Request) -> dict[str, Any] | JSONResponse:
    """从 original.mid 重新生成 score.mxl / score.pdf。"""

    req = ConvertRequest.model_validate(await _json_object(request) or {})
    if not isinstance(req.piece_id, str) or not req.piece_id:
        return _fail(400, "pieceId is required")
    try:
        await run_in_threadpool(reconvert_piece, req.piece_id)
    except PieceNotFoundError as e:
        return _fail(404, str(e))
    except ConversionError as e:
        return _fail(500, f"Conversion failed: {e}")
    return {"success": True}


@app.get("/api/download", response_model=None)
def api_download(
    piece_id: str | None = Query(default=None, alias="pieceId"),
    file_type: str | None = Query(default=None, alias="type"),
    download: str | None = None,
) -> FileResponse | JSONResponse:
    if not piece_id or not file_type:
        return _error(400, "pieceId and type parameters are required")
    if file_type not in FILE_KINDS:
        return _error(400, f"Invalid type. Must be one of: {', '.join(FILE_KINDS)}")

    piece = get_piece(piece_id)
    if piece is None:
        return _error(404, f"Piece {piece_id} not found")

    try:
        path = resolve_piece_file(piece, file_type)
    except PermissionError:
        return _error(403, "Access denied")
    if not path.is_file():
        return _error(404, f"File not found: {path.name}")

    # 显式要求下载时一律 attachment；否则 PDF 内联预览，MXL/MIDI 下载
    if download == "true" or file_type != "pdf":
        disposition = "attachment"
    else:
        disposition = "inline"

    return FileResponse(
        path,
        media_type=CONTENT_TYPES[file_type],
        filename=path.name,
        content_disposition_type=disposition,
        headers={
            "X-Frame-Options": "SAMEORIGIN",
            "X-Content-Type-Options": "nosniff",
            "Content-Security-Policy": "frame-ancestors 'self'",
        },
    )


def _weak_etag(path: Path) -> str:
    st = path.stat()
    return f'W/"{st.st_size:x}-{int(st.st_mtime * 1000):x}"'


@app.get("/api/mxl", response_model=None)
def api_get_mxl_missing_id() -> JSONResponse:
    return _error(400, "pieceId path parameter is required")


@app.get("/api/mxl/{slug}", response_model=None)
def api_get_mxl(slug: str) -> FileResponse | JSONResponse:
    """按 `<pieceId>` 或 `<pieceId>.mxl` 返回 score.mxl（二进制，不带 Content-Disposition）。"""

    piece_id = slug[: -len(".mxl")] if slug.lower().endswith(".mxl") else slug
    if not piece_id:
        return _error(400, "pieceId path parameter is required")

    piece = get_piece(piece_id)
    if piece is None:
        return _error(404, f"Piece {piece_id} not found")

    try:
        path = resolve_piece_file(piece, "mxl")
    except PermissionError:
        return _error(403, "Access denied")
    if not path.is_file():
        return _error(404, f"File not found: {path.name}")

    return FileResponse(
        path,
        media_type=MXL_ZIP_CONTENT_TYPE,
        headers={
            "Accept-Ranges": "bytes",
            "Cache-Control": "public, max-age=0, no-transform",
            "ETag": _weak_etag(path),
        },
    )
