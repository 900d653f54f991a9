"""
把本地乐谱文件批量导入曲库的开发期脚本（不依赖后端服务进程）。

目标：
- 走与 /api/upload、/api/omr 相同的入库流程（MuseScore / Audiveris 按配置调用）
- 逐个打印入库结果；单个文件失败不影响后续文件，最后汇总失败数

运行：
  python scripts/backend_import_try.py path/to/a.mid path/to/b.mxl path/to/scan.png
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys


def _ensure_backend_src_on_path(repo_root: Path) -> None:
    src_dir = repo_root / "backend" / "src"
    if not src_dir.exists():
        raise RuntimeError(f"找不到 backend/src：{src_dir}")
    sys.path.insert(0, str(src_dir))


def main() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    _ensure_backend_src_on_path(repo_root)

    from scorelib_backend.domain.ingest import IMAGE_EXTENSIONS, ingest_image_upload, ingest_score_upload
    from scorelib_backend.engines.audiveris import OmrError, OmrUnavailableError
    from scorelib_backend.engines.musescore import ConversionError
    from scorelib_backend.infra.library import require_piece

    parser = argparse.ArgumentParser(description="把 MIDI / MXL / 扫描图片导入曲库")
    parser.add_argument("files", nargs="+", type=Path)
    parser.add_argument("--log-level", default="info")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    failed = 0
    for path in args.files:
        if not path.is_file():
            print(f"[SKIP] 不是文件：{path}")
            failed += 1
            continue
        data = path.read_bytes()
        try:
            if path.name.lower().endswith(IMAGE_EXTENSIONS):
                piece_id = ingest_image_upload(path.name, data)
            else:
                piece_id = ingest_score_upload(path.name, data)
        except (ValueError, ConversionError, OmrError, OmrUnavailableError) as e:
            print(f"[FAIL] {path.name}: {e}")
            failed += 1
            continue
        print(json.dumps(require_piece(piece_id).to_dict(), ensure_ascii=False, indent=2))

    print(f"[OK] imported={len(args.files) - failed} failed={failed}")
    if failed:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
