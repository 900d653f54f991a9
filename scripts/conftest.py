"""
测试公共夹具：临时曲库 + 假的 MuseScore / Audiveris 可执行文件。

定位：
- 外部工具用 tmp_path 下的小脚本代替，真实走一遍 subprocess 调用约定（参数、产物、退出码）。
- 每个测试使用独立曲库目录与独立配置，结束后清理 settings 缓存。
"""

from __future__ import annotations

import stat
import sys
from pathlib import Path
from typing import Iterator

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]


def _ensure_backend_src_on_path(repo_root: Path) -> None:
    src_dir = repo_root / "backend" / "src"
    if not src_dir.exists():
        raise RuntimeError(f"找不到 backend/src：{src_dir}")
    if str(src_dir) not in sys.path:
        sys.path.insert(0, str(src_dir))


_ensure_backend_src_on_path(REPO_ROOT)

from scorelib_backend.utils.settings import reset_settings_cache  # noqa: E402


FAKE_MSCORE = """\
import os
import sys
import time
from pathlib import Path

args = sys.argv[1:]
inp = Path(args[0])
out = Path(args[args.index("-o") + 1])
time.sleep(float(os.environ.get("FAKE_MSCORE_SLEEP", "0")))
failing = {s for s in os.environ.get("FAKE_MSCORE_FAIL", "").split(",") if s}
if out.suffix.lstrip(".") in failing:
    sys.stderr.write("fake mscore: cannot export " + out.name + "\\n")
    sys.exit(1)
if os.environ.get("FAKE_MSCORE_NOISY"):
    sys.stderr.write("fake mscore: warning\\n")
out.write_bytes(("FAKE " + out.suffix + " from " + inp.name).encode("utf-8"))
"""

FAKE_AUDIVERIS = """\
import os
import sys
import time
from pathlib import Path

args = sys.argv[1:]
out_dir = Path(args[args.index("-output") + 1])
image = Path(args[-1])
time.sleep(float(os.environ.get("FAKE_AUDIVERIS_SLEEP", "0")))
code = int(os.environ.get("FAKE_AUDIVERIS_EXIT", "0"))
if code != 0:
    sys.stderr.write("fake audiveris: failed\\n")
    sys.exit(code)
kind = os.environ.get("FAKE_AUDIVERIS_OUTPUT", "mxl")
if kind != "none":
    sub = out_dir / image.stem
    sub.mkdir(parents=True, exist_ok=True)
    (sub / (image.stem + "." + kind)).write_bytes(b"FAKE OMR " + kind.encode("utf-8"))
"""


def write_fake_tool(path: Path, body: str) -> Path:
    path.write_text(f"#!{sys.executable}\n" + body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def fake_mscore(tmp_path: Path) -> Path:
    (tmp_path / "bin").mkdir(exist_ok=True)
    return write_fake_tool(tmp_path / "bin" / "mscore", FAKE_MSCORE)


@pytest.fixture
def fake_audiveris(tmp_path: Path) -> Path:
    (tmp_path / "bin").mkdir(exist_ok=True)
    return write_fake_tool(tmp_path / "bin" / "audiveris", FAKE_AUDIVERIS)


@pytest.fixture
def library(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, fake_mscore: Path) -> Iterator[Path]:
    """独立曲库 + 假 MuseScore；Audiveris 默认未配置。"""

    lib = tmp_path / "library"
    settings_file = tmp_path / "scorelib_settings.yaml"
    settings_file.write_text("default_instrument: piano\n", encoding="utf-8")

    monkeypatch.setenv("SCORELIB_SETTINGS", str(settings_file))
    monkeypatch.setenv("LIBRARY_PATH", str(lib))
    monkeypatch.setenv("MUSESCORE_PATH", str(fake_mscore))
    monkeypatch.setenv("MUSESCORE_TIMEOUT_S", "30")
    monkeypatch.delenv("AUDIVERIS_PATH", raising=False)
    for key in (
        "FAKE_MSCORE_FAIL",
        "FAKE_MSCORE_NOISY",
        "FAKE_MSCORE_SLEEP",
        "FAKE_AUDIVERIS_EXIT",
        "FAKE_AUDIVERIS_OUTPUT",
        "FAKE_AUDIVERIS_SLEEP",
    ):
        monkeypatch.delenv(key, raising=False)

    reset_settings_cache()
    yield lib
    reset_settings_cache()


@pytest.fixture
def with_audiveris(library: Path, fake_audiveris: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("AUDIVERIS_PATH", str(fake_audiveris))
    monkeypatch.setenv("AUDIVERIS_TIMEOUT_S", "30")
    reset_settings_cache()
    return fake_audiveris
