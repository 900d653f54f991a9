"""
MuseScore 调用回归测试（假 mscore 可执行文件）：单步转换、两步转换、失败传播、MIDI 可选。
"""

from __future__ import annotations

from pathlib import Path

import pytest

from scorelib_backend.engines.musescore import (
    ConversionError,
    convert_mid_to_pdf,
    convert_mxl_to_pdf_and_mid,
    musescore_available,
    run_musescore,
)
from scorelib_backend.utils.settings import reset_settings_cache


def test_run_musescore_creates_output(library: Path, tmp_path: Path) -> None:
    src = tmp_path / "in.mid"
    src.write_bytes(b"MThd")
    out = tmp_path / "nested" / "out.mxl"
    assert run_musescore(src, out) == out
    assert out.read_bytes() == b"FAKE .mxl from in.mid"


def test_run_musescore_failure(library: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FAKE_MSCORE_FAIL", "pdf")
    src = tmp_path / "in.mxl"
    src.write_bytes(b"PK")
    with pytest.raises(ConversionError, match="output file not created"):
        run_musescore(src, tmp_path / "out.pdf")


def test_missing_executable(library: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MUSESCORE_PATH", str(tmp_path / "no-such-mscore"))
    reset_settings_cache()
    assert not musescore_available()
    src = tmp_path / "in.mid"
    src.write_bytes(b"MThd")
    with pytest.raises(ConversionError, match="not found"):
        run_musescore(src, tmp_path / "out.mxl")


def test_convert_mid_to_pdf(library: Path, tmp_path: Path) -> None:
    assert musescore_available()
    src = tmp_path / "original.mid"
    src.write_bytes(b"MThd")
    result = convert_mid_to_pdf(src, tmp_path)
    assert result.mxl_path == tmp_path / "score.mxl"
    assert result.pdf_path == tmp_path / "score.pdf"
    assert result.pdf_path.read_bytes() == b"FAKE .pdf from score.mxl"


def test_convert_mid_to_pdf_stops_at_first_failure(library: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FAKE_MSCORE_FAIL", "mxl")
    src = tmp_path / "original.mid"
    src.write_bytes(b"MThd")
    with pytest.raises(ConversionError, match="^MXL conversion failed"):
        convert_mid_to_pdf(src, tmp_path)
    assert not (tmp_path / "score.pdf").exists()

    monkeypatch.setenv("FAKE_MSCORE_FAIL", "pdf")
    with pytest.raises(ConversionError, match="^PDF conversion failed"):
        convert_mid_to_pdf(src, tmp_path)


def test_convert_mxl_to_pdf_and_mid(library: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    src = tmp_path / "original.mxl"
    src.write_bytes(b"PK")

    r = convert_mxl_to_pdf_and_mid(src, tmp_path)
    assert r.pdf_path.exists()
    assert r.mid_path == tmp_path / "score.mid"
    assert r.mid_path.exists()

    r2 = convert_mxl_to_pdf_and_mid(src, tmp_path, "other", generate_mid=False)
    assert r2.mid_path is None
    assert (tmp_path / "other.pdf").exists()

    # MIDI 失败不影响整体结果
    monkeypatch.setenv("FAKE_MSCORE_FAIL", "mid")
    r3 = convert_mxl_to_pdf_and_mid(src, tmp_path, "third")
    assert r3.pdf_path.exists()
    assert r3.mid_path is None

    monkeypatch.setenv("FAKE_MSCORE_FAIL", "pdf")
    with pytest.raises(ConversionError, match="^PDF conversion failed"):
        convert_mxl_to_pdf_and_mid(src, tmp_path, "fourth")


def test_stale_output_does_not_mask_failure(library: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    src = tmp_path / "in.mid"
    src.write_bytes(b"MThd")
    out = tmp_path / "out.mxl"
    out.write_bytes(b"stale from an earlier run")

    monkeypatch.setenv("FAKE_MSCORE_FAIL", "mxl")
    with pytest.raises(ConversionError, match="output file not created"):
        run_musescore(src, out)
    assert not out.exists()


def test_run_musescore_timeout(library: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MUSESCORE_TIMEOUT_S", "0.5")
    monkeypatch.setenv("FAKE_MSCORE_SLEEP", "5")
    reset_settings_cache()
    src = tmp_path / "in.mid"
    src.write_bytes(b"MThd")
    with pytest.raises(ConversionError, match="timed out after 0.5s"):
        run_musescore(src, tmp_path / "out.mxl")
    assert not (tmp_path / "out.mxl").exists()


def main() -> None:
    raise SystemExit(pytest.main([__file__, "-q"]))


if __name__ == "__main__":
    main()
