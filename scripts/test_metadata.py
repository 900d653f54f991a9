"""
meta.json 读写与字段规范化回归测试。
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from scorelib_backend.domain.metadata import (
    PieceMeta,
    create_default_metadata,
    normalize_instrument,
    normalize_tags,
    normalize_title,
    read_metadata,
    title_from_filename,
    update_metadata,
    write_metadata,
)


def test_title_from_filename() -> None:
    assert title_from_filename("Moonlight_Sonata.MID") == "Moonlight Sonata"
    assert title_from_filename("fugue_in_g.midi") == "fugue in g"
    assert title_from_filename("score.mxl") == "score"
    # 只去掉结尾的乐谱扩展名
    assert title_from_filename("scan_01.png") == "scan 01.png"


def test_create_default_metadata(library: Path) -> None:
    meta = create_default_metadata("Bach_Prelude.mid")
    assert meta.original_name == "Bach_Prelude.mid"
    assert meta.title == "Bach Prelude"
    assert meta.tags == ()
    assert meta.instrument == "piano"
    assert meta.uploaded_at_dt().year >= 2024


def test_write_then_read_keeps_camel_case_keys(tmp_path: Path) -> None:
    p = tmp_path / "piece" / "meta.json"
    meta = PieceMeta(original_name="a.mid", title="小星星", uploaded_at="2025-01-02T03:04:05+00:00", tags=("儿歌",), instrument="violin")
    write_metadata(p, meta)

    raw = json.loads(p.read_text(encoding="utf-8"))
    assert raw == {
        "originalName": "a.mid",
        "title": "小星星",
        "uploadedAt": "2025-01-02T03:04:05+00:00",
        "tags": ["儿歌"],
        "instrument": "violin",
    }
    assert "小星星" in p.read_text(encoding="utf-8")
    assert read_metadata(p) == meta


@pytest.mark.parametrize(
    "content",
    [
        "not json",
        json.dumps({"originalName": "a.mid", "title": "a", "uploadedAt": "x"}),
        json.dumps({"originalName": "a.mid", "title": 3, "uploadedAt": "x", "tags": []}),
        json.dumps(["a"]),
    ],
)
def test_read_invalid_metadata_returns_none(tmp_path: Path, content: str) -> None:
    p = tmp_path / "meta.json"
    p.write_text(content, encoding="utf-8")
    assert read_metadata(p) is None


def test_read_missing_metadata_returns_none(tmp_path: Path) -> None:
    assert read_metadata(tmp_path / "nope.json") is None


def test_update_metadata_merges() -> None:
    cur = PieceMeta(original_name="a.mid", title="a", uploaded_at="t", tags=("x",), instrument="piano")

    upd = update_metadata(cur, {"title": "b"})
    assert upd.title == "b"
    assert upd.tags == ("x",)
    assert upd.instrument == "piano"

    upd2 = update_metadata(cur, {"tags": ["y", "z"], "instrument": "flute"})
    assert upd2.title == "a"
    assert upd2.tags == ("y", "z")
    assert upd2.instrument == "flute"

    with pytest.raises(ValueError):
        update_metadata(cur, {"originalName": "hack"})


def test_normalizers() -> None:
    assert normalize_title("  Nocturne ") == "Nocturne"
    with pytest.raises(ValueError):
        normalize_title("   ")

    assert normalize_tags([" jazz", "", "jazz", 3, "piano ", None, "Jazz"]) == ["jazz", "piano", "Jazz"]

    assert normalize_instrument("Guitar") == "guitar"
    with pytest.raises(ValueError):
        normalize_instrument("banjo")


def main() -> None:
    raise SystemExit(pytest.main([__file__, "-q"]))


if __name__ == "__main__":
    main()
